"""Test metrics collector."""

import pytest

from shared.metrics import MetricsCollector


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def test_metrics_timer_accumulates():
    """Repeated phases add up."""
    clock = FakeClock()
    metrics = MetricsCollector(clock=clock)

    metrics.start_timer('download')
    clock.now = 2.0
    assert metrics.stop_timer('download') == 2.0

    metrics.start_timer('download')
    clock.now = 5.0
    metrics.stop_timer('download')

    assert metrics.get_duration('download') == 5.0
    assert metrics.elapsed_time() == 5.0


def test_stop_unknown_timer():
    """Stopping a timer that never started is an error."""
    with pytest.raises(KeyError):
        MetricsCollector().stop_timer('upload')


def test_metrics_counter():
    """Test counter functionality."""
    metrics = MetricsCollector()

    metrics.increment_counter('upload_retries')
    metrics.increment_counter('upload_retries')
    metrics.increment_counter('upload_retries', amount=3)

    assert metrics.get_counter('upload_retries') == 5
    assert metrics.get_counter('missing') == 0


def test_metrics_summary():
    """Test summary generation."""
    clock = FakeClock()
    metrics = MetricsCollector(clock=clock)
    metrics.start_timer('upload')
    clock.now = 1.5
    metrics.stop_timer('upload')
    metrics.increment_counter('output_lines', 12)

    summary = metrics.get_summary()

    assert summary['durations'] == {'upload': 1.5}
    assert summary['counters'] == {'output_lines': 12}
    assert metrics.format_summary() == "total 1.5s, upload 1.5s, output_lines=12"
