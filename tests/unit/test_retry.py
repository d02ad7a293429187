"""Test RetryStrategy."""

import pytest

from shared.retry import RetryStrategy
from domain.exceptions import RetryExhaustedError, ServiceRejectedError, TransportError


class Flaky:
    """Fails ``failures`` times, then returns ``value``."""

    def __init__(self, failures, value="ok", error=TransportError):
        self.failures = failures
        self.value = value
        self.error = error
        self.calls = 0

    def __call__(self, *args, **kwargs):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error(f"failure {self.calls}")
        return self.value


class TestRetryStrategy:
    """Bounded retry."""

    def test_success_first_try(self):
        slept = []
        func = Flaky(0)

        assert RetryStrategy(max_attempts=3, sleep=slept.append).execute(func) == "ok"
        assert func.calls == 1
        assert slept == []

    def test_passes_arguments(self):
        strategy = RetryStrategy(sleep=lambda s: None)

        assert strategy.execute(lambda a, b=0: a + b, 1, b=2) == 3

    def test_retries_with_fixed_delay(self):
        slept = []
        func = Flaky(2)

        result = RetryStrategy(max_attempts=5, delay=30.0, sleep=slept.append).execute(func)

        assert result == "ok"
        assert func.calls == 3
        assert slept == [30.0, 30.0]

    def test_exhausted(self):
        slept = []
        func = Flaky(10)

        with pytest.raises(RetryExhaustedError) as excinfo:
            RetryStrategy(max_attempts=4, delay=1.0, sleep=slept.append).execute(func)

        assert func.calls == 4
        assert len(slept) == 3
        assert excinfo.value.attempts == 4
        assert str(excinfo.value.last_error) == "failure 4"
        assert excinfo.value.__cause__ is excinfo.value.last_error

    def test_unlisted_exception_not_retried(self):
        func = Flaky(1, error=ServiceRejectedError)

        with pytest.raises(ServiceRejectedError):
            RetryStrategy(exceptions=(TransportError,), sleep=lambda s: None).execute(func)

        assert func.calls == 1

    def test_invalid_attempts(self):
        with pytest.raises(ValueError):
            RetryStrategy(max_attempts=0)
