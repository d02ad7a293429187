"""Run timing and counters."""

import time
from typing import Dict, Any
from collections import defaultdict


class MetricsCollector:
    """
    Collects phase timings and event counters for a single run.
    Implements IMetricsCollector protocol.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._start_time = clock()
        self._timers: Dict[str, float] = {}
        self._durations: Dict[str, float] = {}
        self._counters: Dict[str, int] = defaultdict(int)

    def start_timer(self, name: str) -> None:
        """Start a named timer."""
        self._timers[name] = self._clock()

    def stop_timer(self, name: str) -> float:
        """
        Stop a named timer and return elapsed time.

        Raises:
            KeyError: If timer was not started
        """
        if name not in self._timers:
            raise KeyError(f"Timer '{name}' was not started")

        elapsed = self._clock() - self._timers.pop(name)
        self._durations[name] = self._durations.get(name, 0.0) + elapsed
        return elapsed

    def increment_counter(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        self._counters[name] += amount

    def get_counter(self, name: str) -> int:
        """Get counter value."""
        return self._counters.get(name, 0)

    def get_duration(self, name: str) -> float:
        return self._durations.get(name, 0.0)

    def elapsed_time(self) -> float:
        """Get total elapsed time since initialization."""
        return self._clock() - self._start_time

    def get_summary(self) -> Dict[str, Any]:
        """Summary of durations and counters."""
        return {
            "total_elapsed": self.elapsed_time(),
            "durations": dict(self._durations),
            "counters": dict(self._counters),
        }

    def format_summary(self) -> str:
        """One-line human readable summary."""
        summary = self.get_summary()
        parts = [f"total {summary['total_elapsed']:.1f}s"]
        parts += [f"{name} {value:.1f}s" for name, value in summary["durations"].items()]
        parts += [f"{name}={value}" for name, value in summary["counters"].items()]
        return ", ".join(parts)
