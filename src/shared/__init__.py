"""Shared utilities package."""

from shared.logging import setup_logger, get_logger, get_task_output_logger, configure_levels
from shared.retry import RetryStrategy
from shared.metrics import MetricsCollector
from shared.types import LineHandler, PathLike, SleepFunc

__all__ = [
    "setup_logger",
    "get_logger",
    "get_task_output_logger",
    "configure_levels",
    "RetryStrategy",
    "MetricsCollector",
    "PathLike",
    "SleepFunc",
    "LineHandler",
]
