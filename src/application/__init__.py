"""Application layer package."""

from application.orchestrator import TaskRunner, build_runner, run
from application.monitor import TaskMonitor
from application.cancellation import CancellationWatcher

__all__ = ["TaskRunner", "build_runner", "run", "TaskMonitor", "CancellationWatcher"]
