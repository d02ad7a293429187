"""Tests for TaskMonitor."""

import pytest

from application.monitor import TaskMonitor
from domain.models import TaskStatus
from domain.exceptions import TransportError


def make_monitor(gateway, lines=None, sleeps=None):
    printed = lines if lines is not None else []
    slept = sleeps if sleeps is not None else []
    return TaskMonitor(gateway, poll_interval=3.0, on_line=printed.append, sleep=slept.append)


class TestTaskMonitor:
    """Polling loop behavior."""

    def test_terminal_initial_status_returns_without_polling(self, gateway):
        gateway.statuses = [TaskStatus.FAILED]
        slept = []

        status = make_monitor(gateway, sleeps=slept).monitor("task-1")

        assert status == TaskStatus.FAILED
        assert slept == []
        assert gateway.output_requests == []

    def test_polls_until_completed(self, gateway):
        gateway.statuses = [TaskStatus.QUEUED, TaskStatus.RUNNING, TaskStatus.RUNNING, TaskStatus.COMPLETED]
        slept = []

        status = make_monitor(gateway, sleeps=slept).monitor("task-1")

        assert status == TaskStatus.COMPLETED
        assert slept == [3.0, 3.0, 3.0]

    @pytest.mark.parametrize("terminal", [TaskStatus.FAILED, TaskStatus.CANCELED])
    def test_exits_on_any_terminal_status(self, gateway, terminal):
        gateway.statuses = [TaskStatus.RUNNING, terminal]

        assert make_monitor(gateway).monitor("task-1") == terminal

    def test_output_printed_once_and_cursor_matches(self, gateway):
        gateway.statuses = [TaskStatus.RUNNING] * 4 + [TaskStatus.COMPLETED]
        gateway.output = [f"line {i}" for i in range(7)]
        gateway.output_step = 2
        printed = []

        monitor = make_monitor(gateway, lines=printed)
        monitor.monitor("task-1")

        assert gateway.output_requests == [0, 2, 4, 6]
        assert printed == gateway.output
        assert monitor.task.output_cursor == len(gateway.output)

    def test_status_error_skips_iteration_without_aborting(self, gateway):
        gateway.statuses = [TaskStatus.RUNNING, TaskStatus.RUNNING, TaskStatus.COMPLETED]
        gateway.status_errors = [1, 2]
        gateway.output = ["only line"]
        printed = []
        slept = []

        status = make_monitor(gateway, lines=printed, sleeps=slept).monitor("task-1")

        assert status == TaskStatus.COMPLETED
        assert len(slept) == 3
        # Output is only fetched on iterations whose status query succeeded
        assert gateway.output_requests == [0]
        assert printed == ["only line"]

    def test_output_error_keeps_new_status_and_cursor(self, gateway):
        gateway.statuses = [TaskStatus.RUNNING, TaskStatus.RUNNING, TaskStatus.RUNNING, TaskStatus.COMPLETED]
        gateway.output = ["a", "b", "c", "d"]
        gateway.output_errors = [0]
        printed = []

        monitor = make_monitor(gateway, lines=printed)
        status = monitor.monitor("task-1")

        assert status == TaskStatus.COMPLETED
        assert gateway.output_requests == [0, 0, 2]
        assert printed == ["a", "b", "c", "d"]
        assert monitor.task.output_cursor == 4

    def test_output_error_on_final_iteration_still_exits(self, gateway):
        gateway.statuses = [TaskStatus.RUNNING, TaskStatus.COMPLETED]
        gateway.output_errors = [0]

        assert make_monitor(gateway).monitor("task-1") == TaskStatus.COMPLETED

    def test_first_status_error_propagates(self, gateway):
        gateway.status_errors = [0]

        with pytest.raises(TransportError):
            make_monitor(gateway).monitor("task-1")

    def test_output_lines_counted(self, gateway):
        from unittest.mock import Mock

        gateway.statuses = [TaskStatus.RUNNING, TaskStatus.COMPLETED]
        gateway.output = ["x", "y"]
        metrics = Mock()
        monitor = TaskMonitor(gateway, on_line=lambda line: None, sleep=lambda s: None, metrics=metrics)

        monitor.monitor("task-1")

        metrics.increment_counter.assert_called_once_with('output_lines', 2)
