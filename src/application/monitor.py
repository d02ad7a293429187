"""Task lifecycle polling."""

import time
from typing import Optional

from domain.models import RemoteTask, TaskStatus
from domain.protocols import IMetricsCollector, INodeGateway
from domain.exceptions import DomainException
from shared.logging import get_logger, get_task_output_logger
from shared.types import LineHandler, SleepFunc

logger = get_logger(__name__)
task_output = get_task_output_logger()

POLL_INTERVAL = 3.0


class TaskMonitor:
    """
    Follows a task until it reaches a terminal status.

    Each iteration sleeps, refreshes the status and then fetches console
    output from the current cursor. Transport errors are logged and the loop
    carries on; the task keeps running on the node regardless.
    """

    def __init__(
        self,
        gateway: INodeGateway,
        poll_interval: float = POLL_INTERVAL,
        on_line: Optional[LineHandler] = None,
        sleep: SleepFunc = time.sleep,
        metrics: Optional[IMetricsCollector] = None
    ):
        self._gateway = gateway
        self.poll_interval = poll_interval
        self._on_line = on_line or task_output.info
        self._sleep = sleep
        self._metrics = metrics
        self.task: Optional[RemoteTask] = None

    def monitor(self, uuid: str) -> TaskStatus:
        """
        Poll ``uuid`` until it is completed, failed or canceled.

        The first status query is not retried: a task that cannot be
        queried right after submission is an error.
        """
        info = self._gateway.get_status(uuid)
        self.task = RemoteTask(uuid=uuid, status=info.status)
        logger.debug(f"Task {uuid} status: {info.status.name.lower()}")

        while not self.task.is_finished:
            self._sleep(self.poll_interval)
            self._poll_once()

        logger.info(f"Task {uuid} {self.task.status.name.lower()}")
        return self.task.status

    def _poll_once(self) -> None:
        task = self.task
        try:
            info = self._gateway.get_status(task.uuid)
        except DomainException as e:
            # Try again later
            logger.info(f"Cannot get task status: {e}")
            return

        if info.status != task.status:
            logger.debug(f"Task {task.uuid} status: {info.status.name.lower()}")
        task.status = info.status

        try:
            lines = self._gateway.get_output(task.uuid, task.output_cursor)
        except DomainException as e:
            logger.info(f"Cannot get task output: {e}")
            return

        for line in lines:
            self._on_line(line)
        task.advance(len(lines))
        if self._metrics is not None and lines:
            self._metrics.increment_counter('output_lines', len(lines))
