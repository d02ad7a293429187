"""Interrupt-driven task cancellation."""

import os
import signal
import threading
import time
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

from domain.protocols import ILocalStorage, INodeGateway
from domain.exceptions import DomainException, RetryExhaustedError
from shared.logging import flush_all, get_logger
from shared.retry import RetryStrategy
from shared.types import SleepFunc

logger = get_logger(__name__)

CANCEL_ATTEMPTS = 5
CANCEL_RETRY_DELAY = 1.0
EXIT_STATUS = 1


def _hard_exit(status: int) -> None:
    flush_all()
    os._exit(status)


class CancellationWatcher:
    """
    Cancels the remote task when the process receives SIGINT/SIGTERM.

    Signal handlers only set an event. A dedicated listener thread waits on
    it, asks the node to cancel (bounded retries), removes the output
    directory if it is still empty, and terminates the process. Nothing
    coordinates with the polling loop; the exit is the last action.
    """

    def __init__(
        self,
        gateway: INodeGateway,
        uuid: str,
        output_dir: Path,
        storage: ILocalStorage,
        attempts: int = CANCEL_ATTEMPTS,
        delay: float = CANCEL_RETRY_DELAY,
        exit_func: Callable[[int], None] = _hard_exit,
        sleep: SleepFunc = time.sleep,
        signals: Tuple[int, ...] = (signal.SIGINT, signal.SIGTERM)
    ):
        self._gateway = gateway
        self.uuid = uuid
        self.output_dir = Path(output_dir)
        self._storage = storage
        self._retry = RetryStrategy(
            max_attempts=attempts,
            delay=delay,
            exceptions=(DomainException,),
            sleep=sleep,
            description="Cancel"
        )
        self._exit = exit_func
        self._signals = signals
        self._triggered = threading.Event()
        self._closed = threading.Event()
        self._listener: Optional[threading.Thread] = None
        self._previous: Dict[int, object] = {}

    def __enter__(self) -> "CancellationWatcher":
        self.install()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.uninstall()

    def install(self) -> None:
        """Register signal handlers and start the listener thread."""
        self._listener = threading.Thread(target=self._listen, name="cancel-listener", daemon=True)
        self._listener.start()
        for signum in self._signals:
            self._previous[signum] = signal.signal(signum, self._handle_signal)

    def uninstall(self) -> None:
        """Restore previous handlers. A cancellation already underway still finishes."""
        for signum, handler in self._previous.items():
            signal.signal(signum, handler)
        self._previous.clear()
        self._closed.set()

    def _handle_signal(self, signum, frame) -> None:
        self._triggered.set()

    def _listen(self) -> None:
        while not self._closed.is_set():
            if self._triggered.wait(timeout=0.5):
                self.trigger()
                return

    def trigger(self) -> None:
        """Cancel the task, clean up and exit with a non-zero status."""
        logger.info("Canceling task...")
        self.cancel_remote()
        self.cleanup()
        self._exit(EXIT_STATUS)

    def cancel_remote(self) -> bool:
        """Ask the node to cancel; True on success within the attempt limit."""
        try:
            self._retry.execute(self._gateway.cancel_task, self.uuid)
        except RetryExhaustedError as e:
            logger.error(f"Could not cancel task {self.uuid}: {e.last_error}")
            return False
        logger.info(f"Task {self.uuid} canceled")
        return True

    def cleanup(self) -> bool:
        """Remove the output directory if nothing was written to it."""
        try:
            return self._storage.remove_if_empty(self.output_dir)
        except DomainException as e:
            logger.warning(f"Cleanup of {self.output_dir} failed: {e}")
            return False
