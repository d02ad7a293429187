"""Run orchestration: submit, follow, download, extract."""

from pathlib import Path
from typing import Callable, Optional, Sequence

from domain.models import JobOptions, Node, TaskStatus
from domain.protocols import ILocalStorage, IMetricsCollector, INodeGateway
from domain.exceptions import (
    ConfigurationError,
    DomainException,
    TaskFailedError,
)
from application.cancellation import CancellationWatcher
from application.monitor import TaskMonitor
from infrastructure.io.downloader import ResultRetriever
from infrastructure.io.uploader import UploadCoordinator
from infrastructure.nodeodm.client import NodeODMClient
from infrastructure.storage.local_storage import LocalStorage
from shared.logging import get_logger
from shared.metrics import MetricsCollector

logger = get_logger(__name__)

RESULT_ASSET = "all.zip"


class TaskRunner:
    """Main orchestrator - coordinates all components."""

    def __init__(
        self,
        gateway: INodeGateway,
        storage: ILocalStorage,
        uploader: UploadCoordinator,
        monitor: TaskMonitor,
        retriever: ResultRetriever,
        metrics: IMetricsCollector,
        watcher_factory: Optional[Callable[[str, Path], CancellationWatcher]] = None
    ):
        self._gateway = gateway
        self._storage = storage
        self._uploader = uploader
        self._monitor = monitor
        self._retriever = retriever
        self._metrics = metrics
        self._watcher_factory = watcher_factory or self._default_watcher

    def _default_watcher(self, uuid: str, output_dir: Path) -> CancellationWatcher:
        return CancellationWatcher(self._gateway, uuid, output_dir, self._storage)

    def run(
        self,
        files: Sequence[Path],
        options: JobOptions,
        output_dir: Path,
        parallelism: int = 1
    ) -> Path:
        """
        Process ``files`` on the node and leave the results in ``output_dir``.

        Blocks until the task finishes and the results are extracted.

        Raises:
            DomainException: Any fatal error; the caller exits non-zero
        """
        if not files:
            raise ConfigurationError("No input images")

        output_dir = Path(output_dir)
        self._storage.ensure_directory(output_dir)

        uuid = self._submit(files, options, parallelism)
        logger.info(f"Task UUID: {uuid}")

        with self._watcher_factory(uuid, output_dir):
            self._metrics.start_timer('processing')
            try:
                status = self._monitor.monitor(uuid)
            finally:
                self._metrics.stop_timer('processing')

            if status != TaskStatus.COMPLETED:
                raise TaskFailedError(uuid, status)

            self._fetch_results(uuid, output_dir, parallelism)

        logger.info(f"Done! Results saved in {output_dir}")
        logger.info(f"Metrics: {self._metrics.format_summary()}")
        return output_dir

    def _submit(self, files: Sequence[Path], options: JobOptions, parallelism: int) -> str:
        self._metrics.start_timer('upload')
        try:
            uuid = self._uploader.submit(files, options, parallelism)
        except DomainException as e:
            if e.uuid:
                self._cancel_quietly(e.uuid)
            raise
        finally:
            self._metrics.stop_timer('upload')
        return uuid

    def _cancel_quietly(self, uuid: str) -> None:
        try:
            self._gateway.cancel_task(uuid)
            logger.info(f"Canceled partial task {uuid}")
        except DomainException as e:
            logger.warning(f"Could not cancel partial task {uuid}: {e}")

    def _fetch_results(self, uuid: str, output_dir: Path, parallelism: int) -> None:
        archive = output_dir / RESULT_ASSET
        logger.info("Task completed! Downloading and extracting results...")

        self._metrics.start_timer('download')
        try:
            self._retriever.download_with_retry(uuid, RESULT_ASSET, archive, parallelism)
        finally:
            self._metrics.stop_timer('download')

        self._storage.extract_archive(archive, output_dir)

        try:
            self._storage.remove_file(archive)
        except DomainException as e:
            logger.info(str(e))


def build_runner(
    node: Node,
    poll_interval: float = 3.0,
    request_timeout: Optional[float] = 60.0,
    show_progress: bool = True,
    gateway: Optional[INodeGateway] = None
) -> TaskRunner:
    """Wire a TaskRunner with the HTTP gateway and local filesystem."""
    gateway = gateway or NodeODMClient(node, timeout=request_timeout)
    storage = LocalStorage(show_progress=show_progress)
    metrics = MetricsCollector()

    return TaskRunner(
        gateway=gateway,
        storage=storage,
        uploader=UploadCoordinator(gateway, show_progress=show_progress, metrics=metrics),
        monitor=TaskMonitor(gateway, poll_interval=poll_interval, metrics=metrics),
        retriever=ResultRetriever(gateway, show_progress=show_progress, metrics=metrics),
        metrics=metrics
    )


def run(
    files: Sequence[Path],
    options: JobOptions,
    node: Node,
    output_path: Path,
    parallelism: int = 1
) -> Path:
    """Process a dataset on ``node``; see ``TaskRunner.run``."""
    return build_runner(node).run(files, options, output_path, parallelism)
