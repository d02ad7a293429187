"""Image upload to a processing node: single request or chunked worker pool."""

import queue
import threading
from pathlib import Path
from typing import Optional, Sequence, Set

from tqdm import tqdm

from domain.models import JobOptions, UploadOutcome, UploadUnit
from domain.protocols import IMetricsCollector, INodeGateway
from domain.exceptions import DomainException, UploadError
from shared.logging import get_logger

logger = get_logger(__name__)

# Attempts per file before the whole submission is abandoned
MAX_RETRIES = 10


def _upload_worker(
    worker_id: int,
    gateway: INodeGateway,
    uuid: str,
    units: "queue.Queue[Optional[UploadUnit]]",
    outcomes: "queue.Queue[UploadOutcome]"
) -> None:
    """Upload units until a ``None`` sentinel arrives. Never raises."""
    while True:
        unit = units.get()
        if unit is None:
            return

        error: Optional[BaseException] = None
        try:
            gateway.upload_file(uuid, unit.filename)
        except Exception as e:
            error = e
        logger.debug(f"[worker {worker_id}] {unit.filename.name}: {'failed' if error else 'ok'}")
        outcomes.put(UploadOutcome(unit.filename, unit.attempt + 1, error))


class UploadCoordinator:
    """
    Submits a set of images and returns the task UUID.

    With ``concurrency <= 1`` everything goes in a single request. Otherwise
    the chunked protocol is used: init, per-file uploads from a worker pool,
    commit. The coordinator is the only consumer of worker outcomes and the
    only owner of progress state.
    """

    def __init__(
        self,
        gateway: INodeGateway,
        max_retries: int = MAX_RETRIES,
        show_progress: bool = True,
        metrics: Optional[IMetricsCollector] = None
    ):
        self._gateway = gateway
        self.max_retries = max_retries
        self.show_progress = show_progress
        self._metrics = metrics

    def submit(self, files: Sequence[Path], options: JobOptions, concurrency: int = 1) -> str:
        """
        Upload ``files`` with ``options`` and create the task.

        Raises:
            UploadError: A file exceeded the retry limit (carries the provisional UUID)
            ServiceRejectedError: The node refused init/commit/creation
            TransportError: init/commit/single-request transport failure

        Failures after a successful init carry the provisional UUID in ``uuid``.
        """
        files = [Path(f) for f in files]
        options_json = options.to_json()

        if concurrency <= 1:
            return self._single_upload(files, options_json)
        return self._chunked_upload(files, options_json, concurrency)

    def _single_upload(self, files: Sequence[Path], options_json: str) -> str:
        total_bytes = sum(f.stat().st_size for f in files if f.exists())

        with tqdm(
            total=total_bytes,
            unit='B',
            unit_scale=True,
            desc='Uploading',
            disable=not self.show_progress
        ) as bar:
            def on_progress(sent: int, total: int) -> None:
                # Multipart framing makes the body slightly larger than the files
                if bar.total != total:
                    bar.total = total
                bar.update(sent - bar.n)

            uuid = self._gateway.create_task_single(files, options_json, on_progress=on_progress)

        logger.info(f"Uploaded {len(files)} images in a single request")
        return uuid

    def _chunked_upload(self, files: Sequence[Path], options_json: str, concurrency: int) -> str:
        uuid = self._gateway.init_task(options_json)
        logger.info(f"Initialized task {uuid}, uploading {len(files)} images with {concurrency} workers")

        try:
            self._upload_files(uuid, files, concurrency)
            return self._gateway.commit_task(uuid)
        except DomainException as e:
            # The provisional task exists from here on; callers cancel it
            if e.uuid is None:
                e.uuid = uuid
            raise

    def _upload_files(self, uuid: str, files: Sequence[Path], concurrency: int) -> None:
        units: "queue.Queue[Optional[UploadUnit]]" = queue.Queue(maxsize=max(len(files), 1))
        outcomes: "queue.Queue[UploadOutcome]" = queue.Queue()

        workers = [
            threading.Thread(
                target=_upload_worker,
                args=(i, self._gateway, uuid, units, outcomes),
                name=f"upload-worker-{i}",
                daemon=True
            )
            for i in range(1, concurrency + 1)
        ]
        for worker in workers:
            worker.start()

        pending: Set[Path] = set(files)
        for file_path in files:
            units.put(UploadUnit(file_path))

        try:
            with tqdm(
                total=len(files),
                unit='file',
                desc='Files uploaded',
                disable=not self.show_progress
            ) as bar:
                while pending:
                    outcome = outcomes.get()

                    if outcome.success:
                        if outcome.filename in pending:
                            pending.discard(outcome.filename)
                            bar.update(1)
                        logger.debug(f"Uploaded {outcome.filename.name} ({len(pending)} left)")
                        continue

                    if outcome.attempt >= self.max_retries:
                        raise UploadError(
                            f"Cannot upload {outcome.filename}, exceeded max retries ({self.max_retries})",
                            uuid=uuid,
                            attempts=outcome.attempt,
                            last_error=outcome.error
                        ) from outcome.error

                    logger.warning(
                        f"RETRY: {outcome.filename.name} "
                        f"(attempt {outcome.attempt}/{self.max_retries}): {outcome.error}"
                    )
                    if self._metrics is not None:
                        self._metrics.increment_counter('upload_retries')
                    units.put(UploadUnit(outcome.filename, outcome.attempt))
        finally:
            self._stop_workers(units, workers)

    @staticmethod
    def _stop_workers(units: "queue.Queue[Optional[UploadUnit]]", workers) -> None:
        # Drop queued retries so sentinels fit and idle workers exit promptly
        while True:
            try:
                units.get_nowait()
            except queue.Empty:
                break
        for _ in workers:
            units.put(None)
        for worker in workers:
            worker.join()
