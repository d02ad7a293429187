"""Task asset download, sequential or by parallel byte ranges."""

import math
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import List, Optional

from tqdm import tqdm

from domain.models import ByteRange, DownloadSession
from domain.protocols import IAssetStream, IMetricsCollector, INodeGateway
from domain.exceptions import DownloadError, TransportError
from shared.logging import get_logger
from shared.retry import RetryStrategy
from shared.types import SleepFunc

logger = get_logger(__name__)

CHUNK_SIZE = 10 * 1024 * 1024  # 10 MiB per range request
STREAM_BLOCK_SIZE = 64 * 1024
DOWNLOAD_ATTEMPTS = 10
DOWNLOAD_RETRY_DELAY = 30.0


def plan_chunks(total_bytes: int, chunk_size: int = CHUNK_SIZE) -> List[ByteRange]:
    """
    Partition ``[0, total_bytes)`` into consecutive ranges of ``chunk_size``.

    The last range is truncated to the remainder.
    """
    if total_bytes <= 0:
        return []
    count = math.ceil(total_bytes / chunk_size)
    return [
        ByteRange(i * chunk_size, min((i + 1) * chunk_size, total_bytes) - 1)
        for i in range(count)
    ]


def negotiate_session(
    response: IAssetStream,
    parallelism: int,
    chunk_size: int = CHUNK_SIZE
) -> DownloadSession:
    """Build a DownloadSession from the headers of the first response."""
    headers = {k.lower(): v for k, v in response.headers.items()}

    try:
        total_bytes = int(headers.get('content-length') or 0)
    except ValueError:
        total_bytes = 0
    if total_bytes <= 0:
        logger.debug("Warning: Content-Length not set")

    session = DownloadSession(
        total_bytes=total_bytes or None,
        supports_ranges=headers.get('accept-ranges', '').lower() == 'bytes'
    )

    if session.supports_ranges and total_bytes > chunk_size and parallelism > 1:
        session.chunk_plan = plan_chunks(total_bytes, chunk_size)
    return session


class ResultRetriever:
    """
    Downloads a finished task's asset to a local file.

    ``download`` makes one attempt; ``download_with_retry`` wraps the whole
    operation in a bounded retry with a fixed pause.
    """

    def __init__(
        self,
        gateway: INodeGateway,
        chunk_size: int = CHUNK_SIZE,
        show_progress: bool = True,
        metrics: Optional[IMetricsCollector] = None
    ):
        self._gateway = gateway
        self.chunk_size = chunk_size
        self.show_progress = show_progress
        self._metrics = metrics

    def download_with_retry(
        self,
        uuid: str,
        asset: str,
        destination: Path,
        parallelism: int = 1,
        attempts: int = DOWNLOAD_ATTEMPTS,
        delay: float = DOWNLOAD_RETRY_DELAY,
        sleep: SleepFunc = time.sleep
    ) -> Path:
        """
        Download with up to ``attempts`` tries, ``delay`` seconds apart.

        Raises:
            RetryExhaustedError: If every attempt fails
        """
        strategy = RetryStrategy(
            max_attempts=attempts,
            delay=delay,
            exceptions=(TransportError,),
            sleep=sleep,
            description=f"Downloading {asset}"
        )
        return strategy.execute(self.download, uuid, asset, destination, parallelism)

    def download(self, uuid: str, asset: str, destination: Path, parallelism: int = 1) -> Path:
        """
        One download attempt.

        Raises:
            DownloadError: Empty body, short chunk or size mismatch
            TransportError: Request failure
        """
        destination = Path(destination)
        if self._metrics is not None:
            self._metrics.increment_counter('download_attempts')

        response = self._gateway.open_asset(uuid, asset)
        try:
            session = negotiate_session(response, parallelism, self.chunk_size)
            if session.is_parallel:
                response.close()
                logger.info(
                    f"Downloading {asset} ({session.total_bytes} bytes) "
                    f"in {len(session.chunk_plan)} chunks with {parallelism} connections"
                )
                self._download_parallel(uuid, asset, destination, session, parallelism)
            else:
                self._download_sequential(response, asset, destination, session)
        except BaseException:
            response.close()
            self._discard(destination)
            raise
        response.close()

        self._verify_size(destination, session)
        logger.info(f"Downloaded {destination.stat().st_size} bytes to {destination}")
        return destination

    def _progress(self, session: DownloadSession, asset: str) -> tqdm:
        return tqdm(
            total=session.total_bytes,
            unit='B',
            unit_scale=True,
            desc=f'[{asset}]',
            disable=not self.show_progress or not session.total_bytes
        )

    def _download_sequential(
        self,
        response: IAssetStream,
        asset: str,
        destination: Path,
        session: DownloadSession
    ) -> None:
        written = 0
        with self._progress(session, asset) as bar, open(destination, 'wb') as out:
            for block in response.iter_content(chunk_size=STREAM_BLOCK_SIZE):
                if not block:
                    continue
                out.write(block)
                written += len(block)
                bar.update(len(block))

        if written == 0:
            raise DownloadError("Download returned 0 bytes")

    def _download_parallel(
        self,
        uuid: str,
        asset: str,
        destination: Path,
        session: DownloadSession,
        parallelism: int
    ) -> None:
        # Preallocate so every chunk can be written at its own offset
        with open(destination, 'wb') as out:
            out.truncate(session.total_bytes)

        with self._progress(session, asset) as bar:
            with ThreadPoolExecutor(max_workers=parallelism) as pool:
                futures = [
                    pool.submit(self._fetch_chunk, uuid, asset, destination, byte_range)
                    for byte_range in session.chunk_plan
                ]
                try:
                    for future in as_completed(futures):
                        bar.update(future.result())
                except BaseException:
                    for future in futures:
                        future.cancel()
                    raise

    def _fetch_chunk(self, uuid: str, asset: str, destination: Path, byte_range: ByteRange) -> int:
        """Fetch one range and write it at its offset. Returns bytes written."""
        response = self._gateway.open_asset(uuid, asset, byte_range)
        written = 0
        try:
            with open(destination, 'r+b') as out:
                out.seek(byte_range.start)
                for block in response.iter_content(chunk_size=STREAM_BLOCK_SIZE):
                    if not block:
                        continue
                    if written + len(block) > byte_range.length:
                        raise DownloadError(
                            f"Chunk {byte_range.header_value()} returned more data than requested"
                        )
                    out.write(block)
                    written += len(block)
        finally:
            response.close()

        if written != byte_range.length:
            raise DownloadError(
                f"Chunk {byte_range.header_value()} returned {written} of {byte_range.length} bytes"
            )
        return written

    @staticmethod
    def _verify_size(destination: Path, session: DownloadSession) -> None:
        size = destination.stat().st_size
        if session.total_bytes is not None and size != session.total_bytes:
            ResultRetriever._discard(destination)
            raise DownloadError(
                f"Downloaded {size} bytes, expected {session.total_bytes}"
            )

    @staticmethod
    def _discard(destination: Path) -> None:
        try:
            destination.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Cannot remove incomplete download {destination}: {e}")
