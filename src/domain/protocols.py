"""Protocol definitions for dependency inversion."""

from typing import Callable, Protocol, List, Optional, Sequence
from pathlib import Path

from .models import AuthInfo, ByteRange, NodeInfo, NodeOption, TaskInfo


class IAssetStream(Protocol):
    """Streaming response body for a downloaded asset."""

    headers: dict

    def iter_content(self, chunk_size: int = 1): ...

    def close(self) -> None: ...


class INodeGateway(Protocol):
    """Interface to a remote processing node. Every call may fail transiently."""

    def create_task_single(
        self,
        files: Sequence[Path],
        options_json: str,
        on_progress: Optional[Callable[[int, int], None]] = None
    ) -> str:
        """
        Submit all files in one streamed request. Returns the task UUID.

        ``on_progress(sent, total)`` is called as body bytes go out.
        """
        ...

    def init_task(self, options_json: str) -> str:
        """Begin a chunked submission. Returns the provisional task UUID."""
        ...

    def upload_file(self, uuid: str, file_path: Path) -> None:
        """Upload one file against a provisional task."""
        ...

    def commit_task(self, uuid: str) -> str:
        """Finalize a chunked submission. Returns the task UUID."""
        ...

    def get_status(self, uuid: str) -> TaskInfo:
        """Query the task status."""
        ...

    def get_output(self, uuid: str, line: int = 0) -> List[str]:
        """Task console output starting at ``line``."""
        ...

    def cancel_task(self, uuid: str) -> None:
        """Request cancellation of a task."""
        ...

    def open_asset(
        self,
        uuid: str,
        asset: str,
        byte_range: Optional[ByteRange] = None
    ) -> IAssetStream:
        """Open a streaming download of a task asset."""
        ...

    def info(self) -> NodeInfo:
        """Node metadata."""
        ...

    def options(self) -> List[NodeOption]:
        """Processing options supported by the node."""
        ...

    def auth_info(self) -> AuthInfo:
        """How to obtain a token for this node."""
        ...

    def login(self, login_url: str, username: str, password: str) -> str:
        """Exchange credentials for a token."""
        ...


class ILocalStorage(Protocol):
    """Interface for the local filesystem operations a run needs."""

    def ensure_directory(self, path: Path) -> Path:
        """Create a directory (and parents) if missing."""
        ...

    def is_empty_directory(self, path: Path) -> bool:
        """True if ``path`` is an existing directory with no entries."""
        ...

    def remove_if_empty(self, path: Path) -> bool:
        """Remove ``path`` if it is an empty directory."""
        ...

    def extract_archive(self, archive: Path, destination: Path) -> List[Path]:
        """Extract a zip archive into ``destination``."""
        ...

    def remove_file(self, path: Path) -> None:
        """Delete a file."""
        ...


class IMetricsCollector(Protocol):
    """Interface for collecting metrics."""

    def start_timer(self, name: str) -> None:
        """Start a named timer."""
        ...

    def stop_timer(self, name: str) -> float:
        """Stop a named timer and return elapsed time."""
        ...

    def increment_counter(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        ...

    def get_summary(self) -> dict:
        """Get summary of all metrics."""
        ...
