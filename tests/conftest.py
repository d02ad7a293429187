import sys
import os
import threading
from typing import Dict, List, Optional

import pytest

# Ensure src/ is on sys.path so the layer packages are importable
SRC = os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src'))
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from domain.models import Node, TaskInfo, TaskStatus  # noqa: E402
from domain.exceptions import TransportError  # noqa: E402


class FakeAssetResponse:
    """Minimal stand-in for a streaming requests.Response."""

    def __init__(self, body: bytes, headers: Optional[Dict[str, str]] = None, block: int = 1024 * 1024):
        self.body = body
        self.headers = headers or {}
        self.block = block
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        step = min(chunk_size, self.block)
        for i in range(0, len(self.body), step):
            yield self.body[i:i + step]

    def close(self):
        self.closed = True


class FakeGateway:
    """
    Scripted INodeGateway.

    ``upload_failures`` maps a file name to how many times its upload fails
    before succeeding. ``statuses`` is consumed one per get_status call (the
    last one repeats). ``output`` is the full task log.
    """

    def __init__(self, uuid: str = "task-1"):
        self.uuid = uuid
        self.lock = threading.Lock()
        self.upload_failures: Dict[str, int] = {}
        self.upload_calls: List[str] = []
        self.uploaded: List[str] = []
        self.init_calls = 0
        self.commit_calls = 0
        self.single_calls = 0
        self.cancel_calls = 0
        self.cancel_failures = 0
        self.statuses: List[TaskStatus] = [TaskStatus.COMPLETED]
        self.status_errors: List[int] = []
        self.output: List[str] = []
        self.output_step = 2
        self.output_errors: List[int] = []
        self.output_requests: List[int] = []
        self._status_calls = 0
        self._output_calls = 0

    def create_task_single(self, files, options_json, on_progress=None):
        self.single_calls += 1
        self.options_json = options_json
        return self.uuid

    def init_task(self, options_json):
        self.init_calls += 1
        self.options_json = options_json
        return self.uuid

    def upload_file(self, uuid, file_path):
        name = os.path.basename(str(file_path))
        with self.lock:
            self.upload_calls.append(name)
            remaining = self.upload_failures.get(name, 0)
            if remaining > 0:
                self.upload_failures[name] = remaining - 1
                raise TransportError(f"connection reset uploading {name}")
            self.uploaded.append(name)

    def commit_task(self, uuid):
        self.commit_calls += 1
        return uuid

    def get_status(self, uuid):
        call = self._status_calls
        self._status_calls += 1
        if call in self.status_errors:
            raise TransportError("status unavailable")
        index = min(call, len(self.statuses) - 1)
        return TaskInfo(status=self.statuses[index])

    def get_output(self, uuid, line=0):
        call = self._output_calls
        self._output_calls += 1
        self.output_requests.append(line)
        if call in self.output_errors:
            raise TransportError("output unavailable")
        return self.output[line:line + self.output_step]

    def cancel_task(self, uuid):
        self.cancel_calls += 1
        if self.cancel_calls <= self.cancel_failures:
            raise TransportError("cancel failed")


@pytest.fixture
def node():
    return Node(url="http://localhost:3000", token="secret")


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def image_files(tmp_path):
    """Three small image files."""
    files = []
    for name in ("a.jpg", "b.jpg", "c.jpg"):
        path = tmp_path / "images" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(name.encode() * 10)
        files.append(path)
    return files


@pytest.fixture
def make_response():
    """Factory for fake streaming responses."""
    return FakeAssetResponse
