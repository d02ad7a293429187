"""Domain models for processing-node tasks."""

import json
from dataclasses import dataclass, field, replace
from enum import IntEnum
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple
from urllib.parse import parse_qs, urlencode, urlparse


@dataclass(frozen=True)
class Node:
    """A processing node: base URL plus optional access token."""

    url: str
    token: str = ""

    def __post_init__(self):
        parsed = urlparse(self.url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ValueError(
                f"{self.url} is not a valid URL. "
                "A valid URL looks like: http://hostname:port/?token=optional"
            )

    @classmethod
    def from_url(cls, node_url: str) -> "Node":
        """Build a node from a URL that may carry ``?token=...``."""
        parsed = urlparse(node_url)
        token = parse_qs(parsed.query).get("token", [""])[0]
        return cls(url=f"{parsed.scheme}://{parsed.netloc}", token=token)

    def url_for(self, path: str) -> str:
        """Absolute URL for an API path, with the token appended when set."""
        url = self.url.rstrip("/") + "/" + path.lstrip("/")
        if self.token:
            url += "?" + urlencode({"token": self.token})
        return url

    def with_token(self, token: str) -> "Node":
        return replace(self, token=token)

    def __str__(self) -> str:
        return self.url


class TaskStatus(IntEnum):
    """Task status codes as reported by the node."""

    QUEUED = 10
    RUNNING = 20
    FAILED = 30
    COMPLETED = 40
    CANCELED = 50

    @property
    def is_terminal(self) -> bool:
        """No further transition happens from a terminal status."""
        return self in (TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELED)


@dataclass(frozen=True)
class TaskInfo:
    """Result of a status query."""

    status: TaskStatus
    processing_time: int = 0


@dataclass(frozen=True)
class JobOption:
    """A single processing parameter."""

    name: str
    value: Any

    def to_dict(self) -> dict:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class JobOptions:
    """Ordered, immutable set of processing parameters."""

    options: Tuple[JobOption, ...] = ()

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Any]]) -> "JobOptions":
        return cls(tuple(JobOption(name, value) for name, value in pairs))

    def to_json(self) -> str:
        """Serialize as the JSON list the node expects."""
        return json.dumps([o.to_dict() for o in self.options])

    def __len__(self) -> int:
        return len(self.options)

    def __iter__(self):
        return iter(self.options)


@dataclass(frozen=True)
class UploadUnit:
    """A file waiting in the upload queue."""

    filename: Path
    attempt: int = 0

    def retry(self) -> "UploadUnit":
        return UploadUnit(self.filename, self.attempt + 1)


@dataclass(frozen=True)
class UploadOutcome:
    """Result of one upload attempt, reported by a worker."""

    filename: Path
    attempt: int
    error: Optional[BaseException] = None

    @property
    def success(self) -> bool:
        return self.error is None


@dataclass
class RemoteTask:
    """Client-side view of the remote task. Mutated only by the monitor."""

    uuid: str
    status: TaskStatus = TaskStatus.QUEUED
    output_cursor: int = 0

    def advance(self, line_count: int) -> None:
        """Move the output cursor forward past consumed log lines."""
        if line_count < 0:
            raise ValueError("Output cursor cannot move backwards")
        self.output_cursor += line_count

    @property
    def is_finished(self) -> bool:
        return self.status.is_terminal


@dataclass(frozen=True)
class ByteRange:
    """Inclusive byte range, as in an HTTP ``Range`` header."""

    start: int
    end: int

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def header_value(self) -> str:
        return f"bytes={self.start}-{self.end}"


@dataclass
class DownloadSession:
    """What a download attempt learned from the node about an asset."""

    total_bytes: Optional[int] = None
    supports_ranges: bool = False
    chunk_plan: List[ByteRange] = field(default_factory=list)

    @property
    def is_parallel(self) -> bool:
        return bool(self.chunk_plan)


@dataclass(frozen=True)
class NodeInfo:
    """Node metadata from ``/info``."""

    version: str = ""
    max_images: Optional[int] = None


@dataclass(frozen=True)
class NodeOption:
    """A processing option the node accepts."""

    name: str
    type: str = ""
    value: str = ""
    domain: Any = None
    help: str = ""

    def domain_label(self) -> str:
        """Render the option's domain like ``<a,b,c>``."""
        if isinstance(self.domain, str):
            label = self.domain
        elif isinstance(self.domain, list):
            label = ",".join('""' if v == "" else str(v) for v in self.domain)
        elif self.domain is None:
            label = ""
        else:
            label = "?"
        return f"<{label}>" if label else ""


@dataclass(frozen=True)
class AuthInfo:
    """Node answer to ``/auth/info``: how to obtain a token."""

    message: str = ""
    login_url: str = ""
    register_url: str = ""


@dataclass(frozen=True)
class PublicNode:
    """An entry of the published list of public processing nodes."""

    url: str
    maintainer: str = ""
    company: str = ""
    website: str = ""

    def __str__(self) -> str:
        return self.url
