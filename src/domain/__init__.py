"""Domain layer package."""

from .models import (
    Node,
    TaskStatus,
    TaskInfo,
    JobOption,
    JobOptions,
    UploadUnit,
    UploadOutcome,
    RemoteTask,
    ByteRange,
    DownloadSession,
    NodeInfo,
    NodeOption,
    PublicNode,
    AuthInfo,
)
from .exceptions import (
    DomainException,
    TransportError,
    DownloadError,
    UnauthorizedError,
    AuthRequiredError,
    ServiceRejectedError,
    RetryExhaustedError,
    UploadError,
    TaskFailedError,
    LocalEnvironmentError,
    ConfigurationError,
)
from .protocols import (
    IAssetStream,
    INodeGateway,
    ILocalStorage,
    IMetricsCollector,
)

__all__ = [
    # Models
    "Node",
    "TaskStatus",
    "TaskInfo",
    "JobOption",
    "JobOptions",
    "UploadUnit",
    "UploadOutcome",
    "RemoteTask",
    "ByteRange",
    "DownloadSession",
    "NodeInfo",
    "NodeOption",
    "PublicNode",
    "AuthInfo",
    # Exceptions
    "DomainException",
    "TransportError",
    "DownloadError",
    "UnauthorizedError",
    "AuthRequiredError",
    "ServiceRejectedError",
    "RetryExhaustedError",
    "UploadError",
    "TaskFailedError",
    "LocalEnvironmentError",
    "ConfigurationError",
    # Protocols
    "IAssetStream",
    "INodeGateway",
    "ILocalStorage",
    "IMetricsCollector",
]
