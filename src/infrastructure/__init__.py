"""Infrastructure layer package."""

from infrastructure.config import ConfigLoader, NodeRegistry, RunnerConfig
from infrastructure.io import ResultRetriever, UploadCoordinator
from infrastructure.nodeodm import NodeODMClient
from infrastructure.storage import LocalStorage

__all__ = [
    "ConfigLoader",
    "NodeRegistry",
    "RunnerConfig",
    "ResultRetriever",
    "UploadCoordinator",
    "NodeODMClient",
    "LocalStorage",
]
