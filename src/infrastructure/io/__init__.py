"""IO utilities package."""

from infrastructure.io.downloader import ResultRetriever, plan_chunks
from infrastructure.io.uploader import UploadCoordinator, MAX_RETRIES

__all__ = ["ResultRetriever", "plan_chunks", "UploadCoordinator", "MAX_RETRIES"]
