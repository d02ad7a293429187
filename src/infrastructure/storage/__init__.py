"""Storage infrastructure."""

from infrastructure.storage.local_storage import LocalStorage

__all__ = ['LocalStorage']
