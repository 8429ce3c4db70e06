"""Storage backends for workspace documents."""

from mockbase.runtime.store.base import StorageBackend, WorkspaceActivity
from mockbase.runtime.store.local import LocalStorageBackend

__all__ = ["LocalStorageBackend", "StorageBackend", "WorkspaceActivity"]
