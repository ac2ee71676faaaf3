"""Remote dashboard synchronization."""

from .dispatcher import SyncDispatcher, SyncResult

__all__ = ["SyncDispatcher", "SyncResult"]
