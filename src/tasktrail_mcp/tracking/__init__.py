"""Event-driven tracking session."""

from .events import CommitPollDue, FileChanged, SyncDue, TrackingEvent, WorkspacePollDue
from .session import TrackingSession
from .watcher import WorkspaceWatcher, should_watch

__all__ = [
    "CommitPollDue",
    "FileChanged",
    "SyncDue",
    "TrackingEvent",
    "TrackingSession",
    "WorkspacePollDue",
    "WorkspaceWatcher",
    "should_watch",
]
