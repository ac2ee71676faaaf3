"""Events consumed by the tracking session."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

from ..inference.heuristics import ChangeKind


@dataclass(slots=True, frozen=True)
class FileChanged:
    path: Path
    change_kind: ChangeKind = "modify"


@dataclass(slots=True, frozen=True)
class CommitPollDue:
    pass


@dataclass(slots=True, frozen=True)
class WorkspacePollDue:
    pass


@dataclass(slots=True, frozen=True)
class SyncDue:
    pass


TrackingEvent = Union[FileChanged, CommitPollDue, WorkspacePollDue, SyncDue]

__all__ = ["CommitPollDue", "FileChanged", "SyncDue", "TrackingEvent", "WorkspacePollDue"]
