"""Apply completions and recomputed snapshots to persisted progress state."""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol

from pydantic import ValidationError

from ..checklist import Task, mark_task_completed, parse_checklist
from ..project import ProjectPaths
from ..storage import DocumentNotFoundError, DocumentStore, DocumentStoreError
from .calculator import compute_progress, record_activity
from .models import CompletedBy, Milestone, ProgressData

logger = logging.getLogger(__name__)


class ProgressListener(Protocol):
    """Receives every snapshot that was successfully persisted."""

    async def progress_changed(self, snapshot: ProgressData, source: CompletedBy) -> None:
        ...


class ProgressReconciler:
    """Single writer for one project's checklist and progress snapshot.

    Every mutating operation runs under one ``asyncio.Lock`` so a manual
    recompute and an auto-detected completion never interleave their
    read-modify-write cycles. Public operations never raise: collaborator
    failures are logged and the cycle is skipped.
    """

    def __init__(
        self,
        store: DocumentStore,
        paths: ProjectPaths,
        *,
        listeners: Iterable[ProgressListener] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._paths = paths
        self._listeners: list[ProgressListener] = list(listeners or [])
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = asyncio.Lock()

    @property
    def paths(self) -> ProjectPaths:
        return self._paths

    def load_tasks(self) -> list[Task]:
        """Parse the current checklist, returning an empty list when it is unavailable."""

        try:
            return parse_checklist(self._store.read_text(self._paths.tasks_path))
        except DocumentNotFoundError:
            logger.debug("Checklist not found", extra={"path": str(self._paths.tasks_path)})
            return []
        except DocumentStoreError as exc:
            logger.warning("Checklist unreadable", extra={"path": str(self._paths.tasks_path), "error": str(exc)})
            return []

    def load_snapshot(self) -> ProgressData | None:
        """Read the persisted snapshot, or ``None`` when missing or corrupt."""

        try:
            raw = self._store.read_text(self._paths.progress_path)
        except DocumentNotFoundError:
            return None
        except DocumentStoreError as exc:
            logger.warning("Progress snapshot unreadable", extra={"error": str(exc)})
            return None

        try:
            return ProgressData.model_validate(json.loads(raw))
        except (json.JSONDecodeError, ValidationError) as exc:
            logger.warning(
                "Progress snapshot is malformed; treating as absent",
                extra={"path": str(self._paths.progress_path), "error": str(exc)},
            )
            return None

    def _persist(self, snapshot: ProgressData) -> bool:
        try:
            self._store.write_text(self._paths.progress_path, snapshot.to_json() + "\n")
        except DocumentStoreError as exc:
            logger.error(
                "Failed to persist progress snapshot",
                extra={"path": str(self._paths.progress_path), "error": str(exc)},
            )
            return False
        return True

    def _restore_checklist(self, text: str, task_id: str) -> None:
        try:
            self._store.write_text(self._paths.tasks_path, text)
        except DocumentStoreError as exc:
            logger.error(
                "Failed to restore checklist after snapshot write failure",
                extra={"task_id": task_id, "error": str(exc)},
            )
            return
        logger.warning("Checklist restored; completion discarded", extra={"task_id": task_id})

    async def _notify(self, snapshot: ProgressData, source: CompletedBy) -> None:
        for listener in list(self._listeners):
            try:
                await listener.progress_changed(snapshot, source)
            except Exception:
                logger.exception("Progress listener failed", extra={"listener": type(listener).__name__})

    async def apply_completion(self, task_id: str, title: str, completed_by: CompletedBy) -> bool:
        """Mark ``task_id`` completed in the checklist and log the activity.

        Totals are not recomputed here. Repeated calls for the same task leave
        the checklist unchanged and keep a single activity entry for it.
        Returns ``True`` when the updated snapshot was persisted.
        """

        async with self._lock:
            try:
                text = self._store.read_text(self._paths.tasks_path)
            except (DocumentNotFoundError, DocumentStoreError) as exc:
                logger.warning(
                    "Cannot apply completion; checklist unavailable",
                    extra={"task_id": task_id, "error": str(exc)},
                )
                return False

            updated, found = mark_task_completed(text, task_id)
            if not found:
                logger.warning("No checklist line carries task id", extra={"task_id": task_id})
                return False

            if updated != text:
                try:
                    self._store.write_text(self._paths.tasks_path, updated)
                except DocumentStoreError as exc:
                    logger.error(
                        "Failed to write checklist",
                        extra={"task_id": task_id, "error": str(exc)},
                    )
                    return False

            snapshot = record_activity(
                self.load_snapshot(),
                task_id,
                title,
                completed_by,
                now=self._clock(),
            )
            if not self._persist(snapshot):
                if updated != text:
                    self._restore_checklist(text, task_id)
                return False

            logger.info(
                "Task completion applied",
                extra={"task_id": task_id, "completed_by": completed_by, "checklist_changed": updated != text},
            )

        await self._notify(snapshot, completed_by)
        return True

    async def recompute_and_persist(self, source: CompletedBy = "manual") -> ProgressData | None:
        """Recompute the snapshot from the checklist and persist it."""

        async with self._lock:
            try:
                text = self._store.read_text(self._paths.tasks_path)
            except (DocumentNotFoundError, DocumentStoreError) as exc:
                logger.info("Skipping recompute; checklist unavailable", extra={"error": str(exc)})
                return None

            snapshot = compute_progress(
                parse_checklist(text),
                self.load_snapshot(),
                now=self._clock(),
            )
            if not self._persist(snapshot):
                return None

            logger.debug(
                "Progress recomputed",
                extra={
                    "total_tasks": snapshot.total_tasks,
                    "completed_tasks": snapshot.completed_tasks,
                    "percentage": snapshot.percentage,
                },
            )

        await self._notify(snapshot, source)
        return snapshot

    async def add_milestone(self, name: str, target_date: str, progress: int = 0) -> ProgressData | None:
        """Append a user-defined milestone to the persisted snapshot."""

        try:
            milestone = Milestone(name=name, target_date=target_date, progress=progress)
        except ValidationError as exc:
            logger.warning("Rejected milestone", extra={"error": str(exc)})
            return None

        async with self._lock:
            current = self.load_snapshot() or ProgressData.empty(self._clock())
            snapshot = current.model_copy(
                update={
                    "milestones": [*current.milestones, milestone],
                    "last_updated": self._clock(),
                },
                deep=True,
            )
            if not self._persist(snapshot):
                return None

        await self._notify(snapshot, "manual")
        return snapshot


__all__ = ["ProgressListener", "ProgressReconciler"]
