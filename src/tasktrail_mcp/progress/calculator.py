"""Aggregate progress computation and activity-log maintenance."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Sequence

from ..checklist import Task
from .models import ActivityItem, CompletedBy, ProgressData

ACTIVITY_LIMIT = 10
ACTIVITY_RETENTION = timedelta(days=7)


def completion_percentage(completed: int, total: int) -> int:
    """Return ``round(completed / total * 100)``, or 0 for an empty checklist."""

    if total <= 0:
        return 0
    # Half rounds up.
    return int(completed * 100 / total + 0.5)


def compute_progress(
    tasks: Sequence[Task],
    previous: ProgressData | None = None,
    *,
    now: datetime | None = None,
) -> ProgressData:
    """Derive a fresh snapshot from ``tasks``.

    When ``previous`` is given, every completed task that ``previous`` did not
    already count as completed becomes a new ``auto-detection`` entry placed
    first, once per id. Older entries are retained while their task is still
    completed or the entry is younger than the retention window, and the
    merged log is capped at ``ACTIVITY_LIMIT``.

    The snapshot records every completed id in ``completed_task_ids`` so a
    rerun over an unchanged checklist adds nothing, even for ids that no
    longer fit in the capped log.
    """

    now = now or datetime.now(timezone.utc)
    total = len(tasks)
    completed_ids: list[str] = []
    for task in tasks:
        if task.is_completed and task.id not in completed_ids:
            completed_ids.append(task.id)
    completed = sum(1 for task in tasks if task.is_completed)

    activity: list[ActivityItem] = []
    milestones = []

    if previous is not None:
        known_ids = {item.task_id for item in previous.recent_activity}
        if previous.completed_task_ids is not None:
            known_ids.update(previous.completed_task_ids)

        emitted: set[str] = set()
        for task in tasks:
            if not task.is_completed or task.id in known_ids or task.id in emitted:
                continue
            emitted.add(task.id)
            activity.append(
                ActivityItem(
                    task_id=task.id,
                    title=task.title,
                    completed_at=now,
                    completed_by="auto-detection",
                )
            )

        retained = [
            item
            for item in previous.recent_activity
            if item.task_id in completed_ids or now - item.completed_at < ACTIVITY_RETENTION
        ]
        activity.extend(retained)
        milestones = [milestone.model_copy() for milestone in previous.milestones]

    return ProgressData(
        total_tasks=total,
        completed_tasks=completed,
        percentage=completion_percentage(completed, total),
        last_updated=now,
        recent_activity=activity[:ACTIVITY_LIMIT],
        milestones=milestones,
        completed_task_ids=completed_ids,
    )


def record_activity(
    snapshot: ProgressData | None,
    task_id: str,
    title: str,
    completed_by: CompletedBy,
    *,
    now: datetime | None = None,
) -> ProgressData:
    """Return a copy of ``snapshot`` with a completion entry prepended.

    Any existing entry for ``task_id`` is evicted so each task appears at most
    once. Totals are carried over unchanged.
    """

    now = now or datetime.now(timezone.utc)
    base = snapshot or ProgressData.empty(now)
    entry = ActivityItem(task_id=task_id, title=title, completed_at=now, completed_by=completed_by)
    remaining = [item for item in base.recent_activity if item.task_id != task_id]
    update: dict[str, object] = {
        "last_updated": now,
        "recent_activity": [entry, *remaining][:ACTIVITY_LIMIT],
    }
    if base.completed_task_ids is not None and task_id not in base.completed_task_ids:
        update["completed_task_ids"] = [*base.completed_task_ids, task_id]
    return base.model_copy(
        update=update,
        deep=True,
    )


__all__ = [
    "ACTIVITY_LIMIT",
    "ACTIVITY_RETENTION",
    "completion_percentage",
    "compute_progress",
    "record_activity",
]
