"""Progress snapshot models, computation and reconciliation."""

from .calculator import (
    ACTIVITY_LIMIT,
    ACTIVITY_RETENTION,
    completion_percentage,
    compute_progress,
    record_activity,
)
from .models import ActivityItem, CompletedBy, Milestone, ProgressData
from .reconciler import ProgressListener, ProgressReconciler

__all__ = [
    "ACTIVITY_LIMIT",
    "ACTIVITY_RETENTION",
    "ActivityItem",
    "CompletedBy",
    "Milestone",
    "ProgressData",
    "ProgressListener",
    "ProgressReconciler",
    "completion_percentage",
    "compute_progress",
    "record_activity",
]
