"""Persisted progress snapshot models."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

CompletedBy = Literal["manual", "auto-detection"]


def _ensure_aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _SnapshotModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ActivityItem(_SnapshotModel):
    """One completion event in the activity log."""

    task_id: str = Field(..., description="Identifier of the completed task.")
    title: str = Field(..., description="Task title at completion time.")
    completed_at: datetime = Field(..., description="When the completion was recorded.")
    completed_by: CompletedBy = Field(
        default="auto-detection",
        description="Whether the completion came from a person or the inference engine.",
    )

    @field_validator("completed_at")
    @classmethod
    def _normalize_completed_at(cls, value: datetime) -> datetime:
        return _ensure_aware(value)


class Milestone(_SnapshotModel):
    """User-defined milestone, never touched by completion inference."""

    name: str
    target_date: str
    progress: int = Field(default=0, ge=0, le=100)

    @field_validator("name")
    @classmethod
    def _normalize_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError("Milestone name must not be empty")
        return normalized


class ProgressData(_SnapshotModel):
    """Aggregate progress snapshot for one project."""

    total_tasks: int = Field(default=0, ge=0)
    completed_tasks: int = Field(default=0, ge=0)
    percentage: int = Field(default=0, ge=0, le=100)
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    recent_activity: list[ActivityItem] = Field(default_factory=list)
    milestones: list[Milestone] = Field(default_factory=list)
    completed_task_ids: list[str] | None = Field(
        default=None,
        description="Ids counted as completed when the snapshot was computed; None for older documents.",
    )

    @field_validator("last_updated")
    @classmethod
    def _normalize_last_updated(cls, value: datetime) -> datetime:
        return _ensure_aware(value)

    @field_validator("recent_activity", "milestones", mode="before")
    @classmethod
    def _ensure_list(cls, value):
        if value is None:
            return []
        return value

    @model_validator(mode="after")
    def _check_counts(self) -> "ProgressData":
        if self.completed_tasks > self.total_tasks:
            raise ValueError("completedTasks must not exceed totalTasks")
        return self

    @classmethod
    def empty(cls, now: datetime | None = None) -> "ProgressData":
        return cls(last_updated=now or datetime.now(timezone.utc))

    def to_payload(self) -> dict:
        """Return the camelCase JSON-compatible representation."""

        return self.model_dump(by_alias=True, mode="json")

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, indent=2)


__all__ = ["ActivityItem", "CompletedBy", "Milestone", "ProgressData"]
