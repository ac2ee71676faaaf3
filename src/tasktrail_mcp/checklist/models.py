"""Task records parsed from a checklist document."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Task:
    """One checklist line item.

    ``id`` is only meaningful within a single parse pass: it is either the
    dotted numeral written on the line or an ordinal fallback such as ``task-7``.
    """

    id: str
    title: str
    level: int
    is_completed: bool
    is_subtask: bool
    parent_id: str | None = None
    requirements: list[str] = field(default_factory=list)
    details: list[str] = field(default_factory=list)

    @property
    def search_text(self) -> str:
        """Lowercased title plus details, used for keyword matching."""

        return f"{self.title} {' '.join(self.details)}".lower()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "level": self.level,
            "isCompleted": self.is_completed,
            "isSubtask": self.is_subtask,
            "parentId": self.parent_id,
            "requirements": list(self.requirements),
            "details": list(self.details),
        }


__all__ = ["Task"]
