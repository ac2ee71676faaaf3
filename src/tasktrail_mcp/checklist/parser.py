"""Checklist parsing and completion-marker updates."""

from __future__ import annotations

import re

from .models import Task

_TASK_LINE = re.compile(r"^\s*-\s*\[([xX ])\]")
_TASK_PREFIX = re.compile(r"^\s*-\s*\[[xX ]\]\s*")
_TASK_ID = re.compile(r"^(\d+(?:\.\d+)*)\.?\s+(.+)$")
_REQUIREMENTS = re.compile(r"_Requirements:\s*([^_]+)_")
_DETAIL = re.compile(r"^\s*-\s+(.+)$")
_MARKER_LINE = re.compile(r"^(\s*-\s*\[)([xX ])(\]\s*)(.*)$")


def _is_task_line(line: str) -> bool:
    return _TASK_LINE.match(line) is not None


def _leading_whitespace(line: str) -> int:
    return len(line) - len(line.lstrip())


def _split_id(text: str) -> tuple[str | None, str]:
    match = _TASK_ID.match(text)
    if match is None:
        return None, text
    return match.group(1), match.group(2)


def _collect_annotations(lines: list[str], start: int) -> tuple[list[str], list[str]]:
    requirements: list[str] = []
    details: list[str] = []
    for line in lines[start:]:
        if _is_task_line(line):
            break
        req_match = _REQUIREMENTS.search(line)
        if req_match:
            requirements.extend(part.strip() for part in req_match.group(1).split(",") if part.strip())
            continue
        detail_match = _DETAIL.match(line)
        if detail_match:
            details.append(detail_match.group(1).strip())
    return requirements, details


def parse_checklist(text: str) -> list[Task]:
    """Parse checklist text into an ordered list of tasks.

    Blank lines and headings are skipped. Lines whose bracket marker is not
    ``x``, ``X`` or a space are treated as prose. Never raises on malformed
    input.
    """

    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    tasks: list[Task] = []
    current_parent: str | None = None
    ordinal = 0

    for index, line in enumerate(lines):
        if not line.strip() or line.startswith("#"):
            continue

        match = _TASK_LINE.match(line)
        if match is None:
            continue

        ordinal += 1
        is_completed = match.group(1).lower() == "x"
        level = _leading_whitespace(line)
        remainder = _TASK_PREFIX.sub("", line, count=1).strip()
        explicit_id, title = _split_id(remainder)
        task_id = explicit_id if explicit_id is not None else f"task-{ordinal}"
        is_subtask = level > 0 or "." in task_id

        if is_subtask and level == 1:
            for previous in reversed(tasks):
                if not previous.is_subtask:
                    current_parent = previous.id
                    break
        elif not is_subtask:
            current_parent = None

        requirements, details = _collect_annotations(lines, index + 1)

        tasks.append(
            Task(
                id=task_id,
                title=title.strip(),
                level=level,
                is_completed=is_completed,
                is_subtask=is_subtask,
                parent_id=current_parent,
                requirements=requirements,
                details=details,
            )
        )

    return tasks


def mark_task_completed(text: str, task_id: str) -> tuple[str, bool]:
    """Flip the marker of the line numbered ``task_id`` to completed.

    Lines are matched by their leading dotted numeral only. Returns the new
    text and whether a matching line was found; a line that is already
    completed is left untouched.
    """

    found = False
    output: list[str] = []
    for raw_line in text.splitlines(keepends=True):
        body = raw_line.rstrip("\r\n")
        ending = raw_line[len(body):]
        match = _MARKER_LINE.match(body)
        if match is not None:
            numeral, _ = _split_id(match.group(4).strip())
            if numeral == task_id:
                found = True
                if match.group(2) == " ":
                    body = f"{match.group(1)}x{match.group(3)}{match.group(4)}"
        output.append(body + ending)
    return "".join(output), found


__all__ = ["mark_task_completed", "parse_checklist"]
