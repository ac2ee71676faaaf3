"""Confidence scoring for file changes and commits against checklist tasks.

Every scorer here is a pure function returning a value clamped to ``[0, 1]``.
The disposition thresholds are shared by all call sites:

* ``confidence >= AUTO_APPLY_THRESHOLD``: apply without confirmation.
* ``REVIEW_THRESHOLD < confidence < AUTO_APPLY_THRESHOLD``: ask a person.
* ``confidence <= REVIEW_THRESHOLD``: discard.
"""

from __future__ import annotations

import enum
import posixpath
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Iterable, Literal, Sequence

from ..checklist import Task
from ..git import GitCommit

ChangeKind = Literal["create", "modify"]

AUTO_APPLY_THRESHOLD = 0.9
REVIEW_THRESHOLD = 0.7
DIRECT_REFERENCE_CONFIDENCE = 0.95
COMMIT_FILE_MIN_CONFIDENCE = 0.5
RELATED_FILE_BONUS = 0.2

COMPLETION_VERBS = ("complete", "finish", "implement", "add", "create", "build", "done")
HISTORY_COMPLETION_WORDS = re.compile(r"complete[ds]?|finish(es)?|implements?|done|ready|working", re.IGNORECASE)
TECH_KEYWORDS = ("react", "vue", "angular", "node", "express", "api", "component", "service")
SOURCE_EXTENSIONS = (".tsx", ".jsx", ".ts", ".js", ".py", ".java", ".cpp")

_TEST_MARKERS = re.compile(r"describe|it\s*\(|test\s*\(|expect\s*\(|assert", re.IGNORECASE)
_EXPORT_MARKERS = re.compile(
    r"export\s+(default\s+)?(async\s+)?function|export\s+(default\s+)?class|^(async\s+)?def\s+[a-z]\w*|^class\s+\w+",
    re.IGNORECASE | re.MULTILINE,
)
_DOC_MARKERS = re.compile(r"/\*\*|@param|@returns|@description|\"\"\"", re.IGNORECASE)

_TASK_REF = r"#?(\d+(?:\.\d+)*)"
_DIRECT_REFERENCE_PATTERNS = (
    re.compile(r"\bcomplete[ds]?\s+task\s+" + _TASK_REF, re.IGNORECASE),
    re.compile(r"\bfinish(?:es|ed)?\s+task\s+" + _TASK_REF, re.IGNORECASE),
    re.compile(r"\bimplement(?:s|ed)?\s+task\s+" + _TASK_REF, re.IGNORECASE),
    re.compile(r"\bclose[sd]?\s+#(\d+(?:\.\d+)*)", re.IGNORECASE),
    re.compile(r"\bfix(?:es|ed)?\s+#(\d+(?:\.\d+)*)", re.IGNORECASE),
    re.compile(r"\bresolve[sd]?\s+#(\d+(?:\.\d+)*)", re.IGNORECASE),
)


class Disposition(str, enum.Enum):
    AUTO_APPLY = "auto-apply"
    REVIEW = "review"
    DISCARD = "discard"


@dataclass(slots=True)
class CompletionProposal:
    """A suggestion that ``task`` was completed, with its evidence."""

    task: Task
    source: str
    confidence: float

    def to_dict(self) -> dict[str, object]:
        return {
            "taskId": self.task.id,
            "title": self.task.title,
            "source": self.source,
            "confidence": round(self.confidence, 4),
        }


def clamp(value: float) -> float:
    return max(0.0, min(value, 1.0))


def classify(confidence: float) -> Disposition:
    """Map a confidence score to what should happen with the proposal."""

    if confidence >= AUTO_APPLY_THRESHOLD:
        return Disposition.AUTO_APPLY
    if confidence > REVIEW_THRESHOLD:
        return Disposition.REVIEW
    return Disposition.DISCARD


def _base_name(file_path: str | PurePath) -> str:
    return posixpath.basename(str(file_path).replace("\\", "/")).lower()


def _stem(file_path: str | PurePath) -> str:
    name = _base_name(file_path)
    stem, dot, _ = name.rpartition(".")
    return stem if dot and stem else name


def score_file_change(task: Task, file_path: str | PurePath, change_kind: ChangeKind, content: str) -> float:
    """Score how likely a created or modified file completed ``task``."""

    confidence = 0.3 if change_kind == "create" else 0.1
    if _TEST_MARKERS.search(content):
        confidence += 0.4
    if _EXPORT_MARKERS.search(content):
        confidence += 0.3
    if _DOC_MARKERS.search(content):
        confidence += 0.2
    return clamp(confidence)


def find_relevant_tasks(tasks: Iterable[Task], keywords: Sequence[str], file_path: str | PurePath) -> list[Task]:
    """Tasks whose text mentions a category keyword or the file's base name."""

    stem = _stem(file_path)
    lowered = [keyword.lower() for keyword in keywords]
    relevant: list[Task] = []
    for task in tasks:
        text = task.search_text
        if any(keyword in text for keyword in lowered) or (stem and stem in text):
            relevant.append(task)
    return relevant


def find_direct_references(message: str) -> list[str]:
    """Task ids explicitly declared complete by a commit message, in order."""

    found: list[tuple[int, str]] = []
    for pattern in _DIRECT_REFERENCE_PATTERNS:
        for match in pattern.finditer(message):
            found.append((match.start(), match.group(1)))
    ordered: list[str] = []
    for _, task_id in sorted(found):
        if task_id not in ordered:
            ordered.append(task_id)
    return ordered


def _implicit_commit_score(task: Task, commit: GitCommit) -> float:
    message = commit.message.lower()
    confidence = 0.0
    if any(verb in message for verb in COMPLETION_VERBS):
        confidence += 0.3

    title_words = task.title.lower().split()
    if title_words:
        matching = [word for word in title_words if len(word) > 3 and word in message]
        confidence += (len(matching) / len(title_words)) * 0.5

    if len(commit.files) > 3:
        confidence += 0.2
    return clamp(confidence)


def score_commit(task: Task, commit: GitCommit) -> float:
    """Score a commit against a task.

    An explicit completion reference to ``task.id`` is fixed at
    ``DIRECT_REFERENCE_CONFIDENCE``; otherwise the message wording, title
    overlap and commit size are combined.
    """

    if task.id in find_direct_references(commit.message):
        return DIRECT_REFERENCE_CONFIDENCE
    return _implicit_commit_score(task, commit)


def find_tasks_from_commit_message(tasks: Iterable[Task], message: str) -> list[Task]:
    """Tasks the message mentions by id or by at least two significant title words."""

    lowered = message.lower()
    message_words = lowered.split()
    matches: list[Task] = []
    for task in tasks:
        if re.search(rf"(?<![\w.]){re.escape(task.id.lower())}(?![\w]|\.\d)", lowered):
            matches.append(task)
            continue
        task_words = [word for word in task.title.lower().split() if len(word) > 3]
        overlap = [
            word
            for word in task_words
            if any(word in msg or (len(msg) > 3 and msg in word) for msg in message_words)
        ]
        if len(overlap) >= 2:
            matches.append(task)
    return matches


def score_commit_file(file_path: str, commit: GitCommit) -> float:
    """Score a single file of a commit as evidence of finished work."""

    name = _base_name(file_path)
    extension = PurePath(name).suffix.lower()
    confidence = 0.0

    if "test" in name or "spec" in name:
        confidence += 0.4
    if extension in SOURCE_EXTENSIONS:
        confidence += 0.3
    if "config" in name or "setup" in name:
        confidence += 0.2
    if "readme" in name or "doc" in name:
        confidence += 0.2
    if len(commit.files) > 3:
        confidence += 0.1
    if any(verb in commit.message.lower() for verb in COMPLETION_VERBS):
        confidence += 0.2
    return clamp(confidence)


def find_tasks_related_to_file(tasks: Iterable[Task], file_path: str) -> list[Task]:
    """Tasks linked to a file by base name, directory segment or technology keyword."""

    normalized = str(file_path).replace("\\", "/").lower()
    stem = _stem(normalized)
    directory = posixpath.dirname(normalized)
    segments = [segment for segment in directory.split("/") if len(segment) > 2]

    related: list[Task] = []
    for task in tasks:
        text = task.search_text
        if stem and stem in text:
            related.append(task)
            continue
        if any(segment in text for segment in segments):
            related.append(task)
            continue
        if any(keyword in text and keyword in normalized for keyword in TECH_KEYWORDS):
            related.append(task)
    return related


def history_indicates_completion(messages: Iterable[str]) -> bool:
    """Whether any commit message reads like a completion note."""

    return any(HISTORY_COMPLETION_WORDS.search(message) for message in messages)


__all__ = [
    "AUTO_APPLY_THRESHOLD",
    "COMMIT_FILE_MIN_CONFIDENCE",
    "COMPLETION_VERBS",
    "ChangeKind",
    "CompletionProposal",
    "DIRECT_REFERENCE_CONFIDENCE",
    "Disposition",
    "RELATED_FILE_BONUS",
    "REVIEW_THRESHOLD",
    "TECH_KEYWORDS",
    "clamp",
    "classify",
    "find_direct_references",
    "find_relevant_tasks",
    "find_tasks_from_commit_message",
    "find_tasks_related_to_file",
    "history_indicates_completion",
    "score_commit",
    "score_commit_file",
    "score_file_change",
]
