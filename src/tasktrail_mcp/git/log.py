"""Read commit history from a git repository."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from .runner import GitExecutionResult, GitRunner, GitRunnerError

logger = logging.getLogger(__name__)

_RECORD_SEP = "\x1e"
_FIELD_SEP = "\x1f"
_SHORTSTAT = re.compile(
    r"(?:(?P<files>\d+) files? changed)?"
    r"(?:,?\s*(?P<insertions>\d+) insertions?\(\+\))?"
    r"(?:,?\s*(?P<deletions>\d+) deletions?\(-\))?"
)


class CommitLogUnavailableError(RuntimeError):
    """Raised when commit history cannot be read (no git, no repository, timeout)."""


@dataclass(slots=True)
class GitCommit:
    """A commit with the repository-relative paths it touched."""

    hash: str
    message: str
    date: datetime
    files: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "hash": self.hash,
            "message": self.message,
            "date": self.date.isoformat(),
            "files": list(self.files),
        }


@dataclass(slots=True)
class CommitSummary:
    hash: str
    message: str


@dataclass(slots=True)
class DiffStat:
    files_changed: int = 0
    insertions: int = 0
    deletions: int = 0

    @property
    def is_significant(self) -> bool:
        """Large enough that finished work is likely."""

        return self.insertions > 50 or (self.insertions > 20 and self.deletions > 10)


def _parse_date(raw: str) -> datetime:
    try:
        parsed = datetime.fromisoformat(raw.strip())
    except ValueError:
        return datetime.now(timezone.utc)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_commit_log(output: str) -> list[GitCommit]:
    """Parse ``git log --name-only`` output produced with record separators."""

    commits: list[GitCommit] = []
    for record in output.split(_RECORD_SEP):
        if not record.strip():
            continue
        header, _, body = record.partition("\n")
        parts = header.split(_FIELD_SEP)
        if len(parts) < 3:
            continue
        commit_hash, message, date_raw = parts[0].strip(), parts[1], parts[2]
        files = [line.strip() for line in body.splitlines() if line.strip()]
        commits.append(
            GitCommit(hash=commit_hash, message=message.strip(), date=_parse_date(date_raw), files=files)
        )
    return commits


def parse_shortstat(output: str) -> DiffStat:
    text = output.strip()
    if not text:
        return DiffStat()
    match = _SHORTSTAT.search(text)
    if match is None:
        return DiffStat()
    return DiffStat(
        files_changed=int(match.group("files") or 0),
        insertions=int(match.group("insertions") or 0),
        deletions=int(match.group("deletions") or 0),
    )


class CommitLogReader:
    """Commit-log collaborator backed by the git CLI."""

    def __init__(self, runner: GitRunner, repo_path: Path) -> None:
        self._runner = runner
        self._repo_path = Path(repo_path)

    @property
    def repo_path(self) -> Path:
        return self._repo_path

    async def _git(self, *args: str) -> GitExecutionResult:
        try:
            result = await self._runner.run(*args, cwd=self._repo_path)
        except (GitRunnerError, OSError) as exc:
            raise CommitLogUnavailableError(str(exc)) from exc
        if not result.ok:
            raise CommitLogUnavailableError(
                result.stderr.strip() or f"git {args[0]} failed with exit code {result.returncode}"
            )
        return result

    async def recent_commits(self, since: str = "7 days ago", limit: int = 20) -> list[GitCommit]:
        """Return commits newer than ``since``, newest first, at most ``limit``."""

        result = await self._git(
            "log",
            f"--since={since}",
            f"--max-count={limit}",
            "--name-only",
            f"--pretty=format:{_RECORD_SEP}%H{_FIELD_SEP}%s{_FIELD_SEP}%aI",
        )
        commits = parse_commit_log(result.stdout)[:limit]
        logger.debug("Read recent commits", extra={"count": len(commits), "since": since})
        return commits

    async def commits_touching(self, file_path: str | Path, limit: int = 5) -> list[CommitSummary]:
        """Return the latest commits that modified ``file_path``."""

        result = await self._git(
            "log",
            f"--max-count={limit}",
            "--follow",
            f"--pretty=format:%H{_FIELD_SEP}%s",
            "--",
            str(file_path),
        )
        summaries: list[CommitSummary] = []
        for line in result.stdout.splitlines():
            commit_hash, sep, message = line.partition(_FIELD_SEP)
            if not sep:
                continue
            summaries.append(CommitSummary(hash=commit_hash.strip(), message=message.strip()))
        return summaries

    async def diff_stat(self) -> DiffStat:
        """Summarize the most recent commit's insertions and deletions."""

        result = await self._git("diff", "--shortstat", "HEAD~1", "HEAD")
        return parse_shortstat(result.stdout)


__all__ = [
    "CommitLogReader",
    "CommitLogUnavailableError",
    "CommitSummary",
    "DiffStat",
    "GitCommit",
    "parse_commit_log",
    "parse_shortstat",
]
