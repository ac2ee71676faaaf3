"""Git CLI orchestration utilities."""

from .log import (
    CommitLogReader,
    CommitLogUnavailableError,
    CommitSummary,
    DiffStat,
    GitCommit,
    parse_commit_log,
    parse_shortstat,
)
from .runner import (
    FakeGitRunner,
    GitExecutionResult,
    GitNotFoundError,
    GitRunner,
    GitRunnerError,
    GitTimeoutError,
)

__all__ = [
    "CommitLogReader",
    "CommitLogUnavailableError",
    "CommitSummary",
    "DiffStat",
    "FakeGitRunner",
    "GitCommit",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitRunner",
    "GitRunnerError",
    "GitTimeoutError",
    "parse_commit_log",
    "parse_shortstat",
]
