"""Async runner for the git CLI."""

from __future__ import annotations

import asyncio
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from .utils import sanitize_environment


class GitRunnerError(RuntimeError):
    """Base class for git runner errors."""


class GitNotFoundError(GitRunnerError):
    """Raised when the git executable cannot be located."""


class GitTimeoutError(GitRunnerError):
    """Raised when a git invocation exceeds its timeout."""


@dataclass(slots=True)
class GitExecutionResult:
    """Holds the outcome of a git invocation."""

    args: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class GitRunner:
    """Execute git commands asynchronously in a repository."""

    def __init__(self, executable: Path | None = None, *, timeout: float = 15.0) -> None:
        self._executable_path = self._resolve_executable(executable)
        self._timeout = timeout

    @staticmethod
    def _resolve_executable(explicit: Path | None) -> Path:
        if explicit is not None:
            candidate = Path(explicit)
            if candidate.exists() and candidate.is_file():
                return candidate
            raise GitNotFoundError(f"git executable not found at {candidate}")

        binary = shutil.which("git")
        if binary is None:
            raise GitNotFoundError("git executable not found on PATH")
        return Path(binary)

    @property
    def executable(self) -> Path:
        return self._executable_path

    async def run(self, *args: str, cwd: Path | None = None) -> GitExecutionResult:
        return await self._invoke(*args, cwd=cwd)

    async def _invoke(self, *args: str, cwd: Path | None = None) -> GitExecutionResult:
        cmd = [str(self._executable_path), *args]
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd is not None else None,
            env=sanitize_environment({"GIT_TERMINAL_PROMPT": "0", "LC_ALL": "C"}),
        )
        try:
            stdout_bytes, stderr_bytes = await asyncio.wait_for(process.communicate(), self._timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise GitTimeoutError(f"git {' '.join(args)} timed out after {self._timeout}s") from exc
        stdout = stdout_bytes.decode("utf-8", errors="replace")
        stderr = stderr_bytes.decode("utf-8", errors="replace")
        return GitExecutionResult(args=tuple(cmd), returncode=process.returncode, stdout=stdout, stderr=stderr)


class FakeGitRunner(GitRunner):
    """Test double that replays canned git responses."""

    def __init__(self, responses: Iterable[GitExecutionResult] | None = None) -> None:  # type: ignore[override]
        self._responses = list(responses or [])
        self._invocations: list[tuple[str, ...]] = []
        self._executable_path = Path("/tmp/fake-git")
        self._timeout = 1.0

    async def _invoke(self, *args: str, cwd: Path | None = None) -> GitExecutionResult:  # type: ignore[override]
        self._invocations.append(tuple(args))
        if self._responses:
            return self._responses.pop(0)
        return GitExecutionResult(args=tuple(args), returncode=0, stdout="", stderr="")

    @property
    def invocations(self) -> list[tuple[str, ...]]:
        return self._invocations


__all__ = [
    "FakeGitRunner",
    "GitExecutionResult",
    "GitNotFoundError",
    "GitRunner",
    "GitRunnerError",
    "GitTimeoutError",
]
