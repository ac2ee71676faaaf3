"""Turn file changes and commits into completion proposals and act on them."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Sequence

from ..checklist import Task
from ..git import CommitLogReader, CommitLogUnavailableError, DiffStat, GitCommit
from ..progress import ProgressReconciler
from ..storage import DocumentNotFoundError, DocumentStore, DocumentStoreError
from .heuristics import (
    COMMIT_FILE_MIN_CONFIDENCE,
    DIRECT_REFERENCE_CONFIDENCE,
    RELATED_FILE_BONUS,
    ChangeKind,
    CompletionProposal,
    Disposition,
    classify,
    find_direct_references,
    find_relevant_tasks,
    find_tasks_from_commit_message,
    find_tasks_related_to_file,
    history_indicates_completion,
    score_commit,
    score_commit_file,
    score_file_change,
)
from .patterns import DEFAULT_CATEGORIES, PatternCategory
from .review import ReviewDecision, ReviewSurface

logger = logging.getLogger(__name__)

DEFAULT_THROTTLE_SECONDS = 30.0


@dataclass(slots=True)
class ProposalOutcome:
    """What happened to a single proposal."""

    proposal: CompletionProposal
    disposition: Disposition
    applied: bool = False
    queued: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            **self.proposal.to_dict(),
            "disposition": self.disposition.value,
            "applied": self.applied,
            "queued": self.queued,
        }


def _keep_best(proposals: dict[str, CompletionProposal], proposal: CompletionProposal) -> None:
    current = proposals.get(proposal.task.id)
    if current is None or proposal.confidence > current.confidence:
        proposals[proposal.task.id] = proposal


class CompletionEngine:
    """Scores evidence against open tasks and routes proposals by confidence.

    High-confidence proposals are applied through the reconciler, mid-range
    ones go to the review surface and are applied only once accepted, the
    rest are dropped. The engine never waits on a reviewer inline: each
    surfaced proposal gets a background waiter that :meth:`close` cancels.
    """

    def __init__(
        self,
        reconciler: ProgressReconciler,
        log_reader: CommitLogReader | None,
        review: ReviewSurface,
        store: DocumentStore,
        *,
        patterns: Sequence[PatternCategory] | None = None,
        throttle_seconds: float = DEFAULT_THROTTLE_SECONDS,
        monotonic: Callable[[], float] | None = None,
    ) -> None:
        self._reconciler = reconciler
        self._log_reader = log_reader
        self._review = review
        self._store = store
        self._patterns: list[PatternCategory] = list(patterns if patterns is not None else DEFAULT_CATEGORIES)
        self._throttle_seconds = throttle_seconds
        self._monotonic = monotonic or time.monotonic
        self._last_analysis: dict[str, float] = {}
        self._awaiting: set[str] = set()
        self._waiters: set[asyncio.Task] = set()

    @property
    def patterns(self) -> list[PatternCategory]:
        return list(self._patterns)

    @property
    def awaiting_review(self) -> set[str]:
        """Task ids with a proposal currently in front of a reviewer."""

        return set(self._awaiting)

    def _relative(self, path: Path) -> str:
        root = self._reconciler.paths.root
        try:
            return path.resolve().relative_to(root.resolve()).as_posix()
        except ValueError:
            return path.as_posix()

    def _throttled(self, key: str) -> bool:
        now = self._monotonic()
        expired = [path for path, seen in self._last_analysis.items() if now - seen >= self._throttle_seconds]
        for path in expired:
            del self._last_analysis[path]
        last = self._last_analysis.get(key)
        if last is not None and now - last < self._throttle_seconds:
            return True
        self._last_analysis[key] = now
        return False

    async def analyze_file_change(self, path: str | Path, change_kind: ChangeKind) -> list[ProposalOutcome]:
        """Score a created or modified file against the open tasks."""

        file_path = Path(path)
        if not file_path.is_absolute():
            file_path = self._reconciler.paths.root / file_path
        key = str(file_path)
        if self._throttled(key):
            logger.debug("File analysis throttled", extra={"path": key})
            return []

        relative = self._relative(file_path)
        categories = [category for category in self._patterns if category.matches(relative)]
        if not categories:
            return []

        tasks = [task for task in self._reconciler.load_tasks() if not task.is_completed]
        if not tasks:
            return []

        try:
            content = self._store.read_text(file_path)
        except (DocumentNotFoundError, DocumentStoreError) as exc:
            logger.debug("Changed file unreadable; scoring without content", extra={"path": key, "error": str(exc)})
            content = ""

        proposals: dict[str, CompletionProposal] = {}
        for category in categories:
            for task in find_relevant_tasks(tasks, category.keywords, relative):
                confidence = score_file_change(task, relative, change_kind, content)
                _keep_best(proposals, CompletionProposal(task=task, source=f"file:{relative}", confidence=confidence))

        return await self._dispose_all(proposals.values())

    async def analyze_commit(self, commit: GitCommit, tasks: Iterable[Task]) -> list[ProposalOutcome]:
        """Score one commit: direct references, message overlap, then its files."""

        open_tasks = [task for task in tasks if not task.is_completed]
        by_id = {task.id: task for task in open_tasks}
        proposals: dict[str, CompletionProposal] = {}

        for task_id in find_direct_references(commit.message):
            task = by_id.get(task_id)
            if task is not None:
                _keep_best(
                    proposals,
                    CompletionProposal(task=task, source=f"git:{commit.hash}", confidence=DIRECT_REFERENCE_CONFIDENCE),
                )

        for task in find_tasks_from_commit_message(open_tasks, commit.message):
            _keep_best(
                proposals,
                CompletionProposal(task=task, source=f"git:{commit.hash}", confidence=score_commit(task, commit)),
            )

        for file_path in commit.files:
            file_confidence = score_commit_file(file_path, commit)
            if file_confidence <= COMMIT_FILE_MIN_CONFIDENCE:
                continue
            combined = min(file_confidence + RELATED_FILE_BONUS, 1.0)
            for task in find_tasks_related_to_file(open_tasks, file_path):
                _keep_best(
                    proposals,
                    CompletionProposal(task=task, source=f"git:{commit.hash}:{file_path}", confidence=combined),
                )

        return await self._dispose_all(proposals.values())

    async def analyze_recent_commits(self, since: str = "7 days ago", limit: int = 20) -> list[ProposalOutcome]:
        """Analyze the recent commit window; an unavailable log skips the cycle."""

        if self._log_reader is None:
            return []
        try:
            commits = await self._log_reader.recent_commits(since=since, limit=limit)
        except CommitLogUnavailableError as exc:
            logger.info("Commit log unavailable; skipping commit analysis", extra={"error": str(exc)})
            return []

        outcomes: list[ProposalOutcome] = []
        for commit in commits:
            # Re-read so completions applied for earlier commits are not proposed again.
            tasks = self._reconciler.load_tasks()
            outcomes.extend(await self.analyze_commit(commit, tasks))
        logger.debug(
            "Commit analysis finished",
            extra={"commits": len(commits), "outcomes": len(outcomes)},
        )
        return outcomes

    async def analyze_workspace(self) -> DiffStat | None:
        """Recompute progress when the latest commit is large enough to matter."""

        if self._log_reader is None:
            return None
        try:
            stat = await self._log_reader.diff_stat()
        except CommitLogUnavailableError as exc:
            logger.info("Diff stat unavailable; skipping workspace analysis", extra={"error": str(exc)})
            return None

        if stat.is_significant:
            logger.info(
                "Significant change detected; recomputing progress",
                extra={"insertions": stat.insertions, "deletions": stat.deletions},
            )
            await self._reconciler.recompute_and_persist("auto-detection")
        return stat

    async def history_indicates_completion(self, path: str | Path, limit: int = 5) -> bool:
        """Whether recent commits touching ``path`` read like completion notes."""

        if self._log_reader is None:
            return False
        try:
            summaries = await self._log_reader.commits_touching(path, limit=limit)
        except CommitLogUnavailableError as exc:
            logger.debug("File history unavailable", extra={"path": str(path), "error": str(exc)})
            return False
        return history_indicates_completion(summary.message for summary in summaries)

    async def _dispose_all(self, proposals: Iterable[CompletionProposal]) -> list[ProposalOutcome]:
        return [await self._dispose(proposal) for proposal in proposals]

    async def _dispose(self, proposal: CompletionProposal) -> ProposalOutcome:
        disposition = classify(proposal.confidence)
        outcome = ProposalOutcome(proposal=proposal, disposition=disposition)
        task = proposal.task

        if disposition is Disposition.AUTO_APPLY:
            outcome.applied = await self._reconciler.apply_completion(task.id, task.title, "auto-detection")
            logger.info(
                "Auto-applied completion",
                extra={"task_id": task.id, "source": proposal.source, "applied": outcome.applied},
            )
        elif disposition is Disposition.REVIEW:
            if task.id in self._awaiting:
                return outcome
            self._awaiting.add(task.id)
            waiter = asyncio.create_task(self._await_review(proposal, self._review.propose(proposal)))
            self._waiters.add(waiter)
            waiter.add_done_callback(self._waiters.discard)
            outcome.queued = True
        return outcome

    async def _await_review(self, proposal: CompletionProposal, decision: Awaitable[ReviewDecision]) -> None:
        task = proposal.task
        try:
            result = await decision
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Review surface failed", extra={"task_id": task.id})
            return
        finally:
            self._awaiting.discard(task.id)

        if result is not ReviewDecision.ACCEPTED:
            logger.info("Completion proposal dismissed", extra={"task_id": task.id})
            return
        if await self._reconciler.apply_completion(task.id, task.title, "auto-detection"):
            await self._reconciler.recompute_and_persist("auto-detection")

    async def close(self) -> None:
        """Cancel every outstanding review waiter."""

        waiters = list(self._waiters)
        for waiter in waiters:
            waiter.cancel()
        if waiters:
            await asyncio.gather(*waiters, return_exceptions=True)
        self._waiters.clear()
        self._awaiting.clear()


__all__ = ["CompletionEngine", "DEFAULT_THROTTLE_SECONDS", "ProposalOutcome"]
