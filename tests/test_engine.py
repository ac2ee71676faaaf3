from __future__ import annotations

import asyncio
from pathlib import Path

from tasktrail_mcp.git import CommitLogReader, FakeGitRunner, GitExecutionResult, parse_commit_log
from tasktrail_mcp.inference import (
    CompletionEngine,
    Disposition,
    ReviewDecision,
    ReviewQueue,
)
from tasktrail_mcp.progress import ProgressReconciler
from tasktrail_mcp.project import ProjectPaths
from tasktrail_mcp.storage import FileDocumentStore

TEST_SOURCE = """
export function renderLogin() {
  return true;
}

describe('login', () => {
  expect(renderLogin()).toBe(true);
});
"""


class StubClock:
    def __init__(self) -> None:
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


class StubReview:
    def __init__(self) -> None:
        self.proposals = []
        self.futures: list[asyncio.Future] = []

    def propose(self, proposal):
        future = asyncio.get_running_loop().create_future()
        self.proposals.append(proposal)
        self.futures.append(future)
        return future


def git_ok(stdout: str) -> GitExecutionResult:
    return GitExecutionResult(args=("git",), returncode=0, stdout=stdout, stderr="")


def build(
    tmp_path: Path,
    checklist: str,
    *,
    responses: list[GitExecutionResult] | None = None,
    review=None,
) -> tuple[CompletionEngine, ProgressReconciler, FileDocumentStore, ProjectPaths, StubClock, FakeGitRunner]:
    project_dir = tmp_path / ".ai-project"
    paths = ProjectPaths(
        root=tmp_path,
        project_dir=project_dir,
        tasks_path=project_dir / "tasks.md",
        progress_path=project_dir / "progress.json",
        config_path=project_dir / "config.json",
    )
    store = FileDocumentStore(tmp_path)
    store.write_text(paths.tasks_path, checklist)
    reconciler = ProgressReconciler(store, paths)
    runner = FakeGitRunner(responses)
    clock = StubClock()
    engine = CompletionEngine(
        reconciler,
        CommitLogReader(runner, tmp_path),
        review if review is not None else StubReview(),
        store,
        monotonic=clock,
    )
    return engine, reconciler, store, paths, clock, runner


async def settle() -> None:
    for _ in range(20):
        await asyncio.sleep(0)


def write_source(tmp_path: Path, relative: str, content: str) -> Path:
    path = tmp_path / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return path


def test_created_test_file_auto_applies(tmp_path: Path) -> None:
    engine, _, store, paths, _, _ = build(tmp_path, "- [ ] 1 Build login form\n- [ ] 2 Write unit tests\n")
    path = write_source(tmp_path, "src/login.test.ts", TEST_SOURCE)

    outcomes = asyncio.run(engine.analyze_file_change(path, "create"))

    assert [(outcome.proposal.task.id, outcome.disposition) for outcome in outcomes] == [
        ("2", Disposition.AUTO_APPLY)
    ]
    assert outcomes[0].applied
    assert outcomes[0].proposal.source == "file:src/login.test.ts"
    assert "- [x] 2 Write unit tests" in store.read_text(paths.tasks_path)


def test_unmatched_path_is_ignored(tmp_path: Path) -> None:
    engine, _, _, _, _, _ = build(tmp_path, "- [ ] 1 Build login form\n")
    path = write_source(tmp_path, "src/login.ts", TEST_SOURCE)

    assert asyncio.run(engine.analyze_file_change(path, "create")) == []


def test_file_analysis_is_throttled_per_path(tmp_path: Path) -> None:
    engine, _, _, _, clock, _ = build(tmp_path, "- [ ] 1 Build API endpoint\n")
    api = write_source(tmp_path, "src/api.ts", "const x = 1;\n")
    other = write_source(tmp_path, "src/api_client.ts", "const y = 2;\n")

    async def scenario() -> list[int]:
        counts = [len(await engine.analyze_file_change(api, "modify"))]
        counts.append(len(await engine.analyze_file_change(api, "modify")))
        counts.append(len(await engine.analyze_file_change(other, "modify")))
        clock.now += 31
        counts.append(len(await engine.analyze_file_change(api, "modify")))
        return counts

    assert asyncio.run(scenario()) == [1, 0, 1, 1]


def test_low_confidence_is_discarded_without_side_effects(tmp_path: Path) -> None:
    review = StubReview()
    engine, _, store, paths, _, _ = build(tmp_path, "- [ ] 1 Build API endpoint\n", review=review)
    api = write_source(tmp_path, "src/api.ts", "const x = 1;\n")

    outcomes = asyncio.run(engine.analyze_file_change(api, "modify"))

    assert outcomes[0].disposition is Disposition.DISCARD
    assert not outcomes[0].applied
    assert review.proposals == []
    assert not paths.progress_path.exists()
    assert store.read_text(paths.tasks_path) == "- [ ] 1 Build API endpoint\n"


def test_review_proposal_applies_only_after_acceptance(tmp_path: Path) -> None:
    review = StubReview()
    engine, reconciler, store, paths, clock, _ = build(
        tmp_path, "- [ ] 1 Write unit tests\n", review=review
    )
    path = write_source(tmp_path, "tests/login.spec.ts", TEST_SOURCE)

    async def scenario():
        first = await engine.analyze_file_change(path, "modify")
        clock.now += 60
        second = await engine.analyze_file_change(path, "modify")
        untouched = store.read_text(paths.tasks_path)
        review.futures[0].set_result(ReviewDecision.ACCEPTED)
        await settle()
        return first, second, untouched

    first, second, untouched = asyncio.run(scenario())

    assert first[0].disposition is Disposition.REVIEW
    assert first[0].queued
    assert not second[0].queued
    assert len(review.proposals) == 1
    assert untouched == "- [ ] 1 Write unit tests\n"
    assert store.read_text(paths.tasks_path) == "- [x] 1 Write unit tests\n"
    snapshot = reconciler.load_snapshot()
    assert snapshot is not None
    assert snapshot.completed_tasks == 1
    assert engine.awaiting_review == set()


def test_dismissed_proposal_changes_nothing(tmp_path: Path) -> None:
    queue = ReviewQueue()
    engine, _, store, paths, _, _ = build(tmp_path, "- [ ] 1 Write unit tests\n", review=queue)
    path = write_source(tmp_path, "tests/login.spec.ts", TEST_SOURCE)

    async def scenario() -> None:
        await engine.analyze_file_change(path, "modify")
        pending = queue.pending()
        assert len(pending) == 1
        queue.resolve(pending[0].id, accepted=False)
        await settle()

    asyncio.run(scenario())

    assert store.read_text(paths.tasks_path) == "- [ ] 1 Write unit tests\n"
    assert engine.awaiting_review == set()


def test_close_cancels_unanswered_reviews(tmp_path: Path) -> None:
    review = StubReview()
    engine, _, _, _, _, _ = build(tmp_path, "- [ ] 1 Write unit tests\n", review=review)
    path = write_source(tmp_path, "tests/login.spec.ts", TEST_SOURCE)

    async def scenario() -> set[str]:
        await engine.analyze_file_change(path, "modify")
        waiting = engine.awaiting_review
        await engine.close()
        return waiting

    waiting = asyncio.run(scenario())

    assert waiting == {"1"}
    assert engine.awaiting_review == set()


def test_direct_commit_reference_auto_applies(tmp_path: Path) -> None:
    log = "\x1eabc123\x1ffixes #2 auth bug\x1f2024-05-10T10:00:00+00:00\nsrc/auth.ts\n"
    engine, _, store, paths, _, runner = build(
        tmp_path,
        "- [ ] 1 Build login form\n- [ ] 2 Handle auth errors\n",
        responses=[git_ok(log)],
    )

    outcomes = asyncio.run(engine.analyze_recent_commits())

    assert [(outcome.proposal.task.id, outcome.proposal.confidence) for outcome in outcomes] == [("2", 0.95)]
    assert outcomes[0].applied
    assert outcomes[0].proposal.source == "git:abc123"
    assert "- [x] 2 Handle auth errors" in store.read_text(paths.tasks_path)
    assert runner.invocations[0][0] == "log"
    assert "--since=7 days ago" in runner.invocations[0]


def test_completed_tasks_are_never_proposed(tmp_path: Path) -> None:
    log = "\x1eabc123\x1fcloses #2\x1f2024-05-10T10:00:00+00:00\n"
    engine, _, _, paths, _, _ = build(tmp_path, "- [x] 2 Handle auth errors\n", responses=[git_ok(log)])

    assert asyncio.run(engine.analyze_recent_commits()) == []
    assert not paths.progress_path.exists()


def test_commit_files_feed_related_tasks(tmp_path: Path) -> None:
    engine, reconciler, _, _, _, _ = build(tmp_path, "- [ ] 1 Payments service\n")

    commit = parse_commit_log(
        "\x1edef456\x1fadd payment handling\x1f2024-05-10T10:00:00+00:00\n"
        "src/payments/handler.test.py\n"
    )[0]
    tasks = reconciler.load_tasks()

    outcomes = asyncio.run(engine.analyze_commit(commit, tasks))

    assert len(outcomes) == 1
    assert outcomes[0].proposal.source == "git:def456:src/payments/handler.test.py"
    assert outcomes[0].disposition is Disposition.AUTO_APPLY


def test_unavailable_commit_log_skips_cycle(tmp_path: Path) -> None:
    failure = GitExecutionResult(args=("git",), returncode=128, stdout="", stderr="fatal: not a git repository")
    engine, _, _, _, _, _ = build(tmp_path, "- [ ] 1 Build login form\n", responses=[failure, failure, failure])

    async def scenario():
        return (
            await engine.analyze_recent_commits(),
            await engine.analyze_workspace(),
            await engine.history_indicates_completion("src/login.ts"),
        )

    assert asyncio.run(scenario()) == ([], None, False)


def test_significant_diff_triggers_recompute(tmp_path: Path) -> None:
    stat = " 3 files changed, 60 insertions(+), 2 deletions(-)\n"
    engine, _, _, paths, _, runner = build(tmp_path, "- [x] 1 Build login form\n", responses=[git_ok(stat)])

    result = asyncio.run(engine.analyze_workspace())

    assert result is not None and result.is_significant
    assert paths.progress_path.exists()
    assert runner.invocations == [("diff", "--shortstat", "HEAD~1", "HEAD")]


def test_small_diff_does_not_recompute(tmp_path: Path) -> None:
    engine, _, _, paths, _, _ = build(
        tmp_path, "- [x] 1 Build login form\n", responses=[git_ok(" 1 file changed, 5 insertions(+)\n")]
    )

    result = asyncio.run(engine.analyze_workspace())

    assert result is not None and not result.is_significant
    assert not paths.progress_path.exists()


def test_history_indicates_completion_reads_file_log(tmp_path: Path) -> None:
    engine, _, _, _, _, runner = build(
        tmp_path,
        "- [ ] 1 Build login form\n",
        responses=[git_ok("h1\x1fWIP\nh2\x1fLogin form done\n")],
    )

    assert asyncio.run(engine.history_indicates_completion("src/login.ts"))
    assert runner.invocations[0][-2:] == ("--", "src/login.ts")


def test_expired_throttle_entries_are_pruned(tmp_path: Path) -> None:
    engine, _, _, _, clock, _ = build(tmp_path, "- [ ] 1 Build API endpoint\n")
    paths = [write_source(tmp_path, f"src/api_{index}.ts", "const x = 1;\n") for index in range(3)]

    async def scenario() -> None:
        for path in paths:
            await engine.analyze_file_change(path, "modify")
        clock.now += 31
        await engine.analyze_file_change(paths[0], "modify")

    asyncio.run(scenario())

    assert list(engine._last_analysis) == [str(paths[0])]
