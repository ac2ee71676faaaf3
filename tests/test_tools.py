from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from pathlib import Path

import httpx
import pytest

from tasktrail_mcp.config import TasktrailSettings
from tasktrail_mcp.git import CommitLogReader, FakeGitRunner, GitExecutionResult
from tasktrail_mcp.inference import CompletionEngine, CompletionProposal, ReviewQueue
from tasktrail_mcp.progress import ProgressReconciler
from tasktrail_mcp.project import ProjectPaths
from tasktrail_mcp.storage import FileDocumentStore
from tasktrail_mcp.sync import SyncDispatcher
from tasktrail_mcp.tools import register_tools
from tasktrail_mcp.tracking import TrackingSession

CHECKLIST = "- [ ] 1 Build login form\n- [ ] 2 Handle auth errors\n"
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)


class StubTool:
    def __init__(self, fn, name):
        self.fn = fn
        self.name = name


class StubServer:
    def __init__(self) -> None:
        self._tools: dict[str, StubTool] = {}

    def tool(self, *args, **kwargs):
        provided_name = None
        if args and isinstance(args[0], str):
            provided_name = args[0]
        provided_name = kwargs.get("name", provided_name)

        def decorator(fn):
            tool_name = provided_name or fn.__name__
            tool = StubTool(fn, tool_name)
            self._tools[tool_name] = tool
            return tool

        return decorator


class Harness:
    def __init__(self, tmp_path: Path, checklist: str = CHECKLIST, responses=None) -> None:
        project_dir = tmp_path / ".ai-project"
        self.paths = ProjectPaths(
            root=tmp_path,
            project_dir=project_dir,
            tasks_path=project_dir / "tasks.md",
            progress_path=project_dir / "progress.json",
            config_path=project_dir / "config.json",
        )
        self.store = FileDocumentStore(tmp_path)
        self.store.write_text(self.paths.tasks_path, checklist)

        self.pushed: list[dict] = []

        def handler(request: httpx.Request) -> httpx.Response:
            self.pushed.append(json.loads(request.content))
            return httpx.Response(200)

        transport = httpx.MockTransport(handler)
        self.dispatcher = SyncDispatcher(
            "http://dashboard.test",
            "proj-1",
            client_factory=lambda: httpx.AsyncClient(transport=transport),
            clock=lambda: NOW,
        )
        self.reconciler = ProgressReconciler(self.store, self.paths, listeners=[self.dispatcher])
        self.review_queue = ReviewQueue()
        self.runner = FakeGitRunner(responses)
        self.sessions: list[TrackingSession] = []

        self.server = StubServer()
        self.handles = register_tools(
            self.server,
            settings=TasktrailSettings(TASKTRAIL_PROJECT_ROOT=str(tmp_path)),
            reconciler=self.reconciler,
            engine=self.engine(self.runner),
            review_queue=self.review_queue,
            dispatcher=self.dispatcher,
            session_factory=self.session,
        )

    def engine(self, runner: FakeGitRunner) -> CompletionEngine:
        return CompletionEngine(
            self.reconciler,
            CommitLogReader(runner, self.paths.root),
            self.review_queue,
            self.store,
        )

    def session(self) -> TrackingSession:
        session = TrackingSession(
            self.reconciler,
            self.engine(FakeGitRunner()),
            self.dispatcher,
            commit_poll_interval=3600,
            workspace_poll_interval=3600,
            sync_interval=3600,
            watch_files=False,
        )
        self.sessions.append(session)
        return session


def git_ok(stdout: str) -> GitExecutionResult:
    return GitExecutionResult(args=("git",), returncode=0, stdout=stdout, stderr="")


def test_register_tools_exposes_every_tool(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    assert set(harness.server._tools) == {
        "parse_tasks",
        "progress_status",
        "recompute_progress",
        "complete_task",
        "add_milestone",
        "analyze_commits",
        "analyze_file",
        "check_file_history",
        "list_proposals",
        "resolve_proposal",
        "sync_progress",
        "start_tracking",
        "stop_tracking",
    }
    assert harness.handles.tracking_state == {"session": None}


def test_parse_tasks_and_status(tmp_path: Path) -> None:
    harness = Harness(tmp_path, "- [x] 1 Build login form\n\t- [ ] 1.1 Add validation\n")

    parsed = harness.handles.parse_tasks.fn()  # type: ignore[attr-defined]
    status = harness.handles.progress_status.fn()  # type: ignore[attr-defined]

    assert parsed["count"] == 2
    assert parsed["tasks"][1]["parentId"] == "1"
    assert status["snapshot"] is None
    assert status["checklist"] == {"totalTasks": 2, "completedTasks": 1}
    assert status["tracking"] is None


def test_complete_task_updates_checklist_and_syncs(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    async def scenario():
        result = await harness.handles.complete_task.fn("2")  # type: ignore[attr-defined]
        await harness.dispatcher.drain()
        return result

    result = asyncio.run(scenario())

    assert result["applied"] is True
    assert result["progress"]["completedTasks"] == 1
    assert result["progress"]["percentage"] == 50
    assert "- [x] 2 Handle auth errors" in harness.store.read_text(harness.paths.tasks_path)
    assert harness.pushed
    assert harness.pushed[-1]["projectId"] == "proj-1"


def test_complete_task_rejects_unknown_id(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    with pytest.raises(ValueError, match="not found"):
        asyncio.run(harness.handles.complete_task.fn("9"))  # type: ignore[attr-defined]

    assert harness.store.read_text(harness.paths.tasks_path) == CHECKLIST


def test_add_milestone_validates_progress(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    added = asyncio.run(harness.handles.add_milestone.fn("Beta", "2024-06-01", 40))  # type: ignore[attr-defined]

    assert added["milestones"][0]["name"] == "Beta"
    with pytest.raises(ValueError):
        asyncio.run(harness.handles.add_milestone.fn("Broken", "2024-06-01", 150))  # type: ignore[attr-defined]


def test_analyze_commits_applies_direct_reference(tmp_path: Path) -> None:
    log = "\x1eabc123\x1ffixes #2 auth bug\x1f2024-05-10T10:00:00+00:00\nsrc/auth.ts\n"
    harness = Harness(tmp_path, responses=[git_ok(log)])

    result = asyncio.run(harness.handles.analyze_commits.fn(since="1 day ago", limit=5))  # type: ignore[attr-defined]

    assert result["outcomes"][0]["taskId"] == "2"
    assert result["outcomes"][0]["applied"] is True
    snapshot = harness.reconciler.load_snapshot()
    assert snapshot is not None and snapshot.completed_tasks == 1
    assert "--since=1 day ago" in harness.runner.invocations[0]


def test_recompute_progress_fails_without_checklist(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    harness.paths.tasks_path.unlink()

    with pytest.raises(RuntimeError):
        asyncio.run(harness.handles.recompute_progress.fn())  # type: ignore[attr-defined]


def test_proposals_can_be_listed_and_resolved(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    task = harness.reconciler.load_tasks()[0]

    async def scenario():
        decision = harness.review_queue.propose(CompletionProposal(task=task, source="file:src/login.ts", confidence=0.8))
        listed = harness.handles.list_proposals.fn()  # type: ignore[attr-defined]
        proposal_id = listed["proposals"][0]["proposalId"]
        resolved = harness.handles.resolve_proposal.fn(proposal_id, True)  # type: ignore[attr-defined]
        return listed, resolved, await decision

    listed, resolved, decision = asyncio.run(scenario())

    assert listed["proposals"][0]["taskId"] == "1"
    assert resolved["accepted"] is True
    assert decision.value == "accepted"
    with pytest.raises(ValueError):
        harness.handles.resolve_proposal.fn("missing", False)  # type: ignore[attr-defined]


def test_sync_progress_recomputes_missing_snapshot(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    result = asyncio.run(harness.handles.sync_progress.fn())  # type: ignore[attr-defined]

    assert result["ok"] is True
    assert result["endpoint"] == "http://dashboard.test/api/projects/proj-1/progress"
    assert harness.paths.progress_path.exists()
    assert harness.pushed[-1]["totalTasks"] == 2


def test_tracking_start_and_stop(tmp_path: Path) -> None:
    harness = Harness(tmp_path)
    task = harness.reconciler.load_tasks()[0]

    async def scenario():
        started = await harness.handles.start_tracking.fn()  # type: ignore[attr-defined]
        again = await harness.handles.start_tracking.fn()  # type: ignore[attr-defined]
        harness.review_queue.propose(CompletionProposal(task=task, source="git:abc", confidence=0.8))
        stopped = await harness.handles.stop_tracking.fn()  # type: ignore[attr-defined]
        return started, again, stopped

    started, again, stopped = asyncio.run(scenario())

    assert started["running"] is True
    assert again["running"] is True
    assert len(harness.sessions) == 1
    assert stopped["running"] is False
    assert stopped["dismissedProposals"] == 1
    assert harness.review_queue.pending() == []


def test_stop_tracking_without_session(tmp_path: Path) -> None:
    harness = Harness(tmp_path)

    assert asyncio.run(harness.handles.stop_tracking.fn()) == {"running": False}  # type: ignore[attr-defined]
