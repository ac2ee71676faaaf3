"""Tool registration for Tasktrail MCP."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Literal

from fastmcp import Context, FastMCP

from ..config import TasktrailSettings
from ..inference import CompletionEngine, ReviewQueue
from ..progress import ProgressData, ProgressReconciler
from ..sync import SyncDispatcher
from ..tracking import TrackingSession

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ToolHandles:
    parse_tasks: Any
    progress_status: Any
    recompute_progress: Any
    complete_task: Any
    add_milestone: Any
    analyze_commits: Any
    analyze_file: Any
    check_file_history: Any
    list_proposals: Any
    resolve_proposal: Any
    sync_progress: Any
    start_tracking: Any
    stop_tracking: Any
    tracking_state: dict[str, Any] = field(default_factory=dict)


def _summary(snapshot: ProgressData | None) -> dict[str, Any] | None:
    return snapshot.to_payload() if snapshot is not None else None


def register_tools(
    server: FastMCP,
    *,
    settings: TasktrailSettings,
    reconciler: ProgressReconciler,
    engine: CompletionEngine,
    review_queue: ReviewQueue,
    dispatcher: SyncDispatcher,
    session_factory: Callable[[], TrackingSession],
) -> ToolHandles:
    """Register Tasktrail's MCP tools on the server."""

    tracking_state: dict[str, Any] = {"session": None}

    def _active_engine() -> CompletionEngine:
        session: TrackingSession | None = tracking_state["session"]
        if session is not None and session.running:
            return session.engine
        return engine

    def _parse_tasks(context: Context | None = None) -> dict[str, Any]:
        """Parse the project checklist into structured tasks."""

        tasks = reconciler.load_tasks()
        _emit_log(context, "debug", "Parsed checklist", extra={"count": len(tasks)})
        return {
            "path": str(reconciler.paths.tasks_path),
            "count": len(tasks),
            "tasks": [task.to_dict() for task in tasks],
        }

    def _progress_status(context: Context | None = None) -> dict[str, Any]:
        """Return the persisted snapshot alongside live checklist counts."""

        tasks = reconciler.load_tasks()
        snapshot = reconciler.load_snapshot()
        completed = sum(1 for task in tasks if task.is_completed)
        _emit_log(
            context,
            "debug",
            "Reported progress status",
            extra={"total_tasks": len(tasks), "has_snapshot": snapshot is not None},
        )
        return {
            "snapshot": _summary(snapshot),
            "checklist": {"totalTasks": len(tasks), "completedTasks": completed},
            "tracking": tracking_state["session"].status() if tracking_state["session"] else None,
        }

    async def _recompute_progress(context: Context | None = None) -> dict[str, Any]:
        """Recompute the snapshot from the checklist and persist it."""

        snapshot = await reconciler.recompute_and_persist("manual")
        if snapshot is None:
            raise RuntimeError("Progress could not be recomputed; the checklist is unavailable or the write failed")
        _emit_log(
            context,
            "info",
            "Recomputed progress",
            extra={"percentage": snapshot.percentage, "completed_tasks": snapshot.completed_tasks},
        )
        return snapshot.to_payload()

    async def _complete_task(task_id: str, context: Context | None = None) -> dict[str, Any]:
        """Mark a checklist task as completed by hand."""

        tasks = {task.id: task for task in reconciler.load_tasks()}
        task = tasks.get(task_id)
        if task is None:
            raise ValueError(f"Task '{task_id}' not found in {reconciler.paths.tasks_path}")

        applied = await reconciler.apply_completion(task.id, task.title, "manual")
        snapshot = await reconciler.recompute_and_persist("manual") if applied else None
        _emit_log(context, "info", "Manual completion", extra={"task_id": task_id, "applied": applied})
        return {"taskId": task_id, "applied": applied, "progress": _summary(snapshot)}

    async def _add_milestone(
        name: str,
        target_date: str,
        progress: int = 0,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Append a milestone to the progress snapshot."""

        snapshot = await reconciler.add_milestone(name, target_date, progress)
        if snapshot is None:
            raise ValueError("Milestone rejected; check the name and a progress value between 0 and 100")
        _emit_log(context, "info", "Added milestone", extra={"milestone": name})
        return {"milestones": [item.model_dump(by_alias=True) for item in snapshot.milestones]}

    async def _analyze_commits(
        since: str = "7 days ago",
        limit: int = 20,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Score recent commits against open tasks and act on the results."""

        active = _active_engine()
        outcomes = await active.analyze_recent_commits(since=since, limit=limit)
        if any(outcome.applied for outcome in outcomes):
            await reconciler.recompute_and_persist("auto-detection")
        _emit_log(context, "info", "Analyzed commits", extra={"since": since, "outcomes": len(outcomes)})
        return {"outcomes": [outcome.to_dict() for outcome in outcomes]}

    async def _analyze_file(
        path: str,
        change_kind: Literal["create", "modify"] = "modify",
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Score one created or modified file against open tasks."""

        active = _active_engine()
        outcomes = await active.analyze_file_change(Path(path), change_kind)
        if any(outcome.applied for outcome in outcomes):
            await reconciler.recompute_and_persist("auto-detection")
        _emit_log(context, "debug", "Analyzed file", extra={"path": path, "outcomes": len(outcomes)})
        return {"path": path, "outcomes": [outcome.to_dict() for outcome in outcomes]}

    async def _check_file_history(path: str, context: Context | None = None) -> dict[str, Any]:
        """Report whether recent commits touching a file read like completion notes."""

        indicates = await _active_engine().history_indicates_completion(path)
        _emit_log(context, "debug", "Checked file history", extra={"path": path, "indicates": indicates})
        return {"path": path, "indicatesCompletion": indicates}

    def _list_proposals(context: Context | None = None) -> dict[str, Any]:
        """List completion proposals waiting for a decision."""

        pending = review_queue.pending()
        _emit_log(context, "debug", "Listed proposals", extra={"count": len(pending)})
        return {"proposals": [review.to_dict() for review in pending]}

    def _resolve_proposal(
        proposal_id: str,
        accept: bool,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Accept or dismiss a pending completion proposal."""

        try:
            review = review_queue.resolve(proposal_id, accept)
        except KeyError as exc:
            raise ValueError(f"Proposal '{proposal_id}' not found") from exc
        _emit_log(
            context,
            "info",
            "Resolved proposal",
            extra={"proposal_id": proposal_id, "task_id": review.proposal.task.id, "accepted": accept},
        )
        return {"proposalId": proposal_id, "taskId": review.proposal.task.id, "accepted": accept}

    async def _sync_progress(context: Context | None = None) -> dict[str, Any]:
        """Push the persisted snapshot to the dashboard now."""

        snapshot = reconciler.load_snapshot()
        if snapshot is None:
            snapshot = await reconciler.recompute_and_persist("manual")
        if snapshot is None:
            raise RuntimeError("No progress snapshot available to sync")
        result = await dispatcher.push(snapshot)
        _emit_log(
            context,
            "info" if result.ok else "warning",
            "Sync requested",
            extra={"ok": result.ok, "status_code": result.status_code},
        )
        return {"endpoint": dispatcher.endpoint, **result.to_dict()}

    async def _start_tracking(context: Context | None = None) -> dict[str, Any]:
        """Start watching files and polling commits for completed work."""

        session: TrackingSession | None = tracking_state["session"]
        if session is None or not session.running:
            session = session_factory()
            tracking_state["session"] = session
            await session.start()
            _emit_log(context, "info", "Tracking started", extra={"root": str(reconciler.paths.root)})
        return session.status()

    async def _stop_tracking(context: Context | None = None) -> dict[str, Any]:
        """Stop automatic tracking; pending proposals are dismissed."""

        session: TrackingSession | None = tracking_state["session"]
        if session is None:
            return {"running": False}
        await session.stop()
        dismissed = review_queue.dismiss_all()
        _emit_log(context, "info", "Tracking stopped", extra={"dismissed_proposals": dismissed})
        return {**session.status(), "dismissedProposals": dismissed}

    tool_parse = server.tool(
        name="parse_tasks",
        description="Parse the project's task checklist into ids, titles, nesting, requirements and details.",
    )(_parse_tasks)

    tool_status = server.tool(
        name="progress_status",
        description="Return the persisted progress snapshot, live checklist counts and tracking status.",
    )(_progress_status)

    tool_recompute = server.tool(
        name="recompute_progress",
        description="Recompute totals and recent activity from the checklist and persist the snapshot.",
    )(_recompute_progress)

    tool_complete = server.tool(
        name="complete_task",
        description="Mark a checklist task completed by its dotted id and record it as a manual completion.",
        annotations={
            "safety": {
                "level": "caution",
                "notes": "Rewrites the checklist document in place",
            }
        },
    )(_complete_task)

    tool_milestone = server.tool(
        name="add_milestone",
        description="Add a named milestone with a target date and progress percentage.",
    )(_add_milestone)

    tool_commits = server.tool(
        name="analyze_commits",
        description=(
            "Score recent git commits against open tasks. High-confidence matches are applied, "
            "mid-range matches are queued for review."
        ),
    )(_analyze_commits)

    tool_file = server.tool(
        name="analyze_file",
        description="Score a created or modified file against open tasks (repeat calls within the cooldown are ignored).",
    )(_analyze_file)

    tool_history = server.tool(
        name="check_file_history",
        description="Check whether the last commits touching a file describe finished work.",
    )(_check_file_history)

    tool_list_proposals = server.tool(
        name="list_proposals",
        description="List completion proposals waiting for confirmation.",
    )(_list_proposals)

    tool_resolve = server.tool(
        name="resolve_proposal",
        description="Accept or dismiss a pending completion proposal by id.",
    )(_resolve_proposal)

    tool_sync = server.tool(
        name="sync_progress",
        description="Push the current progress snapshot to the configured dashboard.",
    )(_sync_progress)

    tool_start = server.tool(
        name="start_tracking",
        description="Start automatic tracking: file watching, commit polling, workspace analysis and sync heartbeat.",
    )(_start_tracking)

    tool_stop = server.tool(
        name="stop_tracking",
        description="Stop automatic tracking and cancel its timers.",
    )(_stop_tracking)

    return ToolHandles(
        parse_tasks=tool_parse,
        progress_status=tool_status,
        recompute_progress=tool_recompute,
        complete_task=tool_complete,
        add_milestone=tool_milestone,
        analyze_commits=tool_commits,
        analyze_file=tool_file,
        check_file_history=tool_history,
        list_proposals=tool_list_proposals,
        resolve_proposal=tool_resolve,
        sync_progress=tool_sync,
        start_tracking=tool_start,
        stop_tracking=tool_stop,
        tracking_state=tracking_state,
    )


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the MCP context logger when one is attached, else the module logger."""

    payload = extra or {}

    if context is not None:
        ctx_logger = getattr(context, "logger", None)
        if ctx_logger is not None:
            log_method = getattr(ctx_logger, level, None)
            if callable(log_method):
                log_method(message, extra=payload)
                return

    fallback = getattr(logger, level, logger.info)
    fallback(message, extra=payload)


__all__ = ["ToolHandles", "register_tools"]
