"""FastMCP server bootstrap for Tasktrail."""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastmcp import Context, FastMCP

from . import __version__
from .config import TasktrailSettings, get_settings
from .git import CommitLogReader, GitNotFoundError, GitRunner
from .inference import CompletionEngine, PatternCategory, PatternLoader, PatternLoadError, ReviewQueue
from .inference.patterns import DEFAULT_CATEGORIES
from .progress import ProgressReconciler
from .project import load_project_id, resolve_project_paths
from .storage import DocumentStore, FileDocumentStore
from .sync import SyncDispatcher
from .tools import register_tools
from .tracking import TrackingSession


def configure_logging(level: str) -> None:
    """Configure root logging for the Tasktrail server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[TasktrailSettings] = None,
    git_runner: GitRunner | None = None,
    store: DocumentStore | None = None,
    dispatcher: SyncDispatcher | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with the tracking core wired in."""

    settings = settings or get_settings()
    log = logging.getLogger(__name__)

    paths = resolve_project_paths(settings)
    store = store or FileDocumentStore(paths.root)

    git_metadata = {"available": False, "path": settings.git_path, "error": None}
    if git_runner is None:
        try:
            git_runner = GitRunner(Path(settings.git_path) if settings.git_path else None, timeout=settings.git_timeout)
        except GitNotFoundError as exc:
            git_metadata["error"] = str(exc)
            git_runner = None
    git_metadata["available"] = git_runner is not None
    log_reader = CommitLogReader(git_runner, paths.root) if git_runner is not None else None

    pattern_error: str | None = None
    try:
        patterns: list[PatternCategory] = PatternLoader(settings.pattern_paths).load_all()
    except PatternLoadError as exc:
        log.warning("Pattern catalog invalid; using built-in categories", extra={"error": str(exc)})
        pattern_error = str(exc)
        patterns = list(DEFAULT_CATEGORIES)

    project_id = load_project_id(settings, paths, store)
    dispatcher = dispatcher or SyncDispatcher(settings.dashboard_url, project_id, timeout=settings.sync_timeout)

    reconciler = ProgressReconciler(store, paths, listeners=[dispatcher])
    review_queue = ReviewQueue()

    def _engine() -> CompletionEngine:
        return CompletionEngine(
            reconciler,
            log_reader,
            review_queue,
            store,
            patterns=patterns,
            throttle_seconds=settings.file_throttle_seconds,
        )

    def _session() -> TrackingSession:
        return TrackingSession(
            reconciler,
            _engine(),
            dispatcher,
            extensions=settings.watch_extensions,
            commit_poll_interval=settings.commit_poll_interval,
            workspace_poll_interval=settings.workspace_poll_interval,
            sync_interval=settings.sync_interval,
        )

    server = FastMCP(
        name="Tasktrail MCP",
        version=__version__,
        instructions=(
            "Tasktrail tracks a markdown task checklist, infers completed tasks from file "
            "changes and git commits, and mirrors progress to a dashboard. Use the tools "
            "to inspect progress, review proposals and control automatic tracking."
        ),
    )

    handles = register_tools(
        server,
        settings=settings,
        reconciler=reconciler,
        engine=_engine(),
        review_queue=review_queue,
        dispatcher=dispatcher,
        session_factory=_session,
    )

    @server.resource(
        "resource://tasktrail/status",
        name="tasktrail_status",
        title="Tasktrail MCP Status",
        description="Provides the current runtime status for the Tasktrail MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource(context: Context) -> str:
        """Return a JSON string summarizing basic runtime state."""

        snapshot = reconciler.load_snapshot()
        session = handles.tracking_state.get("session")
        last_sync = dispatcher.last_result

        payload = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "project": {
                "root": str(paths.root),
                "tasks_path": str(paths.tasks_path),
                "progress_path": str(paths.progress_path),
                "project_id": dispatcher.project_id,
            },
            "progress": snapshot.to_payload() if snapshot is not None else None,
            "git": git_metadata,
            "patterns": {
                "count": len(patterns),
                "names": [category.name for category in patterns],
                "error": pattern_error,
            },
            "sync": {
                "endpoint": dispatcher.endpoint,
                "last_result": last_sync.to_dict() if last_sync is not None else None,
                "inflight": dispatcher.inflight,
            },
            "tracking": session.status() if session is not None else {"running": False},
            "pending_proposals": len(review_queue.pending()),
            "request_id": getattr(context, "request_id", None),
        }
        return json.dumps(payload)

    setattr(server, "project_paths", paths)
    setattr(server, "reconciler", reconciler)
    setattr(server, "review_queue", review_queue)
    setattr(server, "dispatcher", dispatcher)
    setattr(server, "git_metadata", git_metadata)
    setattr(server, "patterns", patterns)
    setattr(server, "tool_handles", handles)
    return server


def main() -> None:
    """Entry point for running the Tasktrail MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Tasktrail MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "project_root": str(settings.project_root),
            "git_available": getattr(server, "git_metadata", {}).get("available"),
        },
    )
    server.run()


if __name__ == "__main__":
    main()
