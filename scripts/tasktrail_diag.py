"""Tasktrail MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import asyncio
import json

from tasktrail_mcp.config import TasktrailSettings
from tasktrail_mcp.progress import ProgressReconciler
from tasktrail_mcp.project import resolve_project_paths
from tasktrail_mcp.storage import FileDocumentStore


def load_reconciler(settings: TasktrailSettings) -> ProgressReconciler:
    paths = resolve_project_paths(settings)
    return ProgressReconciler(FileDocumentStore(paths.root), paths)


def cmd_tasks(args: argparse.Namespace) -> None:
    reconciler = load_reconciler(TasktrailSettings())
    tasks = reconciler.load_tasks()
    if not tasks:
        print(f"No tasks found in {reconciler.paths.tasks_path}")
        raise SystemExit(1)
    if args.json:
        print(json.dumps([task.to_dict() for task in tasks], indent=2))
    else:
        for task in tasks:
            marker = "x" if task.is_completed else " "
            print(f"{'  ' * task.level}[{marker}] {task.id} {task.title}")


def cmd_status(args: argparse.Namespace) -> None:
    reconciler = load_reconciler(TasktrailSettings())
    snapshot = reconciler.load_snapshot()
    tasks = reconciler.load_tasks()
    payload = {
        "tasks_path": str(reconciler.paths.tasks_path),
        "progress_path": str(reconciler.paths.progress_path),
        "checklist": {
            "total_tasks": len(tasks),
            "completed_tasks": sum(1 for task in tasks if task.is_completed),
        },
        "snapshot": snapshot.to_payload() if snapshot is not None else None,
    }
    print(json.dumps(payload, indent=2))


def cmd_activity(args: argparse.Namespace) -> None:
    reconciler = load_reconciler(TasktrailSettings())
    snapshot = reconciler.load_snapshot()
    items = snapshot.recent_activity if snapshot is not None else []
    if args.limit is not None and args.limit > 0:
        items = items[: args.limit]
    payload = [item.model_dump(by_alias=True, mode="json") for item in items]
    print(json.dumps(payload, indent=2))


def cmd_recompute(args: argparse.Namespace) -> None:
    reconciler = load_reconciler(TasktrailSettings())
    snapshot = asyncio.run(reconciler.recompute_and_persist("manual"))
    if snapshot is None:
        print(f"Recompute failed; check {reconciler.paths.tasks_path}")
        raise SystemExit(1)
    print(
        f"{snapshot.completed_tasks}/{snapshot.total_tasks} tasks complete "
        f"({snapshot.percentage}%) -> {reconciler.paths.progress_path}"
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Tasktrail MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_tasks = sub.add_parser("tasks", help="List parsed checklist tasks")
    p_tasks.add_argument("--json", action="store_true", help="Output JSON")
    p_tasks.set_defaults(func=cmd_tasks)

    p_status = sub.add_parser("status", help="Show the persisted snapshot and live counts")
    p_status.set_defaults(func=cmd_status)

    p_activity = sub.add_parser("activity", help="List recent completion activity")
    p_activity.add_argument(
        "--limit",
        type=int,
        default=None,
        help="If provided, show only the latest N entries",
    )
    p_activity.set_defaults(func=cmd_activity)

    p_recompute = sub.add_parser("recompute", help="Recompute and persist the progress snapshot")
    p_recompute.set_defaults(func=cmd_recompute)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
