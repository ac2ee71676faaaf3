"""Project directory detection for tracked checklists."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from .config import TasktrailSettings
from .storage import DocumentNotFoundError, DocumentStore, DocumentStoreError

logger = logging.getLogger(__name__)

AI_PROJECT_DIR = ".ai-project"
KIRO_SPECS_DIR = Path(".kiro") / "specs" / "ai-project-manager"


@dataclass(slots=True, frozen=True)
class ProjectPaths:
    """Filesystem locations of the documents belonging to one tracked project."""

    root: Path
    project_dir: Path
    tasks_path: Path
    progress_path: Path
    config_path: Path


def detect_project_dir(root: Path) -> Path:
    """Return the directory holding the checklist for ``root``.

    A ``.kiro/specs/ai-project-manager`` directory wins over ``.ai-project``;
    when neither exists the ``.ai-project`` location is returned so a first
    write creates it.
    """

    kiro = root / KIRO_SPECS_DIR
    if kiro.is_dir():
        return kiro
    return root / AI_PROJECT_DIR


def resolve_project_paths(settings: TasktrailSettings) -> ProjectPaths:
    """Resolve checklist, snapshot and config paths, honoring explicit overrides."""

    root = Path(settings.project_root).expanduser().resolve()
    project_dir = detect_project_dir(root)

    def _pick(override: Path | None, default_name: str) -> Path:
        if override is None:
            return project_dir / default_name
        override = Path(override).expanduser()
        return override if override.is_absolute() else root / override

    return ProjectPaths(
        root=root,
        project_dir=project_dir,
        tasks_path=_pick(settings.tasks_path, "tasks.md"),
        progress_path=_pick(settings.progress_path, "progress.json"),
        config_path=_pick(settings.project_config_path, "config.json"),
    )


def load_project_id(
    settings: TasktrailSettings,
    paths: ProjectPaths,
    store: DocumentStore,
) -> str | None:
    """Return the remote project id from settings or the project's ``config.json``."""

    if settings.project_id:
        return settings.project_id

    try:
        document = json.loads(store.read_text(paths.config_path))
    except DocumentNotFoundError:
        return None
    except (DocumentStoreError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read project id", extra={"path": str(paths.config_path), "error": str(exc)})
        return None

    if not isinstance(document, dict):
        return None
    project_id = document.get("projectId")
    return str(project_id) if project_id else None


__all__ = [
    "AI_PROJECT_DIR",
    "KIRO_SPECS_DIR",
    "ProjectPaths",
    "detect_project_dir",
    "load_project_id",
    "resolve_project_paths",
]
