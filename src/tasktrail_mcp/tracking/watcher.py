"""Bridge watchdog filesystem notifications onto the asyncio event loop."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Iterable

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import FileChanged

logger = logging.getLogger(__name__)

IGNORED_DIRECTORIES = frozenset(
    {".git", ".hg", ".svn", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".next"}
)


def should_watch(path: Path, extensions: Iterable[str]) -> bool:
    """Whether ``path`` has a watched extension and sits outside vendored trees."""

    if path.suffix.lower() not in {extension.lower() for extension in extensions}:
        return False
    return not any(part in IGNORED_DIRECTORIES for part in path.parts)


class _ChangeHandler(FileSystemEventHandler):
    def __init__(self, watcher: "WorkspaceWatcher") -> None:
        self.watcher = watcher

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.dispatch(Path(str(event.src_path)), "modify")

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.dispatch(Path(str(event.src_path)), "create")


class WorkspaceWatcher:
    """Runs a watchdog observer and forwards matching changes to ``sink``.

    Observer callbacks arrive on a worker thread; ``sink`` is always invoked
    on ``loop`` through ``call_soon_threadsafe``.
    """

    def __init__(
        self,
        root: Path,
        extensions: Iterable[str],
        sink: Callable[[FileChanged], Any],
        loop: asyncio.AbstractEventLoop,
    ) -> None:
        self.root = Path(root)
        self.extensions = tuple(extensions)
        self._sink = sink
        self._loop = loop
        self._observer: Observer | None = None
        self._closed = False

    @property
    def is_running(self) -> bool:
        return self._observer is not None

    def dispatch(self, path: Path, change_kind: str) -> None:
        if self._closed or not should_watch(path, self.extensions):
            return
        event = FileChanged(path=path, change_kind=change_kind)
        try:
            self._loop.call_soon_threadsafe(self._sink, event)
        except RuntimeError:
            # Loop already closed while the observer thread was shutting down.
            logger.debug("Dropped file event after loop shutdown", extra={"path": str(path)})

    def start(self) -> None:
        if self._observer is not None:
            return
        self._closed = False
        observer = Observer()
        observer.schedule(_ChangeHandler(self), str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info("Started file watcher", extra={"root": str(self.root)})

    def stop(self, timeout: float = 2.0) -> None:
        self._closed = True
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join(timeout=timeout)
        self._observer = None
        logger.info("Stopped file watcher", extra={"root": str(self.root)})


__all__ = ["IGNORED_DIRECTORIES", "WorkspaceWatcher", "should_watch"]
