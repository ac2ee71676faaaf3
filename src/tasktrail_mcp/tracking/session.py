"""Automatic progress tracking driven by file events and interval timers."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable

from ..config import DEFAULT_WATCH_EXTENSIONS
from ..inference import CompletionEngine, ProposalOutcome
from ..progress import ProgressReconciler
from ..sync import SyncDispatcher
from .events import CommitPollDue, FileChanged, SyncDue, TrackingEvent, WorkspacePollDue
from .watcher import WorkspaceWatcher

logger = logging.getLogger(__name__)

_STOP = object()

WatcherFactory = Callable[..., WorkspaceWatcher]


def _resolved(path: Path) -> Path:
    try:
        return path.resolve()
    except OSError:
        return path


class TrackingSession:
    """Single consumer over a bounded queue of tracking events.

    Watcher callbacks and timers only enqueue; all analysis and every write
    happens on the consumer task, one event at a time.
    """

    def __init__(
        self,
        reconciler: ProgressReconciler,
        engine: CompletionEngine,
        dispatcher: SyncDispatcher | None = None,
        *,
        extensions: Iterable[str] = DEFAULT_WATCH_EXTENSIONS,
        commit_poll_interval: float = 300.0,
        workspace_poll_interval: float = 600.0,
        sync_interval: float = 300.0,
        queue_size: int = 256,
        watch_files: bool = True,
        watcher_factory: WatcherFactory = WorkspaceWatcher,
    ) -> None:
        self._reconciler = reconciler
        self._engine = engine
        self._dispatcher = dispatcher
        self._extensions = tuple(extensions)
        self._intervals = {
            CommitPollDue: commit_poll_interval,
            WorkspacePollDue: workspace_poll_interval,
            SyncDue: sync_interval,
        }
        self._queue_size = queue_size
        self._watch_files = watch_files
        self._watcher_factory = watcher_factory

        self._queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None
        self._timers: list[asyncio.Task] = []
        self._watcher: WorkspaceWatcher | None = None
        self._running = False
        self._handled: Counter[str] = Counter()
        self._dropped = 0
        self._started_at: datetime | None = None
        self._last_event_at: datetime | None = None
        self._last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def engine(self) -> CompletionEngine:
        return self._engine

    async def start(self) -> None:
        if self._running:
            return
        loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue(maxsize=self._queue_size)
        self._running = True
        self._started_at = datetime.now(timezone.utc)
        self._consumer = asyncio.create_task(self._consume(), name="tasktrail-consumer")

        if self._watch_files:
            watcher = self._watcher_factory(self._reconciler.paths.root, self._extensions, self.submit, loop)
            try:
                watcher.start()
            except OSError as exc:
                logger.warning("File watcher unavailable; continuing with timers only", extra={"error": str(exc)})
            else:
                self._watcher = watcher

        for event_type, interval in self._intervals.items():
            if event_type is SyncDue and self._dispatcher is None:
                continue
            self._timers.append(asyncio.create_task(self._tick(interval, event_type()), name=f"tasktrail-{event_type.__name__}"))

        self.submit(CommitPollDue())
        if self._dispatcher is not None:
            self.submit(SyncDue())
        logger.info("Tracking started", extra={"root": str(self._reconciler.paths.root)})

    def submit(self, event: TrackingEvent) -> bool:
        """Enqueue ``event``; returns ``False`` when stopped or the queue is full."""

        if not self._running or self._queue is None:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning("Tracking queue full; dropping event", extra={"event": type(event).__name__})
            return False
        return True

    async def _tick(self, interval: float, event: TrackingEvent) -> None:
        while True:
            await asyncio.sleep(interval)
            self.submit(event)

    async def _consume(self) -> None:
        assert self._queue is not None
        while True:
            event = await self._queue.get()
            if event is _STOP:
                return
            try:
                await self.handle(event)
            except Exception as exc:
                self._last_error = str(exc)
                logger.exception("Tracking event failed", extra={"event": type(event).__name__})

    async def handle(self, event: TrackingEvent) -> None:
        """Process a single event inline."""

        self._last_event_at = datetime.now(timezone.utc)
        self._handled[type(event).__name__] += 1

        if isinstance(event, FileChanged):
            await self._handle_file(event)
        elif isinstance(event, CommitPollDue):
            outcomes = await self._engine.analyze_recent_commits()
            await self._recompute_if_applied(outcomes)
        elif isinstance(event, WorkspacePollDue):
            await self._engine.analyze_workspace()
        elif isinstance(event, SyncDue):
            await self._heartbeat()

    async def _handle_file(self, event: FileChanged) -> None:
        path = _resolved(Path(event.path))
        paths = self._reconciler.paths
        if path == _resolved(paths.progress_path):
            return
        if path == _resolved(paths.tasks_path):
            await self._reconciler.recompute_and_persist("manual")
            return
        outcomes = await self._engine.analyze_file_change(path, event.change_kind)
        await self._recompute_if_applied(outcomes)

    async def _recompute_if_applied(self, outcomes: list[ProposalOutcome]) -> None:
        if any(outcome.applied for outcome in outcomes):
            await self._reconciler.recompute_and_persist("auto-detection")

    async def _heartbeat(self) -> None:
        if self._dispatcher is None:
            return
        snapshot = self._reconciler.load_snapshot()
        if snapshot is None:
            logger.debug("No snapshot to sync yet")
            return
        await self._dispatcher.push(snapshot)

    async def stop(self) -> None:
        """Cancel timers, detach the watcher, finish the in-flight event and its sync pushes."""

        if not self._running:
            return
        self._running = False

        # Pending events are dropped before the first await.
        if self._queue is not None:
            while not self._queue.empty():
                self._queue.get_nowait()
            self._queue.put_nowait(_STOP)

        for timer in self._timers:
            timer.cancel()
        await asyncio.gather(*self._timers, return_exceptions=True)
        self._timers.clear()

        if self._watcher is not None:
            await asyncio.to_thread(self._watcher.stop)
            self._watcher = None

        if self._consumer is not None:
            await self._consumer
            self._consumer = None

        await self._engine.close()
        if self._dispatcher is not None:
            await self._dispatcher.drain()
        logger.info("Tracking stopped", extra={"handled": dict(self._handled)})

    def status(self) -> dict[str, object]:
        return {
            "running": self._running,
            "watching": self._watcher is not None and self._watcher.is_running,
            "startedAt": self._started_at.isoformat() if self._started_at else None,
            "lastEventAt": self._last_event_at.isoformat() if self._last_event_at else None,
            "queued": self._queue.qsize() if self._queue is not None and self._running else 0,
            "handled": dict(self._handled),
            "dropped": self._dropped,
            "awaitingReview": sorted(self._engine.awaiting_review),
            "lastError": self._last_error,
        }


__all__ = ["TrackingSession"]
