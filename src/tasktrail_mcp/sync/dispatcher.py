"""Best-effort push of progress snapshots to the remote dashboard."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

import httpx

from ..progress import CompletedBy, ProgressData

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SyncResult:
    ok: bool
    status_code: int | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {"ok": self.ok, "statusCode": self.status_code, "error": self.error}


class SyncDispatcher:
    """Posts snapshots to ``{base_url}/api/projects/{project_id}/progress``.

    :meth:`push` never raises. It doubles as a progress listener so every
    persisted reconciliation is mirrored remotely; listener pushes run as
    background tasks and never hold up the writer that persisted them.
    """

    def __init__(
        self,
        base_url: str,
        project_id: str | None,
        *,
        timeout: float = 10.0,
        client_factory: Callable[[], httpx.AsyncClient] | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._project_id = project_id
        self._timeout = timeout
        self._client_factory = client_factory or (lambda: httpx.AsyncClient(timeout=self._timeout))
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.last_result: SyncResult | None = None
        self._inflight: set[asyncio.Task] = set()

    @property
    def project_id(self) -> str | None:
        return self._project_id

    @project_id.setter
    def project_id(self, value: str | None) -> None:
        self._project_id = value or None

    @property
    def endpoint(self) -> str | None:
        if not self._project_id:
            return None
        return f"{self._base_url}/api/projects/{self._project_id}/progress"

    def build_payload(self, snapshot: ProgressData, source: CompletedBy) -> dict[str, object]:
        payload = snapshot.to_payload()
        payload.pop("completedTaskIds", None)
        payload.update(
            {
                "source": source,
                "timestamp": self._clock().isoformat(),
                "projectId": self._project_id,
            }
        )
        return payload

    async def push(self, snapshot: ProgressData, *, source: CompletedBy | None = None) -> SyncResult:
        """Send ``snapshot``; failures are logged and reported, never raised."""

        endpoint = self.endpoint
        if endpoint is None:
            logger.debug("No project id configured; skipping sync")
            self.last_result = SyncResult(ok=False, error="project id not configured")
            return self.last_result

        if source is None:
            source = snapshot.recent_activity[0].completed_by if snapshot.recent_activity else "manual"

        try:
            async with self._client_factory() as client:
                response = await client.post(endpoint, json=self.build_payload(snapshot, source))
        except httpx.HTTPError as exc:
            logger.warning("Progress sync failed", extra={"endpoint": endpoint, "error": str(exc)})
            self.last_result = SyncResult(ok=False, error=str(exc))
            return self.last_result

        if response.is_success:
            logger.debug("Progress synced", extra={"endpoint": endpoint, "status_code": response.status_code})
            self.last_result = SyncResult(ok=True, status_code=response.status_code)
        else:
            logger.warning(
                "Dashboard rejected progress sync",
                extra={"endpoint": endpoint, "status_code": response.status_code},
            )
            self.last_result = SyncResult(
                ok=False,
                status_code=response.status_code,
                error=response.reason_phrase or f"HTTP {response.status_code}",
            )
        return self.last_result

    @property
    def inflight(self) -> int:
        return len(self._inflight)

    async def progress_changed(self, snapshot: ProgressData, source: CompletedBy) -> None:
        task = asyncio.create_task(self.push(snapshot, source=source), name="tasktrail-sync")
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def drain(self) -> None:
        """Wait for background pushes; each is bounded by the client timeout."""

        while self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)


__all__ = ["SyncDispatcher", "SyncResult"]
