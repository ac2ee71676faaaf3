"""Human review of medium-confidence completion proposals."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Awaitable, Protocol
from uuid import uuid4

from .heuristics import CompletionProposal

logger = logging.getLogger(__name__)


class ReviewDecision(str, enum.Enum):
    ACCEPTED = "accepted"
    DISMISSED = "dismissed"


class ReviewSurface(Protocol):
    """Asks a person to confirm a proposal.

    The returned awaitable may never resolve; callers must not block on it.
    """

    def propose(self, proposal: CompletionProposal) -> Awaitable[ReviewDecision]:
        ...


@dataclass(slots=True)
class PendingReview:
    id: str
    proposal: CompletionProposal
    created_at: datetime
    future: asyncio.Future = field(repr=False)

    def to_dict(self) -> dict[str, object]:
        return {
            "proposalId": self.id,
            **self.proposal.to_dict(),
            "createdAt": self.created_at.isoformat(),
        }


class ReviewQueue:
    """In-process review surface answered through MCP tools."""

    def __init__(self) -> None:
        self._pending: dict[str, PendingReview] = {}

    def propose(self, proposal: CompletionProposal) -> Awaitable[ReviewDecision]:
        loop = asyncio.get_running_loop()
        review_id = uuid4().hex[:12]
        future: asyncio.Future = loop.create_future()
        self._pending[review_id] = PendingReview(
            id=review_id,
            proposal=proposal,
            created_at=datetime.now(timezone.utc),
            future=future,
        )
        logger.info(
            "Completion proposal awaiting review",
            extra={
                "proposal_id": review_id,
                "task_id": proposal.task.id,
                "source": proposal.source,
                "confidence": round(proposal.confidence, 3),
            },
        )
        return future

    def pending(self) -> list[PendingReview]:
        return [review for review in self._pending.values() if not review.future.done()]

    def resolve(self, review_id: str, accepted: bool) -> PendingReview:
        """Answer a pending proposal; raises ``KeyError`` for unknown ids."""

        review = self._pending.pop(review_id)
        if not review.future.done():
            review.future.set_result(ReviewDecision.ACCEPTED if accepted else ReviewDecision.DISMISSED)
        return review

    def dismiss_all(self) -> int:
        """Dismiss everything still pending, returning how many were open."""

        count = 0
        for review_id in list(self._pending):
            review = self._pending.pop(review_id)
            if not review.future.done():
                review.future.set_result(ReviewDecision.DISMISSED)
                count += 1
        return count


__all__ = ["PendingReview", "ReviewDecision", "ReviewQueue", "ReviewSurface"]
