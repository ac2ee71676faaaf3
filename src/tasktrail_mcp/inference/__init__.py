"""Completion inference: pattern catalog, scoring heuristics and the engine."""

from .engine import DEFAULT_THROTTLE_SECONDS, CompletionEngine, ProposalOutcome
from .heuristics import (
    AUTO_APPLY_THRESHOLD,
    DIRECT_REFERENCE_CONFIDENCE,
    REVIEW_THRESHOLD,
    CompletionProposal,
    Disposition,
    classify,
    find_direct_references,
    find_relevant_tasks,
    find_tasks_from_commit_message,
    find_tasks_related_to_file,
    history_indicates_completion,
    score_commit,
    score_commit_file,
    score_file_change,
)
from .patterns import DEFAULT_CATEGORIES, PatternCategory, PatternLoader, PatternLoadError, load_patterns
from .review import PendingReview, ReviewDecision, ReviewQueue, ReviewSurface

__all__ = [
    "AUTO_APPLY_THRESHOLD",
    "CompletionEngine",
    "CompletionProposal",
    "DEFAULT_CATEGORIES",
    "DEFAULT_THROTTLE_SECONDS",
    "DIRECT_REFERENCE_CONFIDENCE",
    "Disposition",
    "PatternCategory",
    "PatternLoadError",
    "PatternLoader",
    "PendingReview",
    "ProposalOutcome",
    "REVIEW_THRESHOLD",
    "ReviewDecision",
    "ReviewQueue",
    "ReviewSurface",
    "classify",
    "find_direct_references",
    "find_relevant_tasks",
    "find_tasks_from_commit_message",
    "find_tasks_related_to_file",
    "history_indicates_completion",
    "load_patterns",
    "score_commit",
    "score_commit_file",
    "score_file_change",
]
