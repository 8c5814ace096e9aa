"""
Explicit user feedback: rating detection and the learning it triggers.

A rating found in a user message is attached to the newest completed
ledger row, stored as a warm ``feedback`` memory, fed to the success
pattern for that row's context, and may trigger a full recompute.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from .context import CouncilContext
from .memory_tiers import EventStore
from .models import HistoryEntry, SuccessPattern
from .outcome_ledger import apply_rating_to_latest_history
from .recompute import RecomputeResult, maybe_recompute_success_patterns, record_learning_event
from .success_patterns import event_from_history, find_pattern, load_success_patterns, update_success_pattern
from .task_context import collapse_text

FEEDBACK_LIMIT = 300

_RATING_PATTERNS = (
    re.compile(r"(?:评分|打分|\brate\b|\brating\b|\bscore\b)\s*[:：]?\s*(10|[1-9])(?!\d)", re.IGNORECASE),
    re.compile(r"(?<!\d)(10|[1-9])\s*/\s*10(?!\d)"),
    re.compile(r"(?<!\d)(10|[1-9])\s*分"),
)


def detect_rating(text: str) -> Optional[int]:
    """Return a 1-10 rating expressed in the message, if any."""
    if not text:
        return None
    for pattern in _RATING_PATTERNS:
        match = pattern.search(text)
        if match:
            return int(match.group(1))
    return None


@dataclass
class FeedbackResult:
    rating: Optional[int]
    reason: str
    history_entry: Optional[HistoryEntry] = None
    rate_before: Optional[float] = None
    pattern: Optional[SuccessPattern] = None
    recompute: Optional[RecomputeResult] = None
    degraded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rating": self.rating,
            "reason": self.reason,
            "linkedWorkItemId": self.history_entry.work_item_id if self.history_entry else None,
            "rateBefore": self.rate_before,
            "rateAfter": self.pattern.success_rate if self.pattern else None,
            "recompute": self.recompute.to_dict() if self.recompute else None,
            "degraded": self.degraded,
        }


def capture_feedback(
    ctx: CouncilContext,
    text: str,
    *,
    session_id: Optional[str] = None,
    store: Optional[EventStore] = None,
) -> FeedbackResult:
    rating = detect_rating(text)
    if rating is None:
        return FeedbackResult(rating=None, reason="no-rating")
    store = store or EventStore(ctx)
    feedback_text = collapse_text(text, FEEDBACK_LIMIT)

    entry = apply_rating_to_latest_history(ctx, rating, feedback_text, session_id=session_id)
    metadata: Dict[str, Any] = {"rating": rating}
    if entry is not None:
        metadata.update({
            "linkedWorkItemId": entry.work_item_id,
            "linkedIntent": entry.intent,
            "linkedAgents": list(entry.agents),
            "linkedProject": entry.project,
            "linkedComplexity": entry.complexity,
            "linkedToolsUsed": list(entry.tools_used),
        })
    store.save_entry(
        "warm",
        "feedback",
        feedback_text,
        session_id=session_id,
        intent=entry.intent if entry else None,
        agents=entry.agents if entry else [],
        rating=rating,
        tags=["feedback", f"rating:{rating}"],
        source="user",
        metadata={k: v for k, v in metadata.items() if v is not None},
    )
    if entry is None:
        return FeedbackResult(rating=rating, reason="no-completed-history")

    result = FeedbackResult(rating=rating, reason="applied", history_entry=entry)
    event = event_from_history(entry)
    if event is not None:
        event = replace(event, rating=rating, timestamp=ctx.now())
        before = find_pattern(load_success_patterns(ctx), event)
        result.rate_before = before.success_rate if before else None
        result.pattern = update_success_pattern(ctx, event)

    result.recompute = maybe_recompute_success_patterns(ctx)
    record_learning_event(store, result.recompute, session_id)
    return result
