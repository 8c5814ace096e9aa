"""
Recompute trigger for the success-pattern model.

decide() is a pure function of ledger counts, the last-run bookkeeping,
the current time and the policy. maybe_recompute_success_patterns()
wires it to storage: when decide() says run, the whole model is rebuilt
from the ledger and the bookkeeping is written with it.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from .context import CouncilContext
from .diagnostics import log_debug
from .models import RecomputeMeta, parse_instant, to_iso
from .outcome_ledger import count_rated, read_history
from .profile import read_profile_document, update_profile_document
from .success_patterns import DecayPolicy, recompute_patterns_from_history


@dataclass(frozen=True)
class RecomputePolicy:
    history_delta_threshold: int = 30
    rated_delta_threshold: int = 10
    min_interval_minutes: int = 15
    force_delta_without_interval: int = 90
    max_patterns: int = 50

    @classmethod
    def from_section(cls, section: Dict[str, Any]) -> "RecomputePolicy":
        history = int(section.get("history_delta_threshold", 30))
        force_delta = int(section.get("force_delta_without_interval", 0) or 0)
        if force_delta < history:
            force_delta = history * 3
        return cls(
            history_delta_threshold=history,
            rated_delta_threshold=int(section.get("rated_delta_threshold", 10)),
            min_interval_minutes=int(section.get("min_interval_minutes", 15)),
            force_delta_without_interval=force_delta,
            max_patterns=int(section.get("max_patterns", 50)),
        )


@dataclass(frozen=True)
class LedgerCounts:
    history_count: int
    rated_count: int


@dataclass(frozen=True)
class RecomputeDecision:
    run: bool
    reason: str
    delta_history: int = 0
    delta_rated: int = 0


@dataclass
class RecomputeResult:
    triggered: bool
    reason: str
    history_count: int = 0
    rated_count: int = 0
    delta_history: int = 0
    delta_rated: int = 0
    updated_pattern_count: int = 0
    run_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "triggered": self.triggered,
            "reason": self.reason,
            "historyCount": self.history_count,
            "ratedCount": self.rated_count,
            "deltaHistory": self.delta_history,
            "deltaRated": self.delta_rated,
            "updatedPatternCount": self.updated_pattern_count,
            "runAt": self.run_at,
        }


def decide(
    counts: LedgerCounts,
    meta: RecomputeMeta,
    now: datetime,
    force: bool = False,
    policy: Optional[RecomputePolicy] = None,
) -> RecomputeDecision:
    policy = policy or RecomputePolicy()
    delta_history = max(0, counts.history_count - meta.last_history_count)
    delta_rated = max(0, counts.rated_count - meta.last_rated_count)

    def _result(run: bool, reason: str) -> RecomputeDecision:
        return RecomputeDecision(run, reason, delta_history, delta_rated)

    if counts.history_count == 0:
        return _result(False, "empty-history")
    if force:
        return _result(True, "force")

    history_reset = (
        counts.history_count < meta.last_history_count
        or counts.rated_count < meta.last_rated_count
    )
    if delta_history >= policy.force_delta_without_interval:
        return _result(True, "history-force-threshold")
    if delta_rated >= policy.rated_delta_threshold * 3:
        return _result(True, "rating-force-threshold")

    last_run = parse_instant(meta.last_run_at)
    if last_run is not None and now - last_run < timedelta(minutes=policy.min_interval_minutes):
        return _result(False, "cooldown")
    if history_reset:
        return _result(True, "history-reset")
    if delta_history >= policy.history_delta_threshold:
        return _result(True, "history-threshold")
    if delta_rated >= policy.rated_delta_threshold:
        return _result(True, "rating-threshold")
    return _result(False, "threshold-not-met")


def load_recompute_meta(ctx: CouncilContext) -> RecomputeMeta:
    learning = read_profile_document(ctx).get("learningMeta")
    raw = learning.get("successPatternRecompute") if isinstance(learning, dict) else None
    return RecomputeMeta.from_dict(raw)


def maybe_recompute_success_patterns(
    ctx: CouncilContext,
    *,
    force: bool = False,
    policy: Optional[RecomputePolicy] = None,
) -> RecomputeResult:
    policy = policy or RecomputePolicy.from_section(ctx.section("recompute"))
    now = ctx.now()
    history = read_history(ctx)
    counts = LedgerCounts(history_count=len(history), rated_count=count_rated(history))
    decision = decide(counts, load_recompute_meta(ctx), now, force=force, policy=policy)
    result = RecomputeResult(
        triggered=False,
        reason=decision.reason,
        history_count=counts.history_count,
        rated_count=counts.rated_count,
        delta_history=decision.delta_history,
        delta_rated=decision.delta_rated,
    )
    if not decision.run:
        return result

    decay = replace(DecayPolicy.from_context(ctx), max_patterns=policy.max_patterns)
    patterns = recompute_patterns_from_history(history, decay)
    run_at = to_iso(now)
    meta = RecomputeMeta(
        last_run_at=run_at,
        last_history_count=counts.history_count,
        last_rated_count=counts.rated_count,
        last_reason=decision.reason,
    )

    def _mutate(document: Dict[str, Any]) -> None:
        document["successPatterns"] = [p.to_dict() for p in patterns]
        learning = document.get("learningMeta")
        if not isinstance(learning, dict):
            learning = {}
        learning["successPatternRecompute"] = meta.to_dict()
        document["learningMeta"] = learning

    if not update_profile_document(ctx, _mutate):
        log_debug("recompute", "profile busy; recompute deferred")
        result.reason = "lock-busy"
        return result

    result.triggered = True
    result.updated_pattern_count = len(patterns)
    result.run_at = run_at
    return result


def record_learning_event(store, result: RecomputeResult, session_id: Optional[str] = None) -> None:
    """Leave a warm-tier trace when a recompute actually ran."""
    if not result.triggered:
        return
    store.save_entry(
        "warm",
        "learning_event",
        f"Success patterns recomputed ({result.reason}): "
        f"{result.updated_pattern_count} patterns from {result.history_count} history rows",
        session_id=session_id,
        tags=["learning", "success-patterns", result.reason],
        metadata=result.to_dict(),
    )
