"""
Decayed success-rate model keyed by task context.

A pattern tracks how well a role combination did for a
(task, method, toolCombo, project, complexity) key. Each outcome first
decays the stored rate toward the neutral 0.5 by decay_base ** days since
the pattern was last used, then blends in the new signal:

    decayed = 0.5 + (old - 0.5) * decay_base ** days
    new     = decayed * (1 - weight) + score * weight

apply_outcome() is the single pure step. The incremental path and the
full recompute both go through it, so replaying the ledger reproduces
what incremental updates would have produced.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from .context import CouncilContext
from .models import (
    HistoryEntry,
    SuccessPattern,
    clamp01,
    clamp_rating,
    days_between,
    normalize_complexity,
    parse_instant,
    pattern_key,
    to_iso,
)
from .profile import read_profile_document, update_profile_document
from .task_context import infer_task_complexity, method_for, normalize_tool_combo

NEUTRAL_RATE = 0.5


@dataclass(frozen=True)
class DecayPolicy:
    decay_base: float = 0.985
    rating_weight: float = 0.45
    outcome_weight: float = 0.25
    success_score: float = 0.9
    failure_score: float = 0.2
    max_patterns: int = 50

    @classmethod
    def from_context(cls, ctx: CouncilContext) -> "DecayPolicy":
        section = ctx.section("success_patterns")
        defaults = cls()
        return cls(
            decay_base=section.get("decay_base", defaults.decay_base),
            rating_weight=section.get("rating_weight", defaults.rating_weight),
            outcome_weight=section.get("outcome_weight", defaults.outcome_weight),
            success_score=section.get("success_score", defaults.success_score),
            failure_score=section.get("failure_score", defaults.failure_score),
            max_patterns=ctx.section("recompute").get("max_patterns", defaults.max_patterns),
        )


@dataclass(frozen=True)
class Signal:
    score: float
    weight: float


@dataclass
class OutcomeEvent:
    """One learnable observation about a role combination."""
    task: str
    agents: List[str]
    timestamp: datetime
    tools: List[str] = field(default_factory=list)
    project: Optional[str] = None
    complexity: Optional[str] = None
    rating: Optional[int] = None
    success: Optional[bool] = None

    @property
    def method(self) -> str:
        return method_for(self.agents)

    @property
    def tool_combo(self) -> Optional[str]:
        return normalize_tool_combo(self.tools)

    @property
    def key(self) -> str:
        return pattern_key(self.task, self.method, self.tool_combo, self.project, self.complexity)


def to_signal(
    rating: Optional[Any] = None,
    success: Optional[bool] = None,
    policy: Optional[DecayPolicy] = None,
) -> Optional[Signal]:
    """Explicit ratings outrank success flags; neither means nothing to learn."""
    policy = policy or DecayPolicy()
    clamped = clamp_rating(rating)
    if clamped is not None:
        return Signal(score=clamped / 10.0, weight=policy.rating_weight)
    if success is True:
        return Signal(score=policy.success_score, weight=policy.outcome_weight)
    if success is False:
        return Signal(score=policy.failure_score, weight=policy.outcome_weight)
    return None


def decay_rate(rate: float, days: float, decay_base: float = 0.985) -> float:
    return NEUTRAL_RATE + (rate - NEUTRAL_RATE) * (decay_base ** max(0.0, days))


def blend(decayed: float, signal: Signal) -> float:
    return decayed * (1.0 - signal.weight) + signal.score * signal.weight


def round_rate(rate: float) -> float:
    return round(clamp01(rate), 3)


def rank_patterns(patterns: Iterable[SuccessPattern], max_patterns: int) -> List[SuccessPattern]:
    """Highest rate first, most recently used first among equals, top-N."""
    def _last_used(p: SuccessPattern) -> float:
        moment = parse_instant(p.last_used)
        return moment.timestamp() if moment else 0.0

    ordered = sorted(patterns, key=lambda p: (-p.success_rate, -_last_used(p)))
    return ordered[: max(0, max_patterns)]


def apply_outcome(
    patterns: List[SuccessPattern],
    event: OutcomeEvent,
    now: datetime,
    policy: Optional[DecayPolicy] = None,
) -> List[SuccessPattern]:
    """Pure single-event step. Returns a new ranked, capped list."""
    policy = policy or DecayPolicy()
    method = event.method
    signal = to_signal(event.rating, event.success, policy)
    if not event.task or not method or signal is None:
        return list(patterns)

    key = event.key
    updated: List[SuccessPattern] = []
    found = False
    for pattern in patterns:
        if pattern.key != key:
            updated.append(pattern)
            continue
        found = True
        days = days_between(parse_instant(pattern.last_used), now)
        decayed = decay_rate(pattern.success_rate, days, policy.decay_base)
        updated.append(SuccessPattern(
            task=pattern.task,
            method=pattern.method,
            success_rate=round_rate(blend(decayed, signal)),
            last_used=to_iso(now),
            sample_size=pattern.sample_size + 1,
            tool_combo=pattern.tool_combo,
            project=pattern.project,
            complexity=pattern.complexity,
        ))
    if not found:
        updated.append(SuccessPattern(
            task=event.task,
            method=method,
            success_rate=round_rate(signal.score),
            last_used=to_iso(now),
            sample_size=1,
            tool_combo=event.tool_combo,
            project=event.project,
            complexity=event.complexity,
        ))
    return rank_patterns(updated, policy.max_patterns)


def event_from_history(entry: HistoryEntry, default_task: str = "analysis") -> Optional[OutcomeEvent]:
    moment = parse_instant(entry.timestamp)
    if moment is None:
        return None
    complexity = normalize_complexity(entry.complexity) or infer_task_complexity(
        prompt="",
        result=entry.result,
        tools_used=entry.tools_used,
        execution_time=entry.execution_time or 0,
        model_calls=entry.model_calls or 0,
        intent=entry.intent,
    )
    return OutcomeEvent(
        task=entry.intent or default_task,
        agents=list(entry.agents),
        timestamp=moment,
        tools=list(entry.tools_used),
        project=entry.project,
        complexity=complexity,
        rating=entry.rating,
        success=entry.success,
    )


def recompute_patterns_from_history(
    entries: Iterable[HistoryEntry],
    policy: Optional[DecayPolicy] = None,
) -> List[SuccessPattern]:
    """Rebuild the model from the ledger, oldest row first. Pure."""
    policy = policy or DecayPolicy()
    events = [e for e in (event_from_history(row) for row in entries) if e is not None]
    events.sort(key=lambda e: e.timestamp)
    patterns: List[SuccessPattern] = []
    for event in events:
        patterns = apply_outcome(patterns, event, event.timestamp, policy)
    return patterns


# --------------- Persistence ---------------

def load_success_patterns(ctx: CouncilContext) -> List[SuccessPattern]:
    raw = read_profile_document(ctx).get("successPatterns")
    if not isinstance(raw, list):
        return []
    now = ctx.now()
    return [p for p in (SuccessPattern.from_dict(row, now) for row in raw) if p is not None]


def save_success_patterns(ctx: CouncilContext, patterns: List[SuccessPattern]) -> bool:
    payload = [p.to_dict() for p in patterns]

    def _mutate(document: Dict[str, Any]) -> None:
        document["successPatterns"] = payload

    return update_profile_document(ctx, _mutate)


def update_success_pattern(
    ctx: CouncilContext,
    event: OutcomeEvent,
    policy: Optional[DecayPolicy] = None,
) -> Optional[SuccessPattern]:
    """Incremental update for one outcome; returns the touched pattern."""
    policy = policy or DecayPolicy.from_context(ctx)
    if to_signal(event.rating, event.success, policy) is None or not event.task or not event.method:
        return None
    now = ctx.now()
    touched: Dict[str, Optional[SuccessPattern]] = {"pattern": None}

    def _mutate(document: Dict[str, Any]) -> None:
        raw = document.get("successPatterns")
        current = [
            p for p in (SuccessPattern.from_dict(row, now) for row in (raw if isinstance(raw, list) else []))
            if p is not None
        ]
        updated = apply_outcome(current, event, now, policy)
        document["successPatterns"] = [p.to_dict() for p in updated]
        touched["pattern"] = next((p for p in updated if p.key == event.key), None)

    update_profile_document(ctx, _mutate)
    return touched["pattern"]


def find_pattern(patterns: Iterable[SuccessPattern], event: OutcomeEvent) -> Optional[SuccessPattern]:
    key = event.key
    return next((p for p in patterns if p.key == key), None)
