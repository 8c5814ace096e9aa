"""
Per-role scoring.

Candidates are the intent's baseline roles plus any role named by a
strong same-task success pattern, a rated memory entry, or the
similarity boost map. Every candidate accumulates:

- a flat bonus when the user prefers the role
- (rating - 5.5) per rated memory entry, scaled by context agreement
- (successRate - 0.5) * pattern_scale per success pattern, scaled by
  context agreement and a sample-size confidence factor
- its similarity boost
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .models import MemoryEntry, SuccessPattern
from .similarity import TaskProfile
from .task_context import normalize_tool_combo


@dataclass(frozen=True)
class ScoringWeights:
    preferred_bonus: float = 1.5
    pattern_scale: float = 6.0
    memory_intent_match: float = 1.4
    memory_intent_mismatch: float = 0.5
    feedback_multiplier: float = 1.5
    extra_candidate_min_score: float = 2.0
    memory_scan_limit: int = 50

    @classmethod
    def from_section(cls, section: Dict[str, Any]) -> "ScoringWeights":
        defaults = cls()
        return cls(**{k: section.get(k, getattr(defaults, k)) for k in defaults.__dataclass_fields__})


@dataclass
class AgentScores:
    scores: Dict[str, float]
    baseline: List[str]
    baseline_ranked: List[str]
    extras: List[str]
    candidates: List[str] = field(default_factory=list)

    @property
    def ranked(self) -> List[str]:
        return self.baseline_ranked + self.extras

    def score(self, role: str) -> float:
        return self.scores.get(role, 0.0)


def _agreement(left: Optional[str], right: Optional[str], match: float, mismatch: float) -> float:
    if not left or not right:
        return 1.0
    return match if left.lower() == right.lower() else mismatch


def _entry_project(entry: MemoryEntry) -> Optional[str]:
    return entry.meta_str("linkedProject", "project") or entry.tag_value("project")


def _entry_complexity(entry: MemoryEntry) -> Optional[str]:
    return entry.meta_str("linkedComplexity", "complexity") or entry.tag_value("complexity")


def _entry_tool_combo(entry: MemoryEntry) -> Optional[str]:
    for key in ("linkedToolsUsed", "toolsUsed"):
        tools = entry.metadata.get(key)
        if isinstance(tools, list):
            combo = normalize_tool_combo(t for t in tools if isinstance(t, str))
            if combo:
                return combo
    return None


def memory_entry_weight(entry: MemoryEntry, task: TaskProfile, weights: ScoringWeights) -> float:
    if entry.rating is None:
        return 0.0
    value = entry.rating - 5.5
    if entry.intent:
        value *= weights.memory_intent_match if entry.intent == task.intent else weights.memory_intent_mismatch
    if entry.type == "feedback":
        value *= weights.feedback_multiplier
    value *= _agreement(_entry_project(entry), task.project, 1.35, 0.7)
    value *= _agreement(_entry_complexity(entry), task.complexity, 1.25, 0.8)
    value *= _agreement(_entry_tool_combo(entry), normalize_tool_combo(task.tools), 1.2, 0.85)
    return value


def pattern_confidence(sample_size: int) -> float:
    return min(1.5, 0.5 + math.log10(max(1, sample_size)))


def pattern_weight(pattern: SuccessPattern, task: TaskProfile, weights: ScoringWeights) -> float:
    value = (pattern.success_rate - 0.5) * weights.pattern_scale
    value *= 1.5 if pattern.task == task.intent else 0.4
    if pattern.project and task.project:
        value *= 1.4 if pattern.project.lower() == task.project.lower() else 0.65
    elif pattern.project:
        value *= 0.9
    value *= _agreement(pattern.complexity, task.complexity, 1.25, 0.8)
    value *= _agreement(pattern.tool_combo, normalize_tool_combo(task.tools), 1.2, 0.85)
    return value * pattern_confidence(pattern.sample_size)


def score_agents(
    task: TaskProfile,
    baseline: Sequence[str],
    *,
    preferred: Iterable[str] = (),
    memories: Iterable[MemoryEntry] = (),
    patterns: Iterable[SuccessPattern] = (),
    similarity_boost: Optional[Dict[str, float]] = None,
    known_roles: Optional[Sequence[str]] = None,
    weights: Optional[ScoringWeights] = None,
) -> AgentScores:
    weights = weights or ScoringWeights()
    known = set(known_roles) if known_roles is not None else None
    boosts = dict(similarity_boost or {})
    memories = [m for m in memories if m.rating is not None and m.agents]
    patterns = list(patterns)

    def _admit(role: str) -> bool:
        return known is None or role in known

    candidates: List[str] = []

    def _add(role: str) -> None:
        if role and role not in candidates and _admit(role):
            candidates.append(role)

    for role in baseline:
        _add(role)
    for pattern in patterns:
        if pattern.task == task.intent:
            for role in pattern.agents:
                _add(role)
    for entry in memories:
        for role in entry.agents:
            _add(role)
    for role in boosts:
        _add(role)

    scores: Dict[str, float] = {role: 0.0 for role in candidates}
    for role in set(preferred):
        if role in scores:
            scores[role] += weights.preferred_bonus
    for entry in memories:
        value = memory_entry_weight(entry, task, weights)
        for role in entry.agents:
            if role in scores:
                scores[role] += value
    for pattern in patterns:
        value = pattern_weight(pattern, task, weights)
        for role in pattern.agents:
            if role in scores:
                scores[role] += value
    for role, boost in boosts.items():
        if role in scores:
            scores[role] += boost

    base = [r for r in dict.fromkeys(baseline) if r in scores]
    order = {role: index for index, role in enumerate(base)}
    baseline_ranked = sorted(base, key=lambda r: (-scores[r], order[r]))
    extras = sorted(
        (r for r in candidates if r not in order and scores[r] > weights.extra_candidate_min_score),
        key=lambda r: (-scores[r], r),
    )
    return AgentScores(
        scores=scores,
        baseline=base,
        baseline_ranked=baseline_ranked,
        extras=extras,
        candidates=candidates,
    )
