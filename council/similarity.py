"""
Context-similarity scorer.

Scores past ledger rows against the current task and turns the similar
ones into per-role influence. Each row gets five sub-scores in [0, 1]
(intent, project, complexity, tools, text), a weighted similarity, an
outcome signal from its rating or status, and a recency weight with a
half-life. Rows under the noise floor or without a usable outcome are
dropped; the rest credit their roles with

    clamp(similarity * outcome * recency * scale, -clamp, clamp) / sqrt(roles)
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set

from .models import COMPLEXITY_LEVELS, HistoryEntry, parse_instant
from .task_context import tool_set

_TOKEN_RE = re.compile(r"[a-z0-9一-鿿_-]{2,}")


@dataclass(frozen=True)
class SimilarityWeights:
    intent_weight: float = 0.35
    project_weight: float = 0.20
    complexity_weight: float = 0.15
    tool_weight: float = 0.15
    text_weight: float = 0.15
    cross_intent_damping: float = 0.55
    noise_floor: float = 0.22
    contribution_scale: float = 4.5
    contribution_clamp: float = 4.0
    contribution_cut: float = 0.15
    half_life_days: float = 45.0
    max_top_cases: int = 3

    @classmethod
    def from_section(cls, section: Dict[str, Any]) -> "SimilarityWeights":
        defaults = cls()
        return cls(**{k: section.get(k, getattr(defaults, k)) for k in defaults.__dataclass_fields__})


@dataclass
class TaskProfile:
    """What we know about the task being staffed."""
    intent: str
    complexity: Optional[str] = None
    project: Optional[str] = None
    tools: List[str] = field(default_factory=list)
    prompt: str = ""


@dataclass
class SimilarityCase:
    row: HistoryEntry
    agents: List[str]
    similarity: float
    outcome: float
    recency: float
    contribution: float

    def describe(self) -> str:
        moment = parse_instant(self.row.timestamp)
        day = moment.strftime("%Y-%m-%d") if moment else "unknown-date"
        tools = ",".join(tool_set(self.row.tools_used)) or "none"
        return (
            f"{day} | sim={self.similarity:.2f} | influence={self.contribution:+.2f} | "
            f"agents={' + '.join(self.agents)} "
            f"(intent={self.row.intent or 'n/a'}, project={self.row.project or 'n/a'}, "
            f"complexity={self.row.complexity or 'n/a'}, tools={tools})"
        )


@dataclass
class SimilaritySignal:
    agent_score_boost: Dict[str, float] = field(default_factory=dict)
    top_cases: List[str] = field(default_factory=list)
    cases: List[SimilarityCase] = field(default_factory=list)


# --------------- Sub-scores ---------------

def intent_similarity(current: str, row_intent: Optional[str]) -> float:
    if not row_intent:
        return 0.25
    return 1.0 if row_intent == current else 0.08


def project_similarity(current: Optional[str], row_project: Optional[str], intent_match: bool) -> float:
    if current and row_project:
        score = 1.0 if current.lower() == row_project.lower() else 0.05
    else:
        score = 0.35
    if not intent_match:
        score = min(score, 0.2)
    return score


def complexity_similarity(current: Optional[str], row_complexity: Optional[str]) -> float:
    if current not in COMPLEXITY_LEVELS or row_complexity not in COMPLEXITY_LEVELS:
        return 0.45
    gap = abs(COMPLEXITY_LEVELS.index(current) - COMPLEXITY_LEVELS.index(row_complexity))
    return (1.0, 0.6, 0.25)[gap]


def jaccard(left: Set[str], right: Set[str]) -> float:
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def tool_similarity(current: Iterable[str], row_tools: Iterable[str]) -> float:
    a, b = set(tool_set(current)), set(tool_set(row_tools))
    if not a and not b:
        return 0.4
    if not a or not b:
        return 0.25
    return jaccard(a, b)


def tokenize(text: str) -> Set[str]:
    return set(_TOKEN_RE.findall((text or "").lower()))


def text_similarity(current: str, row_text: str) -> float:
    a, b = tokenize(current), tokenize(row_text)
    if not a or not b:
        return 0.2
    return jaccard(a, b)


def outcome_signal(row: HistoryEntry) -> float:
    if row.rating is not None:
        return (min(10, max(1, row.rating)) - 5.5) / 4.5
    if row.status == "completed":
        return 0.35
    if row.status == "failed":
        return -0.55
    return 0.0


def recency_weight(timestamp: Optional[str], now: datetime, half_life_days: float = 45.0) -> float:
    moment = parse_instant(timestamp)
    if moment is None:
        return 0.65
    age_days = max(0.0, (now - moment).total_seconds() / 86400.0)
    return 0.5 ** (age_days / half_life_days)


def row_similarity(task: TaskProfile, row: HistoryEntry, weights: SimilarityWeights) -> float:
    intent_score = intent_similarity(task.intent, row.intent)
    # rows without a recorded intent are neither matched nor damped
    intent_match = not row.intent or row.intent == task.intent
    score = (
        weights.intent_weight * intent_score
        + weights.project_weight * project_similarity(task.project, row.project, intent_match)
        + weights.complexity_weight * complexity_similarity(task.complexity, row.complexity)
        + weights.tool_weight * tool_similarity(task.tools, row.tools_used)
        + weights.text_weight * text_similarity(task.prompt, row.result)
    )
    if not intent_match:
        score *= weights.cross_intent_damping
    return score


# --------------- Aggregation ---------------

def build_similarity_signal(
    task: TaskProfile,
    rows: Iterable[HistoryEntry],
    now: datetime,
    *,
    known_agents: Optional[Sequence[str]] = None,
    weights: Optional[SimilarityWeights] = None,
) -> SimilaritySignal:
    weights = weights or SimilarityWeights()
    known = set(known_agents) if known_agents is not None else None
    boosts: Dict[str, float] = {}
    cases: List[SimilarityCase] = []

    for row in rows:
        agents = [a for a in row.agents if known is None or a in known]
        if not agents:
            continue
        similarity = row_similarity(task, row, weights)
        if similarity < weights.noise_floor:
            continue
        outcome = outcome_signal(row)
        if abs(outcome) < 0.01:
            continue
        recency = recency_weight(row.timestamp, now, weights.half_life_days)
        raw = similarity * outcome * recency * weights.contribution_scale
        contribution = max(-weights.contribution_clamp, min(weights.contribution_clamp, raw))
        if abs(contribution) < weights.contribution_cut:
            continue
        share = contribution / math.sqrt(len(agents))
        for agent in agents:
            boosts[agent] = boosts.get(agent, 0.0) + share
        cases.append(SimilarityCase(row, agents, similarity, outcome, recency, contribution))

    ranked = sorted(cases, key=lambda c: (-round(abs(c.contribution), 3), -c.similarity))
    top = ranked[: max(0, weights.max_top_cases)]
    return SimilaritySignal(
        agent_score_boost=boosts,
        top_cases=[case.describe() for case in top],
        cases=ranked,
    )
