"""
Team composition and per-turn overrides.

compose_dynamic_agents() starts from the best-scored baseline roles and
lets strong non-baseline candidates fill free slots or displace weaker
incumbents. Two rules hold throughout: the anchor (top-scored baseline
role) is never displaced, and baseline representation never drops below
min_base_agents.

apply_agent_constraints() then applies include / exclude / only
directives parsed from the user's message.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from .scoring import AgentScores

MAX_CONSTRAINED_AGENTS = 4


@dataclass(frozen=True)
class CompositionPolicy:
    max_agents: int = 4
    min_base_agents: int = 1
    replacement_min_score: float = 2.0
    replacement_delta: float = 1.0
    injection_min_score: float = 1.2
    min_similarity_boost: float = 0.8
    force_injection_score: float = 7.5

    @classmethod
    def from_section(cls, section: Dict[str, Any]) -> "CompositionPolicy":
        defaults = cls()
        return cls(**{k: section.get(k, getattr(defaults, k)) for k in defaults.__dataclass_fields__})


@dataclass
class Composition:
    agents: List[str]
    anchor: Optional[str] = None
    injected: List[str] = field(default_factory=list)
    replaced: List[str] = field(default_factory=list)


def compose_dynamic_agents(
    scored: AgentScores,
    similarity_boost: Optional[Dict[str, float]] = None,
    policy: Optional[CompositionPolicy] = None,
) -> Composition:
    policy = policy or CompositionPolicy()
    boosts = similarity_boost or {}
    max_agents = max(1, policy.max_agents)
    baseline = set(scored.baseline)
    score = scored.score

    selection: List[str] = list(scored.baseline_ranked[:max_agents])
    anchor = selection[0] if selection else None
    min_base = min(policy.min_base_agents, len(scored.baseline_ranked), max_agents)
    injected: List[str] = []
    replaced: List[str] = []

    def _base_count() -> int:
        return sum(1 for r in selection if r in baseline)

    outsiders = sorted(
        (r for r in scored.candidates if r not in baseline),
        key=lambda r: (-score(r), r),
    )
    for candidate in outsiders:
        value = score(candidate)
        if value < policy.injection_min_score:
            continue
        if boosts.get(candidate, 0.0) < policy.min_similarity_boost and value < policy.force_injection_score:
            continue
        if len(selection) < max_agents:
            selection.append(candidate)
            injected.append(candidate)
            continue
        if value < policy.replacement_min_score:
            continue
        eligible = [
            r for r in selection
            if r != anchor and not (r in baseline and _base_count() - 1 < min_base)
        ]
        if not eligible:
            continue
        weakest = min(reversed(eligible), key=score)
        if value - score(weakest) < policy.replacement_delta:
            continue
        selection[selection.index(weakest)] = candidate
        injected.append(candidate)
        if weakest in baseline:
            replaced.append(weakest)
        elif weakest in injected:
            injected.remove(weakest)

    if _base_count() < min_base:
        unused = [r for r in scored.baseline_ranked if r not in selection]
        outsiders_in = [r for r in selection if r not in baseline]
        if unused and outsiders_in:
            weakest = min(reversed(outsiders_in), key=score)
            selection[selection.index(weakest)] = unused[0]
            if weakest in injected:
                injected.remove(weakest)
            if unused[0] in replaced:
                replaced.remove(unused[0])

    final = sorted(selection, key=lambda r: (-score(r), r))[:max_agents]
    return Composition(
        agents=final,
        anchor=anchor,
        injected=[r for r in injected if r in final],
        replaced=[r for r in replaced if r not in final],
    )


# --------------- Overrides ---------------

@dataclass
class AgentConstraints:
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    only: bool = False

    @property
    def active(self) -> bool:
        return bool(self.include or self.exclude or self.only)

    def to_dict(self) -> Dict[str, Any]:
        return {"include": list(self.include), "exclude": list(self.exclude), "only": self.only}


_SKIP_LINE = re.compile(r"偏好|\bpreferred\b", re.IGNORECASE)
_ONLY = re.compile(r"(?:仅用|只用|只使用|\bonly(?:\s+use)?\b)\s*[:：]?(.*)", re.IGNORECASE)
_EXCLUDE = re.compile(r"(?:排除|移除|不要|不使用|\bexclude\b|\bwithout\b)\s*[:：]?(.*)", re.IGNORECASE)
_INCLUDE = re.compile(r"(?:强制使用|包含|加入|使用|\bforce\b|\binclude\b|\buse\b)\s*[:：]?(.*)", re.IGNORECASE)
_AGENTS_LINE = re.compile(r"\b(?:agents?|roles?)\s*[:：](.*)", re.IGNORECASE)


def _mentioned_roles(text: str, known_roles: Sequence[str]) -> List[str]:
    hits = []
    for role in known_roles:
        pattern = re.compile(r"(?<![A-Za-z0-9_-])" + re.escape(role) + r"(?![A-Za-z0-9_-])", re.IGNORECASE)
        match = pattern.search(text)
        if match:
            hits.append((match.start(), role))
    return [role for _, role in sorted(hits)]


def _extend(target: List[str], roles: List[str]) -> None:
    for role in roles:
        if role not in target:
            target.append(role)


def parse_agent_constraints(text: str, known_roles: Sequence[str]) -> AgentConstraints:
    """Read include / exclude / only directives naming known roles."""
    constraints = AgentConstraints()
    for line in (text or "").splitlines():
        if not line.strip() or _SKIP_LINE.search(line):
            continue
        match = _ONLY.search(line)
        if match:
            roles = _mentioned_roles(match.group(1), known_roles)
            if roles:
                constraints.only = True
                _extend(constraints.include, roles)
            continue
        match = _EXCLUDE.search(line)
        if match:
            _extend(constraints.exclude, _mentioned_roles(match.group(1), known_roles))
            continue
        match = _AGENTS_LINE.search(line) or _INCLUDE.search(line)
        if match:
            _extend(constraints.include, _mentioned_roles(match.group(1), known_roles))
            continue
        if "+" in line:
            roles = _mentioned_roles(line, known_roles)
            if len(roles) >= 2:
                _extend(constraints.include, roles)
    return constraints


def apply_agent_constraints(
    composed: Sequence[str],
    constraints: AgentConstraints,
    *,
    baseline: Sequence[str] = (),
    known_roles: Sequence[str] = (),
    max_agents: int = MAX_CONSTRAINED_AGENTS,
) -> List[str]:
    excluded = set(constraints.exclude)
    included = [r for r in dict.fromkeys(constraints.include) if r not in excluded]
    if constraints.only and included:
        return included[:max_agents]

    result = [r for r in dict.fromkeys(list(included) + list(composed)) if r not in excluded]
    if not result:
        result = [r for r in dict.fromkeys(baseline) if r not in excluded]
    if not result:
        result = [r for r in dict.fromkeys(known_roles) if r not in excluded]
    return result[:max_agents]
