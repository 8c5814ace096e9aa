"""
Public engine operations.

Each function here is one degrade-gracefully boundary: it composes the
lower modules, and if anything inside fails it logs through log_debug
and returns a clearly-marked fallback result instead of raising. Lower
modules are free to raise; callers of this module never see it.

    select_team()     - before a turn: pick the roles and build context
    record_outcome()  - after a turn: finalize, ledger, learn
    capture_feedback()- user rating for the latest completed turn
    record_tool_use() - after a tool call: hot-tier trace
    rotate_memory()   - before compaction: hot/warm/cold rotation
    session_context() - session start: profile and memory summary
    recompute()       - explicit success-pattern rebuild
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from . import feedback as feedback_mod
from . import recompute as recompute_mod
from . import tier_rotation
from .composition import (
    MAX_CONSTRAINED_AGENTS,
    AgentConstraints,
    CompositionPolicy,
    apply_agent_constraints,
    compose_dynamic_agents,
    parse_agent_constraints,
)
from .context import CouncilContext
from .diagnostics import log_debug
from .intent import INTENT_LABELS, KeywordIntentOracle, classify_intent_safe
from .memory_tiers import EventStore
from .models import ExecutionInfo, HistoryEntry, MemoryEntry, to_iso
from .outcome_ledger import append_history_entry, read_history
from .profile import load_profile
from .role_catalog import DEFAULT_TEAM, load_role_catalog
from .scoring import ScoringWeights, score_agents
from .similarity import SimilaritySignal, SimilarityWeights, TaskProfile, build_similarity_signal
from .success_patterns import OutcomeEvent, load_success_patterns, update_success_pattern
from .task_context import collapse_text, detect_project, infer_likely_tools, infer_task_complexity
from .work_items import create_work_item, finalize_latest_work_item, find_open_work_item

MAX_CONTEXT_LINES = 5
TASK_RESULT_LIMIT = 400
RESULT_LIMIT = 300
RATING_PROMPT = "How did the council do? Reply with a rating like 'rating: 8' or '8/10'."


@dataclass
class TeamSelection:
    agents: List[str]
    intent: str
    complexity: Optional[str] = None
    project: Optional[str] = None
    tools: List[str] = field(default_factory=list)
    baseline: List[str] = field(default_factory=list)
    anchor: Optional[str] = None
    scores: Dict[str, float] = field(default_factory=dict)
    similarity_boost: Dict[str, float] = field(default_factory=dict)
    top_cases: List[str] = field(default_factory=list)
    injected: List[str] = field(default_factory=list)
    replaced: List[str] = field(default_factory=list)
    constraints: AgentConstraints = field(default_factory=AgentConstraints)
    context_lines: List[str] = field(default_factory=list)
    work_item_id: Optional[str] = None
    degraded: bool = False
    reason: str = "ok"

    def explain(self) -> List[str]:
        lines = [f"intent={self.intent} complexity={self.complexity or 'n/a'} project={self.project or 'n/a'}"]
        lines.append(f"baseline: {' + '.join(self.baseline) or 'none'} (anchor: {self.anchor or 'none'})")
        if self.scores:
            ranked = sorted(self.scores.items(), key=lambda kv: (-kv[1], kv[0]))
            lines.append("scores: " + ", ".join(f"{r}={s:+.2f}" for r, s in ranked))
        if self.injected:
            lines.append("injected: " + ", ".join(self.injected))
        if self.replaced:
            lines.append("replaced: " + ", ".join(self.replaced))
        if self.constraints.active:
            c = self.constraints
            lines.append(f"constraints: include={c.include} exclude={c.exclude} only={c.only}")
        for case in self.top_cases:
            lines.append(f"similar: {case}")
        lines.append(f"team: {' + '.join(self.agents) or 'none'}")
        if self.degraded:
            lines.append(f"degraded: {self.reason}")
        return lines

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agents": list(self.agents),
            "intent": self.intent,
            "complexity": self.complexity,
            "project": self.project,
            "tools": list(self.tools),
            "baseline": list(self.baseline),
            "anchor": self.anchor,
            "scores": {k: round(v, 3) for k, v in self.scores.items()},
            "similarityBoost": {k: round(v, 3) for k, v in self.similarity_boost.items()},
            "topCases": list(self.top_cases),
            "injectedAgents": list(self.injected),
            "replacedBaselineAgents": list(self.replaced),
            "constraints": self.constraints.to_dict(),
            "context": list(self.context_lines),
            "workItemId": self.work_item_id,
            "degraded": self.degraded,
            "reason": self.reason,
        }


@dataclass
class OutcomeReport:
    status: str
    work_item_id: Optional[str] = None
    history_entry: Optional[HistoryEntry] = None
    pattern_rate: Optional[float] = None
    recompute: Optional[recompute_mod.RecomputeResult] = None
    ask_for_rating: Optional[str] = None
    degraded: bool = False
    reason: str = "ok"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "workItemId": self.work_item_id,
            "patternRate": self.pattern_rate,
            "recompute": self.recompute.to_dict() if self.recompute else None,
            "askForRating": self.ask_for_rating,
            "degraded": self.degraded,
            "reason": self.reason,
        }


@dataclass
class SessionContext:
    lines: List[str] = field(default_factory=list)
    degraded: bool = False
    reason: str = "ok"

    @property
    def text(self) -> str:
        return "\n".join(self.lines)


def _degraded_reason(exc: BaseException) -> str:
    return f"degraded:{type(exc).__name__}"


def _default_intent(ctx: CouncilContext) -> str:
    return ctx.section("intent").get("default_intent", "analysis")


def _format_memory(entry: MemoryEntry) -> str:
    rating = f" (rating {entry.rating})" if entry.rating is not None else ""
    return f"- [{entry.type}] {collapse_text(entry.content, 160)}{rating}"


def build_memory_context(store: EventStore, prompt: str, intent: str) -> List[str]:
    """Prompt-matched hot/warm entries, then top-rated warm entries for the intent."""
    picked: List[MemoryEntry] = []
    seen = set()
    candidates = store.find_relevant(prompt, limit=3) + store.find_relevant(
        "", intent=intent, min_rating=8, tiers=("warm",), limit=MAX_CONTEXT_LINES,
    )
    for entry in candidates:
        if entry.id in seen:
            continue
        seen.add(entry.id)
        picked.append(entry)
        if len(picked) >= MAX_CONTEXT_LINES:
            break
    return [_format_memory(e) for e in picked]


def _similarity_or_empty(ctx: CouncilContext, task: TaskProfile, known: Sequence[str]) -> SimilaritySignal:
    try:
        return build_similarity_signal(
            task,
            read_history(ctx),
            ctx.now(),
            known_agents=known,
            weights=SimilarityWeights.from_section(ctx.section("similarity")),
        )
    except Exception as e:
        log_debug("engine", "similarity scoring failed; continuing without boosts", e)
        return SimilaritySignal()


def select_team(
    ctx: CouncilContext,
    prompt: str,
    *,
    session_id: Optional[str] = None,
    project: Optional[str] = None,
    tools: Optional[Sequence[str]] = None,
    create_work: bool = True,
) -> TeamSelection:
    """Choose the roles for a turn. Never raises."""
    default_intent = _default_intent(ctx)
    try:
        store = EventStore(ctx)
        catalog = load_role_catalog(ctx)
        known = catalog.known_roles()
        oracle = ctx.intent_oracle or KeywordIntentOracle(default=default_intent)
        allowed = sorted(set(INTENT_LABELS) | set(catalog.intent_to_roles) | {default_intent})
        intent = classify_intent_safe(oracle, prompt, default=default_intent, allowed=allowed)

        tool_guess = list(tools) if tools else infer_likely_tools(prompt)
        task = TaskProfile(
            intent=intent,
            complexity=infer_task_complexity(prompt=prompt, tools_used=tool_guess, intent=intent),
            project=project or detect_project(prompt),
            tools=tool_guess,
            prompt=prompt,
        )
        baseline = catalog.baseline_for(intent)
        profile = load_profile(ctx)
        weights = ScoringWeights.from_section(ctx.section("scoring"))
        signal = _similarity_or_empty(ctx, task, known)
        memories = store.find_relevant(
            "", min_rating=1, tiers=("hot", "warm"), limit=weights.memory_scan_limit,
        )
        scored = score_agents(
            task,
            baseline,
            preferred=profile.preferred_roles,
            memories=memories,
            patterns=load_success_patterns(ctx),
            similarity_boost=signal.agent_score_boost,
            known_roles=known,
            weights=weights,
        )
        composition = compose_dynamic_agents(
            scored,
            signal.agent_score_boost,
            CompositionPolicy.from_section(ctx.section("composition")),
        )
        constraints = parse_agent_constraints(prompt, known)
        agents = apply_agent_constraints(
            composition.agents,
            constraints,
            baseline=scored.baseline_ranked or baseline,
            known_roles=known,
            max_agents=MAX_CONSTRAINED_AGENTS,
        )

        selection = TeamSelection(
            agents=agents,
            intent=intent,
            complexity=task.complexity,
            project=task.project,
            tools=tool_guess,
            baseline=baseline,
            anchor=composition.anchor,
            scores=dict(scored.scores),
            similarity_boost=dict(signal.agent_score_boost),
            top_cases=list(signal.top_cases),
            injected=[r for r in composition.injected if r in agents],
            replaced=list(composition.replaced),
            constraints=constraints,
            context_lines=build_memory_context(store, prompt, intent),
        )
        if create_work:
            item = create_work_item(
                ctx,
                session_id=session_id or "unknown",
                prompt=prompt,
                intent=intent,
                agents=agents,
                project=task.project,
                complexity=task.complexity,
            )
            selection.work_item_id = item.id
            store.save_entry(
                "hot",
                "task_start",
                f"Started {intent} task with {' + '.join(agents) or 'no roles'}",
                session_id=session_id,
                intent=intent,
                agents=agents,
                tags=["task-start", intent],
                metadata={"workItemId": item.id, "complexity": task.complexity, "project": task.project},
            )
        return selection
    except Exception as e:
        log_debug("engine", "select_team failed; using fallback team", e)
        return TeamSelection(
            agents=list(DEFAULT_TEAM),
            intent=default_intent,
            degraded=True,
            reason=_degraded_reason(e),
        )


def record_outcome(
    ctx: CouncilContext,
    *,
    session_id: Optional[str],
    result: str,
    success: bool = True,
    tools_used: Sequence[str] = (),
    execution_time: int = 0,
    model_calls: int = 0,
    error_message: Optional[str] = None,
) -> OutcomeReport:
    """Close the turn: finalize work, append the ledger, learn. Never raises."""
    status = "completed" if success else "failed"
    try:
        store = EventStore(ctx)
        open_item = find_open_work_item(ctx, session_id)
        intent = open_item.intent if open_item else _default_intent(ctx)
        agents = list(open_item.agents) if open_item else []
        project = open_item.project if open_item else None
        complexity = infer_task_complexity(
            prompt=open_item.prompt if open_item else "",
            result=result,
            tools_used=tools_used,
            execution_time=execution_time,
            model_calls=model_calls,
            intent=intent,
        )
        item = finalize_latest_work_item(
            ctx,
            session_id=session_id,
            success=success,
            result_summary=result,
            execution=ExecutionInfo(
                execution_time=int(execution_time or 0),
                tools_used=list(tools_used),
                model_calls=int(model_calls or 0),
                success=success,
                error_message=error_message,
            ),
            complexity=complexity,
        )
        if item is not None and item.complexity:
            complexity = item.complexity

        entry = append_history_entry(ctx, HistoryEntry(
            session_id=session_id or (item.session_id if item else "unknown"),
            intent=intent,
            agents=agents,
            result=collapse_text(result, RESULT_LIMIT),
            status=status,
            timestamp=to_iso(ctx.now()),
            project=project,
            complexity=complexity,
            work_item_id=item.id if item else None,
            tools_used=list(tools_used),
            model_calls=int(model_calls or 0),
            execution_time=int(execution_time or 0),
        ))
        report = OutcomeReport(status=status, work_item_id=entry.work_item_id, history_entry=entry)

        if load_profile(ctx).learning_enabled:
            pattern = update_success_pattern(ctx, OutcomeEvent(
                task=intent,
                agents=agents,
                timestamp=ctx.now(),
                tools=list(tools_used),
                project=project,
                complexity=complexity,
                success=success,
            ))
            report.pattern_rate = pattern.success_rate if pattern else None
            report.recompute = recompute_mod.maybe_recompute_success_patterns(ctx)
            recompute_mod.record_learning_event(store, report.recompute, session_id)

        tags = ["task-result", status, intent]
        if project:
            tags.append(f"project:{project}")
        if complexity:
            tags.append(f"complexity:{complexity}")
        store.save_entry(
            "warm",
            "task_result",
            collapse_text(result, TASK_RESULT_LIMIT) or f"Task {status}",
            session_id=session_id,
            intent=intent,
            agents=agents,
            tags=tags,
            metadata={
                "workItemId": entry.work_item_id,
                "toolsUsed": list(tools_used),
                "executionTime": int(execution_time or 0),
                "modelCalls": int(model_calls or 0),
                "project": project,
                "complexity": complexity,
            },
        )
        if success:
            store.save_entry(
                "hot",
                "implicit_signal",
                f"Task completed with {' + '.join(agents) or 'no roles'}",
                session_id=session_id,
                intent=intent,
                agents=agents,
                tags=["implicit", "success"],
            )
            report.ask_for_rating = RATING_PROMPT
        else:
            store.save_entry(
                "warm",
                "error",
                error_message or collapse_text(result, TASK_RESULT_LIMIT) or "Task failed",
                session_id=session_id,
                intent=intent,
                agents=agents,
                tags=["error", intent],
                metadata={"workItemId": entry.work_item_id},
            )
        return report
    except Exception as e:
        log_debug("engine", "record_outcome failed", e)
        return OutcomeReport(status=status, degraded=True, reason=_degraded_reason(e))


def capture_feedback(ctx: CouncilContext, text: str, *, session_id: Optional[str] = None) -> feedback_mod.FeedbackResult:
    """Apply a rating found in a user message. Never raises."""
    try:
        if not load_profile(ctx).learning_enabled:
            return feedback_mod.FeedbackResult(rating=feedback_mod.detect_rating(text), reason="learning-disabled")
        return feedback_mod.capture_feedback(ctx, text, session_id=session_id)
    except Exception as e:
        log_debug("engine", "capture_feedback failed", e)
        return feedback_mod.FeedbackResult(rating=None, reason=_degraded_reason(e), degraded=True)


def record_tool_use(
    ctx: CouncilContext,
    tool_name: str,
    *,
    session_id: Optional[str] = None,
    duration_ms: int = 0,
    success: bool = True,
    result_size: Optional[int] = None,
) -> Optional[MemoryEntry]:
    try:
        metadata: Dict[str, Any] = {"tool": tool_name, "durationMs": int(duration_ms or 0), "success": success}
        if result_size is not None:
            metadata["resultSize"] = int(result_size)
        return EventStore(ctx).save_entry(
            "hot",
            "tool_execution",
            f"Executed {tool_name or 'unknown tool'} in {int(duration_ms or 0)}ms",
            session_id=session_id,
            tags=["tool", tool_name or "unknown", "ok" if success else "error"],
            metadata=metadata,
        )
    except Exception as e:
        log_debug("engine", "record_tool_use failed", e)
        return None


def rotate_memory(ctx: CouncilContext, *, usage_ratio: Optional[float] = None) -> tier_rotation.RotationReport:
    """Rotate hot/warm/cold tiers. Never raises."""
    try:
        return tier_rotation.rotate_memory(EventStore(ctx), usage_ratio=usage_ratio)
    except Exception as e:
        log_debug("engine", "rotate_memory failed", e)
        return tier_rotation.RotationReport(reason=_degraded_reason(e), degraded=True)


def recompute(ctx: CouncilContext, *, force: bool = False) -> recompute_mod.RecomputeResult:
    try:
        result = recompute_mod.maybe_recompute_success_patterns(ctx, force=force)
        recompute_mod.record_learning_event(EventStore(ctx), result)
        return result
    except Exception as e:
        log_debug("engine", "recompute failed", e)
        return recompute_mod.RecomputeResult(triggered=False, reason=_degraded_reason(e))


def session_context(ctx: CouncilContext, *, session_id: Optional[str] = None) -> SessionContext:
    """Profile, strong patterns and recent memory for a new session."""
    try:
        store = EventStore(ctx)
        profile = load_profile(ctx)
        lines = [f"User: {profile.name} (style: {profile.communication_style}, tz: {profile.time_zone})"]
        if profile.mission:
            lines.append(f"Mission: {profile.mission}")
        if profile.goals:
            lines.append("Goals: " + "; ".join(profile.goals[:5]))
        if profile.preferred_roles:
            lines.append("Preferred roles: " + ", ".join(profile.preferred_roles))
        patterns = load_success_patterns(ctx)[:3]
        if patterns:
            lines.append("Strongest patterns:")
            lines.extend(
                f"- {p.task}: {p.method} ({p.success_rate:.2f}, n={p.sample_size})" for p in patterns
            )
        rated = store.find_relevant("", min_rating=8, tiers=("warm",), limit=3)
        recent = store.read("hot", 5)
        if rated or recent:
            lines.append("Recent memory:")
            lines.extend(_format_memory(e) for e in rated)
            lines.extend(_format_memory(e) for e in reversed(recent))
        store.save_entry("hot", "session_start", "Session started", session_id=session_id, tags=["session"])
        return SessionContext(lines=lines)
    except Exception as e:
        log_debug("engine", "session_context failed", e)
        return SessionContext(degraded=True, reason=_degraded_reason(e))
