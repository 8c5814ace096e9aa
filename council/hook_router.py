"""
Lifecycle hook routing.

Maps an agent host's hook payload (JSON on stdin) to engine calls and
builds the JSON reply. Tool gating is not done here: every reply allows
the action. Each call is appended to data/logs/hooks-YYYY-MM-DD.jsonl.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from . import engine
from .context import CouncilContext
from .diagnostics import log_debug
from .models import to_iso
from .storage import append_jsonl

HookHandler = Callable[[CouncilContext, Dict[str, Any]], Dict[str, Any]]


def _str(payload: Dict[str, Any], *keys: str) -> str:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return ""


def _num(payload: Dict[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        value = payload.get(key)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
    return None


def _list(payload: Dict[str, Any], key: str) -> List[str]:
    value = payload.get(key)
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str) and v.strip()]


def _session(payload: Dict[str, Any]) -> Optional[str]:
    return _str(payload, "session_id", "sessionId") or None


def _reply(additional_context: str = "", system_message: str = "", **extra: Any) -> Dict[str, Any]:
    reply: Dict[str, Any] = {"decision": "allow"}
    if additional_context:
        reply["hookSpecificOutput"] = {"additionalContext": additional_context}
    if system_message:
        reply["systemMessage"] = system_message
    reply.update(extra)
    return reply


def on_session_start(ctx: CouncilContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    context = engine.session_context(ctx, session_id=_session(payload))
    return _reply(context.text)


def on_before_agent(ctx: CouncilContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    prompt = _str(payload, "prompt", "user_prompt")
    session_id = _session(payload)
    feedback = engine.capture_feedback(ctx, prompt, session_id=session_id)
    selection = engine.select_team(
        ctx,
        prompt,
        session_id=session_id,
        project=_str(payload, "project") or None,
        tools=_list(payload, "tools") or None,
    )
    lines = [f"Council for this turn: {' + '.join(selection.agents) or 'none'} (intent: {selection.intent})"]
    if selection.context_lines:
        lines.append("Relevant memory:")
        lines.extend(selection.context_lines)
    if selection.top_cases:
        lines.append("Similar past tasks:")
        lines.extend(f"- {case}" for case in selection.top_cases)
    extra: Dict[str, Any] = {"council": selection.to_dict()}
    if feedback.rating is not None:
        extra["feedback"] = feedback.to_dict()
    return _reply("\n".join(lines), **extra)


def on_before_tool(ctx: CouncilContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    return _reply()


def on_after_tool(ctx: CouncilContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    response = payload.get("tool_response")
    size = len(response) if isinstance(response, str) else None
    error = payload.get("error") or (isinstance(response, dict) and response.get("error"))
    engine.record_tool_use(
        ctx,
        _str(payload, "tool_name", "toolName") or "unknown",
        session_id=_session(payload),
        duration_ms=int(_num(payload, "duration_ms", "durationMs") or 0),
        success=not error,
        result_size=size,
    )
    return _reply()


def on_after_agent(ctx: CouncilContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    success = payload.get("success")
    report = engine.record_outcome(
        ctx,
        session_id=_session(payload),
        result=_str(payload, "prompt_response", "response", "result"),
        success=success is not False,
        tools_used=_list(payload, "tools_used") or _list(payload, "toolsUsed"),
        execution_time=int(_num(payload, "execution_time", "executionTime") or 0),
        model_calls=int(_num(payload, "model_calls", "modelCalls") or 0),
        error_message=_str(payload, "error", "error_message") or None,
    )
    return _reply(system_message=report.ask_for_rating or "", outcome=report.to_dict())


def on_pre_compress(ctx: CouncilContext, payload: Dict[str, Any]) -> Dict[str, Any]:
    report = engine.rotate_memory(ctx, usage_ratio=_num(payload, "context_usage_ratio", "usageRatio"))
    return _reply(f"Recent activity:\n{report.summary}" if report.summary else "", rotation=report.to_dict())


HANDLERS: Dict[str, HookHandler] = {
    "SessionStart": on_session_start,
    "BeforeAgent": on_before_agent,
    "UserPromptSubmit": on_before_agent,
    "BeforeTool": on_before_tool,
    "PreToolUse": on_before_tool,
    "AfterTool": on_after_tool,
    "PostToolUse": on_after_tool,
    "AfterAgent": on_after_agent,
    "Stop": on_after_agent,
    "PreCompress": on_pre_compress,
    "PreCompact": on_pre_compress,
}


def log_hook_call(ctx: CouncilContext, event: str, payload: Dict[str, Any], reply: Dict[str, Any]) -> None:
    now = ctx.now()
    record = {
        "timestamp": to_iso(now),
        "event": event,
        "sessionId": _session(payload),
        "promptLength": len(_str(payload, "prompt", "user_prompt")),
        "toolName": _str(payload, "tool_name", "toolName") or None,
        "output": reply,
    }
    try:
        append_jsonl(ctx.hook_log_dir / f"hooks-{now.strftime('%Y-%m-%d')}.jsonl", record)
    except OSError as e:
        log_debug("hooks", "hook log write failed", e)


def handle_hook(ctx: CouncilContext, payload: Dict[str, Any], event: Optional[str] = None) -> Dict[str, Any]:
    """Route one hook call; unknown events are allowed and ignored."""
    name = event or _str(payload, "hook_event_name", "event") or "unknown"
    handler = HANDLERS.get(name)
    reply = handler(ctx, payload) if handler else _reply()
    log_hook_call(ctx, name, payload, reply)
    return reply
