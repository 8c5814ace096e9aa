"""Heuristics that describe a task: complexity, likely tools, tool combos."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

_HEAVY_INTENTS = {"strategy", "research", "security"}

_TOOL_HINTS = (
    ("shell", re.compile(
        r"\b(run|exec|execute|terminal|command|bash|shell|build|compile|test|tests)\b|脚本|命令|测试|编译",
        re.IGNORECASE,
    )),
    ("filesystem", re.compile(
        r"\b(code|file|files|repo|repository|project|patch|diff|readme|typescript|javascript|python)\b|文件|代码",
        re.IGNORECASE,
    )),
    ("web", re.compile(
        r"\b(search|news|latest|documentation|api docs?)\b|官网|文档|网页|网站|联网",
        re.IGNORECASE,
    )),
)


def collapse_text(text: str, limit: int) -> str:
    """Collapse whitespace and truncate to `limit` chars with an ellipsis."""
    flat = " ".join(str(text or "").split())
    if len(flat) <= limit:
        return flat
    return flat[: max(0, limit - 3)] + "..."


def infer_task_complexity(
    prompt: str = "",
    result: str = "",
    tools_used: Iterable[str] = (),
    execution_time: float = 0,
    model_calls: int = 0,
    intent: Optional[str] = None,
) -> str:
    """Bucket a task into low / medium / high from its observable footprint."""
    score = 0
    tokens = len(f"{prompt or ''} {result or ''}".split())
    if tokens >= 120:
        score += 2
    elif tokens >= 60:
        score += 1

    tool_count = len({t.strip().lower() for t in tools_used if t and t.strip()})
    if tool_count >= 4:
        score += 2
    elif tool_count >= 2:
        score += 1

    execution_time = execution_time or 0
    if execution_time >= 5000:
        score += 2
    elif execution_time >= 2000:
        score += 1

    model_calls = model_calls or 0
    if model_calls >= 6:
        score += 2
    elif model_calls >= 3:
        score += 1

    if intent in _HEAVY_INTENTS:
        score += 1

    if score >= 6:
        return "high"
    if score >= 3:
        return "medium"
    return "low"


def infer_likely_tools(prompt: str) -> List[str]:
    text = prompt or ""
    return [name for name, pattern in _TOOL_HINTS if pattern.search(text)]


def tool_set(tools: Iterable[str]) -> List[str]:
    """Lower-cased, de-duplicated, sorted tool names."""
    return sorted({t.strip().lower() for t in tools or () if isinstance(t, str) and t.strip()})


def normalize_tool_combo(tools: Iterable[str]) -> Optional[str]:
    names = tool_set(tools)
    return " + ".join(names) if names else None


def method_for(agents: Iterable[str]) -> str:
    """Role combination string used as the pattern method."""
    return " + ".join(a.strip() for a in agents if a and a.strip())


_PROJECT_RE = re.compile(r"(?:\bproject|项目)\s*[:：=]\s*([\w./-]+)", re.IGNORECASE)


def detect_project(prompt: str) -> Optional[str]:
    """Pick up an explicit ``project: name`` marker from the prompt."""
    match = _PROJECT_RE.search(prompt or "")
    return match.group(1).strip(".") if match else None
