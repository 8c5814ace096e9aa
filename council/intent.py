"""
Intent oracle boundary.

The engine only needs ``classify(prompt) -> label``. Two oracles ship:
a keyword classifier and a Gemini-backed classifier that falls back to
the keyword one when no key is configured or the call fails. Whatever
oracle is plugged in, classify_intent_safe() turns failures and unknown
labels into the default intent.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional, Protocol, Sequence

import httpx

from .diagnostics import log_debug

INTENT_LABELS = ("analysis", "creative", "technical", "research", "strategy", "security")
DEFAULT_INTENT = "analysis"
GEMINI_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

_KEYWORDS = (
    ("security", re.compile(
        r"\b(security|vulnerab\w*|exploit|cve|auth\w*|permission|secret|leak|attack)\b|安全|漏洞|权限|攻击",
        re.IGNORECASE,
    )),
    ("technical", re.compile(
        r"\b(code|bug|debug|fix|implement|refactor|compile|build|deploy|api|function|script|test)\b|代码|修复|实现|部署|调试",
        re.IGNORECASE,
    )),
    ("research", re.compile(
        r"\b(research|investigate|compare|survey|sources?|papers?|literature|find out)\b|研究|调研|对比|资料",
        re.IGNORECASE,
    )),
    ("strategy", re.compile(
        r"\b(strategy|roadmap|plan|planning|prioriti\w*|decide|decision|market|growth)\b|战略|规划|计划|决策",
        re.IGNORECASE,
    )),
    ("creative", re.compile(
        r"\b(write|story|poem|brainstorm|creative|design|slogan|draft)\b|创意|写作|故事|文案",
        re.IGNORECASE,
    )),
)

CLASSIFY_PROMPT = (
    "Classify the user's request into exactly one intent from this list: "
    + ", ".join(INTENT_LABELS)
    + '. Reply with JSON only, like {{"intent": "analysis"}}.\n\nRequest:\n{prompt}'
)


class IntentOracle(Protocol):
    def classify(self, prompt: str) -> str: ...


class KeywordIntentOracle:
    """First matching keyword bucket wins; no match means analysis."""

    def __init__(self, default: str = DEFAULT_INTENT):
        self.default = default

    def classify(self, prompt: str) -> str:
        text = prompt or ""
        for label, pattern in _KEYWORDS:
            if pattern.search(text):
                return label
        return self.default


def parse_intent_reply(text: str, allowed: Sequence[str] = INTENT_LABELS) -> Optional[str]:
    """Accept {"intent": ...} JSON (optionally fenced) or a bare label."""
    if not text:
        return None
    cleaned = text.strip().strip("`").strip()
    if cleaned.lower().startswith("json"):
        cleaned = cleaned[4:].strip()
    label: Any = None
    try:
        data = json.loads(cleaned)
    except ValueError:
        data = None
    if isinstance(data, dict):
        label = data.get("intent")
    elif isinstance(data, str):
        label = data
    if label is None:
        match = re.search(r"\b(" + "|".join(map(re.escape, allowed)) + r")\b", cleaned, re.IGNORECASE)
        label = match.group(1) if match else None
    if not isinstance(label, str):
        return None
    label = label.strip().lower()
    return label if label in allowed else None


class GeminiIntentOracle:
    """Ask Gemini for an intent label; keyword fallback on any problem."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = "gemini-2.0-flash",
        timeout_s: float = 8.0,
        fallback: Optional[IntentOracle] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_s = timeout_s
        self.fallback = fallback or KeywordIntentOracle()
        self.transport = transport

    def _query(self, prompt: str) -> Optional[str]:
        with httpx.Client(timeout=self.timeout_s, transport=self.transport) as client:
            resp = client.post(
                GEMINI_URL.format(model=self.model),
                params={"key": self.api_key},
                json={
                    "contents": [{"parts": [{"text": CLASSIFY_PROMPT.format(prompt=prompt[:4000])}]}],
                    "generationConfig": {"temperature": 0.0, "maxOutputTokens": 50},
                },
            )
        if resp.status_code != 200:
            log_debug("intent", f"gemini returned HTTP {resp.status_code}")
            return None
        candidates = resp.json().get("candidates", [])
        if not candidates:
            return None
        parts = candidates[0].get("content", {}).get("parts", [])
        if not parts:
            return None
        return str(parts[0].get("text", "")).strip()

    def classify(self, prompt: str) -> str:
        if not self.api_key:
            return self.fallback.classify(prompt)
        try:
            label = parse_intent_reply(self._query(prompt) or "")
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            log_debug("intent", "gemini classification failed", e)
            label = None
        return label or self.fallback.classify(prompt)


def build_intent_oracle(section: Dict[str, Any], api_key: Optional[str]) -> IntentOracle:
    keyword = KeywordIntentOracle(default=section.get("default_intent", DEFAULT_INTENT))
    if not section.get("llm_enabled", True) or not api_key:
        return keyword
    return GeminiIntentOracle(
        api_key,
        model=section.get("llm_model", "gemini-2.0-flash"),
        timeout_s=float(section.get("llm_timeout_s", 8.0)),
        fallback=keyword,
    )


def classify_intent_safe(
    oracle: Optional[IntentOracle],
    prompt: str,
    *,
    default: str = DEFAULT_INTENT,
    allowed: Optional[Sequence[str]] = None,
) -> str:
    """Never raises: failures and unknown labels map to the default."""
    if oracle is None:
        return default
    try:
        label = oracle.classify(prompt)
    except Exception as e:
        log_debug("intent", "intent oracle failed", e)
        return default
    if not isinstance(label, str) or not label.strip():
        return default
    label = label.strip().lower()
    if allowed is not None and label not in allowed:
        return default
    return label
