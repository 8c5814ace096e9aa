"""
Council record types.

Every persisted entity is read back through an explicit normalizer:
- MemoryEntry: one observed event in the hot/warm/cold tiers
- WorkItem: one in-flight or finished task attempt
- HistoryEntry: one ledger row derived from a finalized work item
- SuccessPattern: decayed success rate for a composite context key
- RecomputeMeta: bookkeeping for full success-pattern rebuilds

Normalizers never raise on bad shapes. They clamp, default, or return
None when a row carries nothing usable.
"""

from __future__ import annotations

import json
import math
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

TIERS = ("hot", "warm", "cold")
COMPLEXITY_LEVELS = ("low", "medium", "high")
WORK_STATUSES = ("in-progress", "completed", "failed")


# --------------- Time helpers ---------------

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Serialize an instant as a UTC ISO-8601 string with a Z suffix."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    text = moment.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return text.replace("+00:00", "Z")


def parse_instant(value: Any) -> Optional[datetime]:
    """Parse ISO strings and epoch numbers into aware UTC datetimes."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    text = str(value).strip()
    if not text:
        return None
    if text.endswith("Z") or text.endswith("z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_timestamp(value: Any, now: datetime) -> str:
    parsed = parse_instant(value)
    return to_iso(parsed if parsed is not None else now)


def days_between(earlier: Optional[datetime], later: datetime) -> float:
    if earlier is None:
        return 0.0
    return max(0.0, (later - earlier).total_seconds() / 86400.0)


# --------------- Field normalizers ---------------

def clean_str(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    text = value.strip()
    return text or None


def clean_str_list(value: Any) -> List[str]:
    """Keep non-empty strings, trimmed, first occurrence wins."""
    if not isinstance(value, (list, tuple)):
        return []
    out: List[str] = []
    for item in value:
        text = clean_str(item)
        if text and text not in out:
            out.append(text)
    return out


def clamp_rating(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if value != value:
        return None
    return int(math.floor(min(10.0, max(1.0, float(value))) + 0.5))


def normalize_complexity(value: Any) -> Optional[str]:
    text = clean_str(value)
    if text and text.lower() in COMPLEXITY_LEVELS:
        return text.lower()
    return None


def clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def new_entry_id(now: datetime) -> str:
    return f"m_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


def _as_int(value: Any, default: int = 0) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, (int, float)) and value == value:
        return int(value)
    return default


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if value == value else None


# --------------- Memory entries ---------------

@dataclass
class MemoryEntry:
    """One observed event stored in a memory tier."""
    id: str
    tier: str
    type: str
    content: str
    timestamp: str
    source: str = "system"
    session_id: Optional[str] = None
    intent: Optional[str] = None
    agents: List[str] = field(default_factory=list)
    rating: Optional[int] = None
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def identity(self) -> Tuple[str, str, str, str, str]:
        """Deduplication key used when merging tiers."""
        return (
            self.type,
            self.session_id or "",
            self.intent or "",
            self.timestamp,
            self.content,
        )

    def moment(self) -> Optional[datetime]:
        return parse_instant(self.timestamp)

    def meta_str(self, *keys: str) -> Optional[str]:
        for key in keys:
            text = clean_str(self.metadata.get(key))
            if text:
                return text
        return None

    def tag_value(self, prefix: str) -> Optional[str]:
        marker = f"{prefix}:"
        for tag in self.tags:
            if tag.startswith(marker) and len(tag) > len(marker):
                return tag[len(marker):]
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "tier": self.tier,
            "type": self.type,
            "agents": list(self.agents),
            "content": self.content,
            "tags": list(self.tags),
            "source": self.source,
            "timestamp": self.timestamp,
        }
        if self.session_id:
            data["sessionId"] = self.session_id
        if self.intent:
            data["intent"] = self.intent
        if self.rating is not None:
            data["rating"] = self.rating
        if self.metadata:
            data["metadata"] = dict(self.metadata)
        return data

    @classmethod
    def from_dict(
        cls,
        raw: Any,
        tier: str,
        now: datetime,
        *,
        default_source: str = "legacy",
    ) -> Optional["MemoryEntry"]:
        if not isinstance(raw, dict):
            return None
        metadata = raw.get("metadata") if isinstance(raw.get("metadata"), dict) else {}
        content = clean_str(raw.get("content"))
        if content is None:
            for key in ("resultSummary", "message", "result"):
                content = clean_str(raw.get(key))
                if content:
                    break
        if content is None:
            content = json.dumps(raw, ensure_ascii=False, sort_keys=True, default=str)
        return cls(
            id=clean_str(raw.get("id")) or new_entry_id(now),
            tier=tier,
            type=clean_str(raw.get("type")) or "note",
            content=content,
            timestamp=normalize_timestamp(raw.get("timestamp"), now),
            source=clean_str(raw.get("source")) or default_source,
            session_id=clean_str(raw.get("sessionId")) or clean_str(metadata.get("sessionId")),
            intent=clean_str(raw.get("intent")) or clean_str(metadata.get("intent")),
            agents=clean_str_list(raw.get("agents")),
            rating=clamp_rating(raw.get("rating")),
            tags=clean_str_list(raw.get("tags")),
            metadata=dict(metadata),
        )


# --------------- Work items ---------------

@dataclass
class ExecutionInfo:
    execution_time: int = 0
    tools_used: List[str] = field(default_factory=list)
    model_calls: int = 0
    success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "executionTime": self.execution_time,
            "toolsUsed": list(self.tools_used),
            "modelCalls": self.model_calls,
            "success": self.success,
        }
        if self.error_message:
            data["errorMessage"] = self.error_message
        return data

    @classmethod
    def from_dict(cls, raw: Any) -> Optional["ExecutionInfo"]:
        if not isinstance(raw, dict):
            return None
        return cls(
            execution_time=max(0, _as_int(raw.get("executionTime"))),
            tools_used=clean_str_list(raw.get("toolsUsed")),
            model_calls=max(0, _as_int(raw.get("modelCalls"))),
            success=bool(raw.get("success", True)),
            error_message=clean_str(raw.get("errorMessage")),
        )


@dataclass
class WorkItem:
    """One task attempt tracked from prompt to outcome."""
    id: str
    session_id: str
    prompt: str
    intent: str
    created_at: str
    updated_at: str
    status: str = "in-progress"
    project: Optional[str] = None
    complexity: Optional[str] = None
    agents: List[str] = field(default_factory=list)
    execution: Optional[ExecutionInfo] = None
    result_summary: Optional[str] = None

    @property
    def is_open(self) -> bool:
        return self.status == "in-progress"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "sessionId": self.session_id,
            "prompt": self.prompt,
            "intent": self.intent,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
            "status": self.status,
            "agents": list(self.agents),
        }
        if self.project:
            data["project"] = self.project
        if self.complexity:
            data["complexity"] = self.complexity
        if self.execution is not None:
            data["execution"] = self.execution.to_dict()
        if self.result_summary is not None:
            data["resultSummary"] = self.result_summary
        return data

    @classmethod
    def from_dict(cls, raw: Any, now: datetime) -> Optional["WorkItem"]:
        if not isinstance(raw, dict):
            return None
        item_id = clean_str(raw.get("id"))
        if not item_id:
            return None
        status = clean_str(raw.get("status")) or "in-progress"
        created = normalize_timestamp(raw.get("createdAt"), now)
        return cls(
            id=item_id,
            session_id=clean_str(raw.get("sessionId")) or "unknown",
            prompt=str(raw.get("prompt") or ""),
            intent=clean_str(raw.get("intent")) or "analysis",
            created_at=created,
            updated_at=normalize_timestamp(raw.get("updatedAt") or created, now),
            status=status if status in WORK_STATUSES else "in-progress",
            project=clean_str(raw.get("project")),
            complexity=normalize_complexity(raw.get("complexity")),
            agents=clean_str_list(raw.get("agents")),
            execution=ExecutionInfo.from_dict(raw.get("execution")),
            result_summary=clean_str(raw.get("resultSummary")),
        )


# --------------- Outcome ledger ---------------

@dataclass
class HistoryEntry:
    """One ledger row. Identity fields never change after append."""
    session_id: str
    intent: Optional[str]
    agents: List[str]
    result: str
    status: str
    timestamp: str
    project: Optional[str] = None
    complexity: Optional[str] = None
    work_item_id: Optional[str] = None
    tools_used: List[str] = field(default_factory=list)
    model_calls: Optional[int] = None
    execution_time: Optional[int] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None

    def moment(self) -> Optional[datetime]:
        return parse_instant(self.timestamp)

    @property
    def success(self) -> Optional[bool]:
        if self.status == "completed":
            return True
        if self.status == "failed":
            return False
        return None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "sessionId": self.session_id,
            "agents": list(self.agents),
            "result": self.result,
            "status": self.status,
            "timestamp": self.timestamp,
        }
        optional = {
            "intent": self.intent,
            "project": self.project,
            "complexity": self.complexity,
            "workItemId": self.work_item_id,
            "modelCalls": self.model_calls,
            "executionTime": self.execution_time,
            "rating": self.rating,
            "feedback": self.feedback,
        }
        for key, value in optional.items():
            if value is not None:
                data[key] = value
        if self.tools_used:
            data["toolsUsed"] = list(self.tools_used)
        return data

    @classmethod
    def from_dict(cls, raw: Any, now: datetime) -> Optional["HistoryEntry"]:
        if not isinstance(raw, dict):
            return None
        status = (clean_str(raw.get("status")) or "").lower()
        if not status and isinstance(raw.get("success"), bool):
            status = "completed" if raw["success"] else "failed"
        model_calls = _as_float(raw.get("modelCalls"))
        execution_time = _as_float(raw.get("executionTime"))
        return cls(
            session_id=clean_str(raw.get("sessionId")) or "unknown",
            intent=clean_str(raw.get("intent")),
            agents=clean_str_list(raw.get("agents")),
            result=str(raw.get("result") or ""),
            status=status or "unknown",
            timestamp=normalize_timestamp(raw.get("timestamp"), now),
            project=clean_str(raw.get("project")),
            complexity=normalize_complexity(raw.get("complexity")),
            work_item_id=clean_str(raw.get("workItemId")),
            tools_used=clean_str_list(raw.get("toolsUsed")),
            model_calls=int(model_calls) if model_calls is not None else None,
            execution_time=int(execution_time) if execution_time is not None else None,
            rating=clamp_rating(raw.get("rating")),
            feedback=clean_str(raw.get("feedback")),
        )


# --------------- Success patterns ---------------

@dataclass
class SuccessPattern:
    """Decayed success rate for one (task, method, tools, project, complexity) key."""
    task: str
    method: str
    success_rate: float
    last_used: str
    sample_size: int = 1
    tool_combo: Optional[str] = None
    project: Optional[str] = None
    complexity: Optional[str] = None

    @property
    def key(self) -> str:
        return pattern_key(self.task, self.method, self.tool_combo, self.project, self.complexity)

    @property
    def agents(self) -> List[str]:
        return [part.strip() for part in self.method.split("+") if part.strip()]

    @property
    def tools(self) -> List[str]:
        if not self.tool_combo:
            return []
        return [part.strip() for part in self.tool_combo.split("+") if part.strip()]

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "task": self.task,
            "method": self.method,
            "successRate": self.success_rate,
            "lastUsed": self.last_used,
            "sampleSize": self.sample_size,
        }
        if self.tool_combo:
            data["toolCombo"] = self.tool_combo
        if self.project:
            data["project"] = self.project
        if self.complexity:
            data["complexity"] = self.complexity
        return data

    @classmethod
    def from_dict(cls, raw: Any, now: datetime) -> Optional["SuccessPattern"]:
        if not isinstance(raw, dict):
            return None
        task = clean_str(raw.get("task"))
        method = clean_str(raw.get("method"))
        rate = _as_float(raw.get("successRate"))
        if not task or not method or rate is None:
            return None
        return cls(
            task=task,
            method=method,
            success_rate=clamp01(rate),
            last_used=normalize_timestamp(raw.get("lastUsed"), now),
            sample_size=max(1, _as_int(raw.get("sampleSize"), 1)),
            tool_combo=clean_str(raw.get("toolCombo")),
            project=clean_str(raw.get("project")),
            complexity=normalize_complexity(raw.get("complexity")),
        )


def pattern_key(
    task: str,
    method: str,
    tool_combo: Optional[str] = None,
    project: Optional[str] = None,
    complexity: Optional[str] = None,
) -> str:
    return "|".join([task, method, tool_combo or "", project or "", complexity or ""])


@dataclass
class RecomputeMeta:
    last_run_at: Optional[str] = None
    last_history_count: int = 0
    last_rated_count: int = 0
    last_reason: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "lastRunAt": self.last_run_at,
            "lastHistoryCount": self.last_history_count,
            "lastRatedCount": self.last_rated_count,
            "lastReason": self.last_reason,
        }

    @classmethod
    def from_dict(cls, raw: Any) -> "RecomputeMeta":
        if not isinstance(raw, dict):
            return cls()
        last_run = parse_instant(raw.get("lastRunAt"))
        return cls(
            last_run_at=to_iso(last_run) if last_run else None,
            last_history_count=max(0, _as_int(raw.get("lastHistoryCount"))),
            last_rated_count=max(0, _as_int(raw.get("lastRatedCount"))),
            last_reason=clean_str(raw.get("lastReason")) or "",
        )
