"""
Tiered event memory (hot / warm / cold).

Each tier is an append-only JSONL log ordered by insertion. Entries are
normalized on the way in and again on the way out, so a hand-edited or
legacy row either reads back as a valid MemoryEntry or is skipped.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from .context import CouncilContext
from .diagnostics import log_debug
from .models import TIERS, MemoryEntry, parse_instant
from .storage import append_jsonl, iter_jsonl, lock_for, rewrite_jsonl

_QUERY_TOKEN_RE = re.compile(r"[^\w一-鿿-]+")


class EventStore:
    """Read/append access to the three memory tiers of one context."""

    def __init__(self, ctx: CouncilContext):
        self.ctx = ctx

    def append(self, tier: str, entry: Any) -> MemoryEntry:
        """Normalize and append one entry; returns what was stored."""
        now = self.ctx.now()
        raw = entry.to_dict() if isinstance(entry, MemoryEntry) else entry
        normalized = MemoryEntry.from_dict(raw, tier, now, default_source="system")
        if normalized is None:
            raise ValueError(f"memory entry must be a mapping, got {type(entry).__name__}")
        append_jsonl(self.ctx.tier_file(tier), normalized.to_dict())
        return normalized

    def save_entry(
        self,
        tier: str,
        entry_type: str,
        content: str,
        *,
        session_id: Optional[str] = None,
        intent: Optional[str] = None,
        agents: Optional[Sequence[str]] = None,
        rating: Optional[int] = None,
        tags: Optional[Sequence[str]] = None,
        source: str = "system",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[MemoryEntry]:
        """Append a new entry. Write failures are logged, never raised."""
        raw: Dict[str, Any] = {
            "type": entry_type,
            "content": content,
            "sessionId": session_id,
            "intent": intent,
            "agents": list(agents or []),
            "rating": rating,
            "tags": list(tags or []),
            "source": source,
            "metadata": dict(metadata or {}),
        }
        try:
            return self.append(tier, raw)
        except OSError as e:
            log_debug("memory", f"save_entry to {tier} failed", e)
            return None

    def iter_tier(self, tier: str) -> Iterable[MemoryEntry]:
        now = self.ctx.now()
        for row in iter_jsonl(self.ctx.tier_file(tier)):
            entry = MemoryEntry.from_dict(row, tier, now)
            if entry is not None:
                yield entry

    def read_all(self, tier: str) -> List[MemoryEntry]:
        return list(self.iter_tier(tier))

    def read(self, tier: str, limit: Optional[int] = None) -> List[MemoryEntry]:
        """Most recent `limit` entries of a tier in stored order."""
        entries = self.read_all(tier)
        if limit is None:
            return entries
        if limit <= 0:
            return []
        return entries[-limit:]

    def write_tier(self, tier: str, entries: Iterable[MemoryEntry]) -> None:
        """Replace a tier's contents. Callers hold the memory lock."""
        rewrite_jsonl(self.ctx.tier_file(tier), (e.to_dict() for e in entries))

    def lock(self):
        return lock_for(self.ctx.memory_dir / "tiers")

    def counts(self) -> Dict[str, int]:
        return {tier: sum(1 for _ in self.iter_tier(tier)) for tier in TIERS}

    def find_relevant(
        self,
        query: str = "",
        *,
        intent: Optional[str] = None,
        min_rating: Optional[int] = None,
        tiers: Sequence[str] = ("hot", "warm"),
        limit: int = 10,
    ) -> List[MemoryEntry]:
        """Entries matching any query token (>2 chars), newest first."""
        tokens = [t for t in _QUERY_TOKEN_RE.split(query.lower()) if len(t) > 2]
        matches: List[MemoryEntry] = []
        for tier in tiers:
            for entry in self.iter_tier(tier):
                if intent and entry.intent != intent:
                    continue
                if min_rating is not None and (entry.rating is None or entry.rating < min_rating):
                    continue
                if tokens:
                    haystack = (entry.content + " " + " ".join(entry.tags)).lower()
                    if not any(token in haystack for token in tokens):
                        continue
                matches.append(entry)

        def _sort_key(entry: MemoryEntry) -> float:
            moment = parse_instant(entry.timestamp)
            return moment.timestamp() if moment else 0.0

        matches.sort(key=_sort_key, reverse=True)
        return matches[: max(0, limit)]
