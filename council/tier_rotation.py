"""
Hot -> warm -> cold rotation policy.

rotate_tiers() is pure: it takes the three tiers and a clock reading and
returns the new tiers plus a report. rotate_memory() loads, rotates and
persists under the memory lock.

Entries are conserved across hot->warm and warm->cold (duplicates by
identity collapse into one). Only the cold cap discards data.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .diagnostics import log_debug
from .memory_tiers import EventStore
from .models import MemoryEntry, parse_instant


@dataclass(frozen=True)
class RotationPolicy:
    hot_keep_count: int = 20
    compression_ratio: float = 0.85
    warm_retention_days: int = 21
    warm_max_count: int = 300
    cold_max_count: int = 1000

    @classmethod
    def from_section(cls, section: Dict[str, Any]) -> "RotationPolicy":
        defaults = cls()
        return cls(**{k: section.get(k, getattr(defaults, k)) for k in defaults.__dataclass_fields__})


@dataclass
class RotationReport:
    reason: str
    hot_to_warm: int = 0
    warm_to_cold: int = 0
    cold_pruned: int = 0
    final_hot: int = 0
    final_warm: int = 0
    final_cold: int = 0
    summary: str = ""
    degraded: bool = False

    @property
    def moved_any(self) -> bool:
        return bool(self.hot_to_warm or self.warm_to_cold or self.cold_pruned)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reason": self.reason,
            "archivedCount": self.hot_to_warm,
            "hotToWarmCount": self.hot_to_warm,
            "warmToColdCount": self.warm_to_cold,
            "coldPrunedCount": self.cold_pruned,
            "finalHotCount": self.final_hot,
            "finalWarmCount": self.final_warm,
            "finalColdCount": self.final_cold,
            "summary": self.summary,
            "degraded": self.degraded,
        }


@dataclass
class RotationResult:
    hot: List[MemoryEntry]
    warm: List[MemoryEntry]
    cold: List[MemoryEntry]
    report: RotationReport


def _epoch(entry: MemoryEntry) -> float:
    moment = parse_instant(entry.timestamp)
    return moment.timestamp() if moment else 0.0


def _chronological(entries: Iterable[MemoryEntry]) -> List[MemoryEntry]:
    # sorted() is stable, so equal timestamps keep insertion order.
    return sorted(entries, key=_epoch)


def merge_unique(base: List[MemoryEntry], incoming: List[MemoryEntry], tier: str) -> Tuple[List[MemoryEntry], int]:
    """Append incoming to base, dropping later duplicates by identity.

    Returns the merged list and how many incoming entries were inserted.
    """
    seen = set()
    merged: List[MemoryEntry] = []
    for entry in base:
        key = entry.identity()
        if key in seen:
            continue
        seen.add(key)
        merged.append(entry)
    inserted = 0
    for entry in incoming:
        key = entry.identity()
        if key in seen:
            continue
        seen.add(key)
        entry.tier = tier
        merged.append(entry)
        inserted += 1
    return merged, inserted


def rotate_tiers(
    hot: List[MemoryEntry],
    warm: List[MemoryEntry],
    cold: List[MemoryEntry],
    *,
    now: datetime,
    policy: Optional[RotationPolicy] = None,
    usage_ratio: Optional[float] = None,
) -> RotationResult:
    policy = policy or RotationPolicy()
    hot_keep = max(0, policy.hot_keep_count)

    # 1) hot overflow, or token pressure
    over_count = len(hot) > hot_keep
    under_pressure = usage_ratio is not None and usage_ratio >= policy.compression_ratio
    moved: List[MemoryEntry] = []
    kept_hot = list(hot)
    if over_count or under_pressure:
        excess = len(hot) - hot_keep
        if excess > 0:
            ordered = _chronological(hot)
            moved_ids = {id(e) for e in ordered[:excess]}
            moved = ordered[:excess]
            kept_hot = [e for e in hot if id(e) not in moved_ids]
    if over_count:
        reason = "hot-over-capacity"
    elif under_pressure:
        reason = "compression-ratio"
    else:
        reason = "compression-not-required"

    # 2) merge into warm
    merged_warm, _ = merge_unique(list(warm), moved, "warm")

    # 3) age out of warm, then cap what is left in the window
    cutoff = now - timedelta(days=policy.warm_retention_days)
    aged: List[MemoryEntry] = []
    in_window: List[MemoryEntry] = []
    for entry in merged_warm:
        moment = parse_instant(entry.timestamp)
        if moment is not None and moment < cutoff:
            aged.append(entry)
        else:
            in_window.append(entry)
    overflow: List[MemoryEntry] = []
    if len(in_window) > policy.warm_max_count:
        ordered = _chronological(in_window)
        overflow = ordered[: len(in_window) - policy.warm_max_count]
        in_window = ordered[len(overflow):]
    to_cold = _chronological(aged + overflow)

    # 4) merge into cold, prune oldest beyond the cap
    merged_cold, _ = merge_unique(list(cold), to_cold, "cold")
    merged_cold = _chronological(merged_cold)
    pruned = max(0, len(merged_cold) - policy.cold_max_count)
    if pruned:
        merged_cold = merged_cold[pruned:]

    final_warm = _chronological(in_window)
    report = RotationReport(
        reason=reason,
        hot_to_warm=len(moved),
        warm_to_cold=len(to_cold),
        cold_pruned=pruned,
        final_hot=len(kept_hot),
        final_warm=len(final_warm),
        final_cold=len(merged_cold),
    )
    return RotationResult(hot=kept_hot, warm=final_warm, cold=merged_cold, report=report)


def summarize_recent(entries: List[MemoryEntry], limit: int = 10) -> str:
    recent = entries[-limit:] if limit > 0 else []
    if not recent:
        return "No notable recent events."
    return "\n".join(f"- {e.content}" for e in recent)


def rotate_memory(
    store: EventStore,
    *,
    usage_ratio: Optional[float] = None,
    policy: Optional[RotationPolicy] = None,
) -> RotationReport:
    """Load, rotate and persist all three tiers under the memory lock."""
    policy = policy or RotationPolicy.from_section(store.ctx.section("memory_tiers"))
    lock = store.lock()
    with lock:
        if not lock.acquired:
            log_debug("rotation", "memory lock busy; skipping rotation")
            hot = store.read_all("hot")
            return RotationReport(
                reason="lock-busy",
                final_hot=len(hot),
                final_warm=len(store.read_all("warm")),
                final_cold=len(store.read_all("cold")),
                summary=summarize_recent(hot),
                degraded=True,
            )
        hot = store.read_all("hot")
        summary = summarize_recent(hot)
        result = rotate_tiers(
            hot,
            store.read_all("warm"),
            store.read_all("cold"),
            now=store.ctx.now(),
            policy=policy,
            usage_ratio=usage_ratio,
        )
        if result.report.moved_any:
            store.write_tier("cold", result.cold)
            store.write_tier("warm", result.warm)
            store.write_tier("hot", result.hot)
    result.report.summary = summary
    return result.report
