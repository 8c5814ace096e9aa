"""
Outcome ledger: append-only history of finished tasks.

Rows are never deleted. The only mutation is attaching a rating and
feedback to the most recent completed row, which overwrites any rating
already there so a later correction wins.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Optional, Union

from .context import CouncilContext
from .diagnostics import log_debug
from .models import HistoryEntry, clamp_rating, clean_str
from .storage import append_jsonl, iter_jsonl, lock_for, read_json, rewrite_jsonl, write_text_atomic

RESULT_LIMIT = 300


def _migrate_legacy(ctx: CouncilContext) -> None:
    """Move a legacy history.json array into history.jsonl once."""
    if ctx.history_file.exists() or not ctx.legacy_history_file.exists():
        return
    rows = read_json(ctx.legacy_history_file, default=[])
    if not isinstance(rows, list):
        return
    rewrite_jsonl(ctx.history_file, [r for r in rows if isinstance(r, dict)])
    log_debug("ledger", f"migrated {len(rows)} legacy history rows")


def _raw_rows(ctx: CouncilContext) -> List[Dict[str, Any]]:
    if ctx.history_file.exists():
        return list(iter_jsonl(ctx.history_file))
    rows = read_json(ctx.legacy_history_file, default=[])
    return [r for r in rows if isinstance(r, dict)] if isinstance(rows, list) else []


def read_history(ctx: CouncilContext) -> List[HistoryEntry]:
    """All readable ledger rows in insertion order."""
    now = ctx.now()
    entries: List[HistoryEntry] = []
    for row in _raw_rows(ctx):
        entry = HistoryEntry.from_dict(row, now)
        if entry is not None:
            entries.append(entry)
    return entries


def append_history_entry(ctx: CouncilContext, entry: Union[HistoryEntry, Dict[str, Any]]) -> HistoryEntry:
    raw = entry.to_dict() if isinstance(entry, HistoryEntry) else entry
    normalized = HistoryEntry.from_dict(raw, ctx.now())
    if normalized is None:
        raise ValueError("history entry must be a mapping")
    _migrate_legacy(ctx)
    append_jsonl(ctx.history_file, normalized.to_dict())
    return normalized


def count_rated(entries: List[HistoryEntry]) -> int:
    return sum(1 for e in entries if e.rating is not None)


def apply_rating_to_latest_history(
    ctx: CouncilContext,
    rating: int,
    feedback: Optional[str] = None,
    *,
    session_id: Optional[str] = None,
) -> Optional[HistoryEntry]:
    """Attach a rating to the newest completed row (optionally per session).

    Corrupt lines are carried through the rewrite untouched.
    """
    clamped = clamp_rating(rating)
    if clamped is None:
        return None
    _migrate_legacy(ctx)
    path = ctx.history_file
    if not path.exists():
        return None

    lock = lock_for(path)
    with lock:
        if not lock.acquired:
            log_debug("ledger", "history lock busy; rating not applied")
            return None
        lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
        now = ctx.now()
        for index in range(len(lines) - 1, -1, -1):
            try:
                row = json.loads(lines[index])
            except ValueError:
                continue
            entry = HistoryEntry.from_dict(row, now)
            if entry is None or entry.status != "completed":
                continue
            if session_id and entry.session_id != session_id:
                continue
            row["rating"] = clamped
            text = clean_str(feedback)
            if text:
                row["feedback"] = text
            lines[index] = json.dumps(row, ensure_ascii=False, default=str)
            write_text_atomic(path, "\n".join(line for line in lines if line.strip()) + "\n")
            return HistoryEntry.from_dict(row, now)
    return None
