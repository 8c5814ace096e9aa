"""
WorkItem lifecycle: created when a task starts, finalized exactly once.

Each item lives in its own directory under data/work/ as META.json.
"""

from __future__ import annotations

import secrets
from typing import List, Optional, Sequence

from .context import CouncilContext
from .diagnostics import log_debug
from .models import ExecutionInfo, WorkItem, normalize_complexity, parse_instant, to_iso
from .storage import read_json, write_json
from .task_context import collapse_text

META_FILE = "META.json"
RESULT_SUMMARY_LIMIT = 300


def _compact_stamp(ctx: CouncilContext) -> str:
    now = ctx.now()
    return now.strftime("%Y%m%dT%H%M%S") + f"{now.microsecond // 1000:03d}"


def _item_dir(ctx: CouncilContext, item_id: str):
    return ctx.work_dir / f"{item_id}_work"


def save_work_item(ctx: CouncilContext, item: WorkItem) -> None:
    write_json(_item_dir(ctx, item.id) / META_FILE, item.to_dict())


def create_work_item(
    ctx: CouncilContext,
    *,
    session_id: str,
    prompt: str,
    intent: str,
    agents: Sequence[str],
    project: Optional[str] = None,
    complexity: Optional[str] = None,
) -> WorkItem:
    stamp = to_iso(ctx.now())
    item = WorkItem(
        id=f"{_compact_stamp(ctx)}_{secrets.token_hex(2)}",
        session_id=session_id or "unknown",
        prompt=prompt or "",
        intent=intent,
        created_at=stamp,
        updated_at=stamp,
        project=project,
        complexity=normalize_complexity(complexity),
        agents=list(agents),
    )
    save_work_item(ctx, item)
    return item


def list_work_items(ctx: CouncilContext) -> List[WorkItem]:
    """All readable work items, newest first."""
    if not ctx.work_dir.exists():
        return []
    now = ctx.now()
    items: List[WorkItem] = []
    for meta_path in ctx.work_dir.glob(f"*_work/{META_FILE}"):
        item = WorkItem.from_dict(read_json(meta_path), now)
        if item is None:
            log_debug("work", f"skipping unreadable work item {meta_path}")
            continue
        items.append(item)

    def _created(item: WorkItem) -> float:
        moment = parse_instant(item.created_at)
        return moment.timestamp() if moment else 0.0

    items.sort(key=lambda i: (_created(i), i.id), reverse=True)
    return items


def find_open_work_item(ctx: CouncilContext, session_id: Optional[str]) -> Optional[WorkItem]:
    """Newest in-progress item for the session, else newest in-progress overall."""
    open_items = [item for item in list_work_items(ctx) if item.is_open]
    if session_id:
        for item in open_items:
            if item.session_id == session_id:
                return item
    return open_items[0] if open_items else None


def finalize_latest_work_item(
    ctx: CouncilContext,
    *,
    session_id: Optional[str],
    success: bool,
    result_summary: str,
    execution: ExecutionInfo,
    complexity: Optional[str] = None,
) -> Optional[WorkItem]:
    item = find_open_work_item(ctx, session_id)
    if item is None:
        return None
    item.status = "completed" if success else "failed"
    item.updated_at = to_iso(ctx.now())
    item.execution = execution
    item.result_summary = collapse_text(result_summary, RESULT_SUMMARY_LIMIT)
    if complexity and not item.complexity:
        item.complexity = normalize_complexity(complexity)
    save_work_item(ctx, item)
    return item
