#!/usr/bin/env python3
"""
Council CLI - inspect and drive the memory and role-selection engine.

Usage:
    council status
    council select "Refactor the parser and add tests" --session s1
    council rotate --usage-ratio 0.9
    council recompute --force
    council rate "rating: 9" --session s1
    council patterns --limit 10
    council memory --tier warm --limit 20
    council validate-config
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from . import engine
from .context import CouncilContext
from .memory_tiers import EventStore
from .models import TIERS
from .outcome_ledger import count_rated, read_history
from .recompute import load_recompute_meta
from .role_catalog import load_role_catalog
from .storage import read_json
from .success_patterns import load_success_patterns
from .tuneables_schema import validate_tuneables


def _configure_output():
    """Ensure UTF-8 output on terminals that default to another encoding."""
    for stream in (sys.stdout, sys.stderr):
        if hasattr(stream, "reconfigure"):
            try:
                stream.reconfigure(encoding="utf-8", errors="replace")
            except (OSError, ValueError):
                continue


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


def cmd_status(ctx: CouncilContext, args):
    """Show tier sizes, ledger counts and recompute bookkeeping."""
    store = EventStore(ctx)
    history = read_history(ctx)
    meta = load_recompute_meta(ctx)
    catalog = load_role_catalog(ctx)

    print("\n" + "=" * 60)
    print("  COUNCIL - adaptive role selection")
    print("=" * 60)
    print(f"\n  Home: {ctx.root}")
    print(f"  Roles: {', '.join(catalog.known_roles())} ({catalog.source})\n")
    print("Memory tiers")
    for tier, count in store.counts().items():
        print(f"   {tier}: {count}")
    print("\nOutcome ledger")
    print(f"   Rows: {len(history)}")
    print(f"   Rated: {count_rated(history)}")
    print("\nSuccess patterns")
    print(f"   Stored: {len(load_success_patterns(ctx))}")
    print(f"   Last recompute: {meta.last_run_at or 'never'} ({meta.last_reason or 'n/a'})")
    print()


def cmd_select(ctx: CouncilContext, args):
    """Select a team for a prompt."""
    selection = engine.select_team(
        ctx,
        args.prompt,
        session_id=args.session,
        project=args.project,
        tools=args.tool or None,
        create_work=not args.dry_run,
    )
    if args.json:
        _print_json(selection.to_dict())
        return
    for line in selection.explain():
        print(line)
    if selection.context_lines:
        print("\ncontext:")
        for line in selection.context_lines:
            print(f"  {line}")


def cmd_outcome(ctx: CouncilContext, args):
    """Record the outcome of the open work item."""
    report = engine.record_outcome(
        ctx,
        session_id=args.session,
        result=args.result,
        success=not args.failed,
        tools_used=args.tool or [],
        execution_time=args.execution_ms,
        model_calls=args.model_calls,
        error_message=args.error,
    )
    _print_json(report.to_dict())


def cmd_rotate(ctx: CouncilContext, args):
    report = engine.rotate_memory(ctx, usage_ratio=args.usage_ratio)
    _print_json(report.to_dict())


def cmd_recompute(ctx: CouncilContext, args):
    result = engine.recompute(ctx, force=args.force)
    _print_json(result.to_dict())


def cmd_rate(ctx: CouncilContext, args):
    result = engine.capture_feedback(ctx, args.text, session_id=args.session)
    _print_json(result.to_dict())


def cmd_patterns(ctx: CouncilContext, args):
    patterns = load_success_patterns(ctx)
    if not patterns:
        print("No success patterns yet.")
        return
    for p in patterns[: args.limit]:
        extras = ", ".join(x for x in (p.tool_combo, p.project, p.complexity) if x)
        suffix = f" [{extras}]" if extras else ""
        print(f"{p.success_rate:.3f}  n={p.sample_size:<3} {p.task}: {p.method}{suffix}")


def cmd_memory(ctx: CouncilContext, args):
    store = EventStore(ctx)
    if args.query:
        entries = store.find_relevant(args.query, tiers=[args.tier], limit=args.limit)
    else:
        entries = list(reversed(store.read(args.tier, args.limit)))
    for e in entries:
        rating = f" r={e.rating}" if e.rating is not None else ""
        print(f"{e.timestamp} [{e.type}]{rating} {e.content[:120]}")


def cmd_validate_config(ctx: CouncilContext, args):
    data = read_json(ctx.learning_config_file, default={})
    r = validate_tuneables(data if isinstance(data, dict) else {})
    print(f"{ctx.learning_config_file}: ok={r.ok}, warnings={len(r.warnings)}, "
          f"clamped={len(r.clamped)}, unknown={len(r.unknown_keys)}")
    for w in r.warnings:
        print(f"  [WARN] {w}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="council",
        description="Council CLI - adaptive memory and role selection",
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("status", help="Show engine state")

    select_parser = subparsers.add_parser("select", help="Select a team for a prompt")
    select_parser.add_argument("prompt")
    select_parser.add_argument("--session", default=None)
    select_parser.add_argument("--project", default=None)
    select_parser.add_argument("--tool", action="append", help="Expected tool (repeatable)")
    select_parser.add_argument("--dry-run", action="store_true", help="Do not open a work item")
    select_parser.add_argument("--json", action="store_true")

    outcome_parser = subparsers.add_parser("outcome", help="Record the result of the open work item")
    outcome_parser.add_argument("result")
    outcome_parser.add_argument("--session", default=None)
    outcome_parser.add_argument("--failed", action="store_true")
    outcome_parser.add_argument("--error", default=None)
    outcome_parser.add_argument("--tool", action="append")
    outcome_parser.add_argument("--execution-ms", type=int, default=0)
    outcome_parser.add_argument("--model-calls", type=int, default=0)

    rotate_parser = subparsers.add_parser("rotate", help="Rotate hot/warm/cold memory")
    rotate_parser.add_argument("--usage-ratio", type=float, default=None)

    recompute_parser = subparsers.add_parser("recompute", help="Rebuild success patterns")
    recompute_parser.add_argument("--force", action="store_true")

    rate_parser = subparsers.add_parser("rate", help="Apply a rating message")
    rate_parser.add_argument("text")
    rate_parser.add_argument("--session", default=None)

    patterns_parser = subparsers.add_parser("patterns", help="List success patterns")
    patterns_parser.add_argument("--limit", type=int, default=20)

    memory_parser = subparsers.add_parser("memory", help="Show memory entries")
    memory_parser.add_argument("--tier", choices=TIERS, default="hot")
    memory_parser.add_argument("--limit", type=int, default=20)
    memory_parser.add_argument("--query", default=None)

    subparsers.add_parser("validate-config", help="Validate config/learning.json")
    return parser


def main(argv=None):
    _configure_output()
    parser = build_parser()
    args = parser.parse_args(argv)

    commands = {
        "status": cmd_status,
        "select": cmd_select,
        "outcome": cmd_outcome,
        "rotate": cmd_rotate,
        "recompute": cmd_recompute,
        "rate": cmd_rate,
        "patterns": cmd_patterns,
        "memory": cmd_memory,
        "validate-config": cmd_validate_config,
    }
    if args.command not in commands:
        parser.print_help()
        return 1
    commands[args.command](CouncilContext.from_env(), args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
