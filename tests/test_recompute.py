"""Tests for council/recompute.py."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from council.context import CouncilContext
from council.memory_tiers import EventStore
from council.models import RecomputeMeta, to_iso
from council.outcome_ledger import append_history_entry
from council.profile import read_profile_document
from council.recompute import (
    LedgerCounts,
    RecomputePolicy,
    decide,
    load_recompute_meta,
    maybe_recompute_success_patterns,
    record_learning_event,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _meta(history=0, rated=0, minutes_ago=None):
    last_run = to_iso(NOW - timedelta(minutes=minutes_ago)) if minutes_ago is not None else None
    return RecomputeMeta(last_run_at=last_run, last_history_count=history, last_rated_count=rated)


class TestDecide:
    def test_empty_history_never_runs(self):
        decision = decide(LedgerCounts(0, 0), _meta(), NOW, force=True)
        assert (decision.run, decision.reason) == (False, "empty-history")

    def test_force(self):
        decision = decide(LedgerCounts(1, 0), _meta(1, 0, minutes_ago=1), NOW, force=True)
        assert (decision.run, decision.reason) == (True, "force")

    @pytest.mark.parametrize("count,expected", [(29, False), (30, True)])
    def test_history_threshold_boundary(self, count, expected):
        decision = decide(LedgerCounts(count, 0), _meta(), NOW)
        assert decision.run is expected
        assert decision.reason == ("history-threshold" if expected else "threshold-not-met")
        assert decision.delta_history == count

    def test_rating_threshold(self):
        decision = decide(LedgerCounts(40, 15), _meta(35, 5, minutes_ago=60), NOW)
        assert (decision.run, decision.reason) == (True, "rating-threshold")
        assert decision.delta_rated == 10

    def test_cooldown_blocks_ordinary_thresholds(self):
        decision = decide(LedgerCounts(60, 0), _meta(10, 0, minutes_ago=5), NOW)
        assert (decision.run, decision.reason) == (False, "cooldown")

    def test_force_deltas_bypass_cooldown(self):
        history = decide(LedgerCounts(100, 0), _meta(10, 0, minutes_ago=1), NOW)
        assert (history.run, history.reason) == (True, "history-force-threshold")
        rated = decide(LedgerCounts(40, 30), _meta(35, 0, minutes_ago=1), NOW)
        assert (rated.run, rated.reason) == (True, "rating-force-threshold")

    def test_shrinking_ledger_resets(self):
        decision = decide(LedgerCounts(5, 1), _meta(50, 3, minutes_ago=30), NOW)
        assert (decision.run, decision.reason) == (True, "history-reset")
        assert decision.delta_history == 0

    def test_cooldown_expires(self):
        meta = _meta(0, 0, minutes_ago=14)
        assert decide(LedgerCounts(30, 0), meta, NOW).reason == "cooldown"
        assert decide(LedgerCounts(30, 0), meta, NOW + timedelta(minutes=1)).reason == "history-threshold"


class TestPolicy:
    def test_force_delta_defaults_to_three_times_threshold(self):
        policy = RecomputePolicy.from_section({"history_delta_threshold": 20, "force_delta_without_interval": 0})
        assert policy.force_delta_without_interval == 60

    def test_force_delta_below_threshold_is_raised(self):
        policy = RecomputePolicy.from_section({"history_delta_threshold": 20, "force_delta_without_interval": 5})
        assert policy.force_delta_without_interval == 60

    def test_explicit_force_delta_kept(self):
        policy = RecomputePolicy.from_section({"history_delta_threshold": 20, "force_delta_without_interval": 45})
        assert policy.force_delta_without_interval == 45


def _seed(ctx, count, rated=0):
    for i in range(count):
        append_history_entry(ctx, {
            "sessionId": f"s{i}",
            "intent": "technical",
            "agents": ["engineer"],
            "result": "ok",
            "status": "completed",
            "complexity": "low",
            "rating": 8 if i < rated else None,
            "timestamp": to_iso(NOW - timedelta(hours=count - i)),
        })


def test_maybe_recompute_writes_patterns_and_meta(tmp_path):
    ctx = CouncilContext.create(tmp_path, clock=lambda: NOW, baseline_path=tmp_path / "missing.json")
    _seed(ctx, 30, rated=2)

    result = maybe_recompute_success_patterns(ctx)
    assert result.triggered
    assert result.reason == "history-threshold"
    assert result.updated_pattern_count == 1
    assert result.run_at == to_iso(NOW)

    meta = load_recompute_meta(ctx)
    assert meta.last_history_count == 30
    assert meta.last_rated_count == 2
    assert meta.last_reason == "history-threshold"
    document = read_profile_document(ctx)
    assert document["successPatterns"][0]["sampleSize"] == 30

    again = maybe_recompute_success_patterns(ctx)
    assert not again.triggered
    assert again.reason == "cooldown"


def test_maybe_recompute_below_threshold_leaves_profile(tmp_path):
    ctx = CouncilContext.create(tmp_path, clock=lambda: NOW, baseline_path=tmp_path / "missing.json")
    _seed(ctx, 3)
    result = maybe_recompute_success_patterns(ctx)
    assert not result.triggered
    assert result.reason == "threshold-not-met"
    assert not ctx.profile_file.exists()

    forced = maybe_recompute_success_patterns(ctx, force=True)
    assert forced.triggered
    assert forced.reason == "force"


def test_record_learning_event_only_when_triggered(tmp_path):
    ctx = CouncilContext.create(tmp_path, clock=lambda: NOW, baseline_path=tmp_path / "missing.json")
    store = EventStore(ctx)
    _seed(ctx, 2)
    skipped = maybe_recompute_success_patterns(ctx)
    record_learning_event(store, skipped, "s1")
    assert store.read("warm") == []

    ran = maybe_recompute_success_patterns(ctx, force=True)
    record_learning_event(store, ran, "s1")
    [entry] = store.read("warm")
    assert entry.type == "learning_event"
    assert "force" in entry.tags
    assert entry.metadata["updatedPatternCount"] == 1
