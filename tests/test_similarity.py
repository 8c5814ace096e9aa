"""Tests for council/similarity.py."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone

import pytest

from council.context import CouncilContext
from council.models import HistoryEntry, to_iso
from council.outcome_ledger import read_history
from council.similarity import (
    TaskProfile,
    build_similarity_signal,
    complexity_similarity,
    intent_similarity,
    outcome_signal,
    project_similarity,
    recency_weight,
    row_similarity,
    SimilarityWeights,
    text_similarity,
    tool_similarity,
)

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

TASK = TaskProfile(
    intent="technical",
    complexity="medium",
    project="atlas",
    tools=["shell"],
    prompt="fix parser bug",
)


def _row(**overrides):
    data = dict(
        session_id="s",
        intent="technical",
        agents=["engineer", "devil"],
        result="fix parser bug",
        status="completed",
        timestamp=to_iso(NOW),
        project="atlas",
        complexity="medium",
        tools_used=["shell"],
        rating=10,
    )
    data.update(overrides)
    return HistoryEntry(**data)


class TestSubScores:
    def test_intent(self):
        assert intent_similarity("technical", "technical") == 1.0
        assert intent_similarity("technical", None) == 0.25
        assert intent_similarity("technical", "") == 0.25
        assert intent_similarity("technical", "creative") == 0.08

    def test_project(self):
        assert project_similarity("Atlas", "atlas", True) == 1.0
        assert project_similarity("atlas", "zephyr", True) == 0.05
        assert project_similarity(None, "atlas", True) == 0.35
        assert project_similarity("atlas", "atlas", False) == 0.2

    def test_complexity(self):
        assert complexity_similarity("low", "low") == 1.0
        assert complexity_similarity("low", "medium") == 0.6
        assert complexity_similarity("low", "high") == 0.25
        assert complexity_similarity(None, "high") == 0.45

    def test_tools(self):
        assert tool_similarity([], []) == 0.4
        assert tool_similarity(["shell"], []) == 0.25
        assert tool_similarity(["shell", "web"], ["Shell"]) == 0.5

    def test_text(self):
        assert text_similarity("", "anything") == 0.2
        assert text_similarity("fix parser", "parser fix") == 1.0

    def test_outcome(self):
        assert outcome_signal(_row(rating=10)) == 1.0
        assert outcome_signal(_row(rating=1)) == -1.0
        assert outcome_signal(_row(rating=None)) == 0.35
        assert outcome_signal(_row(rating=None, status="failed")) == -0.55
        assert outcome_signal(_row(rating=None, status="unknown")) == 0.0

    def test_recency(self):
        assert recency_weight(to_iso(NOW), NOW) == pytest.approx(1.0)
        assert recency_weight(to_iso(NOW - timedelta(days=45)), NOW) == pytest.approx(0.5)
        assert recency_weight(None, NOW) == 0.65
        assert recency_weight(to_iso(NOW + timedelta(days=3)), NOW) == pytest.approx(1.0)


def test_identical_row_is_fully_similar():
    assert row_similarity(TASK, _row(), SimilarityWeights()) == pytest.approx(1.0)


def test_identical_row_contribution_is_clamped_and_shared():
    signal = build_similarity_signal(TASK, [_row()], NOW)
    share = 4.0 / math.sqrt(2)
    assert signal.agent_score_boost["engineer"] == pytest.approx(share)
    assert signal.agent_score_boost["devil"] == pytest.approx(share)
    assert signal.top_cases == [
        "2026-03-01 | sim=1.00 | influence=+4.00 | agents=engineer + devil "
        "(intent=technical, project=atlas, complexity=medium, tools=shell)"
    ]


def test_failed_rows_push_scores_down():
    signal = build_similarity_signal(TASK, [_row(rating=None, status="failed")], NOW)
    assert signal.agent_score_boost["engineer"] < 0


def test_dissimilar_cross_intent_row_is_noise():
    row = _row(
        intent="creative", project="zephyr", complexity="low",
        tools_used=["web"], result="write a poem",
    )
    assert row_similarity(TASK, row, SimilarityWeights()) < 0.22
    assert build_similarity_signal(TASK, [row], NOW).agent_score_boost == {}


def test_rows_without_outcome_are_dropped():
    signal = build_similarity_signal(TASK, [_row(rating=None, status="unknown")], NOW)
    assert signal.agent_score_boost == {}
    assert signal.top_cases == []


def test_unknown_roles_are_ignored():
    signal = build_similarity_signal(TASK, [_row(agents=["engineer", "ghost"])], NOW, known_agents=["engineer"])
    assert set(signal.agent_score_boost) == {"engineer"}
    assert signal.agent_score_boost["engineer"] == pytest.approx(4.0)


def test_top_cases_capped_and_ordered():
    rows = [
        _row(rating=7, timestamp=to_iso(NOW - timedelta(days=10))),
        _row(rating=10),
        _row(rating=8, timestamp=to_iso(NOW - timedelta(days=1))),
        _row(rating=9, timestamp=to_iso(NOW - timedelta(days=2))),
    ]
    signal = build_similarity_signal(TASK, rows, NOW)
    assert len(signal.top_cases) == 3
    assert len(signal.cases) == 4
    contributions = [abs(c.contribution) for c in signal.cases]
    assert contributions == sorted(contributions, reverse=True)


def test_row_without_intent_is_not_damped():
    # 0.35 * 0.25 + 0.20 + 0.15 + 0.15 + 0.15
    assert row_similarity(TASK, _row(intent=None), SimilarityWeights()) == pytest.approx(0.7375)


@pytest.mark.parametrize("intent", ["analysis", "research", "technical"])
def test_ledger_row_without_intent_scores_the_same_for_every_intent(tmp_path, intent):
    ctx = CouncilContext.create(tmp_path, clock=lambda: NOW, baseline_path=tmp_path / "missing.json")
    ctx.history_file.parent.mkdir(parents=True, exist_ok=True)
    ctx.history_file.write_text(
        '{"sessionId": "s1", "agents": ["engineer"], "result": "fix parser bug", '
        '"status": "completed", "timestamp": "2026-03-01T12:00:00.000Z", "project": "atlas", '
        '"complexity": "medium", "toolsUsed": ["shell"], "rating": 10}\n',
        encoding="utf-8",
    )
    rows = read_history(ctx)
    assert rows[0].intent is None

    task = TaskProfile(intent=intent, complexity="medium", project="atlas", tools=["shell"], prompt="fix parser bug")
    signal = build_similarity_signal(task, rows, NOW)
    assert signal.cases[0].similarity == pytest.approx(0.7375)
    assert signal.agent_score_boost["engineer"] == pytest.approx(0.7375 * 4.5)
    assert "intent=n/a" in signal.top_cases[0]
