"""Tests for council/composition.py."""

from __future__ import annotations

from council.composition import (
    AgentConstraints,
    CompositionPolicy,
    apply_agent_constraints,
    compose_dynamic_agents,
    parse_agent_constraints,
)
from council.scoring import AgentScores

ROLES = ["engineer", "analyst", "devil", "researcher", "writer"]


def _scores(scores, baseline):
    base_order = {r: i for i, r in enumerate(baseline)}
    return AgentScores(
        scores=dict(scores),
        baseline=list(baseline),
        baseline_ranked=sorted(baseline, key=lambda r: (-scores.get(r, 0.0), base_order[r])),
        extras=[],
        candidates=list(baseline) + [r for r in scores if r not in baseline],
    )


class TestCompose:
    def test_strong_outsider_replaces_weakest_baseline(self):
        scored = _scores(
            {"analyst": 5, "engineer": 1, "devil": 0.5, "researcher": 3},
            ["analyst", "engineer", "devil"],
        )
        result = compose_dynamic_agents(scored, {"researcher": 1.0}, CompositionPolicy(max_agents=3))
        assert result.agents == ["analyst", "researcher", "engineer"]
        assert result.anchor == "analyst"
        assert result.injected == ["researcher"]
        assert result.replaced == ["devil"]

    def test_free_slot_is_filled_without_replacement(self):
        scored = _scores({"analyst": 2, "engineer": 1, "researcher": 1.5}, ["analyst", "engineer"])
        result = compose_dynamic_agents(scored, {"researcher": 0.9})
        assert set(result.agents) == {"analyst", "engineer", "researcher"}
        assert result.replaced == []

    def test_anchor_is_never_displaced(self):
        scored = _scores({"analyst": -3, "writer": 8, "researcher": 6}, ["analyst"])
        result = compose_dynamic_agents(scored, {"researcher": 2.0}, CompositionPolicy(max_agents=2))
        assert result.agents == ["writer", "analyst"]
        assert result.anchor == "analyst"

    def test_min_base_agents_respected(self):
        scored = _scores({"a": 5, "b": 1, "c": 9}, ["a", "b"])
        policy = CompositionPolicy(max_agents=2, min_base_agents=2)
        result = compose_dynamic_agents(scored, {"c": 2.0}, policy)
        assert sorted(result.agents) == ["a", "b"]

    def test_injection_gating(self):
        scored = _scores({"analyst": 1, "writer": 1.0, "researcher": 3.0}, ["analyst"])
        result = compose_dynamic_agents(scored, {"writer": 2.0, "researcher": 0.2})
        assert result.agents == ["analyst"]

    def test_very_strong_candidate_needs_no_similarity(self):
        scored = _scores({"analyst": 1, "writer": 7.5}, ["analyst"])
        result = compose_dynamic_agents(scored, {})
        assert result.agents == ["writer", "analyst"]

    def test_replacement_needs_margin(self):
        scored = _scores({"analyst": 5, "engineer": 2.5, "researcher": 3.0}, ["analyst", "engineer"])
        result = compose_dynamic_agents(scored, {"researcher": 1.0}, CompositionPolicy(max_agents=2))
        assert result.agents == ["analyst", "engineer"]

    def test_never_exceeds_max_agents(self):
        scores = {"analyst": 1.0}
        scores.update({f"x{i}": 3.0 + i for i in range(6)})
        scored = _scores(scores, ["analyst"])
        boosts = {f"x{i}": 1.0 for i in range(6)}
        result = compose_dynamic_agents(scored, boosts, CompositionPolicy(max_agents=4))
        assert len(result.agents) == 4
        assert "analyst" in result.agents


class TestParseConstraints:
    def test_english_directives(self):
        c = parse_agent_constraints("Please review this.\nuse researcher\nwithout devil", ROLES)
        assert c.include == ["researcher"]
        assert c.exclude == ["devil"]
        assert not c.only

    def test_chinese_directives(self):
        c = parse_agent_constraints("只用 writer 和 analyst", ROLES)
        assert c.only
        assert c.include == ["writer", "analyst"]
        c = parse_agent_constraints("不要 devil", ROLES)
        assert c.exclude == ["devil"]

    def test_agents_line_and_plus_list(self):
        assert parse_agent_constraints("agents: engineer, writer", ROLES).include == ["engineer", "writer"]
        assert parse_agent_constraints("engineer + analyst please", ROLES).include == ["engineer", "analyst"]

    def test_preference_lines_are_ignored(self):
        c = parse_agent_constraints("my preferred roles: exclude writer", ROLES)
        assert not c.active

    def test_unknown_names_are_ignored(self):
        c = parse_agent_constraints("only use ghost", ROLES)
        assert not c.active

    def test_role_names_need_word_boundaries(self):
        c = parse_agent_constraints("use the devilish engineering tricks", ROLES)
        assert c.include == []


class TestApplyConstraints:
    def test_only_with_exclusion(self):
        c = parse_agent_constraints("only use writer and analyst\nexclude analyst", ROLES)
        assert apply_agent_constraints(["engineer", "devil"], c, baseline=["engineer"], known_roles=ROLES) == ["writer"]

    def test_include_goes_first(self):
        c = AgentConstraints(include=["writer"])
        assert apply_agent_constraints(["analyst", "engineer"], c) == ["writer", "analyst", "engineer"]

    def test_cap(self):
        c = AgentConstraints(include=["writer", "researcher"])
        result = apply_agent_constraints(["analyst", "engineer", "devil"], c)
        assert result == ["writer", "researcher", "analyst", "engineer"]

    def test_excluding_everything_falls_back_to_baseline(self):
        c = AgentConstraints(exclude=["analyst", "engineer"])
        result = apply_agent_constraints(["analyst", "engineer"], c, baseline=["devil", "analyst"], known_roles=ROLES)
        assert result == ["devil"]

    def test_then_to_known_roles(self):
        c = AgentConstraints(exclude=["analyst"])
        result = apply_agent_constraints(["analyst"], c, baseline=["analyst"], known_roles=ROLES)
        assert result == ["engineer", "devil", "researcher", "writer"]
