"""Tests for council/config_authority.py and CouncilContext settings resolution."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from council.config_authority import env_bool, env_int, resolve_section
from council.context import CouncilContext


def _write(path: Path, data: Dict[str, Any]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


class TestResolveSection:

    def test_schema_defaults_when_no_files(self, tmp_path):
        resolved = resolve_section(
            "recompute",
            baseline_path=tmp_path / "missing.json",
            runtime_path=tmp_path / "also-missing.json",
            env_overrides={},
        )
        assert resolved.data["history_delta_threshold"] == 30
        assert resolved.sources["history_delta_threshold"] == "schema"
        assert resolved.warnings == []

    def test_runtime_beats_baseline(self, tmp_path):
        baseline = _write(tmp_path / "baseline.json", {"recompute": {"history_delta_threshold": 40}})
        runtime = _write(tmp_path / "learning.json", {"recompute": {"history_delta_threshold": 50}})
        resolved = resolve_section("recompute", baseline_path=baseline, runtime_path=runtime, env_overrides={})
        assert resolved.data["history_delta_threshold"] == 50
        assert resolved.sources["history_delta_threshold"] == "runtime"

    def test_env_beats_runtime(self, tmp_path, monkeypatch):
        runtime = _write(tmp_path / "learning.json", {"recompute": {"history_delta_threshold": 50}})
        monkeypatch.setenv("TEST_HISTORY_DELTA", "70")
        resolved = resolve_section(
            "recompute",
            baseline_path=tmp_path / "missing.json",
            runtime_path=runtime,
            env_overrides={"history_delta_threshold": env_int("TEST_HISTORY_DELTA")},
        )
        assert resolved.data["history_delta_threshold"] == 70
        assert resolved.sources["history_delta_threshold"] == "env:TEST_HISTORY_DELTA"

    def test_invalid_env_is_reported_not_raised(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TEST_LLM", "sometimes")
        resolved = resolve_section(
            "intent",
            baseline_path=tmp_path / "missing.json",
            env_overrides={"llm_enabled": env_bool("TEST_LLM")},
        )
        assert resolved.data["llm_enabled"] is True
        assert "invalid_env_override:TEST_LLM" in resolved.warnings

    def test_out_of_range_runtime_value_reverts_to_default(self, tmp_path):
        runtime = _write(tmp_path / "learning.json", {"recompute": {"maxPatterns": 9999}})
        resolved = resolve_section(
            "recompute", baseline_path=tmp_path / "missing.json", runtime_path=runtime, env_overrides={},
        )
        assert resolved.data["max_patterns"] == 50
        assert resolved.sources["max_patterns"] == "schema"
        assert resolved.warnings

    def test_malformed_runtime_file_is_ignored(self, tmp_path):
        runtime = tmp_path / "learning.json"
        runtime.write_text("{not json", encoding="utf-8")
        resolved = resolve_section(
            "memory_tiers", baseline_path=tmp_path / "missing.json", runtime_path=runtime, env_overrides={},
        )
        assert resolved.data["hot_keep_count"] == 20


class TestCouncilContext:

    def test_learning_json_in_home_is_applied(self, tmp_path):
        _write(tmp_path / "config" / "learning.json", {
            "successPatternRecompute": {"historyDeltaThreshold": 5, "minIntervalMinutes": 1},
        })
        ctx = CouncilContext.create(tmp_path, baseline_path=tmp_path / "missing.json")
        assert ctx.section("recompute")["history_delta_threshold"] == 5
        assert ctx.section("recompute")["min_interval_minutes"] == 1

    def test_overrides_are_validated(self, tmp_path):
        ctx = CouncilContext.create(
            tmp_path,
            baseline_path=tmp_path / "missing.json",
            overrides={"memory_tiers": {"hot_keep_count": 3, "cold_max_count": -1}},
        )
        assert ctx.section("memory_tiers")["hot_keep_count"] == 3
        assert ctx.section("memory_tiers")["cold_max_count"] == 1000
        assert ctx.warnings

    def test_paths_live_under_root(self, tmp_path):
        ctx = CouncilContext.create(tmp_path, baseline_path=tmp_path / "missing.json")
        assert ctx.tier_file("warm") == tmp_path / "data" / "memory" / "warm.jsonl"
        assert ctx.history_file == tmp_path / "data" / "history.jsonl"
        assert ctx.profile_file == tmp_path / "data" / "profile.json"

    def test_from_env_uses_council_home(self, tmp_path, monkeypatch):
        monkeypatch.setenv("COUNCIL_HOME", str(tmp_path / "home"))
        monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        ctx = CouncilContext.from_env()
        assert ctx.root == tmp_path / "home"
        assert ctx.intent_oracle is not None
