"""Tests for council/cli.py."""

from __future__ import annotations

import json

import pytest

from council import cli


@pytest.fixture(autouse=True)
def council_home(tmp_path, monkeypatch):
    monkeypatch.setenv("COUNCIL_HOME", str(tmp_path))
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    return tmp_path


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 1
    assert "usage" in capsys.readouterr().out.lower()


def test_select_json(capsys, council_home):
    assert cli.main(["select", "Fix the parser bug", "--json", "--dry-run"]) == 0
    data = json.loads(capsys.readouterr().out)
    assert data["intent"] == "technical"
    assert set(data["agents"]) == {"engineer", "devil"}
    assert not (council_home / "data" / "work").exists()


def test_select_outcome_and_patterns(capsys):
    cli.main(["select", "Fix the parser bug", "--session", "s1"])
    capsys.readouterr()
    assert cli.main(["outcome", "fixed it", "--session", "s1", "--tool", "shell"]) == 0
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "completed"
    cli.main(["patterns"])
    assert "technical:" in capsys.readouterr().out


def test_rate_without_history(capsys):
    cli.main(["rate", "rating: 7"])
    assert json.loads(capsys.readouterr().out)["reason"] == "no-completed-history"


def test_status_and_memory(capsys):
    cli.main(["status"])
    out = capsys.readouterr().out
    assert "Memory tiers" in out
    assert "Last recompute: never" in out
    cli.main(["rate", "rating: 7"])
    capsys.readouterr()
    cli.main(["memory", "--tier", "warm"])
    assert "[feedback] r=7" in capsys.readouterr().out


def test_validate_config_reports_out_of_range(capsys, council_home):
    config = council_home / "config"
    config.mkdir()
    (config / "learning.json").write_text(json.dumps({"composition": {"max_agents": 99}}), encoding="utf-8")
    cli.main(["validate-config"])
    out = capsys.readouterr().out
    assert "clamped=1" in out
    assert "[WARN]" in out


def test_rotate_and_recompute(capsys):
    cli.main(["rotate"])
    assert json.loads(capsys.readouterr().out)["reason"] == "compression-not-required"
    cli.main(["recompute", "--force"])
    assert json.loads(capsys.readouterr().out)["reason"] == "empty-history"
