"""Tests for council/diagnostics.py."""

from __future__ import annotations

import io
import sys

from council import diagnostics


def test_log_debug_silent_by_default(monkeypatch):
    monkeypatch.delenv("COUNCIL_DEBUG", raising=False)
    err = io.StringIO()
    monkeypatch.setattr(sys, "stderr", err)
    diagnostics.log_debug("test", "hello")
    assert err.getvalue() == ""


def test_log_debug_writes_with_exception(monkeypatch):
    monkeypatch.setenv("COUNCIL_DEBUG", "1")
    err = io.StringIO()
    monkeypatch.setattr(sys, "stderr", err)
    try:
        raise ValueError("bad value")
    except ValueError as e:
        diagnostics.log_debug("test", "failed", e)
    text = err.getvalue()
    assert "[COUNCIL][test] failed: bad value" in text
    assert "Traceback" in text


def test_component_list_limits_tracing(monkeypatch):
    monkeypatch.setenv("COUNCIL_DEBUG", "ledger, Rotation")
    err = io.StringIO()
    monkeypatch.setattr(sys, "stderr", err)
    diagnostics.log_debug("ledger", "appended")
    diagnostics.log_debug("rotation", "moved 3")
    diagnostics.log_debug("intent", "oracle down")
    assert err.getvalue() == "[COUNCIL][ledger] appended\n[COUNCIL][rotation] moved 3\n"


def test_falsy_debug_value_disables(monkeypatch):
    monkeypatch.setenv("COUNCIL_DEBUG", "off")
    assert diagnostics.debug_enabled("ledger") is False


def test_log_dir_follows_council_home(monkeypatch, tmp_path):
    monkeypatch.delenv("COUNCIL_LOG_DIR", raising=False)
    monkeypatch.setenv("COUNCIL_HOME", str(tmp_path))
    assert diagnostics.default_log_dir() == tmp_path / "logs"


def test_setup_component_logging_mirrors_stderr_once(monkeypatch, tmp_path):
    monkeypatch.setenv("COUNCIL_LOG_DIR", str(tmp_path))
    monkeypatch.setattr(diagnostics, "_LOG_SETUP", set())
    out = io.StringIO()
    err = io.StringIO()
    monkeypatch.setattr(sys, "stdout", out)
    monkeypatch.setattr(sys, "stderr", err)

    log_file = diagnostics.setup_component_logging("unit")
    assert log_file == tmp_path / "unit.log"
    assert diagnostics.setup_component_logging("unit") is None

    sys.stderr.write("teed line\n")
    sys.stderr.flush()
    assert sys.stdout is out
    assert err.getvalue() == "teed line\n"
    assert "teed line" in log_file.read_text(encoding="utf-8")
