"""Tests for hooks/lifecycle.py."""

from __future__ import annotations

import importlib.util
import io
import json
import sys
from pathlib import Path

import pytest


def _load_module():
    root = Path(__file__).resolve().parents[1]
    module_path = root / "hooks" / "lifecycle.py"
    spec = importlib.util.spec_from_file_location("council_lifecycle_hook", module_path)
    if spec is None or spec.loader is None:
        raise RuntimeError("failed to load lifecycle hook module")
    module = importlib.util.module_from_spec(spec)
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def hook(tmp_path, monkeypatch):
    monkeypatch.setenv("COUNCIL_HOME", str(tmp_path))
    monkeypatch.delenv("GOOGLE_API_KEY", raising=False)
    monkeypatch.delenv("GEMINI_API_KEY", raising=False)
    mod = _load_module()
    monkeypatch.setattr(mod, "setup_component_logging", lambda component: None)
    return mod


def _run(hook, monkeypatch, stdin_text, argv):
    out = io.StringIO()
    monkeypatch.setattr(sys, "stdin", io.StringIO(stdin_text))
    monkeypatch.setattr(sys, "argv", ["lifecycle.py"] + argv)
    monkeypatch.setattr(sys, "__stdout__", out)
    assert hook.main() == 0
    return json.loads(out.getvalue())


def test_before_agent_reply(hook, monkeypatch, tmp_path):
    reply = _run(hook, monkeypatch, json.dumps({"session_id": "s1", "prompt": "Fix the parser bug"}), ["BeforeAgent"])
    assert reply["decision"] == "allow"
    assert reply["council"]["intent"] == "technical"
    assert list((tmp_path / "data" / "logs").glob("hooks-*.jsonl"))


def test_invalid_payload_still_allows(hook, monkeypatch):
    assert _run(hook, monkeypatch, "{not json", ["PreToolUse"]) == {"decision": "allow"}
    assert _run(hook, monkeypatch, "[1, 2]", []) == {"decision": "allow"}


def test_handler_failure_still_allows(hook, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("no state dir")

    monkeypatch.setattr(hook, "handle_hook", boom)
    assert _run(hook, monkeypatch, "{}", ["AfterAgent"]) == {"decision": "allow"}
