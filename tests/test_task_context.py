"""Tests for council/task_context.py."""

from __future__ import annotations

from council.task_context import (
    collapse_text,
    detect_project,
    infer_likely_tools,
    infer_task_complexity,
    method_for,
    normalize_tool_combo,
)


def test_collapse_text():
    assert collapse_text("a  b\n c", 100) == "a b c"
    assert collapse_text("x" * 10, 5) == "xx..."
    assert collapse_text(None, 5) == ""


def test_complexity_buckets():
    assert infer_task_complexity() == "low"
    medium = infer_task_complexity(
        prompt=" ".join(["word"] * 60), tools_used=["shell", "web"], execution_time=2000,
    )
    assert medium == "medium"
    high = infer_task_complexity(
        prompt=" ".join(["word"] * 130),
        tools_used=["shell", "web", "filesystem", "browser"],
        execution_time=6000,
    )
    assert high == "high"


def test_heavy_intent_bumps_complexity():
    base = dict(prompt=" ".join(["w"] * 60), tools_used=["a", "b"])
    assert infer_task_complexity(**base) == "low"
    assert infer_task_complexity(**base, intent="research") == "medium"


def test_duplicate_tools_count_once():
    assert infer_task_complexity(tools_used=["Shell", "shell ", "SHELL"], execution_time=2000) == "low"


def test_likely_tools():
    assert infer_likely_tools("run the tests on file parser.py") == ["shell", "filesystem"]
    assert infer_likely_tools("search the latest news") == ["web"]
    assert infer_likely_tools("写一首诗") == []


def test_tool_combo_and_method():
    assert normalize_tool_combo(["Shell", "filesystem", "shell", ""]) == "filesystem + shell"
    assert normalize_tool_combo([]) is None
    assert method_for(["analyst", " engineer ", ""]) == "analyst + engineer"


def test_detect_project():
    assert detect_project("Fix the login bug, project: atlas-web.") == "atlas-web"
    assert detect_project("项目：星河 需要重构") == "星河"
    assert detect_project("no marker here") is None
