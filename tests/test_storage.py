"""Tests for council/storage.py."""

from __future__ import annotations

from council.storage import FileLock, append_jsonl, read_json, read_jsonl, rewrite_jsonl, write_json


def test_append_and_read_skip_corrupt_lines(tmp_path):
    path = tmp_path / "log.jsonl"
    append_jsonl(path, {"n": 1})
    with open(path, "a", encoding="utf-8") as f:
        f.write("{broken\n\n[1, 2]\n")
    append_jsonl(path, {"n": 2})
    assert read_jsonl(path) == [{"n": 1}, {"n": 2}]


def test_missing_file_reads_as_empty(tmp_path):
    assert read_jsonl(tmp_path / "nope.jsonl") == []
    assert read_json(tmp_path / "nope.json", default={}) == {}


def test_malformed_json_document_returns_default(tmp_path):
    path = tmp_path / "doc.json"
    path.write_text("{oops", encoding="utf-8")
    assert read_json(path, default=[]) == []


def test_rewrite_replaces_contents(tmp_path):
    path = tmp_path / "log.jsonl"
    append_jsonl(path, {"n": 1})
    rewrite_jsonl(path, [{"n": 5}, {"n": 6}])
    assert read_jsonl(path) == [{"n": 5}, {"n": 6}]
    assert not list(tmp_path.glob("*.tmp"))


def test_write_json_creates_parents(tmp_path):
    path = tmp_path / "a" / "b" / "doc.json"
    write_json(path, {"ok": True})
    assert read_json(path) == {"ok": True}


def test_file_lock_is_exclusive(tmp_path):
    lock_file = tmp_path / "store.lock"
    with FileLock(lock_file) as first:
        assert first.acquired
        with FileLock(lock_file, timeout_s=0.0) as second:
            assert not second.acquired
        assert lock_file.exists()
    assert not lock_file.exists()


def test_stale_lock_is_reclaimed(tmp_path):
    lock_file = tmp_path / "store.lock"
    lock_file.write_text("", encoding="utf-8")
    with FileLock(lock_file, timeout_s=0.2, stale_after_s=-1.0) as lock:
        assert lock.acquired
