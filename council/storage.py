"""
File-backed persistence primitives.

Appends are one write() of one serialized record so interleaved writers
from different processes never split a row. Full rewrites go through a
temp file plus os.replace and should run under the store's FileLock.
Reads treat a missing file as empty and skip corrupt rows.
"""

from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional

from .diagnostics import log_debug


class FileLock:
    """Best-effort lock using an exclusive lock file."""

    def __init__(self, lock_file: Path, timeout_s: float = 2.0, stale_after_s: float = 60.0):
        self.lock_file = lock_file
        self.timeout_s = timeout_s
        self.stale_after_s = stale_after_s
        self.fd = None
        self.acquired = False

    def _clear_if_stale(self) -> None:
        try:
            age = time.time() - self.lock_file.stat().st_mtime
        except OSError:
            return
        if age > self.stale_after_s:
            try:
                self.lock_file.unlink()
            except OSError as e:
                log_debug("storage", f"stale lock removal failed: {self.lock_file}", e)

    def __enter__(self):
        self.lock_file.parent.mkdir(parents=True, exist_ok=True)
        start = time.time()
        while True:
            try:
                self.fd = os.open(str(self.lock_file), os.O_CREAT | os.O_EXCL | os.O_RDWR)
                self.acquired = True
                return self
            except FileExistsError:
                self._clear_if_stale()
                if time.time() - start >= self.timeout_s:
                    return self  # self.acquired stays False
                time.sleep(0.01)
            except OSError as e:
                log_debug("storage", "lock acquire failed", e)
                return self

    def __exit__(self, exc_type, exc, tb):
        try:
            if self.fd is not None:
                os.close(self.fd)
                self.fd = None
            # Only delete the lock file if we acquired it.
            if self.acquired and self.lock_file.exists():
                self.lock_file.unlink()
        except OSError as e:
            log_debug("storage", "lock release failed", e)
        self.acquired = False


def lock_for(path: Path, timeout_s: float = 2.0) -> FileLock:
    return FileLock(path.with_suffix(path.suffix + ".lock"), timeout_s=timeout_s)


def _dumps(record: Dict[str, Any]) -> str:
    return json.dumps(record, ensure_ascii=False, default=str)


def append_jsonl(path: Path, record: Dict[str, Any]) -> None:
    """Append one record as one line in a single write."""
    path.parent.mkdir(parents=True, exist_ok=True)
    line = _dumps(record) + "\n"
    with open(path, "a", encoding="utf-8") as f:
        f.write(line)


def iter_jsonl(path: Path) -> Iterator[Dict[str, Any]]:
    """Yield decoded rows; blank, corrupt and non-object lines are skipped."""
    if not path.exists():
        return
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    row = json.loads(line)
                except ValueError:
                    continue
                if isinstance(row, dict):
                    yield row
    except OSError as e:
        log_debug("storage", f"read failed: {path}", e)


def read_jsonl(path: Path) -> List[Dict[str, Any]]:
    return list(iter_jsonl(path))


def write_text_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f".{path.name}.{os.getpid()}.tmp")
    with open(tmp, "w", encoding="utf-8") as f:
        f.write(text)
    os.replace(tmp, path)


def rewrite_jsonl(path: Path, records: Iterable[Dict[str, Any]]) -> None:
    """Replace the file's contents with the given records."""
    body = "".join(_dumps(r) + "\n" for r in records)
    write_text_atomic(path, body)


def read_json(path: Path, default: Optional[Any] = None) -> Any:
    """Read a JSON document; missing or malformed files yield the default."""
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8-sig"))
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        log_debug("storage", f"malformed json: {path}", e)
    return default


def write_json(path: Path, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, indent=2, ensure_ascii=False, default=str) + "\n")
