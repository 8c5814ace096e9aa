"""Debug tracing for council components.

COUNCIL_DEBUG turns tracing on: a truthy value (1/true/yes/on) enables every
component, a comma list ("ledger,rotation") enables only those.
"""

from __future__ import annotations

import os
import sys
import traceback
from pathlib import Path
from typing import List, Optional, Set


_TRUTHY = {"1", "true", "yes", "on"}
_LOG_SETUP: Set[str] = set()
_LOG_HANDLES: List[object] = []


def debug_enabled(component: Optional[str] = None) -> bool:
    raw = os.environ.get("COUNCIL_DEBUG", "").strip().lower()
    if not raw or raw in {"0", "false", "no", "off"}:
        return False
    if raw in _TRUTHY:
        return True
    wanted = {part.strip() for part in raw.split(",") if part.strip()}
    return component is None or component.lower() in wanted


def log_debug(component: str, message: str, exc: Optional[BaseException] = None) -> None:
    """Write one trace line (and the traceback, if any) to stderr. Never raises."""
    if not debug_enabled(component):
        return
    try:
        line = f"[COUNCIL][{component}] {message}"
        if exc is not None:
            line = f"{line}: {exc}"
            line += "\n" + "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip()
        sys.stderr.write(line + "\n")
    except Exception:
        return


class _StderrTee:
    """Mirror stderr into a component log; the log side may fail silently."""

    def __init__(self, stream, handle):
        self.stream = stream
        self.handle = handle

    def write(self, data):
        self.stream.write(data)
        try:
            self.handle.write(data)
        except Exception:
            pass
        return len(data)

    def flush(self):
        self.stream.flush()
        try:
            self.handle.flush()
        except Exception:
            pass

    def isatty(self):
        return bool(getattr(self.stream, "isatty", lambda: False)())


def default_log_dir() -> Path:
    explicit = os.environ.get("COUNCIL_LOG_DIR")
    if explicit:
        return Path(explicit)
    home = os.environ.get("COUNCIL_HOME")
    return Path(home) / "logs" if home else Path.home() / ".council" / "logs"


def setup_component_logging(component: str) -> Optional[Path]:
    """Mirror stderr into <log dir>/<component>.log, once per process.

    stdout is left alone: hook replies and CLI output go there.
    """
    if component in _LOG_SETUP:
        return None
    log_file = default_log_dir() / f"{component}.log"
    try:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(log_file, "a", encoding="utf-8", errors="replace")
    except OSError:
        return None
    _LOG_HANDLES.append(handle)
    sys.stderr = _StderrTee(sys.stderr, handle)
    _LOG_SETUP.add(component)
    return log_file
