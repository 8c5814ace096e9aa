"""
Explicit runtime context for every engine entry point.

A CouncilContext carries the state directory, validated settings, the
clock and the intent oracle. Nothing below the engine reads environment
variables or module globals for these; from_env() is the single place
that resolves the default home directory.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .config_authority import resolve_section
from .intent import build_intent_oracle
from .models import TIERS, utc_now
from .tuneables_schema import SCHEMA, validate_tuneables

Clock = Callable[[], datetime]


def default_home() -> Path:
    raw = os.environ.get("COUNCIL_HOME", "").strip()
    return Path(raw).expanduser() if raw else Path.home() / ".council"


@dataclass
class CouncilContext:
    root: Path
    settings: Dict[str, Dict[str, Any]]
    clock: Clock = utc_now
    intent_oracle: Optional[Any] = None
    warnings: list = field(default_factory=list)

    # ---- paths ----

    @property
    def data_dir(self) -> Path:
        return self.root / "data"

    @property
    def config_dir(self) -> Path:
        return self.root / "config"

    @property
    def memory_dir(self) -> Path:
        return self.data_dir / "memory"

    def tier_file(self, tier: str) -> Path:
        if tier not in TIERS:
            raise ValueError(f"unknown memory tier: {tier!r}")
        return self.memory_dir / f"{tier}.jsonl"

    @property
    def history_file(self) -> Path:
        return self.data_dir / "history.jsonl"

    @property
    def legacy_history_file(self) -> Path:
        return self.data_dir / "history.json"

    @property
    def work_dir(self) -> Path:
        return self.data_dir / "work"

    @property
    def profile_file(self) -> Path:
        return self.data_dir / "profile.json"

    @property
    def learning_config_file(self) -> Path:
        return self.config_dir / "learning.json"

    @property
    def hook_log_dir(self) -> Path:
        return self.data_dir / "logs"

    # ---- settings ----

    def now(self) -> datetime:
        return self.clock()

    def section(self, name: str) -> Dict[str, Any]:
        return dict(self.settings.get(name) or {})

    @classmethod
    def create(
        cls,
        root: Path,
        *,
        clock: Optional[Clock] = None,
        overrides: Optional[Dict[str, Dict[str, Any]]] = None,
        baseline_path: Optional[Path] = None,
        intent_oracle: Optional[Any] = None,
    ) -> "CouncilContext":
        """Resolve settings for a state directory.

        ``overrides`` is layered last (after env) and validated the same way,
        which lets callers and tests pin individual tuneables.
        """
        root = Path(root)
        settings: Dict[str, Dict[str, Any]] = {}
        warnings = []
        for name in SCHEMA:
            resolved = resolve_section(
                name,
                baseline_path=baseline_path,
                runtime_path=root / "config" / "learning.json",
            )
            settings[name] = resolved.data
            warnings.extend(resolved.warnings)
        if overrides:
            layered = {name: {**settings.get(name, {}), **dict(values)} for name, values in overrides.items()}
            checked = validate_tuneables({**settings, **layered})
            warnings.extend(checked.warnings)
            settings = {name: checked.data[name] for name in SCHEMA}
        return cls(
            root=root,
            settings=settings,
            clock=clock or utc_now,
            intent_oracle=intent_oracle,
            warnings=warnings,
        )

    @classmethod
    def from_env(cls, **kwargs: Any) -> "CouncilContext":
        """Context for COUNCIL_HOME (default ~/.council) with the configured oracle."""
        ctx = cls.create(default_home(), **kwargs)
        if ctx.intent_oracle is None:
            api_key = os.environ.get("GOOGLE_API_KEY") or os.environ.get("GEMINI_API_KEY")
            ctx.intent_oracle = build_intent_oracle(ctx.section("intent"), api_key)
        return ctx
