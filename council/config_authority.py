"""
Central configuration resolver with deterministic precedence.

Precedence per key:
1) schema default
2) versioned baseline (config/tuneables.json)
3) runtime override (<council home>/config/learning.json)
4) explicit env override mapping (opt-in per key)

The merged section is validated against the schema last, so a bad value
from any layer degrades to the schema default instead of failing.
"""

from __future__ import annotations

import json
import logging
import os
from copy import deepcopy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from .tuneables_schema import SCHEMA, get_section_defaults, normalize_keys, validate_tuneables

log = logging.getLogger("council.config")

DEFAULT_BASELINE_PATH = Path(__file__).resolve().parent.parent / "config" / "tuneables.json"

ParserFn = Callable[[str], Any]


@dataclass(frozen=True)
class EnvOverride:
    env_name: str
    parser: ParserFn


@dataclass
class ResolvedSection:
    data: Dict[str, Any]
    sources: Dict[str, str]
    warnings: List[str] = field(default_factory=list)


def _read_json(path: Optional[Path]) -> Dict[str, Any]:
    if path is None:
        return {}
    try:
        if path.exists():
            data = json.loads(path.read_text(encoding="utf-8-sig"))
            return data if isinstance(data, dict) else {}
    except (json.JSONDecodeError, OSError, UnicodeDecodeError):
        pass
    return {}


def _section(data: Dict[str, Any], section_name: str) -> Dict[str, Any]:
    row = normalize_keys(data).get(section_name, {})
    return dict(row) if isinstance(row, dict) else {}


def _parse_bool(raw: str) -> bool:
    text = str(raw or "").strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"invalid bool: {raw!r}")


def env_bool(name: str) -> EnvOverride:
    return EnvOverride(name, _parse_bool)


def env_str(name: str, *, lower: bool = False) -> EnvOverride:
    def _parse(raw: str) -> str:
        out = str(raw or "").strip()
        return out.lower() if lower else out

    return EnvOverride(name, _parse)


def env_int(name: str) -> EnvOverride:
    return EnvOverride(name, int)


def env_float(name: str) -> EnvOverride:
    return EnvOverride(name, float)


# Opt-in environment overrides per section.
ENV_OVERRIDES: Dict[str, Dict[str, EnvOverride]] = {
    "memory_tiers": {
        "hot_keep_count": env_int("COUNCIL_HOT_KEEP_COUNT"),
        "warm_retention_days": env_int("COUNCIL_WARM_RETENTION_DAYS"),
        "warm_max_count": env_int("COUNCIL_WARM_MAX_COUNT"),
        "cold_max_count": env_int("COUNCIL_COLD_MAX_COUNT"),
    },
    "recompute": {
        "history_delta_threshold": env_int("COUNCIL_HISTORY_DELTA_THRESHOLD"),
        "rated_delta_threshold": env_int("COUNCIL_RATED_DELTA_THRESHOLD"),
        "min_interval_minutes": env_int("COUNCIL_RECOMPUTE_MIN_INTERVAL_MINUTES"),
        "max_patterns": env_int("COUNCIL_MAX_PATTERNS"),
    },
    "intent": {
        "llm_enabled": env_bool("COUNCIL_INTENT_LLM"),
        "llm_model": env_str("COUNCIL_INTENT_MODEL"),
        "llm_timeout_s": env_float("COUNCIL_INTENT_TIMEOUT_S"),
    },
}


def resolve_section(
    section_name: str,
    *,
    baseline_path: Optional[Path] = None,
    runtime_path: Optional[Path] = None,
    env_overrides: Optional[Dict[str, EnvOverride]] = None,
) -> ResolvedSection:
    """Resolve a tuneables section with source attribution."""
    baseline = baseline_path or DEFAULT_BASELINE_PATH

    merged: Dict[str, Any] = {}
    sources: Dict[str, str] = {}
    warnings: List[str] = []

    for key, value in get_section_defaults(section_name).items():
        merged[key] = deepcopy(value)
        sources[key] = "schema"

    for layer, path in (("baseline", baseline), ("runtime", runtime_path)):
        for key, value in _section(_read_json(path), section_name).items():
            merged[key] = deepcopy(value)
            sources[key] = layer

    if env_overrides is None:
        env_overrides = ENV_OVERRIDES.get(section_name, {})
    for key, override in env_overrides.items():
        raw = os.getenv(override.env_name)
        if raw is None or str(raw).strip() == "":
            continue
        try:
            merged[key] = deepcopy(override.parser(raw))
            sources[key] = f"env:{override.env_name}"
        except (ValueError, TypeError):
            warnings.append(f"invalid_env_override:{override.env_name}")

    if section_name in SCHEMA:
        checked = validate_tuneables({section_name: merged}, schema={section_name: SCHEMA[section_name]})
        for entry in checked.clamped:
            key = entry.split(".", 1)[1]
            sources[key] = "schema"
        warnings.extend(checked.warnings)
        merged = checked.data[section_name]

    for warning in warnings:
        log.warning("config %s: %s", section_name, warning)
    return ResolvedSection(data=merged, sources=sources, warnings=warnings)


def resolve_all(
    *,
    baseline_path: Optional[Path] = None,
    runtime_path: Optional[Path] = None,
) -> Dict[str, ResolvedSection]:
    return {
        name: resolve_section(name, baseline_path=baseline_path, runtime_path=runtime_path)
        for name in SCHEMA
    }
