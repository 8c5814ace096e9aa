"""
Central schema and validator for Council tuneables.

Single source of truth for every tuneable section, key, type, default,
min/max bounds, and description. No external dependencies.

Usage:
    from council.tuneables_schema import validate_tuneables, SCHEMA
    result = validate_tuneables(data)
    for w in result.warnings:
        print(f"[WARN] {w}")
    clean_data = result.data

Numeric values outside their bounds are replaced by the key's default
rather than clamped to the nearest bound.
"""

from __future__ import annotations

import json
import re
from collections import namedtuple
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

# --------------- Schema Primitives ---------------

TuneableSpec = namedtuple("TuneableSpec", [
    "type",          # "int", "float", "bool", "str"
    "default",       # Default value
    "min_val",       # Minimum (None if unbounded or non-numeric)
    "max_val",       # Maximum (None if unbounded or non-numeric)
    "description",   # Human-readable description
    "enum_values",   # Optional list of valid string values (for str type)
], defaults=[None, None, "", None])


@dataclass
class ValidationResult:
    """Result of validating a tuneables dict against the schema."""
    data: Dict[str, Any]
    warnings: List[str] = field(default_factory=list)
    clamped: List[str] = field(default_factory=list)
    defaults_applied: List[str] = field(default_factory=list)
    unknown_keys: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return len(self.warnings) == 0


# --------------- Full Schema Definition ---------------

SCHEMA: Dict[str, Dict[str, TuneableSpec]] = {
    # ---- memory_tiers: hot/warm/cold retention ----
    "memory_tiers": {
        "hot_keep_count": TuneableSpec("int", 20, 1, 1000, "Entries kept in hot after rotation"),
        "compression_ratio": TuneableSpec("float", 0.85, 0.1, 1.0, "Token usage ratio that forces rotation"),
        "warm_retention_days": TuneableSpec("int", 21, 1, 3650, "Days a warm entry stays before aging to cold"),
        "warm_max_count": TuneableSpec("int", 300, 10, 100000, "Max in-window warm entries"),
        "cold_max_count": TuneableSpec("int", 1000, 10, 1000000, "Max cold entries; oldest pruned"),
    },

    # ---- recompute: full success-pattern rebuild trigger ----
    "recompute": {
        "history_delta_threshold": TuneableSpec("int", 30, 1, 10000, "New ledger rows before recompute"),
        "rated_delta_threshold": TuneableSpec("int", 10, 1, 10000, "New rated rows before recompute"),
        "min_interval_minutes": TuneableSpec("int", 15, 1, 1440, "Cooldown between recomputes"),
        "force_delta_without_interval": TuneableSpec(
            "int", 0, 0, 100000, "Ledger delta that ignores cooldown (0 = 3x history threshold)",
        ),
        "max_patterns": TuneableSpec("int", 50, 10, 500, "Success patterns retained (top-N)"),
    },

    # ---- success_patterns: decay/blend step ----
    "success_patterns": {
        "decay_base": TuneableSpec("float", 0.985, 0.5, 1.0, "Daily decay factor toward 0.5"),
        "rating_weight": TuneableSpec("float", 0.45, 0.01, 1.0, "Blend weight of an explicit rating"),
        "outcome_weight": TuneableSpec("float", 0.25, 0.01, 1.0, "Blend weight of a success/failure flag"),
        "success_score": TuneableSpec("float", 0.9, 0.0, 1.0, "Signal score for a successful outcome"),
        "failure_score": TuneableSpec("float", 0.2, 0.0, 1.0, "Signal score for a failed outcome"),
    },

    # ---- similarity: historical context matching ----
    "similarity": {
        "intent_weight": TuneableSpec("float", 0.35, 0.0, 1.0, "Weight of intent similarity"),
        "project_weight": TuneableSpec("float", 0.20, 0.0, 1.0, "Weight of project similarity"),
        "complexity_weight": TuneableSpec("float", 0.15, 0.0, 1.0, "Weight of complexity similarity"),
        "tool_weight": TuneableSpec("float", 0.15, 0.0, 1.0, "Weight of tool-set overlap"),
        "text_weight": TuneableSpec("float", 0.15, 0.0, 1.0, "Weight of text overlap"),
        "cross_intent_damping": TuneableSpec("float", 0.55, 0.0, 1.0, "Multiplier when intents differ"),
        "noise_floor": TuneableSpec("float", 0.22, 0.0, 1.0, "Rows below this similarity are dropped"),
        "contribution_scale": TuneableSpec("float", 4.5, 0.1, 50.0, "Contribution multiplier"),
        "contribution_clamp": TuneableSpec("float", 4.0, 0.1, 50.0, "Absolute contribution cap"),
        "contribution_cut": TuneableSpec("float", 0.15, 0.0, 5.0, "Contributions below this are dropped"),
        "half_life_days": TuneableSpec("float", 45.0, 1.0, 3650.0, "Recency half-life"),
        "max_top_cases": TuneableSpec("int", 3, 0, 20, "Evidence lines retained"),
    },

    # ---- scoring: per-role signal accumulation ----
    "scoring": {
        "preferred_bonus": TuneableSpec("float", 1.5, 0.0, 20.0, "Flat bonus for preferred roles"),
        "pattern_scale": TuneableSpec("float", 6.0, 0.0, 50.0, "Multiplier of (rate - 0.5)"),
        "memory_intent_match": TuneableSpec("float", 1.4, 0.0, 10.0, "Memory weight when intent matches"),
        "memory_intent_mismatch": TuneableSpec("float", 0.5, 0.0, 10.0, "Memory weight when intent differs"),
        "feedback_multiplier": TuneableSpec("float", 1.5, 0.0, 10.0, "Memory weight for feedback entries"),
        "extra_candidate_min_score": TuneableSpec("float", 2.0, -50.0, 50.0, "Non-baseline rank cutoff"),
        "memory_scan_limit": TuneableSpec("int", 50, 1, 5000, "Rated warm entries considered"),
    },

    # ---- composition: replacement/injection policy ----
    "composition": {
        "max_agents": TuneableSpec("int", 4, 1, 12, "Team size cap"),
        "min_base_agents": TuneableSpec("int", 1, 0, 12, "Baseline roles always retained"),
        "replacement_min_score": TuneableSpec("float", 2.0, -50.0, 50.0, "Min score to replace an incumbent"),
        "replacement_delta": TuneableSpec("float", 1.0, 0.0, 50.0, "Score margin required to replace"),
        "injection_min_score": TuneableSpec("float", 1.2, -50.0, 50.0, "Min score for a non-baseline role"),
        "min_similarity_boost": TuneableSpec("float", 0.8, 0.0, 50.0, "Similarity boost that qualifies injection"),
        "force_injection_score": TuneableSpec("float", 7.5, 0.0, 100.0, "Score that qualifies injection alone"),
    },

    # ---- intent: oracle behaviour ----
    "intent": {
        "default_intent": TuneableSpec("str", "analysis", None, None, "Label used when the oracle fails"),
        "llm_enabled": TuneableSpec("bool", True, None, None, "Ask the LLM oracle when a key is configured"),
        "llm_model": TuneableSpec("str", "gemini-2.0-flash", None, None, "Gemini model id"),
        "llm_timeout_s": TuneableSpec("float", 8.0, 0.5, 60.0, "LLM request timeout"),
    },
}

SECTION_CONSUMERS: Dict[str, List[str]] = {
    "memory_tiers": ["council/tier_rotation.py"],
    "recompute": ["council/recompute.py"],
    "success_patterns": ["council/success_patterns.py"],
    "similarity": ["council/similarity.py"],
    "scoring": ["council/scoring.py"],
    "composition": ["council/composition.py"],
    "intent": ["council/intent.py"],
}

# Section names accepted in config files besides the canonical ones.
SECTION_ALIASES: Dict[str, str] = {
    "memoryTiers": "memory_tiers",
    "precompress": "memory_tiers",
    "successPatternRecompute": "recompute",
    "successPatterns": "success_patterns",
}

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake(key: str) -> str:
    return _CAMEL_RE.sub("_", str(key)).lower()


def normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Map section aliases and camelCase keys onto schema names."""
    out: Dict[str, Any] = {}
    for raw_name, raw_section in (data or {}).items():
        name = SECTION_ALIASES.get(raw_name, raw_name)
        if not isinstance(raw_section, dict):
            out[name] = raw_section
            continue
        section = out.setdefault(name, {})
        if not isinstance(section, dict):
            continue
        known = SCHEMA.get(name, {})
        for key, value in raw_section.items():
            snake = to_snake(key)
            section[snake if snake in known else key] = value
    return out


def _out_of_range(spec: TuneableSpec, value: float) -> bool:
    if spec.min_val is not None and value < spec.min_val:
        return True
    if spec.max_val is not None and value > spec.max_val:
        return True
    return False


def _validate_value(
    section: str, key: str, value: Any, spec: TuneableSpec,
) -> Tuple[Any, Optional[str]]:
    """Validate and coerce a single value. Returns (value, warning_or_None)."""
    if spec.type == "int":
        if isinstance(value, bool):
            return spec.default, f"{section}.{key}: expected int, got bool, using default {spec.default}"
        try:
            coerced = int(value)
        except (ValueError, TypeError, OverflowError):
            return spec.default, f"{section}.{key}: cannot convert {value!r} to int, using default {spec.default}"
        if _out_of_range(spec, coerced):
            return spec.default, (
                f"{section}.{key}: {coerced} outside [{spec.min_val}, {spec.max_val}], "
                f"clamped to default {spec.default}"
            )
        return coerced, None

    elif spec.type == "float":
        if isinstance(value, bool):
            return spec.default, f"{section}.{key}: expected float, got bool, using default {spec.default}"
        try:
            coerced = float(value)
        except (ValueError, TypeError):
            return spec.default, f"{section}.{key}: cannot convert {value!r} to float, using default {spec.default}"
        if coerced != coerced or _out_of_range(spec, coerced):
            return spec.default, (
                f"{section}.{key}: {coerced} outside [{spec.min_val}, {spec.max_val}], "
                f"clamped to default {spec.default}"
            )
        return coerced, None

    elif spec.type == "bool":
        if isinstance(value, bool):
            return value, None
        if isinstance(value, (int, float)):
            return bool(value), None
        text = str(value).strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True, None
        if text in ("0", "false", "no", "off"):
            return False, None
        return spec.default, f"{section}.{key}: cannot parse {value!r} as bool, using default {spec.default}"

    elif spec.type == "str":
        coerced = str(value).strip()
        if not coerced:
            return spec.default, f"{section}.{key}: empty string, using default {spec.default!r}"
        if spec.enum_values and coerced not in spec.enum_values:
            return spec.default, f"{section}.{key}: {coerced!r} not in {spec.enum_values}, using default {spec.default!r}"
        return coerced, None

    return value, None


def validate_tuneables(
    data: Dict[str, Any],
    *,
    schema: Optional[Dict[str, Dict[str, TuneableSpec]]] = None,
) -> ValidationResult:
    """Validate a tuneables dict against the schema.

    - Section aliases and camelCase keys are normalized first
    - Unknown sections/keys: preserved with warning
    - Missing sections and keys: filled with defaults
    - Out-of-bounds numeric values: replaced by the default with warning
    - Wrong types: coerced where possible, otherwise default-filled
    """
    schema = schema or SCHEMA
    data = normalize_keys(data if isinstance(data, dict) else {})
    result = ValidationResult(data={})

    for section_name, section_spec in schema.items():
        if section_name not in data:
            result.data[section_name] = {k: spec.default for k, spec in section_spec.items()}
            result.defaults_applied.append(f"section:{section_name}")
            continue

        raw_section = data[section_name]
        if not isinstance(raw_section, dict):
            result.warnings.append(
                f"{section_name}: expected dict, got {type(raw_section).__name__}"
            )
            result.data[section_name] = {k: spec.default for k, spec in section_spec.items()}
            continue

        cleaned_section: Dict[str, Any] = {}
        for key, spec in section_spec.items():
            if key not in raw_section or raw_section[key] is None:
                cleaned_section[key] = spec.default
                result.defaults_applied.append(f"{section_name}.{key}")
                continue

            validated_val, warning = _validate_value(section_name, key, raw_section[key], spec)
            cleaned_section[key] = validated_val
            if warning:
                result.warnings.append(warning)
                if "clamped" in warning.lower():
                    result.clamped.append(f"{section_name}.{key}")

        for key in raw_section:
            if key in section_spec:
                continue
            cleaned_section[key] = raw_section[key]
            if key.startswith("_"):
                continue
            result.unknown_keys.append(f"{section_name}.{key}")
            result.warnings.append(f"{section_name}.{key}: unknown key (possible typo?)")

        result.data[section_name] = cleaned_section

    for section_name in data:
        if section_name not in schema:
            result.data[section_name] = data[section_name]
            if not section_name.startswith("_"):
                result.unknown_keys.append(f"section:{section_name}")
                result.warnings.append(f"section:{section_name}: unknown section (possible typo?)")

    return result


# --------------- Helpers ---------------

def get_section_defaults(section_name: str) -> Dict[str, Any]:
    """Return default values for a section."""
    spec = SCHEMA.get(section_name, {})
    return {k: s.default for k, s in spec.items()}


def get_full_defaults() -> Dict[str, Any]:
    """Return a complete tuneables dict with all defaults."""
    return {section: get_section_defaults(section) for section in SCHEMA}


if __name__ == "__main__":
    config_path = Path(__file__).resolve().parent.parent / "config" / "tuneables.json"
    if config_path.exists():
        r = validate_tuneables(json.loads(config_path.read_text(encoding="utf-8-sig")))
        print(f"Validated: ok={r.ok}, warnings={len(r.warnings)}, "
              f"clamped={len(r.clamped)}, defaults_applied={len(r.defaults_applied)}, "
              f"unknown={len(r.unknown_keys)}")
        for w in r.warnings:
            print(f"  [WARN] {w}")
    else:
        print(f"Config not found: {config_path}")
