"""Tests for council/tuneables_schema.py."""

from __future__ import annotations

from council.tuneables_schema import (
    SCHEMA,
    get_full_defaults,
    get_section_defaults,
    normalize_keys,
    to_snake,
    validate_tuneables,
)


def test_empty_input_gets_all_defaults():
    result = validate_tuneables({})
    assert result.ok
    assert result.data == get_full_defaults()
    assert "section:recompute" in result.defaults_applied


def test_recompute_defaults_match_documented_values():
    defaults = get_section_defaults("recompute")
    assert defaults["history_delta_threshold"] == 30
    assert defaults["rated_delta_threshold"] == 10
    assert defaults["min_interval_minutes"] == 15
    assert defaults["max_patterns"] == 50


def test_out_of_range_value_falls_back_to_default():
    result = validate_tuneables({"recompute": {"max_patterns": 5, "min_interval_minutes": 5000}})
    assert result.data["recompute"]["max_patterns"] == 50
    assert result.data["recompute"]["min_interval_minutes"] == 15
    assert "recompute.max_patterns" in result.clamped
    assert "recompute.min_interval_minutes" in result.clamped


def test_in_range_float_is_floored_for_int_keys():
    result = validate_tuneables({"memory_tiers": {"hot_keep_count": 12.9}})
    assert result.data["memory_tiers"]["hot_keep_count"] == 12
    assert result.ok


def test_non_numeric_and_bool_values_use_default():
    result = validate_tuneables({"memory_tiers": {"warm_max_count": "lots", "cold_max_count": True}})
    assert result.data["memory_tiers"]["warm_max_count"] == 300
    assert result.data["memory_tiers"]["cold_max_count"] == 1000
    assert len(result.warnings) == 2


def test_camel_case_keys_and_section_aliases():
    data = {
        "successPatternRecompute": {"historyDeltaThreshold": 12, "ratedDeltaThreshold": 4},
        "memoryTiers": {"hotKeepCount": 8},
    }
    result = validate_tuneables(data)
    assert result.data["recompute"]["history_delta_threshold"] == 12
    assert result.data["recompute"]["rated_delta_threshold"] == 4
    assert result.data["memory_tiers"]["hot_keep_count"] == 8
    assert result.ok


def test_unknown_keys_are_preserved_with_warning():
    result = validate_tuneables({"scoring": {"preferred_bonsu": 2.0}, "mystery": {}})
    assert result.data["scoring"]["preferred_bonsu"] == 2.0
    assert "scoring.preferred_bonsu" in result.unknown_keys
    assert "section:mystery" in result.unknown_keys


def test_bool_parsing():
    result = validate_tuneables({"intent": {"llm_enabled": "off"}})
    assert result.data["intent"]["llm_enabled"] is False
    result = validate_tuneables({"intent": {"llm_enabled": "maybe"}})
    assert result.data["intent"]["llm_enabled"] is True
    assert not result.ok


def test_non_dict_section_is_replaced():
    result = validate_tuneables({"composition": [1, 2, 3]})
    assert result.data["composition"] == get_section_defaults("composition")
    assert result.warnings


def test_normalize_keys_helpers():
    assert to_snake("forceDeltaWithoutInterval") == "force_delta_without_interval"
    assert normalize_keys({"precompress": {"warmRetentionDays": 7}}) == {
        "memory_tiers": {"warm_retention_days": 7},
    }


def test_every_spec_has_a_description():
    for section, keys in SCHEMA.items():
        for key, spec in keys.items():
            assert spec.description, f"{section}.{key}"
