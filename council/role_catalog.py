"""
Role catalog: the roles a team can be built from and the baseline team
for each intent.

Loaded from config/roles.yaml (or config/roles.json) under the council
home; a missing or malformed file falls back to the built-in catalog.

Example roles.yaml:

    roles:
      engineer:
        name: Engineer
        systemPrompt: You turn plans into working code.
    intentToRoles:
      technical: [engineer, devil]
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .context import CouncilContext
from .models import clean_str, clean_str_list

log = logging.getLogger("council.roles")

DEFAULT_TEAM = ["engineer", "analyst"]


@dataclass
class Role:
    id: str
    name: str
    system_prompt: str = ""
    description: str = ""


@dataclass
class RoleCatalog:
    roles: Dict[str, Role] = field(default_factory=dict)
    intent_to_roles: Dict[str, List[str]] = field(default_factory=dict)
    source: str = "builtin"

    def known_roles(self) -> List[str]:
        return list(self.roles)

    def baseline_for(self, intent: str) -> List[str]:
        """Baseline team for an intent, restricted to known roles."""
        mapped = [r for r in self.intent_to_roles.get(intent, []) if r in self.roles]
        if mapped:
            return mapped
        fallback = [r for r in DEFAULT_TEAM if r in self.roles]
        return fallback or list(DEFAULT_TEAM)


BUILTIN_ROLES: Dict[str, Dict[str, str]] = {
    "engineer": {
        "name": "Engineer",
        "systemPrompt": "You are a pragmatic engineer. Prefer concrete, testable implementation steps.",
    },
    "analyst": {
        "name": "Analyst",
        "systemPrompt": "You are a rigorous analyst. Break problems down and weigh evidence.",
    },
    "devil": {
        "name": "Devil's Advocate",
        "systemPrompt": "You challenge assumptions and surface risks the team is missing.",
    },
    "researcher": {
        "name": "Researcher",
        "systemPrompt": "You gather sources, compare them, and report what is known and unknown.",
    },
    "writer": {
        "name": "Writer",
        "systemPrompt": "You shape ideas into clear, well-structured prose.",
    },
}

BUILTIN_INTENT_MAP: Dict[str, List[str]] = {
    "analysis": ["analyst", "engineer", "devil"],
    "creative": ["writer", "engineer"],
    "technical": ["engineer", "devil"],
    "research": ["researcher", "analyst", "devil"],
    "strategy": ["analyst", "engineer"],
    "security": ["analyst", "devil", "engineer"],
}


def _parse_catalog(raw: Any, source: str) -> Optional[RoleCatalog]:
    if not isinstance(raw, dict):
        return None
    roles_raw = raw.get("roles") if isinstance(raw.get("roles"), dict) else raw.get("agents")
    if not isinstance(roles_raw, dict) or not roles_raw:
        return None
    roles: Dict[str, Role] = {}
    for role_id, spec in roles_raw.items():
        rid = clean_str(role_id)
        if not rid:
            continue
        spec = spec if isinstance(spec, dict) else {}
        roles[rid] = Role(
            id=rid,
            name=clean_str(spec.get("name")) or rid,
            system_prompt=clean_str(spec.get("systemPrompt")) or clean_str(spec.get("system_prompt")) or "",
            description=clean_str(spec.get("description")) or "",
        )
    if not roles:
        return None
    mapping_raw = raw.get("intentToRoles") or raw.get("intentToAgents") or raw.get("intent_to_roles") or {}
    mapping: Dict[str, List[str]] = {}
    if isinstance(mapping_raw, dict):
        for intent, role_ids in mapping_raw.items():
            cleaned = [r for r in clean_str_list(role_ids) if r in roles]
            if clean_str(intent) and cleaned:
                mapping[intent.strip()] = cleaned
    return RoleCatalog(roles=roles, intent_to_roles=mapping, source=source)


def builtin_catalog() -> RoleCatalog:
    roles = {
        rid: Role(id=rid, name=spec["name"], system_prompt=spec["systemPrompt"])
        for rid, spec in BUILTIN_ROLES.items()
    }
    mapping = {intent: list(ids) for intent, ids in BUILTIN_INTENT_MAP.items()}
    return RoleCatalog(roles=roles, intent_to_roles=mapping, source="builtin")


def load_role_catalog(ctx: CouncilContext) -> RoleCatalog:
    yaml_path = ctx.config_dir / "roles.yaml"
    json_path = ctx.config_dir / "roles.json"
    if yaml_path.exists():
        try:
            raw = yaml.safe_load(yaml_path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as e:
            log.warning("Failed to load roles from %s: %s", yaml_path, e)
        else:
            catalog = _parse_catalog(raw, str(yaml_path))
            if catalog is not None:
                return catalog
            log.warning("Role catalog %s has no usable roles; using built-in", yaml_path)
    if json_path.exists():
        try:
            raw = json.loads(json_path.read_text(encoding="utf-8-sig"))
        except (ValueError, OSError) as e:
            log.warning("Failed to load roles from %s: %s", json_path, e)
        else:
            catalog = _parse_catalog(raw, str(json_path))
            if catalog is not None:
                return catalog
    return builtin_catalog()
