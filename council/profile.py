"""
User profile collaborator.

data/profile.json holds the user's declared preferences plus two blocks
owned by the learning loop: ``successPatterns`` and ``learningMeta``.
Preference fields are read-only here; learning blocks are rewritten
through update_profile_document() under the profile lock.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

from .context import CouncilContext
from .diagnostics import log_debug
from .models import clean_str, clean_str_list
from .storage import lock_for, read_json, write_json


@dataclass
class UserProfile:
    name: str = "User"
    mission: str = ""
    goals: List[str] = field(default_factory=list)
    preferred_roles: List[str] = field(default_factory=list)
    communication_style: str = "concise"
    time_zone: str = "UTC"
    council_mode: bool = True
    learning_enabled: bool = True

    @classmethod
    def from_dict(cls, raw: Any) -> "UserProfile":
        if not isinstance(raw, dict):
            return cls()
        prefs = raw.get("preferences") if isinstance(raw.get("preferences"), dict) else {}
        preferred = clean_str_list(raw.get("preferredRoles")) or clean_str_list(prefs.get("preferredAgents"))
        goals = raw.get("goals")
        if isinstance(goals, dict):
            goals = goals.get("current") or []
        return cls(
            name=clean_str(raw.get("name")) or "User",
            mission=clean_str(raw.get("mission")) or "",
            goals=clean_str_list(goals),
            preferred_roles=preferred,
            communication_style=clean_str(prefs.get("communicationStyle")) or "concise",
            time_zone=clean_str(prefs.get("timeZone")) or clean_str(raw.get("timeZone")) or "UTC",
            council_mode=prefs.get("councilMode", True) is not False,
            learning_enabled=prefs.get("learningEnabled", True) is not False,
        )


def read_profile_document(ctx: CouncilContext) -> Dict[str, Any]:
    data = read_json(ctx.profile_file, default={})
    return data if isinstance(data, dict) else {}


def load_profile(ctx: CouncilContext) -> UserProfile:
    return UserProfile.from_dict(read_profile_document(ctx))


def update_profile_document(ctx: CouncilContext, mutate: Callable[[Dict[str, Any]], None]) -> bool:
    """Read-modify-write profile.json under its lock. Returns False if busy."""
    lock = lock_for(ctx.profile_file)
    with lock:
        if not lock.acquired:
            log_debug("profile", "profile lock busy; update skipped")
            return False
        document = read_profile_document(ctx)
        mutate(document)
        write_json(ctx.profile_file, document)
    return True
