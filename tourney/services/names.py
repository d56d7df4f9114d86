"""Participant display names."""
from __future__ import annotations

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

TBD = "TBD"
UNKNOWN = "Unknown participant"


def user_display_name(user: Any, user_id: Optional[str]) -> str:
    """Human-readable name for a user; falls back to the id, never blank."""
    if user is not None:
        name = (user.display_name or "").strip()
        if name:
            return name
    return user_id or UNKNOWN


def build_name_lookup(
    participants: Iterable[Any],
    users: Iterable[Any],
    teams: Iterable[Any],
) -> Mapping[str, str]:
    """Read-only participant id -> display name table."""
    users_by_id = {u.id: u for u in users}
    teams_by_id = {t.id: t for t in teams}
    names = {}
    for p in participants:
        if p.type == "TEAM":
            team = teams_by_id.get(p.team_id)
            names[p.id] = team.name if team is not None and team.name else (p.team_id or UNKNOWN)
        else:
            names[p.id] = user_display_name(users_by_id.get(p.user_id), p.user_id)
    return MappingProxyType(names)


def participant_display_name(lookup: Mapping[str, str], participant_id: Optional[str]) -> str:
    if not participant_id:
        return TBD
    return lookup.get(participant_id, UNKNOWN)
