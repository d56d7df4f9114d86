"""Elimination tracking derived from completed-match history."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from tourney.services.advancement import COMPLETED, loser_of

TeamsArg = Union[Mapping[str, Iterable[str]], Iterable[Any]]


@dataclass(frozen=True)
class CompletedMatch:
    """Minimal completed-match record rebuilt from a stored result."""

    participant_a_id: Optional[str]
    participant_b_id: Optional[str]
    winner_participant_id: str
    status: str = COMPLETED


def history_from_results(results: Iterable[Any]) -> List[CompletedMatch]:
    """Turn stored match results into match history, so eliminations survive bracket regeneration."""
    return [
        CompletedMatch(
            participant_a_id=r.winner_participant_id,
            participant_b_id=r.loser_participant_id,
            winner_participant_id=r.winner_participant_id,
        )
        for r in results
    ]


def _team_members(teams: TeamsArg) -> Dict[str, List[str]]:
    """Accept {team_id: [user_id, ...]} or Team objects with .id and .player_ids."""
    if isinstance(teams, Mapping):
        return {tid: list(members) for tid, members in teams.items()}
    return {t.id: list(t.player_ids) for t in teams}


def compute_eliminated(
    matches: Iterable[Any],
    participants: Iterable[Any],
    teams: TeamsArg,
) -> Set[str]:
    """User ids knocked out by completed matches.

    A losing team eliminates every member. Bye wins have no loser and eliminate
    nobody. Recomputed from scratch on each call.
    """
    by_id = {p.id: p for p in participants}
    members = _team_members(teams)
    eliminated: Set[str] = set()
    for m in matches:
        if (getattr(m, "status", None) or "").upper() != COMPLETED:
            continue
        loser_id = loser_of(m)
        if not loser_id:
            continue
        loser = by_id.get(loser_id)
        if loser is None:
            continue
        if loser.type == "TEAM" and loser.team_id:
            eliminated.update(members.get(loser.team_id, []))
        elif loser.user_id:
            eliminated.add(loser.user_id)
    return eliminated


def active_participants(
    participants: Iterable[Any],
    eliminated: Set[str],
    teams: TeamsArg,
) -> List[Any]:
    """Participants still in: individuals not eliminated, teams with no eliminated member."""
    members = _team_members(teams)
    active = []
    for p in participants:
        if p.type == "TEAM":
            if any(uid in eliminated for uid in members.get(p.team_id, [])):
                continue
        elif p.user_id in eliminated:
            continue
        active.append(p)
    return active
