"""Leaderboard point accrual for match results."""
from __future__ import annotations

import logging
from typing import Dict, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tourney.models import LeaderboardEntry, Participant, Team, User
from tourney.services.names import UNKNOWN, user_display_name

logger = logging.getLogger("tourney.leaderboard")


def entry_id(tournament_id: str, game_id: Optional[str], entity_id: str) -> str:
    return f"{tournament_id}_{game_id}_{entity_id}" if game_id else f"{tournament_id}_{entity_id}"


async def _entity_for(session: AsyncSession, participant_id: str) -> Optional[tuple]:
    """(entity_type, entity_id, name) for a participant, or None if it no longer exists."""
    p = await session.get(Participant, participant_id)
    if not p:
        return None
    if p.type == "TEAM":
        team = await session.get(Team, p.team_id)
        return ("TEAM", p.team_id, team.name if team else UNKNOWN)
    user = await session.get(User, p.user_id)
    return ("USER", p.user_id, user_display_name(user, p.user_id))


async def _bump(
    session: AsyncSession,
    tournament_id: str,
    game_id: Optional[str],
    entity: tuple,
    points: int,
    won: bool,
) -> None:
    entity_type, entity_id_, name = entity
    key = entry_id(tournament_id, game_id, entity_id_)
    entry = await session.get(LeaderboardEntry, key)
    if entry is None:
        entry = LeaderboardEntry(
            id=key,
            tournament_id=tournament_id,
            game_id=game_id,
            entity_type=entity_type,
            entity_id=entity_id_,
            name=name,
            points=0,
            wins=0,
            losses=0,
        )
        session.add(entry)
    entry.name = name
    entry.points += points
    if won:
        entry.wins += 1
    else:
        entry.losses += 1


async def record_result_to_leaderboard(
    session: AsyncSession,
    *,
    tournament_id: str,
    game_id: str,
    winner_id: str,
    loser_id: Optional[str],
    points_awarded: Dict[str, int],
) -> None:
    """Credit winner and loser on the game board and the tournament-wide board.

    Runs inside the caller's transaction; does not commit.
    """
    sides = [(winner_id, True)]
    if loser_id:
        sides.append((loser_id, False))
    for participant_id, won in sides:
        entity = await _entity_for(session, participant_id)
        if entity is None:
            logger.warning("Leaderboard skipped participant %s: not found", participant_id)
            continue
        points = int(points_awarded.get(participant_id, 0))
        await _bump(session, tournament_id, game_id, entity, points, won)
        await _bump(session, tournament_id, None, entity, points, won)
    # Entries added above must be visible to the next lookup in this transaction
    await session.flush()


async def fetch_leaderboard(
    session: AsyncSession, tournament_id: str, game_id: Optional[str] = None
) -> list[LeaderboardEntry]:
    """Game board when game_id is given, otherwise the tournament-wide board. Highest points first."""
    query = select(LeaderboardEntry).where(LeaderboardEntry.tournament_id == tournament_id)
    if game_id:
        query = query.where(LeaderboardEntry.game_id == game_id)
    else:
        query = query.where(LeaderboardEntry.game_id.is_(None))
    result = await session.execute(
        query.order_by(LeaderboardEntry.points.desc(), LeaderboardEntry.wins.desc(), LeaderboardEntry.name)
    )
    return list(result.scalars().all())
