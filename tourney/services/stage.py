"""Stage-level operations: (re)generating a game's bracket and reading it back."""
from __future__ import annotations

import logging
from typing import List, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

import config
from tourney.errors import ValidationError
from tourney.models import Participant, Team, User
from tourney.services.advancement import champion, is_manual
from tourney.services.bracket_gen import GeneratedMatch, generate_bracket
from tourney.services.elimination import active_participants, compute_eliminated, history_from_results
from tourney.services.names import build_name_lookup, participant_display_name
from tourney.services.persistence import (
    fetch_by_ids,
    fetch_matches,
    fetch_stage_results,
    match_status_summary,
    persist_matches,
    require_stage,
    resolve_stage_byes,
)

logger = logging.getLogger("tourney.stage")

MIN_PARTICIPANTS = 2


async def load_participants(session: AsyncSession, tournament_id: str, game_id: str) -> List[Participant]:
    result = await session.execute(
        select(Participant)
        .where(Participant.tournament_id == tournament_id, Participant.game_id == game_id)
        .order_by(Participant.created_at, Participant.id)
    )
    return list(result.scalars().all())


async def load_teams(session: AsyncSession, participants: List[Participant]) -> List[Team]:
    return await fetch_by_ids(session, Team, [p.team_id for p in participants if p.team_id])


async def eliminated_for_stage(session: AsyncSession, tournament_id: str, game_id: str) -> Set[str]:
    """User ids knocked out of this stage, from current matches and every stored result."""
    await require_stage(session, tournament_id, game_id)
    participants = await load_participants(session, tournament_id, game_id)
    teams = await load_teams(session, participants)
    matches = await fetch_matches(session, tournament_id, game_id)
    history = list(matches) + history_from_results(await fetch_stage_results(session, tournament_id, game_id))
    return compute_eliminated(history, participants, teams)


async def regenerate_bracket(session: AsyncSession, tournament_id: str, game_id: str) -> List[GeneratedMatch]:
    """Rebuild the stage bracket from participants still in, reusing existing match ids.

    Eliminated users (and teams with an eliminated member) are left out. Byes are
    resolved afterwards when AUTO_ADVANCE_BYES is on.
    """
    await require_stage(session, tournament_id, game_id)
    participants = await load_participants(session, tournament_id, game_id)
    teams = await load_teams(session, participants)
    stage_matches = await fetch_matches(session, tournament_id, game_id)
    existing = [m for m in stage_matches if not is_manual(m)]
    history = list(stage_matches) + history_from_results(await fetch_stage_results(session, tournament_id, game_id))
    eliminated = compute_eliminated(history, participants, teams)
    active = active_participants(participants, eliminated, teams)
    if len(active) < MIN_PARTICIPANTS:
        raise ValidationError(
            f"At least {MIN_PARTICIPANTS} participants are required to create a bracket (have {len(active)})"
        )

    generated = generate_bracket(active, existing)
    await persist_matches(
        session,
        tournament_id,
        game_id,
        generated,
        remove_ids=[m.id for m in existing],
    )
    logger.info(
        "Generated bracket for tournament %s game %s: %d participants, %d eliminated users, %d matches",
        tournament_id,
        game_id,
        len(active),
        len(eliminated),
        len(generated),
    )
    if config.AUTO_ADVANCE_BYES:
        await resolve_stage_byes(session, tournament_id, game_id)
    return generated


async def bracket_view(session: AsyncSession, tournament_id: str, game_id: str) -> dict:
    """Matches grouped by round with display names, plus champion once the final is decided."""
    await require_stage(session, tournament_id, game_id)
    participants = await load_participants(session, tournament_id, game_id)
    teams = await load_teams(session, participants)
    users = await fetch_by_ids(session, User, [p.user_id for p in participants if p.user_id])
    names = build_name_lookup(participants, users, teams)
    matches = await fetch_matches(session, tournament_id, game_id)

    rounds: dict = {}
    for m in matches:
        rounds.setdefault(str(m.round_index), []).append(
            {
                "id": m.id,
                "round_index": m.round_index,
                "round_name": m.round_name,
                "match_order": m.match_order,
                "status": m.status,
                "participant_a_id": m.participant_a_id,
                "participant_b_id": m.participant_b_id,
                "participant_a_name": participant_display_name(names, m.participant_a_id),
                "participant_b_name": participant_display_name(names, m.participant_b_id),
                "winner_participant_id": m.winner_participant_id,
                "next_match_id": m.next_match_id,
                "winner_slot_in_next": m.winner_slot_in_next,
                "is_manual": m.is_manual,
                "match_time": m.match_time.isoformat() if m.match_time else None,
                "venue": m.venue,
            }
        )
    winner = champion(matches)
    return {
        "tournament_id": tournament_id,
        "game_id": game_id,
        "rounds": rounds,
        "status_counts": match_status_summary(matches),
        "champion_participant_id": winner,
        "champion_name": participant_display_name(names, winner) if winner else None,
    }
