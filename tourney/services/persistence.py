"""Match persistence: bulk bracket writes, result submission and id-set lookups.

All writes go through a single commit per call; any store failure rolls the
whole call back and surfaces as StorageError.
"""
from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

import config
from tourney.errors import BracketError, ConflictError, NotFoundError, StorageError, ValidationError
from tourney.models import Game, Match, MatchResult, Participant, Tournament
from tourney.models.base import utcnow
from tourney.services.advancement import (
    CANCELLED,
    COMPLETED,
    SCHEDULED,
    ByePlan,
    MatchOutcome,
    record_result,
    resolve_byes,
)
from tourney.services.leaderboard import record_result_to_leaderboard
from tourney.timestamps import to_utc_datetime

logger = logging.getLogger("tourney.persistence")

GENERATED_FIELDS = (
    "id",
    "round_index",
    "round_name",
    "match_order",
    "participant_a_id",
    "participant_b_id",
    "next_match_id",
    "winner_slot_in_next",
)

BYE_SUBMITTER = "system"


def chunked(ids: Iterable[Any], size: int) -> List[List[Any]]:
    """Deduplicate (keeping first-seen order) and split into lists of at most size."""
    unique = list(dict.fromkeys(i for i in ids if i is not None))
    size = max(1, size)
    return [unique[i : i + size] for i in range(0, len(unique), size)]


@asynccontextmanager
async def _atomic(session: AsyncSession, action: str):
    """Commit on success; roll back and re-raise on failure (store errors become StorageError)."""
    try:
        yield
        await session.commit()
    except BracketError:
        await session.rollback()
        raise
    except SQLAlchemyError as e:
        await session.rollback()
        logger.exception("%s failed", action)
        raise StorageError(f"{action} failed: {e}") from e


def _check_link(data: Dict[str, Any]) -> None:
    if bool(data.get("next_match_id")) != bool(data.get("winner_slot_in_next")):
        raise ValidationError(
            f"Match {data.get('id')} must set next_match_id and winner_slot_in_next together"
        )
    if data.get("winner_slot_in_next") not in (None, "A", "B"):
        raise ValidationError(f"Match {data.get('id')} has invalid slot {data['winner_slot_in_next']!r}")


# --- Reads ---


async def fetch_by_ids(
    session: AsyncSession,
    model: Type[Any],
    ids: Iterable[Any],
    chunk_size: Optional[int] = None,
) -> List[Any]:
    """Load rows by primary key, chunking the IN clause and dropping duplicate ids."""
    rows: Dict[Any, Any] = {}
    for chunk in chunked(ids, chunk_size or config.QUERY_CHUNK_SIZE):
        result = await session.execute(select(model).where(model.id.in_(chunk)))
        for row in result.scalars().all():
            rows[row.id] = row
    return list(rows.values())


async def fetch_matches(
    session: AsyncSession, tournament_id: str, game_id: Optional[str] = None
) -> List[Match]:
    """Matches of a tournament (optionally one game), in bracket order."""
    query = select(Match).where(Match.tournament_id == tournament_id)
    if game_id:
        query = query.where(Match.game_id == game_id)
    result = await session.execute(
        query.order_by(Match.round_index, Match.match_order).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def fetch_matches_for_participants(
    session: AsyncSession,
    participant_ids: Sequence[str],
    chunk_size: Optional[int] = None,
) -> List[Match]:
    """Every match where any of these participants sits in slot A or B."""
    found: Dict[str, Match] = {}
    for chunk in chunked(participant_ids, chunk_size or config.QUERY_CHUNK_SIZE):
        result = await session.execute(
            select(Match).where(
                or_(Match.participant_a_id.in_(chunk), Match.participant_b_id.in_(chunk))
            )
        )
        for m in result.scalars().all():
            found[m.id] = m
    return sorted(found.values(), key=lambda m: (m.round_index, m.match_order))


async def fetch_results_for_matches(
    session: AsyncSession,
    match_ids: Sequence[str],
    chunk_size: Optional[int] = None,
) -> List[MatchResult]:
    """Results of the current version of each match.

    A regenerated match keeps its id but gets a new created_at; results recorded
    before that belong to the earlier bracket and are left out here (they stay in
    fetch_stage_results as elimination history).
    """
    results: List[MatchResult] = []
    for chunk in chunked(match_ids, chunk_size or config.QUERY_CHUNK_SIZE):
        rows = await session.execute(
            select(MatchResult)
            .join(Match, Match.id == MatchResult.match_id)
            .where(MatchResult.match_id.in_(chunk), MatchResult.created_at >= Match.created_at)
            .order_by(MatchResult.id)
        )
        results.extend(rows.scalars().all())
    return results


async def fetch_stage_results(session: AsyncSession, tournament_id: str, game_id: str) -> List[MatchResult]:
    """Every result ever recorded for a stage, including matches since regenerated."""
    rows = await session.execute(
        select(MatchResult)
        .where(MatchResult.tournament_id == tournament_id, MatchResult.game_id == game_id)
        .order_by(MatchResult.id)
    )
    return list(rows.scalars().all())


# --- Writes ---


async def require_stage(session: AsyncSession, tournament_id: str, game_id: str) -> Game:
    """The stage's Game, or NotFoundError when the tournament or game does not exist."""
    t = await session.get(Tournament, tournament_id)
    if not t:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    game = await session.get(Game, game_id)
    if not game or game.tournament_id != tournament_id:
        raise NotFoundError(f"Game {game_id} not found in tournament {tournament_id}")
    return game


async def _require_participants(session: AsyncSession, participant_ids: Iterable[Optional[str]]) -> None:
    wanted = [p for p in dict.fromkeys(participant_ids) if p]
    if not wanted:
        return
    found = {p.id for p in await fetch_by_ids(session, Participant, wanted)}
    missing = [p for p in wanted if p not in found]
    if missing:
        raise NotFoundError(f"Participant(s) not found: {', '.join(missing)}")


async def persist_matches(
    session: AsyncSession,
    tournament_id: str,
    game_id: str,
    matches: Sequence[Any],
    remove_ids: Sequence[str] = (),
) -> None:
    """Upsert a generated bracket keyed by match id, all or nothing.

    Each record is stamped with the stage ids, status SCHEDULED, no winner and
    fresh timestamps, so re-persisting the same ids overwrites instead of
    duplicating. remove_ids (matches of an earlier, larger bracket that were not
    reused) are deleted in the same transaction; their results are kept as history.
    """
    rows = []
    for m in matches:
        data = {f: getattr(m, f, None) for f in GENERATED_FIELDS}
        if not data["id"]:
            raise ValidationError("Generated match is missing an id")
        _check_link(data)
        rows.append(data)

    now = utcnow()
    async with _atomic(session, "persist matches"):
        await require_stage(session, tournament_id, game_id)
        await _require_participants(
            session, [r[col] for r in rows for col in ("participant_a_id", "participant_b_id")]
        )
        stale = [i for i in dict.fromkeys(remove_ids) if i not in {r["id"] for r in rows}]
        if stale:
            await session.execute(delete(Match).where(Match.id.in_(stale)))
        for data in rows:
            await session.merge(
                Match(
                    **data,
                    tournament_id=tournament_id,
                    game_id=game_id,
                    status=SCHEDULED,
                    winner_participant_id=None,
                    is_manual=False,
                    created_at=now,
                    updated_at=now,
                )
            )
    logger.info("Persisted %d matches for tournament %s game %s", len(rows), tournament_id, game_id)


async def create_match(
    session: AsyncSession,
    tournament_id: str,
    game_id: str,
    *,
    match_id: Optional[str] = None,
    round_index: int = 0,
    round_name: Optional[str] = None,
    match_order: int = 0,
    participant_a_id: Optional[str] = None,
    participant_b_id: Optional[str] = None,
    next_match_id: Optional[str] = None,
    winner_slot_in_next: Optional[str] = None,
    match_time: Any = None,
    venue: Optional[str] = None,
) -> Match:
    """Schedule a single match by hand (outside bracket generation)."""
    if participant_a_id and participant_a_id == participant_b_id:
        raise ValidationError("A match needs two different participants")
    _check_link({"id": match_id, "next_match_id": next_match_id, "winner_slot_in_next": winner_slot_in_next})
    match = Match(
        id=match_id or str(uuid.uuid4()),
        tournament_id=tournament_id,
        game_id=game_id,
        round_index=round_index,
        round_name=round_name or f"Round {round_index + 1}",
        match_order=match_order,
        participant_a_id=participant_a_id,
        participant_b_id=participant_b_id,
        next_match_id=next_match_id,
        winner_slot_in_next=winner_slot_in_next,
        status=SCHEDULED,
        is_manual=True,
        match_time=to_utc_datetime(match_time),
        venue=venue,
    )
    async with _atomic(session, "create match"):
        await require_stage(session, tournament_id, game_id)
        await _require_participants(session, [participant_a_id, participant_b_id])
        session.add(match)
    return match


async def update_match_details(
    session: AsyncSession,
    match_id: str,
    *,
    match_time: Any = None,
    venue: Optional[str] = None,
) -> Match:
    """Change when/where a match is played. Participants and results are not touched here."""
    async with _atomic(session, "update match"):
        match = await session.get(Match, match_id)
        if not match:
            raise NotFoundError(f"Match {match_id} not found")
        if match_time is not None:
            match.match_time = to_utc_datetime(match_time)
        if venue is not None:
            match.venue = venue
        match.updated_at = utcnow()
    return match


async def _complete(session: AsyncSession, outcome: MatchOutcome, now: datetime) -> bool:
    """Flip SCHEDULED -> COMPLETED. False if someone else completed it first."""
    result = await session.execute(
        update(Match)
        .where(Match.id == outcome.match_id, Match.status == SCHEDULED)
        .values(**outcome.match_update, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


async def _patch_next_slot(session: AsyncSession, outcome: MatchOutcome, now: datetime) -> None:
    """Write only the winner's slot column, leaving the sibling slot alone."""
    patch = outcome.next_match_update
    if not patch:
        return
    result = await session.execute(
        update(Match)
        .where(Match.id == outcome.next_match_id)
        .values(**patch, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f"Next match {outcome.next_match_id} not found")


async def apply_bye_plan(
    session: AsyncSession, tournament_id: str, game_id: str, plan: ByePlan
) -> int:
    """Apply a bye plan inside the caller's transaction. Returns matches changed."""
    now = utcnow()
    changed = 0
    for outcome in plan.outcomes:
        if not await _complete(session, outcome, now):
            continue
        session.add(
            MatchResult(
                match_id=outcome.match_id,
                tournament_id=tournament_id,
                game_id=game_id,
                winner_participant_id=outcome.winner_participant_id,
                score_details="bye",
                points_awarded={},
                submitted_by=BYE_SUBMITTER,
                created_at=now,
            )
        )
        await _patch_next_slot(session, outcome, now)
        changed += 1
    for match_id in plan.cancelled:
        result = await session.execute(
            update(Match)
            .where(Match.id == match_id, Match.status == SCHEDULED)
            .values(status=CANCELLED, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        changed += result.rowcount
    if changed:
        logger.info(
            "Resolved byes for tournament %s game %s: %d advanced, %d cancelled",
            tournament_id,
            game_id,
            len(plan.outcomes),
            len(plan.cancelled),
        )
    return changed


async def resolve_stage_byes(session: AsyncSession, tournament_id: str, game_id: str) -> int:
    """Advance participants past byes for one stage and commit."""
    async with _atomic(session, "resolve byes"):
        matches = await fetch_matches(session, tournament_id, game_id)
        changed = await apply_bye_plan(session, tournament_id, game_id, resolve_byes(matches))
    return changed


async def submit_result(
    session: AsyncSession,
    match_id: str,
    winner_participant_id: str,
    *,
    submitted_by: str,
    score_details: Optional[str] = None,
    points_awarded: Optional[Dict[str, int]] = None,
) -> MatchResult:
    """Record a match result and advance the winner.

    The match flips to COMPLETED only if it is still SCHEDULED at write time, so
    a second submission (even a concurrent one) is rejected with ConflictError
    and nothing is double counted. The downstream match gets a partial update of
    the winner's slot and stays SCHEDULED.
    """
    async with _atomic(session, "submit result"):
        match = await session.get(Match, match_id, populate_existing=True)
        if not match:
            raise NotFoundError(f"Match {match_id} not found")
        outcome = record_result(match, winner_participant_id)
        if points_awarded is None:
            points_awarded = {winner_participant_id: config.POINTS_FOR_WIN}

        now = utcnow()
        if not await _complete(session, outcome, now):
            raise ConflictError(f"Match {match_id} already has a result")
        result = MatchResult(
            match_id=match_id,
            tournament_id=match.tournament_id,
            game_id=match.game_id,
            winner_participant_id=winner_participant_id,
            loser_participant_id=outcome.loser_participant_id,
            score_details=score_details,
            points_awarded=dict(points_awarded),
            submitted_by=submitted_by,
            created_at=now,
        )
        session.add(result)
        await _patch_next_slot(session, outcome, now)
        await record_result_to_leaderboard(
            session,
            tournament_id=match.tournament_id,
            game_id=match.game_id,
            winner_id=outcome.winner_participant_id,
            loser_id=outcome.loser_participant_id,
            points_awarded=points_awarded,
        )
        if config.AUTO_ADVANCE_BYES and outcome.next_match_id:
            stage = await fetch_matches(session, match.tournament_id, match.game_id)
            await apply_bye_plan(session, match.tournament_id, match.game_id, resolve_byes(stage))
    logger.info(
        "Result for match %s: winner %s (next: %s)", match_id, winner_participant_id, outcome.next_match_id or "-"
    )
    return result


def match_status_summary(matches: Iterable[Match]) -> Dict[str, int]:
    summary = {SCHEDULED: 0, COMPLETED: 0, CANCELLED: 0}
    for m in matches:
        summary[m.status] = summary.get(m.status, 0) + 1
    return summary
