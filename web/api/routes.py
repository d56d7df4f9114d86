"""API routes for bracket generation, results and standings."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, ConfigDict, field_validator
from sqlalchemy.exc import SQLAlchemyError

from tourney.errors import BracketError, ConflictError, NotFoundError, StorageError, ValidationError
from tourney.models.base import async_session_factory
from tourney.services import persistence, stage
from tourney.services.leaderboard import fetch_leaderboard

logger = logging.getLogger("tourney.api")

router = APIRouter(prefix="/api", tags=["brackets"])


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, SQLAlchemyError):
        logger.error("Store read failed: %s", e)
        return HTTPException(503, "Storage unavailable")
    if isinstance(e, NotFoundError):
        return HTTPException(404, str(e))
    if isinstance(e, ConflictError):
        return HTTPException(409, str(e))
    if isinstance(e, ValidationError):
        return HTTPException(400, str(e))
    if isinstance(e, StorageError):
        return HTTPException(503, str(e))
    return HTTPException(400, str(e))


# --- Pydantic schemas ---


class GeneratedMatchResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    round_index: int
    round_name: str
    match_order: int
    participant_a_id: Optional[str] = None
    participant_b_id: Optional[str] = None
    next_match_id: Optional[str] = None
    winner_slot_in_next: Optional[str] = None


class ResultSubmit(BaseModel):
    winner_participant_id: str
    score_details: Optional[str] = None
    points_awarded: Optional[dict[str, int]] = None  # participant_id -> points; default: winner gets POINTS_FOR_WIN
    submitted_by: str

    @field_validator("winner_participant_id", "submitted_by")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class MatchCreate(BaseModel):
    round_index: int = 0
    round_name: Optional[str] = None
    match_order: int = 0
    participant_a_id: Optional[str] = None
    participant_b_id: Optional[str] = None
    match_time: Optional[str] = None  # ISO datetime
    venue: Optional[str] = None


class MatchDetailsUpdate(BaseModel):
    match_time: Optional[str] = None  # ISO datetime
    venue: Optional[str] = None


class LeaderboardEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    entity_type: str
    entity_id: str
    name: str
    points: int
    wins: int
    losses: int


# --- Bracket ---


@router.get("/tournaments/{tournament_id}/games/{game_id}/bracket")
async def get_bracket(tournament_id: str, game_id: str):
    """Bracket grouped by round, with participant names and champion."""
    async with async_session_factory() as session:
        try:
            return await stage.bracket_view(session, tournament_id, game_id)
        except (BracketError, SQLAlchemyError) as e:
            raise _http_error(e)


@router.post("/tournaments/{tournament_id}/games/{game_id}/bracket")
async def generate_bracket(tournament_id: str, game_id: str):
    """Generate (or regenerate) the game's bracket from participants not yet eliminated."""
    async with async_session_factory() as session:
        try:
            generated = await stage.regenerate_bracket(session, tournament_id, game_id)
        except BracketError as e:
            raise _http_error(e)
        return {"matches": [GeneratedMatchResponse.model_validate(m) for m in generated]}


@router.get("/tournaments/{tournament_id}/games/{game_id}/eliminated")
async def list_eliminated(tournament_id: str, game_id: str):
    async with async_session_factory() as session:
        try:
            eliminated = await stage.eliminated_for_stage(session, tournament_id, game_id)
        except (BracketError, SQLAlchemyError) as e:
            raise _http_error(e)
        return {"user_ids": sorted(eliminated)}


@router.post("/tournaments/{tournament_id}/games/{game_id}/matches")
async def schedule_match(tournament_id: str, game_id: str, body: MatchCreate):
    """Schedule a single match by hand."""
    async with async_session_factory() as session:
        try:
            match = await persistence.create_match(session, tournament_id, game_id, **body.model_dump())
        except BracketError as e:
            raise _http_error(e)
        return {"id": match.id, "status": match.status, "round_name": match.round_name}


# --- Matches ---


@router.post("/matches/{match_id}/result")
async def submit_result(match_id: str, body: ResultSubmit):
    """Record a result. Rejected with 409 if the match already has one or the winner is not playing."""
    async with async_session_factory() as session:
        try:
            result = await persistence.submit_result(
                session,
                match_id,
                body.winner_participant_id,
                submitted_by=body.submitted_by,
                score_details=body.score_details,
                points_awarded=body.points_awarded,
            )
        except BracketError as e:
            if isinstance(e, StorageError):
                logger.error("submit_result failed for match %s: %s", match_id, e)
            raise _http_error(e)
        return {
            "ok": True,
            "result_id": result.id,
            "winner_participant_id": result.winner_participant_id,
            "loser_participant_id": result.loser_participant_id,
        }


@router.patch("/matches/{match_id}")
async def update_match(match_id: str, body: MatchDetailsUpdate):
    """Change match time and/or venue."""
    async with async_session_factory() as session:
        try:
            match = await persistence.update_match_details(
                session, match_id, match_time=body.match_time, venue=body.venue
            )
        except BracketError as e:
            raise _http_error(e)
        return {
            "id": match.id,
            "match_time": match.match_time.isoformat() if match.match_time else None,
            "venue": match.venue,
        }


# --- Leaderboard ---


@router.get("/tournaments/{tournament_id}/leaderboard")
async def get_leaderboard(tournament_id: str, game_id: Optional[str] = None):
    """Game leaderboard when game_id is given, otherwise tournament-wide."""
    async with async_session_factory() as session:
        try:
            entries = await fetch_leaderboard(session, tournament_id, game_id)
        except SQLAlchemyError as e:
            raise _http_error(e)
        return [LeaderboardEntryResponse.model_validate(e) for e in entries]
