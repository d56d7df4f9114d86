"""Match and match result models."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from tourney.models.base import Base, utcnow


class Match(Base):
    """Single match in a (tournament, game) bracket.

    next_match_id/winner_slot_in_next route the winner into the following round;
    both are set or both are empty. The final has neither.
    """

    __tablename__ = "matches"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tournament_id: Mapped[str] = mapped_column(ForeignKey("tournaments.id"), nullable=False, index=True)
    game_id: Mapped[str] = mapped_column(ForeignKey("games.id"), nullable=False, index=True)
    round_index: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = first round
    round_name: Mapped[str] = mapped_column(String(32), nullable=False)
    match_order: Mapped[int] = mapped_column(Integer, nullable=False)
    participant_a_id: Mapped[Optional[str]] = mapped_column(ForeignKey("participants.id"), nullable=True)
    participant_b_id: Mapped[Optional[str]] = mapped_column(ForeignKey("participants.id"), nullable=True)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="SCHEDULED")
    winner_participant_id: Mapped[Optional[str]] = mapped_column(ForeignKey("participants.id"), nullable=True)
    next_match_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    winner_slot_in_next: Mapped[Optional[str]] = mapped_column(String(1), nullable=True)  # A, B
    is_manual: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # scheduled by hand, not part of the bracket tree
    match_time: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    venue: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)


class MatchResult(Base):
    """Immutable record of a completed match."""

    __tablename__ = "match_results"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    match_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)  # outlives regenerated matches
    tournament_id: Mapped[str] = mapped_column(String(64), nullable=False)
    game_id: Mapped[str] = mapped_column(String(64), nullable=False)
    winner_participant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    loser_participant_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)  # None for a bye
    score_details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    points_awarded: Mapped[dict] = mapped_column(JSON, default=dict)  # participant_id -> points
    submitted_by: Mapped[str] = mapped_column(String(64), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
