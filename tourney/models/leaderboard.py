"""Leaderboard model."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tourney.models.base import Base, utcnow


class LeaderboardEntry(Base):
    """Points and win/loss tally for a user or team.

    game_id is None for the tournament-wide row.
    """

    __tablename__ = "leaderboard"

    id: Mapped[str] = mapped_column(String(200), primary_key=True)  # {tournament}_{game}_{entity} or {tournament}_{entity}
    tournament_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    game_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_type: Mapped[str] = mapped_column(String(8), nullable=False)  # USER, TEAM
    entity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    points: Mapped[int] = mapped_column(Integer, default=0)
    wins: Mapped[int] = mapped_column(Integer, default=0)
    losses: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
