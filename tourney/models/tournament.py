"""Tournament and game models."""
from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from tourney.models.base import Base, utcnow


class Tournament(Base):
    """Tournament grouping one or more games."""

    __tablename__ = "tournaments"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    status: Mapped[str] = mapped_column(String(16), default="draft")  # draft, active, completed
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    games = relationship(
        "Game", back_populates="tournament", cascade="all, delete-orphan"
    )


class Game(Base):
    """A game within a tournament. Each game has its own single-elimination bracket."""

    __tablename__ = "games"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tournament_id: Mapped[str] = mapped_column(ForeignKey("tournaments.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    game_type: Mapped[str] = mapped_column(String(16), default="SINGLE")  # SINGLE, PAIR, TEAM
    players_per_team: Mapped[int] = mapped_column(Integer, default=1)

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="games")
