"""Participant model - a user or team entered into a game's bracket."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from tourney.models.base import Base, utcnow


class Participant(Base):
    """Bracket entrant. Exactly one of user_id/team_id is set, matching type."""

    __tablename__ = "participants"
    __table_args__ = (
        CheckConstraint(
            "(type = 'USER' AND user_id IS NOT NULL AND team_id IS NULL)"
            " OR (type = 'TEAM' AND team_id IS NOT NULL AND user_id IS NULL)",
            name="ck_participants_single_ref",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    tournament_id: Mapped[str] = mapped_column(ForeignKey("tournaments.id"), nullable=False)
    game_id: Mapped[str] = mapped_column(ForeignKey("games.id"), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(8), nullable=False)  # USER, TEAM
    user_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id"), nullable=True)
    team_id: Mapped[Optional[str]] = mapped_column(ForeignKey("teams.id"), nullable=True)
    seed: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # 1 = top seed
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    @property
    def entity_id(self) -> Optional[str]:
        return self.team_id if self.type == "TEAM" else self.user_id
