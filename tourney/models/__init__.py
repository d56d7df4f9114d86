"""Database models."""
from tourney.models.base import Base, get_async_session, init_db
from tourney.models.user import User
from tourney.models.tournament import Game, Tournament
from tourney.models.team import Team, TeamMember
from tourney.models.participant import Participant
from tourney.models.match import Match, MatchResult
from tourney.models.leaderboard import LeaderboardEntry  # noqa: F401 - for metadata

__all__ = [
    "Base",
    "User",
    "Tournament",
    "Game",
    "Team",
    "TeamMember",
    "Participant",
    "Match",
    "MatchResult",
    "LeaderboardEntry",
    "get_async_session",
    "init_db",
]
