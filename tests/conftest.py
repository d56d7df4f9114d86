"""Pytest configuration and fixtures."""
import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path

# Set test env BEFORE any imports that use config
_tmpdir = tempfile.mkdtemp(prefix="tourney-tests-")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{Path(_tmpdir) / 'test.db'}"
os.environ["AUTO_ADVANCE_BYES"] = "true"
os.environ["POINTS_FOR_WIN"] = "3"

import pytest
from httpx import ASGITransport, AsyncClient

from tourney.models import Game, Participant, Team, TeamMember, Tournament, User
from tourney.models.base import async_session_factory, drop_db, init_db
from web.api.main import app

BASE_TIME = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
async def _init_db():
    """Fresh tables for every test (ASGI lifespan doesn't run with httpx)."""
    await init_db()
    yield
    await drop_db()


@pytest.fixture
async def session():
    async with async_session_factory() as s:
        yield s


@pytest.fixture
async def client():
    """Async HTTP client for testing the API."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac


@pytest.fixture
def seed_stage():
    """Create a tournament + game with user (or team) participants.

    Returns an async callable: await seed_stage(n, seeds=None, teams=None).
    teams: list of member-id lists; when given, participants are teams.
    Participant ids are p1..pN, registered one minute apart in that order.
    """

    async def _seed(n=0, seeds=None, teams=None, tournament_id="t1", game_id="g1"):
        async with async_session_factory() as s:
            s.add(Tournament(id=tournament_id, name="Spring Cup", status="active"))
            s.add(Game(id=game_id, tournament_id=tournament_id, name="Chess", game_type="TEAM" if teams else "SINGLE"))
            await s.flush()
            if teams:
                for i, members in enumerate(teams, start=1):
                    for uid in members:
                        if await s.get(User, uid) is None:
                            s.add(User(id=uid, display_name=uid.upper()))
                    await s.flush()
                    team = Team(id=f"team{i}", tournament_id=tournament_id, game_id=game_id, name=f"Team {i}")
                    team.members = [TeamMember(user_id=uid, sort_order=j) for j, uid in enumerate(members)]
                    s.add(team)
                    await s.flush()
                    s.add(
                        Participant(
                            id=f"p{i}",
                            tournament_id=tournament_id,
                            game_id=game_id,
                            type="TEAM",
                            team_id=team.id,
                            seed=seeds[i - 1] if seeds else None,
                            created_at=BASE_TIME + timedelta(minutes=i),
                        )
                    )
            else:
                for i in range(1, n + 1):
                    s.add(User(id=f"u{i}", display_name=f"Player {i}"))
                    await s.flush()
                    s.add(
                        Participant(
                            id=f"p{i}",
                            tournament_id=tournament_id,
                            game_id=game_id,
                            type="USER",
                            user_id=f"u{i}",
                            seed=seeds[i - 1] if seeds else None,
                            created_at=BASE_TIME + timedelta(minutes=i),
                        )
                    )
            await s.commit()

    return _seed
