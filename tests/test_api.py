"""Tests for the bracket API."""
import pytest
from sqlalchemy.exc import OperationalError

from tourney.errors import StorageError


@pytest.mark.asyncio
async def test_health(client):
    """Health endpoint returns ok."""
    r = await client.get("/api/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_generate_and_view_bracket(client, seed_stage):
    """Generate an 8-player bracket and read it back by round."""
    await seed_stage(8)
    r = await client.post("/api/tournaments/t1/games/g1/bracket")
    assert r.status_code == 200
    matches = r.json()["matches"]
    assert len(matches) == 7

    r = await client.get("/api/tournaments/t1/games/g1/bracket")
    assert r.status_code == 200
    rounds = r.json()["rounds"]
    assert [rounds[k][0]["round_name"] for k in ("0", "1", "2")] == ["Quarter Final", "Semi Final", "Final"]
    assert rounds["0"][0]["participant_a_name"] == "Player 1"
    assert rounds["1"][0]["participant_a_name"] == "TBD"


@pytest.mark.asyncio
async def test_generate_errors(client, seed_stage):
    await seed_stage(1)
    r = await client.post("/api/tournaments/t1/games/g1/bracket")
    assert r.status_code == 400
    r = await client.post("/api/tournaments/t1/games/missing/bracket")
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_result_flow(client, seed_stage):
    """Submit results until a champion is crowned; resubmission is a conflict."""
    await seed_stage(4)
    r = await client.post("/api/tournaments/t1/games/g1/bracket")
    matches = {(m["round_index"], m["match_order"]): m for m in r.json()["matches"]}

    semi1, semi2, final = matches[(0, 0)], matches[(0, 1)], matches[(1, 0)]
    r = await client.post(
        f"/api/matches/{semi1['id']}/result",
        json={"winner_participant_id": "p1", "score_details": "3-0", "submitted_by": "admin"},
    )
    assert r.status_code == 200
    assert r.json()["loser_participant_id"] == "p2"

    r = await client.post(
        f"/api/matches/{semi1['id']}/result",
        json={"winner_participant_id": "p2", "submitted_by": "admin"},
    )
    assert r.status_code == 409

    r = await client.post(
        f"/api/matches/{semi2['id']}/result",
        json={"winner_participant_id": "p9", "submitted_by": "admin"},
    )
    assert r.status_code == 409

    await client.post(
        f"/api/matches/{semi2['id']}/result",
        json={"winner_participant_id": "p4", "submitted_by": "admin"},
    )
    r = await client.post(
        f"/api/matches/{final['id']}/result",
        json={"winner_participant_id": "p4", "submitted_by": "admin"},
    )
    assert r.status_code == 200

    view = (await client.get("/api/tournaments/t1/games/g1/bracket")).json()
    assert view["champion_participant_id"] == "p4"
    assert view["champion_name"] == "Player 4"

    r = await client.get("/api/tournaments/t1/games/g1/eliminated")
    assert r.json() == {"user_ids": ["u1", "u2", "u3"]}

    r = await client.get("/api/tournaments/t1/leaderboard", params={"game_id": "g1"})
    board = r.json()
    assert board[0]["entity_id"] == "u4"
    assert board[0]["wins"] == 2 and board[0]["points"] == 6


@pytest.mark.asyncio
async def test_result_unknown_match(client):
    r = await client.post(
        "/api/matches/nope/result",
        json={"winner_participant_id": "p1", "submitted_by": "admin"},
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_result_requires_submitter(client):
    r = await client.post("/api/matches/m1/result", json={"winner_participant_id": "p1", "submitted_by": " "})
    assert r.status_code == 422


@pytest.mark.asyncio
async def test_schedule_and_update_match(client, seed_stage):
    await seed_stage(2)
    r = await client.post(
        "/api/tournaments/t1/games/g1/matches",
        json={"participant_a_id": "p1", "participant_b_id": "p2", "round_name": "Exhibition"},
    )
    assert r.status_code == 200
    match_id = r.json()["id"]
    assert r.json()["round_name"] == "Exhibition"

    r = await client.patch(f"/api/matches/{match_id}", json={"match_time": "2026-06-01T09:00:00Z", "venue": "Court 2"})
    assert r.status_code == 200
    assert r.json()["venue"] == "Court 2"
    assert r.json()["match_time"].startswith("2026-06-01T09:00:00")

    r = await client.patch("/api/matches/unknown", json={"venue": "x"})
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_schedule_match_unknown_participant(client, seed_stage):
    await seed_stage(2)
    r = await client.post(
        "/api/tournaments/t1/games/g1/matches",
        json={"participant_a_id": "p1", "participant_b_id": "ghost"},
    )
    assert r.status_code == 404


@pytest.mark.asyncio
async def test_generate_storage_failure(client, seed_stage, monkeypatch):
    """A failed bracket write surfaces as 503."""
    await seed_stage(4)

    async def failing_persist(*args, **kwargs):
        raise StorageError("persist matches failed: disk I/O error")

    monkeypatch.setattr("tourney.services.stage.persist_matches", failing_persist)
    r = await client.post("/api/tournaments/t1/games/g1/bracket")
    assert r.status_code == 503


@pytest.mark.asyncio
async def test_leaderboard_storage_failure(client, monkeypatch):
    async def failing_fetch(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr("web.api.routes.fetch_leaderboard", failing_fetch)
    r = await client.get("/api/tournaments/t1/leaderboard")
    assert r.status_code == 503
