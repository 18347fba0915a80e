"""Unit tests for the rankings JSON API."""

import pytest
from fastapi.testclient import TestClient

from leaguerank.jobs.controller import CalculationJobController
from leaguerank.web.main import app, get_controller, get_db


@pytest.fixture
def controller(session_factory, test_engine):
    return CalculationJobController(session_factory=session_factory, engine=test_engine)


@pytest.fixture
def client(session_factory, controller):
    def _get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_controller] = lambda: controller
    # No context manager: skip the lifespan hook, which targets the real database
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_rebuild_is_accepted_and_runs(client, two_season_league):
    response = client.post("/api/rankings/rebuild", json={"triggeredBy": "api-test"})

    assert response.status_code == 202
    accepted = response.json()
    assert accepted["status"] == "pending"

    # TestClient runs background tasks before returning
    status = client.get(f"/api/rankings/calculations/{accepted['calculationId']}").json()
    assert status["status"] == "completed"
    assert status["triggeredBy"] == "api-test"
    assert status["progress"]["percentComplete"] == 100


def test_rebuild_conflict_returns_409(client, controller):
    pending = controller.trigger_full_rebuild()

    response = client.post("/api/rankings/rebuild")

    assert response.status_code == 409
    assert response.json()["detail"]["calculationId"] == pending["calculationId"]


def test_unknown_calculation_returns_404(client):
    assert client.get("/api/rankings/calculations/nope").status_code == 404
    assert client.post("/api/rankings/calculations/nope/cancel").status_code == 404


def test_cancel_pending_calculation(client, controller):
    pending = controller.trigger_full_rebuild()

    response = client.post(f"/api/rankings/calculations/{pending['calculationId']}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "failed"
    assert response.json()["cancelRequested"] is True


def test_recent_calculations(client, controller, two_season_league):
    controller.rebuild()
    controller.rebuild()

    body = client.get("/api/rankings/calculations", params={"limit": 1}).json()

    assert len(body["calculations"]) == 1
    assert body["calculations"][0]["status"] == "completed"


def test_rankings_before_first_rebuild(client):
    body = client.get("/api/rankings").json()
    assert body == {"players": [], "count": 0}


def test_rankings_and_history(client, controller, two_season_league):
    controller.rebuild()

    rankings = client.get("/api/rankings", params={"top": 2}).json()
    assert rankings["count"] == 2
    assert [p["rank"] for p in rankings["players"]] == [1, 2]
    assert {"playerId", "playerName", "rating", "uncertainty", "totalGames"} <= set(rankings["players"][0])

    history = client.get("/api/rankings/history").json()
    assert history["count"] == 3
    assert [s["week"] for s in history["snapshots"]] == [1, 2, 1]

    summer = two_season_league.teams["A2"].season_id
    summer_only = client.get("/api/rankings/history", params={"season_id": summer}).json()
    assert summer_only["count"] == 1
    assert summer_only["snapshots"][0]["meta"]["activePlayerCount"] == 4

    latest = client.get("/api/rankings/history", params={"recent_weeks": 1}).json()
    assert latest["snapshots"][0]["seasonId"] == summer


def test_top_must_be_positive(client):
    assert client.get("/api/rankings", params={"top": 0}).status_code == 422
