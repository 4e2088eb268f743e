"""
Tests for the HTTP API.

Runs the FastAPI app against an in-memory SQLite database injected through
dependency overrides.
"""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from conquest.api.database import Base, database_url, get_db
from conquest.api.main import app


@pytest.fixture
def client():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    def override_get_db():
        db = TestingSession()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    engine.dispose()


@pytest.fixture
def created(client):
    """A stored 2-player game: (game_id, response state)."""
    response = client.post("/games", json={"name": "Test Game", "player_names": ["Alice", "Bob"]})
    assert response.status_code == 200
    body = response.json()
    return body["game_id"], body["state"]


def _player(state, name):
    return next(pid for pid, p in state["players"].items() if p["name"] == name)


def _province(state, name):
    return next(pid for pid, p in state["provinces"].items() if p["name"] == name)


class TestGames:

    def test_root(self, client):
        assert client.get("/").json()["message"] == "Papal Conquest API"

    def test_maps(self, client):
        maps = client.get("/maps").json()["maps"]
        assert {"id": "europe", "display_name": "Medieval Europe"} in maps

    def test_create(self, created):
        game_id, state = created
        assert game_id
        assert len(state["players"]) == 2
        assert len(state["provinces"]) == 29
        assert state["game_started"] is True
        alice = _player(state, "Alice")
        assert state["player_stats"][alice]["is_pope"] is True

    def test_create_invalid_players(self, client):
        response = client.post("/games", json={"name": "Solo", "player_names": ["Alice"]})
        assert response.status_code == 400
        assert "At least 2" in response.json()["detail"]

    def test_create_unknown_map(self, client):
        response = client.post(
            "/games",
            json={"name": "Lost", "player_names": ["Alice", "Bob"], "map_id": "atlantis"},
        )
        assert response.status_code == 404

    def test_list_fetch_delete(self, client, created):
        game_id, _ = created
        games = client.get("/games").json()["games"]
        assert [g["id"] for g in games] == [game_id]
        assert games[0]["summary"]["players"] == ["Alice", "Bob"]

        fetched = client.get(f"/games/{game_id}").json()
        assert fetched["game_id"] == game_id

        assert client.delete(f"/games/{game_id}").status_code == 200
        assert client.get(f"/games/{game_id}").status_code == 404
        assert client.delete(f"/games/{game_id}").status_code == 404

    def test_unknown_game(self, client):
        assert client.get("/games/nope").status_code == 404
        assert client.post("/games/nope/advance-day").status_code == 404

    def test_invariants(self, client, created):
        game_id, _ = created
        body = client.get(f"/games/{game_id}/invariants").json()
        assert body == {"game_id": game_id, "consistent": True, "problems": []}


class TestActions:

    def test_claim_and_recruit(self, client, created):
        game_id, state = created
        alice, athens = _player(state, "Alice"), _province(state, "Athens")

        body = client.post(f"/games/{game_id}/claim",
                           json={"player_id": alice, "province_id": athens}).json()
        assert body["accepted"] is True
        assert body["state"]["players"][alice]["resources"]["gold"] == 80
        assert body["state"]["provinces"][athens]["owner_id"] == alice

        body = client.post(f"/games/{game_id}/recruit",
                           json={"player_id": alice, "province_id": athens, "amount": 2}).json()
        assert body["state"]["provinces"][athens]["troops"] == 7
        assert body["events"][-1]["type"] == "troops_recruited"

        # Persisted
        stored = client.get(f"/games/{game_id}").json()["state"]
        assert stored["players"][alice]["total_troops"] == 147

    def test_invalid_action_is_400(self, client, created):
        game_id, state = created
        alice, naples = _player(state, "Alice"), _province(state, "Naples")
        response = client.post(f"/games/{game_id}/claim",
                               json={"player_id": alice, "province_id": naples})
        assert response.status_code == 400
        assert "already owned" in response.json()["detail"]

    def test_war_resolved_by_advance_day(self, client, created):
        game_id, state = created
        alice, bob = _player(state, "Alice"), _player(state, "Bob")
        naples = _province(state, "Naples")

        body = client.post(f"/games/{game_id}/declare-war", json={
            "attacker_id": alice,
            "defender_id": bob,
            "target_province_id": naples,
            "troops": 30,
        }).json()
        war_id = body["events"][0]["payload"]["war_id"]
        assert body["state"]["wars"][war_id]["status"] == "ongoing"

        body = client.post(f"/games/{game_id}/advance-day").json()
        assert body["state"]["game_day"] == 2
        assert body["state"]["wars"][war_id]["status"] == "resolved"

        response = client.post(f"/games/{game_id}/wars/{war_id}/resolve")
        assert response.status_code == 400
        assert client.get(f"/games/{game_id}/invariants").json()["consistent"] is True

    def test_resolve_war_now(self, client, created):
        game_id, state = created
        alice, bob = _player(state, "Alice"), _player(state, "Bob")
        body = client.post(f"/games/{game_id}/declare-war", json={
            "attacker_id": alice,
            "defender_id": bob,
            "target_province_id": _province(state, "Naples"),
            "troops": 40,
        }).json()
        war_id = body["events"][0]["payload"]["war_id"]

        body = client.post(f"/games/{game_id}/wars/{war_id}/resolve").json()
        assert body["state"]["wars"][war_id]["result"] == "attacker_wins"
        assert client.post(f"/games/{game_id}/wars/missing/resolve").status_code == 400

    def test_alliance_lifecycle(self, client, created):
        game_id, state = created
        alice, bob = _player(state, "Alice"), _player(state, "Bob")

        body = client.post(f"/games/{game_id}/alliances", json={
            "player_id": alice,
            "target_player_id": bob,
            "alliance_name": "Entente",
        }).json()
        alliance_id = body["events"][0]["payload"]["alliance_id"]
        assert body["state"]["alliances"][alliance_id]["members"] == [alice, bob]

        response = client.post(f"/games/{game_id}/alliances", json={
            "player_id": bob,
            "target_player_id": alice,
            "alliance_name": "Again",
        })
        assert response.status_code == 400

        body = client.post(f"/games/{game_id}/alliances/{alliance_id}/break",
                           json={"player_id": bob}).json()
        assert body["state"]["alliances"] == {}

    def test_trade(self, client, created):
        game_id, state = created
        alice, bob = _player(state, "Alice"), _player(state, "Bob")
        body = client.post(f"/games/{game_id}/trades", json={
            "from_player_id": alice,
            "to_player_id": bob,
            "resources": {"gold": 30, "food": 10},
        }).json()
        assert body["state"]["players"][alice]["resources"]["gold"] == 70
        assert body["state"]["players"][bob]["resources"]["food"] == 60
        assert len(body["state"]["trade_deals"]) == 1

        response = client.post(f"/games/{game_id}/trades", json={
            "from_player_id": alice,
            "to_player_id": bob,
            "resources": {"gold": 5000},
        })
        assert response.status_code == 400

    def test_papal_action_once_per_day(self, client, created):
        game_id, state = created
        naples = _province(state, "Naples")
        payload = {"type": "bless_army", "target_province_id": naples}
        terrain = state["provinces"][naples]["terrain_bonus"]

        body = client.post(f"/games/{game_id}/papal-action", json=payload).json()
        assert body["state"]["provinces"][naples]["terrain_bonus"] == pytest.approx(terrain * 1.5)
        assert body["state"]["papal_actions_used"] == 1

        response = client.post(f"/games/{game_id}/papal-action", json=payload)
        assert response.status_code == 400
        assert "already acted" in response.json()["detail"]

    def test_elect_pope(self, client, created):
        game_id, state = created
        body = client.post(f"/games/{game_id}/elect-pope").json()
        assert body["accepted"] is True
        assert body["state"]["current_pope_turn"] == _player(state, "Alice")


class TestDatabaseUrl:

    def test_postgres_scheme_rewritten(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgres://user:pw@host:5432/games")
        assert database_url() == "postgresql://user:pw@host:5432/games"

    def test_sqlite_path_override(self, monkeypatch, tmp_path):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("CONQUEST_DB_PATH", str(tmp_path / "games.db"))
        assert database_url() == f"sqlite:///{tmp_path / 'games.db'}"

    def test_default_sqlite_file(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("CONQUEST_DB_PATH", raising=False)
        assert database_url().endswith("conquest.db")
