"""API route tests."""

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from api.game_store import GameStore, get_store
from api.main import app
from game.errors import StoreError
from game.rules import KILLING_ROUND_QUESTIONS, Role

HOST = {"X-Actor-Id": "host-1"}


def _as(actor_id: str) -> dict:
    return {"X-Actor-Id": actor_id}


@pytest.fixture
def store():
    s = GameStore("sqlite://", echo=False)
    app.dependency_overrides[get_store] = lambda: s
    yield s
    app.dependency_overrides.clear()
    s.dispose()


@pytest.fixture
def client(store):
    return TestClient(app)


def _active_game(client: TestClient, players: int = 0) -> str:
    r = client.post("/games", json={"name": "Castle"}, headers=HOST)
    assert r.status_code == 200
    game_id = r.json()["id"]
    assert client.post(f"/games/{game_id}/activate", headers=HOST).status_code == 200
    for i in range(players):
        r = client.post("/players", json={"full_name": f"Player {i}"}, headers=_as(f"p{i}"))
        assert r.status_code == 200
    return game_id


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_missing_actor_is_401(client):
    r = client.post("/games", json={"name": "Castle"})
    assert r.status_code == 401


def test_create_and_get_game(client):
    r = client.post("/games", json={"name": "Castle"}, headers=HOST)
    assert r.status_code == 200
    data = r.json()
    assert data["status"] == "pending"
    assert data["host"] == "host-1"
    assert data["shield_points_threshold"] == 3
    r2 = client.get(f"/games/{data['id']}", headers=HOST)
    assert r2.status_code == 200
    assert r2.json()["name"] == "Castle"
    assert [g["id"] for g in client.get("/games", headers=HOST).json()] == [data["id"]]


def test_create_game_validation(client):
    assert client.post("/games", json={"name": ""}, headers=HOST).status_code == 422
    assert client.post("/games", json={"name": "   "}, headers=HOST).status_code == 422


def test_get_game_404(client):
    r = client.get("/games/nonexistent-id", headers=HOST)
    assert r.status_code == 404
    assert r.json() == {"detail": "Game not found."}


def test_killing_vote_screen_shows_cover_question(client):
    game_id = _active_game(client, players=3)
    r = client.post(f"/games/{game_id}/rounds", json={"type": "killing_vote"}, headers=HOST)
    assert r.status_code == 200
    question = r.json()["question"]
    assert question in KILLING_ROUND_QUESTIONS
    screen = client.get("/play/voting", headers=_as("p0")).json()
    assert screen["question"] == question
    assert screen["round"]["question"] == question


def test_non_host_is_403(client):
    game_id = _active_game(client, players=2)
    r = client.post(f"/games/{game_id}/rounds", json={"type": "banishment_vote"}, headers=_as("p0"))
    assert r.status_code == 403
    assert client.get(f"/games/{game_id}/rounds", headers=HOST).json() == []


def test_round_flow_and_results(client):
    game_id = _active_game(client, players=4)
    r = client.post(f"/games/{game_id}/rounds", json={"type": "banishment_vote"}, headers=HOST)
    assert r.status_code == 200
    round_id = r.json()["id"]
    assert r.json()["round"] == 1

    screen = client.get("/play/voting", headers=_as("p0")).json()
    assert screen["round"]["id"] == round_id
    assert {t["id"] for t in screen["targets"]} == {"p1", "p2", "p3"}

    for voter, target in (("p0", "p3"), ("p1", "p3"), ("p2", "p1")):
        r = client.post("/play/votes", json={"round_id": round_id, "target_id": target}, headers=_as(voter))
        assert r.status_code == 200
        assert r.json() == {"status": "recorded", "kind": "standard"}

    r = client.post(f"/rounds/{round_id}/close", headers=HOST)
    assert r.status_code == 200
    assert r.json()["round"]["status"] == "ended"

    results = client.get(f"/rounds/{round_id}/results", headers=HOST).json()
    assert [(e["target_id"], e["votes"]) for e in results["tally"]["standard"]] == [("p3", 2), ("p1", 1)]
    assert results["tally"]["kill"] is None

    assert client.post(f"/games/{game_id}/reveal-results", headers=HOST).status_code == 200
    reveal = client.get("/play/reveal", headers=_as("p2")).json()
    assert reveal["round"]["id"] == round_id


def test_second_vote_is_already_done(client):
    game_id = _active_game(client, players=3)
    round_id = client.post(f"/games/{game_id}/rounds", json={"type": "banishment_vote"}, headers=HOST).json()["id"]
    body = {"round_id": round_id, "target_id": "p1"}
    assert client.post("/play/votes", json=body, headers=_as("p0")).json()["status"] == "recorded"
    r = client.post("/play/votes", json=body, headers=_as("p0"))
    assert r.status_code == 200
    assert r.json()["status"] == "already_done"
    assert "already been recorded" in r.json()["message"]


def test_self_vote_is_400(client):
    game_id = _active_game(client, players=3)
    round_id = client.post(f"/games/{game_id}/rounds", json={"type": "banishment_vote"}, headers=HOST).json()["id"]
    r = client.post("/play/votes", json={"round_id": round_id, "target_id": "p0"}, headers=_as("p0"))
    assert r.status_code == 400
    assert r.json()["detail"] == "You cannot vote for yourself."


def test_minigame_route_validation(client):
    game_id = _active_game(client, players=4)
    assert client.post(f"/games/{game_id}/rounds", json={"type": "minigame"}, headers=HOST).status_code == 422
    r = client.post(f"/games/{game_id}/minigame", json={"group_count": 2, "balanced": False}, headers=HOST)
    assert r.status_code == 422
    r = client.post(f"/games/{game_id}/minigame", json={"group_count": 2, "balanced": False, "sizes": [3, 3]}, headers=HOST)
    assert r.status_code == 400


def test_minigame_flow(client):
    game_id = _active_game(client, players=5)
    r = client.post(f"/games/{game_id}/minigame", json={"group_count": 2}, headers=HOST)
    assert r.status_code == 200
    data = r.json()
    assert sorted(len(g) for g in data["groups"]) == [2, 3]
    assert data["signal_version"] == 1
    mine = client.get("/play/minigame", headers=_as("p0")).json()
    assert mine["group_index"] in (1, 2)
    r = client.post(f"/rounds/{data['round']['id']}/winning-group", json={"group_index": 1}, headers=HOST)
    assert r.status_code == 200
    assert r.json()["winning_group_index"] == 1


def test_roles_shields_and_elimination(client, store):
    game_id = _active_game(client, players=4)
    r = client.post(f"/games/{game_id}/roles/assign", headers=HOST)
    assert r.json() == {"traitors": 3, "faithful": 1}
    me = client.get("/players/me", headers=_as("p0")).json()
    assert me["role"] in ("traitor", "faithful")
    assert "role" not in client.get("/play/wall", headers=_as("p0")).json()[0]

    assert client.post(f"/games/{game_id}/shields", json={"player_id": "p1"}, headers=HOST).json()["has_shield"]
    r = client.delete(f"/games/{game_id}/shields/p1", headers=HOST)
    assert r.json()["has_shield"] is False

    faithful = next(p.id for p in store.list_players(game_id) if p.role == Role.FAITHFUL)
    r = client.post(f"/games/{game_id}/eliminate", json={"player_id": faithful}, headers=HOST)
    assert r.status_code == 200
    assert r.json()["outcome"]["winner"] == "traitors"
    assert client.get(f"/games/{game_id}", headers=HOST).json()["status"] == "ended"


def test_endgame_vote_too_many_players(client, store):
    game_id = _active_game(client, players=5)
    client.post(f"/games/{game_id}/roles/assign", headers=HOST)
    r = client.post(f"/games/{game_id}/endgame-vote", headers=HOST)
    assert r.status_code == 400


def test_join_without_active_game_is_404(client):
    r = client.post("/players", json={"full_name": "Alice"}, headers=_as("p0"))
    assert r.status_code == 404


def test_signals_and_nudge(client):
    game_id = _active_game(client, players=1)
    r = client.post("/play/nudge", json={}, headers=_as("p0"))
    assert r.status_code == 200
    assert r.json()["channel"] is None
    cursor = r.json()["cursor"]

    assert client.post(f"/games/{game_id}/kitchen", headers=HOST).json() == {"version": 1}
    assert client.get("/play/signals", headers=_as("p0")).json()["kitchen_signal_version"] == 1
    r = client.post("/play/nudge", json=cursor, headers=_as("p0"))
    assert r.json()["channel"] == "kitchen"
    assert r.json()["destination"] == "/kitchen"


def test_store_failure_is_503(client, store):
    with patch.object(store, "create_game", side_effect=StoreError()):
        r = client.post("/games", json={"name": "Castle"}, headers=HOST)
    assert r.status_code == 503
    assert r.json()["detail"] == "Something went wrong, please try again."
