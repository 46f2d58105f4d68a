"""Tests for the FastAPI InfiniXO game service."""

from __future__ import annotations

import dataclasses
import json
import time

import pytest
from fastapi.testclient import TestClient

from infinixo import api
from infinixo.api import app
from infinixo.codec import serialize
from infinixo.game import apply_move, new_game


client = TestClient(app)
api.AI_THINK_DELAY = (0.0, 0.0)


@pytest.fixture(autouse=True)
def default_settings(monkeypatch):
    monkeypatch.setattr(
        api, "SETTINGS", dataclasses.replace(api.SETTINGS, starting_player="X", move_limit=0)
    )


def _create(**payload):
    body = {"playerId": "alice"}
    body.update(payload)
    response = client.post("/api/game", json=body)
    assert response.status_code == 200, response.text
    return response.json()


def _two_player_game(**payload):
    game = _create(**payload)
    joined = client.post(f"/api/game/{game['id']}/join", json={"playerId": "bob"})
    assert joined.status_code == 200
    return joined.json()


def _move(game_id, player_id, position):
    return client.post(
        f"/api/game/{game_id}/move",
        json={"playerId": player_id, "position": position},
    )


def test_create_ai_game_and_first_move():
    payload = _create(opponent="ai", depth=2)
    assert payload["currentPlayer"] == "X"
    assert payload["state"]["moves"] == []
    assert payload["players"] == {"X": "alice", "O": "ai"}
    assert payload["status"] == "playing"

    game_id = payload["id"]
    move_response = _move(game_id, "alice", 0)
    assert move_response.status_code == 200
    state = move_response.json()
    assert state["lastMove"]["player"] == "X"
    assert state["state"]["board"][0][0] == "X"
    assert state["currentPlayer"] == "O"
    assert state["aiPending"] is True

    time.sleep(0.01)
    follow_up = client.get(f"/api/game/{game_id}")
    assert follow_up.status_code == 200
    final_state = follow_up.json()
    assert final_state["currentPlayer"] == "X"
    assert final_state["aiPending"] is False
    assert final_state["lastMove"]["player"] == "O"


def test_ai_opens_when_it_starts():
    payload = _create(opponent="ai", depth=1, startingPlayer="O")
    assert payload["aiPending"] is True
    follow_up = client.get(f"/api/game/{payload['id']}").json()
    assert len(follow_up["state"]["moves"]) == 1
    assert follow_up["currentPlayer"] == "X"


def test_two_player_game_with_join_and_turns():
    game = _create(mode="classic")
    assert game["status"] == "waiting"
    waiting = _move(game["id"], "alice", 4)
    assert waiting.status_code == 400
    assert waiting.json()["detail"]["reason"] == "waiting_for_opponent"

    joined = client.post(f"/api/game/{game['id']}/join", json={"playerId": "bob"})
    assert joined.json()["players"] == {"X": "alice", "O": "bob"}
    assert joined.json()["status"] == "playing"

    assert _move(game["id"], "alice", 4).status_code == 200
    wrong_turn = _move(game["id"], "alice", 0)
    assert wrong_turn.status_code == 400
    assert wrong_turn.json()["detail"]["reason"] == "wrong_turn"

    reply = _move(game["id"], "bob", {"row": 0, "col": 0})
    assert reply.status_code == 200
    assert reply.json()["state"]["board"][0][0] == "O"


def test_game_is_full_after_two_players():
    game = _two_player_game()
    response = client.post(f"/api/game/{game['id']}/join", json={"playerId": "carol"})
    assert response.status_code == 409
    rejoin = client.post(f"/api/game/{game['id']}/join", json={"playerId": "bob"})
    assert rejoin.status_code == 200


def test_invalid_moves_rejected_with_reason():
    game = _two_player_game()
    game_id = game["id"]
    assert _move(game_id, "alice", 0).status_code == 200

    duplicate = _move(game_id, "bob", 0)
    assert duplicate.status_code == 400
    assert duplicate.json()["detail"]["reason"] == "occupied"

    off_board = _move(game_id, "bob", 9)
    assert off_board.status_code == 400
    assert off_board.json()["detail"]["reason"] == "out_of_bounds"

    stranger = _move(game_id, "mallory", 1)
    assert stranger.status_code == 403

    unchanged = client.get(f"/api/game/{game_id}").json()
    assert len(unchanged["state"]["moves"]) == 1


def test_finished_game_rejects_moves():
    game = _two_player_game()
    game_id = game["id"]
    for player, position in zip(["alice", "bob"] * 3, [0, 3, 1, 4, 2]):
        assert _move(game_id, player, position).status_code == 200

    final = client.get(f"/api/game/{game_id}").json()
    assert final["status"] == "finished"
    assert final["state"]["winner"] == "X"
    assert final["state"]["winningLine"][0] == {"row": 0, "col": 0}

    late = _move(game_id, "bob", 5)
    assert late.status_code == 400
    assert late.json()["detail"]["reason"] == "game_over"


def test_infinite_game_reports_retirements():
    game = _two_player_game()
    game_id = game["id"]
    for player, position in zip(["alice", "bob"] * 4, [0, 2, 1, 6, 5, 8, 3]):
        response = _move(game_id, player, position)
        assert response.status_code == 200
    payload = response.json()
    assert payload["lastMove"]["removedPosition"] == 0
    assert payload["livePieces"]["X"] == [1, 5, 3]


def test_move_limit_declares_draw(monkeypatch):
    monkeypatch.setattr(api, "SETTINGS", dataclasses.replace(api.SETTINGS, move_limit=4))
    game = _two_player_game()
    for player, position in zip(["alice", "bob"] * 2, [0, 4, 8, 2]):
        response = _move(game["id"], player, position)
        assert response.status_code == 200
    payload = response.json()
    assert payload["status"] == "finished"
    assert payload["state"]["isDraw"] is True


def test_rejects_unsupported_depth():
    response = client.post("/api/game", json={"playerId": "alice", "depth": 42})
    assert response.status_code == 422


def test_missing_game_returns_404():
    assert client.get("/api/game/missing").status_code == 404


def test_recommend_from_state_object_and_text():
    state = new_game()
    for position in (0, 3, 1, 4):
        state = apply_move(state, position).state

    text = serialize(state)
    by_object = client.post("/api/recommend", json={"state": json.loads(text), "depth": 2})
    assert by_object.status_code == 200
    assert by_object.json()["position"] == 2
    assert by_object.json()["player"] == "X"

    by_text = client.post("/api/recommend", json={"state": text, "depth": 2})
    assert by_text.json()["position"] == 2


def test_recommend_legacy_state():
    legacy = {
        "board": ["X", "X", None, "O", "O", None, None, None, None],
        "moveHistory": [
            {"player": "X", "position": 0, "timestamp": 1700000000000},
            {"player": "O", "position": 3, "timestamp": 1700000001000},
            {"player": "X", "position": 1, "timestamp": 1700000002000},
            {"player": "O", "position": 4, "timestamp": 1700000003000},
        ],
        "gameMode": "demo",
    }
    response = client.post("/api/recommend", json={"state": legacy, "depth": 1})
    assert response.status_code == 200
    assert response.json()["position"] == 2


def test_recommend_returns_none_when_finished():
    state = new_game()
    for position in (0, 3, 1, 4, 2):
        state = apply_move(state, position).state
    response = client.post("/api/recommend", json={"state": serialize(state)})
    assert response.status_code == 200
    assert response.json()["position"] is None


def test_recommend_rejects_bad_state():
    response = client.post("/api/recommend", json={"state": {"moves": []}})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "STATE_DECODE_ERROR"

    crowded = {"board": ["X", "X", "X", "X", None, None, None, None, None]}
    response = client.post("/api/recommend", json={"state": crowded})
    assert response.status_code == 422
    assert response.json()["detail"]["code"] == "STATE_INVARIANT_VIOLATION"


def test_recommend_rejects_out_of_range_timestamps():
    for timestamp in (1e20, "Infinity"):
        text = (
            '{"board": ["X", null, null, null, null, null, null, null, null], '
            '"currentPlayer": "O", '
            f'"moves": [{{"player": "X", "position": 0, "timestamp": {timestamp}}}]}}'
        )
        response = client.post("/api/recommend", json={"state": text})
        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "STATE_DECODE_ERROR"

    payload = json.loads(text.replace("Infinity", "1e20"))
    by_object = client.post("/api/recommend", json={"state": payload})
    assert by_object.status_code == 422
