from __future__ import annotations

from fastapi.testclient import TestClient

from chesscore.protocol.http.app import create_app


START = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"


def _client() -> TestClient:
    return TestClient(create_app())


def _new_game(client: TestClient, fen: str = "") -> str:
    r = client.post("/api/games", json={"fen": fen} if fen else None)
    assert r.status_code == 200
    return r.json()["game_id"]


def test_health() -> None:
    r = _client().get("/healthz")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_create_game_and_get_state() -> None:
    client = _client()
    r = client.post("/api/games")
    assert r.status_code == 200
    body = r.json()
    assert body["game_id"]
    assert body["fen"] == START

    state = client.get(f"/api/games/{body['game_id']}/state").json()
    assert state["game_id"] == body["game_id"]
    assert state["side_to_move"] == "w"
    assert len(state["legal_moves"]) == 20
    assert not state["in_check"] and not state["checkmate"] and not state["draw"]
    assert state["last_move"] is None
    assert state["move_history"] == []


def test_create_game_from_fen() -> None:
    client = _client()
    fen = "4k3/8/8/8/8/8/4P3/4K3 b - - 3 40"
    r = client.post("/api/games", json={"fen": fen})
    assert r.status_code == 200
    assert r.json()["fen"] == fen


def test_moves_update_state_and_undo_restores_it() -> None:
    client = _client()
    game_id = _new_game(client)
    r = client.post(f"/api/games/{game_id}/move", json={"move": "e2e4"})
    assert r.status_code == 200
    state = r.json()
    assert state["side_to_move"] == "b"
    assert state["last_move"] == "e2e4"
    assert state["fen"] == "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1"

    r = client.post(f"/api/games/{game_id}/undo")
    assert r.status_code == 200
    assert r.json()["fen"] == START
    assert r.json()["move_history"] == []


def test_legal_moves_for_one_square() -> None:
    client = _client()
    game_id = _new_game(client)
    r = client.get(f"/api/games/{game_id}/legal-moves", params={"square": "e2"})
    assert r.status_code == 200
    assert sorted(r.json()["moves"]) == ["e2e3", "e2e4"]
    assert len(client.get(f"/api/games/{game_id}/legal-moves").json()["moves"]) == 20


def test_set_position() -> None:
    client = _client()
    game_id = _new_game(client)
    client.post(f"/api/games/{game_id}/move", json={"move": "e2e4"})
    fen = "k7/8/1Q6/8/8/8/8/7K b - - 0 1"
    r = client.post(f"/api/games/{game_id}/position", json={"fen": fen})
    assert r.status_code == 200
    state = r.json()
    assert state["fen"] == fen
    assert state["stalemate"] and state["draw"]
    assert state["legal_moves"] == []
    assert state["move_history"] == []


def test_checkmate_is_reported() -> None:
    client = _client()
    game_id = _new_game(client)
    for move in ("f2f3", "e7e5", "g2g4", "d8h4"):
        r = client.post(f"/api/games/{game_id}/move", json={"move": move})
        assert r.status_code == 200
    state = r.json()
    assert state["checkmate"] and state["in_check"]
    assert state["move_history"] == ["f2f3", "e7e5", "g2g4", "d8h4"]


def test_delete_game() -> None:
    client = _client()
    game_id = _new_game(client)
    r = client.delete(f"/api/games/{game_id}")
    assert r.status_code == 200
    assert client.get(f"/api/games/{game_id}/state").status_code == 404
    assert client.delete(f"/api/games/{game_id}").status_code == 404


def test_sessions_are_isolated() -> None:
    client = _client()
    a = _new_game(client)
    b = _new_game(client)
    client.post(f"/api/games/{a}/move", json={"move": "d2d4"})
    assert client.get(f"/api/games/{b}/state").json()["fen"] == START


def test_perft_endpoint() -> None:
    client = _client()
    r = client.post("/api/perft", json={"fen": START, "depth": 2})
    assert r.status_code == 200
    assert r.json() == {"nodes": 400}
