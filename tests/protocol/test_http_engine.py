from __future__ import annotations

from fastapi.testclient import TestClient

from chesscore.protocol.http.app import create_app


BACK_RANK = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"
FOOLS_MATE = "rnb1kbnr/pppp1ppp/8/4p3/6Pq/5P2/PPPPP2P/RNBQKBNR w KQkq - 1 3"


def _client() -> TestClient:
    return TestClient(create_app())


def _game(client: TestClient, fen: str = "") -> str:
    return client.post("/api/games", json={"fen": fen} if fen else None).json()["game_id"]


def test_engine_opens_from_book() -> None:
    client = _client()
    game_id = _game(client)
    r = client.post(f"/api/games/{game_id}/engine-move", json={"difficulty": "easy"})
    assert r.status_code == 200
    body = r.json()
    assert body["move"] == "e2e4"
    assert body["diagnostic"] is None
    assert body["state"]["side_to_move"] == "b"
    assert body["state"]["move_history"] == ["e2e4"]


def test_engine_delivers_mate() -> None:
    client = _client()
    game_id = _game(client, BACK_RANK)
    r = client.post(f"/api/games/{game_id}/engine-move", json={"difficulty": "easy"})
    assert r.status_code == 200
    body = r.json()
    assert body["move"] == "a1a8"
    assert body["state"]["checkmate"]


def test_engine_move_on_finished_game_conflicts() -> None:
    client = _client()
    game_id = _game(client, FOOLS_MATE)
    r = client.post(f"/api/games/{game_id}/engine-move", json={})
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "conflict"


def test_unknown_difficulty() -> None:
    client = _client()
    game_id = _game(client)
    r = client.post(f"/api/games/{game_id}/engine-move", json={"difficulty": "grandmaster"})
    assert r.status_code == 400


def test_search_endpoint_shape() -> None:
    client = _client()
    game_id = _game(client, "4k3/8/3p4/8/2N5/8/8/4K3 w - - 0 30")
    r = client.post(f"/api/games/{game_id}/search", json={"depth": 2})
    assert r.status_code == 200
    data = r.json()
    assert {"best_move", "score", "depth", "nodes", "time_ms", "from_book", "fallback", "cache", "iters"} <= set(data)
    assert data["depth"] == 2
    assert not data["from_book"]
    assert [it["depth"] for it in data["iters"]] == [1, 2]
    assert data["best_move"] == data["iters"][-1]["move"]
    assert set(data["cache"]) == {"hits", "misses"}


def test_search_reports_book_move() -> None:
    client = _client()
    game_id = _game(client)
    data = client.post(f"/api/games/{game_id}/search", json={}).json()
    assert data["from_book"]
    assert data["best_move"] == "e2e4"
    assert data["score"] is None
