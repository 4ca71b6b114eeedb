from __future__ import annotations

import asyncio
import random
from typing import Any, Dict, List

from chesscore.engine.board import WP
from chesscore.engine.fen import parse_fen
from chesscore.engine.move import Move
from chesscore.engine.rules import generate_legal_moves
from chesscore.search.service import SearchService


QUIET = "4k3/8/3p4/8/2N5/8/8/4K3 w - - 0 1"


def test_each_iteration_is_reported() -> None:
    board, side, state = parse_fen(QUIET)
    seen: List[Dict[str, Any]] = []
    result = SearchService().search(board, side, state, depth=3, use_book=False, on_iter=seen.append)
    assert [s["depth"] for s in seen] == [1, 2, 3]
    assert result.iters == seen
    assert result.depth == 3
    assert result.best_move.to_coordinate() == seen[-1]["move"]
    assert result.score == seen[-1]["score"]
    assert seen[0]["nodes"] <= seen[-1]["nodes"] == result.nodes
    assert not result.fallback


def test_time_budget_bounds_the_search() -> None:
    board, side, state = parse_fen("r3k2r/p1ppqpb1/bn2pnp1/3PN3/1p2P3/2N2Q1p/PPPBBPPP/R3K2R w KQkq - 0 1")
    result = SearchService(rng=random.Random(0)).search(board, side, state, depth=20, movetime_ms=50, use_book=False)
    assert result.depth < 20
    assert result.best_move in generate_legal_moves(board, side, state)
    assert len(result.iters) == result.depth
    if result.depth == 0:
        assert result.fallback
    else:
        assert result.best_move.to_coordinate() == result.iters[-1]["move"]
        assert result.score == result.iters[-1]["score"]


class _StopsDuringSecondIteration(SearchService):
    """Runs out of time as soon as depth 2 starts evaluating leaves."""

    def __init__(self) -> None:
        super().__init__()
        self.completed: List[int] = []

    def _evaluate(self, board, side, state, root):
        if self.completed == [1]:
            self._deadline = 0.0
        return super()._evaluate(board, side, state, root)


def test_interrupted_iteration_keeps_last_completed_one() -> None:
    board, side, state = parse_fen(QUIET)
    service = _StopsDuringSecondIteration()
    result = service.search(
        board, side, state, depth=4, use_book=False, on_iter=lambda s: service.completed.append(s["depth"])
    )
    assert service.completed == [1]
    assert result.depth == 1
    assert [s["depth"] for s in result.iters] == [1]
    assert result.best_move.to_coordinate() == result.iters[-1]["move"]
    assert result.score == result.iters[-1]["score"]
    assert not result.fallback


def test_async_search_matches_sync() -> None:
    board, side, state = parse_fen(QUIET)
    sync = SearchService().search(board, side, state, depth=2, use_book=False)
    async_result = asyncio.run(SearchService().search_async(board, side, state, depth=2, use_book=False))
    assert (async_result.best_move, async_result.score, async_result.nodes) == (
        sync.best_move,
        sync.score,
        sync.nodes,
    )


def test_promotion_choice_prefers_queen() -> None:
    board, side, state = parse_fen("8/P7/8/8/8/8/k7/4K3 w - - 0 1")
    service = SearchService()
    chosen = service.choose_promotion(board, Move(0, 1, 0, 0, WP), state)
    assert chosen.promotion == "q"


def test_promotion_choice_ignores_other_moves() -> None:
    board, side, state = parse_fen(QUIET)
    move = generate_legal_moves(board, side, state)[0]
    assert SearchService().choose_promotion(board, move, state) is move


def test_random_move_is_legal_and_seeded() -> None:
    board, side, state = parse_fen(QUIET)
    legal = generate_legal_moves(board, side, state)
    a = SearchService(rng=random.Random(7)).random_move(board, side, state)
    b = SearchService(rng=random.Random(7)).random_move(board, side, state)
    assert a == b
    assert a in legal
