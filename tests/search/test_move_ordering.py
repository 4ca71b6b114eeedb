from __future__ import annotations

from chesscore.engine.fen import parse_fen
from chesscore.engine.rules import generate_legal_moves
from chesscore.search.ordering import order_moves


def _ordered(fen: str, **kwargs):
    board, side, state = parse_fen(fen)
    moves = generate_legal_moves(board, side, state)
    return moves, order_moves(board, moves, side, state, **kwargs)


def test_ordering_is_a_permutation() -> None:
    moves, ordered = _ordered("r3k2r/p1ppqpb1/bn2pnp1/3PN3/1p2P3/2N2Q1p/PPPBBPPP/R3K2R w KQkq - 0 1")
    assert sorted(m.to_coordinate() for m in ordered) == sorted(m.to_coordinate() for m in moves)


def test_free_capture_comes_first() -> None:
    _, ordered = _ordered("4k3/8/8/3q4/8/8/3R4/4K3 w - - 0 1")
    assert ordered[0].to_coordinate() == "d2d5"


def test_promotion_ranks_above_quiet_moves() -> None:
    _, ordered = _ordered("4k3/P7/8/8/8/8/8/4K3 w - - 0 1")
    assert ordered[0].to_coordinate().startswith("a7a8")


def test_king_steps_lead_when_in_check() -> None:
    # the queen can only interpose on the open e-file
    moves, ordered = _ordered("4r2k/8/8/8/8/8/3Q4/4K3 w - - 0 1")
    kings = [m for m in moves if m.to_coordinate().startswith("e1")]
    assert len(kings) == 3
    assert set(ordered[:3]) == set(kings)


def test_bias_can_promote_a_move() -> None:
    moves, _ = _ordered("4k3/8/8/3q4/8/8/3R4/4K3 w - - 0 1")
    target = next(m for m in moves if m.to_coordinate() == "e1f1")
    board, side, state = parse_fen("4k3/8/8/3q4/8/8/3R4/4K3 w - - 0 1")
    ordered = order_moves(board, moves, side, state, bias=lambda m: 1000.0 if m == target else 0.0)
    assert ordered[0] == target


def test_short_lists_are_copied() -> None:
    board, side, state = parse_fen("4k3/8/8/3q4/8/8/3R4/4K3 w - - 0 1")
    one = generate_legal_moves(board, side, state)[:1]
    out = order_moves(board, one, side, state)
    assert out == one and out is not one
