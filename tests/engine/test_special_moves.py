from __future__ import annotations

from chesscore.engine.board import BP, EMPTY, WK, WP, WR
from chesscore.engine.fen import parse_fen
from chesscore.engine.game import Game
from chesscore.engine.move import Move
from chesscore.engine.rules import apply_move, is_legal_move


CASTLE_FEN = "r3k2r/8/8/8/8/8/8/R3K2R w KQkq - 0 1"
SHORT = Move(4, 7, 6, 7, WK)
LONG = Move(4, 7, 2, 7, WK)


def test_both_castles_legal_from_untouched_corners() -> None:
    board, side, state = parse_fen(CASTLE_FEN)
    assert is_legal_move(board, SHORT, side, state)
    assert is_legal_move(board, LONG, side, state)


def test_castling_forbidden_after_king_has_moved() -> None:
    game = Game.from_fen(CASTLE_FEN)
    for text in ("e1f1", "e8f8", "f1e1", "f8e8"):
        game.apply_coordinate(text)
    # same geometry as the start, but the rights are gone
    start_board, _, _ = parse_fen(CASTLE_FEN)
    assert game.board == start_board
    assert not is_legal_move(game.board, SHORT, "w", game.state)
    assert not is_legal_move(game.board, LONG, "w", game.state)


def test_castling_forbidden_in_check_or_through_attack() -> None:
    board, side, state = parse_fen("4r2k/8/8/8/8/8/8/R3K2R w KQ - 0 1")
    assert not is_legal_move(board, SHORT, side, state)
    assert not is_legal_move(board, LONG, side, state)

    # f1 attacked by the rook on f8: short castle passes through it
    board, side, state = parse_fen("5r1k/8/8/8/8/8/8/R3K2R w KQ - 0 1")
    assert not is_legal_move(board, SHORT, side, state)
    assert is_legal_move(board, LONG, side, state)


def test_castling_needs_empty_squares_between() -> None:
    board, side, state = parse_fen("4k3/8/8/8/8/8/8/RN2K1NR w KQ - 0 1")
    assert not is_legal_move(board, SHORT, side, state)
    assert not is_legal_move(board, LONG, side, state)


def test_castling_relocates_king_and_rook() -> None:
    board, _, state = parse_fen(CASTLE_FEN)
    after, new_state = apply_move(board, SHORT, state)
    assert after.at(6, 7) == WK
    assert after.at(5, 7) == WR
    assert after.at(7, 7) == EMPTY
    assert after.at(4, 7) == EMPTY
    assert "K" not in new_state.castling and "Q" not in new_state.castling

    after, _ = apply_move(board, LONG, state)
    assert after.at(2, 7) == WK
    assert after.at(3, 7) == WR
    assert after.at(0, 7) == EMPTY


def test_en_passant_only_on_the_very_next_ply() -> None:
    game = Game.from_fen("4k3/8/8/8/3p4/8/4P3/4K3 w - - 0 1")
    game.apply_coordinate("e2e4")
    ep = Move(3, 4, 4, 5, BP)
    assert is_legal_move(game.board, ep, "b", game.state)

    after, _ = apply_move(game.board, ep, game.state)
    assert after.at(4, 5) == BP
    assert after.at(4, 4) == EMPTY

    game.apply_coordinate("e8d8")
    game.apply_coordinate("e1d1")
    assert not is_legal_move(game.board, ep, "b", game.state)


def test_en_passant_not_licensed_by_single_step() -> None:
    game = Game.from_fen("4k3/8/8/8/3p4/4P3/8/4K3 w - - 0 1")
    game.apply_coordinate("e3e4")
    assert not is_legal_move(game.board, Move(3, 4, 4, 5, BP), "b", game.state)


def test_en_passant_from_fen_field() -> None:
    board, side, state = parse_fen("4k3/8/8/3Pp3/8/8/8/4K3 w - e6 0 1")
    assert is_legal_move(board, Move(3, 3, 4, 2, WP), side, state)


def test_en_passant_cannot_expose_own_king() -> None:
    # both pawns leave the fifth rank, opening the rook's line to the king
    game = Game.from_fen("4k3/2p5/8/KP5r/8/8/8/8 b - - 0 1")
    game.apply_coordinate("c7c5")
    assert not is_legal_move(game.board, Move(1, 3, 2, 2, WP), "w", game.state)
