from __future__ import annotations

from typing import Tuple

from .board import Board, STARTPOS_FEN, make_piece, pawn_direction, piece_kind
from .move import Move, square_to_str, str_to_square
from .state import GameState, position_key


def parse_fen(fen: str) -> Tuple[Board, str, GameState]:
    """Parse a Forsyth-Edwards Notation string.

    Args:
        fen (str): FEN with 6 fields (the two move counters may be omitted).

    Returns:
        Tuple[Board, str, GameState]: Board, side to move and derived state.
        An en-passant target becomes the equivalent double pawn push in
        ``state.last_move``.

    Raises:
        ValueError: If any field is malformed.
    """
    if not fen or not isinstance(fen, str):
        raise ValueError("FEN must be a non-empty string")
    parts = fen.strip().split()
    if len(parts) == 4:
        parts += ["0", "1"]
    if len(parts) != 6:
        raise ValueError("FEN must have 6 fields")
    placement, stm, castling, ep, halfmove, fullmove = parts

    board = Board.from_placement(placement)

    if stm not in ("w", "b"):
        raise ValueError("side to move must be 'w' or 'b'")

    if castling != "-":
        for ch in castling:
            if ch not in "KQkq":
                raise ValueError("invalid castling rights")
        castling = "".join(c for c in "KQkq" if c in castling)
    else:
        castling = ""

    last_move = None
    if ep != "-":
        try:
            ef, er = str_to_square(ep)
        except ValueError as e:
            raise ValueError("invalid en passant square") from e
        # the pawn that just moved belongs to the side not on move
        mover = "b" if stm == "w" else "w"
        if er != (5 if mover == "w" else 2):
            raise ValueError("invalid en passant square rank")
        step = pawn_direction(mover)
        pawn = make_piece(mover, "p")
        last_move = Move(ef, er - step, ef, er + step, pawn)

    try:
        halfmove_clock = int(halfmove)
        fullmove_number = int(fullmove)
    except ValueError as e:
        raise ValueError("invalid move counters in FEN") from e
    if halfmove_clock < 0 or fullmove_number <= 0:
        raise ValueError("invalid move counters in FEN")

    state = GameState(
        castling=castling,
        halfmove_clock=halfmove_clock,
        fullmove_number=fullmove_number,
        last_move=last_move,
        position_history=(position_key(board, stm),),
    )
    return board, stm, state


def format_fen(board: Board, side: str, state: GameState, *, en_passant: bool = True) -> str:
    """Serialize a position as FEN.

    With ``en_passant=False`` the target field is always ``-``, the form the
    external engine transport sends.
    """
    ep = "-"
    last = state.last_move
    if (
        en_passant
        and last is not None
        and piece_kind(last.piece) == "p"
        and abs(last.to_rank - last.from_rank) == 2
    ):
        ep = square_to_str(last.to_file, (last.from_rank + last.to_rank) // 2)
    castling = state.castling or "-"
    return (
        f"{board.placement()} {side} {castling} {ep} "
        f"{state.halfmove_clock} {state.fullmove_number}"
    )


def startpos() -> Tuple[Board, str, GameState]:
    return parse_fen(STARTPOS_FEN)
