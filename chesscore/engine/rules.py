"""Chess rules over immutable boards.

Two layers:
- geometry (``attacks``, ``is_pseudo_legal``, ``is_square_attacked``): piece
  movement and obstruction only, never asks about king safety;
- legality (``is_legal_move``, ``generate_legal_moves`` and the terminal-state
  queries): built strictly on top of the geometry layer.

None of these functions raise for game reasons. Malformed or illegal moves
produce ``False``/empty results. ``state`` may be omitted, in which case no
castling rights and no en-passant licence are assumed.
"""

from __future__ import annotations

from typing import Iterator, List, Optional, Set, Tuple

from .board import (
    EMPTY,
    Board,
    Square,
    back_rank,
    make_piece,
    normalize_color,
    opponent,
    pawn_direction,
    pawn_start_rank,
    piece_color,
    piece_kind,
    promotion_rank,
)
from .move import PROMOTION_PIECES, Move
from .state import GameState, position_key


KNIGHT_OFFSETS = ((1, 2), (2, 1), (2, -1), (1, -2), (-1, -2), (-2, -1), (-2, 1), (-1, 2))
KING_OFFSETS = ((-1, -1), (0, -1), (1, -1), (-1, 0), (1, 0), (-1, 1), (0, 1), (1, 1))
ROOK_DIRS = ((1, 0), (-1, 0), (0, 1), (0, -1))
BISHOP_DIRS = ((1, 1), (1, -1), (-1, 1), (-1, -1))
QUEEN_DIRS = ROOK_DIRS + BISHOP_DIRS


def _known_side(side: object) -> Optional[str]:
    """``"w"``/``"b"`` for any accepted colour name, None for anything else."""
    if isinstance(side, str) and side.lower() in ("w", "white", "b", "black"):
        return normalize_color(side)
    return None


def _on_board(f: int, r: int) -> bool:
    return 0 <= f < 8 and 0 <= r < 8


def _sign(x: int) -> int:
    return (x > 0) - (x < 0)


def path_clear(board: Board, ff: int, fr: int, tf: int, tr: int) -> bool:
    """True if every square strictly between two aligned squares is empty."""
    df, dr = _sign(tf - ff), _sign(tr - fr)
    f, r = ff + df, fr + dr
    while (f, r) != (tf, tr):
        if board.at(f, r):
            return False
        f += df
        r += dr
    return True


def attacks(board: Board, ff: int, fr: int, tf: int, tr: int) -> bool:
    """True if the piece on ``(ff, fr)`` attacks ``(tf, tr)``.

    Geometry only: the target may be empty or hold a piece of either color.
    Pawns attack diagonally forward; kings never attack by castling.
    """
    piece = board.at(ff, fr)
    if not piece or (ff, fr) == (tf, tr) or not _on_board(tf, tr):
        return False
    kind = piece_kind(piece)
    df, dr = tf - ff, tr - fr
    if kind == "p":
        return abs(df) == 1 and dr == pawn_direction(piece_color(piece) or "w")
    if kind == "n":
        return (abs(df), abs(dr)) in ((1, 2), (2, 1))
    if kind == "k":
        return max(abs(df), abs(dr)) == 1
    if kind == "b" and abs(df) != abs(dr):
        return False
    if kind == "r" and df and dr:
        return False
    if kind == "q" and df and dr and abs(df) != abs(dr):
        return False
    return path_clear(board, ff, fr, tf, tr)


def _iter_attackers(board: Board, f: int, r: int, by_color: str) -> Iterator[Tuple[int, int, int]]:
    pawn = make_piece(by_color, "p")
    pr = r - pawn_direction(by_color)
    for df in (-1, 1):
        if _on_board(f + df, pr) and board.at(f + df, pr) == pawn:
            yield f + df, pr, pawn
    knight = make_piece(by_color, "n")
    for df, dr in KNIGHT_OFFSETS:
        if _on_board(f + df, r + dr) and board.at(f + df, r + dr) == knight:
            yield f + df, r + dr, knight
    king = make_piece(by_color, "k")
    for df, dr in KING_OFFSETS:
        if _on_board(f + df, r + dr) and board.at(f + df, r + dr) == king:
            yield f + df, r + dr, king
    queen = make_piece(by_color, "q")
    for dirs, slider in ((ROOK_DIRS, make_piece(by_color, "r")), (BISHOP_DIRS, make_piece(by_color, "b"))):
        for df, dr in dirs:
            cf, cr = f + df, r + dr
            while _on_board(cf, cr):
                p = board.at(cf, cr)
                if p:
                    if p == slider or p == queen:
                        yield cf, cr, p
                    break
                cf += df
                cr += dr


def attackers_of(board: Board, f: int, r: int, by_color: str) -> List[Tuple[int, int, int]]:
    """All ``(file, rank, piece)`` of ``by_color`` attacking ``(f, r)``."""
    return list(_iter_attackers(board, f, r, by_color))


def is_square_attacked(board: Board, f: int, r: int, by_color: str) -> bool:
    return next(_iter_attackers(board, f, r, by_color), None) is not None


def en_passant_licensed(board: Board, move: Move, state: Optional[GameState]) -> bool:
    """True if the previous ply was an adjacent two-square advance ``move`` may capture."""
    if state is None or state.last_move is None:
        return False
    last = state.last_move
    mover = piece_color(move.piece)
    if piece_kind(last.piece) != "p" or piece_color(last.piece) == mover:
        return False
    if abs(last.to_rank - last.from_rank) != 2:
        return False
    if last.to_file != move.to_file or last.to_rank != move.from_rank:
        return False
    return board.at(last.to_file, last.to_rank) == last.piece


def is_pseudo_legal(board: Board, move: Move, side: str, state: Optional[GameState] = None) -> bool:
    """Geometry and occupancy check without the own-king-safety filter.

    Castling is not a pseudo-legal king move; see ``is_legal_move``.
    """
    if not isinstance(move, Move) or not move.in_bounds():
        return False
    piece = board.at(move.from_file, move.from_rank)
    if not piece or piece != move.piece or piece_color(piece) != side:
        return False
    if move.source == move.target:
        return False
    target = board.at(move.to_file, move.to_rank)
    if target and piece_color(target) == side:
        return False

    kind = piece_kind(piece)
    if kind != "p" or move.to_rank != promotion_rank(side):
        if move.promotion is not None:
            return False
    elif move.promotion is not None and move.promotion not in PROMOTION_PIECES:
        return False

    if kind != "p":
        return attacks(board, move.from_file, move.from_rank, move.to_file, move.to_rank)

    step = pawn_direction(side)
    df = move.to_file - move.from_file
    dr = move.to_rank - move.from_rank
    if df == 0:
        if target:
            return False
        if dr == step:
            return True
        if dr == 2 * step and move.from_rank == pawn_start_rank(side):
            return not board.at(move.from_file, move.from_rank + step)
        return False
    if abs(df) == 1 and dr == step:
        if target:
            return True
        return en_passant_licensed(board, move, state)
    return False


def is_castling_move(move: Move) -> bool:
    if piece_kind(move.piece) != "k":
        return False
    color = piece_color(move.piece) or "w"
    home = back_rank(color)
    return (
        move.from_file == 4
        and move.from_rank == home
        and move.to_rank == home
        and abs(move.to_file - move.from_file) == 2
    )


def _is_legal_castling(board: Board, move: Move, side: str, state: Optional[GameState]) -> bool:
    if state is None or move.promotion is not None:
        return False
    kingside = move.to_file > move.from_file
    if not state.can_castle(side, kingside):
        return False
    rank = move.from_rank
    rook_file = 7 if kingside else 0
    if board.at(rook_file, rank) != make_piece(side, "r"):
        return False
    lo, hi = sorted((move.from_file, rook_file))
    if any(board.at(f, rank) for f in range(lo + 1, hi)):
        return False
    enemy = opponent(side)
    if is_square_attacked(board, move.from_file, rank, enemy):
        return False
    step = 1 if kingside else -1
    f = move.from_file
    while f != move.to_file:
        f += step
        if is_square_attacked(board, f, rank, enemy):
            return False
    return True


def relocate(board: Board, move: Move) -> Tuple[Board, int]:
    """Apply ``move`` to ``board`` and return ``(new_board, captured_piece)``."""
    side = piece_color(move.piece) or "w"
    changes = {move.source: EMPTY}
    captured = board.at(move.to_file, move.to_rank)

    if is_castling_move(move):
        kingside = move.to_file > move.from_file
        rook_from = 7 if kingside else 0
        rook_to = move.to_file - 1 if kingside else move.to_file + 1
        changes[(rook_from, move.from_rank)] = EMPTY
        changes[(rook_to, move.from_rank)] = board.at(rook_from, move.from_rank)
        changes[move.target] = move.piece
        return board.with_squares(changes), EMPTY

    placed = move.piece
    if piece_kind(move.piece) == "p":
        if move.from_file != move.to_file and not captured:
            # en passant: the victim sits beside the origin square
            victim_sq = (move.to_file, move.from_rank)
            captured = board.at(*victim_sq)
            changes[victim_sq] = EMPTY
        if move.to_rank == promotion_rank(side):
            placed = make_piece(side, move.promotion or "q")
    changes[move.target] = placed
    return board.with_squares(changes), captured


def is_legal_move(
    board: Board,
    move: Move,
    side: str,
    state: Optional[GameState] = None,
    *,
    check_king_safety: bool = True,
) -> bool:
    """Full legality check for ``move`` by ``side``.

    Args:
        board (Board): Current position.
        move (Move): Candidate move.
        side (str): Side to move, ``"w"``/``"b"`` or ``"white"``/``"black"``.
        state (Optional[GameState]): Castling rights and last move.
        check_king_safety (bool): When False, skip the "own king left in
            check" filter and answer for geometry only.

    Returns:
        bool: True if the move may be played.
    """
    if side not in ("w", "b"):
        known = _known_side(side)
        if known is None:
            return False
        side = known
    if not isinstance(move, Move) or not move.in_bounds():
        return False
    piece = board.at(move.from_file, move.from_rank)
    if not piece or piece != move.piece or piece_color(piece) != side:
        return False
    target = board.at(move.to_file, move.to_rank)
    if target and (piece_color(target) == side or piece_kind(target) == "k"):
        return False
    if is_castling_move(move):
        return _is_legal_castling(board, move, side, state)
    if not is_pseudo_legal(board, move, side, state):
        return False
    if not check_king_safety:
        return True
    after, _ = relocate(board, move)
    return not is_in_check(after, side)


def _candidate_targets(board: Board, f: int, r: int, piece: int) -> Set[Square]:
    kind = piece_kind(piece)
    color = piece_color(piece) or "w"
    out: Set[Square] = set()
    if kind == "p":
        step = pawn_direction(color)
        for df, dr in ((0, step), (0, 2 * step), (-1, step), (1, step)):
            out.add((f + df, r + dr))
    elif kind == "n":
        out.update((f + df, r + dr) for df, dr in KNIGHT_OFFSETS)
    elif kind == "k":
        out.update((f + df, r + dr) for df, dr in KING_OFFSETS)
        out.update(((f + 2, r), (f - 2, r)))
    else:
        dirs = {"b": BISHOP_DIRS, "r": ROOK_DIRS, "q": QUEEN_DIRS}[kind or "q"]
        for df, dr in dirs:
            cf, cr = f + df, r + dr
            while _on_board(cf, cr):
                out.add((cf, cr))
                if board.at(cf, cr):
                    break
                cf += df
                cr += dr
    return {sq for sq in out if _on_board(*sq)}


def iter_legal_moves(board: Board, side: str, state: Optional[GameState] = None) -> Iterator[Move]:
    for f, r, piece in board.pieces(side):
        promoting = piece_kind(piece) == "p"
        for tf, tr in sorted(_candidate_targets(board, f, r, piece), key=lambda sq: (sq[1], sq[0])):
            if promoting and tr == promotion_rank(side):
                promos: Tuple[Optional[str], ...] = PROMOTION_PIECES
            else:
                promos = (None,)
            for promo in promos:
                mv = Move(f, r, tf, tr, piece, promo)
                if is_legal_move(board, mv, side, state):
                    yield mv


def generate_legal_moves(board: Board, side: str, state: Optional[GameState] = None) -> List[Move]:
    """Every legal move for ``side``, ordered by source then destination square."""
    known = _known_side(side)
    if known is None:
        return []
    return list(iter_legal_moves(board, known, state))


def has_legal_moves(board: Board, side: str, state: Optional[GameState] = None) -> bool:
    return next(iter_legal_moves(board, side, state), None) is not None


def is_in_check(board: Board, color: str) -> bool:
    """True if ``color``'s king is attacked.

    Raises:
        BoardInvariantError: If ``color`` has no king on the board.
    """
    color = normalize_color(color)
    kf, kr = board.find_king(color)
    return is_square_attacked(board, kf, kr, opponent(color))


def is_checkmate(board: Board, color: str, state: Optional[GameState] = None) -> bool:
    color = normalize_color(color)
    return is_in_check(board, color) and not has_legal_moves(board, color, state)


def is_stalemate(board: Board, color: str, state: Optional[GameState] = None) -> bool:
    color = normalize_color(color)
    return not is_in_check(board, color) and not has_legal_moves(board, color, state)


def is_insufficient_material(board: Board) -> bool:
    white = [p for _, _, p in board.pieces("w")]
    black = [p for _, _, p in board.pieces("b")]
    if len(white) > 2 or len(black) > 2:
        return False
    if len(white) == 1 and len(black) == 1:
        return True
    if len(white) == 2 and len(black) == 2:
        return False
    extra = [piece_kind(p) for p in white + black if piece_kind(p) != "k"]
    return len(extra) == 1 and extra[0] in ("b", "n")


def is_threefold_repetition(board: Board, side: str, state: Optional[GameState]) -> bool:
    if state is None:
        return False
    key = position_key(board, side)
    history = state.position_history
    count = history.count(key)
    if not history or history[-1] != key:
        # current position not recorded yet
        count += 1
    return count >= 3


def is_fifty_move_draw(state: Optional[GameState]) -> bool:
    return state is not None and state.halfmove_clock >= 100


def is_draw(board: Board, side: str, state: Optional[GameState] = None) -> bool:
    side = normalize_color(side)
    return (
        is_fifty_move_draw(state)
        or is_insufficient_material(board)
        or is_threefold_repetition(board, side, state)
        or is_stalemate(board, side, state)
    )


def apply_move(
    board: Board, move: Move, state: Optional[GameState] = None
) -> Tuple[Board, GameState]:
    """Play an already-validated ``move`` and derive the next state.

    Neither ``board`` nor ``state`` is modified. Castling relocates king and
    rook together; en passant removes the bypassed pawn; a pawn reaching the
    last rank becomes ``move.promotion`` (queen when unspecified).
    """
    if state is None:
        state = GameState(castling="")
    after, captured = relocate(board, move)
    return after, state.advance(move, after, captured)
