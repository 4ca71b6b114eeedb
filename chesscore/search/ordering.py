"""Move-ordering heuristic for alpha-beta search.

Ordering only changes how fast cutoffs are found, never the search result.
"""

from __future__ import annotations

from typing import Callable, Dict, Final, List, Optional, Set, Tuple

from ..engine.board import Board, Square, back_rank, opponent, piece_kind, promotion_rank
from ..engine.move import Move
from ..engine.rules import attackers_of, attacks, is_in_check, relocate
from ..engine.state import GameState
from ..eval import CENTER_SQUARES, is_endgame, psqt_value
from ..eval.tactics import tactical_value, value_of


CAPTURE_BONUS: Final = 1000
PROMOTION_BONUS: Final = 900
CHECK_BONUS: Final = 800
SAFETY_BONUS: Final = 750
CENTER_BONUS: Final = 700
PROTECTION_BONUS: Final = 650
DEVELOPMENT_BONUS: Final = 600
ESCAPE_BONUS: Final = 600

KING_ESCAPE_BONUS: Final = 1000
LIGHT_INTERPOSE_BONUS: Final = 800
HEAVY_INTERPOSE_PENALTY: Final = 300
UNDEFENDED_VICTIM_BONUS: Final = 200
KING_GUARD_PENALTY: Final = 200
UNSOUND_PENALTY: Final = 500

LIGHT_PIECE: Final = 330
HEAVY_PIECE: Final = 500


class _Snapshot:
    """Per-node facts shared by every candidate move."""

    def __init__(self, board: Board, side: str) -> None:
        self.board = board
        self.side = side
        self.enemy = opponent(side)
        self.in_check = is_in_check(board, side)
        self.endgame = is_endgame(board)
        self.king: Square = board.find_king(side)
        # own square -> cheapest enemy attacker value
        self.threatened: Dict[Square, int] = {}
        self.undefended: Set[Square] = set()
        for f, r, p in board.pieces(side):
            if piece_kind(p) == "k":
                continue
            hits = attackers_of(board, f, r, self.enemy)
            if hits:
                self.threatened[(f, r)] = min(value_of(a) for *_, a in hits)
            if not attackers_of(board, f, r, side):
                self.undefended.add((f, r))


def _score(snap: _Snapshot, move: Move) -> float:
    board = snap.board
    side, enemy = snap.side, snap.enemy
    after, captured = relocate(board, move)
    kind = piece_kind(move.piece)
    mover_v = value_of(move.piece)
    tf, tr = move.to_file, move.to_rank
    score = 0.0

    if kind == "p" and tr == promotion_rank(side):
        score += PROMOTION_BONUS + value_of(after.at(tf, tr)) / 10
    if is_in_check(after, enemy):
        score += CHECK_BONUS

    if snap.in_check:
        if kind == "k":
            score += KING_ESCAPE_BONUS
        elif mover_v <= LIGHT_PIECE:
            score += LIGHT_INTERPOSE_BONUS
        else:
            score -= HEAVY_INTERPOSE_PENALTY

    if captured:
        score += CAPTURE_BONUS + value_of(captured) - tactical_value(move.piece)
        if not attackers_of(board, tf, tr, enemy):
            score += UNDEFENDED_VICTIM_BONUS

    dest_attackers = attackers_of(after, tf, tr, enemy)
    safe = not dest_attackers
    cheapest = snap.threatened.get(move.source)
    if cheapest is not None and safe:
        bonus = ESCAPE_BONUS
        if mover_v >= HEAVY_PIECE and cheapest < mover_v:
            bonus *= 3
        elif kind == "q":
            bonus *= 2
        score += bonus
    if safe:
        score += SAFETY_BONUS

    for sq in snap.undefended:
        if sq == move.source or not attacks(after, tf, tr, sq[0], sq[1]):
            continue
        guarded_v = value_of(board.at(*sq))
        shielding_heavy = (
            mover_v >= HEAVY_PIECE
            and guarded_v >= HEAVY_PIECE
            and snap.threatened.get(sq, guarded_v) < guarded_v
        )
        if not shielding_heavy:
            score += PROTECTION_BONUS
        break

    if kind != "k":
        kf, kr = snap.king
        was_near = max(abs(move.from_file - kf), abs(move.from_rank - kr)) == 1
        now_near = max(abs(tf - kf), abs(tr - kr)) == 1
        if now_near and not was_near:
            if mover_v <= LIGHT_PIECE:
                score += PROTECTION_BONUS * 0.5
            else:
                score -= KING_GUARD_PENALTY

    if (tf, tr) in CENTER_SQUARES:
        score += CENTER_BONUS
    home = back_rank(side)
    if kind in ("n", "b", "r", "q") and move.from_rank == home and tr != home:
        score += DEVELOPMENT_BONUS if kind in ("n", "b") else DEVELOPMENT_BONUS / 2

    if kind not in ("p", "k"):
        lower_attacker = any(value_of(a) < mover_v for *_, a in dest_attackers)
        if (captured and mover_v > value_of(captured)) or lower_attacker:
            at_risk = mover_v if dest_attackers else 0
            placed = after.at(tf, tr)
            positional = psqt_value(placed, tf, tr, snap.endgame) - psqt_value(
                move.piece, move.from_file, move.from_rank, snap.endgame
            )
            if value_of(captured) - at_risk + positional <= 0:
                score -= UNSOUND_PENALTY
    return score


def order_moves(
    board: Board,
    moves: List[Move],
    side: str,
    state: Optional[GameState] = None,
    *,
    bias: Optional[Callable[[Move], float]] = None,
) -> List[Move]:
    """Return ``moves`` sorted best-first; ties keep generation order."""
    if len(moves) < 2:
        return list(moves)
    snap = _Snapshot(board, side)
    scored: List[Tuple[float, Move]] = []
    for m in moves:
        s = _score(snap, m)
        if bias is not None:
            s += bias(m) * 10
        scored.append((s, m))
    scored.sort(key=lambda x: x[0], reverse=True)
    return [m for _, m in scored]
