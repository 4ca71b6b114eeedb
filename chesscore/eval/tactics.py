"""Attack bookkeeping and tactical-pattern detection for the evaluator."""

from __future__ import annotations

from typing import Dict, Final, List, Optional, Tuple

from ..engine.board import Board, opponent, piece_color, piece_kind
from ..engine.move import Move
from ..engine.rules import (
    BISHOP_DIRS,
    QUEEN_DIRS,
    ROOK_DIRS,
    attackers_of,
    attacks,
    generate_legal_moves,
    relocate,
)
from ..engine.state import GameState


PIECE_VALUES: Final = {"p": 100, "n": 320, "b": 330, "r": 500, "q": 900, "k": 20000}

# A king is worth more than everything else combined; for pattern scoring it
# counts as a queen so that a forking check does not swamp the evaluation.
TACTICAL_VALUES: Final = dict(PIECE_VALUES, k=900)

# Pattern weights in tenths of a point per scored unit
FORK_WEIGHT: Final = 6.0
PIN_WEIGHT: Final = 5.0
SKEWER_WEIGHT: Final = 5.5
DISCOVERY_WEIGHT: Final = 4.5
DOUBLE_ATTACK_WEIGHT: Final = 4.0
REMOVAL_OF_GUARD_WEIGHT: Final = 3.5
UNPROTECTED_WEIGHT: Final = 4.5

Attacker = Tuple[int, int, int]


def value_of(piece: int) -> int:
    kind = piece_kind(piece)
    return PIECE_VALUES[kind] if kind else 0


def tactical_value(piece: int) -> int:
    kind = piece_kind(piece)
    return TACTICAL_VALUES[kind] if kind else 0


class Position:
    """Static board plus memoized attack and move lookups for one evaluation.

    Lookups re-query the rules engine's geometry layer; results are cached
    only for the lifetime of this object.
    """

    def __init__(self, board: Board, color: str, state: Optional[GameState]) -> None:
        self.board = board
        self.color = color
        self.enemy = opponent(color)
        self.state = state
        self._attackers: Dict[Tuple[int, int, str], List[Attacker]] = {}
        self._moves: Dict[str, List[Move]] = {}

    def moves(self, color: str) -> List[Move]:
        cached = self._moves.get(color)
        if cached is None:
            cached = generate_legal_moves(self.board, color, self.state)
            self._moves[color] = cached
        return cached

    def attackers(self, f: int, r: int, by_color: str) -> List[Attacker]:
        key = (f, r, by_color)
        hit = self._attackers.get(key)
        if hit is None:
            hit = attackers_of(self.board, f, r, by_color)
            self._attackers[key] = hit
        return hit

    def defended(self, f: int, r: int) -> bool:
        piece = self.board.at(f, r)
        color = piece_color(piece)
        if color is None:
            return False
        return bool(self.attackers(f, r, color))


def _slides_along(piece: int, df: int, dr: int) -> bool:
    kind = piece_kind(piece)
    if kind == "q":
        return True
    if df and dr:
        return kind == "b"
    return kind == "r"


def _first_piece(board: Board, f: int, r: int, df: int, dr: int) -> Optional[Tuple[int, int, int]]:
    f, r = f + df, r + dr
    while 0 <= f < 8 and 0 <= r < 8:
        p = board.at(f, r)
        if p:
            return f, r, p
        f += df
        r += dr
    return None


def _direction(ff: int, fr: int, tf: int, tr: int) -> Tuple[int, int]:
    return (tf > ff) - (tf < ff), (tr > fr) - (tr < fr)


def fork_and_skewer(pos: Position, color: str) -> Tuple[float, float]:
    """Score forks and skewers available to ``color`` on its next move."""
    enemy = opponent(color)
    board = pos.board
    kf, kr = board.find_king(enemy)
    fork = 0.0
    skewer = 0.0
    for m in pos.moves(color):
        after, _ = relocate(board, m)
        tf, tr = m.to_file, m.to_rank
        hit = [
            p
            for ef, er, p in after.pieces(enemy)
            if attacks(after, tf, tr, ef, er)
        ]
        if len(hit) >= 2:
            fork += sum(tactical_value(p) for p in hit) / 100
        moved = after.at(tf, tr)
        if piece_kind(moved) in ("b", "r", "q") and attacks(after, tf, tr, kf, kr):
            df, dr = _direction(tf, tr, kf, kr)
            behind = _first_piece(after, kf, kr, df, dr)
            if behind is not None and piece_color(behind[2]) == enemy:
                skewer += value_of(behind[2]) / 100
    return fork, skewer


def pins(pos: Position, color: str) -> float:
    """Enemy pieces pinned against their king by ``color``'s sliders."""
    enemy = opponent(color)
    board = pos.board
    kf, kr = board.find_king(enemy)
    score = 0.0
    for df, dr in QUEEN_DIRS:
        first = _first_piece(board, kf, kr, df, dr)
        if first is None or piece_color(first[2]) != enemy:
            continue
        second = _first_piece(board, first[0], first[1], df, dr)
        if second is None or piece_color(second[2]) != color:
            continue
        if _slides_along(second[2], df, dr):
            score += value_of(first[2]) / 200
    return score


def discoveries(pos: Position, color: str) -> float:
    """Attacks ``color`` could unmask by moving a piece off a slider's line."""
    enemy = opponent(color)
    board = pos.board
    score = 0.0
    for sf, sr, slider in board.pieces(color):
        kind = piece_kind(slider)
        if kind not in ("b", "r", "q"):
            continue
        dirs = {"b": BISHOP_DIRS, "r": ROOK_DIRS, "q": QUEEN_DIRS}[kind]
        for df, dr in dirs:
            blocker = _first_piece(board, sf, sr, df, dr)
            if blocker is None or piece_color(blocker[2]) != color:
                continue
            target = _first_piece(board, blocker[0], blocker[1], df, dr)
            if target is None or piece_color(target[2]) != enemy:
                continue
            bf, br = blocker[0], blocker[1]
            for m in pos.moves(color):
                if (m.from_file, m.from_rank) != (bf, br):
                    continue
                if _direction(sf, sr, m.to_file, m.to_rank) == (df, dr) and (
                    abs(m.to_file - sf) <= abs(target[0] - sf)
                    and abs(m.to_rank - sr) <= abs(target[1] - sr)
                ):
                    continue
                score += tactical_value(target[2]) / 100
                break
    return score


def attack_patterns(pos: Position, color: str) -> Tuple[float, float, float]:
    """Double attacks, removal-of-guard chances and hanging enemy pieces."""
    enemy = opponent(color)
    board = pos.board
    double = 0.0
    removal = 0.0
    hanging = 0.0
    for tf, tr, target in board.pieces(enemy):
        if piece_kind(target) == "k":
            continue
        ours = pos.attackers(tf, tr, color)
        if not ours:
            continue
        tv = value_of(target)
        if len(ours) >= 2:
            double += (len(ours) - 1) * tv / 200
        guards = pos.attackers(tf, tr, enemy)
        for gf, gr, guard in guards:
            if piece_kind(guard) == "k":
                continue
            gain = tv - value_of(guard)
            if gain > 0 and pos.attackers(gf, gr, color):
                removal += gain / 200
        if not guards:
            cheapest = min(value_of(p) for _, _, p in ours)
            if cheapest < tv:
                hanging += (tv - cheapest) / 100
            elif cheapest == tv:
                hanging += tv / 200
    return double, removal, hanging


def tactical_score(pos: Position, color: str) -> float:
    """Weighted sum of every tactical pattern ``color`` can exploit."""
    fork, skewer = fork_and_skewer(pos, color)
    double, removal, hanging = attack_patterns(pos, color)
    return (
        FORK_WEIGHT * fork
        + PIN_WEIGHT * pins(pos, color)
        + SKEWER_WEIGHT * skewer
        + DISCOVERY_WEIGHT * discoveries(pos, color)
        + DOUBLE_ATTACK_WEIGHT * double
        + REMOVAL_OF_GUARD_WEIGHT * removal
        + UNPROTECTED_WEIGHT * hanging
    )
