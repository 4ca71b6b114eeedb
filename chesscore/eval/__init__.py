"""Evaluation heuristics.

Pure and deterministic: ``evaluate`` is a weighted sum of independent terms,
each computed as "own minus opponent" so the score always favors ``side``.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Final, List, Optional

from ..engine.board import Board, opponent, piece_color, piece_kind
from ..engine.rules import KING_OFFSETS, is_in_check
from ..engine.state import GameState
from .tactics import PIECE_VALUES, Position, tactical_score, value_of


@dataclass(frozen=True)
class EvalWeights:
    material: float = 1.0
    position: float = 0.4
    mobility: float = 0.25
    king_safety: float = 0.8
    center_control: float = 0.35
    pawn_structure: float = 0.45
    coordination: float = 0.3
    tactics: float = 0.5
    piece_safety: float = 0.7
    queen_safety: float = 0.8
    future_threats: float = 0.4


DEFAULT_WEIGHTS: Final = EvalWeights()

# Endgame once queens and rooks of both sides total less than this
ENDGAME_MATERIAL: Final = 1500
CENTER_SQUARES: Final = ((3, 3), (4, 3), (3, 4), (4, 4))
MOBILITY_SCALE: Final = 0.1
CENTER_MOVE_BONUS: Final = 0.2

IN_CHECK_PENALTY: Final = 10.0
LIGHT_DEFENDER_BONUS: Final = 0.5
HEAVY_DEFENDER_PENALTY: Final = 0.8
KING_ZONE_ATTACKER_PENALTY: Final = 3.0
SHELTERED_KING_BONUS: Final = 3.0

QUEEN_ATTACKED_PENALTY: Final = 8.0
QUEEN_PAWN_ATTACK_PENALTY: Final = 10.0
QUEEN_HARASSMENT_PENALTY: Final = 4.0
QUEEN_CENTRAL_BONUS: Final = 3.0

DOUBLED_PAWN_PENALTY: Final = 0.5
ISOLATED_PAWN_PENALTY: Final = 0.3

PAIR_DISTANCE_BONUS: Final = 0.5
MINOR_PAIR_BONUS: Final = 1.0
HEAVY_PAIR_BONUS: Final = 1.5

# Piece-safety scaling, as fractions of the attacked piece's value
ATTACKED_BY_LOWER: Final = 0.8
ATTACKED_QUEEN: Final = 0.6
ATTACKED_OTHER: Final = 0.3
DEFENDED_REBATE: Final = 0.2
GUARDED_POST_BONUS: Final = 0.1
GUARDED_KING_BONUS: Final = 30.0

OWN_THREATENED: Final = 0.2
ENEMY_THREATENED: Final = 0.15


# Piece-square tables from white's point of view, indexed [grid rank][file]
# (first row is the eighth rank). Black mirrors the rank.
PSQT_P: Final = (
    (0, 0, 0, 0, 0, 0, 0, 0),
    (50, 50, 50, 50, 50, 50, 50, 50),
    (10, 10, 20, 30, 30, 20, 10, 10),
    (5, 5, 10, 25, 25, 10, 5, 5),
    (0, 0, 0, 20, 20, 0, 0, 0),
    (5, -5, -10, 0, 0, -10, -5, 5),
    (5, 10, 10, -20, -20, 10, 10, 5),
    (0, 0, 0, 0, 0, 0, 0, 0),
)
PSQT_N: Final = (
    (-50, -40, -30, -30, -30, -30, -40, -50),
    (-40, -20, 0, 0, 0, 0, -20, -40),
    (-30, 0, 10, 15, 15, 10, 0, -30),
    (-30, 5, 15, 20, 20, 15, 5, -30),
    (-30, 0, 15, 20, 20, 15, 0, -30),
    (-30, 5, 10, 15, 15, 10, 5, -30),
    (-40, -20, 0, 5, 5, 0, -20, -40),
    (-50, -40, -30, -30, -30, -30, -40, -50),
)
PSQT_B: Final = (
    (-20, -10, -10, -10, -10, -10, -10, -20),
    (-10, 0, 0, 0, 0, 0, 0, -10),
    (-10, 0, 5, 10, 10, 5, 0, -10),
    (-10, 5, 5, 10, 10, 5, 5, -10),
    (-10, 0, 10, 10, 10, 10, 0, -10),
    (-10, 10, 10, 10, 10, 10, 10, -10),
    (-10, 5, 0, 0, 0, 0, 5, -10),
    (-20, -10, -10, -10, -10, -10, -10, -20),
)
PSQT_R: Final = (
    (0, 0, 0, 0, 0, 0, 0, 0),
    (5, 10, 10, 10, 10, 10, 10, 5),
    (-5, 0, 0, 0, 0, 0, 0, -5),
    (-5, 0, 0, 0, 0, 0, 0, -5),
    (-5, 0, 0, 0, 0, 0, 0, -5),
    (-5, 0, 0, 0, 0, 0, 0, -5),
    (-5, 0, 0, 0, 0, 0, 0, -5),
    (0, 0, 0, 5, 5, 0, 0, 0),
)
PSQT_Q: Final = (
    (-20, -10, -10, -5, -5, -10, -10, -20),
    (-10, 0, 0, 0, 0, 0, 0, -10),
    (-10, 0, 5, 5, 5, 5, 0, -10),
    (-5, 0, 5, 5, 5, 5, 0, -5),
    (0, 0, 5, 5, 5, 5, 0, -5),
    (-10, 5, 5, 5, 5, 5, 0, -10),
    (-10, 0, 5, 0, 0, 0, 0, -10),
    (-20, -10, -10, -5, -5, -10, -10, -20),
)
PSQT_K_MID: Final = (
    (-30, -40, -40, -50, -50, -40, -40, -30),
    (-30, -40, -40, -50, -50, -40, -40, -30),
    (-30, -40, -40, -50, -50, -40, -40, -30),
    (-30, -40, -40, -50, -50, -40, -40, -30),
    (-20, -30, -30, -40, -40, -30, -30, -20),
    (-10, -20, -20, -20, -20, -20, -20, -10),
    (20, 20, 0, 0, 0, 0, 20, 20),
    (20, 30, 10, 0, 0, 10, 30, 20),
)
PSQT_K_END: Final = (
    (-50, -40, -30, -20, -20, -30, -40, -50),
    (-30, -20, -10, 0, 0, -10, -20, -30),
    (-30, -10, 20, 30, 30, 20, -10, -30),
    (-30, -10, 30, 40, 40, 30, -10, -30),
    (-30, -10, 30, 40, 40, 30, -10, -30),
    (-30, -10, 20, 30, 30, 20, -10, -30),
    (-30, -30, 0, 0, 0, 0, -30, -30),
    (-50, -30, -30, -30, -30, -30, -30, -50),
)
PSQT: Final = {"p": PSQT_P, "n": PSQT_N, "b": PSQT_B, "r": PSQT_R, "q": PSQT_Q}


def is_endgame(board: Board) -> bool:
    heavy = sum(value_of(p) for _, _, p in board.pieces() if piece_kind(p) in ("q", "r"))
    return heavy < ENDGAME_MATERIAL


def psqt_value(piece: int, f: int, r: int, endgame: bool) -> int:
    kind = piece_kind(piece)
    if kind is None:
        return 0
    row = r if piece_color(piece) == "w" else 7 - r
    if kind == "k":
        table = PSQT_K_END if endgame else PSQT_K_MID
    else:
        table = PSQT[kind]
    return table[row][f]


def material_score(board: Board, color: str) -> float:
    score = 0
    for _, _, p in board.pieces():
        score += value_of(p) if piece_color(p) == color else -value_of(p)
    return float(score)


def positional_score(board: Board, color: str) -> float:
    endgame = is_endgame(board)
    score = 0
    for f, r, p in board.pieces():
        v = psqt_value(p, f, r, endgame)
        score += v if piece_color(p) == color else -v
    return float(score)


def _mobility(pos: Position) -> float:
    return (len(pos.moves(pos.color)) - len(pos.moves(pos.enemy))) * MOBILITY_SCALE


def _king_safety_for(pos: Position, color: str) -> float:
    board = pos.board
    enemy = opponent(color)
    kf, kr = board.find_king(color)
    score = 0.0
    if is_in_check(board, color):
        score -= IN_CHECK_PENALTY
    zone = [(kf + df, kr + dr) for df, dr in KING_OFFSETS if 0 <= kf + df < 8 and 0 <= kr + dr < 8]
    friends = 0
    for f, r in zone:
        p = board.at(f, r)
        if p and piece_color(p) == color:
            friends += 1
            if value_of(p) <= 350:
                score += LIGHT_DEFENDER_BONUS
            else:
                score -= HEAVY_DEFENDER_PENALTY
    zone_attackers = set()
    for f, r in zone:
        for af, ar, ap in pos.attackers(f, r, enemy):
            if piece_kind(ap) != "k":
                zone_attackers.add((af, ar))
    score -= KING_ZONE_ATTACKER_PENALTY * len(zone_attackers)
    if kf in (0, 7) or kr in (0, 7) or friends >= 2:
        score += SHELTERED_KING_BONUS
    return score


def _harassing_moves(pos: Position, qf: int, qr: int, by_color: str) -> int:
    count = 0
    for m in pos.moves(by_color):
        kind = piece_kind(m.piece)
        df, dr = qf - m.to_file, qr - m.to_rank
        if kind == "n" and (abs(df), abs(dr)) in ((1, 2), (2, 1)):
            count += 1
        elif kind == "p" and m.promotion is None and abs(df) == 1:
            if dr == (-1 if by_color == "w" else 1):
                count += 1
    return count


def _queen_safety_for(pos: Position, color: str) -> float:
    enemy = opponent(color)
    score = 0.0
    for f, r, p in pos.board.pieces(color):
        if piece_kind(p) != "q":
            continue
        attackers = pos.attackers(f, r, enemy)
        if attackers:
            score -= QUEEN_ATTACKED_PENALTY
            score -= QUEEN_PAWN_ATTACK_PENALTY * sum(1 for *_, a in attackers if piece_kind(a) == "p")
        elif 2 <= f <= 5 and 2 <= r <= 5:
            score += QUEEN_CENTRAL_BONUS
        score -= QUEEN_HARASSMENT_PENALTY * _harassing_moves(pos, f, r, enemy)
    return score


def _center_control_for(pos: Position, color: str) -> float:
    score = 0.0
    for f, r in CENTER_SQUARES:
        p = pos.board.at(f, r)
        if p and piece_color(p) == color:
            score += 1
    movers = {m.source for m in pos.moves(color) if m.target in CENTER_SQUARES}
    return score + CENTER_MOVE_BONUS * len(movers)


def _pawn_structure_for(board: Board, color: str) -> float:
    files = [0] * 8
    for f, _, p in board.pieces(color):
        if piece_kind(p) == "p":
            files[f] += 1
    score = 0.0
    for f, n in enumerate(files):
        if n > 1:
            score -= DOUBLED_PAWN_PENALTY * (n - 1)
        if n and (f == 0 or not files[f - 1]) and (f == 7 or not files[f + 1]):
            score -= ISOLATED_PAWN_PENALTY * n
    return score


def _coordination_for(board: Board, color: str) -> float:
    pieces = [(f, r, piece_kind(p)) for f, r, p in board.pieces(color) if piece_kind(p) not in ("p", "k")]
    score = 0.0
    for i, (f1, r1, k1) in enumerate(pieces):
        for f2, r2, k2 in pieces[i + 1:]:
            dist = ((f1 - f2) ** 2 + (r1 - r2) ** 2) ** 0.5
            if not 2 <= dist <= 4:
                continue
            score += PAIR_DISTANCE_BONUS
            pair = {k1, k2}
            if pair == {"n", "b"}:
                score += MINOR_PAIR_BONUS
            elif pair == {"r", "q"}:
                score += HEAVY_PAIR_BONUS
    return score


def _piece_safety_for(pos: Position, color: str) -> float:
    board = pos.board
    enemy = opponent(color)
    score = 0.0
    for f, r, p in board.pieces(color):
        kind = piece_kind(p)
        v = value_of(p)
        if kind != "k":
            attackers = pos.attackers(f, r, enemy)
            if attackers:
                lower = any(value_of(a) < v for *_, a in attackers)
                if lower:
                    score -= v * ATTACKED_BY_LOWER
                elif kind == "q":
                    score -= v * ATTACKED_QUEEN
                else:
                    score -= v * ATTACKED_OTHER
                    if pos.defended(f, r):
                        score += v * DEFENDED_REBATE
        if kind in ("q", "r", "k"):
            friends = sum(
                1
                for df, dr in KING_OFFSETS
                if piece_color(board.at(f + df, r + dr)) == color
            )
            if kind == "k" and friends >= 2:
                score += GUARDED_KING_BONUS
            elif kind != "k" and friends >= 1:
                score += v * GUARDED_POST_BONUS
    return score


def _future_threats_for(pos: Position, color: str) -> float:
    enemy = opponent(color)
    score = 0.0
    for f, r, p in pos.board.pieces():
        if piece_kind(p) == "k":
            continue
        if piece_color(p) == color:
            if pos.attackers(f, r, enemy):
                score -= OWN_THREATENED * value_of(p)
        elif pos.attackers(f, r, color):
            score += ENEMY_THREATENED * value_of(p)
    return score


def evaluate_breakdown(
    board: Board,
    side: str,
    state: Optional[GameState] = None,
    weights: EvalWeights = DEFAULT_WEIGHTS,
) -> Dict[str, float]:
    """Weighted evaluation terms from ``side``'s perspective.

    Returns:
        Dict[str, float]: One entry per term (already multiplied by its
        weight), keyed like the fields of ``EvalWeights``.
    """
    pos = Position(board, side, state)
    enemy = pos.enemy

    def both(fn) -> float:
        return fn(pos, side) - fn(pos, enemy)

    raw = {
        "material": material_score(board, side),
        "position": positional_score(board, side),
        "mobility": _mobility(pos),
        "king_safety": both(_king_safety_for),
        "center_control": both(_center_control_for),
        "pawn_structure": _pawn_structure_for(board, side) - _pawn_structure_for(board, enemy),
        "coordination": _coordination_for(board, side) - _coordination_for(board, enemy),
        "tactics": both(tactical_score),
        "piece_safety": both(_piece_safety_for),
        "queen_safety": both(_queen_safety_for),
        "future_threats": both(_future_threats_for),
    }
    w = asdict(weights)
    return {name: value * w[name] for name, value in raw.items()}


def evaluate(
    board: Board,
    side: str,
    state: Optional[GameState] = None,
    weights: EvalWeights = DEFAULT_WEIGHTS,
) -> float:
    """Score ``board`` for ``side``; positive favors ``side``."""
    return sum(evaluate_breakdown(board, side, state, weights).values())


__all__: List[str] = [
    "DEFAULT_WEIGHTS",
    "EvalWeights",
    "PIECE_VALUES",
    "evaluate",
    "evaluate_breakdown",
    "is_endgame",
    "material_score",
    "positional_score",
    "psqt_value",
]
