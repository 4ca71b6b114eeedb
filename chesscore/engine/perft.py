from __future__ import annotations

from typing import Dict, Optional

from .board import Board, opponent
from .rules import apply_move, generate_legal_moves
from .state import GameState


def perft(board: Board, side: str, state: Optional[GameState], depth: int) -> int:
    """Count leaf nodes of the legal move tree below ``board`` at ``depth``.

    Definition:
    - depth == 0 returns 1 (the current node).
    - depth > 0 returns the sum over all legal child positions' perft(depth-1).
    """
    if depth < 0:
        raise ValueError("depth must be >= 0")
    if depth == 0:
        return 1
    moves = generate_legal_moves(board, side, state)
    if depth == 1:
        return len(moves)
    nodes = 0
    for m in moves:
        child, child_state = apply_move(board, m, state)
        nodes += perft(child, opponent(side), child_state, depth - 1)
    return nodes


def divide(board: Board, side: str, state: Optional[GameState], depth: int) -> Dict[str, int]:
    """Per-root-move perft counts, keyed by coordinate notation."""
    out: Dict[str, int] = {}
    for m in generate_legal_moves(board, side, state):
        child, child_state = apply_move(board, m, state)
        out[m.to_coordinate()] = perft(child, opponent(side), child_state, max(0, depth - 1))
    return out
