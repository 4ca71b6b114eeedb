from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from . import rules
from .board import BK, WK, Board, opponent
from .fen import format_fen, parse_fen, startpos
from .move import Move, parse_coordinate
from .state import GameState


MAX_UNDO = 50

Snapshot = Tuple[Board, str, GameState]


@dataclass
class Game:
    """Turn loop around the pure rules engine.

    Responsibility: own the current board/side/state, validate and apply
    moves, and keep pre-move snapshots for undo.
    """

    board: Board
    side: str
    state: GameState
    undo_stack: List[Snapshot] = field(default_factory=list)

    @classmethod
    def new(cls) -> "Game":
        board, side, state = startpos()
        return cls(board=board, side=side, state=state)

    @classmethod
    def from_fen(cls, fen: str) -> "Game":
        board, side, state = parse_fen(fen)
        if board.count(WK) != 1 or board.count(BK) != 1:
            raise ValueError("FEN must have exactly one king per side")
        return cls(board=board, side=side, state=state)

    def to_fen(self) -> str:
        return format_fen(self.board, self.side, self.state)

    def snapshot(self) -> Snapshot:
        return self.board, self.side, self.state

    def legal_moves(self) -> List[Move]:
        return rules.generate_legal_moves(self.board, self.side, self.state)

    def parse(self, text: str) -> Move:
        return parse_coordinate(text, self.board)

    def apply_move(self, move: Move) -> None:
        if not rules.is_legal_move(self.board, move, self.side, self.state):
            raise ValueError("illegal move")
        self.undo_stack.append(self.snapshot())
        if len(self.undo_stack) > MAX_UNDO:
            del self.undo_stack[0]
        self.board, self.state = rules.apply_move(self.board, move, self.state)
        self.side = opponent(self.side)

    def apply_coordinate(self, text: str) -> Move:
        move = self.parse(text)
        self.apply_move(move)
        return move

    def undo_move(self) -> None:
        if not self.undo_stack:
            raise ValueError("no moves to undo")
        self.board, self.side, self.state = self.undo_stack.pop()

    # --- State flags for protocol ---
    def in_check(self) -> bool:
        return rules.is_in_check(self.board, self.side)

    def checkmate(self) -> bool:
        return rules.is_checkmate(self.board, self.side, self.state)

    def stalemate(self) -> bool:
        return rules.is_stalemate(self.board, self.side, self.state)

    def is_draw(self) -> bool:
        return rules.is_draw(self.board, self.side, self.state)

    def is_over(self) -> bool:
        return self.checkmate() or self.is_draw()

    def last_move(self) -> Optional[Move]:
        return self.state.last_move

    def move_history(self) -> List[str]:
        return list(self.state.moves)
