from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Dict, Optional, Tuple

from .board import Board, Square, opponent, piece_color, piece_kind
from .move import Move


# Corner squares (file, grid rank) mapped to the castling right they guard
ROOK_CORNERS: Dict[Square, str] = {
    (7, 7): "K",
    (0, 7): "Q",
    (7, 0): "k",
    (0, 0): "q",
}


def position_key(board: Board, side: str) -> str:
    """Repetition key: board signature plus side to move."""
    return f"{board.signature()} {side}"


@dataclass(frozen=True)
class GameState:
    """Per-game flags threaded through every rules query.

    Attributes:
        castling (str): Remaining castling rights, a subset of ``"KQkq"``.
        halfmove_clock (int): Plies since the last pawn move or capture.
        fullmove_number (int): Starts at 1, incremented after black moves.
        last_move (Optional[Move]): Previous ply, licenses en passant.
        position_history (Tuple[str, ...]): Repetition keys of every position
            reached so far, the current one included.
        moves (Tuple[str, ...]): Coordinate notation of every move played.
    """

    castling: str = "KQkq"
    halfmove_clock: int = 0
    fullmove_number: int = 1
    last_move: Optional[Move] = None
    position_history: Tuple[str, ...] = ()
    moves: Tuple[str, ...] = ()

    @classmethod
    def initial(cls, board: Optional[Board] = None, side: str = "w") -> "GameState":
        board = board or Board.startpos()
        return cls(position_history=(position_key(board, side),))

    def can_castle(self, color: str, kingside: bool) -> bool:
        flag = "K" if kingside else "Q"
        return (flag if color == "w" else flag.lower()) in self.castling

    def advance(self, move: Move, after: Board, captured: int) -> "GameState":
        """Derive the state after ``move`` produced ``after``.

        Args:
            move (Move): The move that was applied.
            after (Board): Board after the move.
            captured (int): Piece code removed by the move (0 if none),
                including an en-passant victim.

        Returns:
            GameState: New state; ``self`` is left untouched.
        """
        color = piece_color(move.piece) or "w"
        castling = self.castling
        if piece_kind(move.piece) == "k":
            for flag in ("K", "Q") if color == "w" else ("k", "q"):
                castling = castling.replace(flag, "")
        for sq in (move.source, move.target):
            flag = ROOK_CORNERS.get(sq)
            if flag:
                castling = castling.replace(flag, "")

        if piece_kind(move.piece) == "p" or captured:
            halfmove = 0
        else:
            halfmove = self.halfmove_clock + 1
        fullmove = self.fullmove_number + (1 if color == "b" else 0)
        return GameState(
            castling=castling,
            halfmove_clock=halfmove,
            fullmove_number=fullmove,
            last_move=move,
            position_history=self.position_history + (position_key(after, opponent(color)),),
            moves=self.moves + (move.to_coordinate(),),
        )

    def passed(self) -> "GameState":
        """State for a null move: same position, no en-passant licence."""
        return replace(self, last_move=None)

    def signature(self) -> Tuple[str, int, int, Optional[str]]:
        ep = None
        lm = self.last_move
        if lm is not None and piece_kind(lm.piece) == "p" and abs(lm.to_rank - lm.from_rank) == 2:
            ep = lm.to_coordinate()
        return self.castling, self.halfmove_clock, self.fullmove_number, ep
