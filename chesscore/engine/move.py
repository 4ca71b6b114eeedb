from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Tuple

if TYPE_CHECKING:
    from .board import Board


PROMOTION_PIECES = ("q", "r", "b", "n")


@dataclass(frozen=True)
class Move:
    """Engine-internal move representation.

    Coordinates follow the board grid: ``rank`` 0 is black's back rank (the
    eighth rank in algebraic notation), ``rank`` 7 is white's back rank.

    Attributes:
        from_file (int): Origin file, 0 = a-file.
        from_rank (int): Origin grid rank.
        to_file (int): Destination file.
        to_rank (int): Destination grid rank.
        piece (int): Moving piece code (see ``board.WP`` .. ``board.BK``).
        promotion (Optional[str]): Lowercase promotion piece, if any.
    """

    from_file: int
    from_rank: int
    to_file: int
    to_rank: int
    piece: int
    promotion: Optional[str] = None

    @property
    def source(self) -> Tuple[int, int]:
        return self.from_file, self.from_rank

    @property
    def target(self) -> Tuple[int, int]:
        return self.to_file, self.to_rank

    def in_bounds(self) -> bool:
        return all(
            isinstance(v, int) and 0 <= v < 8
            for v in (self.from_file, self.from_rank, self.to_file, self.to_rank)
        )

    def to_coordinate(self) -> str:
        """Serialize the move into long algebraic coordinate form.

        Returns:
            str: Move encoded like ``"e2e4"`` or ``"e7e8q"``.
        """
        return (
            square_to_str(self.from_file, self.from_rank)
            + square_to_str(self.to_file, self.to_rank)
            + (self.promotion or "")
        )

    def __str__(self) -> str:
        return self.to_coordinate()


def parse_coordinate(text: str, board: "Board") -> Move:
    """Parse a coordinate move string against ``board``.

    The moving piece is read from the origin square, so the result is still a
    candidate: legality is decided by the rules engine.

    Args:
        text (str): Move in long algebraic notation (e.g. ``"e2e4"``).
        board (Board): Position the move is played in.

    Returns:
        Move: Parsed move.

    Raises:
        ValueError: If the string has an invalid length, squares, promotion
            piece, or the origin square is empty.
    """
    text = text.strip()
    if len(text) not in (4, 5):
        raise ValueError(f"invalid move length: {text!r}")
    ff, fr = str_to_square(text[0:2])
    tf, tr = str_to_square(text[2:4])
    promo: Optional[str] = None
    if len(text) == 5:
        promo = text[4].lower()
        if promo not in PROMOTION_PIECES:
            raise ValueError(f"invalid promotion piece: {promo!r}")
    piece = board.at(ff, fr)
    if not piece:
        raise ValueError(f"no piece on {text[0:2]!r}")
    return Move(ff, fr, tf, tr, piece, promo)


def str_to_square(s: str) -> Tuple[int, int]:
    """Convert algebraic notation into ``(file, rank)`` grid coordinates.

    Raises:
        ValueError: If ``s`` is not a valid square.
    """
    if len(s) != 2 or s[0] < "a" or s[0] > "h" or s[1] < "1" or s[1] > "8":
        raise ValueError(f"invalid square: {s!r}")
    return ord(s[0]) - ord("a"), 8 - int(s[1])


def square_to_str(file: int, rank: int) -> str:
    if not (0 <= file < 8 and 0 <= rank < 8):
        raise ValueError(f"invalid square: {(file, rank)!r}")
    return chr(ord("a") + file) + str(8 - rank)
