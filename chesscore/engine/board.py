from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Tuple


STARTPOS_PLACEMENT = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR"
STARTPOS_FEN = STARTPOS_PLACEMENT + " w KQkq - 0 1"


# Piece codes; 0 marks an empty square
EMPTY = 0
WP, WN, WB, WR, WQ, WK, BP, BN, BB, BR, BQ, BK = range(1, 13)
WHITE_PIECES = (WP, WN, WB, WR, WQ, WK)
BLACK_PIECES = (BP, BN, BB, BR, BQ, BK)
KINDS = ("p", "n", "b", "r", "q", "k")
PIECE_TO_CHAR = {
    WP: "P",
    WN: "N",
    WB: "B",
    WR: "R",
    WQ: "Q",
    WK: "K",
    BP: "p",
    BN: "n",
    BB: "b",
    BR: "r",
    BQ: "q",
    BK: "k",
}
CHAR_TO_PIECE = {v: k for k, v in PIECE_TO_CHAR.items()}

Square = Tuple[int, int]


class BoardInvariantError(AssertionError):
    """Raised when a board violates a structural invariant (e.g. a missing king).

    Such a board cannot arise from legal play, so this signals a programming
    error rather than a game condition.
    """


def opponent(color: str) -> str:
    return "b" if color == "w" else "w"


def normalize_color(color: str) -> str:
    c = color.lower()
    if c in ("w", "white"):
        return "w"
    if c in ("b", "black"):
        return "b"
    raise ValueError(f"invalid color: {color!r}")


def piece_color(piece: int) -> Optional[str]:
    if WP <= piece <= WK:
        return "w"
    if BP <= piece <= BK:
        return "b"
    return None


def piece_kind(piece: int) -> Optional[str]:
    if not piece:
        return None
    return KINDS[(piece - 1) % 6]


def make_piece(color: str, kind: str) -> int:
    base = WP if color == "w" else BP
    return base + KINDS.index(kind)


def promotion_rank(color: str) -> int:
    return 0 if color == "w" else 7


def pawn_direction(color: str) -> int:
    return -1 if color == "w" else 1


def pawn_start_rank(color: str) -> int:
    return 6 if color == "w" else 1


def back_rank(color: str) -> int:
    return 7 if color == "w" else 0


@dataclass(frozen=True)
class Board:
    """Immutable 8x8 board.

    Notes:
    - ``squares`` holds 64 piece codes indexed ``rank * 8 + file``.
    - Rank 0 is black's back rank, rank 7 is white's back rank.
    - Every hypothetical move produces a new Board; nothing mutates in place.
    """

    squares: Tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.squares) != 64:
            raise ValueError("board must have 64 squares")

    @classmethod
    def empty(cls) -> "Board":
        return cls(squares=(EMPTY,) * 64)

    @classmethod
    def startpos(cls) -> "Board":
        """Create a board initialized to the standard chess starting position."""
        return cls.from_placement(STARTPOS_PLACEMENT)

    @classmethod
    def from_placement(cls, placement: str) -> "Board":
        """Create a board from the piece-placement field of a FEN string.

        Raises:
            ValueError: If the placement has the wrong rank count, an invalid
                piece letter, or a rank that does not sum to 8 squares.
        """
        ranks = placement.strip().split("/")
        if len(ranks) != 8:
            raise ValueError("FEN board must have 8 ranks")
        squares: List[int] = []
        for rank in ranks:  # rank 8 first, which is grid rank 0
            row: List[int] = []
            for ch in rank:
                if ch.isdigit():
                    n = int(ch)
                    if n < 1 or n > 8:
                        raise ValueError("invalid empty count in FEN rank")
                    row.extend([EMPTY] * n)
                else:
                    if ch not in CHAR_TO_PIECE:
                        raise ValueError(f"invalid piece in FEN: {ch!r}")
                    row.append(CHAR_TO_PIECE[ch])
            if len(row) != 8:
                raise ValueError("rank does not sum to 8 squares in FEN")
            squares.extend(row)
        return cls(squares=tuple(squares))

    @classmethod
    def from_pieces(cls, pieces: Dict[Square, int]) -> "Board":
        squares = [EMPTY] * 64
        for (f, r), p in pieces.items():
            squares[r * 8 + f] = p
        return cls(squares=tuple(squares))

    def placement(self) -> str:
        """Serialize piece placement in rank-8-to-rank-1 run-length form."""
        ranks_str: List[str] = []
        for r in range(8):
            run = 0
            row = []
            for f in range(8):
                p = self.squares[r * 8 + f]
                if not p:
                    run += 1
                    continue
                if run > 0:
                    row.append(str(run))
                    run = 0
                row.append(PIECE_TO_CHAR[p])
            if run > 0:
                row.append(str(run))
            ranks_str.append("".join(row))
        return "/".join(ranks_str)

    def signature(self) -> str:
        return self.placement()

    def at(self, file: int, rank: int) -> int:
        if not (0 <= file < 8 and 0 <= rank < 8):
            return EMPTY
        return self.squares[rank * 8 + file]

    def with_squares(self, changes: Dict[Square, int]) -> "Board":
        sq = list(self.squares)
        for (f, r), p in changes.items():
            sq[r * 8 + f] = p
        return Board(squares=tuple(sq))

    def pieces(self, color: Optional[str] = None) -> Iterator[Tuple[int, int, int]]:
        """Yield ``(file, rank, piece)`` in grid order, optionally for one color."""
        for idx, p in enumerate(self.squares):
            if not p:
                continue
            if color is not None and piece_color(p) != color:
                continue
            yield idx % 8, idx // 8, p

    def find_king(self, color: str) -> Square:
        king = WK if color == "w" else BK
        try:
            idx = self.squares.index(king)
        except ValueError:
            raise BoardInvariantError(f"no king found for color {color!r}") from None
        return idx % 8, idx // 8

    def count(self, piece: int) -> int:
        return self.squares.count(piece)

    def __str__(self) -> str:
        lines = []
        for r in range(8):
            row = "".join(PIECE_TO_CHAR.get(self.squares[r * 8 + f], ".") for f in range(8))
            lines.append(f"{8 - r} {row}")
        lines.append("  abcdefgh")
        return "\n".join(lines)
