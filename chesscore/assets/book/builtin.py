from __future__ import annotations

import random
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ...engine.move import Move


# Move-sequence key (concatenated coordinate moves) -> candidate replies.
BUILTIN_BOOK: Dict[str, List[str]] = {
    "": ["e2e4", "d2d4", "c2c4", "g1f3"],
    # open games
    "e2e4": ["e7e5", "c7c5", "e7e6", "c7c6", "g7g6", "d7d6", "f7f5"],
    "e7e5": ["e2e4", "d2d4", "c2c4", "g1f3", "b1c3", "f2f4"],
    # Italian, Spanish and King's Gambit share their first two moves
    "e2e4e7e5": ["g1f3", "b1c3", "f2f4"],
    "g1f3g8f6": ["b1c3", "f1c4", "f1b5"],
    "b1c3b8c6": ["f1c4", "f1b5"],
    "f1b5b8c6": ["d2d4", "e1g1", "c2c3"],
    "f2f4e7e4": ["g1f3", "b1c3"],
    # semi-open games
    "e2e4c7c5": ["g1f3", "d2d4", "c2c3"],
    "e2e4e7e6": ["d2d4", "c2c4", "g1f3"],
    "e2e4c7c6": ["d2d4", "g1f3"],
    "e2e4g7g6": ["d2d4", "c2c4", "g1f3"],
    "e2e4d7d5": ["e4d5", "g1f3", "d2d4"],
    # closed games
    "d2d4": ["d7d5", "e7e6", "c7c5", "g7g6", "f7f5"],
    "d7d5": ["d2d4", "e2e4", "c2c4", "g1f3"],
    "c2c4": ["e7e5", "c7c5", "e7e6", "g7g6", "d7d5"],
    "g1f3": ["d7d5", "e7e5", "c7c5", "g7g6", "e7e6"],
    "d2d4d7d5": ["c2c4", "g1f3"],
    "c2c4e7e6": ["g1f3", "b1c3"],
    "d2d4f7f5": ["c2c4", "g1f3", "e2e3"],
}

Entry = Tuple[str, int]


class OpeningBook:
    """Opening book keyed by the sequence of moves played so far.

    Notes:
    - Lookup tries the whole sequence first, then the last move on its own.
    - Only currently-legal candidates are considered.
    - Deterministic by default: highest weight wins, ties keep listed order.
      With ``randomize=True`` the pick is weighted-random, seeded by the key.
    """

    def __init__(self, entries: Optional[Mapping[str, Sequence[Entry]]] = None, *, randomize: bool = False) -> None:
        if entries is None:
            entries = {key: [(m, 1) for m in moves] for key, moves in BUILTIN_BOOK.items()}
        self._index: Dict[str, List[Entry]] = {k: list(v) for k, v in entries.items()}
        self.randomize = randomize

    def __len__(self) -> int:
        return len(self._index)

    def __contains__(self, key: str) -> bool:
        return key in self._index

    def candidates(self, history: Sequence[str]) -> Tuple[str, List[Entry]]:
        key = "".join(history)
        if key in self._index:
            return key, self._index[key]
        if history and history[-1] in self._index:
            return history[-1], self._index[history[-1]]
        return key, []

    def pick(self, history: Sequence[str], legal: Sequence[Move]) -> Optional[Move]:
        key, entries = self.candidates(history)
        if not entries:
            return None
        by_coord = {m.to_coordinate(): m for m in legal}
        playable = [(by_coord[u], max(1, w)) for u, w in entries if u in by_coord]
        if not playable:
            return None
        if not self.randomize:
            best = max(w for _, w in playable)
            return next(m for m, w in playable if w == best)

        rng = random.Random(key)
        total = sum(w for _, w in playable)
        r = rng.randint(1, total)
        acc = 0
        for m, w in playable:
            acc += w
            if r <= acc:
                return m
        return playable[-1][0]
