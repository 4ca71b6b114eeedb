from __future__ import annotations

from enum import IntEnum
from typing import Dict, Optional, Tuple, Union


# Grace period on top of the thinking budget before an engine is abandoned
HARD_TIMEOUT_GRACE_MS = 2000


class Difficulty(IntEnum):
    EASY = 1
    MEDIUM = 2
    HARD = 3
    EXPERT = 4

    @classmethod
    def parse(cls, value: Union[str, int, "Difficulty"]) -> "Difficulty":
        """Accept a level name (any case) or its number."""
        if isinstance(value, str) and not value.isdigit():
            try:
                return cls[value.strip().upper()]
            except KeyError:
                raise ValueError(f"unknown difficulty: {value!r}") from None
        return cls(int(value))

    @property
    def max_depth(self) -> int:
        return _LOCAL[self][0]

    @property
    def think_ms(self) -> int:
        return _LOCAL[self][1]

    @property
    def hard_timeout_ms(self) -> int:
        return self.think_ms + HARD_TIMEOUT_GRACE_MS

    @property
    def external_limits(self) -> Tuple[Optional[int], Optional[int]]:
        """``(depth, movetime_ms)`` for the external engine; exactly one is set."""
        return _EXTERNAL[self]

    @property
    def skill_level(self) -> int:
        return _SKILL[self]


_LOCAL: Dict[Difficulty, Tuple[int, int]] = {
    Difficulty.EASY: (2, 1000),
    Difficulty.MEDIUM: (3, 2500),
    Difficulty.HARD: (4, 4000),
    Difficulty.EXPERT: (5, 6000),
}

_EXTERNAL: Dict[Difficulty, Tuple[Optional[int], Optional[int]]] = {
    Difficulty.EASY: (3, None),
    Difficulty.MEDIUM: (6, None),
    Difficulty.HARD: (10, None),
    Difficulty.EXPERT: (None, 6000),
}

_SKILL: Dict[Difficulty, int] = {
    Difficulty.EASY: 3,
    Difficulty.MEDIUM: 9,
    Difficulty.HARD: 15,
    Difficulty.EXPERT: 20,
}


def difficulty_for_skill(skill: int) -> Difficulty:
    """Closest level whose skill setting does not exceed ``skill`` (0..20)."""
    level = Difficulty.EASY
    for d in Difficulty:
        if _SKILL[d] <= skill:
            level = d
    return level
