from __future__ import annotations

import abc
from typing import Optional

from ..engine.board import Board
from ..engine.move import Move
from ..engine.state import GameState
from .difficulty import Difficulty


class EngineProtocolError(RuntimeError):
    """The external engine broke the text protocol (no handshake, no bestmove)."""


class MoveSource(abc.ABC):
    @abc.abstractmethod
    async def request_move(
        self,
        board: Board,
        side: str,
        state: Optional[GameState],
        difficulty: Difficulty,
    ) -> Optional[Move]:
        """Pick a move for ``side``; ``None`` only if there is none."""
