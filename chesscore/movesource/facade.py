from __future__ import annotations

import asyncio
import logging
import random
from typing import List, Optional

from ..engine.board import Board
from ..engine.move import Move
from ..engine.rules import generate_legal_moves, is_legal_move
from ..engine.state import GameState, position_key
from ..search.service import SearchService
from .base import EngineProtocolError, MoveSource
from .difficulty import Difficulty


logger = logging.getLogger(__name__)


class LocalMoveSource(MoveSource):
    def __init__(self, service: Optional[SearchService] = None) -> None:
        self.service = service or SearchService()

    async def request_move(
        self,
        board: Board,
        side: str,
        state: Optional[GameState],
        difficulty: Difficulty,
    ) -> Optional[Move]:
        result = await self.service.search_async(
            board,
            side,
            state,
            depth=difficulty.max_depth,
            movetime_ms=difficulty.think_ms,
        )
        move = result.best_move
        if move is not None and self.service.learning is not None:
            self.service.learning.record_move(position_key(board, side), move)
        return move


class MoveProvider:
    """Single entry point for engine moves.

    Uses the external source when one is configured, the local search
    otherwise. Whatever the backend returns is checked for legality; any
    failure is downgraded to a uniformly random legal move and described in
    ``last_diagnostic``.
    """

    def __init__(
        self,
        local: Optional[LocalMoveSource] = None,
        external: Optional[MoveSource] = None,
        *,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.local = local or LocalMoveSource()
        self.external = external
        self.rng = rng or random.Random()
        self.last_diagnostic: Optional[str] = None

    async def request_move(
        self,
        board: Board,
        side: str,
        state: Optional[GameState],
        difficulty: Difficulty,
    ) -> Optional[Move]:
        self.last_diagnostic = None
        legal = generate_legal_moves(board, side, state)
        if not legal:
            return None
        source = self.external or self.local
        try:
            move = await source.request_move(board, side, state, difficulty)
        except asyncio.TimeoutError:
            return self._fallback(legal, "engine timed out")
        except (EngineProtocolError, ValueError, OSError) as exc:
            return self._fallback(legal, f"{type(exc).__name__}: {exc}")
        except Exception as exc:
            logger.error("move source failed", exc_info=True, extra={"source": type(source).__name__})
            return self._fallback(legal, f"{type(exc).__name__}: {exc}")
        if move is None or not is_legal_move(board, move, side, state):
            return self._fallback(legal, f"illegal move from engine: {move.to_coordinate() if move else None}")
        if move.promotion is None:
            move = self.local.service.choose_promotion(board, move, state)
        return move

    def _fallback(self, legal: List[Move], reason: str) -> Move:
        self.last_diagnostic = reason
        move = self.rng.choice(legal)
        logger.warning("move source fallback", extra={"reason": reason, "move": move.to_coordinate()})
        return move
