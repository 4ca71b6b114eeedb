from __future__ import annotations

import threading
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from ...engine.game import Game
from ...movesource import MoveProvider
from ...search.service import SearchService


@dataclass
class Session:
    """One game plus the engine context that plays in it."""

    game: Game
    service: SearchService
    provider: MoveProvider
    engine_color: Optional[str] = None
    settled: bool = False


class InMemorySessionStore:
    """Thread-safe in-memory session store keyed by ``game_id``."""

    def __init__(self, factory: Callable[[Game], Session]) -> None:
        self._lock = threading.RLock()
        self._sessions: Dict[str, Session] = {}
        self._factory = factory

    def create(self, game: Optional[Game] = None) -> str:
        gid = str(uuid.uuid4())
        session = self._factory(game or Game.new())
        with self._lock:
            self._sessions[gid] = session
        return gid

    def get(self, game_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(game_id)

    def replace_game(self, game_id: str, game: Game) -> Session:
        """Swap the game of an existing session, resetting its engine caches."""
        with self._lock:
            session = self._sessions.get(game_id)
            if session is None:
                raise KeyError(game_id)
            session.game = game
            session.engine_color = None
            session.settled = False
            session.service.clear()
            return session

    def delete(self, game_id: str) -> None:
        with self._lock:
            self._sessions.pop(game_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
