from __future__ import annotations

from .base import EngineProtocolError, MoveSource
from .difficulty import Difficulty, difficulty_for_skill
from .external import ExternalMoveSource, UCIProcess, parse_bestmove
from .facade import LocalMoveSource, MoveProvider


__all__ = [
    "Difficulty",
    "EngineProtocolError",
    "ExternalMoveSource",
    "LocalMoveSource",
    "MoveProvider",
    "MoveSource",
    "UCIProcess",
    "difficulty_for_skill",
    "parse_bestmove",
]
