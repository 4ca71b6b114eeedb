"""Outcome-driven move bias.

A weak heuristic: it remembers which moves the engine played from a
position and whether that game was won, then nudges move ordering and the
random fallback towards moves with a good record. Attribution is naive
(every move of a won game counts as a success). Storage is bounded (FIFO
over positions, newest records per position) and older results decay by
``decay`` per finished game.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..engine.move import Move


logger = logging.getLogger(__name__)


@dataclass
class LearningRecord:
    move: str
    success: Optional[bool] = None  # None until the game result is known
    weight: float = 1.0


class LearningLog:
    def __init__(
        self,
        max_positions: int = 5000,
        max_per_position: int = 32,
        decay: float = 0.9,
    ) -> None:
        self.max_positions = max_positions
        self.max_per_position = max_per_position
        self.decay = decay
        self._moves: Dict[str, List[LearningRecord]] = {}
        self.games = 0
        self.wins = 0
        self.losses = 0
        self.draws = 0

    def record_move(self, key: str, move: Move) -> None:
        records = self._moves.get(key)
        if records is None:
            if len(self._moves) >= self.max_positions:
                del self._moves[next(iter(self._moves))]
            records = self._moves[key] = []
        records.append(LearningRecord(move=move.to_coordinate()))
        if len(records) > self.max_per_position:
            del records[0]

    def record_result(self, result: str) -> None:
        """Settle pending records with a game result: ``win``, ``loss`` or ``draw``."""
        if result not in ("win", "loss", "draw"):
            raise ValueError(f"invalid result: {result!r}")
        self.games += 1
        if result == "win":
            self.wins += 1
        elif result == "loss":
            self.losses += 1
        else:
            self.draws += 1
        settled = 0
        for records in self._moves.values():
            for rec in records:
                if rec.success is None:
                    rec.success = result == "win"
                    settled += 1
                else:
                    rec.weight *= self.decay
        logger.info("learning result", extra={"result": result, "settled": settled})

    def _stats(self, key: str) -> Dict[str, Tuple[float, float]]:
        stats: Dict[str, Tuple[float, float]] = {}
        for rec in self._moves.get(key, ()):
            if rec.success is None:
                continue
            count, wins = stats.get(rec.move, (0.0, 0.0))
            stats[rec.move] = (count + rec.weight, wins + (rec.weight if rec.success else 0.0))
        return stats

    def move_bias(self, key: str, move: Move) -> float:
        stat = self._stats(key).get(move.to_coordinate())
        if stat is None:
            return 0.0
        count, wins = stat
        rate = wins / count if count else 0.0
        if rate < 0.3 and count > 2:
            return -1.0
        if rate < 0.5:
            return count * 0.1 + wins * 0.3
        return count * 0.3 + wins * 0.7

    def learned_move(self, key: str, moves: Iterable[Move]) -> Optional[Move]:
        """Best-recorded legal move, if its success rate is above one half."""
        stats = self._stats(key)
        best: Optional[Move] = None
        best_score = -1.0
        best_rate = 0.0
        for m in moves:
            stat = stats.get(m.to_coordinate())
            if stat is None or not stat[0]:
                continue
            rate = stat[1] / stat[0]
            score = stat[0] * 0.3 + rate * 0.7
            if score > best_score:
                best, best_score, best_rate = m, score, rate
        if best is not None and best_rate > 0.5:
            return best
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "games": self.games,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "moves": {
                key: [[r.move, r.success, r.weight] for r in records]
                for key, records in self._moves.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **kwargs: Any) -> "LearningLog":
        log = cls(**kwargs)
        log.games = int(data.get("games", 0))
        log.wins = int(data.get("wins", 0))
        log.losses = int(data.get("losses", 0))
        log.draws = int(data.get("draws", 0))
        for key, records in dict(data.get("moves", {})).items():
            for move, success, weight in records:
                log._moves.setdefault(key, []).append(
                    LearningRecord(move=str(move), success=success, weight=float(weight))
                )
        return log

    def __len__(self) -> int:
        return len(self._moves)
