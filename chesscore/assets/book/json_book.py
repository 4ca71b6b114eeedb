from __future__ import annotations

import json
import os
from typing import Any, Dict, List

from .builtin import Entry, OpeningBook


class JSONBook(OpeningBook):
    """Opening book loaded from a JSON file.

    Format: an object mapping a move-sequence key (``""`` for the initial
    position, ``"e2e4e7e5"`` after two plies) to a list of replies, each
    either a coordinate string or ``{"move": "g1f3", "weight": 10}``.
    """

    def __init__(self, path: str, *, randomize: bool = False) -> None:
        self.path = path
        super().__init__(self._load(), randomize=randomize)

    def _load(self) -> Dict[str, List[Entry]]:
        if not os.path.exists(self.path):
            raise FileNotFoundError(self.path)
        with open(self.path, "r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError("invalid book format")
        index: Dict[str, List[Entry]] = {}
        for key, moves in data.items():
            if not isinstance(moves, list):
                raise ValueError(f"invalid book entry for {key!r}")
            index[str(key).strip()] = [self._entry(m) for m in moves]
        return index

    @staticmethod
    def _entry(raw: Any) -> Entry:
        if isinstance(raw, str):
            return raw.strip().lower(), 1
        if isinstance(raw, dict) and isinstance(raw.get("move"), str):
            return raw["move"].strip().lower(), int(raw.get("weight", 1))
        raise ValueError(f"invalid book move: {raw!r}")
