from __future__ import annotations

import logging
import sys
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from ...assets.book import OpeningBook
from ...engine.game import Game
from ...movesource.difficulty import Difficulty, difficulty_for_skill
from ...search.service import MATE_THRESHOLD, EngineConfig, SearchResult, SearchService


logger = logging.getLogger(__name__)

Writer = Callable[[str], None]

# One "Hash" unit is a thousand cache entries per cache
ENTRIES_PER_HASH_UNIT = 1000


@dataclass
class GoParams:
    depth: Optional[int] = None
    movetime_ms: Optional[int] = None


class UCIEngine:
    """UCI front-end over the search service.

    Notes:
    - I/O is isolated here; the engine core never writes to stdout.
    - Commands: uci, isready, ucinewgame, setoption, position, go, stop, quit.
    - ``go`` without limits uses the budgets of the configured difficulty.
    """

    def __init__(self, book: Optional[OpeningBook] = None) -> None:
        self.game: Game = Game.new()
        self.book = book
        self.hash_units = 1
        self.difficulty = Difficulty.MEDIUM
        self.search = self._new_service()
        self._search_thread: Optional[threading.Thread] = None
        self._result_lock = threading.Lock()
        self._last_result: Optional[SearchResult] = None
        self._last_iter: Optional[Dict[str, Any]] = None
        self._gen = 0  # generation id to invalidate stale workers

    def _new_service(self) -> SearchService:
        config = EngineConfig(cache_size=self.hash_units * ENTRIES_PER_HASH_UNIT)
        return SearchService(config, book=self.book)

    # ---- Command handlers ----
    def cmd_uci(self, write: Writer) -> None:
        write("id name chesscore")
        write("id author chesscore developers")
        write("option name Hash type spin default 1 min 1 max 64")
        write("option name Skill Level type spin default 9 min 0 max 20")
        write("uciok")

    def cmd_isready(self, write: Writer) -> None:
        write("readyok")

    def cmd_ucinewgame(self) -> None:
        self._cancel_running_search()
        self.game = Game.new()
        self.search.clear()

    def cmd_position(self, args: List[str]) -> None:
        # position [startpos | fen <FEN>] [moves m1 m2 ...]
        if not args:
            return
        idx = 0
        if args[idx] == "startpos":
            game = Game.new()
            idx += 1
        elif args[idx] == "fen":
            idx += 1
            fen_tokens: List[str] = []
            while idx < len(args) and args[idx] != "moves":
                fen_tokens.append(args[idx])
                idx += 1
            try:
                game = Game.from_fen(" ".join(fen_tokens))
            except ValueError as e:
                logger.warning("invalid position", extra={"error": str(e)})
                return
        else:
            return
        if idx < len(args) and args[idx] == "moves":
            for text in args[idx + 1 :]:
                try:
                    game.apply_coordinate(text)
                except ValueError as e:
                    logger.warning("invalid move in position", extra={"move": text, "error": str(e)})
                    break
        self.game = game

    def cmd_setoption(self, args: List[str]) -> None:
        # setoption name <name> [value <value>]
        name, value = _split_option(args)
        try:
            number = int(value)
        except ValueError:
            return
        if name == "hash":
            self.hash_units = max(1, min(64, number))
            self._cancel_running_search()
            self.search = self._new_service()
        elif name == "skill level":
            self.difficulty = difficulty_for_skill(max(0, min(20, number)))

    def cmd_go(self, args: List[str], write: Writer) -> None:
        params = self._parse_go_args(args)
        depth, movetime_ms = self._select_limits(params)
        self._cancel_running_search()
        with self._result_lock:
            self._last_result = None
            self._last_iter = None
        self._gen += 1
        gen = self._gen
        board, side, state = self.game.snapshot()
        service = self.search

        def worker() -> None:
            res = service.search(
                board,
                side,
                state,
                depth=depth,
                movetime_ms=movetime_ms,
                on_iter=self._make_iter_callback(gen, write),
            )
            with self._result_lock:
                if gen != self._gen:
                    return
                self._last_result = res
            best = res.best_move.to_coordinate() if res.best_move else "(none)"
            write(f"bestmove {best}")

        self._search_thread = threading.Thread(target=worker, name="uci-search", daemon=True)
        self._search_thread.start()

    def cmd_stop(self, write: Writer) -> None:
        with self._result_lock:
            if self._search_thread is None or self._last_result is not None:
                return
            self._gen += 1  # silence the running worker
            last = self._last_iter
        if last is not None:
            best = last["move"]
        else:
            legal = self.game.legal_moves()
            best = legal[0].to_coordinate() if legal else "(none)"
        write(f"bestmove {best}")

    def wait(self, timeout: Optional[float] = None) -> None:
        if self._search_thread is not None:
            self._search_thread.join(timeout)

    # ---- Utilities ----
    def _parse_go_args(self, args: List[str]) -> GoParams:
        gp = GoParams()
        for key, raw in zip(args, args[1:]):
            try:
                if key == "depth":
                    gp.depth = max(1, int(raw))
                elif key == "movetime":
                    gp.movetime_ms = max(1, int(raw))
            except ValueError:
                continue
        return gp

    def _select_limits(self, gp: GoParams) -> Tuple[int, Optional[int]]:
        if gp.depth is None and gp.movetime_ms is None:
            return self.difficulty.max_depth, self.difficulty.think_ms
        if gp.movetime_ms is not None:
            return gp.depth or 64, gp.movetime_ms
        return gp.depth or 1, None

    def _make_iter_callback(self, gen: int, write: Writer) -> Callable[[Dict[str, Any]], None]:
        def _cb(stats: Dict[str, Any]) -> None:
            with self._result_lock:
                if gen != self._gen:
                    return
                self._last_iter = stats
            write(format_info(stats))

        return _cb

    def _cancel_running_search(self) -> None:
        thread = self._search_thread
        if thread is not None and thread.is_alive():
            # The old worker cannot be interrupted; give it a private service
            with self._result_lock:
                self._gen += 1
            self.search = self._new_service()


def format_info(stats: Dict[str, Any]) -> str:
    depth = stats["depth"]
    score = stats["score"]
    time_ms = max(0, stats["time_ms"])
    nodes = stats["nodes"]
    nps = int(nodes * 1000 / max(1, time_ms))
    if abs(score) >= MATE_THRESHOLD:
        moves = (depth + 1) // 2
        score_text = f"mate {moves if score > 0 else -moves}"
    else:
        score_text = f"cp {int(round(score))}"
    return f"info depth {depth} time {time_ms} nodes {nodes} nps {nps} score {score_text} pv {stats['move']}"


def _split_option(args: List[str]) -> Tuple[str, str]:
    name_tokens: List[str] = []
    value_tokens: List[str] = []
    target = name_tokens
    for tok in args:
        if tok == "name" and not name_tokens:
            continue
        if tok == "value" and target is name_tokens:
            target = value_tokens
            continue
        target.append(tok)
    return " ".join(name_tokens).strip().lower(), " ".join(value_tokens).strip()


def _default_writer(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


def run_uci(book: Optional[OpeningBook] = None, write: Writer = _default_writer) -> None:
    eng = UCIEngine(book)
    for raw in sys.stdin:
        line = raw.strip()
        if not line:
            continue
        parts = line.split()
        cmd, args = parts[0], parts[1:]

        if cmd == "uci":
            eng.cmd_uci(write)
        elif cmd == "isready":
            eng.cmd_isready(write)
        elif cmd == "setoption":
            eng.cmd_setoption(args)
        elif cmd == "ucinewgame":
            eng.cmd_ucinewgame()
        elif cmd == "position":
            eng.cmd_position(args)
        elif cmd == "go":
            eng.cmd_go(args, write)
        elif cmd == "stop":
            eng.cmd_stop(write)
        elif cmd == "quit":
            break
        # Ignore unknown commands per UCI convention
