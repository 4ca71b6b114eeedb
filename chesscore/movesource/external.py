from __future__ import annotations

import asyncio
import logging
import queue
import subprocess
import threading
import time
from typing import Callable, List, Optional, Protocol

from ..engine.board import Board
from ..engine.fen import format_fen
from ..engine.move import Move, parse_coordinate
from ..engine.state import GameState
from .base import EngineProtocolError, MoveSource
from .difficulty import Difficulty


logger = logging.getLogger(__name__)


class EngineClient(Protocol):
    def set_option(self, name: str, value: str) -> None: ...

    def go(self, fen: str, *, depth: Optional[int] = None, movetime_ms: Optional[int] = None) -> str: ...

    def kill(self) -> None: ...

    def quit(self) -> None: ...


class UCIProcess:
    """Blocking client for an engine subprocess speaking UCI over stdio.

    The process is started on first use. A reader thread drains stdout into
    a queue so every read honours its deadline, and ``kill`` unblocks any
    pending read.
    """

    def __init__(self, argv: List[str], *, timeout: float = 5.0) -> None:
        self.argv = argv
        self.timeout = timeout
        self.proc: Optional[subprocess.Popen] = None
        self._lines: "queue.Queue[Optional[str]]" = queue.Queue()

    def start(self) -> None:
        proc = subprocess.Popen(
            self.argv,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            bufsize=1,
        )
        lines: "queue.Queue[Optional[str]]" = queue.Queue()
        threading.Thread(target=_pump, args=(proc, lines), name="uci-reader", daemon=True).start()
        self.proc, self._lines = proc, lines
        try:
            self.send("uci")
            if not self._read_until(lambda line: line.strip() == "uciok", self.timeout):
                raise EngineProtocolError("engine did not respond to 'uci'")
            self._sync()
        except (EngineProtocolError, OSError):
            self.kill()
            raise
        logger.info("external engine started", extra={"argv": " ".join(self.argv)})

    def _ensure_started(self) -> None:
        if self.proc is None:
            self.start()

    def send(self, cmd: str) -> None:
        if self.proc is None or self.proc.stdin is None:
            raise EngineProtocolError("engine not started")
        self.proc.stdin.write(cmd + "\n")
        self.proc.stdin.flush()

    def set_option(self, name: str, value: str) -> None:
        self._ensure_started()
        self.send(f"setoption name {name} value {value}")

    def _readline(self, timeout: float) -> Optional[str]:
        if self.proc is None:
            raise EngineProtocolError("engine not started")
        try:
            line = self._lines.get(timeout=timeout)
        except queue.Empty:
            return None
        if line is None:
            raise EngineProtocolError("engine exited")
        return line

    def _read_until(self, predicate: Callable[[str], bool], timeout: float) -> Optional[str]:
        end = time.monotonic() + timeout
        while True:
            remaining = end - time.monotonic()
            if remaining <= 0:
                return None
            line = self._readline(remaining)
            if line is not None and predicate(line):
                return line

    def _sync(self) -> None:
        self.send("isready")
        if not self._read_until(lambda line: line.strip() == "readyok", self.timeout):
            raise EngineProtocolError("engine not ready")

    def go(self, fen: str, *, depth: Optional[int] = None, movetime_ms: Optional[int] = None) -> str:
        self._ensure_started()
        self.send(f"position fen {fen}")
        self._sync()
        if depth is not None:
            self.send(f"go depth {depth}")
            wait_s = 60.0
        else:
            mt = movetime_ms or 2000
            self.send(f"go movetime {mt}")
            wait_s = max(2.0, mt / 1000.0 * 2.5)
        line = self._read_until(lambda line: line.startswith("bestmove"), wait_s)
        if line is None:
            raise EngineProtocolError("no bestmove received")
        return parse_bestmove(line)

    def kill(self) -> None:
        """Terminate the process at once; the next request starts a new one."""
        proc, self.proc = self.proc, None
        if proc is None:
            return
        proc.kill()
        proc.wait()
        logger.warning("external engine killed", extra={"argv": " ".join(self.argv)})

    def quit(self) -> None:
        if self.proc is None:
            return
        try:
            self.send("quit")
            self.proc.wait(timeout=1.0)
        except subprocess.TimeoutExpired:
            self.proc.terminate()
        except (OSError, ValueError) as exc:
            logger.debug("engine quit failed", extra={"error": str(exc)})
        self.proc = None


def _pump(proc: subprocess.Popen, lines: "queue.Queue[Optional[str]]") -> None:
    assert proc.stdout is not None
    for line in proc.stdout:
        lines.put(line)
    lines.put(None)  # EOF


def parse_bestmove(line: str) -> str:
    parts = line.strip().split()
    if len(parts) < 2 or parts[0] != "bestmove":
        raise EngineProtocolError(f"malformed bestmove line: {line.strip()!r}")
    token = parts[1].lower()
    if len(token) not in (4, 5):
        raise EngineProtocolError(f"malformed move token: {token!r}")
    return token


class ExternalMoveSource(MoveSource):
    """Move source backed by an out-of-process engine.

    The client is blocking, so each request runs in a worker thread. When the
    hard timeout expires the engine is killed, which releases the worker and
    its lock; the next request starts a fresh engine. A lock keeps one
    request in flight per client.
    """

    def __init__(self, client: EngineClient, *, hard_timeout_ms: Optional[int] = None) -> None:
        self.client = client
        self.hard_timeout_ms = hard_timeout_ms
        self._lock = threading.Lock()
        self._skill: Optional[int] = None

    def _timeout_s(self, difficulty: Difficulty) -> float:
        return (self.hard_timeout_ms or difficulty.hard_timeout_ms) / 1000.0

    def _ask(self, fen: str, difficulty: Difficulty) -> str:
        if not self._lock.acquire(timeout=self._timeout_s(difficulty)):
            raise EngineProtocolError("engine busy")
        try:
            if self._skill != difficulty.skill_level:
                self.client.set_option("Skill Level", str(difficulty.skill_level))
                self._skill = difficulty.skill_level
            depth, movetime_ms = difficulty.external_limits
            return self.client.go(fen, depth=depth, movetime_ms=movetime_ms)
        except Exception:
            # Engine state is unknown; resend options to whatever answers next
            self._skill = None
            raise
        finally:
            self._lock.release()

    async def request_move(
        self,
        board: Board,
        side: str,
        state: Optional[GameState],
        difficulty: Difficulty,
    ) -> Optional[Move]:
        fen = format_fen(board, side, state or GameState(castling=""), en_passant=False)
        try:
            token = await asyncio.wait_for(
                asyncio.to_thread(self._ask, fen, difficulty),
                timeout=self._timeout_s(difficulty),
            )
        except asyncio.TimeoutError:
            self._skill = None
            self.client.kill()
            raise
        return parse_coordinate(token, board)

    def close(self) -> None:
        self.client.quit()
