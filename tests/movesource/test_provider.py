from __future__ import annotations

import asyncio
import os
import sys
from typing import List, Optional, Tuple

import pytest

from chesscore.engine.fen import parse_fen
from chesscore.engine.move import parse_coordinate
from chesscore.engine.rules import generate_legal_moves
from chesscore.movesource import (
    Difficulty,
    EngineProtocolError,
    ExternalMoveSource,
    LocalMoveSource,
    MoveProvider,
    MoveSource,
    UCIProcess,
    parse_bestmove,
)
from chesscore.search.learning import LearningLog
from chesscore.search.service import SearchService


START = "rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1"
BACK_RANK = "6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1"
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir, os.pardir))


class FakeClient:
    def __init__(self, reply: str = "e2e4") -> None:
        self.reply = reply
        self.options: List[Tuple[str, str]] = []
        self.calls: List[Tuple[str, Optional[int], Optional[int]]] = []
        self.closed = False

    def set_option(self, name: str, value: str) -> None:
        self.options.append((name, value))

    def go(self, fen: str, *, depth: Optional[int] = None, movetime_ms: Optional[int] = None) -> str:
        self.calls.append((fen, depth, movetime_ms))
        return self.reply

    def kill(self) -> None:
        self.closed = True

    def quit(self) -> None:
        self.closed = True


class ScriptedSource(MoveSource):
    def __init__(self, outcome) -> None:
        self.outcome = outcome

    async def request_move(self, board, side, state, difficulty):
        if isinstance(self.outcome, BaseException):
            raise self.outcome
        return self.outcome


def _request(provider: MoveProvider, fen: str, difficulty: Difficulty = Difficulty.EASY):
    board, side, state = parse_fen(fen)
    return asyncio.run(provider.request_move(board, side, state, difficulty))


def test_external_move_is_used() -> None:
    client = FakeClient("d2d4")
    provider = MoveProvider(external=ExternalMoveSource(client))
    move = _request(provider, START)
    assert move.to_coordinate() == "d2d4"
    assert provider.last_diagnostic is None
    fen, depth, movetime = client.calls[0]
    assert fen == START
    assert (depth, movetime) == (3, None)
    assert client.options == [("Skill Level", "3")]


def test_skill_is_only_sent_when_it_changes() -> None:
    client = FakeClient()
    provider = MoveProvider(external=ExternalMoveSource(client))
    _request(provider, START, Difficulty.EASY)
    _request(provider, START, Difficulty.EASY)
    _request(provider, START, Difficulty.EXPERT)
    assert client.options == [("Skill Level", "3"), ("Skill Level", "20")]
    assert client.calls[-1][1:] == (None, 6000)


def test_external_fen_omits_en_passant_square() -> None:
    client = FakeClient("e7e5")
    provider = MoveProvider(external=ExternalMoveSource(client))
    _request(provider, "rnbqkbnr/pppppppp/8/8/4P3/8/PPPP1PPP/RNBQKBNR b KQkq e3 0 1")
    assert client.calls[0][0].split()[3] == "-"


def test_illegal_external_move_falls_back() -> None:
    provider = MoveProvider(external=ExternalMoveSource(FakeClient("e2e5")))
    board, side, state = parse_fen(START)
    move = asyncio.run(provider.request_move(board, side, state, Difficulty.EASY))
    assert move in generate_legal_moves(board, side, state)
    assert "illegal move from engine: e2e5" in provider.last_diagnostic


def test_unparseable_external_move_falls_back() -> None:
    provider = MoveProvider(external=ExternalMoveSource(FakeClient("e9e4")))
    assert _request(provider, START) is not None
    assert provider.last_diagnostic.startswith("ValueError")


@pytest.mark.parametrize(
    "failure,diagnostic",
    [
        (asyncio.TimeoutError(), "engine timed out"),
        (EngineProtocolError("no bestmove received"), "EngineProtocolError: no bestmove received"),
        (OSError("broken pipe"), "OSError: broken pipe"),
        (RuntimeError("search blew up"), "RuntimeError: search blew up"),
    ],
)
def test_source_failures_fall_back(failure: BaseException, diagnostic: str) -> None:
    provider = MoveProvider(external=ScriptedSource(failure))
    assert _request(provider, START) is not None
    assert provider.last_diagnostic == diagnostic


def test_missing_move_falls_back() -> None:
    provider = MoveProvider(external=ScriptedSource(None))
    assert _request(provider, START) is not None
    assert provider.last_diagnostic == "illegal move from engine: None"


def test_no_legal_moves_returns_none() -> None:
    provider = MoveProvider(external=ScriptedSource(EngineProtocolError("unused")))
    assert _request(provider, "k7/8/1Q6/8/8/8/8/7K b - - 0 1") is None
    assert provider.last_diagnostic is None


def test_bare_promotion_is_completed() -> None:
    provider = MoveProvider(external=ExternalMoveSource(FakeClient("a7a8")))
    move = _request(provider, "8/P7/8/8/8/8/k7/4K3 w - - 0 1")
    assert move.to_coordinate() == "a7a8q"


def test_explicit_promotion_is_kept() -> None:
    provider = MoveProvider(external=ExternalMoveSource(FakeClient("a7a8n")))
    assert _request(provider, "8/P7/8/8/8/8/k7/4K3 w - - 0 1").to_coordinate() == "a7a8n"


def test_local_search_finds_mate_and_records_it() -> None:
    learning = LearningLog()
    provider = MoveProvider(LocalMoveSource(SearchService(learning=learning)))
    move = _request(provider, BACK_RANK)
    assert move.to_coordinate() == "a1a8"
    assert provider.last_diagnostic is None
    assert len(learning) == 1


def test_close_quits_the_client() -> None:
    client = FakeClient()
    ExternalMoveSource(client).close()
    assert client.closed


@pytest.mark.parametrize(
    "line,token",
    [("bestmove e2e4", "e2e4"), ("bestmove a7a8Q ponder b8c8", "a7a8q")],
)
def test_parse_bestmove(line: str, token: str) -> None:
    assert parse_bestmove(line) == token


@pytest.mark.parametrize("line", ["info depth 3", "bestmove", "bestmove (none)"])
def test_parse_bestmove_rejects_garbage(line: str) -> None:
    with pytest.raises(EngineProtocolError):
        parse_bestmove(line)


def _own_engine_argv() -> List[str]:
    script = (
        "import sys; sys.path.insert(0, {root!r}); "
        "from chesscore.cli.main import uci_main; uci_main(['--no-book'])"
    ).format(root=REPO_ROOT)
    return [sys.executable, "-c", script]


# Completes the handshake but never answers "go"
SILENT_ENGINE = """
import sys
for line in sys.stdin:
    cmd = line.strip()
    if cmd == "uci":
        print("uciok", flush=True)
    elif cmd == "isready":
        print("readyok", flush=True)
    elif cmd == "quit":
        break
"""


def test_uci_process_talks_to_a_real_engine() -> None:
    proc = UCIProcess(_own_engine_argv(), timeout=10.0)
    try:
        token = proc.go(START, depth=1)
        board, side, state = parse_fen(START)
        assert parse_coordinate(token, board) in generate_legal_moves(board, side, state)
    finally:
        proc.quit()
    assert proc.proc is None


def test_uci_process_requires_start() -> None:
    with pytest.raises(EngineProtocolError):
        UCIProcess(["unused"]).send("uci")


def test_external_engine_behind_provider_starts_on_first_request() -> None:
    client = UCIProcess(_own_engine_argv(), timeout=10.0)
    source = ExternalMoveSource(client, hard_timeout_ms=30000)
    provider = MoveProvider(external=source)
    try:
        move = _request(provider, BACK_RANK)
        assert provider.last_diagnostic is None
        assert move.to_coordinate() == "a1a8"
        assert client.proc is not None
        # a second request reuses the running engine
        running = client.proc
        assert _request(provider, BACK_RANK).to_coordinate() == "a1a8"
        assert provider.last_diagnostic is None
        assert client.proc is running
    finally:
        source.close()


def test_set_option_starts_the_engine() -> None:
    client = UCIProcess(_own_engine_argv(), timeout=10.0)
    try:
        client.set_option("Skill Level", "3")
        assert client.proc is not None
    finally:
        client.quit()


def test_silent_engine_is_killed_and_restarted() -> None:
    client = UCIProcess([sys.executable, "-c", SILENT_ENGINE], timeout=10.0)
    source = ExternalMoveSource(client, hard_timeout_ms=1500)
    provider = MoveProvider(external=source)
    try:
        assert _request(provider, START) is not None
        assert provider.last_diagnostic == "engine timed out"
        assert client.proc is None
        assert not source._lock.locked()
        # the next request gets a fresh engine instead of waiting on a stuck one
        assert _request(provider, START) is not None
        assert provider.last_diagnostic == "engine timed out"
    finally:
        source.close()
