from __future__ import annotations

import io
import time
from typing import Callable, List

from chesscore.movesource.difficulty import Difficulty
from chesscore.protocol.uci import loop
from chesscore.protocol.uci.loop import UCIEngine, format_info, run_uci
from chesscore.search.service import MATE_SCORE


def capture_writer(buf: List[str]):
    def _w(line: str) -> None:
        buf.append(line)

    return _w


def _wait_until(predicate: Callable[[], bool], timeout_ms: int = 1000) -> None:
    deadline = time.time() + (timeout_ms / 1000)
    while time.time() < deadline:
        if predicate():
            return
        time.sleep(0.01)


def _bestmoves(out: List[str]) -> List[str]:
    return [line for line in out if line.startswith("bestmove ")]


def test_basic_handshake() -> None:
    out: List[str] = []
    UCIEngine().cmd_uci(capture_writer(out))
    assert out[0] == "id name chesscore"
    assert "option name Hash type spin default 1 min 1 max 64" in out
    assert "option name Skill Level type spin default 9 min 0 max 20" in out
    assert out[-1] == "uciok"


def test_isready() -> None:
    out: List[str] = []
    UCIEngine().cmd_isready(capture_writer(out))
    assert out == ["readyok"]


def test_position_with_moves() -> None:
    eng = UCIEngine()
    eng.cmd_position(["startpos", "moves", "e2e4", "e7e5"])
    assert eng.game.move_history() == ["e2e4", "e7e5"]
    assert eng.game.side == "w"


def test_position_stops_at_first_bad_move() -> None:
    eng = UCIEngine()
    eng.cmd_position(["startpos", "moves", "e2e4", "e2e4", "d7d5"])
    assert eng.game.move_history() == ["e2e4"]


def test_invalid_fen_keeps_current_position() -> None:
    eng = UCIEngine()
    eng.cmd_position(["startpos", "moves", "d2d4"])
    eng.cmd_position(["fen", "garbage"])
    assert eng.game.move_history() == ["d2d4"]


def test_position_fen_and_go_depth() -> None:
    eng = UCIEngine()
    eng.cmd_position(["fen", *"6k1/5ppp/8/8/8/8/8/R5K1 w - - 0 1".split()])
    out: List[str] = []
    eng.cmd_go(["depth", "2"], capture_writer(out))
    eng.wait(10)
    assert any(line.startswith("info depth 1 ") for line in out)
    assert _bestmoves(out) == ["bestmove a1a8"]
    assert any(" score mate 1 " in line for line in out)


def test_go_movetime() -> None:
    eng = UCIEngine()
    eng.cmd_position(["fen", *"8/8/8/8/8/8/8/K6k w - - 0 1".split()])
    out: List[str] = []
    eng.cmd_go(["movetime", "50"], capture_writer(out))
    eng.wait(10)
    assert len(_bestmoves(out)) == 1


def test_go_without_moves_reports_none() -> None:
    eng = UCIEngine()
    eng.cmd_position(["fen", *"k7/8/1Q6/8/8/8/8/7K b - - 0 1".split()])
    out: List[str] = []
    eng.cmd_go(["depth", "1"], capture_writer(out))
    eng.wait(10)
    assert out == ["bestmove (none)"]


def test_stop_answers_immediately_once() -> None:
    eng = UCIEngine()
    eng.cmd_position(["startpos"])
    out: List[str] = []
    eng.cmd_go(["movetime", "300"], capture_writer(out))
    eng.cmd_stop(capture_writer(out))
    assert len(_bestmoves(out)) == 1
    eng.wait(10)
    assert len(_bestmoves(out)) == 1
    legal = {m.to_coordinate() for m in eng.game.legal_moves()}
    assert _bestmoves(out)[0].split()[1] in legal


def test_stop_after_finished_search_is_silent() -> None:
    eng = UCIEngine()
    out: List[str] = []
    eng.cmd_position(["fen", *"8/8/8/8/8/8/8/K6k w - - 0 1".split()])
    eng.cmd_go(["depth", "1"], capture_writer(out))
    eng.wait(10)
    _wait_until(lambda: bool(_bestmoves(out)))
    eng.cmd_stop(capture_writer(out))
    assert len(_bestmoves(out)) == 1


def test_setoption_hash_and_skill() -> None:
    eng = UCIEngine()
    eng.cmd_setoption(["name", "Hash", "value", "4"])
    assert eng.search.config.cache_size == 4 * loop.ENTRIES_PER_HASH_UNIT
    eng.cmd_setoption(["name", "Hash", "value", "1000"])
    assert eng.hash_units == 64
    eng.cmd_setoption(["name", "Skill", "Level", "value", "20"])
    assert eng.difficulty is Difficulty.EXPERT
    eng.cmd_setoption(["name", "Skill", "Level", "value", "high"])
    assert eng.difficulty is Difficulty.EXPERT


def test_ucinewgame_resets_position() -> None:
    eng = UCIEngine()
    eng.cmd_position(["startpos", "moves", "e2e4"])
    eng.cmd_ucinewgame()
    assert eng.game.move_history() == []


def test_format_info() -> None:
    line = format_info({"depth": 3, "score": MATE_SCORE, "nodes": 10, "time_ms": 0, "move": "d8h4"})
    assert line == "info depth 3 time 0 nodes 10 nps 10000 score mate 2 pv d8h4"
    line = format_info({"depth": 2, "score": -12.6, "nodes": 500, "time_ms": 250, "move": "e2e4"})
    assert line == "info depth 2 time 250 nodes 500 nps 2000 score cp -13 pv e2e4"


def test_run_uci_reads_stdin(monkeypatch) -> None:
    monkeypatch.setattr("sys.stdin", io.StringIO("uci\n\nisready\nfoo\nquit\nisready\n"))
    out: List[str] = []
    run_uci(write=capture_writer(out))
    assert out[-2:] == ["uciok", "readyok"]
    assert out.count("readyok") == 1
