#!/usr/bin/env python3
# ruff: noqa: E402
from __future__ import annotations

import argparse
import os
import sys
import time

# Allow running this script directly via `python scripts/perft.py`
REPO_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from chesscore.engine.board import STARTPOS_FEN
from chesscore.engine.fen import parse_fen
from chesscore.engine.perft import divide, perft


def main() -> None:
    parser = argparse.ArgumentParser(description="Count legal move-tree leaves for a FEN")
    parser.add_argument("--fen", type=str, default=STARTPOS_FEN, help="FEN string (default: startpos)")
    parser.add_argument("--depth", type=int, default=3, help="Perft depth (default: 3)")
    parser.add_argument("--divide", action="store_true", help="Print per-move counts")
    args = parser.parse_args()

    board, side, state = parse_fen(args.fen)
    start = time.perf_counter()
    if args.divide:
        counts = divide(board, side, state, args.depth)
        for move, n in sorted(counts.items()):
            print(f"{move}: {n}")
        nodes = sum(counts.values())
    else:
        nodes = perft(board, side, state, args.depth)
    dt = time.perf_counter() - start
    print(f"nodes={nodes} depth={args.depth} time_ms={int(dt * 1000)} nps={int(nodes / max(dt, 1e-9))}")


if __name__ == "__main__":
    main()
