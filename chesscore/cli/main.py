from __future__ import annotations

import argparse
import logging
import os
from typing import List, Optional

import uvicorn

from ..assets.book import open_book
from ..protocol.http.app import create_app
from ..protocol.uci.loop import run_uci


def _http_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="chesscore-http", description="Serve the chess engine over HTTP")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.add_argument("--engine", default=None, help="Path to an external UCI engine binary")
    p.add_argument("--book", default=None, help="Path to a JSON opening book")
    return p


def main(argv: Optional[List[str]] = None) -> None:
    args = _http_parser().parse_args(argv)
    if args.engine and not os.path.exists(args.engine):
        raise SystemExit(f"engine not found: {args.engine}")
    app = create_app(engine_path=args.engine, book_path=args.book)
    uvicorn.run(app, host=args.host, port=args.port)


def uci_main(argv: Optional[List[str]] = None) -> None:
    p = argparse.ArgumentParser(prog="chesscore-uci", description="Run the engine as a UCI process")
    p.add_argument("--book", default=None, help="Path to a JSON opening book")
    p.add_argument("--no-book", action="store_true", help="Disable the opening book")
    args = p.parse_args(argv)
    # stdout carries the protocol; diagnostics go to stderr
    logging.basicConfig(level=logging.WARNING)
    run_uci(None if args.no_book else open_book(args.book))


if __name__ == "__main__":
    main()
