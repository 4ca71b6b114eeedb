from __future__ import annotations

from typing import Optional

from .builtin import BUILTIN_BOOK, OpeningBook
from .json_book import JSONBook


def open_book(path: Optional[str], *, randomize: bool = False) -> OpeningBook:
    """The JSON book at ``path``, or the built-in book when no path is given."""
    if not path:
        return OpeningBook(randomize=randomize)
    return JSONBook(path, randomize=randomize)


__all__ = ["BUILTIN_BOOK", "JSONBook", "OpeningBook", "open_book"]
