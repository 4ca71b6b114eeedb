from __future__ import annotations

from typing import Dict, Generic, Hashable, Optional, TypeVar


V = TypeVar("V")


class BoundedCache(Generic[V]):
    """Size-capped mapping with first-in-first-out eviction.

    Notes:
    - Evicts the oldest *inserted* key on overflow; reads do not refresh
      an entry, so this is not an LRU.
    - Counts hits and misses for search statistics.
    """

    def __init__(self, max_entries: int = 1000) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.max_entries = max_entries
        self._data: Dict[Hashable, V] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[V]:
        if key in self._data:
            self.hits += 1
            return self._data[key]
        self.misses += 1
        return None

    def put(self, key: Hashable, value: V) -> None:
        if key in self._data:
            self._data[key] = value
            return
        if len(self._data) >= self.max_entries:
            # dicts keep insertion order: the first key is the oldest
            oldest = next(iter(self._data))
            del self._data[oldest]
        self._data[key] = value

    def clear(self) -> None:
        self._data.clear()
        self.hits = 0
        self.misses = 0

    def __contains__(self, key: Hashable) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)
