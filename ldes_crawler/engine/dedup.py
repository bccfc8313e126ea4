"""Bounded least-recently-used set of processed page and member identifiers."""

from __future__ import annotations

from collections import OrderedDict
from typing import Iterable, Iterator


class DedupCache:
    """Remember identifiers already handled, evicting the least recently set."""

    def __init__(self, max_size: int = 10000) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self.max_size = max_size
        self._entries: OrderedDict[str, None] = OrderedDict()

    def has(self, key: str) -> bool:
        return key in self._entries

    def set(self, key: str) -> None:
        if key in self._entries:
            self._entries.move_to_end(key)
            return
        self._entries[key] = None
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def dump(self) -> list[str]:
        """Keys ordered least recently used first."""

        return list(self._entries)

    def load(self, keys: Iterable[str]) -> None:
        self._entries.clear()
        for key in keys:
            self.set(key)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DedupCache"]
