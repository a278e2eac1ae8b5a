"""
In-Memory Counter Store
=======================
Process-local counter store for development and testing.
"""

import asyncio
import fnmatch
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .base import CounterStore


class InMemoryCounterStore(CounterStore):
    """
    Simple in-memory counter store with TTL expiry.

    For development and testing only.
    Use RedisCounterStore in production.
    """

    def __init__(self, clock: Callable[[], float] = time.time):
        """
        Args:
            clock: Returns the current Unix time, used for TTL expiry
        """
        self.clock = clock
        self._data: Dict[str, Union[int, List[str]]] = {}
        self._expiry: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    def _purge(self, key: str) -> None:
        expires_at = self._expiry.get(key)
        if expires_at is not None and expires_at <= self.clock():
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    def _live_keys(self) -> List[str]:
        for key in list(self._data):
            self._purge(key)
        return list(self._data)

    async def incr_many(self, entries: Sequence[Tuple[str, int]]) -> List[int]:
        async with self._lock:
            results = []
            for key, ttl in entries:
                self._purge(key)
                value = int(self._data.get(key, 0)) + 1
                self._data[key] = value
                self._expiry[key] = self.clock() + ttl
                results.append(value)
            return results

    async def get_many(self, keys: Sequence[str]) -> List[int]:
        values = []
        for key in keys:
            self._purge(key)
            value = self._data.get(key, 0)
            values.append(value if isinstance(value, int) else 0)
        return values

    async def push_bounded(self, key: str, value: str, max_len: int, ttl: int) -> None:
        async with self._lock:
            self._purge(key)
            items = self._data.get(key)
            if not isinstance(items, list):
                items = []
            items.insert(0, value)
            del items[max_len:]
            self._data[key] = items
            self._expiry[key] = self.clock() + ttl

    async def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        self._purge(key)
        items = self._data.get(key)
        if not isinstance(items, list):
            return []
        stop = None if end == -1 else end + 1
        return list(items[start:stop])

    async def list_lengths(self, keys: Sequence[str]) -> List[int]:
        lengths = []
        for key in keys:
            self._purge(key)
            items = self._data.get(key)
            lengths.append(len(items) if isinstance(items, list) else 0)
        return lengths

    async def scan_keys(self, pattern: str, limit: Optional[int] = None) -> List[str]:
        matched = [key for key in self._live_keys() if fnmatch.fnmatchcase(key, pattern)]
        return matched[:limit] if limit is not None else matched

    async def delete(self, keys: Sequence[str]) -> int:
        async with self._lock:
            removed = 0
            for key in keys:
                self._purge(key)
                if self._data.pop(key, None) is not None:
                    removed += 1
                self._expiry.pop(key, None)
            return removed

    async def ping(self) -> None:
        return None

    def ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires, or None when it has no expiry."""
        self._purge(key)
        expires_at = self._expiry.get(key)
        return None if expires_at is None else expires_at - self.clock()
