"""
Counter Store Interface
=======================
The narrow set of key-value operations the guard needs from its store.
"""

from abc import ABC, abstractmethod
from typing import List, Optional, Sequence, Tuple


class CounterStore(ABC):
    """Abstract atomic-counter store shared by every guard component."""

    @abstractmethod
    async def incr_many(self, entries: Sequence[Tuple[str, int]]) -> List[int]:
        """Atomically increment each key by one and (re)set its TTL.

        Args:
            entries: ``(key, ttl_seconds)`` pairs

        Returns:
            New counter values, in the order given
        """

    @abstractmethod
    async def get_many(self, keys: Sequence[str]) -> List[int]:
        """Read counters; missing keys read as 0."""

    @abstractmethod
    async def push_bounded(self, key: str, value: str, max_len: int, ttl: int) -> None:
        """Prepend ``value`` to a list, trim it to ``max_len`` and refresh its TTL."""

    @abstractmethod
    async def list_range(self, key: str, start: int = 0, end: int = -1) -> List[str]:
        """Read a slice of a list (newest first)."""

    @abstractmethod
    async def list_lengths(self, keys: Sequence[str]) -> List[int]:
        """Lengths of several lists; missing keys count as 0."""

    @abstractmethod
    async def scan_keys(self, pattern: str, limit: Optional[int] = None) -> List[str]:
        """Enumerate keys matching a glob pattern, up to ``limit`` keys."""

    @abstractmethod
    async def delete(self, keys: Sequence[str]) -> int:
        """Delete keys, returning how many existed."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the store is unreachable."""

    async def close(self) -> None:
        """Release the underlying connection."""
        return None
