"""
Counter Store Module for LinkGuard Core
=======================================
Atomic counters and bounded lists backing all guard state.
"""

from .base import CounterStore
from .in_memory import InMemoryCounterStore
from .redis_store import RedisCounterStore

__all__ = [
    "CounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
]
