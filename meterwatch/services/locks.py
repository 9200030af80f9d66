"""
Per-key asyncio locks.

Shared pipeline state (cooldown entries, live billing states) is mutated by
many concurrent ingestions. Each key gets its own lock so that work on one
device never waits for another.

CHANGELOG:
- 2026-10-18: Initial creation
"""

from __future__ import annotations

import asyncio


class KeyedLocks:
    """Lazily created ``asyncio.Lock`` per key.

    Locks are never evicted; the key space is bounded by the number of
    devices (times fault types for cooldowns).
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        return lock

    def __len__(self) -> int:
        return len(self._locks)
