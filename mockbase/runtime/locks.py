"""In-process write serialisation.

Every mutating operation reads a whole container, changes it in memory and
writes it back.  Holding a per-(workspace, container) lock across that cycle
turns concurrent writers into an ordered sequence of last-write-wins
replacements instead of interleaved partial updates.  Readers never take a
lock; the backends' atomic replace keeps them from seeing torn writes.

Ephemeral and single-process: it does not coordinate several server
instances sharing one backend.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager


class KeyedLocks:
    """A lazily created ``asyncio.Lock`` per key, discarded when unused."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._holders[key] = self._holders.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[key] -= 1
            if self._holders[key] == 0:
                del self._holders[key]
                del self._locks[key]

    @property
    def active_count(self) -> int:
        return len(self._locks)
