"""Per-actor advisory locks guarding the flag cool-down check-then-write."""

from __future__ import annotations

import asyncio
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator, Protocol


class ActorLock(Protocol):
    def hold(self, key: str) -> AbstractAsyncContextManager[bool]:
        """Async context manager yielding whether the lock was obtained."""
        ...


class LocalActorLock:
    """Process-local locks for single-node development and tests.

    An entry lives only while a holder or waiter references it.
    """

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._refs: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[bool]:
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._refs[key] = self._refs.get(key, 0) + 1
        try:
            async with lock:
                yield True
        finally:
            self._refs[key] -= 1
            if not self._refs[key]:
                del self._refs[key]
                del self._locks[key]
