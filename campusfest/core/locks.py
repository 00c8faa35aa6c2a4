"""
Per-entity mutual exclusion for read-check-write sequences.

The database conditional UPDATE is the authoritative guard against
over-admission and overselling across processes. Within one process the
keyed locks below additionally serialize operations on the same event or
team, so a request never reads a counter another coroutine is about to
change and commit.

Keys are tuples like ("event", 12) or ("team", 7). When several keys are
held at once they are always acquired in sorted order.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Hashable


class KeyedLocks:
    """Registry of asyncio locks created on demand and dropped when idle."""

    def __init__(self) -> None:
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._holders: dict[Hashable, int] = {}

    def _checkout(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        self._holders[key] = self._holders.get(key, 0) + 1
        return lock

    def _checkin(self, key: Hashable) -> None:
        remaining = self._holders[key] - 1
        if remaining:
            self._holders[key] = remaining
        else:
            del self._holders[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: Hashable) -> AsyncIterator[None]:
        ordered = sorted(set(keys), key=repr)
        acquired: list[Hashable] = []
        try:
            for key in ordered:
                lock = self._checkout(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._checkin(key)
                    raise
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self._locks[key].release()
                self._checkin(key)

    def __len__(self) -> int:
        return len(self._locks)


entity_locks = KeyedLocks()


def event_key(event_id: int) -> tuple[str, int]:
    return ("event", event_id)


def team_key(team_id: int) -> tuple[str, int]:
    return ("team", team_id)
