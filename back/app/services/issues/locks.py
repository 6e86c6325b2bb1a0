# Standard library imports
import asyncio
from collections.abc import AsyncIterator, Hashable
from contextlib import asynccontextmanager
import weakref


class IssueLockRegistry:
    """
    Per-issue serialization point for this process.

    Votes, authority commands, moderation and the scheduler all mutate an
    issue while holding its lock, so their read-modify-write steps never
    interleave. Unrelated issues never wait on each other. Writers in other
    processes are caught by the row version check instead.
    """

    def __init__(self) -> None:
        # Locks disappear once no coroutine holds or waits on them
        self._locks: weakref.WeakValueDictionary[Hashable, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._lock_for(key)
        async with lock:
            yield
