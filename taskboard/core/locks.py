import asyncio
from contextlib import asynccontextmanager
from typing import Hashable


class KeyedLock:
    """
    A family of asyncio locks addressed by key.

    ``hold(*keys)`` acquires every key in sorted order so that two callers
    asking for overlapping key sets cannot deadlock. Locks are dropped from
    the registry once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: dict[Hashable, asyncio.Lock] = {}
        self._users: dict[Hashable, int] = {}

    def _checkout(self, key):
        self._users[key] = self._users.get(key, 0) + 1
        return self._locks.setdefault(key, asyncio.Lock())

    def _release(self, key):
        self._users[key] -= 1
        if self._users[key] == 0:
            del self._users[key]
            del self._locks[key]

    async def _acquire(self, keys) -> list:
        acquired = []
        try:
            for key in sorted(set(keys), key=repr):
                lock = self._checkout(key)
                try:
                    await lock.acquire()
                except BaseException:
                    self._release(key)
                    raise
                acquired.append(key)
        except BaseException:
            self._release_all(acquired)
            raise
        return acquired

    def _release_all(self, acquired):
        for key in reversed(acquired):
            self._locks[key].release()
            self._release(key)

    @asynccontextmanager
    async def hold(self, *keys):
        acquired = await self._acquire(keys)
        try:
            yield
        finally:
            self._release_all(acquired)

    async def serialized(self, keys, work):
        """
        Run ``work()`` while holding every key.

        Keys are acquired in the caller's task, so a caller cancelled while
        still queued never runs its mutation. Once admitted, ``work()`` and
        the release run behind ``asyncio.shield``: a caller that gives up
        still lets the mutation finish, so a column is never left half
        renumbered.
        """
        acquired = await self._acquire(keys)

        async def run():
            try:
                return await work()
            finally:
                self._release_all(acquired)

        return await asyncio.shield(run())

    def locked(self, key) -> bool:
        lock = self._locks.get(key)
        return bool(lock and lock.locked())


def column_key(column_id: int):
    return ("column", column_id)


def board_key(board_id: int):
    return ("board", board_id)


def channel_key(channel_id: str):
    return ("channel", channel_id)


def task_key(task_id: int):
    return ("task", task_id)


# Process-wide registry shared by the services
registry = KeyedLock()
