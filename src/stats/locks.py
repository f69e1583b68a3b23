"""Per-user update permits for aggregate mutations."""

import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from loguru import logger


class UserLockRegistry:
    """One asyncio.Lock per user, created on demand.

    A user's aggregates may only be mutated while holding that user's
    permit: incremental updates read-modify-write the user row, and a
    recompute overwrites it wholesale from a snapshot of the ride history.

    Locks are dropped as soon as nobody holds or waits for them, so the
    registry does not grow with the user base.

    This serializes writers inside one process. Across processes the user
    row is additionally locked with SELECT ... FOR UPDATE (PostgreSQL).
    """

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def is_held(self, user_id: int) -> bool:
        lock = self._locks.get(user_id)
        return lock is not None and lock.locked()

    @asynccontextmanager
    async def hold(self, user_id: int) -> AsyncIterator[None]:
        """Hold the permit for ``user_id``.

        Usage:
            async with user_locks.hold(user_id):
                ...  # mutate aggregates

        The permit is released on every exit path, including cancellation.
        """
        lock = self._locks.setdefault(user_id, asyncio.Lock())
        self._users[user_id] = self._users.get(user_id, 0) + 1

        if lock.locked():
            logger.debug("Waiting for user stats permit", user_id=user_id)

        try:
            async with lock:
                yield
        finally:
            self._users[user_id] -= 1
            if not self._users[user_id]:
                del self._users[user_id]
                del self._locks[user_id]


user_locks = UserLockRegistry()
