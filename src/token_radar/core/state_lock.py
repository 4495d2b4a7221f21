"""Named async locks that serialize mutation of shared radar state.

Two kinds of lock live in a :class:`StateManager`:

* section locks (``positions``, ``history``) held briefly by the store while
  it mutates one of its maps;
* one lock per tracked position (``position:<chain>:<address>``) held by the
  tracker for a whole read-evaluate-save cycle.

A position lock may be held while a section lock is taken, never the other
way round.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Dict

logger = logging.getLogger(__name__)

POSITIONS_SECTION = "positions"
HISTORY_SECTION = "history"
POSITION_PREFIX = "position:"


def position_lock_name(position_id: str) -> str:
    return f"{POSITION_PREFIX}{position_id}"


class StateLock:
    """Async lock guarding one section of state or one position."""

    def __init__(self, name: str):
        self.name = name
        self._lock = asyncio.Lock()
        self._acquisitions = 0

    async def acquire(self) -> None:
        await self._lock.acquire()
        self._acquisitions += 1
        logger.debug(f"Lock '{self.name}' taken ({self._acquisitions} total)")

    def release(self) -> None:
        if self._lock.locked():
            self._lock.release()

    @asynccontextmanager
    async def locked(self):
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    def is_locked(self) -> bool:
        return self._lock.locked()

    def acquisitions(self) -> int:
        """How many times the lock has been taken."""
        return self._acquisitions


class StateManager:
    """Registry of section and position locks, owned by one service instance."""

    def __init__(self):
        self._locks: Dict[str, StateLock] = {}

    def get_lock(self, name: str) -> StateLock:
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = StateLock(name)
        return lock

    @asynccontextmanager
    async def lock_state(self, name: str):
        """Serialize access to the state section *name*."""
        async with self.get_lock(name).locked():
            yield

    def lock_position(self, position_id: str):
        """Serialize the read-evaluate-save cycle of one position."""
        return self.lock_state(position_lock_name(position_id))

    def forget_position(self, position_id: str) -> bool:
        """Drop the lock of a position that is no longer tracked.

        A lock that is currently held is kept so its holder can finish.
        """
        name = position_lock_name(position_id)
        lock = self._locks.get(name)
        if lock is None or lock.is_locked():
            return False
        del self._locks[name]
        return True

    def position_lock_count(self) -> int:
        return sum(1 for name in self._locks if name.startswith(POSITION_PREFIX))

    def get_lock_status(self) -> Dict[str, bool]:
        """Which locks are currently held."""
        return {name: lock.is_locked() for name, lock in self._locks.items()}
