"""
Keyed async locks for per-spot and per-plate mutual exclusion.

Locks are created on demand and dropped once nobody holds or waits on
them, so the registry does not grow with the number of plates seen.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from parkflow.core.logging import get_logger
from parkflow.domain.errors import LockTimeoutError

logger = get_logger(__name__)


@dataclass
class KeyedLock:
    """
    A set of asyncio locks addressed by string key.

    Example:
        locks = KeyedLock(name="spot")
        async with locks.hold("F1-R1-S1", timeout=5.0):
            ...
    """

    name: str = "key"
    _locks: dict[str, asyncio.Lock] = field(default_factory=dict)
    _users: dict[str, int] = field(default_factory=dict)

    @asynccontextmanager
    async def hold(self, key: str, timeout: float | None = None) -> AsyncIterator[None]:
        """
        Hold the lock for `key` for the duration of the block.

        Args:
            key: Lock key (spot id or plate).
            timeout: Seconds to wait for the lock; None waits forever.

        Raises:
            LockTimeoutError: If the lock was not acquired in time.
        """
        lock = self._locks.setdefault(key, asyncio.Lock())
        self._users[key] = self._users.get(key, 0) + 1
        try:
            try:
                await asyncio.wait_for(lock.acquire(), timeout)
            except asyncio.TimeoutError as e:
                logger.warning("lock_timeout", lock=self.name, key=key, timeout=timeout)
                raise LockTimeoutError(
                    f"Timed out after {timeout}s waiting for {self.name} lock {key!r}"
                ) from e
            try:
                yield
            finally:
                lock.release()
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def is_locked(self, key: str) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def __len__(self) -> int:
        return len(self._locks)


@dataclass
class LockRegistry:
    """
    The two lock families used by session workflows.

    Callers always take the plate lock before the spot lock.
    """

    plates: KeyedLock = field(default_factory=lambda: KeyedLock(name="plate"))
    spots: KeyedLock = field(default_factory=lambda: KeyedLock(name="spot"))


# Global lock registry instance
_lock_registry: LockRegistry | None = None


def get_lock_registry() -> LockRegistry:
    """Get the global lock registry instance."""
    global _lock_registry
    if _lock_registry is None:
        _lock_registry = LockRegistry()
    return _lock_registry
