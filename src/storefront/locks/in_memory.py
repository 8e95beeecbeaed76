"""
In-process row lock manager.

Provides ``SELECT ... FOR UPDATE`` semantics for the in-memory adapter:
- One holder per key at a time; other acquirers wait in FIFO order
- Re-acquiring a key already held by the same owner returns immediately
- Locks are released together when the owning unit of work ends
- Optional acquisition timeout raising LockTimeoutError

Usage:
    >>> locks = RowLockManager()
    >>> await locks.acquire("products:7", owner=uow, timeout=5.0)
    >>> ...  # read-check-write product 7
    >>> locks.release_all(owner=uow)
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, datetime

from storefront.exceptions import LockTimeoutError
from storefront.observability import (
    ATTR_LOCK_KEY,
    ATTR_LOCK_TIMEOUT,
    Tracer,
    create_tracer,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockInfo:
    """
    Information about an acquired lock.

    Attributes:
        key: The string key identifying the locked row (e.g. "products:7")
        acquired_at: When the lock was acquired
    """

    key: str
    acquired_at: datetime


class LockNotHeldError(Exception):
    """
    Raised when attempting to release a lock the caller does not hold.

    Attributes:
        key: The lock key that was not held
    """

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Lock '{key}' is not held by this owner")


class RowLockManager:
    """
    Keyed exclusive locks owned by units of work.

    Owners are compared by identity, so a unit of work can pass itself as
    the owner and later drop everything it acquired with ``release_all``.
    """

    def __init__(
        self,
        *,
        tracer: Tracer | None = None,
        enable_tracing: bool = True,
    ) -> None:
        self._tracer = tracer or create_tracer(__name__, enable_tracing)
        self._locks: dict[str, asyncio.Lock] = {}
        self._waiters: dict[str, int] = {}
        self._holders: dict[str, object] = {}
        self._held_by: dict[int, dict[str, LockInfo]] = {}

    @staticmethod
    def row_key(table: str, row_id: int) -> str:
        """Build the lock key for one table row."""
        return f"{table}:{row_id}"

    async def acquire(
        self,
        key: str,
        owner: object,
        *,
        timeout: float | None = None,
    ) -> LockInfo:
        """
        Acquire the lock for ``key`` on behalf of ``owner``.

        Args:
            key: Lock key
            owner: Object identifying the holder (typically a unit of work)
            timeout: Maximum seconds to wait (None = wait forever)

        Returns:
            LockInfo for the held lock

        Raises:
            LockTimeoutError: If the lock was not acquired within timeout
        """
        held = self._held_by.get(id(owner), {})
        if key in held:
            return held[key]

        with self._tracer.span(
            "storefront.lock.acquire",
            {
                ATTR_LOCK_KEY: key,
                ATTR_LOCK_TIMEOUT: timeout if timeout is not None else -1,
            },
        ):
            lock = self._locks.setdefault(key, asyncio.Lock())
            self._waiters[key] = self._waiters.get(key, 0) + 1
            try:
                async with asyncio.timeout(timeout):
                    await lock.acquire()
            except TimeoutError:
                logger.debug("Timed out waiting for row lock: key=%s, timeout=%s", key, timeout)
                raise LockTimeoutError(key, timeout) from None
            finally:
                self._waiters[key] -= 1
                if not lock.locked():
                    self._discard_if_idle(key)

            info = LockInfo(key=key, acquired_at=datetime.now(UTC))
            self._holders[key] = owner
            self._held_by.setdefault(id(owner), {})[key] = info
            logger.debug("Acquired row lock: key=%s", key)
            return info

    def release(self, key: str, owner: object) -> None:
        """
        Release one lock held by ``owner``.

        Raises:
            LockNotHeldError: If owner does not hold the lock
        """
        if self._holders.get(key) is not owner:
            raise LockNotHeldError(key)
        del self._holders[key]
        held = self._held_by.get(id(owner), {})
        held.pop(key, None)
        if not held:
            self._held_by.pop(id(owner), None)
        self._locks[key].release()
        self._discard_if_idle(key)
        logger.debug("Released row lock: key=%s", key)

    def _discard_if_idle(self, key: str) -> None:
        """Forget the lock for ``key`` once nobody holds or awaits it."""
        if self._waiters.get(key) or key in self._holders:
            return
        self._waiters.pop(key, None)
        self._locks.pop(key, None)

    def release_all(self, owner: object) -> int:
        """
        Release every lock held by ``owner``.

        Returns:
            Number of locks released
        """
        keys = list(self._held_by.get(id(owner), {}))
        for key in keys:
            self.release(key, owner)
        return len(keys)

    def is_locked(self, key: str) -> bool:
        """Check whether any owner currently holds ``key``."""
        return key in self._holders

    def held_keys(self, owner: object) -> list[str]:
        """Keys currently held by ``owner``, in acquisition order."""
        return list(self._held_by.get(id(owner), {}))

    def __repr__(self) -> str:
        return f"RowLockManager(held={len(self._holders)}, tracked={len(self._locks)})"
