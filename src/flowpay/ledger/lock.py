"""
Per-user lock service.

Serializes committed resolutions for the same user so that the
read-compute-write of the daily auto-approval counter never loses updates.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from flowpay.core.exceptions import LockError

if TYPE_CHECKING:
    from flowpay.storage.base import StorageBackend

logger = logging.getLogger(__name__)


class UserLockService:
    """
    Service for managing per-user locks (mutexes).

    Implements a distributed lock pattern using the storage backend.
    """

    def __init__(
        self,
        storage: StorageBackend,
        ttl: int = 30,
        retry_count: int = 10,
        retry_delay: float = 0.1,
    ) -> None:
        self._storage = storage
        self._ttl = ttl
        self._retry_count = retry_count
        self._retry_delay = retry_delay

    @staticmethod
    def _lock_key(user_id: str) -> str:
        return f"lock:user:{user_id}"

    async def acquire(self, user_id: str) -> str | None:
        """
        Acquire the lock for a user.

        Returns:
            lock token if successful, None if still held after all retries
        """
        lock_key = self._lock_key(user_id)

        for i in range(self._retry_count + 1):
            token = await self._storage.acquire_lock(lock_key, self._ttl)
            if token:
                logger.debug(f"Acquired lock for user {user_id} (token: {token[:8]}...)")
                return token

            if i < self._retry_count:
                logger.debug(f"User {user_id} locked, retrying in {self._retry_delay}s...")
                await asyncio.sleep(self._retry_delay)

        logger.warning(f"Failed to acquire lock for user {user_id} after {self._retry_count} retries")
        return None

    async def release(self, user_id: str, token: str) -> bool:
        """Release a lock previously returned by acquire()."""
        result = await self._storage.release_lock(self._lock_key(user_id), token)
        if result:
            logger.debug(f"Released lock for user {user_id}")
        return result

    @asynccontextmanager
    async def hold(self, user_id: str) -> AsyncIterator[str]:
        """
        Hold the user's lock for the duration of the block.

        Raises:
            LockError: If the lock cannot be acquired
        """
        token = await self.acquire(user_id)
        if token is None:
            raise LockError(f"Could not acquire payment lock for user {user_id}", user_id=user_id)
        try:
            yield token
        finally:
            await self.release(user_id, token)
