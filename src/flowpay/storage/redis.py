"""
Redis Storage Backend.

Production storage backend using Redis for persistence, counters and locks.
"""

from __future__ import annotations

import json
import os
import uuid
from decimal import Decimal
from typing import Any

import redis.asyncio as redis

from flowpay.storage.base import StorageBackend, register_storage_backend


class RedisStorage(StorageBackend):
    """
    Redis storage backend.

    Records are JSON documents at `{prefix}:{collection}:{key}`; each
    collection keeps a set index of its keys for querying.
    """

    # Only delete the lock if the stored token is ours
    _RELEASE_LOCK_SCRIPT = """
    if redis.call("get", KEYS[1]) == ARGV[1] then
        return redis.call("del", KEYS[1])
    else
        return 0
    end
    """

    def __init__(
        self,
        redis_url: str | None = None,
        prefix: str = "flowpay",
    ) -> None:
        """
        Initialize Redis storage.

        Args:
            redis_url: Redis connection URL (or from FLOWPAY_REDIS_URL env)
            prefix: Key prefix for all storage keys
        """
        self._redis_url = redis_url or os.environ.get(
            "FLOWPAY_REDIS_URL",
            "redis://localhost:6379/0",
        )
        self._prefix = prefix
        self._client: redis.Redis | None = None

    def _get_client(self) -> redis.Redis:
        """Lazily create the Redis client."""
        if self._client is None:
            self._client = redis.from_url(self._redis_url, decode_responses=True)
        return self._client

    def _make_key(self, collection: str, key: str) -> str:
        return f"{self._prefix}:{collection}:{key}"

    def _index_key(self, collection: str) -> str:
        return f"{self._prefix}:{collection}:_index"

    async def save(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> None:
        client = self._get_client()
        await client.set(self._make_key(collection, key), json.dumps(data))
        await client.sadd(self._index_key(collection), key)

    async def get(
        self,
        collection: str,
        key: str,
    ) -> dict[str, Any] | None:
        client = self._get_client()
        data = await client.get(self._make_key(collection, key))

        if data is None:
            return None

        try:
            loaded = json.loads(data)
        except json.JSONDecodeError:
            loaded = None
        if not isinstance(loaded, dict):
            # Raw counter written by atomic_add
            return {"value": data}
        return loaded

    async def delete(
        self,
        collection: str,
        key: str,
    ) -> bool:
        client = self._get_client()
        result = await client.delete(self._make_key(collection, key))
        await client.srem(self._index_key(collection), key)
        return result > 0

    async def atomic_add(
        self,
        collection: str,
        key: str,
        amount: str,
    ) -> str:
        client = self._get_client()
        # INCRBYFLOAT is atomic; normalise the float reply back to a decimal string
        new_val = await client.incrbyfloat(self._make_key(collection, key), float(amount))
        await client.sadd(self._index_key(collection), key)
        return str(Decimal(str(new_val)))

    async def acquire_lock(
        self,
        key: str,
        ttl: int = 30,
    ) -> str | None:
        """Acquire a distributed lock (SET NX EX) with an ownership token."""
        client = self._get_client()
        token = str(uuid.uuid4())
        result = await client.set(f"{self._prefix}:locks:{key}", token, nx=True, ex=ttl)
        return token if result else None

    async def release_lock(
        self,
        key: str,
        token: str | None = None,
    ) -> bool:
        client = self._get_client()
        redis_key = f"{self._prefix}:locks:{key}"

        if token:
            result = await client.eval(self._RELEASE_LOCK_SCRIPT, 1, redis_key, token)
            return int(result) > 0

        result = await client.delete(redis_key)
        return result > 0

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        client = self._get_client()
        keys = await client.smembers(self._index_key(collection))

        results = []
        for key in sorted(keys):
            data = await self.get(collection, key)
            if data is None:
                continue

            if filters and any(data.get(k) != v for k, v in filters.items()):
                continue

            data["_key"] = key
            results.append(data)

        results = results[offset:]
        if limit is not None:
            results = results[:limit]

        return results

    async def update(
        self,
        collection: str,
        key: str,
        data: dict[str, Any],
    ) -> bool:
        existing = await self.get(collection, key)
        if existing is None:
            return False

        existing.update(data)
        await self.save(collection, key, existing)
        return True

    async def count(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
    ) -> int:
        if filters:
            results = await self.query(collection, filters)
            return len(results)

        client = self._get_client()
        return await client.scard(self._index_key(collection))

    async def clear(self, collection: str) -> int:
        client = self._get_client()
        keys = await client.smembers(self._index_key(collection))

        for key in keys:
            await self.delete(collection, key)

        return len(keys)

    async def health_check(self) -> bool:
        """Check Redis connection."""
        try:
            await self._get_client().ping()
            return True
        except redis.RedisError:
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            await self._client.aclose()
            self._client = None


register_storage_backend("redis", RedisStorage)
