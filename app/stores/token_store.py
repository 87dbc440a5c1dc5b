"""Key/value storage with per-key expiry for magic links and sessions.

``pop`` is the only compound operation: it must read and delete a key in one
step so that a token can be consumed at most once.
"""

import abc
import asyncio
from datetime import datetime, timedelta

from redis.asyncio import Redis
from redis.exceptions import RedisError

from app.core.clock import Clock, utcnow
from app.core.errors import StoreError


class TokenStore(abc.ABC):
    @abc.abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abc.abstractmethod
    async def put(self, key: str, value: str, ttl_seconds: int) -> None: ...

    @abc.abstractmethod
    async def delete(self, key: str) -> None: ...

    @abc.abstractmethod
    async def pop(self, key: str) -> str | None: ...


class RedisTokenStore(TokenStore):
    def __init__(self, redis: Redis):
        self._redis = redis

    async def get(self, key: str) -> str | None:
        try:
            return await self._redis.get(key)
        except RedisError as exc:
            raise StoreError() from exc

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self._redis.set(key, value, ex=ttl_seconds)
        except RedisError as exc:
            raise StoreError() from exc

    async def delete(self, key: str) -> None:
        try:
            await self._redis.delete(key)
        except RedisError as exc:
            raise StoreError() from exc

    async def pop(self, key: str) -> str | None:
        try:
            return await self._redis.getdel(key)
        except RedisError as exc:
            raise StoreError() from exc


class MemoryTokenStore(TokenStore):
    """Single-process store for development and tests."""

    def __init__(self, clock: Clock = utcnow):
        self._clock = clock
        self._data: dict[str, tuple[str, datetime]] = {}
        self._lock = asyncio.Lock()

    def _live(self, key: str) -> str | None:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._data[key]
            return None
        return value

    async def get(self, key: str) -> str | None:
        async with self._lock:
            return self._live(key)

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        async with self._lock:
            self._data[key] = (value, self._clock() + timedelta(seconds=ttl_seconds))

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def pop(self, key: str) -> str | None:
        async with self._lock:
            value = self._live(key)
            self._data.pop(key, None)
            return value

    def __contains__(self, key: str) -> bool:
        return key in self._data
