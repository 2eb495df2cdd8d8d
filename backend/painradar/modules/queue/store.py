"""Key-value store behind the job queue and pipeline checkpoints.

Two implementations share one interface:
  - RedisStore: production, backed by redis.asyncio
  - MemoryStore: local runs and tests, with an injectable clock for TTLs

Only the handful of hash/list/string commands the queue needs are exposed.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import structlog

from painradar.core.config import settings

logger = structlog.get_logger()


class KeyValueStore(ABC):
    """Minimal async key-value interface (Redis command semantics)."""

    @abstractmethod
    async def hset(self, key: str, mapping: dict[str, str]) -> None: ...

    @abstractmethod
    async def hgetall(self, key: str) -> dict[str, str]: ...

    @abstractmethod
    async def get(self, key: str) -> str | None: ...

    @abstractmethod
    async def set(
        self,
        key: str,
        value: str,
        *,
        nx: bool = False,
        ex: int | None = None,
    ) -> bool:
        """Set a string value. With ``nx`` the write only happens if the key is absent."""
        ...

    @abstractmethod
    async def delete(self, key: str) -> None: ...

    @abstractmethod
    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically delete ``key`` only while it still holds ``value``."""
        ...

    @abstractmethod
    async def expire(self, key: str, seconds: int) -> None: ...

    @abstractmethod
    async def lpush(self, key: str, value: str) -> int: ...

    @abstractmethod
    async def lindex(self, key: str, index: int) -> str | None: ...

    @abstractmethod
    async def lrange(self, key: str, start: int, stop: int) -> list[str]: ...

    @abstractmethod
    async def lrem(self, key: str, value: str) -> int:
        """Remove every occurrence of value from the list; returns the count."""

    async def close(self) -> None:
        return None


# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

# KEYS[1] = key, ARGV[1] = expected value
_DELETE_IF_EQUALS_LUA = """
if redis.call('get', KEYS[1]) == ARGV[1] then
    return redis.call('del', KEYS[1])
end
return 0
"""


class RedisStore(KeyValueStore):
    """KeyValueStore backed by a Redis server."""

    def __init__(self, url: str | None = None, client: Any = None) -> None:
        if client is None:
            from redis.asyncio import Redis

            client = Redis.from_url(url or settings.redis_url, decode_responses=True)
        self.client = client

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        await self.client.hset(key, mapping=mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        return await self.client.hgetall(key) or {}

    async def get(self, key: str) -> str | None:
        return await self.client.get(key)

    async def set(
        self,
        key: str,
        value: str,
        *,
        nx: bool = False,
        ex: int | None = None,
    ) -> bool:
        result = await self.client.set(key, value, nx=nx, ex=ex)
        return bool(result)

    async def delete(self, key: str) -> None:
        await self.client.delete(key)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        deleted = await self.client.eval(_DELETE_IF_EQUALS_LUA, 1, key, value)
        return bool(deleted)

    async def expire(self, key: str, seconds: int) -> None:
        await self.client.expire(key, seconds)

    async def lpush(self, key: str, value: str) -> int:
        return await self.client.lpush(key, value)

    async def lindex(self, key: str, index: int) -> str | None:
        return await self.client.lindex(key, index)

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        return await self.client.lrange(key, start, stop)

    async def lrem(self, key: str, value: str) -> int:
        return await self.client.lrem(key, 0, value)

    async def close(self) -> None:
        await self.client.aclose()


# ---------------------------------------------------------------------------
# In-memory
# ---------------------------------------------------------------------------


class MemoryStore(KeyValueStore):
    """Process-local store with Redis-like semantics.

    Each coroutine completes without yielding to the event loop, so every
    command is atomic with respect to other tasks.
    """

    def __init__(self, clock: Callable[[], float] | None = None) -> None:
        self.clock = clock or time.time
        self._strings: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}
        self._lists: dict[str, list[str]] = {}
        self._expires_at: dict[str, float] = {}

    def _purge(self, key: str) -> None:
        deadline = self._expires_at.get(key)
        if deadline is not None and self.clock() >= deadline:
            self._drop(key)

    def _drop(self, key: str) -> None:
        self._strings.pop(key, None)
        self._hashes.pop(key, None)
        self._lists.pop(key, None)
        self._expires_at.pop(key, None)

    def exists(self, key: str) -> bool:
        self._purge(key)
        return key in self._strings or key in self._hashes or key in self._lists

    async def hset(self, key: str, mapping: dict[str, str]) -> None:
        self._purge(key)
        self._hashes.setdefault(key, {}).update(mapping)

    async def hgetall(self, key: str) -> dict[str, str]:
        self._purge(key)
        return dict(self._hashes.get(key, {}))

    async def get(self, key: str) -> str | None:
        self._purge(key)
        return self._strings.get(key)

    async def set(
        self,
        key: str,
        value: str,
        *,
        nx: bool = False,
        ex: int | None = None,
    ) -> bool:
        self._purge(key)
        if nx and key in self._strings:
            return False
        self._strings[key] = value
        if ex is not None:
            self._expires_at[key] = self.clock() + ex
        else:
            self._expires_at.pop(key, None)
        return True

    async def delete(self, key: str) -> None:
        self._drop(key)

    async def delete_if_equals(self, key: str, value: str) -> bool:
        self._purge(key)
        if self._strings.get(key) != value:
            return False
        self._drop(key)
        return True

    async def expire(self, key: str, seconds: int) -> None:
        if self.exists(key):
            self._expires_at[key] = self.clock() + seconds

    async def lpush(self, key: str, value: str) -> int:
        self._purge(key)
        items = self._lists.setdefault(key, [])
        items.insert(0, value)
        return len(items)

    async def lindex(self, key: str, index: int) -> str | None:
        self._purge(key)
        items = self._lists.get(key, [])
        try:
            return items[index]
        except IndexError:
            return None

    async def lrange(self, key: str, start: int, stop: int) -> list[str]:
        self._purge(key)
        items = self._lists.get(key, [])
        # Redis stop is inclusive; -1 means "to the end"
        end = None if stop == -1 else stop + 1
        return items[start:end]

    async def lrem(self, key: str, value: str) -> int:
        self._purge(key)
        items = self._lists.get(key)
        if not items:
            return 0
        kept = [item for item in items if item != value]
        removed = len(items) - len(kept)
        if kept:
            self._lists[key] = kept
        else:
            self._drop(key)
        return removed


_store: KeyValueStore | None = None


def get_store() -> KeyValueStore:
    """Factory: return the configured key-value store (one per process)."""
    global _store
    if _store is None:
        if settings.queue_backend.lower() == "memory":
            logger.warning("Using in-memory queue store, jobs will not survive a restart")
            _store = MemoryStore()
        else:
            _store = RedisStore()
    return _store
