"""
Caching Service.

Key-value side-channel with get / set-with-ttl / delete / delete-by-prefix.
Two backends: an in-process memory store and Redis. Neither is ever a source
of truth; ledger mutators invalidate the affected keys after commit.
"""

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Protocol

from backend.app.core.config import settings
from backend.app.models.ledger_enums import Polarity

logger = logging.getLogger(__name__)


class CacheBackend(Protocol):
    async def get(self, key: str) -> Optional[Any]: ...
    async def set(self, key: str, value: Any, ttl_seconds: int) -> None: ...
    async def delete(self, key: str) -> int: ...
    async def delete_by_prefix(self, prefix: str) -> int: ...
    async def clear(self) -> None: ...


class InMemoryCacheBackend:
    """Per-process dict store with lazy expiry."""

    def __init__(self):
        self._store: Dict[str, dict] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if not entry:
            return None

        if datetime.now(timezone.utc) > entry["expires_at"]:
            del self._store[key]
            return None

        return entry["data"]

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        self._store[key] = {
            "data": value,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=ttl_seconds)
        }

    async def delete(self, key: str) -> int:
        return 1 if self._store.pop(key, None) is not None else 0

    async def delete_by_prefix(self, prefix: str) -> int:
        keys = [key for key in self._store if key.startswith(prefix)]
        for key in keys:
            del self._store[key]
        return len(keys)

    async def clear(self) -> None:
        self._store.clear()


class RedisCacheBackend:
    """JSON values in Redis with native expiry."""

    def __init__(self, client):
        self._client = client

    async def get(self, key: str) -> Optional[Any]:
        raw = await self._client.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._client.set(key, json.dumps(value), ex=ttl_seconds)

    async def delete(self, key: str) -> int:
        return await self._client.delete(key)

    async def delete_by_prefix(self, prefix: str) -> int:
        deleted = 0
        async for key in self._client.scan_iter(match=f"{prefix}*"):
            deleted += await self._client.delete(key)
        return deleted

    async def clear(self) -> None:
        await self._client.flushdb()


class CacheService:
    """
    Cache facade used by readers (get_or_set) and mutators (invalidate).

    Backend failures are logged and treated as misses / no-ops: the ledger
    must keep working when the cache is down.
    """

    def __init__(self, backend: CacheBackend, default_ttl: int = 300):
        self.backend = backend
        self.default_ttl = default_ttl
        self.hits = 0
        self.misses = 0

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.backend.get(key)
        except Exception:
            logger.warning("Cache GET failed: %s", key, exc_info=True)
            value = None

        if value is None:
            self.misses += 1
            logger.debug("Cache MISS: %s", key)
        else:
            self.hits += 1
            logger.debug("Cache HIT: %s", key)
        return value

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl_seconds is None else ttl_seconds
        try:
            await self.backend.set(key, value, ttl)
            logger.debug("Cache SET: %s (TTL: %ss)", key, ttl)
        except Exception:
            logger.warning("Cache SET failed: %s", key, exc_info=True)

    async def delete(self, key: str) -> int:
        try:
            deleted = await self.backend.delete(key)
        except Exception:
            logger.warning("Cache DELETE failed: %s", key, exc_info=True)
            return 0
        if deleted:
            logger.debug("Cache DELETE: %s", key)
        return deleted

    async def delete_by_prefix(self, prefix: str) -> int:
        try:
            deleted = await self.backend.delete_by_prefix(prefix)
        except Exception:
            logger.warning("Cache DELETE by prefix failed: %s", prefix, exc_info=True)
            return 0
        if deleted:
            logger.debug("Cache DELETE by prefix '%s': %s keys", prefix, deleted)
        return deleted

    async def clear(self) -> None:
        await self.backend.clear()
        logger.info("Cache flushed")

    async def get_or_set(self, key: str, compute: Callable[[], Awaitable[Any]], ttl_seconds: Optional[int] = None) -> Any:
        """Cache-aside: return the cached value or compute, store and return it."""
        cached = await self.get(key)
        if cached is not None:
            return cached

        value = await compute()
        await self.set(key, value, ttl_seconds)
        return value

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total) if total > 0 else 0.0


_cache_service: Optional[CacheService] = None


def build_cache_service() -> CacheService:
    """Create the cache configured by CACHE_BACKEND."""
    if settings.cache_backend == "redis":
        from backend.app.core.redis_client import redis_client
        backend = RedisCacheBackend(redis_client)
    else:
        backend = InMemoryCacheBackend()
    return CacheService(backend, default_ttl=settings.cache_ttl_dashboard)


def get_cache_service() -> CacheService:
    """
    Process-wide cache instance (created on first use).

    Used as a FastAPI dependency; domain code receives the instance as an argument.
    """
    global _cache_service
    if _cache_service is None:
        _cache_service = build_cache_service()
    return _cache_service


# Ledger cache keys

def dashboard_cache_key(organization_id: int) -> str:
    return f"dashboard:summary:{organization_id}"


def list_cache_prefix(polarity: Polarity, organization_id: int) -> str:
    return f"{Polarity(polarity).value}s:list:{organization_id}:"


async def invalidate_ledger_caches(
    cache: CacheService,
    organization_id: int,
    polarities: Iterable[Polarity] = tuple(Polarity),
) -> None:
    """Drop the dashboard summary and the account lists touched by a mutation."""
    await cache.delete(dashboard_cache_key(organization_id))
    for polarity in set(polarities):
        await cache.delete_by_prefix(list_cache_prefix(polarity, organization_id))
