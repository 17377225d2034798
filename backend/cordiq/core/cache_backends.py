"""Key-value stores behind the response cache.

``RedisCacheBackend`` is the production store. ``InMemoryCacheBackend`` keeps
entries in a cachetools TLRU cache with per-entry expiry and is used for local
development and tests. Both speak the same small async protocol; neither
swallows errors, that is the cache service's job.
"""

import logging
import re
import time
from collections.abc import Callable, Iterable
from typing import Protocol

from cachetools import TLRUCache
from redis.asyncio import Redis
from redis.backoff import ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError
from redis.retry import Retry

from cordiq.core.config import Settings

logger = logging.getLogger(__name__)

DEFAULT_MAXSIZE = 10_000
SCAN_BATCH_SIZE = 500


class CacheBackend(Protocol):
    """Async key-value store with expiry and glob-style key lookup."""

    async def connect(self) -> None: ...

    async def close(self) -> None: ...

    async def get(self, key: str) -> str | None: ...

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None: ...

    async def keys_matching(self, pattern: str) -> list[str]: ...

    async def delete_many(self, keys: Iterable[str]) -> int: ...


_GLOB_TOKEN = re.compile(r"\\(.)|(\*)|(\?)|(.)", re.S)


def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Compile a Redis-style glob to an anchored regex.

    Supports ``*``, ``?`` and backslash escapes; brackets match literally.
    """

    def translate(match: re.Match[str]) -> str:
        escaped, star, question, literal = match.groups()
        if star:
            return ".*"
        if question:
            return "."
        return re.escape(escaped if escaped is not None else literal)

    return re.compile(f"^{_GLOB_TOKEN.sub(translate, pattern)}$", re.S)


class InMemoryCacheBackend:
    """Process-local backend with per-entry TTL."""

    def __init__(
        self,
        maxsize: int = DEFAULT_MAXSIZE,
        timer: Callable[[], float] = time.monotonic,
    ) -> None:
        self._cache: TLRUCache[str, tuple[int, str]] = TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, entry, now: now + entry[0],
            timer=timer,
        )

    @property
    def size(self) -> int:
        self._cache.expire()
        return len(self._cache)

    async def connect(self) -> None:
        logger.info("In-memory cache backend ready")

    async def close(self) -> None:
        self._cache.clear()

    async def get(self, key: str) -> str | None:
        entry = self._cache.get(key)
        return entry[1] if entry is not None else None

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        self._cache[key] = (ttl_seconds, value)

    async def keys_matching(self, pattern: str) -> list[str]:
        self._cache.expire()
        regex = _glob_to_regex(pattern)
        return [key for key in list(self._cache) if regex.match(key)]

    async def delete_many(self, keys: Iterable[str]) -> int:
        removed = 0
        for key in keys:
            if self._cache.pop(key, None) is not None:
                removed += 1
        return removed


class RedisCacheBackend:
    """Redis store using the redis-py asyncio client."""

    def __init__(self, client: Redis) -> None:
        self._redis = client

    @classmethod
    def from_settings(cls, config: Settings) -> "RedisCacheBackend":
        """Build a client from REDIS_URL, or REDIS_HOST/REDIS_PORT when unset.

        Reconnects back off exponentially (50 ms steps, capped at 2 s) for
        at most three retries per command.
        """
        retry = Retry(ExponentialBackoff(cap=2.0, base=0.05), retries=3)
        options = {
            "decode_responses": True,
            "retry": retry,
            "retry_on_error": [RedisConnectionError, RedisTimeoutError],
            "socket_timeout": 5,
            "socket_connect_timeout": 5,
        }
        if config.REDIS_URL:
            client = Redis.from_url(config.REDIS_URL, **options)
        else:
            client = Redis(host=config.REDIS_HOST, port=config.REDIS_PORT, **options)
        return cls(client)

    async def connect(self) -> None:
        await self._redis.ping()
        logger.info("Redis connection established")

    async def close(self) -> None:
        await self._redis.aclose()
        logger.info("Redis connection closed")

    async def get(self, key: str) -> str | None:
        value = await self._redis.get(key)
        return None if value is None else str(value)

    async def set_with_expiry(self, key: str, ttl_seconds: int, value: str) -> None:
        await self._redis.setex(key, ttl_seconds, value)

    async def keys_matching(self, pattern: str) -> list[str]:
        # SCAN rather than KEYS so large keyspaces do not block the server
        return [key async for key in self._redis.scan_iter(match=pattern, count=SCAN_BATCH_SIZE)]

    async def delete_many(self, keys: Iterable[str]) -> int:
        batch = list(keys)
        if not batch:
            return 0
        return int(await self._redis.delete(*batch))


def create_cache_backend(config: Settings) -> CacheBackend:
    """Pick the backend named by CACHE_BACKEND."""
    if config.CACHE_BACKEND == "memory":
        return InMemoryCacheBackend()
    return RedisCacheBackend.from_settings(config)
