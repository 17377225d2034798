"""Response cache for expensive (LLM-generated) results.

Provides:
- Deterministic cache keys: SHA-256 over the context object with sorted keys
- Fixed TTL (one hour by default) on every entry
- Graceful degradation: backend failures read as misses and never raise
- Hit/miss metrics that reset each time they are read

The cache is an optimization, not a dependency. A total backend outage
must only remove the speed-up from the features that use it.
"""

import hashlib
import json
import logging
import re
import threading
from dataclasses import asdict, dataclass
from typing import Any

from cordiq.core.cache_backends import CacheBackend, create_cache_backend
from cordiq.core.config import settings
from cordiq.core.result import Result

logger = logging.getLogger(__name__)

KEY_PREFIX = "email:template"
DEFAULT_TTL_SECONDS = 3600


@dataclass(frozen=True)
class CacheMetrics:
    """Hit/miss counts accumulated since the previous read."""

    hits: int
    misses: int
    total: int
    hit_rate: float

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def canonical_context(context: dict[str, Any]) -> str:
    """Serialize a context object so equal contents give equal strings.

    Keys are sorted at every level, so insertion order never matters.
    """
    return json.dumps(context, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(value: str) -> str:
    """Backslash-escape Redis glob metacharacters in ``value``."""
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class _Counters:
    """Hit/miss pair with an atomic read-and-reset."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    def hit(self) -> None:
        with self._lock:
            self._hits += 1

    def miss(self) -> None:
        with self._lock:
            self._misses += 1

    def drain(self) -> tuple[int, int]:
        with self._lock:
            hits, misses = self._hits, self._misses
            self._hits = 0
            self._misses = 0
        return hits, misses


class ResponseCacheService:
    """Facade over a CacheBackend with key derivation and metrics.

    Counters belong to the instance, so separate services (one per test,
    say) never see each other's traffic.
    """

    def __init__(self, backend: CacheBackend, ttl_seconds: int = DEFAULT_TTL_SECONDS) -> None:
        """Initialize the cache service.

        Args:
            backend: Store the entries live in.
            ttl_seconds: Expiry applied to every entry.
        """
        self._backend = backend
        self._ttl_seconds = ttl_seconds
        self._counters = _Counters()

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    @staticmethod
    def generate_cache_key(user_id: str, contact_id: str, context: dict[str, Any]) -> str:
        """Derive the cache key for a user, contact and generation context.

        Format: ``email:template:{user_id}:{contact_id}:{sha256 hex}``

        Args:
            user_id: The user requesting the template.
            contact_id: The contact the template is for.
            context: Inputs that affect the generated result.

        Returns:
            Deterministic cache key.
        """
        digest = hashlib.sha256(canonical_context(context).encode("utf-8")).hexdigest()
        return f"{KEY_PREFIX}:{user_id}:{contact_id}:{digest}"

    @staticmethod
    def contact_pattern(user_id: str, contact_id: str) -> str:
        """Glob matching every key stored for a user + contact.

        The IDs are escaped, so a contact ID such as ``*`` matches only itself.
        """
        return f"{KEY_PREFIX}:{escape_glob(user_id)}:{escape_glob(contact_id)}:*"

    async def connect(self) -> None:
        try:
            await self._backend.connect()
        except Exception as e:
            logger.error("Cache backend connection error: %s", e)

    async def close(self) -> None:
        try:
            await self._backend.close()
        except Exception as e:
            logger.error("Error closing cache backend: %s", e)

    async def _read(self, key: str) -> Result[tuple[bool, Any]]:
        """Return ``(found, value)``; a stored JSON null is found."""
        try:
            raw = await self._backend.get(key)
            if raw is None:
                return Result.success((False, None))
            return Result.success((True, json.loads(raw)))
        except Exception as e:
            return Result.failure(e)

    async def get(self, key: str) -> Any | None:
        """Return the cached value for ``key`` or None.

        Absent keys, backend errors and undecodable entries all count as
        misses; callers cannot tell them apart.
        """
        result = await self._read(key)
        if not result.ok:
            logger.error("Cache get error for key %s: %s", key, result.error_message)
            self._counters.miss()
            return None
        found, value = result.value or (False, None)
        if not found:
            logger.debug("Cache miss: %s", key)
            self._counters.miss()
            return None
        logger.debug("Cache hit: %s", key)
        self._counters.hit()
        return value

    async def _write(self, key: str, value: Any) -> Result[None]:
        try:
            serialized = json.dumps(value)
            await self._backend.set_with_expiry(key, self._ttl_seconds, serialized)
        except Exception as e:
            return Result.failure(e)
        return Result.success()

    async def set(self, key: str, value: Any) -> None:
        """Store ``value`` as JSON under ``key`` with the configured TTL."""
        result = await self._write(key, value)
        if result.ok:
            logger.debug("Cache set: %s (TTL: %ds)", key, self._ttl_seconds)
        else:
            logger.error("Cache set error for key %s: %s", key, result.error_message)

    async def _delete_matching(self, pattern: str) -> Result[int]:
        try:
            keys = await self._backend.keys_matching(pattern)
            if not keys:
                return Result.success(0)
            return Result.success(await self._backend.delete_many(keys))
        except Exception as e:
            return Result.failure(e)

    async def invalidate(self, user_id: str, contact_id: str) -> None:
        """Drop every entry cached for a user + contact pair."""
        result = await self._delete_matching(self.contact_pattern(user_id, contact_id))
        if not result.ok:
            logger.error("Cache invalidation error: %s", result.error_message)
        elif result.value:
            logger.info(
                "Invalidated %d cache entries for user %s, contact %s",
                result.value,
                user_id,
                contact_id,
            )

    def get_metrics(self) -> CacheMetrics:
        """Return hit/miss counts since the last call, then reset them."""
        hits, misses = self._counters.drain()
        total = hits + misses
        hit_rate = hits / total if total > 0 else 0.0
        logger.info(
            "Cache metrics: %d hits, %d misses, %.1f%% hit rate",
            hits,
            misses,
            hit_rate * 100,
        )
        return CacheMetrics(hits=hits, misses=misses, total=total, hit_rate=hit_rate)


_cache_instance: ResponseCacheService | None = None


def get_response_cache() -> ResponseCacheService:
    """Get the application's response cache, built from settings on first use."""
    global _cache_instance
    if _cache_instance is None:
        _cache_instance = ResponseCacheService(
            create_cache_backend(settings),
            ttl_seconds=settings.CACHE_TTL_SECONDS,
        )
    return _cache_instance


def reset_response_cache() -> None:
    """Forget the application cache instance (useful for testing)."""
    global _cache_instance
    _cache_instance = None
