"""Tests for the response cache service."""

from typing import Any
from unittest.mock import AsyncMock

import pytest

from cordiq.core.cache import (
    DEFAULT_TTL_SECONDS,
    CacheMetrics,
    ResponseCacheService,
    canonical_context,
    escape_glob,
)
from cordiq.core.cache_backends import InMemoryCacheBackend


@pytest.fixture
def cache() -> ResponseCacheService:
    """Create a cache service over a fresh in-memory backend."""
    return ResponseCacheService(InMemoryCacheBackend())


@pytest.fixture
def failing_backend() -> AsyncMock:
    """Create a backend whose every call raises."""
    backend = AsyncMock()
    backend.connect.side_effect = ConnectionError("redis down")
    backend.close.side_effect = ConnectionError("redis down")
    backend.get.side_effect = ConnectionError("redis down")
    backend.set_with_expiry.side_effect = ConnectionError("redis down")
    backend.keys_matching.side_effect = ConnectionError("redis down")
    backend.delete_many.side_effect = ConnectionError("redis down")
    return backend


class TestGenerateCacheKey:
    """Tests for deterministic key derivation."""

    def test_key_format(self) -> None:
        key = ResponseCacheService.generate_cache_key("user-1", "contact-1", {"a": 1})
        prefix, _, digest = key.rpartition(":")
        assert prefix == "email:template:user-1:contact-1"
        assert len(digest) == 64
        assert digest == digest.lower()

    def test_key_ignores_insertion_order(self) -> None:
        first = {"name": "Jane", "company": "Acme", "priority": "high"}
        second = {"priority": "high", "company": "Acme", "name": "Jane"}

        assert ResponseCacheService.generate_cache_key(
            "user-1", "contact-1", first
        ) == ResponseCacheService.generate_cache_key("user-1", "contact-1", second)

    def test_key_ignores_nested_insertion_order(self) -> None:
        first = {"meta": {"x": 1, "y": 2}, "notes": "n"}
        second = {"notes": "n", "meta": {"y": 2, "x": 1}}

        assert ResponseCacheService.generate_cache_key(
            "u", "c", first
        ) == ResponseCacheService.generate_cache_key("u", "c", second)

    def test_key_changes_with_any_value(self) -> None:
        base = {"name": "Jane", "company": "Acme", "history": ["hi"]}
        base_key = ResponseCacheService.generate_cache_key("u", "c", base)

        for field, value in (("name", "John"), ("company", "Other"), ("history", ["hello"])):
            changed = {**base, field: value}
            assert ResponseCacheService.generate_cache_key("u", "c", changed) != base_key

    def test_key_scoped_by_user_and_contact(self) -> None:
        context = {"name": "Jane"}
        keys = {
            ResponseCacheService.generate_cache_key("u1", "c1", context),
            ResponseCacheService.generate_cache_key("u2", "c1", context),
            ResponseCacheService.generate_cache_key("u1", "c2", context),
        }
        assert len(keys) == 3

    def test_canonical_context_is_compact_and_sorted(self) -> None:
        assert canonical_context({"b": 1, "a": "é"}) == '{"a":"é","b":1}'


class TestGetSet:
    """Tests for cache reads and writes."""

    @pytest.mark.asyncio
    async def test_round_trip(self, cache: ResponseCacheService) -> None:
        value: dict[str, Any] = {"formal": {"subject": "Hi"}, "tokens_used": 12, "tags": [1, 2]}

        await cache.set("k", value)

        assert await cache.get("k") == value

    @pytest.mark.asyncio
    async def test_missing_key_counts_miss(self, cache: ResponseCacheService) -> None:
        assert await cache.get("never-set") is None

        metrics = cache.get_metrics()
        assert metrics.hits == 0
        assert metrics.misses == 1

    @pytest.mark.asyncio
    async def test_hit_counts_hit(self, cache: ResponseCacheService) -> None:
        await cache.set("k", {"v": 1})
        await cache.get("k")

        metrics = cache.get_metrics()
        assert metrics.hits == 1
        assert metrics.misses == 0

    @pytest.mark.asyncio
    async def test_set_uses_configured_ttl(self) -> None:
        backend = AsyncMock()
        service = ResponseCacheService(backend, ttl_seconds=120)

        await service.set("k", {"v": 1})

        backend.set_with_expiry.assert_awaited_once_with("k", 120, '{"v": 1}')

    def test_default_ttl_is_one_hour(self, cache: ResponseCacheService) -> None:
        assert DEFAULT_TTL_SECONDS == 3600
        assert cache.ttl_seconds == 3600

    @pytest.mark.asyncio
    async def test_expired_entry_reads_as_miss(self) -> None:
        now = [1000.0]
        service = ResponseCacheService(
            InMemoryCacheBackend(timer=lambda: now[0]), ttl_seconds=60
        )
        await service.set("k", {"v": 1})

        now[0] += 61

        assert await service.get("k") is None
        assert service.get_metrics().misses == 1

    @pytest.mark.asyncio
    async def test_stored_null_counts_hit(self, cache: ResponseCacheService) -> None:
        await cache.set("k", None)

        assert await cache.get("k") is None
        assert cache.get_metrics() == CacheMetrics(hits=1, misses=0, total=1, hit_rate=1.0)

    @pytest.mark.asyncio
    async def test_undecodable_entry_reads_as_miss(self) -> None:
        backend = AsyncMock()
        backend.get.return_value = "{not json"
        service = ResponseCacheService(backend)

        assert await service.get("k") is None
        assert service.get_metrics().misses == 1


class TestGracefulDegradation:
    """Backend failures must never reach callers."""

    @pytest.mark.asyncio
    async def test_get_error_returns_none_and_counts_miss(self, failing_backend: AsyncMock) -> None:
        service = ResponseCacheService(failing_backend)

        assert await service.get("k") is None
        assert service.get_metrics().misses == 1

    @pytest.mark.asyncio
    async def test_set_error_is_swallowed(self, failing_backend: AsyncMock) -> None:
        service = ResponseCacheService(failing_backend)

        await service.set("k", {"v": 1})

        failing_backend.set_with_expiry.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_unserializable_value_is_swallowed(self) -> None:
        backend = AsyncMock()
        service = ResponseCacheService(backend)

        await service.set("k", {"v": object()})

        backend.set_with_expiry.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalidate_error_is_swallowed(self, failing_backend: AsyncMock) -> None:
        service = ResponseCacheService(failing_backend)

        await service.invalidate("u", "c")

    @pytest.mark.asyncio
    async def test_connect_and_close_errors_are_swallowed(self, failing_backend: AsyncMock) -> None:
        service = ResponseCacheService(failing_backend)

        await service.connect()
        await service.close()


class TestInvalidate:
    """Tests for per-contact invalidation."""

    @pytest.mark.asyncio
    async def test_removes_only_matching_contact(self, cache: ResponseCacheService) -> None:
        key_a1 = cache.generate_cache_key("u", "contact-a", {"n": 1})
        key_a2 = cache.generate_cache_key("u", "contact-a", {"n": 2})
        key_b = cache.generate_cache_key("u", "contact-b", {"n": 1})
        key_other_user = cache.generate_cache_key("v", "contact-a", {"n": 1})
        for key in (key_a1, key_a2, key_b, key_other_user):
            await cache.set(key, {"k": key})

        await cache.invalidate("u", "contact-a")

        assert await cache.get(key_a1) is None
        assert await cache.get(key_a2) is None
        assert await cache.get(key_b) == {"k": key_b}
        assert await cache.get(key_other_user) == {"k": key_other_user}

    @pytest.mark.asyncio
    async def test_no_matching_keys_skips_delete(self) -> None:
        backend = AsyncMock()
        backend.keys_matching.return_value = []
        service = ResponseCacheService(backend)

        await service.invalidate("u", "c")

        backend.keys_matching.assert_awaited_once_with("email:template:u:c:*")
        backend.delete_many.assert_not_awaited()

    def test_contact_pattern_escapes_wildcards(self) -> None:
        assert ResponseCacheService.contact_pattern("u?", "*") == r"email:template:u\?:\*:*"
        assert escape_glob("a[b]\\c") == r"a\[b\]\\c"

    @pytest.mark.asyncio
    async def test_wildcard_contact_id_removes_nothing_else(self, cache: ResponseCacheService) -> None:
        key_a = cache.generate_cache_key("u", "contact-a", {"n": 1})
        key_b = cache.generate_cache_key("u", "contact-b", {"n": 1})
        for key in (key_a, key_b):
            await cache.set(key, {"k": key})

        await cache.invalidate("u", "*")

        assert await cache.get(key_a) == {"k": key_a}
        assert await cache.get(key_b) == {"k": key_b}


class TestMetrics:
    """Tests for read-and-reset metrics."""

    @pytest.mark.asyncio
    async def test_hit_rate(self, cache: ResponseCacheService) -> None:
        await cache.set("k", 1)
        await cache.get("k")
        await cache.get("k")
        await cache.get("k")
        await cache.get("missing")

        metrics = cache.get_metrics()

        assert metrics == CacheMetrics(hits=3, misses=1, total=4, hit_rate=0.75)

    @pytest.mark.asyncio
    async def test_reading_resets_counters(self, cache: ResponseCacheService) -> None:
        await cache.get("missing")
        cache.get_metrics()

        assert cache.get_metrics() == CacheMetrics(hits=0, misses=0, total=0, hit_rate=0.0)

    def test_empty_metrics_have_zero_hit_rate(self, cache: ResponseCacheService) -> None:
        assert cache.get_metrics().to_dict() == {
            "hits": 0,
            "misses": 0,
            "total": 0,
            "hit_rate": 0.0,
        }

    @pytest.mark.asyncio
    async def test_counters_are_per_instance(self) -> None:
        first = ResponseCacheService(InMemoryCacheBackend())
        second = ResponseCacheService(InMemoryCacheBackend())

        await first.get("missing")

        assert first.get_metrics().misses == 1
        assert second.get_metrics().misses == 0
