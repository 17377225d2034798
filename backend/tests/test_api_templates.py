"""Tests for template, metrics and health API routes."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from cordiq.api.deps import get_current_user
from cordiq.core.cache import ResponseCacheService, get_response_cache
from cordiq.core.cache_backends import InMemoryCacheBackend
from cordiq.core.exceptions import TemplateGenerationError
from cordiq.main import app
from cordiq.models.email_template import EmailVariant, GeneratedEmailTemplate


@pytest.fixture
def cache() -> ResponseCacheService:
    return ResponseCacheService(InMemoryCacheBackend())


@pytest.fixture
def test_client(cache: ResponseCacheService) -> TestClient:
    """Create a test client with authentication and cache overrides."""
    user = MagicMock()
    user.id = "test-user-123"

    async def override_get_current_user() -> MagicMock:
        return user

    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_response_cache] = lambda: cache
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def generated_template() -> GeneratedEmailTemplate:
    variant = EmailVariant(subject="Hi", body="Hello", body_html="<p>Hello</p>")
    return GeneratedEmailTemplate(
        formal=variant,
        casual=variant,
        provider_id="openrouter/openai/gpt-4-turbo",
        tokens_used=120,
    )


def test_generate_template(test_client: TestClient, generated_template: GeneratedEmailTemplate) -> None:
    """Test template generation."""
    with patch("cordiq.api.routes.templates.get_template_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.generate_template = AsyncMock(return_value=generated_template)
        mock_service_getter.return_value = mock_service

        response = test_client.post(
            "/api/v1/templates/generate",
            json={"contact_id": "contact-456", "email_context": "Pilot follow-up"},
        )

    assert response.status_code == 200
    body = response.json()
    assert body["provider_id"] == "openrouter/openai/gpt-4-turbo"
    assert body["cached"] is False
    user_id, request = mock_service.generate_template.call_args.args
    assert user_id == "test-user-123"
    assert request.email_context == "Pilot follow-up"


def test_generate_template_validates_context_length(test_client: TestClient) -> None:
    """Test email context length cap."""
    response = test_client.post(
        "/api/v1/templates/generate",
        json={"contact_id": "contact-456", "email_context": "x" * 2001},
    )

    assert response.status_code == 422


def test_generate_template_all_providers_failed(test_client: TestClient) -> None:
    """Test provider chain exhaustion returns 502."""
    with patch("cordiq.api.routes.templates.get_template_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.generate_template = AsyncMock(side_effect=TemplateGenerationError())
        mock_service_getter.return_value = mock_service

        response = test_client.post(
            "/api/v1/templates/generate", json={"contact_id": "contact-456"}
        )

    assert response.status_code == 502
    assert response.json()["code"] == "TEMPLATE_GENERATION_ERROR"


def test_invalidate_template_cache(test_client: TestClient) -> None:
    """Test cache invalidation for a contact."""
    with patch("cordiq.api.routes.templates.get_template_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service_getter.return_value = mock_service

        response = test_client.delete("/api/v1/templates/cache/contact-456")

    assert response.status_code == 204
    mock_service.invalidate_contact.assert_awaited_once_with("test-user-123", "contact-456")


def test_cache_metrics_read_and_reset(test_client: TestClient, cache: ResponseCacheService) -> None:
    """Test the metrics endpoint reports and resets counters."""

    async def record_traffic() -> None:
        await cache.set("k", {"v": 1})
        await cache.get("k")
        await cache.get("missing")

    asyncio.run(record_traffic())

    first = test_client.get("/api/v1/metrics/cache")
    second = test_client.get("/api/v1/metrics/cache")

    assert first.status_code == 200
    assert first.json() == {"hits": 1, "misses": 1, "total": 2, "hit_rate": 0.5}
    assert second.json() == {"hits": 0, "misses": 0, "total": 0, "hit_rate": 0.0}


def test_health_check() -> None:
    """Test the health endpoint."""
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert isinstance(body["circuit_breakers"], dict)
