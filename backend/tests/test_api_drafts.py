"""Tests for drafts API routes."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi.testclient import TestClient

from cordiq.api.deps import get_current_user
from cordiq.core.circuit_breaker import CircuitBreakerOpen
from cordiq.core.exceptions import AuthorizationError, ConflictError, NotFoundError
from cordiq.main import app


@pytest.fixture
def mock_current_user() -> MagicMock:
    """Create a mock current user."""
    user = MagicMock()
    user.id = "test-user-123"
    return user


@pytest.fixture
def test_client(mock_current_user: MagicMock) -> TestClient:
    """Create a test client with authentication override."""

    async def override_get_current_user() -> MagicMock:
        return mock_current_user

    app.dependency_overrides[get_current_user] = override_get_current_user
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def sample_draft() -> dict[str, Any]:
    """Create a sample draft row."""
    return {
        "id": "draft-123",
        "user_id": "test-user-123",
        "contact_id": "contact-456",
        "subject": "Hello",
        "body_html": "<p>Hi there!</p>",
        "body_json": {"type": "doc", "content": []},
        "attachments": [],
        "signature_id": None,
        "version": 2,
        "created_at": "2026-02-03T10:00:00Z",
        "updated_at": "2026-02-03T10:05:00Z",
        "last_synced_at": "2026-02-03T10:05:00Z",
    }


def test_auto_save_success(test_client: TestClient, sample_draft: dict[str, Any]) -> None:
    """Test successful auto-save."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.auto_save_draft = AsyncMock(return_value=sample_draft)
        mock_service_getter.return_value = mock_service

        response = test_client.post(
            "/api/v1/drafts/auto-save",
            json={
                "contact_id": "contact-456",
                "subject": "Hello",
                "body_html": "<p>Hi there!</p>",
                "last_synced_at": "2026-02-03T10:05:00Z",
            },
        )

    assert response.status_code == 200
    assert response.json()["version"] == 2
    call_kwargs = mock_service.auto_save_draft.call_args.kwargs
    assert call_kwargs["user_id"] == "test-user-123"
    assert call_kwargs["contact_id"] == "contact-456"
    assert call_kwargs["draft_input"].subject == "Hello"


def test_auto_save_requires_contact_id(test_client: TestClient) -> None:
    """Test auto-save validation."""
    response = test_client.post("/api/v1/drafts/auto-save", json={"subject": "Hello"})

    assert response.status_code == 422


def test_auto_save_conflict_returns_409(test_client: TestClient) -> None:
    """Test conflicts surface as 409 with the error code."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.auto_save_draft = AsyncMock(
            side_effect=ConflictError("Draft has been modified by another client.")
        )
        mock_service_getter.return_value = mock_service

        response = test_client.post(
            "/api/v1/drafts/auto-save", json={"contact_id": "contact-456", "subject": "x"}
        )

    assert response.status_code == 409
    body = response.json()
    assert body["code"] == "CONFLICT"
    assert body["detail"] == "Draft has been modified by another client."
    assert body["request_id"]


def test_auto_save_forbidden_contact(test_client: TestClient) -> None:
    """Test drafting to another user's contact is rejected."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.auto_save_draft = AsyncMock(side_effect=AuthorizationError())
        mock_service_getter.return_value = mock_service

        response = test_client.post(
            "/api/v1/drafts/auto-save", json={"contact_id": "contact-456", "subject": "x"}
        )

    assert response.status_code == 403


def test_get_draft_by_contact(test_client: TestClient, sample_draft: dict[str, Any]) -> None:
    """Test fetching a contact's draft."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.get_draft_by_contact = AsyncMock(return_value=sample_draft)
        mock_service_getter.return_value = mock_service

        response = test_client.get("/api/v1/drafts/contact/contact-456")

    assert response.status_code == 200
    assert response.json()["id"] == "draft-123"
    mock_service.get_draft_by_contact.assert_called_once_with("test-user-123", "contact-456")


def test_get_draft_by_contact_none(test_client: TestClient) -> None:
    """Test a contact without a draft returns null."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.get_draft_by_contact = AsyncMock(return_value=None)
        mock_service_getter.return_value = mock_service

        response = test_client.get("/api/v1/drafts/contact/contact-456")

    assert response.status_code == 200
    assert response.json() is None


def test_get_draft_unknown_contact(test_client: TestClient) -> None:
    """Test an unknown contact returns 404."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.get_draft_by_contact = AsyncMock(
            side_effect=NotFoundError("Contact", "contact-456")
        )
        mock_service_getter.return_value = mock_service

        response = test_client.get("/api/v1/drafts/contact/contact-456")

    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


def test_list_drafts(test_client: TestClient, sample_draft: dict[str, Any]) -> None:
    """Test listing drafts with pagination parameters."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.list_drafts = AsyncMock(
            return_value={
                "edges": [sample_draft],
                "page_info": {"has_next_page": True, "total": 12},
            }
        )
        mock_service_getter.return_value = mock_service

        response = test_client.get(
            "/api/v1/drafts?skip=10&take=1&sort_by=created_at&sort_order=asc"
        )

    assert response.status_code == 200
    body = response.json()
    assert len(body["edges"]) == 1
    assert body["page_info"] == {"has_next_page": True, "total": 12}
    call_kwargs = mock_service.list_drafts.call_args.kwargs
    assert call_kwargs["skip"] == 10
    assert call_kwargs["take"] == 1
    assert call_kwargs["sort_by"].value == "created_at"
    assert call_kwargs["sort_order"].value == "asc"


def test_list_drafts_rejects_large_page(test_client: TestClient) -> None:
    """Test the page size cap."""
    response = test_client.get("/api/v1/drafts?take=500")

    assert response.status_code == 422


def test_delete_draft(test_client: TestClient) -> None:
    """Test deleting a contact's draft."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.delete_draft = AsyncMock(return_value=True)
        mock_service_getter.return_value = mock_service

        response = test_client.delete("/api/v1/drafts/contact/contact-456")

    assert response.status_code == 200
    assert response.json() == {"deleted": True}


def test_open_circuit_returns_503(test_client: TestClient) -> None:
    """Test a tripped database breaker becomes a 503."""
    with patch("cordiq.api.routes.drafts.get_draft_service") as mock_service_getter:
        mock_service = AsyncMock()
        mock_service.get_draft_by_contact = AsyncMock(side_effect=CircuitBreakerOpen("supabase"))
        mock_service_getter.return_value = mock_service

        response = test_client.get("/api/v1/drafts/contact/contact-456")

    assert response.status_code == 503
    assert response.json()["code"] == "SERVICE_UNAVAILABLE"


def test_drafts_require_authentication() -> None:
    """Test requests without a token are rejected."""
    app.dependency_overrides.clear()
    client = TestClient(app)

    response = client.get("/api/v1/drafts")

    assert response.status_code == 401
