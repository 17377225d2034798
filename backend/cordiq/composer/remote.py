"""Remote draft store: the authoritative, cross-device tier of auto-save."""

import logging
from typing import Any, Protocol

import httpx

from cordiq.models.email_draft import AutoSaveDraftInput, EmailDraftResponse

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class RemoteDraftStore(Protocol):
    """Operations the composer needs from the backend. Retrying either is safe."""

    async def auto_save_draft(self, draft_input: AutoSaveDraftInput) -> EmailDraftResponse: ...

    async def get_draft_by_contact(self, contact_id: str) -> EmailDraftResponse | None: ...


class RemoteDraftStoreError(Exception):
    """Raised when the drafts API cannot be reached or rejects a call."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: Any = None,
    ) -> None:
        """Initialize RemoteDraftStoreError.

        Args:
            message: Error message.
            status_code: HTTP status code, None for transport failures.
            details: Error body returned by the API, if any.
        """
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class HttpRemoteDraftStore:
    """Calls the Cordiq drafts API with a user's bearer token."""

    def __init__(
        self,
        base_url: str,
        access_token: str,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._headers = {
            "Authorization": f"Bearer {access_token}",
            "Content-Type": "application/json",
        }
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, json: Any = None) -> Any:
        url = f"{self._base_url}/api/v1{path}"
        try:
            response = await self._get_client().request(method, url, json=json, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            try:
                details = e.response.json()
                message = details.get("detail", str(details))
            except ValueError:
                details = e.response.text
                message = f"Drafts API error: {status_code}"
            logger.error("Drafts API error: status=%s message=%s", status_code, message)
            raise RemoteDraftStoreError(message, status_code=status_code, details=details) from e
        except httpx.RequestError as e:
            logger.error("Drafts API connection error: %s", e)
            raise RemoteDraftStoreError(f"Failed to reach drafts API: {e}") from e
        return response.json()

    async def auto_save_draft(self, draft_input: AutoSaveDraftInput) -> EmailDraftResponse:
        payload = draft_input.model_dump(mode="json", exclude_none=True)
        data = await self._request("POST", "/drafts/auto-save", json=payload)
        return EmailDraftResponse.model_validate(data)

    async def get_draft_by_contact(self, contact_id: str) -> EmailDraftResponse | None:
        data = await self._request("GET", f"/drafts/contact/{contact_id}")
        return EmailDraftResponse.model_validate(data) if data else None
