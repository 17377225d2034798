"""Service for the authoritative (remote) email draft store.

Each user has at most one draft per contact. Clients call ``auto_save_draft``
on a debounce; ``updated_at`` on the stored row is the reference other
clients use to decide whether their local copy is newer.
"""

import logging
from datetime import UTC, datetime
from typing import Any, cast

from cordiq.core.circuit_breaker import CircuitBreakerOpen
from cordiq.core.exceptions import ConflictError, CordiqException, EmailDraftError
from cordiq.db.supabase import SupabaseClient, supabase_circuit_breaker
from cordiq.models.email_draft import AutoSaveDraftInput, DraftSortField, SortOrder
from cordiq.security.sanitization import sanitize_html

logger = logging.getLogger(__name__)

DRAFTS_TABLE = "email_drafts"
EMPTY_DOCUMENT: dict[str, Any] = {"type": "doc", "content": []}


def _as_utc(value: Any) -> datetime | None:
    """Coerce a stored or client timestamp to an aware datetime (naive means UTC)."""
    if value is None:
        return None
    parsed = value if isinstance(value, datetime) else datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


class EmailDraftService:
    """CRUD for per-contact email drafts in Supabase."""

    async def _find_draft(self, user_id: str, contact_id: str) -> dict[str, Any] | None:
        with supabase_circuit_breaker.guard():
            result = (
                SupabaseClient.get_client()
                .table(DRAFTS_TABLE)
                .select("*")
                .eq("user_id", user_id)
                .eq("contact_id", contact_id)
                .limit(1)
                .execute()
            )
        return cast(dict[str, Any], result.data[0]) if result.data else None

    async def auto_save_draft(
        self,
        user_id: str,
        contact_id: str,
        draft_input: AutoSaveDraftInput,
    ) -> dict[str, Any]:
        """Create or update the user's draft for a contact.

        Args:
            user_id: The authenticated user.
            contact_id: The contact the draft is addressed to.
            draft_input: Draft content and the client's last sync time.

        Returns:
            The stored draft row.

        Raises:
            NotFoundError: If the contact does not exist.
            AuthorizationError: If the contact belongs to another user.
            ConflictError: If another client saved after this client's last sync.
            EmailDraftError: If the write fails.
        """
        await SupabaseClient.get_owned_contact(user_id, contact_id)

        try:
            existing = await self._find_draft(user_id, contact_id)

            client_synced_at = _as_utc(draft_input.last_synced_at)
            if existing and client_synced_at:
                stored_synced_at = _as_utc(existing.get("last_synced_at"))
                if stored_synced_at and client_synced_at < stored_synced_at:
                    raise ConflictError(
                        "Draft has been modified by another client. Please refresh and try again.",
                        resource="EmailDraft",
                    )

            last_synced_at = client_synced_at or datetime.now(UTC)
            draft_data: dict[str, Any] = {
                "subject": draft_input.subject or "",
                "body_json": draft_input.body_json or EMPTY_DOCUMENT,
                "body_html": sanitize_html(draft_input.body_html or ""),
                "attachments": draft_input.attachments or [],
                "signature_id": draft_input.signature_id,
                "last_synced_at": last_synced_at.isoformat(),
            }

            client = SupabaseClient.get_client()
            with supabase_circuit_breaker.guard():
                if existing:
                    draft_data["version"] = int(existing.get("version") or 1) + 1
                    result = (
                        client.table(DRAFTS_TABLE)
                        .update(draft_data)
                        .eq("user_id", user_id)
                        .eq("contact_id", contact_id)
                        .execute()
                    )
                else:
                    draft_data.update({"user_id": user_id, "contact_id": contact_id, "version": 1})
                    result = client.table(DRAFTS_TABLE).insert(draft_data).execute()

            if not result.data:
                raise EmailDraftError("Failed to store draft")

            saved = cast(dict[str, Any], result.data[0])
            logger.info(
                "Draft auto-saved",
                extra={
                    "user_id": user_id,
                    "contact_id": contact_id,
                    "draft_id": saved.get("id"),
                    "version": saved.get("version"),
                },
            )
            return saved

        except (CordiqException, CircuitBreakerOpen):
            raise
        except Exception as e:
            logger.exception("Failed to auto-save draft")
            raise EmailDraftError(str(e)) from e

    async def get_draft_by_contact(self, user_id: str, contact_id: str) -> dict[str, Any] | None:
        """Get the user's draft for a contact.

        Returns:
            The draft row, or None if no draft exists.

        Raises:
            NotFoundError: If the contact does not exist.
            AuthorizationError: If the contact belongs to another user.
            EmailDraftError: If the query fails.
        """
        await SupabaseClient.get_owned_contact(user_id, contact_id)
        try:
            return await self._find_draft(user_id, contact_id)
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Failed to get draft")
            raise EmailDraftError(str(e)) from e

    async def list_drafts(
        self,
        user_id: str,
        skip: int = 0,
        take: int = 10,
        sort_by: DraftSortField = DraftSortField.UPDATED_AT,
        sort_order: SortOrder = SortOrder.DESC,
    ) -> dict[str, Any]:
        """List the user's drafts, newest first by default.

        Args:
            user_id: The authenticated user.
            skip: Number of drafts to skip.
            take: Page size.
            sort_by: Column to order by.
            sort_order: Direction.

        Returns:
            ``{"edges": [...], "page_info": {"has_next_page", "total"}}``.
        """
        try:
            with supabase_circuit_breaker.guard():
                result = (
                    SupabaseClient.get_client()
                    .table(DRAFTS_TABLE)
                    .select("*", count="exact")
                    .eq("user_id", user_id)
                    .order(sort_by.value, desc=sort_order == SortOrder.DESC)
                    .range(skip, skip + take - 1)
                    .execute()
                )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Failed to list drafts")
            raise EmailDraftError(str(e)) from e

        edges = cast(list[dict[str, Any]], result.data or [])
        total = result.count if result.count is not None else len(edges)
        return {
            "edges": edges,
            "page_info": {"has_next_page": skip + take < total, "total": total},
        }

    async def delete_draft(self, user_id: str, contact_id: str) -> bool:
        """Delete the user's draft for a contact.

        Returns:
            True if a draft was deleted, False if none existed.

        Raises:
            NotFoundError: If the contact does not exist.
            AuthorizationError: If the contact belongs to another user.
            EmailDraftError: If the delete fails.
        """
        await SupabaseClient.get_owned_contact(user_id, contact_id)
        try:
            existing = await self._find_draft(user_id, contact_id)
            if existing is None:
                return False
            with supabase_circuit_breaker.guard():
                (
                    SupabaseClient.get_client()
                    .table(DRAFTS_TABLE)
                    .delete()
                    .eq("user_id", user_id)
                    .eq("contact_id", contact_id)
                    .execute()
                )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Failed to delete draft")
            raise EmailDraftError(str(e)) from e

        logger.info("Draft deleted", extra={"user_id": user_id, "contact_id": contact_id})
        return True


_draft_service: EmailDraftService | None = None


def get_draft_service() -> EmailDraftService:
    """Get or create the draft service singleton."""
    global _draft_service
    if _draft_service is None:
        _draft_service = EmailDraftService()
    return _draft_service
