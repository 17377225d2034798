"""Supabase client module for database operations."""

import logging
from typing import Any, cast

from supabase import Client, create_client

from cordiq.core.circuit_breaker import CircuitBreakerOpen, get_circuit_breaker
from cordiq.core.config import settings
from cordiq.core.exceptions import AuthorizationError, DatabaseError, NotFoundError

logger = logging.getLogger(__name__)

supabase_circuit_breaker = get_circuit_breaker("supabase")


class SupabaseClient:
    """Singleton Supabase client for backend operations."""

    _client: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """Get or create the Supabase client singleton.

        Returns:
            Initialized Supabase client.

        Raises:
            DatabaseError: If client initialization fails.
        """
        if cls._client is None:
            try:
                cls._client = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                logger.exception("Failed to initialize Supabase client")
                raise DatabaseError(f"Failed to initialize database connection: {e}") from e
        return cls._client

    @classmethod
    def reset_client(cls) -> None:
        """Reset the client singleton (useful for testing)."""
        cls._client = None

    @classmethod
    async def get_owned_contact(cls, user_id: str, contact_id: str) -> dict[str, Any]:
        """Fetch a contact and check that it belongs to ``user_id``.

        Args:
            user_id: The authenticated user's UUID.
            contact_id: The contact's UUID.

        Returns:
            Contact row.

        Raises:
            NotFoundError: If the contact does not exist.
            AuthorizationError: If the contact belongs to another user.
            DatabaseError: If the query fails.
        """
        try:
            with supabase_circuit_breaker.guard():
                response = (
                    cls.get_client()
                    .table("contacts")
                    .select("*")
                    .eq("id", contact_id)
                    .limit(1)
                    .execute()
                )
        except CircuitBreakerOpen:
            raise
        except Exception as e:
            logger.exception("Error fetching contact", extra={"contact_id": contact_id})
            raise DatabaseError(f"Failed to fetch contact: {e}") from e

        if not response.data:
            raise NotFoundError("Contact", contact_id)
        contact = cast(dict[str, Any], response.data[0])
        if contact.get("user_id") != user_id:
            logger.warning(
                "Contact ownership check failed",
                extra={"user_id": user_id, "contact_id": contact_id},
            )
            raise AuthorizationError("You do not have permission to access this contact")
        return contact
