"""FastAPI dependencies for authentication and shared services."""

import logging
from typing import Annotated, Any

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from cordiq.core.cache import ResponseCacheService, get_response_cache
from cordiq.core.exceptions import AuthenticationError
from cordiq.db.supabase import SupabaseClient

logger = logging.getLogger(__name__)

# HTTP Bearer token security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
) -> Any:
    """Validate the Supabase JWT and return the user it belongs to.

    Args:
        credentials: HTTP Bearer token credentials.

    Returns:
        Validated user object from Supabase.

    Raises:
        HTTPException: If authentication fails.
    """
    if credentials is None:
        logger.warning("AUTH: No credentials provided in request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        response = SupabaseClient.get_client().auth.get_user(credentials.credentials)
        if response is None or response.user is None:
            raise AuthenticationError("Invalid authentication token")
        return response.user

    except AuthenticationError as e:
        logger.warning("AUTH: %s", e.message)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    except Exception as e:
        logger.exception("AUTH: Unexpected error during token validation")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


CurrentUser = Annotated[Any, Depends(get_current_user)]
ResponseCache = Annotated[ResponseCacheService, Depends(get_response_cache)]
