"""Drafts API routes: the remote tier of draft auto-save."""

import logging
from typing import Any

from fastapi import APIRouter, Query
from pydantic import BaseModel

from cordiq.api.deps import CurrentUser
from cordiq.models.email_draft import (
    AutoSaveDraftInput,
    DraftSortField,
    EmailDraftConnection,
    EmailDraftResponse,
    SortOrder,
)
from cordiq.services.draft_service import get_draft_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/drafts", tags=["drafts"])


class DeleteDraftResponse(BaseModel):
    """Whether a draft existed and was removed."""

    deleted: bool


@router.post("/auto-save", response_model=EmailDraftResponse)
async def auto_save_draft(current_user: CurrentUser, request: AutoSaveDraftInput) -> dict[str, Any]:
    """Create or update the draft for a contact.

    Conflicts (another client saved after this client's last sync) return 409.
    """
    return await get_draft_service().auto_save_draft(
        user_id=current_user.id,
        contact_id=request.contact_id,
        draft_input=request,
    )


@router.get("/contact/{contact_id}", response_model=EmailDraftResponse | None)
async def get_draft_by_contact(current_user: CurrentUser, contact_id: str) -> dict[str, Any] | None:
    """Get the draft for a contact; JSON ``null`` when there is none."""
    return await get_draft_service().get_draft_by_contact(current_user.id, contact_id)


@router.get("", response_model=EmailDraftConnection)
async def list_drafts(
    current_user: CurrentUser,
    skip: int = Query(0, ge=0),
    take: int = Query(10, ge=1, le=100),
    sort_by: DraftSortField = Query(DraftSortField.UPDATED_AT),
    sort_order: SortOrder = Query(SortOrder.DESC),
) -> dict[str, Any]:
    """List the user's drafts with pagination."""
    connection = await get_draft_service().list_drafts(
        current_user.id, skip=skip, take=take, sort_by=sort_by, sort_order=sort_order
    )
    logger.info(
        "Drafts listed",
        extra={"user_id": current_user.id, "count": len(connection["edges"])},
    )
    return connection


@router.delete("/contact/{contact_id}", response_model=DeleteDraftResponse)
async def delete_draft(current_user: CurrentUser, contact_id: str) -> dict[str, bool]:
    """Delete the draft for a contact."""
    deleted = await get_draft_service().delete_draft(current_user.id, contact_id)
    return {"deleted": deleted}
