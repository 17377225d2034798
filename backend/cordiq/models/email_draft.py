"""Pydantic models for email drafts."""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class DraftSortField(str, Enum):
    """Fields drafts can be listed by."""

    UPDATED_AT = "updated_at"
    CREATED_AT = "created_at"


class SortOrder(str, Enum):
    """Sort direction."""

    ASC = "asc"
    DESC = "desc"


class DraftContent(BaseModel):
    """Editable content of an in-progress email draft."""

    subject: str | None = Field(None, description="Subject line")
    body_html: str | None = Field(None, description="Rendered rich-text body")
    body_json: dict[str, Any] | None = Field(None, description="Structured editor document")
    attachments: list[dict[str, Any]] | None = Field(None, description="Attachment metadata")
    signature_id: str | None = Field(None, description="Selected signature")

    def is_empty(self) -> bool:
        """True for the pristine editor state: no subject, no body of either kind."""
        return not self.subject and not self.body_html and not self.body_json


class DraftSnapshot(DraftContent):
    """Draft content as written to local storage, stamped with its capture time."""

    model_config = ConfigDict(populate_by_name=True)

    captured_at_millis: int = Field(
        ..., alias="timestamp", gt=0, description="Capture time in epoch milliseconds"
    )

    def content(self) -> DraftContent:
        """The snapshot's content without the capture timestamp."""
        return DraftContent.model_validate(self.model_dump(exclude={"captured_at_millis"}))


class AutoSaveDraftInput(DraftContent):
    """Request model for the remote auto-save upsert."""

    contact_id: str = Field(..., min_length=1, description="Contact the draft is addressed to")
    last_synced_at: datetime | None = Field(
        None, description="When the client last synced; used for conflict detection"
    )


class EmailDraftResponse(BaseModel):
    """Response model for the authoritative (remote) draft."""

    id: str = Field(..., description="Draft ID")
    user_id: str = Field(..., description="Owner user ID")
    contact_id: str = Field(..., description="Contact ID")
    subject: str | None = Field(None, description="Subject line")
    body_html: str | None = Field(None, description="Sanitized HTML body")
    body_json: dict[str, Any] | None = Field(None, description="Structured editor document")
    attachments: list[dict[str, Any]] | None = Field(None, description="Attachment metadata")
    signature_id: str | None = Field(None, description="Selected signature")
    version: int = Field(1, ge=1, description="Incremented on every update")
    created_at: datetime = Field(..., description="Creation timestamp")
    updated_at: datetime = Field(..., description="Last update timestamp")
    last_synced_at: datetime | None = Field(None, description="Client sync time of last save")

    def content(self) -> DraftContent:
        """The editable part of the draft."""
        return DraftContent(
            subject=self.subject,
            body_html=self.body_html,
            body_json=self.body_json,
            attachments=self.attachments,
            signature_id=self.signature_id,
        )

    @property
    def updated_at_millis(self) -> int:
        """``updated_at`` in epoch milliseconds; naive timestamps are read as UTC."""
        updated_at = self.updated_at if self.updated_at.tzinfo else self.updated_at.replace(tzinfo=UTC)
        return (updated_at - _EPOCH) // timedelta(milliseconds=1)


class PageInfo(BaseModel):
    """Pagination details for a draft listing."""

    has_next_page: bool
    total: int = Field(..., ge=0)


class EmailDraftConnection(BaseModel):
    """Paginated list of drafts."""

    edges: list[EmailDraftResponse]
    page_info: PageInfo
