"""Email template generation API routes."""

import logging

from fastapi import APIRouter, status

from cordiq.api.deps import CurrentUser
from cordiq.models.email_template import GeneratedEmailTemplate, GenerateTemplateRequest
from cordiq.services.template_service import get_template_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/templates", tags=["templates"])


@router.post("/generate", response_model=GeneratedEmailTemplate)
async def generate_template(
    current_user: CurrentUser, request: GenerateTemplateRequest
) -> GeneratedEmailTemplate:
    """Generate formal and casual templates for a contact."""
    template = await get_template_service().generate_template(current_user.id, request)
    logger.info(
        "Email template returned",
        extra={
            "user_id": current_user.id,
            "contact_id": request.contact_id,
            "cached": template.cached,
            "provider_id": template.provider_id,
        },
    )
    return template


@router.delete("/cache/{contact_id}", status_code=status.HTTP_204_NO_CONTENT)
async def invalidate_template_cache(current_user: CurrentUser, contact_id: str) -> None:
    """Drop cached templates for a contact."""
    await get_template_service().invalidate_contact(current_user.id, contact_id)
