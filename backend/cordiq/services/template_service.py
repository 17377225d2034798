"""Service for AI-generated email templates.

Generates a formal and a casual email for a contact, trying each configured
model in turn. Results are cached per user, contact and generation context
so repeated requests with the same inputs skip the LLM entirely.
"""

import logging
import math
import re
from typing import Any

from cordiq.core.cache import ResponseCacheService, get_response_cache
from cordiq.core.config import settings
from cordiq.core.exceptions import TemplateGenerationError
from cordiq.core.llm import LLMClient
from cordiq.db.supabase import SupabaseClient
from cordiq.models.email_template import (
    EmailVariant,
    GeneratedEmailTemplate,
    GenerateTemplateRequest,
)
from cordiq.security.sanitization import sanitize_prompt_input

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a professional networking assistant helping users maintain and strengthen their professional relationships.

Your role is to generate personalized, authentic email templates that help users:
- Follow up after meetings or events
- Check in with contacts periodically
- Maintain meaningful professional connections
- Show genuine interest in their contacts' work and achievements

Guidelines:
1. Keep emails concise (2-3 paragraphs maximum)
2. Be authentic and personable, not salesy or transactional
3. Reference specific context when available (notes, previous conversations, company, role)
4. Include a clear but soft call-to-action
5. Match the requested tone (formal or casual)
6. Output in the format: SUBJECT: [subject line]\\n\\nBODY: [email body]
"""

STYLE_INSTRUCTIONS: dict[str, tuple[str, str]] = {
    "formal": (
        "Generate a formal, professional email template",
        "Style: Formal and professional, suitable for business communications.",
    ),
    "casual": (
        "Generate a casual, friendly email template",
        "Style: Casual and friendly, more conversational and relaxed.",
    ),
}

# (field, prompt label, max length)
CONTACT_FIELDS: tuple[tuple[str, str, int], ...] = (
    ("name", "Contact Name", 100),
    ("email", "Contact Email", 100),
    ("company", "Company", 100),
    ("role", "Role", 100),
    ("priority", "Priority", 20),
    ("notes", "Notes", 1000),
)

_SUBJECT_RE = re.compile(r"SUBJECT:\s*(.+?)(?:\n\n|\nBODY:)", re.S)
_BODY_RE = re.compile(r"BODY:\s*(.+)", re.S)


def parse_email_response(response: str) -> EmailVariant:
    """Split ``SUBJECT: ... BODY: ...`` model output into an EmailVariant.

    Falls back to subject "Follow-up" and the raw text as body when the
    markers are missing. HTML is one ``<p>`` per blank-line-separated paragraph.
    """
    subject_match = _SUBJECT_RE.search(response)
    subject = subject_match.group(1).strip() if subject_match else "Follow-up"

    body_match = _BODY_RE.search(response)
    body = body_match.group(1).strip() if body_match else response

    body_html = "\n".join(f"<p>{paragraph.strip()}</p>" for paragraph in body.split("\n\n"))
    return EmailVariant(subject=subject, body=body, body_html=body_html)


class TemplateService:
    """Generates and caches email templates for contacts."""

    def __init__(
        self,
        llm: LLMClient | None = None,
        cache: ResponseCacheService | None = None,
        models: list[str] | None = None,
    ) -> None:
        self._llm = llm or LLMClient()
        self._cache = cache or get_response_cache()
        self._models = models or settings.llm_models_list

    @staticmethod
    def build_context(contact: dict[str, Any], request: GenerateTemplateRequest) -> dict[str, Any]:
        """Collect every input that changes the generated output."""
        context: dict[str, Any] = {
            field: contact.get(field) for field, _label, _limit in CONTACT_FIELDS
        }
        context["email_context"] = request.email_context
        context["conversation_history"] = request.conversation_history or []
        return context

    @staticmethod
    def _sanitize_context(context: dict[str, Any]) -> dict[str, Any]:
        clean: dict[str, Any] = {
            field: sanitize_prompt_input(context.get(field), field, limit)
            for field, _label, limit in CONTACT_FIELDS
        }
        clean["email_context"] = sanitize_prompt_input(context.get("email_context"), "email_context", 500)
        clean["conversation_history"] = [
            sanitize_prompt_input(message, f"conversation_history[{i}]", 500)
            for i, message in enumerate(context.get("conversation_history") or [])
        ]
        return clean

    @staticmethod
    def _build_contact_context(context: dict[str, Any]) -> str:
        parts = [
            f"{label}: {context[field]}"
            for field, label, _limit in CONTACT_FIELDS
            if context.get(field)
        ]
        history = [message for message in context["conversation_history"] if message]
        if history:
            parts.append("\nConversation History:")
            parts.extend(f"{i}. {message}" for i, message in enumerate(history, start=1))
        return "\n".join(parts)

    @staticmethod
    def _build_prompt(style: str, contact_context: str, email_context: str | None) -> str:
        opening, style_line = STYLE_INSTRUCTIONS[style]
        prompt = f"{opening} with the following context:\n\n{contact_context}"
        if email_context:
            prompt += f"\n\nAdditional Context: {email_context}"
        prompt += f"\n\n{style_line}"
        prompt += "\n\nOutput format: SUBJECT: [subject line]\\n\\nBODY: [email body]"
        return prompt

    async def _generate_with_model(self, model: str, context: dict[str, Any]) -> GeneratedEmailTemplate:
        contact_context = self._build_contact_context(context)
        variants: dict[str, EmailVariant] = {}
        characters = 0
        reported_tokens: int | None = 0
        for style in ("formal", "casual"):
            prompt = self._build_prompt(style, contact_context, context.get("email_context"))
            response = await self._llm.generate_response(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                system_prompt=SYSTEM_PROMPT,
                temperature=settings.LLM_TEMPERATURE,
            )
            variants[style] = parse_email_response(response.text)
            characters += len(prompt) + len(response.text)
            usage = response.prompt_tokens + response.completion_tokens
            if reported_tokens is not None:
                reported_tokens = reported_tokens + usage if usage else None

        return GeneratedEmailTemplate(
            formal=variants["formal"],
            casual=variants["casual"],
            provider_id=model,
            # Provider usage when every call reported it, else ~4 characters per token
            tokens_used=reported_tokens or math.ceil(characters / 4),
        )

    async def generate_template(
        self, user_id: str, request: GenerateTemplateRequest
    ) -> GeneratedEmailTemplate:
        """Return templates for a contact, from cache when possible.

        Args:
            user_id: The authenticated user.
            request: Contact and generation context.

        Returns:
            Formal and casual variants; ``cached`` tells whether the LLM ran.

        Raises:
            NotFoundError: If the contact does not exist.
            AuthorizationError: If the contact belongs to another user.
            TemplateGenerationError: If every model in the chain fails.
        """
        contact = await SupabaseClient.get_owned_contact(user_id, request.contact_id)
        context = self.build_context(contact, request)
        cache_key = self._cache.generate_cache_key(user_id, request.contact_id, context)

        cached = await self._cache.get(cache_key)
        if cached is not None:
            try:
                template = GeneratedEmailTemplate.model_validate(cached)
            except ValueError:
                logger.warning("Discarding malformed cached template", extra={"cache_key": cache_key})
            else:
                logger.info(
                    "Email template served from cache",
                    extra={"user_id": user_id, "contact_id": request.contact_id},
                )
                return template.model_copy(update={"cached": True})

        sanitized = self._sanitize_context(context)
        logger.info(
            "Generating email template",
            extra={"user_id": user_id, "contact_id": request.contact_id},
        )
        for model in self._models:
            try:
                template = await self._generate_with_model(model, sanitized)
            except Exception as e:
                logger.warning("Failed to generate with %s: %s", model, e)
                continue
            logger.info("Successfully generated email templates using %s", model)
            await self._cache.set(cache_key, template.model_dump(mode="json"))
            return template

        raise TemplateGenerationError(attempted_models=list(self._models))

    async def invalidate_contact(self, user_id: str, contact_id: str) -> None:
        """Forget cached templates for a contact, e.g. after its details change."""
        await self._cache.invalidate(user_id, contact_id)


_template_service: TemplateService | None = None


def get_template_service() -> TemplateService:
    """Get or create the template service singleton."""
    global _template_service
    if _template_service is None:
        _template_service = TemplateService()
    return _template_service
