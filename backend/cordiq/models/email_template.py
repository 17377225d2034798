"""Pydantic models for AI email template generation."""

from typing import Any

from pydantic import BaseModel, Field


class GenerateTemplateRequest(BaseModel):
    """Request model for generating templates for a contact."""

    contact_id: str = Field(..., min_length=1, description="Contact to write to")
    email_context: str | None = Field(
        None, max_length=2000, description="What the email should be about"
    )
    conversation_history: list[str] | None = Field(
        None, max_length=20, description="Recent messages exchanged with the contact"
    )


class EmailVariant(BaseModel):
    """One generated email in a given tone."""

    subject: str
    body: str
    body_html: str


class GeneratedEmailTemplate(BaseModel):
    """Formal and casual variants generated for one contact."""

    formal: EmailVariant
    casual: EmailVariant
    provider_id: str = Field(..., description="Model that produced the variants")
    tokens_used: int = Field(..., ge=0, description="Approximate tokens spent")
    cached: bool = Field(False, description="Served from the response cache")


class CacheMetricsResponse(BaseModel):
    """Hit/miss counts since the previous read."""

    hits: int
    misses: int
    total: int
    hit_rate: float

    @classmethod
    def from_metrics(cls, metrics: Any) -> "CacheMetricsResponse":
        return cls(
            hits=metrics.hits,
            misses=metrics.misses,
            total=metrics.total,
            hit_rate=metrics.hit_rate,
        )
