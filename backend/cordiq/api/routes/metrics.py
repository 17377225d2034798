"""Observability routes."""

from fastapi import APIRouter

from cordiq.api.deps import CurrentUser, ResponseCache
from cordiq.models.email_template import CacheMetricsResponse

router = APIRouter(prefix="/metrics", tags=["metrics"])


@router.get("/cache", response_model=CacheMetricsResponse)
async def cache_metrics(_current_user: CurrentUser, cache: ResponseCache) -> CacheMetricsResponse:
    """Response cache hit/miss counts since the previous call.

    Reading resets the counters, so each scrape sees only new traffic.
    """
    return CacheMetricsResponse.from_metrics(cache.get_metrics())
