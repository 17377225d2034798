"""Cordiq API - Main FastAPI Application."""

import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from cordiq.api.routes import drafts, metrics, templates
from cordiq.core.circuit_breaker import CircuitBreakerOpen, circuit_states
from cordiq.core.config import Settings, settings
from cordiq.core.exceptions import CordiqException, sanitize_error


# Configure logging: JSON for production, text for dev
def _configure_logging(config: Settings) -> None:
    """Set up logging from the LOG_FORMAT and LOG_LEVEL settings.

    json: Structured JSON via python-json-logger.
    text: Human-readable format (for local development).
    """
    log_format = config.LOG_FORMAT
    log_level = config.LOG_LEVEL.upper()

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level, logging.INFO))

    # Remove existing handlers to avoid duplicate output
    root_logger.handlers.clear()

    handler = logging.StreamHandler()

    if log_format == "json":
        from pythonjsonlogger.json import JsonFormatter

        formatter = JsonFormatter(
            fmt="%(asctime)s %(levelname)s %(name)s %(message)s",
            rename_fields={
                "asctime": "timestamp",
                "levelname": "level",
                "name": "service",
            },
            static_fields={"app": "cordiq-api"},
        )
        handler.setFormatter(formatter)
    else:
        handler.setFormatter(
            logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
        )

    root_logger.addHandler(handler)


_configure_logging(settings)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> Any:
    """Connect the response cache on startup and close it on shutdown."""
    from cordiq.core.cache import get_response_cache

    logger.info("Starting Cordiq API...")
    cache = get_response_cache()
    await cache.connect()
    yield
    logger.info("Shutting down Cordiq API...")
    await cache.close()


def get_cors_origins() -> list[str]:
    """Get CORS origins from settings, with a local fallback."""
    return settings.cors_origins_list or ["http://localhost:3000"]


app = FastAPI(
    title="Cordiq API",
    description="Relationship management: email drafts and AI templates",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(drafts.router, prefix="/api/v1")
app.include_router(templates.router, prefix="/api/v1")
app.include_router(metrics.router, prefix="/api/v1")


@app.get("/health", tags=["system"])
async def health_check() -> dict[str, Any]:
    """Liveness check with circuit breaker states."""
    return {"status": "healthy", "circuit_breakers": circuit_states()}


@app.exception_handler(CordiqException)
async def cordiq_exception_handler(request: Request, exc: CordiqException) -> JSONResponse:
    """Render domain exceptions as ``{detail, code, request_id}``."""
    request_id = str(uuid.uuid4())
    logger.warning(
        "Cordiq exception occurred",
        extra={
            "code": exc.code,
            "status_code": exc.status_code,
            "request_id": request_id,
            "path": request.url.path,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code, "request_id": request_id},
    )


@app.exception_handler(CircuitBreakerOpen)
async def circuit_open_handler(request: Request, exc: CircuitBreakerOpen) -> JSONResponse:
    """Refused calls to a tripped dependency become 503s."""
    request_id = str(uuid.uuid4())
    logger.warning(
        "Circuit open for %s",
        exc.service_name,
        extra={"request_id": request_id, "path": request.url.path},
    )
    return JSONResponse(
        status_code=503,
        content={
            "detail": sanitize_error(exc),
            "code": "SERVICE_UNAVAILABLE",
            "request_id": request_id,
        },
    )
