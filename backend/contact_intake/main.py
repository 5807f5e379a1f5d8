"""
Contact Intake API
FastAPI application receiving contact / voice-message submissions and
emailing them to the site owner.
"""

import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import List

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from contact_intake.config import Settings, get_settings
from contact_intake.dependencies import get_dispatcher, shutdown_services
from contact_intake.errors import FileTooLarge, IntakeError, ValidationError
from contact_intake.models.submission import ErrorResponse, HealthResponse
from contact_intake.routers import submissions
from contact_intake.services.mail_dispatcher import MailDispatcher
from contact_intake.services.upload_receiver import ensure_upload_dir

# Configure logging to output to console
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)

# Paths whose bodies carry an audio payload
_INGEST_PATHS = ("/upload", "/send-message")

# Room for the text fields and multipart framing on top of the audio itself
_FORM_OVERHEAD_BYTES = 1024 * 1024

app = FastAPI(
    title="Contact Intake API",
    description="Contact and voice-message form backend",
    version="0.1.0",
)


def get_cors_origins(settings: Settings) -> List[str]:
    """
    Build the list of allowed CORS origins.

    Read from the CORS_ORIGINS environment variable as a comma-separated
    list, e.g.:
        CORS_ORIGINS=https://aqa-sports.fr,http://localhost:5500

    Defaults to "*" (any origin), which is what a static site served from a
    different host needs. Duplicates are removed while preserving order.
    """
    seen: set = set()
    origins: List[str] = []
    for origin in settings.cors_origins:
        if origin not in seen:
            seen.add(origin)
            origins.append(origin)
    return origins


def max_request_bytes(settings: Settings, path: str) -> int:
    """
    Largest acceptable request body for an ingest path.

    JSON bodies carry the audio base64-encoded, which adds a third.
    """
    limit = settings.max_upload_bytes
    if path == "/send-message":
        limit = limit * 4 // 3 + 4
    return limit + _FORM_OVERHEAD_BYTES


@app.middleware("http")
async def limit_request_size(request: Request, call_next):
    """
    Reject oversized ingest requests from their Content-Length header,
    before the body is read or parsed. Chunked requests without a length
    are limited while the upload is streamed to disk.
    """
    if request.method == "POST" and request.url.path in _INGEST_PATHS:
        length = request.headers.get("content-length", "")
        settings = get_settings()
        if length.isdigit() and int(length) > max_request_bytes(settings, request.url.path):
            error = FileTooLarge(settings.max_upload_mb)
            logger.info(f"Rejected {request.url.path}: Content-Length {length} over limit")
            return JSONResponse(
                status_code=400,
                content=ErrorResponse(error=error.message, error_code=error.error_code).model_dump(),
            )
    return await call_next(request)


# Added last so it wraps the size limiter and its rejections carry CORS headers
_cors_origins = get_cors_origins(get_settings())

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    # Browsers refuse credentials with a wildcard origin
    allow_credentials="*" not in _cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Error handlers
# ---------------------------------------------------------------------------

@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=ErrorResponse(error=exc.message, error_code=exc.error_code).model_dump(),
    )


@app.exception_handler(IntakeError)
async def intake_error_handler(request: Request, exc: IntakeError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} failed: {exc.error_code}: {exc.message}")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal server error", error_code=exc.error_code).model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"{request.method} {request.url.path} failed with an unexpected error")
    return JSONResponse(
        status_code=500,
        content=ErrorResponse(error="Internal server error").model_dump(),
    )


# Include routers
app.include_router(submissions.router, tags=["submissions"])


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

@app.on_event("startup")
async def startup() -> None:
    """
    Prepare storage, check the mail transport and log where the API listens.

    The port shown is taken from the ``PORT`` environment variable
    (default 8000). A failing mail check is logged, not fatal: submissions
    will report the dispatch error when they happen.
    """
    settings = get_settings()
    upload_dir = ensure_upload_dir(settings)
    await run_in_threadpool(get_dispatcher().verify)

    port = os.getenv("PORT", "8000")
    logger.info(
        "Contact intake API running at http://localhost:%s\n"
        "  Upload endpoint: POST http://localhost:%s/upload\n"
        "  Messages view:   GET  http://localhost:%s/messages\n"
        "  Files saved to:  %s",
        port,
        port,
        port,
        Path(upload_dir).resolve(),
    )


@app.on_event("shutdown")
async def shutdown() -> None:
    shutdown_services()


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------

@app.get("/")
async def root():
    return {"message": "Contact Intake API", "version": "0.1.0"}


@app.get("/health", response_model=HealthResponse)
async def health():
    return HealthResponse(timestamp=datetime.now(timezone.utc).isoformat())


@app.get("/health/mail")
async def health_mail(dispatcher: MailDispatcher = Depends(get_dispatcher)):
    """
    Check that the configured mail transport is usable.

    Returns 503 when the check fails so uptime monitors notice broken
    credentials before a visitor does.
    """
    ok = await run_in_threadpool(dispatcher.verify)
    if not ok:
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "backend": dispatcher.name},
        )
    return {"status": "ok", "backend": dispatcher.name}
