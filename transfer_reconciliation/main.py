"""Transfer Reconciliation - FastAPI Application."""

import time
import traceback
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from transfer_reconciliation import __version__
from transfer_reconciliation.config import settings
from transfer_reconciliation.logger import configure_logging, get_logger
from transfer_reconciliation.routers import transfers
from transfer_reconciliation.services.transfer_scoring import (
    MatchingConfigurationError,
    load_transfer_matching_config,
)

# Initialize logging early
configure_logging()
logger = get_logger(__name__)


app = FastAPI(
    title="Transfer Reconciliation API",
    description="Pairs the two legs of inter-account transfers in a personal ledger",
    version=__version__,
)


@app.middleware("http")
async def logging_middleware(request: Request, call_next: Any) -> Response:
    """Middleware to inject Request-ID and log request details."""
    request_id = request.headers.get("X-Request-ID", str(uuid4()))

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(
        request_id=request_id,
        method=request.method,
        path=request.url.path,
    )

    start_time = time.perf_counter()
    try:
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        logger.info(
            "HTTP Request",
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )

        response.headers["X-Request-ID"] = request_id
        return response
    except Exception as exc:
        duration = time.perf_counter() - start_time
        logger.exception(
            "HTTP Request Failed",
            duration_ms=round(duration * 1000, 2),
            error=str(exc),
        )
        raise


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler to ensure JSON response."""
    # Only show exception details in DEBUG mode
    if settings.debug:
        detail = str(exc)
        trace = traceback.format_exc()
    else:
        detail = "An internal server error occurred. Please try again later."
        trace = None

    return JSONResponse(
        status_code=500,
        content={
            "detail": detail,
            "trace": trace,
            "request_id": structlog.contextvars.get_contextvars().get("request_id"),
        },
    )


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-Request-ID"],
)

app.include_router(transfers.router)


@app.get("/health")
def health_check() -> Response:
    """Report whether the matching configuration loads and validates.

    Returns 200 when it does, 503 otherwise.
    """
    checks: dict[str, bool] = {}
    try:
        load_transfer_matching_config()
        checks["matching_config"] = True
    except MatchingConfigurationError as exc:
        logger.error("Health check: matching configuration invalid", error=str(exc))
        checks["matching_config"] = False

    all_healthy = all(checks.values())
    return JSONResponse(
        status_code=200 if all_healthy else 503,
        content={
            "status": "healthy" if all_healthy else "unhealthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "checks": checks,
            "version": __version__,
        },
    )
