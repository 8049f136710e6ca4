"""FastAPI application factory for the savings box API."""

from __future__ import annotations

from typing import Any

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from savings.api import routes
from savings.exceptions import (
    BoxNotFound,
    ConcurrentModification,
    ExternalRateUnavailable,
    InsufficientBalance,
    InvalidInput,
    InvalidInvestmentConfig,
    SavingsError,
)

log = structlog.get_logger(__name__)

# Most specific first; SavingsError itself is the 400 catch-all
_STATUS_BY_ERROR: tuple[tuple[type[SavingsError], int], ...] = (
    (BoxNotFound, 404),
    (ConcurrentModification, 409),
    (ExternalRateUnavailable, 503),
    (InsufficientBalance, 400),
    (InvalidInput, 400),
    (InvalidInvestmentConfig, 400),
)


def status_for(exc: SavingsError) -> int:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return status
    return 400


async def _savings_error_handler(request: Request, exc: SavingsError) -> JSONResponse:
    status = status_for(exc)
    log.warning(
        "request_rejected",
        path=request.url.path,
        error_type=type(exc).__name__,
        error=str(exc),
        status=status,
    )
    headers = {"Retry-After": "30"} if status == 503 else None
    return JSONResponse(
        status_code=status,
        content={"error": str(exc), "type": type(exc).__name__},
        headers=headers,
    )


def create_app(lifespan: Any = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        lifespan: Optional async context manager for application lifespan events.
                  Used by main.py to wire components and release them on shutdown.

    Returns:
        Configured FastAPI application. ``app.state.box_service`` must be set
        (by the lifespan or by the caller) before requests are served.
    """
    app = FastAPI(
        title="Family Savings Boxes",
        lifespan=lifespan,
    )
    app.add_exception_handler(SavingsError, _savings_error_handler)  # type: ignore[arg-type]
    app.include_router(routes.router, prefix="/boxes")
    return app
