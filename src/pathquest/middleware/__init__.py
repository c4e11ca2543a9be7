"""Middleware registration."""

from fastapi import FastAPI

from pathquest.config import Settings
from pathquest.middleware.cors import setup_cors
from pathquest.middleware.error_handler import setup_error_handlers
from pathquest.middleware.logging import setup_logging
from pathquest.middleware.rate_limit import RateLimitMiddleware
from pathquest.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost).
    CORS is outermost so it also wraps 429 responses.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(
        RateLimitMiddleware,
        requests_per_window=settings.rate_limit_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
