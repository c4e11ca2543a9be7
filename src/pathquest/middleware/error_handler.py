"""Global error handler: consistent ``{"success": false, "error": ...}`` responses."""

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from pathquest.errors import AppError, QuotaExceeded, RateLimited

logger = structlog.get_logger()

QUOTA_RETRY_AFTER_SECONDS = 60


def error_body(message: str, **details: object) -> dict:
    return {"success": False, "error": message, **details}


def setup_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        """Map domain errors to their HTTP status."""
        details = dict(exc.details)
        headers: dict[str, str] = {}
        if isinstance(exc, (QuotaExceeded, RateLimited)):
            retry_after = details.pop("retry_after", QUOTA_RETRY_AFTER_SECONDS)
            headers["Retry-After"] = str(retry_after)

        if exc.status_code >= 500:
            logger.error("request_failed", path=request.url.path, error=exc.message, **details)
        else:
            logger.info(
                "request_rejected",
                path=request.url.path,
                status=exc.status_code,
                error=exc.message,
            )

        return JSONResponse(
            status_code=exc.status_code,
            content=jsonable_encoder(error_body(exc.message, **details)),
            headers=headers or None,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(_request: Request, exc: StarletteHTTPException) -> JSONResponse:
        """Handle HTTP exceptions with consistent JSON format."""
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(_request: Request, exc: RequestValidationError) -> JSONResponse:
        """Malformed input is a 400, with pydantic's error list attached."""
        return JSONResponse(
            status_code=400,
            content=jsonable_encoder(error_body("Validation error", errors=exc.errors())),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unhandled exceptions, always JSON."""
        logger.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            exc_info=exc,
        )
        return JSONResponse(
            status_code=500,
            content=error_body("Internal server error"),
        )
