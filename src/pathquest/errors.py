"""Domain error taxonomy.

Services raise these; ``pathquest.middleware.error_handler`` maps them to
JSON responses with the matching HTTP status.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for errors that carry an HTTP status."""

    status_code: int = 500

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class InvalidArgument(AppError):
    status_code = 400


class Unauthenticated(AppError):
    status_code = 401


class Forbidden(AppError):
    status_code = 403


class NotFound(AppError):
    status_code = 404


class QuotaExceeded(AppError):
    """The external generator is rate-limited or out of quota."""

    status_code = 429


class DependencyFailure(AppError):
    status_code = 500


class GenerationFailed(DependencyFailure):
    """The external generator failed for a reason other than quota."""


class RateLimited(AppError):
    """The caller exceeded a request rate limit."""

    status_code = 429
