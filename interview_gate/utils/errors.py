from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class ApiError(Exception):
    code: str
    message: str
    status: int = 400
    details: Any | None = None


class ValidationError(ApiError):
    def __init__(self, message: str, *, field: str | None = None, details: Any | None = None):
        if details is None and field:
            details = {"field": field}
        super().__init__("VALIDATION_ERROR", message, 400, details)


class ForbiddenError(ApiError):
    def __init__(self, message: str, *, details: Any | None = None):
        super().__init__("FORBIDDEN", message, 403, details)


class NotFoundError(ApiError):
    def __init__(self, message: str, *, details: Any | None = None):
        super().__init__("NOT_FOUND", message, 404, details)


class StageViolationError(ApiError):
    """Gate transition requested out of order; clients should re-fetch the current stage."""

    def __init__(self, *, expected: str | None, actual: str, requested: str):
        super().__init__(
            "STAGE_VIOLATION",
            f"Invalid stage transition: {actual} -> {requested}",
            409,
            {"expected": expected, "actual": actual, "requested": requested},
        )


class RateLimitedError(ApiError):
    def __init__(self, message: str = "Rate limit exceeded", *, retry_after_seconds: int | None = None):
        details = {"retryAfterSeconds": retry_after_seconds} if retry_after_seconds is not None else None
        super().__init__("RATE_LIMITED", message, 429, details)


class UpstreamUnavailableError(ApiError):
    def __init__(self, service: str, message: str | None = None):
        super().__init__(
            "UPSTREAM_UNAVAILABLE",
            message or f"{service} is unavailable",
            503,
            {"service": service},
        )
