"""Error taxonomy shared by the services and translated by the HTTP layer."""
from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class ServiceError(Exception):
    """Base class for failures that map onto a client-visible error envelope."""

    status_code = 500
    code = "internal_error"
    default_message = "Internal server error"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message = message or self.default_message
        self.details: Dict[str, Any] = dict(details or {})
        super().__init__(self.message)

    def to_envelope(self) -> Dict[str, Any]:
        return {
            "error": {
                "message": self.message,
                "code": self.code,
                "details": self.details,
            }
        }


class ValidationError(ServiceError):
    status_code = 400
    code = "validation_error"
    default_message = "Request validation failed"


class Unauthenticated(ServiceError):
    status_code = 401
    code = "unauthenticated"
    default_message = "Authentication required"


class NotFound(ServiceError):
    status_code = 404
    code = "not_found"
    default_message = "Resource not found"


class RateLimited(ServiceError):
    status_code = 429
    code = "rate_limited"
    default_message = "Too many requests"


class Unexpected(ServiceError):
    """Catch-all kind; never carries details describing the underlying failure."""


__all__ = [
    "NotFound",
    "RateLimited",
    "ServiceError",
    "Unauthenticated",
    "Unexpected",
    "ValidationError",
]
