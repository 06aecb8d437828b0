"""
onsweb.errors — Application Error Taxonomy
============================================

Services raise these; :mod:`onsweb.api.responses` turns them into the JSON
error envelope.  Each class carries its HTTP status and a stable
machine-readable ``code``.
"""

from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base class for every error that maps to a client-visible response."""

    status_code: int = 500
    code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.details is not None:
            body["details"] = self.details
        return body


# ---------------------------------------------------------------------------
# Core taxonomy
# ---------------------------------------------------------------------------
class InputValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"


class UnauthorizedError(AppError):
    status_code = 401
    code = "UNAUTHORIZED"


class ForbiddenError(AppError):
    status_code = 403
    code = "FORBIDDEN"


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class RateLimitedError(AppError):
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, message: str, *, retry_after: int, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.retry_after = retry_after


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------
class TokenError(UnauthorizedError):
    """Signature, audience or expiry check failed.

    ``code`` is ``TOKEN_EXPIRED`` or ``INVALID_TOKEN``.
    """
    code = "INVALID_TOKEN"


class IdentityProviderError(AppError):
    status_code = 502
    code = "OAUTH_CALLBACK_FAILED"


# ---------------------------------------------------------------------------
# Event registration
# ---------------------------------------------------------------------------
class RegistrationDisabledError(AppError):
    status_code = 400
    code = "REGISTRATION_DISABLED"


class RegistrationClosedError(AppError):
    status_code = 400
    code = "REGISTRATION_CLOSED"


class EventFullError(AppError):
    status_code = 400
    code = "EVENT_FULL"


class AlreadyRegisteredError(ConflictError):
    code = "ALREADY_REGISTERED"


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------
class UnsupportedMediaTypeError(AppError):
    status_code = 415
    code = "INVALID_FILE_TYPE"


class FileTooLargeError(AppError):
    status_code = 413
    code = "FILE_TOO_LARGE"


class StorageNotConfiguredError(AppError):
    """Object storage credentials were missing at startup."""
    status_code = 503
    code = "STORAGE_NOT_CONFIGURED"


class StorageError(AppError):
    """A single storage call failed (network, permissions, missing key)."""
    status_code = 502
    code = "STORAGE_ERROR"
