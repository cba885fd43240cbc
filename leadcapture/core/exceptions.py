# leadcapture/core/exceptions.py
from __future__ import annotations

from typing import Any, Dict, Optional


class BaseAPIException(Exception):
    """Base exception for all client-facing errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    default_message: str = "An internal error occurred"

    def __init__(
        self,
        message: Optional[str] = None,
        *,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.message = message or self.default_message
        self.field = field
        self.details = details or {}
        self.headers = headers
        super().__init__(self.message)

    def to_envelope(self) -> Dict[str, Any]:
        """Render the structured error body returned to callers."""
        error: Dict[str, Any] = {"code": self.code, "message": self.message}
        if self.field:
            error["field"] = self.field
        return {"success": False, "error": error}


class ValidationError(BaseAPIException):
    """Client input fault, always recoverable by correcting the input."""
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation error"


class SpamRejectedError(BaseAPIException):
    """Submission screened out by the spam heuristics."""
    status_code = 400
    code = "SPAM_DETECTED"
    default_message = "Submission rejected due to spam indicators"

    def __init__(self, reason: str = "", **kwargs):
        # The reason is kept for server-side logs only.
        super().__init__(**kwargs)
        self.reason = reason


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded."""
    status_code = 429
    code = "RATE_LIMIT_EXCEEDED"

    def __init__(self, reset_minutes: int, **kwargs):
        kwargs.setdefault("message", f"Too many requests. Try again in {reset_minutes} minutes.")
        kwargs.setdefault("headers", {"Retry-After": str(reset_minutes * 60)})
        super().__init__(**kwargs)
        self.reset_minutes = reset_minutes

    def to_envelope(self) -> Dict[str, Any]:
        body = super().to_envelope()
        body["error"]["resetMinutes"] = self.reset_minutes
        return body


class DuplicateLeadError(BaseAPIException):
    """A lead with the same identity has already been stored."""
    status_code = 409
    code = "DUPLICATE_LEAD"
    default_message = "This submission has already been recorded"


class AuthenticationError(BaseAPIException):
    """Missing or invalid caller credential."""
    status_code = 401
    code = "UNAUTHORIZED"
    default_message = "Authentication failed"


class NotFoundError(BaseAPIException):
    """Resource not found."""
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class LeadNotFoundError(NotFoundError):
    code = "LEAD_NOT_FOUND"
    default_message = "Lead not found"


class StorageError(BaseAPIException):
    """Dependency fault in the lead store.

    ``details`` carries the underlying cause for server-side logging; callers
    only ever see the generic internal error message.
    """
    status_code = 500
    code = "INTERNAL_ERROR"
    default_message = "An internal error occurred while processing your request"

    def to_envelope(self) -> Dict[str, Any]:
        return {
            "success": False,
            "error": {"code": self.code, "message": self.default_message},
        }
