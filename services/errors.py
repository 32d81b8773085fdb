"""
Domain errors raised by the messaging services.

Routes never build error responses for these by hand; app.py registers a
single handler that renders them with their status code.
"""
from typing import Any, Dict, Optional


class MessagingError(Exception):
    status_code = 500

    def __init__(self, message: str, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": False,
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationError(MessagingError):
    """Malformed input. `details` maps field name -> reason."""

    status_code = 400

    @classmethod
    def for_field(cls, field: str, reason: str) -> "ValidationError":
        return cls(f"Invalid {field}: {reason}", details={field: reason})


class AuthorizationError(MessagingError):
    status_code = 403


class NotFoundError(MessagingError):
    status_code = 404


class TransientStoreError(MessagingError):
    """Persistence layer unavailable; the caller may resubmit."""

    status_code = 503

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["retryable"] = True
        return data
