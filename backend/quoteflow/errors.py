"""
Lifecycle Errors
================

Every rejected operation raises one of these. Each carries a stable
``code`` so callers can tell "already quoted" from "not your inquiry"
from "bad amount" without parsing messages.

    LifecycleError
    ├── ValidationError          malformed input, nothing was read or written
    ├── InquiryNotFoundError     no document with that id
    ├── InvalidTransitionError   status does not permit the operation
    │   └── QuoteWindowClosedError
    ├── StaleStateError          conditional apply lost a race
    ├── AuthorizationError       caller does not own / may not act
    └── TransportError           store or feed unavailable
"""

from typing import Optional


class LifecycleError(Exception):
    """Base class for inquiry lifecycle failures."""

    code = "lifecycle_error"

    def __init__(self, message: str, inquiry_id: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.inquiry_id = inquiry_id

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "inquiry_id": self.inquiry_id,
        }


class ValidationError(LifecycleError):
    """Raised when input is malformed (missing field, bad amount, unknown currency)."""

    code = "validation_error"

    def __init__(self, message: str, field: Optional[str] = None, inquiry_id: Optional[str] = None):
        super().__init__(message, inquiry_id=inquiry_id)
        self.field = field

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["field"] = self.field
        return data


class InquiryNotFoundError(LifecycleError):
    """Raised when the referenced inquiry does not exist."""

    code = "not_found"


class InvalidTransitionError(LifecycleError):
    """Raised when the inquiry's current status does not permit the operation."""

    code = "invalid_transition"

    def __init__(self, message: str, inquiry_id: Optional[str] = None,
                 current_status: Optional[str] = None):
        super().__init__(message, inquiry_id=inquiry_id)
        self.current_status = current_status

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["current_status"] = self.current_status
        return data


class QuoteWindowClosedError(InvalidTransitionError):
    """Raised when an organizer quotes an inquiry after its quoting window expired."""

    code = "quote_window_closed"


class StaleStateError(LifecycleError):
    """Raised when the document changed between read and conditional write."""

    code = "stale_state"


class AuthorizationError(LifecycleError):
    """Raised when the caller may not act on the target inquiry."""

    code = "not_authorized"


class TransportError(LifecycleError):
    """Raised when the store or the live feed cannot be reached."""

    code = "transport_error"
