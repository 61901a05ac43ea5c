"""
Core Service — Exception Hierarchy
====================================

What:  Application-specific exceptions for startup, per-request and shutdown failures.
How:   Each exception carries a message and optional context dict. Exception
       handlers registered in main.py turn per-request errors into JSON bodies;
       startup errors are caught by the server entry point and end the process.

Exception Hierarchy:
    ServiceError (base)
    ├── ConfigurationError       → fatal at startup (missing/invalid setting)
    ├── ConnectivityError        → fatal at startup (database or client unreachable)
    ├── ValidationError          → 400 Bad Request
    │   ├── ValueTypeError       → condition value has the wrong type
    │   └── ParseError           → numeric condition prefix does not parse
    ├── NotFoundError            → 400 Bad Request (rewritten to a friendly message)
    ├── StorageError             → 400 Bad Request (storage message verbatim)
    ├── AuthenticationError      → 401 Unauthorized
    ├── RateLimitExceededError   → 429 Too Many Requests
    └── ShutdownTimeoutError     → logged, process exits non-zero

The context dict is logged server-side and never returned to the client.
"""

from datetime import datetime, timezone
from typing import Any, Dict, Optional


class ServiceError(Exception):
    """
    Base exception for all core service errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional debug info (logged but NOT returned to client)
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ConfigurationError(ServiceError):
    """A required setting is missing or malformed. Raised before the server binds."""


class ConnectivityError(ServiceError):
    """
    The database or an external client could not be reached or constructed.

    Raised during startup only; the entry point logs it and exits with status 1.
    """


class ValidationError(ServiceError):
    """
    Raised when client input fails validation.

    When:    Malformed pagination, unknown field names, bad condition values.
    HTTP:    400 Bad Request
    """

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class ValueTypeError(ValidationError):
    """A range-capable field received a non-string condition value."""


class ParseError(ValidationError):
    """The numeric part of a range condition is not valid for the field's kind."""


class NotFoundError(ServiceError):
    """
    Raised when a lookup that requires a row finds none.

    Lookups that may legitimately miss (Repository.get_by_field) return None
    instead; this error is reserved for the "no rows in result set" outcome.
    """

    def __init__(
        self,
        resource: str = "record",
        resource_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class StorageError(ServiceError):
    """
    Raised when a database operation fails.

    The message is the storage engine's own first line; the full exception
    is chained as __cause__ for server-side logging.
    """

    def __init__(
        self,
        message: str = "A storage error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class AuthenticationError(ServiceError):
    """
    The request carried no usable bearer token, or the verifier rejected it.

    HTTP:    401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        reason: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if reason:
            ctx["reason"] = reason
        super().__init__(message=message, context=ctx)
        self.reason = reason


class RateLimitExceededError(ServiceError):
    """
    Raised when a client has no tokens left in its bucket.

    HTTP:    429 Too Many Requests
    Body:    {"status", "body", "locked", "timestamp"} via to_payload()
    """

    status = "Request Failed"

    def __init__(
        self,
        identity: str = "",
        message: str = (
            "The account is locked or disabled. Please wait 5 minutes and try again."
        ),
        timestamp: Optional[datetime] = None,
    ):
        super().__init__(message=message, context={"identity": identity})
        self.identity = identity
        self.locked = True
        self.timestamp = timestamp or datetime.now(timezone.utc)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "body": self.message,
            "locked": self.locked,
            "timestamp": self.timestamp.isoformat(),
        }


class ShutdownTimeoutError(ServiceError):
    """In-flight requests were still running when the grace period ended."""

    def __init__(self, grace_period: float, context: Optional[Dict[str, Any]] = None):
        ctx = context or {}
        ctx["grace_period"] = grace_period
        super().__init__(
            message=f"Server did not shut down within {grace_period:g}s",
            context=ctx,
        )
        self.grace_period = grace_period
