"""
TalentDesk Backend: Custom Exception Hierarchy
==============================================

What:  Application-specific exceptions, one per error category the API reports.
How:   Each exception carries a user-facing message and an optional context
       dict. Global handlers in main.py translate them into JSON responses
       with the matching HTTP status code.
Who:   Raised by services and dependencies; caught by the global handlers.

Exception Hierarchy:
    TalentDeskError (base)
    ├── ValidationError          → 400 Bad Request
    ├── AuthenticationError      → 401 Unauthorized
    ├── PermissionDeniedError    → 403 Forbidden
    ├── NotFoundError            → 404 Not Found
    ├── ConflictError            → 409 Conflict
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    ├── DatabaseError            → 500 Internal Server Error
    ├── EmailDeliveryError       → 502 Bad Gateway
    └── CircuitBreakerOpenError  → 503 Service Unavailable
"""

from typing import Any, Dict, Optional


class TalentDeskError(Exception):
    """
    Base exception for all TalentDesk application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Additional info; returned as `details` only by handlers that
                  choose to (validation, conflicts), always logged otherwise.
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(TalentDeskError):
    """
    Raised when a request is well-formed but breaks a business rule.

    Examples: target candidate listed among merge sources, moving a candidate
    to a stage of another pipeline, deleting the default stage.
    HTTP: 400 Bad Request
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


class AuthenticationError(TalentDeskError):
    """
    Raised when no valid session accompanies the request.

    HTTP: 401 Unauthorized
    """

    def __init__(
        self,
        message: str = "Unauthorized",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class PermissionDeniedError(TalentDeskError):
    """
    Raised when the caller's role (or pipeline assignment) does not allow
    the requested operation.

    HTTP: 403 Forbidden
    """

    def __init__(
        self,
        message: str = "Insufficient permissions",
        permission: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if permission:
            ctx["permission"] = permission
        super().__init__(message=message, context=ctx)
        self.permission = permission


class NotFoundError(TalentDeskError):
    """
    Raised when a referenced entity is missing, soft-deleted, or merged away.

    HTTP: 404 Not Found

    A custom message overrides the generated "<resource> with ID ... was not
    found" text, e.g. for the merge guard on already merged sources.
    """

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        if message is None:
            message = f"The requested {resource} was not found"
            if resource_id:
                message = f"{resource} with ID '{resource_id}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if resource_id:
            ctx["resource_id"] = resource_id
        super().__init__(message=message, context=ctx)


class ConflictError(TalentDeskError):
    """
    Raised when the request collides with existing state.

    Examples: tag name already taken, tag already assigned, inviting an email
    that belongs to an activated account.
    HTTP: 409 Conflict
    """

    def __init__(
        self,
        message: str = "The request conflicts with existing data",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(TalentDeskError):
    """
    Raised when reading or writing the storage volume fails.

    HTTP: 500 Internal Server Error. File system paths stay in the logs.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class EmailDeliveryError(TalentDeskError):
    """
    Raised when the email provider rejects a message or stays unreachable
    after all retries.

    HTTP: 502 Bad Gateway. The context carries the email log id so clients
    can show which message failed.
    """

    def __init__(
        self,
        message: str = "Failed to send email",
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if retry_after:
            ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after


class CircuitBreakerOpenError(TalentDeskError):
    """
    Raised when the email provider circuit breaker is OPEN.

    CLOSED → (N consecutive failures) → OPEN → (recovery timeout) → HALF_OPEN
    → success → CLOSED, failure → OPEN.
    HTTP: 503 Service Unavailable
    """

    def __init__(
        self,
        recovery_time: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            "Email delivery is temporarily unavailable due to repeated failures. "
            f"Retry in approximately {recovery_time} seconds."
        )
        ctx = context or {}
        ctx["recovery_time"] = recovery_time
        super().__init__(message=message, context=ctx)
        self.recovery_time = recovery_time


class DatabaseError(TalentDeskError):
    """
    Raised when a database operation fails unexpectedly.

    HTTP: 500 Internal Server Error. The response message is always generic;
    SQL and constraint names are only logged.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(TalentDeskError):
    """
    Raised when a client exceeds its per-IP request budget.

    HTTP: 429 Too Many Requests, with a Retry-After header.
    """

    def __init__(
        self,
        retry_after: int = 60,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = (
            f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests."
        )
        ctx = context or {}
        ctx["retry_after"] = retry_after
        super().__init__(message=message, context=ctx)
        self.retry_after = retry_after
