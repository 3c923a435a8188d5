"""
Mindak Reservations Backend — Custom Exception Hierarchy
========================================================

What:  Application-specific exceptions for the different failure scenarios.
How:   Each exception carries a message and a context dict. Global exception
       handlers (registered in main.py) translate them into structured JSON
       error responses with the matching HTTP status code.
Who:   Raised by services and middleware; caught by global handlers.

Exception Hierarchy:
    MindakError (base)
    ├── ValidationError          → 400 Bad Request (client can fix)
    ├── NotFoundError            → 404 Not Found
    ├── InvalidTransitionError   → 409 Conflict (status policy violation)
    ├── ConflictError            → 409 Conflict (lost a concurrent write)
    ├── RateLimitExceededError   → 429 Too Many Requests
    ├── FileStorageError         → 500 Internal Server Error
    └── DatabaseError            → 500 Internal Server Error

No exception here is retried inside the services; retry policy belongs to
the caller.
"""

from typing import Any, Dict, Optional


class MindakError(Exception):
    """
    Base exception for all application errors.

    Attributes:
        message:  User-facing error description (safe to return in API response)
        context:  Structured details; returned for client-correctable errors,
                  logged only for server-side errors
    """

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)


class ValidationError(MindakError):
    """
    Raised when client input fails a business rule.

    `code` is a stable machine-readable reason such as "missing_required_answer",
    "unknown_question", "invalid_answer_option", "invalid_format", "empty_note"
    or "reorder_mismatch". `question_id` / `field` identify the offending input.

    Example response:
        {
            "error": "validation_error",
            "message": "Question 'What is your email address?' requires a valid email",
            "details": {"code": "invalid_format", "question_id": "6f0c..."}
        }
    """

    def __init__(
        self,
        code: str = "invalid_input",
        message: str = "Validation failed",
        field: Optional[str] = None,
        question_id: Optional[Any] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        ctx["code"] = code
        if field:
            ctx["field"] = field
        if question_id is not None:
            ctx["question_id"] = str(question_id)
        super().__init__(message=message, context=ctx)
        self.code = code
        self.field = field
        self.question_id = question_id


class NotFoundError(MindakError):
    """
    Raised when a requested resource does not exist (or is inactive where an
    active one is required).

    SQLAlchemy returns None for missing rows; services convert that None into
    this exception so routes stay free of lookup checks.
    """

    def __init__(
        self,
        resource: str = "resource",
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


class InvalidTransitionError(MindakError):
    """
    Raised when a reservation status change is not in the allowed table.

    The reservation is left untouched and no history row is written.
    """

    def __init__(
        self,
        from_status: str,
        to_status: str,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"Cannot change reservation status from '{from_status}' to '{to_status}'"
        ctx = context or {}
        ctx["from_status"] = from_status
        ctx["to_status"] = to_status
        super().__init__(message=message, context=ctx)
        self.from_status = from_status
        self.to_status = to_status


class ConflictError(MindakError):
    """
    Raised when a concurrent write won the race for the same row.

    The caller should refresh its view of the resource and retry if the
    operation still makes sense.
    """

    def __init__(
        self,
        message: str = "The resource was modified by another request. Refresh and try again.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class FileStorageError(MindakError):
    """
    Raised when file system operations for answer images fail.

    Disk full, permission denied, unreadable upload. The client gets a
    generic message; paths stay in the server log.
    """

    def __init__(
        self,
        message: str = "File storage operation failed",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class DatabaseError(MindakError):
    """
    Raised when the persistence layer fails unexpectedly.

    The message returned to the client is always generic. Detailed error info
    (SQL, constraint names) is logged server-side only.
    """

    def __init__(
        self,
        message: str = "A database error occurred. Please try again later.",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)


class RateLimitExceededError(MindakError):
    """
    Raised when a client exceeds the per-IP submission rate limit.

    Response includes `retry_after` and a Retry-After header.
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
