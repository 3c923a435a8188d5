"""
Mindak Reservations Backend — Shared Response Schemas
=====================================================

What:  Response shapes shared by every router: the error envelope and the
       health check.
"""

import uuid
from typing import Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Fields:
        error: Machine-readable error code (e.g., "validation_error", "not_found")
        message: Human-readable description for display to users
        details: Extra context (e.g., the offending question id)
        request_id: Correlation ID for tracing this error in server logs

    Example:
        {
            "error": "validation_error",
            "message": "An answer is required for 'What is your full name?'",
            "details": {"code": "missing_required_answer", "question_id": "6f0c..."},
            "request_id": "550e8400-e29b-41d4-a716-446655440000"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    uptime_seconds: float = Field(description="Seconds since service started")


class DeleteResponse(BaseModel):
    """hard_deleted is False when the row was referenced and only deactivated."""
    id: uuid.UUID
    hard_deleted: bool
