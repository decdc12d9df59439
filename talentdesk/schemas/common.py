"""
TalentDesk Backend: Shared Schemas
==================================

What:  Small response fragments reused across resources (references to a
       user, pipeline, stage or tag), plus the error, health and pagination
       envelopes every endpoint shares.

Schemas are kept apart from the ORM models: the API exposes nested
references (`pipeline: {id, name}`) where the tables store foreign keys,
and never exposes internals such as password hashes or invite tokens.
"""

import uuid
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    Body of every error response.

    `error` is a stable machine code (validation_error, unauthorized,
    forbidden, not_found, conflict, ...); `message` is safe to show users.
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request ID for support correlation")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall status: healthy or unhealthy")
    version: str = Field(description="Backend version")
    database: str = Field(description="Database connectivity: connected or disconnected")
    uptime_seconds: float = Field(description="Seconds since the process started")


class SuccessResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None


class Pagination(BaseModel):
    page: int = Field(description="Current page, 1-based")
    page_size: int = Field(description="Items per page")
    total: int = Field(description="Total matching items")
    total_pages: int = Field(description="Number of pages (0 when there are no items)")


class UserRef(BaseModel):
    id: uuid.UUID
    name: Optional[str] = None
    email: str

    model_config = {"from_attributes": True}


class PipelineRef(BaseModel):
    id: uuid.UUID
    name: str

    model_config = {"from_attributes": True}


class StageRef(BaseModel):
    id: uuid.UUID
    name: str
    color: str

    model_config = {"from_attributes": True}


class TagRef(BaseModel):
    id: uuid.UUID
    name: str
    color: str

    model_config = {"from_attributes": True}


class SourceCount(BaseModel):
    source: str
    count: int


def total_pages(total: int, page_size: int) -> int:
    """Ceiling division; zero items means zero pages."""
    return (total + page_size - 1) // page_size if page_size > 0 else 0
