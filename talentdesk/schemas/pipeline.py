"""
TalentDesk Backend: Pipeline and Stage Schemas
==============================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

HEX_COLOR = r"^#[0-9A-Fa-f]{6}$"
DEFAULT_STAGE_COLOR = "#6B7280"


class StageInput(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default=DEFAULT_STAGE_COLOR, pattern=HEX_COLOR)


class PipelineCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    stages: Optional[List[StageInput]] = Field(
        default=None,
        description="Custom stages in order; the first becomes the default. "
        "Omit to get Inbox, Screening, Interview, Offer, Hired, Rejected.",
    )


class PipelineUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    is_archived: Optional[bool] = None


class StageCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default=DEFAULT_STAGE_COLOR, pattern=HEX_COLOR)
    order_index: Optional[int] = Field(
        default=None,
        ge=0,
        description="Insert position; stages at or after it shift right. Omit to append.",
    )
    is_default: bool = False


class StageUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    color: Optional[str] = Field(default=None, pattern=HEX_COLOR)
    is_default: Optional[bool] = None


class StageReorderRequest(BaseModel):
    stage_ids: List[uuid.UUID] = Field(
        min_length=1,
        description="Every stage id of the pipeline exactly once, in the new order",
    )


class StageResponse(BaseModel):
    id: uuid.UUID
    pipeline_id: uuid.UUID
    name: str
    color: str
    order_index: int
    is_default: bool
    candidate_count: int = 0

    model_config = {"from_attributes": True}


class PipelineResponse(BaseModel):
    id: uuid.UUID
    name: str
    description: Optional[str] = None
    is_archived: bool
    created_at: datetime
    updated_at: datetime
    stages: List[StageResponse] = Field(default_factory=list)
    candidate_count: int = 0

    model_config = {"from_attributes": True}


class PipelineListResponse(BaseModel):
    pipelines: List[PipelineResponse]


class StageListResponse(BaseModel):
    stages: List[StageResponse]
