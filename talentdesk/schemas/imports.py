"""
TalentDesk Backend: CV Import Schemas
=====================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from talentdesk.schemas.common import PipelineRef, UserRef


class ImportBatchCreateRequest(BaseModel):
    pipeline_id: uuid.UUID
    default_country_code: str = Field(
        default="BE",
        min_length=2,
        max_length=2,
        description="Country used to normalise phone numbers without an international prefix",
    )


class ImportItemResponse(BaseModel):
    id: uuid.UUID
    filename: str
    mime_type: str
    size_bytes: int
    status: str
    candidate_id: Optional[uuid.UUID] = None
    parsed_name: Optional[str] = None
    parsed_email: Optional[str] = None
    parsed_phone: Optional[str] = None
    parsing_confidence: Optional[int] = None
    error_message: Optional[str] = None
    created_at: datetime
    processed_at: Optional[datetime] = None

    model_config = {"from_attributes": True}


class ImportBatchResponse(BaseModel):
    id: uuid.UUID
    pipeline: PipelineRef
    status: str
    default_country_code: str
    total_files: int
    processed_files: int
    success_count: int
    failed_count: int
    created_by: Optional[UserRef] = None
    created_at: datetime
    completed_at: Optional[datetime] = None
    items: List[ImportItemResponse] = Field(default_factory=list)


class ImportBatchListResponse(BaseModel):
    batches: List[ImportBatchResponse]


class UploadResult(BaseModel):
    filename: str
    success: bool
    item_id: Optional[uuid.UUID] = None
    error: Optional[str] = None


class UploadResponse(BaseModel):
    results: List[UploadResult]
    uploaded: int
    failed: int


class ProcessResponse(BaseModel):
    success: bool = True
    batch: ImportBatchResponse
