"""
TalentDesk Backend: Search and Saved Search Schemas
===================================================

`SearchFilters` is the normalised form of the /api/search query string.
Saved searches store the raw parameter dict; it is parsed into
SearchFilters again when the search runs.
"""

import uuid
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from talentdesk.schemas.candidate import CandidateSummary
from talentdesk.schemas.common import Pagination, PipelineRef, SourceCount, StageRef, TagRef, UserRef

SORT_FIELDS = ("full_name", "email", "created_at", "updated_at", "pipeline", "stage")


class SearchFilters(BaseModel):
    q: Optional[str] = Field(default=None, description="Matches name, email, phone or note content")
    pipeline_id: Optional[uuid.UUID] = None
    stage_id: Optional[uuid.UUID] = None
    tag_ids: List[uuid.UUID] = Field(default_factory=list, description="Any-of tag match")
    source: Optional[str] = None
    assigned_to_user_id: Optional[uuid.UUID] = None
    status: Literal["active", "rejected", "all"] = "all"
    date_from: Optional[date] = None
    date_to: Optional[date] = Field(default=None, description="Inclusive to the end of the day")
    has_email: Optional[bool] = None
    has_phone: Optional[bool] = None
    has_notes: Optional[bool] = None
    has_attachments: Optional[bool] = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=25, ge=1, le=100)
    sort_field: str = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class FilterOptions(BaseModel):
    pipelines: List[PipelineRef]
    stages: List[StageRef] = Field(default_factory=list, description="Only when pipeline_id is given")
    tags: List[TagRef]
    sources: List[SourceCount]
    recruiters: List[UserRef]


class SearchResponse(BaseModel):
    candidates: List[CandidateSummary]
    pagination: Pagination
    filter_options: FilterOptions


# ── Saved searches ────────────────────────────────────────────────────────


class SavedSearchCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    filters: Dict[str, Any] = Field(default_factory=dict, description="GET /api/search parameters")
    is_default: bool = False


class SavedSearchUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    filters: Optional[Dict[str, Any]] = None
    is_default: Optional[bool] = None


class SavedSearchResponse(BaseModel):
    id: uuid.UUID
    name: str
    filters: Dict[str, Any]
    is_default: bool
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SavedSearchListResponse(BaseModel):
    saved_searches: List[SavedSearchResponse]
