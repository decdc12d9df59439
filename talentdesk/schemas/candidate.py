"""
TalentDesk Backend: Candidate Schemas
=====================================

Covers candidate CRUD, stage moves, bulk actions, duplicate groups and
merge requests.

Partial updates:
    CandidateUpdateRequest distinguishes "field omitted" from "field set to
    null" through `model_fields_set`. Sending `"email": null` clears the
    email; leaving `email` out keeps it.
"""

import uuid
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field

from talentdesk.schemas.common import Pagination, PipelineRef, StageRef, TagRef, UserRef
from talentdesk.schemas.pipeline import StageResponse


# ══════════════════════════════════════════════════════════════════════════
# Requests
# ══════════════════════════════════════════════════════════════════════════


class CandidateCreateRequest(BaseModel):
    full_name: str = Field(min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(
        default=None,
        max_length=30,
        description="Any format; normalised to E.164 with the default country code",
    )
    stage_id: Optional[uuid.UUID] = Field(
        default=None, description="Defaults to the pipeline's default stage"
    )
    source: Optional[str] = Field(default=None, max_length=50)


class CandidateUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1, max_length=200)
    email: Optional[EmailStr] = None
    phone: Optional[str] = Field(default=None, max_length=30)
    assigned_to_user_id: Optional[uuid.UUID] = None
    is_rejected: Optional[bool] = None


class CandidateMoveRequest(BaseModel):
    stage_id: uuid.UUID


BulkAction = Literal["move", "reject", "unreject", "delete", "assign"]


class BulkActionRequest(BaseModel):
    candidate_ids: List[uuid.UUID] = Field(min_length=1)
    action: BulkAction
    stage_id: Optional[uuid.UUID] = Field(default=None, description="Required for action=move")
    assigned_to_user_id: Optional[uuid.UUID] = Field(
        default=None, description="For action=assign; null unassigns"
    )


class MergeOverrides(BaseModel):
    """
    Values to force on the merge target.

    `email` and `phone_e164` apply whenever the key is present, null included;
    `full_name` only applies when non-empty.
    """
    full_name: Optional[str] = Field(default=None, max_length=200)
    email: Optional[EmailStr] = None
    phone_e164: Optional[str] = Field(default=None, max_length=32)


class MergeRequest(BaseModel):
    target_id: uuid.UUID = Field(description="Candidate that survives the merge")
    source_ids: List[uuid.UUID] = Field(
        min_length=1, description="Candidates folded into the target"
    )
    field_overrides: Optional[MergeOverrides] = None


# ══════════════════════════════════════════════════════════════════════════
# Responses
# ══════════════════════════════════════════════════════════════════════════


class CandidateSummary(BaseModel):
    id: uuid.UUID
    full_name: str
    email: Optional[str] = None
    phone_e164: Optional[str] = None
    source: Optional[str] = None
    pipeline: PipelineRef
    stage: StageRef
    assigned_to: Optional[UserRef] = None
    tags: List[TagRef] = Field(default_factory=list)
    is_rejected: bool = False
    rejected_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class StageHistoryEntry(BaseModel):
    id: uuid.UUID
    from_stage: Optional[StageRef] = None
    to_stage: Optional[StageRef] = None
    moved_by: Optional[UserRef] = None
    moved_at: datetime


class CandidateDetail(CandidateSummary):
    extracted_text: Optional[str] = None
    parsing_confidence: Optional[int] = None
    stage_history: List[StageHistoryEntry] = Field(default_factory=list)
    note_count: int = 0
    attachment_count: int = 0
    email_count: int = 0


class MoveResponse(BaseModel):
    success: bool = True
    message: str
    candidate: Optional[CandidateSummary] = None


class BulkActionResponse(BaseModel):
    success: bool = True
    affected: int
    message: str


class KanbanColumn(BaseModel):
    stage: StageResponse
    candidates: List[CandidateSummary]


class PipelineCandidatesResponse(BaseModel):
    """Kanban view fills `columns`; table view fills `candidates` and `pagination`."""
    view: Literal["kanban", "table"]
    pipeline: PipelineRef
    columns: Optional[List[KanbanColumn]] = None
    candidates: Optional[List[CandidateSummary]] = None
    pagination: Optional[Pagination] = None


class DuplicateCandidate(BaseModel):
    id: uuid.UUID
    full_name: str
    email: Optional[str] = None
    phone_e164: Optional[str] = None
    pipeline: PipelineRef
    stage: StageRef
    created_at: datetime
    source: Optional[str] = None
    note_count: int = 0
    attachment_count: int = 0


class DuplicateGroup(BaseModel):
    key: str = Field(description="'email:<value>' or 'phone:<value>'")
    type: Literal["email", "phone"]
    value: str
    candidates: List[DuplicateCandidate]


class DuplicateStats(BaseModel):
    total_groups: int
    total_duplicates: int = Field(description="Sum of group sizes")


class DuplicatesResponse(BaseModel):
    groups: List[DuplicateGroup]
    stats: DuplicateStats


class MergeResponse(BaseModel):
    success: bool = True
    merged: int = Field(description="Number of source candidates merged")
    candidate: CandidateDetail
