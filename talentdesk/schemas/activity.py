"""
TalentDesk Backend: Notes, Tags, Attachments, Templates and Email Schemas
=========================================================================
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field

from talentdesk.schemas.common import TagRef, UserRef
from talentdesk.schemas.pipeline import DEFAULT_STAGE_COLOR, HEX_COLOR


# ── Notes ─────────────────────────────────────────────────────────────────


class NoteCreateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class NoteUpdateRequest(BaseModel):
    content: str = Field(min_length=1, max_length=10000)


class NoteResponse(BaseModel):
    id: uuid.UUID
    candidate_id: uuid.UUID
    content: str
    author: Optional[UserRef] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class NoteListResponse(BaseModel):
    notes: List[NoteResponse]


# ── Tags ──────────────────────────────────────────────────────────────────


class TagCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=50)
    color: str = Field(default=DEFAULT_STAGE_COLOR, pattern=HEX_COLOR)


class TagAssignRequest(BaseModel):
    tag_id: uuid.UUID


class TagReplaceRequest(BaseModel):
    tag_ids: List[uuid.UUID] = Field(description="Complete new tag set; empty clears all tags")


class TagResponse(BaseModel):
    id: uuid.UUID
    name: str
    color: str
    candidate_count: int = 0
    created_at: datetime

    model_config = {"from_attributes": True}


class TagListResponse(BaseModel):
    tags: List[TagResponse]


class CandidateTagsResponse(BaseModel):
    tags: List[TagRef]


# ── Attachments ───────────────────────────────────────────────────────────


class AttachmentResponse(BaseModel):
    id: uuid.UUID
    candidate_id: uuid.UUID
    filename: str
    mime_type: str
    size_bytes: int
    uploaded_by: Optional[UserRef] = None
    uploaded_at: datetime
    download_url: str


class AttachmentListResponse(BaseModel):
    attachments: List[AttachmentResponse]


# ── Email templates ───────────────────────────────────────────────────────


class TemplateCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    subject: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    variables: List[str] = Field(
        default_factory=list,
        description="Extra variable names; {{placeholders}} in subject/body are added automatically",
    )


class TemplateUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    subject: Optional[str] = Field(default=None, min_length=1, max_length=200)
    body: Optional[str] = Field(default=None, min_length=1)
    variables: Optional[List[str]] = None


class TemplateResponse(BaseModel):
    id: uuid.UUID
    name: str
    subject: str
    body: str
    variables: List[str]
    created_by: Optional[UserRef] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class TemplateListResponse(BaseModel):
    templates: List[TemplateResponse]


# ── Candidate emails ──────────────────────────────────────────────────────


class SendEmailRequest(BaseModel):
    template_id: Optional[uuid.UUID] = None
    subject: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    to_email: Optional[EmailStr] = Field(
        default=None, description="Defaults to the candidate's email address"
    )


class EmailLogResponse(BaseModel):
    id: uuid.UUID
    candidate_id: uuid.UUID
    template_id: Optional[uuid.UUID] = None
    to_email: str
    subject: str
    body: str
    status: str
    provider_message_id: Optional[str] = None
    error_message: Optional[str] = None
    sent_by: Optional[UserRef] = None
    sent_at: datetime

    model_config = {"from_attributes": True}


class EmailListResponse(BaseModel):
    emails: List[EmailLogResponse]


class SendEmailResponse(BaseModel):
    success: bool = True
    email: EmailLogResponse
