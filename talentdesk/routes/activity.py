"""
TalentDesk Backend: Candidate Activity Routes
=============================================

What:  Everything hanging off one candidate besides its own fields:
       notes, tags, attachments and sent emails.
How:   One router under /api/candidates/{candidate_id}; every handler
       delegates to its service, which also checks pipeline access.

    notes        GET, POST              /notes
                 GET, PUT, DELETE       /notes/{note_id}
    tags         GET, POST, PUT         /tags
                 DELETE                 /tags?tag_id=
    attachments  GET, POST (multipart)  /attachments
                 GET                    /attachments/{id}/download
                 DELETE                 /attachments?attachment_id=
    emails       GET, POST              /emails
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import require_permission
from talentdesk.exceptions import ValidationError
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.activity import (
    AttachmentListResponse,
    AttachmentResponse,
    CandidateTagsResponse,
    EmailListResponse,
    NoteCreateRequest,
    NoteListResponse,
    NoteResponse,
    NoteUpdateRequest,
    SendEmailRequest,
    SendEmailResponse,
    TagAssignRequest,
    TagReplaceRequest,
)
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.services.attachment_service import attachment_service
from talentdesk.services.note_service import note_service
from talentdesk.services.tag_service import tag_service
from talentdesk.services.template_service import candidate_email_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/candidates/{candidate_id}", tags=["Candidate activity"])


def _required(value: Optional[uuid.UUID], name: str) -> uuid.UUID:
    # Query parameters that are mandatory but reported as 400, not 422
    if value is None:
        raise ValidationError(message=f"{name} is required", field=name)
    return value


# ── Notes ─────────────────────────────────────────────────────────────────


@router.get("/notes", response_model=NoteListResponse, summary="List notes, newest first")
async def list_notes(
    candidate_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.NOTE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteListResponse:
    return await note_service.list_notes(db, user, candidate_id)


@router.post("/notes", status_code=201, response_model=NoteResponse, summary="Add a note")
async def create_note(
    candidate_id: uuid.UUID,
    body: NoteCreateRequest,
    user: User = Depends(require_permission(Permission.NOTE_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.create_note(db, user, candidate_id, body)


@router.get("/notes/{note_id}", response_model=NoteResponse, summary="Get a note")
async def get_note(
    candidate_id: uuid.UUID,
    note_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.NOTE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.get_note(db, user, candidate_id, note_id)


@router.put(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses={403: {"description": "Not the author and not an admin", "model": ErrorResponse}},
    summary="Edit a note",
)
async def update_note(
    candidate_id: uuid.UUID,
    note_id: uuid.UUID,
    body: NoteUpdateRequest,
    user: User = Depends(require_permission(Permission.NOTE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> NoteResponse:
    return await note_service.update_note(db, user, candidate_id, note_id, body)


@router.delete(
    "/notes/{note_id}",
    response_model=SuccessResponse,
    responses={403: {"description": "Not the author and not an admin", "model": ErrorResponse}},
    summary="Delete a note",
)
async def delete_note(
    candidate_id: uuid.UUID,
    note_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.NOTE_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await note_service.delete_note(db, user, candidate_id, note_id)
    return SuccessResponse()


# ── Tags ──────────────────────────────────────────────────────────────────


@router.get("/tags", response_model=CandidateTagsResponse, summary="Candidate's tags")
async def list_candidate_tags(
    candidate_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> CandidateTagsResponse:
    return await tag_service.list_candidate_tags(db, user, candidate_id)


@router.post(
    "/tags",
    response_model=CandidateTagsResponse,
    responses={409: {"description": "Tag already assigned", "model": ErrorResponse}},
    summary="Assign one tag",
)
async def assign_tag(
    candidate_id: uuid.UUID,
    body: TagAssignRequest,
    user: User = Depends(require_permission(Permission.TAG_ASSIGN)),
    db: AsyncSession = Depends(get_db_session),
) -> CandidateTagsResponse:
    return await tag_service.assign_tag(db, user, candidate_id, body)


@router.put("/tags", response_model=CandidateTagsResponse, summary="Replace all tags")
async def replace_tags(
    candidate_id: uuid.UUID,
    body: TagReplaceRequest,
    user: User = Depends(require_permission(Permission.TAG_ASSIGN)),
    db: AsyncSession = Depends(get_db_session),
) -> CandidateTagsResponse:
    return await tag_service.replace_tags(db, user, candidate_id, body)


@router.delete("/tags", response_model=SuccessResponse, summary="Remove one tag")
async def remove_tag(
    candidate_id: uuid.UUID,
    tag_id: Optional[uuid.UUID] = Query(default=None),
    user: User = Depends(require_permission(Permission.TAG_ASSIGN)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await tag_service.remove_tag(db, user, candidate_id, _required(tag_id, "tag_id"))
    return SuccessResponse()


# ── Attachments ───────────────────────────────────────────────────────────


@router.get("/attachments", response_model=AttachmentListResponse, summary="List attachments")
async def list_attachments(
    candidate_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> AttachmentListResponse:
    return await attachment_service.list_attachments(db, user, candidate_id)


@router.post(
    "/attachments",
    status_code=201,
    response_model=AttachmentResponse,
    responses={
        400: {"description": "Empty, too large or type not allowed", "model": ErrorResponse},
        500: {"description": "Storage failure", "model": ErrorResponse},
    },
    summary="Upload an attachment",
)
async def upload_attachment(
    candidate_id: uuid.UUID,
    file: UploadFile = File(..., description="PDF, Word, image, text or CSV; max 10MB"),
    user: User = Depends(require_permission(Permission.CANDIDATE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> AttachmentResponse:
    content = await file.read()
    logger.info("Attachment upload: filename=%s, size=%d bytes", file.filename, len(content))
    return await attachment_service.upload(
        db, user, candidate_id, file.filename, content, file.content_type
    )


@router.get("/attachments/{attachment_id}/download", summary="Download an attachment")
async def download_attachment(
    candidate_id: uuid.UUID,
    attachment_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> FileResponse:
    path, attachment = await attachment_service.resolve_download(db, user, candidate_id, attachment_id)
    return FileResponse(path, media_type=attachment.mime_type, filename=attachment.filename)


@router.delete(
    "/attachments",
    response_model=SuccessResponse,
    responses={403: {"description": "Not the uploader and not an admin", "model": ErrorResponse}},
    summary="Delete an attachment",
)
async def delete_attachment(
    candidate_id: uuid.UUID,
    attachment_id: Optional[uuid.UUID] = Query(default=None),
    user: User = Depends(require_permission(Permission.CANDIDATE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await attachment_service.delete(db, user, candidate_id, _required(attachment_id, "attachment_id"))
    return SuccessResponse()


# ── Emails ────────────────────────────────────────────────────────────────


@router.get("/emails", response_model=EmailListResponse, summary="Emails sent to the candidate")
async def list_emails(
    candidate_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> EmailListResponse:
    return await candidate_email_service.list_emails(db, user, candidate_id)


@router.post(
    "/emails",
    response_model=SendEmailResponse,
    responses={
        400: {"description": "No recipient address", "model": ErrorResponse},
        502: {"description": "Provider rejected the message", "model": ErrorResponse},
        503: {"description": "Email circuit breaker open", "model": ErrorResponse},
    },
    summary="Send an email to the candidate",
)
async def send_email(
    candidate_id: uuid.UUID,
    body: SendEmailRequest,
    user: User = Depends(require_permission(Permission.TEMPLATE_SEND)),
    db: AsyncSession = Depends(get_db_session),
) -> SendEmailResponse:
    """
    Placeholders such as {{first_name}} are filled from the candidate.
    A failed delivery still leaves a FAILED entry in the email history;
    its id is returned in the error details.
    """
    return await candidate_email_service.send(db, user, candidate_id, body)
