"""
TalentDesk Backend: Candidate Routes
====================================

    GET    /api/candidates/duplicates       CANDIDATE_MERGE
    POST   /api/candidates/merge            CANDIDATE_MERGE
    POST   /api/candidates/bulk             per action (see candidate_service)
    GET    /api/candidates/{id}             CANDIDATE_VIEW
    PUT    /api/candidates/{id}             CANDIDATE_UPDATE
    DELETE /api/candidates/{id}             CANDIDATE_DELETE
    PUT    /api/candidates/{id}/move        CANDIDATE_MOVE

The fixed paths are declared first; otherwise "duplicates" would be taken
for a candidate id and rejected as an invalid UUID.
"""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import ensure_pipeline_access, get_current_user, require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.candidate import (
    BulkActionRequest,
    BulkActionResponse,
    CandidateDetail,
    CandidateMoveRequest,
    CandidateUpdateRequest,
    DuplicatesResponse,
    MergeRequest,
    MergeResponse,
    MoveResponse,
)
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.services.candidate_service import candidate_service
from talentdesk.services.duplicate_service import duplicate_service
from talentdesk.services.merge_service import merge_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/candidates", tags=["Candidates"])


@router.get(
    "/duplicates",
    response_model=DuplicatesResponse,
    summary="Find duplicate candidates by email and phone",
)
async def find_duplicates(
    pipeline_id: Optional[uuid.UUID] = Query(default=None, description="Limit the scan to one pipeline"),
    user: User = Depends(require_permission(Permission.CANDIDATE_MERGE)),
    db: AsyncSession = Depends(get_db_session),
) -> DuplicatesResponse:
    """
    Groups active candidates sharing a (case-insensitive) email or an
    identical E.164 phone. A candidate appears in at most one email group;
    phone groups only repeat already grouped candidates when that is the
    only way to show a single new match in context.
    """
    if pipeline_id:
        await ensure_pipeline_access(db, user, pipeline_id)
    return await duplicate_service.find_duplicates(db, pipeline_id)


@router.post(
    "/merge",
    response_model=MergeResponse,
    responses={
        400: {"description": "Target listed among sources", "model": ErrorResponse},
        404: {"description": "Target or a source missing or already merged", "model": ErrorResponse},
    },
    summary="Merge candidates into a target",
)
async def merge_candidates(
    body: MergeRequest,
    user: User = Depends(require_permission(Permission.CANDIDATE_MERGE)),
    db: AsyncSession = Depends(get_db_session),
) -> MergeResponse:
    """
    All-or-nothing: field overrides, email/phone backfill, tag union and
    re-pointing of notes, attachments, emails and stage history run in
    the request transaction. There is no un-merge.
    """
    return await merge_service.merge(db, user, body)


@router.post(
    "/bulk",
    response_model=BulkActionResponse,
    responses={
        400: {"description": "Mixed pipelines or missing stage_id", "model": ErrorResponse},
        404: {"description": "A candidate, stage or user was not found", "model": ErrorResponse},
    },
    summary="Apply one action to many candidates",
)
async def bulk_action(
    body: BulkActionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> BulkActionResponse:
    # The permission depends on body.action and is checked by the service
    return await candidate_service.bulk_action(db, user, body)


@router.get(
    "/{candidate_id}",
    response_model=CandidateDetail,
    responses={404: {"description": "Missing, deleted or merged", "model": ErrorResponse}},
    summary="Candidate detail",
)
async def get_candidate(
    candidate_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> CandidateDetail:
    return await candidate_service.get_candidate(db, user, candidate_id)


@router.put("/{candidate_id}", response_model=CandidateDetail, summary="Update candidate fields")
async def update_candidate(
    candidate_id: uuid.UUID,
    body: CandidateUpdateRequest,
    user: User = Depends(require_permission(Permission.CANDIDATE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> CandidateDetail:
    return await candidate_service.update_candidate(db, user, candidate_id, body)


@router.delete("/{candidate_id}", response_model=SuccessResponse, summary="Soft-delete a candidate")
async def delete_candidate(
    candidate_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await candidate_service.delete_candidate(db, user, candidate_id)
    return SuccessResponse()


@router.put(
    "/{candidate_id}/move",
    response_model=MoveResponse,
    responses={400: {"description": "Deleted candidate or stage of another pipeline", "model": ErrorResponse}},
    summary="Move a candidate to another stage",
)
async def move_candidate(
    candidate_id: uuid.UUID,
    body: CandidateMoveRequest,
    user: User = Depends(require_permission(Permission.CANDIDATE_MOVE)),
    db: AsyncSession = Depends(get_db_session),
) -> MoveResponse:
    return await candidate_service.move_candidate(db, user, candidate_id, body.stage_id)
