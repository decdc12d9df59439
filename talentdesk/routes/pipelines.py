"""
TalentDesk Backend: Pipeline, Stage and Pipeline-Candidate Routes
=================================================================

    GET    /api/pipelines                              PIPELINE_VIEW
    POST   /api/pipelines                              PIPELINE_CREATE
    GET    /api/pipelines/{id}                         PIPELINE_VIEW
    PUT    /api/pipelines/{id}                         PIPELINE_UPDATE
    DELETE /api/pipelines/{id}                         PIPELINE_DELETE
    GET    /api/pipelines/{id}/stages                  PIPELINE_VIEW
    POST   /api/pipelines/{id}/stages                  STAGE_CREATE
    PUT    /api/pipelines/{id}/stages/reorder          STAGE_UPDATE
    PUT    /api/pipelines/{id}/stages/{stage_id}       STAGE_UPDATE
    DELETE /api/pipelines/{id}/stages/{stage_id}       STAGE_DELETE
    GET    /api/pipelines/{id}/candidates              CANDIDATE_VIEW
    POST   /api/pipelines/{id}/candidates              CANDIDATE_CREATE

Non-admin callers additionally need an assignment to the pipeline (403).
"""

import uuid
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.candidate import CandidateCreateRequest, CandidateSummary, PipelineCandidatesResponse
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.schemas.pipeline import (
    PipelineCreateRequest,
    PipelineListResponse,
    PipelineResponse,
    PipelineUpdateRequest,
    StageCreateRequest,
    StageListResponse,
    StageReorderRequest,
    StageResponse,
    StageUpdateRequest,
)
from talentdesk.services.candidate_service import candidate_service
from talentdesk.services.pipeline_service import pipeline_service
from talentdesk.services.stage_service import stage_service

router = APIRouter(prefix="/api/pipelines", tags=["Pipelines"])

_FORBIDDEN = {403: {"description": "Pipeline not assigned to caller", "model": ErrorResponse}}


# ── Pipelines ─────────────────────────────────────────────────────────────


@router.get("", response_model=PipelineListResponse, summary="List visible pipelines")
async def list_pipelines(
    user: User = Depends(require_permission(Permission.PIPELINE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> PipelineListResponse:
    return await pipeline_service.list_pipelines(db, user)


@router.post("", status_code=201, response_model=PipelineResponse, summary="Create a pipeline")
async def create_pipeline(
    body: PipelineCreateRequest,
    user: User = Depends(require_permission(Permission.PIPELINE_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> PipelineResponse:
    """Without `stages` the pipeline gets the six default stages, Inbox first."""
    return await pipeline_service.create_pipeline(db, user, body)


@router.get("/{pipeline_id}", response_model=PipelineResponse, responses=_FORBIDDEN, summary="Get a pipeline")
async def get_pipeline(
    pipeline_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.PIPELINE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> PipelineResponse:
    return await pipeline_service.get_pipeline(db, user, pipeline_id)


@router.put("/{pipeline_id}", response_model=PipelineResponse, summary="Rename, describe or archive")
async def update_pipeline(
    pipeline_id: uuid.UUID,
    body: PipelineUpdateRequest,
    user: User = Depends(require_permission(Permission.PIPELINE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> PipelineResponse:
    return await pipeline_service.update_pipeline(db, user, pipeline_id, body)


@router.delete(
    "/{pipeline_id}",
    response_model=SuccessResponse,
    responses={400: {"description": "Pipeline still has candidates", "model": ErrorResponse}},
    summary="Delete an empty pipeline",
)
async def delete_pipeline(
    pipeline_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.PIPELINE_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await pipeline_service.delete_pipeline(db, user, pipeline_id)
    return SuccessResponse()


# ── Stages ────────────────────────────────────────────────────────────────


@router.get("/{pipeline_id}/stages", response_model=StageListResponse, summary="Stages in order")
async def list_stages(
    pipeline_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.PIPELINE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> StageListResponse:
    return await stage_service.list_stages(db, user, pipeline_id)


@router.post("/{pipeline_id}/stages", status_code=201, response_model=StageResponse, summary="Add a stage")
async def create_stage(
    pipeline_id: uuid.UUID,
    body: StageCreateRequest,
    user: User = Depends(require_permission(Permission.STAGE_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> StageResponse:
    return await stage_service.create_stage(db, user, pipeline_id, body)


@router.put(
    "/{pipeline_id}/stages/reorder",
    response_model=StageListResponse,
    responses={400: {"description": "Ids missing, foreign or repeated", "model": ErrorResponse}},
    summary="Reorder all stages",
)
async def reorder_stages(
    pipeline_id: uuid.UUID,
    body: StageReorderRequest,
    user: User = Depends(require_permission(Permission.STAGE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> StageListResponse:
    return await stage_service.reorder_stages(db, user, pipeline_id, body)


@router.put("/{pipeline_id}/stages/{stage_id}", response_model=StageResponse, summary="Update a stage")
async def update_stage(
    pipeline_id: uuid.UUID,
    stage_id: uuid.UUID,
    body: StageUpdateRequest,
    user: User = Depends(require_permission(Permission.STAGE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> StageResponse:
    return await stage_service.update_stage(db, user, pipeline_id, stage_id, body)


@router.delete(
    "/{pipeline_id}/stages/{stage_id}",
    response_model=SuccessResponse,
    responses={400: {"description": "Stage has candidates, is the only or the default stage", "model": ErrorResponse}},
    summary="Delete a stage",
)
async def delete_stage(
    pipeline_id: uuid.UUID,
    stage_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.STAGE_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await stage_service.delete_stage(db, user, pipeline_id, stage_id)
    return SuccessResponse()


# ── Candidates of a pipeline ──────────────────────────────────────────────


@router.get(
    "/{pipeline_id}/candidates",
    response_model=PipelineCandidatesResponse,
    responses=_FORBIDDEN,
    summary="Kanban columns or a paginated table",
)
async def list_pipeline_candidates(
    pipeline_id: uuid.UUID,
    view: Literal["kanban", "table"] = Query(default="kanban"),
    stage_id: Optional[uuid.UUID] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=200),
    assigned_to_me: bool = Query(default=False),
    assigned_to_user_id: Optional[str] = Query(
        default=None, description='A user id, or "unassigned" for candidates without an assignee'
    ),
    include_rejected: bool = Query(default=False),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=100),
    sort_field: str = Query(default="created_at"),
    sort_order: Literal["asc", "desc"] = Query(default="desc"),
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> PipelineCandidatesResponse:
    return await candidate_service.list_pipeline_candidates(
        db,
        user,
        pipeline_id,
        view=view,
        stage_id=stage_id,
        search=search,
        assigned_to_me=assigned_to_me,
        assigned_to_user_id=assigned_to_user_id,
        include_rejected=include_rejected,
        page=page,
        page_size=page_size,
        sort_field=sort_field,
        sort_order=sort_order,
    )


@router.post(
    "/{pipeline_id}/candidates",
    status_code=201,
    response_model=CandidateSummary,
    summary="Add a candidate to a pipeline",
)
async def create_candidate(
    pipeline_id: uuid.UUID,
    body: CandidateCreateRequest,
    user: User = Depends(require_permission(Permission.CANDIDATE_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> CandidateSummary:
    return await candidate_service.create_candidate(db, user, pipeline_id, body)
