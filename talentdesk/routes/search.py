"""
TalentDesk Backend: Search and Saved Search Routes
==================================================

    GET    /api/search                      CANDIDATE_VIEW
    GET    /api/saved-searches              own searches
    POST   /api/saved-searches
    GET    /api/saved-searches/{id}
    PUT    /api/saved-searches/{id}
    DELETE /api/saved-searches/{id}

/api/search reads the raw query string instead of declaring each filter
as a parameter: tag_id may repeat, and flags accept several spellings
(true/false/1/0). A saved search's filters go through the same parser.
"""

import uuid

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import get_current_user, require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.schemas.search import (
    SavedSearchCreateRequest,
    SavedSearchListResponse,
    SavedSearchResponse,
    SavedSearchUpdateRequest,
    SearchResponse,
)
from talentdesk.services.saved_search_service import saved_search_service
from talentdesk.services.search_service import parse_search_params, search_service

router = APIRouter(tags=["Search"])


@router.get(
    "/api/search",
    response_model=SearchResponse,
    responses={
        400: {"description": "Unparseable filter value", "model": ErrorResponse},
        403: {"description": "pipeline_id not assigned to caller", "model": ErrorResponse},
    },
    summary="Filtered, paginated candidate search",
)
async def search_candidates(
    request: Request,
    user: User = Depends(require_permission(Permission.CANDIDATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> SearchResponse:
    """
    Query parameters: q, pipeline_id, stage_id, tag_id (repeatable), source,
    assigned_to_user_id, status (active|rejected|all), date_from, date_to,
    has_email, has_phone, has_notes, has_attachments, page, page_size
    (max 100), sort_field, sort_order.
    """
    filters = parse_search_params(request.query_params)
    return await search_service.search(db, user, filters)


# ── Saved searches ────────────────────────────────────────────────────────


@router.get("/api/saved-searches", response_model=SavedSearchListResponse, summary="My saved searches")
async def list_saved_searches(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SavedSearchListResponse:
    return await saved_search_service.list_searches(db, user)


@router.post(
    "/api/saved-searches",
    status_code=201,
    response_model=SavedSearchResponse,
    summary="Save a search",
)
async def create_saved_search(
    body: SavedSearchCreateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SavedSearchResponse:
    return await saved_search_service.create_search(db, user, body)


@router.get("/api/saved-searches/{search_id}", response_model=SavedSearchResponse, summary="Get a saved search")
async def get_saved_search(
    search_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SavedSearchResponse:
    return await saved_search_service.get_search(db, user, search_id)


@router.put("/api/saved-searches/{search_id}", response_model=SavedSearchResponse, summary="Update a saved search")
async def update_saved_search(
    search_id: uuid.UUID,
    body: SavedSearchUpdateRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SavedSearchResponse:
    return await saved_search_service.update_search(db, user, search_id, body)


@router.delete("/api/saved-searches/{search_id}", response_model=SuccessResponse, summary="Delete a saved search")
async def delete_saved_search(
    search_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await saved_search_service.delete_search(db, user, search_id)
    return SuccessResponse()
