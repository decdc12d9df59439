"""
TalentDesk Backend: Tag Catalogue Routes
========================================

    GET  /api/tags     any signed-in user
    POST /api/tags     TAG_CREATE
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import get_current_user, require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.activity import TagCreateRequest, TagListResponse, TagResponse
from talentdesk.schemas.common import ErrorResponse
from talentdesk.services.tag_service import tag_service

router = APIRouter(prefix="/api/tags", tags=["Tags"])


@router.get("", response_model=TagListResponse, summary="All tags with candidate counts")
async def list_tags(
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> TagListResponse:
    return await tag_service.list_tags(db)


@router.post(
    "",
    status_code=201,
    response_model=TagResponse,
    responses={409: {"description": "Name already taken", "model": ErrorResponse}},
    summary="Create a tag",
)
async def create_tag(
    body: TagCreateRequest,
    user: User = Depends(require_permission(Permission.TAG_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> TagResponse:
    return await tag_service.create_tag(db, user, body)
