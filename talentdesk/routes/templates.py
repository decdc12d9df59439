"""
TalentDesk Backend: Email Template Routes
=========================================

    GET    /api/templates          TEMPLATE_VIEW
    POST   /api/templates          TEMPLATE_CREATE
    GET    /api/templates/{id}     TEMPLATE_VIEW
    PUT    /api/templates/{id}     TEMPLATE_UPDATE
    DELETE /api/templates/{id}     TEMPLATE_DELETE
"""

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.activity import (
    TemplateCreateRequest,
    TemplateListResponse,
    TemplateResponse,
    TemplateUpdateRequest,
)
from talentdesk.schemas.common import SuccessResponse
from talentdesk.services.template_service import template_service

router = APIRouter(prefix="/api/templates", tags=["Templates"])


@router.get("", response_model=TemplateListResponse, summary="List templates")
async def list_templates(
    user: User = Depends(require_permission(Permission.TEMPLATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateListResponse:
    return await template_service.list_templates(db)


@router.post("", status_code=201, response_model=TemplateResponse, summary="Create a template")
async def create_template(
    body: TemplateCreateRequest,
    user: User = Depends(require_permission(Permission.TEMPLATE_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    """`variables` is completed with every {{placeholder}} found in subject and body."""
    return await template_service.create_template(db, user, body)


@router.get("/{template_id}", response_model=TemplateResponse, summary="Get a template")
async def get_template(
    template_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.TEMPLATE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await template_service.get_template(db, template_id)


@router.put("/{template_id}", response_model=TemplateResponse, summary="Update a template")
async def update_template(
    template_id: uuid.UUID,
    body: TemplateUpdateRequest,
    user: User = Depends(require_permission(Permission.TEMPLATE_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> TemplateResponse:
    return await template_service.update_template(db, user, template_id, body)


@router.delete("/{template_id}", response_model=SuccessResponse, summary="Delete a template")
async def delete_template(
    template_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.TEMPLATE_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await template_service.delete_template(db, user, template_id)
    return SuccessResponse()
