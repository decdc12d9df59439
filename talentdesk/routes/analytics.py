"""
TalentDesk Backend: Analytics and Audit Log Routes
==================================================

    GET /api/analytics?pipeline_id=&days=30         PIPELINE_VIEW
    GET /api/audit-logs?entity_type=&entity_id=     AUDIT_VIEW
"""

import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.analytics import AnalyticsResponse, AuditLogListResponse
from talentdesk.schemas.common import ErrorResponse
from talentdesk.services.analytics_service import analytics_service
from talentdesk.services.audit_service import audit_service

router = APIRouter(tags=["Analytics"])


@router.get(
    "/api/analytics",
    response_model=AnalyticsResponse,
    responses={403: {"description": "Pipeline not assigned to caller", "model": ErrorResponse}},
    summary="KPIs, funnels, time series and top recruiters",
)
async def get_analytics(
    pipeline_id: Optional[uuid.UUID] = Query(default=None),
    days: int = Query(default=30, ge=1, le=365, description="Window length in days"),
    user: User = Depends(require_permission(Permission.PIPELINE_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> AnalyticsResponse:
    """
    Growth compares the window with the window of equal length before it.
    Without pipeline_id all visible pipelines are aggregated.
    """
    return await analytics_service.get_analytics(db, user, pipeline_id, days)


@router.get("/api/audit-logs", response_model=AuditLogListResponse, summary="Audit trail, newest first")
async def list_audit_logs(
    entity_type: Optional[str] = Query(default=None, max_length=50),
    entity_id: Optional[uuid.UUID] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=200),
    user: User = Depends(require_permission(Permission.AUDIT_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> AuditLogListResponse:
    return await audit_service.list_logs(db, entity_type, entity_id, limit)
