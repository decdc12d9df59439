"""
TalentDesk Backend: Request Dependencies
========================================

What:  FastAPI dependencies that authenticate the caller and enforce the
       permission table, plus the pipeline-scope helpers services use.

Usage in a route:
    @router.post("/candidates/merge")
    async def merge(
        body: MergeRequest,
        user: User = Depends(require_permission(Permission.CANDIDATE_MERGE)),
        db: AsyncSession = Depends(get_db_session),
    ): ...

Token sources, in order: `Authorization: Bearer <token>`, then the session
cookie. Missing or invalid → 401 "Unauthorized". Valid session but the role
lacks the permission → 403 "Insufficient permissions".
"""

import logging
import uuid
from typing import Optional, Set

from fastapi import Depends, Request
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.config import settings
from talentdesk.database import get_db_session
from talentdesk.exceptions import AuthenticationError, PermissionDeniedError
from talentdesk.models import PipelineAssignment, User
from talentdesk.permissions import Permission, has_permission, is_admin
from talentdesk.services.auth_service import is_active_account, session_manager

logger = logging.getLogger(__name__)

PIPELINE_ACCESS_DENIED = "Pipeline access denied"


def _extract_token(request: Request) -> Optional[str]:
    header = request.headers.get("Authorization", "")
    scheme, _, credentials = header.partition(" ")
    if scheme.lower() == "bearer" and credentials.strip():
        return credentials.strip()
    return request.cookies.get(settings.session_cookie_name)


async def get_current_user(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
) -> User:
    token = _extract_token(request)
    if not token:
        raise AuthenticationError()

    data = session_manager.verify_session_token(token)
    if data is None:
        raise AuthenticationError()

    try:
        user_id = uuid.UUID(data["user_id"])
    except (ValueError, TypeError):
        raise AuthenticationError()

    result = await db.execute(
        select(User)
        .options(selectinload(User.pipeline_assignments))
        .where(User.id == user_id)
    )
    user = result.scalar_one_or_none()

    if not is_active_account(user) or user.role != data.get("role"):
        logger.info("Rejected stale session for user %s", user_id)
        raise AuthenticationError()

    request.state.user_id = str(user.id)
    return user


def require_permission(permission: Permission):
    """Builds a dependency returning the current user if their role grants `permission`."""

    async def permission_checker(user: User = Depends(get_current_user)) -> User:
        if not has_permission(user.role, permission):
            raise PermissionDeniedError(permission=permission.value)
        return user

    return permission_checker


def ensure_permission(user: User, permission: Permission) -> None:
    """Inline variant for handlers whose required permission depends on the body."""
    if not has_permission(user.role, permission):
        raise PermissionDeniedError(permission=permission.value)


# ── Pipeline scope ────────────────────────────────────────────────────────


async def accessible_pipeline_ids(db: AsyncSession, user: User) -> Optional[Set[uuid.UUID]]:
    """
    None for OWNER/ADMIN (every pipeline); otherwise the set of pipelines
    assigned to the user, possibly empty.
    """
    if is_admin(user.role):
        return None
    result = await db.execute(
        select(PipelineAssignment.pipeline_id).where(PipelineAssignment.user_id == user.id)
    )
    return set(result.scalars().all())


async def ensure_pipeline_access(db: AsyncSession, user: User, pipeline_id: uuid.UUID) -> None:
    allowed = await accessible_pipeline_ids(db, user)
    if allowed is not None and pipeline_id not in allowed:
        raise PermissionDeniedError(
            message=PIPELINE_ACCESS_DENIED,
            context={"pipeline_id": str(pipeline_id)},
        )
