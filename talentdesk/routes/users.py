"""
TalentDesk Backend: User and Invitation Routes
==============================================

    GET    /api/users                   USER_VIEW     team + stats
    POST   /api/users/invite            USER_INVITE   create/refresh invitation
    GET    /api/users/accept-invite     public        validate ?token=
    POST   /api/users/accept-invite     public        set password, activate
    GET    /api/users/{id}              self or USER_VIEW
    PUT    /api/users/{id}              USER_UPDATE   name, role
    DELETE /api/users/{id}              USER_DELETE   soft delete

The accept-invite paths are declared before /{id} so they are not parsed
as user ids.
"""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import get_current_user, require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.schemas.user import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    InviteCheckResponse,
    InviteRequest,
    InviteResponse,
    UserListResponse,
    UserResponse,
    UserUpdateRequest,
)
from talentdesk.services.user_service import user_service

router = APIRouter(prefix="/api/users", tags=["Users"])


@router.get("", response_model=UserListResponse, summary="List users with account stats")
async def list_users(
    user: User = Depends(require_permission(Permission.USER_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> UserListResponse:
    return await user_service.list_users(db)


@router.post(
    "/invite",
    status_code=201,
    response_model=InviteResponse,
    responses={409: {"description": "Email belongs to an active account", "model": ErrorResponse}},
    summary="Invite a user by email",
)
async def invite_user(
    body: InviteRequest,
    user: User = Depends(require_permission(Permission.USER_INVITE)),
    db: AsyncSession = Depends(get_db_session),
) -> InviteResponse:
    """
    Creates a pending account, or refreshes the token of one that never
    accepted. `email_sent` is false when delivery failed; the invitation is
    saved either way.
    """
    return await user_service.invite(db, user, body)


@router.get(
    "/accept-invite",
    response_model=InviteCheckResponse,
    responses={400: {"description": "Invalid or expired token", "model": ErrorResponse}},
    summary="Check an invitation token",
)
async def check_invite(
    token: str = Query(default="", description="Token from the invitation link"),
    db: AsyncSession = Depends(get_db_session),
) -> InviteCheckResponse:
    return await user_service.check_invite(db, token)


@router.post(
    "/accept-invite",
    response_model=AcceptInviteResponse,
    responses={400: {"description": "Invalid or expired token", "model": ErrorResponse}},
    summary="Accept an invitation and set a password",
)
async def accept_invite(
    body: AcceptInviteRequest,
    db: AsyncSession = Depends(get_db_session),
) -> AcceptInviteResponse:
    return await user_service.accept_invite(db, body)


@router.get("/{user_id}", response_model=UserResponse, summary="Get one user")
async def get_user(
    user_id: uuid.UUID,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await user_service.get_user(db, user, user_id)


@router.put(
    "/{user_id}",
    response_model=UserResponse,
    responses={
        400: {"description": "Own role change or last owner", "model": ErrorResponse},
        403: {"description": "Owner role managed by non-owner", "model": ErrorResponse},
    },
    summary="Update a user's name or role",
)
async def update_user(
    user_id: uuid.UUID,
    body: UserUpdateRequest,
    user: User = Depends(require_permission(Permission.USER_UPDATE)),
    db: AsyncSession = Depends(get_db_session),
) -> UserResponse:
    return await user_service.update_user(db, user, user_id, body)


@router.delete("/{user_id}", response_model=SuccessResponse, summary="Remove a user")
async def delete_user(
    user_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.USER_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await user_service.delete_user(db, user, user_id)
    return SuccessResponse()
