"""
TalentDesk Backend: Authentication Routes
=========================================

    POST /api/auth/login    email + password → token (body) + HttpOnly cookie
    POST /api/auth/logout   clears the cookie
    GET  /api/auth/me       current user and the permissions of their role

Login is the only route with its own rate-limit bucket (see
middleware/rate_limit.py).
"""

import logging

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.config import settings
from talentdesk.database import get_db_session
from talentdesk.dependencies import get_current_user
from talentdesk.models import User
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.schemas.user import LoginRequest, LoginResponse, MeResponse
from talentdesk.services.auth_service import auth_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        401: {"description": "Invalid email or password", "model": ErrorResponse},
        429: {"description": "Too many login attempts", "model": ErrorResponse},
    },
    summary="Log in with email and password",
)
async def login(
    body: LoginRequest,
    response: Response,
    db: AsyncSession = Depends(get_db_session),
) -> LoginResponse:
    result = await auth_service.login(db, body.email, body.password)
    response.set_cookie(
        key=settings.session_cookie_name,
        value=result.token,
        max_age=settings.session_max_age,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite="lax",
    )
    return result


@router.post("/logout", response_model=SuccessResponse, summary="Clear the session cookie")
async def logout(response: Response) -> SuccessResponse:
    # Tokens are stateless; the client simply forgets it
    response.delete_cookie(key=settings.session_cookie_name)
    return SuccessResponse()


@router.get(
    "/me",
    response_model=MeResponse,
    responses={401: {"description": "Not logged in", "model": ErrorResponse}},
    summary="Current user",
)
async def me(user: User = Depends(get_current_user)) -> MeResponse:
    return auth_service.me(user)
