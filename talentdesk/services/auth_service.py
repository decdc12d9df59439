"""
TalentDesk Backend: Authentication Service
==========================================

What:  Password hashing, signed session tokens and the login check.
How:
    - Passwords: bcrypt with a per-hash salt. bcrypt only looks at the first
      72 bytes, so longer inputs are truncated explicitly.
    - Sessions: itsdangerous URLSafeTimedSerializer signs {user_id, email,
      role}. Tokens expire after SESSION_MAX_AGE seconds. The token is both
      returned in the login body (for API clients, sent back as a Bearer
      token) and set as an HttpOnly cookie (for the browser).

A session token is only a claim: every request re-loads the user and checks
that the account is still active and still has the role the token names.
Changing a user's role therefore logs them out.
"""

import logging
from typing import Optional

import bcrypt
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.config import settings
from talentdesk.exceptions import AuthenticationError, DatabaseError
from talentdesk.models import User
from talentdesk.permissions import permissions_for
from talentdesk.schemas.user import LoginResponse, MeResponse, UserResponse

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = "Invalid email or password"


# ── Passwords ─────────────────────────────────────────────────────────────


def hash_password(password: str) -> str:
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time comparison; a malformed stored hash counts as a mismatch."""
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except ValueError:
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# ── Sessions ──────────────────────────────────────────────────────────────


class SessionManager:
    """Creates and verifies signed session tokens."""

    SALT = "talentdesk-session"

    def __init__(self, secret_key: Optional[str] = None, max_age: Optional[int] = None):
        self.serializer = URLSafeTimedSerializer(secret_key or settings.secret_key, salt=self.SALT)
        self.max_age = max_age or settings.session_max_age

    def create_session_token(self, user: User) -> str:
        data = {
            "user_id": str(user.id),
            "email": user.email,
            "role": user.role,
        }
        return self.serializer.dumps(data)

    def verify_session_token(self, token: str) -> Optional[dict]:
        """Returns the token payload, or None if the signature is bad or expired."""
        try:
            data = self.serializer.loads(token, max_age=self.max_age)
        except SignatureExpired:
            logger.debug("Session token expired")
            return None
        except BadSignature:
            logger.debug("Session token signature invalid")
            return None
        if not isinstance(data, dict) or "user_id" not in data:
            return None
        return data


session_manager = SessionManager()


def is_active_account(user: Optional[User]) -> bool:
    """Exists, not soft-deleted, invitation accepted, password set."""
    return (
        user is not None
        and user.deleted_at is None
        and user.activated_at is not None
        and bool(user.password_hash)
    )


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        role=user.role,
        invited_at=user.invited_at,
        activated_at=user.activated_at,
        created_at=user.created_at,
        pipeline_ids=[a.pipeline_id for a in user.pipeline_assignments],
    )


class AuthService:
    async def login(self, db: AsyncSession, email: str, password: str) -> LoginResponse:
        """
        Checks credentials and issues a session token.

        Raises:
            AuthenticationError: unknown email, wrong password, or an account
                that is deleted or not yet activated (one message for all).
        """
        try:
            result = await db.execute(
                select(User)
                .options(selectinload(User.pipeline_assignments))
                .where(func.lower(User.email) == email.strip().lower())
            )
            user = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Login lookup failed: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "login"})

        if not is_active_account(user) or not verify_password(password, user.password_hash):
            logger.warning("Failed login attempt for %s", email.lower())
            raise AuthenticationError(message=INVALID_CREDENTIALS)

        logger.info("User %s logged in", user.id)
        return LoginResponse(
            token=session_manager.create_session_token(user),
            user=to_user_response(user),
        )

    def me(self, user: User) -> MeResponse:
        return MeResponse(
            user=to_user_response(user),
            permissions=sorted(p.value for p in permissions_for(user.role)),
        )


auth_service = AuthService()
