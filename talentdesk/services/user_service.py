"""
TalentDesk Backend: User Management and Invitations
===================================================

What:  Team listing, role changes, soft deletion and the invitation flow.

Invitation flow:
    invite()         admin → user row (no password) + 32-byte hex token,
                     valid INVITE_TOKEN_EXPIRY_DAYS, email with the link
    check_invite()   web client validates ?token= before showing the form
    accept_invite()  user sets a password → activated, token cleared

Role rules:
    - nobody changes their own role (prevents locking yourself out)
    - only an OWNER grants or removes the OWNER role
    - the last remaining OWNER can be neither demoted nor deleted
"""

import logging
import secrets
import uuid
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from sqlalchemy import case, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.config import settings
from talentdesk.exceptions import (
    ConflictError,
    DatabaseError,
    NotFoundError,
    PermissionDeniedError,
    TalentDeskError,
    ValidationError,
)
from talentdesk.models import Pipeline, PipelineAssignment, User
from talentdesk.permissions import Permission, Role, has_permission
from talentdesk.schemas.user import (
    AcceptInviteRequest,
    AcceptInviteResponse,
    InviteCheckResponse,
    InvitedUser,
    InviteRequest,
    InviteResponse,
    UserListResponse,
    UserResponse,
    UserStats,
    UserUpdateRequest,
)
from talentdesk.services.audit_service import audit_service
from talentdesk.services.auth_service import hash_password, to_user_response
from talentdesk.services.email_service import EmailService, build_invite_email, email_service

logger = logging.getLogger(__name__)

USER_NOT_FOUND = "User not found"
INVALID_INVITE = "Invalid or expired invitation token"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def generate_invite_token() -> str:
    return secrets.token_hex(32)


def invite_url(token: str) -> str:
    return f"{settings.app_base_url.rstrip('/')}/invite/{token}"


def invite_is_valid(user: Optional[User], now: Optional[datetime] = None) -> bool:
    """Pending (not activated, not deleted) with an unexpired token."""
    now = now or _utcnow()
    return (
        user is not None
        and user.deleted_at is None
        and user.activated_at is None
        and user.invite_token_expires is not None
        and user.invite_token_expires > now
    )


class UserService:
    def __init__(self, sender: Optional[EmailService] = None):
        self.sender = sender or email_service

    async def _load_user(self, db: AsyncSession, user_id: uuid.UUID, refresh: bool = False) -> User:
        stmt = (
            select(User)
            .options(selectinload(User.pipeline_assignments))
            .where(User.id == user_id, User.deleted_at.is_(None))
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        user = (await db.execute(stmt)).scalar_one_or_none()
        if user is None:
            raise NotFoundError("user", str(user_id), message=USER_NOT_FOUND)
        return user

    async def _owner_count(self, db: AsyncSession) -> int:
        result = await db.execute(
            select(func.count(User.id)).where(User.role == Role.OWNER.value, User.deleted_at.is_(None))
        )
        return result.scalar() or 0

    # ── Listing ───────────────────────────────────────────────────────────

    async def list_users(self, db: AsyncSession) -> UserListResponse:
        try:
            result = await db.execute(
                select(User)
                .options(selectinload(User.pipeline_assignments))
                .where(User.deleted_at.is_(None))
                .order_by(User.created_at.desc())
            )
            users: List[User] = list(result.scalars().all())
            total, active = (
                await db.execute(
                    select(
                        func.count(User.id),
                        func.coalesce(func.sum(case((User.activated_at.is_not(None), 1), else_=0)), 0),
                    ).where(User.deleted_at.is_(None))
                )
            ).one()
        except SQLAlchemyError as e:
            logger.error("Failed to list users: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "list_users"})

        return UserListResponse(
            users=[to_user_response(u) for u in users],
            stats=UserStats(total=total, active=active, pending=total - active),
        )

    async def get_user(self, db: AsyncSession, actor: User, user_id: uuid.UUID) -> UserResponse:
        if user_id != actor.id and not has_permission(actor.role, Permission.USER_VIEW):
            raise PermissionDeniedError(permission=Permission.USER_VIEW.value)
        return to_user_response(await self._load_user(db, user_id))

    # ── Updates ───────────────────────────────────────────────────────────

    async def update_user(
        self,
        db: AsyncSession,
        actor: User,
        user_id: uuid.UUID,
        body: UserUpdateRequest,
    ) -> UserResponse:
        """
        Raises:
            ValidationError: own role change, or demoting the last OWNER
            PermissionDeniedError: a non-OWNER touching the OWNER role
        """
        user = await self._load_user(db, user_id)
        changes = {}

        if body.role is not None and body.role.value != user.role:
            new_role = body.role.value
            if user.id == actor.id:
                raise ValidationError(message="Cannot change your own role", field="role")
            if Role.OWNER.value in (new_role, user.role) and actor.role != Role.OWNER.value:
                raise PermissionDeniedError(message="Only owners can manage owner roles")
            if user.role == Role.OWNER.value and await self._owner_count(db) <= 1:
                raise ValidationError(message="Cannot demote the last owner", field="role")
            changes["role"] = {"from": user.role, "to": new_role}
            user.role = new_role

        if body.name is not None and body.name != user.name:
            changes["name"] = {"from": user.name, "to": body.name}
            user.name = body.name

        await db.flush()
        if changes:
            audit_service.record(
                db,
                user_id=actor.id,
                action="USER_UPDATED",
                entity_type="USER",
                entity_id=user.id,
                details={"changes": changes},
            )
        return to_user_response(user)

    async def delete_user(self, db: AsyncSession, actor: User, user_id: uuid.UUID) -> None:
        if user_id == actor.id:
            raise ValidationError(message="Cannot delete your own account")
        user = await self._load_user(db, user_id)
        if user.role == Role.OWNER.value and await self._owner_count(db) <= 1:
            raise ValidationError(message="Cannot delete the last owner")

        user.deleted_at = _utcnow()
        user.invite_token = None
        user.invite_token_expires = None
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="USER_DELETED",
            entity_type="USER",
            entity_id=user.id,
            details={"email": user.email, "role": user.role},
        )
        logger.info("User %s deleted by %s", user.id, actor.id)

    # ── Invitations ───────────────────────────────────────────────────────

    async def _replace_assignments(self, db: AsyncSession, user: User, pipeline_ids: List[uuid.UUID]) -> None:
        wanted = list(dict.fromkeys(pipeline_ids))
        if wanted:
            found = (await db.execute(select(Pipeline.id).where(Pipeline.id.in_(wanted)))).scalars().all()
            if len(set(found)) != len(wanted):
                raise NotFoundError("pipeline", message="One or more pipelines not found")
        kept = {a.pipeline_id for a in user.pipeline_assignments if a.pipeline_id in wanted}
        user.pipeline_assignments = [a for a in user.pipeline_assignments if a.pipeline_id in kept]
        user.pipeline_assignments.extend(
            PipelineAssignment(pipeline_id=pid) for pid in wanted if pid not in kept
        )

    async def invite(self, db: AsyncSession, actor: User, body: InviteRequest) -> InviteResponse:
        """
        Creates or refreshes a pending invitation and emails the link.

        A delivery failure is reported as email_sent=false; the invitation
        itself is still saved and the link can be re-sent by inviting again.

        Raises:
            ConflictError: the email belongs to an activated account
        """
        email = body.email.strip().lower()
        result = await db.execute(
            select(User)
            .options(selectinload(User.pipeline_assignments))
            .where(func.lower(User.email) == email)
        )
        user = result.scalar_one_or_none()

        if user is not None and user.activated_at is not None and user.deleted_at is None:
            raise ConflictError(message="User with this email already exists", context={"email": email})

        now = _utcnow()
        token = generate_invite_token()
        if user is None:
            user = User(email=email, pipeline_assignments=[])
            db.add(user)
        elif user.deleted_at is not None:
            # A removed account is re-invited from scratch
            user.deleted_at = None
            user.activated_at = None
            user.password_hash = None

        user.name = body.name or user.name
        user.role = body.role
        user.invite_token = token
        user.invite_token_expires = now + timedelta(days=settings.invite_token_expiry_days)
        user.invited_at = now
        user.invited_by_user_id = actor.id
        if body.pipeline_ids is not None:
            await self._replace_assignments(db, user, body.pipeline_ids)
        await db.flush()

        email_sent = True
        try:
            await self.sender.send(
                build_invite_email(
                    to=email,
                    invite_url=invite_url(token),
                    role=user.role,
                    invited_by=actor.name or actor.email,
                    expires_in_days=settings.invite_token_expiry_days,
                )
            )
        except TalentDeskError as e:
            email_sent = False
            logger.warning("Invitation email to %s not delivered: %s", email, e.message)

        audit_service.record(
            db,
            user_id=actor.id,
            action="USER_INVITED",
            entity_type="USER",
            entity_id=user.id,
            details={"email": email, "role": user.role, "email_sent": email_sent},
        )
        return InviteResponse(user=InvitedUser.model_validate(user), email_sent=email_sent)

    async def _user_for_token(self, db: AsyncSession, token: str) -> User:
        result = await db.execute(select(User).where(User.invite_token == token))
        user = result.scalar_one_or_none()
        if user is None or user.deleted_at is not None or user.activated_at is not None:
            raise ValidationError(message=INVALID_INVITE, field="token")
        if not invite_is_valid(user):
            raise ValidationError(message="Invitation token has expired", field="token")
        return user

    async def check_invite(self, db: AsyncSession, token: str) -> InviteCheckResponse:
        if not token:
            raise ValidationError(message="Token is required", field="token")
        user = await self._user_for_token(db, token)
        return InviteCheckResponse(valid=True, email=user.email, name=user.name)

    async def accept_invite(self, db: AsyncSession, body: AcceptInviteRequest) -> AcceptInviteResponse:
        user = await self._user_for_token(db, body.token)

        user.password_hash = hash_password(body.password)
        if body.name:
            user.name = body.name
        user.activated_at = _utcnow()
        user.invite_token = None
        user.invite_token_expires = None
        await db.flush()

        audit_service.record(
            db,
            user_id=user.id,
            action="USER_ACTIVATED",
            entity_type="USER",
            entity_id=user.id,
            details={"email": user.email},
        )
        logger.info("User %s activated", user.id)
        return AcceptInviteResponse(message="Account activated successfully. You can now log in.")


user_service = UserService()
