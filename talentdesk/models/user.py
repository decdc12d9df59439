"""
TalentDesk Backend: User and PipelineAssignment Models
======================================================

What:  Staff accounts and the pipelines each non-admin account may see.
Why:   Access control needs a role per user; RECRUITER and VIEWER accounts are
       additionally scoped to the pipelines listed in `pipeline_assignments`.

Account lifecycle:
    1. Invited: row created with invite_token + invite_token_expires, no password
    2. Activated: password_hash set, activated_at set, token cleared
    3. Soft-deleted: deleted_at set; login and every session lookup refuse it
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from talentdesk.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    """A staff member who signs in to the CRM."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    # Always stored lowercased; login lowercases the submitted address too
    email: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        unique=True,
        comment="Login address, lowercased",
    )
    name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    password_hash: Mapped[Optional[str]] = mapped_column(
        String(255),
        nullable=True,
        comment="bcrypt hash; NULL until the invitation is accepted",
    )
    role: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="VIEWER",
        server_default=text("'VIEWER'"),
        comment="OWNER, ADMIN, RECRUITER or VIEWER",
    )

    # ── Invitation ────────────────────────────────────────────────────────
    invite_token: Mapped[Optional[str]] = mapped_column(String(128), nullable=True, unique=True)
    invite_token_expires: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )
    invited_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    invited_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    activated_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        TIMESTAMP(timezone=True), nullable=True, comment="Soft-delete marker"
    )

    pipeline_assignments: Mapped[List["PipelineAssignment"]] = relationship(
        back_populates="user",
        cascade="all, delete-orphan",
    )
    invited_by: Mapped[Optional["User"]] = relationship(remote_side="User.id")

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email='{self.email}', role='{self.role}')>"


class PipelineAssignment(Base):
    """Grants a non-admin user visibility of one pipeline."""

    __tablename__ = "pipeline_assignments"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    user: Mapped["User"] = relationship(back_populates="pipeline_assignments")
    pipeline: Mapped["Pipeline"] = relationship()  # noqa: F821

    __table_args__ = (
        UniqueConstraint("user_id", "pipeline_id", name="uq_pipeline_assignments_user_pipeline"),
        Index("idx_pipeline_assignments_pipeline", "pipeline_id"),
    )

    def __repr__(self) -> str:
        return f"<PipelineAssignment(user_id={self.user_id}, pipeline_id={self.pipeline_id})>"
