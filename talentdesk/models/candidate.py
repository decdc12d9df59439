"""
TalentDesk Backend: Candidate Models
====================================

What:  Candidate rows plus the stage-history and tag association tables.

Activity rules:
    A candidate is "active" when deleted_at IS NULL and merged_into_id IS NULL.
    Listings, search, analytics and duplicate scans only ever see active rows.
    `merged_into_id` is written once by the merge orchestrator and never
    cleared: there is no un-merge.

Indexes:
    - (pipeline_id, stage_id): kanban board and funnel counts
    - lower(email) and phone_e164: duplicate detection and import dedup
    - created_at DESC: default search sort and analytics windows
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from talentdesk.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Candidate(Base):
    __tablename__ = "candidates"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )

    # ── Identity ──────────────────────────────────────────────────────────
    full_name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone_e164: Mapped[Optional[str]] = mapped_column(
        String(32),
        nullable=True,
        comment="Phone in E.164 form (+<country><number>), compared case-sensitively",
    )

    # ── Placement ─────────────────────────────────────────────────────────
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pipelines.id", ondelete="RESTRICT"), nullable=False
    )
    stage_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stages.id", ondelete="RESTRICT"), nullable=False
    )
    assigned_to_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # ── Origin ────────────────────────────────────────────────────────────
    source: Mapped[Optional[str]] = mapped_column(
        String(50),
        nullable=True,
        comment="manual, import, referral, ... (NULL is reported as 'manual')",
    )
    import_item_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    extracted_text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    parsing_confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # ── Rejection ─────────────────────────────────────────────────────────
    is_rejected: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    rejected_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    rejected_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )

    # ── Lifecycle ─────────────────────────────────────────────────────────
    merged_into_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("candidates.id", ondelete="SET NULL"),
        nullable=True,
        comment="Set once when this record is merged into another; never cleared",
    )
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
    deleted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    # ── Relationships ─────────────────────────────────────────────────────
    pipeline: Mapped["Pipeline"] = relationship()  # noqa: F821
    stage: Mapped["Stage"] = relationship()  # noqa: F821
    assigned_to: Mapped[Optional["User"]] = relationship(  # noqa: F821
        foreign_keys=[assigned_to_user_id]
    )
    tag_links: Mapped[List["CandidateTag"]] = relationship(
        back_populates="candidate",
        cascade="all, delete-orphan",
    )
    notes: Mapped[List["Note"]] = relationship(back_populates="candidate")  # noqa: F821
    attachments: Mapped[List["Attachment"]] = relationship(  # noqa: F821
        back_populates="candidate"
    )
    stage_history: Mapped[List["CandidateStageHistory"]] = relationship(
        back_populates="candidate",
        order_by="CandidateStageHistory.moved_at.desc()",
    )

    __table_args__ = (
        Index("idx_candidates_pipeline_stage", "pipeline_id", "stage_id"),
        Index("idx_candidates_email_lower", text("lower(email)")),
        Index("idx_candidates_phone", "phone_e164"),
        Index("idx_candidates_created_at", created_at.desc()),
    )

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None and self.merged_into_id is None

    def __repr__(self) -> str:
        return f"<Candidate(id={self.id}, full_name='{self.full_name}')>"


class CandidateStageHistory(Base):
    """One row per stage transition; from_stage_id is NULL for the first placement."""

    __tablename__ = "candidate_stage_history"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    candidate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("candidates.id", ondelete="CASCADE"), nullable=False
    )
    from_stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stages.id", ondelete="SET NULL"), nullable=True
    )
    to_stage_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("stages.id", ondelete="SET NULL"), nullable=True
    )
    moved_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    moved_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    candidate: Mapped["Candidate"] = relationship(back_populates="stage_history")
    from_stage: Mapped[Optional["Stage"]] = relationship(  # noqa: F821
        foreign_keys=[from_stage_id]
    )
    to_stage: Mapped[Optional["Stage"]] = relationship(foreign_keys=[to_stage_id])  # noqa: F821
    moved_by: Mapped[Optional["User"]] = relationship()  # noqa: F821

    __table_args__ = (
        Index("idx_stage_history_candidate", "candidate_id"),
        Index("idx_stage_history_moved_at", "moved_at"),
    )


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    color: Mapped[str] = mapped_column(
        String(7), nullable=False, default="#6B7280", server_default=text("'#6B7280'")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def __repr__(self) -> str:
        return f"<Tag(id={self.id}, name='{self.name}')>"


class CandidateTag(Base):
    """Many-to-many link. The composite key makes a duplicate association impossible."""

    __tablename__ = "candidate_tags"

    candidate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("candidates.id", ondelete="CASCADE"),
        primary_key=True,
    )
    tag_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("tags.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    candidate: Mapped["Candidate"] = relationship(back_populates="tag_links")
    tag: Mapped["Tag"] = relationship()

    __table_args__ = (Index("idx_candidate_tags_tag", "tag_id"),)
