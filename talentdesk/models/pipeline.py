"""
TalentDesk Backend: Pipeline and Stage Models
=============================================

What:  A pipeline is a named hiring funnel; stages are its ordered steps.
       Every candidate sits in exactly one stage of exactly one pipeline.

Ordering:
    Stage.order_index is dense (0..n-1) within a pipeline. Create, delete and
    reorder keep it dense. Exactly one stage per pipeline is the default: new
    candidates without an explicit stage land there.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import Boolean, ForeignKey, Index, Integer, String, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from talentdesk.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Pipeline(Base):
    __tablename__ = "pipelines"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    is_archived: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
        comment="Archived pipelines disappear from listings, analytics and facets",
    )
    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
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

    stages: Mapped[List["Stage"]] = relationship(
        back_populates="pipeline",
        order_by="Stage.order_index",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Pipeline(id={self.id}, name='{self.name}', archived={self.is_archived})>"


class Stage(Base):
    __tablename__ = "stages"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(50), nullable=False)
    color: Mapped[str] = mapped_column(
        String(7),
        nullable=False,
        default="#6B7280",
        server_default=text("'#6B7280'"),
        comment="#RRGGBB",
    )
    order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_default: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default=text("false")
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    pipeline: Mapped["Pipeline"] = relationship(back_populates="stages")

    __table_args__ = (
        Index("idx_stages_pipeline_order", "pipeline_id", "order_index"),
    )

    def __repr__(self) -> str:
        return f"<Stage(id={self.id}, name='{self.name}', order={self.order_index})>"
