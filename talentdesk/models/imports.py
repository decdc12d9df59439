"""
TalentDesk Backend: CV Import Models
====================================

Batch status:  PENDING → PROCESSING → COMPLETED | FAILED
Item status:   QUEUED → PROCESSING → SUCCEEDED | FAILED

Uploads are only accepted while the batch is PENDING. Processing walks the
QUEUED items, and counters on the batch are updated after every item so a
client polling GET /api/imports/{id} sees progress.
"""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import ForeignKey, Index, Integer, String, Text, text
from sqlalchemy.dialects.postgresql import TIMESTAMP, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from talentdesk.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ImportBatch(Base):
    __tablename__ = "import_batches"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    pipeline_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("pipelines.id", ondelete="CASCADE"), nullable=False
    )
    created_by_user_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("users.id", ondelete="SET NULL"), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="PENDING", server_default=text("'PENDING'")
    )
    default_country_code: Mapped[str] = mapped_column(
        String(2), nullable=False, default="BE", server_default=text("'BE'")
    )
    total_files: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    processed_files: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    success_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    failed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default=text("0"))
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    pipeline: Mapped["Pipeline"] = relationship()  # noqa: F821
    created_by: Mapped[Optional["User"]] = relationship()  # noqa: F821
    items: Mapped[List["ImportItem"]] = relationship(
        back_populates="batch",
        order_by="ImportItem.created_at",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_import_batches_created_at", created_at.desc()),)


class ImportItem(Base):
    __tablename__ = "import_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        server_default=text("gen_random_uuid()"),
    )
    batch_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("import_batches.id", ondelete="CASCADE"), nullable=False
    )
    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    storage_key: Mapped[str] = mapped_column(String(255), nullable=False)
    mime_type: Mapped[str] = mapped_column(String(127), nullable=False)
    size_bytes: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="QUEUED", server_default=text("'QUEUED'")
    )
    candidate_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("candidates.id", ondelete="SET NULL"), nullable=True
    )
    parsed_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    parsed_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    parsed_phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    parsing_confidence: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True),
        nullable=False,
        default=_utcnow,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    processed_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    batch: Mapped["ImportBatch"] = relationship(back_populates="items")

    __table_args__ = (Index("idx_import_items_batch_status", "batch_id", "status"),)
