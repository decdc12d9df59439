"""
TalentDesk Backend: Attachment Service
======================================

What:  Documents attached to a candidate (CVs, cover letters, scans).
How:   Upload validation and disk I/O are delegated to FileService; this
       service owns the Attachment rows, the download path and the
       uploader-or-admin delete rule.

Lifecycle:
    upload   → validate size and sniffed type → store file → insert row
    download → resolve storage_key → FileResponse (route)
    delete   → delete row → remove file best-effort
"""

import logging
import uuid
from pathlib import Path
from typing import Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.exceptions import FileStorageError, NotFoundError, PermissionDeniedError, ValidationError
from talentdesk.models import Attachment, User
from talentdesk.permissions import is_admin
from talentdesk.schemas.activity import AttachmentListResponse, AttachmentResponse
from talentdesk.schemas.common import UserRef
from talentdesk.services.audit_service import audit_service
from talentdesk.services.candidate_service import load_accessible_candidate
from talentdesk.services.file_service import ATTACHMENT_TYPES, FileService, file_service

logger = logging.getLogger(__name__)

ATTACHMENT_NOT_FOUND = "Attachment not found"
TYPE_NOT_ALLOWED = "File type not allowed. Allowed types: PDF, Word, images, text."


def download_url(attachment: Attachment) -> str:
    return f"/api/candidates/{attachment.candidate_id}/attachments/{attachment.id}/download"


def to_attachment_response(attachment: Attachment) -> AttachmentResponse:
    return AttachmentResponse(
        id=attachment.id,
        candidate_id=attachment.candidate_id,
        filename=attachment.filename,
        mime_type=attachment.mime_type,
        size_bytes=attachment.size_bytes,
        uploaded_by=UserRef.model_validate(attachment.uploaded_by) if attachment.uploaded_by else None,
        uploaded_at=attachment.uploaded_at,
        download_url=download_url(attachment),
    )


class AttachmentService:
    def __init__(self, files: Optional[FileService] = None):
        self.files = files or file_service

    async def _load(self, db: AsyncSession, candidate_id: uuid.UUID, attachment_id: uuid.UUID) -> Attachment:
        result = await db.execute(
            select(Attachment)
            .options(selectinload(Attachment.uploaded_by))
            .where(Attachment.id == attachment_id, Attachment.candidate_id == candidate_id)
        )
        attachment = result.scalar_one_or_none()
        if attachment is None:
            raise NotFoundError("attachment", str(attachment_id), message=ATTACHMENT_NOT_FOUND)
        return attachment

    async def list_attachments(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
    ) -> AttachmentListResponse:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        result = await db.execute(
            select(Attachment)
            .options(selectinload(Attachment.uploaded_by))
            .where(Attachment.candidate_id == candidate.id)
            .order_by(Attachment.uploaded_at.desc())
        )
        return AttachmentListResponse(
            attachments=[to_attachment_response(a) for a in result.scalars().all()]
        )

    async def upload(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        filename: Optional[str],
        content: bytes,
        declared_type: Optional[str],
    ) -> AttachmentResponse:
        """
        Stores one uploaded file for a candidate.

        Raises:
            ValidationError: empty, too large, or a type outside ATTACHMENT_TYPES
            FileStorageError: the file could not be written
        """
        candidate = await load_accessible_candidate(db, actor, candidate_id)

        if not content:
            raise ValidationError(message="No file provided", field="file")
        self.files.validate_size(len(content))

        mime_type = self.files.detect_mime_type(content, declared_type, ATTACHMENT_TYPES)
        if mime_type is None:
            raise ValidationError(
                message=TYPE_NOT_ALLOWED,
                field="file",
                context={"declared_type": declared_type},
            )

        storage_key = await self.files.store(content, ATTACHMENT_TYPES[mime_type], "attachments")
        attachment = Attachment(
            candidate_id=candidate.id,
            filename=Path(filename or "attachment").name[:255],
            storage_key=storage_key,
            mime_type=mime_type,
            size_bytes=len(content),
            uploaded_by=actor,
        )
        db.add(attachment)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="ATTACHMENT_UPLOADED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={
                "attachment_id": attachment.id,
                "filename": attachment.filename,
                "size_bytes": attachment.size_bytes,
            },
        )
        return to_attachment_response(attachment)

    async def resolve_download(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        attachment_id: uuid.UUID,
    ) -> Tuple[Path, Attachment]:
        """Returns the file path to stream together with its row."""
        await load_accessible_candidate(db, actor, candidate_id)
        attachment = await self._load(db, candidate_id, attachment_id)
        path = self.files.resolve(attachment.storage_key)
        if not path.is_file():
            logger.error("Attachment %s missing on disk at %s", attachment.id, attachment.storage_key)
            raise FileStorageError(
                message="Stored file could not be found.",
                context={"attachment_id": str(attachment.id)},
            )
        return path, attachment

    async def delete(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        attachment_id: uuid.UUID,
    ) -> None:
        await load_accessible_candidate(db, actor, candidate_id)
        attachment = await self._load(db, candidate_id, attachment_id)
        if attachment.uploaded_by_user_id != actor.id and not is_admin(actor.role):
            raise PermissionDeniedError(message="You can only delete your own attachments")

        storage_key = attachment.storage_key
        await db.delete(attachment)
        await db.flush()
        await self.files.delete(storage_key)

        audit_service.record(
            db,
            user_id=actor.id,
            action="ATTACHMENT_DELETED",
            entity_type="CANDIDATE",
            entity_id=candidate_id,
            details={"attachment_id": attachment_id, "filename": attachment.filename},
        )


attachment_service = AttachmentService()
