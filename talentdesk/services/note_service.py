"""
TalentDesk Backend: Note Service
================================

What:  Free-text notes on a candidate.
Who:   Anyone with NOTE_VIEW reads; NOTE_CREATE writes. Editing and deleting
       additionally require being the author, unless the caller is
       OWNER/ADMIN.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.exceptions import NotFoundError, PermissionDeniedError
from talentdesk.models import Note, User
from talentdesk.permissions import is_admin
from talentdesk.schemas.activity import (
    NoteCreateRequest,
    NoteListResponse,
    NoteResponse,
    NoteUpdateRequest,
)
from talentdesk.services.audit_service import audit_service
from talentdesk.services.candidate_service import load_accessible_candidate

logger = logging.getLogger(__name__)

NOTE_NOT_FOUND = "Note not found"


def can_modify_note(user: User, note: Note) -> bool:
    return note.created_by_user_id == user.id or is_admin(user.role)


class NoteService:
    async def _load_note(self, db: AsyncSession, candidate_id: uuid.UUID, note_id: uuid.UUID) -> Note:
        result = await db.execute(
            select(Note)
            .options(selectinload(Note.author))
            .where(Note.id == note_id, Note.candidate_id == candidate_id)
        )
        note = result.scalar_one_or_none()
        if note is None:
            raise NotFoundError("note", str(note_id), message=NOTE_NOT_FOUND)
        return note

    async def list_notes(self, db: AsyncSession, actor: User, candidate_id: uuid.UUID) -> NoteListResponse:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        result = await db.execute(
            select(Note)
            .options(selectinload(Note.author))
            .where(Note.candidate_id == candidate.id)
            .order_by(Note.created_at.desc())
        )
        return NoteListResponse(notes=[NoteResponse.model_validate(n) for n in result.scalars().all()])

    async def create_note(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        body: NoteCreateRequest,
    ) -> NoteResponse:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        note = Note(candidate_id=candidate.id, content=body.content, author=actor)
        db.add(note)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="NOTE_CREATED",
            entity_type="NOTE",
            entity_id=note.id,
            details={"candidate_id": candidate.id, "note_id": note.id},
        )
        return NoteResponse.model_validate(note)

    async def get_note(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        note_id: uuid.UUID,
    ) -> NoteResponse:
        await load_accessible_candidate(db, actor, candidate_id)
        return NoteResponse.model_validate(await self._load_note(db, candidate_id, note_id))

    async def update_note(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        note_id: uuid.UUID,
        body: NoteUpdateRequest,
    ) -> NoteResponse:
        await load_accessible_candidate(db, actor, candidate_id)
        note = await self._load_note(db, candidate_id, note_id)
        if not can_modify_note(actor, note):
            raise PermissionDeniedError(message="You can only edit your own notes")

        note.content = body.content
        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="NOTE_UPDATED",
            entity_type="NOTE",
            entity_id=note.id,
            details={"candidate_id": candidate_id, "note_id": note.id},
        )
        return NoteResponse.model_validate(note)

    async def delete_note(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        note_id: uuid.UUID,
    ) -> None:
        await load_accessible_candidate(db, actor, candidate_id)
        note = await self._load_note(db, candidate_id, note_id)
        if not can_modify_note(actor, note):
            raise PermissionDeniedError(message="You can only delete your own notes")

        await db.delete(note)
        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="NOTE_DELETED",
            entity_type="NOTE",
            entity_id=note_id,
            details={"candidate_id": candidate_id, "note_id": note_id},
        )
        logger.info("Note %s deleted by %s", note_id, actor.id)


note_service = NoteService()
