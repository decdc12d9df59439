"""
TalentDesk Backend: Candidate Service
=====================================

What:  Candidate reads and writes: detail, partial update, soft delete,
       stage moves, bulk actions, creation inside a pipeline and the
       kanban/table listing of a pipeline.
How:   Every operation loads the candidate through `load_active_candidate`
       (deleted and merged rows are invisible), checks pipeline access for
       the acting user, mutates ORM objects and records one audit entry.
       Commit happens in `get_db_session` once the route returns.

Stage history:
    Every placement writes a CandidateStageHistory row: creation
    (from_stage_id NULL), single moves, bulk moves and import creation.
    A move to the current stage writes nothing.

Async loading:
    Relationships are loaded eagerly with `selectinload`. After a write the
    candidate is re-selected with `populate_existing` so the response sees
    the new tags, stage and assignee without lazy loads.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.config import settings
from talentdesk.dependencies import ensure_permission, ensure_pipeline_access
from talentdesk.exceptions import DatabaseError, NotFoundError, ValidationError
from talentdesk.models import (
    Attachment,
    Candidate,
    CandidateStageHistory,
    CandidateTag,
    EmailLog,
    Note,
    Stage,
    User,
)
from talentdesk.permissions import Permission
from talentdesk.schemas.candidate import (
    BulkActionRequest,
    BulkActionResponse,
    CandidateCreateRequest,
    CandidateDetail,
    CandidateSummary,
    CandidateUpdateRequest,
    KanbanColumn,
    MoveResponse,
    PipelineCandidatesResponse,
    StageHistoryEntry,
)
from talentdesk.schemas.common import Pagination, PipelineRef, StageRef, TagRef, UserRef, total_pages
from talentdesk.services.audit_service import audit_service
from talentdesk.services.cv_parser import normalize_phone
from talentdesk.services.pipeline_service import entry_stage, load_pipeline, to_stage_response

logger = logging.getLogger(__name__)

CANDIDATE_NOT_FOUND = "Candidate not found"
STAGE_NOT_IN_PIPELINE = "Stage not found in this pipeline"
USER_NOT_FOUND = "User not found"

PIPELINE_SORT_FIELDS = {"full_name", "email", "created_at", "updated_at", "stage"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def active_candidate_clause():
    """SQL condition for candidates that are neither soft-deleted nor merged."""
    return and_(Candidate.deleted_at.is_(None), Candidate.merged_into_id.is_(None))


# ── Loading ───────────────────────────────────────────────────────────────


def summary_load_options() -> list:
    return [
        selectinload(Candidate.pipeline),
        selectinload(Candidate.stage),
        selectinload(Candidate.assigned_to),
        selectinload(Candidate.tag_links).selectinload(CandidateTag.tag),
    ]


def detail_load_options() -> list:
    history = selectinload(Candidate.stage_history)
    return summary_load_options() + [
        history.selectinload(CandidateStageHistory.from_stage),
        history.selectinload(CandidateStageHistory.to_stage),
        history.selectinload(CandidateStageHistory.moved_by),
    ]


async def load_active_candidate(
    db: AsyncSession,
    candidate_id: uuid.UUID,
    *,
    detail: bool = False,
    refresh: bool = False,
    for_update: bool = False,
) -> Candidate:
    """
    Loads one active candidate with its relationships.

    Raises:
        NotFoundError: missing, soft-deleted or merged
    """
    stmt = (
        select(Candidate)
        .options(*(detail_load_options() if detail else summary_load_options()))
        .where(Candidate.id == candidate_id, active_candidate_clause())
    )
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    if for_update:
        stmt = stmt.with_for_update(of=Candidate)
    result = await db.execute(stmt)
    candidate = result.scalar_one_or_none()
    if candidate is None:
        raise NotFoundError("candidate", str(candidate_id), message=CANDIDATE_NOT_FOUND)
    return candidate


async def load_accessible_candidate(
    db: AsyncSession,
    actor: User,
    candidate_id: uuid.UUID,
    **kwargs,
) -> Candidate:
    candidate = await load_active_candidate(db, candidate_id, **kwargs)
    await ensure_pipeline_access(db, actor, candidate.pipeline_id)
    return candidate


async def load_active_user(db: AsyncSession, user_id: uuid.UUID) -> User:
    result = await db.execute(select(User).where(User.id == user_id, User.deleted_at.is_(None)))
    user = result.scalar_one_or_none()
    if user is None:
        raise NotFoundError("user", str(user_id), message=USER_NOT_FOUND)
    return user


def record_stage_change(
    db: AsyncSession,
    candidate_id: uuid.UUID,
    from_stage_id: Optional[uuid.UUID],
    to_stage_id: uuid.UUID,
    moved_by_user_id: Optional[uuid.UUID],
) -> CandidateStageHistory:
    entry = CandidateStageHistory(
        candidate_id=candidate_id,
        from_stage_id=from_stage_id,
        to_stage_id=to_stage_id,
        moved_by_user_id=moved_by_user_id,
    )
    db.add(entry)
    return entry


# ── Serialisation ─────────────────────────────────────────────────────────


def _summary_fields(candidate: Candidate) -> dict:
    return dict(
        id=candidate.id,
        full_name=candidate.full_name,
        email=candidate.email,
        phone_e164=candidate.phone_e164,
        source=candidate.source,
        pipeline=PipelineRef.model_validate(candidate.pipeline),
        stage=StageRef.model_validate(candidate.stage),
        assigned_to=UserRef.model_validate(candidate.assigned_to) if candidate.assigned_to else None,
        tags=sorted(
            (TagRef.model_validate(link.tag) for link in candidate.tag_links),
            key=lambda t: t.name.lower(),
        ),
        is_rejected=candidate.is_rejected,
        rejected_at=candidate.rejected_at,
        created_at=candidate.created_at,
        updated_at=candidate.updated_at,
    )


def to_candidate_summary(candidate: Candidate) -> CandidateSummary:
    return CandidateSummary(**_summary_fields(candidate))


def to_candidate_detail(candidate: Candidate, counts: Optional[Dict[str, int]] = None) -> CandidateDetail:
    counts = counts or {}
    history = [
        StageHistoryEntry(
            id=entry.id,
            from_stage=StageRef.model_validate(entry.from_stage) if entry.from_stage else None,
            to_stage=StageRef.model_validate(entry.to_stage) if entry.to_stage else None,
            moved_by=UserRef.model_validate(entry.moved_by) if entry.moved_by else None,
            moved_at=entry.moved_at,
        )
        for entry in candidate.stage_history
    ]
    return CandidateDetail(
        **_summary_fields(candidate),
        extracted_text=candidate.extracted_text,
        parsing_confidence=candidate.parsing_confidence,
        stage_history=history,
        note_count=counts.get("notes", 0),
        attachment_count=counts.get("attachments", 0),
        email_count=counts.get("emails", 0),
    )


async def activity_counts(db: AsyncSession, candidate_id: uuid.UUID) -> Dict[str, int]:
    stmt = select(
        select(func.count(Note.id)).where(Note.candidate_id == candidate_id).scalar_subquery(),
        select(func.count(Attachment.id)).where(Attachment.candidate_id == candidate_id).scalar_subquery(),
        select(func.count(EmailLog.id)).where(EmailLog.candidate_id == candidate_id).scalar_subquery(),
    )
    notes, attachments, emails = (await db.execute(stmt)).one()
    return {"notes": notes or 0, "attachments": attachments or 0, "emails": emails or 0}


async def build_candidate_detail(db: AsyncSession, candidate_id: uuid.UUID) -> CandidateDetail:
    """Re-reads the candidate after a write and renders the full detail."""
    candidate = await load_active_candidate(db, candidate_id, detail=True, refresh=True)
    counts = await activity_counts(db, candidate.id)
    return to_candidate_detail(candidate, counts)


# ── Service ───────────────────────────────────────────────────────────────


class CandidateService:
    """
    Responsibilities:
        - get/update/delete a single candidate
        - move between stages of the same pipeline
        - bulk move/reject/unreject/delete/assign
        - create inside a pipeline and list a pipeline's candidates
    """

    async def get_candidate(self, db: AsyncSession, actor: User, candidate_id: uuid.UUID) -> CandidateDetail:
        try:
            candidate = await load_accessible_candidate(db, actor, candidate_id, detail=True)
            counts = await activity_counts(db, candidate.id)
        except SQLAlchemyError as e:
            logger.error("Failed to load candidate %s: %s", candidate_id, str(e), exc_info=True)
            raise DatabaseError(context={"operation": "get_candidate"})
        return to_candidate_detail(candidate, counts)

    async def update_candidate(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        body: CandidateUpdateRequest,
    ) -> CandidateDetail:
        """
        Applies the fields present in the request body.

        `phone` is normalised to E.164 with the default country code. Setting
        `is_rejected` stamps or clears rejected_at/rejected_by.
        """
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        fields = body.model_fields_set
        changes: Dict[str, object] = {}
        newly_rejected = False

        if "full_name" in fields and body.full_name is not None:
            candidate.full_name = body.full_name
            changes["full_name"] = body.full_name
        if "email" in fields:
            candidate.email = body.email
            changes["email"] = body.email
        if "phone" in fields:
            candidate.phone_e164 = normalize_phone(body.phone, settings.default_country_code)
            changes["phone_e164"] = candidate.phone_e164
        if "assigned_to_user_id" in fields:
            if body.assigned_to_user_id is None:
                candidate.assigned_to = None
            else:
                candidate.assigned_to = await load_active_user(db, body.assigned_to_user_id)
            changes["assigned_to_user_id"] = body.assigned_to_user_id
        if "is_rejected" in fields and body.is_rejected is not None:
            if body.is_rejected and not candidate.is_rejected:
                candidate.rejected_at = _utcnow()
                candidate.rejected_by_user_id = actor.id
                newly_rejected = True
            elif not body.is_rejected:
                candidate.rejected_at = None
                candidate.rejected_by_user_id = None
            candidate.is_rejected = body.is_rejected
            changes["is_rejected"] = body.is_rejected

        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="CANDIDATE_REJECTED" if newly_rejected else "CANDIDATE_UPDATED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={"changes": changes},
        )
        return await build_candidate_detail(db, candidate.id)

    async def delete_candidate(self, db: AsyncSession, actor: User, candidate_id: uuid.UUID) -> None:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        candidate.deleted_at = _utcnow()
        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="CANDIDATE_DELETED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={"full_name": candidate.full_name},
        )
        logger.info("Candidate %s soft-deleted by %s", candidate.id, actor.id)

    async def move_candidate(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        stage_id: uuid.UUID,
    ) -> MoveResponse:
        """
        Moves a candidate to another stage of its own pipeline.

        Raises:
            NotFoundError: candidate missing or merged
            ValidationError: candidate deleted, or stage outside its pipeline
        """
        result = await db.execute(
            select(Candidate)
            .options(*summary_load_options())
            .where(Candidate.id == candidate_id, Candidate.merged_into_id.is_(None))
        )
        candidate = result.scalar_one_or_none()
        if candidate is None:
            raise NotFoundError("candidate", str(candidate_id), message=CANDIDATE_NOT_FOUND)
        if candidate.deleted_at is not None:
            raise ValidationError(message="Cannot move deleted candidate")
        await ensure_pipeline_access(db, actor, candidate.pipeline_id)

        result = await db.execute(
            select(Stage).where(Stage.id == stage_id, Stage.pipeline_id == candidate.pipeline_id)
        )
        target = result.scalar_one_or_none()
        if target is None:
            raise ValidationError(message=STAGE_NOT_IN_PIPELINE, field="stage_id")

        if candidate.stage_id == target.id:
            return MoveResponse(
                message="Candidate is already in this stage",
                candidate=to_candidate_summary(candidate),
            )

        source = candidate.stage
        candidate.stage = target
        record_stage_change(db, candidate.id, source.id, target.id, actor.id)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="CANDIDATE_MOVED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={
                "full_name": candidate.full_name,
                "from_stage_id": source.id,
                "from_stage_name": source.name,
                "to_stage_id": target.id,
                "to_stage_name": target.name,
            },
        )
        logger.info("Candidate %s moved %s → %s", candidate.id, source.name, target.name)
        return MoveResponse(
            message=f"Moved to {target.name}",
            candidate=to_candidate_summary(candidate),
        )

    async def bulk_action(self, db: AsyncSession, actor: User, body: BulkActionRequest) -> BulkActionResponse:
        """
        Applies one action to a set of candidates of the same pipeline.

        Permission depends on the action: move → CANDIDATE_MOVE,
        delete → CANDIDATE_DELETE, everything else → CANDIDATE_UPDATE.
        One audit entry covers the whole call.
        """
        candidate_ids = list(dict.fromkeys(body.candidate_ids))
        result = await db.execute(
            select(Candidate).where(Candidate.id.in_(candidate_ids), active_candidate_clause())
        )
        candidates: List[Candidate] = list(result.scalars().all())
        if len(candidates) != len(candidate_ids):
            raise NotFoundError("candidate", message="One or more candidates not found")

        pipeline_ids = {c.pipeline_id for c in candidates}
        if len(pipeline_ids) > 1:
            raise ValidationError(message="All candidates must be in the same pipeline")
        pipeline_id = pipeline_ids.pop()
        await ensure_pipeline_access(db, actor, pipeline_id)

        count = len(candidate_ids)
        details: Dict[str, object] = {"candidate_ids": candidate_ids, "count": count}
        stmt = update(Candidate).where(Candidate.id.in_(candidate_ids))

        if body.action == "move":
            ensure_permission(actor, Permission.CANDIDATE_MOVE)
            if body.stage_id is None:
                raise ValidationError(message="stage_id is required for move action", field="stage_id")
            result = await db.execute(
                select(Stage).where(Stage.id == body.stage_id, Stage.pipeline_id == pipeline_id)
            )
            stage = result.scalar_one_or_none()
            if stage is None:
                raise NotFoundError("stage", str(body.stage_id), message=STAGE_NOT_IN_PIPELINE)
            for candidate in candidates:
                if candidate.stage_id != stage.id:
                    record_stage_change(db, candidate.id, candidate.stage_id, stage.id, actor.id)
            await db.execute(stmt.values(stage_id=stage.id))
            action = "CANDIDATES_BULK_MOVED"
            details.update(to_stage_id=stage.id, to_stage_name=stage.name)
            message = f"Moved {count} candidates to {stage.name}"

        elif body.action == "reject":
            ensure_permission(actor, Permission.CANDIDATE_UPDATE)
            await db.execute(
                stmt.values(is_rejected=True, rejected_at=_utcnow(), rejected_by_user_id=actor.id)
            )
            action = "CANDIDATES_BULK_REJECTED"
            message = f"Rejected {count} candidates"

        elif body.action == "unreject":
            ensure_permission(actor, Permission.CANDIDATE_UPDATE)
            await db.execute(stmt.values(is_rejected=False, rejected_at=None, rejected_by_user_id=None))
            action = "CANDIDATES_BULK_UNREJECTED"
            message = f"Restored {count} candidates"

        elif body.action == "delete":
            ensure_permission(actor, Permission.CANDIDATE_DELETE)
            await db.execute(stmt.values(deleted_at=_utcnow()))
            action = "CANDIDATES_BULK_DELETED"
            message = f"Deleted {count} candidates"

        else:
            ensure_permission(actor, Permission.CANDIDATE_UPDATE)
            if body.assigned_to_user_id is not None:
                await load_active_user(db, body.assigned_to_user_id)
            await db.execute(stmt.values(assigned_to_user_id=body.assigned_to_user_id))
            action = "CANDIDATES_BULK_ASSIGNED"
            details["assigned_to_user_id"] = body.assigned_to_user_id
            verb = "Assigned" if body.assigned_to_user_id else "Unassigned"
            message = f"{verb} {count} candidates"

        audit_service.record(
            db,
            user_id=actor.id,
            action=action,
            entity_type="CANDIDATE",
            entity_id=candidate_ids[0],
            details=details,
        )
        logger.info("Bulk %s on %d candidates by %s", body.action, count, actor.id)
        return BulkActionResponse(affected=count, message=message)

    # ── Pipeline-scoped operations ────────────────────────────────────────

    async def create_candidate(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        body: CandidateCreateRequest,
    ) -> CandidateSummary:
        """
        Creates a candidate in the given (or entry) stage, assigned to the
        creator, with an initial stage-history row.

        Raises:
            NotFoundError: pipeline missing
            ValidationError: stage outside the pipeline, or no stages at all
        """
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)
        await ensure_pipeline_access(db, actor, pipeline.id)

        if body.stage_id is not None:
            stage = next((s for s in pipeline.stages if s.id == body.stage_id), None)
            if stage is None:
                raise ValidationError(message=STAGE_NOT_IN_PIPELINE, field="stage_id")
        else:
            stage = entry_stage(pipeline.stages)
            if stage is None:
                raise ValidationError(message="Pipeline has no stages")

        candidate = Candidate(
            full_name=body.full_name,
            email=body.email or None,
            phone_e164=normalize_phone(body.phone, settings.default_country_code),
            source=body.source or "manual",
            pipeline=pipeline,
            stage=stage,
            assigned_to=actor,
            tag_links=[],
        )
        db.add(candidate)
        await db.flush()
        record_stage_change(db, candidate.id, None, stage.id, actor.id)

        audit_service.record(
            db,
            user_id=actor.id,
            action="CANDIDATE_CREATED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={"full_name": candidate.full_name, "pipeline_id": pipeline.id, "stage_id": stage.id},
        )
        logger.info("Candidate %s created in pipeline %s", candidate.id, pipeline.id)
        return to_candidate_summary(candidate)

    async def list_pipeline_candidates(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        *,
        view: str = "kanban",
        stage_id: Optional[uuid.UUID] = None,
        search: Optional[str] = None,
        assigned_to_me: bool = False,
        assigned_to_user_id: Optional[str] = None,
        include_rejected: bool = False,
        page: int = 1,
        page_size: int = 50,
        sort_field: str = "created_at",
        sort_order: str = "desc",
    ) -> PipelineCandidatesResponse:
        """
        Lists active candidates of one pipeline.

        view=kanban  every stage in order, each with its candidates (no paging)
        view=table   flat list, sorted and paginated

        `assigned_to_user_id="unassigned"` selects candidates without an
        assignee; `assigned_to_me` wins over `assigned_to_user_id`.
        """
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)
        await ensure_pipeline_access(db, actor, pipeline.id)

        conditions = [Candidate.pipeline_id == pipeline.id, active_candidate_clause()]
        if stage_id:
            conditions.append(Candidate.stage_id == stage_id)
        if not include_rejected:
            conditions.append(Candidate.is_rejected.is_(False))
        if assigned_to_me:
            conditions.append(Candidate.assigned_to_user_id == actor.id)
        elif assigned_to_user_id == "unassigned":
            conditions.append(Candidate.assigned_to_user_id.is_(None))
        elif assigned_to_user_id:
            try:
                conditions.append(Candidate.assigned_to_user_id == uuid.UUID(assigned_to_user_id))
            except ValueError:
                raise ValidationError(message="Invalid assigned_to_user_id", field="assigned_to_user_id")
        if search:
            conditions.append(
                or_(
                    Candidate.full_name.icontains(search, autoescape=True),
                    Candidate.email.icontains(search, autoescape=True),
                    Candidate.phone_e164.icontains(search, autoescape=True),
                )
            )

        stmt = select(Candidate).options(*summary_load_options()).where(*conditions)
        pipeline_ref = PipelineRef.model_validate(pipeline)
        stages = sorted(pipeline.stages, key=lambda s: s.order_index)

        if view == "table":
            total = (await db.execute(select(func.count(Candidate.id)).where(*conditions))).scalar() or 0
            direction = "asc" if sort_order == "asc" else "desc"
            if sort_field == "stage":
                stage_order = select(Stage.order_index).where(Stage.id == Candidate.stage_id).scalar_subquery()
                order_by = [getattr(stage_order, direction)(), Candidate.created_at.desc()]
            elif sort_field in PIPELINE_SORT_FIELDS:
                order_by = [getattr(getattr(Candidate, sort_field), direction)()]
            else:
                order_by = [Candidate.created_at.desc()]
            result = await db.execute(
                stmt.order_by(*order_by).offset((page - 1) * page_size).limit(page_size)
            )
            candidates = list(result.scalars().all())
            return PipelineCandidatesResponse(
                view="table",
                pipeline=pipeline_ref,
                candidates=[to_candidate_summary(c) for c in candidates],
                pagination=Pagination(
                    page=page,
                    page_size=page_size,
                    total=total,
                    total_pages=total_pages(total, page_size),
                ),
            )

        result = await db.execute(stmt.order_by(Candidate.created_at.desc()))
        by_stage: Dict[uuid.UUID, List[CandidateSummary]] = {s.id: [] for s in stages}
        for candidate in result.scalars().all():
            by_stage.setdefault(candidate.stage_id, []).append(to_candidate_summary(candidate))

        columns = [
            KanbanColumn(
                stage=to_stage_response(s, {s.id: len(by_stage[s.id])}),
                candidates=by_stage[s.id],
            )
            for s in stages
            if not stage_id or s.id == stage_id
        ]
        return PipelineCandidatesResponse(view="kanban", pipeline=pipeline_ref, columns=columns)


candidate_service = CandidateService()
