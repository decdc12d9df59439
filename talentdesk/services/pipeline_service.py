"""
TalentDesk Backend: Pipeline Service
====================================

What:  Pipeline CRUD plus the stage lookups other services share
       (`load_pipeline`, `entry_stage`, `stage_candidate_counts`).

Visibility:
    OWNER/ADMIN see every pipeline. RECRUITER/VIEWER see only pipelines they
    are assigned to; a direct request for any other pipeline is a 403.
    Archived pipelines are hidden from the list but still readable by id.

Deletion:
    A pipeline can only be deleted while no candidate row references it,
    soft-deleted and merged rows included (they still hold the foreign key).
    Archiving is the normal way to retire a pipeline.
"""

import logging
import uuid
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.dependencies import accessible_pipeline_ids, ensure_pipeline_access
from talentdesk.exceptions import DatabaseError, NotFoundError, ValidationError
from talentdesk.models import Candidate, Pipeline, Stage, User
from talentdesk.schemas.pipeline import (
    DEFAULT_STAGE_COLOR,
    PipelineCreateRequest,
    PipelineListResponse,
    PipelineResponse,
    PipelineUpdateRequest,
    StageResponse,
)
from talentdesk.services.audit_service import audit_service

logger = logging.getLogger(__name__)

PIPELINE_NOT_FOUND = "Pipeline not found"

DEFAULT_STAGES = [
    ("Inbox", "#6B7280"),
    ("Screening", "#3B82F6"),
    ("Interview", "#8B5CF6"),
    ("Offer", "#F59E0B"),
    ("Hired", "#10B981"),
    ("Rejected", "#EF4444"),
]


# ── Shared helpers ────────────────────────────────────────────────────────


async def load_pipeline(
    db: AsyncSession,
    pipeline_id: uuid.UUID,
    with_stages: bool = False,
) -> Pipeline:
    stmt = select(Pipeline).where(Pipeline.id == pipeline_id)
    if with_stages:
        stmt = stmt.options(selectinload(Pipeline.stages))
    result = await db.execute(stmt)
    pipeline = result.scalar_one_or_none()
    if pipeline is None:
        raise NotFoundError("pipeline", str(pipeline_id), message=PIPELINE_NOT_FOUND)
    return pipeline


def entry_stage(stages: Iterable[Stage]) -> Optional[Stage]:
    """Where new candidates land: the default stage, else the first by order_index."""
    stages = list(stages)
    for stage in stages:
        if stage.is_default:
            return stage
    if not stages:
        return None
    return min(stages, key=lambda s: s.order_index)


async def stage_candidate_counts(
    db: AsyncSession,
    pipeline_ids: Iterable[uuid.UUID],
) -> Dict[uuid.UUID, int]:
    """Active candidates per stage for the given pipelines."""
    ids = list(pipeline_ids)
    if not ids:
        return {}
    result = await db.execute(
        select(Candidate.stage_id, func.count(Candidate.id))
        .where(
            Candidate.pipeline_id.in_(ids),
            Candidate.deleted_at.is_(None),
            Candidate.merged_into_id.is_(None),
        )
        .group_by(Candidate.stage_id)
    )
    return {stage_id: count for stage_id, count in result.all()}


def to_stage_response(stage: Stage, counts: Optional[Dict[uuid.UUID, int]] = None) -> StageResponse:
    return StageResponse(
        id=stage.id,
        pipeline_id=stage.pipeline_id,
        name=stage.name,
        color=stage.color,
        order_index=stage.order_index,
        is_default=stage.is_default,
        candidate_count=(counts or {}).get(stage.id, 0),
    )


def to_pipeline_response(
    pipeline: Pipeline,
    counts: Optional[Dict[uuid.UUID, int]] = None,
) -> PipelineResponse:
    stages = [to_stage_response(s, counts) for s in sorted(pipeline.stages, key=lambda s: s.order_index)]
    return PipelineResponse(
        id=pipeline.id,
        name=pipeline.name,
        description=pipeline.description,
        is_archived=pipeline.is_archived,
        created_at=pipeline.created_at,
        updated_at=pipeline.updated_at,
        stages=stages,
        candidate_count=sum(s.candidate_count for s in stages),
    )


# ── Service ───────────────────────────────────────────────────────────────


class PipelineService:
    async def list_pipelines(self, db: AsyncSession, actor: User) -> PipelineListResponse:
        allowed = await accessible_pipeline_ids(db, actor)

        stmt = (
            select(Pipeline)
            .options(selectinload(Pipeline.stages))
            .where(Pipeline.is_archived.is_(False))
            .order_by(Pipeline.created_at.desc())
        )
        if allowed is not None:
            if not allowed:
                return PipelineListResponse(pipelines=[])
            stmt = stmt.where(Pipeline.id.in_(allowed))

        try:
            result = await db.execute(stmt)
            pipelines: List[Pipeline] = list(result.scalars().all())
            counts = await stage_candidate_counts(db, [p.id for p in pipelines])
        except SQLAlchemyError as e:
            logger.error("Failed to list pipelines: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "list_pipelines"})

        return PipelineListResponse(pipelines=[to_pipeline_response(p, counts) for p in pipelines])

    async def create_pipeline(
        self,
        db: AsyncSession,
        actor: User,
        body: PipelineCreateRequest,
    ) -> PipelineResponse:
        """
        Creates a pipeline with its stages in one flush.

        Without `stages` the six standard stages are created with Inbox as
        default; with custom stages the first one is the default.
        """
        if body.stages:
            stage_specs = [(s.name, s.color or DEFAULT_STAGE_COLOR) for s in body.stages]
        else:
            stage_specs = DEFAULT_STAGES

        pipeline = Pipeline(
            name=body.name,
            description=body.description,
            created_by_user_id=actor.id,
            stages=[
                Stage(name=name, color=color, order_index=index, is_default=(index == 0))
                for index, (name, color) in enumerate(stage_specs)
            ],
        )
        db.add(pipeline)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="PIPELINE_CREATED",
            entity_type="PIPELINE",
            entity_id=pipeline.id,
            details={"name": pipeline.name, "stage_count": len(stage_specs)},
        )
        logger.info("Pipeline %s created with %d stages", pipeline.id, len(stage_specs))
        return to_pipeline_response(pipeline)

    async def get_pipeline(self, db: AsyncSession, actor: User, pipeline_id: uuid.UUID) -> PipelineResponse:
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)
        await ensure_pipeline_access(db, actor, pipeline.id)
        counts = await stage_candidate_counts(db, [pipeline.id])
        return to_pipeline_response(pipeline, counts)

    async def update_pipeline(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        body: PipelineUpdateRequest,
    ) -> PipelineResponse:
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)
        previous_name = pipeline.name
        changes = body.model_dump(exclude_unset=True)

        if body.name is not None:
            pipeline.name = body.name
        if "description" in body.model_fields_set:
            pipeline.description = body.description
        if body.is_archived is not None:
            pipeline.is_archived = body.is_archived
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="PIPELINE_ARCHIVED" if body.is_archived else "PIPELINE_UPDATED",
            entity_type="PIPELINE",
            entity_id=pipeline.id,
            details={"changes": changes, "previous_name": previous_name},
        )
        counts = await stage_candidate_counts(db, [pipeline.id])
        return to_pipeline_response(pipeline, counts)

    async def delete_pipeline(self, db: AsyncSession, actor: User, pipeline_id: uuid.UUID) -> None:
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)

        result = await db.execute(
            select(func.count(Candidate.id)).where(Candidate.pipeline_id == pipeline.id)
        )
        candidate_count = result.scalar() or 0
        if candidate_count > 0:
            raise ValidationError(
                message=(
                    f"This pipeline has {candidate_count} candidates. "
                    "Archive it instead or move candidates first."
                ),
                context={"candidate_count": candidate_count},
            )

        name = pipeline.name
        await db.delete(pipeline)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="PIPELINE_DELETED",
            entity_type="PIPELINE",
            entity_id=pipeline_id,
            details={"name": name},
        )
        logger.info("Pipeline %s deleted by %s", pipeline_id, actor.id)


pipeline_service = PipelineService()
