"""
TalentDesk Backend: Stage Service
=================================

What:  Stage CRUD and reordering inside one pipeline.
How:   order_index is kept dense (0..n-1):
           create at index i → stages at or after i shift +1
           delete at index i → stages after i shift -1
           reorder           → order_index = position in the submitted list
       Setting a stage as default clears the flag on its siblings.

All shifts run as single UPDATE statements in the request transaction.
"""

import logging
import uuid
from typing import List

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.dependencies import ensure_pipeline_access
from talentdesk.exceptions import NotFoundError, ValidationError
from talentdesk.models import Candidate, Stage, User
from talentdesk.schemas.pipeline import (
    StageCreateRequest,
    StageListResponse,
    StageReorderRequest,
    StageResponse,
    StageUpdateRequest,
)
from talentdesk.services.audit_service import audit_service
from talentdesk.services.pipeline_service import (
    load_pipeline,
    stage_candidate_counts,
    to_stage_response,
)

logger = logging.getLogger(__name__)

STAGE_NOT_FOUND = "Stage not found"


async def _load_stage(db: AsyncSession, pipeline_id: uuid.UUID, stage_id: uuid.UUID) -> Stage:
    result = await db.execute(
        select(Stage).where(Stage.id == stage_id, Stage.pipeline_id == pipeline_id)
    )
    stage = result.scalar_one_or_none()
    if stage is None:
        raise NotFoundError("stage", str(stage_id), message=STAGE_NOT_FOUND)
    return stage


async def _unset_other_defaults(db: AsyncSession, pipeline_id: uuid.UUID, keep_id: uuid.UUID) -> None:
    await db.execute(
        update(Stage)
        .where(Stage.pipeline_id == pipeline_id, Stage.id != keep_id, Stage.is_default.is_(True))
        .values(is_default=False)
    )


class StageService:
    async def list_stages(self, db: AsyncSession, actor: User, pipeline_id: uuid.UUID) -> StageListResponse:
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)
        await ensure_pipeline_access(db, actor, pipeline.id)
        counts = await stage_candidate_counts(db, [pipeline.id])
        return StageListResponse(
            stages=[to_stage_response(s, counts) for s in sorted(pipeline.stages, key=lambda s: s.order_index)]
        )

    async def create_stage(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        body: StageCreateRequest,
    ) -> StageResponse:
        pipeline = await load_pipeline(db, pipeline_id)

        result = await db.execute(
            select(func.max(Stage.order_index)).where(Stage.pipeline_id == pipeline.id)
        )
        max_index = result.scalar()
        next_index = 0 if max_index is None else max_index + 1

        if body.order_index is None or body.order_index >= next_index:
            order_index = next_index
        else:
            order_index = body.order_index
            await db.execute(
                update(Stage)
                .where(Stage.pipeline_id == pipeline.id, Stage.order_index >= order_index)
                .values(order_index=Stage.order_index + 1)
            )

        stage = Stage(
            pipeline_id=pipeline.id,
            name=body.name,
            color=body.color,
            order_index=order_index,
            is_default=body.is_default,
        )
        db.add(stage)
        await db.flush()
        if stage.is_default:
            await _unset_other_defaults(db, pipeline.id, stage.id)

        audit_service.record(
            db,
            user_id=actor.id,
            action="STAGE_CREATED",
            entity_type="STAGE",
            entity_id=stage.id,
            details={"pipeline_id": pipeline.id, "name": stage.name, "order_index": order_index},
        )
        return to_stage_response(stage)

    async def update_stage(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        stage_id: uuid.UUID,
        body: StageUpdateRequest,
    ) -> StageResponse:
        stage = await _load_stage(db, pipeline_id, stage_id)
        previous_name = stage.name

        if body.is_default is True:
            await _unset_other_defaults(db, pipeline_id, stage.id)
        if body.name is not None:
            stage.name = body.name
        if body.color is not None:
            stage.color = body.color
        if body.is_default is not None:
            stage.is_default = body.is_default
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="STAGE_UPDATED",
            entity_type="STAGE",
            entity_id=stage.id,
            details={
                "pipeline_id": pipeline_id,
                "changes": body.model_dump(exclude_unset=True),
                "previous_name": previous_name,
            },
        )
        counts = await stage_candidate_counts(db, [pipeline_id])
        return to_stage_response(stage, counts)

    async def delete_stage(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        stage_id: uuid.UUID,
    ) -> None:
        """
        Raises:
            NotFoundError: stage missing or in another pipeline
            ValidationError: stage still holds candidates, is the only
                stage, or is the default stage
        """
        stage = await _load_stage(db, pipeline_id, stage_id)

        result = await db.execute(select(func.count(Candidate.id)).where(Candidate.stage_id == stage.id))
        candidate_count = result.scalar() or 0
        if candidate_count > 0:
            raise ValidationError(
                message=f"This stage has {candidate_count} candidates. Move them first.",
                context={"candidate_count": candidate_count},
            )

        result = await db.execute(select(func.count(Stage.id)).where(Stage.pipeline_id == pipeline_id))
        if (result.scalar() or 0) <= 1:
            raise ValidationError(message="Cannot delete the only stage. A pipeline must have at least one stage.")

        if stage.is_default:
            raise ValidationError(message="Cannot delete default stage. Set another stage as default first.")

        deleted_index = stage.order_index
        name = stage.name
        await db.delete(stage)
        await db.flush()
        await db.execute(
            update(Stage)
            .where(Stage.pipeline_id == pipeline_id, Stage.order_index > deleted_index)
            .values(order_index=Stage.order_index - 1)
        )

        audit_service.record(
            db,
            user_id=actor.id,
            action="STAGE_DELETED",
            entity_type="STAGE",
            entity_id=stage_id,
            details={"pipeline_id": pipeline_id, "name": name},
        )

    async def reorder_stages(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: uuid.UUID,
        body: StageReorderRequest,
    ) -> StageListResponse:
        """
        Applies a complete new ordering.

        The submitted list must contain every stage of the pipeline exactly
        once; anything else is rejected before a row is touched.
        """
        pipeline = await load_pipeline(db, pipeline_id, with_stages=True)
        stages_by_id = {s.id: s for s in pipeline.stages}
        submitted: List[uuid.UUID] = body.stage_ids

        if any(stage_id not in stages_by_id for stage_id in submitted):
            raise ValidationError(message="One or more stage IDs do not belong to this pipeline")
        if len(set(submitted)) != len(submitted):
            raise ValidationError(message="Duplicate stage IDs are not allowed")
        if len(submitted) != len(stages_by_id):
            raise ValidationError(message="All stages must be included in the reorder")

        for index, stage_id in enumerate(submitted):
            stages_by_id[stage_id].order_index = index
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="STAGES_REORDERED",
            entity_type="PIPELINE",
            entity_id=pipeline.id,
            details={"new_order": submitted},
        )
        counts = await stage_candidate_counts(db, [pipeline.id])
        return StageListResponse(stages=[to_stage_response(stages_by_id[sid], counts) for sid in submitted])


stage_service = StageService()
