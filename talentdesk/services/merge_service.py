"""
TalentDesk Backend: Merge Orchestrator
======================================

What:  Folds one or more source candidates into a target candidate.
How:   All involved rows are locked with SELECT ... FOR UPDATE (in id order,
       so two concurrent merges over the same rows cannot deadlock), then
       every step runs in the request transaction:

    ┌────────────┐   ┌────────────┐   ┌────────────┐   ┌────────────┐
    │ Overrides  │──▶│ Backfill   │──▶│ Tag union  │──▶│ Re-point   │
    │ on target  │   │ email/phone│   │            │   │ child rows │
    └────────────┘   └────────────┘   └────────────┘   └─────┬──────┘
                                                             ▼
                                    ┌────────────┐   ┌────────────┐
                                    │ Audit log  │◀──│ Mark merged│
                                    │            │   │ + MergeLog │
                                    └────────────┘   └────────────┘

    Any exception propagates; `get_db_session` rolls the whole merge back.

Field rules:
    full_name override  applied only when non-empty
    email / phone_e164  applied whenever the key is present, null included
    backfill            target email/phone missing and no (truthy) override
                        for that field → first source in request order that
                        has a value

Sources keep their own tag links; they become invisible anyway once
merged_into_id is set. There is no un-merge.
"""

import logging
from typing import Dict, List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.exceptions import DatabaseError, NotFoundError, ValidationError
from talentdesk.models import (
    Attachment,
    Candidate,
    CandidateStageHistory,
    CandidateTag,
    EmailLog,
    MergeLog,
    Note,
    User,
)
from talentdesk.schemas.candidate import MergeOverrides, MergeRequest, MergeResponse
from talentdesk.services.audit_service import audit_service
from talentdesk.services.candidate_service import build_candidate_detail

logger = logging.getLogger(__name__)

# Child tables whose rows follow their candidate into the merge target
CHILD_MODELS = (Note, Attachment, EmailLog, CandidateStageHistory)


def apply_field_overrides(
    target: Candidate,
    sources: List[Candidate],
    overrides: Optional[MergeOverrides],
) -> Dict[str, Optional[str]]:
    """
    Applies overrides and backfill to `target` in place.

    Returns the fields that changed, for logging.
    """
    original_email = target.email
    original_phone = target.phone_e164
    given = overrides.model_fields_set if overrides else set()
    changed: Dict[str, Optional[str]] = {}

    if overrides and overrides.full_name:
        target.full_name = overrides.full_name
        changed["full_name"] = overrides.full_name
    if "email" in given:
        target.email = overrides.email
        changed["email"] = overrides.email
    if "phone_e164" in given:
        target.phone_e164 = overrides.phone_e164
        changed["phone_e164"] = overrides.phone_e164

    if not original_email and not (overrides and overrides.email):
        email = next((s.email for s in sources if s.email), None)
        if email:
            target.email = email
            changed["email"] = email
    if not original_phone and not (overrides and overrides.phone_e164):
        phone = next((s.phone_e164 for s in sources if s.phone_e164), None)
        if phone:
            target.phone_e164 = phone
            changed["phone_e164"] = phone

    return changed


def union_tags(target: Candidate, sources: List[Candidate]) -> int:
    """Links every source tag the target lacks; returns how many were added."""
    existing = {link.tag_id for link in target.tag_links}
    added = 0
    for source in sources:
        for link in source.tag_links:
            if link.tag_id not in existing:
                target.tag_links.append(CandidateTag(tag_id=link.tag_id))
                existing.add(link.tag_id)
                added += 1
    return added


class MergeService:
    async def merge(self, db: AsyncSession, actor: User, body: MergeRequest) -> MergeResponse:
        """
        Merges `body.source_ids` into `body.target_id`.

        Raises:
            ValidationError: target listed among the sources
            NotFoundError: target or any source missing, deleted or merged
            DatabaseError: the database rejected one of the writes
        """
        if body.target_id in body.source_ids:
            raise ValidationError(message="Target candidate cannot be in source list", field="source_ids")

        source_ids = list(dict.fromkeys(body.source_ids))
        all_ids = [body.target_id, *source_ids]

        result = await db.execute(
            select(Candidate)
            .options(selectinload(Candidate.tag_links))
            .where(Candidate.id.in_(all_ids))
            .order_by(Candidate.id)
            .with_for_update(of=Candidate)
        )
        rows = {c.id: c for c in result.scalars().all()}

        target = rows.get(body.target_id)
        if target is None or not target.is_active:
            raise NotFoundError(
                "candidate",
                str(body.target_id),
                message="Target candidate not found or already merged",
            )

        sources = [rows.get(sid) for sid in source_ids]
        if any(s is None or not s.is_active for s in sources):
            raise NotFoundError("candidate", message="Some source candidates not found or already merged")

        try:
            changed = apply_field_overrides(target, sources, body.field_overrides)
            tags_added = union_tags(target, sources)
            await db.flush()

            for model in CHILD_MODELS:
                await db.execute(
                    update(model)
                    .where(model.candidate_id.in_(source_ids))
                    .values(candidate_id=target.id)
                    .execution_options(synchronize_session=False)
                )

            for source in sources:
                source.merged_into_id = target.id
                db.add(
                    MergeLog(
                        source_candidate_id=source.id,
                        target_candidate_id=target.id,
                        merged_by_user_id=actor.id,
                    )
                )
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Merge into %s failed: %s", target.id, str(e), exc_info=True)
            raise DatabaseError(
                message="Failed to merge candidates. No changes were made.",
                context={"target_id": str(target.id)},
            )

        audit_service.record(
            db,
            user_id=actor.id,
            action="CANDIDATE_MERGE",
            entity_type="CANDIDATE",
            entity_id=target.id,
            details={
                "target_id": target.id,
                "source_ids": source_ids,
                "source_count": len(source_ids),
            },
        )
        logger.info(
            "Merged %d candidates into %s (fields=%s, tags_added=%d)",
            len(source_ids),
            target.id,
            sorted(changed),
            tags_added,
        )

        return MergeResponse(
            merged=len(source_ids),
            candidate=await build_candidate_detail(db, target.id),
        )


merge_service = MergeService()
