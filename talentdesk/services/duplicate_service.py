"""
TalentDesk Backend: Duplicate Detection
=======================================

What:  Finds groups of active candidates that share an email address
       (case-insensitive) or an E.164 phone number.
How:   Two ordered scans (candidates with an email, candidates with a
       phone), grouped in memory by `build_duplicate_groups`, which is pure
       and unit-tested on its own.

Grouping rules:
    1. Email groups come first. A group of 2+ is reported in full when at
       least two of its members have not been reported yet; all members are
       then marked as seen.
    2. Phone groups of 2+:
         two or more unseen members → report only the unseen members and
                                      mark them seen
         exactly one unseen member  → report the full group for context,
                                      mark nothing
    3. Groups are sorted by size, largest first (stable for ties).

A candidate can therefore appear in one email group and one context phone
group. No reported group ever has fewer than two members.
"""

import logging
import uuid
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.exceptions import DatabaseError
from talentdesk.models import Attachment, Candidate, Note
from talentdesk.schemas.candidate import (
    DuplicateCandidate,
    DuplicateGroup,
    DuplicatesResponse,
    DuplicateStats,
)
from talentdesk.schemas.common import PipelineRef, StageRef
from talentdesk.services.candidate_service import active_candidate_clause

logger = logging.getLogger(__name__)


@dataclass
class RawGroup:
    type: str
    value: str
    members: list

    @property
    def key(self) -> str:
        return f"{self.type}:{self.value}"


def _group_by(rows: Sequence, key_func) -> Dict[str, list]:
    groups: Dict[str, list] = {}
    for row in rows:
        groups.setdefault(key_func(row), []).append(row)
    return groups


def build_duplicate_groups(with_email: Sequence, with_phone: Sequence) -> List[RawGroup]:
    """
    Groups candidate-like rows (anything with `id`, `email`, `phone_e164`).

    Both inputs are expected in created_at ascending order; member order in
    each group follows input order.
    """
    seen = set()
    groups: List[RawGroup] = []

    for email, members in _group_by(with_email, lambda c: c.email.lower()).items():
        if len(members) < 2:
            continue
        unseen = [c for c in members if c.id not in seen]
        if len(unseen) > 1:
            groups.append(RawGroup("email", email, members))
            seen.update(c.id for c in members)

    for phone, members in _group_by(with_phone, lambda c: c.phone_e164).items():
        if len(members) < 2:
            continue
        unseen = [c for c in members if c.id not in seen]
        if len(unseen) > 1:
            groups.append(RawGroup("phone", phone, unseen))
            seen.update(c.id for c in unseen)
        elif len(unseen) == 1:
            groups.append(RawGroup("phone", phone, members))

    groups.sort(key=lambda g: len(g.members), reverse=True)
    return groups


class DuplicateService:
    async def _scan(self, db: AsyncSession, column, pipeline_id: Optional[uuid.UUID]) -> List[Candidate]:
        stmt = (
            select(Candidate)
            .options(selectinload(Candidate.pipeline), selectinload(Candidate.stage))
            .where(active_candidate_clause(), column.is_not(None))
            .order_by(Candidate.created_at.asc())
        )
        if pipeline_id:
            stmt = stmt.where(Candidate.pipeline_id == pipeline_id)
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _child_counts(self, db: AsyncSession, model, candidate_ids) -> Dict[uuid.UUID, int]:
        if not candidate_ids:
            return {}
        result = await db.execute(
            select(model.candidate_id, func.count(model.id))
            .where(model.candidate_id.in_(candidate_ids))
            .group_by(model.candidate_id)
        )
        return {cid: count for cid, count in result.all()}

    async def find_duplicates(
        self,
        db: AsyncSession,
        pipeline_id: Optional[uuid.UUID] = None,
    ) -> DuplicatesResponse:
        try:
            with_email = await self._scan(db, Candidate.email, pipeline_id)
            with_phone = await self._scan(db, Candidate.phone_e164, pipeline_id)
            groups = build_duplicate_groups(with_email, with_phone)

            involved = list({c.id for g in groups for c in g.members})
            note_counts = await self._child_counts(db, Note, involved)
            attachment_counts = await self._child_counts(db, Attachment, involved)
        except SQLAlchemyError as e:
            logger.error("Duplicate scan failed: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "find_duplicates"})

        def row(c: Candidate) -> DuplicateCandidate:
            return DuplicateCandidate(
                id=c.id,
                full_name=c.full_name,
                email=c.email,
                phone_e164=c.phone_e164,
                pipeline=PipelineRef.model_validate(c.pipeline),
                stage=StageRef.model_validate(c.stage),
                created_at=c.created_at,
                source=c.source,
                note_count=note_counts.get(c.id, 0),
                attachment_count=attachment_counts.get(c.id, 0),
            )

        response_groups = [
            DuplicateGroup(key=g.key, type=g.type, value=g.value, candidates=[row(c) for c in g.members])
            for g in groups
        ]
        logger.info("Duplicate scan found %d groups", len(response_groups))
        return DuplicatesResponse(
            groups=response_groups,
            stats=DuplicateStats(
                total_groups=len(response_groups),
                total_duplicates=sum(len(g.candidates) for g in response_groups),
            ),
        )


duplicate_service = DuplicateService()
