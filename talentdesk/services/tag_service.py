"""
TalentDesk Backend: Tag Service
===============================

What:  The global tag catalogue and the tags attached to each candidate.
How:   Tags are shared by all pipelines. A candidate's tags are CandidateTag
       link rows (composite primary key, so a tag can be linked once).

    GET    /api/tags                      catalogue with candidate counts
    POST   /api/tags                      new tag, unique name
    GET    /api/candidates/{id}/tags      candidate's tags
    POST   /api/candidates/{id}/tags      link one tag
    PUT    /api/candidates/{id}/tags      replace the whole set
    DELETE /api/candidates/{id}/tags      unlink one tag (?tag_id=)
"""

import logging
import uuid
from typing import List

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.exceptions import ConflictError, NotFoundError
from talentdesk.models import Candidate, CandidateTag, Tag, User
from talentdesk.schemas.activity import (
    CandidateTagsResponse,
    TagAssignRequest,
    TagCreateRequest,
    TagListResponse,
    TagReplaceRequest,
    TagResponse,
)
from talentdesk.schemas.common import TagRef
from talentdesk.services.audit_service import audit_service
from talentdesk.services.candidate_service import active_candidate_clause, load_accessible_candidate

logger = logging.getLogger(__name__)

TAG_NOT_FOUND = "Tag not found"


def _sorted_refs(tags: List[Tag]) -> List[TagRef]:
    return sorted((TagRef.model_validate(t) for t in tags), key=lambda t: t.name.lower())


class TagService:
    async def list_tags(self, db: AsyncSession) -> TagListResponse:
        # Links of deleted or merged candidates are not counted
        counts = (
            select(CandidateTag.tag_id, func.count(CandidateTag.candidate_id).label("n"))
            .join(Candidate, Candidate.id == CandidateTag.candidate_id)
            .where(active_candidate_clause())
            .group_by(CandidateTag.tag_id)
            .subquery()
        )
        result = await db.execute(
            select(Tag, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.tag_id == Tag.id)
            .order_by(Tag.name.asc())
        )
        return TagListResponse(
            tags=[
                TagResponse(
                    id=tag.id,
                    name=tag.name,
                    color=tag.color,
                    candidate_count=count,
                    created_at=tag.created_at,
                )
                for tag, count in result.all()
            ]
        )

    async def create_tag(self, db: AsyncSession, actor: User, body: TagCreateRequest) -> TagResponse:
        name = body.name.strip()
        existing = await db.execute(select(Tag.id).where(func.lower(Tag.name) == name.lower()))
        if existing.scalar_one_or_none() is not None:
            raise ConflictError(message="Tag with this name already exists", context={"name": name})

        tag = Tag(name=name, color=body.color)
        db.add(tag)
        try:
            await db.flush()
        except IntegrityError:
            # Lost a race with a concurrent create of the same name
            raise ConflictError(message="Tag with this name already exists", context={"name": name})

        audit_service.record(
            db,
            user_id=actor.id,
            action="TAG_CREATED",
            entity_type="TAG",
            entity_id=tag.id,
            details={"name": tag.name, "color": tag.color},
        )
        return TagResponse(id=tag.id, name=tag.name, color=tag.color, candidate_count=0, created_at=tag.created_at)

    # ── Candidate tags ────────────────────────────────────────────────────

    async def _candidate_tags(self, db: AsyncSession, candidate_id: uuid.UUID) -> CandidateTagsResponse:
        result = await db.execute(
            select(Tag)
            .join(CandidateTag, CandidateTag.tag_id == Tag.id)
            .where(CandidateTag.candidate_id == candidate_id)
        )
        return CandidateTagsResponse(tags=_sorted_refs(list(result.scalars().all())))

    async def list_candidate_tags(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
    ) -> CandidateTagsResponse:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        return await self._candidate_tags(db, candidate.id)

    async def assign_tag(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        body: TagAssignRequest,
    ) -> CandidateTagsResponse:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        tag = await db.get(Tag, body.tag_id)
        if tag is None:
            raise NotFoundError("tag", str(body.tag_id), message=TAG_NOT_FOUND)
        if any(link.tag_id == tag.id for link in candidate.tag_links):
            raise ConflictError(
                message="Tag already assigned to candidate",
                context={"tag_id": str(tag.id)},
            )

        candidate.tag_links.append(CandidateTag(tag_id=tag.id))
        await db.flush()
        audit_service.record(
            db,
            user_id=actor.id,
            action="TAG_ASSIGNED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={"tag_id": tag.id, "tag_name": tag.name},
        )
        return await self._candidate_tags(db, candidate.id)

    async def replace_tags(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        body: TagReplaceRequest,
    ) -> CandidateTagsResponse:
        """Replaces the candidate's whole tag set; an empty list clears it."""
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        tag_ids = list(dict.fromkeys(body.tag_ids))

        if tag_ids:
            found = (await db.execute(select(Tag.id).where(Tag.id.in_(tag_ids)))).scalars().all()
            if len(set(found)) != len(tag_ids):
                raise NotFoundError(
                    "tag",
                    message="One or more tags not found",
                    context={"missing": [str(t) for t in set(tag_ids) - set(found)]},
                )

        previous = sorted(str(link.tag_id) for link in candidate.tag_links)
        wanted = set(tag_ids)
        # delete-orphan removes the links dropped from the collection
        candidate.tag_links = [link for link in candidate.tag_links if link.tag_id in wanted]
        kept = {link.tag_id for link in candidate.tag_links}
        candidate.tag_links.extend(CandidateTag(tag_id=t) for t in tag_ids if t not in kept)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="TAGS_UPDATED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={"previous_tag_ids": previous, "tag_ids": tag_ids},
        )
        return await self._candidate_tags(db, candidate.id)

    async def remove_tag(
        self,
        db: AsyncSession,
        actor: User,
        candidate_id: uuid.UUID,
        tag_id: uuid.UUID,
    ) -> None:
        candidate = await load_accessible_candidate(db, actor, candidate_id)
        link = next((lk for lk in candidate.tag_links if lk.tag_id == tag_id), None)
        if link is None:
            raise NotFoundError("tag", str(tag_id), message="Tag not assigned to candidate")

        candidate.tag_links.remove(link)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="TAG_REMOVED",
            entity_type="CANDIDATE",
            entity_id=candidate.id,
            details={"tag_id": tag_id},
        )


tag_service = TagService()
