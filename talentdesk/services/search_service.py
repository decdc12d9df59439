"""
TalentDesk Backend: Search and Filter Engine
============================================

What:  Global candidate search with structured filters, sorting, paging and
       the facet lists the search UI needs.
How:   Three pure steps, then two queries:
           parse_search_params()      query string / saved dict → SearchFilters
           build_search_conditions()  SearchFilters → SQL WHERE conditions
           resolve_sort()             sort_field/sort_order → ORDER BY
       The page and the total count run as separate statements on the
       request session, followed by the facet queries.

Filter semantics:
    q                 name/email/note content (case-insensitive) or phone
                      containing q
    tag_ids           any-of
    status            active → not rejected, rejected → rejected, all → both
    date_from/date_to on created_at, UTC; date_to includes its whole day
    has_* flags       true → present/exists, false → missing/none
                      a repeated flag resolves to its last value

Access:
    Non-admin users only ever match candidates of their assigned pipelines.
    Asking for a specific pipeline outside that set is a 403, not an empty
    result.
"""

import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional, Set

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import exists, false, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.dependencies import PIPELINE_ACCESS_DENIED, accessible_pipeline_ids
from talentdesk.exceptions import DatabaseError, PermissionDeniedError, ValidationError
from talentdesk.models import (
    Attachment,
    Candidate,
    CandidateTag,
    Note,
    Pipeline,
    Stage,
    Tag,
    User,
)
from talentdesk.schemas.common import Pagination, PipelineRef, SourceCount, StageRef, TagRef, UserRef, total_pages
from talentdesk.schemas.search import SORT_FIELDS, FilterOptions, SearchFilters, SearchResponse
from talentdesk.services.candidate_service import (
    active_candidate_clause,
    summary_load_options,
    to_candidate_summary,
)

logger = logging.getLogger(__name__)

SCALAR_PARAMS = (
    "q",
    "pipeline_id",
    "stage_id",
    "source",
    "assigned_to_user_id",
    "status",
    "date_from",
    "date_to",
    "page",
    "page_size",
    "sort_field",
    "sort_order",
)
FLAG_PARAMS = ("has_email", "has_phone", "has_notes", "has_attachments")
MAX_PAGE_SIZE = 100


# ── Parameter parsing ─────────────────────────────────────────────────────


def _values(params: Mapping[str, Any], key: str) -> List[Any]:
    """All values of `key`, from starlette QueryParams or a plain dict."""
    if hasattr(params, "getlist"):
        return list(params.getlist(key))
    value = params.get(key)
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _flag(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered == "true":
            return True
        if lowered == "false":
            return False
    return None


def parse_search_params(params: Mapping[str, Any]) -> SearchFilters:
    """
    Normalises raw search parameters.

    Accepts the request's QueryParams or a saved search's filter dict.
    Empty strings count as absent. page_size above 100 is clamped.

    Raises:
        ValidationError: a value cannot be parsed (bad UUID, date, status...)
    """
    data: dict = {}
    for key in SCALAR_PARAMS:
        values = [v for v in _values(params, key) if v not in (None, "")]
        if values:
            data[key] = values[-1]

    for key in FLAG_PARAMS:
        flags = [_flag(v) for v in _values(params, key)]
        flags = [f for f in flags if f is not None]
        if flags:
            data[key] = flags[-1]

    tag_ids = _values(params, "tag_id") + _values(params, "tag_ids")
    data["tag_ids"] = [t for t in tag_ids if t not in (None, "")]

    if "page_size" in data:
        try:
            data["page_size"] = min(int(data["page_size"]), MAX_PAGE_SIZE)
        except (TypeError, ValueError):
            pass

    try:
        return SearchFilters.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            message="Invalid search parameters",
            context={"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
        )


def _start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def build_search_conditions(
    filters: SearchFilters,
    allowed_pipelines: Optional[Set[uuid.UUID]] = None,
) -> list:
    """
    Translates filters into SQL conditions, always including the
    active-candidate clause and the pipeline scope.

    `allowed_pipelines` None means unrestricted.
    """
    conditions = [active_candidate_clause()]

    if allowed_pipelines is not None:
        if allowed_pipelines:
            conditions.append(Candidate.pipeline_id.in_(allowed_pipelines))
        else:
            conditions.append(false())
    if filters.pipeline_id:
        conditions.append(Candidate.pipeline_id == filters.pipeline_id)
    if filters.stage_id:
        conditions.append(Candidate.stage_id == filters.stage_id)

    q = (filters.q or "").strip()
    if q:
        note_match = exists().where(
            Note.candidate_id == Candidate.id,
            Note.content.icontains(q, autoescape=True),
        )
        conditions.append(
            or_(
                Candidate.full_name.icontains(q, autoescape=True),
                Candidate.email.icontains(q, autoescape=True),
                Candidate.phone_e164.contains(q, autoescape=True),
                note_match,
            )
        )

    if filters.tag_ids:
        conditions.append(
            exists().where(
                CandidateTag.candidate_id == Candidate.id,
                CandidateTag.tag_id.in_(filters.tag_ids),
            )
        )
    if filters.source:
        conditions.append(Candidate.source == filters.source)
    if filters.assigned_to_user_id:
        conditions.append(Candidate.assigned_to_user_id == filters.assigned_to_user_id)

    if filters.status == "active":
        conditions.append(Candidate.rejected_at.is_(None))
    elif filters.status == "rejected":
        conditions.append(Candidate.rejected_at.is_not(None))

    if filters.date_from:
        conditions.append(Candidate.created_at >= _start_of_day(filters.date_from))
    if filters.date_to:
        conditions.append(Candidate.created_at < _start_of_day(filters.date_to + timedelta(days=1)))

    if filters.has_email is not None:
        conditions.append(Candidate.email.is_not(None) if filters.has_email else Candidate.email.is_(None))
    if filters.has_phone is not None:
        conditions.append(
            Candidate.phone_e164.is_not(None) if filters.has_phone else Candidate.phone_e164.is_(None)
        )
    if filters.has_notes is not None:
        has_notes = exists().where(Note.candidate_id == Candidate.id)
        conditions.append(has_notes if filters.has_notes else ~has_notes)
    if filters.has_attachments is not None:
        has_attachments = exists().where(Attachment.candidate_id == Candidate.id)
        conditions.append(has_attachments if filters.has_attachments else ~has_attachments)

    return conditions


def resolve_sort(sort_field: str, sort_order: str) -> list:
    """
    ORDER BY clauses for a sort request; unknown fields fall back to
    created_at descending. Pipeline and stage sort by name.
    """
    if sort_field not in SORT_FIELDS:
        return [Candidate.created_at.desc()]
    direction = "asc" if sort_order == "asc" else "desc"
    if sort_field == "pipeline":
        column = select(Pipeline.name).where(Pipeline.id == Candidate.pipeline_id).scalar_subquery()
    elif sort_field == "stage":
        column = select(Stage.name).where(Stage.id == Candidate.stage_id).scalar_subquery()
    else:
        column = getattr(Candidate, sort_field)
    return [getattr(column, direction)(), Candidate.id.asc()]


# ── Service ───────────────────────────────────────────────────────────────


class SearchService:
    async def search(self, db: AsyncSession, actor: User, filters: SearchFilters) -> SearchResponse:
        allowed = await accessible_pipeline_ids(db, actor)
        if filters.pipeline_id and allowed is not None and filters.pipeline_id not in allowed:
            raise PermissionDeniedError(
                message=PIPELINE_ACCESS_DENIED,
                context={"pipeline_id": str(filters.pipeline_id)},
            )

        conditions = build_search_conditions(filters, allowed)
        offset = (filters.page - 1) * filters.page_size

        try:
            result = await db.execute(
                select(Candidate)
                .options(*summary_load_options())
                .where(*conditions)
                .order_by(*resolve_sort(filters.sort_field, filters.sort_order))
                .offset(offset)
                .limit(filters.page_size)
            )
            candidates = list(result.scalars().all())
            total = (await db.execute(select(func.count(Candidate.id)).where(*conditions))).scalar() or 0
            options = await self.filter_options(db, allowed, filters.pipeline_id)
        except SQLAlchemyError as e:
            logger.error("Candidate search failed: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "search"})

        return SearchResponse(
            candidates=[to_candidate_summary(c) for c in candidates],
            pagination=Pagination(
                page=filters.page,
                page_size=filters.page_size,
                total=total,
                total_pages=total_pages(total, filters.page_size),
            ),
            filter_options=options,
        )

    async def filter_options(
        self,
        db: AsyncSession,
        allowed: Optional[Iterable[uuid.UUID]],
        pipeline_id: Optional[uuid.UUID] = None,
    ) -> FilterOptions:
        pipelines_stmt = select(Pipeline).where(Pipeline.is_archived.is_(False)).order_by(Pipeline.name.asc())
        if allowed is not None:
            pipelines_stmt = pipelines_stmt.where(Pipeline.id.in_(list(allowed)))
        pipelines = (await db.execute(pipelines_stmt)).scalars().all()

        stages = []
        if pipeline_id:
            stages = (
                await db.execute(
                    select(Stage).where(Stage.pipeline_id == pipeline_id).order_by(Stage.order_index.asc())
                )
            ).scalars().all()

        tags = (await db.execute(select(Tag).order_by(Tag.name.asc()))).scalars().all()

        source_rows = (
            await db.execute(
                select(Candidate.source, func.count(Candidate.id))
                .where(active_candidate_clause(), Candidate.source.is_not(None))
                .group_by(Candidate.source)
                .order_by(func.count(Candidate.id).desc())
            )
        ).all()

        recruiters = (
            await db.execute(select(User).where(User.deleted_at.is_(None)).order_by(User.name.asc()))
        ).scalars().all()

        return FilterOptions(
            pipelines=[PipelineRef.model_validate(p) for p in pipelines],
            stages=[StageRef.model_validate(s) for s in stages],
            tags=[TagRef.model_validate(t) for t in tags],
            sources=[SourceCount(source=source, count=count) for source, count in source_rows],
            recruiters=[UserRef.model_validate(u) for u in recruiters],
        )


search_service = SearchService()
