"""
TalentDesk Backend: Analytics Aggregator
========================================

What:  Dashboard numbers for a time window: KPIs, per-pipeline funnels, a
       daily creation series, source breakdown, recent activity and the
       most active recruiters.
How:   A fixed list of aggregate queries scoped to the caller's visible,
       non-archived pipelines. They run one after another on the request
       session (an AsyncSession cannot run statements concurrently); the
       arithmetic lives in small pure helpers.

Window (UTC):
    start = start of day (now - days)
    end   = end of day (now)
    previous period = [start - days, start)

KPI formulas:
    growth_rate      round((this - prev) / prev * 100); 100 when prev is 0
                     and this > 0; otherwise 0
    conversion_rate  round(distinct candidates moved between stages in the
                     window / total candidates * 100); 0 when total is 0
    hired            active candidates whose stage name contains "hired"
"""

import logging
import uuid
from collections import Counter
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import distinct, false, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.dependencies import PIPELINE_ACCESS_DENIED, accessible_pipeline_ids
from talentdesk.exceptions import DatabaseError, PermissionDeniedError
from talentdesk.models import (
    AuditLog,
    Candidate,
    CandidateStageHistory,
    EmailLog,
    ImportBatch,
    Pipeline,
    Stage,
    User,
)
from talentdesk.schemas.analytics import (
    KPIs,
    AnalyticsPeriod,
    AnalyticsResponse,
    FunnelStage,
    PipelineFunnel,
    TimeSeriesPoint,
    TopRecruiter,
)
from talentdesk.schemas.common import SourceCount, UserRef
from talentdesk.services.audit_service import to_audit_response
from talentdesk.services.candidate_service import active_candidate_clause
from talentdesk.services.pipeline_service import stage_candidate_counts

logger = logging.getLogger(__name__)

ACTIVITY_ENTITY_TYPES = ("CANDIDATE", "PIPELINE", "STAGE")
RECENT_ACTIVITY_LIMIT = 10
TOP_RECRUITERS_LIMIT = 5


# ── Pure helpers ──────────────────────────────────────────────────────────


def analytics_window(days: int, now: Optional[datetime] = None) -> Tuple[datetime, datetime, datetime]:
    """Returns (start, end, previous_start) for a window of `days`."""
    now = now or datetime.now(timezone.utc)
    start = datetime.combine((now - timedelta(days=days)).date(), time.min, tzinfo=timezone.utc)
    end = datetime.combine(now.date(), time.max, tzinfo=timezone.utc)
    return start, end, start - timedelta(days=days)


def compute_growth(this_period: int, previous_period: int) -> int:
    if previous_period > 0:
        return round((this_period - previous_period) / previous_period * 100)
    return 100 if this_period > 0 else 0


def compute_conversion(moved: int, total: int) -> int:
    return round(moved / total * 100) if total > 0 else 0


def build_time_series(start: date, days: int, created: Iterable[datetime]) -> List[TimeSeriesPoint]:
    """One point per day from `start` through start + days, zero-filled."""
    counts = Counter(ts.astimezone(timezone.utc).date() for ts in created)
    return [
        TimeSeriesPoint(date=day.isoformat(), count=counts.get(day, 0))
        for day in (start + timedelta(days=i) for i in range(days + 1))
    ]


def source_counts(rows: Iterable[Tuple[Optional[str], int]]) -> List[SourceCount]:
    """Null sources are reported as "manual" and merged with explicit ones."""
    merged: Dict[str, int] = {}
    for source, count in rows:
        key = source or "manual"
        merged[key] = merged.get(key, 0) + count
    return [
        SourceCount(source=source, count=count)
        for source, count in sorted(merged.items(), key=lambda item: item[1], reverse=True)
    ]


def rank_recruiters(
    rows: Iterable[Tuple[uuid.UUID, int]],
    users_by_id: Dict[uuid.UUID, User],
) -> List[TopRecruiter]:
    """Keeps the query's order; assignees without a user row show as "Unknown"."""
    ranked: List[TopRecruiter] = []
    for user_id, count in rows:
        user = users_by_id.get(user_id)
        ref = UserRef.model_validate(user) if user else UserRef(id=user_id, name="Unknown", email="")
        ranked.append(TopRecruiter(user=ref, count=count))
    return ranked


# ── Service ───────────────────────────────────────────────────────────────


class AnalyticsService:
    async def _scoped_pipelines(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: Optional[uuid.UUID],
    ) -> List[Pipeline]:
        allowed = await accessible_pipeline_ids(db, actor)
        if pipeline_id and allowed is not None and pipeline_id not in allowed:
            raise PermissionDeniedError(message=PIPELINE_ACCESS_DENIED, context={"pipeline_id": str(pipeline_id)})

        stmt = (
            select(Pipeline)
            .options(selectinload(Pipeline.stages))
            .where(Pipeline.is_archived.is_(False))
            .order_by(Pipeline.created_at.asc())
        )
        if pipeline_id:
            stmt = stmt.where(Pipeline.id == pipeline_id)
        if allowed is not None:
            stmt = stmt.where(Pipeline.id.in_(allowed) if allowed else false())
        result = await db.execute(stmt)
        return list(result.scalars().all())

    async def _count(self, db: AsyncSession, stmt) -> int:
        return (await db.execute(stmt)).scalar() or 0

    async def get_analytics(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: Optional[uuid.UUID] = None,
        days: int = 30,
    ) -> AnalyticsResponse:
        start, end, previous_start = analytics_window(days)
        try:
            return await self._aggregate(db, actor, pipeline_id, days, start, end, previous_start)
        except SQLAlchemyError as e:
            logger.error("Analytics aggregation failed: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "analytics"})

    async def _aggregate(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: Optional[uuid.UUID],
        days: int,
        start: datetime,
        end: datetime,
        previous_start: datetime,
    ) -> AnalyticsResponse:
        pipelines = await self._scoped_pipelines(db, actor, pipeline_id)
        pipeline_ids = [p.id for p in pipelines]

        in_scope = [Candidate.pipeline_id.in_(pipeline_ids), active_candidate_clause()]
        in_window = [Candidate.created_at >= start, Candidate.created_at <= end]
        count_candidates = select(func.count(Candidate.id))

        # ── KPIs ──────────────────────────────────────────────────────────
        total = await self._count(db, count_candidates.where(*in_scope))
        this_period = await self._count(db, count_candidates.where(*in_scope, *in_window))
        previous_period = await self._count(
            db,
            count_candidates.where(
                *in_scope, Candidate.created_at >= previous_start, Candidate.created_at < start
            ),
        )
        rejected = await self._count(db, count_candidates.where(*in_scope, Candidate.rejected_at.is_not(None)))
        hired = await self._count(
            db,
            count_candidates.join(Stage, Stage.id == Candidate.stage_id).where(
                *in_scope, Stage.name.icontains("hired")
            ),
        )
        pending_imports = await self._count(
            db,
            select(func.count(ImportBatch.id)).where(
                ImportBatch.pipeline_id.in_(pipeline_ids),
                ImportBatch.status.in_(("PENDING", "PROCESSING")),
            ),
        )
        emails_sent = await self._count(
            db,
            select(func.count(EmailLog.id))
            .join(Candidate, Candidate.id == EmailLog.candidate_id)
            .where(
                Candidate.pipeline_id.in_(pipeline_ids),
                EmailLog.status == "SENT",
                EmailLog.sent_at >= start,
                EmailLog.sent_at <= end,
            ),
        )
        moved = await self._count(
            db,
            select(func.count(distinct(CandidateStageHistory.candidate_id)))
            .join(Candidate, Candidate.id == CandidateStageHistory.candidate_id)
            .where(
                *in_scope,
                CandidateStageHistory.from_stage_id.is_not(None),
                CandidateStageHistory.moved_at >= start,
                CandidateStageHistory.moved_at <= end,
            ),
        )

        kpis = KPIs(
            total_candidates=total,
            active_pipelines=len(pipelines),
            candidates_this_period=this_period,
            candidates_previous_period=previous_period,
            growth_rate=compute_growth(this_period, previous_period),
            rejected_candidates=rejected,
            hired_candidates=hired,
            pending_imports=pending_imports,
            emails_sent=emails_sent,
            conversion_rate=compute_conversion(moved, total),
        )

        # ── Funnels ───────────────────────────────────────────────────────
        counts = await stage_candidate_counts(db, pipeline_ids)
        funnels = [
            PipelineFunnel(
                id=p.id,
                name=p.name,
                stages=[
                    FunnelStage(id=s.id, name=s.name, color=s.color, count=counts.get(s.id, 0))
                    for s in sorted(p.stages, key=lambda s: s.order_index)
                ],
            )
            for p in pipelines
        ]

        # ── Time series and sources ───────────────────────────────────────
        created = (
            await db.execute(select(Candidate.created_at).where(*in_scope, *in_window))
        ).scalars().all()
        time_series = build_time_series(start.date(), days, created)

        source_rows = (
            await db.execute(
                select(Candidate.source, func.count(Candidate.id))
                .where(*in_scope, *in_window)
                .group_by(Candidate.source)
            )
        ).all()

        # ── Activity and recruiters ───────────────────────────────────────
        activity = (
            await db.execute(
                select(AuditLog)
                .options(selectinload(AuditLog.user))
                .where(AuditLog.entity_type.in_(ACTIVITY_ENTITY_TYPES))
                .order_by(AuditLog.created_at.desc())
                .limit(RECENT_ACTIVITY_LIMIT)
            )
        ).scalars().all()

        recruiter_rows = (
            await db.execute(
                select(Candidate.assigned_to_user_id, func.count(Candidate.id).label("created"))
                .where(*in_scope, *in_window, Candidate.assigned_to_user_id.is_not(None))
                .group_by(Candidate.assigned_to_user_id)
                .order_by(func.count(Candidate.id).desc())
                .limit(TOP_RECRUITERS_LIMIT)
            )
        ).all()
        top_recruiters: List[TopRecruiter] = []
        if recruiter_rows:
            users = (
                await db.execute(select(User).where(User.id.in_([uid for uid, _ in recruiter_rows])))
            ).scalars().all()
            top_recruiters = rank_recruiters(recruiter_rows, {u.id: u for u in users})

        logger.info(
            "Analytics for %s: %d pipelines, %d candidates, window %d days",
            actor.id,
            len(pipelines),
            total,
            days,
        )
        return AnalyticsResponse(
            period=AnalyticsPeriod(days=days, start=start, end=end),
            kpis=kpis,
            pipeline_funnels=funnels,
            time_series=time_series,
            sources=source_counts(source_rows),
            recent_activity=[to_audit_response(log) for log in activity],
            top_recruiters=top_recruiters,
        )


analytics_service = AnalyticsService()
