"""
TalentDesk Backend: Analytics and Audit Schemas
===============================================
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from talentdesk.schemas.common import SourceCount, UserRef


class AuditLogResponse(BaseModel):
    id: uuid.UUID
    action: str
    entity_type: str
    entity_id: Optional[uuid.UUID] = None
    details: Dict[str, Any] = Field(default_factory=dict, description="Action-specific metadata")
    user: Optional[UserRef] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class AuditLogListResponse(BaseModel):
    logs: List[AuditLogResponse]


class AnalyticsPeriod(BaseModel):
    days: int
    start: datetime
    end: datetime


class KPIs(BaseModel):
    total_candidates: int
    active_pipelines: int
    candidates_this_period: int
    candidates_previous_period: int
    growth_rate: int = Field(description="Percent change versus the previous period")
    rejected_candidates: int
    hired_candidates: int
    pending_imports: int
    emails_sent: int
    conversion_rate: int = Field(description="Percent of candidates moved between stages in the period")


class FunnelStage(BaseModel):
    id: uuid.UUID
    name: str
    color: str
    count: int


class PipelineFunnel(BaseModel):
    id: uuid.UUID
    name: str
    stages: List[FunnelStage]


class TimeSeriesPoint(BaseModel):
    date: str = Field(description="YYYY-MM-DD")
    count: int


class TopRecruiter(BaseModel):
    user: UserRef
    count: int


class AnalyticsResponse(BaseModel):
    period: AnalyticsPeriod
    kpis: KPIs
    pipeline_funnels: List[PipelineFunnel]
    time_series: List[TimeSeriesPoint]
    sources: List[SourceCount]
    recent_activity: List[AuditLogResponse]
    top_recruiters: List[TopRecruiter]
