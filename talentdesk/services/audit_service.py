"""
TalentDesk Backend: Audit Trail
===============================

What:  Appends AuditLog rows and lists them for administrators.
How:   `record()` only adds the row to the caller's session. It is committed
       (or rolled back) together with the change it describes, so the audit
       trail never mentions an action that did not happen.
"""

import logging
import uuid
from typing import Any, Dict, List, Optional

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.exceptions import DatabaseError
from talentdesk.models import AuditLog
from talentdesk.schemas.analytics import AuditLogListResponse, AuditLogResponse
from talentdesk.schemas.common import UserRef

logger = logging.getLogger(__name__)


def to_audit_response(log: AuditLog) -> AuditLogResponse:
    return AuditLogResponse(
        id=log.id,
        action=log.action,
        entity_type=log.entity_type,
        entity_id=log.entity_id,
        details=log.details or {},
        user=UserRef.model_validate(log.user) if log.user else None,
        created_at=log.created_at,
    )


class AuditService:
    def record(
        self,
        db: AsyncSession,
        *,
        user_id: Optional[uuid.UUID],
        action: str,
        entity_type: str,
        entity_id: Optional[uuid.UUID] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            # JSONB: UUIDs and datetimes are stored as strings
            details=jsonable_encoder(details or {}),
        )
        db.add(entry)
        logger.info("Audit %s %s:%s by %s", action, entity_type, entity_id, user_id)
        return entry

    async def list_logs(
        self,
        db: AsyncSession,
        entity_type: Optional[str] = None,
        entity_id: Optional[uuid.UUID] = None,
        limit: int = 50,
    ) -> AuditLogListResponse:
        stmt = select(AuditLog).options(selectinload(AuditLog.user))
        if entity_type:
            stmt = stmt.where(AuditLog.entity_type == entity_type)
        if entity_id:
            stmt = stmt.where(AuditLog.entity_id == entity_id)
        stmt = stmt.order_by(AuditLog.created_at.desc()).limit(limit)

        try:
            result = await db.execute(stmt)
            logs: List[AuditLog] = list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Failed to list audit logs: %s", str(e), exc_info=True)
            raise DatabaseError(context={"operation": "list_audit_logs"})

        return AuditLogListResponse(logs=[to_audit_response(log) for log in logs])


audit_service = AuditService()
