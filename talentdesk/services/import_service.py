"""
TalentDesk Backend: CV Import Service
=====================================

What:  Batch import of CV files into a pipeline as candidates.
How:   Three steps, each its own request:

    1. create   POST /api/imports                  batch row, PENDING
    2. upload   POST /api/imports/{id}/upload      files → storage, QUEUED items
    3. process  POST /api/imports/{id}/process     parse each item, create or
                                                   update candidates

Processing runs inside the request. Each item is handled in a SAVEPOINT
so one broken file (or one rejected INSERT) only fails that item:

    for item in queued:
        ┌─ SAVEPOINT ─────────────────────────────────────────────┐
        │ read file → parse_cv (worker thread) → dedup by email   │
        │   match    → refresh extracted_text / confidence        │
        │   no match → new candidate + stage history row          │
        └─────────────────────────────────────────────────────────┘
        item SUCCEEDED | FAILED, batch counters += 1

The PROCESSING status is committed before the loop. If the loop itself
blows up, the batch is marked FAILED and that is committed before the
error propagates, so no batch is left stuck in PROCESSING.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from talentdesk.dependencies import accessible_pipeline_ids, ensure_pipeline_access
from talentdesk.exceptions import FileStorageError, NotFoundError, TalentDeskError, ValidationError
from talentdesk.models import Candidate, ImportBatch, ImportItem, Stage, User
from talentdesk.schemas.common import PipelineRef, UserRef
from talentdesk.schemas.imports import (
    ImportBatchCreateRequest,
    ImportBatchListResponse,
    ImportBatchResponse,
    ImportItemResponse,
    ProcessResponse,
    UploadResponse,
    UploadResult,
)
from talentdesk.services.audit_service import audit_service
from talentdesk.services.candidate_service import active_candidate_clause, record_stage_change
from talentdesk.services.cv_parser import CVParseError, ParsedCV, normalize_phone, parse_cv
from talentdesk.services.file_service import IMPORT_TYPES, FileService, file_service
from talentdesk.services.pipeline_service import entry_stage, load_pipeline

logger = logging.getLogger(__name__)

BATCH_NOT_FOUND = "Import batch not found"
LIST_LIMIT = 50


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def fallback_name(filename: str) -> str:
    return f"Candidate from {filename}"


def to_batch_response(batch: ImportBatch, with_items: bool = False) -> ImportBatchResponse:
    return ImportBatchResponse(
        id=batch.id,
        pipeline=PipelineRef.model_validate(batch.pipeline),
        status=batch.status,
        default_country_code=batch.default_country_code,
        total_files=batch.total_files,
        processed_files=batch.processed_files,
        success_count=batch.success_count,
        failed_count=batch.failed_count,
        created_by=UserRef.model_validate(batch.created_by) if batch.created_by else None,
        created_at=batch.created_at,
        completed_at=batch.completed_at,
        items=[ImportItemResponse.model_validate(i) for i in batch.items] if with_items else [],
    )


class ImportService:
    def __init__(self, files: Optional[FileService] = None):
        self.files = files or file_service

    async def _load_batch(
        self,
        db: AsyncSession,
        actor: User,
        batch_id: uuid.UUID,
        refresh: bool = False,
    ) -> ImportBatch:
        stmt = (
            select(ImportBatch)
            .options(
                selectinload(ImportBatch.pipeline),
                selectinload(ImportBatch.created_by),
                selectinload(ImportBatch.items),
            )
            .where(ImportBatch.id == batch_id)
        )
        if refresh:
            stmt = stmt.execution_options(populate_existing=True)
        batch = (await db.execute(stmt)).scalar_one_or_none()
        if batch is None:
            raise NotFoundError("import batch", str(batch_id), message=BATCH_NOT_FOUND)
        await ensure_pipeline_access(db, actor, batch.pipeline_id)
        return batch

    # ── Batches ───────────────────────────────────────────────────────────

    async def list_batches(
        self,
        db: AsyncSession,
        actor: User,
        pipeline_id: Optional[uuid.UUID] = None,
    ) -> ImportBatchListResponse:
        stmt = (
            select(ImportBatch)
            .options(selectinload(ImportBatch.pipeline), selectinload(ImportBatch.created_by))
            .order_by(ImportBatch.created_at.desc())
            .limit(LIST_LIMIT)
        )
        if pipeline_id:
            await ensure_pipeline_access(db, actor, pipeline_id)
            stmt = stmt.where(ImportBatch.pipeline_id == pipeline_id)
        else:
            allowed = await accessible_pipeline_ids(db, actor)
            if allowed is not None:
                stmt = stmt.where(ImportBatch.pipeline_id.in_(allowed))
        result = await db.execute(stmt)
        return ImportBatchListResponse(batches=[to_batch_response(b) for b in result.scalars().all()])

    async def create_batch(
        self,
        db: AsyncSession,
        actor: User,
        body: ImportBatchCreateRequest,
    ) -> ImportBatchResponse:
        pipeline = await load_pipeline(db, body.pipeline_id)
        await ensure_pipeline_access(db, actor, pipeline.id)

        batch = ImportBatch(
            pipeline=pipeline,
            created_by=actor,
            status="PENDING",
            default_country_code=body.default_country_code.upper(),
            total_files=0,
            processed_files=0,
            success_count=0,
            failed_count=0,
            items=[],
        )
        db.add(batch)
        await db.flush()

        audit_service.record(
            db,
            user_id=actor.id,
            action="IMPORT_BATCH_CREATED",
            entity_type="IMPORT_BATCH",
            entity_id=batch.id,
            details={"pipeline_id": pipeline.id, "pipeline_name": pipeline.name},
        )
        return to_batch_response(batch, with_items=True)

    async def get_batch(self, db: AsyncSession, actor: User, batch_id: uuid.UUID) -> ImportBatchResponse:
        return to_batch_response(await self._load_batch(db, actor, batch_id), with_items=True)

    async def delete_batch(self, db: AsyncSession, actor: User, batch_id: uuid.UUID) -> None:
        batch = await self._load_batch(db, actor, batch_id)
        if batch.status == "PROCESSING":
            raise ValidationError(message="Cannot delete a batch that is currently processing")

        storage_keys = [item.storage_key for item in batch.items]
        pipeline_id = batch.pipeline_id
        await db.delete(batch)
        await db.flush()
        for key in storage_keys:
            await self.files.delete(key)

        audit_service.record(
            db,
            user_id=actor.id,
            action="IMPORT_BATCH_DELETED",
            entity_type="IMPORT_BATCH",
            entity_id=batch_id,
            details={"pipeline_id": pipeline_id, "file_count": len(storage_keys)},
        )

    # ── Upload ────────────────────────────────────────────────────────────

    async def upload_files(
        self,
        db: AsyncSession,
        actor: User,
        batch_id: uuid.UUID,
        files: List[Tuple[str, bytes, Optional[str]]],
    ) -> UploadResponse:
        """
        Queues (filename, content, declared content type) tuples on a batch.

        Per-file problems are reported in the results, never raised.
        """
        batch = await self._load_batch(db, actor, batch_id)
        if batch.status != "PENDING":
            raise ValidationError(message="Cannot add files to a batch that has already started processing")
        if not files:
            raise ValidationError(message="No files provided", field="files")

        results: List[UploadResult] = []
        for filename, content, declared_type in files:
            name = Path(filename or "upload").name[:255]
            if self.files.is_too_large(len(content)):
                results.append(
                    UploadResult(filename=name, success=False, error=f"File too large (max {self.files.max_size_mb}MB)")
                )
                continue
            try:
                mime_type = self.files.detect_mime_type(content, declared_type, IMPORT_TYPES)
                if mime_type is None or not content:
                    results.append(
                        UploadResult(filename=name, success=False, error="Invalid file type. Allowed: PDF, Word, TXT")
                    )
                    continue
                storage_key = await self.files.store(content, IMPORT_TYPES[mime_type], "imports")
            except FileStorageError as e:
                logger.warning("Upload of %s to batch %s failed: %s", name, batch.id, e.message)
                results.append(UploadResult(filename=name, success=False, error="Upload failed"))
                continue

            item = ImportItem(
                filename=name,
                storage_key=storage_key,
                mime_type=mime_type,
                size_bytes=len(content),
                status="QUEUED",
            )
            batch.items.append(item)
            batch.total_files += 1
            await db.flush()
            results.append(UploadResult(filename=name, success=True, item_id=item.id))

        uploaded = sum(1 for r in results if r.success)
        logger.info("Batch %s: %d uploaded, %d rejected", batch.id, uploaded, len(results) - uploaded)
        return UploadResponse(results=results, uploaded=uploaded, failed=len(results) - uploaded)

    # ── Process ───────────────────────────────────────────────────────────

    async def _find_by_email(self, db: AsyncSession, pipeline_id: uuid.UUID, email: str) -> Optional[Candidate]:
        result = await db.execute(
            select(Candidate)
            .where(
                Candidate.pipeline_id == pipeline_id,
                func.lower(Candidate.email) == email.lower(),
                active_candidate_clause(),
            )
            .order_by(Candidate.created_at.asc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _parse_item(self, item: ImportItem) -> ParsedCV:
        content = await self.files.read(item.storage_key)
        return await asyncio.to_thread(parse_cv, content, item.mime_type)

    async def _apply_result(
        self,
        db: AsyncSession,
        actor: User,
        batch: ImportBatch,
        stage: Stage,
        item: ImportItem,
        parsed: ParsedCV,
    ) -> None:
        item.parsed_name = parsed.full_name
        item.parsed_email = parsed.email
        item.parsed_phone = parsed.phone
        item.parsing_confidence = parsed.confidence

        existing = await self._find_by_email(db, batch.pipeline_id, parsed.email) if parsed.email else None
        if existing is not None:
            existing.extracted_text = parsed.extracted_text
            existing.parsing_confidence = parsed.confidence
            item.candidate_id = existing.id
            logger.info("Import item %s matched existing candidate %s", item.id, existing.id)
        else:
            candidate = Candidate(
                full_name=(parsed.full_name or fallback_name(item.filename))[:200],
                email=parsed.email,
                phone_e164=normalize_phone(parsed.phone, batch.default_country_code),
                pipeline_id=batch.pipeline_id,
                stage_id=stage.id,
                assigned_to_user_id=actor.id,
                source="import",
                import_item_id=item.id,
                extracted_text=parsed.extracted_text,
                parsing_confidence=parsed.confidence,
                tag_links=[],
            )
            db.add(candidate)
            await db.flush()
            record_stage_change(db, candidate.id, None, stage.id, actor.id)
            item.candidate_id = candidate.id

        item.status = "SUCCEEDED"
        item.processed_at = _utcnow()
        await db.flush()

    async def process_batch(self, db: AsyncSession, actor: User, batch_id: uuid.UUID) -> ProcessResponse:
        """
        Parses every QUEUED item of a batch.

        Raises:
            ValidationError: batch already processing, nothing queued, or the
                pipeline has no stage to place candidates in
        """
        batch = await self._load_batch(db, actor, batch_id)
        if batch.status == "PROCESSING":
            raise ValidationError(message="Batch is already being processed")
        queued = [item for item in batch.items if item.status == "QUEUED"]
        if not queued:
            raise ValidationError(message="No files to process")

        pipeline = await load_pipeline(db, batch.pipeline_id, with_stages=True)
        stage = entry_stage(pipeline.stages)
        if stage is None:
            raise ValidationError(message="Pipeline has no stages")

        batch.status = "PROCESSING"
        await db.commit()
        logger.info("Processing import batch %s: %d queued files", batch.id, len(queued))

        try:
            for item in queued:
                item_id, filename = item.id, item.filename
                item.status = "PROCESSING"
                try:
                    parsed = await self._parse_item(item)
                    async with db.begin_nested():
                        await self._apply_result(db, actor, batch, stage, item, parsed)
                    batch.success_count += 1
                except (CVParseError, TalentDeskError, SQLAlchemyError) as e:
                    if isinstance(e, SQLAlchemyError):
                        # The savepoint rollback expired the item
                        await db.refresh(item)
                    reason = e.message if isinstance(e, TalentDeskError) else str(e) or type(e).__name__
                    logger.warning("Import item %s (%s) failed: %s", item_id, filename, reason)
                    item.status = "FAILED"
                    item.error_message = reason[:1000]
                    item.processed_at = _utcnow()
                    batch.failed_count += 1
                batch.processed_files += 1
                await db.flush()

            batch.status = "COMPLETED"
            batch.completed_at = _utcnow()
            audit_service.record(
                db,
                user_id=actor.id,
                action="IMPORT_BATCH_COMPLETED",
                entity_type="IMPORT_BATCH",
                entity_id=batch.id,
                details={
                    "total_files": batch.total_files,
                    "success_count": batch.success_count,
                    "failed_count": batch.failed_count,
                },
            )
            await db.flush()
        except Exception:
            logger.error("Import batch %s failed", batch_id, exc_info=True)
            await db.rollback()
            failed = await db.get(ImportBatch, batch_id)
            if failed is not None:
                failed.status = "FAILED"
                await db.commit()
            raise

        logger.info(
            "Import batch %s completed: %d succeeded, %d failed",
            batch.id,
            batch.success_count,
            batch.failed_count,
        )
        refreshed = await self._load_batch(db, actor, batch_id, refresh=True)
        return ProcessResponse(batch=to_batch_response(refreshed, with_items=True))


import_service = ImportService()
