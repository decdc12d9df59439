"""
TalentDesk Backend: CV Import Routes
====================================

    GET    /api/imports?pipeline_id=           IMPORT_VIEW
    POST   /api/imports                        IMPORT_CREATE
    GET    /api/imports/{batch_id}             IMPORT_VIEW
    DELETE /api/imports/{batch_id}             CANDIDATE_DELETE
    POST   /api/imports/{batch_id}/upload      IMPORT_CREATE  (multipart `files`)
    POST   /api/imports/{batch_id}/process     IMPORT_CREATE

Typical flow:
    ┌────────┐    ┌────────┐    ┌─────────┐    ┌───────────┐
    │ create │───▶│ upload │───▶│ process │───▶│ COMPLETED │
    │PENDING │    │ QUEUED │    │PROCESS- │    │ per-item  │
    │        │    │ items  │    │ ING     │    │ results   │
    └────────┘    └────────┘    └─────────┘    └───────────┘
"""

import logging
import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from talentdesk.database import get_db_session
from talentdesk.dependencies import require_permission
from talentdesk.models import User
from talentdesk.permissions import Permission
from talentdesk.schemas.common import ErrorResponse, SuccessResponse
from talentdesk.schemas.imports import (
    ImportBatchCreateRequest,
    ImportBatchListResponse,
    ImportBatchResponse,
    ProcessResponse,
    UploadResponse,
)
from talentdesk.services.import_service import import_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/imports", tags=["Imports"])


@router.get("", response_model=ImportBatchListResponse, summary="Latest import batches")
async def list_batches(
    pipeline_id: Optional[uuid.UUID] = Query(default=None),
    user: User = Depends(require_permission(Permission.IMPORT_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> ImportBatchListResponse:
    return await import_service.list_batches(db, user, pipeline_id)


@router.post("", status_code=201, response_model=ImportBatchResponse, summary="Create an import batch")
async def create_batch(
    body: ImportBatchCreateRequest,
    user: User = Depends(require_permission(Permission.IMPORT_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> ImportBatchResponse:
    return await import_service.create_batch(db, user, body)


@router.get("/{batch_id}", response_model=ImportBatchResponse, summary="Batch with its items")
async def get_batch(
    batch_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.IMPORT_VIEW)),
    db: AsyncSession = Depends(get_db_session),
) -> ImportBatchResponse:
    return await import_service.get_batch(db, user, batch_id)


@router.delete(
    "/{batch_id}",
    response_model=SuccessResponse,
    responses={400: {"description": "Batch is processing", "model": ErrorResponse}},
    summary="Delete a batch and its stored files",
)
async def delete_batch(
    batch_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.CANDIDATE_DELETE)),
    db: AsyncSession = Depends(get_db_session),
) -> SuccessResponse:
    await import_service.delete_batch(db, user, batch_id)
    return SuccessResponse()


@router.post(
    "/{batch_id}/upload",
    response_model=UploadResponse,
    responses={400: {"description": "Batch not PENDING or no files", "model": ErrorResponse}},
    summary="Add CV files to a pending batch",
)
async def upload_files(
    batch_id: uuid.UUID,
    files: List[UploadFile] = File(default=[], description="PDF, DOC, DOCX or TXT; max 10MB each"),
    user: User = Depends(require_permission(Permission.IMPORT_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> UploadResponse:
    """Rejected files are listed in `results` with their error; they do not fail the request."""
    payload = [(f.filename or "upload", await f.read(), f.content_type) for f in files]
    logger.info("Import upload: batch=%s, files=%d", batch_id, len(payload))
    return await import_service.upload_files(db, user, batch_id, payload)


@router.post(
    "/{batch_id}/process",
    response_model=ProcessResponse,
    responses={400: {"description": "Already processing, nothing queued or no stages", "model": ErrorResponse}},
    summary="Parse queued CVs into candidates",
)
async def process_batch(
    batch_id: uuid.UUID,
    user: User = Depends(require_permission(Permission.IMPORT_CREATE)),
    db: AsyncSession = Depends(get_db_session),
) -> ProcessResponse:
    """
    Runs synchronously. Each file is parsed and either creates a candidate
    in the pipeline's default stage or updates the candidate with the same
    email. One failing file does not stop the others.
    """
    return await import_service.process_batch(db, user, batch_id)
