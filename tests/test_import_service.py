"""
TalentDesk Backend: CV Import Unit Tests
========================================

What:  Upload screening per file and batch processing into candidates.
How:   Real FileService on a temp directory; batch lookups and the pipeline
       are patched; the session is mocked.

Test Strategy:
    - rejected uploads are reported per file, never raised
    - one unreadable CV fails its item, not the batch
"""

import io
import uuid
import zipfile
from datetime import datetime, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from talentdesk.config import settings
from talentdesk.exceptions import ValidationError
from talentdesk.models import Candidate, ImportItem
from talentdesk.services.file_service import DOCX_MIME, FileService
from talentdesk.services.import_service import ImportService, fallback_name

CV_TEXT = b"Jane Doe\nBackend Developer\njane@acme.io\nTel: 0470 12 34 56\n"


def _assign_ids(obj):
    if getattr(obj, "id", None) is None:
        obj.id = uuid.uuid4()


@pytest.fixture
def files(temp_storage):
    return FileService(storage_root=temp_storage)


@pytest.fixture
def service(files):
    return ImportService(files=files)


def _batch(**overrides):
    now = datetime.now(timezone.utc)
    pipeline_id = uuid.uuid4()
    values = dict(
        id=uuid.uuid4(),
        status="PENDING",
        items=[],
        pipeline_id=pipeline_id,
        pipeline=SimpleNamespace(id=pipeline_id, name="Backend"),
        default_country_code="BE",
        total_files=0,
        processed_files=0,
        success_count=0,
        failed_count=0,
        created_by=None,
        created_at=now,
        completed_at=None,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_fallback_name():
    assert fallback_name("cv_2024.pdf") == "Candidate from cv_2024.pdf"


class TestUpload:
    async def test_mixed_upload(self, service, mock_db_session, make_user):
        batch = _batch()
        uploads = [
            ("../../cv.txt", CV_TEXT, "text/plain"),
            ("photo.png", b"\x89PNG\r\n\x1a\n" + b"\x00" * 64, "image/png"),
            ("huge.pdf", b"%PDF" + b"0" * settings.max_file_size, "application/pdf"),
        ]

        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)):
            response = await service.upload_files(mock_db_session, make_user(), batch.id, uploads)

        assert response.uploaded == 1
        assert response.failed == 2
        assert response.results[0].filename == "cv.txt"
        assert "Invalid file type" in response.results[1].error
        assert "too large" in response.results[2].error
        assert batch.total_files == 1
        assert batch.items[0].status == "QUEUED"
        assert batch.items[0].storage_key.startswith("imports/")

    async def test_started_batch_rejects_files(self, service, mock_db_session, make_user):
        batch = _batch(status="COMPLETED")
        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)):
            with pytest.raises(ValidationError, match="already started"):
                await service.upload_files(mock_db_session, make_user(), batch.id, [("cv.txt", CV_TEXT, None)])

    async def test_empty_upload(self, service, mock_db_session, make_user):
        batch = _batch()
        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)):
            with pytest.raises(ValidationError, match="No files provided"):
                await service.upload_files(mock_db_session, make_user(), batch.id, [])


class TestProcess:
    async def _item(self, files, filename, content, mime_type):
        return ImportItem(
            id=uuid.uuid4(),
            filename=filename,
            storage_key=await files.store(content, ".bin", "imports"),
            mime_type=mime_type,
            size_bytes=len(content),
            status="QUEUED",
            created_at=datetime.now(timezone.utc),
        )

    async def test_good_and_bad_files(self, service, files, mock_db_session, db_result, make_user):
        good = await self._item(files, "jane.txt", CV_TEXT, "text/plain")
        bad = await self._item(files, "broken.docx", b"not a zip", DOCX_MIME)
        batch = _batch(items=[good, bad], total_files=2)
        stage = SimpleNamespace(id=uuid.uuid4(), is_default=True, order_index=0)

        mock_db_session.execute.return_value = db_result(scalar=None)  # no existing candidate
        mock_db_session.add.side_effect = _assign_ids
        mock_db_session.begin_nested = MagicMock()

        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)), patch(
            "talentdesk.services.import_service.load_pipeline",
            AsyncMock(return_value=SimpleNamespace(stages=[stage])),
        ):
            response = await service.process_batch(mock_db_session, make_user(), batch.id)

        assert response.batch.status == "COMPLETED"
        assert response.batch.success_count == 1
        assert response.batch.failed_count == 1
        assert good.status == "SUCCEEDED"
        assert bad.status == "FAILED"
        assert bad.error_message == "Failed to parse Word document"

        created = [c.args[0] for c in mock_db_session.add.call_args_list if isinstance(c.args[0], Candidate)]
        assert len(created) == 1
        assert created[0].full_name == "Jane Doe"
        assert created[0].email == "jane@acme.io"
        assert created[0].phone_e164 == "+32470123456"
        assert created[0].stage_id == stage.id
        assert good.candidate_id == created[0].id

    async def test_existing_email_reused(self, service, files, mock_db_session, db_result, make_user):
        item = await self._item(files, "jane.txt", CV_TEXT, "text/plain")
        batch = _batch(items=[item], total_files=1)
        existing = SimpleNamespace(id=uuid.uuid4(), extracted_text=None, parsing_confidence=None)

        mock_db_session.execute.return_value = db_result(scalar=existing)
        mock_db_session.begin_nested = MagicMock()

        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)), patch(
            "talentdesk.services.import_service.load_pipeline",
            AsyncMock(return_value=SimpleNamespace(stages=[SimpleNamespace(id=uuid.uuid4(), is_default=True)])),
        ):
            await service.process_batch(mock_db_session, make_user(), batch.id)

        assert item.candidate_id == existing.id
        assert existing.parsing_confidence == 100
        assert not any(isinstance(c.args[0], Candidate) for c in mock_db_session.add.call_args_list)

    async def test_broken_docx_xml_fails_only_its_item(self, service, files, mock_db_session, make_user):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("[Content_Types].xml", "<Types><broken")
        item = await self._item(files, "damaged.docx", buffer.getvalue(), DOCX_MIME)
        batch = _batch(items=[item], total_files=1)
        mock_db_session.begin_nested = MagicMock()

        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)), patch(
            "talentdesk.services.import_service.load_pipeline",
            AsyncMock(return_value=SimpleNamespace(stages=[SimpleNamespace(id=uuid.uuid4(), is_default=True)])),
        ):
            response = await service.process_batch(mock_db_session, make_user(), batch.id)

        assert response.batch.status == "COMPLETED"
        assert response.batch.failed_count == 1
        assert item.status == "FAILED"
        assert item.error_message == "Failed to parse Word document"
        mock_db_session.rollback.assert_not_awaited()

    async def test_nothing_queued(self, service, mock_db_session, make_user):
        batch = _batch(status="COMPLETED")
        with patch.object(service, "_load_batch", AsyncMock(return_value=batch)):
            with pytest.raises(ValidationError, match="No files to process"):
                await service.process_batch(mock_db_session, make_user(), batch.id)
