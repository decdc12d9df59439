"""
TalentDesk Backend: File Service Unit Tests
===========================================

What:  Upload validation (size, MIME type) and the storage lifecycle.
How:   Each test gets its own storage root from `temp_storage`. libmagic is
       patched where the exact detection result matters.

Test Strategy:
    - size limit at the configured maximum
    - detected type wins; a bare container defers only to a declared type it can hold
    - storage keys never escape the storage root
"""

from unittest.mock import patch

import pytest

from talentdesk.config import settings
from talentdesk.exceptions import ValidationError
from talentdesk.services.file_service import ATTACHMENT_TYPES, DOCX_MIME, IMPORT_TYPES, FileService


@pytest.fixture
def service(temp_storage):
    return FileService(storage_root=temp_storage)


class TestSizeValidation:
    def test_within_limit(self, service):
        service.validate_size(1024)

    def test_exact_limit_allowed(self, service):
        service.validate_size(settings.max_file_size)

    def test_over_limit_rejected(self, service):
        with pytest.raises(ValidationError, match="File too large"):
            service.validate_size(settings.max_file_size + 1)


class TestMimeDetection:
    def test_detected_type_used(self, service):
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value="application/pdf"):
            assert service.detect_mime_type(b"%PDF-1.4", "application/octet-stream", ATTACHMENT_TYPES) == "application/pdf"

    def test_zip_container_defers_to_declared_docx(self, service):
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value="application/zip"):
            assert service.detect_mime_type(b"PK\x03\x04", DOCX_MIME, IMPORT_TYPES) == DOCX_MIME

    def test_ole_container_defers_to_declared_doc(self, service):
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value="application/x-ole-storage"):
            assert service.detect_mime_type(b"\xd0\xcf\x11\xe0", "application/msword", IMPORT_TYPES) == "application/msword"

    @pytest.mark.parametrize(
        "detected, declared",
        [
            ("application/zip", "application/pdf"),
            ("application/zip", "image/png"),
            ("application/x-ole-storage", DOCX_MIME),
            ("application/octet-stream", "application/pdf"),
        ],
    )
    def test_container_cannot_claim_unrelated_type(self, service, detected, declared):
        """A bare container only vouches for the formats it can actually hold."""
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value=detected):
            assert service.detect_mime_type(b"PK\x03\x04", declared, ATTACHMENT_TYPES) is None

    def test_plain_text_declared_as_csv(self, service):
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value="text/plain"):
            assert service.detect_mime_type(b"a,b\n1,2\n", "text/csv", ATTACHMENT_TYPES) == "text/csv"

    def test_executable_rejected(self, service):
        """A disguised executable is refused whatever it claims to be."""
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value="application/x-dosexec"):
            assert service.detect_mime_type(b"MZ\x90\x00", "application/pdf", ATTACHMENT_TYPES) is None

    def test_image_not_allowed_for_imports(self, service):
        with patch("talentdesk.services.file_service.magic.from_buffer", return_value="image/png"):
            assert service.detect_mime_type(b"\x89PNG", "image/png", IMPORT_TYPES) is None

    def test_real_libmagic_plain_text(self, service):
        assert service.detect_mime_type(b"Jane Doe\njane@acme.io\n", "text/plain", IMPORT_TYPES) == "text/plain"


class TestStorage:
    async def test_store_read_delete(self, service):
        key = await service.store(b"cv contents", ".txt", "attachments")

        assert key.startswith("attachments/")
        assert key.endswith(".txt")
        assert await service.read(key) == b"cv contents"

        await service.delete(key)
        assert not service.resolve(key).exists()

    async def test_keys_are_unique(self, service):
        first = await service.store(b"a", ".pdf", "imports")
        second = await service.store(b"a", ".pdf", "imports")
        assert first != second

    def test_traversal_rejected(self, service):
        with pytest.raises(ValidationError, match="Invalid file path"):
            service.resolve("../../etc/passwd")

    async def test_delete_missing_file_is_silent(self, service):
        await service.delete("attachments/2024/01/01/missing.pdf")

    async def test_delete_traversal_is_silent(self, service):
        await service.delete("../outside.txt")
