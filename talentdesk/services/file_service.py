"""
TalentDesk Backend: File Storage Service
========================================

What:  Validates uploaded files and stores them on the local storage volume.
How:   Size check first, then the real content type is sniffed from the file
       header bytes with python-magic, then the bytes are written with
       aiofiles under a date-organised directory using a UUID filename.
Who:   AttachmentService (candidate documents) and ImportService (CV batches).

Directory layout (relative to STORAGE_ROOT, stored as `storage_key`):
    attachments/2026/10/18/<uuid>.pdf
    imports/2026/10/18/<uuid>.docx

Content-type rules:
    The sniffed type wins when it is allowed. Office formats are ZIP or OLE
    containers, so when libmagic reports a bare container the declared type
    is accepted only if it is allowed and fits that container: ZIP may be
    DOCX, OLE may be DOC. Plain text declared as CSV stays CSV.
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Set, Tuple

import aiofiles
import magic

from talentdesk.config import settings
from talentdesk.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"

# MIME type → stored file extension
ATTACHMENT_TYPES: Dict[str, str] = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    DOCX_MIME: ".docx",
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "text/plain": ".txt",
    "text/csv": ".csv",
}

IMPORT_TYPES: Dict[str, str] = {
    "application/pdf": ".pdf",
    "application/msword": ".doc",
    DOCX_MIME: ".docx",
    "text/plain": ".txt",
}

# What libmagic reports for Office containers and signature-less CSV →
# the declared types such a container can legitimately hold
GENERIC_CONTAINERS: Dict[str, Set[str]] = {
    "application/zip": {DOCX_MIME},
    "application/x-ole-storage": {"application/msword"},
    "application/CDFV2": {"application/msword"},
    "application/csv": {"text/csv"},
}


class FileService:
    """
    Manages upload validation and the storage lifecycle of stored files.

    Files are never served from a public directory: downloads go through an
    authenticated route that resolves `storage_key` with `resolve()`.
    """

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the configured root (used in tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    @property
    def max_size_mb(self) -> int:
        return settings.max_file_size // (1024 * 1024)

    def is_too_large(self, size: int) -> bool:
        return size > settings.max_file_size

    def validate_size(self, size: int) -> None:
        if self.is_too_large(size):
            raise ValidationError(
                message=f"File too large. Maximum size is {self.max_size_mb}MB.",
                field="file",
                context={"max_size_bytes": settings.max_file_size, "actual_size": size},
            )

    def detect_mime_type(
        self,
        content: bytes,
        declared_type: Optional[str],
        allowed: Dict[str, str],
    ) -> Optional[str]:
        """
        Returns the effective MIME type, or None when the file is not allowed.

        Raises FileStorageError only when libmagic itself fails.
        """
        try:
            detected = magic.from_buffer(content[:8192], mime=True)
        except magic.MagicException as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if detected in allowed:
            # Plain text declared as CSV keeps the more specific type
            if detected == "text/plain" and declared_type in allowed and declared_type.startswith("text/"):
                return declared_type
            return detected
        if declared_type in allowed and declared_type in GENERIC_CONTAINERS.get(detected, ()):
            return declared_type
        logger.info("Rejected upload: detected=%s declared=%s", detected, declared_type)
        return None

    def _generate_storage_key(self, category: str, extension: str) -> Tuple[Path, str]:
        now = datetime.now(timezone.utc)
        storage_key = f"{category}/{now.strftime('%Y/%m/%d')}/{uuid.uuid4()}{extension}"
        return self.storage_root / storage_key, storage_key

    async def store(self, content: bytes, extension: str, category: str) -> str:
        """
        Writes `content` to a new file and returns its storage key.

        Raises:
            FileStorageError if the directory or file cannot be written.
        """
        absolute_path, storage_key = self._generate_storage_key(category, extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded file. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )
        logger.info("File stored: %s (%d bytes)", storage_key, len(content))
        return storage_key

    def resolve(self, storage_key: str) -> Path:
        """Maps a storage key to an absolute path inside the storage root."""
        path = (self.storage_root / storage_key).resolve()
        if not path.is_relative_to(self.storage_root):
            raise ValidationError(message="Invalid file path", context={"storage_key": storage_key})
        return path

    async def read(self, storage_key: str) -> bytes:
        path = self.resolve(storage_key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except OSError as e:
            logger.error("Failed to read stored file %s: %s", storage_key, str(e))
            raise FileStorageError(
                message="Stored file could not be read.",
                context={"storage_key": storage_key, "os_error": str(e)},
            )

    async def delete(self, storage_key: str) -> None:
        """
        Best-effort removal. A file that cannot be deleted leaves an orphan on
        disk but never fails the request that removed its database row.
        """
        try:
            path = self.resolve(storage_key)
            if path.exists():
                os.remove(path)
                logger.info("Deleted stored file: %s", storage_key)
            else:
                logger.debug("Stored file already gone: %s", storage_key)
        except (OSError, ValidationError) as e:
            logger.warning("Failed to delete stored file %s: %s", storage_key, str(e))


file_service = FileService()
