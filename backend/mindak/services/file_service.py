"""
Mindak Reservations Backend — Answer Image Storage
==================================================

What:  Validates and stores images uploaded for answer options.
How:   Extension, size and sniffed MIME type are checked before anything is
       written; files land in date-organized directories under UUID names.
Who:   FormQuestionService.attach_answer_image. The option row only keeps
       the resulting URL, never the bytes.

Checks, cheapest first:
    1. Extension    .png .jpg .jpeg .gif .webp (case-insensitive)
    2. Size         non-empty and <= settings.max_upload_size (Content-Length
                    header and actual byte count)
    3. MIME type    libmagic inspects the header bytes, so a renamed file
                    is rejected even with a valid extension

Directory Structure:
    storage/
    └── answers/
        └── 2024/
            └── 01/
                └── 15/
                    └── a1b2c3d4-....png
"""

import logging
import os
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Tuple

import aiofiles
import magic

from mindak.config import settings
from mindak.exceptions import FileStorageError, ValidationError

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}

ALLOWED_EXTENSIONS = {".png", ".jpg", ".jpeg", ".gif", ".webp"}

# Sub-directory of the storage root holding answer-option images
ANSWER_IMAGE_DIR = "answers"


class FileService:
    """Upload validation and storage for answer-option images."""

    def __init__(self, storage_root: Optional[str] = None):
        """
        Args:
            storage_root: Override the configured storage path (tests).
        """
        self.storage_root = Path(storage_root or settings.storage_root).resolve()
        self.storage_root.mkdir(parents=True, exist_ok=True)
        logger.info("FileService initialized with storage_root=%s", self.storage_root)

    def validate_extension(self, filename: str) -> str:
        """Returns the lower-cased extension (with dot) or raises ValidationError."""
        ext = Path(filename or "").suffix.lower()
        if ext not in ALLOWED_EXTENSIONS:
            raise ValidationError(
                code="unsupported_file_type",
                message=(
                    f"File type '{ext or filename}' is not supported. "
                    f"Allowed types: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
                ),
                field="file",
                context={"extension": ext, "allowed": sorted(ALLOWED_EXTENSIONS)},
            )
        return ext

    def validate_size(self, content_length: Optional[int], actual_size: int) -> None:
        max_bytes = settings.max_upload_size
        max_mb = max_bytes / (1024 * 1024)

        if actual_size == 0:
            raise ValidationError(
                code="empty_file",
                message="The uploaded file is empty.",
                field="file",
            )

        if (content_length and content_length > max_bytes) or actual_size > max_bytes:
            raise ValidationError(
                code="file_too_large",
                message=f"File is too large. Maximum size is {max_mb:.0f}MB.",
                field="file",
                context={
                    "max_size_bytes": max_bytes,
                    "reported_size": content_length,
                    "actual_size": actual_size,
                },
            )

    def validate_mime_type(self, content: bytes) -> str:
        """
        Sniffs the MIME type from the content bytes with libmagic.

        Raises:
            ValidationError: detected type is not an allowed image type
            FileStorageError: libmagic itself failed
        """
        try:
            mime_type = magic.from_buffer(content, mime=True)
        except magic.MagicException as e:
            logger.error("MIME type detection failed: %s", str(e))
            raise FileStorageError(
                message="Could not verify file type. Please try again.",
                context={"error": str(e)},
            )

        if mime_type not in ALLOWED_MIME_TYPES:
            raise ValidationError(
                code="unsupported_file_type",
                message=(
                    f"File content type '{mime_type}' is not supported. "
                    "The file must be a PNG, JPEG, GIF or WebP image."
                ),
                field="file",
                context={"detected_mime": mime_type, "allowed": list(ALLOWED_MIME_TYPES)},
            )
        return mime_type

    def _storage_path(self, extension: str) -> Tuple[Path, str]:
        date_dir = datetime.now(timezone.utc).strftime("%Y/%m/%d")
        relative_path = f"{ANSWER_IMAGE_DIR}/{date_dir}/{uuid.uuid4()}{extension}"
        return self.storage_root / relative_path, relative_path

    async def store_file(self, content: bytes, extension: str) -> Tuple[str, str]:
        """Writes `content` to a fresh path; returns (absolute_path, relative_path)."""
        absolute_path, relative_path = self._storage_path(extension)
        try:
            absolute_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(absolute_path, "wb") as f:
                await f.write(content)
        except OSError as e:
            logger.error("Failed to store file at %s: %s", absolute_path, str(e))
            raise FileStorageError(
                message="Failed to save uploaded image. Please try again.",
                context={"path": str(absolute_path), "os_error": str(e)},
            )

        logger.info("Answer image stored: %s (%d bytes)", relative_path, len(content))
        return str(absolute_path), relative_path

    async def cleanup_file(self, file_path: str) -> None:
        """Best-effort removal; failures are logged, never raised."""
        path = Path(file_path)
        try:
            if path.exists():
                os.remove(path)
                logger.info("Cleaned up file: %s", path.name)
        except OSError as e:
            logger.warning("Failed to clean up file %s: %s", file_path, str(e))

    def resolve(self, relative_path: str) -> Path:
        """
        Absolute path of a stored file, refusing anything outside the storage root.

        Raises:
            ValidationError: the path escapes the storage root
        """
        candidate = (self.storage_root / relative_path).resolve()
        if self.storage_root not in candidate.parents:
            raise ValidationError(
                code="invalid_path",
                message="Invalid file path.",
                field="path",
            )
        return candidate

    async def validate_and_store(
        self,
        filename: str,
        content: bytes,
        content_length: Optional[int] = None,
    ) -> Tuple[str, str]:
        """
        Full pipeline: extension → size → MIME → write.

        Returns:
            (absolute_path, relative_path); the relative path is what the
            public URL is built from.
        """
        ext = self.validate_extension(filename)
        self.validate_size(content_length, len(content))
        self.validate_mime_type(content)
        return await self.store_file(content, ext)

    def public_url(self, relative_path: str) -> str:
        return f"{settings.files_url_prefix.rstrip('/')}/{relative_path}"


file_service = FileService()
