"""
NoteTaker Backend - Attachment Manager
======================================

What:  Turns uploaded files into Attachment records and removes blobs that
       are no longer referenced by any note.
How:   Validates the whole upload batch first, then writes every blob through
       the configured StorageBackend concurrently (asyncio.gather).
Who:   Called by NoteService; never called by routes directly.
When:  On note create/edit (ingest) and after note edit/delete (discard).

Validation Pipeline (whole batch, before anything is written):
    1. Count:     at most MAX_FILES_PER_REQUEST files
    2. MIME type: image/* or application/pdf
    3. Size:      declared size AND actual byte length ≤ MAX_FILE_SIZE

    One bad file rejects the batch with ValidationError. Nothing is stored.

Failure Semantics:
    ingest()  → if any put() fails, the blobs already written for that batch
                are discarded and FileStorageError propagates
    discard() → never raises; every key gets its own DeleteOutcome
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Iterable, List, Sequence

from notetaker.config import settings
from notetaker.exceptions import FileStorageError, StorageCleanupError, ValidationError
from notetaker.schemas.note import Attachment
from notetaker.services.storage_base import DeleteOutcome, StorageBackend, build_storage_backend

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"


@dataclass
class UploadedFile:
    """One file from an inbound request, fully read into memory."""

    name: str
    mime_type: str
    size_bytes: int
    data: bytes


def is_allowed_mime_type(mime_type: str) -> bool:
    mime_type = (mime_type or "").lower()
    return mime_type.startswith("image/") or mime_type == PDF_MIME_TYPE


class AttachmentManager:
    """
    Owns the link between Attachment records and stored blobs.

    Holds no per-request state: the backend and the limits are fixed at
    construction, so one shared instance serves every request.
    """

    def __init__(
        self,
        backend: StorageBackend,
        max_file_size: int = settings.max_file_size,
        max_files: int = settings.max_files_per_request,
    ):
        self.backend = backend
        self.max_file_size = max_file_size
        self.max_files = max_files

    # ── Validation ────────────────────────────────────────────────────────

    def validate_batch(self, files: Sequence[UploadedFile]) -> None:
        """
        Reject the batch if any file breaks a rule.

        Raises:
            ValidationError: Too many files, disallowed MIME type, or a file
                over the size limit. The message names the offending file.
        """
        self.check_count(len(files))

        for upload in files:
            if not is_allowed_mime_type(upload.mime_type):
                raise ValidationError(
                    message=(
                        f"File type '{upload.mime_type}' is not allowed. "
                        "Only images and PDFs are accepted."
                    ),
                    field=settings.upload_field_name,
                    context={"file_name": upload.name, "mime_type": upload.mime_type},
                )

            self.check_size(upload.name, max(upload.size_bytes, len(upload.data)))

    def check_count(self, file_count: int) -> None:
        if file_count > self.max_files:
            raise ValidationError(
                message=f"Too many files. At most {self.max_files} attachments are accepted per request.",
                field=settings.upload_field_name,
                context={"file_count": file_count, "max_files": self.max_files},
            )

    def check_size(self, name: str, size_bytes: int) -> None:
        """
        Reject a single file over the size limit.

        Routes call this with the size the multipart parser saw, before the
        file is read into memory.
        """
        if size_bytes > self.max_file_size:
            max_mb = self.max_file_size / (1024 * 1024)
            raise ValidationError(
                message=f"File '{name}' is too large. Maximum size is {max_mb:.0f}MB.",
                field=settings.upload_field_name,
                context={"file_name": name, "size_bytes": size_bytes, "max_bytes": self.max_file_size},
            )

    # ── Ingest ────────────────────────────────────────────────────────────

    async def ingest(self, files: Sequence[UploadedFile]) -> List[Attachment]:
        """
        Validate and store a batch of uploads.

        Args:
            files: Uploads in client order. May be empty.

        Returns:
            One Attachment per upload, in the same order.

        Raises:
            ValidationError: The batch broke a rule (nothing was stored).
            FileStorageError: A blob write failed (the rest of the batch was
                discarded).
        """
        if not files:
            return []

        self.validate_batch(files)

        results = await asyncio.gather(
            *(self.backend.put(f.data, f.name, f.mime_type) for f in files),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, BaseException)]
        if failures:
            stored = [r for r in results if isinstance(r, str)]
            logger.error(
                "Attachment ingest failed for %d of %d files; discarding %d stored blobs",
                len(failures),
                len(files),
                len(stored),
            )
            await self.discard(stored)

            first = failures[0]
            # CancelledError and friends pass through untouched
            if isinstance(first, FileStorageError) or not isinstance(first, Exception):
                raise first
            raise FileStorageError(
                message="Failed to save uploaded attachment. Please try again.",
                context={"error_type": type(first).__name__},
            ) from first

        attachments = [
            Attachment(
                id=uuid.uuid4().hex,
                original_name=upload.name,
                storage_key=storage_key,
                mime_type=upload.mime_type,
                size_bytes=len(upload.data),
            )
            for upload, storage_key in zip(files, results)
        ]
        logger.info("Ingested %d attachments via %s backend", len(attachments), self.backend.name)
        return attachments

    # ── Discard ───────────────────────────────────────────────────────────

    async def _discard_one(self, storage_key: str) -> DeleteOutcome:
        try:
            outcome = await self.backend.delete(storage_key)
        except Exception as e:
            cleanup_error = StorageCleanupError(
                storage_key=storage_key,
                context={"error_type": type(e).__name__, "error": str(e)},
            )
            logger.error("%s: %s", cleanup_error.message, cleanup_error.context)
            return DeleteOutcome.FAILURE

        if outcome == DeleteOutcome.FAILURE:
            logger.warning("Blob left orphaned after failed delete: %s", storage_key)
        return outcome

    async def discard(self, storage_keys: Iterable[str]) -> List[DeleteOutcome]:
        """
        Delete blobs concurrently. One failure never stops the others.

        Returns:
            One DeleteOutcome per key, in input order. Never raises.
        """
        keys = list(storage_keys)
        if not keys:
            return []

        outcomes = list(await asyncio.gather(*(self._discard_one(k) for k in keys)))
        failed = sum(1 for o in outcomes if o == DeleteOutcome.FAILURE)
        logger.info(
            "Discarded %d blobs (%d failed) via %s backend",
            len(keys) - failed,
            failed,
            self.backend.name,
        )
        return outcomes


# ── Singleton Instance ────────────────────────────────────────────────────
# The storage backend is resolved once here, at process start
attachment_manager = AttachmentManager(build_storage_backend())
