"""
NoteTaker Backend - Abstract Storage Backend Interface
======================================================

What:  Abstract base class for the place attachment blobs physically live.
How:   Concrete backends (LocalStorageBackend, S3StorageBackend) implement
       put(), get() and delete(). build_storage_backend() picks one from
       settings.storage_backend.
Who:   Used only by the AttachmentManager (and the health route, for its name).
When:  The backend is built once at process start; every request shares it.

Contract:
    put(data, suggested_name, mime_type) -> storage_key
        Writes the blob and returns an opaque key. Raises FileStorageError.
    get(storage_key) -> bytes
        Raises NotFoundError when the blob is absent.
    delete(storage_key) -> DeleteOutcome
        SUCCESS, NOT_FOUND (already gone, not an error) or FAILURE.
        Implementations log failures and never raise for them.
"""

import enum
from abc import ABC, abstractmethod
from typing import Optional

from notetaker.config import Settings, settings as default_settings


class DeleteOutcome(str, enum.Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FAILURE = "failure"


class StorageBackend(ABC):
    """
    Interchangeable sink/source for attachment blobs.

    Storage keys are opaque outside the AttachmentManager: callers store them
    and hand them back, never parse them.
    """

    #: Short identifier reported by the health endpoint
    name: str = "abstract"

    @abstractmethod
    async def put(self, data: bytes, suggested_name: str, mime_type: str) -> str:
        """
        Store a blob.

        Args:
            data: Raw file bytes (already validated by the AttachmentManager).
            suggested_name: Client filename; only its extension is reused.
            mime_type: Validated MIME type, recorded where the backend supports it.

        Returns:
            The storage key for the new blob.

        Raises:
            FileStorageError: The blob could not be written.
        """
        ...

    @abstractmethod
    async def get(self, storage_key: str) -> bytes:
        """Return the blob bytes, or raise NotFoundError."""
        ...

    @abstractmethod
    async def delete(self, storage_key: str) -> DeleteOutcome:
        """Remove a blob. Idempotent: a missing blob is NOT_FOUND, not an error."""
        ...


def build_storage_backend(config: Optional[Settings] = None) -> StorageBackend:
    """
    Build the storage backend selected by configuration.

    STORAGE_BACKEND=local → LocalStorageBackend rooted at UPLOAD_DIR
    STORAGE_BACKEND=s3    → S3StorageBackend for S3_BUCKET/S3_FOLDER
    """
    config = config or default_settings

    if config.storage_backend == "s3":
        from notetaker.services.s3_storage import S3StorageBackend

        return S3StorageBackend(
            bucket=config.s3_bucket,
            folder=config.s3_folder,
            endpoint_url=config.s3_endpoint_url,
            region=config.s3_region,
            access_key_id=config.s3_access_key_id,
            secret_access_key=config.s3_secret_access_key,
            force_path_style=config.s3_force_path_style,
            field_name=config.upload_field_name,
        )

    from notetaker.services.local_storage import LocalStorageBackend

    return LocalStorageBackend(upload_dir=config.upload_dir, field_name=config.upload_field_name)
