"""
NoteTaker Backend - Local Filesystem Storage Backend
====================================================

What:  Stores attachment blobs as files in a single upload directory.
How:   Async file I/O through aiofiles. Each blob gets a generated name:

           <field>-<epoch millis>-<9-digit random suffix><original extension>
           e.g. attachments-1718031234567-482913376.png

       The storage key is that file name, relative to the upload directory.
Who:   Selected by build_storage_backend() when STORAGE_BACKEND=local.

Security Model:
    - No client input reaches the file name except the extension, which is
      reduced to a short alphanumeric suffix
    - Keys are resolved against the upload directory and may not contain
      `..` or absolute components, so a stored key cannot escape it
    - Files are created with exclusive mode ("xb"); a name collision
      regenerates the name instead of overwriting another blob
"""

import logging
import re
import secrets
import time
from pathlib import Path, PurePosixPath
from typing import Optional

import aiofiles
import aiofiles.os

from notetaker.exceptions import FileStorageError, NotFoundError
from notetaker.services.storage_base import DeleteOutcome, StorageBackend

logger = logging.getLogger(__name__)

_EXTENSION_RE = re.compile(r"^\.[A-Za-z0-9]{1,10}$")
_MAX_NAME_ATTEMPTS = 3


def _safe_join(root: Path, key: str) -> Path:
    parts = [p for p in PurePosixPath(key).parts if p not in {"/", ""}]
    if not parts or PurePosixPath(key).is_absolute() or any(p in {"..", "."} for p in parts):
        raise ValueError(f"invalid storage key: {key!r}")
    return root.joinpath(*parts)


class LocalStorageBackend(StorageBackend):
    """
    Blob storage on the local filesystem.

    Directory Structure:
        uploads/
        ├── attachments-1718031234567-482913376.png
        └── attachments-1718031234990-017263554.pdf
    """

    name = "local"

    def __init__(self, upload_dir: str, field_name: str = "attachments"):
        """
        Args:
            upload_dir: Directory holding every blob (created if missing).
            field_name: Prefix of generated file names.
        """
        self.upload_dir = Path(upload_dir).resolve()
        self.field_name = field_name
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        logger.info("LocalStorageBackend initialized with upload_dir=%s", self.upload_dir)

    def _generate_key(self, suggested_name: str) -> str:
        ext = Path(suggested_name).suffix
        if not _EXTENSION_RE.match(ext):
            ext = ""
        millis = int(time.time() * 1000)
        suffix = secrets.randbelow(1_000_000_000)
        return f"{self.field_name}-{millis}-{suffix:09d}{ext}"

    def resolve_path(self, storage_key: str) -> Path:
        return _safe_join(self.upload_dir, storage_key)

    async def put(self, data: bytes, suggested_name: str, mime_type: str) -> str:
        last_error: Optional[OSError] = None

        for _ in range(_MAX_NAME_ATTEMPTS):
            storage_key = self._generate_key(suggested_name)
            path = self.resolve_path(storage_key)
            try:
                async with aiofiles.open(path, "xb") as f:
                    await f.write(data)
            except FileExistsError as e:
                last_error = e
                continue
            except OSError as e:
                logger.error("Failed to store file at %s: %s", path, str(e))
                raise FileStorageError(
                    message="Failed to save uploaded attachment. Please try again.",
                    context={"os_error": str(e)},
                )

            logger.info("File stored: %s (%d bytes, %s)", storage_key, len(data), mime_type)
            return storage_key

        raise FileStorageError(
            message="Failed to save uploaded attachment. Please try again.",
            context={"os_error": str(last_error)},
        )

    async def get(self, storage_key: str) -> bytes:
        try:
            path = self.resolve_path(storage_key)
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except (ValueError, FileNotFoundError, IsADirectoryError):
            raise NotFoundError(resource="attachment file", resource_id=storage_key)

    async def delete(self, storage_key: str) -> DeleteOutcome:
        try:
            path = self.resolve_path(storage_key)
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            logger.debug("Delete: file already gone: %s", storage_key)
            return DeleteOutcome.NOT_FOUND
        except (ValueError, OSError) as e:
            logger.warning("Failed to delete file %s: %s", storage_key, str(e))
            return DeleteOutcome.FAILURE

        logger.info("Deleted file: %s", storage_key)
        return DeleteOutcome.SUCCESS
