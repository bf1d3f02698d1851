"""
NoteTaker Backend - S3-Compatible Object Store Backend
======================================================

What:  Stores attachment blobs as objects in an S3-compatible bucket.
How:   boto3 client calls run in Starlette's threadpool so they never block
       the event loop. Uploads retry transient transport errors with
       tenacity (exponential backoff + jitter).
Who:   Selected by build_storage_backend() when STORAGE_BACKEND=s3.

Key layout:
    <folder>/<field>-<epoch millis>-<uuid4 hex><extension>
    e.g. markdown-notes-attachments/attachments-1718031234567-3f2a...9c.png

    The storage key IS the object key. delete() and get() derive the object
    key from it and refuse keys outside the configured folder.

Failure policy:
    put()    → FileStorageError after retries are exhausted (or at once on a
               client error such as AccessDenied; those are not retried)
    delete() → logged and reported as DeleteOutcome.FAILURE, never raised
"""

import logging
import time
import uuid
from dataclasses import dataclass
from pathlib import PurePosixPath

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from notetaker.config import settings
from notetaker.exceptions import FileStorageError, NotFoundError
from notetaker.services.storage_base import DeleteOutcome, StorageBackend

logger = logging.getLogger(__name__)

_MISSING_OBJECT_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass(frozen=True)
class S3Config:
    bucket: str
    folder: str
    endpoint_url: str
    region: str
    force_path_style: bool


class S3StorageBackend(StorageBackend):
    """Blob storage in an S3-compatible bucket, under a fixed logical folder."""

    name = "s3"

    def __init__(
        self,
        *,
        bucket: str,
        folder: str,
        endpoint_url: str,
        region: str,
        access_key_id: str,
        secret_access_key: str,
        force_path_style: bool,
        field_name: str = "attachments",
    ) -> None:
        self._cfg = S3Config(
            bucket=bucket,
            folder=folder.strip("/"),
            endpoint_url=endpoint_url,
            region=region,
            force_path_style=force_path_style,
        )
        self.field_name = field_name

        addressing_style = "path" if force_path_style else "virtual"
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            region_name=region or None,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(s3={"addressing_style": addressing_style}),
        )
        logger.info(
            "S3StorageBackend initialized with bucket=%s, folder=%s",
            self._cfg.bucket,
            self._cfg.folder,
        )

    def _generate_key(self, suggested_name: str) -> str:
        ext = PurePosixPath(suggested_name).suffix.lower()
        if not ext[1:].isalnum() or len(ext) > 11:
            ext = ""
        millis = int(time.time() * 1000)
        return f"{self._cfg.folder}/{self.field_name}-{millis}-{uuid.uuid4().hex}{ext}"

    def _object_key(self, storage_key: str) -> str:
        key = storage_key.lstrip("/")
        if not key.startswith(f"{self._cfg.folder}/") or ".." in PurePosixPath(key).parts:
            raise ValueError(f"storage key outside folder {self._cfg.folder!r}: {storage_key!r}")
        return key

    async def put(self, data: bytes, suggested_name: str, mime_type: str) -> str:
        key = self._generate_key(suggested_name)
        try:
            await self._put_object_with_retry(key, data, mime_type)
        except (BotoCoreError, ClientError) as e:
            logger.error("Failed to upload object %s: %s", key, str(e))
            raise FileStorageError(
                message="Failed to save uploaded attachment. Please try again.",
                context={"object_key": key, "error_type": type(e).__name__},
            )

        logger.info("Object stored: %s (%d bytes, %s)", key, len(data), mime_type)
        return key

    @retry(
        # Transport-level failures only; ClientError (4xx/5xx from S3) is final
        retry=retry_if_exception_type(BotoCoreError),
        stop=stop_after_attempt(settings.retry_max_attempts),
        wait=wait_exponential_jitter(
            initial=settings.retry_min_wait,
            max=settings.retry_max_wait,
            jitter=1,
        ),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def _put_object_with_retry(self, key: str, data: bytes, mime_type: str) -> None:
        def _put() -> None:
            self._client.put_object(
                Bucket=self._cfg.bucket,
                Key=key,
                Body=data,
                ContentType=mime_type,
            )

        await run_in_threadpool(_put)

    async def get(self, storage_key: str) -> bytes:
        try:
            key = self._object_key(storage_key)
        except ValueError:
            raise NotFoundError(resource="attachment file", resource_id=storage_key)

        def _get() -> bytes:
            resp = self._client.get_object(Bucket=self._cfg.bucket, Key=key)
            body = resp.get("Body")
            return body.read() if body is not None else b""

        try:
            return await run_in_threadpool(_get)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_OBJECT_CODES:
                raise NotFoundError(resource="attachment file", resource_id=storage_key)
            logger.error("Failed to read object %s: %s", key, str(e))
            raise FileStorageError(
                message="Could not read the attachment. Please try again.",
                context={"object_key": key, "error_code": code},
            )
        except BotoCoreError as e:
            logger.error("Failed to read object %s: %s", key, str(e))
            raise FileStorageError(
                message="Could not read the attachment. Please try again.",
                context={"object_key": key, "error_type": type(e).__name__},
            )

    async def delete(self, storage_key: str) -> DeleteOutcome:
        try:
            key = self._object_key(storage_key)
        except ValueError as e:
            logger.warning("Refusing to delete object: %s", str(e))
            return DeleteOutcome.FAILURE

        def _delete() -> None:
            self._client.delete_object(Bucket=self._cfg.bucket, Key=key)

        try:
            await run_in_threadpool(_delete)
        except ClientError as e:
            code = str(e.response.get("Error", {}).get("Code", ""))
            if code in _MISSING_OBJECT_CODES:
                return DeleteOutcome.NOT_FOUND
            logger.warning("Failed to delete object %s: %s", key, str(e))
            return DeleteOutcome.FAILURE
        except BotoCoreError as e:
            logger.warning("Failed to delete object %s: %s", key, str(e))
            return DeleteOutcome.FAILURE

        logger.info("Deleted object: %s", key)
        return DeleteOutcome.SUCCESS
