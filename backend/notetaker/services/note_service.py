"""
NoteTaker Backend - Note Service (Business Logic Orchestrator)
==============================================================

What:  Central orchestrator for note create, edit, delete, reads and the
       grammar check.
How:   Composes the AttachmentManager, the Markdown renderer, the
       NoteRepository and the GrammarChecker.
Who:   Called by route handlers; calls services and the repository.
When:  For every note operation.

Orchestration Flow (PATCH /notes/{id}):
    ┌──────────┐   ┌────────────┐   ┌────────────┐   ┌──────────┐   ┌────────────┐
    │  Load    │──▶│ Partition  │──▶│  Ingest    │──▶│ Render + │──▶│  Discard   │
    │  Note    │   │ kept/remov.│   │  new files │   │ Persist  │   │  removed   │
    └──────────┘   └────────────┘   └────────────┘   └──────────┘   └────────────┘
                                                                     (background)

Blob cleanup sequencing:
    Every mutation commits before it returns, and a blob is only deleted
    after the commit that stopped referencing it. With a BackgroundTasks
    object the discard runs after the response. Without one it is awaited
    right after the commit. Either way its outcome never reaches
    the caller: cleanup failures are logged by the AttachmentManager.

Known, accepted properties:
    - Concurrent edits of one note are last-writer-wins (no version column)
    - Blobs written before a failed persist are left orphaned and logged
"""

import json
import logging
import uuid
from typing import Any, List, Optional, Sequence, Tuple

from fastapi import BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession

from notetaker.exceptions import DatabaseError, NotFoundError, ValidationError
from notetaker.models.note import TITLE_MAX_LENGTH, Note
from notetaker.schemas.note import Attachment, GrammarCheckResponse
from notetaker.services.attachment_service import (
    AttachmentManager,
    UploadedFile,
    attachment_manager,
)
from notetaker.services.grammar_base import GrammarChecker
from notetaker.services.languagetool_service import grammar_checker
from notetaker.services.markdown_renderer import render_markdown
from notetaker.services.note_repository import NoteRepository, note_repository

logger = logging.getLogger(__name__)


# ── Input helpers ─────────────────────────────────────────────────────────

def parse_removal_list(raw: Any) -> List[str]:
    """
    Interpret the `removeAttachments` payload as a list of attachment ids.

    Accepted:
        None or ""                    → []
        ["a", "b"]                    → ["a", "b"]
        '["a", "b"]' (JSON string)    → ["a", "b"]

    Raises:
        ValidationError: Anything else (bad JSON, not a list, non-string ids).
    """
    if raw is None:
        return []

    value = raw
    if isinstance(raw, str):
        if not raw.strip():
            return []
        try:
            value = json.loads(raw)
        except ValueError:
            raise ValidationError(
                message="removeAttachments must be a JSON array of attachment ids",
                field="removeAttachments",
            )

    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ValidationError(
            message="removeAttachments must be a JSON array of attachment ids",
            field="removeAttachments",
        )
    return value


def _require_text(value: Any, field: str, label: str) -> str:
    if value is None:
        raise ValidationError(message=f"{label} is required", field=field)
    if not isinstance(value, str):
        raise ValidationError(
            message=f"{label} must be a string",
            field=field,
            context={"received_type": type(value).__name__},
        )
    if not value.strip():
        raise ValidationError(message=f"{label} is required", field=field)
    return value


def _require_title(value: Any) -> str:
    title = _require_text(value, "title", "Title").strip()
    if len(title) > TITLE_MAX_LENGTH:
        raise ValidationError(
            message=f"Title must be at most {TITLE_MAX_LENGTH} characters",
            field="title",
            context={"length": len(title), "max_length": TITLE_MAX_LENGTH},
        )
    return title


def _log_orphans(action: str, ingested: Sequence[Attachment]) -> None:
    if ingested:
        logger.error(
            "Note %s failed; %d stored blobs are orphaned: %s",
            action,
            len(ingested),
            [a.storage_key for a in ingested],
        )


def _parse_note_id(note_id: Any) -> uuid.UUID:
    if isinstance(note_id, uuid.UUID):
        return note_id
    try:
        return uuid.UUID(str(note_id))
    except ValueError:
        raise NotFoundError(resource="note", resource_id=str(note_id))


class NoteService:
    """
    Business logic layer for note operations.

    Holds references to its collaborators but no per-request state; the
    session is passed into every call.
    """

    def __init__(
        self,
        attachments: AttachmentManager,
        repository: NoteRepository,
        checker: GrammarChecker,
    ):
        self.attachments = attachments
        self.repository = repository
        self.checker = checker

    async def _load(self, db: AsyncSession, note_id: Any) -> Note:
        parsed_id = _parse_note_id(note_id)
        note = await self.repository.get(db, parsed_id)
        if note is None:
            raise NotFoundError(resource="note", resource_id=str(note_id))
        return note

    async def _schedule_discard(
        self,
        storage_keys: List[str],
        background_tasks: Optional[BackgroundTasks],
    ) -> None:
        if not storage_keys:
            return
        if background_tasks is not None:
            background_tasks.add_task(self.attachments.discard, storage_keys)
            logger.info("Queued cleanup of %d blobs", len(storage_keys))
        else:
            await self.attachments.discard(storage_keys)

    # ── Create ────────────────────────────────────────────────────────────

    async def create_note(
        self,
        db: AsyncSession,
        title: Optional[str],
        markdown_content: Optional[str],
        files: Sequence[UploadedFile] = (),
    ) -> Note:
        """
        Validate → render → store files → persist.

        Raises:
            ValidationError: Blank, non-string or overlong title, blank content,
                or a rejected upload batch.
            FileStorageError: A blob could not be written.
            DatabaseError: The note could not be saved (stored blobs are orphaned).
        """
        title = _require_title(title)
        markdown_content = _require_text(markdown_content, "markdownContent", "Markdown content")

        html_content = render_markdown(markdown_content)
        ingested = await self.attachments.ingest(files)

        try:
            note = await self.repository.create(
                db,
                title=title,
                markdown_content=markdown_content,
                html_content=html_content,
                attachments=[a.to_record() for a in ingested],
            )
            await self.repository.commit(db)
        except DatabaseError:
            _log_orphans("create", ingested)
            raise

        logger.info("Note %s created with %d attachments", note.id, len(ingested))
        return note

    # ── Edit ──────────────────────────────────────────────────────────────

    async def edit_note(
        self,
        db: AsyncSession,
        note_id: Any,
        title: Optional[str],
        markdown_content: Optional[str],
        remove_attachment_ids: Any = None,
        new_files: Sequence[UploadedFile] = (),
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> Note:
        """
        Rewrite a note and reconcile its attachments.

        Final attachment order is kept ++ newly ingested: surviving
        attachments keep their relative order, new ones append. Removal ids
        that match nothing are ignored. HTML is re-rendered unconditionally.

        Raises:
            NotFoundError: No such note.
            ValidationError: Invalid title/content, unreadable removal list,
                or a rejected upload batch.
            FileStorageError: A new blob could not be written.
            DatabaseError: The update could not be saved (new blobs are orphaned).
        """
        note = await self._load(db, note_id)
        title = _require_title(title)
        markdown_content = _require_text(markdown_content, "markdownContent", "Markdown content")
        remove_ids = set(parse_removal_list(remove_attachment_ids))

        kept: List[dict] = []
        removed: List[dict] = []
        for record in note.attachments or []:
            (removed if record["id"] in remove_ids else kept).append(record)

        ingested = await self.attachments.ingest(new_files)

        try:
            await self.repository.update(
                db,
                note,
                title=title,
                markdown_content=markdown_content,
                html_content=render_markdown(markdown_content),
                attachments=kept + [a.to_record() for a in ingested],
            )
            await self.repository.commit(db)
        except DatabaseError:
            _log_orphans("edit", ingested)
            raise
        logger.info(
            "Note %s updated: kept=%d removed=%d added=%d",
            note.id,
            len(kept),
            len(removed),
            len(ingested),
        )

        await self._schedule_discard([r["storage_key"] for r in removed], background_tasks)
        return note

    # ── Delete ────────────────────────────────────────────────────────────

    async def delete_note(
        self,
        db: AsyncSession,
        note_id: Any,
        background_tasks: Optional[BackgroundTasks] = None,
    ) -> None:
        """Delete the record first, then every attachment blob (best-effort)."""
        note = await self._load(db, note_id)
        storage_keys = [r["storage_key"] for r in (note.attachments or [])]

        await self.repository.delete(db, note)
        await self.repository.commit(db)
        await self._schedule_discard(storage_keys, background_tasks)

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get_note(self, db: AsyncSession, note_id: Any) -> Note:
        return await self._load(db, note_id)

    async def list_notes(self, db: AsyncSession) -> List[Note]:
        return await self.repository.list_all(db)

    async def get_attachment(
        self,
        db: AsyncSession,
        note_id: Any,
        attachment_id: str,
    ) -> Tuple[Attachment, bytes]:
        """
        Return an attachment's metadata and bytes for download.

        Raises:
            NotFoundError: Unknown note, unknown attachment, or missing blob.
        """
        note = await self._load(db, note_id)
        for record in note.attachments or []:
            if record["id"] == attachment_id:
                attachment = Attachment(**record)
                data = await self.attachments.backend.get(attachment.storage_key)
                return attachment, data
        raise NotFoundError(resource="attachment", resource_id=attachment_id)

    # ── Grammar ───────────────────────────────────────────────────────────

    async def check_grammar(self, db: AsyncSession, note_id: Any) -> GrammarCheckResponse:
        """
        Run the grammar checker over the note's Markdown source.

        Raises:
            NotFoundError: No such note.
            ValidationError: The note has no content to check.
            DependencyError: The checker failed; never masked as "no findings".
        """
        note = await self._load(db, note_id)
        if not (note.markdown_content or "").strip():
            raise ValidationError(message="Note content is empty", field="markdownContent")

        findings = await self.checker.check(note.markdown_content)
        return GrammarCheckResponse(error_count=len(findings), errors=findings)


# ── Singleton Instance ────────────────────────────────────────────────────
note_service = NoteService(
    attachments=attachment_manager,
    repository=note_repository,
    checker=grammar_checker,
)


def get_note_service() -> NoteService:
    """FastAPI dependency; tests override it with a service on fakes."""
    return note_service
