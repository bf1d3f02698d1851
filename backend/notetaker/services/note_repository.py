"""
NoteTaker Backend - Note Repository
===================================

What:  Durable storage of Note rows: create, get, list, update, delete.
How:   Async SQLAlchemy on the request's session. Writes are flushed;
       NoteService calls commit() once a mutation is complete.
Who:   Called only by NoteService.

Error translation:
    SQLAlchemyError → DatabaseError (generic message, details logged only)
    A missing row is returned as None; NoteService decides it is a 404.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import desc, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from notetaker.exceptions import DatabaseError
from notetaker.models.note import Note

logger = logging.getLogger(__name__)


class NoteRepository:
    """Stateless data access for notes; every method takes the session."""

    async def create(
        self,
        db: AsyncSession,
        title: str,
        markdown_content: str,
        html_content: str,
        attachments: List[Dict[str, Any]],
    ) -> Note:
        now = datetime.now(timezone.utc)
        note = Note(
            title=title,
            markdown_content=markdown_content,
            html_content=html_content,
            attachments=attachments,
            created_at=now,
            updated_at=now,
        )
        try:
            db.add(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error creating note: %s", str(e))
            raise DatabaseError(
                message="Could not save the note. Please try again.",
                context={"error_type": type(e).__name__},
            )
        logger.info("Note record created: %s", note.id)
        return note

    async def get(self, db: AsyncSession, note_id: uuid.UUID) -> Optional[Note]:
        try:
            result = await db.execute(select(Note).where(Note.id == note_id))
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error("Database error fetching note %s: %s", note_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the note. Please try again.",
                context={"note_id": str(note_id)},
            )

    async def list_all(self, db: AsyncSession) -> List[Note]:
        """All notes, newest first."""
        try:
            result = await db.execute(select(Note).order_by(desc(Note.created_at)))
            return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error("Database error listing notes: %s", str(e), exc_info=True)
            raise DatabaseError(
                message="Could not retrieve notes. Please try again.",
                context={"error_type": type(e).__name__},
            )

    async def update(
        self,
        db: AsyncSession,
        note: Note,
        *,
        title: str,
        markdown_content: str,
        html_content: str,
        attachments: List[Dict[str, Any]],
    ) -> Note:
        """
        Rewrite every mutable field of `note` in one flush.

        The attachment list is assigned as a new list so the JSON column is
        marked dirty.
        """
        note.title = title
        note.markdown_content = markdown_content
        note.html_content = html_content
        note.attachments = list(attachments)
        note.updated_at = datetime.now(timezone.utc)
        try:
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error updating note %s: %s", note.id, str(e))
            raise DatabaseError(
                message="Could not update the note. Please try again.",
                context={"note_id": str(note.id)},
            )
        return note

    async def delete(self, db: AsyncSession, note: Note) -> None:
        try:
            await db.delete(note)
            await db.flush()
        except SQLAlchemyError as e:
            logger.error("Database error deleting note %s: %s", note.id, str(e))
            raise DatabaseError(
                message="Could not delete the note. Please try again.",
                context={"note_id": str(note.id)},
            )
        logger.info("Note record deleted: %s", note.id)

    async def commit(self, db: AsyncSession) -> None:
        """Make the session's pending writes durable."""
        try:
            await db.commit()
        except SQLAlchemyError as e:
            logger.error("Database error committing note changes: %s", str(e))
            await db.rollback()
            raise DatabaseError(
                message="Could not save your changes. Please try again.",
                context={"error_type": type(e).__name__},
            )


# ── Singleton Instance ────────────────────────────────────────────────────
note_repository = NoteRepository()
