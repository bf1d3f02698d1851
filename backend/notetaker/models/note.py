"""
NoteTaker Backend - Note SQLAlchemy Model
=========================================

What:  ORM model representing the `notes` table.
How:   Inherits from the shared DeclarativeBase; Alembic reads this for migrations.
Who:   Used by NoteRepository for CRUD operations.

Table Design:
    - id: UUID primary key, generated in Python at insert time
    - title / markdown_content: client-owned fields
    - html_content: always the render of markdown_content; only the
      NoteService writes it, in the same update as markdown_content
    - attachments: JSON array of attachment records (see schemas.note.Attachment).
      Attachments are embedded: they have no table, no lifecycle of their own,
      and are never shared between notes
    - created_at / updated_at: UTC, set by the repository

Portable column types (Uuid, DateTime(timezone=True), JSON) let the same
model run on PostgreSQL in production and SQLite in tests.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List

from sqlalchemy import JSON, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from notetaker.database import Base

# Column width of notes.title; NoteService rejects longer titles with a 400
TITLE_MAX_LENGTH = 255


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Note(Base):
    """
    A Markdown note with its rendered HTML and embedded attachment metadata.

    Lifecycle:
        1. Created by NoteService.create_note (attachments already stored)
        2. Rewritten by NoteService.edit_note (title, content, html and the
           reconciled attachment list in one update)
        3. Deleted by NoteService.delete_note; attachment blobs are removed
           only after the row is gone
    """

    __tablename__ = "notes"

    # ── Primary Key ───────────────────────────────────────────────────────
    id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        comment="Unique identifier, immutable after creation",
    )

    # ── Content ───────────────────────────────────────────────────────────
    title: Mapped[str] = mapped_column(
        String(TITLE_MAX_LENGTH),
        nullable=False,
        comment="Note title (trimmed, never blank)",
    )

    markdown_content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        comment="Raw Markdown source, the source of truth for content",
    )

    html_content: Mapped[str] = mapped_column(
        Text,
        nullable=False,
        default="",
        comment="Server-side render of markdown_content",
    )

    # ── Attachments ───────────────────────────────────────────────────────
    # Ordered list of {id, original_name, storage_key, mime_type, size_bytes}.
    # Always reassigned as a whole list; never mutated in place.
    attachments: Mapped[List[Dict[str, Any]]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Embedded attachment metadata records, in display order",
    )

    # ── Timestamps ────────────────────────────────────────────────────────
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        comment="When this note was created (UTC)",
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=_utcnow,
        onupdate=_utcnow,
        comment="When this note was last modified (UTC)",
    )

    # Listing is newest first
    __table_args__ = (
        Index("idx_notes_created_at", created_at.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<Note(id={self.id}, title='{self.title}', "
            f"attachments={len(self.attachments or [])})>"
        )
