"""
NoteTaker Backend - Pydantic Request/Response Schemas
=====================================================

What:  Pydantic models defining the API contract and the embedded attachment record.
How:   FastAPI serializes responses through these models and builds the
       OpenAPI docs from them. Field names are snake_case in Python and
       camelCase on the wire (markdownContent, htmlContent, errorCount, ...).

Schemas are separate from the SQLAlchemy model:
    - The Note row stores attachments as plain JSON dicts; `Attachment` is the
      typed view of one of those dicts
    - Responses add computed fields (downloadUrl) that are never persisted
"""

import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasGenerator, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from notetaker.config import settings

# Validate by Python field name, serialize as camelCase
CAMEL_CONFIG = ConfigDict(
    alias_generator=AliasGenerator(serialization_alias=to_camel),
    from_attributes=True,
)


# ══════════════════════════════════════════════════════════════════════════
# Embedded Records
# ══════════════════════════════════════════════════════════════════════════


class Attachment(BaseModel):
    """
    Metadata for one uploaded file, embedded in its owning Note.

    `storage_key` is assigned by the storage backend and is only ever read by
    the AttachmentManager. Clients see it but can never set it.
    """
    model_config = CAMEL_CONFIG

    id: str = Field(description="Attachment identifier, unique within the note")
    original_name: str = Field(description="Client-supplied filename (display only)")
    storage_key: str = Field(description="Server-assigned blob locator (read-only)")
    mime_type: str = Field(description="Validated MIME type (image/* or application/pdf)")
    size_bytes: int = Field(ge=0, description="File size in bytes")

    def to_record(self) -> Dict[str, Any]:
        """Plain dict for the Note.attachments JSON column."""
        return self.model_dump()


# ══════════════════════════════════════════════════════════════════════════
# Response Models
# ══════════════════════════════════════════════════════════════════════════


class AttachmentResponse(Attachment):
    download_url: str = Field(description="Path that serves the attachment bytes")


class NoteResponse(BaseModel):
    """
    Full representation of a note.

    Returned by every note endpoint (create, get, list items, edit).
    """
    model_config = CAMEL_CONFIG

    id: uuid.UUID = Field(description="Unique note identifier (UUID)")
    title: str = Field(description="Note title")
    markdown_content: str = Field(description="Markdown source")
    html_content: str = Field(description="Server-rendered HTML of markdownContent")
    attachments: List[AttachmentResponse] = Field(default_factory=list)
    created_at: datetime = Field(description="Creation timestamp (UTC)")
    updated_at: datetime = Field(description="Last modification timestamp (UTC)")

    @classmethod
    def from_note(cls, note: Any) -> "NoteResponse":
        """Builds the response from a Note ORM row, adding download URLs."""
        attachments = [
            AttachmentResponse(
                **record,
                download_url=f"{settings.api_prefix}/notes/{note.id}/attachments/{record['id']}",
            )
            for record in (note.attachments or [])
        ]
        return cls(
            id=note.id,
            title=note.title,
            markdown_content=note.markdown_content,
            html_content=note.html_content,
            attachments=attachments,
            created_at=note.created_at,
            updated_at=note.updated_at,
        )


class GrammarFinding(BaseModel):
    """One issue reported by the grammar checker."""
    model_config = CAMEL_CONFIG

    message: str = Field(description="Human-readable description of the issue")
    offset: int = Field(ge=0, description="Character offset of the issue in the checked text")
    length: int = Field(ge=0, description="Length of the flagged span")
    context: str = Field(description="Snippet of text surrounding the issue")
    suggestions: List[str] = Field(
        default_factory=list,
        max_length=3,
        description="Up to three replacement suggestions",
    )
    category: str = Field(default="", description="Checker category of the issue")


class GrammarCheckResponse(BaseModel):
    model_config = CAMEL_CONFIG

    error_count: int = Field(ge=0, description="Number of findings")
    errors: List[GrammarFinding] = Field(default_factory=list)


# ══════════════════════════════════════════════════════════════════════════
# Error / Health Models
# ══════════════════════════════════════════════════════════════════════════


class ErrorResponse(BaseModel):
    """
    Standardized error response format for all API errors.

    Example:
        {
            "error": "validation_error",
            "message": "Title and content are required",
            "details": {"field": "title"},
            "request_id": "550e8400"
        }
    """
    error: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[dict] = Field(default=None, description="Additional error context")
    request_id: Optional[str] = Field(default=None, description="Request correlation ID")


class HealthResponse(BaseModel):
    status: str = Field(description="Overall service status: healthy, degraded, unhealthy")
    version: str = Field(description="Application version")
    database: str = Field(description="Database connectivity: connected, disconnected")
    storage_backend: str = Field(description="Configured attachment storage backend")
    grammar_checker: str = Field(description="Grammar checker status: available, unavailable, circuit_open")
    uptime_seconds: float = Field(description="Seconds since service started")
