"""
NoteTaker Backend - Notes Route Handlers
========================================

What:  CRUD for notes, attachment download and the grammar check.
How:   Reads the request body (multipart form or JSON), delegates to
       NoteService, and serializes results through the response schemas.
Who:   Called by the note-taking frontend.

Request bodies:
    POST/PATCH accept either
        multipart/form-data   title, markdownContent, removeAttachments,
                              attachments (repeated file field)
        application/json      {"title", "markdownContent", "removeAttachments"}
    Files can only arrive via multipart. The body is only parsed as multipart
    when the request says so, which keeps plain JSON clients working.
"""

import logging
from typing import Any, Dict, List, Tuple
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.datastructures import FormData, UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from notetaker.config import settings
from notetaker.database import get_db_session
from notetaker.exceptions import ValidationError
from notetaker.schemas.note import ErrorResponse, GrammarCheckResponse, NoteResponse
from notetaker.services.attachment_service import AttachmentManager, UploadedFile
from notetaker.services.note_service import NoteService, get_note_service

logger = logging.getLogger(__name__)

# ── Router Configuration ──────────────────────────────────────────────────
router = APIRouter(prefix=settings.api_prefix, tags=["Notes"])

_FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
_TEXT_FIELDS = ("title", "markdownContent")


# ── Body parsing ──────────────────────────────────────────────────────────

async def _to_uploaded_file(upload: UploadFile) -> UploadedFile:
    data = await upload.read()
    return UploadedFile(
        name=upload.filename or "",
        mime_type=upload.content_type or "application/octet-stream",
        size_bytes=upload.size if upload.size is not None else len(data),
        data=data,
    )


async def _parse_form(request: Request, max_files: int) -> FormData:
    try:
        return await request.form(max_files=max_files)
    except StarletteHTTPException as e:
        raise ValidationError(message=str(e.detail), field=settings.upload_field_name)
    except MultiPartException as e:
        raise ValidationError(message=e.message, field=settings.upload_field_name)


async def read_note_payload(
    request: Request,
    attachments: AttachmentManager,
) -> Tuple[Dict[str, Any], List[UploadedFile]]:
    """
    Extract note fields and uploaded files from a multipart or JSON body.

    The multipart parser stops one file past the attachment limit, and the
    count and per-file size limits are checked against what it saw before
    any file is read into memory. MIME rules are left to the
    AttachmentManager.

    Returns:
        (fields, files) where fields may hold title, markdownContent and
        removeAttachments. Missing fields are simply absent.

    Raises:
        ValidationError: Unparseable form, too many or oversized files, or a
            JSON body that is not an object.
    """
    content_type = request.headers.get("content-type", "").lower()

    if content_type.startswith(_FORM_CONTENT_TYPES):
        form = await _parse_form(request, max_files=attachments.max_files + 1)
        try:
            fields: Dict[str, Any] = {}
            for name in _TEXT_FIELDS:
                value = form.get(name)
                if isinstance(value, str):
                    fields[name] = value

            removals = [v for v in form.getlist("removeAttachments") if isinstance(v, str)]
            if len(removals) == 1:
                fields["removeAttachments"] = removals[0]
            elif removals:
                fields["removeAttachments"] = removals

            uploads = [
                v for v in form.getlist(settings.upload_field_name)
                if isinstance(v, UploadFile) and (v.filename or v.size)
            ]
            attachments.check_count(len(uploads))
            for upload in uploads:
                if upload.size is not None:
                    attachments.check_size(upload.filename or "", upload.size)
            files = [await _to_uploaded_file(u) for u in uploads]
        finally:
            await form.close()
        return fields, files

    body = await request.body()
    if not body.strip():
        return {}, []
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError(message="Request body must be valid JSON")
    if not isinstance(payload, dict):
        raise ValidationError(message="Request body must be a JSON object")
    return payload, []


# ── Endpoints ─────────────────────────────────────────────────────────────

@router.post(
    "/notes",
    response_model=NoteResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"description": "Validation error", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Create a note",
    description=(
        "Creates a note from a title and Markdown content, with up to "
        f"{settings.max_files_per_request} image/PDF attachments. "
        "The Markdown is rendered to HTML on the server."
    ),
)
async def create_note(
    request: Request,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    fields, files = await read_note_payload(request, service.attachments)
    note = await service.create_note(
        db,
        title=fields.get("title"),
        markdown_content=fields.get("markdownContent"),
        files=files,
    )
    return NoteResponse.from_note(note)


@router.get(
    "/notes",
    response_model=List[NoteResponse],
    responses={500: {"description": "Server error", "model": ErrorResponse}},
    summary="List notes, newest first",
)
async def list_notes(
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> List[NoteResponse]:
    notes = await service.list_notes(db)
    return [NoteResponse.from_note(n) for n in notes]


@router.get(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses={
        404: {"description": "Note not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Get a single note by ID",
)
async def get_note(
    note_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    note = await service.get_note(db, note_id)
    return NoteResponse.from_note(note)


@router.patch(
    "/notes/{note_id}",
    response_model=NoteResponse,
    responses={
        400: {"description": "Validation error", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
        500: {"description": "Server error", "model": ErrorResponse},
    },
    summary="Edit a note",
    description=(
        "Replaces title and Markdown content, removes the attachments listed in "
        "removeAttachments and appends any newly uploaded files."
    ),
)
async def edit_note(
    note_id: str,
    request: Request,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> NoteResponse:
    fields, files = await read_note_payload(request, service.attachments)
    note = await service.edit_note(
        db,
        note_id,
        title=fields.get("title"),
        markdown_content=fields.get("markdownContent"),
        remove_attachment_ids=fields.get("removeAttachments"),
        new_files=files,
        background_tasks=background_tasks,
    )
    return NoteResponse.from_note(note)


@router.delete(
    "/notes/{note_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    response_class=Response,
    responses={404: {"description": "Note not found", "model": ErrorResponse}},
    summary="Delete a note and its attachments",
)
async def delete_note(
    note_id: str,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> Response:
    await service.delete_note(db, note_id, background_tasks=background_tasks)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/notes/{note_id}/grammar-check",
    response_model=GrammarCheckResponse,
    responses={
        400: {"description": "Note content is empty", "model": ErrorResponse},
        404: {"description": "Note not found", "model": ErrorResponse},
        503: {"description": "Grammar checker unavailable", "model": ErrorResponse},
    },
    summary="Grammar-check a note's Markdown content",
)
async def check_grammar(
    note_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> GrammarCheckResponse:
    return await service.check_grammar(db, note_id)


@router.get(
    "/notes/{note_id}/attachments/{attachment_id}",
    response_class=Response,
    responses={
        200: {"description": "Attachment bytes"},
        404: {"description": "Note, attachment or blob not found", "model": ErrorResponse},
    },
    summary="Download an attachment",
)
async def download_attachment(
    note_id: str,
    attachment_id: str,
    db: AsyncSession = Depends(get_db_session),
    service: NoteService = Depends(get_note_service),
) -> Response:
    attachment, data = await service.get_attachment(db, note_id, attachment_id)
    return Response(
        content=data,
        media_type=attachment.mime_type,
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(attachment.original_name)}",
            "Cache-Control": "private, max-age=3600",
        },
    )
