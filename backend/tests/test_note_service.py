"""
NoteTaker Backend - Note Service Tests
======================================

What:  NoteService orchestration over a real SQLite session, a tmp_path
       LocalStorageBackend and the FakeGrammarChecker.

What we test:
    ✅ Create: validation, rendering, attachments persisted
    ✅ Edit: reconciliation order, unknown removal ids, removal list formats
    ✅ Edit/create with a rejected upload persist nothing
    ✅ Delete: record gone first, every blob delete attempted
    ✅ Reads: NotFound for missing and malformed ids
    ✅ Grammar check: findings mapped, empty content rejected, failures propagate
    ✅ Field types and title length checked before any blob is stored
    ✅ A failed commit surfaces as DatabaseError and logs the orphaned blobs
"""

import logging
import uuid
from unittest.mock import AsyncMock

import pytest
from fastapi import BackgroundTasks
from sqlalchemy.exc import OperationalError

from notetaker.exceptions import DatabaseError, DependencyError, NotFoundError, ValidationError
from notetaker.models.note import TITLE_MAX_LENGTH
from notetaker.services.note_service import parse_removal_list
from notetaker.services.storage_base import DeleteOutcome


class TestParseRemovalList:

    @pytest.mark.parametrize("raw", [None, "", "   "])
    def test_empty_values(self, raw):
        assert parse_removal_list(raw) == []

    def test_list_of_ids(self):
        assert parse_removal_list(["a", "b"]) == ["a", "b"]

    def test_json_string(self):
        assert parse_removal_list('["a", "b"]') == ["a", "b"]

    @pytest.mark.parametrize("raw", ["not json", '{"id": "a"}', "[1, 2]", 42, ["a", 1], '"a"'])
    def test_uninterpretable(self, raw):
        with pytest.raises(ValidationError):
            parse_removal_list(raw)


class TestCreateNote:

    @pytest.mark.asyncio
    async def test_create_renders_and_persists(self, note_service, db_session):
        note = await note_service.create_note(db_session, "  T  ", "# H\nbody")

        assert note.title == "T"
        assert "<h1>H</h1>" in note.html_content
        assert note.attachments == []

    @pytest.mark.asyncio
    async def test_rendering_is_deterministic(self, note_service, db_session):
        a = await note_service.create_note(db_session, "A", "# Same\n\n*text*")
        b = await note_service.create_note(db_session, "B", "# Same\n\n*text*")
        assert a.html_content == b.html_content

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title,content", [("", "body"), ("   ", "body"), ("T", ""), ("T", "  \n"), (None, "body"), ("T", None)])
    async def test_blank_fields_rejected(self, note_service, db_session, make_upload, upload_dir, title, content):
        with pytest.raises(ValidationError):
            await note_service.create_note(db_session, title, content, [make_upload()])

        assert await note_service.list_notes(db_session) == []
        assert not upload_dir.exists() or list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_create_with_attachments(self, note_service, db_session, make_upload, upload_dir):
        note = await note_service.create_note(
            db_session, "T", "body", [make_upload(name="a.png"), make_upload(name="b.png")]
        )

        assert [a["original_name"] for a in note.attachments] == ["a.png", "b.png"]
        for record in note.attachments:
            assert (upload_dir / record["storage_key"]).exists()

    @pytest.mark.asyncio
    async def test_disallowed_type_persists_nothing(self, note_service, db_session, make_upload, upload_dir):
        files = [make_upload(), make_upload(name="x.exe", mime_type="application/x-msdownload")]

        with pytest.raises(ValidationError):
            await note_service.create_note(db_session, "T", "body", files)

        assert await note_service.list_notes(db_session) == []
        assert list(upload_dir.iterdir()) == []


class TestEditNote:

    async def _note_with(self, note_service, db_session, make_upload, names):
        return await note_service.create_note(
            db_session, "T", "body", [make_upload(name=n) for n in names]
        )

    def _ids_by_name(self, note):
        return {a["original_name"]: a["id"] for a in note.attachments}

    @pytest.mark.asyncio
    async def test_remove_b_add_d_yields_a_c_d(self, note_service, db_session, make_upload, upload_dir):
        note = await self._note_with(note_service, db_session, make_upload, ["A.png", "B.png", "C.png"])
        ids = self._ids_by_name(note)
        b_key = next(a["storage_key"] for a in note.attachments if a["original_name"] == "B.png")

        edited = await note_service.edit_note(
            db_session,
            note.id,
            "T",
            "body",
            remove_attachment_ids=[ids["B.png"]],
            new_files=[make_upload(name="D.png")],
        )

        assert [a["original_name"] for a in edited.attachments] == ["A.png", "C.png", "D.png"]
        assert [a["id"] for a in edited.attachments[:2]] == [ids["A.png"], ids["C.png"]]
        assert not (upload_dir / b_key).exists()

    @pytest.mark.asyncio
    async def test_unknown_removal_id_is_noop(self, note_service, db_session, make_upload):
        note = await self._note_with(note_service, db_session, make_upload, ["A.png", "B.png"])
        before = list(note.attachments)

        edited = await note_service.edit_note(
            db_session, note.id, "T", "body", remove_attachment_ids='["does-not-exist"]'
        )

        assert edited.attachments == before

    @pytest.mark.asyncio
    async def test_rerenders_html(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "# Old")

        edited = await note_service.edit_note(db_session, note.id, "New title", "## New")

        assert edited.title == "New title"
        assert "<h2>New</h2>" in edited.html_content
        assert "Old" not in edited.html_content

    @pytest.mark.asyncio
    async def test_missing_note(self, note_service, db_session):
        with pytest.raises(NotFoundError):
            await note_service.edit_note(db_session, uuid.uuid4(), "T", "body")

    @pytest.mark.asyncio
    async def test_blank_title_rejected(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "body")
        with pytest.raises(ValidationError):
            await note_service.edit_note(db_session, note.id, " ", "body")

    @pytest.mark.asyncio
    async def test_bad_removal_list_rejected(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "body")
        with pytest.raises(ValidationError):
            await note_service.edit_note(db_session, note.id, "T", "body", remove_attachment_ids="[oops")

    @pytest.mark.asyncio
    async def test_oversize_upload_leaves_note_untouched(self, note_service, db_session, make_upload, upload_dir):
        note = await self._note_with(note_service, db_session, make_upload, ["A.png"])
        ids = self._ids_by_name(note)
        a_key = note.attachments[0]["storage_key"]

        with pytest.raises(ValidationError):
            await note_service.edit_note(
                db_session,
                note.id,
                "T2",
                "body2",
                remove_attachment_ids=[ids["A.png"]],
                new_files=[make_upload(data=b"x" * (5 * 1024 * 1024 + 1))],
            )

        reloaded = await note_service.get_note(db_session, note.id)
        assert reloaded.title == "T"
        assert [a["id"] for a in reloaded.attachments] == [ids["A.png"]]
        assert (upload_dir / a_key).exists()

    @pytest.mark.asyncio
    async def test_background_tasks_defer_discard(self, note_service, db_session, make_upload, upload_dir):
        note = await self._note_with(note_service, db_session, make_upload, ["A.png"])
        a = note.attachments[0]
        tasks = BackgroundTasks()

        await note_service.edit_note(
            db_session, note.id, "T", "body", remove_attachment_ids=[a["id"]], background_tasks=tasks
        )

        assert (upload_dir / a["storage_key"]).exists()
        await tasks()
        assert not (upload_dir / a["storage_key"]).exists()

    @pytest.mark.asyncio
    async def test_cleanup_failure_does_not_fail_edit(self, note_service, db_session, make_upload):
        note = await self._note_with(note_service, db_session, make_upload, ["A.png"])
        note_service.attachments.backend.delete = AsyncMock(side_effect=RuntimeError("storage down"))

        edited = await note_service.edit_note(
            db_session, note.id, "T", "body", remove_attachment_ids=[note.attachments[0]["id"]]
        )

        assert edited.attachments == []


class TestDeleteNote:

    @pytest.mark.asyncio
    async def test_delete_removes_record_and_blobs(self, note_service, db_session, make_upload, upload_dir):
        note = await note_service.create_note(
            db_session, "T", "body", [make_upload(name="a.png"), make_upload(name="b.png")]
        )
        keys = [a["storage_key"] for a in note.attachments]

        await note_service.delete_note(db_session, note.id)

        with pytest.raises(NotFoundError):
            await note_service.get_note(db_session, note.id)
        for key in keys:
            assert not (upload_dir / key).exists()

    @pytest.mark.asyncio
    async def test_every_blob_delete_attempted(self, note_service, db_session, make_upload):
        note = await note_service.create_note(
            db_session, "T", "body", [make_upload(), make_upload(), make_upload()]
        )
        keys = sorted(a["storage_key"] for a in note.attachments)
        note_service.attachments.backend.delete = AsyncMock(
            side_effect=[DeleteOutcome.FAILURE, RuntimeError("boom"), DeleteOutcome.SUCCESS]
        )

        await note_service.delete_note(db_session, note.id)

        attempted = sorted(c.args[0] for c in note_service.attachments.backend.delete.await_args_list)
        assert attempted == keys

    @pytest.mark.asyncio
    async def test_delete_missing(self, note_service, db_session):
        with pytest.raises(NotFoundError):
            await note_service.delete_note(db_session, uuid.uuid4())


class TestReads:

    @pytest.mark.asyncio
    async def test_malformed_id_is_not_found(self, note_service, db_session):
        with pytest.raises(NotFoundError):
            await note_service.get_note(db_session, "not-a-uuid")

    @pytest.mark.asyncio
    async def test_list_empty(self, note_service, db_session):
        assert await note_service.list_notes(db_session) == []

    @pytest.mark.asyncio
    async def test_get_attachment(self, note_service, db_session, make_upload, sample_png_bytes):
        note = await note_service.create_note(db_session, "T", "body", [make_upload(name="a.png")])
        attachment_id = note.attachments[0]["id"]

        attachment, data = await note_service.get_attachment(db_session, note.id, attachment_id)

        assert attachment.original_name == "a.png"
        assert data == sample_png_bytes

    @pytest.mark.asyncio
    async def test_get_unknown_attachment(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "body")
        with pytest.raises(NotFoundError):
            await note_service.get_attachment(db_session, note.id, "nope")


class TestCheckGrammar:

    @pytest.mark.asyncio
    async def test_findings_mapped(self, note_service, db_session, grammar_checker):
        note = await note_service.create_note(db_session, "T", "Thiis is test")

        result = await note_service.check_grammar(db_session, note.id)

        assert result.error_count == len(result.errors) > 0
        assert any("Thiis" in e.context for e in result.errors)
        assert grammar_checker.calls == ["Thiis is test"]

    @pytest.mark.asyncio
    async def test_clean_text(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "This is fine.")
        result = await note_service.check_grammar(db_session, note.id)
        assert result.error_count == 0
        assert result.errors == []

    @pytest.mark.asyncio
    async def test_missing_note(self, note_service, db_session):
        with pytest.raises(NotFoundError):
            await note_service.check_grammar(db_session, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_empty_content_rejected(self, note_service, db_session, grammar_checker):
        note = await note_service.create_note(db_session, "T", "body")
        note.markdown_content = ""

        with pytest.raises(ValidationError):
            await note_service.check_grammar(db_session, note.id)
        assert grammar_checker.calls == []

    @pytest.mark.asyncio
    async def test_checker_failure_propagates(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "Thiis is test")
        note_service.checker.check = AsyncMock(side_effect=DependencyError())

        with pytest.raises(DependencyError):
            await note_service.check_grammar(db_session, note.id)


class TestFieldRules:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("title,content", [(5, "body"), (["T"], "body"), ("T", 42), ("T", {"md": "x"})])
    async def test_non_string_fields_rejected(self, note_service, db_session, make_upload, upload_dir, title, content):
        with pytest.raises(ValidationError) as exc_info:
            await note_service.create_note(db_session, title, content, [make_upload()])

        assert "must be a string" in exc_info.value.message
        assert not upload_dir.exists() or list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_edit_non_string_title_rejected(self, note_service, db_session):
        note = await note_service.create_note(db_session, "T", "body")

        with pytest.raises(ValidationError):
            await note_service.edit_note(db_session, note.id, 123, "body")

    @pytest.mark.asyncio
    async def test_title_at_column_width_accepted(self, note_service, db_session):
        note = await note_service.create_note(db_session, "x" * TITLE_MAX_LENGTH, "body")
        assert len(note.title) == TITLE_MAX_LENGTH

    @pytest.mark.asyncio
    async def test_overlong_title_rejected_before_upload(self, note_service, db_session, make_upload, upload_dir):
        with pytest.raises(ValidationError) as exc_info:
            await note_service.create_note(db_session, "x" * (TITLE_MAX_LENGTH + 1), "body", [make_upload()])

        assert exc_info.value.context["max_length"] == TITLE_MAX_LENGTH
        assert not upload_dir.exists() or list(upload_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_title_length_measured_after_trim(self, note_service, db_session):
        note = await note_service.create_note(db_session, "  " + "x" * TITLE_MAX_LENGTH + "  ", "body")
        assert note.title == "x" * TITLE_MAX_LENGTH


class TestCommitFailures:

    def _break_commit(self, db_session):
        db_session.commit = AsyncMock(side_effect=OperationalError("COMMIT", {}, Exception("disk I/O error")))

    @pytest.mark.asyncio
    async def test_create_commit_failure(self, note_service, db_session, make_upload, caplog):
        self._break_commit(db_session)

        with caplog.at_level(logging.ERROR, logger="notetaker.services.note_service"):
            with pytest.raises(DatabaseError):
                await note_service.create_note(db_session, "T", "body", [make_upload()])

        assert "create failed; 1 stored blobs are orphaned" in caplog.text
        assert await note_service.list_notes(db_session) == []

    @pytest.mark.asyncio
    async def test_edit_commit_failure_logs_new_blobs(self, note_service, db_session, make_upload, upload_dir, caplog):
        note = await note_service.create_note(db_session, "T", "body", [make_upload(name="A.png")])
        kept_key = note.attachments[0]["storage_key"]
        self._break_commit(db_session)

        with caplog.at_level(logging.ERROR, logger="notetaker.services.note_service"):
            with pytest.raises(DatabaseError):
                await note_service.edit_note(
                    db_session,
                    note.id,
                    "T",
                    "body",
                    remove_attachment_ids=[note.attachments[0]["id"]],
                    new_files=[make_upload(name="B.png")],
                )

        assert "edit failed; 1 stored blobs are orphaned" in caplog.text
        # The removed attachment's blob survives a failed edit
        assert (upload_dir / kept_key).exists()

    @pytest.mark.asyncio
    async def test_delete_commit_failure_keeps_blobs(self, note_service, db_session, make_upload, upload_dir):
        note = await note_service.create_note(db_session, "T", "body", [make_upload()])
        key = note.attachments[0]["storage_key"]
        self._break_commit(db_session)

        with pytest.raises(DatabaseError):
            await note_service.delete_note(db_session, note.id)

        assert (upload_dir / key).exists()
