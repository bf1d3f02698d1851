"""
NoteTaker Backend - Test Configuration (conftest.py)
====================================================

What:  Shared pytest fixtures for the entire test suite.
How:   Environment variables are set BEFORE any notetaker import so the
       settings singleton, the engine and the storage backend are built
       against throwaway locations.

Fixture Hierarchy (all function-scoped):
    ├── db_engine / db_session: in-memory SQLite (aiosqlite) with the schema
    ├── local_backend: LocalStorageBackend rooted in tmp_path
    ├── attachment_manager: AttachmentManager over local_backend
    ├── grammar_checker: FakeGrammarChecker (no network)
    ├── note_service: NoteService wired to the three above
    ├── sample_png_bytes / make_upload: upload test data
    └── test_client: httpx AsyncClient against the app, with the DB session
                     and NoteService dependencies overridden
"""

import os
import re
import tempfile

# Override settings for testing BEFORE any app imports
_TEST_ROOT = tempfile.mkdtemp(prefix="notetaker_test_")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_TEST_ROOT}/health.db"
os.environ["UPLOAD_DIR"] = os.path.join(_TEST_ROOT, "uploads")
os.environ["STORAGE_BACKEND"] = "local"
os.environ["ENVIRONMENT"] = "production"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["RETRY_MIN_WAIT"] = "0"
os.environ["RETRY_MAX_WAIT"] = "1"

from typing import List  # noqa: E402

import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402

from notetaker.database import Base, get_db_session  # noqa: E402
from notetaker.models.note import Note  # noqa: E402,F401
from notetaker.schemas.note import GrammarFinding  # noqa: E402
from notetaker.services.attachment_service import AttachmentManager, UploadedFile  # noqa: E402
from notetaker.services.grammar_base import GrammarChecker  # noqa: E402
from notetaker.services.local_storage import LocalStorageBackend  # noqa: E402
from notetaker.services.note_repository import NoteRepository  # noqa: E402
from notetaker.services.note_service import NoteService, get_note_service  # noqa: E402


# ══════════════════════════════════════════════════════════════════════════
# Test Doubles
# ══════════════════════════════════════════════════════════════════════════

class FakeGrammarChecker(GrammarChecker):
    """
    Flags a fixed set of misspellings, like a tiny offline LanguageTool.

    `calls` records every text passed to check().
    """

    MISSPELLINGS = {
        "Thiis": ["This", "Thus"],
        "teh": ["the"],
        "recieve": ["receive"],
    }

    def __init__(self):
        self.calls: List[str] = []

    async def check(self, text: str) -> List[GrammarFinding]:
        self.calls.append(text)
        findings = []
        for word, suggestions in self.MISSPELLINGS.items():
            for match in re.finditer(rf"\b{word}\b", text):
                start = max(match.start() - 20, 0)
                findings.append(
                    GrammarFinding(
                        message="Possible spelling mistake found.",
                        offset=match.start(),
                        length=len(word),
                        context=text[start:match.end() + 20],
                        suggestions=suggestions,
                        category="Possible Typo",
                    )
                )
        return sorted(findings, key=lambda f: f.offset)

    async def health_check(self) -> bool:
        return True


# ══════════════════════════════════════════════════════════════════════════
# Database Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def db_engine():
    """In-memory SQLite shared across connections (StaticPool) with the schema created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


# ══════════════════════════════════════════════════════════════════════════
# Service Fixtures
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def local_backend(upload_dir):
    return LocalStorageBackend(upload_dir=str(upload_dir))


@pytest.fixture
def attachment_manager(local_backend):
    return AttachmentManager(local_backend, max_file_size=5 * 1024 * 1024, max_files=5)


@pytest.fixture
def grammar_checker():
    return FakeGrammarChecker()


@pytest.fixture
def note_service(attachment_manager, grammar_checker):
    return NoteService(
        attachments=attachment_manager,
        repository=NoteRepository(),
        checker=grammar_checker,
    )


# ══════════════════════════════════════════════════════════════════════════
# Upload Data
# ══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def sample_png_bytes():
    """
    Minimal PNG: signature + IHDR for a 1x1 image + IEND.

    Enough for MIME-type based handling; nothing here decodes images.
    """
    return (
        b"\x89PNG\r\n\x1a\n"
        b"\x00\x00\x00\rIHDR\x00\x00\x00\x01\x00\x00\x00\x01\x08\x06\x00\x00\x00\x1f\x15\xc4\x89"
        b"\x00\x00\x00\x00IEND\xaeB`\x82"
    )


@pytest.fixture
def make_upload(sample_png_bytes):
    """Factory for UploadedFile values; defaults to a small PNG."""

    def _make(name="photo.png", mime_type="image/png", data=None, size_bytes=None):
        data = sample_png_bytes if data is None else data
        return UploadedFile(
            name=name,
            mime_type=mime_type,
            size_bytes=len(data) if size_bytes is None else size_bytes,
            data=data,
        )

    return _make


# ══════════════════════════════════════════════════════════════════════════
# API Client
# ══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def test_client(session_factory, note_service):
    """
    HTTPX AsyncClient talking to the FastAPI app through ASGITransport.

    The app's session dependency is pointed at the in-memory database and
    NoteService at the tmp_path storage backend and the fake grammar checker.
    """
    from notetaker.main import app

    async def _session_override():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db_session] = _session_override
    app.dependency_overrides[get_note_service] = lambda: note_service

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()
