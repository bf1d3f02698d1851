"""
NoteTaker Backend - Application Package
=======================================

What: Markdown note-taking service with file attachments and grammar checking.
How:  Imported by uvicorn (`uvicorn notetaker.main:app`), Alembic and pytest.

Architecture Note:
    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← Orchestration, validation
    ├─────────────────────────────────────┤
    │   Storage Backends │ Grammar Client │  ← Blob storage, external checker
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │        Database (Persistence)       │  ← Async SQLAlchemy sessions
    └─────────────────────────────────────┘

    Routes map typed service exceptions to HTTP status codes; nothing below
    the route layer knows about HTTP.
"""

__version__ = "1.0.0"
