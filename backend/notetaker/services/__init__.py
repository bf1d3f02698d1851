# Services package init
"""
NoteTaker Backend - Services Layer
==================================

What:  Business logic layer sitting between routes (HTTP) and the database.
How:   Services accept plain values and the request's session, apply the
       business rules, and return ORM objects or schema models. Routes get
       them through FastAPI dependency injection.

Service Inventory:
    - StorageBackend (abstract): where attachment blobs live
        - LocalStorageBackend: files under UPLOAD_DIR
        - S3StorageBackend: objects in an S3-compatible bucket
    - AttachmentManager: upload validation, blob writes, blob cleanup
    - render_markdown: Markdown → HTML
    - NoteRepository: note persistence
    - GrammarChecker (abstract) / LanguageToolChecker: grammar findings
    - NoteService: orchestrates create, edit, delete, reads, grammar check
"""
