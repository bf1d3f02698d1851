"""Create notes table

Revision ID: 001
Revises: None
Create Date: 2024-06-10 00:00:00.000000+00:00

What:  Creates the `notes` table: Markdown source, rendered HTML and the
       embedded attachment metadata list.
How:   Portable types (sa.Uuid, sa.JSON, timezone-aware DateTime) so the same
       migration runs on PostgreSQL and SQLite.

Rollback: downgrade() drops the table (all notes are lost; attachment blobs
are NOT removed from storage).
"""

from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

# revision identifiers
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "notes",

        # Generated in Python by the ORM (uuid4), immutable
        sa.Column(
            "id",
            sa.Uuid(as_uuid=True),
            nullable=False,
            comment="Unique identifier, immutable after creation",
        ),

        sa.Column(
            "title",
            sa.String(255),
            nullable=False,
            comment="Note title (trimmed, never blank)",
        ),

        sa.Column(
            "markdown_content",
            sa.Text(),
            nullable=False,
            comment="Raw Markdown source, the source of truth for content",
        ),

        # Always rewritten together with markdown_content
        sa.Column(
            "html_content",
            sa.Text(),
            nullable=False,
            server_default=sa.text("''"),
            comment="Server-side render of markdown_content",
        ),

        # [{id, original_name, storage_key, mime_type, size_bytes}, ...]
        sa.Column(
            "attachments",
            sa.JSON(),
            nullable=False,
            comment="Embedded attachment metadata records, in display order",
        ),

        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this note was created (UTC)",
        ),

        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("CURRENT_TIMESTAMP"),
            nullable=False,
            comment="When this note was last modified (UTC)",
        ),

        sa.PrimaryKeyConstraint("id"),
    )

    # GET /notes lists newest first
    op.create_index(
        "idx_notes_created_at",
        "notes",
        [sa.text("created_at DESC")],
    )


def downgrade() -> None:
    op.drop_index("idx_notes_created_at", table_name="notes")
    op.drop_table("notes")
