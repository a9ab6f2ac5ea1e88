"""Initial schema: token documents.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- token_documents: one row per normalized identity ---
    op.create_table(
        "token_documents",
        sa.Column("identity", sa.String(320), primary_key=True),
        sa.Column("document", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )


def downgrade() -> None:
    op.drop_table("token_documents")
