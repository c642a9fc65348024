# ruff: noqa: I001
"""Ephemeral upload previews for the preview/commit import flow.

Revision ID: 0002_upload_previews
Revises: 0001_ledger_core
Create Date: 2025-10-06
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0002_upload_previews"
down_revision: str | None = "0001_ledger_core"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "upload_previews",
        sa.Column("id", sa.Text(), primary_key=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("kind", sa.Text(), nullable=False),
        sa.Column("extracted_data", sa.JSON(), nullable=False),
        sa.Column("suggested_transactions", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        # NULL until a commit claims the preview; set in the commit's transaction.
        sa.Column("consumed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("kind in ('receipt','statement')", name="ck_upload_previews_kind"),
    )
    op.create_index(
        "ix_upload_previews_user_expires_at",
        "upload_previews",
        ["user_id", "expires_at"],
        unique=False,
    )
    # Supports the expiry sweep.
    op.create_index(
        "ix_upload_previews_expires_at",
        "upload_previews",
        ["expires_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_upload_previews_expires_at", table_name="upload_previews")
    op.drop_index("ix_upload_previews_user_expires_at", table_name="upload_previews")
    op.drop_table("upload_previews")
