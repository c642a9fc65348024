# ruff: noqa: I001
"""Ledger core tables: categories and transactions.

Revision ID: 0001_ledger_core
Revises: None
Create Date: 2025-10-06
"""

from __future__ import annotations  # ruff: noqa: I001

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "0001_ledger_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("name_norm", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_categories_type"),
    )
    # Resolve-or-create relies on this constraint to settle concurrent inserts.
    op.create_unique_constraint(
        "uq_categories_user_name_type",
        "categories",
        ["user_id", "name_norm", "type"],
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Text(), nullable=False),
        sa.Column("type", sa.Text(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False),
        sa.Column("occurred_on", sa.Date(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("merchant", sa.Text(), nullable=True),
        sa.Column("category_id", sa.BigInteger(), nullable=True),
        sa.Column(
            "source",
            sa.Text(),
            nullable=False,
            server_default=sa.text("'MANUAL'"),
        ),
        sa.Column("preview_id", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("now()"),
        ),
        sa.ForeignKeyConstraint(
            ["category_id"],
            ["categories.id"],
            name="fk_transactions_category",
            ondelete="SET NULL",
        ),
        sa.CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_transactions_type"),
        sa.CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        sa.CheckConstraint(
            "source in ('MANUAL','RECEIPT','STATEMENT_IMPORT')",
            name="ck_transactions_source",
        ),
    )
    op.create_index(
        "ix_transactions_user_occurred_on",
        "transactions",
        ["user_id", "occurred_on"],
        unique=False,
    )
    op.create_index(
        "ix_transactions_user_category",
        "transactions",
        ["user_id", "category_id"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_transactions_user_category", table_name="transactions")
    op.drop_index("ix_transactions_user_occurred_on", table_name="transactions")
    op.drop_table("transactions")
    op.drop_constraint("uq_categories_user_name_type", "categories", type_="unique")
    op.drop_table("categories")
