from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# BIGINT identities on Postgres; SQLite only autoincrements INTEGER PRIMARY KEY.
_BigId = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


# ---------------------------
# Reference: categories
# ---------------------------


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    # Display label as entered (trimmed, internal whitespace collapsed).
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # Case-folded form of ``name``; the uniqueness key. Kept as a plain column
    # (computed in ``ledger_import.categories.name_key``) so the constraint is
    # identical on Postgres and SQLite.
    name_norm: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name_norm", "type", name="uq_categories_user_name_type"),
        CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_categories_type"),
    )


# ---------------------------
# Core: transactions
# ---------------------------


class Transaction(Base):
    __tablename__ = "transactions"

    id: Mapped[int] = mapped_column(_BigId, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    merchant: Mapped[str | None] = mapped_column(Text, nullable=True)
    category_id: Mapped[int | None] = mapped_column(
        _BigId,
        ForeignKey("categories.id", ondelete="SET NULL"),
        nullable=True,
    )
    # How the row entered the ledger; imports never touch MANUAL rows.
    source: Mapped[str] = mapped_column(String, nullable=False, server_default="MANUAL")
    # Preview token the row was committed from (provenance only, no FK:
    # previews are swept after use).
    preview_id: Mapped[str | None] = mapped_column(String, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint("type in ('INCOME','EXPENSE')", name="ck_transactions_type"),
        CheckConstraint("amount > 0", name="ck_transactions_amount_positive"),
        CheckConstraint(
            "source in ('MANUAL','RECEIPT','STATEMENT_IMPORT')",
            name="ck_transactions_source",
        ),
        Index("ix_transactions_user_occurred_on", "user_id", "occurred_on"),
        Index("ix_transactions_user_category", "user_id", "category_id"),
    )


# ---------------------------
# Ephemeral: upload_previews
# ---------------------------


class UploadPreview(Base):
    __tablename__ = "upload_previews"

    # Opaque URL-safe token (256 bits of randomness).
    id: Mapped[str] = mapped_column(String, primary_key=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    kind: Mapped[str] = mapped_column(String, nullable=False)
    # Raw extraction output; written once at creation and never updated.
    extracted_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    suggested_transactions: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    consumed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint("kind in ('receipt','statement')", name="ck_upload_previews_kind"),
        Index("ix_upload_previews_user_expires_at", "user_id", "expires_at"),
        Index("ix_upload_previews_expires_at", "expires_at"),
    )


__all__ = [
    "Base",
    "Category",
    "Transaction",
    "UploadPreview",
]
