"""Ledger writes for the import path.

Functions here insert transactions into the ``transactions`` table owned by
``libs/db``. The caller provides the session and owns commit/rollback; rows
are flushed so ids are available immediately.

Scope:
- Insert one validated draft as a new ledger transaction.
- Convert persisted rows into ``TransactionRecord`` payloads.

Existing rows are never updated or deleted from here.
"""

from __future__ import annotations

from db.models.ledger import Category, Transaction
from sqlalchemy.orm import Session

from .models import (
    CandidateTransaction,
    CategoryRef,
    TransactionRecord,
    TransactionSource,
    TransactionType,
    to_money,
)


def insert_transaction(
    session: Session,
    *,
    user_id: str,
    candidate: CandidateTransaction,
    category_id: int | None,
    source: TransactionSource,
    preview_id: str | None = None,
) -> Transaction:
    row = Transaction(
        user_id=user_id,
        type=candidate.type.value,
        amount=candidate.amount,
        currency=candidate.currency,
        occurred_on=candidate.occurred_on,
        description=candidate.description,
        merchant=candidate.merchant,
        category_id=category_id,
        source=TransactionSource(source).value,
        preview_id=preview_id,
    )
    session.add(row)
    session.flush()
    return row


def to_record(session: Session, row: Transaction) -> TransactionRecord:
    """Build the external view of ``row`` including its category, if any."""

    category: CategoryRef | None = None
    if row.category_id is not None:
        cat = session.get(Category, row.category_id)
        if cat is not None:
            category = CategoryRef(id=cat.id, name=cat.name, type=TransactionType(cat.type))
    amount = to_money(row.amount)
    if amount is None:
        raise ValueError(f"transaction {row.id} has an unreadable amount: {row.amount!r}")
    return TransactionRecord(
        id=row.id,
        user_id=row.user_id,
        type=TransactionType(row.type),
        amount=amount,
        currency=row.currency,
        occurred_on=row.occurred_on,
        description=row.description,
        merchant=row.merchant,
        category_id=row.category_id,
        category=category,
        source=TransactionSource(row.source),
        created_at=row.created_at,
    )


__all__ = ["insert_transaction", "to_record"]
