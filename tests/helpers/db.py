"""DB helpers for tests: bootstrap a temporary SQLite DB and seed ledger rows."""

from __future__ import annotations

import os
from datetime import date
from decimal import Decimal
from pathlib import Path

from db import Base
from db.client import get_engine, session_scope
from db.models.ledger import Category, Transaction
from sqlalchemy import func, select


def bootstrap_sqlite_db(db_file: Path, *, set_default_env: bool = False) -> str:
    """Create a SQLite database file, initialize schema, and return the URL.

    Using a file-backed SQLite DB ensures multiple SQLAlchemy connections share
    the same state (in-memory DBs are per-connection by default), which the
    concurrency tests rely on.
    """

    url = f"sqlite+pysqlite:///{db_file}"
    db_file.parent.mkdir(parents=True, exist_ok=True)
    engine = get_engine(database_url=url)
    Base.metadata.create_all(bind=engine)

    if set_default_env:
        os.environ.setdefault("DATABASE_URL", url)
    return url


def seed_category(*, database_url: str, user_id: str, name: str, type_: str) -> int:
    from ledger_import.categories import name_key, normalize_name

    with session_scope(database_url=database_url) as session:
        row = Category(
            user_id=user_id, name=normalize_name(name), name_norm=name_key(name), type=type_
        )
        session.add(row)
        session.flush()
        return row.id


def seed_transaction(
    *,
    database_url: str,
    user_id: str,
    amount: str,
    occurred_on: date,
    description: str,
    merchant: str | None = None,
    type_: str = "EXPENSE",
    currency: str = "INR",
    source: str = "MANUAL",
) -> int:
    with session_scope(database_url=database_url) as session:
        row = Transaction(
            user_id=user_id,
            type=type_,
            amount=Decimal(amount),
            currency=currency,
            occurred_on=occurred_on,
            description=description,
            merchant=merchant,
            source=source,
        )
        session.add(row)
        session.flush()
        return row.id


def count_transactions(*, database_url: str, user_id: str | None = None) -> int:
    with session_scope(database_url=database_url) as session:
        stmt = select(func.count()).select_from(Transaction)
        if user_id is not None:
            stmt = stmt.where(Transaction.user_id == user_id)
        return session.execute(stmt).scalar_one()


def fetch_transactions(*, database_url: str, user_id: str) -> list[Transaction]:
    with session_scope(database_url=database_url) as session:
        return list(
            session.execute(
                select(Transaction).where(Transaction.user_id == user_id).order_by(Transaction.id)
            )
            .scalars()
            .all()
        )


def fetch_categories(*, database_url: str, user_id: str) -> list[Category]:
    with session_scope(database_url=database_url) as session:
        return list(
            session.execute(
                select(Category).where(Category.user_id == user_id).order_by(Category.id)
            )
            .scalars()
            .all()
        )
