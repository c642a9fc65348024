"""Category name handling and resolve-or-create for the commit path.

Exports
-------
- ``normalize_name(...)``, ``name_key(...)`` and ``validate_name(...)``:
  helpers shared by suggestion building and commit.
- ``resolve_category(...)``: map ``(user_id, name, type)`` to a category id,
  creating the row when absent. Uniqueness of
  ``(user_id, name_norm, type)`` is enforced by the database; a losing
  concurrent insert rolls back its savepoint and re-reads the winner.
- ``suggest_category_name(...)``: keyword-based default name for AI-extracted
  rows, shown to the reviewer before commit.
"""

from __future__ import annotations

from dataclasses import dataclass

from db.models.ledger import Category
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from .logging_setup import get_logger
from .models import TransactionType

_logger = get_logger("ledger_import.categories")

# ---------------------------
# Name normalization/validation
# ---------------------------

MAX_NAME_LEN = 64


def normalize_name(name: str) -> str:
    """Return a trimmed, single-spaced representation of ``name``.

    Does not change case; the stored display name keeps the user's casing.
    """

    return " ".join(name.strip().split())


def name_key(name: str) -> str:
    """Case-insensitive comparison key (the ``name_norm`` column)."""

    return normalize_name(name).casefold()


@dataclass(frozen=True, slots=True)
class NameValidation:
    ok: bool
    reason: str | None = None


def validate_name(name: str, *, min_len: int = 1, max_len: int = MAX_NAME_LEN) -> NameValidation:
    n = normalize_name(name)
    if len(n) < min_len:
        return NameValidation(False, "Name cannot be empty")
    if len(n) > max_len:
        return NameValidation(False, f"Name must be at most {max_len} characters")
    if not n.isprintable():
        return NameValidation(False, "Name contains control characters")
    return NameValidation(True, None)


# ---------------------------
# Resolve-or-create
# ---------------------------


@dataclass(frozen=True, slots=True)
class ResolvedCategory:
    id: int
    name: str
    type: TransactionType
    created: bool


def _find_category(
    session: Session, *, user_id: str, key: str, type_: TransactionType
) -> Category | None:
    return (
        session.execute(
            select(Category).where(
                Category.user_id == user_id,
                Category.name_norm == key,
                Category.type == type_.value,
            )
        )
        .scalars()
        .first()
    )


def _resolved(row: Category, *, created: bool) -> ResolvedCategory:
    return ResolvedCategory(
        id=row.id, name=row.name, type=TransactionType(row.type), created=created
    )


def resolve_category(
    session: Session,
    *,
    user_id: str,
    name: str,
    type_: TransactionType | str,
) -> ResolvedCategory:
    """Return the id of the user's category ``name`` of ``type_``, creating it if absent.

    The insert runs inside a SAVEPOINT so a uniqueness violation only undoes
    the insert, never the caller's surrounding work. The caller owns commit.

    Raises ``ValueError`` for an invalid name. An ``IntegrityError`` that is
    not explained by a concurrent insert of the same key is re-raised.
    """

    display = normalize_name(name)
    v = validate_name(display)
    if not v.ok:
        raise ValueError(f"Invalid category name {name!r}: {v.reason}")
    tx_type = TransactionType(type_)
    key = name_key(display)

    existing = _find_category(session, user_id=user_id, key=key, type_=tx_type)
    if existing is not None:
        return _resolved(existing, created=False)

    row = Category(user_id=user_id, name=display, name_norm=key, type=tx_type.value)
    try:
        with session.begin_nested():
            session.add(row)
            session.flush()
    except IntegrityError:
        winner = _find_category(session, user_id=user_id, key=key, type_=tx_type)
        if winner is None:
            raise
        _logger.info(
            "category:resolve_conflict user_id=%s name=%r type=%s id=%d",
            user_id,
            display,
            tx_type.value,
            winner.id,
        )
        return _resolved(winner, created=False)

    _logger.info(
        "category:create user_id=%s name=%r type=%s id=%d",
        user_id,
        display,
        tx_type.value,
        row.id,
    )
    return _resolved(row, created=True)


def list_categories(session: Session, *, user_id: str) -> list[ResolvedCategory]:
    """Return the user's categories ordered by type then name."""

    rows = (
        session.execute(
            select(Category)
            .where(Category.user_id == user_id)
            .order_by(Category.type, Category.name_norm)
        )
        .scalars()
        .all()
    )
    return [_resolved(r, created=False) for r in rows]


# ---------------------------
# Suggestions
# ---------------------------

# First match wins, in this order.
_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("Food", ("restaurant", "cafe", "food", "grocery", "pizza", "burger", "starbucks", "mcdonald")),
    ("Transport", ("uber", "lyft", "taxi", "fuel", "gas", "parking", "metro", "bus")),
    ("Shopping", ("amazon", "flipkart", "mall", "store", "shop", "retail")),
    ("Utilities", ("electricity", "water", "internet", "phone", "bill")),
    ("Entertainment", ("movie", "netflix", "spotify", "game", "concert", "theater")),
    ("Healthcare", ("hospital", "pharmacy", "doctor", "medical", "clinic", "medicine")),
    ("Salary", ("salary", "payroll", "wage", "income", "payment received")),
)


def suggest_category_name(text: str | None, type_: TransactionType | str) -> str:
    """Guess a category name from merchant/description text.

    Falls back to ``"Salary"`` for income and ``"Other"`` for expenses.
    """

    lowered = (text or "").casefold()
    if lowered:
        for category, terms in _KEYWORDS:
            if any(term in lowered for term in terms):
                return category
    return "Salary" if TransactionType(type_) is TransactionType.INCOME else "Other"


__all__ = [
    "MAX_NAME_LEN",
    "normalize_name",
    "name_key",
    "validate_name",
    "NameValidation",
    "ResolvedCategory",
    "resolve_category",
    "list_categories",
    "suggest_category_name",
]
