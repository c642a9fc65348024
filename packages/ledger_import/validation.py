"""Row validation for submitted commit drafts.

Rows arrive as mappings using the external field names
(``type, amount, currency, date, description, merchant, categoryName``).
``validate_candidates`` checks every row and either returns fully typed
``CandidateTransaction`` values or raises ``CommitValidationError`` listing
each defect with its 0-based row index. Nothing is partially accepted.
"""

from __future__ import annotations

import re
from collections.abc import Mapping, Sequence
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from .categories import validate_name
from .errors import CommitValidationError, RowIssue
from .models import CandidateTransaction, TransactionType, to_money

MAX_DESCRIPTION_LEN = 500
# Largest value the NUMERIC(12, 2) amount column holds.
MAX_AMOUNT = Decimal("9999999999.99")

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


def _text(v: Any) -> str | None:
    if v is None:
        return None
    s = " ".join(str(v).split())
    return s or None


def parse_iso_date(raw: Any) -> date | None:
    """Parse ``YYYY-MM-DD`` (or a ``date``); ``None`` when absent or invalid."""

    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if raw is None:
        return None
    s = str(raw).strip()
    if not _ISO_DATE_RE.fullmatch(s):
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _first(row: Mapping[str, Any], *keys: str) -> Any:
    for k in keys:
        if k in row:
            return row[k]
    return None


def _validate_row(
    index: int,
    row: Mapping[str, Any],
    *,
    default_currency: str,
    issues: list[RowIssue],
) -> CandidateTransaction | None:
    start = len(issues)

    raw_type = row.get("type")
    tx_type: TransactionType | None = None
    try:
        tx_type = TransactionType(str(raw_type).strip().upper()) if raw_type else None
    except ValueError:
        tx_type = None
    if tx_type is None:
        issues.append(RowIssue(index, "type", "type must be INCOME or EXPENSE"))

    raw_amount = row.get("amount")
    amount = to_money(raw_amount)
    if raw_amount is None:
        issues.append(RowIssue(index, "amount", "amount is required"))
    elif amount is None:
        issues.append(RowIssue(index, "amount", f"amount is not a number: {raw_amount!r}"))
    elif amount <= 0:
        issues.append(RowIssue(index, "amount", "amount must be greater than 0"))
    elif amount > MAX_AMOUNT:
        issues.append(RowIssue(index, "amount", f"amount must be at most {MAX_AMOUNT}"))

    raw_date = _first(row, "date", "occurredAt", "occurred_on")
    occurred_on = parse_iso_date(raw_date)
    if raw_date is None or (isinstance(raw_date, str) and not raw_date.strip()):
        issues.append(RowIssue(index, "date", "date is required"))
    elif occurred_on is None:
        issues.append(RowIssue(index, "date", f"date must be YYYY-MM-DD, got {raw_date!r}"))

    category_name = _text(_first(row, "categoryName", "category_name"))
    if category_name is None:
        issues.append(RowIssue(index, "categoryName", "category name is required"))
    else:
        name_check = validate_name(category_name)
        if not name_check.ok:
            issues.append(RowIssue(index, "categoryName", name_check.reason or "invalid name"))

    description = _text(row.get("description"))
    if description is None:
        issues.append(RowIssue(index, "description", "description is required"))
    elif len(description) > MAX_DESCRIPTION_LEN:
        issues.append(
            RowIssue(
                index,
                "description",
                f"description must be at most {MAX_DESCRIPTION_LEN} characters",
            )
        )

    currency = (_text(row.get("currency")) or default_currency).upper()
    if not _CURRENCY_RE.fullmatch(currency):
        issues.append(RowIssue(index, "currency", f"currency must be a 3-letter code: {currency!r}"))

    if (
        len(issues) > start
        or tx_type is None
        or amount is None
        or occurred_on is None
        or category_name is None
        or description is None
    ):
        return None
    return CandidateTransaction(
        type=tx_type,
        amount=amount,
        currency=currency,
        occurred_on=occurred_on,
        description=description,
        category_name=category_name,
        merchant=_text(row.get("merchant")),
    )


def validate_candidates(
    rows: Sequence[Mapping[str, Any]],
    *,
    default_currency: str,
) -> list[CandidateTransaction]:
    """Validate every row; raise ``CommitValidationError`` on any defect."""

    if not rows:
        raise CommitValidationError([])

    issues: list[RowIssue] = []
    out: list[CandidateTransaction] = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            issues.append(RowIssue(index, "row", "row must be an object"))
            continue
        cand = _validate_row(index, row, default_currency=default_currency, issues=issues)
        if cand is not None:
            out.append(cand)
    if issues:
        raise CommitValidationError(issues)
    return out


__all__ = ["MAX_AMOUNT", "MAX_DESCRIPTION_LEN", "parse_iso_date", "validate_candidates"]
