from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

import pytest

from ledger_import.errors import CommitValidationError
from ledger_import.models import TransactionType, to_money
from ledger_import.validation import MAX_AMOUNT, parse_iso_date, validate_candidates


def _row(**overrides):
    base = {
        "type": "EXPENSE",
        "amount": "120.5",
        "date": "2026-01-10",
        "description": "Groceries",
        "categoryName": "Food",
    }
    base.update(overrides)
    return base


def test_valid_row_is_typed_and_defaulted():
    [cand] = validate_candidates([_row(merchant="  Big  Bazaar ")], default_currency="INR")
    assert cand.type is TransactionType.EXPENSE
    assert cand.amount == Decimal("120.50")
    assert cand.occurred_on == date(2026, 1, 10)
    assert cand.currency == "INR"
    assert cand.merchant == "Big Bazaar"
    assert cand.category_name == "Food"


def test_lowercase_type_and_currency_are_accepted():
    [cand] = validate_candidates([_row(type="income", currency="usd")], default_currency="INR")
    assert cand.type is TransactionType.INCOME
    assert cand.currency == "USD"


def test_every_offending_row_is_reported():
    rows = [
        _row(),
        _row(amount=None),
        _row(amount="-5"),
        _row(date="10/01/2026"),
        _row(categoryName="  "),
        _row(type="TRANSFER", description=""),
        "not-a-row",
    ]
    with pytest.raises(CommitValidationError) as ei:
        validate_candidates(rows, default_currency="INR")

    issues = {(i.index, i.field) for i in ei.value.issues}
    assert issues == {
        (1, "amount"),
        (2, "amount"),
        (3, "date"),
        (4, "categoryName"),
        (5, "type"),
        (5, "description"),
        (6, "row"),
    }
    assert "1, 2, 3, 4, 5, 6" in str(ei.value)


def test_description_length_limit():
    validate_candidates([_row(description="x" * 500)], default_currency="INR")
    with pytest.raises(CommitValidationError):
        validate_candidates([_row(description="x" * 501)], default_currency="INR")


@pytest.mark.parametrize("amount", ["1e30", "10000000000.00", "1E+400"])
def test_out_of_range_amount_is_a_row_issue(amount):
    with pytest.raises(CommitValidationError) as ei:
        validate_candidates([_row(), _row(amount=amount)], default_currency="INR")
    assert [(i.index, i.field) for i in ei.value.issues] == [(1, "amount")]


def test_largest_storable_amount_is_accepted():
    [cand] = validate_candidates([_row(amount="9999999999.99")], default_currency="INR")
    assert cand.amount == MAX_AMOUNT


def test_to_money_rejects_values_beyond_decimal_precision():
    assert to_money("1e30") is None
    assert to_money("NaN") is None
    assert to_money(" 12.345 ") == Decimal("12.35")


@pytest.mark.parametrize("name", ["x" * 65, "Food\x07"])
def test_category_name_the_resolver_would_reject_is_a_row_issue(name):
    with pytest.raises(CommitValidationError) as ei:
        validate_candidates([_row(categoryName=name)], default_currency="INR")
    assert [(i.index, i.field) for i in ei.value.issues] == [(0, "categoryName")]


def test_empty_submission_is_rejected():
    with pytest.raises(CommitValidationError) as ei:
        validate_candidates([], default_currency="INR")
    assert ei.value.issues == ()


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("2026-02-28", date(2026, 2, 28)),
        ("2026-02-30", None),
        ("2026-2-3", None),
        (None, None),
        (date(2026, 1, 1), date(2026, 1, 1)),
        (datetime(2026, 1, 1, 9, 30), date(2026, 1, 1)),
    ],
)
def test_parse_iso_date(raw, expected):
    assert parse_iso_date(raw) == expected
