from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest
from db.client import session_scope

from ledger_import.duplicates import (
    DateAmountTextPolicy,
    DuplicateDetector,
    ExistingTransaction,
    load_existing_for_dates,
)
from ledger_import.models import CandidateTransaction, TransactionType
from tests.helpers.db import bootstrap_sqlite_db, seed_transaction

D = date(2026, 1, 10)


def _cand(**overrides) -> CandidateTransaction:
    base = dict(
        type=TransactionType.EXPENSE,
        amount=Decimal("450.00"),
        currency="INR",
        occurred_on=D,
        description="Dinner at Olive",
        category_name="Food",
        merchant="Olive Bistro",
    )
    base.update(overrides)
    return CandidateTransaction(**base)


def _existing(user_id: str = "u1", **overrides) -> ExistingTransaction:
    base = dict(
        user_id=user_id,
        type=TransactionType.EXPENSE,
        amount=Decimal("450.00"),
        occurred_on=D,
        description="Something else",
        merchant="olive   BISTRO",
    )
    base.update(overrides)
    return ExistingTransaction(**base)


# ---------------------------
# Policy
# ---------------------------


def test_same_date_amount_and_merchant_matches():
    assert DateAmountTextPolicy().matches(_cand(), _existing())


def test_internal_whitespace_runs_collapse_before_comparison():
    cand = _cand(merchant="Big\tBazaar", description="x")
    ex = _existing(merchant="  big   bazaar ", description="y")
    assert DateAmountTextPolicy().matches(cand, ex)
    assert not DateAmountTextPolicy().matches(cand, _existing(merchant="BigBazaar", description="y"))


def test_description_match_is_enough_when_merchant_differs():
    ex = _existing(merchant="Other Place", description="  dinner at OLIVE ")
    assert DateAmountTextPolicy().matches(_cand(), ex)


@pytest.mark.parametrize(
    "ex",
    [
        _existing(occurred_on=date(2026, 1, 11)),
        _existing(amount=Decimal("450.01")),
        _existing(merchant="Other Place"),
    ],
)
def test_any_difference_is_not_a_match(ex: ExistingTransaction):
    assert not DateAmountTextPolicy().matches(_cand(), ex)


def test_missing_text_never_matches():
    cand = _cand(merchant=None)
    ex = _existing(merchant=None, description="Unrelated")
    assert not DateAmountTextPolicy().matches(cand, ex)


# ---------------------------
# Detector
# ---------------------------


def test_detector_is_scoped_to_user():
    det = DuplicateDetector()
    assert det.is_duplicate("u1", _cand(), [_existing("u1")])
    assert not det.is_duplicate("u2", _cand(), [_existing("u1")])


def test_detector_checks_rows_accepted_earlier_in_the_batch():
    det = DuplicateDetector()
    accepted = [ExistingTransaction.from_candidate("u1", _cand())]
    assert det.is_duplicate("u1", _cand(), [], accepted)


def test_policy_is_replaceable():
    class NeverDuplicate:
        def matches(self, candidate, existing) -> bool:
            return False

    det = DuplicateDetector(NeverDuplicate())
    assert not det.is_duplicate("u1", _cand(), [_existing()])


# ---------------------------
# Lookup
# ---------------------------


def test_load_existing_only_fetches_requested_dates_for_user(tmp_path: Path):
    url = bootstrap_sqlite_db(tmp_path / "dups.db")
    seed_transaction(
        database_url=url, user_id="u1", amount="450.00", occurred_on=D, description="a"
    )
    seed_transaction(
        database_url=url,
        user_id="u1",
        amount="99.90",
        occurred_on=date(2026, 1, 12),
        description="b",
    )
    seed_transaction(
        database_url=url, user_id="u2", amount="450.00", occurred_on=D, description="c"
    )

    with session_scope(database_url=url) as s:
        rows = load_existing_for_dates(s, user_id="u1", dates=[D, D])
        none = load_existing_for_dates(s, user_id="u1", dates=[])

    assert [(r.description, r.amount) for r in rows] == [("a", Decimal("450.00"))]
    assert none == []
