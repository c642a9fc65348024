"""Duplicate detection for committed imports.

Public surface:
- ``ExistingTransaction``: the comparable slice of a persisted ledger row.
- ``DuplicatePolicy``: protocol for "is this draft the same as that row".
- ``DateAmountTextPolicy``: the default rule; same calendar date, same 2-dp
  amount, and the same normalized merchant or description.
- ``DuplicateDetector``: applies a policy to a user's persisted rows plus the
  rows already accepted earlier in the same commit.
- ``load_existing_for_dates``: fetch only the persisted rows whose dates
  appear in the batch.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from db.models.ledger import Transaction
from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import CandidateTransaction, TransactionType, to_money


@dataclass(frozen=True, slots=True)
class ExistingTransaction:
    user_id: str
    type: TransactionType
    amount: Decimal
    occurred_on: date
    description: str | None
    merchant: str | None

    @classmethod
    def from_candidate(cls, user_id: str, cand: CandidateTransaction) -> ExistingTransaction:
        return cls(
            user_id=user_id,
            type=cand.type,
            amount=cand.amount,
            occurred_on=cand.occurred_on,
            description=cand.description,
            merchant=cand.merchant,
        )


def normalize_text(v: str | None) -> str | None:
    if v is None:
        return None
    s = " ".join(v.split()).casefold()
    return s or None


class DuplicatePolicy(Protocol):
    def matches(self, candidate: CandidateTransaction, existing: ExistingTransaction) -> bool:
        ...


class DateAmountTextPolicy:
    """Same date, same amount, and same merchant or same description.

    Text comparison ignores case and surrounding whitespace, and also treats
    any internal whitespace run as a single space, so "Big  Bazaar" and
    "big bazaar" match. This is wider than plain trimming.

    Missing values on either side never count as a match.
    """

    def matches(self, candidate: CandidateTransaction, existing: ExistingTransaction) -> bool:
        if candidate.occurred_on != existing.occurred_on:
            return False
        if candidate.amount != existing.amount:
            return False
        cm, em = normalize_text(candidate.merchant), normalize_text(existing.merchant)
        if cm is not None and cm == em:
            return True
        cd, ed = normalize_text(candidate.description), normalize_text(existing.description)
        return cd is not None and cd == ed


class DuplicateDetector:
    def __init__(self, policy: DuplicatePolicy | None = None) -> None:
        self.policy: DuplicatePolicy = policy or DateAmountTextPolicy()

    def is_duplicate(
        self,
        user_id: str,
        candidate: CandidateTransaction,
        already_persisted: Iterable[ExistingTransaction],
        already_accepted: Iterable[ExistingTransaction] = (),
    ) -> bool:
        """True when ``candidate`` matches one of the user's persisted or accepted rows."""

        for pool in (already_persisted, already_accepted):
            for ex in pool:
                if ex.user_id == user_id and self.policy.matches(candidate, ex):
                    return True
        return False


def load_existing_for_dates(
    session: Session, *, user_id: str, dates: Sequence[date]
) -> list[ExistingTransaction]:
    """Persisted transactions of ``user_id`` on any of ``dates``."""

    wanted = sorted(set(dates))
    if not wanted:
        return []
    rows = session.execute(
        select(
            Transaction.type,
            Transaction.amount,
            Transaction.occurred_on,
            Transaction.description,
            Transaction.merchant,
        ).where(Transaction.user_id == user_id, Transaction.occurred_on.in_(wanted))
    ).all()
    out: list[ExistingTransaction] = []
    for r in rows:
        # SQLite returns NUMERIC as float; compare on the 2-dp Decimal.
        amount = to_money(r.amount)
        if amount is None:
            continue
        out.append(
            ExistingTransaction(
                user_id=user_id,
                type=TransactionType(r.type),
                amount=amount,
                occurred_on=r.occurred_on,
                description=r.description,
                merchant=r.merchant,
            )
        )
    return out


__all__ = [
    "ExistingTransaction",
    "normalize_text",
    "DuplicatePolicy",
    "DateAmountTextPolicy",
    "DuplicateDetector",
    "load_existing_for_dates",
]
