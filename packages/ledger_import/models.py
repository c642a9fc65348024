"""Data models for ``ledger_import``.

Two families live here:

- Frozen dataclasses for in-process domain values (``Preview``,
  ``CandidateTransaction``, ``CommitSummary`` ...). These are what the store,
  resolver, detector and coordinator pass around.
- Pydantic models for anything that crosses a boundary: the structured output
  of the extraction service and the camelCase payloads returned to callers.
  Dump them with ``model_dump(mode="json", by_alias=True)``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import StrEnum
from typing import Any, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_CENT = Decimal("0.01")


def to_money(raw: Any) -> Decimal | None:
    """Parse ``raw`` as a 2-dp ``Decimal``; ``None`` when absent or unparseable."""

    if raw is None or isinstance(raw, bool):
        return None
    try:
        d = Decimal(str(raw).strip())
        if not d.is_finite():
            return None
        # Quantizing past the context precision (e.g. "1e30") is InvalidOperation.
        return d.quantize(_CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return None


class TransactionType(StrEnum):
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"


class PreviewKind(StrEnum):
    RECEIPT = "receipt"
    STATEMENT = "statement"


class TransactionSource(StrEnum):
    MANUAL = "MANUAL"
    RECEIPT = "RECEIPT"
    STATEMENT_IMPORT = "STATEMENT_IMPORT"


# ---------------------------------------------------------------------------
# Domain values
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CandidateTransaction:
    """A reviewed draft ready for persistence (already validated)."""

    type: TransactionType
    amount: Decimal
    currency: str
    occurred_on: date
    description: str
    category_name: str
    merchant: str | None = None


@dataclass(frozen=True, slots=True)
class Preview:
    """Read-only view of one staged upload."""

    id: str
    user_id: str
    kind: PreviewKind
    extracted_data: dict[str, Any]
    suggested_transactions: list[dict[str, Any]]
    created_at: datetime
    expires_at: datetime
    consumed_at: datetime | None = None

    @property
    def consumed(self) -> bool:
        return self.consumed_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


@dataclass(frozen=True, slots=True)
class RowFailure:
    index: int
    reason: str


@dataclass(frozen=True, slots=True)
class CommitSummary:
    """Outcome of one commit request.

    ``created + skipped + len(failed) == total`` always holds; construction
    fails otherwise.
    """

    created: int
    skipped: int
    failed: tuple[RowFailure, ...]
    total: int
    transaction_ids: tuple[int, ...] = ()
    skipped_indices: tuple[int, ...] = field(default=())

    def __post_init__(self) -> None:
        if self.created + self.skipped + len(self.failed) != self.total:
            raise ValueError(
                "commit summary does not account for every row: "
                f"created={self.created} skipped={self.skipped} "
                f"failed={len(self.failed)} total={self.total}"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "skipped": self.skipped,
            "failed": [{"index": f.index, "reason": f.reason} for f in self.failed],
            "total": self.total,
        }


# ---------------------------------------------------------------------------
# Extraction output (structured response from the document service)
# ---------------------------------------------------------------------------


class _ExtractionModel(BaseModel):
    model_config = ConfigDict(
        extra="ignore",
        str_strip_whitespace=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )


def _money_or_none(v: Any) -> Decimal | None:
    if v is None:
        return None
    d = to_money(v)
    if d is None:
        raise ValueError(f"not a monetary amount: {v!r}")
    return d


class ReceiptExtraction(_ExtractionModel):
    merchant: str | None = None
    # Kept as the raw string the service produced; parsed at commit time.
    date: str | None = None
    amount: Decimal | None = None
    currency: str | None = None
    description: str | None = None
    confidence: float | None = Field(default=None, ge=0.0, le=1.0)

    @field_validator("amount", mode="before")
    @classmethod
    def _quantize_amount(cls, v: Any) -> Decimal | None:
        return _money_or_none(v)


class StatementPeriod(_ExtractionModel):
    start_date: str | None = None
    end_date: str | None = None


class StatementAccountInfo(_ExtractionModel):
    account_number: str | None = None
    account_holder: str | None = None
    bank: str | None = None
    period: StatementPeriod | None = None


class StatementLine(_ExtractionModel):
    date: str | None = None
    description: str | None = None
    merchant: str | None = None
    amount: Decimal | None = None
    type: TransactionType = TransactionType.EXPENSE
    balance: Decimal | None = None

    @field_validator("amount", "balance", mode="before")
    @classmethod
    def _quantize_money(cls, v: Any) -> Decimal | None:
        return _money_or_none(v)


class StatementExtraction(_ExtractionModel):
    account_info: StatementAccountInfo | None = None
    currency: str | None = None
    transactions: list[StatementLine] = Field(default_factory=list)


ExtractionResult: TypeAlias = ReceiptExtraction | StatementExtraction


# ---------------------------------------------------------------------------
# Response payloads
# ---------------------------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SuggestedTransaction(_Payload):
    """A candidate draft as offered to the reviewer (pre-edit)."""

    type: TransactionType
    amount: Decimal | None
    currency: str
    date: str | None
    description: str
    merchant: str | None = None
    category_name: str


class StatementSummary(_Payload):
    total_income: Decimal
    total_expenses: Decimal
    transaction_count: int


class StatementExtractedData(_Payload):
    account_info: StatementAccountInfo | None
    currency: str
    transactions: list[StatementLine]
    summary: StatementSummary


class ReceiptPreviewResponse(_Payload):
    preview_id: str
    type: PreviewKind = PreviewKind.RECEIPT
    extracted_data: dict[str, Any]
    suggested_transaction: SuggestedTransaction
    expires_at: datetime
    created_at: datetime


class StatementPreviewResponse(_Payload):
    preview_id: str
    type: PreviewKind = PreviewKind.STATEMENT
    extracted_data: dict[str, Any]
    suggested_transactions: list[SuggestedTransaction]
    expires_at: datetime
    created_at: datetime


class PreviewView(_Payload):
    """Read-only inspection payload for a stored preview."""

    preview_id: str
    type: PreviewKind
    extracted_data: dict[str, Any]
    suggested_transactions: list[dict[str, Any]]
    expires_at: datetime
    created_at: datetime

    @classmethod
    def from_preview(cls, preview: Preview) -> PreviewView:
        return cls(
            preview_id=preview.id,
            type=preview.kind,
            extracted_data=preview.extracted_data,
            suggested_transactions=preview.suggested_transactions,
            expires_at=preview.expires_at,
            created_at=preview.created_at,
        )


class CategoryRef(_Payload):
    id: int
    name: str
    type: TransactionType


class TransactionRecord(_Payload):
    """A persisted ledger transaction as returned by the receipt commit."""

    id: int
    user_id: str
    type: TransactionType
    amount: Decimal
    currency: str
    occurred_on: date
    description: str
    merchant: str | None
    category_id: int | None
    category: CategoryRef | None
    source: TransactionSource
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Commit requests
# ---------------------------------------------------------------------------


class ReceiptMetadata(_Payload):
    merchant: str | None = None
    currency: str | None = None
    ai_confidence: float | None = Field(default=None, ge=0.0, le=1.0)


class CommitReceiptRequest(_Payload):
    preview_id: str = Field(min_length=1)
    # Row-level checks happen in ``validation.validate_candidates`` so every
    # defect is reported with its index; only the envelope is typed here.
    transaction: dict[str, Any]
    metadata: ReceiptMetadata | None = None


class CommitOptions(_Payload):
    skip_duplicates: bool = True


class CommitStatementRequest(_Payload):
    preview_id: str = Field(min_length=1)
    transactions: list[Any]
    options: CommitOptions = Field(default_factory=CommitOptions)


__all__ = [
    "to_money",
    "TransactionType",
    "PreviewKind",
    "TransactionSource",
    "CandidateTransaction",
    "Preview",
    "RowFailure",
    "CommitSummary",
    "ReceiptExtraction",
    "StatementPeriod",
    "StatementAccountInfo",
    "StatementLine",
    "StatementExtraction",
    "ExtractionResult",
    "SuggestedTransaction",
    "StatementSummary",
    "StatementExtractedData",
    "ReceiptPreviewResponse",
    "StatementPreviewResponse",
    "PreviewView",
    "CategoryRef",
    "TransactionRecord",
    "ReceiptMetadata",
    "CommitReceiptRequest",
    "CommitOptions",
    "CommitStatementRequest",
]
