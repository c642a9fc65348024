"""Upload intake: file checks, extraction and preview creation.

The extraction call happens before any database work so no transaction is
held open across the network round trip. A failed extraction creates no
preview.
"""

from __future__ import annotations

from collections.abc import Sequence
from decimal import Decimal

from .categories import suggest_category_name
from .commit import SessionFactory
from .config import ImportSettings
from .errors import ExternalServiceError, FileTooLargeError, UnsupportedFileError, UploadRejectedError
from .extraction import DocumentExtractor
from .logging_setup import get_logger, short_token
from .models import (
    PreviewKind,
    ReceiptExtraction,
    ReceiptPreviewResponse,
    StatementExtractedData,
    StatementExtraction,
    StatementLine,
    StatementPreviewResponse,
    StatementSummary,
    SuggestedTransaction,
    TransactionType,
)
from .preview_store import PreviewStore

_logger = get_logger("ledger_import.uploads")

RECEIPT_MIME_TYPES: tuple[str, ...] = ("image/jpeg", "image/jpg", "image/png", "image/webp")
STATEMENT_MIME_TYPES: tuple[str, ...] = RECEIPT_MIME_TYPES + ("application/pdf",)

_ZERO = Decimal("0.00")


def check_upload(data: bytes, mime_type: str, *, kind: PreviewKind, settings: ImportSettings) -> str:
    """Reject unsupported, empty or oversize files; return the normalized mime type."""

    mime = (mime_type or "").strip().lower()
    if kind is PreviewKind.RECEIPT:
        allowed, limit = RECEIPT_MIME_TYPES, settings.max_receipt_bytes
    else:
        allowed, limit = STATEMENT_MIME_TYPES, settings.max_statement_bytes
    if mime not in allowed:
        raise UnsupportedFileError(mime_type, allowed)
    if not data:
        raise UploadRejectedError("File is empty")
    if len(data) > limit:
        raise FileTooLargeError(len(data), limit)
    return mime


# ---------------------------
# Suggestions
# ---------------------------


def suggest_receipt_transaction(
    extraction: ReceiptExtraction, *, default_currency: str
) -> SuggestedTransaction:
    description = extraction.description or f"Purchase at {extraction.merchant or 'Unknown'}"
    return SuggestedTransaction(
        type=TransactionType.EXPENSE,
        amount=extraction.amount,
        currency=(extraction.currency or default_currency).upper(),
        date=extraction.date,
        description=description,
        merchant=extraction.merchant,
        category_name=suggest_category_name(
            extraction.merchant or extraction.description, TransactionType.EXPENSE
        ),
    )


def suggest_statement_transactions(
    extraction: StatementExtraction, *, default_currency: str
) -> list[SuggestedTransaction]:
    currency = (extraction.currency or default_currency).upper()
    out: list[SuggestedTransaction] = []
    for line in extraction.transactions:
        text = " ".join(p for p in (line.merchant, line.description) if p)
        out.append(
            SuggestedTransaction(
                type=line.type,
                amount=line.amount,
                currency=currency,
                date=line.date,
                description=line.description or line.merchant or "Statement transaction",
                merchant=line.merchant,
                category_name=suggest_category_name(text, line.type),
            )
        )
    return out


def summarize_statement(lines: Sequence[StatementLine]) -> StatementSummary:
    """Totals by type; lines without an amount count toward ``transactionCount`` only."""

    income = sum(
        (ln.amount for ln in lines if ln.type is TransactionType.INCOME and ln.amount is not None),
        _ZERO,
    )
    expenses = sum(
        (ln.amount for ln in lines if ln.type is TransactionType.EXPENSE and ln.amount is not None),
        _ZERO,
    )
    return StatementSummary(
        total_income=income, total_expenses=expenses, transaction_count=len(lines)
    )


# ---------------------------
# Preview creation
# ---------------------------


def create_receipt_preview(
    session_factory: SessionFactory,
    *,
    user_id: str,
    data: bytes,
    mime_type: str,
    extractor: DocumentExtractor,
    store: PreviewStore,
    settings: ImportSettings | None = None,
) -> ReceiptPreviewResponse:
    settings = settings or ImportSettings()
    mime = check_upload(data, mime_type, kind=PreviewKind.RECEIPT, settings=settings)
    extraction = extractor.extract(data, mime_type=mime, kind=PreviewKind.RECEIPT)
    if not isinstance(extraction, ReceiptExtraction):
        raise ExternalServiceError("Extractor returned a non-receipt result", retryable=False)

    currency = (extraction.currency or settings.default_currency).upper()
    extracted = extraction.model_copy(update={"currency": currency})
    suggested = suggest_receipt_transaction(extracted, default_currency=settings.default_currency)
    extracted_json = extracted.model_dump(mode="json", by_alias=True)

    with session_factory() as session:
        preview = store.create(
            session,
            user_id=user_id,
            kind=PreviewKind.RECEIPT,
            extracted_data=extracted_json,
            suggested_transactions=[suggested.model_dump(mode="json", by_alias=True)],
        )

    _logger.info(
        "upload:receipt_preview preview_id=%s merchant=%r confidence=%s",
        short_token(preview.id),
        extraction.merchant,
        extraction.confidence,
    )
    return ReceiptPreviewResponse(
        preview_id=preview.id,
        extracted_data=extracted_json,
        suggested_transaction=suggested,
        expires_at=preview.expires_at,
        created_at=preview.created_at,
    )


def create_statement_preview(
    session_factory: SessionFactory,
    *,
    user_id: str,
    data: bytes,
    mime_type: str,
    extractor: DocumentExtractor,
    store: PreviewStore,
    settings: ImportSettings | None = None,
) -> StatementPreviewResponse:
    settings = settings or ImportSettings()
    mime = check_upload(data, mime_type, kind=PreviewKind.STATEMENT, settings=settings)
    extraction = extractor.extract(data, mime_type=mime, kind=PreviewKind.STATEMENT)
    if not isinstance(extraction, StatementExtraction):
        raise ExternalServiceError("Extractor returned a non-statement result", retryable=False)

    suggested = suggest_statement_transactions(
        extraction, default_currency=settings.default_currency
    )
    extracted = StatementExtractedData(
        account_info=extraction.account_info,
        currency=(extraction.currency or settings.default_currency).upper(),
        transactions=extraction.transactions,
        summary=summarize_statement(extraction.transactions),
    )
    extracted_json = extracted.model_dump(mode="json", by_alias=True)

    with session_factory() as session:
        preview = store.create(
            session,
            user_id=user_id,
            kind=PreviewKind.STATEMENT,
            extracted_data=extracted_json,
            suggested_transactions=[s.model_dump(mode="json", by_alias=True) for s in suggested],
        )

    _logger.info(
        "upload:statement_preview preview_id=%s transactions=%d",
        short_token(preview.id),
        len(suggested),
    )
    return StatementPreviewResponse(
        preview_id=preview.id,
        extracted_data=extracted_json,
        suggested_transactions=suggested,
        expires_at=preview.expires_at,
        created_at=preview.created_at,
    )


__all__ = [
    "RECEIPT_MIME_TYPES",
    "STATEMENT_MIME_TYPES",
    "check_upload",
    "suggest_receipt_transaction",
    "suggest_statement_transactions",
    "summarize_statement",
    "create_receipt_preview",
    "create_statement_preview",
]
