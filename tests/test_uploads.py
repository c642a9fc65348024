from __future__ import annotations

from decimal import Decimal
from functools import partial
from pathlib import Path

import pytest
from db.client import session_scope

from ledger_import.config import ImportSettings
from ledger_import.errors import (
    ExternalServiceError,
    FileTooLargeError,
    UnsupportedFileError,
    UploadRejectedError,
)
from ledger_import.models import (
    PreviewKind,
    ReceiptExtraction,
    StatementExtraction,
    StatementLine,
    TransactionType,
)
from ledger_import.preview_store import PreviewStore
from ledger_import.uploads import (
    check_upload,
    create_receipt_preview,
    create_statement_preview,
    suggest_receipt_transaction,
    summarize_statement,
)
from tests.helpers.clock import T0, FakeClock
from tests.helpers.extractor_stub import ExtractorStub

SMALL = ImportSettings(max_receipt_bytes=16, max_statement_bytes=32)


@pytest.fixture()
def db_url(tmp_path: Path) -> str:
    from tests.helpers.db import bootstrap_sqlite_db

    return bootstrap_sqlite_db(tmp_path / "uploads.db")


@pytest.fixture()
def store() -> PreviewStore:
    return PreviewStore(ttl_seconds=900, clock=FakeClock())


def _statement() -> StatementExtraction:
    return StatementExtraction.model_validate(
        {
            "accountInfo": {
                "accountNumber": "XXXX1234",
                "bank": "HDFC",
                "period": {"startDate": "2026-01-01", "endDate": "2026-01-31"},
            },
            "currency": None,
            "transactions": [
                {"date": "2026-01-03", "description": "UBER TRIP", "amount": 310.4, "type": "EXPENSE"},
                {"date": "2026-01-05", "description": "Payroll ACME", "amount": "82000", "type": "INCOME"},
                {"date": "2026-01-09", "description": "POS 1182", "merchant": "Apollo Pharmacy", "amount": 645, "type": "EXPENSE"},
                {"date": "2026-01-11", "description": "Illegible", "amount": None, "type": "EXPENSE"},
            ],
        }
    )


# ---------------------------
# File checks
# ---------------------------


def test_check_upload_normalizes_mime_type():
    assert check_upload(b"img", " IMAGE/PNG ", kind=PreviewKind.RECEIPT, settings=SMALL) == "image/png"
    assert check_upload(b"%PDF", "application/pdf", kind=PreviewKind.STATEMENT, settings=SMALL) == "application/pdf"


@pytest.mark.parametrize(
    ("data", "mime", "kind", "exc"),
    [
        (b"%PDF", "application/pdf", PreviewKind.RECEIPT, UnsupportedFileError),
        (b"GIF8", "image/gif", PreviewKind.STATEMENT, UnsupportedFileError),
        (b"", "image/jpeg", PreviewKind.RECEIPT, UploadRejectedError),
        (b"x" * 17, "image/jpeg", PreviewKind.RECEIPT, FileTooLargeError),
        (b"x" * 33, "application/pdf", PreviewKind.STATEMENT, FileTooLargeError),
    ],
)
def test_check_upload_rejections(data: bytes, mime: str, kind: PreviewKind, exc: type[Exception]):
    with pytest.raises(exc):
        check_upload(data, mime, kind=kind, settings=SMALL)


def test_rejected_upload_never_reaches_extractor(db_url: str, store: PreviewStore):
    stub = ExtractorStub(ReceiptExtraction())
    with pytest.raises(FileTooLargeError):
        create_receipt_preview(
            partial(session_scope, database_url=db_url),
            user_id="u1",
            data=b"x" * 100,
            mime_type="image/jpeg",
            extractor=stub,
            store=store,
            settings=SMALL,
        )
    assert stub.calls == []


# ---------------------------
# Suggestions
# ---------------------------


def test_receipt_suggestion_fills_description_currency_and_category():
    ext = ReceiptExtraction(merchant="Starbucks", date="2026-01-04", amount="345.5")
    s = suggest_receipt_transaction(ext, default_currency="INR")
    assert s.type is TransactionType.EXPENSE
    assert s.amount == Decimal("345.50")
    assert s.currency == "INR"
    assert s.description == "Purchase at Starbucks"
    assert s.category_name == "Food"


def test_receipt_suggestion_without_merchant():
    s = suggest_receipt_transaction(ReceiptExtraction(currency="usd"), default_currency="INR")
    assert s.description == "Purchase at Unknown"
    assert s.currency == "USD"
    assert s.category_name == "Other"


def test_statement_summary_totals_by_type():
    summary = summarize_statement(_statement().transactions)
    assert summary.total_income == Decimal("82000.00")
    assert summary.total_expenses == Decimal("955.40")
    assert summary.transaction_count == 4


def test_summary_of_no_lines_is_zero():
    summary = summarize_statement([StatementLine(type=TransactionType.INCOME)])
    assert (summary.total_income, summary.total_expenses, summary.transaction_count) == (
        Decimal("0.00"),
        Decimal("0.00"),
        1,
    )


# ---------------------------
# Preview creation
# ---------------------------


def test_receipt_preview_is_stored_with_suggestion(db_url: str, store: PreviewStore):
    stub = ExtractorStub(
        ReceiptExtraction(merchant="Reliance Retail", date="2026-01-14", amount="1299", confidence=0.92)
    )

    resp = create_receipt_preview(
        partial(session_scope, database_url=db_url),
        user_id="u1",
        data=b"\xff\xd8jpeg",
        mime_type="image/JPEG",
        extractor=stub,
        store=store,
    )

    assert stub.calls == [{"size": 6, "mime_type": "image/jpeg", "kind": PreviewKind.RECEIPT}]
    assert resp.type is PreviewKind.RECEIPT
    assert resp.created_at == T0
    assert (resp.expires_at - resp.created_at).total_seconds() == 900
    assert resp.extracted_data["currency"] == "INR"
    assert resp.suggested_transaction.amount == Decimal("1299.00")

    with session_scope(database_url=db_url) as s:
        stored = store.get(s, resp.preview_id, user_id="u1")
    assert stored.extracted_data == resp.extracted_data
    assert stored.suggested_transactions == [
        resp.suggested_transaction.model_dump(mode="json", by_alias=True)
    ]
    assert stored.suggested_transactions[0]["categoryName"] == "Shopping"


def test_statement_preview_carries_summary_and_suggestions(db_url: str, store: PreviewStore):
    resp = create_statement_preview(
        partial(session_scope, database_url=db_url),
        user_id="u1",
        data=b"%PDF-1.7",
        mime_type="application/pdf",
        extractor=ExtractorStub(_statement()),
        store=store,
    )

    data = resp.extracted_data
    assert data["currency"] == "INR"
    assert data["accountInfo"]["period"] == {"startDate": "2026-01-01", "endDate": "2026-01-31"}
    assert data["summary"] == {
        "totalIncome": "82000.00",
        "totalExpenses": "955.40",
        "transactionCount": 4,
    }
    assert [t.category_name for t in resp.suggested_transactions] == [
        "Transport",
        "Salary",
        "Healthcare",
        "Other",
    ]
    assert resp.suggested_transactions[3].amount is None


def test_extraction_failure_creates_no_preview(db_url: str, store: PreviewStore):
    stub = ExtractorStub(error=ExternalServiceError("upstream down"))

    with pytest.raises(ExternalServiceError):
        create_statement_preview(
            partial(session_scope, database_url=db_url),
            user_id="u1",
            data=b"%PDF",
            mime_type="application/pdf",
            extractor=stub,
            store=store,
        )

    with session_scope(database_url=db_url) as s:
        assert store.list_active(s, user_id="u1") == []


def test_wrong_result_kind_is_rejected(db_url: str, store: PreviewStore):
    with pytest.raises(ExternalServiceError) as ei:
        create_receipt_preview(
            partial(session_scope, database_url=db_url),
            user_id="u1",
            data=b"png",
            mime_type="image/png",
            extractor=ExtractorStub(_statement()),
            store=store,
        )
    assert ei.value.retryable is False
