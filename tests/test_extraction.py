from __future__ import annotations

import base64
from decimal import Decimal
from typing import Any

import pytest

import ledger_import.extraction as extraction
from ledger_import.errors import ExternalServiceError
from ledger_import.extraction import OpenAIDocumentExtractor
from ledger_import.models import PreviewKind, ReceiptExtraction, StatementExtraction, TransactionType
from tests.helpers.extractor_stub import OpenAIStub, StatusError, factory

RECEIPT_REPLY = {
    "merchant": "Cafe Coffee Day",
    "date": "2026-01-12",
    "amount": 240,
    "currency": None,
    "description": "2x cappuccino",
    "confidence": 0.87,
}

STATEMENT_REPLY = {
    "accountInfo": {
        "accountNumber": "XXXX9876",
        "accountHolder": "A. Kumar",
        "bank": "ICICI",
        "period": {"startDate": "2026-01-01", "endDate": "2026-01-31"},
    },
    "currency": "INR",
    "transactions": [
        {
            "date": "2026-01-02",
            "description": "NEFT salary",
            "merchant": None,
            "amount": 75000,
            "type": "INCOME",
            "balance": 80500.25,
        },
        {
            "date": "2026-01-04",
            "description": "UPI Swiggy",
            "merchant": "Swiggy",
            "amount": 389.5,
            "type": "EXPENSE",
            "balance": 80110.75,
        },
    ],
}


@pytest.fixture(autouse=True)
def _no_sleep(monkeypatch: pytest.MonkeyPatch) -> list[int]:
    slept: list[int] = []
    monkeypatch.setattr(extraction, "_sleep_backoff", slept.append)
    return slept


def _extractor(monkeypatch: pytest.MonkeyPatch, replies: list[Any]) -> tuple[OpenAIDocumentExtractor, OpenAIStub]:
    stub = OpenAIStub(replies)
    monkeypatch.setattr(extraction, "_create_client", factory(stub))
    return OpenAIDocumentExtractor(model="test-model", default_currency="INR"), stub


def test_receipt_request_shape_and_parsing(monkeypatch: pytest.MonkeyPatch):
    ext, stub = _extractor(monkeypatch, [RECEIPT_REPLY])

    result = ext.extract(b"\x89PNG", mime_type="image/png", kind=PreviewKind.RECEIPT)

    assert isinstance(result, ReceiptExtraction)
    assert result.amount == Decimal("240.00")
    assert result.merchant == "Cafe Coffee Day"

    [call] = stub.calls
    assert call["model"] == "test-model"
    assert "INR" in call["instructions"]
    assert call["text"]["format"]["type"] == "json_schema"
    assert call["text"]["format"]["strict"] is True
    image = call["input"][0]["content"][0]
    assert image["type"] == "input_image"
    assert image["image_url"] == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode()


def test_statement_pdf_is_sent_as_input_file(monkeypatch: pytest.MonkeyPatch):
    ext, stub = _extractor(monkeypatch, [STATEMENT_REPLY])

    result = ext.extract(b"%PDF-1.4", mime_type="application/pdf", kind=PreviewKind.STATEMENT)

    assert isinstance(result, StatementExtraction)
    assert result.account_info is not None and result.account_info.bank == "ICICI"
    assert [t.type for t in result.transactions] == [TransactionType.INCOME, TransactionType.EXPENSE]
    assert result.transactions[1].amount == Decimal("389.50")

    part = stub.calls[0]["input"][0]["content"][0]
    assert part["type"] == "input_file"
    assert part["file_data"].startswith("data:application/pdf;base64,")


def test_jpg_alias_is_sent_as_jpeg(monkeypatch: pytest.MonkeyPatch):
    ext, stub = _extractor(monkeypatch, [RECEIPT_REPLY])
    ext.extract(b"jpg", mime_type="image/jpg", kind=PreviewKind.RECEIPT)
    assert stub.calls[0]["input"][0]["content"][0]["image_url"].startswith("data:image/jpeg;base64,")


def test_rate_limit_and_server_errors_are_retried(monkeypatch: pytest.MonkeyPatch, _no_sleep: list[int]):
    ext, stub = _extractor(monkeypatch, [StatusError(429), StatusError(503), RECEIPT_REPLY])

    result = ext.extract(b"img", mime_type="image/jpeg", kind=PreviewKind.RECEIPT)

    assert isinstance(result, ReceiptExtraction)
    assert len(stub.calls) == 3
    assert _no_sleep == [1, 2]


def test_retries_are_bounded(monkeypatch: pytest.MonkeyPatch):
    ext, stub = _extractor(monkeypatch, [StatusError(500)] * 5)

    with pytest.raises(ExternalServiceError) as ei:
        ext.extract(b"img", mime_type="image/jpeg", kind=PreviewKind.RECEIPT)

    assert ei.value.retryable is True
    assert len(stub.calls) == 3


def test_client_errors_are_terminal(monkeypatch: pytest.MonkeyPatch, _no_sleep: list[int]):
    ext, stub = _extractor(monkeypatch, [StatusError(400), RECEIPT_REPLY])

    with pytest.raises(ExternalServiceError) as ei:
        ext.extract(b"img", mime_type="image/jpeg", kind=PreviewKind.RECEIPT)

    assert ei.value.retryable is False
    assert len(stub.calls) == 1
    assert _no_sleep == []


@pytest.mark.parametrize(
    "reply",
    [
        "not json at all",
        "[1, 2, 3]",
        {"amount": "a lot"},
        {"confidence": 3.5},
    ],
)
def test_unusable_output_is_not_retried(monkeypatch: pytest.MonkeyPatch, reply: Any):
    ext, stub = _extractor(monkeypatch, [reply, RECEIPT_REPLY])

    with pytest.raises(ExternalServiceError) as ei:
        ext.extract(b"img", mime_type="image/jpeg", kind=PreviewKind.RECEIPT)

    assert ei.value.retryable is False
    assert len(stub.calls) == 1


def test_explicit_client_is_used(monkeypatch: pytest.MonkeyPatch):
    def _boom():
        raise AssertionError("default client must not be created")

    monkeypatch.setattr(extraction, "_create_client", _boom)
    stub = OpenAIStub([RECEIPT_REPLY])
    ext = OpenAIDocumentExtractor(client=stub)  # type: ignore[arg-type]

    assert ext.extract(b"img", mime_type="image/webp", kind=PreviewKind.RECEIPT).merchant == "Cafe Coffee Day"
