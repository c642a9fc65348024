"""Instructions and response formats for document extraction.

This module builds:
- The system instructions for receipt and statement extraction.
- The strict ``text.format`` (JSON Schema) objects for the OpenAI Responses
  API. Strict mode requires every property to be listed in ``required``;
  optional values are expressed as nullable types instead.
"""

from __future__ import annotations

from typing import Any

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .models import PreviewKind


def build_receipt_instructions(default_currency: str = "INR") -> str:
    return (
        "You are a financial assistant. Extract transaction details from this receipt.\n\n"
        "Instructions:\n"
        "1. Identify the merchant/business name.\n"
        "2. Find the transaction date and format it as YYYY-MM-DD.\n"
        "3. Extract the TOTAL amount paid, not individual line items.\n"
        f"4. Determine the currency as a 3-letter code (use {default_currency} if unclear).\n"
        "5. Write a brief description, mentioning the main items if visible.\n"
        "6. Give a confidence score between 0 and 1 based on legibility.\n\n"
        "If a field is unclear, set it to null. Output JSON only, per the schema."
    )


def build_statement_instructions(default_currency: str = "INR") -> str:
    return (
        "You are a financial assistant. Extract ALL transactions from this bank statement.\n\n"
        "Instructions:\n"
        "1. Identify account information if visible (account number, holder name, bank, "
        "statement period).\n"
        "2. Extract EVERY transaction row with:\n"
        "   - date (YYYY-MM-DD)\n"
        "   - description, as written in the statement\n"
        "   - merchant, when the description names one\n"
        "   - amount, always a positive number\n"
        "   - type: INCOME for credits/deposits, EXPENSE for debits/withdrawals\n"
        "   - balance, if shown\n"
        "3. Ignore summary rows, headers and footers.\n"
        "4. Keep chronological order.\n"
        f"5. Report the statement currency as a 3-letter code (use {default_currency} if "
        "unclear).\n\n"
        "Be thorough. Output JSON only, per the schema."
    )


def build_instructions(kind: PreviewKind, *, default_currency: str = "INR") -> str:
    if PreviewKind(kind) is PreviewKind.RECEIPT:
        return build_receipt_instructions(default_currency)
    return build_statement_instructions(default_currency)


def _nullable(type_name: str) -> dict[str, Any]:
    return {"type": [type_name, "null"]}


def _receipt_schema() -> dict[str, Any]:
    return {
        "type": "object",
        "properties": {
            "merchant": _nullable("string"),
            "date": _nullable("string"),
            "amount": _nullable("number"),
            "currency": _nullable("string"),
            "description": _nullable("string"),
            "confidence": {"type": ["number", "null"], "minimum": 0, "maximum": 1},
        },
        "required": ["merchant", "date", "amount", "currency", "description", "confidence"],
        "additionalProperties": False,
    }


def _statement_schema() -> dict[str, Any]:
    period = {
        "type": ["object", "null"],
        "properties": {
            "startDate": _nullable("string"),
            "endDate": _nullable("string"),
        },
        "required": ["startDate", "endDate"],
        "additionalProperties": False,
    }
    account_info = {
        "type": ["object", "null"],
        "properties": {
            "accountNumber": _nullable("string"),
            "accountHolder": _nullable("string"),
            "bank": _nullable("string"),
            "period": period,
        },
        "required": ["accountNumber", "accountHolder", "bank", "period"],
        "additionalProperties": False,
    }
    line = {
        "type": "object",
        "properties": {
            "date": _nullable("string"),
            "description": _nullable("string"),
            "merchant": _nullable("string"),
            "amount": _nullable("number"),
            "type": {"type": "string", "enum": ["INCOME", "EXPENSE"]},
            "balance": _nullable("number"),
        },
        "required": ["date", "description", "merchant", "amount", "type", "balance"],
        "additionalProperties": False,
    }
    return {
        "type": "object",
        "properties": {
            "accountInfo": account_info,
            "currency": _nullable("string"),
            "transactions": {"type": "array", "items": line},
        },
        "required": ["accountInfo", "currency", "transactions"],
        "additionalProperties": False,
    }


def build_response_format(kind: PreviewKind) -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema format object for ``kind``."""

    if PreviewKind(kind) is PreviewKind.RECEIPT:
        name, schema = "receipt_extraction", _receipt_schema()
    else:
        name, schema = "statement_extraction", _statement_schema()
    result: ResponseFormatTextJSONSchemaConfigParam = {
        "type": "json_schema",
        "name": name,
        "schema": schema,
        "strict": True,
    }
    return result


__all__ = [
    "build_receipt_instructions",
    "build_statement_instructions",
    "build_instructions",
    "build_response_format",
]
