"""Document extraction through the OpenAI Responses API.

``DocumentExtractor`` is the seam the upload service depends on; tests pass a
stub. ``OpenAIDocumentExtractor`` sends the document inline (images as base64
data URLs, PDFs as ``input_file``) with a strict JSON schema and validates the
reply into ``ReceiptExtraction`` / ``StatementExtraction``.

Retries cover HTTP 429 and 5xx only; unusable output is terminal.
"""

from __future__ import annotations

import base64
import json
import random
import time
from collections.abc import Mapping
from typing import Any, Protocol

from openai import OpenAI
from openai.types.responses import ResponseTextConfigParam
from pydantic import ValidationError

from . import prompting
from .errors import ExternalServiceError
from .logging_setup import get_logger
from .models import ExtractionResult, PreviewKind, ReceiptExtraction, StatementExtraction

# ---- Tunables (private) ------------------------------------------------------

_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_DEFAULT_MODEL: str = "gpt-4.1-mini"

_logger = get_logger("ledger_import.extraction")


class DocumentExtractor(Protocol):
    def extract(self, data: bytes, *, mime_type: str, kind: PreviewKind) -> ExtractionResult:
        ...


# ---- Internal helpers --------------------------------------------------------


def _create_client() -> OpenAI:
    return OpenAI()


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    if attempt_no - 1 < len(_BACKOFF_SCHEDULE_SEC):
        base = _BACKOFF_SCHEDULE_SEC[attempt_no - 1]
    else:
        base = _BACKOFF_SCHEDULE_SEC[-1]
    jitter = base * _JITTER_PCT
    delay = base + random.uniform(-jitter, jitter)
    time.sleep(max(0.0, delay))


def _response_text(resp: Any) -> str:
    """Locate the text output of a Responses SDK result.

    Prefers ``resp.output_text`` and falls back to
    ``resp.output[0].content[0].text``.
    """

    text = getattr(resp, "output_text", None)
    if isinstance(text, str) and text:
        return text
    output = getattr(resp, "output", None) or []
    content = getattr(output[0], "content", None) if output else None
    if content:
        txt = getattr(content[0], "text", None)
        if isinstance(txt, str) and txt:
            return txt
    raise ValueError("Unexpected Responses API shape; unable to locate text output")


def _decode(resp: Any) -> Mapping[str, Any]:
    try:
        decoded = json.loads(_response_text(resp))
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output was not a JSON object")
    return decoded


def _document_part(data: bytes, mime_type: str) -> dict[str, Any]:
    mime = "image/jpeg" if mime_type == "image/jpg" else mime_type
    b64 = base64.b64encode(data).decode("ascii")
    if mime == "application/pdf":
        return {
            "type": "input_file",
            "filename": "statement.pdf",
            "file_data": f"data:{mime};base64,{b64}",
        }
    return {"type": "input_image", "image_url": f"data:{mime};base64,{b64}", "detail": "high"}


class OpenAIDocumentExtractor:
    """Extract receipts and statements with a vision-capable OpenAI model."""

    def __init__(
        self,
        *,
        model: str = _DEFAULT_MODEL,
        default_currency: str = "INR",
        client: OpenAI | None = None,
    ) -> None:
        self.model = model
        self.default_currency = default_currency
        self._client = client

    def _get_client(self) -> OpenAI:
        if self._client is None:
            self._client = _create_client()
        return self._client

    def extract(self, data: bytes, *, mime_type: str, kind: PreviewKind) -> ExtractionResult:
        kind = PreviewKind(kind)
        text_cfg: ResponseTextConfigParam = {"format": prompting.build_response_format(kind)}
        instructions = prompting.build_instructions(kind, default_currency=self.default_currency)
        user_input = [
            {
                "role": "user",
                "content": [
                    _document_part(data, mime_type),
                    {"type": "input_text", "text": f"Extract the {kind.value} data."},
                ],
            }
        ]

        client = self._get_client()
        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self.model,
                    instructions=instructions,
                    input=user_input,
                    text=text_cfg,
                )
                decoded = _decode(resp)
                result: ExtractionResult = (
                    ReceiptExtraction.model_validate(decoded)
                    if kind is PreviewKind.RECEIPT
                    else StatementExtraction.model_validate(decoded)
                )
            except (ValueError, ValidationError) as e:
                # Parsing/validation failures are terminal (no retries)
                _logger.error("extract:unusable_output kind=%s error=%s", kind.value, e)
                raise ExternalServiceError(
                    f"Extraction service returned unusable output: {e}", retryable=False
                ) from e
            except Exception as e:  # noqa: BLE001 - SDK transport/status errors
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                    _logger.error(
                        "extract:failed_terminal kind=%s attempt=%d latency_ms=%.2f error=%s",
                        kind.value,
                        attempt,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    raise ExternalServiceError(
                        f"Extraction service call failed: {e}", retryable=_is_retryable(e)
                    ) from e
                _logger.warning(
                    "extract:retry kind=%s attempt=%d latency_ms=%.2f error=%s",
                    kind.value,
                    attempt,
                    dt_ms,
                    e.__class__.__name__,
                )
                _sleep_backoff(attempt)
                attempt += 1
                continue

            _logger.info(
                "extract:done kind=%s bytes=%d latency_ms=%.2f",
                kind.value,
                len(data),
                (time.perf_counter() - t0) * 1000.0,
            )
            return result


__all__ = ["DocumentExtractor", "OpenAIDocumentExtractor"]
