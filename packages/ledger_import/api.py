"""Public API for the ``ledger_import`` package.

Each function opens its own transactional scope via ``db.client.session_scope``
(``database_url`` falls back to ``DATABASE_URL``) and returns plain JSON-ready
structures with camelCase keys. Settings default to
``ImportSettings.from_env()``.

The building blocks (``PreviewStore``, ``CommitCoordinator``, the upload
helpers) are importable directly for callers that manage sessions themselves.
"""

from __future__ import annotations

from collections.abc import Mapping
from functools import partial
from typing import Any, TypeVar

from db.client import session_scope
from pydantic import BaseModel, ValidationError

from . import uploads
from .commit import CommitCoordinator, SessionFactory
from .config import ImportSettings
from .duplicates import DuplicateDetector
from .errors import CommitValidationError, RowIssue
from .extraction import DocumentExtractor, OpenAIDocumentExtractor
from .models import CommitReceiptRequest, CommitStatementRequest, PreviewKind, PreviewView
from .preview_store import PreviewStore


def _settings(settings: ImportSettings | None) -> ImportSettings:
    return settings if settings is not None else ImportSettings.from_env()


def _session_factory(database_url: str | None) -> SessionFactory:
    return partial(session_scope, database_url=database_url)


def _store(settings: ImportSettings) -> PreviewStore:
    return PreviewStore(ttl_seconds=settings.preview_ttl_seconds)


def _extractor(extractor: DocumentExtractor | None, settings: ImportSettings) -> DocumentExtractor:
    if extractor is not None:
        return extractor
    return OpenAIDocumentExtractor(
        model=settings.extraction_model, default_currency=settings.default_currency
    )

M = TypeVar("M", bound=BaseModel)


def _parse_request(model: type[M], payload: Mapping[str, Any]) -> M:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        issues = [
            RowIssue(None, ".".join(str(p) for p in err["loc"]) or "payload", err["msg"])
            for err in e.errors()
        ]
        raise CommitValidationError(issues) from e


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)


# ---------------------------
# Previews
# ---------------------------


def create_receipt_preview(
    user_id: str,
    data: bytes,
    mime_type: str,
    *,
    extractor: DocumentExtractor | None = None,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> dict[str, Any]:
    """Extract a receipt image and stage it as a preview."""

    s = _settings(settings)
    resp = uploads.create_receipt_preview(
        _session_factory(database_url),
        user_id=user_id,
        data=data,
        mime_type=mime_type,
        extractor=_extractor(extractor, s),
        store=_store(s),
        settings=s,
    )
    return _dump(resp)


def create_statement_preview(
    user_id: str,
    data: bytes,
    mime_type: str,
    *,
    extractor: DocumentExtractor | None = None,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> dict[str, Any]:
    """Extract a bank statement (PDF or image) and stage it as a preview."""

    s = _settings(settings)
    resp = uploads.create_statement_preview(
        _session_factory(database_url),
        user_id=user_id,
        data=data,
        mime_type=mime_type,
        extractor=_extractor(extractor, s),
        store=_store(s),
        settings=s,
    )
    return _dump(resp)


def get_preview(
    user_id: str,
    preview_id: str,
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> dict[str, Any]:
    """Read-only inspection of a live preview owned by ``user_id``."""

    store = _store(_settings(settings))
    with session_scope(database_url=database_url) as session:
        preview = store.peek(session, preview_id, user_id=user_id)
    return _dump(PreviewView.from_preview(preview))


def list_previews(
    user_id: str,
    kind: PreviewKind | str | None = None,
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> list[dict[str, Any]]:
    store = _store(_settings(settings))
    with session_scope(database_url=database_url) as session:
        previews = store.list_active(
            session, user_id=user_id, kind=PreviewKind(kind) if kind is not None else None
        )
    return [_dump(PreviewView.from_preview(p)) for p in previews]


def sweep_expired_previews(
    *, database_url: str | None = None, settings: ImportSettings | None = None
) -> int:
    """Delete expired and consumed previews; return how many were removed."""

    store = _store(_settings(settings))
    with session_scope(database_url=database_url) as session:
        return store.sweep_expired(session)


# ---------------------------
# Commits
# ---------------------------


def _coordinator(
    database_url: str | None,
    settings: ImportSettings,
    detector: DuplicateDetector | None,
) -> CommitCoordinator:
    return CommitCoordinator(
        _session_factory(database_url),
        store=_store(settings),
        detector=detector,
        settings=settings,
    )


def commit_receipt(
    user_id: str,
    payload: Mapping[str, Any],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
) -> dict[str, Any]:
    """Commit ``{previewId, transaction, metadata?}``; return the created transaction."""

    req = _parse_request(CommitReceiptRequest, payload)
    s = _settings(settings)
    record = _coordinator(database_url, s, None).commit_receipt(
        user_id=user_id,
        preview_id=req.preview_id,
        transaction=req.transaction,
        metadata=req.metadata,
    )
    return _dump(record)


def commit_statement(
    user_id: str,
    payload: Mapping[str, Any],
    *,
    database_url: str | None = None,
    settings: ImportSettings | None = None,
    detector: DuplicateDetector | None = None,
) -> dict[str, Any]:
    """Commit ``{previewId, transactions, options?}``.

    Returns ``{created, skipped, failed: [{index, reason}], total}``.
    """

    req = _parse_request(CommitStatementRequest, payload)
    s = _settings(settings)
    summary = _coordinator(database_url, s, detector).commit_statement(
        user_id=user_id,
        preview_id=req.preview_id,
        transactions=req.transactions,
        skip_duplicates=req.options.skip_duplicates,
    )
    return summary.to_dict()


__all__ = [
    "create_receipt_preview",
    "create_statement_preview",
    "get_preview",
    "list_previews",
    "sweep_expired_previews",
    "commit_receipt",
    "commit_statement",
]
