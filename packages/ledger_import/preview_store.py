"""Ephemeral, single-use storage for extraction previews.

Previews live in the ``upload_previews`` table owned by ``libs/db``. Every
method takes the caller's ``Session`` and never commits; the caller owns the
transaction scope (usually ``db.client.session_scope``).

Lifecycle
---------
- ``create`` writes one row with a fresh 256-bit URL-safe token and
  ``expires_at = now + ttl``. ``extracted_data`` is never updated afterwards.
- ``get`` is read-only and checks ownership, consumption and expiry on every
  call (expiry is enforced lazily; ``sweep_expired`` only reclaims storage).
- ``consume`` is a conditional UPDATE. Only one transaction can flip
  ``consumed_at`` from NULL; a concurrent second caller blocks on the row lock
  and then observes ``PreviewConsumedError``. Because the flag is written in
  the commit's own transaction, a rolled-back commit leaves the preview usable.
"""

from __future__ import annotations

import copy
import secrets
from collections.abc import Callable, Mapping, Sequence
from datetime import UTC, datetime, timedelta
from typing import Any

from db.models.ledger import UploadPreview
from sqlalchemy import delete, or_, select, update
from sqlalchemy.orm import Session

from .errors import PreviewConsumedError, PreviewExpiredError, PreviewNotFoundError
from .logging_setup import get_logger, short_token
from .models import Preview, PreviewKind

_logger = get_logger("ledger_import.preview_store")

_TOKEN_BYTES = 32


def utc_now() -> datetime:
    return datetime.now(UTC)


def _as_utc(dt: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    return dt.replace(tzinfo=UTC) if dt.tzinfo is None else dt.astimezone(UTC)


def _to_preview(row: UploadPreview) -> Preview:
    return Preview(
        id=row.id,
        user_id=row.user_id,
        kind=PreviewKind(row.kind),
        extracted_data=copy.deepcopy(row.extracted_data),
        suggested_transactions=copy.deepcopy(row.suggested_transactions),
        created_at=_as_utc(row.created_at),
        expires_at=_as_utc(row.expires_at),
        consumed_at=_as_utc(row.consumed_at) if row.consumed_at is not None else None,
    )


class PreviewStore:
    """Token-keyed preview records with a fixed TTL.

    Parameters
    ----------
    ttl_seconds:
        Lifetime of a preview from creation.
    clock:
        Returns the current time (timezone-aware UTC). Injected by tests.
    token_factory:
        Produces new preview ids. Defaults to ``secrets.token_urlsafe(32)``.
    """

    def __init__(
        self,
        *,
        ttl_seconds: int = 900,
        clock: Callable[[], datetime] = utc_now,
        token_factory: Callable[[], str] | None = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock
        self._token_factory = token_factory or (lambda: secrets.token_urlsafe(_TOKEN_BYTES))

    def now(self) -> datetime:
        return _as_utc(self._clock())

    def create(
        self,
        session: Session,
        *,
        user_id: str,
        kind: PreviewKind,
        extracted_data: Mapping[str, Any],
        suggested_transactions: Sequence[Mapping[str, Any]],
    ) -> Preview:
        now = self.now()
        row = UploadPreview(
            id=self._token_factory(),
            user_id=user_id,
            kind=PreviewKind(kind).value,
            extracted_data=copy.deepcopy(dict(extracted_data)),
            suggested_transactions=[copy.deepcopy(dict(s)) for s in suggested_transactions],
            created_at=now,
            expires_at=now + self._ttl,
            consumed_at=None,
        )
        session.add(row)
        session.flush()
        _logger.info(
            "preview:create preview_id=%s kind=%s suggestions=%d",
            short_token(row.id),
            row.kind,
            len(row.suggested_transactions),
        )
        return _to_preview(row)

    def _check(self, preview: Preview | None, preview_id: str, user_id: str | None) -> Preview:
        # Another user's preview is reported as unknown so tokens can't be enumerated.
        if preview is None or (user_id is not None and preview.user_id != user_id):
            raise PreviewNotFoundError(preview_id)
        if preview.consumed:
            raise PreviewConsumedError(preview_id)
        if preview.is_expired(self.now()):
            raise PreviewExpiredError(preview_id)
        return preview

    def get(self, session: Session, preview_id: str, *, user_id: str | None = None) -> Preview:
        """Return the preview if it exists, belongs to ``user_id`` and is usable."""

        row = session.get(UploadPreview, preview_id, populate_existing=True)
        return self._check(_to_preview(row) if row is not None else None, preview_id, user_id)

    def peek(self, session: Session, preview_id: str, *, user_id: str | None = None) -> Preview:
        """Inspect a preview without claiming it (same checks as ``get``)."""

        return self.get(session, preview_id, user_id=user_id)

    def consume(self, session: Session, preview_id: str, *, user_id: str | None = None) -> None:
        """Mark the preview consumed; fails if it is not currently commit-eligible."""

        now = self.now()
        stmt = (
            update(UploadPreview)
            .where(
                UploadPreview.id == preview_id,
                UploadPreview.consumed_at.is_(None),
                UploadPreview.expires_at > now,
            )
            .values(consumed_at=now)
            .execution_options(synchronize_session=False)
        )
        if user_id is not None:
            stmt = stmt.where(UploadPreview.user_id == user_id)
        result = session.execute(stmt)
        if result.rowcount == 1:
            _logger.info("preview:consume preview_id=%s", short_token(preview_id))
            return
        # Nothing updated: re-read to report the precise reason.
        self.get(session, preview_id, user_id=user_id)
        raise PreviewConsumedError(preview_id)

    def list_active(
        self,
        session: Session,
        *,
        user_id: str,
        kind: PreviewKind | None = None,
    ) -> list[Preview]:
        """Unexpired, unconsumed previews of ``user_id``, newest first."""

        stmt = (
            select(UploadPreview)
            .where(
                UploadPreview.user_id == user_id,
                UploadPreview.consumed_at.is_(None),
                UploadPreview.expires_at > self.now(),
            )
            .order_by(UploadPreview.created_at.desc())
        )
        if kind is not None:
            stmt = stmt.where(UploadPreview.kind == PreviewKind(kind).value)
        return [_to_preview(r) for r in session.execute(stmt).scalars().all()]

    def sweep_expired(self, session: Session) -> int:
        """Delete expired or consumed previews; return the number removed."""

        result = session.execute(
            delete(UploadPreview)
            .where(
                or_(
                    UploadPreview.expires_at <= self.now(),
                    UploadPreview.consumed_at.is_not(None),
                )
            )
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        _logger.info("preview:sweep deleted=%d", count)
        return count


__all__ = ["PreviewStore", "utc_now"]
