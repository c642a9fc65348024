"""Commit reviewed preview drafts into the ledger.

A commit is one database transaction:

1. load the preview (ownership, expiry and consumption checked);
2. validate every submitted row, failing fast with all issues listed;
3. claim the preview with ``PreviewStore.consume``;
4. process rows in order, each inside its own SAVEPOINT: category
   resolve-or-create, duplicate check, insert.

A failing row only rolls back its savepoint and is reported in the summary.
Errors raised before step 4, and a deadline hit before any row is created,
roll back the whole transaction so the preview stays committable.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Mapping, Sequence
from contextlib import AbstractContextManager
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from db.models.ledger import Transaction
from sqlalchemy.exc import DBAPIError, SQLAlchemyError
from sqlalchemy.orm import Session

from .categories import resolve_category
from .config import ImportSettings
from .duplicates import DuplicateDetector, ExistingTransaction, load_existing_for_dates
from .errors import CommitTimeoutError, PartialFailureError, PreviewNotFoundError
from .logging_setup import get_logger, short_token
from .models import (
    CandidateTransaction,
    CommitSummary,
    PreviewKind,
    ReceiptMetadata,
    RowFailure,
    TransactionRecord,
    TransactionSource,
)
from .persistence import insert_transaction, to_record
from .preview_store import PreviewStore
from .validation import validate_candidates

_logger = get_logger("ledger_import.commit")

DEADLINE_REASON = "commit deadline exceeded"

SessionFactory: TypeAlias = Callable[[], AbstractContextManager[Session]]


def _failure_reason(exc: Exception) -> str:
    if isinstance(exc, DBAPIError) and exc.orig is not None:
        return f"{type(exc).__name__}: {exc.orig}"
    return str(exc) or type(exc).__name__


@dataclass(slots=True)
class _Progress:
    rows: list[Transaction] = field(default_factory=list)
    skipped: list[int] = field(default_factory=list)
    failed: list[RowFailure] = field(default_factory=list)


class CommitCoordinator:
    """Turns a preview plus reviewed drafts into ledger transactions.

    ``session_factory`` returns a context manager yielding a ``Session`` that
    commits on clean exit and rolls back on error (``db.client.session_scope``
    bound to a URL). ``clock`` is a monotonic seconds source for the deadline.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        store: PreviewStore,
        detector: DuplicateDetector | None = None,
        settings: ImportSettings | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._session_factory = session_factory
        self._store = store
        self._detector = detector or DuplicateDetector()
        self._settings = settings or ImportSettings()
        self._clock = clock

    # ---------------------------
    # Public entry points
    # ---------------------------

    def commit_statement(
        self,
        *,
        user_id: str,
        preview_id: str,
        transactions: Sequence[Mapping[str, Any]],
        skip_duplicates: bool = True,
        timeout: float | None = None,
    ) -> CommitSummary:
        """Commit a statement's reviewed rows; per-row failures land in the summary."""

        summary, _ = self._run(
            user_id=user_id,
            preview_id=preview_id,
            kind=PreviewKind.STATEMENT,
            rows=transactions,
            skip_duplicates=skip_duplicates,
            source=TransactionSource.STATEMENT_IMPORT,
            timeout=timeout,
            want_records=False,
        )
        return summary

    def commit_receipt(
        self,
        *,
        user_id: str,
        preview_id: str,
        transaction: Mapping[str, Any],
        metadata: ReceiptMetadata | Mapping[str, Any] | None = None,
        timeout: float | None = None,
    ) -> TransactionRecord:
        """Commit the single reviewed receipt row and return the stored transaction.

        Duplicate suppression never applies to receipts. When the row cannot be
        stored the preview is still consumed and ``PartialFailureError`` is
        raised once the transaction has committed.
        """

        row: Any = transaction
        if metadata is not None and isinstance(transaction, Mapping):
            md = (
                metadata
                if isinstance(metadata, ReceiptMetadata)
                else ReceiptMetadata.model_validate(metadata)
            )
            row = dict(transaction)
            if md.merchant and not row.get("merchant"):
                row["merchant"] = md.merchant
            if md.currency and not row.get("currency"):
                row["currency"] = md.currency

        summary, records = self._run(
            user_id=user_id,
            preview_id=preview_id,
            kind=PreviewKind.RECEIPT,
            rows=[row],
            skip_duplicates=False,
            source=TransactionSource.RECEIPT,
            timeout=timeout,
            want_records=True,
        )
        if summary.failed:
            raise PartialFailureError(summary)
        return records[0]

    # ---------------------------
    # Core
    # ---------------------------

    def _limit(self, timeout: float | None) -> float | None:
        limit = timeout if timeout is not None else self._settings.commit_timeout_seconds
        if limit is not None and limit <= 0:
            raise ValueError("timeout must be positive")
        return limit

    def _run(
        self,
        *,
        user_id: str,
        preview_id: str,
        kind: PreviewKind,
        rows: Sequence[Mapping[str, Any]],
        skip_duplicates: bool,
        source: TransactionSource,
        timeout: float | None,
        want_records: bool,
    ) -> tuple[CommitSummary, list[TransactionRecord]]:
        limit = self._limit(timeout)
        started = self._clock()
        op = f"commit_{kind.value}"
        token = short_token(preview_id)

        with self._session_factory() as session:
            preview = self._store.get(session, preview_id, user_id=user_id)
            if preview.kind is not kind:
                # A token for the other document kind does not name a committable preview here.
                raise PreviewNotFoundError(preview_id)
            candidates = validate_candidates(
                rows, default_currency=self._settings.default_currency
            )
            self._store.consume(session, preview_id, user_id=user_id)
            _logger.info(
                "%s:start preview_id=%s rows=%d skip_duplicates=%s",
                op,
                token,
                len(candidates),
                skip_duplicates,
            )

            existing: list[ExistingTransaction] = (
                load_existing_for_dates(
                    session, user_id=user_id, dates=[c.occurred_on for c in candidates]
                )
                if skip_duplicates
                else []
            )
            accepted: list[ExistingTransaction] = []
            progress = _Progress()

            for index, cand in enumerate(candidates):
                if limit is not None and self._clock() - started >= limit:
                    if not progress.rows:
                        _logger.warning(
                            "%s:timeout preview_id=%s processed=%d", op, token, index
                        )
                        raise CommitTimeoutError(preview_id, limit)
                    progress.failed.extend(
                        RowFailure(i, DEADLINE_REASON) for i in range(index, len(candidates))
                    )
                    _logger.warning(
                        "%s:deadline preview_id=%s unprocessed=%d",
                        op,
                        token,
                        len(candidates) - index,
                    )
                    break

                self._commit_row(
                    session,
                    user_id=user_id,
                    preview_id=preview_id,
                    index=index,
                    cand=cand,
                    source=source,
                    dedupe_against=(existing, accepted) if skip_duplicates else None,
                    progress=progress,
                )

            summary = CommitSummary(
                created=len(progress.rows),
                skipped=len(progress.skipped),
                failed=tuple(sorted(progress.failed, key=lambda f: f.index)),
                total=len(candidates),
                transaction_ids=tuple(r.id for r in progress.rows),
                skipped_indices=tuple(progress.skipped),
            )
            records = [to_record(session, r) for r in progress.rows] if want_records else []

        _logger.info(
            "%s:done preview_id=%s created=%d skipped=%d failed=%d",
            op,
            token,
            summary.created,
            summary.skipped,
            len(summary.failed),
        )
        return summary, records

    def _commit_row(
        self,
        session: Session,
        *,
        user_id: str,
        preview_id: str,
        index: int,
        cand: CandidateTransaction,
        source: TransactionSource,
        dedupe_against: tuple[list[ExistingTransaction], list[ExistingTransaction]] | None,
        progress: _Progress,
    ) -> None:
        """Resolve the category, then skip, insert or record a failure for one row.

        ``dedupe_against`` is ``(persisted, accepted_so_far)``; ``None`` disables
        duplicate suppression. Inserted rows are appended to ``accepted_so_far``.
        """

        try:
            with session.begin_nested():
                category = resolve_category(
                    session, user_id=user_id, name=cand.category_name, type_=cand.type
                )
                if dedupe_against is not None and self._detector.is_duplicate(
                    user_id, cand, *dedupe_against
                ):
                    progress.skipped.append(index)
                    _logger.debug(
                        "commit:skip_duplicate preview_id=%s index=%d",
                        short_token(preview_id),
                        index,
                    )
                    return
                row = insert_transaction(
                    session,
                    user_id=user_id,
                    candidate=cand,
                    category_id=category.id,
                    source=source,
                    preview_id=preview_id,
                )
        except (SQLAlchemyError, ValueError) as exc:
            reason = _failure_reason(exc)
            progress.failed.append(RowFailure(index, reason))
            _logger.warning(
                "commit:row_failed preview_id=%s index=%d reason=%s",
                short_token(preview_id),
                index,
                reason,
            )
            return
        progress.rows.append(row)
        if dedupe_against is not None:
            dedupe_against[1].append(ExistingTransaction.from_candidate(user_id, cand))


__all__ = ["CommitCoordinator", "DEADLINE_REASON", "SessionFactory"]
