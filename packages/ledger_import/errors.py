"""Exception taxonomy for the preview/commit pipeline.

Preview lookups fail with one of the ``PreviewError`` subclasses and never
leave side effects. ``CommitValidationError`` blocks a commit before anything
is written. Row-level persistence problems are reported in the commit summary
and only surface as ``PartialFailureError`` on the single-row receipt path.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import CommitSummary


class LedgerImportError(Exception):
    """Base class for all pipeline errors."""


# ---------------------------
# Preview lifecycle
# ---------------------------


class PreviewError(LedgerImportError):
    def __init__(self, preview_id: str, message: str) -> None:
        super().__init__(message)
        self.preview_id = preview_id


class PreviewNotFoundError(PreviewError):
    def __init__(self, preview_id: str) -> None:
        super().__init__(preview_id, "Preview not found")


class PreviewExpiredError(PreviewError):
    def __init__(self, preview_id: str) -> None:
        super().__init__(preview_id, "Preview has expired; upload the document again")


class PreviewConsumedError(PreviewError):
    def __init__(self, preview_id: str) -> None:
        super().__init__(preview_id, "Preview has already been committed")


# ---------------------------
# Commit
# ---------------------------


@dataclass(frozen=True, slots=True)
class RowIssue:
    """One validation defect on one submitted row (0-based ``index``).

    ``index`` is ``None`` for defects in the request envelope itself.
    """

    index: int | None
    field: str
    reason: str


class CommitValidationError(LedgerImportError):
    def __init__(self, issues: Sequence[RowIssue]) -> None:
        self.issues: tuple[RowIssue, ...] = tuple(issues)
        rows = sorted({i.index for i in self.issues if i.index is not None})
        if rows:
            message = f"{len(self.issues)} validation issue(s) in row(s) {', '.join(map(str, rows))}"
        elif self.issues:
            message = "; ".join(f"{i.field}: {i.reason}" for i in self.issues)
        else:
            message = "No transactions submitted"
        super().__init__(message)


class PartialFailureError(LedgerImportError):
    """Raised when a row of a single-row commit could not be persisted."""

    def __init__(self, summary: CommitSummary) -> None:
        self.summary = summary
        reasons = "; ".join(f.reason for f in summary.failed)
        super().__init__(f"{len(summary.failed)} of {summary.total} row(s) failed: {reasons}")


class CommitTimeoutError(LedgerImportError):
    """The commit deadline passed before any row was persisted.

    The preview is left unconsumed so the same ``preview_id`` can be retried.
    """

    def __init__(self, preview_id: str, timeout: float) -> None:
        super().__init__(f"Commit did not finish within {timeout:g}s; nothing was saved")
        self.preview_id = preview_id
        self.timeout = timeout


# ---------------------------
# Uploads / extraction
# ---------------------------


class ExternalServiceError(LedgerImportError):
    """The document extraction service failed or returned unusable output."""

    def __init__(self, message: str, *, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable


class UploadRejectedError(LedgerImportError):
    pass


class UnsupportedFileError(UploadRejectedError):
    def __init__(self, mime_type: str, allowed: Sequence[str]) -> None:
        super().__init__(f"Unsupported file type {mime_type!r}; allowed: {', '.join(allowed)}")
        self.mime_type = mime_type


class FileTooLargeError(UploadRejectedError):
    def __init__(self, size: int, limit: int) -> None:
        super().__init__(f"File is {size} bytes; the limit is {limit} bytes")
        self.size = size
        self.limit = limit


__all__ = [
    "LedgerImportError",
    "PreviewError",
    "PreviewNotFoundError",
    "PreviewExpiredError",
    "PreviewConsumedError",
    "RowIssue",
    "CommitValidationError",
    "PartialFailureError",
    "CommitTimeoutError",
    "ExternalServiceError",
    "UploadRejectedError",
    "UnsupportedFileError",
    "FileTooLargeError",
]
