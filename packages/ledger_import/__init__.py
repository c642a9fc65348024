"""Public interface for the ``ledger_import`` package.

This module exposes the package's API functions, building blocks and error
types as the stable import surface. There is no runtime logic here, only
symbol re-exports.
"""

from .api import (
    commit_receipt,
    commit_statement,
    create_receipt_preview,
    create_statement_preview,
    get_preview,
    list_previews,
    sweep_expired_previews,
)
from .commit import CommitCoordinator
from .config import ImportSettings
from .duplicates import DateAmountTextPolicy, DuplicateDetector, DuplicatePolicy
from .errors import (
    CommitTimeoutError,
    CommitValidationError,
    ExternalServiceError,
    FileTooLargeError,
    LedgerImportError,
    PartialFailureError,
    PreviewConsumedError,
    PreviewError,
    PreviewExpiredError,
    PreviewNotFoundError,
    RowIssue,
    UnsupportedFileError,
    UploadRejectedError,
)
from .extraction import DocumentExtractor, OpenAIDocumentExtractor
from .models import (
    CandidateTransaction,
    CommitSummary,
    Preview,
    PreviewKind,
    RowFailure,
    TransactionRecord,
    TransactionSource,
    TransactionType,
)
from .preview_store import PreviewStore

__all__ = [
    # API
    "create_receipt_preview",
    "create_statement_preview",
    "get_preview",
    "list_previews",
    "sweep_expired_previews",
    "commit_receipt",
    "commit_statement",
    # Building blocks
    "CommitCoordinator",
    "PreviewStore",
    "DuplicateDetector",
    "DuplicatePolicy",
    "DateAmountTextPolicy",
    "DocumentExtractor",
    "OpenAIDocumentExtractor",
    "ImportSettings",
    # Models
    "CandidateTransaction",
    "CommitSummary",
    "Preview",
    "PreviewKind",
    "RowFailure",
    "TransactionRecord",
    "TransactionSource",
    "TransactionType",
    # Errors
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
