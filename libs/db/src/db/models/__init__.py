"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger models used by ``ledger_import``.
"""

from .ledger import Base, Category, Transaction, UploadPreview

__all__ = [
    "Base",
    "Category",
    "Transaction",
    "UploadPreview",
]
