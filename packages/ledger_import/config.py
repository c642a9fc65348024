"""Runtime settings for the import pipeline.

Settings are read from environment variables (the CLI loads a local ``.env``
first). Every value has a default so library callers can construct
``ImportSettings()`` directly in tests.

Environment variables
---------------------
``LEDGER_IMPORT_PREVIEW_TTL_SEC``      preview lifetime, seconds (900)
``LEDGER_IMPORT_MAX_RECEIPT_MB``       receipt upload cap, MiB (10)
``LEDGER_IMPORT_MAX_STATEMENT_MB``     statement upload cap, MiB (20)
``LEDGER_IMPORT_DEFAULT_CURRENCY``     currency when a draft omits one (INR)
``LEDGER_IMPORT_COMMIT_TIMEOUT_SEC``   commit deadline, seconds; 0 disables (30)
``LEDGER_IMPORT_EXTRACTION_MODEL``     Responses API model (gpt-4.1-mini)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

_MIB = 1024 * 1024


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    return raw.strip() if raw and raw.strip() else default


@dataclass(frozen=True, slots=True)
class ImportSettings:
    preview_ttl_seconds: int = 900
    max_receipt_bytes: int = 10 * _MIB
    max_statement_bytes: int = 20 * _MIB
    default_currency: str = "INR"
    commit_timeout_seconds: float | None = 30.0
    extraction_model: str = "gpt-4.1-mini"

    def __post_init__(self) -> None:
        if self.preview_ttl_seconds <= 0:
            raise ValueError("preview_ttl_seconds must be positive")
        if self.max_receipt_bytes <= 0 or self.max_statement_bytes <= 0:
            raise ValueError("upload size limits must be positive")
        if self.commit_timeout_seconds is not None and self.commit_timeout_seconds <= 0:
            raise ValueError("commit_timeout_seconds must be positive or None")

    @classmethod
    def from_env(cls) -> ImportSettings:
        timeout = _env_int("LEDGER_IMPORT_COMMIT_TIMEOUT_SEC", 30)
        return cls(
            preview_ttl_seconds=_env_int("LEDGER_IMPORT_PREVIEW_TTL_SEC", 900),
            max_receipt_bytes=_env_int("LEDGER_IMPORT_MAX_RECEIPT_MB", 10) * _MIB,
            max_statement_bytes=_env_int("LEDGER_IMPORT_MAX_STATEMENT_MB", 20) * _MIB,
            default_currency=_env_str("LEDGER_IMPORT_DEFAULT_CURRENCY", "INR").upper(),
            commit_timeout_seconds=float(timeout) if timeout > 0 else None,
            extraction_model=_env_str("LEDGER_IMPORT_EXTRACTION_MODEL", "gpt-4.1-mini"),
        )


__all__ = ["ImportSettings"]
