"""Logging for the ``ledger_import`` package.

Library modules call ``get_logger("ledger_import.<module>")`` and never attach
handlers. Entrypoints (the CLI, a host service) call ``configure_logging()``
once; until then the package logger carries a ``NullHandler`` and stays quiet.

Records are single ``event key=value`` lines. Preview tokens are bearer
credentials for a pending commit, so they are logged through ``short_token``.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

_PKG_LOGGER_NAME = "ledger_import"
_LEVEL_ENV = "LEDGER_IMPORT_LOG_LEVEL"
_DEFAULT_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
# HTTP client chatter from the extraction SDK; only shown at DEBUG.
_NOISY_LOGGERS = ("openai", "httpx", "httpcore")

_configured = False


def _resolve_level(level: int | str | None) -> int:
    if level is None:
        level = os.getenv(_LEVEL_ENV) or logging.INFO
    if isinstance(level, int):
        return level
    name = level.strip().upper()
    if name.isdigit():
        return int(name)
    resolved = logging.getLevelName(name)
    return resolved if isinstance(resolved, int) else logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] | None = None,
) -> None:
    """Attach one ``StreamHandler`` to the package logger; later calls are no-ops.

    ``level`` falls back to ``LEDGER_IMPORT_LOG_LEVEL`` and then ``INFO``.
    ``stream`` defaults to ``sys.stderr`` so command output on stdout stays
    machine-readable.
    """

    global _configured
    if _configured:
        return

    resolved = _resolve_level(level)
    logger = logging.getLogger(_PKG_LOGGER_NAME)
    for h in [h for h in logger.handlers if isinstance(h, logging.NullHandler)]:
        logger.removeHandler(h)

    handler = logging.StreamHandler(stream if stream is not None else sys.stderr)
    handler.setFormatter(logging.Formatter(fmt or _DEFAULT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(resolved)
    logger.propagate = False

    if resolved > logging.DEBUG:
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)

    _configured = True


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(_PKG_LOGGER_NAME)
    if not _configured and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


def short_token(token: str) -> str:
    """First 8 characters of a preview token, enough to correlate log lines."""

    return f"{token[:8]}…" if len(token) > 8 else token


__all__ = ["configure_logging", "get_logger", "short_token"]
