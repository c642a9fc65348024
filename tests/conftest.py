"""Pytest configuration for test isolation.

Makes the workspace packages importable without an install, and keeps each
test hermetic: ``LEDGER_IMPORT_*`` and ``DATABASE_URL`` values from the
developer's shell or ``.env`` are cleared, and cached engines are disposed so
one test's SQLite file never leaks into the next.
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
# `packages/` and `libs/db/src` precede the repo root so local packages resolve first.
sys.path[:0] = [
    p
    for p in [str(_ROOT / "packages"), str(_ROOT / "libs/db/src"), str(_ROOT)]
    if p not in sys.path
]

from db.client import dispose_engines  # noqa: E402

import ledger_import.logging_setup as logging_setup  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    for name in list(os.environ):
        if name.startswith("LEDGER_IMPORT_") or name == "DATABASE_URL":
            monkeypatch.delenv(name, raising=False)
    # Never reach the real service from tests.
    monkeypatch.setenv("OPENAI_API_KEY", "test-key-not-used")
    yield
    dispose_engines()


@pytest.fixture(autouse=True)
def _reset_package_logging(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    # CLI commands configure logging; give every test an unconfigured package logger.
    logger = logging.getLogger("ledger_import")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True
    monkeypatch.setattr(logging_setup, "_configured", False)
    yield
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]
