"""Pytest configuration for test isolation.

The workspace is not necessarily installed when tests run, so ``packages/``,
``libs/db/src`` and the repo root (for ``tests.helpers``) are put on
``sys.path`` here.

``db.client`` keeps one shared engine per process and refuses to rebind it to
a different URL. Each test that needs a database gets its own SQLite file and
the shared engine is disposed afterwards so the next test can bind again.
"""

from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
sys.path[:0] = [
    p
    for p in (str(_ROOT / "packages"), str(_ROOT / "libs" / "db" / "src"), str(_ROOT))
    if p not in sys.path
]

from db.client import dispose_engine  # noqa: E402

from tests.helpers.db import bootstrap_sqlite_db  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host configuration from leaking into tests."""

    for name in (
        "DATABASE_URL",
        "STATEMENT_INGEST_EXTRACTION_MODEL",
        "STATEMENT_INGEST_LOG_LEVEL",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def db_url(tmp_path: Path) -> Iterator[str]:
    """A fresh file-backed SQLite database with the full schema."""

    url = bootstrap_sqlite_db(tmp_path / "ingest.sqlite3")
    try:
        yield url
    finally:
        dispose_engine()
