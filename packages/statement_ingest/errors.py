"""Exception types raised by ``statement_ingest``.

Only failures that abort a whole import step are exceptions. Row-level parse
problems and per-row persistence failures are collected as messages instead.
"""

from __future__ import annotations


class StatementIngestError(Exception):
    """Base class for import-step failures."""


class StatementFormatError(StatementIngestError, ValueError):
    """The upload cannot be read as a statement (empty, no data rows, bad encoding)."""


class UnsupportedMediaTypeError(StatementIngestError, ValueError):
    """The upload is neither CSV nor a PDF/image the extraction oracle accepts."""


class ExtractionError(StatementIngestError, RuntimeError):
    """The extraction oracle call itself failed (transport, auth, quota)."""


__all__ = [
    "ExtractionError",
    "StatementFormatError",
    "StatementIngestError",
    "UnsupportedMediaTypeError",
]
