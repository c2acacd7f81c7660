"""Public orchestration for the ``statement_ingest`` package.

Pipeline for one upload::

    bytes -> parse_csv_statement | extract_transactions -> candidate list
          -> (user selects) -> propose_obligation_matches -> import_transactions

Functions that need the database take a caller-owned ``Session`` and never
commit it.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy.orm import Session

from . import persistence
from .errors import StatementFormatError, UnsupportedMediaTypeError
from .extraction import (
    SUPPORTED_DOCUMENT_TYPES,
    ExtractionOracle,
    OpenAIExtractionOracle,
    extract_transactions,
)
from .importer import import_transactions
from .logging_setup import get_logger
from .matching import DEFAULT_POLICY, MatchPolicy, match_obligations
from .models import (
    BankFormat,
    ImportMode,
    ImportResult,
    KeywordSettings,
    ObligationMatch,
    ParsedTransaction,
    StatementParseResult,
)
from .normalizers import parse_bank_statement
from .summary import default_accepted, select_transactions

_logger = get_logger("statement_ingest.api")

CSV_MEDIA_TYPES: frozenset[str] = frozenset(
    {"text/csv", "application/csv", "application/vnd.ms-excel"}
)


def parse_csv_statement(
    content: bytes | str,
    *,
    bank_format: BankFormat | None = None,
    keyword_settings: KeywordSettings | None = None,
) -> StatementParseResult:
    """Decode a CSV upload (UTF-8, optional BOM) and parse it."""

    if isinstance(content, bytes):
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError as exc:
            raise StatementFormatError("File is not valid UTF-8 text") from exc
    else:
        text = content
    return parse_bank_statement(text, bank_format=bank_format, keyword_settings=keyword_settings)


async def ingest_upload(
    content: bytes,
    media_type: str,
    *,
    bank_format: BankFormat | None = None,
    keyword_settings: KeywordSettings | None = None,
    oracle: ExtractionOracle | None = None,
) -> StatementParseResult:
    """Route an upload by media type and return categorized candidates.

    CSV is parsed locally. PDFs and supported images go to ``oracle``
    (an :class:`OpenAIExtractionOracle` when not given); their result has no
    bank format and no row errors. Anything else raises
    :class:`UnsupportedMediaTypeError`.
    """

    kind = media_type.split(";", 1)[0].strip().lower()
    if kind in CSV_MEDIA_TYPES:
        return parse_csv_statement(
            content, bank_format=bank_format, keyword_settings=keyword_settings
        )
    if kind in SUPPORTED_DOCUMENT_TYPES:
        transactions = await extract_transactions(
            content,
            kind,
            oracle=oracle or OpenAIExtractionOracle(),
            keyword_settings=keyword_settings,
        )
        return StatementParseResult(transactions=transactions, bank_format=None, errors=[])
    raise UnsupportedMediaTypeError(
        f"Unsupported file type: {media_type}. Upload a CSV, PDF or image."
    )


def propose_obligation_matches(
    session: Session,
    *,
    user_id: str,
    transactions: Sequence[ParsedTransaction],
    policy: MatchPolicy = DEFAULT_POLICY,
) -> list[ObligationMatch]:
    """Match ``transactions`` against the user's active obligations.

    Months that already have a payment for an obligation are excluded.
    """

    obligations = persistence.list_active_obligations(session, user_id=user_id)
    months = {tx.month for tx in transactions}
    payments = persistence.list_payments_for_months(session, user_id=user_id, months=months)
    return match_obligations(transactions, obligations, payments, policy)


def import_statement(
    session: Session,
    *,
    user_id: str,
    transactions: Sequence[ParsedTransaction],
    mode: ImportMode = "all",
    include_transfers: bool = False,
    record_matches: bool = True,
) -> ImportResult:
    """Non-interactive import: apply the review screen's default selection.

    Filters candidates as the review screen does, imports them and, when
    ``record_matches`` is set, records every match that is not low confidence
    as a payment.
    """

    selected = select_transactions(transactions, mode, include_transfers=include_transfers)
    matches: list[ObligationMatch] | None = None
    if record_matches:
        proposed = propose_obligation_matches(session, user_id=user_id, transactions=selected)
        matches = default_accepted(proposed)
    _logger.info(
        "import_statement:selected user_id=%s candidates=%d selected=%d matches=%d",
        user_id,
        len(transactions),
        len(selected),
        len(matches or ()),
    )
    return import_transactions(
        session, user_id=user_id, transactions=selected, matches=matches, mode=mode
    )


__all__ = [
    "CSV_MEDIA_TYPES",
    "import_statement",
    "ingest_upload",
    "parse_csv_statement",
    "propose_obligation_matches",
]
