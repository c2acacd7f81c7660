"""CSV statement decoding and normalization into :class:`ParsedTransaction`.

Pipeline for one CSV upload::

    decode_rows -> detect_bank_format -> normalize_row (per row) -> categorize

Parsing follows RFC 4180 via the stdlib :mod:`csv` module (``,`` delimiter,
``"`` quoting, delimiters inside quoted fields preserved). Rows are processed
as a fold: a row that fails to normalize adds ``"Row <n>: <message>"`` to the
error list and the loop moves on. ``<n>`` is the 1-based line number counting
the header, so the first data row is row 2.
"""

from __future__ import annotations

import csv
import re
from collections.abc import Sequence
from dataclasses import replace
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from io import StringIO

from .categorization import categorize_transaction
from .errors import StatementFormatError
from .formats import BANK_MAPPINGS, detect_bank_format
from .logging_setup import get_logger
from .models import (
    BankFormat,
    ColumnMapping,
    ColumnRef,
    KeywordSettings,
    ParsedTransaction,
    StatementParseResult,
)

_logger = get_logger("statement_ingest.normalizers")

EMPTY_STATEMENT_MESSAGE = "File is empty or has no data rows"

# ---------------------------------------------------------------------------
# Tabular decoding
# ---------------------------------------------------------------------------


def decode_rows(text: str) -> list[list[str]]:
    """Split delimited text into rows of trimmed cells.

    CRLF and LF line endings are both accepted and blank lines are dropped.
    Row width is not validated here. Never raises: a ``csv.Error`` part way
    through is logged and the rows decoded up to that point are returned.
    """

    rows: list[list[str]] = []
    with StringIO(text.lstrip("\ufeff"), newline="") as f:
        reader = csv.reader(f, delimiter=",", quotechar='"')
        try:
            for raw in reader:
                cells = [cell.strip() for cell in raw]
                if not any(cells):
                    continue
                rows.append(cells)
        except csv.Error as exc:
            _logger.warning(
                "decode_rows:csv_error line=%d rows_kept=%d error=%s",
                reader.line_num,
                len(rows),
                exc,
            )
    return rows


# ---------------------------------------------------------------------------
# Amounts
# ---------------------------------------------------------------------------

_CURRENCY_SYMBOLS = ("R", "$", "€", "£")
# Statement suffix markers; the value is whether the amount is negative.
_SIGN_SUFFIXES = {"CR": False, "DR": True}
_WHITESPACE_RE = re.compile(r"\s+")


def parse_amount(raw: str | None) -> Decimal:
    """Parse a bank amount cell into a signed :class:`Decimal`.

    - Blank or missing cells are ``0`` (split debit/credit layouts leave one
      side empty).
    - Currency symbols, whitespace and thousands separators are removed.
    - A leading ``-`` or surrounding parentheses make the value negative; the
      markers may appear in any order (``-R1,234.56``, ``R(1 234.56)``).
    - A trailing ``-`` or ``Dr`` marks a debit, a trailing ``Cr`` a credit
      (``100.00-``, ``1,234.56 Dr``, ``123.45Cr``).
    - Anything else that is not a number raises ``ValueError``.
    """

    if raw is None:
        return Decimal("0")
    s = _WHITESPACE_RE.sub("", raw)
    if not s:
        return Decimal("0")

    negative = False
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:]
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:]
            changed = True
        for symbol in _CURRENCY_SYMBOLS:
            if s.startswith(symbol):
                s = s[len(symbol) :]
                changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1]
            changed = True
        suffix = s[-2:].upper()
        if suffix in _SIGN_SUFFIXES and len(s) > 2:
            negative = negative or _SIGN_SUFFIXES[suffix]
            s = s[:-2]
            changed = True
        elif s.endswith("-") and len(s) > 1:
            negative = True
            s = s[:-1]
            changed = True
        if not changed:
            break

    s = s.replace(",", "")
    if not s:
        return Decimal("0")
    try:
        d = Decimal(s)
        if not d.is_finite():
            raise InvalidOperation
        d = d.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    return -abs(d) if negative else d


def _parse_balance(raw: str | None) -> Decimal | None:
    if raw is None or not raw.strip():
        return None
    try:
        return parse_amount(raw)
    except ValueError:
        # Informational column only; a bad balance must not drop the row.
        _logger.debug("normalize_row:balance_unparsed raw=%r", raw)
        return None


# ---------------------------------------------------------------------------
# Dates
# ---------------------------------------------------------------------------

_MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4, "may": 5, "jun": 6,
    "jul": 7, "aug": 8, "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

_ISO_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
_DMY_SLASH_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_YMD_SLASH_RE = re.compile(r"^(\d{4})/(\d{2})/(\d{2})$")
_DAY_MONTH_NAME_RE = re.compile(r"^(\d{2})\s+([A-Za-z]{3})\s+(\d{4})$")


def _iso(s: str) -> date | None:
    m = _ISO_RE.match(s)
    return date(int(m[1]), int(m[2]), int(m[3])) if m else None


def _dmy_slash(s: str) -> date | None:
    m = _DMY_SLASH_RE.match(s)
    return date(int(m[3]), int(m[2]), int(m[1])) if m else None


def _ymd_slash(s: str) -> date | None:
    m = _YMD_SLASH_RE.match(s)
    return date(int(m[1]), int(m[2]), int(m[3])) if m else None


def _day_month_name(s: str) -> date | None:
    m = _DAY_MONTH_NAME_RE.match(s)
    if not m:
        return None
    month = _MONTHS.get(m[2].lower())
    if month is None:
        return None
    return date(int(m[3]), month, int(m[1]))


# Strict patterns in priority order, keyed by the label used in ColumnMapping.
_DATE_PARSERS = {
    "yyyy-MM-dd": _iso,
    "dd/MM/yyyy": _dmy_slash,
    "yyyy/MM/dd": _ymd_slash,
    "dd MMM yyyy": _day_month_name,
}

_FALLBACK_FORMATS = ("%d/%m/%Y", "%d-%m-%Y", "%d.%m.%Y", "%d %B %Y", "%d %b %Y", "%Y%m%d")


def _generic_date(s: str) -> date:
    try:
        return datetime.fromisoformat(s).date()
    except ValueError:
        pass
    for fmt in _FALLBACK_FORMATS:
        try:
            return datetime.strptime(s, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"invalid date: {s!r}")


def parse_date(raw: str, preferred: str | None = None) -> date:
    """Parse a statement date.

    ``preferred`` (a :attr:`ColumnMapping.date_format` label) is tried first,
    then the strict patterns in priority order, then a generic parse. Raises
    ``ValueError`` when nothing fits, including impossible calendar dates
    such as ``31/02/2024``.
    """

    s = raw.strip()
    order = list(_DATE_PARSERS)
    if preferred in _DATE_PARSERS:
        order.remove(preferred)
        order.insert(0, preferred)
    for label in order:
        try:
            parsed = _DATE_PARSERS[label](s)
        except ValueError as exc:
            raise ValueError(f"invalid date: {s!r}") from exc
        if parsed is not None:
            return parsed
    return _generic_date(s)


# ---------------------------------------------------------------------------
# Row normalization
# ---------------------------------------------------------------------------


def _column_index(ref: ColumnRef | None, headers: Sequence[str]) -> int | None:
    if ref is None:
        return None
    if isinstance(ref, int):
        return ref
    wanted = ref.strip().lower()
    for i, header in enumerate(headers):
        if header.strip().lower() == wanted:
            return i
    return None


def _cell(row: Sequence[str], ref: ColumnRef | None, headers: Sequence[str]) -> str | None:
    idx = _column_index(ref, headers)
    if idx is None or idx < 0 or idx >= len(row):
        return None
    return row[idx]


def normalize_row(
    row: Sequence[str], headers: Sequence[str], mapping: ColumnMapping
) -> ParsedTransaction | None:
    """Map one data row to a transaction, or ``None`` for non-transaction lines.

    Returns ``None`` (no error) for rows without a date or description, and
    for split debit/credit rows where both sides are zero. Raises
    ``ValueError`` for an unparseable date or amount.
    """

    date_str = _cell(row, mapping.date, headers)
    description = _cell(row, mapping.description, headers)
    if not date_str or not description:
        return None

    if mapping.has_split_amounts:
        debit = parse_amount(_cell(row, mapping.debit, headers))
        credit = parse_amount(_cell(row, mapping.credit, headers))
        if debit != 0:
            amount, tx_type = abs(debit), "debit"
        elif credit != 0:
            amount, tx_type = abs(credit), "credit"
        else:
            return None
    elif mapping.amount is not None:
        raw_amount = parse_amount(_cell(row, mapping.amount, headers))
        amount = abs(raw_amount)
        tx_type = "debit" if raw_amount < 0 else "credit"
    else:
        raise ValueError("could not determine amount")

    reference = _cell(row, mapping.reference, headers) if mapping.reference is not None else None

    return ParsedTransaction(
        date=parse_date(date_str, mapping.date_format),
        description=description.strip(),
        amount=amount,
        type=tx_type,
        balance=_parse_balance(_cell(row, mapping.balance, headers)),
        reference=reference or None,
    )


def parse_bank_statement(
    csv_text: str,
    bank_format: BankFormat | None = None,
    keyword_settings: KeywordSettings | None = None,
) -> StatementParseResult:
    """Parse a CSV bank statement into categorized transactions.

    Raises :class:`StatementFormatError` when the text holds fewer than two
    non-blank rows (a header plus at least one data row). Per-row failures are
    reported in ``StatementParseResult.errors`` and never abort the parse.
    """

    rows = decode_rows(csv_text)
    if len(rows) < 2:
        raise StatementFormatError(EMPTY_STATEMENT_MESSAGE)

    headers, data_rows = rows[0], rows[1:]
    detected: BankFormat = bank_format or detect_bank_format(headers, data_rows[0])
    mapping = BANK_MAPPINGS[detected]

    transactions: list[ParsedTransaction] = []
    errors: list[str] = []
    skipped = 0
    for i, row in enumerate(data_rows):
        try:
            tx = normalize_row(row, headers, mapping)
        except ValueError as exc:
            errors.append(f"Row {i + 2}: {exc}")
            continue
        if tx is None:
            skipped += 1
            continue
        category = categorize_transaction(tx.description, keyword_settings)
        transactions.append(replace(tx, category=category))

    _logger.info(
        "parse_bank_statement:done bank_format=%s rows=%d transactions=%d skipped=%d errors=%d",
        detected,
        len(data_rows),
        len(transactions),
        skipped,
        len(errors),
    )
    return StatementParseResult(transactions=transactions, bank_format=detected, errors=errors)


__all__ = [
    "EMPTY_STATEMENT_MESSAGE",
    "decode_rows",
    "normalize_row",
    "parse_amount",
    "parse_bank_statement",
    "parse_date",
]
