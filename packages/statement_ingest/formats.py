"""Bank CSV layouts and format detection.

Banks are told apart by the shape of the first date cell rather than by
header text: headers drift between account types and export versions, date
formatting does not. Detection is an ordered tuple of ``(predicate, format)``
rules; the first predicate that holds wins and ``generic`` is the fallback.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Mapping, Sequence
from types import MappingProxyType
from typing import TypeAlias

from .models import BankFormat, ColumnMapping

BANK_MAPPINGS: Mapping[BankFormat, ColumnMapping] = MappingProxyType(
    {
        "fnb": ColumnMapping(
            date=0, description=2, debit=3, credit=4, balance=5, date_format="dd/MM/yyyy"
        ),
        "standard_bank": ColumnMapping(
            date=0, description=1, debit=2, credit=3, balance=4, date_format="yyyy/MM/dd"
        ),
        "nedbank": ColumnMapping(
            date=0, description=1, amount=2, balance=3, date_format="dd MMM yyyy"
        ),
        "capitec": ColumnMapping(
            date=0, description=1, amount=2, balance=3, date_format="yyyy-MM-dd"
        ),
        "absa": ColumnMapping(
            date=0,
            description=2,
            amount=3,
            balance=4,
            reference=1,
            date_format="dd/MM/yyyy",
        ),
        # Three meaningful columns: date, description, signed amount.
        "generic": ColumnMapping(
            date=0, description=1, amount=2, balance=3, date_format="yyyy-MM-dd"
        ),
    }
)

BANK_NAMES: Mapping[BankFormat, str] = MappingProxyType(
    {
        "fnb": "FNB",
        "standard_bank": "Standard Bank",
        "nedbank": "Nedbank",
        "capitec": "Capitec",
        "absa": "ABSA",
        "generic": "Generic CSV",
    }
)

_YMD_SLASH_RE = re.compile(r"^\d{4}/\d{2}/\d{2}$")
_YMD_DASH_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_DAY_MONTH_NAME_RE = re.compile(r"^\d{2}\s+[A-Za-z]{3}\s+\d{4}$")

DetectionRule: TypeAlias = Callable[[Sequence[str], Sequence[str]], bool]


def _first_cell(row: Sequence[str]) -> str:
    return row[0].strip() if row else ""


def _looks_like_fnb(headers: Sequence[str], first_row: Sequence[str]) -> bool:
    header_str = ",".join(headers).lower()
    header_hint = "fnb" in header_str or (
        "date" in header_str and "amount" in header_str and len(headers) >= 5
    )
    if not header_hint:
        return False
    cell = _first_cell(first_row)
    return "/" in cell and len(cell.split("/")[0]) == 2


def _ymd_slash(_headers: Sequence[str], first_row: Sequence[str]) -> bool:
    return bool(_YMD_SLASH_RE.match(_first_cell(first_row)))


def _ymd_dash(_headers: Sequence[str], first_row: Sequence[str]) -> bool:
    return bool(_YMD_DASH_RE.match(_first_cell(first_row)))


def _day_month_name(_headers: Sequence[str], first_row: Sequence[str]) -> bool:
    return bool(_DAY_MONTH_NAME_RE.match(_first_cell(first_row)))


def _has_reference_column(headers: Sequence[str], _first_row: Sequence[str]) -> bool:
    return len(headers) >= 5 and "reference" in ",".join(headers).lower()


DETECTION_RULES: tuple[tuple[DetectionRule, BankFormat], ...] = (
    (_looks_like_fnb, "fnb"),
    (_ymd_slash, "standard_bank"),
    (_ymd_dash, "capitec"),
    (_day_month_name, "nedbank"),
    (_has_reference_column, "absa"),
)


def detect_bank_format(headers: Sequence[str], first_row: Sequence[str]) -> BankFormat:
    """Pick a bank layout from the header row and the first data row. Never fails."""

    for predicate, bank_format in DETECTION_RULES:
        if predicate(headers, first_row):
            return bank_format
    return "generic"


def resolve_bank_format(name: str) -> BankFormat:
    """Validate a caller-forced format name (e.g. from the CLI)."""

    key = name.strip().lower().replace(" ", "_").replace("-", "_")
    if key not in BANK_MAPPINGS:
        raise ValueError(
            f"unknown bank format: {name!r}. Known: {', '.join(sorted(BANK_MAPPINGS))}"
        )
    return key  # type: ignore[return-value]


__all__ = [
    "BANK_MAPPINGS",
    "BANK_NAMES",
    "DETECTION_RULES",
    "detect_bank_format",
    "resolve_bank_format",
]
