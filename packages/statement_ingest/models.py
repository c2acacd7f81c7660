"""Data models and type aliases for ``statement_ingest``.

Domain records that live only in memory during an import session are frozen
``dataclass`` instances. Payloads that cross a trust boundary (extraction
oracle output, persisted keyword settings, the result summary returned to the
UI) are Pydantic models so they are validated where they enter or leave.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ---------------------------------------------------------------------------
# Closed vocabularies
# ---------------------------------------------------------------------------

TransactionType: TypeAlias = Literal["debit", "credit"]
"""Direction of a transaction. ``debit`` means money leaving the account."""

Confidence: TypeAlias = Literal["high", "medium", "low"]
"""Qualitative strength of an automated obligation match."""

BankFormat: TypeAlias = Literal["fnb", "standard_bank", "nedbank", "capitec", "absa", "generic"]
"""Identifier of a supported bank CSV layout."""

ImportMode: TypeAlias = Literal["expenses", "income", "all"]

TRANSACTION_TYPES: tuple[str, ...] = ("debit", "credit")
CONFIDENCE_ORDER: Mapping[str, int] = {"high": 0, "medium": 1, "low": 2}

# Spending categories (closed set; mirrors the ``expenses.category`` CHECK
# constraint in ``db.models.finance``).
CATEGORIES: tuple[str, ...] = (
    "HOUSING",
    "DEBT",
    "LIVING",
    "SAVINGS",
    "INSURANCE",
    "UTILITIES",
    "TRANSPORT",
    "GROCERIES",
    "DINING",
    "ENTERTAINMENT",
    "SHOPPING",
    "OTHER",
)
OTHER: str = "OTHER"


# ---------------------------------------------------------------------------
# Column mapping profiles
# ---------------------------------------------------------------------------

ColumnRef: TypeAlias = int | str
"""A cell address: 0-based column index, or a header name."""


@dataclass(frozen=True, slots=True)
class ColumnMapping:
    """Where one bank's CSV export keeps each field.

    Either ``amount`` (a signed single column) or both ``debit`` and
    ``credit`` must be set. ``date_format`` names the layout the bank uses and
    is tried first when parsing dates.
    """

    date: ColumnRef
    description: ColumnRef
    date_format: str
    amount: ColumnRef | None = None
    debit: ColumnRef | None = None
    credit: ColumnRef | None = None
    balance: ColumnRef | None = None
    reference: ColumnRef | None = None

    @property
    def has_split_amounts(self) -> bool:
        return self.debit is not None and self.credit is not None


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTransaction:
    """One transaction in canonical form, downstream of decoding.

    ``amount`` is always a non-negative magnitude; direction lives only in
    ``type``. ``category`` is one of :data:`CATEGORIES` once the categorizer
    has run (normalizers emit ``OTHER`` as a placeholder).
    """

    date: date
    description: str
    amount: Decimal
    type: TransactionType
    balance: Decimal | None = None
    reference: str | None = None
    category: str = OTHER

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError(f"ParsedTransaction.amount must be >= 0, got {self.amount}")
        if self.type not in TRANSACTION_TYPES:
            raise ValueError(f"ParsedTransaction.type must be debit/credit, got {self.type!r}")

    @property
    def month(self) -> str:
        return self.date.strftime("%Y-%m")

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "description": self.description,
            "amount": f"{self.amount:.2f}",
            "type": self.type,
            "balance": None if self.balance is None else f"{self.balance:.2f}",
            "reference": self.reference,
            "category": self.category,
        }


@dataclass(frozen=True, slots=True)
class StatementParseResult:
    """Outcome of parsing one uploaded statement.

    ``bank_format`` is ``None`` for documents routed through the extraction
    oracle. ``errors`` holds row-level messages (``"Row <n>: <message>"``).
    """

    transactions: list[ParsedTransaction]
    bank_format: BankFormat | None
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class CategoryTotal:
    count: int
    total: Decimal


@dataclass(frozen=True, slots=True)
class TransactionSummary:
    """Derived aggregate over a set of transactions; never stored."""

    total_debits: Decimal
    total_credits: Decimal
    net_amount: Decimal
    by_category: dict[str, CategoryTotal]
    date_range: tuple[date, date] | None


# ---------------------------------------------------------------------------
# Obligations and matches
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ObligationRef:
    """Snapshot of an active recurring obligation, detached from the ORM."""

    id: int
    name: str
    provider: str
    amount: Decimal


@dataclass(frozen=True, slots=True)
class PaymentRef:
    """An existing payment: ``obligation_id`` was paid for ``month`` (YYYY-MM)."""

    obligation_id: int
    month: str


@dataclass(frozen=True, slots=True)
class ObligationMatch:
    """A proposed link between one debit transaction and one obligation."""

    transaction_index: int
    transaction_date: date
    obligation_id: int
    obligation_name: str
    provider: str
    expected_amount: Decimal
    actual_amount: Decimal
    confidence: Confidence
    match_reason: str

    @property
    def month(self) -> str:
        return self.transaction_date.strftime("%Y-%m")

    def to_dict(self) -> dict[str, Any]:
        return {
            "transactionIndex": self.transaction_index,
            "date": self.transaction_date.isoformat(),
            "obligationId": self.obligation_id,
            "obligationName": self.obligation_name,
            "provider": self.provider,
            "expectedAmount": f"{self.expected_amount:.2f}",
            "actualAmount": f"{self.actual_amount:.2f}",
            "confidence": self.confidence,
            "matchReason": self.match_reason,
        }


# ---------------------------------------------------------------------------
# Boundary DTOs (validated)
# ---------------------------------------------------------------------------


def _clean_keyword_map(value: Mapping[str, Iterable[str]] | None) -> dict[str, list[str]]:
    if not value:
        return {}
    out: dict[str, list[str]] = {}
    for raw_cat, keywords in value.items():
        cat = str(raw_cat).strip().upper()
        if cat not in CATEGORIES:
            continue
        # Keep inner spaces: defaults such as "bp " rely on them.
        cleaned = [k.lower() for k in keywords if isinstance(k, str) and k.strip()]
        if cleaned:
            out[cat] = list(dict.fromkeys(cleaned))
    return out


class KeywordSettings(BaseModel):
    """Per-user overrides layered over the default keyword table.

    Stored as JSON by the settings store. Unknown categories and blank
    keywords are dropped on load; keywords are lower-cased.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    added: dict[str, list[str]] = Field(default_factory=dict)
    removed: dict[str, list[str]] = Field(default_factory=dict)

    @field_validator("added", "removed", mode="before")
    @classmethod
    def _normalize(cls, v: Any) -> dict[str, list[str]]:
        if v is None:
            return {}
        if not isinstance(v, Mapping):
            raise ValueError("keyword overrides must be a mapping of category -> keywords")
        return _clean_keyword_map(v)


class ExtractedTransaction(BaseModel):
    """One candidate returned by the extraction oracle.

    Only candidates with a date, a description and a numeric amount survive.
    ``type`` falls back to ``debit`` for anything other than ``"credit"``.
    """

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    date: str
    description: str
    amount: Decimal
    type: Literal["debit", "credit"] = "debit"

    @field_validator("date", "description")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("must be non-empty")
        return v

    @field_validator("amount", mode="before")
    @classmethod
    def _numeric_amount(cls, v: Any) -> Any:
        # Strings such as "12.50" are rejected: the model was asked for numbers.
        if isinstance(v, bool) or not isinstance(v, int | float):
            raise ValueError("amount must be a JSON number")
        return abs(Decimal(str(v)))

    @field_validator("type", mode="before")
    @classmethod
    def _coerce_type(cls, v: Any) -> str:
        return "credit" if isinstance(v, str) and v.strip().lower() == "credit" else "debit"


class ImportResult(BaseModel):
    """Aggregate outcome of an import; the stable shape returned to the UI."""

    model_config = ConfigDict(populate_by_name=True)

    imported: int = 0
    skipped: int = 0
    total: int = 0
    errors: list[str] = Field(default_factory=list)
    obligations_marked: int | None = Field(default=None, alias="obligationsMarked")

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


__all__ = [
    "BankFormat",
    "CATEGORIES",
    "CONFIDENCE_ORDER",
    "CategoryTotal",
    "ColumnMapping",
    "ColumnRef",
    "Confidence",
    "ExtractedTransaction",
    "ImportMode",
    "ImportResult",
    "KeywordSettings",
    "OTHER",
    "ObligationMatch",
    "ObligationRef",
    "ParsedTransaction",
    "PaymentRef",
    "StatementParseResult",
    "TRANSACTION_TYPES",
    "TransactionSummary",
    "TransactionType",
]
