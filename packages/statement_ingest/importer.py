"""Persist user-confirmed transactions and obligation matches.

Each row is written inside its own SAVEPOINT (``Session.begin_nested()``): a
row that violates a constraint is rolled back on its own, summarized into a
short message and the loop moves on. The outer transaction belongs to the
caller, which commits whatever succeeded. Partial success is the normal
outcome when some rows fail.

Re-importing the same statement is a no-op: a row whose (owner, date, amount,
description) already exists is counted as skipped, not as an error.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.orm import Session

from . import persistence
from .categorization import sanitize_category
from .logging_setup import get_logger
from .models import ImportMode, ImportResult, ObligationMatch, ParsedTransaction

_logger = get_logger("statement_ingest.importer")

MAX_IMPORT_ERRORS = 10
MAX_PAYMENT_ERRORS = 5
ERROR_TEXT_LIMIT = 50
AUTO_MATCH_NOTE = "Auto-matched from bank statement import"
_CENT = Decimal("0.01")

# (needles, friendly text); first hit wins, case-insensitive.
_ERROR_REWRITES: tuple[tuple[tuple[str, ...], str], ...] = (
    (
        ("invalid value for argument", "invalid category", "ck_expenses_category"),
        "Invalid category",
    ),
    (("duplicate", "unique constraint"), "Already exists"),
)


def _error_text(exc: BaseException) -> str:
    # SQLAlchemy wraps the driver error; its own str() carries SQL and params.
    orig = getattr(exc, "orig", None)
    return str(orig if orig is not None else exc)


def sanitize_error(description: str, exc: BaseException | str) -> str:
    """Short user-facing message for a failed row: ``"<description>: <text>"``."""

    message = exc if isinstance(exc, str) else _error_text(exc)
    lowered = message.lower()
    for needles, friendly in _ERROR_REWRITES:
        if any(n in lowered for n in needles):
            return f"{description}: {friendly}"
    return f"{description}: {message[:ERROR_TEXT_LIMIT]}"


@dataclass(slots=True)
class _Tally:
    imported: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class PaymentRecordResult:
    recorded: int
    errors: list[str]


# ---- Transactions ------------------------------------------------------------


def _wanted(tx: ParsedTransaction, mode: ImportMode) -> bool:
    if mode == "expenses":
        return tx.type == "debit"
    if mode == "income":
        return tx.type == "credit"
    return True


def _import_one(session: Session, *, user_id: str, tx: ParsedTransaction) -> bool:
    """Insert one row; ``False`` when it already exists."""

    if tx.type == "debit":
        existing = persistence.find_existing_expense(
            session, user_id=user_id, on=tx.date, amount=tx.amount, description=tx.description
        )
        if existing is not None:
            return False
        persistence.insert_expense(
            session,
            user_id=user_id,
            on=tx.date,
            amount=tx.amount,
            description=tx.description,
            category=sanitize_category(tx.category),
        )
        return True

    existing_income = persistence.find_existing_income(
        session, user_id=user_id, on=tx.date, amount=tx.amount, description=tx.description
    )
    if existing_income is not None:
        return False
    persistence.insert_income(
        session, user_id=user_id, on=tx.date, amount=tx.amount, description=tx.description
    )
    return True


def import_transactions(
    session: Session,
    *,
    user_id: str,
    transactions: Sequence[ParsedTransaction],
    matches: Sequence[ObligationMatch] | None = None,
    mode: ImportMode = "all",
) -> ImportResult:
    """Persist ``transactions`` as expenses (debits) and incomes (credits).

    ``mode`` restricts the direction imported; ``total`` always counts every
    transaction handed in. When ``matches`` is given, accepted matches are
    recorded as payments afterwards and ``obligations_marked`` is set.
    Never raises for row-level failures; the caller commits the session.
    """

    if mode not in ("expenses", "income", "all"):
        raise ValueError(f"unknown import mode: {mode!r}")

    tally = _Tally()
    for tx in transactions:
        if not _wanted(tx, mode):
            continue
        try:
            with session.begin_nested():
                inserted = _import_one(session, user_id=user_id, tx=tx)
        except Exception as exc:  # noqa: BLE001 - per-row isolation
            _logger.warning(
                "import_transactions:row_failed user_id=%s date=%s error=%s",
                user_id,
                tx.date.isoformat(),
                _error_text(exc),
            )
            tally.errors.append(sanitize_error(tx.description, exc))
            continue
        if inserted:
            tally.imported += 1
        else:
            tally.skipped += 1

    obligations_marked: int | None = None
    if matches is not None:
        payments = record_matched_payments(session, user_id=user_id, matches=matches)
        obligations_marked = payments.recorded
        tally.errors.extend(payments.errors)

    _logger.info(
        "import_transactions:done user_id=%s mode=%s total=%d imported=%d skipped=%d errors=%d",
        user_id,
        mode,
        len(transactions),
        tally.imported,
        tally.skipped,
        len(tally.errors),
    )
    return ImportResult(
        imported=tally.imported,
        skipped=tally.skipped,
        total=len(transactions),
        errors=tally.errors[:MAX_IMPORT_ERRORS],
        obligations_marked=obligations_marked,
    )


# ---- Obligation payments -----------------------------------------------------


def _record_one(session: Session, *, user_id: str, match: ObligationMatch) -> bool | str:
    """Insert one payment. ``False`` when the month is already paid; a message on refusal."""

    obligation = persistence.get_obligation(
        session, user_id=user_id, obligation_id=match.obligation_id
    )
    if obligation is None:
        return f"Obligation not found: {match.obligation_id}"
    if persistence.find_payment(session, obligation_id=obligation.id, month=match.month):
        return False

    expected = obligation.amount
    actual = match.actual_amount
    differs = abs(actual - expected) > _CENT
    persistence.insert_payment(
        session,
        user_id=user_id,
        obligation_id=obligation.id,
        amount=actual,
        paid_at=match.transaction_date,
        month=match.month,
        expected_amount=expected if differs else None,
        adjustment_reason=("DECREASE" if actual < expected else "INCREASE") if differs else None,
        notes=AUTO_MATCH_NOTE,
    )
    return True


def record_matched_payments(
    session: Session, *, user_id: str, matches: Sequence[ObligationMatch]
) -> PaymentRecordResult:
    """Record accepted matches as payments, at most one per (obligation, month).

    A month that is already paid (including by an earlier match in the same
    call) is skipped silently. Errors are bounded to the first few messages.
    """

    recorded = 0
    errors: list[str] = []
    for match in matches:
        try:
            with session.begin_nested():
                outcome = _record_one(session, user_id=user_id, match=match)
        except Exception as exc:  # noqa: BLE001 - per-row isolation
            _logger.warning(
                "record_matched_payments:row_failed obligation_id=%s month=%s error=%s",
                match.obligation_id,
                match.month,
                _error_text(exc),
            )
            errors.append(sanitize_error(match.obligation_name, exc))
            continue
        if isinstance(outcome, str):
            errors.append(outcome)
        elif outcome:
            recorded += 1

    _logger.info(
        "record_matched_payments:done user_id=%s matches=%d recorded=%d errors=%d",
        user_id,
        len(matches),
        recorded,
        len(errors),
    )
    return PaymentRecordResult(recorded=recorded, errors=errors[:MAX_PAYMENT_ERRORS])


__all__ = [
    "AUTO_MATCH_NOTE",
    "MAX_IMPORT_ERRORS",
    "MAX_PAYMENT_ERRORS",
    "PaymentRecordResult",
    "import_transactions",
    "record_matched_payments",
    "sanitize_error",
]
