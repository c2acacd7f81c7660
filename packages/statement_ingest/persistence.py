# ruff: noqa: I001
"""Persistence integration for statement_ingest.

Functions here read and write the shared database owned by ``libs/db``. They
rely on SQLAlchemy ORM models defined in ``db.models.finance`` and take a
caller-owned ``Session``; nothing here commits. Rows handed to the matcher
are converted to frozen snapshots (:class:`ObligationRef`,
:class:`PaymentRef`) so no ORM object leaks into the core.

Scope:
- Natural-key duplicate lookups for expenses and incomes.
- Inserts for expenses, incomes and obligation payments.
- Active obligations and existing payments for a set of months.
- Per-user category keyword settings.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from db.models.finance import Expense, Income, Obligation, Payment, UserSettings
from .models import KeywordSettings, ObligationRef, PaymentRef


def _obligation_ref(row: Obligation) -> ObligationRef:
    return ObligationRef(
        id=int(row.id),
        name=row.name or "",
        provider=row.provider or "",
        amount=Decimal(str(row.amount)),
    )


# ---- Ledger ------------------------------------------------------------------


def find_existing_expense(
    session: Session, *, user_id: str, on: date, amount: Decimal, description: str
) -> Expense | None:
    """Return an expense with the same (owner, date, amount, name), if any."""

    stmt = (
        select(Expense)
        .where(
            Expense.user_id == user_id,
            Expense.date == on,
            Expense.amount == amount,
            Expense.name == description,
        )
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def find_existing_income(
    session: Session, *, user_id: str, on: date, amount: Decimal, description: str
) -> Income | None:
    """Return an income with the same (owner, date, amount, name), if any."""

    stmt = (
        select(Income)
        .where(
            Income.user_id == user_id,
            Income.date == on,
            Income.amount == amount,
            Income.name == description,
        )
        .limit(1)
    )
    return session.execute(stmt).scalars().first()


def insert_expense(
    session: Session,
    *,
    user_id: str,
    on: date,
    amount: Decimal,
    description: str,
    category: str,
) -> Expense:
    row = Expense(user_id=user_id, name=description, amount=amount, date=on, category=category)
    session.add(row)
    session.flush()
    return row


def insert_income(
    session: Session,
    *,
    user_id: str,
    on: date,
    amount: Decimal,
    description: str,
    source: str = "OTHER",
) -> Income:
    row = Income(user_id=user_id, name=description, amount=amount, date=on, source=source)
    session.add(row)
    session.flush()
    return row


# ---- Obligations and payments ------------------------------------------------


def get_obligation(session: Session, *, user_id: str, obligation_id: int) -> ObligationRef | None:
    """Return the obligation when it exists and belongs to ``user_id``."""

    stmt = select(Obligation).where(
        Obligation.id == obligation_id, Obligation.user_id == user_id
    )
    row = session.execute(stmt).scalars().first()
    return _obligation_ref(row) if row is not None else None


def list_active_obligations(session: Session, *, user_id: str) -> list[ObligationRef]:
    stmt = (
        select(Obligation)
        .where(Obligation.user_id == user_id, Obligation.is_active.is_(True))
        .order_by(Obligation.id)
    )
    return [_obligation_ref(row) for row in session.execute(stmt).scalars()]


def list_payments_for_months(
    session: Session, *, user_id: str, months: Iterable[str]
) -> list[PaymentRef]:
    """Existing payments of ``user_id`` whose ``month`` is in ``months``."""

    wanted = sorted(set(months))
    if not wanted:
        return []
    stmt = select(Payment.obligation_id, Payment.month).where(
        Payment.user_id == user_id, Payment.month.in_(wanted)
    )
    return [
        PaymentRef(obligation_id=int(oid), month=month)
        for oid, month in session.execute(stmt).all()
    ]


def find_payment(session: Session, *, obligation_id: int, month: str) -> PaymentRef | None:
    stmt = (
        select(Payment.obligation_id, Payment.month)
        .where(Payment.obligation_id == obligation_id, Payment.month == month)
        .limit(1)
    )
    row = session.execute(stmt).first()
    return PaymentRef(obligation_id=int(row[0]), month=row[1]) if row is not None else None


def insert_payment(
    session: Session,
    *,
    user_id: str,
    obligation_id: int,
    amount: Decimal,
    paid_at: date,
    month: str,
    expected_amount: Decimal | None = None,
    adjustment_reason: str | None = None,
    notes: str | None = None,
) -> Payment:
    row = Payment(
        user_id=user_id,
        obligation_id=obligation_id,
        amount=amount,
        expected_amount=expected_amount,
        adjustment_reason=adjustment_reason,
        paid_at=paid_at,
        month=month,
        notes=notes,
    )
    session.add(row)
    session.flush()
    return row


# ---- Settings ----------------------------------------------------------------


def get_keyword_settings(session: Session, *, user_id: str) -> KeywordSettings:
    """Load the user's keyword overrides; empty settings when none are stored."""

    row = session.get(UserSettings, user_id)
    if row is None or not row.category_keywords:
        return KeywordSettings()
    return KeywordSettings.model_validate(row.category_keywords)


def save_keyword_settings(session: Session, *, user_id: str, settings: KeywordSettings) -> None:
    payload = settings.model_dump(mode="json")
    row = session.get(UserSettings, user_id)
    if row is None:
        session.add(UserSettings(user_id=user_id, category_keywords=payload))
    else:
        row.category_keywords = payload
    session.flush()


__all__ = [
    "find_existing_expense",
    "find_existing_income",
    "find_payment",
    "get_keyword_settings",
    "get_obligation",
    "insert_expense",
    "insert_income",
    "insert_payment",
    "list_active_obligations",
    "list_payments_for_months",
    "save_keyword_settings",
]
