from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    CHAR,
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.sql import expression as sa_expr

# Closed set of spending categories accepted by ``expenses.category``.
# Kept in step with ``statement_ingest.models.CATEGORIES``.
EXPENSE_CATEGORIES: tuple[str, ...] = (
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

ADJUSTMENT_REASONS: tuple[str, ...] = ("INCREASE", "DECREASE")

# BIGINT ids on Postgres; SQLite only autoincrements an INTEGER PRIMARY KEY.
_PK = BigInteger().with_variant(Integer(), "sqlite")


def _in_list(column: str, values: tuple[str, ...]) -> str:
    quoted = ",".join(f"'{v}'" for v in values)
    return f"{column} in ({quoted})"


class Base(DeclarativeBase):
    pass


# ---------------------------
# Obligations and payments
# ---------------------------


class Obligation(Base):
    __tablename__ = "obligations"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    # May be empty; an empty provider never matches bank descriptions.
    provider: Mapped[str] = mapped_column(Text, nullable=False, server_default=text("''"))
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    due_day: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default=sa_expr.true())
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(
            "due_day IS NULL OR (due_day >= 1 AND due_day <= 31)", name="ck_obligations_due_day"
        ),
    )


class Payment(Base):
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False, index=True)
    obligation_id: Mapped[int] = mapped_column(
        _PK, ForeignKey("obligations.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # Set only when the paid amount differs from the obligation's nominal amount.
    expected_amount: Mapped[Decimal | None] = mapped_column(Numeric(18, 2), nullable=True)
    adjustment_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    paid_at: Mapped[date] = mapped_column(Date, nullable=False)
    # Calendar month the payment covers, ``YYYY-MM``.
    month: Mapped[str] = mapped_column(CHAR(7), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        UniqueConstraint("obligation_id", "month", name="uq_payments_obligation_month"),
        CheckConstraint(
            "adjustment_reason IS NULL OR " + _in_list("adjustment_reason", ADJUSTMENT_REASONS),
            name="ck_payments_adjustment_reason",
        ),
    )


# ---------------------------
# Ledger: expenses and incomes
# ---------------------------


class Expense(Base):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(
        String, nullable=False, server_default=text("'OTHER'")
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (
        CheckConstraint(_in_list("category", EXPENSE_CATEGORIES), name="ck_expenses_category"),
        # Natural key used for duplicate detection on re-import.
        Index("ix_expenses_user_date_amount", "user_id", "date", "amount"),
    )


class Income(Base):
    __tablename__ = "incomes"

    id: Mapped[int] = mapped_column(_PK, primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    date: Mapped[date] = mapped_column(Date, nullable=False)
    source: Mapped[str] = mapped_column(String, nullable=False, server_default=text("'OTHER'"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    __table_args__ = (Index("ix_incomes_user_date_amount", "user_id", "date", "amount"),)


# ---------------------------
# Per-user settings
# ---------------------------


class UserSettings(Base):
    __tablename__ = "user_settings"

    user_id: Mapped[str] = mapped_column(String, primary_key=True)
    # {"added": {CATEGORY: [keyword, ...]}, "removed": {...}}
    category_keywords: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


__all__ = [
    "ADJUSTMENT_REASONS",
    "Base",
    "EXPENSE_CATEGORIES",
    "Expense",
    "Income",
    "Obligation",
    "Payment",
    "UserSettings",
]
