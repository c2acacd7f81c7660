"""Shared SQLAlchemy models registry for the workspace database.

Currently includes the ledger, obligation and settings models used by
``statement_ingest``.
"""

from .finance import (
    ADJUSTMENT_REASONS,
    EXPENSE_CATEGORIES,
    Base,
    Expense,
    Income,
    Obligation,
    Payment,
    UserSettings,
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
