"""Aggregate views over parsed transactions, plus the review-screen filters."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from datetime import date
from decimal import Decimal

from .categorization import is_internal_transfer
from .models import (
    CONFIDENCE_ORDER,
    OTHER,
    CategoryTotal,
    ImportMode,
    ObligationMatch,
    ParsedTransaction,
    TransactionSummary,
)


def summarize_transactions(transactions: Iterable[ParsedTransaction]) -> TransactionSummary:
    """Totals, per-category breakdown and date range for ``transactions``.

    ``by_category`` counts every transaction but only debits add to
    ``total``, so the figure reads as spending per category.
    """

    total_debits = Decimal("0")
    total_credits = Decimal("0")
    counts: dict[str, int] = {}
    totals: dict[str, Decimal] = {}
    dates: list[date] = []

    for tx in transactions:
        category = tx.category or OTHER
        counts[category] = counts.get(category, 0) + 1
        totals.setdefault(category, Decimal("0"))
        if tx.type == "debit":
            total_debits += tx.amount
            totals[category] += tx.amount
        else:
            total_credits += tx.amount
        dates.append(tx.date)

    return TransactionSummary(
        total_debits=total_debits,
        total_credits=total_credits,
        net_amount=total_credits - total_debits,
        by_category={c: CategoryTotal(count=counts[c], total=totals[c]) for c in counts},
        date_range=(min(dates), max(dates)) if dates else None,
    )


def select_transactions(
    transactions: Sequence[ParsedTransaction],
    mode: ImportMode = "expenses",
    *,
    include_transfers: bool = False,
) -> list[ParsedTransaction]:
    """Filter candidates the way the review screen does before selection.

    ``expenses`` keeps debits, ``income`` keeps credits, ``all`` keeps both.
    Internal transfers are hidden unless ``include_transfers`` is set.
    """

    if mode not in ("expenses", "income", "all"):
        raise ValueError(f"unknown import mode: {mode!r}")

    out: list[ParsedTransaction] = []
    for tx in transactions:
        if mode == "expenses" and tx.type != "debit":
            continue
        if mode == "income" and tx.type != "credit":
            continue
        if not include_transfers and is_internal_transfer(tx.description):
            continue
        out.append(tx)
    return out


def default_accepted(matches: Iterable[ObligationMatch]) -> list[ObligationMatch]:
    """Matches pre-selected for the user: everything above low confidence."""

    return [m for m in matches if CONFIDENCE_ORDER[m.confidence] < CONFIDENCE_ORDER["low"]]


__all__ = ["default_accepted", "select_transactions", "summarize_transactions"]
