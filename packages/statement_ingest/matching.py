"""Match debit transactions against a user's recurring obligations.

Every (debit transaction, active obligation) pair is scored by an ordered
tuple of rules; the first rule that applies decides the confidence tier and
the human-readable reason. Candidate matches are then ranked by tier
(discovery order within a tier) and accepted greedily, so an obligation is
claimed at most once per calendar month and never for a month that already
has a recorded payment.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import TypeAlias

from .logging_setup import get_logger
from .models import (
    CONFIDENCE_ORDER,
    Confidence,
    ObligationMatch,
    ObligationRef,
    ParsedTransaction,
    PaymentRef,
)

_logger = get_logger("statement_ingest.matching")


@dataclass(frozen=True, slots=True)
class MatchPolicy:
    """Thresholds used by the scoring rules.

    - ``amount_tolerance``: relative difference still counted as the
      obligation's amount (``0.05`` = 5% of the nominal amount).
    - ``exact_amount_epsilon``: absolute difference for an exact amount match.
    - ``min_name_length``: an obligation name must be strictly longer than
      this to be searched for in descriptions.
    """

    amount_tolerance: Decimal = Decimal("0.05")
    exact_amount_epsilon: Decimal = Decimal("0.01")
    min_name_length: int = 3

    def amount_close(self, actual: Decimal, expected: Decimal) -> bool:
        return abs(actual - expected) <= expected * self.amount_tolerance

    def amount_exact(self, actual: Decimal, expected: Decimal) -> bool:
        return abs(actual - expected) <= self.exact_amount_epsilon


DEFAULT_POLICY = MatchPolicy()

MatchRule: TypeAlias = Callable[
    [str, ParsedTransaction, ObligationRef, MatchPolicy], tuple[Confidence, str] | None
]


def _provider_in_description(lower_desc: str, ob: ObligationRef) -> bool:
    provider = ob.provider.strip().lower()
    return bool(provider) and provider in lower_desc


def _provider_and_amount(
    lower_desc: str, tx: ParsedTransaction, ob: ObligationRef, policy: MatchPolicy
) -> tuple[Confidence, str] | None:
    if _provider_in_description(lower_desc, ob) and policy.amount_close(tx.amount, ob.amount):
        return "high", f'Provider "{ob.provider}" found in description with matching amount'
    return None


def _provider_only(
    lower_desc: str, tx: ParsedTransaction, ob: ObligationRef, policy: MatchPolicy
) -> tuple[Confidence, str] | None:
    if _provider_in_description(lower_desc, ob):
        return "medium", f'Provider "{ob.provider}" found in description'
    return None


def _obligation_name(
    lower_desc: str, tx: ParsedTransaction, ob: ObligationRef, policy: MatchPolicy
) -> tuple[Confidence, str] | None:
    name = ob.name.strip().lower()
    if len(name) <= policy.min_name_length or name not in lower_desc:
        return None
    confidence: Confidence = "high" if policy.amount_close(tx.amount, ob.amount) else "medium"
    return confidence, f'Obligation name "{ob.name}" found in description'


def _exact_amount(
    lower_desc: str, tx: ParsedTransaction, ob: ObligationRef, policy: MatchPolicy
) -> tuple[Confidence, str] | None:
    if policy.amount_exact(tx.amount, ob.amount):
        return "low", f"Exact amount match (R{ob.amount:.2f})"
    return None


# First applicable rule wins.
MATCH_RULES: tuple[MatchRule, ...] = (
    _provider_and_amount,
    _provider_only,
    _obligation_name,
    _exact_amount,
)


def score_pair(
    tx: ParsedTransaction, ob: ObligationRef, policy: MatchPolicy = DEFAULT_POLICY
) -> tuple[Confidence, str] | None:
    """Return ``(confidence, reason)`` for one pair, or ``None`` for no match."""

    lower_desc = tx.description.lower()
    for rule in MATCH_RULES:
        result = rule(lower_desc, tx, ob, policy)
        if result is not None:
            return result
    return None


def match_obligations(
    transactions: Sequence[ParsedTransaction],
    obligations: Iterable[ObligationRef],
    existing_payments: Iterable[PaymentRef] = (),
    policy: MatchPolicy = DEFAULT_POLICY,
) -> list[ObligationMatch]:
    """Propose obligation matches for the debits in ``transactions``.

    ``transaction_index`` in each match points into ``transactions`` as
    given (credits included). The result is sorted high, medium, low and
    holds at most one match per ``(obligation_id, month)``.
    """

    obligations = list(obligations)
    paid = {(p.obligation_id, p.month) for p in existing_payments}

    candidates: list[ObligationMatch] = []
    for idx, tx in enumerate(transactions):
        if tx.type != "debit":
            continue
        for ob in obligations:
            if (ob.id, tx.month) in paid:
                continue
            scored = score_pair(tx, ob, policy)
            if scored is None:
                continue
            confidence, reason = scored
            candidates.append(
                ObligationMatch(
                    transaction_index=idx,
                    transaction_date=tx.date,
                    obligation_id=ob.id,
                    obligation_name=ob.name,
                    provider=ob.provider,
                    expected_amount=ob.amount,
                    actual_amount=tx.amount,
                    confidence=confidence,
                    match_reason=reason,
                )
            )

    # sorted() is stable: discovery order is kept within a tier.
    ranked = sorted(candidates, key=lambda m: CONFIDENCE_ORDER[m.confidence])

    claimed: set[tuple[int, str]] = set()
    accepted: list[ObligationMatch] = []
    for match in ranked:
        key = (match.obligation_id, match.month)
        if key in claimed:
            continue
        claimed.add(key)
        accepted.append(match)

    _logger.info(
        "match_obligations:done transactions=%d obligations=%d candidates=%d matches=%d",
        len(transactions),
        len(obligations),
        len(candidates),
        len(accepted),
    )
    return accepted


__all__ = [
    "DEFAULT_POLICY",
    "MATCH_RULES",
    "MatchPolicy",
    "match_obligations",
    "score_pair",
]
