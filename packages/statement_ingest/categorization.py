"""Keyword-based spending categorization.

The default keyword table is immutable module state. A user's
:class:`~statement_ingest.models.KeywordSettings` are layered over it on every
call; nothing is cached, so settings edited between two imports take effect
immediately and one user's overrides never leak into another request.

Matching rules
--------------
- The description is lower-cased; a keyword hits when it is a substring.
- Keywords the user explicitly added are tested first, in closed-set category
  order. Then the remaining defaults (minus the user's removals) are tested
  in the default table's order.
- First hit wins. Nothing matches -> ``OTHER``.
"""

from __future__ import annotations

from collections.abc import Mapping
from types import MappingProxyType

from .models import CATEGORIES, OTHER, KeywordSettings

# Iteration order is significant: earlier categories win on overlap.
DEFAULT_CATEGORY_KEYWORDS: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "GROCERIES": (
            "checkers", "pick n pay", "woolworths", "spar", "shoprite", "food lover",
            "makro", "game", "pnp", "clicks", "dischem", "dis-chem", "massmart",
        ),
        "TRANSPORT": (
            "uber", "bolt", "shell", "engen", "sasol", "bp ", "caltex", "petroport",
            "petrol", "fuel", "e-toll", "sanral", "aa ", "parking", "cartrack", "total ",
        ),
        "UTILITIES": (
            "eskom", "city of", "municipality", "water", "electricity", "telkom",
            "vodacom", "mtn", "cell c", "rain ", "fibre", "dstv", "multichoice", "afrihost",
        ),
        "ENTERTAINMENT": (
            "netflix", "spotify", "apple.com", "google", "youtube", "steam",
            "playstation", "xbox", "showmax", "ster-kinekor", "nu metro", "claude.ai",
        ),
        "DINING": (
            "restaurant", "cafe", "coffee", "mcdonald", "kfc", "nando", "spur",
            "steers", "debonairs", "pizza", "wimpy", "mugg", "vida", "starbucks",
            "xpresso", "baglios",
        ),
        "SHOPPING": (
            "takealot", "amazon", "shein", "zara", "h&m", "mr price", "edgars",
            "foschini", "truworths", "jet ", "ackermans", "pep ", "bash", "shoe city",
            "leroy merlin",
        ),
        "LIVING": (
            "discovery", "medscheme", "medical", "pharmacy", "doctor", "dentist",
            "hospital", "clinic", "netcare", "mediclinic", "medirite",
        ),
        "INSURANCE": (
            "insurance", "sanlam", "old mutual", "liberty", "momentum", "outsurance",
            "santam", "dialdirect", "budget insurance", "miway",
        ),
        "HOUSING": ("levies", "rent", "bond", "nedbhl", "home loan", "graceland"),
        "DEBT": ("loan", "repayment"),
    }
)

# Heuristic markers of money moving between the user's own accounts.
TRANSFER_KEYWORDS: tuple[str, ...] = (
    "transfer",
    "contra",
    "internal",
    "savings",
    "moving",
    "between accounts",
    "from savings",
    "to savings",
    "self transfer",
    "inter account",
)

_VALID_CATEGORIES = frozenset(CATEGORIES)


def effective_keywords(settings: KeywordSettings | None = None) -> dict[str, tuple[str, ...]]:
    """Return ``(defaults - removed) + added`` per category.

    Categories appear in default-table order followed by any category that
    only has user-added keywords (closed-set order). Pure function of its
    input and the immutable defaults.
    """

    added = settings.added if settings is not None else {}
    removed = settings.removed if settings is not None else {}

    out: dict[str, tuple[str, ...]] = {}
    for category, defaults in DEFAULT_CATEGORY_KEYWORDS.items():
        dropped = set(removed.get(category, ()))
        kept = [k for k in defaults if k not in dropped]
        extra = [k for k in added.get(category, ()) if k not in kept]
        out[category] = tuple(kept + extra)
    for category in CATEGORIES:
        if category not in out and added.get(category):
            out[category] = tuple(added[category])
    return out


def categorize_transaction(description: str, settings: KeywordSettings | None = None) -> str:
    """Assign exactly one category from the closed set to ``description``."""

    lower_desc = description.lower()

    if settings is not None and settings.added:
        for category in CATEGORIES:
            for keyword in settings.added.get(category, ()):
                if keyword in lower_desc:
                    return category

    for category, keywords in effective_keywords(settings).items():
        for keyword in keywords:
            if keyword.lower() in lower_desc:
                return category

    return OTHER


def sanitize_category(category: str | None) -> str:
    """Coerce anything outside the closed category set to ``OTHER``."""

    return category if category in _VALID_CATEGORIES else OTHER


def is_internal_transfer(description: str) -> bool:
    """True when ``description`` looks like a move between the user's own accounts."""

    lower_desc = description.lower()
    return any(keyword in lower_desc for keyword in TRANSFER_KEYWORDS)


__all__ = [
    "DEFAULT_CATEGORY_KEYWORDS",
    "TRANSFER_KEYWORDS",
    "categorize_transaction",
    "effective_keywords",
    "is_internal_transfer",
    "sanitize_category",
]
