"""db: shared database library (SQLAlchemy).

Public exports
--------------
- ``Base`` and ``metadata`` for schema creation (``metadata.create_all``)
- ORM models in ``db.models.finance`` (re-exported for convenience)
- Engine/session helpers in ``db.client``
"""

from __future__ import annotations

from .models.finance import Base, Expense, Income, Obligation, Payment, UserSettings

metadata = Base.metadata

__all__ = [
    "Base",
    "metadata",
    "Expense",
    "Income",
    "Obligation",
    "Payment",
    "UserSettings",
]
