# ruff: noqa: E501
from datetime import date
from decimal import Decimal

import pytest
from db.client import session_scope
from db.models.finance import EXPENSE_CATEGORIES, Expense, Income, Payment
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from statement_ingest import (
    CATEGORIES,
    KeywordSettings,
    ObligationMatch,
    ParsedTransaction,
    import_statement,
    import_transactions,
    parse_csv_statement,
    persistence,
    propose_obligation_matches,
    record_matched_payments,
)
from statement_ingest.importer import AUTO_MATCH_NOTE, sanitize_error
from tests.helpers.db import seed_keyword_settings, seed_obligations, seed_payment

USER = "user-1"


def _tx(description: str, amount: str, kind: str = "debit", on=date(2024, 1, 15), category="OTHER"):
    return ParsedTransaction(
        date=on, description=description, amount=Decimal(amount), type=kind, category=category
    )


def _match(obligation_id: int, actual: str, on=date(2024, 1, 25), name="Cellphone contract"):
    return ObligationMatch(
        transaction_index=0,
        transaction_date=on,
        obligation_id=obligation_id,
        obligation_name=name,
        provider="Vodacom",
        expected_amount=Decimal("1000.00"),
        actual_amount=Decimal(actual),
        confidence="high",
        match_reason="test",
    )


def _count(database_url: str, model) -> int:
    with session_scope(database_url=database_url) as session:
        return session.execute(select(func.count()).select_from(model)).scalar_one()


def test_category_sets_agree():
    assert EXPENSE_CATEGORIES == CATEGORIES


# ---- Transactions ------------------------------------------------------------


def test_reimport_is_idempotent(db_url):
    txs = [
        _tx("CHECKERS", "100.00", category="GROCERIES"),
        _tx("NETFLIX", "199.00", category="ENTERTAINMENT"),
        _tx("SALARY", "25000.00", kind="credit"),
    ]

    with session_scope(database_url=db_url) as session:
        first = import_transactions(session, user_id=USER, transactions=txs)
    with session_scope(database_url=db_url) as session:
        second = import_transactions(session, user_id=USER, transactions=txs)

    assert (first.imported, first.skipped, first.total, first.errors) == (3, 0, 3, [])
    assert (second.imported, second.skipped, second.total, second.errors) == (0, 3, 3, [])
    assert _count(db_url, Expense) == 2
    assert _count(db_url, Income) == 1


def test_duplicates_are_scoped_to_the_user(db_url):
    txs = [_tx("CHECKERS", "100.00")]

    with session_scope(database_url=db_url) as session:
        import_transactions(session, user_id=USER, transactions=txs)
        other = import_transactions(session, user_id="user-2", transactions=txs)

    assert other.imported == 1


def test_mode_restricts_direction_but_total_counts_everything(db_url):
    txs = [_tx("CHECKERS", "100.00"), _tx("SALARY", "500.00", kind="credit")]

    with session_scope(database_url=db_url) as session:
        result = import_transactions(session, user_id=USER, transactions=txs, mode="expenses")

    assert (result.imported, result.skipped, result.total) == (1, 0, 2)
    assert _count(db_url, Income) == 0


def test_unknown_mode_is_rejected(db_url):
    with session_scope(database_url=db_url) as session:
        with pytest.raises(ValueError):
            import_transactions(session, user_id=USER, transactions=[], mode="debits")


def test_unknown_category_is_stored_as_other(db_url):
    with session_scope(database_url=db_url) as session:
        result = import_transactions(
            session, user_id=USER, transactions=[_tx("TAKEALOT", "10.00", category="FOOD")]
        )

    assert result.errors == []
    with session_scope(database_url=db_url) as session:
        stored = session.execute(select(Expense.category)).scalar_one()
    assert stored == "OTHER"


def test_expense_category_is_enforced_by_the_database(db_url):
    with pytest.raises(IntegrityError):
        with session_scope(database_url=db_url) as session:
            persistence.insert_expense(
                session,
                user_id=USER,
                on=date(2024, 1, 1),
                amount=Decimal("1.00"),
                description="X",
                category="FOOD",
            )


def test_failed_row_is_isolated(db_url, monkeypatch):
    real_insert = persistence.insert_expense

    def _insert(session, **kwargs):
        if kwargs["description"] == "BAD":
            raise RuntimeError("boom")
        return real_insert(session, **kwargs)

    monkeypatch.setattr(persistence, "insert_expense", _insert)
    txs = [_tx("GOOD 1", "1.00"), _tx("BAD", "2.00"), _tx("GOOD 2", "3.00")]

    with session_scope(database_url=db_url) as session:
        result = import_transactions(session, user_id=USER, transactions=txs)

    assert (result.imported, result.skipped, result.total) == (2, 0, 3)
    assert result.errors == ["BAD: boom"]
    assert _count(db_url, Expense) == 2


def test_row_errors_are_capped(db_url, monkeypatch):
    def _insert(session, **kwargs):
        raise RuntimeError("x" * 80)

    monkeypatch.setattr(persistence, "insert_expense", _insert)
    txs = [_tx(f"ROW {i}", f"{i}.00") for i in range(1, 13)]

    with session_scope(database_url=db_url) as session:
        result = import_transactions(session, user_id=USER, transactions=txs)

    assert result.imported == 0
    assert len(result.errors) == 10
    assert result.errors[0] == "ROW 1: " + "x" * 50


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("CHECK constraint failed: ck_expenses_category", "SHOP: Invalid category"),
        ('invalid value for argument "category"', "SHOP: Invalid category"),
        ("UNIQUE constraint failed: payments.obligation_id", "SHOP: Already exists"),
        ('duplicate key value violates "uq_x"', "SHOP: Already exists"),
        ("connection reset", "SHOP: connection reset"),
    ],
)
def test_sanitize_error_rewrites_known_failures(raw, expected):
    assert sanitize_error("SHOP", raw) == expected


# ---- Obligation payments -----------------------------------------------------


def _payments(database_url: str) -> list[Payment]:
    with session_scope(database_url=database_url) as session:
        return list(session.execute(select(Payment).order_by(Payment.id)).scalars())


def test_adjusted_payment_records_expected_amount(db_url):
    (ob_id,) = seed_obligations(
        database_url=db_url,
        user_id=USER,
        rows=[{"name": "Cellphone contract", "provider": "Vodacom", "amount": "1000.00"}],
    )

    with session_scope(database_url=db_url) as session:
        result = record_matched_payments(session, user_id=USER, matches=[_match(ob_id, "950.00")])

    assert (result.recorded, result.errors) == (1, [])
    (payment,) = _payments(db_url)
    assert payment.amount == Decimal("950.00")
    assert payment.expected_amount == Decimal("1000.00")
    assert payment.adjustment_reason == "DECREASE"
    assert payment.month == "2024-01"
    assert payment.paid_at == date(2024, 1, 25)
    assert payment.notes == AUTO_MATCH_NOTE


def test_payment_at_nominal_amount_has_no_adjustment(db_url):
    (ob_id,) = seed_obligations(
        database_url=db_url, user_id=USER, rows=[{"name": "Gym", "amount": "500.00"}]
    )

    with session_scope(database_url=db_url) as session:
        record_matched_payments(session, user_id=USER, matches=[_match(ob_id, "500.00")])
        record_matched_payments(
            session, user_id=USER, matches=[_match(ob_id, "550.00", on=date(2024, 2, 3))]
        )

    nominal, raised = _payments(db_url)
    assert (nominal.expected_amount, nominal.adjustment_reason) == (None, None)
    assert (raised.expected_amount, raised.adjustment_reason) == (Decimal("500.00"), "INCREASE")


def test_one_payment_per_obligation_month(db_url):
    (ob_id,) = seed_obligations(
        database_url=db_url, user_id=USER, rows=[{"name": "Gym", "amount": "500.00"}]
    )
    seed_payment(database_url=db_url, user_id=USER, obligation_id=ob_id, month="2024-02")
    matches = [
        _match(ob_id, "500.00", on=date(2024, 1, 3)),
        _match(ob_id, "500.00", on=date(2024, 1, 28)),
        _match(ob_id, "500.00", on=date(2024, 2, 3)),
    ]

    with session_scope(database_url=db_url) as session:
        result = record_matched_payments(session, user_id=USER, matches=matches)

    assert (result.recorded, result.errors) == (1, [])
    assert [p.month for p in _payments(db_url)] == ["2024-02", "2024-01"]


def test_foreign_or_missing_obligation_is_refused(db_url):
    (theirs,) = seed_obligations(
        database_url=db_url, user_id="user-2", rows=[{"name": "Gym", "amount": "500.00"}]
    )

    with session_scope(database_url=db_url) as session:
        result = record_matched_payments(
            session, user_id=USER, matches=[_match(theirs, "500.00"), _match(999, "1.00")]
        )

    assert result.recorded == 0
    assert result.errors == [f"Obligation not found: {theirs}", "Obligation not found: 999"]
    assert _payments(db_url) == []


def test_import_with_matches_reports_obligations_marked(db_url):
    (ob_id,) = seed_obligations(
        database_url=db_url, user_id=USER, rows=[{"name": "Gym", "amount": "500.00"}]
    )

    with session_scope(database_url=db_url) as session:
        with_matches = import_transactions(
            session,
            user_id=USER,
            transactions=[_tx("GYM", "500.00")],
            matches=[_match(ob_id, "500.00")],
        )
        without = import_transactions(session, user_id=USER, transactions=[_tx("X", "1.00")])

    assert with_matches.to_payload() == {
        "imported": 1,
        "skipped": 0,
        "total": 1,
        "errors": [],
        "obligationsMarked": 1,
    }
    assert "obligationsMarked" not in without.to_payload()


# ---- Database-backed orchestration -------------------------------------------


def test_proposed_matches_skip_paid_months_and_inactive_obligations(db_url):
    active, _inactive = seed_obligations(
        database_url=db_url,
        user_id=USER,
        rows=[
            {"name": "Cellphone contract", "provider": "Vodacom", "amount": "1000.00"},
            {"name": "Old contract", "provider": "Vodacom", "amount": "1000.00", "is_active": False},
        ],
    )
    seed_payment(database_url=db_url, user_id=USER, obligation_id=active, month="2024-01")
    txs = [
        _tx("VODACOM", "1000.00", on=date(2024, 1, 25)),
        _tx("VODACOM", "1000.00", on=date(2024, 2, 25)),
    ]

    with session_scope(database_url=db_url) as session:
        matches = propose_obligation_matches(session, user_id=USER, transactions=txs)

    assert [(m.obligation_id, m.month, m.transaction_index) for m in matches] == [
        (active, "2024-02", 1)
    ]


def test_import_statement_end_to_end(db_url):
    seed_obligations(
        database_url=db_url,
        user_id=USER,
        rows=[
            {"name": "Cellphone contract", "provider": "Vodacom", "amount": "1000.00"},
            {"name": "Rent", "provider": "Landlord Co", "amount": "8500.00"},
        ],
    )
    parsed = parse_csv_statement(
        b"Date,Description,Amount\n"
        b"2024-03-01,VODACOM DEBIT ORDER,-1000.00\n"
        b"2024-03-02,EFT 8812,-8500.00\n"
        b"2024-03-03,TRANSFER TO SAVINGS,-2000.00\n"
        b"2024-03-04,SALARY,30000.00\n"
    )

    with session_scope(database_url=db_url) as session:
        result = import_statement(
            session, user_id=USER, transactions=parsed.transactions, mode="expenses"
        )

    # The transfer and the credit are filtered out; the low-confidence rent match is not recorded.
    assert result.to_payload() == {
        "imported": 2,
        "skipped": 0,
        "total": 2,
        "errors": [],
        "obligationsMarked": 1,
    }
    assert [p.month for p in _payments(db_url)] == ["2024-03"]


# ---- Keyword settings --------------------------------------------------------


def test_keyword_settings_round_trip(db_url):
    settings = KeywordSettings(added={"SHOPPING": ["Spar"]}, removed={"GROCERIES": ["spar"]})

    with session_scope(database_url=db_url) as session:
        assert persistence.get_keyword_settings(session, user_id=USER) == KeywordSettings()
        persistence.save_keyword_settings(session, user_id=USER, settings=settings)
    with session_scope(database_url=db_url) as session:
        loaded = persistence.get_keyword_settings(session, user_id=USER)

    assert loaded.added == {"SHOPPING": ["spar"]}
    assert loaded.removed == {"GROCERIES": ["spar"]}


def test_stored_keyword_settings_are_cleaned_on_load(db_url):
    seed_keyword_settings(
        database_url=db_url,
        user_id=USER,
        payload={"added": {"food": ["pizza"], "dining": ["Pizza", " "]}, "legacy": True},
    )

    with session_scope(database_url=db_url) as session:
        loaded = persistence.get_keyword_settings(session, user_id=USER)

    assert loaded.added == {"DINING": ["pizza"]}
    assert loaded.removed == {}
