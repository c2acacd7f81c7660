import pytest

from statement_ingest import (
    CATEGORIES,
    KeywordSettings,
    categorize_transaction,
    effective_keywords,
    is_internal_transfer,
    sanitize_category,
)
from statement_ingest.categorization import DEFAULT_CATEGORY_KEYWORDS


@pytest.mark.parametrize(
    ("description", "expected"),
    [
        ("CHECKERS SANDTON", "GROCERIES"),
        ("Uber Trip 123", "TRANSPORT"),
        ("VODACOM DEBIT ORDER", "UTILITIES"),
        ("SPOTIFY P1234", "ENTERTAINMENT"),
        ("NANDOS ROSEBANK", "DINING"),
        ("TAKEALOT.COM", "SHOPPING"),
        ("OLD MUTUAL PREMIUM", "INSURANCE"),
        ("MONTHLY LEVIES", "HOUSING"),
        ("XYZ123", "OTHER"),
    ],
)
def test_default_keywords(description, expected):
    assert categorize_transaction(description) == expected


def test_user_override_moves_keyword_to_another_category():
    settings = KeywordSettings(added={"SHOPPING": ["spar"]}, removed={"GROCERIES": ["spar"]})

    assert categorize_transaction("SPAR WATERFRONT") == "GROCERIES"
    assert categorize_transaction("SPAR WATERFRONT", settings) == "SHOPPING"


def test_removed_default_falls_through_to_next_hit():
    settings = KeywordSettings(removed={"GROCERIES": ["spar"]})

    # "waterfront" contains the UTILITIES keyword "water".
    assert categorize_transaction("SPAR WATERFRONT", settings) == "UTILITIES"


def test_added_keyword_for_category_without_defaults():
    settings = KeywordSettings(added={"SAVINGS": ["tfsa"]})

    assert categorize_transaction("TFSA TOP UP", settings) == "SAVINGS"
    assert "SAVINGS" in effective_keywords(settings)
    assert "SAVINGS" not in effective_keywords()


def test_effective_keywords_is_pure():
    before = dict(DEFAULT_CATEGORY_KEYWORDS)
    settings = KeywordSettings(added={"DINING": ["braai"]}, removed={"GROCERIES": ["spar"]})

    with_user = effective_keywords(settings)
    without_user = effective_keywords()

    assert "spar" not in with_user["GROCERIES"]
    assert "braai" in with_user["DINING"]
    assert "spar" in without_user["GROCERIES"]
    assert "braai" not in without_user["DINING"]
    assert dict(DEFAULT_CATEGORY_KEYWORDS) == before


def test_keyword_settings_are_normalized_on_load():
    settings = KeywordSettings.model_validate(
        {"added": {"shopping": ["SPAR", "", "spar"], "BOGUS": ["x"]}, "removed": None}
    )

    assert settings.added == {"SHOPPING": ["spar"]}
    assert settings.removed == {}


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("GROCERIES", "GROCERIES"),
        ("OTHER", "OTHER"),
        ("groceries", "OTHER"),
        ("FOOD", "OTHER"),
        (None, "OTHER"),
    ],
)
def test_sanitize_category(value, expected):
    assert sanitize_category(value) == expected


def test_categorizer_output_is_always_in_closed_set():
    for description in ("", "???", "CHECKERS", "random text 42"):
        assert categorize_transaction(description) in CATEGORIES


@pytest.mark.parametrize(
    ("description", "expected"),
    [
        ("TRANSFER TO SAVINGS", True),
        ("Inter Account Payment", True),
        ("CONTRA 0012", True),
        ("CHECKERS SANDTON", False),
    ],
)
def test_is_internal_transfer(description, expected):
    assert is_internal_transfer(description) is expected
