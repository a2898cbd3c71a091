import logging
from decimal import Decimal

import pytest

from statement_ledger.brands import DEFAULT_CATALOG, BrandCatalog, infer_category_from_brands, term_to_regex
from statement_ledger.cashback import (
    extract_cashback,
    is_cash_back_line,
    parse_cash_back_amount,
    tag_cash_back_line,
)
from statement_ledger.categories import canonicalize_category_name, is_income_category
from statement_ledger.config import DEFAULT_DEBOUNCE_SECONDS, config_from_env
from statement_ledger.models import Transaction


def _tx(id, description, amount, category):
    return Transaction(id=id, date="03/10", description=description, amount=Decimal(amount), category=category)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


def test_config_from_env_defaults():
    cfg = config_from_env()
    assert cfg.fallback_category == "Uncategorized"
    assert cfg.spenders == {}
    assert cfg.namespace == "real"
    assert cfg.drift_threshold == Decimal("0.40")


def test_config_from_env_reads_ledger_vars(monkeypatch, caplog):
    caplog.set_level(logging.WARNING, logger="statement_ledger")
    monkeypatch.setenv("LEDGER_SPENDERS", "5280=Mike, bad ,0161=Beth")
    monkeypatch.setenv("LEDGER_DEBOUNCE_SECONDS", "soon")
    monkeypatch.setenv("LEDGER_FALLBACK_CATEGORY", "Impulse/Misc")
    monkeypatch.setenv("LEDGER_NAMESPACE", "DEMO")

    cfg = config_from_env()
    assert cfg.spenders == {"5280": "Mike", "0161": "Beth"}
    assert cfg.spender_tokens == {"mike": "Mike", "beth": "Beth"}
    assert cfg.debounce_seconds == DEFAULT_DEBOUNCE_SECONDS
    assert cfg.fallback_category == "Impulse/Misc"
    assert cfg.namespace == "demo"
    assert "LEDGER_SPENDERS" in caplog.text
    assert "LEDGER_DEBOUNCE_SECONDS" in caplog.text


def test_unknown_namespace_falls_back_to_real(monkeypatch):
    monkeypatch.setenv("LEDGER_NAMESPACE", "staging")
    assert config_from_env().namespace == "real"


# ---------------------------------------------------------------------------
# Category names
# ---------------------------------------------------------------------------


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("fast food", "Fast Food"),
        ("grocery", "Groceries"),
        (" Home / Utilities ", "Utilities"),
        ("transfer: savings", "Transfers"),
        ("Transfer to brokerage", "Transfers"),
        ("Amazon Prime", "Amazon"),
        ("", "Uncategorized"),
        ("Pets", "Uncategorized"),
    ],
)
def test_canonicalize_category_name(raw, expected):
    assert canonicalize_category_name(raw) == expected


def test_custom_categories_pass_through():
    assert canonicalize_category_name("pets", extra=["Pets"]) == "Pets"


def test_is_income_category():
    assert is_income_category("Income")
    assert is_income_category("Refunds")
    assert not is_income_category("Groceries")


# ---------------------------------------------------------------------------
# Brand catalog
# ---------------------------------------------------------------------------


def test_terms_tolerate_hyphens_and_respect_word_boundaries():
    assert term_to_regex("chick fil a").search("CHICK-FIL-A #123")
    assert term_to_regex("bp#").search("BP#1234 GAS")
    assert infer_category_from_brands("SHELL OIL 5744") == "Fuel"
    assert infer_category_from_brands("SHELLPOINT MTG") is None


def test_catalog_order_and_exclusions():
    assert DEFAULT_CATALOG.infer("STARBUCKS STORE 0042") == "Starbucks"
    assert DEFAULT_CATALOG.infer("KROGER #12", exclude={"Groceries"}) is None

    custom = BrandCatalog.from_terms({"Pets": ["petco", " "]})
    assert custom.categories == ("Pets",)
    assert custom.infer("PETCO 44") == "Pets"
    assert infer_category_from_brands("PETCO 44", custom) == "Pets"


# ---------------------------------------------------------------------------
# Cash back
# ---------------------------------------------------------------------------


def test_cash_back_amounts():
    assert parse_cash_back_amount("KROGER WITH CASH BACK $1,000.00") == Decimal("1000.00")
    assert parse_cash_back_amount("KROGER") is None
    assert extract_cashback("FOOD LION WITH CASH BACK $80.00", Decimal("-50.00")) == Decimal("50.00")
    assert extract_cashback("FOOD LION", Decimal("-50.00")) == Decimal("0")


def test_only_the_cash_back_row_is_tagged():
    desc = "SAFEWAY PURCHASE WITH CASH BACK $20.00"
    assert is_cash_back_line(Decimal("-20.00"), desc)
    assert not is_cash_back_line(Decimal("-45.43"), desc)

    rows = tag_cash_back_line(
        [
            _tx("cash", desc, "-20.00", "Groceries"),
            _tx("spend", desc, "-45.43", "Cash Back"),
            _tx("refund", desc, "20.00", "Groceries"),
        ]
    )
    assert [r.category for r in rows] == ["Cash Back", "Uncategorized", "Groceries"]
