from decimal import Decimal

import pytest

from statement_ledger.amounts import extract_amounts, fmt_amount, is_amount_only, quantize, to_decimal
from statement_ledger.normalizers import normalize, sanitize_line, strip_running_balance


def test_normalize_strips_running_balance_and_collapses_space():
    raw = "08/01\tCOFFEE   SHOP  -4.50  1,234.56\r\n08/02 PAYROLL 2,000.00\r\n"
    assert normalize(raw) == "08/01 COFFEE SHOP -4.50\n08/02 PAYROLL 2,000.00"


def test_normalize_removes_invisible_marks_and_dash_variants():
    raw = "A\u00a0B\u200bC \ufeffD \u2212 E \u2014 F"
    assert normalize(raw) == "A BC D - E - F"


@pytest.mark.parametrize(
    "raw",
    [
        "08/01 COFFEE SHOP -4.50 1,234.56",
        "08/01 A 1.00 B 2.00 C 3.00",
        "  08/03  SAFEWAY PURCHASE WITH CASH BACK $20.00 65.43 \n\n",
        "08/04 RENT 1,500.00 Balance 3,210.00",
        "",
    ],
)
def test_normalize_is_idempotent(raw):
    once = normalize(raw)
    assert normalize(once) == once


def test_normalize_handles_none():
    assert normalize(None) == ""
    assert sanitize_line(None) == ""


def test_strip_running_balance_keeps_cash_back_lines():
    line = "SAFEWAY PURCHASE WITH CASH BACK $20.00 65.43"
    assert strip_running_balance(line) == line


def test_strip_running_balance_leaves_single_and_triple_amounts():
    assert strip_running_balance("RENT 1,500.00") == "RENT 1,500.00"
    assert strip_running_balance("A 1.00 B 2.00 C 3.00") == "A 1.00 B 2.00 C 3.00"


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("(45.00)", Decimal("-45.00")),
        ("-45.00", Decimal("-45.00")),
        ("45.00", Decimal("45.00")),
        ("$1,234.56", Decimal("1234.56")),
        ("-($1,234.56)", Decimal("-1234.56")),
        ("$(12.00)", Decimal("-12.00")),
        ("+5.10", Decimal("5.10")),
    ],
)
def test_to_decimal_signs(raw, expected):
    assert to_decimal(raw) == expected


@pytest.mark.parametrize("raw", ["", "   ", "abc", "1.2.3", None])
def test_to_decimal_rejects_garbage(raw):
    with pytest.raises(ValueError):
        to_decimal(raw)


def test_extract_amounts_eol_pair():
    pick = extract_amounts("COFFEE SHOP -4.50   1,234.56")
    assert pick.source == "eol-pair"
    assert pick.amount == Decimal("-4.50")
    assert pick.running_balance == Decimal("1234.56")


def test_extract_amounts_single_token():
    pick = extract_amounts("COFFEE SHOP 4.50")
    assert pick.source == "single"
    assert pick.amount == Decimal("4.50")
    assert pick.running_balance is None


def test_extract_amounts_prefers_negative_marker():
    pick = extract_amounts("REFUND 10.00 FEE (5.00) NOTE 7.00")
    assert pick.amount == Decimal("-5.00")


def test_extract_amounts_smallest_magnitude_when_unsigned():
    pick = extract_amounts("TRANSFER 10.00 REF 5.00 DONE")
    assert pick.amount == Decimal("5.00")


def test_extract_amounts_none():
    pick = extract_amounts("Page 1 of 3")
    assert pick.source == "none"
    assert pick.amount is None


def test_amount_only_and_formatting():
    assert is_amount_only("$12.34")
    assert is_amount_only("(1,200.00)")
    assert not is_amount_only("Fee 12.34")
    assert quantize(Decimal("1.005")) == Decimal("1.01")
    assert fmt_amount(Decimal("-3.5")) == "-3.50"
