from dataclasses import asdict
from decimal import Decimal

import pytest

from statement_ledger.aliases import write_aliases
from statement_ledger.models import AliasRule, CategoryRule, Period, SnapshotInputs, Transaction
from statement_ledger.periods import coerce_period, rows_for_period
from statement_ledger.recurring import build_recurring, forecast_typical_month, month_key
from statement_ledger.rules import write_category_rules
from statement_ledger.ruleset import RuleSet, bulk_apply_override, load_ruleset, merchant_token_set
from statement_ledger.statements import SnapshotStore, empty_statement
from statement_ledger.summary import is_burn_eligible, spending_by_category, summarize_month, true_spend


def _tx(id, description, amount, category="Uncategorized", iso=None, **kw):
    day = int(iso[8:10]) if iso else 0
    return Transaction(
        id=id,
        date=iso or "01/01",
        description=description,
        amount=Decimal(amount),
        category=category,
        iso_date=iso,
        day=day,
        **kw,
    )


def _save(snaps, year, month, rows=(), pages=()):
    snapshot = empty_statement(year, month).model_copy(
        update={"cached_tx": tuple(rows), "pages_raw": tuple(pages)}
    )
    snaps.upsert(snapshot)
    return snapshot


# ---------------------------------------------------------------------------
# Rule set
# ---------------------------------------------------------------------------


def test_load_ruleset_and_categorize(store):
    write_aliases(store, [AliasRule(pattern="joes plumb", label="Joes Plumbing")])
    write_category_rules(store, [CategoryRule(key="alias:joes plumbing", category="Housing", source="alias")])
    ruleset = load_ruleset(store)

    [tx] = ruleset.categorize([_tx("a", "JOES PLUMBING 555", "-80.00")])
    assert tx.merchant == "Joes Plumbing"
    assert tx.category == "Housing"
    assert ruleset.categorize([tx]) == [tx]


def test_merchant_token_set_drops_generic_tokens():
    assert merchant_token_set("HOME DEPOT #9999 CHESAPEAKE") == {"home_depot", "home"}
    assert merchant_token_set("THE STORE 123") == set()


def test_bulk_apply_override_touches_same_merchant_withdrawals(store):
    snaps = SnapshotStore(store)
    _save(
        snaps,
        2025,
        1,
        [
            _tx("a", "HOME DEPOT #4521", "-50.00"),
            _tx("b", "HOME DEPOT 1122", "-30.00"),
            _tx("c", "HOME DEPOT REFUND", "10.00"),
            _tx("d", "KROGER", "-5.00"),
        ],
    )

    assert bulk_apply_override(snaps, "HOME DEPOT #9999 CHESAPEAKE", "Housing", RuleSet()) == 2
    overrides = {tx.id: tx.category_override for tx in snaps.read("2025-01").cached_tx}
    assert overrides == {"a": "Housing", "b": "Housing", "c": None, "d": None}


# ---------------------------------------------------------------------------
# Periods
# ---------------------------------------------------------------------------


def test_coerce_period():
    assert coerce_period("ytd") is Period.YTD
    assert coerce_period(Period.CURRENT) is Period.CURRENT
    with pytest.raises(ValueError):
        coerce_period("weekly")


def test_current_period_returns_live_rows(store):
    snaps = SnapshotStore(store)
    _save(snaps, 2025, 1, [_tx("jan", "COFFEE", "-3.00")])
    live = [_tx("live", "COFFEE", "-4.00")]
    assert rows_for_period(Period.CURRENT, snaps, RuleSet(), live_rows=live) == live


def test_ytd_is_union_of_months_up_to_anchor(store):
    snaps = SnapshotStore(store)
    _save(snaps, 2024, 12, [_tx("dec", "COFFEE", "-1.00")])
    _save(snaps, 2025, 1, [_tx("jan", "KROGER #12", "-50.00", iso="2025-01-05")])
    _save(snaps, 2025, 3, [_tx("mar", "COFFEE", "-3.00")])
    _save(snaps, 2025, 2, [_tx("feb", "KROGER #12", "-60.00", iso="2025-02-05")])

    rows = rows_for_period(Period.YTD, snaps, RuleSet())
    assert sorted(r.id for r in rows) == ["feb", "jan"]
    assert {r.category for r in rows} == {"Groceries"}
    assert rows_for_period(Period.YTD, snaps, RuleSet()) == rows

    rows = rows_for_period(Period.YTD, snaps, RuleSet(), query_param="2025-03")
    assert sorted(r.id for r in rows) == ["feb", "jan", "mar"]


def test_ytd_uses_live_rows_for_open_month(store):
    snaps = SnapshotStore(store)
    _save(snaps, 2025, 1, [_tx("jan", "COFFEE", "-1.00")])
    _save(snaps, 2025, 2, [_tx("feb-cached", "COFFEE", "-2.00")])
    live = [_tx("feb-live", "COFFEE", "-2.50")]

    rows = rows_for_period(Period.YTD, snaps, RuleSet(), live_rows=live)
    assert [r.id for r in rows] == ["jan", "feb-live"]

    rows = rows_for_period(Period.YTD, snaps, RuleSet(), live_rows=live, anchor_id="2025-01")
    assert [r.id for r in rows] == ["jan"]


def test_ytd_rebuilds_snapshots_without_cached_rows(store):
    snaps = SnapshotStore(store)
    _save(snaps, 2025, 1, pages=["01/05 KROGER #12 50.00"])
    [tx] = rows_for_period(Period.YTD, snaps, RuleSet())
    assert tx.amount == Decimal("-50.00")
    assert tx.iso_date == "2025-01-05"
    assert tx.category == "Groceries"


# ---------------------------------------------------------------------------
# Recurring
# ---------------------------------------------------------------------------


def test_rent_in_two_months_is_recurring(store):
    snaps = SnapshotStore(store)
    _save(snaps, 2025, 1, [_tx("jan", "Rent", "-100.00", category="Housing", iso="2025-01-01")])
    _save(snaps, 2025, 2, [_tx("feb", "Rent", "-100.00", category="Housing", iso="2025-02-01")])

    [row] = build_recurring(rows_for_period(Period.YTD, snaps, RuleSet()))
    assert row.description == "Rent"
    assert row.avg_amount == Decimal("100.00")
    assert row.type == "EXPENSE"
    assert row.category == "Housing"
    assert row.day == 1


def test_aliased_rows_with_different_descriptions_recur_together():
    kw = dict(category="Housing", merchant="Joes Plumbing")
    rows = [
        _tx("jan", "JOES PLUMBING SVC", "-80.00", iso="2025-01-05", **kw),
        _tx("feb", "JP HOME SERVICES", "-80.00", iso="2025-02-05", **kw),
    ]
    [row] = build_recurring(rows)
    assert row.description == "Joes Plumbing"
    assert row.day == 5


def test_single_month_is_not_recurring():
    rows = [_tx("jan", "Rent", "-100.00", category="Housing", iso="2025-01-01")]
    assert build_recurring(rows) == []


def test_recurring_exclusions_and_averages():
    rows = [
        _tx("r1", "Rent", "-100.00", category="Housing", iso="2025-01-01"),
        _tx("r2", "Rent", "-101.00", category="Housing", iso="2025-02-02"),
        _tx("n1", "NETFLIX Card 1234", "-15.49", category="Subscriptions", iso="2025-01-09"),
        _tx("n2", "NETFLIX Card 1234", "-15.49", category="Subscriptions", iso="2025-02-09"),
        _tx("c1", "CHASE CREDIT CARD EPAY", "-300.00", category="Debt", iso="2025-01-20"),
        _tx("c2", "CHASE CREDIT CARD EPAY", "-300.00", category="Debt", iso="2025-02-20"),
        _tx("g1", "KROGER", "-50.00", category="Groceries", iso="2025-01-03"),
        _tx("g2", "KROGER", "-50.00", category="Groceries", iso="2025-02-03"),
        _tx("s1", "ONLINE TRANSFER FROM SAVINGS", "500.00", category="Transfers", iso="2025-01-15"),
        _tx("s2", "ONLINE TRANSFER FROM SAVINGS", "500.00", category="Transfers", iso="2025-02-15"),
    ]
    recurring = build_recurring(rows)
    assert [(r.description, r.day, r.avg_amount, r.type) for r in recurring] == [
        ("Rent", 2, Decimal("100.50"), "EXPENSE"),
        ("ONLINE TRANSFER FROM SAVINGS", 15, Decimal("500.00"), "INCOME"),
    ]

    curve = forecast_typical_month(recurring)
    assert len(curve) == 31
    assert curve[0].balance == Decimal("0.00")
    assert curve[1].balance == Decimal("-100.50")
    assert curve[14].balance == Decimal("399.50")
    assert curve[30].balance == Decimal("399.50")


def test_month_key_sources():
    assert month_key(_tx("a", "x", "-1.00", iso="2025-03-04")) == "2025-03"
    assert month_key(Transaction(id="b", date="2025-04-01", description="x", amount=Decimal("1"))) == "2025-04"
    assert month_key(Transaction(id="c", date="5/01/2025", description="x", amount=Decimal("1"))) == "2025-05"


# ---------------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------------


def test_summarize_month():
    rows = [
        _tx("p", "PAYROLL", "2000.00", category="Income"),
        _tx("g", "KROGER", "-150.00", category="Groceries"),
        _tx("d", "BISTRO", "-50.00", category="Dining"),
    ]
    summary = summarize_month("2025-03", rows, SnapshotInputs(beginning_balance=Decimal("1000.00")))
    assert asdict(summary) == {
        "month_id": "2025-03",
        "deposits": Decimal("2000.00"),
        "withdrawals": Decimal("200.00"),
        "ending_balance": Decimal("2800.00"),
        "spend_by_category": {"Groceries": Decimal("150.00"), "Dining": Decimal("50.00")},
    }


def test_summary_falls_back_to_user_totals():
    inputs = SnapshotInputs(
        beginning_balance=Decimal("10.00"),
        total_deposits=Decimal("5.00"),
        total_withdrawals=Decimal("2.00"),
    )
    summary = summarize_month("2025-03", [], inputs)
    assert summary.ending_balance == Decimal("13.00")


def test_spending_by_category_splits_cash_back():
    rows = [
        _tx("a", "FOOD LION WITH CASH BACK $20.00", "-65.43", category="Groceries", cashback=Decimal("20.00")),
        _tx("b", "BISTRO", "-10.00", category="Dining"),
        _tx("c", "PAYROLL", "100.00", category="Income"),
    ]
    assert spending_by_category(rows) == [
        ("Groceries", Decimal("45.43")),
        ("Cash", Decimal("20.00")),
        ("Dining", Decimal("10.00")),
    ]


def test_burn_eligibility():
    groceries = _tx("g", "KROGER", "-50.00", category="Groceries")
    transfer = _tx("t", "TRANSFER", "-500.00", category="Transfers")
    deposit = _tx("p", "PAYROLL", "100.00", category="Income")
    overridden = _tx("o", "KROGER", "-20.00", category="Groceries", category_override="Debt")

    assert is_burn_eligible(groceries)
    assert not is_burn_eligible(transfer)
    assert not is_burn_eligible(deposit)
    assert not is_burn_eligible(overridden)
    assert not is_burn_eligible(groceries, [" groceries "])
    assert true_spend([groceries, transfer, deposit, overridden]) == Decimal("50.00")
