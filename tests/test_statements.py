from decimal import Decimal

import pytest

from statement_ledger.models import SnapshotInputs, Transaction
from statement_ledger.statements import (
    SnapshotStore,
    compute_parsed_totals,
    empty_statement,
    infer_month_from_pages,
    make_id,
    maybe_auto_fix_inputs,
    next_month,
    normalize_pages_raw,
    parse_id,
    relative_drift,
)


def _tx(id, amount):
    return Transaction(id=id, date="03/01", description=id, amount=Decimal(amount))


def _snapshot(deposits, withdrawals, beginning="500.00"):
    return empty_statement(2025, 3).model_copy(
        update={
            "inputs": SnapshotInputs(
                beginning_balance=Decimal(beginning),
                total_deposits=Decimal(deposits),
                total_withdrawals=Decimal(withdrawals),
            )
        }
    )


# ---------------------------------------------------------------------------
# Ids and months
# ---------------------------------------------------------------------------


def test_ids_and_labels():
    assert make_id(2025, 3) == "2025-03"
    assert parse_id("2025-03") == (2025, 3)
    assert parse_id("2025-13") is None
    assert parse_id("March") is None
    assert next_month(2025, 12) == (2026, 1)
    assert empty_statement(2025, 3).label == "March 2025"


@pytest.mark.parametrize(("year", "month"), [(2025, 0), (2025, 13), (0, 5)])
def test_make_id_rejects_out_of_range(year, month):
    with pytest.raises(ValueError):
        make_id(year, month)


def test_infer_month_from_pages():
    assert infer_month_from_pages(["Beginning balance on 4/1 $1,000.00\n03/31 X 1.00"]) == 4
    assert infer_month_from_pages(["Header\n05/02 COFFEE 4.50"]) == 5
    assert infer_month_from_pages(["nothing here"]) is None


def test_normalize_pages_raw_shapes():
    assert normalize_pages_raw(" one ") == ["one"]
    assert normalize_pages_raw(["a", " ", "b"]) == ["a", "b"]
    assert normalize_pages_raw({"1": "second", "0": "first", "x": "skip"}) == ["first", "second"]
    assert normalize_pages_raw(None) == []
    assert normalize_pages_raw(42) == []


# ---------------------------------------------------------------------------
# Drift
# ---------------------------------------------------------------------------


def test_parsed_totals():
    totals = compute_parsed_totals([_tx("a", "100.00"), _tx("b", "-40.25"), _tx("c", "-9.75")])
    assert (totals.deposits, totals.withdrawals) == (Decimal("100.00"), Decimal("50.00"))


def test_relative_drift_zero_user_value_is_full_drift():
    assert relative_drift(Decimal("0"), Decimal("10")) == Decimal("1")
    assert relative_drift(Decimal("100"), Decimal("60")) == Decimal("0.4")


def test_drift_at_threshold_is_left_alone():
    snapshot = _snapshot("100.00", "50.00")
    txs = [_tx("dep", "60.00"), _tx("wd", "-50.00")]
    assert maybe_auto_fix_inputs(snapshot, txs) is None


def test_drift_above_threshold_is_fixed_and_keeps_beginning_balance():
    snapshot = _snapshot("100.00", "50.00")
    txs = [_tx("dep", "59.00"), _tx("wd", "-50.00")]
    fixed = maybe_auto_fix_inputs(snapshot, txs)
    assert fixed is not None
    assert fixed.inputs.total_deposits == Decimal("59.00")
    assert fixed.inputs.total_withdrawals == Decimal("50.00")
    assert fixed.inputs.beginning_balance == Decimal("500.00")


def test_fresh_inputs_are_filled_from_parsed_totals():
    fixed = maybe_auto_fix_inputs(_snapshot("0", "0"), [_tx("wd", "-12.00")])
    assert fixed is not None
    assert fixed.inputs.total_withdrawals == Decimal("12.00")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def test_upsert_selects_and_remove_resets_current(store):
    snaps = SnapshotStore(store)
    jan = empty_statement(2025, 1)
    feb = empty_statement(2025, 2)
    snaps.upsert(jan)
    snaps.upsert(feb)

    assert list(snaps.list_index()) == ["2025-01", "2025-02"]
    assert snaps.current_id() == "2025-02"
    assert snaps.read("2025-01") == jan

    snaps.remove("2025-02")
    assert snaps.current_id() == "2025-01"
    snaps.remove("2025-01")
    assert snaps.current_id() is None
    assert snaps.resolve_current_id() is None
    snaps.remove("2025-05")


def test_resolve_current_id_prefers_valid_query_param(store):
    snaps = SnapshotStore(store)
    snaps.upsert(empty_statement(2025, 1))
    snaps.upsert(empty_statement(2025, 2))

    assert snaps.resolve_current_id("2025-01") == "2025-01"
    assert snaps.resolve_current_id("2025-07") == "2025-02"
    assert snaps.resolve_current_id("garbage") == "2025-02"

    snaps.set_current_id("2024-12")
    assert snaps.resolve_current_id() == "2025-01"


def test_namespaces_are_isolated(store):
    SnapshotStore(store, "demo").upsert(empty_statement(2025, 1))
    assert SnapshotStore(store, "real").list_index() == {}


def test_store_auto_fix_persists(store):
    snaps = SnapshotStore(store)
    snapshot = _snapshot("1000.00", "1000.00").model_copy(
        update={"cached_tx": (_tx("dep", "100.00"), _tx("wd", "-80.00"))}
    )
    snaps.upsert(snapshot)

    fixed = snaps.auto_fix_inputs(snapshot.id)
    assert fixed is not None
    assert snaps.read(snapshot.id).inputs.total_deposits == Decimal("100.00")
    assert snaps.auto_fix_inputs(snapshot.id) is None
    assert snaps.auto_fix_inputs("1999-01") is None
