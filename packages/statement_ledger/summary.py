"""Monthly rollups and spend views derived from categorized rows."""

from __future__ import annotations

from collections.abc import Collection, Iterable
from decimal import Decimal

from .amounts import quantize
from .categories import is_income_category
from .models import SnapshotInputs, Summary, Transaction

CASH_BUCKET = "Cash"

BURN_EXCLUDE: frozenset[str] = frozenset(
    {
        "Transfers",
        "Debt",
        "Cash Back",
        # structural bills
        "Bills",
        "Utilities",
        "Insurance",
        "Mortgage",
        "Rent",
    }
)

_ZERO = Decimal("0")


def summarize_month(month_id: str, transactions: Iterable[Transaction], inputs: SnapshotInputs) -> Summary:
    """Totals, ending balance and withdrawals by effective category.

    Parsed totals are preferred; a zero parsed total falls back to the
    user-entered one.
    """

    rows = list(transactions)
    deposits = quantize(sum((t.amount for t in rows if t.amount > 0), _ZERO))
    withdrawals = quantize(sum((-t.amount for t in rows if t.amount < 0), _ZERO))
    d = deposits or inputs.total_deposits
    w = withdrawals or inputs.total_withdrawals

    by_category: dict[str, Decimal] = {}
    for t in rows:
        if t.amount < 0:
            label = t.effective_category
            by_category[label] = by_category.get(label, _ZERO) + -t.amount

    return Summary(
        month_id=month_id,
        deposits=d,
        withdrawals=w,
        ending_balance=quantize(inputs.beginning_balance + d - w),
        spend_by_category={k: quantize(v) for k, v in by_category.items()},
    )


def spending_by_category(transactions: Iterable[Transaction]) -> list[tuple[str, Decimal]]:
    """Expense dollars per category, largest first.

    The cash-back portion of a purchase is counted under ``"Cash"`` and only
    the remainder under the row's category.
    """

    totals: dict[str, Decimal] = {}
    for t in transactions:
        if t.amount >= 0:
            continue
        gross = -t.amount
        cashback = min(max(t.cashback, _ZERO), gross)
        purchase = gross - cashback
        if purchase > 0:
            cat = t.effective_category
            totals[cat] = totals.get(cat, _ZERO) + purchase
        if cashback > 0:
            totals[CASH_BUCKET] = totals.get(CASH_BUCKET, _ZERO) + cashback
    return sorted(((c, quantize(v)) for c, v in totals.items()), key=lambda kv: kv[1], reverse=True)


def is_burn_eligible(tx: Transaction, excluded_categories: Collection[str] = ()) -> bool:
    """True for discretionary spend: a withdrawal outside transfers, debt and bills.

    ``excluded_categories`` are extra user exclusions, compared case-insensitively.
    """

    cat = tx.effective_category
    if tx.amount >= 0 or cat in BURN_EXCLUDE or is_income_category(cat):
        return False
    return cat.strip().lower() not in {c.strip().lower() for c in excluded_categories}


def true_spend(transactions: Iterable[Transaction], excluded_categories: Collection[str] = ()) -> Decimal:
    """Sum of burn-eligible withdrawals as a positive amount."""

    return quantize(sum((-t.amount for t in transactions if is_burn_eligible(t, excluded_categories)), _ZERO))


__all__ = [
    "BURN_EXCLUDE",
    "CASH_BUCKET",
    "is_burn_eligible",
    "spending_by_category",
    "summarize_month",
    "true_spend",
]
