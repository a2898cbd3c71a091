"""Recurring bill calendar and a typical-month balance forecast."""

from __future__ import annotations

import re
from collections.abc import Collection, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal

from .amounts import quantize
from .config import RECURRING_CATEGORIES
from .enrich import recurrence_key
from .models import Direction, ForecastPoint, RecurringRow, Transaction

_CARD_SWIPE_RE = re.compile(r"Card\s*\d{4}", re.IGNORECASE)
_CC_PAYMENT_RE = re.compile(r"credit\s*card\s*payment|epay|online\s*pmt", re.IGNORECASE)
_CC_BANK_PAYMENT_RE = re.compile(r"(?:Chase|Capital One)\b.*(?:Payment|EPAY)", re.IGNORECASE)
_ISO_MONTH_RE = re.compile(r"^(\d{4}-\d{2})")
_MMDD_RE = re.compile(r"^(\d{1,2})/\d{1,2}(?:/(\d{2,4}))?")


def is_credit_card_payment(label: str) -> bool:
    return bool(_CC_PAYMENT_RE.search(label or "") or _CC_BANK_PAYMENT_RE.search(label or ""))


def month_key(tx: Transaction) -> str:
    """Calendar month of a row: ``YYYY-MM`` from ``iso_date``, else from ``date``."""

    if tx.iso_date:
        m = _ISO_MONTH_RE.match(tx.iso_date)
        if m:
            return m.group(1)
    m = _ISO_MONTH_RE.match(tx.date or "")
    if m:
        return m.group(1)
    m = _MMDD_RE.match(tx.date or "")
    if m:
        return f"{m.group(2) or ''}-{int(m.group(1)):02d}"
    return tx.date or ""


def _excluded(tx: Transaction) -> bool:
    desc = tx.description or ""
    if tx.cashback > 0:
        return True
    if tx.card_last4 or _CARD_SWIPE_RE.search(desc):
        return True
    if is_credit_card_payment(desc):
        return True
    return tx.amount < 0 and is_credit_card_payment(tx.merchant or "")


@dataclass
class _Group:
    label: str
    direction: Direction
    category: str
    days: list[int] = field(default_factory=list)
    amounts: list[Decimal] = field(default_factory=list)
    months: set[str] = field(default_factory=set)


def build_recurring(
    transactions: Iterable[Transaction],
    *,
    categories: Collection[str] = RECURRING_CATEGORIES,
    min_months: int = 2,
) -> list[RecurringRow]:
    """Bills and income that repeat across at least ``min_months`` calendar months.

    Rows are grouped by recurrence key. Only allow-listed categories count,
    and cash-back lines, card swipes and credit-card bill payments are never
    treated as bills. Output is sorted by day, then description.
    """

    groups: dict[str, _Group] = {}
    for tx in transactions:
        category = tx.effective_category
        if category not in categories or _excluded(tx):
            continue
        key = tx.recurrence_key or recurrence_key(tx.description, tx.merchant)
        group = groups.get(key)
        if group is None:
            group = groups[key] = _Group(
                label=tx.merchant or tx.description, direction=tx.direction, category=category
            )
        if tx.day:
            group.days.append(tx.day)
        group.amounts.append(abs(tx.amount))
        group.months.add(month_key(tx))
        group.direction = tx.direction
        group.category = category
        group.label = tx.merchant or group.label

    rows: list[RecurringRow] = []
    for group in groups.values():
        if len(group.months) < min_months:
            continue
        avg_day = 0
        if group.days:
            mean = Decimal(sum(group.days)) / len(group.days)
            avg_day = int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))
        rows.append(
            RecurringRow(
                description=group.label,
                day=avg_day,
                avg_amount=quantize(sum(group.amounts, Decimal("0")) / len(group.amounts)),
                type=group.direction,
                category=group.category,
            )
        )
    rows.sort(key=lambda r: (r.day, r.description))
    return rows


def forecast_typical_month(recurring: Sequence[RecurringRow]) -> list[ForecastPoint]:
    """Running balance for days 1..31: recurring deposits minus recurring bills."""

    net: dict[int, Decimal] = {}
    for row in recurring:
        delta = row.avg_amount if row.type == "INCOME" else -row.avg_amount
        net[row.day] = net.get(row.day, Decimal("0")) + delta

    balance = Decimal("0")
    out: list[ForecastPoint] = []
    for day in range(1, 32):
        balance += net.get(day, Decimal("0"))
        out.append(ForecastPoint(day=day, balance=quantize(balance)))
    return out


__all__ = [
    "build_recurring",
    "forecast_typical_month",
    "is_credit_card_payment",
    "month_key",
]
