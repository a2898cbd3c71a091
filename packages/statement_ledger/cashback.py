"""Cash-back extraction and tagging for "purchase with cash back" lines."""

from __future__ import annotations

import re
from collections.abc import Iterable
from decimal import Decimal, InvalidOperation

from .amounts import quantize
from .models import Transaction

CASH_BACK = "Cash Back"

CASH_BACK_AMOUNT_RE = re.compile(
    r"cash\s*back\s*\$?\s*((?:\d{1,3}(?:,\d{3})+|\d+)(?:\.\d{2})?)", re.IGNORECASE
)
WITH_CASH_BACK_RE = re.compile(r"\bwith\s+cash\s*back\b", re.IGNORECASE)

_TOLERANCE = Decimal("0.01")


def parse_cash_back_amount(description: str) -> Decimal | None:
    """Return the embedded ``cash back $N.NN`` value, if the phrase is present."""

    m = CASH_BACK_AMOUNT_RE.search(description or "")
    if m is None:
        return None
    try:
        return quantize(Decimal(m.group(1).replace(",", "")))
    except InvalidOperation:
        return None


def extract_cashback(description: str, gross: Decimal) -> Decimal:
    """Cash-back portion of a transaction, clamped to the gross amount."""

    cb = parse_cash_back_amount(description)
    if cb is None or cb <= 0:
        return Decimal("0")
    return min(cb, abs(gross))


def is_cash_back_line(amount: Decimal, description: str) -> bool:
    """True only for the row whose amount equals the embedded cash-back value."""

    cb = parse_cash_back_amount(description)
    if cb is None:
        return False
    return abs(abs(amount) - cb) <= _TOLERANCE


def tag_cash_back_line(rows: Iterable[Transaction], *, fallback: str = "Uncategorized") -> list[Transaction]:
    """Mark only the true cash-back withdrawal as ``Cash Back``.

    Sibling "with cash back" rows whose amount is the purchase portion lose a
    base ``Cash Back`` category. ``category_override`` is never touched, so a
    user's explicit choice always survives.
    """

    out: list[Transaction] = []
    for tx in rows:
        if tx.amount >= 0 or not CASH_BACK_AMOUNT_RE.search(tx.description):
            out.append(tx)
            continue
        if is_cash_back_line(tx.amount, tx.description):
            if tx.category != CASH_BACK:
                tx = tx.model_copy(update={"category": CASH_BACK})
        elif tx.category == CASH_BACK:
            tx = tx.model_copy(update={"category": fallback})
        out.append(tx)
    return out


__all__ = [
    "CASH_BACK",
    "CASH_BACK_AMOUNT_RE",
    "WITH_CASH_BACK_RE",
    "extract_cashback",
    "is_cash_back_line",
    "parse_cash_back_amount",
    "tag_cash_back_line",
]
