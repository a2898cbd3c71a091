"""Money-token parsing and amount/running-balance disambiguation.

Bank lines often end with two money columns (transaction amount and running
balance), sometimes with one, and occasionally with several amounts embedded
in the description. ``extract_amounts`` picks the transaction amount with a
small set of ordered heuristics:

1. Two tokens at end of line separated only by whitespace: amount + balance.
2. Exactly one token: that is the amount.
3. Several tokens: prefer one with an explicit negative marker, otherwise the
   smallest magnitude (running balances tend to be larger than a single
   transaction). This last rule is a known weak spot when two
   transaction-sized amounts share a line.
"""

from __future__ import annotations

import re
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from .models import AmountPick

_DIGITS = r"(?:\d{1,3}(?:,\d{3})+|\d+)"

#: One currency-shaped token: optional sign/``$``, two decimals, or parenthesized.
MONEY_RE = re.compile(
    rf"(?<![\d.,])(?:\(\$?{_DIGITS}\.\d{{2}}\)|(?:-\$?|\$-?)?{_DIGITS}\.\d{{2}})(?![\d])"
)

#: A line that is nothing but an amount (wrapped statements put it on its own line).
AMOUNT_ONLY_RE = re.compile(
    r"^(?:\(\$?\s*(?:\d{1,3}(?:,\d{3})*(?:\.\d{2})?|\d+\.\d{2})\)"
    r"|-?\$?\s*(?:\d{1,3}(?:,\d{3})*(?:\.\d{2})?|\d+\.\d{2}))$"
)

_CENT = Decimal("0.01")


def to_decimal(raw: str | None) -> Decimal:
    """Parse a money string into a signed ``Decimal``.

    Accepts ``$``, thousands separators, a leading ``+``/``-`` and surrounding
    parentheses (negative) in any order. Raises ``ValueError`` on garbage.
    """

    if raw is None:
        raise ValueError("amount is required")
    s = raw.strip()
    if not s:
        raise ValueError("amount is empty")
    negative = False

    # Strip sign, currency and parentheses until stable so "-($1,234.56)"
    # and "$(12.00)" both work.
    while True:
        changed = False
        if s.startswith("+"):
            s = s[1:].lstrip()
            changed = True
        elif s.startswith("-"):
            negative = True
            s = s[1:].lstrip()
            changed = True
        if s.startswith("$"):
            s = s[1:].lstrip()
            changed = True
        if s.startswith("(") and s.endswith(")") and len(s) >= 2:
            negative = True
            s = s[1:-1].strip()
            changed = True
        if not changed:
            break

    s = s.replace(",", "").strip()

    try:
        d = Decimal(s)
    except InvalidOperation as exc:
        raise ValueError(f"invalid amount: {raw!r}") from exc
    if not d.is_finite():
        raise ValueError(f"invalid amount: {raw!r}")
    return -abs(d) if negative else d


def quantize(d: Decimal) -> Decimal:
    return d.quantize(_CENT, rounding=ROUND_HALF_UP)


def fmt_amount(d: Decimal) -> str:
    # Exactly two decimals, leading minus for negatives.
    return f"{quantize(d):.2f}"


def money_tokens(line: str) -> list[re.Match[str]]:
    """Return the currency-shaped token matches in ``line``, left to right."""

    return list(MONEY_RE.finditer(line or ""))


def is_amount_only(line: str) -> bool:
    return bool(AMOUNT_ONLY_RE.match((line or "").strip()))


def has_negative_marker(token: str) -> bool:
    return "(" in token or "-" in token


def extract_amounts(line: str) -> AmountPick:
    """Pick the transaction amount (and running balance, if any) from a line.

    Never raises; a line with no money tokens yields ``source="none"``.
    """

    text = re.sub(r"\s+", " ", line or "").strip()
    matches = money_tokens(text)
    tokens = tuple(m.group(0) for m in matches)
    if not matches:
        return AmountPick(amount=None, running_balance=None, source="none")

    if len(matches) >= 2:
        prev, last = matches[-2], matches[-1]
        between = text[prev.end() : last.start()]
        if last.end() == len(text) and between and not between.strip():
            return AmountPick(
                amount=to_decimal(prev.group(0)),
                running_balance=to_decimal(last.group(0)),
                source="eol-pair",
                tokens=tokens,
            )

    if len(matches) == 1:
        return AmountPick(
            amount=to_decimal(tokens[0]),
            running_balance=None,
            source="single",
            tokens=tokens,
        )

    values = [(tok, to_decimal(tok)) for tok in tokens]
    for tok, val in values:
        if has_negative_marker(tok):
            return AmountPick(amount=val, running_balance=None, source="single", tokens=tokens)
    # min() keeps the first of equal magnitudes
    _, smallest = min(values, key=lambda tv: abs(tv[1]))
    return AmountPick(amount=smallest, running_balance=None, source="single", tokens=tokens)


__all__ = [
    "AMOUNT_ONLY_RE",
    "MONEY_RE",
    "extract_amounts",
    "fmt_amount",
    "has_negative_marker",
    "is_amount_only",
    "money_tokens",
    "quantize",
    "to_decimal",
]
