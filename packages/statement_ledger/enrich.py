"""Enrichment: turn a ``ParsedRow`` into a ``Transaction``.

Steps, in order: merchant canonicalization (first matching pattern wins),
default category inference, spender detection (card last-4 before name
tokens), cash-back extraction and the recurrence key used to group the same
bill across statements.
"""

from __future__ import annotations

import re
from datetime import date
from decimal import Decimal

from .cashback import extract_cashback
from .config import LedgerConfig
from .models import DateFmt, ParsedRow, Transaction
from .parser import SPLIT_NOTE, signed_amount

# (pattern, canonical merchant); first match wins
MERCHANT_PATTERNS: tuple[tuple[re.Pattern[str], str], ...] = tuple(
    (re.compile(src, re.IGNORECASE), label)
    for src, label in (
        (r"newrez|shellpoin", "Newrez (Mortgage)"),
        (r"truist\s*ln|auto\s*loan", "Truist Loan"),
        (r"\bchase\b.*\b(?:epay|e-?pay|card\s*payment|crd\s*epay)\b", "Chase Credit Card Payment"),
        (
            r"\b(?:capital\s*one|cap\s*one)\b.*\b(?:epay|e-?pay|card\s*payment|credit\s*card\s*pmt|pmt)\b",
            "Capital One Credit Card Payment",
        ),
        (r"dominion\s*energy", "Dominion Energy"),
        (r"virginia\s*natural\s*gas|\bvng\b", "Virginia Natural Gas"),
        (r"cox\s*comm", "Cox Communications"),
        (r"t-?mobile", "T-Mobile"),
        (r"hp.*instant\s*ink", "HP Instant Ink"),
        (r"apple\.com/bill", "Apple.com/Bill"),
        (r"discovery\+|discovery plus", "Discovery+"),
        (r"netflix", "Netflix"),
        (r"progressive|prog\s*gulf\s*ins", "Progressive Insurance"),
        (r"pac.*life|pac-?life-?lyn-?inf", "Pacific Life Insurance"),
        (r"school\s*of\s*rock", "School of Rock"),
        (r"harris\s*te(?:eter)?\b", "Harris Teeter"),
        (r"food\s*lion", "Food Lion"),
        (r"\btarget\b", "Target"),
        (r"chick-?fil-?a", "Chick-fil-A"),
        (r"cinema\s*cafe", "Cinema Cafe"),
        (r"\bprime\s*video\b", "Prime Video"),
        (r"\b(?:amazon\s*fresh|amazon\s*groc\w*|prime\s*now|whole\s*foods)\b", "Amazon Fresh"),
        (r"\b(?:amzn|amazon)\b", "Amazon Marketplace"),
        (r"bp#|\bshell\b|exxon|circle\s*k|7-?eleven|chevron", "Fuel Station"),
        (r"adobe", "Adobe"),
        (r"buzzsprout", "Buzzsprout"),
        (r"ibm.*payroll", "IBM Payroll"),
        (r"leidos.*payroll", "Leidos Payroll"),
        (r"home\s*depot", "Home Depot"),
    )
)

# canonical merchant -> category
MERCHANT_CATEGORY: dict[str, str] = {
    "Newrez (Mortgage)": "Housing",
    "Truist Loan": "Debt",
    "Chase Credit Card Payment": "Debt",
    "Capital One Credit Card Payment": "Debt",
    "Dominion Energy": "Utilities",
    "Virginia Natural Gas": "Utilities",
    "Cox Communications": "Utilities",
    "T-Mobile": "Utilities",
    "Progressive Insurance": "Insurance",
    "Pacific Life Insurance": "Insurance",
    "HP Instant Ink": "Subscriptions",
    "Apple.com/Bill": "Subscriptions",
    "Adobe": "Subscriptions",
    "Buzzsprout": "Subscriptions",
    "Discovery+": "Subscriptions",
    "Netflix": "Subscriptions",
    "Prime Video": "Subscriptions",
    "School of Rock": "Kids/School",
    "Harris Teeter": "Groceries",
    "Food Lion": "Groceries",
    "Amazon Fresh": "Groceries",
    "Amazon Marketplace": "Amazon",
    "Home Depot": "Shopping",
    "Target": "Shopping",
    "Chick-fil-A": "Fast Food",
    "Cinema Cafe": "Entertainment",
    "Fuel Station": "Fuel",
    "IBM Payroll": "Income",
    "Leidos Payroll": "Income",
}

INCOME_RE = re.compile(
    r"\b(?:payroll|e\s*deposit|deposit|vacp\s*treas|ssa|irs\s*treas|ach\s*credit"
    r"|zelle\s*(?:from|credit)|online\s*transfer\s*from|xfer\s*from"
    r"|branch\s*deposit|mobile\s*deposit|credit\s*interest|interest\s*(?:payment|credit)"
    r"|refund|reversal|return)\b",
    re.IGNORECASE,
)
_TRANSFER_RE = re.compile(r"online\s*transfer|inst\s*xfer|\bxfer\b|\btransfer\b", re.IGNORECASE)
_CASH_BACK_RE = re.compile(r"cash\s*back", re.IGNORECASE)
_RENT_RE = re.compile(r"\b(?:rent|mortgage)\b", re.IGNORECASE)
_UTILITY_RE = re.compile(r"\b(?:water|sewer|electric)\b", re.IGNORECASE)
_INSURANCE_RE = re.compile(r"\binsurance\b|\bins\s*prem\b", re.IGNORECASE)

_AUTH_CODE_RE = re.compile(r"\b[PS]\d{6,}\b.*$", re.IGNORECASE)
_CARD_TAIL_RE = re.compile(r"\bCard\s*\d{4}\b.*$", re.IGNORECASE)
_CARD_LAST4_RE = re.compile(r"Card\s*(\d{4})\b", re.IGNORECASE)
_MONTHS_RE = re.compile(r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|sept|oct|nov|dec)\b", re.IGNORECASE)


def canonical_merchant(description: str) -> str | None:
    for pattern, label in MERCHANT_PATTERNS:
        if pattern.search(description or ""):
            return label
    return None


def canonical_category(
    description: str,
    merchant: str | None,
    amount: Decimal = Decimal("0"),
    *,
    fallback: str = "Uncategorized",
) -> str:
    """Default category from merchant and description keywords."""

    desc = description or ""
    if amount > 0 and INCOME_RE.search(desc):
        return "Income"
    if merchant and merchant in MERCHANT_CATEGORY:
        return MERCHANT_CATEGORY[merchant]
    if _RENT_RE.search(desc):
        return "Housing"
    if _INSURANCE_RE.search(desc):
        return "Insurance"
    if _UTILITY_RE.search(desc):
        return "Utilities"
    if _TRANSFER_RE.search(desc):
        return "Transfers"
    if _CASH_BACK_RE.search(desc):
        return "Cash Back"
    return fallback


def extract_card_last4(description: str) -> str | None:
    m = _CARD_LAST4_RE.search(description or "")
    return m.group(1) if m else None


def strip_auth_and_card(description: str) -> str:
    """Drop long authorization codes and the ``Card ####`` fragment (and what follows)."""

    out = _AUTH_CODE_RE.sub("", description or "").strip()
    out = _CARD_TAIL_RE.sub("", out).strip()
    return re.sub(r"\s{2,}", " ", out).strip()


def detect_spender(description: str, card_last4: str | None, config: LedgerConfig) -> str:
    """Spender name: card last-4 mapping first, then name tokens in the text."""

    if card_last4 and card_last4 in config.spenders:
        return config.spenders[card_last4]
    lower = (description or "").lower()
    for token, name in config.spender_tokens.items():
        if token and re.search(rf"\b{re.escape(token.lower())}\b", lower):
            return name
    return "Unknown"


def recurrence_key(description: str, merchant: str | None = None) -> str:
    """Stable grouping key for the same bill or income across statements.

    Uses ``merchant`` (an alias label) or the canonical merchant when known;
    otherwise month names, the card fragment and numeric/punctuation noise are
    stripped so trailing reference numbers do not split a group.
    """

    merchant = merchant or canonical_merchant(description)
    if merchant:
        return re.sub(r"\s+", "_", merchant.lower())
    s = _MONTHS_RE.sub("", (description or "").lower())
    s = re.sub(r"card\s*\d{4}", "", s)
    s = re.sub(r"[\d\-/*#]+", " ", s)
    s = re.sub(r"[^a-z ]", "", s)
    return "_".join(s.split())


def _date_parts(raw: str, date_fmt: DateFmt) -> tuple[int | None, int, int] | None:
    nums = [int(n) for n in re.findall(r"\d+", raw or "")]
    if date_fmt == "YYYY-MM-DD":
        if len(nums) < 3:
            return None
        return nums[0], nums[1], nums[2]
    if len(nums) < 2:
        return None
    year: int | None = None
    if len(nums) >= 3:
        year = nums[2] + 2000 if nums[2] < 100 else nums[2]
    if date_fmt == "DD/MM/YYYY":
        return year, nums[1], nums[0]
    return year, nums[0], nums[1]


def day_of_month(raw: str, date_fmt: DateFmt = "MM/DD/YYYY") -> int:
    parts = _date_parts(raw, date_fmt)
    if parts is None or not 1 <= parts[2] <= 31:
        return 0
    return parts[2]


def iso_date(raw: str, stmt_year: int | None, date_fmt: DateFmt = "MM/DD/YYYY") -> str | None:
    """``YYYY-MM-DD`` for a statement date, borrowing the statement year if needed."""

    parts = _date_parts(raw, date_fmt)
    if parts is None:
        return None
    year, month, day = parts
    year = year or stmt_year
    if not year:
        return None
    try:
        return date(year, month, day).isoformat()
    except ValueError:
        return None


def enrich(
    row: ParsedRow,
    *,
    config: LedgerConfig | None = None,
    stmt_year: int | None = None,
    date_fmt: DateFmt = "MM/DD/YYYY",
    alias_label: str | None = None,
) -> Transaction:
    """Build a ``Transaction`` from a parsed row.

    ``alias_label`` (from the alias rules) takes precedence over the built-in
    merchant patterns.
    """

    cfg = config or LedgerConfig()
    amount = signed_amount(row)
    cleaned = strip_auth_and_card(row.description) or row.description.strip()
    last4 = row.card_last4 or extract_card_last4(row.description)
    merchant = alias_label or canonical_merchant(cleaned)

    return Transaction(
        id=row.id,
        date=row.date,
        description=cleaned,
        amount=amount,
        merchant=merchant,
        category=canonical_category(cleaned, merchant, amount, fallback=cfg.fallback_category),
        card_last4=last4,
        spender=detect_spender(row.description, last4, cfg),
        # Split rows already carry the purchase and cash-back portions separately
        cashback=Decimal("0") if row.notes == SPLIT_NOTE else extract_cashback(row.description, amount),
        recurrence_key=recurrence_key(cleaned, merchant),
        day=day_of_month(row.date, date_fmt),
        iso_date=iso_date(row.date, stmt_year, date_fmt),
        source_line=row.source_line,
        notes=row.notes,
    )


__all__ = [
    "INCOME_RE",
    "MERCHANT_CATEGORY",
    "MERCHANT_PATTERNS",
    "canonical_category",
    "canonical_merchant",
    "day_of_month",
    "detect_spender",
    "enrich",
    "extract_card_last4",
    "iso_date",
    "recurrence_key",
    "strip_auth_and_card",
]
