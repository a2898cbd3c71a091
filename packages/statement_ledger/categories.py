"""Canonical category names and normalization of user-entered labels."""

from __future__ import annotations

import re
from collections.abc import Iterable

UNCATEGORIZED = "Uncategorized"

CANON_CATEGORIES: tuple[str, ...] = (
    "Fast Food",
    "Dining",
    "Groceries",
    "Fuel",
    "Utilities",
    "Insurance",
    "Entertainment",
    "Shopping",
    "Amazon",
    "Starbucks",
    "Allowance",
    "Vehicle/City Related",
    "Income",
    "Transfers",
    "Housing",
    "Debt",
    "Impulse/Misc",
    "Doctors",
    "Memberships",
    "Subscriptions",
    "Cash Back",
    "Travel",
    "Kids/School",
    UNCATEGORIZED,
)

_CANON_BY_LOWER = {c.lower(): c for c in CANON_CATEGORIES}

ALIAS_TO_CANON: dict[str, str] = {
    # Fast Food
    "fastfood": "Fast Food",
    "quick service": "Fast Food",
    "qsr": "Fast Food",
    "takeout": "Fast Food",
    "take out": "Fast Food",
    # Dining
    "dining out": "Dining",
    "restaurant": "Dining",
    "restaurants": "Dining",
    "date night": "Dining",
    # Groceries
    "grocery": "Groceries",
    "supermarket": "Groceries",
    "super market": "Groceries",
    "market": "Groceries",
    # Fuel
    "gas": "Fuel",
    "gasoline": "Fuel",
    "petrol": "Fuel",
    # Utilities
    "utility": "Utilities",
    "home utilities": "Utilities",
    "home/utilities": "Utilities",
    "power": "Utilities",
    "electric": "Utilities",
    "electricity": "Utilities",
    "water": "Utilities",
    "internet": "Utilities",
    "wifi": "Utilities",
    "cable": "Utilities",
    # Insurance
    "auto insurance": "Insurance",
    "car insurance": "Insurance",
    "health insurance": "Insurance",
    "home insurance": "Insurance",
    "renters insurance": "Insurance",
    # Entertainment
    "movies": "Entertainment",
    "concerts": "Entertainment",
    "tickets": "Entertainment",
    "events": "Entertainment",
    "gaming": "Entertainment",
    "games": "Entertainment",
    # Shopping
    "retail": "Shopping",
    "big box": "Shopping",
    "store": "Shopping",
    "stores": "Shopping",
    "shopping/household": "Shopping",
    "household": "Shopping",
    # Amazon
    "amazon marketplace": "Amazon",
    "amazon.com": "Amazon",
    "amzn": "Amazon",
    # Starbucks
    "starbucks coffee": "Starbucks",
    "sbux": "Starbucks",
    "sbx": "Starbucks",
    # Allowance
    "kids allowance": "Allowance",
    "child allowance": "Allowance",
    "pocket money": "Allowance",
    # Vehicle/City Related
    "vehicle": "Vehicle/City Related",
    "city": "Vehicle/City Related",
    "parking": "Vehicle/City Related",
    "toll": "Vehicle/City Related",
    "tolls": "Vehicle/City Related",
    "traffic ticket": "Vehicle/City Related",
    # Income
    "income/payroll": "Income",
    "payroll": "Income",
    "salary": "Income",
    "wages": "Income",
    "direct deposit": "Income",
    # Transfers
    "transfer": "Transfers",
    "transfer:savings": "Transfers",
    "transfer:investing": "Transfers",
    "savings transfer": "Transfers",
    "move to savings": "Transfers",
    "brokerage transfer": "Transfers",
    "401k": "Transfers",
    # Housing
    "rent": "Housing",
    "mortgage": "Housing",
    "rent/mortgage": "Housing",
    # Debt
    "debt payment": "Debt",
    "loan payment": "Debt",
    "credit card payment": "Debt",
    "student loan": "Debt",
    "personal loan": "Debt",
    # Impulse/Misc
    "impulse": "Impulse/Misc",
    "misc": "Impulse/Misc",
    "miscellaneous": "Impulse/Misc",
    "one-off": "Impulse/Misc",
    "gifts": "Impulse/Misc",
    # Doctors
    "doctor": "Doctors",
    "medical": "Doctors",
    "clinic": "Doctors",
    "copay": "Doctors",
    "co-pay": "Doctors",
    "healthcare": "Doctors",
    "dentist": "Doctors",
    "dental": "Doctors",
    # Memberships
    "membership": "Memberships",
    "gym membership": "Memberships",
    "warehouse club": "Memberships",
    # Subscriptions
    "subscription": "Subscriptions",
    "streaming": "Subscriptions",
    # Cash Back
    "cashback": "Cash Back",
    "cash-back": "Cash Back",
    # Travel
    "airfare": "Travel",
    "flight": "Travel",
    "flights": "Travel",
    "hotel": "Travel",
    "hotels": "Travel",
    "lodging": "Travel",
    "car rental": "Travel",
    "rideshare": "Travel",
    # Kids/School
    "kids": "Kids/School",
    "school": "Kids/School",
    "tuition": "Kids/School",
    "childcare": "Kids/School",
    # Uncategorized
    "uncategorised": UNCATEGORIZED,
    "other": UNCATEGORIZED,
}


def _tidy(s: str) -> str:
    s = re.sub(r"\s*:\s*", ":", s.lower())
    s = re.sub(r"\s*/\s*", "/", s)
    return re.sub(r"\s+", " ", s).strip()


def canonicalize_category_name(name: str | None, extra: Iterable[str] = ()) -> str:
    """Map a user-entered category label onto a canonical name.

    ``extra`` holds user-defined categories that pass through unchanged
    (matched case-insensitively). Anything unrecognized becomes
    ``"Uncategorized"``.
    """

    raw = (name or "").strip()
    if not raw:
        return UNCATEGORIZED
    key = _tidy(raw)
    if key in _CANON_BY_LOWER:
        return _CANON_BY_LOWER[key]
    mapped = ALIAS_TO_CANON.get(key)
    if mapped:
        return mapped

    if key.startswith("transfer"):
        return "Transfers"
    if "amazon" in key:
        return "Amazon"
    if key.startswith("starbucks"):
        return "Starbucks"

    for custom in extra:
        if custom and _tidy(custom) == key:
            return custom.strip()
    return UNCATEGORIZED


def is_income_category(category: str) -> bool:
    v = (category or "").strip().lower()
    return any(frag in v for frag in ("income", "payroll", "salary", "deposit", "refund"))


__all__ = [
    "ALIAS_TO_CANON",
    "CANON_CATEGORIES",
    "UNCATEGORIZED",
    "canonicalize_category_name",
    "is_income_category",
]
