"""Brand catalog: canonical category -> literal merchant terms.

Terms are compiled once into tolerant, case-insensitive regexes: whitespace
inside a term also matches hyphens (``"chick fil a"`` matches
``"CHICK-FIL-A"``) and word boundaries are enforced wherever the term starts
or ends with a word character.
"""

from __future__ import annotations

import re
from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass

type BrandTerms = Mapping[str, Sequence[str]]

DEFAULT_BRAND_TERMS: dict[str, tuple[str, ...]] = {
    "Starbucks": ("starbucks", "sbux"),
    "Fast Food": (
        "mcdonald",
        "burger king",
        "chick fil a",
        "wendy's",
        "taco bell",
        "kfc",
        "subway",
        "five guys",
        "panda express",
        "chipotle",
        "panera",
        "popeyes",
        "jersey mike",
        "wingstop",
    ),
    "Groceries": (
        "harris teeter",
        "food lion",
        "kroger",
        "publix",
        "aldi",
        "whole foods",
        "safeway",
        "wegmans",
        "trader joe",
    ),
    "Fuel": ("shell", "exxon", "chevron", "bp#", "circle k", "7 eleven", "sunoco", "wawa"),
    "Amazon": ("amazon", "amzn"),
    "Shopping": ("target", "walmart", "best buy", "home depot", "lowe's"),
    "Subscriptions": (
        "netflix",
        "hulu",
        "spotify",
        "adobe",
        "apple.com/bill",
        "prime video",
        "discovery+",
        "hp instant ink",
        "buzzsprout",
    ),
    "Utilities": (
        "dominion energy",
        "virginia natural gas",
        "t mobile",
        "cox comm",
        "verizon",
        "xfinity",
    ),
    "Insurance": ("progressive", "geico", "state farm", "pac life", "allstate"),
    "Entertainment": ("cinema cafe", "amc theatres", "regal cinemas"),
    "Memberships": ("club pilates", "ymca", "planet fitness", "costco"),
    "Kids/School": ("school of rock",),
    "Debt": (
        "navient",
        "nelnet",
        "aidvantage",
        "mohela",
        "sallie mae",
        "truist ln",
    ),
}


def term_to_regex(term: str) -> re.Pattern[str]:
    """Compile one catalog term into a tolerant, boundary-anchored regex."""

    parts = [re.escape(p) for p in term.strip().split()]
    body = r"[\s\-]*".join(parts)
    head = r"\b" if term.strip()[:1].isalnum() else ""
    tail = r"\b" if term.strip()[-1:].isalnum() else ""
    return re.compile(f"{head}{body}{tail}", re.IGNORECASE)


@dataclass(frozen=True, slots=True)
class BrandCatalog:
    entries: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...]

    @classmethod
    def from_terms(cls, terms: BrandTerms) -> BrandCatalog:
        return cls(
            entries=tuple(
                (category, tuple(term_to_regex(t) for t in ts if t.strip()))
                for category, ts in terms.items()
            )
        )

    @property
    def categories(self) -> tuple[str, ...]:
        return tuple(cat for cat, _ in self.entries)

    def infer(self, description: str, *, exclude: Collection[str] = ()) -> str | None:
        """First category (catalog order) with a term matching ``description``."""

        text = description or ""
        for category, patterns in self.entries:
            if category in exclude:
                continue
            if any(p.search(text) for p in patterns):
                return category
        return None


DEFAULT_CATALOG = BrandCatalog.from_terms(DEFAULT_BRAND_TERMS)


def infer_category_from_brands(description: str, catalog: BrandCatalog | None = None) -> str | None:
    return (catalog or DEFAULT_CATALOG).infer(description)


__all__ = [
    "BrandCatalog",
    "BrandTerms",
    "DEFAULT_BRAND_TERMS",
    "DEFAULT_CATALOG",
    "infer_category_from_brands",
    "term_to_regex",
]
