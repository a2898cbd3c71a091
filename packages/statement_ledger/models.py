"""Data models and type aliases for ``statement_ledger``.

Two families live here:

- Ephemeral, in-process records (``ParsedRow``, ``AmountPick``,
  ``RecurringRow``...) are frozen ``dataclass`` instances.
- Shapes that are persisted through the persistence port (``Transaction``,
  ``ExtractionProfile``, ``StatementSnapshot`` and the rule records) are
  pydantic models. They serialize with camelCase aliases so the stored JSON
  matches the documented external format, and they accept either the alias
  or the Python field name on input.

Amounts are ``Decimal`` throughout. ``Transaction.amount`` is signed and is
the single source of truth for direction: negative is a withdrawal, positive
a deposit.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

type TxKind = Literal["withdrawal", "deposit"]
type Direction = Literal["INCOME", "EXPENSE"]
type AmountSource = Literal["eol-pair", "single", "none"]
type RuleSource = Literal["brand", "user", "alias"]
type AliasMode = Literal["contains", "prefix", "regex"]
type DateFmt = Literal["MM/DD/YYYY", "DD/MM/YYYY", "YYYY-MM-DD"]

_ZERO = Decimal("0")


class Period(StrEnum):
    """Aggregation window for dashboards and reports."""

    CURRENT = "CURRENT"
    YTD = "YTD"


class _Persisted(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
        extra="ignore",
    )


# ---------------------------------------------------------------------------
# Parsing records
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AmountPick:
    """Result of picking the transaction amount out of a single line."""

    amount: Decimal | None
    running_balance: Decimal | None
    source: AmountSource
    tokens: tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class ParsedRow:
    """One statement line matched by a profile (or by the block heuristic).

    ``amount`` is unsigned; ``kind`` carries the direction until enrichment
    folds it into the sign of ``Transaction.amount``.
    """

    id: str
    date: str
    description: str
    amount: Decimal
    kind: TxKind
    source_line: str
    card_last4: str | None = None
    notes: str = ""


@dataclass(frozen=True, slots=True)
class LineMatch:
    """Per-sample report produced by the profile learner."""

    line: str
    ok: bool
    date: str = ""
    description: str = ""
    amount: str = ""
    card_last4: str = ""


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class Transaction(_Persisted):
    """An enriched, categorized row.

    Rule application never rewrites ``category_override``; the effective
    category is the override when present, else ``category``.
    """

    id: str
    date: str
    description: str
    amount: Decimal
    category: str = "Uncategorized"
    category_override: str | None = None
    merchant: str | None = None
    card_last4: str | None = None
    spender: str = "Unknown"
    cashback: Decimal = _ZERO
    recurrence_key: str = ""
    day: int = 0
    iso_date: str | None = None
    source_line: str = ""
    notes: str = ""

    @property
    def kind(self) -> TxKind:
        return "withdrawal" if self.amount < 0 else "deposit"

    @property
    def direction(self) -> Direction:
        return "EXPENSE" if self.amount < 0 else "INCOME"

    @property
    def effective_category(self) -> str:
        override = (self.category_override or "").strip()
        return override or (self.category or "").strip() or "Uncategorized"


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------


class CategoryRule(_Persisted):
    """Maps a match key (``alias:``, ``str:`` or ``tok:`` prefixed) to a category."""

    key: str
    category: str
    source: RuleSource = "user"


class AliasRule(_Persisted):
    """Renames or collapses a merchant string to a display label."""

    pattern: str
    label: str
    mode: AliasMode = "contains"
    id: str | None = None

    @field_validator("mode", mode="before")
    @classmethod
    def _legacy_prefix_mode(cls, v: object) -> object:
        # Older stores spelled the prefix mode "startsWith".
        return "prefix" if v == "startsWith" else v


class PolarityRule(_Persisted):
    """Forces a sign for descriptions matching ``pattern`` (case-insensitive)."""

    pattern: str
    polarity: TxKind = Field(alias="as")
    added_at: int | None = None


# ---------------------------------------------------------------------------
# Extraction profile
# ---------------------------------------------------------------------------


class GroupMap(_Persisted):
    """Named capture groups used by a profile regex."""

    date: str = "date"
    description: str = "description"
    amount: str = "amount"
    card_last4: str | None = "card_last4"


class Preprocess(_Persisted):
    trim_extra_spaces: bool = True
    strip_phone_numbers: bool = False
    strip_leading_tags: tuple[str, ...] = ()


class ExtractionProfile(_Persisted):
    """A learned grammar for one statement layout.

    Only the regex *source* is stored; callers compile it at use.
    """

    version: Literal[1] = 1
    unified: bool = True
    unified_regex: str
    groups: GroupMap = GroupMap()
    date_fmt: DateFmt = "MM/DD/YYYY"
    infer_debit_if_no_sign: bool = True
    preprocess: Preprocess = Preprocess()


# ---------------------------------------------------------------------------
# Statement snapshots
# ---------------------------------------------------------------------------


class SnapshotInputs(_Persisted):
    """User-entered statement totals."""

    beginning_balance: Decimal = _ZERO
    total_deposits: Decimal = _ZERO
    total_withdrawals: Decimal = _ZERO


class StatementSnapshot(_Persisted):
    """Persisted state for one calendar month (id ``YYYY-MM``)."""

    id: str
    label: str
    stmt_year: int
    stmt_month: int = Field(ge=1, le=12)
    inputs: SnapshotInputs = SnapshotInputs()
    pages_raw: tuple[str, ...] = ()
    cached_tx: tuple[Transaction, ...] = ()
    source: str | None = None


# ---------------------------------------------------------------------------
# Derived views
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ParsedTotals:
    deposits: Decimal
    withdrawals: Decimal


@dataclass(frozen=True, slots=True)
class Summary:
    """Monthly rollup, recomputed on demand."""

    month_id: str
    deposits: Decimal
    withdrawals: Decimal
    ending_balance: Decimal
    spend_by_category: dict[str, Decimal]


@dataclass(frozen=True, slots=True)
class RecurringRow:
    description: str
    day: int
    avg_amount: Decimal
    type: Direction
    category: str


@dataclass(frozen=True, slots=True)
class ForecastPoint:
    day: int
    balance: Decimal


__all__ = [
    "AliasMode",
    "AliasRule",
    "AmountPick",
    "AmountSource",
    "CategoryRule",
    "DateFmt",
    "Direction",
    "ExtractionProfile",
    "ForecastPoint",
    "GroupMap",
    "LineMatch",
    "ParsedRow",
    "ParsedTotals",
    "Period",
    "PolarityRule",
    "Preprocess",
    "RecurringRow",
    "RuleSource",
    "SnapshotInputs",
    "StatementSnapshot",
    "Summary",
    "Transaction",
    "TxKind",
]
