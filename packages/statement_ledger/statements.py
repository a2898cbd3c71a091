"""Statement snapshots: one persisted record per calendar month.

The snapshot index is a mapping ``{"YYYY-MM": StatementSnapshot}`` stored
under ``<namespace>::stmts.v2``; the selected month lives separately under
``<namespace>::stmts.currentId``. ``SnapshotStore`` wraps both keys over a
``PersistencePort``.

Drift handling compares user-entered totals with totals parsed from the
snapshot's transactions and replaces stale entries (see
``maybe_auto_fix_inputs``).
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Mapping
from decimal import Decimal
from typing import Any

from pydantic import TypeAdapter

from .amounts import quantize
from .config import DEFAULT_DRIFT_THRESHOLD
from .logging_setup import get_logger
from .models import ParsedTotals, SnapshotInputs, StatementSnapshot, Transaction
from .persistence import PersistencePort, ns_key, read_model, write_model

logger = get_logger("statement_ledger.statements")

INDEX_KEY = "stmts.v2"
CURRENT_KEY = "stmts.currentId"

MONTHS: tuple[str, ...] = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)

_ID_RE = re.compile(r"^(\d{4})-(\d{2})$")
_BEGINNING_RE = re.compile(r"Beginning\s+balance\s+on\s+(\d{1,2})/\d{1,2}", re.IGNORECASE)
_FIRST_MMDD_RE = re.compile(r"\b(\d{1,2})/(\d{1,2})\b")

_INDEX_ADAPTER: TypeAdapter[dict[str, StatementSnapshot]] = TypeAdapter(dict[str, StatementSnapshot])

_ZERO = Decimal("0")


# ---------------------------------------------------------------------------
# Month helpers
# ---------------------------------------------------------------------------


def month_label(month: int) -> str:
    return MONTHS[month - 1] if 1 <= month <= 12 else ""


def make_id(year: int, month: int) -> str:
    """``YYYY-MM`` id for a statement month; ``ValueError`` when out of range."""

    if not 1 <= month <= 12:
        raise ValueError(f"month must be in 1..12, got {month}")
    if not 1 <= year <= 9999:
        raise ValueError(f"year out of range: {year}")
    return f"{year:04d}-{month:02d}"


def parse_id(statement_id: str) -> tuple[int, int] | None:
    m = _ID_RE.match(statement_id or "")
    if m is None:
        return None
    year, month = int(m.group(1)), int(m.group(2))
    return (year, month) if 1 <= month <= 12 else None


def next_month(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def empty_statement(year: int, month: int, label: str | None = None) -> StatementSnapshot:
    return StatementSnapshot(
        id=make_id(year, month),
        label=label or f"{month_label(month)} {year}",
        stmt_year=year,
        stmt_month=month,
    )


def normalize_pages_raw(value: Any) -> list[str]:
    """Coerce stored page text into a list of non-empty, trimmed strings.

    Accepts a single string, a list, or a mapping with numeric string keys
    (``{"0": "...", "1": "..."}``) ordered by key.
    """

    if not value:
        return []
    if isinstance(value, str):
        items: Iterable[Any] = [value]
    elif isinstance(value, (list, tuple)):
        items = value
    elif isinstance(value, Mapping):
        numeric = sorted(((k, v) for k, v in value.items() if str(k).isdigit()), key=lambda kv: int(kv[0]))
        items = [v for _, v in numeric]
    else:
        return []
    return [s for s in (str(v).strip() for v in items) if s]


def infer_month_from_pages(pages: Iterable[str]) -> int | None:
    """Statement month from ``Beginning balance on MM/DD``, else the first ``MM/DD``."""

    text = "\n".join(pages)
    m = _BEGINNING_RE.search(text)
    if m and 1 <= int(m.group(1)) <= 12:
        return int(m.group(1))
    m = _FIRST_MMDD_RE.search(text)
    if m and 1 <= int(m.group(1)) <= 12:
        return int(m.group(1))
    return None


# ---------------------------------------------------------------------------
# Totals and drift
# ---------------------------------------------------------------------------


def compute_parsed_totals(transactions: Iterable[Transaction]) -> ParsedTotals:
    """Sum of positive amounts and of absolute negative amounts."""

    deposits = _ZERO
    withdrawals = _ZERO
    for tx in transactions:
        if tx.amount > 0:
            deposits += tx.amount
        elif tx.amount < 0:
            withdrawals += -tx.amount
    return ParsedTotals(deposits=quantize(deposits), withdrawals=quantize(withdrawals))


def relative_drift(user: Decimal, parsed: Decimal) -> Decimal:
    """``|user - parsed| / user``; a zero user value counts as full drift."""

    if user <= 0:
        return Decimal("1")
    return abs(user - parsed) / user


def maybe_auto_fix_inputs(
    snapshot: StatementSnapshot,
    transactions: Iterable[Transaction],
    *,
    threshold: Decimal = DEFAULT_DRIFT_THRESHOLD,
) -> StatementSnapshot | None:
    """Return the snapshot with parsed totals when the user totals look stale.

    Stale means both user totals are zero, or either one drifts from the
    parsed total by strictly more than ``threshold``. The beginning balance is
    kept. ``None`` when no fix is needed.
    """

    parsed = compute_parsed_totals(transactions)
    dep_user = snapshot.inputs.total_deposits
    wdl_user = snapshot.inputs.total_withdrawals

    fresh = dep_user == 0 and wdl_user == 0
    dep_drift = relative_drift(dep_user, parsed.deposits)
    wdl_drift = relative_drift(wdl_user, parsed.withdrawals)
    if not (fresh or dep_drift > threshold or wdl_drift > threshold):
        return None

    logger.info(
        "Auto-fixing totals for %s (deposit drift %.2f, withdrawal drift %.2f)",
        snapshot.id,
        dep_drift,
        wdl_drift,
    )
    inputs = SnapshotInputs(
        beginning_balance=snapshot.inputs.beginning_balance,
        total_deposits=parsed.deposits,
        total_withdrawals=parsed.withdrawals,
    )
    return snapshot.model_copy(update={"inputs": inputs})


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class SnapshotStore:
    """Snapshot index plus the selected-month pointer for one namespace.

    Writes are last-writer-wins; every mutation rewrites the whole index.
    """

    def __init__(self, port: PersistencePort, namespace: str = "real") -> None:
        self.port = port
        self.namespace = namespace

    @property
    def _index_key(self) -> str:
        return ns_key(self.namespace, INDEX_KEY)

    @property
    def _current_key(self) -> str:
        return ns_key(self.namespace, CURRENT_KEY)

    def list_index(self) -> dict[str, StatementSnapshot]:
        return read_model(self.port, self._index_key, _INDEX_ADAPTER, {})

    def write_index(self, index: Mapping[str, StatementSnapshot]) -> None:
        write_model(self.port, self._index_key, _INDEX_ADAPTER, dict(index))

    def read(self, statement_id: str) -> StatementSnapshot | None:
        return self.list_index().get(statement_id)

    def upsert(self, snapshot: StatementSnapshot) -> None:
        """Insert or replace the snapshot and make it the selected month."""

        index = self.list_index()
        index[snapshot.id] = snapshot
        self.write_index(index)
        self.set_current_id(snapshot.id)

    def remove(self, statement_id: str) -> None:
        """Drop a snapshot; if it was selected, select the first remaining one."""

        index = self.list_index()
        if index.pop(statement_id, None) is None:
            return
        self.write_index(index)
        if self.current_id() == statement_id:
            self.set_current_id(next(iter(index), ""))

    def current_id(self) -> str | None:
        return self.port.get(self._current_key) or None

    def set_current_id(self, statement_id: str) -> None:
        self.port.set(self._current_key, statement_id)

    def resolve_current_id(self, query_param: str | None = None) -> str | None:
        """Selected month: a valid ``statement=YYYY-MM`` value beats the stored id.

        Falls back to the first snapshot when the stored id is missing or stale.
        """

        index = self.list_index()
        if query_param and parse_id(query_param) and query_param in index:
            return query_param
        current = self.current_id()
        if current and current in index:
            return current
        return next(iter(index), None)

    def auto_fix_inputs(
        self,
        statement_id: str,
        transactions: Iterable[Transaction] | None = None,
        *,
        threshold: Decimal = DEFAULT_DRIFT_THRESHOLD,
    ) -> StatementSnapshot | None:
        """Apply ``maybe_auto_fix_inputs`` to a stored snapshot and persist a fix."""

        snapshot = self.read(statement_id)
        if snapshot is None:
            return None
        txs = snapshot.cached_tx if transactions is None else transactions
        fixed = maybe_auto_fix_inputs(snapshot, txs, threshold=threshold)
        if fixed is not None:
            index = self.list_index()
            index[fixed.id] = fixed
            self.write_index(index)
        return fixed


__all__ = [
    "MONTHS",
    "SnapshotStore",
    "compute_parsed_totals",
    "empty_statement",
    "infer_month_from_pages",
    "make_id",
    "maybe_auto_fix_inputs",
    "month_label",
    "next_month",
    "normalize_pages_raw",
    "parse_id",
    "relative_drift",
]
