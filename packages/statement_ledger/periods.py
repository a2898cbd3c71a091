"""Build the transaction set behind a CURRENT or YTD view."""

from __future__ import annotations

from collections.abc import Sequence

from .logging_setup import get_logger
from .models import Period, Transaction
from .ruleset import RuleSet, snapshot_rows
from .statements import SnapshotStore

logger = get_logger("statement_ledger.periods")


def coerce_period(value: Period | str) -> Period:
    """``Period`` from its name (case-insensitive); ``ValueError`` otherwise."""

    if isinstance(value, Period):
        return value
    try:
        return Period(str(value).strip().upper())
    except ValueError:
        raise ValueError(f"unknown period {value!r}; expected CURRENT or YTD") from None


def rows_for_period(
    period: Period | str,
    store: SnapshotStore,
    ruleset: RuleSet,
    *,
    live_rows: Sequence[Transaction] = (),
    anchor_id: str | None = None,
    query_param: str | None = None,
) -> list[Transaction]:
    """Rows for ``period`` anchored at a statement month.

    The anchor is ``anchor_id`` when given, else the selected month (a
    ``statement=YYYY-MM`` query value beats the stored selection).

    CURRENT returns ``live_rows`` unchanged. YTD unions the cached rows of
    every snapshot in the anchor's year up to and including the anchor month
    (the anchor contributes ``live_rows`` when it is the open month), then
    reapplies ``ruleset``. Stored snapshots are not modified.
    """

    p = coerce_period(period)
    index = store.list_index()
    anchor_key = anchor_id or store.resolve_current_id(query_param)
    anchor = index.get(anchor_key) if anchor_key else None
    if p is Period.CURRENT or anchor is None:
        return list(live_rows)

    open_id = store.resolve_current_id(query_param)
    rows: list[Transaction] = []
    months = 0
    for snapshot in sorted(index.values(), key=lambda s: s.stmt_month):
        if snapshot.stmt_year != anchor.stmt_year or snapshot.stmt_month > anchor.stmt_month:
            continue
        months += 1
        if snapshot.id == anchor.id and snapshot.id == open_id and live_rows:
            rows.extend(live_rows)
        else:
            rows.extend(snapshot_rows(snapshot, ruleset))

    logger.debug("YTD through %s: %d rows from %d months", anchor.id, len(rows), months)
    return ruleset.categorize(rows)


__all__ = ["coerce_period", "rows_for_period"]
