"""Import pipeline: pasted statement text to a cached monthly snapshot.

Stages, in order::

    RAW -> NORMALIZED -> BLOCKS -> {LEARNED_PROFILE | PARSE_WITH_EXISTING_PROFILE}
        -> PARSED_ROWS -> ENRICHED -> CATEGORIZED -> SNAPSHOT_CACHED

Nothing here raises for heuristic failures. A missing profile falls back to
the block parser, an unparseable paste produces an empty row set, and a
month that cannot be determined stops the pipeline before the snapshot is
written. ``ImportResult.stages`` reports how far an import got.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal
from enum import StrEnum

from pydantic import TypeAdapter

from .config import LedgerConfig
from .enrich import enrich
from .logging_setup import get_logger
from .models import ExtractionProfile, SnapshotInputs, StatementSnapshot, Transaction
from .normalizers import normalize
from .parser import parse_block_groups, parse_profile_blocks, statement_blocks
from .persistence import PersistencePort, ns_key, read_model, write_model
from .profiles import LearnResult, learn_profile
from .rules import seed_category_rules
from .ruleset import RuleSet, load_ruleset
from .statements import SnapshotStore, empty_statement, infer_month_from_pages, maybe_auto_fix_inputs

logger = get_logger("statement_ledger.importer")

PROFILE_KEY = "profile.v1"

_PROFILE_ADAPTER: TypeAdapter[ExtractionProfile | None] = TypeAdapter(ExtractionProfile | None)


class Stage(StrEnum):
    RAW = "RAW"
    NORMALIZED = "NORMALIZED"
    BLOCKS = "BLOCKS"
    LEARNED_PROFILE = "LEARNED_PROFILE"
    PARSE_WITH_EXISTING_PROFILE = "PARSE_WITH_EXISTING_PROFILE"
    PARSED_ROWS = "PARSED_ROWS"
    ENRICHED = "ENRICHED"
    CATEGORIZED = "CATEGORIZED"
    SNAPSHOT_CACHED = "SNAPSHOT_CACHED"


@dataclass(frozen=True, slots=True)
class ImportResult:
    stages: tuple[Stage, ...]
    transactions: tuple[Transaction, ...]
    snapshot: StatementSnapshot | None = None
    profile: ExtractionProfile | None = None
    learned: LearnResult | None = None
    auto_fixed: bool = False

    @property
    def reached(self) -> Stage:
        return self.stages[-1]


def read_profile(port: PersistencePort, namespace: str = "real") -> ExtractionProfile | None:
    return read_model(port, ns_key(namespace, PROFILE_KEY), _PROFILE_ADAPTER, None)


def write_profile(port: PersistencePort, profile: ExtractionProfile, namespace: str = "real") -> None:
    write_model(port, ns_key(namespace, PROFILE_KEY), _PROFILE_ADAPTER, profile)


def _month_from_rows(rows: Sequence[Transaction]) -> int | None:
    for tx in rows:
        if tx.iso_date and len(tx.iso_date) >= 7:
            return int(tx.iso_date[5:7])
    return None


def import_statement(
    port: PersistencePort,
    text: str,
    *,
    year: int,
    month: int | None = None,
    samples: Sequence[str] = (),
    profile: ExtractionProfile | None = None,
    config: LedgerConfig | None = None,
    ruleset: RuleSet | None = None,
    label: str | None = None,
    beginning_balance: Decimal | None = None,
    total_deposits: Decimal | None = None,
    total_withdrawals: Decimal | None = None,
    seed: bool = True,
) -> ImportResult:
    """Parse, enrich and categorize ``text`` and cache it as the month's snapshot.

    Parameters
    ----------
    port:
        Store for the profile, rules and snapshot index.
    text:
        Raw pasted statement text (one or more pages joined).
    year, month:
        Statement period. ``month`` is inferred from the text, then from the
        parsed dates, when omitted.
    samples:
        Exemplar lines. When given, a new profile is learned and stored;
        otherwise the given or stored profile is used, and without any
        profile the block parser runs.
    beginning_balance, total_deposits, total_withdrawals:
        User-entered totals. Stale totals are replaced by parsed ones.

    Returns
    -------
    ImportResult
        The stages reached, the categorized rows and the stored snapshot.
    """

    cfg = config or LedgerConfig()
    ns = cfg.namespace
    stages: list[Stage] = [Stage.RAW]

    if seed:
        seed_category_rules(port, ns)
    rules = ruleset or load_ruleset(port, namespace=ns, config=cfg)

    normalized = normalize(text)
    stages.append(Stage.NORMALIZED)
    blocks = statement_blocks(normalized)
    stages.append(Stage.BLOCKS)

    learned: LearnResult | None = None
    active = profile
    if samples:
        learned = learn_profile(samples)
        if learned.profile is not None:
            active = learned.profile
            write_profile(port, active, ns)
            stages.append(Stage.LEARNED_PROFILE)
    if active is None:
        active = read_profile(port, ns)
    if active is not None and Stage.LEARNED_PROFILE not in stages:
        stages.append(Stage.PARSE_WITH_EXISTING_PROFILE)

    rows = parse_profile_blocks(active, blocks) if active is not None else []
    if not rows:
        if active is not None:
            logger.info("Profile matched no blocks; falling back to block parsing")
        rows = parse_block_groups(blocks)
    stages.append(Stage.PARSED_ROWS)
    logger.info("Parsed %d rows from %d blocks", len(rows), len(blocks))

    date_fmt = active.date_fmt if active is not None else "MM/DD/YYYY"
    enriched = [
        enrich(
            row,
            config=cfg,
            stmt_year=year,
            date_fmt=date_fmt,
            alias_label=rules.alias_for(row.description),
        )
        for row in rows
    ]
    stages.append(Stage.ENRICHED)

    txs = rules.categorize(rules.apply_polarity(enriched))
    stages.append(Stage.CATEGORIZED)

    stmt_month = month or infer_month_from_pages([text]) or _month_from_rows(txs)
    if stmt_month is None or not 1 <= stmt_month <= 12:
        logger.info("Could not determine the statement month; snapshot not written")
        return ImportResult(
            stages=tuple(stages), transactions=tuple(txs), profile=active, learned=learned
        )

    store = SnapshotStore(port, ns)
    base = empty_statement(year, stmt_month, label)
    existing = store.read(base.id) or base
    inputs = SnapshotInputs(
        beginning_balance=(
            existing.inputs.beginning_balance if beginning_balance is None else beginning_balance
        ),
        total_deposits=existing.inputs.total_deposits if total_deposits is None else total_deposits,
        total_withdrawals=(
            existing.inputs.total_withdrawals if total_withdrawals is None else total_withdrawals
        ),
    )
    snapshot = existing.model_copy(
        update={
            "label": label or existing.label,
            "inputs": inputs,
            "pages_raw": tuple(p for p in (text.strip(),) if p),
            "cached_tx": tuple(txs),
            "source": "import",
        }
    )
    fixed = maybe_auto_fix_inputs(snapshot, txs, threshold=cfg.drift_threshold)
    store.upsert(fixed or snapshot)
    stages.append(Stage.SNAPSHOT_CACHED)

    return ImportResult(
        stages=tuple(stages),
        transactions=tuple(txs),
        snapshot=fixed or snapshot,
        profile=active,
        learned=learned,
        auto_fixed=fixed is not None,
    )


__all__ = [
    "ImportResult",
    "PROFILE_KEY",
    "Stage",
    "import_statement",
    "read_profile",
    "write_profile",
]
