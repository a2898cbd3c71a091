"""The current rule set and operations that reapply it to stored data.

``RuleSet`` bundles the category, alias and polarity rules loaded from the
store so callers can categorize any batch of rows against today's rules
without touching the stored snapshots.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .aliases import apply_aliases_to_rows, make_alias_fn, read_aliases
from .brands import DEFAULT_CATALOG, BrandCatalog
from .cashback import tag_cash_back_line
from .config import LedgerConfig
from .enrich import enrich, strip_auth_and_card
from .logging_setup import get_logger
from .models import AliasRule, CategoryRule, PolarityRule, StatementSnapshot, Transaction
from .normalizers import normalize
from .parser import parse_blocks
from .persistence import PersistencePort
from .polarity import DEFAULT_SCOPE, apply_polarity_rules, read_polarity_rules
from .rules import apply_category_rules, candidate_keys, read_category_rules
from .statements import SnapshotStore

logger = get_logger("statement_ledger.ruleset")

# Too generic to say two rows are the same merchant
GENERIC_TOKENS: frozenset[str] = frozenset(
    {
        "store",
        "market",
        "supermarket",
        "mart",
        "fuel",
        "gas",
        "station",
        "pharmacy",
        "shop",
        "online",
        "purchase",
        "payment",
        "services",
        "service",
        "llc",
        "inc",
        "the",
        "transfer",
        "bank",
        "banking",
        "account",
        "ref",
    }
)


@dataclass(frozen=True, slots=True)
class RuleSet:
    category_rules: tuple[CategoryRule, ...] = ()
    aliases: tuple[AliasRule, ...] = ()
    polarity: tuple[PolarityRule, ...] = ()
    catalog: BrandCatalog = DEFAULT_CATALOG
    config: LedgerConfig = field(default_factory=LedgerConfig)

    def alias_for(self, description: str) -> str | None:
        return make_alias_fn(self.aliases)(description)

    def categorize(self, rows: Iterable[Transaction]) -> list[Transaction]:
        """Aliases, then category rules, then the cash-back line fix-up.

        Deterministic and idempotent: applying it twice equals applying it once.
        """

        rows = apply_aliases_to_rows(self.aliases, rows)
        rows = apply_category_rules(
            self.category_rules,
            rows,
            alias_fn=make_alias_fn(self.aliases),
            catalog=self.catalog,
        )
        return tag_cash_back_line(rows, fallback=self.config.fallback_category)

    def apply_polarity(self, rows: Iterable[Transaction]) -> list[Transaction]:
        return apply_polarity_rules(self.polarity, rows)


def load_ruleset(
    port: PersistencePort,
    *,
    namespace: str = "real",
    polarity_scope: str = DEFAULT_SCOPE,
    config: LedgerConfig | None = None,
    catalog: BrandCatalog = DEFAULT_CATALOG,
) -> RuleSet:
    return RuleSet(
        category_rules=tuple(read_category_rules(port, namespace)),
        aliases=tuple(read_aliases(port, namespace)),
        polarity=tuple(read_polarity_rules(port, polarity_scope, namespace=namespace)),
        catalog=catalog,
        config=config or LedgerConfig(namespace=namespace),
    )


def rebuild_from_pages(pages: Sequence[str], stmt_year: int, ruleset: RuleSet) -> list[Transaction]:
    """Re-parse stored page text with the block parser and enrich every row."""

    text = "\n".join(normalize(p) for p in pages)
    rows = [
        enrich(
            row,
            config=ruleset.config,
            stmt_year=stmt_year,
            alias_label=ruleset.alias_for(row.description),
        )
        for row in parse_blocks(text)
    ]
    return ruleset.apply_polarity(rows)


def snapshot_rows(snapshot: StatementSnapshot, ruleset: RuleSet) -> list[Transaction]:
    """Cached rows of a snapshot, rebuilt from its pages when the cache is empty."""

    if snapshot.cached_tx:
        return list(snapshot.cached_tx)
    if snapshot.pages_raw:
        logger.debug("Rebuilding %s from %d pages", snapshot.id, len(snapshot.pages_raw))
        return rebuild_from_pages(snapshot.pages_raw, snapshot.stmt_year, ruleset)
    return []


# ---------------------------------------------------------------------------
# Bulk override
# ---------------------------------------------------------------------------


def merchant_token_set(description: str, ruleset: RuleSet | None = None) -> set[str]:
    """Distinctive ``tok:`` bodies identifying the merchant of a description."""

    alias = ruleset.alias_for(strip_auth_and_card(description)) if ruleset else None
    out: set[str] = set()
    for key in candidate_keys(description or "", alias):
        if not key.startswith("tok:"):
            continue
        tok = key[4:].lower()
        if len(tok) <= 3 or tok in GENERIC_TOKENS:
            continue
        out.add(tok)
    return out


def bulk_apply_override(
    store: SnapshotStore,
    anchor_description: str,
    label: str,
    ruleset: RuleSet,
) -> int:
    """Set ``category_override`` on same-merchant withdrawals in every snapshot.

    Rows match when their merchant tokens intersect the anchor's. Each touched
    snapshot is recategorized with ``ruleset`` first. Returns the number of
    rows overridden.
    """

    anchor = merchant_token_set(anchor_description, ruleset)
    if not anchor:
        return 0

    index = store.list_index()
    changed = 0
    for statement_id, snapshot in index.items():
        rows = ruleset.categorize(snapshot_rows(snapshot, ruleset))
        hits = {
            tx.id
            for tx in rows
            if tx.amount < 0
            and (tx.description or "").strip()
            and anchor & merchant_token_set(tx.description, ruleset)
        }
        if not hits:
            continue
        rows = [tx.model_copy(update={"category_override": label}) if tx.id in hits else tx for tx in rows]
        index[statement_id] = snapshot.model_copy(update={"cached_tx": tuple(rows)})
        changed += len(hits)

    if changed:
        store.write_index(index)
        logger.info("Bulk override %r applied to %d rows", label, changed)
    return changed


__all__ = [
    "GENERIC_TOKENS",
    "RuleSet",
    "bulk_apply_override",
    "load_ruleset",
    "merchant_token_set",
    "rebuild_from_pages",
    "snapshot_rows",
]
