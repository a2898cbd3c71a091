"""Merchant alias rules: collapse noisy descriptions onto a display label."""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from collections.abc import Iterable, Sequence

from pydantic import TypeAdapter

from .enrich import recurrence_key, strip_auth_and_card
from .logging_setup import get_logger
from .models import AliasMode, AliasRule, Transaction
from .persistence import PersistencePort, ns_key, read_model, write_model
from .rules import AliasFn, compile_rule_pattern

logger = get_logger("statement_ledger.aliases")

ALIASES_KEY = "aliases.v1"

_ALIASES_ADAPTER: TypeAdapter[list[AliasRule]] = TypeAdapter(list[AliasRule])

COMMON_ALIASES: tuple[tuple[str, str], ...] = (
    ("harris te", "Harris Teeter"),
    ("food lion", "Food Lion"),
    ("home depot", "Home Depot"),
    ("target", "Target"),
    ("amazon", "Amazon"),
    ("amzn.com/bill", "Amazon"),
    ("prime video", "Amazon"),
    ("t-mobile", "T-Mobile"),
    ("cox comm", "Cox Communications"),
    ("dominion energy", "Dominion Energy"),
    ("virginia natural gas", "Virginia Natural Gas"),
    ("progressive", "Progressive Insurance"),
    ("pac life", "Pacific Life Insurance"),
    ("hp instant ink", "HP Instant Ink"),
    ("apple.com/bill", "Apple.com/Bill"),
    ("adobe", "Adobe"),
    ("buzzsprout", "Buzzsprout"),
    ("discovery+", "Discovery+"),
    ("netflix", "Netflix"),
    ("school of rock", "School of Rock"),
    ("butcher's son", "The Butcher's Son"),
    ("butchers son", "The Butcher's Son"),
    ("chick-fil-a", "Chick-fil-A"),
    ("cinema cafe", "Cinema Cafe"),
    ("shell ", "Fuel Station"),
    ("exxon", "Fuel Station"),
    ("circle k", "Fuel Station"),
    (" 7-eleven", "Fuel Station"),
    ("chevron", "Fuel Station"),
    ("bp#", "Fuel Station"),
    ("starbucks", "Starbucks"),
)


def alias_id(pattern: str, mode: AliasMode) -> str:
    return hashlib.sha1(f"{mode}:{pattern}".encode()).hexdigest()[:8]


def make_alias_fn(rules: Sequence[AliasRule]) -> AliasFn:
    """Build a matcher over ``rules`` (first match wins).

    Regex rules are compiled once, case-insensitive; a rule that does not
    compile is skipped and the rest still apply.
    """

    compiled: list[tuple[AliasRule, re.Pattern[str] | None]] = []
    for rule in rules:
        if rule.mode == "regex":
            pattern = compile_rule_pattern(rule.pattern)
            if pattern is None:
                continue
            compiled.append((rule, pattern))
        else:
            compiled.append((rule, None))

    def _match(description: str) -> str | None:
        hay = strip_auth_and_card(description or "").lower()
        for rule, pattern in compiled:
            if pattern is not None:
                if pattern.search(hay):
                    return rule.label
            elif rule.mode == "prefix":
                if hay.startswith(rule.pattern.lower()):
                    return rule.label
            elif rule.pattern.lower() in hay:
                return rule.label
        return None

    return _match


def apply_alias(rules: Sequence[AliasRule], description: str) -> str | None:
    return make_alias_fn(rules)(description)


def apply_aliases_to_rows(rules: Sequence[AliasRule], rows: Iterable[Transaction]) -> list[Transaction]:
    """Set ``merchant`` to the alias label on every row an alias matches.

    The row's ``recurrence_key`` follows the label so relabeled rows group
    with rows imported under the alias.
    """

    match = make_alias_fn(rules)
    out: list[Transaction] = []
    for tx in rows:
        label = match(tx.description)
        if label and label != tx.merchant:
            tx = tx.model_copy(
                update={"merchant": label, "recurrence_key": recurrence_key(tx.description, label)}
            )
        out.append(tx)
    return out


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def read_aliases(port: PersistencePort, namespace: str = "real") -> list[AliasRule]:
    return read_model(port, ns_key(namespace, ALIASES_KEY), _ALIASES_ADAPTER, [])


def write_aliases(port: PersistencePort, rules: Sequence[AliasRule], namespace: str = "real") -> None:
    write_model(port, ns_key(namespace, ALIASES_KEY), _ALIASES_ADAPTER, list(rules))


def seed_common_aliases(port: PersistencePort, namespace: str = "real") -> list[AliasRule]:
    """Add the common merchant aliases that are not already present."""

    current = read_aliases(port, namespace)
    have = {(r.pattern, r.mode, r.label) for r in current}
    added = [
        AliasRule(pattern=pattern, label=label, mode="contains", id=alias_id(pattern, "contains"))
        for pattern, label in COMMON_ALIASES
        if (pattern, "contains", label) not in have
    ]
    rules = current + added
    write_aliases(port, rules, namespace)
    return rules


def _vendor_phrase(description: str) -> str:
    s = strip_auth_and_card(description).lower()
    s = re.sub(r"#\s*\d+", " ", s)
    s = re.sub(r"card\s*\d{4}", " ", s)
    s = re.sub(r"[^a-z\s]", " ", s)
    toks = [t for t in s.split() if len(t) > 2]
    return " ".join(toks[:2])


def learn_aliases_from_transactions(
    port: PersistencePort,
    rows: Iterable[Transaction],
    *,
    namespace: str = "real",
    min_count: int = 2,
) -> list[AliasRule]:
    """Turn vendor phrases seen at least ``min_count`` times into contains-aliases.

    The phrase is the first two words (longer than two letters) of the cleaned
    description; its label is the title-cased phrase.
    """

    freq = Counter(p for p in (_vendor_phrase(r.description) for r in rows) if p)
    rules = read_aliases(port, namespace)
    existing = {r.pattern for r in rules if r.mode == "contains"}
    for phrase, n in freq.items():
        if n < min_count or phrase in existing:
            continue
        rules.append(
            AliasRule(pattern=phrase, label=phrase.title(), mode="contains", id=alias_id(phrase, "contains"))
        )
        existing.add(phrase)
        logger.debug("Learned alias %r from %d rows", phrase, n)
    write_aliases(port, rules, namespace)
    return rules


__all__ = [
    "COMMON_ALIASES",
    "alias_id",
    "apply_alias",
    "apply_aliases_to_rows",
    "learn_aliases_from_transactions",
    "make_alias_fn",
    "read_aliases",
    "seed_common_aliases",
    "write_aliases",
]
