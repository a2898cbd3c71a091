"""Polarity rules: force the sign of transactions whose description matches.

Rules are stored per scope (one bucket per user or profile) under a single
key. Application is a separate pass over enriched rows; an invalid pattern is
skipped without affecting the other rules.
"""

from __future__ import annotations

import re
import time
from collections.abc import Iterable, Sequence

from pydantic import TypeAdapter

from .logging_setup import get_logger
from .models import PolarityRule, Transaction
from .persistence import PersistencePort, ns_key, read_model, write_model
from .rules import compile_rule_pattern

logger = get_logger("statement_ledger.polarity")

POLARITY_KEY = "polarityRules.v1"
DEFAULT_SCOPE = "default"

_MAP_ADAPTER: TypeAdapter[dict[str, list[PolarityRule]]] = TypeAdapter(dict[str, list[PolarityRule]])

# Words that identify a deposit/withdrawal source better than the first words do
KEEPERS: tuple[str, ...] = (
    "PAYPAL",
    "TRANSFER",
    "VAC",
    "VACP",
    "TREAS",
    "WT",
    "FED",
    "WIRE",
    "CAPITAL",
    "ONE",
    "PURCHASE",
    "RETURN",
    "AUTHORIZED",
    "EDEPOSIT",
    "DEPOSIT",
    "PAYING",
    "AGENT",
    "HOLDINGPMT",
    "REFUND",
    "INTEREST",
    "ACH",
    "CREDIT",
    "BRANCH",
    "COMPENSATION",
)


def _load(port: PersistencePort, namespace: str) -> dict[str, list[PolarityRule]]:
    return read_model(port, ns_key(namespace, POLARITY_KEY), _MAP_ADAPTER, {})


def _save(port: PersistencePort, namespace: str, all_rules: dict[str, list[PolarityRule]]) -> None:
    write_model(port, ns_key(namespace, POLARITY_KEY), _MAP_ADAPTER, all_rules)


def read_polarity_rules(
    port: PersistencePort, scope: str = DEFAULT_SCOPE, *, namespace: str = "real"
) -> list[PolarityRule]:
    return list(_load(port, namespace).get(scope, []))


def upsert_polarity_rule(
    port: PersistencePort,
    rule: PolarityRule,
    scope: str = DEFAULT_SCOPE,
    *,
    namespace: str = "real",
) -> list[PolarityRule]:
    """Append ``rule`` unless the same (pattern, polarity) pair already exists."""

    all_rules = _load(port, namespace)
    bucket = all_rules.setdefault(scope, [])
    if not any(r.pattern == rule.pattern and r.polarity == rule.polarity for r in bucket):
        bucket.append(rule.model_copy(update={"added_at": int(time.time() * 1000)}))
        _save(port, namespace, all_rules)
    return list(bucket)


def remove_polarity_rule(
    port: PersistencePort, index: int, scope: str = DEFAULT_SCOPE, *, namespace: str = "real"
) -> list[PolarityRule]:
    all_rules = _load(port, namespace)
    bucket = all_rules.setdefault(scope, [])
    if 0 <= index < len(bucket):
        del bucket[index]
        _save(port, namespace, all_rules)
    return list(bucket)


def clear_polarity_rules(port: PersistencePort, scope: str = DEFAULT_SCOPE, *, namespace: str = "real") -> None:
    all_rules = _load(port, namespace)
    all_rules[scope] = []
    _save(port, namespace, all_rules)


def apply_polarity_rules(rules: Sequence[PolarityRule], rows: Iterable[Transaction]) -> list[Transaction]:
    """Flip signs so matching rows read as the rule's polarity.

    Rules are applied in order; a later matching rule can flip a row back.
    """

    compiled = [(r, p) for r in rules if (p := compile_rule_pattern(r.pattern)) is not None]
    out: list[Transaction] = []
    for tx in rows:
        amount = tx.amount
        for rule, pattern in compiled:
            if not pattern.search(tx.description or ""):
                continue
            if rule.polarity == "deposit" and amount < 0:
                amount = abs(amount)
            elif rule.polarity == "withdrawal" and amount > 0:
                amount = -abs(amount)
        if amount != tx.amount:
            logger.debug("Polarity flip for %s: %s -> %s", tx.id, tx.amount, amount)
            tx = tx.model_copy(update={"amount": amount})
        out.append(tx)
    return out


# ---------------------------------------------------------------------------
# Pattern suggestions
# ---------------------------------------------------------------------------


def suggest_tokens(description: str) -> list[str]:
    """Up to three signal words from ``description`` (upper-cased).

    Known keepers (``TRANSFER``, ``REFUND``...) win; otherwise the first three
    non-numeric words.
    """

    words = [w for w in (description or "").upper().split() if not w.isdigit()]
    keepers = [w for w in words if w in KEEPERS]
    return (keepers or words)[:3]


def make_pattern_from_description(description: str) -> str:
    """Tolerant AND-regex ``(?=.*\\bA\\b)(?=.*\\bB\\b).*`` over suggested tokens."""

    tokens = suggest_tokens(description)
    if not tokens:
        return ".*"
    return "".join(rf"(?=.*\b{re.escape(t)}\b)" for t in tokens) + ".*"


__all__ = [
    "DEFAULT_SCOPE",
    "KEEPERS",
    "apply_polarity_rules",
    "clear_polarity_rules",
    "make_pattern_from_description",
    "read_polarity_rules",
    "remove_polarity_rule",
    "suggest_tokens",
    "upsert_polarity_rule",
]
