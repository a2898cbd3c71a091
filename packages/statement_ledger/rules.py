"""Category rule engine.

Rules map a *key* to a canonical category. Keys come in three flavours:

- ``alias:<label>``: the resolved alias label of a merchant (strongest).
- ``tok:<body>``: normalized description tokens; ``tok:home_depot`` for a
  two-token vendor phrase, ``tok:netflix`` for a unigram, plus a few fixed
  banking keys (``tok:online_pmt``, ``tok:balance_transfer``...).
- ``str:<phrase>``: a literal phrase looked up with a substring test on the
  cleaned, lower-cased description. Brand seeding uses these so short brand
  names do not collide through generic tokens.

Resolution for one transaction, first hit wins:

1. the true cash-back line of a "with cash back" purchase is ``Cash Back``;
2. an explicit ``category_override`` is left alone;
3. ``alias:``/``tok:`` keys, in candidate order;
4. ``str:`` phrases;
5. brand-catalog inference plus a gated Debt check;
6. otherwise the row keeps the category enrichment gave it.

The engine only ever writes ``category``; ``category_override`` belongs to
the user.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal

from pydantic import TypeAdapter

from .brands import DEFAULT_CATALOG, BrandCatalog
from .cashback import CASH_BACK, is_cash_back_line
from .categories import UNCATEGORIZED, canonicalize_category_name
from .enrich import strip_auth_and_card
from .logging_setup import get_logger
from .models import CategoryRule, RuleSource, Transaction
from .persistence import PersistencePort, ns_key, read_model, write_model

logger = get_logger("statement_ledger.rules")

type AliasFn = Callable[[str], str | None]

RULES_KEY = "catRules.v1"
SEED_MARK_KEY = "catRules.seedVersion"
SEED_VERSION = "catrules-seed-v3-2025-09-08"

_RULES_ADAPTER: TypeAdapter[list[CategoryRule]] = TypeAdapter(list[CategoryRule])

STOP: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "of", "on", "for", "with", "to", "from", "at", "in", "by",
        "purchase", "authorized", "recurring", "payment", "card", "www", "com", "bill",
        "store", "retail", "services", "inc", "llc", "co", "corp", "company",
        # "online" gets its own banking key instead
        "online", "xfer", "epay", "thank", "you",
        # bank brand words that produced over-broad keys
        "capital", "one",
        # state codes
        "va", "nc", "sc", "md", "dc", "ny", "nj", "pa", "ga", "fl", "ca", "tx", "az", "nm",
        "oh", "mi", "wi", "il", "wa", "or", "ut", "al", "ar", "tn", "ky", "mo", "mn", "ia",
        "ks", "ne", "sd", "nd", "id", "mt", "wy", "ok", "la", "ms", "wv", "nh", "vt", "me",
        "ma", "ct", "ri", "de",
        # city names common on local statements
        "chesapeake", "norfolk", "virginia", "beach", "newport", "news",
    }
)

BAD_UNIGRAMS: frozenset[str] = frozenset(
    {
        "cash", "back", "cashback", "reward", "rewards", "points", "bonus",
        "credit", "debit", "purchase", "payment",
    }
)

# Never applied to expenses
REWARD_CATEGORIES: frozenset[str] = frozenset({"cashback", "rewards", "points"})

_STORE_NUMBER_RE = re.compile(r"#\s*\d+")
_DEBT_SERVICER_RE = re.compile(
    r"\b(?:navient|nelnet|aidvantage|mohela|great lakes|sallie mae|sofi|lendingclub|upstart"
    r"|marcus|prosper|best egg|one\s*main|cardmember services|auto finance)\b"
)
_DEBT_BANK_RE = re.compile(
    r"\b(?:chase|capital one|truist)\b.*\b(?:auto finance|loan|card payment|payment|pmt|installment)\b"
)
_P2P_RE = re.compile(r"\b(?:zelle|venmo|paypal)\b")
_CASH_BACK_WORD_RE = re.compile(r"\bcash\s*back\b")
_AUTO_EXCLUDE = frozenset({"Debt", CASH_BACK, UNCATEGORIZED})


def compile_rule_pattern(pattern: str, *, flags: int = re.IGNORECASE) -> re.Pattern[str] | None:
    """Compile a stored regex, or ``None`` (logged) if it does not compile."""

    try:
        return re.compile(pattern, flags)
    except re.error as exc:
        logger.warning("Ignoring invalid rule pattern %r: %s", pattern, exc)
        return None


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------


def normalize_tokens(description: str) -> list[str]:
    """Meaningful lower-case word tokens: no digits, store numbers or stopwords."""

    s = strip_auth_and_card(description or "").lower()
    s = _STORE_NUMBER_RE.sub(" ", s)
    s = re.sub(r"\d+", " ", s)
    s = re.sub(r"[^a-z\s]", " ", s)
    return [t for t in s.split() if t not in STOP and len(t) > 2]


def vendor_phrase(tokens: Sequence[str]) -> str:
    return "_".join(tokens[:2])


def specific_banking_keys(description: str) -> list[str]:
    """Strong keys for banking phrasings; the generic transfer key comes last."""

    lower = (description or "").lower()
    out: list[str] = []
    if re.search(r"\bonline\s+(?:pmt|payment|pymt)\b", lower):
        out.append("tok:online_pmt")
    if re.search(r"\bbalance\s+transfer\b", lower):
        out.append("tok:balance_transfer")
    if re.search(r"\bexternal\s+transfer\b", lower):
        out.append("tok:external_transfer")
    if re.search(r"\btransfer\b", lower):
        out.append("tok:transfer")
    return out


def candidate_keys(description: str, alias_label: str | None = None) -> list[str]:
    """Lookup keys for a description, strongest first, without duplicates."""

    keys: list[str] = []
    if alias_label and alias_label.strip():
        keys.append(f"alias:{alias_label.strip().lower()}")
    keys.extend(specific_banking_keys(description))
    toks = normalize_tokens(description)
    phrase = vendor_phrase(toks)
    if phrase:
        keys.append(f"tok:{phrase}")
    if toks:
        keys.append(f"tok:{toks[0]}")
    return list(dict.fromkeys(keys))


def derive_key_from_description(description: str, alias_label: str | None = None) -> tuple[str, RuleSource]:
    """The single key stored when the user recategorizes a row."""

    if alias_label and alias_label.strip():
        return f"alias:{alias_label.strip().lower()}", "alias"
    bank = specific_banking_keys(description)
    if bank:
        return bank[0], "user"
    toks = normalize_tokens(description)
    phrase = vendor_phrase(toks)
    if "_" in phrase:
        return f"tok:{phrase}", "user"
    return f"tok:{toks[0] if toks else 'misc'}", "user"


def disambiguator_phrases(description: str, alias_label: str | None = None) -> list[str]:
    """High-signal ``str:`` keys for brands that collide through short tokens."""

    texts = (description or "", alias_label or "")
    out: list[str] = []
    for pattern, key in (
        (r"\bclub\s*pilates\b", "str:club pilates"),
        (r"\bbp\s*#\s*\d+", "str:bp#"),
        (r"\bcapital\s+one\b", "str:capital one"),
        (r"\bwells\s+fargo\b", "str:wells fargo"),
    ):
        if any(re.search(pattern, t, re.IGNORECASE) for t in texts):
            out.append(key)
    return list(dict.fromkeys(out))


def is_weak_key(key: str) -> bool:
    if not key.startswith("tok:"):
        return False
    body = key[4:]
    if not body or body in STOP:
        return True
    return "_" not in body and (len(body) <= 3 or body in BAD_UNIGRAMS)


def prune_weak_rules(rules: Iterable[CategoryRule]) -> list[CategoryRule]:
    """Drop ``tok:`` rules whose key is empty, a stopword or a weak unigram."""

    return [r for r in rules if not is_weak_key(r.key)]


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------


def auto_infer_category(
    description: str,
    amount: Decimal,
    catalog: BrandCatalog = DEFAULT_CATALOG,
) -> str | None:
    """Catalog inference with the Debt category gated on servicer context."""

    d = (description or "").lower()
    if _CASH_BACK_WORD_RE.search(d) and amount >= 0:
        return CASH_BACK
    hit = catalog.infer(d, exclude=_AUTO_EXCLUDE)
    if hit:
        return canonicalize_category_name(hit, extra=catalog.categories)
    if _DEBT_SERVICER_RE.search(d) or _DEBT_BANK_RE.search(d):
        return "Debt"
    if _P2P_RE.search(d):
        return UNCATEGORIZED
    return None


def apply_category_rules(
    rules: Sequence[CategoryRule],
    rows: Iterable[Transaction],
    *,
    alias_fn: AliasFn | None = None,
    catalog: BrandCatalog = DEFAULT_CATALOG,
) -> list[Transaction]:
    """Resolve the base category of each row; see the module docstring for order."""

    key_map = {r.key: r.category for r in rules if r.key.startswith(("alias:", "tok:"))}
    phrases = [
        (r.key[4:].lower(), r.category)
        for r in rules
        if r.key.startswith("str:") and len(r.key[4:]) >= 2
    ]

    out: list[Transaction] = []
    for tx in rows:
        desc = tx.description or ""

        if tx.amount < 0 and is_cash_back_line(tx.amount, desc):
            if tx.category != CASH_BACK:
                tx = tx.model_copy(update={"category": CASH_BACK})
            out.append(tx)
            continue

        if (tx.category_override or "").strip():
            out.append(tx)
            continue

        cat: str | None = None
        alias = alias_fn(strip_auth_and_card(desc)) if alias_fn else None
        for key in candidate_keys(desc, alias):
            hit = key_map.get(key)
            if not hit:
                continue
            if tx.amount < 0 and hit.strip().lower() in REWARD_CATEGORIES:
                continue
            cat = hit
            break

        if cat is None and phrases:
            cleaned = strip_auth_and_card(desc).lower()
            cat = next((c for term, c in phrases if term in cleaned), None)

        if cat is None and tx.amount != 0:
            cat = auto_infer_category(desc, tx.amount, catalog)

        if cat and cat != tx.category:
            tx = tx.model_copy(update={"category": cat})
        out.append(tx)
    return out


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


def read_category_rules(port: PersistencePort, namespace: str = "real") -> list[CategoryRule]:
    """Stored rules with weak keys pruned; the cleanup is persisted once."""

    key = ns_key(namespace, RULES_KEY)
    stored = read_model(port, key, _RULES_ADAPTER, [])
    pruned = prune_weak_rules(stored)
    if len(pruned) != len(stored):
        logger.info("Pruned %d weak category rules", len(stored) - len(pruned))
        write_category_rules(port, pruned, namespace)
    return pruned


def write_category_rules(port: PersistencePort, rules: Sequence[CategoryRule], namespace: str = "real") -> None:
    write_model(port, ns_key(namespace, RULES_KEY), _RULES_ADAPTER, list(rules))


def upsert_category_rules(
    port: PersistencePort,
    keys: Iterable[str],
    category: str,
    *,
    source: RuleSource = "user",
    namespace: str = "real",
    extra_categories: Iterable[str] = (),
) -> list[CategoryRule]:
    """Insert or replace rules for ``keys``; weak token keys are skipped.

    The target category is canonicalized first, so ``"gas"`` is stored as
    ``"Fuel"``.
    """

    rules = read_category_rules(port, namespace)
    target = canonicalize_category_name(category, extra=extra_categories)
    index = {r.key: i for i, r in enumerate(rules)}
    for key in keys:
        if is_weak_key(key):
            logger.debug("Skipping weak rule key %r", key)
            continue
        rule = CategoryRule(key=key, category=target, source=source)
        if key in index:
            rules[index[key]] = rule
        else:
            index[key] = len(rules)
            rules.append(rule)
    write_category_rules(port, rules, namespace)
    return rules


def learn_rule_from_edit(
    port: PersistencePort,
    description: str,
    category: str,
    *,
    alias_label: str | None = None,
    namespace: str = "real",
    extra_categories: Iterable[str] = (),
) -> list[str]:
    """Remember a manual recategorization as rules; returns the keys written."""

    key, source = derive_key_from_description(description, alias_label)
    keys = [*disambiguator_phrases(description, alias_label), key]
    upsert_category_rules(
        port, keys, category, source=source, namespace=namespace, extra_categories=extra_categories
    )
    return keys


# ---------------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SeedRow:
    keys: tuple[str, ...]
    label: str


SEED_ROWS: tuple[SeedRow, ...] = (
    SeedRow(("str:starbucks", "str:starbucks store", "str:starbucks card", "str:sbux", "str:sbx"), "Starbucks"),
    SeedRow(("str:mcdonald", "str:mc donald"), "Fast Food"),
    SeedRow(("str:burger king", "str:bk #"), "Fast Food"),
    SeedRow(("str:chick-fil-a", "str:chick fil a"), "Fast Food"),
    SeedRow(("str:wendy",), "Fast Food"),
    SeedRow(("str:sonic",), "Fast Food"),
    SeedRow(("str:taco bell",), "Fast Food"),
    SeedRow(("str:kfc", "str:kentucky fried"), "Fast Food"),
    SeedRow(("str:subway",), "Fast Food"),
    SeedRow(("str:five guys", "str:5 guys", "str:5guys"), "Fast Food"),
    SeedRow(("str:panda express",), "Fast Food"),
    SeedRow(("str:arby",), "Fast Food"),
    SeedRow(("str:chipotle",), "Fast Food"),
    SeedRow(("str:panera",), "Fast Food"),
    SeedRow(("str:bojangles",), "Fast Food"),
    SeedRow(("str:little caesars", "str:little caesar"), "Fast Food"),
    SeedRow(("str:pizza hut",), "Fast Food"),
    SeedRow(("str:domino", "str:domino's"), "Fast Food"),
    SeedRow(("str:papa john",), "Fast Food"),
    SeedRow(("str:popeyes",), "Fast Food"),
    SeedRow(("str:jimmy john",), "Fast Food"),
    SeedRow(("str:jersey mike",), "Fast Food"),
    SeedRow(("str:whataburger",), "Fast Food"),
    SeedRow(("str:in-n-out", "str:in n out", "str:innout"), "Fast Food"),
    SeedRow(("str:shake shack",), "Fast Food"),
    SeedRow(("str:dairy queen", "str:dq "), "Fast Food"),
    SeedRow(("str:zaxby",), "Fast Food"),
    SeedRow(("str:qdoba",), "Fast Food"),
    SeedRow(("str:wingstop",), "Fast Food"),
    SeedRow(("str:raising cane", "str:canes"), "Fast Food"),
    SeedRow(("str:target",), "Shopping"),
    SeedRow(("str:walmart",), "Shopping"),
    SeedRow(("str:best buy",), "Shopping"),
    SeedRow(("str:amazon", "str:amzn"), "Amazon"),
    # "shell" stays with the brand catalog, which anchors on word boundaries (Shellpoint)
    SeedRow(
        (
            "str:bp#",
            "str:exxon",
            "str:chevron",
            "str:sunoco",
            "str:wawa",
            "str:7-eleven",
            "str:7 eleven",
        ),
        "Fuel",
    ),
)


def seed_category_rules(port: PersistencePort, namespace: str = "real") -> bool:
    """Merge the baseline brand rules once per seed version.

    Returns ``True`` when the seed ran. User rules for other keys survive;
    a seeded key overwrites an existing rule with the same key.
    """

    mark = ns_key(namespace, SEED_MARK_KEY)
    if port.get(mark) == SEED_VERSION:
        return False
    for row in SEED_ROWS:
        upsert_category_rules(port, row.keys, row.label, source="brand", namespace=namespace)
    port.set(mark, SEED_VERSION)
    logger.info("Seeded category rules (%s)", SEED_VERSION)
    return True


__all__ = [
    "AliasFn",
    "BAD_UNIGRAMS",
    "REWARD_CATEGORIES",
    "SEED_ROWS",
    "SEED_VERSION",
    "STOP",
    "apply_category_rules",
    "auto_infer_category",
    "candidate_keys",
    "compile_rule_pattern",
    "derive_key_from_description",
    "disambiguator_phrases",
    "is_weak_key",
    "learn_rule_from_edit",
    "normalize_tokens",
    "prune_weak_rules",
    "read_category_rules",
    "seed_category_rules",
    "specific_banking_keys",
    "upsert_category_rules",
    "vendor_phrase",
    "write_category_rules",
]
