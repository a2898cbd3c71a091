from decimal import Decimal

from statement_ledger.aliases import (
    COMMON_ALIASES,
    apply_aliases_to_rows,
    learn_aliases_from_transactions,
    make_alias_fn,
    read_aliases,
    seed_common_aliases,
)
from statement_ledger.models import AliasRule, PolarityRule, Transaction
from statement_ledger.polarity import (
    apply_polarity_rules,
    clear_polarity_rules,
    make_pattern_from_description,
    read_polarity_rules,
    remove_polarity_rule,
    suggest_tokens,
    upsert_polarity_rule,
)


def _tx(id, description, amount):
    return Transaction(id=id, date="03/01", description=description, amount=Decimal(amount))


# ---------------------------------------------------------------------------
# Aliases
# ---------------------------------------------------------------------------


def test_alias_modes_and_invalid_regex():
    match = make_alias_fn(
        [
            AliasRule(pattern="harris te", label="Harris Teeter"),
            AliasRule(pattern="([", label="Broken", mode="regex"),
            AliasRule(pattern=r"^amzn\b", label="Amazon", mode="regex"),
            AliasRule(pattern="wal", label="Walmart", mode="prefix"),
        ]
    )
    assert match("HARRIS TEETER #123") == "Harris Teeter"
    assert match("AMZN Mktp US P1234567") == "Amazon"
    assert match("WALMART SUPERCENTER") == "Walmart"
    assert match("SOME WAL STORE") is None


def test_legacy_prefix_mode_is_accepted():
    rule = AliasRule.model_validate({"pattern": "wal", "label": "Walmart", "mode": "startsWith"})
    assert rule.mode == "prefix"


def test_apply_aliases_sets_merchant():
    rules = [AliasRule(pattern="food lion", label="Food Lion")]
    rows = apply_aliases_to_rows(rules, [_tx("a", "FOOD LION #1440", "-20.00"), _tx("b", "OTHER", "-1.00")])
    assert [r.merchant for r in rows] == ["Food Lion", None]
    assert [r.recurrence_key for r in rows] == ["food_lion", ""]


def test_seed_common_aliases_is_idempotent(store):
    first = seed_common_aliases(store)
    second = seed_common_aliases(store)
    assert len(first) == len(second) == len(COMMON_ALIASES)
    assert all(r.id for r in second)


def test_learn_aliases_needs_repeated_vendor_phrase(store):
    rows = [
        _tx("a", "JOES PLUMBING 555 Card 1234", "-80.00"),
        _tx("b", "JOES PLUMBING 777", "-60.00"),
        _tx("c", "ONE OFF SHOP", "-5.00"),
    ]
    learned = learn_aliases_from_transactions(store, rows)
    assert [(r.pattern, r.label) for r in learned] == [("joes plumbing", "Joes Plumbing")]
    assert read_aliases(store) == learned
    assert learn_aliases_from_transactions(store, rows) == learned


# ---------------------------------------------------------------------------
# Polarity
# ---------------------------------------------------------------------------


def test_polarity_rules_flip_signs_and_skip_bad_patterns():
    rules = [
        PolarityRule(pattern="([", polarity="withdrawal"),
        PolarityRule(pattern=r"\brefund\b", polarity="deposit"),
        PolarityRule(pattern="fee", polarity="withdrawal"),
    ]
    rows = apply_polarity_rules(
        rules,
        [
            _tx("a", "AMAZON REFUND", "-10.00"),
            _tx("b", "MONTHLY FEE", "5.00"),
            _tx("c", "COFFEE", "-3.00"),
        ],
    )
    assert [r.amount for r in rows] == [Decimal("10.00"), Decimal("-5.00"), Decimal("-3.00")]


def test_polarity_rule_serializes_with_as_key():
    rule = PolarityRule.model_validate({"pattern": "refund", "as": "deposit"})
    assert rule.polarity == "deposit"
    assert rule.model_dump(by_alias=True) == {"pattern": "refund", "as": "deposit", "addedAt": None}


def test_polarity_store_is_scoped_and_deduplicated(store):
    rule = PolarityRule(pattern="refund", polarity="deposit")
    upsert_polarity_rule(store, rule)
    bucket = upsert_polarity_rule(store, rule)
    assert len(bucket) == 1
    assert bucket[0].added_at is not None

    upsert_polarity_rule(store, PolarityRule(pattern="fee", polarity="withdrawal"), scope="chase")
    assert [r.pattern for r in read_polarity_rules(store)] == ["refund"]
    assert [r.pattern for r in read_polarity_rules(store, "chase")] == ["fee"]

    assert remove_polarity_rule(store, 5) == read_polarity_rules(store)
    assert remove_polarity_rule(store, 0) == []
    clear_polarity_rules(store, "chase")
    assert read_polarity_rules(store, "chase") == []


def test_pattern_suggestions():
    assert suggest_tokens("VACP TREAS 310 XXSOC SEC") == ["VACP", "TREAS"]
    assert suggest_tokens("Coffee shop 12") == ["COFFEE", "SHOP"]
    assert make_pattern_from_description("VACP TREAS 310") == r"(?=.*\bVACP\b)(?=.*\bTREAS\b).*"
    assert make_pattern_from_description("") == ".*"
