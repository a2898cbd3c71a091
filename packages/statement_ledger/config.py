"""Runtime configuration for the ledger engine.

``LedgerConfig`` is a plain frozen dataclass passed explicitly to the
components that need it. ``config_from_env()`` builds one from environment
variables; entrypoints call ``load_dotenv`` before it so a local ``.env`` is
honored.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from decimal import Decimal

from .logging_setup import get_logger

logger = get_logger("statement_ledger.config")

DEFAULT_FALLBACK_CATEGORY = "Uncategorized"
DEFAULT_DRIFT_THRESHOLD = Decimal("0.40")
DEFAULT_DEBOUNCE_SECONDS = 0.5

RECURRING_CATEGORIES: frozenset[str] = frozenset(
    {
        "Housing",
        "Utilities",
        "Insurance",
        "Subscriptions",
        "Debt",
        "Transfers",
        "Kids/School",
    }
)


@dataclass(frozen=True, slots=True)
class LedgerConfig:
    fallback_category: str = DEFAULT_FALLBACK_CATEGORY
    # card last-4 -> display name
    spenders: Mapping[str, str] = field(default_factory=dict)
    # lower-cased name token in a description -> display name
    spender_tokens: Mapping[str, str] = field(default_factory=dict)
    drift_threshold: Decimal = DEFAULT_DRIFT_THRESHOLD
    recurring_categories: frozenset[str] = RECURRING_CATEGORIES
    debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS
    namespace: str = "real"


def _parse_spenders(raw: str) -> dict[str, str]:
    """Parse ``"5280=Mike,0161=Beth"`` into ``{"5280": "Mike", "0161": "Beth"}``.

    Malformed pairs are ignored.
    """

    out: dict[str, str] = {}
    for part in raw.split(","):
        last4, sep, name = part.partition("=")
        last4, name = last4.strip(), name.strip()
        if not sep or not name or len(last4) != 4 or not last4.isdigit():
            if part.strip():
                logger.warning("Ignoring malformed LEDGER_SPENDERS entry: %r", part)
            continue
        out[last4] = name
    return out


def config_from_env() -> LedgerConfig:
    """Build a ``LedgerConfig`` from ``LEDGER_*`` environment variables."""

    spenders = _parse_spenders(os.getenv("LEDGER_SPENDERS", ""))
    # Names double as description tokens ("PAYMENT BY MIKE")
    tokens = {name.lower(): name for name in spenders.values()}

    debounce = DEFAULT_DEBOUNCE_SECONDS
    raw_debounce = os.getenv("LEDGER_DEBOUNCE_SECONDS")
    if raw_debounce:
        try:
            debounce = max(0.0, float(raw_debounce))
        except ValueError:
            logger.warning("Invalid LEDGER_DEBOUNCE_SECONDS=%r; using default", raw_debounce)

    fallback = (os.getenv("LEDGER_FALLBACK_CATEGORY") or "").strip()
    namespace = (os.getenv("LEDGER_NAMESPACE") or "").strip().lower()

    return LedgerConfig(
        fallback_category=fallback or DEFAULT_FALLBACK_CATEGORY,
        spenders=spenders,
        spender_tokens=tokens,
        debounce_seconds=debounce,
        namespace=namespace if namespace in {"real", "demo"} else "real",
    )


__all__ = [
    "DEFAULT_DEBOUNCE_SECONDS",
    "DEFAULT_DRIFT_THRESHOLD",
    "DEFAULT_FALLBACK_CATEGORY",
    "LedgerConfig",
    "RECURRING_CATEGORIES",
    "config_from_env",
]
