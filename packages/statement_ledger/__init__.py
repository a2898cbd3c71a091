"""Public interface for the ``statement_ledger`` package.

This module exposes the import pipeline, the rule stores and the period and
recurring views as the stable import surface. There is no runtime logic here,
only symbol re-exports.
"""

from .config import LedgerConfig, config_from_env
from .importer import ImportResult, Stage, import_statement
from .models import (
    AliasRule,
    CategoryRule,
    ExtractionProfile,
    ParsedRow,
    Period,
    PolarityRule,
    RecurringRow,
    SnapshotInputs,
    StatementSnapshot,
    Summary,
    Transaction,
)
from .normalizers import normalize
from .parser import parse_blocks, parse_with_profile
from .periods import rows_for_period
from .persistence import InMemoryStore, PersistencePort, SqlKeyValueStore
from .profiles import LearnResult, learn_profile
from .recurring import build_recurring, forecast_typical_month
from .ruleset import RuleSet, load_ruleset
from .statements import SnapshotStore
from .summary import spending_by_category, summarize_month

__all__ = [
    # Pipeline
    "import_statement",
    "ImportResult",
    "Stage",
    "normalize",
    "learn_profile",
    "LearnResult",
    "parse_blocks",
    "parse_with_profile",
    # Rules and storage
    "RuleSet",
    "load_ruleset",
    "SnapshotStore",
    "PersistencePort",
    "InMemoryStore",
    "SqlKeyValueStore",
    # Views
    "rows_for_period",
    "build_recurring",
    "forecast_typical_month",
    "summarize_month",
    "spending_by_category",
    # Config
    "LedgerConfig",
    "config_from_env",
    # Models / types
    "AliasRule",
    "CategoryRule",
    "ExtractionProfile",
    "ParsedRow",
    "Period",
    "PolarityRule",
    "RecurringRow",
    "SnapshotInputs",
    "StatementSnapshot",
    "Summary",
    "Transaction",
]
