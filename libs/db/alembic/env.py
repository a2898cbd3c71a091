# ruff: noqa: I001
"""
Alembic environment for the ledger key-value schema.

``DATABASE_URL`` (after loading the nearest ``.env``) takes precedence over
``sqlalchemy.url`` in alembic.ini. SQLite targets run in batch mode so later
column changes to ``ledger_kv`` work there too.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool
from sqlalchemy.engine import make_url
from dotenv import load_dotenv, find_dotenv

import db


config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)

target_metadata = db.metadata


def _database_url() -> str:
    # Works from the repo root and from libs/db
    found = find_dotenv(usecwd=True)
    if found:
        load_dotenv(dotenv_path=found, override=False)
    url = os.getenv("DATABASE_URL") or config.get_main_option("sqlalchemy.url")
    if not url:
        raise RuntimeError("No database configured: set DATABASE_URL or sqlalchemy.url in alembic.ini.")
    return url


def _migration_options(url: str) -> dict[str, object]:
    return {
        "target_metadata": target_metadata,
        "compare_type": True,
        "render_as_batch": make_url(url).get_backend_name() == "sqlite",
    }


def migrate_offline(url: str) -> None:
    """Emit SQL for the ledger schema without connecting."""
    context.configure(url=url, literal_binds=True, **_migration_options(url))
    with context.begin_transaction():
        context.run_migrations()


def migrate_online(url: str) -> None:
    """Apply the ledger schema over a live connection."""
    settings = dict(config.get_section(config.config_ini_section) or {})
    settings["sqlalchemy.url"] = url
    engine = engine_from_config(settings, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **_migration_options(url))
        with context.begin_transaction():
            context.run_migrations()


_url = _database_url()
if context.is_offline_mode():
    migrate_offline(_url)
else:
    migrate_online(_url)
