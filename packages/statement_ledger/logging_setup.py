"""Logging for the ``statement_ledger`` package.

Library modules only ever call ``get_logger("statement_ledger.<module>")``.
Until an entrypoint calls :func:`configure_logging`, the package root logger
carries a ``NullHandler`` and records still propagate, so a host application
(or pytest's ``caplog``) sees them. ``configure_logging`` installs one
``StreamHandler`` and stops propagation; ``reset_logging`` undoes that.
"""

from __future__ import annotations

import logging
import os
import sys
from typing import IO

PKG_LOGGER_NAME = "statement_ledger"
LEVEL_ENV = "STATEMENT_LEDGER_LOG_LEVEL"
DEFAULT_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

_handler: logging.Handler | None = None


def _coerce_level(value: int | str | None) -> int | None:
    if isinstance(value, int):
        return value
    if not value:
        return None
    name = value.strip().upper()
    if name.isdigit():
        return int(name)
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else None


def resolve_level(level: int | str | None = None) -> int:
    """Explicit ``level``, then ``STATEMENT_LEDGER_LOG_LEVEL``, then INFO.

    Unrecognized names fall through to the next source.
    """

    for candidate in (level, os.getenv(LEVEL_ENV)):
        resolved = _coerce_level(candidate)
        if resolved is not None:
            return resolved
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Send package logs to ``stream``. Later calls are no-ops.

    Parameters
    ----------
    level:
        ``int`` or level name; see :func:`resolve_level`.
    fmt:
        Record format, ``DEFAULT_FORMAT`` when omitted.
    stream:
        Destination of the single handler.
    """

    global _handler
    if _handler is not None:
        return

    pkg = logging.getLogger(PKG_LOGGER_NAME)
    for existing in [h for h in pkg.handlers if isinstance(h, logging.NullHandler)]:
        pkg.removeHandler(existing)

    resolved = resolve_level(level)
    handler = logging.StreamHandler(stream)
    handler.setLevel(resolved)
    handler.setFormatter(logging.Formatter(fmt or DEFAULT_FORMAT))
    pkg.addHandler(handler)
    pkg.setLevel(resolved)
    # The root logger would print every record a second time
    pkg.propagate = False
    _handler = handler


def reset_logging() -> None:
    """Remove the handler installed by :func:`configure_logging`."""

    global _handler
    pkg = logging.getLogger(PKG_LOGGER_NAME)
    if _handler is not None:
        pkg.removeHandler(_handler)
        _handler = None
    pkg.setLevel(logging.NOTSET)
    pkg.propagate = True


def get_logger(name: str) -> logging.Logger:
    pkg = logging.getLogger(PKG_LOGGER_NAME)
    if _handler is None and not pkg.handlers:
        pkg.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = [
    "DEFAULT_FORMAT",
    "LEVEL_ENV",
    "PKG_LOGGER_NAME",
    "configure_logging",
    "get_logger",
    "reset_logging",
    "resolve_level",
]
