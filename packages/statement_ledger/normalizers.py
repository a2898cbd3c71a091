"""Text normalization for pasted statement pages.

``normalize`` is the first stage of every import: it removes the invisible
noise that copy/paste out of PDF viewers and banking sites introduces, then
strips a trailing running-balance column from each line so later stages see
at most the transaction amount.

All functions here are pure and never raise; ``None`` or garbage input yields
an empty string.
"""

from __future__ import annotations

import re

from .amounts import money_tokens

# bidi marks, zero-width characters and BOM
_INVISIBLE_RE = re.compile("[\u200b-\u200f\u202a-\u202e\u2060\u2066-\u2069\ufeff]")
_DASH_RE = re.compile("[\u2012-\u2015\u2212]")
_HSPACE_RE = re.compile(r"[^\S\n]+")
_BALANCE_LABEL_RE = re.compile(
    r"\s+(?:(?:running|daily|ending|available|avail\.?)\s+)?(?:balance|bal\.?)\s*:?$",
    re.IGNORECASE,
)
_CASH_BACK_RE = re.compile(r"cash\s*back", re.IGNORECASE)


def sanitize_line(line: str | None) -> str:
    """Per-line cleanup: NBSP, invisible marks and dash variants, then trim."""

    if not line:
        return ""
    out = line.replace("\u00a0", " ")
    out = _INVISIBLE_RE.sub("", out)
    out = _DASH_RE.sub("-", out)
    return out.strip()


def strip_running_balance(line: str) -> str:
    """Drop one trailing running-balance token when exactly two amounts exist.

    Lines with a single amount are returned unchanged. Lines with three or
    more amounts are ambiguous and also left alone, which keeps
    :func:`normalize` idempotent. Cash-back purchase lines carry two real
    amounts and are never stripped.
    """

    tokens = money_tokens(line)
    if len(tokens) != 2 or _CASH_BACK_RE.search(line):
        return line
    last = tokens[-1]
    if last.end() != len(line) or last.start() == 0 or not line[last.start() - 1].isspace():
        return line
    head = _BALANCE_LABEL_RE.sub("", line[: last.start()].rstrip())
    return head.rstrip()


def normalize(raw: str | None) -> str:
    """Return cleaned statement text with one transaction span per line.

    Steps: NBSP to space, invisible/bidi marks removed, dash variants to
    ``-``, tabs to spaces, CRLF/CR to LF, horizontal whitespace collapsed,
    every line trimmed, then a trailing running balance removed per line.
    """

    if not raw:
        return ""
    text = raw.replace("\u00a0", " ")
    text = _INVISIBLE_RE.sub("", text)
    text = _DASH_RE.sub("-", text)
    text = text.replace("\t", " ")
    text = re.sub(r"\r\n?", "\n", text)
    text = _HSPACE_RE.sub(" ", text)
    lines = [strip_running_balance(ln.strip()) for ln in text.split("\n")]
    return "\n".join(lines).strip()


__all__ = ["normalize", "sanitize_line", "strip_running_balance"]
