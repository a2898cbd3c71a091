"""Reassemble wrapped statement lines into logical transaction blocks."""

from __future__ import annotations

from .amounts import is_amount_only, money_tokens
from .normalizers import normalize

type Block = str


def collapse_line_groups(text: str | None) -> list[list[str]]:
    """Group wrapped lines so each group holds one transaction record.

    Statement exports often wrap a description over two or three lines and
    put the amount alone on the last one. An amount-only line is appended to
    the open group and closes it. Any other line closes the open group first
    when that group already carries an amount, otherwise it is appended.

    A trailing group without an amount is still returned.
    """

    groups: list[list[str]] = []
    cur: list[str] = []

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        if cur and is_amount_only(line):
            cur.append(line)
            groups.append(cur)
            cur = []
            continue
        if cur and money_tokens(" ".join(cur)):
            groups.append(cur)
            cur = [line]
        else:
            cur.append(line)

    if cur:
        groups.append(cur)
    return groups


def collapse_blocks(text: str | None) -> list[Block]:
    """Each line group of :func:`collapse_line_groups` joined by single spaces."""

    return [" ".join(group) for group in collapse_line_groups(text)]


def flatten_sample(text: str | None) -> str:
    """Collapse a pasted multi-line example into one normalized line.

    Takes the first content block, normalizes it, and joins what remains
    with single spaces. Used to prepare learner samples.
    """

    if not text:
        return ""
    first = next((b.strip() for b in collapse_blocks(text) if b.strip()), "")
    return " ".join(ln.strip() for ln in normalize(first).splitlines() if ln.strip())


__all__ = ["Block", "collapse_blocks", "collapse_line_groups", "flatten_sample"]
