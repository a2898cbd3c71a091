"""Turn statement lines into ``ParsedRow`` records.

Both paths work on the blocks of :func:`statement_blocks`, wrapped lines
collapsed after balance and page lines are dropped:

- ``parse_profile_blocks`` applies a learned ``ExtractionProfile`` to each
  block and falls back to the block's own lines when the block misses.
  ``parse_with_profile`` is the single-line form.
- ``parse_block_groups`` is the profile-less fallback: it reads a leading
  ``MM/DD`` date plus the amount picked by
  :func:`statement_ledger.amounts.extract_amounts`.

Lines that do not match are skipped silently; statements are full of headers,
footers and page furniture.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable, Sequence
from decimal import Decimal

from .amounts import extract_amounts, has_negative_marker, money_tokens, to_decimal
from .blocks import collapse_line_groups
from .cashback import CASH_BACK_AMOUNT_RE, WITH_CASH_BACK_RE, parse_cash_back_amount
from .logging_setup import get_logger
from .models import ExtractionProfile, ParsedRow, Preprocess, TxKind
from .normalizers import normalize

logger = get_logger("statement_ledger.parser")

CREDIT_RE = re.compile(
    r"\b(?:"
    r"pay\s*roll|direct\s*deposit|e\s*deposit|edeposit|deposit|ach\s*credit"
    r"|vacp\s*treas|us\s*treas|irs\s*treas|ssa|social\s*security|treasury"
    r"|inst\s*xfer\s*from|(?:online\s*)?(?:transfer|xfer)\s*from"
    r"|mobile\s*deposit|branch\s*deposit|zelle\s*(?:from|credit)"
    r"|payment\s*received|pmt\s*rcvd|thank\s*you"
    r"|refund|reversal|return"
    r"|credit\s*interest|interest\s*(?:payment|credit)"
    r")\b",
    re.IGNORECASE,
)
DEBIT_RE = re.compile(
    r"\b(?:"
    r"(?:online\s*)?(?:transfer|xfer)\s*to|zelle\b.*\b(?:to|payment)|ach\s*debit"
    r"|epay|e-?pay|card\s*payment|crd\s*epay|credit\s*card\s*pmt"
    r")\b",
    re.IGNORECASE,
)
HEADER_RE = re.compile(
    r"^(?:Beginning balance on|Ending balance on|Deposits/Additions"
    r"|Withdrawals/Subtractions|Account\s+summary|Daily\s+(?:ending|ledger)\s+balance"
    r"|Page\s+\d+\s+of\s+\d+|Fee\s+period|Totals?\b)",
    re.IGNORECASE,
)
CARD_FRAGMENT_RE = re.compile(
    r"\bCard(?:\s+ending\s+in|#|:)?\s*\**\s*(\d{4})\b", re.IGNORECASE
)
_LEADING_DATE_RE = re.compile(r"^(\d{1,2}/\d{1,2}(?:/\d{2,4})?)\b\s*")
_PHONE_RE = re.compile(r"\(?\b\d{3}\)?[-.\s]?\d{3}[-.]\d{4}\b")
_NAMED_GROUP_JS_RE = re.compile(r"\(\?<(?=[A-Za-z_])")

_POSITIONAL = ("date", "description", "amount", "card_last4")
SPLIT_NOTE = "cashback-split"


def stable_row_id(line: str, index: int) -> str:
    """Deterministic id from the source line and its position."""

    digest = hashlib.sha256(line.encode("utf-8")).hexdigest()[:12]
    return f"tx-{index}-{digest}"


def infer_kind(amount_text: str, description: str, *, infer_debit_if_no_sign: bool) -> TxKind:
    """Direction of a row from its raw amount text and description.

    Explicit markers win: parentheses or a leading minus mean withdrawal, a
    leading plus means deposit. Unsigned amounts are withdrawals unless the
    description reads like a credit, when ``infer_debit_if_no_sign`` is set.
    """

    raw = amount_text.strip()
    if has_negative_marker(raw):
        return "withdrawal"
    if raw.startswith("+"):
        return "deposit"
    if not infer_debit_if_no_sign:
        return "deposit"
    if DEBIT_RE.search(description):
        return "withdrawal"
    return "deposit" if CREDIT_RE.search(description) else "withdrawal"


def compile_profile(profile: ExtractionProfile) -> re.Pattern[str] | None:
    """Compile a profile's regex source, or ``None`` if it does not compile.

    ``(?<name>...)`` groups written for other regex engines are accepted and
    rewritten to Python's ``(?P<name>...)``.
    """

    src = _NAMED_GROUP_JS_RE.sub("(?P<", profile.unified_regex or "")
    if not src:
        return None
    try:
        return re.compile(src, re.IGNORECASE)
    except re.error as exc:
        logger.warning("Profile regex does not compile: %s", exc)
        return None


def preprocess_line(line: str, pre: Preprocess) -> str:
    out = line
    if pre.strip_phone_numbers:
        out = _PHONE_RE.sub(" ", out)
    if pre.trim_extra_spaces:
        out = re.sub(r"\s+", " ", out)
    return out.strip()


def strip_leading_tags(description: str, tags: Sequence[str]) -> str:
    out = description
    # Longest first so "TST*" is not shadowed by "TS*"
    ordered = sorted((t for t in tags if t), key=len, reverse=True)
    changed = True
    while changed:
        changed = False
        for tag in ordered:
            if out.upper().startswith(tag.upper()):
                out = out[len(tag) :].lstrip()
                changed = True
                break
    return out or description


def _groups(pattern: re.Pattern[str], m: re.Match[str], profile: ExtractionProfile) -> dict[str, str]:
    if pattern.groupindex:
        names = profile.groups
        mapping = {
            "date": names.date,
            "description": names.description,
            "amount": names.amount,
            "card_last4": names.card_last4,
        }
        out: dict[str, str] = {}
        for field, name in mapping.items():
            value = m.group(name) if name and name in pattern.groupindex else None
            out[field] = (value or "").strip()
        return out
    # Positional fallback: groups 1..4
    values = list(m.groups()) + [None] * 4
    return {field: (values[i] or "").strip() for i, field in enumerate(_POSITIONAL)}


def _profile_row(
    pattern: re.Pattern[str], profile: ExtractionProfile, raw: str, index: int
) -> ParsedRow | None:
    line = preprocess_line(raw or "", profile.preprocess)
    if not line:
        return None
    m = pattern.match(line)
    if m is None:
        return None
    g = _groups(pattern, m, profile)
    if not (g["date"] and g["description"] and g["amount"]):
        return None
    try:
        value = to_decimal(g["amount"])
    except ValueError:
        return None

    description = strip_leading_tags(g["description"], profile.preprocess.strip_leading_tags)
    last4 = g["card_last4"] or None
    if last4 is None:
        frag = CARD_FRAGMENT_RE.search(line)
        last4 = frag.group(1) if frag else None

    return ParsedRow(
        id=stable_row_id(line, index),
        date=g["date"],
        description=description,
        amount=abs(value),
        kind=infer_kind(
            g["amount"],
            description,
            infer_debit_if_no_sign=profile.infer_debit_if_no_sign,
        ),
        source_line=line,
        card_last4=last4,
    )


def parse_with_profile(profile: ExtractionProfile, lines: Iterable[str]) -> list[ParsedRow]:
    """Apply ``profile`` to each line; non-matching lines are skipped.

    The regex is compiled once. ``ParsedRow.amount`` is unsigned and the
    direction is in ``kind``.
    """

    pattern = compile_profile(profile)
    if pattern is None:
        return []

    rows: list[ParsedRow] = []
    skipped = 0
    for index, raw in enumerate(lines):
        row = _profile_row(pattern, profile, raw, index)
        if row is not None:
            rows.append(row)
        elif (raw or "").strip():
            skipped += 1

    if skipped:
        logger.debug("Skipped %d non-matching lines", skipped)
    return rows


def drop_header_lines(text: str) -> str:
    """Remove balance, summary and page lines before blocks are assembled.

    An amount-less header such as ``Page 1 of 3`` would otherwise stay open
    and swallow the transaction line that follows it.
    """

    return "\n".join(ln for ln in text.split("\n") if not HEADER_RE.match(ln.strip()))


def statement_blocks(text: str) -> list[list[str]]:
    """Normalized, header-free line groups of ``text``; see :func:`collapse_line_groups`."""

    return collapse_line_groups(drop_header_lines(normalize(text)))


def parse_profile_blocks(profile: ExtractionProfile, groups: Sequence[Sequence[str]]) -> list[ParsedRow]:
    """Apply ``profile`` to each block, then to its lines when the block misses.

    A wrapped record only matches once its lines are joined, while a block
    that picked up unrelated text still has a matching line inside it.
    """

    pattern = compile_profile(profile)
    if pattern is None:
        return []

    rows: list[ParsedRow] = []
    seq = 0
    for group in groups:
        row = _profile_row(pattern, profile, " ".join(group), seq)
        seq += 1
        if row is not None:
            rows.append(row)
            continue
        if len(group) < 2:
            continue
        for line in group:
            row = _profile_row(pattern, profile, line, seq)
            seq += 1
            if row is not None:
                rows.append(row)
    return rows


def parse_text(profile: ExtractionProfile, text: str) -> list[ParsedRow]:
    """Normalize pasted text and parse it block by block with ``profile``."""

    return parse_profile_blocks(profile, statement_blocks(text))


def _amount_match(body: str) -> re.Match[str] | None:
    """Locate the token holding the transaction amount in ``body``."""

    matches = money_tokens(body)
    if not matches:
        return None
    cb = CASH_BACK_AMOUNT_RE.search(body)
    if cb is not None:
        # The gross is the last token outside the "cash back $N" phrase
        outside = [m for m in matches if not (cb.start() <= m.start() < cb.end())]
        if outside:
            return outside[-1]
    pick = extract_amounts(body)
    if pick.amount is None:
        return None
    if pick.source == "eol-pair":
        return matches[-2]
    return next((m for m in matches if to_decimal(m.group(0)) == pick.amount), None)


def _trim_preamble(group: Sequence[str]) -> Sequence[str]:
    """Drop undated lines ahead of the first dated line of ``group``."""

    if _LEADING_DATE_RE.match(group[0]):
        return group
    for i, line in enumerate(group[1:], start=1):
        if _LEADING_DATE_RE.match(line):
            logger.debug("Dropped %d undated lines before %r", i, line)
            return group[i:]
    return group


def parse_block_groups(groups: Sequence[Sequence[str]]) -> list[ParsedRow]:
    """Profile-less parse over line groups from :func:`statement_blocks`.

    A block needs a leading ``MM/DD`` date (or inherits the date of the
    previous dated block) and an amount. Undated text ahead of a dated line
    in the same group is dropped. A "with cash back" purchase is split into
    the purchase portion and a separate cash-back withdrawal.
    """

    rows: list[ParsedRow] = []
    carry_date = ""
    for index, group in enumerate(groups):
        block = " ".join(_trim_preamble(group))
        dm = _LEADING_DATE_RE.match(block)
        if dm:
            carry_date = dm.group(1)
            body = block[dm.end() :].strip()
        elif carry_date:
            body = block
        else:
            continue

        hit = _amount_match(body)
        if hit is None:
            continue
        token = hit.group(0)
        description = body[: hit.start()].strip() or body
        card = CARD_FRAGMENT_RE.search(block)
        last4 = card.group(1) if card else None
        gross = abs(to_decimal(token))

        cashback = parse_cash_back_amount(description)
        if cashback is not None and WITH_CASH_BACK_RE.search(description):
            cashback = min(cashback, gross)
            spend = gross - cashback
            if spend > 0:
                rows.append(
                    ParsedRow(
                        id=stable_row_id(block, index),
                        date=carry_date,
                        description=description,
                        amount=spend,
                        kind="withdrawal",
                        source_line=block,
                        card_last4=last4,
                        notes=SPLIT_NOTE,
                    )
                )
            if cashback > 0:
                rows.append(
                    ParsedRow(
                        id=stable_row_id(f"{block}#cashback", index),
                        date=carry_date,
                        description=f"{description} (Cash back ${cashback:.2f})",
                        amount=cashback,
                        kind="withdrawal",
                        source_line=block,
                        card_last4=last4,
                        notes=SPLIT_NOTE,
                    )
                )
            continue

        rows.append(
            ParsedRow(
                id=stable_row_id(block, index),
                date=carry_date,
                description=description,
                amount=gross,
                kind=infer_kind(token, description, infer_debit_if_no_sign=True),
                source_line=block,
                card_last4=last4,
            )
        )
    return rows


def parse_blocks(text: str) -> list[ParsedRow]:
    """Normalize ``text`` and run :func:`parse_block_groups` over its blocks."""

    return parse_block_groups(statement_blocks(text))


def signed_amount(row: ParsedRow) -> Decimal:
    return -row.amount if row.kind == "withdrawal" else row.amount


__all__ = [
    "CARD_FRAGMENT_RE",
    "CREDIT_RE",
    "DEBIT_RE",
    "HEADER_RE",
    "SPLIT_NOTE",
    "compile_profile",
    "drop_header_lines",
    "infer_kind",
    "parse_block_groups",
    "parse_blocks",
    "parse_profile_blocks",
    "parse_text",
    "parse_with_profile",
    "preprocess_line",
    "signed_amount",
    "stable_row_id",
    "statement_blocks",
    "strip_leading_tags",
]
