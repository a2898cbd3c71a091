"""Learn an extraction profile from one or two sample statement lines.

The learner is a pure function over a fixed candidate list. Each candidate
is a regex grammar for one date shape; every candidate is scored against the
samples and the best one wins, ties going to the earlier candidate. Nothing
here depends on iteration order of sets or dicts, so the same samples always
produce the same profile.
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass

from .blocks import flatten_sample
from .logging_setup import get_logger
from .models import DateFmt, ExtractionProfile, GroupMap, LineMatch, Preprocess

logger = get_logger("statement_ledger.profiles")

#: Minimum share of sample lines a candidate must parse to be accepted.
MIN_SCORE = 0.5

#: Transaction-origin prefixes dropped from descriptions by default.
DEFAULT_LEADING_TAGS: tuple[str, ...] = ("SQ *", "TST*", "SPO*", "TS*", "PP*")

AMOUNT_SRC = (
    r"[+-]?\$?(?:\d{1,3}(?:,\d{3})*|\d+)\.\d{2}"
    r"|\(\$?(?:\d{1,3}(?:,\d{3})*|\d+)\.\d{2}\)"
)
CARD_SRC = r"\bCard(?:\s+ending\s+in|#|:)?\s*\**\s*\d{4}\b"

_MONTH = r"(?:0?[1-9]|1[0-2])"
_DAY = r"(?:0?[1-9]|[12]\d|3[01])"
_YEAR_TAIL = r"(?:/(?:\d{4}|\d{2}))?"


@dataclass(frozen=True, slots=True)
class Candidate:
    date_fmt: DateFmt
    date_src: str


#: Declaration order is the tie-break order.
CANDIDATES: tuple[Candidate, ...] = (
    Candidate("MM/DD/YYYY", rf"{_MONTH}/{_DAY}{_YEAR_TAIL}"),
    Candidate("DD/MM/YYYY", rf"{_DAY}/{_MONTH}{_YEAR_TAIL}"),
    Candidate("YYYY-MM-DD", rf"\d{{4}}-{_MONTH}-{_DAY}"),
)


@dataclass(frozen=True, slots=True)
class LearnResult:
    profile: ExtractionProfile | None
    matches: tuple[LineMatch, ...]
    score: float = 0.0


def build_regex_source(date_src: str) -> str:
    """Regex source for one candidate grammar.

    Shape: date, a non-greedy description that stops before an optional
    ``Card ####`` fragment and the amount, then the amount, an optional
    running balance and an optional trailing 4-digit card number.
    """

    return (
        rf"^(?P<date>{date_src})\s+"
        rf"(?P<description>.+?)"
        rf"(?=\s+(?:{CARD_SRC}\s+)?(?:{AMOUNT_SRC}))"
        rf"(?:\s+{CARD_SRC})?"
        rf"\s+(?P<amount>{AMOUNT_SRC})"
        rf"(?:\s+(?:{AMOUNT_SRC}))?"
        rf"(?:\s+(?P<card_last4>\d{{4}}))?"
        rf"\s*$"
    )


def match_line(pattern: re.Pattern[str], line: str) -> LineMatch:
    m = pattern.match(line)
    if m is None:
        return LineMatch(line=line, ok=False)
    g = m.groupdict()
    date = (g.get("date") or "").strip()
    description = (g.get("description") or "").strip()
    amount = (g.get("amount") or "").strip()
    return LineMatch(
        line=line,
        ok=bool(date and description and amount),
        date=date,
        description=description,
        amount=amount,
        card_last4=(g.get("card_last4") or "").strip(),
    )


def score_candidate(
    candidate: Candidate, samples: Sequence[str]
) -> tuple[float, tuple[LineMatch, ...]]:
    pattern = re.compile(build_regex_source(candidate.date_src), re.IGNORECASE)
    matches = tuple(match_line(pattern, s) for s in samples)
    if not matches:
        return 0.0, matches
    return sum(1 for m in matches if m.ok) / len(matches), matches


def learn_profile(samples: Sequence[str]) -> LearnResult:
    """Pick the best candidate grammar for ``samples``.

    Parameters
    ----------
    samples:
        One or two exemplar lines, ideally a withdrawal and a deposit. Each is
        flattened to a single normalized line first, so wrapped pastes work.

    Returns
    -------
    LearnResult
        ``profile`` is ``None`` when the best score is below ``MIN_SCORE``;
        ``matches`` is the per-line report for the best candidate either way.
    """

    flat = [s for s in (flatten_sample(x) for x in samples or ()) if s]
    if not flat:
        logger.info("No usable sample lines; nothing to learn")
        return LearnResult(profile=None, matches=())

    best: Candidate | None = None
    best_score = -1.0
    best_matches: tuple[LineMatch, ...] = ()
    for cand in CANDIDATES:
        score, matches = score_candidate(cand, flat)
        logger.debug("Candidate %s scored %.2f", cand.date_fmt, score)
        # Strict comparison keeps the earlier candidate on ties
        if score > best_score:
            best, best_score, best_matches = cand, score, matches

    assert best is not None
    if best_score < MIN_SCORE:
        logger.info(
            "No profile learned (best=%s score=%.2f < %.2f)",
            best.date_fmt,
            best_score,
            MIN_SCORE,
        )
        return LearnResult(profile=None, matches=best_matches, score=best_score)

    profile = ExtractionProfile(
        unified_regex=build_regex_source(best.date_src),
        groups=GroupMap(),
        date_fmt=best.date_fmt,
        infer_debit_if_no_sign=True,
        preprocess=Preprocess(
            trim_extra_spaces=True,
            strip_phone_numbers=False,
            strip_leading_tags=DEFAULT_LEADING_TAGS,
        ),
    )
    logger.info("Learned profile %s (score=%.2f)", best.date_fmt, best_score)
    return LearnResult(profile=profile, matches=best_matches, score=best_score)


__all__ = [
    "AMOUNT_SRC",
    "CANDIDATES",
    "CARD_SRC",
    "Candidate",
    "DEFAULT_LEADING_TAGS",
    "LearnResult",
    "MIN_SCORE",
    "build_regex_source",
    "learn_profile",
    "match_line",
    "score_candidate",
]
