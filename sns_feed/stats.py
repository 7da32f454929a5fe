from __future__ import annotations

import re

from .post import Stats

_NUMBER = r"\d+(?:\.\d+)?[KkMm]?"
_NUMBER_RE = re.compile(rf"({_NUMBER})")
_LEADING_NUMBER_RE = re.compile(rf"^\s*({_NUMBER})")


def _unit_re(unit: str) -> re.Pattern[str]:
    return re.compile(rf"({_NUMBER})\s*{re.escape(unit)}", re.IGNORECASE)


def _magnitude(text: str) -> str:
    # "15.5k" -> "15.5K"
    return text[:-1] + text[-1].upper() if text[-1:].isalpha() else text


def parse_stats(fragment: str | None, *, share_unit: str = "R", secondary_unit: str = "Q") -> Stats:
    """
    Parse a compact stats fragment such as "15.5K 300R 5Q".

    Share tokens are found first and cut out of the fragment; the first bare
    number left over is the like count. Token order in the input does not
    matter. Missing counters default to "0".
    """
    line = fragment or ""
    share_re = _unit_re(share_unit)
    secondary_re = _unit_re(secondary_unit)

    shares = "0"
    m = share_re.search(line)
    if m is not None:
        shares = _magnitude(m.group(1)) + share_unit.upper()

    secondary = "0"
    m = secondary_re.search(line)
    if m is not None:
        secondary = _magnitude(m.group(1)) + secondary_unit.upper()

    residual = secondary_re.sub("", share_re.sub("", line))
    m = _NUMBER_RE.search(residual)
    likes = _magnitude(m.group(1)) if m is not None else "0"

    return Stats(likes=likes, shares=shares, secondary_shares=secondary, reply_count_hint=0)


def stat_number(value: str | None) -> str:
    """Return the numeric part of a counter, dropping any trailing unit letter."""
    m = _LEADING_NUMBER_RE.match(value or "")
    if m is None:
        return "0"
    return _magnitude(m.group(1))
