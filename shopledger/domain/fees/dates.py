"""Statement date normalization.

Statements print dates as "30 November, 2025", "30 Nov, 2025", "20-Jan-26"
or ISO "2025-11-30". Anything else maps to the epoch sentinel, which callers
treat as "skip this row".
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from datetime import date

EPOCH = date(1970, 1, 1)

MONTHS = {
    "january": 1,
    "jan": 1,
    "february": 2,
    "feb": 2,
    "march": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "may": 5,
    "june": 6,
    "jun": 6,
    "july": 7,
    "jul": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "sep": 9,
    "sept": 9,
    "october": 10,
    "oct": 10,
    "november": 11,
    "nov": 11,
    "december": 12,
    "dec": 12,
}

_HYPHEN = re.compile(r"^(\d{1,2})-([A-Za-z]+)-(\d{2})(?!\d)")
_SPELLED = re.compile(r"^(\d{1,2})\s+([A-Za-z]+),?\s+(\d{4})(?!\d)")
_ISO = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def _build(year: int, month_name: str, day: int) -> date:
    month = MONTHS.get(month_name.lower())
    if month is None:
        return EPOCH
    try:
        return date(year, month, day)
    except ValueError:
        return EPOCH


def normalize_date(raw: str | None) -> date:
    """Parse a statement date; unrecognized shapes return EPOCH."""
    s = (raw or "").strip()
    if not s:
        return EPOCH

    m = _HYPHEN.match(s)
    if m:
        # Two-digit years are 20xx
        return _build(2000 + int(m.group(3)), m.group(2), int(m.group(1)))

    m = _SPELLED.match(s)
    if m:
        return _build(int(m.group(3)), m.group(2), int(m.group(1)))

    m = _ISO.match(s)
    if m:
        try:
            return date(int(m.group(1)), int(m.group(2)), int(m.group(3)))
        except ValueError:
            return EPOCH

    return EPOCH


def find_date_value(row: Mapping[str, str]) -> str:
    """Value of the first column whose header contains 'date' (case-insensitive)."""
    for key, value in row.items():
        if key and "date" in key.lower():
            return (value or "").strip()
    return ""


def period_of(d: date) -> str:
    """Calendar-month period key, e.g. '2026-01'."""
    return f"{d.year:04d}-{d.month:02d}"
