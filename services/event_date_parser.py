"""
Multilingual (German/English) event date parsing.

parse_dates() returns the first match of an ordered pattern list. Range
patterns are tried before single dates so "18./19.09.2025" yields both days
instead of only the second one.
"""

from __future__ import annotations

import re
from datetime import date, datetime, timedelta, timezone
from typing import Callable, List, NamedTuple, Optional, Tuple

from dateutil import parser as date_parser

MONTHS = {
    "jan": "01", "januar": "01", "january": "01", "jänner": "01",
    "feb": "02", "februar": "02", "february": "02",
    "mär": "03", "märz": "03", "maerz": "03", "mrz": "03", "mar": "03", "march": "03",
    "apr": "04", "april": "04",
    "mai": "05", "may": "05",
    "jun": "06", "juni": "06", "june": "06",
    "jul": "07", "juli": "07", "july": "07",
    "aug": "08", "august": "08",
    "sep": "09", "sept": "09", "september": "09",
    "okt": "10", "oct": "10", "oktober": "10", "october": "10",
    "nov": "11", "november": "11",
    "dez": "12", "dec": "12", "dezember": "12", "december": "12",
}


class ParsedDates(NamedTuple):
    starts_at: Optional[str] = None
    ends_at: Optional[str] = None


_EMPTY = ParsedDates()


def _month(name: str) -> Optional[str]:
    return MONTHS.get(name.lower().replace(".", ""))


def _year(raw: str) -> str:
    return "20" + raw if len(raw) == 2 else raw


def _iso(year: str, month: Optional[str], day: str) -> Optional[str]:
    """Validated YYYY-MM-DD or None for impossible calendar dates."""
    if not month:
        return None
    try:
        return date(int(year), int(month), int(day)).isoformat()
    except ValueError:
        return None


def _today() -> date:
    return datetime.now(timezone.utc).date()


def _in_plausible_window(value: Optional[str], today: date) -> bool:
    if not value:
        return False
    d = date.fromisoformat(value)
    return today - timedelta(days=365) <= d <= today + timedelta(days=730)


def _range(start: Optional[str], end: Optional[str]) -> Optional[ParsedDates]:
    if not start:
        return None
    if end and end < start:
        end = None
    return ParsedDates(start, end)


# -------- Range patterns -----------------------------------------------------

_DE_NUMERIC_FULL_RANGE = re.compile(
    r"\b(\d{1,2})\.(\d{1,2})\.(\d{4})\s*[–-]\s*(\d{1,2})\.(\d{1,2})\.(\d{4})\b"
)
_ISO_RANGE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\s*(?:to|bis|until|–|-)\s*(\d{4}-\d{2}-\d{2})\b", re.IGNORECASE)
_DE_SLASH_RANGE = re.compile(r"\b(\d{1,2})\.\s*/\s*(\d{1,2})\.(\d{1,2})\.(\d{4})\b")
_DE_DASH_RANGE = re.compile(r"\b(\d{1,2})\.?\s*[–-]\s*(\d{1,2})\.(\d{1,2})\.(\d{4})\b")
_DE_BIS_RANGE = re.compile(r"\b(\d{1,2})\.\s*bis\s*(\d{1,2})\.\s*([A-Za-zÄÖÜäöüß\.]+)\s+(\d{4})\b", re.IGNORECASE)
_DAY_RANGE_MONTH = re.compile(r"\b(\d{1,2})\.?\s*[–-]\s*(\d{1,2})\.?\s+([A-Za-zÄÖÜäöüß\.]+)\s+(\d{4})\b")
_EN_MONTH_DAY_RANGE = re.compile(r"\b([A-Za-z]+)\.?\s+(\d{1,2})\s*[–-]\s*(\d{1,2}),?\s+(\d{4})\b")
_EN_FULL_RANGE = re.compile(
    r"\b([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})\s*[–-]\s*([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})\b"
)

# -------- Single-date patterns -----------------------------------------------

_DE_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})\.\s*([a-zA-ZäöüÄÖÜ]+)\s+(\d{4})\b")
_ISO_SINGLE = re.compile(r"\b(\d{4})-(\d{2})-(\d{2})\b")
_NUMERIC_DOT = re.compile(r"\b(\d{1,2})\.(\d{1,2})\.(\d{4}|\d{2})\b")
_NUMERIC_SLASH = re.compile(r"\b(\d{1,2})/(\d{1,2})/(\d{4}|\d{2})\b")
_NUMERIC_DASH = re.compile(r"\b(\d{1,2})-(\d{1,2})-(\d{4}|\d{2})\b")
_DAY_MONTH_YEAR = re.compile(r"\b(\d{1,2})\s+([A-Za-zÄÖÜäöüß\.]+)\s+(\d{4})\b")
_EN_MONTH_DAY_YEAR = re.compile(r"\b([A-Za-z]+)\.?\s+(\d{1,2}),?\s+(\d{4})\b")
_DE_DAY_MONTH = re.compile(r"\b(\d{1,2})\.\s*([a-zA-ZäöüÄÖÜ]+)\b")
_ISO_PREFIX = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def _de_numeric_full_range(m: re.Match, today: date) -> Optional[ParsedDates]:
    start = _iso(m.group(3), m.group(2), m.group(1))
    end = _iso(m.group(6), m.group(5), m.group(4))
    if not _in_plausible_window(start, today):
        return None
    return _range(start, end)


def _iso_range(m: re.Match, today: date) -> Optional[ParsedDates]:
    start, end = m.group(1), m.group(2)
    s = _iso(*start.split("-"))
    e = _iso(*end.split("-"))
    if not _in_plausible_window(s, today):
        return None
    return _range(s, e)


def _de_short_range(m: re.Match, today: date) -> Optional[ParsedDates]:
    year, month = m.group(4), m.group(3)
    return _range(_iso(year, month, m.group(1)), _iso(year, month, m.group(2)))


def _named_month_range(m: re.Match, today: date) -> Optional[ParsedDates]:
    month = _month(m.group(3))
    year = m.group(4)
    return _range(_iso(year, month, m.group(1)), _iso(year, month, m.group(2)))


def _en_month_day_range(m: re.Match, today: date) -> Optional[ParsedDates]:
    month = _month(m.group(1))
    year = m.group(4)
    start = _iso(year, month, m.group(2))
    if not _in_plausible_window(start, today):
        return None
    return _range(start, _iso(year, month, m.group(3)))


def _en_full_range(m: re.Match, today: date) -> Optional[ParsedDates]:
    start = _iso(m.group(3), _month(m.group(1)), m.group(2))
    end = _iso(m.group(6), _month(m.group(4)), m.group(5))
    if not _in_plausible_window(start, today):
        return None
    return _range(start, end)


def _day_named_month_year(m: re.Match, today: date) -> Optional[ParsedDates]:
    return _range(_iso(m.group(3), _month(m.group(2)), m.group(1)), None)


def _iso_single(m: re.Match, today: date) -> Optional[ParsedDates]:
    return _range(_iso(m.group(1), m.group(2), m.group(3)), None)


def _numeric_single(m: re.Match, today: date) -> Optional[ParsedDates]:
    return _range(_iso(_year(m.group(3)), m.group(2), m.group(1)), None)


def _en_month_day_year(m: re.Match, today: date) -> Optional[ParsedDates]:
    return _range(_iso(m.group(3), _month(m.group(1)), m.group(2)), None)


def _de_day_month_no_year(m: re.Match, today: date) -> Optional[ParsedDates]:
    """Current year if still ahead, else next year; never a past guess."""
    month = _month(m.group(2))
    if not month:
        return None
    for year in (today.year, today.year + 1):
        candidate = _iso(str(year), month, m.group(1))
        if candidate and date.fromisoformat(candidate) >= today:
            return ParsedDates(candidate, None)
    return None


_PATTERNS: List[Tuple[re.Pattern, Callable[[re.Match, date], Optional[ParsedDates]]]] = [
    (_DE_NUMERIC_FULL_RANGE, _de_numeric_full_range),
    (_ISO_RANGE, _iso_range),
    (_DE_SLASH_RANGE, _de_short_range),
    (_DE_DASH_RANGE, _de_short_range),
    (_DE_BIS_RANGE, _named_month_range),
    (_DAY_RANGE_MONTH, _named_month_range),
    (_EN_FULL_RANGE, _en_full_range),
    (_EN_MONTH_DAY_RANGE, _en_month_day_range),
    (_DE_DAY_MONTH_YEAR, _day_named_month_year),
    (_ISO_SINGLE, _iso_single),
    (_NUMERIC_DOT, _numeric_single),
    (_NUMERIC_SLASH, _numeric_single),
    (_NUMERIC_DASH, _numeric_single),
    (_DAY_MONTH_YEAR, _day_named_month_year),
    (_EN_MONTH_DAY_YEAR, _en_month_day_year),
    (_DE_DAY_MONTH, _de_day_month_no_year),
]


def parse_dates(text: Optional[str], *, today: Optional[date] = None) -> ParsedDates:
    if not text:
        return _EMPTY
    ref = today or _today()
    for pattern, handler in _PATTERNS:
        for m in pattern.finditer(text):
            parsed = handler(m, ref)
            if parsed is not None:
                return parsed
    return _EMPTY


def normalize_iso_date(value: Optional[str]) -> Optional[str]:
    """
    ISO-looking strings are truncated to YYYY-MM-DD; anything else goes
    through parse_dates() and finally python-dateutil.
    """
    if not value or not isinstance(value, str):
        return None
    candidate = value.strip()
    if not candidate:
        return None
    m = _ISO_PREFIX.match(candidate)
    if m:
        return _iso(m.group(1), m.group(2), m.group(3))
    parsed = parse_dates(candidate)
    if parsed.starts_at:
        return parsed.starts_at
    try:
        return date_parser.parse(candidate, dayfirst=True, fuzzy=False).date().isoformat()
    except (ValueError, OverflowError):
        return None
