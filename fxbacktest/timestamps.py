"""
Timestamp parsing for tick files and trade signals.

Every parser here is tolerant: unreadable numeric components fall back to the
defaults in ``configuration`` and an impossible calendar instant yields
``None``.  Nothing in this module raises on bad input, the callers decide
whether a missing timestamp means "skip the line" or "skip the signal".
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import List, Optional, Tuple

from fxbacktest.configuration import (
    CENTURY_BASE,
    DEFAULT_SIGNAL_TIME,
    FALLBACK_DAY,
    FALLBACK_MONTH,
    FALLBACK_YEAR,
)

_DATE_SEPARATORS = re.compile(r"[-./]")
_TIME_SEPARATORS = re.compile(r"[:.]")
_LEADING_INT     = re.compile(r"^\s*([+-]?\d+)")
_LEADING_DIGITS  = re.compile(r"^\d+")
_SIGNAL_SPLIT    = re.compile(r"[\sT]+")


def _to_int(text: str) -> int:
    """Leading integer of ``text``; 0 when there is none."""
    match = _LEADING_INT.match(text or "")
    return int(match.group(1)) if match else 0


def _components(text: str, pattern: re.Pattern, count: int = 3) -> List[int]:
    parts = pattern.split((text or "").strip())
    values = [_to_int(p) for p in parts[:count]]
    return values + [0] * (count - len(values))


def _expand_year(year: int) -> int:
    if year == 0:
        return FALLBACK_YEAR
    if 0 < year < 100:
        return CENTURY_BASE + year
    return year


def _parse_time(time_str: str, fractional: bool = False) -> Tuple[int, int, int, int]:
    """Split ``HH:mm:ss[.fff]`` into hour, minute, second and microsecond."""
    parts = _TIME_SEPARATORS.split((time_str or "").strip())
    hour, minute, second = (_to_int(parts[i]) if i < len(parts) else 0 for i in range(3))
    microsecond = 0
    if fractional and len(parts) > 3:
        digits = _LEADING_DIGITS.match(parts[3].strip())
        if digits:
            microsecond = int(digits.group(0)[:6].ljust(6, "0"))
    return hour, minute, second, microsecond


def _build(year: int, month: int, day: int, time_str: str, fractional: bool = False) -> Optional[datetime]:
    hour, minute, second, microsecond = _parse_time(time_str, fractional)
    try:
        return datetime(
            _expand_year(year),
            month or FALLBACK_MONTH,
            day or FALLBACK_DAY,
            hour,
            minute,
            second,
            microsecond,
        )
    except (ValueError, OverflowError):
        return None


def _compact(date_str: str) -> Optional[Tuple[int, int, int]]:
    """``YYYYMMDD`` → (year, month, day), ``None`` when not eight digits."""
    text = (date_str or "").strip()
    if len(text) != 8 or not text.isdigit():
        return None
    return int(text[0:4]), int(text[4:6]), int(text[6:8])


def parse_timestamp_smart(date_str: str, time_str: str = "", fractional: bool = False) -> Optional[datetime]:
    """
    Resolve a date whose component order is not known up-front.

    Parameters
    ----------
    date_str : str
        Date with ``-``, ``.`` or ``/`` separators, or ``YYYYMMDD``.
    time_str : str
        ``HH:mm:ss`` style time; empty means midnight.
    fractional : bool
        Read a fourth time component as the fractional second.

    Returns
    -------
    datetime | None
        ``None`` when the resolved instant does not exist.

    Notes
    -----
    A first component above 31 is a year (Y-M-D).  Otherwise a third
    component above 31 is a year and the first two are ordered by which of
    them can only be a day; when both are 12 or less day-first is assumed.
    Anything else is read as Y-M-D.
    """
    compact = _compact(date_str)
    if compact is not None:
        return _build(*compact, time_str, fractional)

    p0, p1, p2 = _components(date_str, _DATE_SEPARATORS)
    if p0 > 31:
        year, month, day = p0, p1, p2
    elif p2 > 31:
        year = p2
        if p0 > 12:
            day, month = p0, p1
        elif p1 > 12:
            month, day = p0, p1
        else:
            day, month = p0, p1
    else:
        year, month, day = p0, p1, p2
    return _build(year, month, day, time_str, fractional)


def parse_timestamp(
    date_str: str,
    time_str: str,
    date_format: str,
    time_format: str = "HH:mm:ss",
) -> Optional[datetime]:
    """
    Build a timestamp from a tick file's date and time fields.

    Parameters
    ----------
    date_str, time_str : str
        Raw field values.
    date_format : str
        ``YYYY*`` formats are year-first, ``DD*`` day-first, ``MM*``
        month-first and ``YYYYMMDD`` is the compact form.  Unknown formats
        use :func:`parse_timestamp_smart`.
    time_format : str
        When it carries milliseconds (``SSS``) a fourth time component is
        read as the fractional second, otherwise it is ignored.

    Returns
    -------
    datetime | None
    """
    fmt = (date_format or "").strip().upper()
    fractional = "SSS" in (time_format or "").upper()

    if fmt == "YYYYMMDD":
        compact = _compact(date_str)
        if compact is not None:
            return _build(*compact, time_str, fractional)
        return parse_timestamp_smart(date_str, time_str, fractional)

    p0, p1, p2 = _components(date_str, _DATE_SEPARATORS)
    if fmt.startswith("YYYY"):
        return _build(p0, p1, p2, time_str, fractional)
    if fmt.startswith("DD"):
        return _build(p2, p1, p0, time_str, fractional)
    if fmt.startswith("MM"):
        return _build(p2, p0, p1, time_str, fractional)
    return parse_timestamp_smart(date_str, time_str, fractional)


def parse_signal_timestamp(timestamp: Optional[str]) -> Optional[datetime]:
    """
    Parse a signal's ``"<date> <time>"`` string.

    The time part is optional (midnight) and an ISO ``T`` separator is
    accepted.  Empty or missing input yields ``None``.
    """
    if timestamp is None:
        return None
    text = str(timestamp).strip()
    if not text:
        return None
    pieces = _SIGNAL_SPLIT.split(text, maxsplit=1)
    date_part = pieces[0]
    time_part = pieces[1] if len(pieces) > 1 and pieces[1] else DEFAULT_SIGNAL_TIME
    return parse_timestamp_smart(date_part, time_part)
