"""Session and time-of-day helpers — pure functions over IST candle timestamps.

Candle timestamps use the ``"DD/MM/YYYY HH:MM AM/PM"`` format.  Config times
use 24-hour ``"HH:MM"``.  All window checks are inclusive.
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from breakoutsim.models.strategy_config import DateFilter, EntryWindow, PreCloseExit


def _split_timestamp(timestamp: str) -> tuple[str, int, int]:
    """Return ``(date_part, hours_24, minutes)`` for a candle timestamp."""
    try:
        date_part, time_part, meridiem = timestamp.split()
        hours, minutes = (int(p) for p in time_part.split(":"))
    except ValueError:
        raise ValueError(f"Malformed candle timestamp: '{timestamp}'") from None

    meridiem = meridiem.upper()
    if meridiem == "PM" and hours < 12:
        hours += 12
    elif meridiem == "AM" and hours == 12:
        hours = 0
    return date_part, hours, minutes


def parse_time_to_minutes(timestamp: str) -> int:
    """Minutes since midnight for a ``"DD/MM/YYYY HH:MM AM/PM"`` timestamp."""
    _, hours, minutes = _split_timestamp(timestamp)
    return hours * 60 + minutes


def parse_hhmm(text: str) -> int:
    """Minutes since midnight for a 24-hour ``"H:MM"`` / ``"HH:MM"`` string."""
    try:
        hours, minutes = (int(p) for p in text.split(":"))
    except (AttributeError, ValueError):
        raise ValueError(f"Time must be HH:MM, got '{text}'") from None
    if not (0 <= hours < 24 and 0 <= minutes < 60):
        raise ValueError(f"Time out of range: '{text}'")
    return hours * 60 + minutes


def format_timestamp(timestamp: str) -> str:
    """Convert ``"DD/MM/YYYY HH:MM AM/PM"`` to ``"YYYY-MM-DD HH:MM"``."""
    date_part, hours, minutes = _split_timestamp(timestamp)
    d = parse_date(date_part)
    return f"{d.isoformat()} {hours:02d}:{minutes:02d}"


def time_diff_minutes(timestamp1: str, timestamp2: str) -> int:
    """Absolute difference in minutes between two same-day timestamps."""
    return abs(parse_time_to_minutes(timestamp2) - parse_time_to_minutes(timestamp1))


def parse_date(text: str) -> date:
    """Parse a ``"DD/MM/YYYY"`` date string."""
    try:
        day, month, year = (int(p) for p in text.split("/"))
        return date(year, month, day)
    except (AttributeError, ValueError):
        raise ValueError(f"Date must be DD/MM/YYYY, got '{text}'") from None


# ── Window checks ────────────────────────────────────────────────────────


def is_entry_time_allowed(timestamp: str, window: Optional[EntryWindow]) -> bool:
    """Return True if entries are allowed at *timestamp*.

    No window means entries are allowed all day.
    """
    if window is None:
        return True
    now = parse_time_to_minutes(timestamp)
    return parse_hhmm(window.start) <= now <= parse_hhmm(window.end)


def should_place_pre_close_order(timestamp: str, pre_close: Optional[PreCloseExit]) -> bool:
    """True once *timestamp* reaches ``exit_time − pre_exit_minutes``."""
    if pre_close is None:
        return False
    now = parse_time_to_minutes(timestamp)
    return now >= parse_hhmm(pre_close.exit_time) - pre_close.pre_exit_minutes


def should_force_exit(timestamp: str, pre_close: Optional[PreCloseExit]) -> bool:
    """True once *timestamp* reaches the scheduled exit time."""
    if pre_close is None:
        return False
    return parse_time_to_minutes(timestamp) >= parse_hhmm(pre_close.exit_time)


def include_date(date_str: str, date_filter: Optional[DateFilter]) -> bool:
    """Return True if the ``"DD/MM/YYYY"`` day passes *date_filter*.

    A specific date takes precedence over a range; a range needs both ends.
    """
    if date_filter is None:
        return True
    d = parse_date(date_str)
    if date_filter.specific_date:
        return d == parse_date(date_filter.specific_date)
    if date_filter.start and date_filter.end:
        return parse_date(date_filter.start) <= d <= parse_date(date_filter.end)
    return True
