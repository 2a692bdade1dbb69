from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Dict, Optional, Tuple

PERIODS = ("all", "today", "yesterday", "week", "last7", "month", "last30", "year")

PERIOD_LABELS = {
    "all": "All Time",
    "today": "Today",
    "yesterday": "Yesterday",
    "week": "This Week",
    "last7": "Last 7 Days",
    "month": "This Month",
    "last30": "Last 30 Days",
    "year": "This Year",
}

_ALIASES = {
    "": "all",
    "all": "all",
    "alltime": "all",
    "today": "today",
    "yesterday": "yesterday",
    "week": "week",
    "thisweek": "week",
    "last7": "last7",
    "last7days": "last7",
    "7days": "last7",
    "month": "month",
    "thismonth": "month",
    "last30": "last30",
    "last30days": "last30",
    "30days": "last30",
    "year": "year",
    "thisyear": "year",
}


def normalize_period(value: Optional[str]) -> str:
    """Map UI labels ("This Week", "Last7Days", "last-30-days") to a period key.

    Unknown values fall back to ``"all"``.
    """
    key = re.sub(r"[^a-z0-9]", "", str(value or "").lower())
    return _ALIASES.get(key, "all")


def to_datetime(value: Any, tz: Optional[tzinfo] = None) -> Optional[datetime]:
    """Best-effort conversion of stored timestamps to a naive wall-clock datetime.

    Timezone-aware values (``Z`` strings, Firestore timestamps, epochs) are
    shifted into ``tz``, or the server's local zone when ``tz`` is ``None``;
    plain dates and naive strings are taken as already local.

    Accepts datetimes, dates, ISO strings (with or without ``Z``),
    ``{"seconds": n}`` maps and epoch numbers (seconds or milliseconds).
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(tz).replace(tzinfo=None)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, dict):
        secs = value.get("seconds", value.get("_seconds"))
        return to_datetime(secs, tz) if secs is not None else None
    if isinstance(value, (int, float)):
        secs = value / 1000.0 if value > 1e12 else float(value)
        try:
            return datetime.fromtimestamp(secs, tz=timezone.utc).astimezone(tz).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return None
    s = str(value).strip()
    if not s:
        return None
    if s.endswith("Z"):
        s = s[:-1] + "+00:00"
    try:
        return to_datetime(datetime.fromisoformat(s), tz)
    except ValueError:
        pass
    try:
        return datetime.strptime(s[:10], "%Y-%m-%d")
    except ValueError:
        return None


def to_date(value: Any, tz: Optional[tzinfo] = None) -> Optional[date]:
    dt = to_datetime(value, tz)
    return dt.date() if dt else None


def iso_day(value: Any) -> str:
    d = to_date(value)
    return d.isoformat() if d else ""


def today(now: Optional[datetime] = None) -> date:
    return (now or datetime.now()).date()


def week_start(day: date) -> date:
    """Most recent Sunday (the day itself when it is a Sunday)."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def period_bounds(period: str, now: Optional[datetime] = None) -> Optional[Tuple[date, date]]:
    """Inclusive ``(start, end)`` for a period, ``None`` for all time.

    Rolling windows end today; ``month`` and ``year`` end on the last day of
    the calendar month or year.
    """
    p = normalize_period(period)
    t = today(now)
    if p == "today":
        return t, t
    if p == "yesterday":
        y = t - timedelta(days=1)
        return y, y
    if p == "week":
        return week_start(t), t
    if p == "last7":
        return t - timedelta(days=6), t
    if p == "month":
        return t.replace(day=1), t.replace(day=calendar.monthrange(t.year, t.month)[1])
    if p == "last30":
        return t - timedelta(days=29), t
    if p == "year":
        return t.replace(month=1, day=1), t.replace(month=12, day=31)
    return None


def in_period(value: Any, period: Optional[str], now: Optional[datetime] = None) -> bool:
    bounds = period_bounds(period or "all", now)
    if bounds is None:
        return True
    # Stored timestamps are read in the same zone as the clock.
    d = to_date(value, now.tzinfo if now is not None else None)
    if d is None:
        return False
    start, end = bounds
    return start <= d <= end


def between(value: Any, date_from: Any = None, date_to: Any = None) -> bool:
    """Inclusive date-range check; empty bounds are open."""
    lo = to_date(date_from) if date_from else None
    hi = to_date(date_to) if date_to else None
    if lo is None and hi is None:
        return True
    d = to_date(value)
    if d is None:
        return False
    if lo and d < lo:
        return False
    if hi and d > hi:
        return False
    return True


def booking_day(doc: Dict[str, Any]) -> Optional[date]:
    """The day a booking belongs to: application date, departure, then creation time."""
    for key in ("date", "departure"):
        d = to_date(doc.get(key))
        if d:
            return d
    return to_date(doc.get("createdAt"))
