from datetime import date, datetime, timedelta, timezone

from packages.features.common.forms import fmt_money, is_phone, owned_by, paginate, to_number
from packages.features.common.periods import (
    between,
    booking_day,
    in_period,
    normalize_period,
    period_bounds,
    to_date,
    to_datetime,
    week_start,
)

# Wednesday
NOW = datetime(2024, 5, 15, 12, 0)


def test_normalize_period_accepts_ui_labels():
    assert normalize_period("This Week") == "week"
    assert normalize_period("Last 7 Days") == "last7"
    assert normalize_period("last-30-days") == "last30"
    assert normalize_period("Today") == "today"
    assert normalize_period("") == "all"
    assert normalize_period("fortnight") == "all"


def test_week_starts_on_sunday():
    assert week_start(date(2024, 5, 15)) == date(2024, 5, 12)
    assert week_start(date(2024, 5, 12)) == date(2024, 5, 12)


def test_period_bounds():
    assert period_bounds("today", NOW) == (date(2024, 5, 15), date(2024, 5, 15))
    assert period_bounds("yesterday", NOW) == (date(2024, 5, 14), date(2024, 5, 14))
    assert period_bounds("last7", NOW) == (date(2024, 5, 9), date(2024, 5, 15))
    assert period_bounds("last30", NOW) == (date(2024, 4, 16), date(2024, 5, 15))
    assert period_bounds("month", NOW) == (date(2024, 5, 1), date(2024, 5, 31))
    assert period_bounds("year", NOW) == (date(2024, 1, 1), date(2024, 12, 31))
    assert period_bounds("week", NOW) == (date(2024, 5, 12), date(2024, 5, 15))
    assert period_bounds("all", NOW) is None


def test_in_period():
    assert in_period("2024-05-12", "week", NOW)
    assert not in_period("2024-05-11", "week", NOW)
    assert in_period("2024-05-14T23:00:00Z", "yesterday", NOW)
    assert not in_period(None, "today", NOW)
    assert in_period(None, "all", NOW)


def test_windows_exclude_future_dates():
    assert in_period("2024-05-31", "month", NOW)
    assert not in_period("2024-06-20", "month", NOW)
    assert in_period("2024-12-31", "year", NOW)
    assert not in_period("2025-02-01", "year", NOW)
    assert not in_period("2024-05-16", "week", NOW)
    assert not in_period("2024-05-30", "last7", NOW)
    assert not in_period("2024-05-16", "last30", NOW)


def test_stored_utc_timestamps_follow_the_clock_zone():
    karachi = timezone(timedelta(hours=5))
    now = datetime(2024, 5, 15, 2, 0, tzinfo=karachi)
    # 21:00 UTC on the 14th is 02:00 on the 15th in UTC+5.
    assert in_period("2024-05-14T21:00:00Z", "today", now)
    assert not in_period("2024-05-14T21:00:00Z", "yesterday", now)
    assert in_period({"seconds": 1715720400}, "today", now)
    assert in_period("2024-05-15", "today", now)
    assert to_date("2024-05-14T21:00:00Z", karachi) == date(2024, 5, 15)


def test_timestamp_shapes():
    assert to_date({"seconds": 1715731200}) == date(2024, 5, 15)
    assert to_date(1715731200000) == date(2024, 5, 15)
    assert to_datetime("2024-05-15T10:00:00Z") == datetime(2024, 5, 15, 10, 0)
    assert to_date("2024-05-15") == date(2024, 5, 15)
    assert to_date("not a date") is None


def test_between_is_inclusive_and_open_ended():
    assert between("2024-05-01", "2024-05-01", "2024-05-31")
    assert between("2024-05-31", "2024-05-01", "2024-05-31")
    assert not between("2024-06-01", "2024-05-01", "2024-05-31")
    assert between(None, "", "")
    assert not between(None, "2024-01-01")


def test_booking_day_prefers_date_then_departure():
    assert booking_day({"date": "2024-02-01", "createdAt": "2024-03-01T00:00:00Z"}) == date(2024, 2, 1)
    assert booking_day({"departure": "2024-04-01", "createdAt": "2024-03-01T00:00:00Z"}) == date(2024, 4, 1)
    assert booking_day({"createdAt": "2024-03-01T00:00:00Z"}) == date(2024, 3, 1)


def test_form_helpers():
    assert to_number("1,200") == 1200
    assert to_number("12.5") == 12.5
    assert to_number("abc") == 0
    assert to_number("", None) is None
    assert is_phone("03001234567")
    assert not is_phone("12345")
    assert fmt_money(1500) == "1,500"
    assert fmt_money(12.5) == "12.50"


def test_paginate_clamps_page():
    p = paginate(list(range(25)), 3, 10)
    assert p["items"] == [20, 21, 22, 23, 24]
    assert p["pages"] == 3
    assert paginate(list(range(25)), 99, 10)["page"] == 3
    assert paginate([], 1, 10) == {"items": [], "page": 1, "pages": 1, "total": 0, "per_page": 10}


def test_owned_by():
    user = {"id": "u1", "email": "a@os.com"}
    assert owned_by({"userId": "u1"}, user)
    assert not owned_by({"userId": "u2"}, user)
    assert owned_by({"userEmail": "A@os.com"}, user)
    assert not owned_by({"userId": "u1"}, None)
