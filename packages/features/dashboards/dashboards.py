"""
Admin-side aggregations over booking documents.

Everything here is pure: callers read the collections from the store and
pass the documents in, so the same functions serve the pages, the JSON
endpoints and the exports.
"""
from __future__ import annotations

from collections import OrderedDict
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from packages.features.common.forms import clean, matches_query, money, normalize
from packages.features.common.periods import (
    between,
    booking_day,
    in_period,
    iso_day,
    to_date,
    to_datetime,
    today,
)

UNKNOWN_EMPLOYEE = "unknown@os.com"
UNKNOWN_COUNTRY = "Unknown"
KINDS = ("visa", "ticket", "umrah")

ADMIN_SEARCH_FIELDS = ["fullName", "passport", "email", "userEmail", "country"]
COUNTRY_SEARCH_FIELDS = ["fullName", "passport", "userEmail", "phone"]


# ---------- Visa statistics ----------
def visa_stats(docs: Iterable[Dict[str, Any]], period: str = "all", now: Optional[datetime] = None) -> Dict[str, Any]:
    stats = {
        "total": 0,
        "approved": 0,
        "processing": 0,
        "rejected": 0,
        "paid": 0,
        "unpaid": 0,
        "totalRevenue": 0.0,
        "pendingRevenue": 0.0,
        "profit": 0.0,
    }
    for d in docs:
        if not in_period(d.get("date") or d.get("createdAt"), period, now):
            continue
        stats["total"] += 1
        status = normalize(d.get("visaStatus"))
        if status == "approved":
            stats["approved"] += 1
        elif status in ("processing", "pending"):
            stats["processing"] += 1
        elif status == "rejected":
            stats["rejected"] += 1
        payment = normalize(d.get("paymentStatus"))
        if payment == "paid":
            stats["paid"] += 1
        elif payment == "unpaid":
            stats["unpaid"] += 1
        stats["totalRevenue"] += money(d.get("receivedFee"))
        stats["pendingRevenue"] += money(d.get("remainingFee"))
        stats["profit"] += money(d.get("profit"))
    return stats


def employee_performance(docs: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Per-handler visa figures, best performers first."""
    groups: Dict[str, Dict[str, Any]] = {}
    for d in docs:
        email = clean(d.get("userEmail")) or "Unknown"
        g = groups.setdefault(
            email,
            {
                "email": email,
                "totalBookings": 0,
                "approvedVisas": 0,
                "pendingVisas": 0,
                "rejectedVisas": 0,
                "totalRevenue": 0.0,
                "receivedRevenue": 0.0,
                "pendingRevenue": 0.0,
                "profit": 0.0,
                "countries": set(),
                "lastActivity": None,
            },
        )
        g["totalBookings"] += 1
        status = normalize(d.get("visaStatus"))
        if status == "approved":
            g["approvedVisas"] += 1
        elif status in ("processing", "pending"):
            g["pendingVisas"] += 1
        elif status == "rejected":
            g["rejectedVisas"] += 1
        g["totalRevenue"] += money(d.get("totalFee"))
        g["receivedRevenue"] += money(d.get("receivedFee"))
        g["pendingRevenue"] += money(d.get("remainingFee"))
        g["profit"] += money(d.get("profit"))
        if clean(d.get("country")):
            g["countries"].add(clean(d.get("country")))
        day = booking_day(d)
        if day and (g["lastActivity"] is None or day > g["lastActivity"]):
            g["lastActivity"] = day

    rows = []
    for g in groups.values():
        g["countries"] = sorted(g["countries"])
        g["lastActivity"] = g["lastActivity"].isoformat() if g["lastActivity"] else ""
        g["performance"] = round(g["approvedVisas"] / g["totalBookings"] * 100) if g["totalBookings"] else 0
        rows.append(g)
    rows.sort(key=lambda g: (-g["totalBookings"], g["email"].lower()))
    return rows


# ---------- Admin visa dashboard ----------
def filter_admin_visas(
    docs: Iterable[Dict[str, Any]],
    status: str = "",
    payment: str = "",
    country: str = "",
    period: str = "all",
    q: str = "",
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    status = "" if normalize(status) in ("", "all") else normalize(status)
    payment = "" if normalize(payment) in ("", "all") else normalize(payment)
    country = "" if normalize(country) in ("", "all") else normalize(country)
    out = []
    for d in docs:
        if status and normalize(d.get("visaStatus")) != status:
            continue
        if payment and normalize(d.get("paymentStatus")) != payment:
            continue
        if country and normalize(d.get("country")) != country:
            continue
        if not in_period(d.get("date") or d.get("createdAt"), period, now):
            continue
        if not matches_query(d, q, ADMIN_SEARCH_FIELDS):
            continue
        out.append(d)
    return out


def country_options(docs: Iterable[Dict[str, Any]]) -> List[str]:
    return sorted({clean(d.get("country")) for d in docs if clean(d.get("country"))}, key=str.lower)


# ---------- Employee records ----------
def handler_email(doc: Dict[str, Any]) -> str:
    return (clean(doc.get("userEmail")) or clean(doc.get("createdByEmail")) or UNKNOWN_EMPLOYEE).lower()


def employee_records(
    visas: Iterable[Dict[str, Any]],
    tickets: Iterable[Dict[str, Any]],
    umrah: Iterable[Dict[str, Any]],
) -> List[Dict[str, Any]]:
    groups: Dict[str, Dict[str, Any]] = {}
    for kind, docs in (("visa", visas), ("ticket", tickets), ("umrah", umrah)):
        for d in docs:
            email = handler_email(d)
            g = groups.setdefault(email, {"email": email, "visa": [], "ticket": [], "umrah": []})
            g[kind].append(d)

    rows = []
    for g in groups.values():
        g["counts"] = {k: len(g[k]) for k in KINDS}
        g["total"] = sum(g["counts"].values())
        rows.append(g)
    rows.sort(key=lambda g: (-g["total"], g["email"]))
    return rows


def filter_employee_records(rows: List[Dict[str, Any]], q: str = "", only_with_records: bool = False) -> List[Dict[str, Any]]:
    qn = normalize(q)
    out = []
    for r in rows:
        if qn and qn not in r["email"]:
            continue
        if only_with_records and r["total"] <= 0:
            continue
        out.append(r)
    return out


def records_totals(rows: Iterable[Dict[str, Any]]) -> Dict[str, int]:
    totals = {"visa": 0, "ticket": 0, "umrah": 0, "total": 0, "handlers": 0}
    for r in rows:
        for k in KINDS:
            totals[k] += r["counts"][k]
        totals["total"] += r["total"]
        if r["total"] > 0:
            totals["handlers"] += 1
    return totals


def employee_timeline(
    row: Dict[str, Any],
    kind: str = "all",
    date_from: Any = None,
    date_to: Any = None,
    q: str = "",
) -> "OrderedDict[str, List[Dict[str, Any]]]":
    """One handler's records, narrowed and grouped by day (newest day first)."""
    kinds = KINDS if kind in ("", "all") else (kind,)
    qn = normalize(q)
    items = []
    for k in kinds:
        for d in row.get(k, []):
            day = booking_day(d)
            if not between(day, date_from, date_to):
                continue
            if qn and not any(qn in normalize(v) for key, v in d.items() if key != "id" and not isinstance(v, dict)):
                continue
            items.append({**d, "_kind": k, "_day": day.isoformat() if day else ""})
    items.sort(key=lambda d: d["_day"], reverse=True)
    grouped: "OrderedDict[str, List[Dict[str, Any]]]" = OrderedDict()
    for d in items:
        grouped.setdefault(d["_day"] or "Undated", []).append(d)
    return grouped


# ---------- Countries ----------
def country_of(doc: Dict[str, Any]) -> str:
    for key in ("country", "to", "destination", "nationality", "countryName"):
        if clean(doc.get(key)):
            return clean(doc.get(key))
    return UNKNOWN_COUNTRY


def group_by_country(docs: Iterable[Dict[str, Any]], q: str = "") -> List[Dict[str, Any]]:
    groups: Dict[str, Dict[str, Any]] = {}
    for d in docs:
        name = country_of(d)
        g = groups.setdefault(name.lower(), {"country": name, "bookings": []})
        g["bookings"].append(d)
    rows = [{**g, "count": len(g["bookings"])} for g in groups.values()]
    qn = normalize(q)
    if qn:
        rows = [r for r in rows if qn in r["country"].lower()]
    rows.sort(key=lambda r: (-r["count"], r["country"].lower()))
    return rows


def country_detail(
    docs: Iterable[Dict[str, Any]],
    country: str,
    q: str = "",
    date_from: Any = None,
    date_to: Any = None,
) -> Dict[str, Any]:
    key = normalize(country)
    bookings = [
        d for d in docs
        if normalize(d.get("country")) == key
        and matches_query(d, q, COUNTRY_SEARCH_FIELDS)
        and between(d.get("date"), date_from, date_to)
    ]
    bookings.sort(key=lambda d: iso_day(d.get("date")), reverse=True)
    return {
        "country": country,
        "bookings": bookings,
        "stats": {
            "total": len(bookings),
            "approved": sum(1 for d in bookings if normalize(d.get("visaStatus")) == "approved"),
            "totalRevenue": sum(money(d.get("totalFee")) for d in bookings),
            "pendingRevenue": sum(money(d.get("remainingFee")) for d in bookings),
        },
    }


# ---------- Overview ----------
def bookings_per_day(docs: Iterable[Dict[str, Any]], days: int = 7, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
    end = today(now)
    series: "OrderedDict[date, int]" = OrderedDict((end - timedelta(days=i), 0) for i in range(days - 1, -1, -1))
    for d in docs:
        day = booking_day(d)
        if day in series:
            series[day] += 1
    return [{"day": k.isoformat(), "count": v} for k, v in series.items()]


def admin_overview(docs: List[Dict[str, Any]], now: Optional[datetime] = None) -> Dict[str, Any]:
    by_employee: Dict[str, int] = {}
    for d in docs:
        email = handler_email(d)
        by_employee[email] = by_employee.get(email, 0) + 1
    employees = sorted(
        ({"email": k, "count": v} for k, v in by_employee.items()),
        key=lambda r: (-r["count"], r["email"]),
    )
    countries = [{"country": r["country"], "count": r["count"]} for r in group_by_country(docs)]
    series = bookings_per_day(docs, 7, now)
    return {
        "total": len(docs),
        "employees": employees,
        "countries": countries,
        "employee_count": len(employees),
        "country_count": len(countries),
        "series": series,
        "series_max": max((p["count"] for p in series), default=0),
    }


def latest_activity(docs: Iterable[Dict[str, Any]], limit: int = 10) -> List[Dict[str, Any]]:
    def _k(d: Dict[str, Any]):
        created = to_datetime(d.get("createdAt"))
        day = to_date(d.get("date"))
        return (day.isoformat() if day else "", created.isoformat() if created else "")

    return sorted(docs, key=_k, reverse=True)[:limit]
