from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from packages.features.common.forms import normalize, paginate
from packages.features.common.periods import PERIOD_LABELS, normalize_period
from packages.features.common.web import _json, download, forbidden, is_admin
from packages.features.exports.exports import admin_visas_csv, employee_records_csv
from packages.features.exports.reports import admin_report_pdf
from packages.features.tickets.tickets import list_all_tickets
from packages.features.umrah.umrah import list_all_umrah
from packages.features.visas.visas import (
    PAYMENT_STATUSES,
    VISA_STATUSES,
    list_all_visas,
    list_deleted,
)

from .dashboards import (
    admin_overview,
    country_detail,
    country_options,
    employee_performance,
    employee_records,
    employee_timeline,
    filter_admin_visas,
    filter_employee_records,
    group_by_country,
    latest_activity,
    records_totals,
    visa_stats,
)

router = APIRouter()

STATS_PERIODS = ["today", "yesterday", "week", "month", "year", "all"]
LIST_PERIODS = ["all", "today", "week", "month"]
PER_PAGE = 10


def _filtered(status: str, payment: str, country: str, period: str, q: str):
    docs = list_all_visas()
    return docs, filter_admin_visas(docs, status=status, payment=payment, country=country, period=period, q=q)


@router.get("/admin", response_class=HTMLResponse, name="admin")
def admin_dashboard(
    request: Request,
    stats_period: str = "all",
    status: str = "",
    payment: str = "",
    country: str = "",
    period: str = "all",
    q: str = "",
    page: int = 1,
):
    docs, rows = _filtered(status, payment, country, period, q)
    pager = paginate(rows, page, PER_PAGE)
    return request.app.state.render(
        request,
        "admin/dashboard.html",
        {
            "title": "Admin Dashboard",
            "stats": visa_stats(docs, stats_period),
            "stats_periods": [(p, PERIOD_LABELS[p]) for p in STATS_PERIODS],
            "stats_period": normalize_period(stats_period),
            "employees": employee_performance(docs),
            "rows": pager["items"],
            "pager": pager,
            "statuses": VISA_STATUSES,
            "payments": PAYMENT_STATUSES,
            "countries": country_options(docs),
            "periods": [(p, PERIOD_LABELS[p]) for p in LIST_PERIODS],
            "filters": {"status": status, "payment": payment, "country": country, "period": normalize_period(period), "q": q},
        },
    )


@router.get("/admin/visas/export.csv", name="admin_visas_csv")
def admin_visas_export(request: Request, status: str = "", payment: str = "", country: str = "", period: str = "all", q: str = ""):
    _, rows = _filtered(status, payment, country, period, q)
    return download(admin_visas_csv(rows), "visa_bookings.csv", "text/csv")


@router.get("/admin/visas/report.pdf", name="admin_visas_pdf")
def admin_visas_report(
    request: Request,
    stats_period: str = "all",
    status: str = "",
    payment: str = "",
    country: str = "",
    period: str = "all",
    q: str = "",
):
    docs, rows = _filtered(status, payment, country, period, q)
    pdf = admin_report_pdf(
        visa_stats(docs, stats_period),
        latest_activity(rows, 10),
        PERIOD_LABELS[normalize_period(stats_period)],
    )
    return download(pdf, "admin_visa_report.pdf", "application/pdf")


@router.get("/admin/home", response_class=HTMLResponse, name="admin_home")
def admin_home(request: Request):
    docs = list_all_visas()
    return request.app.state.render(
        request,
        "admin/home.html",
        {"title": "Overview", "overview": admin_overview(docs), "recent": latest_activity(docs, 8)},
    )


def _records(q: str = "", only_with_records: bool = False):
    rows = employee_records(list_all_visas(), list_all_tickets(), list_all_umrah())
    return filter_employee_records(rows, q, only_with_records)


@router.get("/admin/employees", response_class=HTMLResponse, name="admin_employees")
def admin_employees(request: Request, q: str = "", only: bool = False):
    rows = _records(q, only)
    return request.app.state.render(
        request,
        "admin/employees.html",
        {"title": "Employee Records", "rows": rows, "totals": records_totals(rows), "q": q, "only": only},
    )


@router.get("/admin/employees/export.csv", name="admin_employees_csv")
def admin_employees_export(request: Request, q: str = "", only: bool = False):
    return download(employee_records_csv(_records(q, only)), "employee_records.csv", "text/csv")


@router.get("/admin/employees/{email}", response_class=HTMLResponse, name="admin_employee_detail")
def admin_employee_detail(request: Request, email: str, kind: str = "all", date_from: str = "", date_to: str = "", q: str = ""):
    key = normalize(email)
    row = next((r for r in _records() if r["email"] == key), None)
    row = row or {"email": key, "visa": [], "ticket": [], "umrah": [], "counts": {"visa": 0, "ticket": 0, "umrah": 0}, "total": 0}
    return request.app.state.render(
        request,
        "admin/employee_detail.html",
        {
            "title": f"Records of {key}",
            "employee": row,
            "timeline": employee_timeline(row, kind, date_from, date_to, q),
            "filters": {"kind": kind, "date_from": date_from, "date_to": date_to, "q": q},
        },
    )


@router.get("/admin/countries", response_class=HTMLResponse, name="admin_countries")
def admin_countries(request: Request, q: str = ""):
    groups = group_by_country(list_all_visas(), q=q)
    return request.app.state.render(
        request,
        "visas/countries.html",
        {"title": "Bookings by Country", "groups": groups, "q": q, "detail_base": "/admin/countries"},
    )


@router.get("/admin/countries/{country}", response_class=HTMLResponse, name="admin_country_detail")
def admin_country_detail(request: Request, country: str, q: str = "", date_from: str = "", date_to: str = ""):
    detail = country_detail(list_all_visas(), country, q, date_from, date_to)
    return request.app.state.render(
        request,
        "admin/country_detail.html",
        {
            "title": f"{country} Bookings",
            "detail": detail,
            "filters": {"q": q, "date_from": date_from, "date_to": date_to},
        },
    )


@router.get("/admin/deleted", response_class=HTMLResponse, name="admin_deleted")
def admin_deleted(request: Request):
    return request.app.state.render(request, "visas/deleted.html", {"title": "Deleted Bookings", "rows": list_deleted()})


# ---------- JSON API ----------
@router.get("/api/admin/stats", name="api_admin_stats")
def api_admin_stats(request: Request, period: str = "all"):
    if not is_admin(request):
        return forbidden()
    docs = list_all_visas()
    return _json({"status": "ok", "period": normalize_period(period), "stats": visa_stats(docs, period)})


@router.get("/api/admin/employees", name="api_admin_employees")
def api_admin_employees(request: Request):
    if not is_admin(request):
        return forbidden()
    rows = _records()
    slim = [{"email": r["email"], "counts": r["counts"], "total": r["total"]} for r in rows]
    return _json(
        {
            "status": "ok",
            "performance": employee_performance(list_all_visas()),
            "records": slim,
            "totals": records_totals(rows),
        }
    )


@router.get("/api/admin/overview", name="api_admin_overview")
def api_admin_overview(request: Request):
    if not is_admin(request):
        return forbidden()
    return _json({"status": "ok", "overview": admin_overview(list_all_visas())})
