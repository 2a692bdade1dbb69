from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from packages.features.common.errors import BookingError, NotFound
from packages.features.common.forms import fmt_money, owned_by, paginate
from packages.features.common.periods import PERIOD_LABELS, normalize_period
from packages.features.common.web import (
    _json,
    current_user,
    download,
    error_json,
    error_message,
    field,
    forbidden,
    is_admin,
    read_payload,
    redirect,
    unauthenticated,
)
from packages.features.exports.exports import UMRAH_COLUMNS, columns_to_csv
from packages.features.exports.reports import table_pdf
from services.datastore.base import StoreError

from .umrah import (
    create_umrah,
    delete_umrah,
    employee_options,
    filter_umrah,
    get_umrah,
    list_all_umrah,
    list_umrah_for_user,
    search_umrah,
    umrah_totals,
    update_umrah,
    vendor_options,
)

router = APIRouter()

UMRAH_FIELDS = [
    field("fullName", "Full Name"),
    field("phone", "Phone", "tel"),
    field("passportNumber", "Passport Number"),
    field("visaNumber", "Visa Number"),
    field("makkahHotel", "Makkah Hotel"),
    field("makkahCheckIn", "Makkah Check-in", "date"),
    field("makkahCheckOut", "Makkah Check-out", "date"),
    field("madinahHotel", "Madinah Hotel"),
    field("madinahCheckIn", "Madinah Check-in", "date"),
    field("madinahCheckOut", "Madinah Check-out", "date"),
    field("makkahagainhotel", "Makkah Hotel (second stay)", required=False),
    field("makkahCheckInagain", "Makkah Check-in (second stay)", "date", required=False),
    field("makkahCheckOutagain", "Makkah Check-out (second stay)", "date", required=False),
    field("vendor", "Vendor"),
    field("payable", "Payable", "number"),
    field("received", "Received", "number"),
]

ADMIN_PERIODS = ["all", "today", "yesterday", "last7", "last30"]
PER_PAGE = 10


def _summary(totals: dict) -> dict:
    return {
        "Bookings": totals["bookings"],
        "Received": fmt_money(totals["received"]),
        "Payable": fmt_money(totals["payable"]),
        "Profit": fmt_money(totals["profit"]),
    }


def _own_page(request: Request, q: str = "", extra: dict | None = None, status_code: int = 200):
    rows = search_umrah(list_umrah_for_user(current_user(request)["id"]), q)
    ctx = {
        "title": "Umrah Bookings",
        "rows": rows,
        "columns": UMRAH_COLUMNS,
        "totals": _summary(umrah_totals(rows)),
        "filters": {"q": q},
        "edit_base": "/umrah",
        "fields": UMRAH_FIELDS,
        "create_action": "/umrah",
        "values": {},
    }
    ctx.update(extra or {})
    return request.app.state.render(request, "records/list.html", ctx, status_code=status_code)


@router.get("/umrah", response_class=HTMLResponse, name="umrah")
def umrah_page(request: Request, q: str = ""):
    return _own_page(request, q)


@router.post("/umrah", name="umrah_create")
async def umrah_create(request: Request):
    form = await read_payload(request)
    try:
        create_umrah(current_user(request), form)
    except (BookingError, StoreError) as exc:
        return _own_page(request, "", {"values": form, "err": error_message(exc), "errors": getattr(exc, "errors", {})}, 400)
    return redirect("/umrah", msg="Umrah booking saved.")


@router.get("/umrah/{umrah_id}/edit", response_class=HTMLResponse, name="umrah_edit")
def umrah_edit_page(request: Request, umrah_id: str):
    admin = is_admin(request)
    back = "/admin/umrah" if admin else "/umrah"
    try:
        doc = get_umrah(umrah_id)
    except NotFound:
        return redirect(back, err="Umrah booking not found.")
    if not (admin or owned_by(doc, current_user(request))):
        return redirect(back, err="You can only edit your own Umrah bookings.")
    return request.app.state.render(
        request,
        "records/edit.html",
        {"title": "Edit Umrah Booking", "fields": UMRAH_FIELDS, "values": doc, "action": f"/umrah/{umrah_id}/edit", "back": back},
    )


@router.post("/umrah/{umrah_id}/edit", name="umrah_update")
async def umrah_update(request: Request, umrah_id: str):
    admin = is_admin(request)
    form = await read_payload(request)
    try:
        update_umrah(current_user(request), umrah_id, form, is_admin=admin)
    except (BookingError, StoreError) as exc:
        return redirect(f"/umrah/{umrah_id}/edit", err=error_message(exc))
    return redirect("/admin/umrah" if admin else "/umrah", msg="Umrah booking updated.")


# ---------- Admin ----------
def _admin_filtered(q: str, vendor: str, employee: str, period: str):
    docs = list_all_umrah()
    return docs, filter_umrah(docs, q=q, vendor=vendor, employee=employee, period=period)


@router.get("/admin/umrah", response_class=HTMLResponse, name="admin_umrah")
def admin_umrah_page(request: Request, q: str = "", vendor: str = "", employee: str = "", period: str = "all", page: int = 1):
    docs, rows = _admin_filtered(q, vendor, employee, period)
    pager = paginate(rows, page, PER_PAGE)
    return request.app.state.render(
        request,
        "records/list.html",
        {
            "title": "Umrah Bookings (Admin)",
            "rows": pager["items"],
            "pager": pager,
            "columns": UMRAH_COLUMNS,
            "totals": _summary(umrah_totals(rows)),
            "periods": [(p, PERIOD_LABELS[p]) for p in ADMIN_PERIODS],
            "vendors": vendor_options(docs),
            "employees": employee_options(docs),
            "filters": {"q": q, "vendor": vendor, "employee": employee, "period": normalize_period(period)},
            "edit_base": "/umrah",
            "delete_base": "/admin/umrah",
            "export_base": "/admin/umrah/export",
        },
    )


@router.post("/admin/umrah/{umrah_id}/delete", name="admin_umrah_delete")
def admin_umrah_delete(request: Request, umrah_id: str):
    try:
        delete_umrah(umrah_id)
    except (BookingError, StoreError) as exc:
        return redirect("/admin/umrah", err=error_message(exc))
    return redirect("/admin/umrah", msg="Umrah booking deleted.")


@router.get("/admin/umrah/export.csv", name="admin_umrah_csv")
def admin_umrah_csv(request: Request, q: str = "", vendor: str = "", employee: str = "", period: str = "all"):
    _, rows = _admin_filtered(q, vendor, employee, period)
    return download(columns_to_csv(rows, UMRAH_COLUMNS), "umrah_bookings.csv", "text/csv")


@router.get("/admin/umrah/export.pdf", name="admin_umrah_pdf")
def admin_umrah_pdf(request: Request, q: str = "", vendor: str = "", employee: str = "", period: str = "all"):
    _, rows = _admin_filtered(q, vendor, employee, period)
    pdf = table_pdf("Umrah Bookings", rows, UMRAH_COLUMNS, _summary(umrah_totals(rows)))
    return download(pdf, "umrah_bookings.pdf", "application/pdf")


# ---------- JSON API ----------
@router.get("/api/umrah", name="api_umrah")
def api_umrah(request: Request, q: str = ""):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    rows = search_umrah(list_umrah_for_user(cu["id"]), q)
    return _json({"status": "ok", "umrah": rows, "totals": umrah_totals(rows)})


@router.post("/api/umrah", name="api_umrah_create")
async def api_umrah_create(request: Request):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = create_umrah(cu, await read_payload(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "umrah": doc}, 201)


@router.put("/api/umrah/{umrah_id}", name="api_umrah_update")
async def api_umrah_update(request: Request, umrah_id: str):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = update_umrah(cu, umrah_id, await read_payload(request), is_admin=is_admin(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "umrah": doc})


@router.get("/api/admin/umrah", name="api_admin_umrah")
def api_admin_umrah(request: Request, q: str = "", vendor: str = "", employee: str = "", period: str = "all", page: int = 1):
    if not is_admin(request):
        return forbidden()
    _, rows = _admin_filtered(q, vendor, employee, period)
    pager = paginate(rows, page, PER_PAGE)
    return _json({"status": "ok", "umrah": pager["items"], "page": pager["page"], "pages": pager["pages"], "totals": umrah_totals(rows)})


@router.delete("/api/admin/umrah/{umrah_id}", name="api_admin_umrah_delete")
def api_admin_umrah_delete(request: Request, umrah_id: str):
    if not is_admin(request):
        return forbidden()
    try:
        delete_umrah(umrah_id)
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok"})
