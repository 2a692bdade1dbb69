from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from packages.features.common.errors import BookingError, NotFound
from packages.features.common.forms import fmt_money, matches_query, owned_by
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
from packages.features.exports.exports import TICKET_COLUMNS, tickets_csv
from packages.features.exports.reports import table_pdf
from services.datastore.base import StoreError

from .tickets import (
    STATUSES,
    TRAVEL_CLASSES,
    SEARCH_FIELDS,
    admin_update_ticket,
    create_ticket,
    delete_ticket,
    employee_key,
    filter_tickets,
    get_ticket,
    latest_tickets,
    list_all_tickets,
    list_tickets_for_user,
    quick_stats,
    search_tickets,
    ticket_employee_totals,
    ticket_totals,
    update_own_ticket,
)

router = APIRouter()

TICKET_FIELDS = [
    field("tripType", "Trip Type", "select", [("oneway", "One Way"), ("round", "Round Trip")]),
    field("from", "From"),
    field("to", "To"),
    field("departure", "Departure", "date"),
    field("returnDate", "Return (round trip)", "date", required=False),
    field("adults", "Adults", "number", required=False, value=1),
    field("children", "Children", "number", required=False, value=0),
    field("infants", "Infants", "number", required=False, value=0),
    field("travelClass", "Class", "select", TRAVEL_CLASSES),
    field("airlinePref", "Airline Preference", required=False),
    field("promo", "Promo Code", required=False),
    field("passenger.fullName", "Passenger Name"),
    field("passenger.passport", "Passport"),
    field("passenger.cnic", "CNIC", required=False),
    field("passenger.phone", "Phone", "tel"),
    field("passenger.email", "Email", "email", required=False),
    field("pnr", "PNR"),
    field("vendor", "Vendor"),
    field("price", "Price", "number"),
    field("payable", "Payable", "number"),
    field("note", "Note", "textarea", required=False),
]

EDIT_FIELDS = [
    f for f in TICKET_FIELDS
    if f["name"] not in ("tripType", "adults", "children", "infants", "price", "payable")
] + [field("totalPax", "Total Passengers", "number", required=False), field("status", "Status", "select", STATUSES)]

ADMIN_PERIODS = ["all", "today", "yesterday", "last7", "week", "month", "last30"]


def _ticket_page(request: Request, extra: dict | None = None, status_code: int = 200):
    cu = current_user(request)
    latest = latest_tickets(cu["id"])
    ctx = {
        "title": "Ticket Bookings",
        "fields": TICKET_FIELDS,
        "values": {},
        "latest": latest,
        "stats": quick_stats(latest),
        "results": None,
        "search": {"pnr": "", "id_number": ""},
    }
    ctx.update(extra or {})
    return request.app.state.render(request, "tickets/index.html", ctx, status_code=status_code)


# ---------- Employee pages ----------
@router.get("/tickets", response_class=HTMLResponse, name="tickets")
def tickets_page(request: Request, pnr: str = "", id_number: str = ""):
    results = search_tickets(pnr, id_number) if (pnr.strip() or id_number.strip()) else None
    return _ticket_page(request, {"results": results, "search": {"pnr": pnr, "id_number": id_number}})


@router.post("/tickets", name="ticket_create")
async def ticket_create(request: Request):
    form = await read_payload(request)
    try:
        doc = create_ticket(current_user(request), form)
    except (BookingError, StoreError) as exc:
        return _ticket_page(
            request, {"values": form, "err": error_message(exc), "errors": getattr(exc, "errors", {})}, 400
        )
    return redirect("/tickets", msg=f"Ticket {doc.get('pnr')} booked.")


@router.get("/tickets/all", response_class=HTMLResponse, name="tickets_all")
def tickets_all_page(request: Request, q: str = ""):
    cu = current_user(request)
    rows = [d for d in list_tickets_for_user(cu["id"]) if matches_query(d, q, SEARCH_FIELDS)]
    return request.app.state.render(
        request,
        "records/list.html",
        {
            "title": "My Ticket Bookings",
            "rows": rows,
            "columns": TICKET_COLUMNS,
            "q": q,
            "edit_base": "/tickets",
            "totals": {"Bookings": len(rows)},
        },
    )


@router.get("/tickets/{ticket_id}/edit", response_class=HTMLResponse, name="ticket_edit")
def ticket_edit_page(request: Request, ticket_id: str):
    try:
        doc = get_ticket(ticket_id)
    except NotFound:
        return redirect("/tickets/all", err="Ticket booking not found.")
    if not owned_by(doc, current_user(request)):
        return redirect("/tickets/all", err="You can only edit your own ticket bookings.")
    return request.app.state.render(
        request,
        "records/edit.html",
        {
            "title": f"Edit Ticket {doc.get('pnr') or ''}",
            "fields": EDIT_FIELDS,
            "values": doc,
            "action": f"/tickets/{ticket_id}/edit",
            "back": "/tickets/all",
        },
    )


@router.post("/tickets/{ticket_id}/edit", name="ticket_update")
async def ticket_update(request: Request, ticket_id: str):
    form = await read_payload(request)
    try:
        update_own_ticket(current_user(request), ticket_id, form)
    except (BookingError, StoreError) as exc:
        return redirect(f"/tickets/{ticket_id}/edit", err=error_message(exc))
    return redirect("/tickets/all", msg="Ticket updated.")


# ---------- Admin pages ----------
def _admin_rows(period: str, employee: str, q: str, status: str):
    docs = list_all_tickets()
    rows = filter_tickets(docs, period=period, employee=employee, q=q, status=status)
    employees = sorted({employee_key(d) for d in docs}, key=str.lower)
    return docs, rows, employees


@router.get("/admin/tickets", response_class=HTMLResponse, name="admin_tickets")
def admin_tickets_page(
    request: Request,
    period: str = "all",
    employee: str = "",
    q: str = "",
    status: str = "",
    sort: str = "bookings",
    dir: str = "desc",
):
    _, rows, employees = _admin_rows(period, employee, q, status)
    return request.app.state.render(
        request,
        "admin/tickets.html",
        {
            "title": "Ticket Bookings (Admin)",
            "rows": rows,
            "totals": ticket_totals(rows),
            "by_employee": ticket_employee_totals(rows, sort, dir),
            "employees": employees,
            "statuses": STATUSES,
            "periods": [(p, PERIOD_LABELS[p]) for p in ADMIN_PERIODS],
            "filters": {"period": normalize_period(period), "employee": employee, "q": q, "status": status, "sort": sort, "dir": dir},
        },
    )


@router.post("/admin/tickets/{ticket_id}/edit", name="admin_ticket_update")
async def admin_ticket_update(request: Request, ticket_id: str):
    form = await read_payload(request)
    try:
        admin_update_ticket(ticket_id, form)
    except (BookingError, StoreError) as exc:
        return redirect("/admin/tickets", err=error_message(exc))
    return redirect("/admin/tickets", msg="Ticket updated.")


@router.post("/admin/tickets/{ticket_id}/delete", name="admin_ticket_delete")
def admin_ticket_delete(request: Request, ticket_id: str):
    try:
        delete_ticket(ticket_id)
    except (BookingError, StoreError) as exc:
        return redirect("/admin/tickets", err=error_message(exc))
    return redirect("/admin/tickets", msg="Ticket deleted.")


@router.get("/admin/tickets/export.csv", name="admin_tickets_csv")
def admin_tickets_csv(request: Request, period: str = "all", employee: str = "", q: str = "", status: str = ""):
    _, rows, _ = _admin_rows(period, employee, q, status)
    return download(tickets_csv(rows), "ticket_bookings.csv", "text/csv")


@router.get("/admin/tickets/export.pdf", name="admin_tickets_pdf")
def admin_tickets_pdf(request: Request, period: str = "all", employee: str = "", q: str = "", status: str = ""):
    _, rows, _ = _admin_rows(period, employee, q, status)
    totals = ticket_totals(rows)
    summary = {
        "Period": PERIOD_LABELS[normalize_period(period)],
        "Bookings": totals["bookings"],
        "Earnings": fmt_money(totals["earnings"]),
        "Payable": fmt_money(totals["payable"]),
        "Profit": fmt_money(totals["profit"]),
    }
    return download(table_pdf("Ticket Bookings", rows, TICKET_COLUMNS, summary), "ticket_bookings.pdf", "application/pdf")


# ---------- JSON API ----------
@router.get("/api/tickets", name="api_tickets")
def api_tickets(request: Request, latest: bool = False):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    rows = latest_tickets(cu["id"]) if latest else list_tickets_for_user(cu["id"])
    return _json({"status": "ok", "tickets": rows, "stats": quick_stats(rows)})


@router.get("/api/tickets/search", name="api_tickets_search")
def api_tickets_search(request: Request, pnr: str = "", id_number: str = ""):
    if not current_user(request):
        return unauthenticated()
    return _json({"status": "ok", "tickets": search_tickets(pnr, id_number)})


@router.post("/api/tickets", name="api_ticket_create")
async def api_ticket_create(request: Request):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = create_ticket(cu, await read_payload(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "ticket": doc}, 201)


@router.put("/api/tickets/{ticket_id}", name="api_ticket_update")
async def api_ticket_update(request: Request, ticket_id: str):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = update_own_ticket(cu, ticket_id, await read_payload(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "ticket": doc})


@router.get("/api/admin/tickets", name="api_admin_tickets")
def api_admin_tickets(
    request: Request,
    period: str = "all",
    employee: str = "",
    q: str = "",
    status: str = "",
    sort: str = "bookings",
    dir: str = "desc",
):
    if not is_admin(request):
        return forbidden()
    _, rows, _ = _admin_rows(period, employee, q, status)
    return _json(
        {
            "status": "ok",
            "tickets": rows,
            "totals": ticket_totals(rows),
            "employees": ticket_employee_totals(rows, sort, dir),
        }
    )


@router.put("/api/admin/tickets/{ticket_id}", name="api_admin_ticket_update")
async def api_admin_ticket_update(request: Request, ticket_id: str):
    if not is_admin(request):
        return forbidden()
    try:
        doc = admin_update_ticket(ticket_id, await read_payload(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "ticket": doc})


@router.delete("/api/admin/tickets/{ticket_id}", name="api_admin_ticket_delete")
def api_admin_ticket_delete(request: Request, ticket_id: str):
    if not is_admin(request):
        return forbidden()
    try:
        delete_ticket(ticket_id)
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok"})
