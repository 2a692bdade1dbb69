from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from packages.features.common.errors import BookingError, NotFound
from packages.features.common.forms import owned_by
from packages.features.common.periods import PERIOD_LABELS, normalize_period
from packages.features.common.web import (
    _json,
    current_user,
    download,
    error_json,
    error_message,
    field,
    is_admin,
    read_payload,
    redirect,
    unauthenticated,
)
from packages.features.dashboards.dashboards import group_by_country
from packages.features.exports.reports import visa_booking_pdf
from services.datastore.base import StoreError

from .visas import (
    APPOINTMENT,
    PAYMENT_STATUSES,
    VISA_STATUSES,
    VISA_TYPES,
    admin_update_visa,
    create_visa,
    filter_visas,
    find_by_passport,
    get_visa,
    list_deleted,
    list_deleted_for_user,
    list_visas_for_user,
    purge_visa,
    report_filename,
    restore_visa,
    search_summary,
    soft_delete_visa,
    unique_by_passport_country,
    update_own_visa,
)

router = APIRouter()

VISA_FIELDS = [
    field("passport", "Passport Number"),
    field("fullName", "Full Name"),
    field("visaType", "Visa Type", "select", VISA_TYPES),
    field("country", "Country"),
    field("date", "Application Date", "date", required=False),
    field("expiryDate", "Passport Expiry Date", "date"),
    field("email", "Email", "email"),
    field("phone", "Phone", "tel"),
    field("totalFee", "Total Fee", "number"),
    field("receivedFee", "Received Fee", "number"),
    field("embassyFee", "Embassy Fee", "number"),
    field("paymentStatus", "Payment Status", "select", PAYMENT_STATUSES),
    field("visaStatus", "Visa Status", "select", VISA_STATUSES),
    field("sentToEmbassy", "Sent To Embassy", "date", required=False),
    field("receivedFromEmbassy", "Received From Embassy", "date", required=False),
    field("reference", "Reference", required=False),
    field("vendor", "Vendor (Appointment only)", required=False),
    field("vendorContact", "Vendor Contact (Appointment only)", required=False),
    field("vendorFee", "Vendor Fee (Appointment only)", "number", required=False),
    field("remarks", "Remarks", "textarea", required=False),
]

EMPLOYEE_PERIODS = ["all", "today", "yesterday", "last7", "last30"]
SEARCH_PERIODS = ["all", "today", "yesterday", "week", "month"]


def _edit_fields(doc: dict, admin: bool) -> list:
    skip = {"expiryDate", "phone", "reference"} if not admin else set()
    if doc.get("visaType") != APPOINTMENT:
        skip |= {"vendor", "vendorContact", "vendorFee"}
    return [f for f in VISA_FIELDS if f["name"] not in skip]


# ---------- Pages ----------
@router.get("/visas/new", response_class=HTMLResponse, name="visa_new")
def visa_new_page(request: Request):
    return request.app.state.render(
        request,
        "records/form.html",
        {"title": "New Visa Booking", "fields": VISA_FIELDS, "action": "/visas/new", "values": {}},
    )


@router.post("/visas/new", name="visa_create")
async def visa_create(request: Request):
    cu = current_user(request)
    form = await read_payload(request)
    try:
        doc = create_visa(cu, form)
    except (BookingError, StoreError) as exc:
        return request.app.state.render(
            request,
            "records/form.html",
            {
                "title": "New Visa Booking",
                "fields": VISA_FIELDS,
                "action": "/visas/new",
                "values": form,
                "err": error_message(exc),
                "errors": getattr(exc, "errors", {}),
            },
            status_code=400,
        )
    return redirect("/visas", msg=f"Booking saved for {doc.get('fullName')}.")


@router.get("/visas", response_class=HTMLResponse, name="visas")
def visas_page(request: Request, status: str = "", period: str = "all", q: str = ""):
    cu = current_user(request)
    docs = unique_by_passport_country(list_visas_for_user(cu["id"]))
    rows = filter_visas(docs, status=status, period=period, q=q)
    return request.app.state.render(
        request,
        "visas/list.html",
        {
            "title": "My Visa Bookings",
            "rows": rows,
            "statuses": VISA_STATUSES,
            "periods": [(p, PERIOD_LABELS[p]) for p in EMPLOYEE_PERIODS],
            "filters": {"status": status, "period": normalize_period(period), "q": q},
        },
    )


@router.get("/visas/search", response_class=HTMLResponse, name="visa_search")
def visa_search_page(
    request: Request,
    status: str = "",
    payment: str = "",
    country: str = "",
    period: str = "all",
    q: str = "",
):
    cu = current_user(request)
    docs = list_visas_for_user(cu["id"])
    rows = filter_visas(
        docs,
        status=status,
        payment=payment,
        country=country,
        period=period,
        q=q,
        fields=["passport", "fullName", "country", "visaType"],
    )
    countries = sorted({str(d.get("country") or "").strip() for d in docs if d.get("country")}, key=str.lower)
    return request.app.state.render(
        request,
        "visas/search.html",
        {
            "title": "Search Bookings",
            "rows": rows,
            "summary": search_summary(rows),
            "statuses": VISA_STATUSES,
            "payments": PAYMENT_STATUSES,
            "countries": countries,
            "periods": [(p, PERIOD_LABELS[p]) for p in SEARCH_PERIODS],
            "filters": {"status": status, "payment": payment, "country": country, "period": normalize_period(period), "q": q},
        },
    )


@router.get("/visas/countries", response_class=HTMLResponse, name="visa_countries")
def visa_countries_page(request: Request, q: str = ""):
    cu = current_user(request)
    groups = group_by_country(list_visas_for_user(cu["id"]), q=q)
    return request.app.state.render(
        request, "visas/countries.html", {"title": "My Countries", "groups": groups, "q": q, "detail_base": ""}
    )


@router.get("/visas/deleted", response_class=HTMLResponse, name="visas_deleted")
def visas_deleted_page(request: Request):
    cu = current_user(request)
    rows = list_deleted() if is_admin(request) else list_deleted_for_user(cu["id"])
    return request.app.state.render(request, "visas/deleted.html", {"title": "Deleted Bookings", "rows": rows})


@router.get("/visas/report", response_class=HTMLResponse, name="visa_report")
def visa_report_page(request: Request, passport: str = ""):
    rows = find_by_passport(passport) if passport.strip() else []
    return request.app.state.render(
        request,
        "visas/report.html",
        {"title": "Booking Report", "passport": passport, "rows": rows, "searched": bool(passport.strip())},
    )


@router.get("/visas/report/{visa_id}.pdf", name="visa_report_pdf")
def visa_report_pdf(request: Request, visa_id: str):
    try:
        doc = get_visa(visa_id)
    except NotFound:
        return redirect("/visas/report", err="Booking not found.")
    return download(visa_booking_pdf(doc), report_filename(doc), "application/pdf")


@router.get("/visas/{visa_id}/edit", response_class=HTMLResponse, name="visa_edit")
def visa_edit_page(request: Request, visa_id: str):
    cu = current_user(request)
    admin = is_admin(request)
    try:
        doc = get_visa(visa_id)
    except NotFound:
        return redirect("/visas", err="Booking not found.")
    if not (admin or owned_by(doc, cu)):
        return redirect("/visas", err="You can only edit your own bookings.")
    return request.app.state.render(
        request,
        "records/edit.html",
        {
            "title": "Edit Visa Booking",
            "fields": _edit_fields(doc, admin),
            "values": doc,
            "action": f"/visas/{visa_id}/edit",
            "back": "/admin" if admin else "/visas",
        },
    )


@router.post("/visas/{visa_id}/edit", name="visa_update")
async def visa_update(request: Request, visa_id: str):
    cu = current_user(request)
    admin = is_admin(request)
    form = await read_payload(request)
    back = "/admin" if admin else "/visas"
    try:
        if admin:
            admin_update_visa(visa_id, form)
        else:
            update_own_visa(cu, visa_id, form)
    except (BookingError, StoreError) as exc:
        return redirect(f"/visas/{visa_id}/edit", err=error_message(exc))
    return redirect(back, msg="Booking updated.")


@router.post("/visas/{visa_id}/delete", name="visa_delete")
def visa_delete(request: Request, visa_id: str):
    cu = current_user(request)
    admin = is_admin(request)
    back = "/admin" if admin else "/visas"
    try:
        soft_delete_visa(cu, visa_id, is_admin=admin)
    except (BookingError, StoreError) as exc:
        return redirect(back, err=error_message(exc))
    return redirect(back, msg="Booking moved to deleted bookings.")


@router.post("/visas/deleted/{deleted_id}/restore", name="visa_restore")
def visa_restore(request: Request, deleted_id: str):
    try:
        restore_visa(current_user(request), deleted_id, is_admin=is_admin(request))
    except (BookingError, StoreError) as exc:
        return redirect("/visas/deleted", err=error_message(exc))
    return redirect("/visas/deleted", msg="Booking restored.")


@router.post("/visas/deleted/{deleted_id}/purge", name="visa_purge")
def visa_purge(request: Request, deleted_id: str):
    try:
        purge_visa(current_user(request), deleted_id, is_admin=is_admin(request))
    except (BookingError, StoreError) as exc:
        return redirect("/visas/deleted", err=error_message(exc))
    return redirect("/visas/deleted", msg="Booking permanently deleted.")


# ---------- JSON API ----------
@router.get("/api/visas", name="api_visas")
def api_visas(request: Request, status: str = "", payment: str = "", country: str = "", period: str = "all", q: str = "", unique: bool = False):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    docs = list_visas_for_user(cu["id"])
    if unique:
        docs = unique_by_passport_country(docs)
    rows = filter_visas(docs, status=status, payment=payment, country=country, period=period, q=q)
    return _json({"status": "ok", "visas": rows, "summary": search_summary(rows)})


@router.post("/api/visas", name="api_visa_create")
async def api_visa_create(request: Request):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = create_visa(cu, await read_payload(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "visa": doc}, 201)


@router.put("/api/visas/{visa_id}", name="api_visa_update")
async def api_visa_update(request: Request, visa_id: str):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    payload = await read_payload(request)
    try:
        if is_admin(request):
            doc = admin_update_visa(visa_id, payload)
        else:
            doc = update_own_visa(cu, visa_id, payload)
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "visa": doc})


@router.delete("/api/visas/{visa_id}", name="api_visa_delete")
def api_visa_delete(request: Request, visa_id: str):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = soft_delete_visa(cu, visa_id, is_admin=is_admin(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "deleted": doc})


@router.get("/api/visas/deleted", name="api_visas_deleted")
def api_visas_deleted(request: Request):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    rows = list_deleted() if is_admin(request) else list_deleted_for_user(cu["id"])
    return _json({"status": "ok", "deleted": rows})


@router.post("/api/visas/deleted/{deleted_id}/restore", name="api_visa_restore")
def api_visa_restore(request: Request, deleted_id: str):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        doc = restore_visa(cu, deleted_id, is_admin=is_admin(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", "visa": doc})


@router.delete("/api/visas/deleted/{deleted_id}", name="api_visa_purge")
def api_visa_purge(request: Request, deleted_id: str):
    cu = current_user(request)
    if not cu:
        return unauthenticated()
    try:
        purge_visa(cu, deleted_id, is_admin=is_admin(request))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok"})


@router.get("/api/visas/report", name="api_visa_report")
def api_visa_report(request: Request, passport: str = ""):
    if not current_user(request):
        return unauthenticated()
    return _json({"status": "ok", "visas": find_by_passport(passport)})
