from __future__ import annotations

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse
from starlette.datastructures import UploadFile

from packages.features.common.errors import BookingError
from packages.features.common.web import _json, download, error_json, forbidden, is_admin
from packages.features.dashboards.dashboards import group_by_country
from packages.features.exports.exports import customers_csv, safe_filename
from services.datastore.base import StoreError
from services.datastore.store import get_store

from .mailing import (
    DEFAULT_BODY,
    SOURCE_COLLECTIONS,
    customers_for_country,
    encode_attachment,
    select_batch,
    send_bulk,
)

router = APIRouter()


def _send_page(request: Request, country: str, ctx: dict | None = None, status_code: int = 200):
    recipients = customers_for_country(country)
    base = {
        "title": f"Email Customers: {country}",
        "country": country,
        "recipients": recipients,
        "form": {"subject": "", "body": DEFAULT_BODY, "start": 0, "end": len(recipients), "send_all": True},
        "result": None,
    }
    base.update(ctx or {})
    return request.app.state.render(request, "admin/send_email.html", base, status_code=status_code)


@router.get("/admin/customers", response_class=HTMLResponse, name="admin_customers")
def admin_customers(request: Request, q: str = ""):
    store = get_store()
    docs = []
    for name in SOURCE_COLLECTIONS:
        docs.extend(store.list(name))
    return request.app.state.render(
        request,
        "visas/countries.html",
        {"title": "Customers by Country", "groups": group_by_country(docs, q=q), "q": q, "detail_base": "/admin/send-email"},
    )


@router.get("/admin/send-email/{country}", response_class=HTMLResponse, name="admin_send_email")
def admin_send_email_page(request: Request, country: str):
    return _send_page(request, country)


@router.post("/admin/send-email/{country}", response_class=HTMLResponse, name="admin_send_email_post")
async def admin_send_email(request: Request, country: str):
    form = await request.form()
    subject = str(form.get("subject") or "")
    body = str(form.get("body") or "")
    send_all = str(form.get("send_all") or "") in ("1", "on", "true")
    start = str(form.get("start") or "0")
    end = str(form.get("end") or "")
    values = {"subject": subject, "body": body, "start": start, "end": end, "send_all": send_all}

    attachment = None
    upload = form.get("file")
    if isinstance(upload, UploadFile) and upload.filename:
        attachment = encode_attachment(upload.filename, await upload.read(), upload.content_type)

    recipients = customers_for_country(country)
    batch = select_batch(recipients, start, end, send_all)
    try:
        result = send_bulk(subject, body, batch, attachment)
    except BookingError as exc:
        return _send_page(request, country, {"form": values, "err": exc.message}, exc.status_code)
    msg = f"Sent {result['sent']} of {len(batch)} emails."
    return _send_page(request, country, {"form": values, "result": result, "msg": msg})


@router.get("/admin/send-email/{country}/customers.csv", name="admin_customers_csv")
def admin_customers_csv(request: Request, country: str):
    return download(
        customers_csv(customers_for_country(country)),
        f"{safe_filename(country)}_customers.csv",
        "text/csv",
    )


# ---------- JSON API ----------
@router.get("/api/admin/customers/{country}", name="api_admin_customers")
def api_admin_customers(request: Request, country: str):
    if not is_admin(request):
        return forbidden()
    return _json({"status": "ok", "recipients": customers_for_country(country)})


@router.post("/api/admin/send-email/{country}", name="api_admin_send_email")
async def api_admin_send_email(request: Request, country: str):
    if not is_admin(request):
        return forbidden()
    try:
        payload = await request.json()
    except ValueError:
        payload = {}
    payload = payload if isinstance(payload, dict) else {}
    batch = select_batch(
        customers_for_country(country),
        payload.get("start", 0),
        payload.get("end"),
        bool(payload.get("sendAll", payload.get("send_all", False))),
    )
    try:
        result = send_bulk(str(payload.get("subject") or ""), str(payload.get("body") or ""), batch, payload.get("file"))
    except (BookingError, StoreError) as exc:
        return error_json(exc)
    return _json({"status": "ok", **result})
