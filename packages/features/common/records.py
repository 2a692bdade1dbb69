from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

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
    forbidden,
    is_admin,
    read_payload,
    redirect,
    unauthenticated,
)
from packages.features.exports.exports import columns_to_csv
from packages.features.exports.reports import table_pdf
from services.datastore.base import StoreError


@dataclass
class RecordKind:
    """One simple booking collection served by the shared list/edit pages.

    ``slug`` gives the URLs (``/hotels``, ``/admin/hotels``, ``/api/hotels``);
    ``owner_key`` is the session-user field the employee list is keyed on.
    """

    slug: str
    name: str
    title: str
    noun: str
    plural: str
    item_key: str
    list_key: str
    export_name: str
    fields: List[Dict[str, Any]]
    columns: List[Any]
    periods: List[str]
    owner_key: str
    create: Callable[..., Dict[str, Any]]
    get: Callable[[str], Dict[str, Any]]
    update: Callable[..., Dict[str, Any]]
    delete: Callable[[str], None]
    list_all: Callable[[], List[Dict[str, Any]]]
    list_for_user: Callable[[str], List[Dict[str, Any]]]
    filter_rows: Callable[..., List[Dict[str, Any]]]
    totals: Callable[[List[Dict[str, Any]]], Dict[str, Any]]
    summary: Callable[[Dict[str, Any]], Dict[str, Any]]


def record_router(kind: RecordKind) -> APIRouter:
    router = APIRouter()
    base = f"/{kind.slug}"
    admin_base = f"/admin/{kind.slug}"

    def _own_rows(request: Request) -> list:
        return kind.list_for_user(current_user(request)[kind.owner_key])

    def _list_page(request: Request, rows: list, admin: bool, period: str, q: str, extra: dict | None = None, status_code: int = 200):
        ctx = {
            "title": f"{kind.title} (Admin)" if admin else kind.title,
            "rows": rows,
            "columns": kind.columns,
            "totals": kind.summary(kind.totals(rows)),
            "periods": [(p, PERIOD_LABELS[p]) for p in kind.periods],
            "filters": {"period": normalize_period(period), "q": q},
            "edit_base": base,
            "delete_base": admin_base if admin else "",
            "export_base": f"{admin_base}/export" if admin else "",
            "fields": [] if admin else kind.fields,
            "create_action": "" if admin else base,
            "values": {},
        }
        ctx.update(extra or {})
        return request.app.state.render(request, "records/list.html", ctx, status_code=status_code)

    @router.get(base, response_class=HTMLResponse, name=kind.slug)
    def list_page(request: Request, period: str = "all", q: str = ""):
        return _list_page(request, kind.filter_rows(_own_rows(request), period, q), False, period, q)

    @router.post(base, name=f"{kind.name}_create")
    async def create(request: Request):
        form = await read_payload(request)
        try:
            kind.create(current_user(request), form)
        except (BookingError, StoreError) as exc:
            return _list_page(
                request, _own_rows(request), False, "all", "",
                {"values": form, "err": error_message(exc), "errors": getattr(exc, "errors", {})}, 400,
            )
        return redirect(base, msg=f"{kind.noun} saved.")

    @router.get(base + "/{record_id}/edit", response_class=HTMLResponse, name=f"{kind.name}_edit")
    def edit_page(request: Request, record_id: str):
        admin = is_admin(request)
        back = admin_base if admin else base
        try:
            doc = kind.get(record_id)
        except NotFound:
            return redirect(back, err=f"{kind.noun} not found.")
        if not (admin or owned_by(doc, current_user(request))):
            return redirect(back, err=f"You can only edit your own {kind.plural}.")
        return request.app.state.render(
            request,
            "records/edit.html",
            {"title": f"Edit {kind.noun}", "fields": kind.fields, "values": doc, "action": f"{base}/{record_id}/edit", "back": back},
        )

    @router.post(base + "/{record_id}/edit", name=f"{kind.name}_update")
    async def update(request: Request, record_id: str):
        admin = is_admin(request)
        form = await read_payload(request)
        try:
            kind.update(current_user(request), record_id, form, is_admin=admin)
        except (BookingError, StoreError) as exc:
            return redirect(f"{base}/{record_id}/edit", err=error_message(exc))
        return redirect(admin_base if admin else base, msg=f"{kind.noun} updated.")

    @router.get(admin_base, response_class=HTMLResponse, name=f"admin_{kind.slug}")
    def admin_page(request: Request, period: str = "all", q: str = ""):
        return _list_page(request, kind.filter_rows(kind.list_all(), period, q), True, period, q)

    @router.post(admin_base + "/{record_id}/delete", name=f"admin_{kind.name}_delete")
    def admin_delete(request: Request, record_id: str):
        try:
            kind.delete(record_id)
        except (BookingError, StoreError) as exc:
            return redirect(admin_base, err=error_message(exc))
        return redirect(admin_base, msg=f"{kind.noun} deleted.")

    @router.get(admin_base + "/export.csv", name=f"admin_{kind.slug}_csv")
    def admin_csv(request: Request, period: str = "all", q: str = ""):
        rows = kind.filter_rows(kind.list_all(), period, q)
        return download(columns_to_csv(rows, kind.columns), f"{kind.export_name}.csv", "text/csv")

    @router.get(admin_base + "/export.pdf", name=f"admin_{kind.slug}_pdf")
    def admin_pdf(request: Request, period: str = "all", q: str = ""):
        rows = kind.filter_rows(kind.list_all(), period, q)
        pdf = table_pdf(kind.title, rows, kind.columns, kind.summary(kind.totals(rows)))
        return download(pdf, f"{kind.export_name}.pdf", "application/pdf")

    # ---------- JSON API ----------
    @router.get(f"/api{base}", name=f"api_{kind.slug}")
    def api_list(request: Request, period: str = "all", q: str = ""):
        cu = current_user(request)
        if not cu:
            return unauthenticated()
        rows = kind.filter_rows(kind.list_for_user(cu[kind.owner_key]), period, q)
        return _json({"status": "ok", kind.list_key: rows, "totals": kind.totals(rows)})

    @router.post(f"/api{base}", name=f"api_{kind.name}_create")
    async def api_create(request: Request):
        cu = current_user(request)
        if not cu:
            return unauthenticated()
        try:
            doc = kind.create(cu, await read_payload(request))
        except (BookingError, StoreError) as exc:
            return error_json(exc)
        return _json({"status": "ok", kind.item_key: doc}, 201)

    @router.put(f"/api{base}" + "/{record_id}", name=f"api_{kind.name}_update")
    async def api_update(request: Request, record_id: str):
        cu = current_user(request)
        if not cu:
            return unauthenticated()
        try:
            doc = kind.update(cu, record_id, await read_payload(request), is_admin=is_admin(request))
        except (BookingError, StoreError) as exc:
            return error_json(exc)
        return _json({"status": "ok", kind.item_key: doc})

    @router.get(f"/api{admin_base}", name=f"api_admin_{kind.slug}")
    def api_admin_list(request: Request, period: str = "all", q: str = ""):
        if not is_admin(request):
            return forbidden()
        rows = kind.filter_rows(kind.list_all(), period, q)
        return _json({"status": "ok", kind.list_key: rows, "totals": kind.totals(rows)})

    @router.delete(f"/api{admin_base}" + "/{record_id}", name=f"api_admin_{kind.name}_delete")
    def api_admin_delete(request: Request, record_id: str):
        if not is_admin(request):
            return forbidden()
        try:
            kind.delete(record_id)
        except (BookingError, StoreError) as exc:
            return error_json(exc)
        return _json({"status": "ok"})

    return router
