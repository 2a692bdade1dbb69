from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from packages.features.common.errors import Forbidden, NotFound, ValidationError
from packages.features.common.forms import (
    clean,
    is_number,
    matches_query,
    money,
    newest_first,
    normalize,
    owned_by,
    require,
    to_number,
)
from packages.features.common.periods import in_period
from services.datastore.base import SERVER_TIMESTAMP
from services.datastore.store import get_store

logger = logging.getLogger(__name__)

COLLECTION = "ticketBookings"

TRIP_TYPES = ["oneway", "round"]
TRAVEL_CLASSES = ["Economy", "Premium Economy", "Business", "First"]
STATUSES = ["Booked", "Approved", "Cancelled"]
PASSENGER_FIELDS = ["fullName", "passport", "cnic", "phone", "email"]

EMPLOYEE_EDITABLE = [
    "pnr",
    "from",
    "to",
    "departure",
    "returnDate",
    "totalPax",
    "travelClass",
    "airlinePref",
    "promo",
    "status",
    "vendor",
    "note",
]
ADMIN_EDITABLE = ["pnr", "price", "payable", "profit", "status"]

SEARCH_FIELDS = [
    "pnr",
    "passenger.fullName",
    "passenger.email",
    "createdByEmail",
    "createdByName",
    "from",
    "to",
    "status",
    "vendor",
]

SORT_KEYS = ("bookings", "earnings", "profit")


def _passenger_from_form(form: Dict[str, Any]) -> Dict[str, str]:
    nested = form.get("passenger") if isinstance(form.get("passenger"), dict) else {}
    out = {}
    for f in PASSENGER_FIELDS:
        # HTML forms post "passenger.fullName"; JSON clients send a nested map.
        out[f] = clean(nested.get(f) if f in nested else form.get(f"passenger.{f}", form.get(f)))
    return out


def _check_required(form: Dict[str, Any], passenger: Dict[str, Any], trip: str, errors: Dict[str, str]) -> None:
    require(
        form,
        {
            "departure": "Departure date",
            "from": "From",
            "to": "To",
            "price": "Price",
            "pnr": "PNR",
            "vendor": "Vendor",
            "payable": "Payable",
        },
        errors,
    )
    if trip == "round":
        require(form, {"returnDate": "Return date"}, errors)
    require(
        passenger,
        {"fullName": "Passenger name", "passport": "Passport number", "phone": "Phone"},
        errors,
    )
    for key, label in (("price", "Price"), ("payable", "Payable")):
        if clean(form.get(key)) and not is_number(form.get(key)):
            errors[key] = f"{label} must be a number."


def validate_ticket(form: Dict[str, Any]) -> Dict[str, Any]:
    form = dict(form or {})
    passenger = _passenger_from_form(form)
    trip = normalize(form.get("tripType")) or "oneway"
    trip = trip if trip in TRIP_TYPES else "oneway"

    errors: Dict[str, str] = {}
    _check_required(form, passenger, trip, errors)
    if errors:
        raise ValidationError(errors)

    adults = int(to_number(form.get("adults"), 1))
    children = int(to_number(form.get("children"), 0))
    infants = int(to_number(form.get("infants"), 0))
    price = money(form.get("price"))
    payable = money(form.get("payable"))
    travel_class = clean(form.get("travelClass")) or "Economy"

    return {
        "pnr": clean(form.get("pnr")).upper(),
        "tripType": trip,
        "from": clean(form.get("from")),
        "to": clean(form.get("to")),
        "vendor": clean(form.get("vendor")),
        "departure": clean(form.get("departure")),
        "returnDate": clean(form.get("returnDate")) if trip == "round" else None,
        "price": price,
        "payable": payable,
        "profit": price - payable,
        "adults": adults,
        "children": children,
        "infants": infants,
        "totalPax": adults + children + infants,
        "travelClass": travel_class if travel_class in TRAVEL_CLASSES else "Economy",
        "airlinePref": clean(form.get("airlinePref")),
        "promo": clean(form.get("promo")),
        "passenger": passenger,
        "note": clean(form.get("note")),
        "status": "Booked",
    }


def create_ticket(user: Dict[str, Any], form: Dict[str, Any]) -> Dict[str, Any]:
    record = validate_ticket(form)
    record.update(
        {
            "createdAt": SERVER_TIMESTAMP,
            "createdByUid": str(user.get("id") or ""),
            "createdByEmail": clean(user.get("email")),
            "createdByName": clean(user.get("name") or user.get("email")),
        }
    )
    store = get_store()
    doc_id = store.add(COLLECTION, record)
    logger.info("Ticket %s (PNR %s) created by %s", doc_id, record["pnr"], record["createdByEmail"])
    return store.get(COLLECTION, doc_id) or {**record, "id": doc_id}


def get_ticket(doc_id: str) -> Dict[str, Any]:
    doc = get_store().get(COLLECTION, doc_id)
    if not doc:
        raise NotFound("Ticket booking not found.")
    return doc


def list_all_tickets() -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION))


def list_tickets_for_user(user_id: str) -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION, {"createdByUid": str(user_id)}))


def latest_tickets(user_id: str, limit: int = 5) -> List[Dict[str, Any]]:
    return list_tickets_for_user(user_id)[:limit]


def quick_stats(docs: List[Dict[str, Any]]) -> Dict[str, int]:
    out = {s: 0 for s in STATUSES}
    for d in docs:
        status = clean(d.get("status")) or "Booked"
        out[status] = out.get(status, 0) + 1
    out["total"] = len(docs)
    return out


def search_tickets(pnr: str = "", id_number: str = "") -> List[Dict[str, Any]]:
    """Look up by PNR and/or passenger passport/CNIC; results de-duplicated by id."""
    store = get_store()
    found: Dict[str, Dict[str, Any]] = {}
    pnr = clean(pnr).upper()
    id_number = clean(id_number)
    if pnr:
        for d in store.list(COLLECTION, {"pnr": pnr}):
            found[d["id"]] = d
    if id_number:
        for field in ("passenger.passport", "passenger.cnic"):
            for d in store.list(COLLECTION, {field: id_number}):
                found[d["id"]] = d
    return newest_first(found.values())


def update_own_ticket(user: Dict[str, Any], doc_id: str, form: Dict[str, Any]) -> Dict[str, Any]:
    doc = get_ticket(doc_id)
    if not owned_by(doc, user):
        raise Forbidden("You can only edit your own ticket bookings.")

    changes: Dict[str, Any] = {}
    for k in EMPLOYEE_EDITABLE:
        if k in form:
            changes[k] = clean(form[k])
    if "pnr" in changes:
        changes["pnr"] = changes["pnr"].upper()
    if "totalPax" in changes:
        changes["totalPax"] = int(to_number(changes["totalPax"], doc.get("totalPax") or 1))
    if doc.get("tripType") != "round" and "returnDate" in changes:
        changes["returnDate"] = None

    form_passenger = _passenger_from_form(form)
    passenger = dict(doc.get("passenger") or {})
    for f in PASSENGER_FIELDS:
        if f in (form.get("passenger") or {}) or f"passenger.{f}" in form:
            passenger[f] = form_passenger[f]
    if passenger != (doc.get("passenger") or {}):
        changes["passenger"] = passenger

    # The edited booking must still pass the booking-time checks.
    errors: Dict[str, str] = {}
    _check_required({**doc, **changes}, passenger, normalize(doc.get("tripType")), errors)
    if "status" in changes and changes["status"] not in STATUSES:
        errors["status"] = "Unknown status."
    if errors:
        raise ValidationError(errors)

    changes["updatedAt"] = SERVER_TIMESTAMP
    get_store().update(COLLECTION, doc_id, changes)
    return get_ticket(doc_id)


def admin_update_ticket(doc_id: str, form: Dict[str, Any]) -> Dict[str, Any]:
    doc = get_ticket(doc_id)
    changes: Dict[str, Any] = {}
    errors: Dict[str, str] = {}
    for k in ADMIN_EDITABLE:
        if k not in form:
            continue
        if k in ("price", "payable", "profit"):
            if not is_number(form[k]):
                errors[k] = f"{k.capitalize()} must be a number."
            else:
                changes[k] = money(form[k])
        elif k == "pnr":
            changes[k] = clean(form[k]).upper()
            if not changes[k]:
                errors[k] = "PNR is required."
        else:
            changes[k] = clean(form[k])
    if "status" in changes and changes["status"] not in STATUSES:
        errors["status"] = "Unknown status."
    if errors:
        raise ValidationError(errors)
    if ("price" in changes or "payable" in changes) and "profit" not in changes:
        changes["profit"] = changes.get("price", money(doc.get("price"))) - changes.get("payable", money(doc.get("payable")))
    changes["updatedAt"] = SERVER_TIMESTAMP
    get_store().update(COLLECTION, doc_id, changes)
    return get_ticket(doc_id)


def delete_ticket(doc_id: str) -> None:
    if not get_store().delete(COLLECTION, doc_id):
        raise NotFound("Ticket booking not found.")
    logger.warning("Ticket booking %s deleted", doc_id)


def employee_key(doc: Dict[str, Any]) -> str:
    return clean(doc.get("createdByEmail")) or clean(doc.get("createdByName")) or "Unknown"


def filter_tickets(
    docs: List[Dict[str, Any]],
    period: str = "all",
    employee: str = "",
    q: str = "",
    status: str = "",
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    employee = "" if normalize(employee) in ("", "all") else normalize(employee)
    status = "" if normalize(status) in ("", "all") else normalize(status)
    out = []
    for d in docs:
        if not in_period(d.get("createdAt"), period, now):
            continue
        if employee and normalize(employee_key(d)) != employee:
            continue
        if status and normalize(d.get("status")) != status:
            continue
        if not matches_query(d, q, SEARCH_FIELDS):
            continue
        out.append(d)
    return out


def ticket_totals(docs: List[Dict[str, Any]]) -> Dict[str, float]:
    return {
        "earnings": sum(money(d.get("price")) for d in docs),
        "payable": sum(money(d.get("payable")) for d in docs),
        "profit": sum(money(d.get("profit")) for d in docs),
        "bookings": len(docs),
    }


def ticket_employee_totals(
    docs: List[Dict[str, Any]], sort_key: str = "bookings", sort_dir: str = "desc"
) -> Dict[str, Any]:
    groups: Dict[str, Dict[str, Any]] = {}
    for d in docs:
        key = employee_key(d)
        g = groups.setdefault(key, {"employee": key, "bookings": 0, "earnings": 0.0, "payable": 0.0, "profit": 0.0})
        g["bookings"] += 1
        g["earnings"] += money(d.get("price"))
        g["payable"] += money(d.get("payable"))
        g["profit"] += money(d.get("profit"))

    sort_key = sort_key if sort_key in SORT_KEYS else "bookings"
    rows = sorted(groups.values(), key=lambda g: (g[sort_key], g["employee"]), reverse=(sort_dir != "asc"))
    return {
        "rows": rows,
        "max_earnings": max((g["earnings"] for g in rows), default=0.0),
    }
