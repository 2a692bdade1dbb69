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
)
from packages.features.common.periods import in_period, iso_day
from packages.features.hotels.hotels import nights_between
from services.datastore.base import SERVER_TIMESTAMP
from services.datastore.store import get_store

logger = logging.getLogger(__name__)

COLLECTION = "ummrahBookings"

# (hotel, check-in, check-out, nights) per stay, in travel order.
STAYS = [
    ("makkahHotel", "makkahCheckIn", "makkahCheckOut", "makkahNights"),
    ("madinahHotel", "madinahCheckIn", "madinahCheckOut", "madinahNights"),
    ("makkahagainhotel", "makkahCheckInagain", "makkahCheckOutagain", "makkahagainNights"),
]

REQUIRED = {
    "fullName": "Full name",
    "phone": "Phone",
    "passportNumber": "Passport number",
    "visaNumber": "Visa number",
    "makkahHotel": "Makkah hotel",
    "makkahCheckIn": "Makkah check-in",
    "makkahCheckOut": "Makkah check-out",
    "madinahHotel": "Madinah hotel",
    "madinahCheckIn": "Madinah check-in",
    "madinahCheckOut": "Madinah check-out",
    "vendor": "Vendor",
    "payable": "Payable",
    "received": "Received",
}
TEXT_FIELDS = ["fullName", "phone", "passportNumber", "visaNumber", "vendor"]
EDITABLE = TEXT_FIELDS + [f for stay in STAYS for f in stay[:3]] + ["payable", "received"]
ADMIN_SEARCH_FIELDS = ["fullName", "passportNumber", "phone"]


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    errors: Dict[str, str] = {}
    require(data, REQUIRED, errors)
    for key in ("payable", "received"):
        if clean(data.get(key)) and not is_number(data.get(key)):
            errors[key] = f"{REQUIRED[key]} must be a number."
    if errors:
        raise ValidationError(errors)

    out: Dict[str, Any] = {k: clean(data.get(k)) for k in TEXT_FIELDS}
    for hotel, check_in, check_out, nights in STAYS:
        out[hotel] = clean(data.get(hotel))
        out[check_in] = iso_day(data.get(check_in))
        out[check_out] = iso_day(data.get(check_out))
        out[nights] = nights_between(out[check_in], out[check_out])
    out["payable"] = money(data.get("payable"))
    out["received"] = money(data.get("received"))
    out["profit"] = out["received"] - out["payable"]
    return out


def create_umrah(user: Dict[str, Any], form: Dict[str, Any]) -> Dict[str, Any]:
    record = _normalize(form or {})
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
    logger.info("Umrah booking %s created by %s", doc_id, record["createdByEmail"])
    return store.get(COLLECTION, doc_id) or {**record, "id": doc_id}


def get_umrah(doc_id: str) -> Dict[str, Any]:
    doc = get_store().get(COLLECTION, doc_id)
    if not doc:
        raise NotFound("Umrah booking not found.")
    return doc


def list_all_umrah() -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION))


def list_umrah_for_user(user_id: str) -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION, {"createdByUid": str(user_id)}))


def search_umrah(docs: List[Dict[str, Any]], q: str = "") -> List[Dict[str, Any]]:
    """Match the query against every stored value."""
    qn = normalize(q)
    if not qn:
        return list(docs)
    return [d for d in docs if any(qn in normalize(v) for k, v in d.items() if k != "id")]


def update_umrah(user: Dict[str, Any], doc_id: str, form: Dict[str, Any], is_admin: bool = False) -> Dict[str, Any]:
    doc = get_umrah(doc_id)
    if not (is_admin or owned_by(doc, user)):
        raise Forbidden("You can only edit your own Umrah bookings.")
    merged = {**doc, **{k: form[k] for k in EDITABLE if k in form}}
    changes = _normalize(merged)
    changes["updatedAt"] = SERVER_TIMESTAMP
    get_store().update(COLLECTION, doc_id, changes)
    return get_umrah(doc_id)


def delete_umrah(doc_id: str) -> None:
    if not get_store().delete(COLLECTION, doc_id):
        raise NotFound("Umrah booking not found.")
    logger.warning("Umrah booking %s deleted", doc_id)


def employee_of(doc: Dict[str, Any]) -> str:
    return clean(doc.get("createdByEmail")) or clean(doc.get("createdByName")) or "Unknown"


def filter_umrah(
    docs: List[Dict[str, Any]],
    q: str = "",
    vendor: str = "",
    employee: str = "",
    period: str = "all",
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    vendor = "" if normalize(vendor) in ("", "all") else normalize(vendor)
    employee = "" if normalize(employee) in ("", "all") else normalize(employee)
    out = []
    for d in docs:
        if vendor and normalize(d.get("vendor")) != vendor:
            continue
        if employee and normalize(employee_of(d)) != employee:
            continue
        if not in_period(d.get("createdAt"), period, now):
            continue
        if not matches_query(d, q, ADMIN_SEARCH_FIELDS):
            continue
        out.append(d)
    return out


def vendor_options(docs: List[Dict[str, Any]]) -> List[str]:
    return sorted({clean(d.get("vendor")) for d in docs if clean(d.get("vendor"))}, key=str.lower)


def employee_options(docs: List[Dict[str, Any]]) -> List[str]:
    return sorted({employee_of(d) for d in docs}, key=str.lower)


def umrah_totals(docs: List[Dict[str, Any]]) -> Dict[str, float]:
    received = sum(money(d.get("received")) for d in docs)
    payable = sum(money(d.get("payable")) for d in docs)
    return {"bookings": len(docs), "received": received, "payable": payable, "profit": received - payable}
