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
    owned_by,
    require,
    to_number,
)
from packages.features.common.periods import in_period, iso_day, to_date
from services.datastore.base import SERVER_TIMESTAMP
from services.datastore.store import get_store

logger = logging.getLogger(__name__)

COLLECTION = "HotelBookings"

REQUIRED = {
    "bookingId": "Booking ID",
    "clientName": "Client name",
    "property": "Property",
    "numberOfRooms": "Number of rooms",
    "numberOfAdults": "Number of adults",
    "numberOfChildren": "Number of children",
    "arrivalDate": "Arrival date",
    "departureDate": "Departure date",
    "paymentMethod": "Payment method",
    "payable": "Payable",
    "received": "Received",
}
EDITABLE = list(REQUIRED) + ["notes"]
COUNT_FIELDS = ("numberOfRooms", "numberOfAdults", "numberOfChildren")
SEARCH_FIELDS = ["clientName", "bookingId", "property"]


def nights_between(arrival: Any, departure: Any) -> Any:
    """Whole nights between two dates; 0 when not positive, "" when a date is missing."""
    a, d = to_date(arrival), to_date(departure)
    if not a or not d:
        return ""
    return max(0, (d - a).days)


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    errors: Dict[str, str] = {}
    require(data, REQUIRED, errors)
    for key in COUNT_FIELDS + ("payable", "received"):
        if clean(data.get(key)) and not is_number(data.get(key)):
            errors[key] = f"{REQUIRED[key]} must be a number."
    if errors:
        raise ValidationError(errors)

    out = {k: clean(data.get(k)) for k in EDITABLE}
    for key in COUNT_FIELDS:
        out[key] = int(to_number(data.get(key), 0))
    out["arrivalDate"] = iso_day(data.get("arrivalDate")) or out["arrivalDate"]
    out["departureDate"] = iso_day(data.get("departureDate")) or out["departureDate"]
    out["payable"] = money(data.get("payable"))
    out["received"] = money(data.get("received"))
    out["nightsStayed"] = nights_between(out["arrivalDate"], out["departureDate"])
    out["profit"] = out["received"] - out["payable"]
    return out


def create_hotel(user: Dict[str, Any], form: Dict[str, Any]) -> Dict[str, Any]:
    record = _normalize(form or {})
    record.update(
        {
            "createdAt": SERVER_TIMESTAMP,
            "createdByUid": str(user.get("id") or ""),
            "userEmail": clean(user.get("email")),
        }
    )
    store = get_store()
    doc_id = store.add(COLLECTION, record)
    logger.info("Hotel booking %s created by %s", doc_id, record["userEmail"])
    return store.get(COLLECTION, doc_id) or {**record, "id": doc_id}


def get_hotel(doc_id: str) -> Dict[str, Any]:
    doc = get_store().get(COLLECTION, doc_id)
    if not doc:
        raise NotFound("Hotel booking not found.")
    return doc


def list_all_hotels() -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION))


def list_hotels_for_user(user_id: str) -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION, {"createdByUid": str(user_id)}))


def update_hotel(user: Dict[str, Any], doc_id: str, form: Dict[str, Any], is_admin: bool = False) -> Dict[str, Any]:
    doc = get_hotel(doc_id)
    if not (is_admin or owned_by(doc, user)):
        raise Forbidden("You can only edit your own hotel bookings.")
    merged = {**doc, **{k: form[k] for k in EDITABLE if k in form}}
    changes = _normalize(merged)
    changes["updatedAt"] = SERVER_TIMESTAMP
    get_store().update(COLLECTION, doc_id, changes)
    return get_hotel(doc_id)


def delete_hotel(doc_id: str) -> None:
    if not get_store().delete(COLLECTION, doc_id):
        raise NotFound("Hotel booking not found.")
    logger.warning("Hotel booking %s deleted", doc_id)


def filter_hotels(
    docs: List[Dict[str, Any]], period: str = "all", q: str = "", now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    return [
        d for d in docs
        if in_period(d.get("createdAt"), period, now) and matches_query(d, q, SEARCH_FIELDS)
    ]


def hotel_totals(docs: List[Dict[str, Any]]) -> Dict[str, float]:
    received = sum(money(d.get("received")) for d in docs)
    payable = sum(money(d.get("payable")) for d in docs)
    return {"bookings": len(docs), "received": received, "payable": payable, "profit": received - payable}
