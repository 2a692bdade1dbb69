from __future__ import annotations

import calendar
import logging
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from packages.features.common.errors import Conflict, Forbidden, NotFound, ValidationError
from packages.features.common.forms import (
    clean,
    is_email,
    is_number,
    is_person_name,
    is_phone,
    matches_query,
    money,
    normalize,
    owned_by,
    require,
)
from packages.features.common.periods import in_period, iso_day, to_date, to_datetime, today
from services.datastore.base import SERVER_TIMESTAMP, now_iso
from services.datastore.store import get_store

logger = logging.getLogger(__name__)

COLLECTION = "bookings"
DELETED_COLLECTION = "deletedBookings"

VISA_TYPES = ["Business", "Tourism", "Family Visit", "National Visa", "Appointment"]
PAYMENT_STATUSES = ["Paid", "Unpaid", "Partially Paid"]
VISA_STATUSES = ["Approved", "Rejected", "Processing"]
APPOINTMENT = "Appointment"

MIN_VALIDITY_MONTHS = 7

OWNER_EDITABLE = [
    "passport",
    "fullName",
    "visaType",
    "country",
    "date",
    "totalFee",
    "receivedFee",
    "paymentStatus",
    "visaStatus",
    "embassyFee",
    "sentToEmbassy",
    "receivedFromEmbassy",
    "email",
    "remarks",
]
VENDOR_FIELDS = ["vendor", "vendorContact", "vendorFee"]
ADMIN_EDITABLE = OWNER_EDITABLE + ["phone", "reference", "expiryDate"]

SEARCH_FIELDS = ["passport", "fullName", "email", "country", "visaType"]


# ---------- Domain helpers ----------
def add_months(d: date, months: int) -> date:
    month_index = d.month - 1 + months
    year = d.year + month_index // 12
    month = month_index % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def apply_derived(doc: Dict[str, Any]) -> Dict[str, Any]:
    """Recompute the money fields that are never typed in directly."""
    total = money(doc.get("totalFee"))
    received = money(doc.get("receivedFee"))
    embassy = money(doc.get("embassyFee"))
    vendor_fee = money(doc.get("vendorFee")) if doc.get("visaType") == APPOINTMENT else 0.0
    doc["totalFee"] = total
    doc["receivedFee"] = received
    doc["embassyFee"] = embassy
    doc["vendorFee"] = vendor_fee
    doc["remainingFee"] = total - received
    doc["profit"] = total - embassy - vendor_fee
    return doc


def _check_fees(data: Dict[str, Any], errors: Dict[str, str]) -> None:
    if not is_number(data.get("totalFee")):
        errors.setdefault("totalFee", "Total fee must be a number.")
    if not is_number(data.get("embassyFee")):
        errors.setdefault("embassyFee", "Embassy fee must be a number.")
    if not is_number(data.get("receivedFee")):
        errors.setdefault("receivedFee", "Received fee must be a number.")
    elif money(data.get("receivedFee")) < 0:
        errors.setdefault("receivedFee", "Received fee cannot be negative.")
    elif is_number(data.get("totalFee")) and money(data.get("receivedFee")) > money(data.get("totalFee")):
        errors.setdefault("receivedFee", "Received fee cannot be more than the total fee.")
    if clean(data.get("visaType")) == APPOINTMENT:
        require(data, {"vendor": "Vendor", "vendorContact": "Vendor contact"}, errors)
        if not is_number(data.get("vendorFee")):
            errors.setdefault("vendorFee", "Vendor fee must be a number.")


REQUIRED_FIELDS = {
    "passport": "Passport number",
    "fullName": "Full name",
    "visaType": "Visa type",
    "paymentStatus": "Payment status",
    "country": "Country",
    "visaStatus": "Visa status",
    "email": "Email",
}


def _check_booking(data: Dict[str, Any], errors: Dict[str, str]) -> None:
    """Rules shared by new bookings and edits."""
    require(data, REQUIRED_FIELDS, errors)
    if data.get("fullName") and not is_person_name(data.get("fullName")):
        errors["fullName"] = "Full name may only contain letters and spaces."
    if data.get("visaType") and data["visaType"] not in VISA_TYPES:
        errors["visaType"] = "Unknown visa type."
    if data.get("paymentStatus") and data["paymentStatus"] not in PAYMENT_STATUSES:
        errors["paymentStatus"] = "Unknown payment status."
    if data.get("visaStatus") and data["visaStatus"] not in VISA_STATUSES:
        errors["visaStatus"] = "Unknown visa status."
    if data.get("email") and not is_email(data.get("email")):
        errors["email"] = "Enter a valid email address."


def validate_visa(data: Dict[str, Any], on: Optional[date] = None) -> Dict[str, Any]:
    """Validate a new visa booking form and return the normalized record."""
    data = {k: (v.strip() if isinstance(v, str) else v) for k, v in (data or {}).items()}
    data["date"] = iso_day(data.get("date")) or (on or date.today()).isoformat()
    errors: Dict[str, str] = {}

    _check_booking(data, errors)
    require(data, {"expiryDate": "Passport expiry date"}, errors)
    if not is_phone(data.get("phone")):
        errors["phone"] = "Phone number must be 10 to 15 digits."
    _check_fees(data, errors)

    expiry = to_date(data.get("expiryDate"))
    applied = to_date(data["date"])
    if data.get("expiryDate") and expiry is None:
        errors["expiryDate"] = "Passport expiry date is not a valid date."
    elif expiry and applied and expiry < add_months(applied, MIN_VALIDITY_MONTHS):
        errors["expiryDate"] = f"Passport must be valid for at least {MIN_VALIDITY_MONTHS} months after the application date."

    if errors:
        raise ValidationError(errors)

    record = {
        "passport": data["passport"],
        "fullName": data["fullName"],
        "visaType": data["visaType"],
        "date": data["date"],
        "sentToEmbassy": iso_day(data.get("sentToEmbassy")),
        "receivedFromEmbassy": iso_day(data.get("receivedFromEmbassy")),
        "totalFee": data.get("totalFee"),
        "receivedFee": data.get("receivedFee"),
        "reference": clean(data.get("reference")),
        "paymentStatus": data["paymentStatus"],
        "country": data["country"],
        "visaStatus": data["visaStatus"],
        "embassyFee": data.get("embassyFee"),
        "email": data["email"],
        "phone": clean(data.get("phone")),
        "expiryDate": iso_day(data.get("expiryDate")),
        "remarks": clean(data.get("remarks")),
        "vendor": clean(data.get("vendor")) if data["visaType"] == APPOINTMENT else "",
        "vendorContact": clean(data.get("vendorContact")) if data["visaType"] == APPOINTMENT else "",
        "vendorFee": data.get("vendorFee"),
    }
    return apply_derived(record)


def _same_person_trip(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    return normalize(a.get("passport")) == normalize(b.get("passport")) and normalize(a.get("country")) == normalize(
        b.get("country")
    )


# ---------- Operations ----------
def create_visa(user: Dict[str, Any], form: Dict[str, Any], on: Optional[date] = None) -> Dict[str, Any]:
    record = validate_visa(form, on=on)
    record.update(
        {
            "userId": str(user.get("id") or ""),
            "userEmail": clean(user.get("email")),
            "createdAt": SERVER_TIMESTAMP,
        }
    )
    store = get_store()
    doc_id = store.add(COLLECTION, record)
    logger.info("Visa booking %s created by %s", doc_id, record["userEmail"])
    return store.get(COLLECTION, doc_id) or {**record, "id": doc_id}


def get_visa(doc_id: str) -> Dict[str, Any]:
    doc = get_store().get(COLLECTION, doc_id)
    if not doc:
        raise NotFound("Booking not found.")
    return doc


def list_all_visas() -> List[Dict[str, Any]]:
    return sort_by_date(get_store().list(COLLECTION))


def list_visas_for_user(user_id: str) -> List[Dict[str, Any]]:
    return sort_by_date(get_store().list(COLLECTION, {"userId": str(user_id)}))


def sort_by_date(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    def _k(d: Dict[str, Any]):
        created = to_datetime(d.get("createdAt"))
        return (iso_day(d.get("date")), created.isoformat() if created else "")

    return sorted(docs, key=_k, reverse=True)


def unique_by_passport_country(docs: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Keep only the newest booking per passport + country pair."""
    seen = set()
    out = []
    for d in sort_by_date(docs):
        key = (normalize(d.get("passport")), normalize(d.get("country")))
        if key in seen:
            continue
        seen.add(key)
        out.append(d)
    return out


def filter_visas(
    docs: List[Dict[str, Any]],
    status: str = "",
    payment: str = "",
    country: str = "",
    period: str = "all",
    q: str = "",
    now: Optional[datetime] = None,
    fields: Optional[List[str]] = None,
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
        if not matches_query(d, q, fields or SEARCH_FIELDS):
            continue
        out.append(d)
    return out


def search_summary(docs: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {
        "count": len(docs),
        "paid_earnings": sum(money(d.get("totalFee")) for d in docs if d.get("paymentStatus") == "Paid"),
        "pending_payments": sum(money(d.get("totalFee")) for d in docs if d.get("paymentStatus") == "Unpaid"),
    }


def _apply_edit(doc: Dict[str, Any], form: Dict[str, Any], allowed: List[str]) -> Dict[str, Any]:
    updates = {k: form[k] for k in allowed if k in form}
    merged = {**doc, **updates}
    if clean(merged.get("visaType")) == APPOINTMENT:
        for k in VENDOR_FIELDS:
            if k in form:
                merged[k] = form[k]

    merged = {k: (v.strip() if isinstance(v, str) else v) for k, v in merged.items()}

    errors: Dict[str, str] = {}
    _check_booking(merged, errors)
    if "phone" in updates and not is_phone(updates["phone"]):
        errors["phone"] = "Phone number must be 10 to 15 digits."
    _check_fees(merged, errors)
    if errors:
        raise ValidationError(errors)

    for k in ("date", "sentToEmbassy", "receivedFromEmbassy", "expiryDate"):
        if k in updates:
            merged[k] = iso_day(merged.get(k))
    apply_derived(merged)
    changed = {k: merged[k] for k in set(updates) | set(VENDOR_FIELDS) | {"remainingFee", "profit", "totalFee", "receivedFee", "embassyFee"} if k in merged}
    changed["updatedAt"] = SERVER_TIMESTAMP
    return changed


def update_own_visa(user: Dict[str, Any], doc_id: str, form: Dict[str, Any]) -> Dict[str, Any]:
    doc = get_visa(doc_id)
    if not owned_by(doc, user):
        raise Forbidden("You can only edit your own bookings.")
    changes = _apply_edit(doc, form, OWNER_EDITABLE)
    get_store().update(COLLECTION, doc_id, changes)
    return get_visa(doc_id)


def admin_update_visa(doc_id: str, form: Dict[str, Any]) -> Dict[str, Any]:
    doc = get_visa(doc_id)
    changes = _apply_edit(doc, form, ADMIN_EDITABLE)
    get_store().update(COLLECTION, doc_id, changes)
    return get_visa(doc_id)


def soft_delete_visa(user: Dict[str, Any], doc_id: str, is_admin: bool = False) -> Dict[str, Any]:
    """Move a booking to the deleted collection; it keeps its id there."""
    doc = get_visa(doc_id)
    if not (is_admin or owned_by(doc, user)):
        raise Forbidden("You can only delete your own bookings.")
    store = get_store()
    archived = {k: v for k, v in doc.items() if k != "id"}
    archived["deletedAt"] = now_iso()
    archived["deletedBy"] = clean(user.get("email"))
    store.set(DELETED_COLLECTION, doc_id, archived)
    store.delete(COLLECTION, doc_id)
    logger.info("Visa booking %s moved to %s by %s", doc_id, DELETED_COLLECTION, archived["deletedBy"])
    return {**archived, "id": doc_id}


def _get_deleted(user: Dict[str, Any], deleted_id: str, is_admin: bool) -> Dict[str, Any]:
    doc = get_store().get(DELETED_COLLECTION, deleted_id)
    if not doc:
        raise NotFound("Deleted booking not found.")
    if not (is_admin or owned_by(doc, user)):
        raise Forbidden("This deleted booking belongs to another user.")
    return doc


def list_deleted() -> List[Dict[str, Any]]:
    docs = get_store().list(DELETED_COLLECTION)
    return sorted(docs, key=lambda d: clean(d.get("deletedAt")), reverse=True)


def list_deleted_for_user(user_id: str) -> List[Dict[str, Any]]:
    docs = get_store().list(DELETED_COLLECTION, {"userId": str(user_id)})
    return sorted(docs, key=lambda d: clean(d.get("deletedAt")), reverse=True)


def restore_visa(user: Dict[str, Any], deleted_id: str, is_admin: bool = False) -> Dict[str, Any]:
    doc = _get_deleted(user, deleted_id, is_admin)
    store = get_store()
    owner_id = str(doc.get("userId") or "")
    active = store.list(COLLECTION, {"userId": owner_id}) if owner_id else []
    if any(_same_person_trip(doc, a) for a in active):
        raise Conflict("An active booking with this passport and country already exists.")

    restored = {k: v for k, v in doc.items() if k not in ("id", "deletedAt", "deletedBy")}
    restored["restoredAt"] = now_iso()
    new_id = store.add(COLLECTION, restored)
    store.delete(DELETED_COLLECTION, deleted_id)
    logger.info("Visa booking %s restored as %s by %s", deleted_id, new_id, clean(user.get("email")))
    return {**restored, "id": new_id}


def purge_visa(user: Dict[str, Any], deleted_id: str, is_admin: bool = False) -> None:
    _get_deleted(user, deleted_id, is_admin)
    get_store().delete(DELETED_COLLECTION, deleted_id)
    logger.warning("Visa booking %s permanently deleted by %s", deleted_id, clean(user.get("email")))


def find_by_passport(passport: str) -> List[Dict[str, Any]]:
    key = normalize(passport)
    if not key:
        return []
    return sort_by_date([d for d in get_store().list(COLLECTION) if normalize(d.get("passport")) == key])


def report_filename(doc: Dict[str, Any], on: Optional[date] = None) -> str:
    def _part(v: Any) -> str:
        return "".join(ch if ch.isalnum() or ch in "-_" else "_" for ch in clean(v)) or "NA"

    stamp = (on or today()).isoformat()
    return f"OS_Travels_Booking_{_part(doc.get('passport'))}_{_part(doc.get('country'))}_{stamp}.pdf"
