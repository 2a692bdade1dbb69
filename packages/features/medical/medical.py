from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from packages.features.common.errors import Forbidden, NotFound, ValidationError
from packages.features.common.forms import (
    clean,
    is_number,
    is_phone,
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

COLLECTION = "medical_insurance"

REQUIRED = {
    "NameofCompany": "Insurance company",
    "NameofInsured": "Name of insured",
    "age": "Age",
    "passportNumber": "Passport number",
    "Nic": "NIC",
    "countryofTravel": "Country of travel",
    "contactNumber": "Contact number",
    "noOfdays": "Number of days",
    "EffectiveDate": "Effective date",
    "ExpiryDate": "Expiry date",
    "totalReceivedAmount": "Total received amount",
    "totalPayableAmount": "Total payable amount",
}
EDITABLE = list(REQUIRED) + ["IssuedAt"]
SEARCH_FIELDS = ["NameofInsured", "NameofCompany", "countryofTravel", "passportNumber", "Nic", "contactNumber"]


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    errors: Dict[str, str] = {}
    require(data, REQUIRED, errors)

    for key in ("age", "noOfdays"):
        if clean(data.get(key)) and not (is_number(data.get(key)) and to_number(data.get(key)) > 0):
            errors[key] = f"{REQUIRED[key]} must be a positive number."
    for key in ("totalReceivedAmount", "totalPayableAmount"):
        if clean(data.get(key)) and not (is_number(data.get(key)) and to_number(data.get(key)) >= 0):
            errors[key] = f"{REQUIRED[key]} must be zero or more."
    if clean(data.get("contactNumber")) and not is_phone(data.get("contactNumber")):
        errors["contactNumber"] = "Contact number must be 10 to 15 digits."

    effective, expiry = to_date(data.get("EffectiveDate")), to_date(data.get("ExpiryDate"))
    if clean(data.get("EffectiveDate")) and not effective:
        errors["EffectiveDate"] = "Effective date is not a valid date."
    if clean(data.get("ExpiryDate")) and not expiry:
        errors["ExpiryDate"] = "Expiry date is not a valid date."
    if effective and expiry and expiry <= effective:
        errors["ExpiryDate"] = "Expiry date must be after the effective date."
    if errors:
        raise ValidationError(errors)

    out = {k: clean(data.get(k)) for k in EDITABLE}
    out["age"] = to_number(data.get("age"))
    out["noOfdays"] = to_number(data.get("noOfdays"))
    out["EffectiveDate"] = iso_day(effective)
    out["ExpiryDate"] = iso_day(expiry)
    out["IssuedAt"] = iso_day(data.get("IssuedAt")) or clean(data.get("IssuedAt"))
    out["totalReceivedAmount"] = money(data.get("totalReceivedAmount"))
    out["totalPayableAmount"] = money(data.get("totalPayableAmount"))
    out["totalProfit"] = out["totalReceivedAmount"] - out["totalPayableAmount"]
    return out


def create_medical(user: Dict[str, Any], form: Dict[str, Any]) -> Dict[str, Any]:
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
    logger.info("Medical insurance %s created by %s", doc_id, record["userEmail"])
    return store.get(COLLECTION, doc_id) or {**record, "id": doc_id}


def get_medical(doc_id: str) -> Dict[str, Any]:
    doc = get_store().get(COLLECTION, doc_id)
    if not doc:
        raise NotFound("Medical insurance record not found.")
    return doc


def list_all_medical() -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION))


def list_medical_for_user(email: str) -> List[Dict[str, Any]]:
    return newest_first(get_store().list(COLLECTION, {"userEmail": clean(email)}))


def update_medical(user: Dict[str, Any], doc_id: str, form: Dict[str, Any], is_admin: bool = False) -> Dict[str, Any]:
    doc = get_medical(doc_id)
    if not (is_admin or owned_by(doc, user)):
        raise Forbidden("You can only edit your own insurance records.")
    merged = {**doc, **{k: form[k] for k in EDITABLE if k in form}}
    changes = _normalize(merged)
    changes["updatedAt"] = SERVER_TIMESTAMP
    get_store().update(COLLECTION, doc_id, changes)
    return get_medical(doc_id)


def delete_medical(doc_id: str) -> None:
    if not get_store().delete(COLLECTION, doc_id):
        raise NotFound("Medical insurance record not found.")
    logger.warning("Medical insurance %s deleted", doc_id)


def filter_medical(
    docs: List[Dict[str, Any]], period: str = "all", q: str = "", now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    return [
        d for d in docs
        if in_period(d.get("createdAt"), period, now) and matches_query(d, q, SEARCH_FIELDS)
    ]


def medical_totals(docs: List[Dict[str, Any]]) -> Dict[str, float]:
    received = sum(money(d.get("totalReceivedAmount")) for d in docs)
    payable = sum(money(d.get("totalPayableAmount")) for d in docs)
    return {"policies": len(docs), "received": received, "payable": payable, "profit": received - payable}
