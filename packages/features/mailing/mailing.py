from __future__ import annotations

import base64
import logging
import os
from typing import Any, Dict, Iterable, List, Optional

import requests

from packages.features.common.errors import BookingError, ValidationError
from packages.features.common.forms import clean, is_email, normalize, to_number
from services.datastore.store import get_store

logger = logging.getLogger(__name__)

EMAIL_BACKEND_URL = (os.getenv("EMAIL_BACKEND_URL") or "http://localhost:5060").rstrip("/")
SEND_TIMEOUT = 120

SOURCE_COLLECTIONS = ("bookings", "ticketBookings", "ummrahBookings")
COUNTRY_FIELDS = ("country", "passportCountry", "nationality")
DEFAULT_BODY = "Dear {{name}},\n\n"


class MailingError(BookingError):
    status_code = 502


def _nested(doc: Dict[str, Any], key: str) -> str:
    passenger = doc.get("passenger") if isinstance(doc.get("passenger"), dict) else {}
    return clean(passenger.get(key))


def normalize_recipient(doc: Dict[str, Any]) -> Dict[str, str]:
    return {
        "id": str(doc.get("id") or ""),
        "name": clean(doc.get("fullName")) or _nested(doc, "fullName") or "Unnamed",
        "email": clean(doc.get("email")) or _nested(doc, "email"),
        "phone": clean(doc.get("phone")) or clean(doc.get("contact")) or _nested(doc, "phone"),
    }


def recipients_from(docs: Iterable[Dict[str, Any]], country: str) -> List[Dict[str, str]]:
    key = normalize(country)
    seen = set()
    out = []
    for d in docs:
        if not any(normalize(d.get(f)) == key for f in COUNTRY_FIELDS):
            continue
        r = normalize_recipient(d)
        if not r["email"]:
            continue
        dedupe = f"{r['id']}_{r['email'].lower()}"
        if dedupe in seen:
            continue
        seen.add(dedupe)
        out.append(r)
    return out


def customers_for_country(country: str) -> List[Dict[str, str]]:
    store = get_store()
    docs: List[Dict[str, Any]] = []
    for name in SOURCE_COLLECTIONS:
        docs.extend(store.list(name))
    return recipients_from(docs, country)


def select_batch(recipients: List[Dict[str, str]], start: Any = 0, end: Any = None, send_all: bool = False) -> List[Dict[str, str]]:
    if send_all:
        return list(recipients)
    lo = max(0, int(to_number(start, 0)))
    hi = to_number(end, None)
    hi = len(recipients) if hi is None else max(lo, int(hi))
    return list(recipients[lo:hi])


def encode_attachment(filename: str, content: bytes, content_type: Optional[str] = None) -> Dict[str, str]:
    return {
        "filename": clean(filename) or "attachment",
        "content": base64.b64encode(content or b"").decode("ascii"),
        "contentType": clean(content_type) or "application/octet-stream",
    }


def send_bulk(
    subject: str,
    body: str,
    recipients: List[Dict[str, str]],
    attachment: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    """Hand a batch to the email gateway; ``{{name}}`` is filled in per recipient there."""
    errors: Dict[str, str] = {}
    if not clean(subject):
        errors["subject"] = "Subject is required."
    if not clean(body):
        errors["body"] = "Message body is required."
    valid = [r for r in recipients if is_email(r.get("email"))]
    if not valid:
        errors["recipients"] = "Select at least one recipient with a valid email."
    if errors:
        raise ValidationError(errors)

    payload = {
        "subject": subject,
        "body": body,
        "recipients": [{"name": r.get("name") or "", "email": r["email"]} for r in valid],
        "file": attachment,
    }
    try:
        r = requests.post(f"{EMAIL_BACKEND_URL}/send-email", json=payload, timeout=SEND_TIMEOUT)
    except requests.RequestException as exc:
        logger.error("Email gateway unreachable at %s: %s", EMAIL_BACKEND_URL, exc)
        raise MailingError("Email service is unreachable.") from exc

    try:
        data = r.json()
    except ValueError:
        data = {}
    if r.status_code != 200 or not isinstance(data, dict):
        logger.error("Email gateway error %s: %s", r.status_code, data)
        err = data.get("error") if isinstance(data, dict) else None
        raise MailingError(str(err or f"Email service error (status {r.status_code})"))

    result = {
        "success": bool(data.get("success")),
        "sent": int(to_number(data.get("sent"), 0)),
        "failed": int(to_number(data.get("failed"), 0)),
        "errors": data.get("errors") or [],
    }
    logger.info("Bulk email '%s': %s sent, %s failed", subject, result["sent"], result["failed"])
    return result
