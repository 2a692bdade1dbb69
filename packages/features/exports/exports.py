from __future__ import annotations

import csv
import io
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from packages.features.common.forms import clean
from packages.features.common.periods import iso_day
from packages.features.dashboards.dashboards import handler_email

ADMIN_VISA_COLUMNS = [
    ("Name", "fullName"),
    ("Passport", "passport"),
    ("Email", "email"),
    ("Visa Type", "visaType"),
    ("Country", "country"),
    ("Status", "visaStatus"),
    ("Payment", "paymentStatus"),
    ("Total Fee", "totalFee"),
    ("Received", "receivedFee"),
    ("Remaining", "remainingFee"),
    ("Date", "date"),
    ("Employee", "userEmail"),
]

TICKET_COLUMNS = [
    ("PNR", "pnr"),
    ("Passenger", "passenger.fullName"),
    ("Passport", "passenger.passport"),
    ("From", "from"),
    ("To", "to"),
    ("Departure", "departure"),
    ("Return", "returnDate"),
    ("Class", "travelClass"),
    ("Vendor", "vendor"),
    ("Price", "price"),
    ("Payable", "payable"),
    ("Profit", "profit"),
    ("Status", "status"),
    ("Employee", "createdByEmail"),
    ("Created", "createdAt"),
]

HOTEL_COLUMNS = [
    ("Booking ID", "bookingId"),
    ("Client", "clientName"),
    ("Property", "property"),
    ("Rooms", "numberOfRooms"),
    ("Arrival", "arrivalDate"),
    ("Departure", "departureDate"),
    ("Nights", "nightsStayed"),
    ("Payment", "paymentMethod"),
    ("Payable", "payable"),
    ("Received", "received"),
    ("Profit", "profit"),
    ("Employee", "userEmail"),
]

UMRAH_COLUMNS = [
    ("Name", "fullName"),
    ("Passport", "passportNumber"),
    ("Visa No", "visaNumber"),
    ("Phone", "phone"),
    ("Makkah", "makkahHotel"),
    ("Makkah Nights", "makkahNights"),
    ("Madinah", "madinahHotel"),
    ("Madinah Nights", "madinahNights"),
    ("Vendor", "vendor"),
    ("Payable", "payable"),
    ("Received", "received"),
    ("Profit", "profit"),
    ("Employee", "createdByEmail"),
]

MEDICAL_COLUMNS = [
    ("Insured", "NameofInsured"),
    ("Company", "NameofCompany"),
    ("Passport", "passportNumber"),
    ("NIC", "Nic"),
    ("Country", "countryofTravel"),
    ("Days", "noOfdays"),
    ("Effective", "EffectiveDate"),
    ("Expiry", "ExpiryDate"),
    ("Received", "totalReceivedAmount"),
    ("Payable", "totalPayableAmount"),
    ("Profit", "totalProfit"),
    ("Employee", "userEmail"),
]

CUSTOMER_COLUMNS = [("Name", "name"), ("Email", "email"), ("Phone", "phone")]


def cell(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, dict) and ("seconds" in value or "_seconds" in value):
        return iso_day(value)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple, set)):
        return ", ".join(cell(v) for v in value)
    return str(value)


def flatten(doc: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        key = f"{prefix}{k}"
        if isinstance(v, dict) and not ("seconds" in v or "_seconds" in v):
            out.update(flatten(v, key + "."))
        else:
            out[key] = v
    return out


def rows_to_csv(rows: Iterable[Dict[str, Any]], headers: Optional[Sequence[str]] = None) -> str:
    """CSV text with every cell quoted; headers default to the union of keys in first-seen order."""
    flat = [flatten(r) for r in rows]
    if headers is None:
        seen: Dict[str, None] = {}
        for r in flat:
            for k in r:
                seen.setdefault(k, None)
        headers = list(seen)
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    for r in flat:
        writer.writerow([cell(r.get(h)) for h in headers])
    return buf.getvalue()


def columns_to_csv(docs: Iterable[Dict[str, Any]], columns: Sequence[tuple]) -> str:
    rows = []
    for d in docs:
        f = flatten(d)
        rows.append({label: f.get(field) for label, field in columns})
    return rows_to_csv(rows, [label for label, _ in columns])


def admin_visas_csv(docs: Iterable[Dict[str, Any]]) -> str:
    return columns_to_csv(docs, ADMIN_VISA_COLUMNS)


def tickets_csv(docs: Iterable[Dict[str, Any]]) -> str:
    return columns_to_csv(docs, TICKET_COLUMNS)


def customers_csv(recipients: Iterable[Dict[str, Any]]) -> str:
    return columns_to_csv(recipients, CUSTOMER_COLUMNS)


def employee_records_csv(rows: Iterable[Dict[str, Any]]) -> str:
    """One line per record across every handler; columns are the union of all fields."""
    records: List[Dict[str, Any]] = []
    for r in rows:
        for kind in ("visa", "ticket", "umrah"):
            for d in r.get(kind, []):
                item = {"employee": handler_email(d), "kind": kind}
                item.update({k: v for k, v in d.items() if not k.startswith("_")})
                records.append(item)
    return rows_to_csv(records)


def table_rows(docs: Iterable[Dict[str, Any]], columns: Sequence[tuple]) -> List[List[str]]:
    out = []
    for d in docs:
        f = flatten(d)
        row = []
        for _, field in columns:
            v = f.get(field)
            if field in ("createdAt",):
                v = iso_day(v)
            row.append(cell(v))
        out.append(row)
    return out


def safe_filename(name: str) -> str:
    return "".join(ch if ch.isalnum() or ch in "-_." else "_" for ch in clean(name)) or "export"
