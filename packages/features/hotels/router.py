from __future__ import annotations

from packages.features.common.forms import fmt_money
from packages.features.common.records import RecordKind, record_router
from packages.features.common.web import field
from packages.features.exports.exports import HOTEL_COLUMNS

from .hotels import (
    create_hotel,
    delete_hotel,
    filter_hotels,
    get_hotel,
    hotel_totals,
    list_all_hotels,
    list_hotels_for_user,
    update_hotel,
)

PAYMENT_METHODS = ["Cash", "Bank Transfer", "Card", "Online"]

HOTEL_FIELDS = [
    field("bookingId", "Booking ID"),
    field("clientName", "Client Name"),
    field("property", "Property"),
    field("numberOfRooms", "Rooms", "number"),
    field("numberOfAdults", "Adults", "number"),
    field("numberOfChildren", "Children", "number", value=0),
    field("arrivalDate", "Arrival", "date"),
    field("departureDate", "Departure", "date"),
    field("paymentMethod", "Payment Method", "select", PAYMENT_METHODS),
    field("payable", "Payable", "number"),
    field("received", "Received", "number"),
    field("notes", "Notes", "textarea", required=False),
]

PERIODS = ["all", "today", "yesterday", "week", "month"]


def _summary(totals: dict) -> dict:
    return {
        "Bookings": totals["bookings"],
        "Received": fmt_money(totals["received"]),
        "Payable": fmt_money(totals["payable"]),
        "Profit": fmt_money(totals["profit"]),
    }


HOTELS = RecordKind(
    slug="hotels",
    name="hotel",
    title="Hotel Bookings",
    noun="Hotel booking",
    plural="hotel bookings",
    item_key="hotel",
    list_key="hotels",
    export_name="hotel_bookings",
    fields=HOTEL_FIELDS,
    columns=HOTEL_COLUMNS,
    periods=PERIODS,
    owner_key="id",
    create=create_hotel,
    get=get_hotel,
    update=update_hotel,
    delete=delete_hotel,
    list_all=list_all_hotels,
    list_for_user=list_hotels_for_user,
    filter_rows=filter_hotels,
    totals=hotel_totals,
    summary=_summary,
)

router = record_router(HOTELS)
