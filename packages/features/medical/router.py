from __future__ import annotations

from packages.features.common.forms import fmt_money
from packages.features.common.records import RecordKind, record_router
from packages.features.common.web import field
from packages.features.exports.exports import MEDICAL_COLUMNS

from .medical import (
    create_medical,
    delete_medical,
    filter_medical,
    get_medical,
    list_all_medical,
    list_medical_for_user,
    medical_totals,
    update_medical,
)

MEDICAL_FIELDS = [
    field("NameofCompany", "Insurance Company"),
    field("NameofInsured", "Name of Insured"),
    field("age", "Age", "number"),
    field("passportNumber", "Passport Number"),
    field("Nic", "NIC"),
    field("countryofTravel", "Country of Travel"),
    field("contactNumber", "Contact Number", "tel"),
    field("noOfdays", "Number of Days", "number"),
    field("EffectiveDate", "Effective Date", "date"),
    field("ExpiryDate", "Expiry Date", "date"),
    field("IssuedAt", "Issued At", "date", required=False),
    field("totalReceivedAmount", "Total Received", "number"),
    field("totalPayableAmount", "Total Payable", "number"),
]

PERIODS = ["all", "today", "week", "month"]


def _summary(totals: dict) -> dict:
    return {
        "Policies": totals["policies"],
        "Received": fmt_money(totals["received"]),
        "Payable": fmt_money(totals["payable"]),
        "Profit": fmt_money(totals["profit"]),
    }


# Policies belong to the employee's email rather than uid.
MEDICAL = RecordKind(
    slug="medical",
    name="medical",
    title="Medical Insurance",
    noun="Insurance record",
    plural="insurance records",
    item_key="record",
    list_key="records",
    export_name="medical_insurance",
    fields=MEDICAL_FIELDS,
    columns=MEDICAL_COLUMNS,
    periods=PERIODS,
    owner_key="email",
    create=create_medical,
    get=get_medical,
    update=update_medical,
    delete=delete_medical,
    list_all=list_all_medical,
    list_for_user=list_medical_for_user,
    filter_rows=filter_medical,
    totals=medical_totals,
    summary=_summary,
)

router = record_router(MEDICAL)
