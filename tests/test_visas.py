from datetime import date, datetime

import pytest

from packages.features.common.errors import Conflict, Forbidden, NotFound, ValidationError
from packages.features.visas import visas
from packages.features.visas.visas import (
    add_months,
    admin_update_visa,
    create_visa,
    filter_visas,
    find_by_passport,
    get_visa,
    list_deleted,
    list_deleted_for_user,
    list_visas_for_user,
    purge_visa,
    report_filename,
    restore_visa,
    search_summary,
    soft_delete_visa,
    unique_by_passport_country,
    update_own_visa,
    validate_visa,
)


def test_validate_computes_derived_fees(visa_form):
    record = validate_visa(visa_form)

    assert record["totalFee"] == 50000
    assert record["remainingFee"] == 30000
    assert record["profit"] == 35000
    assert record["vendorFee"] == 0
    assert record["vendor"] == ""


def test_appointment_subtracts_vendor_fee(visa_form):
    visa_form.update(visaType="Appointment", vendor="VFS", vendorContact="0300", vendorFee="5000")
    record = validate_visa(visa_form)

    assert record["profit"] == 30000
    assert record["vendor"] == "VFS"


def test_appointment_requires_vendor(visa_form):
    visa_form["visaType"] = "Appointment"
    with pytest.raises(ValidationError) as exc:
        validate_visa(visa_form)
    assert "vendor" in exc.value.errors
    assert "vendorContact" in exc.value.errors


def test_missing_date_defaults_to_today(visa_form):
    visa_form["date"] = ""
    visa_form["expiryDate"] = "2030-01-01"
    record = validate_visa(visa_form, on=date(2025, 3, 4))
    assert record["date"] == "2025-03-04"


@pytest.mark.parametrize(
    "field,value",
    [
        ("fullName", "Ali 2"),
        ("phone", "12345"),
        ("email", "not-an-email"),
        ("receivedFee", "60000"),
        ("totalFee", "abc"),
        ("visaType", "Student"),
        ("expiryDate", "2025-06-01"),
        ("passport", ""),
    ],
)
def test_validation_rules(visa_form, field, value):
    visa_form[field] = value
    with pytest.raises(ValidationError) as exc:
        validate_visa(visa_form)
    assert field in exc.value.errors


def test_add_months_clamps_to_month_end():
    assert add_months(date(2025, 1, 31), 1) == date(2025, 2, 28)
    assert add_months(date(2025, 8, 15), 7) == date(2026, 3, 15)


def test_create_records_owner(store, employee, visa_form):
    doc = create_visa(employee, visa_form)

    assert doc["userId"] == "emp-1"
    assert doc["userEmail"] == "emp@os.com"
    assert doc["createdAt"].endswith("Z")
    assert [d["id"] for d in list_visas_for_user("emp-1")] == [doc["id"]]
    assert list_visas_for_user("emp-2") == []


def test_owner_edit_recomputes_fees(store, employee, visa_form):
    doc = create_visa(employee, visa_form)
    updated = update_own_visa(employee, doc["id"], {"receivedFee": "50000", "paymentStatus": "Paid"})

    assert updated["remainingFee"] == 0
    assert updated["paymentStatus"] == "Paid"
    assert updated["profit"] == 35000


def test_owner_cannot_edit_restricted_fields(store, employee, visa_form):
    doc = create_visa(employee, visa_form)
    updated = update_own_visa(employee, doc["id"], {"phone": "03119998888"})
    assert updated["phone"] == "03001234567"

    updated = admin_update_visa(doc["id"], {"phone": "03119998888"})
    assert updated["phone"] == "03119998888"


def test_other_employee_cannot_edit(store, employee, other_employee, visa_form):
    doc = create_visa(employee, visa_form)
    with pytest.raises(Forbidden):
        update_own_visa(other_employee, doc["id"], {"fullName": "Someone Else"})


def test_edit_keeps_required_fields_and_statuses_valid(store, employee, visa_form):
    doc = create_visa(employee, visa_form)
    with pytest.raises(ValidationError) as exc:
        update_own_visa(employee, doc["id"], {"visaStatus": "Bogus", "paymentStatus": "", "country": "", "email": ""})
    assert set(exc.value.errors) == {"visaStatus", "paymentStatus", "country", "email"}

    with pytest.raises(ValidationError) as exc:
        admin_update_visa(doc["id"], {"paymentStatus": "Maybe", "email": "not-an-email"})
    assert set(exc.value.errors) == {"paymentStatus", "email"}

    stored = get_visa(doc["id"])
    assert (stored["visaStatus"], stored["paymentStatus"], stored["country"]) == ("Processing", "Partially Paid", "Germany")

    updated = update_own_visa(employee, doc["id"], {"visaStatus": "Approved", "country": " France "})
    assert (updated["visaStatus"], updated["country"]) == ("Approved", "France")


def test_edit_rejects_received_over_total(store, employee, visa_form):
    doc = create_visa(employee, visa_form)
    with pytest.raises(ValidationError):
        update_own_visa(employee, doc["id"], {"receivedFee": "99999"})


def test_soft_delete_and_restore(store, employee, visa_form):
    doc = create_visa(employee, visa_form)
    archived = soft_delete_visa(employee, doc["id"])

    assert archived["id"] == doc["id"]
    assert archived["deletedBy"] == "emp@os.com"
    assert list_visas_for_user("emp-1") == []
    assert [d["id"] for d in list_deleted_for_user("emp-1")] == [doc["id"]]

    restored = restore_visa(employee, doc["id"])
    assert restored["passport"] == "AB1234567"
    assert "deletedAt" not in restored
    assert list_deleted() == []
    assert len(list_visas_for_user("emp-1")) == 1


def test_restore_conflicts_with_active_duplicate(store, employee, visa_form):
    doc = create_visa(employee, visa_form)
    soft_delete_visa(employee, doc["id"])
    create_visa(employee, visa_form)

    with pytest.raises(Conflict):
        restore_visa(employee, doc["id"])
    assert len(list_deleted()) == 1


def test_delete_and_purge_permissions(store, employee, other_employee, visa_form):
    doc = create_visa(employee, visa_form)
    with pytest.raises(Forbidden):
        soft_delete_visa(other_employee, doc["id"])

    soft_delete_visa(other_employee, doc["id"], is_admin=True)
    with pytest.raises(Forbidden):
        purge_visa(other_employee, doc["id"])

    purge_visa(employee, doc["id"])
    assert list_deleted() == []
    with pytest.raises(NotFound):
        restore_visa(employee, doc["id"])


def test_unique_by_passport_country_keeps_newest():
    docs = [
        {"id": "old", "passport": "P1", "country": "Germany", "date": "2024-01-01"},
        {"id": "new", "passport": "p1", "country": "germany", "date": "2024-06-01"},
        {"id": "fr", "passport": "P1", "country": "France", "date": "2024-03-01"},
    ]
    assert [d["id"] for d in unique_by_passport_country(docs)] == ["new", "fr"]


def test_filter_and_summary():
    docs = [
        {"fullName": "Ali", "visaStatus": "Approved", "paymentStatus": "Paid", "country": "Germany", "totalFee": 100, "date": "2024-05-15"},
        {"fullName": "Sara", "visaStatus": "Processing", "paymentStatus": "Unpaid", "country": "France", "totalFee": 40, "date": "2024-01-01"},
    ]
    now = datetime(2024, 5, 15)
    assert [d["fullName"] for d in filter_visas(docs, status="approved", now=now)] == ["Ali"]
    assert [d["fullName"] for d in filter_visas(docs, period="today", now=now)] == ["Ali"]
    assert [d["fullName"] for d in filter_visas(docs, q="fra", now=now)] == ["Sara"]
    assert len(filter_visas(docs, status="All", now=now)) == 2
    assert search_summary(docs) == {"count": 2, "paid_earnings": 100, "pending_payments": 40}


def test_find_by_passport_ignores_case(store, employee, visa_form):
    create_visa(employee, visa_form)
    assert len(find_by_passport("ab1234567")) == 1
    assert find_by_passport("") == []


def test_report_filename():
    doc = {"passport": "AB 12", "country": "Saudi Arabia"}
    assert report_filename(doc, on=date(2025, 1, 2)) == "OS_Travels_Booking_AB_12_Saudi_Arabia_2025-01-02.pdf"


def test_collections():
    assert visas.COLLECTION == "bookings"
    assert visas.DELETED_COLLECTION == "deletedBookings"
