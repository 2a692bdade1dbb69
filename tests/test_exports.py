import csv
import io

from packages.features.countries.countries import GLOBE, country_flag, country_iso, flag_emoji, flag_url
from packages.features.exports.exports import (
    TICKET_COLUMNS,
    admin_visas_csv,
    cell,
    columns_to_csv,
    employee_records_csv,
    rows_to_csv,
    safe_filename,
)
from packages.features.exports.reports import admin_report_pdf, table_pdf, visa_booking_pdf


def _read(text):
    return list(csv.reader(io.StringIO(text)))


def test_rows_to_csv_quotes_everything_and_unions_headers():
    text = rows_to_csv([{"a": 1}, {"b": "x,y", "a": 2.0}])
    assert text.splitlines()[0] == '"a","b"'
    assert _read(text) == [["a", "b"], ["1", ""], ["2", "x,y"]]


def test_ticket_csv_flattens_passenger():
    doc = {"pnr": "ABC", "passenger": {"fullName": "Sara", "passport": "P1"}, "price": 100.0}
    rows = _read(columns_to_csv([doc], TICKET_COLUMNS))
    header, row = rows
    assert row[header.index("Passenger")] == "Sara"
    assert row[header.index("Price")] == "100"


def test_admin_visas_csv_has_fixed_columns():
    rows = _read(admin_visas_csv([{"fullName": "Ali", "country": "Germany"}]))
    assert rows[0][:2] == ["Name", "Passport"]
    assert rows[1][0] == "Ali"


def test_employee_records_csv_lists_every_record():
    rows = [{"email": "a@os.com", "visa": [{"id": "v1", "userEmail": "a@os.com"}], "ticket": [], "umrah": [{"id": "u1", "createdByEmail": "a@os.com", "_kind": "umrah"}]}]
    out = _read(employee_records_csv(rows))
    assert out[0][:2] == ["employee", "kind"]
    assert "_kind" not in out[0]
    assert [r[1] for r in out[1:]] == ["visa", "umrah"]


def test_cell_and_filename():
    assert cell(None) == ""
    assert cell(3.0) == "3"
    assert cell(["a", "b"]) == "a, b"
    assert cell({"seconds": 1715731200}) == "2024-05-15"
    assert safe_filename("Saudi Arabia/KSA") == "Saudi_Arabia_KSA"


def test_pdfs_render():
    stats = {"total": 1, "approved": 1, "processing": 0, "rejected": 0, "paid": 1, "unpaid": 0,
             "totalRevenue": 100.0, "pendingRevenue": 0.0, "profit": 40.0}
    doc = {"fullName": "Ali & Sons", "passport": "P1", "country": "Germany", "totalFee": 100, "date": "2024-05-15"}

    assert admin_report_pdf(stats, [doc], "This Month").startswith(b"%PDF")
    assert visa_booking_pdf(doc).startswith(b"%PDF")
    assert table_pdf("Tickets", [], TICKET_COLUMNS, {"Bookings": 0}).startswith(b"%PDF")


def test_country_flags():
    assert country_iso("Saudi Arabia") == "SA"
    assert country_iso("Atlantis") == ""
    assert country_flag("Germany") == "\U0001F1E9\U0001F1EA"
    assert flag_emoji("") == GLOBE
    assert country_flag(None) == GLOBE
    assert flag_url("Germany") == "https://flagcdn.com/w40/de.png"
    assert flag_url("Atlantis") == "https://flagcdn.com/w40/at.png"
    assert flag_url("") == ""
