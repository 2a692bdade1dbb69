import pytest
from fastapi.testclient import TestClient

from apps.backoffice import app as portal
from services.auth.firebase import service as auth_service

EMPLOYEE_PAGES = [
    "/",
    "/visas",
    "/visas/new",
    "/visas/search",
    "/visas/countries",
    "/visas/deleted",
    "/visas/report?passport=AB1234567",
    "/tickets",
    "/tickets/all",
    "/hotels",
    "/umrah",
    "/medical",
]

ADMIN_PAGES = [
    "/admin",
    "/admin?stats_period=month&period=week&q=ali",
    "/admin/home",
    "/admin/tickets",
    "/admin/tickets?sort=profit&dir=asc",
    "/admin/employees",
    "/admin/employees/emp@os.com",
    "/admin/countries",
    "/admin/countries/Germany",
    "/admin/deleted",
    "/admin/hotels",
    "/admin/umrah",
    "/admin/medical",
    "/admin/customers",
    "/admin/send-email/Germany",
]

EXPORTS = [
    ("/admin/visas/export.csv", "text/csv"),
    ("/admin/visas/report.pdf", "application/pdf"),
    ("/admin/employees/export.csv", "text/csv"),
    ("/admin/tickets/export.csv", "text/csv"),
    ("/admin/tickets/export.pdf", "application/pdf"),
    ("/admin/hotels/export.csv", "text/csv"),
    ("/admin/umrah/export.pdf", "application/pdf"),
    ("/admin/medical/export.csv", "text/csv"),
    ("/admin/send-email/Germany/customers.csv", "text/csv"),
]


@pytest.fixture
def client(store):
    return TestClient(portal.app)


@pytest.fixture
def provider(monkeypatch):
    monkeypatch.setattr(auth_service, "sign_in_with_password", lambda email, password: {"uid": "emp-1", "email": email})


def login(client, email, password, next_url=""):
    return client.post(
        "/login",
        data={"email": email, "password": password, "next": next_url},
        follow_redirects=False,
    )


@pytest.fixture
def as_employee(client, provider):
    r = login(client, "emp@os.com", "secret")
    assert r.status_code == 303
    return client


@pytest.fixture
def as_admin(client):
    r = login(client, auth_service.ADMIN_EMAIL, auth_service.ADMIN_PASSWORD)
    assert r.headers["location"] == "/admin"
    return client


def test_anonymous_requests_are_sent_to_login(client):
    r = client.get("/visas", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/login?next=/visas"

    r = client.get("/api/visas")
    assert r.status_code == 401
    assert r.json()["error"] == "Not authenticated."

    assert client.get("/health").json()["ok"] is True
    assert client.get("/login").status_code == 200
    assert client.get("/assets/app.css").status_code == 200


def test_bad_login_shows_error(client, monkeypatch):
    def reject(email, password):
        raise auth_service.AuthError("Invalid email or password.", 401)

    monkeypatch.setattr(auth_service, "sign_in_with_password", reject)
    r = login(client, "emp@os.com", "wrong")
    assert r.status_code == 401
    assert "Invalid email or password." in r.text

    r = login(client, "", "")
    assert r.status_code == 400


def test_login_rate_limit(client, monkeypatch):
    def reject(email, password):
        raise auth_service.AuthError("Invalid email or password.", 401)

    monkeypatch.setattr(auth_service, "sign_in_with_password", reject)
    for _ in range(auth_service.LOGIN_MAX_ATTEMPTS):
        login(client, "emp@os.com", "wrong")
    r = login(client, "emp@os.com", "wrong")
    assert r.status_code == 429
    assert "Too many login attempts" in r.text


def test_employee_login_and_next(client, provider):
    r = login(client, "emp@os.com", "secret", next_url="/tickets")
    assert r.headers["location"] == "/tickets"
    client.get("/logout")

    r = login(client, "emp@os.com", "secret", next_url="//evil.example.com")
    assert r.headers["location"] == "/"
    client.get("/logout")

    r = login(client, "emp@os.com", "secret", next_url="/\\evil.example.com")
    assert r.headers["location"] == "/"

    # Already signed in.
    r = client.get("/login", follow_redirects=False)
    assert r.headers["location"] == "/"


def test_employee_cannot_reach_admin(as_employee):
    r = as_employee.get("/admin", follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/"
    r = as_employee.get("/api/admin/stats")
    assert r.status_code == 403


def test_logout_clears_session(as_employee):
    r = as_employee.get("/logout", follow_redirects=False)
    assert r.headers["location"] == "/login?msg=Logged%20out"
    assert as_employee.get("/api/visas").status_code == 401


def test_expired_session_redirects(as_employee, monkeypatch):
    monkeypatch.setattr(
        portal,
        "inactivity_state",
        lambda last, now=None: {"expired": True, "seconds_remaining": 0, "show_warning": False},
    )
    r = as_employee.get("/visas", follow_redirects=False)
    assert r.headers["location"] == "/login?msg=Session%20expired"
    monkeypatch.undo()
    assert as_employee.get("/api/visas").status_code == 401


def test_session_endpoints(as_employee):
    data = as_employee.get("/api/session").json()
    assert data["user"] == {"email": "emp@os.com", "role": "employee"}
    assert data["seconds_remaining"] > 0
    assert data["show_warning"] is False
    r = as_employee.post("/api/session/keepalive")
    assert r.json()["seconds_remaining"] == auth_service.INACTIVITY_LIMIT_SECONDS


def test_visa_api_create_and_list(as_employee, visa_form):
    r = as_employee.post("/api/visas", json=visa_form)
    assert r.status_code == 201
    visa = r.json()["visa"]
    assert visa["userId"] == "emp-1"

    data = as_employee.get("/api/visas").json()
    assert [v["id"] for v in data["visas"]] == [visa["id"]]


def test_visa_api_validation_errors(as_employee, visa_form):
    visa_form["passport"] = ""
    r = as_employee.post("/api/visas", json=visa_form)
    assert r.status_code == 400
    body = r.json()
    assert body["status"] == "error"
    assert "passport" in body["errors"]


def test_visa_form_post(as_employee, visa_form):
    r = as_employee.post("/visas/new", data=visa_form, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/visas?msg=")

    visa_form["email"] = "not-an-email"
    r = as_employee.post("/visas/new", data=visa_form)
    assert r.status_code == 400
    assert "not-an-email" in r.text


def test_employee_pages_render(as_employee, visa_form, ticket_form):
    visa = as_employee.post("/api/visas", json=visa_form).json()["visa"]
    r = as_employee.post("/tickets", data=ticket_form, follow_redirects=False)
    assert r.status_code == 303

    for url in EMPLOYEE_PAGES + [f"/visas/{visa['id']}/edit"]:
        r = as_employee.get(url)
        assert r.status_code == 200, url
    assert "Ali Khan" in as_employee.get("/visas").text

    r = as_employee.get(f"/visas/report/{visa['id']}.pdf")
    assert r.headers["content-type"] == "application/pdf"
    assert r.content.startswith(b"%PDF")


def test_admin_pages_and_exports(client, provider, visa_form, ticket_form):
    login(client, "emp@os.com", "secret")
    client.post("/api/visas", json=visa_form)
    client.post("/tickets", data=ticket_form)
    client.get("/logout")

    login(client, auth_service.ADMIN_EMAIL, auth_service.ADMIN_PASSWORD)
    for url in ADMIN_PAGES:
        r = client.get(url)
        assert r.status_code == 200, url

    for url, media_type in EXPORTS:
        r = client.get(url)
        assert r.status_code == 200, url
        assert r.headers["content-type"].startswith(media_type), url
        assert "attachment" in r.headers["content-disposition"]

    stats = client.get("/api/admin/stats").json()["stats"]
    assert stats["total"] == 1


def test_admin_root_redirects_to_dashboard(as_admin):
    r = as_admin.get("/", follow_redirects=False)
    assert r.headers["location"] == "/admin"


HOTEL_FORM = {
    "bookingId": "H-9",
    "clientName": "Bilal Raza",
    "property": "Hilton Dubai",
    "numberOfRooms": "1",
    "numberOfAdults": "2",
    "numberOfChildren": "0",
    "arrivalDate": "2025-03-01",
    "departureDate": "2025-03-04",
    "paymentMethod": "Cash",
    "payable": "40000",
    "received": "52000",
}

MEDICAL_FORM = {
    "NameofCompany": "Jubilee",
    "NameofInsured": "Nadia Iqbal",
    "age": "34",
    "passportNumber": "MD5566",
    "Nic": "35202-1234567-1",
    "countryofTravel": "France",
    "contactNumber": "03214567890",
    "noOfdays": "30",
    "EffectiveDate": "2025-05-01",
    "ExpiryDate": "2025-05-31",
    "totalReceivedAmount": "12000",
    "totalPayableAmount": "9000",
}


def test_hotel_routes_share_record_pages(client, provider):
    login(client, "emp@os.com", "secret")
    r = client.post("/api/hotels", json=HOTEL_FORM)
    assert r.status_code == 201
    hotel = r.json()["hotel"]
    assert hotel["nightsStayed"] == 3

    listed = client.get("/api/hotels").json()
    assert [h["id"] for h in listed["hotels"]] == [hotel["id"]]
    assert listed["totals"]["profit"] == 12000

    r = client.put(f"/api/hotels/{hotel['id']}", json={"property": ""})
    assert r.status_code == 400
    assert "property" in r.json()["errors"]

    r = client.post(f"/hotels/{hotel['id']}/edit", data={"received": "60000"}, follow_redirects=False)
    assert r.headers["location"].startswith("/hotels?msg=")
    assert client.get(f"/hotels/{hotel['id']}/edit").status_code == 200
    assert client.get("/api/admin/hotels").status_code == 403
    client.get("/logout")

    login(client, auth_service.ADMIN_EMAIL, auth_service.ADMIN_PASSWORD)
    rows = client.get("/api/admin/hotels").json()["hotels"]
    assert rows[0]["received"] == 60000
    r = client.post(f"/admin/hotels/{hotel['id']}/delete", follow_redirects=False)
    assert r.headers["location"].startswith("/admin/hotels?msg=")
    assert client.get("/api/admin/hotels").json()["hotels"] == []


def test_medical_routes_list_by_owner_email(client, provider):
    login(client, "emp@os.com", "secret")
    r = client.post("/api/medical", json=MEDICAL_FORM)
    assert r.status_code == 201
    record = r.json()["record"]
    assert [m["id"] for m in client.get("/api/medical").json()["records"]] == [record["id"]]

    r = client.post("/medical", data={**MEDICAL_FORM, "age": "0"})
    assert r.status_code == 400
    client.get("/logout")

    login(client, auth_service.ADMIN_EMAIL, auth_service.ADMIN_PASSWORD)
    assert client.delete(f"/api/admin/medical/{record['id']}").json() == {"status": "ok"}
    assert client.get("/api/admin/medical").json()["records"] == []
