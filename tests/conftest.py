from __future__ import annotations

import sys
import time
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from services.auth.firebase import service as auth_service  # noqa: E402
from services.datastore.json_files.service import JsonStore  # noqa: E402
from services.datastore.store import use_store  # noqa: E402

EMPLOYEE = {"id": "emp-1", "email": "emp@os.com", "name": "emp", "role": "employee"}
OTHER_EMPLOYEE = {"id": "emp-2", "email": "other@os.com", "name": "other", "role": "employee"}
ADMIN = {"id": "local-admin", "email": "adminos@gmail.com", "name": "Administrator", "role": "admin"}


@pytest.fixture
def store(tmp_path):
    s = JsonStore(tmp_path / "data")
    use_store(s)
    yield s
    use_store(None)


@pytest.fixture
def employee():
    return dict(EMPLOYEE)


@pytest.fixture
def other_employee():
    return dict(OTHER_EMPLOYEE)


@pytest.fixture
def admin():
    return dict(ADMIN)


@pytest.fixture(autouse=True)
def utc_local_time(monkeypatch):
    # Stored timestamps are read in the server zone; pin it so dates are stable.
    monkeypatch.setenv("TZ", "UTC")
    if hasattr(time, "tzset"):
        time.tzset()


@pytest.fixture(autouse=True)
def fresh_rate_limiter(monkeypatch):
    monkeypatch.setattr(auth_service, "rate_limiter", auth_service.LoginRateLimiter())


@pytest.fixture
def visa_form():
    return {
        "passport": "AB1234567",
        "fullName": "Ali Khan",
        "visaType": "Tourism",
        "country": "Germany",
        "date": "2025-01-10",
        "expiryDate": "2026-01-10",
        "email": "ali@example.com",
        "phone": "03001234567",
        "totalFee": "50000",
        "receivedFee": "20000",
        "embassyFee": "15000",
        "paymentStatus": "Partially Paid",
        "visaStatus": "Processing",
    }


@pytest.fixture
def ticket_form():
    return {
        "tripType": "oneway",
        "from": "LHE",
        "to": "DXB",
        "departure": "2025-02-01",
        "passenger.fullName": "Sara Ahmed",
        "passenger.passport": "P998877",
        "passenger.phone": "03001112222",
        "passenger.email": "sara@example.com",
        "pnr": "abc123",
        "vendor": "Sabre",
        "price": "85000",
        "payable": "80000",
    }


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload
