import pytest
import requests

from conftest import FakeResponse
from packages.features.common.errors import ValidationError
from packages.features.mailing import mailing
from packages.features.mailing.mailing import (
    MailingError,
    customers_for_country,
    encode_attachment,
    recipients_from,
    select_batch,
    send_bulk,
)

DOCS = [
    {"id": "v1", "fullName": "Ali", "email": "ali@example.com", "phone": "0300", "country": "Germany"},
    {"id": "v1", "fullName": "Ali", "email": "ALI@example.com", "phone": "0300", "country": "Germany"},
    {"id": "v2", "fullName": "Sara", "email": "", "country": "Germany"},
    {"id": "t1", "passenger": {"fullName": "Omar", "email": "omar@example.com", "phone": "0311"}, "nationality": "germany"},
    {"id": "v3", "fullName": "Zed", "email": "zed@example.com", "country": "France"},
]

RECIPIENTS = [{"id": str(i), "name": f"R{i}", "email": f"r{i}@example.com", "phone": ""} for i in range(5)]


def test_recipients_dedupe_and_skip_blank_emails():
    out = recipients_from(DOCS, "GERMANY")
    assert [(r["id"], r["name"], r["email"]) for r in out] == [
        ("v1", "Ali", "ali@example.com"),
        ("t1", "Omar", "omar@example.com"),
    ]


def test_customers_for_country_reads_every_source(store):
    store.set("bookings", "v1", {"fullName": "Ali", "email": "ali@example.com", "country": "Germany"})
    store.set("ticketBookings", "t1", {"passenger": {"fullName": "Omar", "email": "omar@example.com"}, "country": "Germany"})
    store.set("ummrahBookings", "u1", {"fullName": "Hamza", "email": "hamza@example.com", "nationality": "Pakistan"})
    assert {r["email"] for r in customers_for_country("Germany")} == {"ali@example.com", "omar@example.com"}


def test_select_batch():
    assert select_batch(RECIPIENTS, 1, 3) == RECIPIENTS[1:3]
    assert select_batch(RECIPIENTS, "2", "") == RECIPIENTS[2:]
    assert select_batch(RECIPIENTS, 4, 2) == []
    assert select_batch(RECIPIENTS, 3, 4, send_all=True) == RECIPIENTS


def test_encode_attachment():
    att = encode_attachment("flyer.pdf", b"hello", "application/pdf")
    assert att == {"filename": "flyer.pdf", "content": "aGVsbG8=", "contentType": "application/pdf"}


def test_send_bulk_validates_before_calling_gateway(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError("gateway must not be called")

    monkeypatch.setattr(mailing.requests, "post", boom)
    with pytest.raises(ValidationError) as exc:
        send_bulk("", "", [{"email": "bad"}])
    assert set(exc.value.errors) == {"subject", "body", "recipients"}


def test_send_bulk_posts_to_gateway(monkeypatch):
    calls = []

    def fake_post(url, json=None, timeout=None):
        calls.append((url, json))
        return FakeResponse(200, {"success": True, "sent": 2, "failed": 0, "errors": []})

    monkeypatch.setattr(mailing.requests, "post", fake_post)
    result = send_bulk("Offer", "Dear {{name}}", RECIPIENTS[:2], {"filename": "a.txt", "content": "YQ==", "contentType": "text/plain"})

    assert result == {"success": True, "sent": 2, "failed": 0, "errors": []}
    url, payload = calls[0]
    assert url.endswith("/send-email")
    assert payload["recipients"] == [{"name": "R0", "email": "r0@example.com"}, {"name": "R1", "email": "r1@example.com"}]
    assert payload["file"]["filename"] == "a.txt"


def test_send_bulk_gateway_errors(monkeypatch):
    monkeypatch.setattr(mailing.requests, "post", lambda *a, **k: FakeResponse(500, {"error": "SMTP down"}))
    with pytest.raises(MailingError, match="SMTP down"):
        send_bulk("Offer", "Body", RECIPIENTS[:1])

    def unreachable(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(mailing.requests, "post", unreachable)
    with pytest.raises(MailingError) as exc:
        send_bulk("Offer", "Body", RECIPIENTS[:1])
    assert exc.value.status_code == 502
