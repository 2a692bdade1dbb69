import base64

import pytest
from fastapi.testclient import TestClient

from services.gateway.app import app
from services.gateway.routers import notifications
from services.notifications.email import service as email_service


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def outbox(monkeypatch):
    sent = []

    def fake_send(to_email, subject, body, attachment=None):
        if to_email.startswith("bounce"):
            return False, "550 mailbox unavailable"
        sent.append({"to": to_email, "subject": subject, "body": body, "attachment": attachment})
        return True, "sent"

    monkeypatch.setattr(notifications, "send_email", fake_send)
    return sent


def test_health_reports_smtp_configuration(client, monkeypatch):
    monkeypatch.setattr(email_service, "SMTP_USER", "")
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["smtp_configured"] is False
    assert client.get("/__build").json()["build"] == "mail-gateway-v1"


def test_bulk_send_personalizes_each_message(client, outbox):
    r = client.post(
        "/send-email",
        json={
            "subject": "Hello {{name}}",
            "body": "Dear {{name}}, your visa is ready.",
            "recipients": [{"name": "Ali", "email": "ali@example.com"}, {"email": "anon@example.com"}],
            "file": {"filename": "a.txt", "content": "YQ==", "contentType": "text/plain"},
        },
    )
    assert r.status_code == 200
    assert r.json() == {"success": True, "sent": 2, "failed": 0, "errors": []}
    assert outbox[0]["subject"] == "Hello Ali"
    assert outbox[1]["body"] == "Dear Customer, your visa is ready."
    assert outbox[0]["attachment"]["filename"] == "a.txt"


def test_bulk_send_reports_failures(client, outbox):
    r = client.post(
        "/send-email",
        json={
            "subject": "Offer",
            "body": "Body",
            "recipients": [{"name": "A", "email": "a@example.com"}, {"name": "B", "email": "bounce@example.com"}],
        },
    )
    data = r.json()
    assert data["success"] is False
    assert (data["sent"], data["failed"]) == (1, 1)
    assert data["errors"] == [{"email": "bounce@example.com", "error": "550 mailbox unavailable"}]


def test_bulk_send_requires_recipients(client, outbox):
    r = client.post("/send-email", json={"subject": "S", "body": "B", "recipients": []})
    assert r.status_code == 422
    assert outbox == []


def test_single_notification(client, outbox):
    r = client.post("/api/notify/email", json={"to_email": "ali@example.com", "subject": "Hi", "body": "Body"})
    assert r.json() == {"status": "ok"}
    r = client.post("/api/notify/email", json={"to_email": "bounce@example.com", "subject": "Hi", "body": "Body"})
    assert r.status_code == 500
    assert r.json()["status"] == "error"


def test_build_message_attaches_file():
    content = base64.b64encode(b"%PDF-1.4").decode()
    msg = email_service.build_message(
        "ali@example.com", "Ticket", "See attached",
        {"filename": "ticket.pdf", "content": content, "contentType": "application/pdf"},
    )
    assert msg["To"] == "ali@example.com"
    parts = list(msg.iter_attachments())
    assert len(parts) == 1
    assert parts[0].get_filename() == "ticket.pdf"
    assert parts[0].get_content_type() == "application/pdf"
    assert parts[0].get_content() == b"%PDF-1.4"


def test_build_message_rejects_bad_base64():
    with pytest.raises(ValueError):
        email_service.build_message("a@example.com", "S", "B", {"filename": "x", "content": "not base64!!"})


def test_send_email_without_credentials(monkeypatch):
    monkeypatch.setattr(email_service, "SMTP_USER", "")
    monkeypatch.setattr(email_service, "SMTP_PASS", "")
    assert email_service.send_email("a@example.com", "S", "B") == (False, "SMTP credentials are missing")
    assert email_service.send_email("  ", "S", "B") == (False, "Missing recipient email")
