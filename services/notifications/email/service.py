from __future__ import annotations

import base64
import binascii
import logging
import os
import subprocess
from email.message import EmailMessage
from email.utils import formatdate, make_msgid
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

SMTP_URL = os.getenv("SMTP_URL") or "smtps://smtp.gmail.com:465"
SMTP_USER = os.getenv("SMTP_USER") or ""
SMTP_PASS = os.getenv("SMTP_PASS") or ""
SMTP_FROM = os.getenv("SMTP_FROM") or SMTP_USER


def smtp_configured() -> bool:
    return bool(SMTP_USER and SMTP_PASS)


def build_message(to_email: str, subject: str, body: str, attachment: Optional[Dict[str, Any]] = None) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = SMTP_FROM
    msg["To"] = to_email
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=True)
    msg["Message-ID"] = make_msgid()
    msg.set_content(body)

    if attachment and attachment.get("content"):
        try:
            data = base64.b64decode(attachment["content"], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ValueError("Attachment content is not valid base64") from exc
        maintype, _, subtype = (attachment.get("contentType") or "application/octet-stream").partition("/")
        msg.add_attachment(
            data,
            maintype=maintype or "application",
            subtype=subtype or "octet-stream",
            filename=attachment.get("filename") or "attachment",
        )
    return msg


def send_email(
    to_email: str,
    subject: str,
    body: str,
    attachment: Optional[Dict[str, Any]] = None,
) -> tuple[bool, str]:
    """Send email using a simple SMTP curl command."""
    to_email = (to_email or "").strip()
    if not to_email:
        return False, "Missing recipient email"

    if not smtp_configured():
        return False, "SMTP credentials are missing"

    try:
        msg = build_message(to_email, subject, body, attachment)
    except ValueError as exc:
        return False, str(exc)

    cmd = [
        "curl",
        "--silent",
        "--show-error",
        "--url",
        SMTP_URL,
        "--ssl-reqd",
        "--user",
        f"{SMTP_USER}:{SMTP_PASS}",
        "--mail-from",
        SMTP_FROM,
        "--mail-rcpt",
        to_email,
        "-T",
        "-",
    ]

    try:
        res = subprocess.run(
            cmd,
            input=msg.as_bytes(),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=25,
        )
    except (OSError, subprocess.SubprocessError) as exc:
        logger.error("curl could not be run for %s: %s", to_email, exc)
        return False, str(exc)
    if res.returncode == 0:
        return True, "sent"
    err = (res.stderr or res.stdout or b"").decode("utf-8", errors="ignore").strip()
    logger.warning("SMTP delivery to %s failed: %s", to_email, err or res.returncode)
    return False, err or f"curl failed (code {res.returncode})"
