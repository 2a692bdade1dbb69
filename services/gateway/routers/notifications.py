from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from services.notifications.email.service import send_email

logger = logging.getLogger(__name__)

router = APIRouter()


class EmailRequest(BaseModel):
    to_email: str = Field(..., min_length=3)
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)


class Recipient(BaseModel):
    name: str = ""
    email: str = Field(..., min_length=3)


class Attachment(BaseModel):
    filename: str = "attachment"
    content: str = Field(..., min_length=1)
    contentType: str = "application/octet-stream"


class BulkEmailRequest(BaseModel):
    subject: str = Field(..., min_length=1)
    body: str = Field(..., min_length=1)
    recipients: List[Recipient] = Field(..., min_length=1)
    file: Optional[Attachment] = None


def personalize(text: str, name: str) -> str:
    return (text or "").replace("{{name}}", name or "Customer")


@router.post("/api/notify/email")
def notify_email(req: EmailRequest):
    ok, msg = send_email(req.to_email, req.subject, req.body)
    if ok:
        return {"status": "ok"}
    return JSONResponse(status_code=500, content={"status": "error", "error": msg})


@router.post("/send-email")
def send_bulk_email(req: BulkEmailRequest):
    attachment = req.file.model_dump() if req.file else None
    sent = 0
    errors = []
    for r in req.recipients:
        ok, msg = send_email(
            r.email,
            personalize(req.subject, r.name),
            personalize(req.body, r.name),
            attachment,
        )
        if ok:
            sent += 1
        else:
            errors.append({"email": r.email, "error": msg})

    failed = len(errors)
    logger.info("Bulk send finished: %s sent, %s failed", sent, failed)
    return {"success": sent > 0 and failed == 0, "sent": sent, "failed": failed, "errors": errors}
