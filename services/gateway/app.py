from __future__ import annotations

import logging
from pathlib import Path

from dotenv import load_dotenv

# ------------------------------------------------------------
# Load .env from PROJECT ROOT
# ------------------------------------------------------------
load_dotenv(dotenv_path=Path(__file__).resolve().parents[2] / ".env")

from fastapi import FastAPI

from services.gateway.routers import notifications_router
from services.notifications.email.service import SMTP_URL, smtp_configured

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

BUILD_ID = "mail-gateway-v1"

app = FastAPI(title="OS Travels Mail Gateway", version="1.0.0")

# Routers
app.include_router(notifications_router)


@app.on_event("startup")
async def _startup_check():
    if not smtp_configured():
        # The gateway still starts; /health reports the missing configuration.
        logger.warning("SMTP credentials not configured. Set SMTP_USER and SMTP_PASS (and optionally SMTP_URL/SMTP_FROM).")


@app.get("/__build")
async def build():
    return {"build": BUILD_ID, "mode": "smtp"}


@app.get("/health")
async def health():
    ok = smtp_configured()
    return {
        "ok": ok,
        "build": BUILD_ID,
        "mode": "smtp",
        "smtp_configured": ok,
        "smtp_url": SMTP_URL,
    }
