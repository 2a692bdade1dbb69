import logging
import os
import sys
import time
from pathlib import Path
from urllib.parse import quote

from dotenv import load_dotenv

# Ensure repo packages (shared features) are importable.
APP_DIR = Path(__file__).resolve().parent
ROOT_DIR = APP_DIR.parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

load_dotenv(dotenv_path=ROOT_DIR / ".env")

from fastapi import FastAPI, Form, Request
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.middleware.sessions import SessionMiddleware
from starlette.templating import Jinja2Templates

from packages.features.common.forms import fmt_money
from packages.features.common.periods import iso_day
from packages.features.common.web import _json
from packages.features.countries.countries import country_flag, flag_url
from packages.features.dashboards import router as dashboards_router
from packages.features.exports.exports import cell, flatten
from packages.features.hotels import router as hotels_router
from packages.features.hotels.hotels import list_hotels_for_user
from packages.features.mailing import router as mailing_router
from packages.features.medical import router as medical_router
from packages.features.medical.medical import list_medical_for_user
from packages.features.tickets import router as tickets_router
from packages.features.tickets.tickets import list_tickets_for_user
from packages.features.umrah import router as umrah_router
from packages.features.umrah.umrah import list_umrah_for_user
from packages.features.visas import router as visas_router
from packages.features.visas.visas import list_visas_for_user
from services.auth.firebase.service import (
    FIREBASE_WEB_API_KEY,
    INACTIVITY_LIMIT_SECONDS,
    INACTIVITY_WARNING_SECONDS,
    AuthError,
    inactivity_state,
    is_admin as _is_admin,
    sign_in,
)
from services.datastore.base import StoreError

logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("backoffice")

BUILD_ID = "backoffice-v1"
APP_TITLE = "OS Travels Back Office"

app = FastAPI(title=APP_TITLE)

# Routers
app.include_router(visas_router.router)
app.include_router(tickets_router.router)
app.include_router(hotels_router.router)
app.include_router(umrah_router.router)
app.include_router(medical_router.router)
app.include_router(dashboards_router.router)
app.include_router(mailing_router.router)

app.mount("/assets", StaticFiles(directory=str(APP_DIR / "static")), name="static")
templates = Jinja2Templates(directory=str(APP_DIR / "templates"))


# ------------------------------
# Auth helpers + middleware
# ------------------------------

AUTH_ALLOWLIST = {
    "/login",
    "/logout",
    "/__build",
    "/health",
    "/favicon.ico",
}

# Polled by the idle-warning script; must not count as activity.
PASSIVE_PATHS = {"/api/session"}


def _get_current_user(request: Request) -> dict | None:
    u = request.session.get("user")
    if not isinstance(u, dict) or not u.get("id"):
        return None
    return u


def _wants_json(path: str) -> bool:
    return path.startswith("/api/")


def _is_admin_path(path: str) -> bool:
    return path == "/admin" or path.startswith("/admin/") or path.startswith("/api/admin")


class _AuthMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        # Static assets are always allowed.
        if path.startswith("/assets"):
            return await call_next(request)

        if path in AUTH_ALLOWLIST:
            return await call_next(request)

        u = _get_current_user(request)
        if not u:
            if _wants_json(path):
                return _json({"status": "error", "error": "Not authenticated."}, 401)
            nxt = quote(path)
            return RedirectResponse(url=f"/login?next={nxt}", status_code=303)

        state = inactivity_state(request.session.get("last_activity"))
        if state["expired"]:
            logger.info("Session of %s expired after inactivity", u.get("email"))
            request.session.clear()
            if _wants_json(path):
                return _json({"status": "error", "error": "Session expired."}, 401)
            return RedirectResponse(url="/login?msg=Session%20expired", status_code=303)
        if path not in PASSIVE_PATHS:
            request.session["last_activity"] = time.time()

        # Admin-only routes.
        if _is_admin_path(path) and not _is_admin(u):
            if _wants_json(path):
                return _json({"status": "error", "error": "Administrator access required."}, 403)
            return RedirectResponse(url="/", status_code=303)

        return await call_next(request)


app.add_middleware(_AuthMiddleware)

# Session cookies (used for login) - MUST be added after auth middleware so sessions are available there
app.add_middleware(
    SessionMiddleware,
    secret_key=os.getenv("APP_SESSION_SECRET", "change-me-in-prod"),
    same_site="lax",
    https_only=False,
)


def _pick(doc: dict | None, name: str, default=""):
    """Template helper: read a field (dotted names allowed) for display."""
    if not isinstance(doc, dict):
        return default
    if name in doc:
        value = doc.get(name)
    else:
        value = flatten(doc).get(name)
    if value is None or value == "":
        return default
    return cell(value)


# Display helpers, also visible inside imported macros.
templates.env.globals.update(
    pick=_pick,
    fmt_money=fmt_money,
    iso_day=iso_day,
    flag=country_flag,
    flag_url=flag_url,
)


def _render(request: Request, template_name: str, context: dict | None = None, status_code: int = 200):
    cu = _get_current_user(request)
    ctx = {
        "title": APP_TITLE,
        "app_title": APP_TITLE,
        "build_id": BUILD_ID,
        "current_user": cu,
        "is_admin": _is_admin(cu),
        "msg": request.query_params.get("msg", ""),
        "err": request.query_params.get("err", ""),
        "errors": {},
        "inactivity_limit": INACTIVITY_LIMIT_SECONDS,
        "inactivity_warning": INACTIVITY_WARNING_SECONDS,
    }
    if context:
        ctx.update(context)
    return templates.TemplateResponse(request, template_name, ctx, status_code=status_code)


# Expose helpers for feature routers
app.state.render = _render
app.state.get_current_user = _get_current_user
app.state.is_admin = _is_admin


@app.exception_handler(StoreError)
async def _store_error(request: Request, exc: StoreError):
    logger.error("Datastore failure on %s: %s", request.url.path, exc)
    if _wants_json(request.url.path):
        return _json({"status": "error", "error": "The database is unavailable. Please try again."}, 502)
    return PlainTextResponse("The database is unavailable. Please try again shortly.", status_code=502)


@app.on_event("startup")
async def _startup_check():
    if not FIREBASE_WEB_API_KEY:
        # Only the local administrator can sign in until the key is set.
        logger.warning("FIREBASE_WEB_API_KEY not configured; employee sign-in is disabled.")


@app.get("/__build", response_class=PlainTextResponse)
def __build():
    return BUILD_ID


@app.get("/health")
def health():
    return {"ok": True, "build": BUILD_ID, "auth_configured": bool(FIREBASE_WEB_API_KEY)}


@app.get("/favicon.ico")
def favicon():
    return Response(status_code=204)


# ------------------------------
# Auth routes
# ------------------------------

@app.get("/login", response_class=HTMLResponse)
def login_get(request: Request, next: str | None = None, msg: str | None = None, err: str | None = None):
    # If already logged in, go home.
    if _get_current_user(request):
        return RedirectResponse(url="/", status_code=303)
    return _render(request, "auth/login.html", {"next": next or "", "msg": msg or "", "err": err or ""})


@app.post("/login")
async def login_post(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    next: str = Form(""),
):
    try:
        user = sign_in(email, password)
    except AuthError as e:
        return _render(request, "auth/login.html", {"next": next, "email": email, "err": e.message}, status_code=e.status_code)

    request.session["user"] = user
    request.session["last_activity"] = time.time()
    logger.info("%s signed in as %s", user["email"], user["role"])

    default = "/admin" if _is_admin(user) else "/"
    dest = (next or "").strip() or default
    # Never allow open redirects.
    if not dest.startswith("/") or dest[1:2] in ("/", "\\"):
        dest = default
    return RedirectResponse(url=dest, status_code=303)


@app.get("/logout")
def logout(request: Request):
    request.session.clear()
    return RedirectResponse(url="/login?msg=Logged%20out", status_code=303)


@app.get("/api/session")
def api_session(request: Request):
    cu = _get_current_user(request)
    state = inactivity_state(request.session.get("last_activity"))
    return _json(
        {
            "status": "ok",
            "user": {"email": cu.get("email"), "role": cu.get("role")} if cu else None,
            "seconds_remaining": state["seconds_remaining"],
            "show_warning": state["show_warning"],
        }
    )


@app.post("/api/session/keepalive")
def api_session_keepalive(request: Request):
    # The middleware already refreshed last_activity.
    return _json({"status": "ok", "seconds_remaining": INACTIVITY_LIMIT_SECONDS})


# ------------------------------
# Home
# ------------------------------

@app.get("/", response_class=HTMLResponse, name="index")
def index(request: Request):
    cu = _get_current_user(request)
    if _is_admin(cu):
        return RedirectResponse(url="/admin", status_code=303)
    counts = {
        "Visas": len(list_visas_for_user(cu["id"])),
        "Tickets": len(list_tickets_for_user(cu["id"])),
        "Hotels": len(list_hotels_for_user(cu["id"])),
        "Umrah": len(list_umrah_for_user(cu["id"])),
        "Medical": len(list_medical_for_user(cu["email"])),
    }
    return _render(request, "home.html", {"title": "Home", "counts": counts})
