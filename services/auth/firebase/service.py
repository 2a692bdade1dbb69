from __future__ import annotations

import logging
import math
import os
import threading
import time
from typing import Any, Dict, Optional

import requests

from services.datastore.base import StoreError
from services.datastore.store import get_store

logger = logging.getLogger(__name__)

FIREBASE_WEB_API_KEY = os.getenv("FIREBASE_WEB_API_KEY", "").strip()
SIGN_IN_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signInWithPassword"

# Hardcoded administrator pair; signs in without a role lookup.
ADMIN_EMAIL = (os.getenv("ADMIN_EMAIL") or "adminos@gmail.com").strip()
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD") or "ospk123"
ADMIN_UID = "local-admin"

LOGIN_MAX_ATTEMPTS = int(os.getenv("LOGIN_MAX_ATTEMPTS") or 5)
LOGIN_WINDOW_SECONDS = int(os.getenv("LOGIN_WINDOW_SECONDS") or 15 * 60)
INACTIVITY_LIMIT_SECONDS = int(os.getenv("INACTIVITY_LIMIT_SECONDS") or 15 * 60)
INACTIVITY_WARNING_SECONDS = int(os.getenv("INACTIVITY_WARNING_SECONDS") or 60)

USERS_COLLECTION = "users"
ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"

_PROVIDER_ERRORS = {
    "EMAIL_NOT_FOUND": "Invalid email or password.",
    "INVALID_PASSWORD": "Invalid email or password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "INVALID_EMAIL": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many login attempts. Please try again later.",
}


class AuthError(Exception):
    def __init__(self, message: str, status_code: int = 401):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RateLimited(AuthError):
    def __init__(self, minutes: int):
        super().__init__(f"Too many login attempts. Please try again in {minutes} minutes.", 429)
        self.minutes = minutes


class LoginRateLimiter:
    """Counts sign-in attempts per identifier inside a sliding window."""

    def __init__(self, max_attempts: int = LOGIN_MAX_ATTEMPTS, window_seconds: int = LOGIN_WINDOW_SECONDS):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._attempts: Dict[str, Dict[str, float]] = {}
        self._lock = threading.Lock()

    def hit(self, identifier: str, now: Optional[float] = None) -> None:
        """Record one attempt, raising ``RateLimited`` once the attempts are used up."""
        now = time.time() if now is None else now
        key = (identifier or "").strip().lower()
        with self._lock:
            self._prune(now)
            entry = self._attempts.get(key)
            if entry and entry["count"] >= self.max_attempts:
                remaining = self.window_seconds - (now - entry["last"])
                raise RateLimited(max(1, math.ceil(remaining / 60)))
            entry = entry or {"count": 0, "last": now}
            entry["count"] += 1
            entry["last"] = now
            self._attempts[key] = entry

    def _prune(self, now: float) -> None:
        stale = [k for k, e in self._attempts.items() if now - e["last"] > self.window_seconds]
        for k in stale:
            del self._attempts[k]

    def reset(self, identifier: str) -> None:
        with self._lock:
            self._attempts.pop((identifier or "").strip().lower(), None)


rate_limiter = LoginRateLimiter()


def is_admin(user: Optional[Dict[str, Any]]) -> bool:
    return bool(user) and (user.get("role") or "").strip().lower() == ROLE_ADMIN


def sign_in_with_password(email: str, password: str) -> Dict[str, Any]:
    """Verify credentials with the identity provider; returns ``{"uid", "email"}``."""
    if not FIREBASE_WEB_API_KEY:
        logger.error("FIREBASE_WEB_API_KEY is not configured; employee sign-in is unavailable")
        raise AuthError("Sign-in is not configured. Contact your administrator.", 503)
    try:
        r = requests.post(
            SIGN_IN_URL,
            params={"key": FIREBASE_WEB_API_KEY},
            json={"email": email, "password": password, "returnSecureToken": True},
            timeout=15,
        )
    except requests.RequestException as exc:
        logger.error("Identity provider unreachable: %s", exc)
        raise AuthError("Authentication service is unreachable.", 502) from exc

    try:
        data = r.json()
    except ValueError:
        data = {}
    if not r.ok:
        err = data.get("error") if isinstance(data, dict) else None
        code = (str(err.get("message") or "") if isinstance(err, dict) else "") or "UNKNOWN_ERROR"
        code = code.split(" ")[0].split(":")[0]
        logger.info("Sign-in rejected for %s: %s", email, code)
        status = 403 if code == "USER_DISABLED" else 401
        raise AuthError(_PROVIDER_ERRORS.get(code, f"Authentication failed: {code}"), status)
    return {"uid": str(data.get("localId") or ""), "email": str(data.get("email") or email)}


def lookup_role(uid: str) -> str:
    try:
        doc = get_store().get(USERS_COLLECTION, uid)
    except StoreError as exc:
        logger.warning("Role lookup failed for %s, treating as employee: %s", uid, exc)
        return ROLE_EMPLOYEE
    role = str((doc or {}).get("role") or "").strip().lower()
    return ROLE_ADMIN if role == ROLE_ADMIN else ROLE_EMPLOYEE


def sign_in(email: str, password: str, limiter: Optional[LoginRateLimiter] = None) -> Dict[str, Any]:
    """Authenticate and return the session user ``{"id", "email", "name", "role"}``."""
    limiter = limiter or rate_limiter
    email = (email or "").strip()
    if not email or not password:
        raise AuthError("Please enter your email and password.", 400)

    limiter.hit(email)

    if email == ADMIN_EMAIL and password == ADMIN_PASSWORD:
        limiter.reset(email)
        logger.info("Administrator signed in with the local account")
        return {"id": ADMIN_UID, "email": ADMIN_EMAIL, "name": "Administrator", "role": ROLE_ADMIN}

    account = sign_in_with_password(email, password)
    limiter.reset(email)
    role = lookup_role(account["uid"])
    return {
        "id": account["uid"],
        "email": account["email"],
        "name": account["email"].split("@")[0],
        "role": role,
    }


def inactivity_state(last_activity: Optional[float], now: Optional[float] = None) -> Dict[str, Any]:
    """Seconds left before an idle session expires and whether to warn about it."""
    now = time.time() if now is None else now
    if last_activity is None:
        return {"expired": True, "seconds_remaining": 0, "show_warning": False}
    remaining = INACTIVITY_LIMIT_SECONDS - (now - float(last_activity))
    return {
        "expired": remaining <= 0,
        "seconds_remaining": max(0, int(remaining)),
        "show_warning": 0 < remaining <= INACTIVITY_WARNING_SECONDS,
    }
