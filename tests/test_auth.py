import pytest

from conftest import FakeResponse
from services.auth.firebase import service as auth
from services.auth.firebase.service import (
    INACTIVITY_LIMIT_SECONDS,
    AuthError,
    LoginRateLimiter,
    RateLimited,
    inactivity_state,
    is_admin,
    lookup_role,
    sign_in,
)


def test_rate_limiter_blocks_after_max_attempts():
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=600)
    limiter.hit("a@os.com", now=0)
    limiter.hit("A@os.com ", now=10)
    with pytest.raises(RateLimited) as exc:
        limiter.hit("a@os.com", now=20)
    assert exc.value.status_code == 429
    assert exc.value.minutes == 10
    assert "10 minutes" in exc.value.message

    # Window elapsed since the last attempt.
    limiter.hit("a@os.com", now=700)


def test_rate_limiter_reset():
    limiter = LoginRateLimiter(max_attempts=1, window_seconds=600)
    limiter.hit("a@os.com", now=0)
    limiter.reset("a@os.com")
    limiter.hit("a@os.com", now=1)


def test_admin_bypass_skips_provider(monkeypatch):
    def provider(*args):
        raise AssertionError("provider must not be called")

    monkeypatch.setattr(auth, "sign_in_with_password", provider)
    user = sign_in(auth.ADMIN_EMAIL, auth.ADMIN_PASSWORD)
    assert user["role"] == "admin"
    assert user["id"] == auth.ADMIN_UID
    assert is_admin(user)


def test_admin_bypass_needs_the_exact_pair(store, monkeypatch):
    seen = []

    def provider(email, password):
        seen.append(email)
        raise AuthError("Invalid email or password.", 401)

    monkeypatch.setattr(auth, "sign_in_with_password", provider)
    with pytest.raises(AuthError):
        sign_in(auth.ADMIN_EMAIL.upper(), auth.ADMIN_PASSWORD)
    assert seen == [auth.ADMIN_EMAIL.upper()]


def test_rate_limiter_forgets_stale_identifiers():
    limiter = LoginRateLimiter(max_attempts=3, window_seconds=600)
    for i in range(50):
        limiter.hit(f"user{i}@os.com", now=0)
    limiter.hit("late@os.com", now=601)
    assert list(limiter._attempts) == ["late@os.com"]


def test_employee_sign_in_uses_role_from_users(store, monkeypatch):
    monkeypatch.setattr(auth, "sign_in_with_password", lambda e, p: {"uid": "u-9", "email": e})
    user = sign_in("emp@os.com", "secret")
    assert user == {"id": "u-9", "email": "emp@os.com", "name": "emp", "role": "employee"}

    store.set("users", "u-9", {"role": "Admin"})
    assert sign_in("emp@os.com", "secret")["role"] == "admin"
    assert lookup_role("nobody") == "employee"


def test_sign_in_requires_both_fields():
    with pytest.raises(AuthError) as exc:
        sign_in("", "x")
    assert exc.value.status_code == 400


def test_failed_attempts_are_rate_limited(monkeypatch):
    def reject(email, password):
        raise AuthError("Invalid email or password.", 401)

    monkeypatch.setattr(auth, "sign_in_with_password", reject)
    limiter = LoginRateLimiter(max_attempts=2, window_seconds=600)
    for _ in range(2):
        with pytest.raises(AuthError):
            sign_in("emp@os.com", "wrong", limiter=limiter)
    with pytest.raises(RateLimited):
        sign_in("emp@os.com", "wrong", limiter=limiter)


def test_provider_requires_api_key(monkeypatch):
    monkeypatch.setattr(auth, "FIREBASE_WEB_API_KEY", "")
    with pytest.raises(AuthError) as exc:
        auth.sign_in_with_password("a@os.com", "x")
    assert exc.value.status_code == 503


def test_provider_error_codes(monkeypatch):
    monkeypatch.setattr(auth, "FIREBASE_WEB_API_KEY", "key")
    monkeypatch.setattr(
        auth.requests,
        "post",
        lambda *a, **k: FakeResponse(400, {"error": {"message": "INVALID_LOGIN_CREDENTIALS"}}),
    )
    with pytest.raises(AuthError) as exc:
        auth.sign_in_with_password("a@os.com", "x")
    assert exc.value.message == "Invalid email or password."

    monkeypatch.setattr(
        auth.requests,
        "post",
        lambda *a, **k: FakeResponse(400, {"error": {"message": "USER_DISABLED"}}),
    )
    with pytest.raises(AuthError) as exc:
        auth.sign_in_with_password("a@os.com", "x")
    assert exc.value.status_code == 403


def test_provider_success(monkeypatch):
    monkeypatch.setattr(auth, "FIREBASE_WEB_API_KEY", "key")
    monkeypatch.setattr(auth.requests, "post", lambda *a, **k: FakeResponse(200, {"localId": "abc", "email": "e@os.com"}))
    assert auth.sign_in_with_password("e@os.com", "x") == {"uid": "abc", "email": "e@os.com"}


def test_inactivity_state():
    now = 10_000.0
    assert inactivity_state(now - 10, now) == {
        "expired": False,
        "seconds_remaining": INACTIVITY_LIMIT_SECONDS - 10,
        "show_warning": False,
    }
    assert inactivity_state(now - INACTIVITY_LIMIT_SECONDS + 30, now)["show_warning"] is True
    assert inactivity_state(now - INACTIVITY_LIMIT_SECONDS - 1, now)["expired"] is True
    assert inactivity_state(None, now)["expired"] is True
