from __future__ import annotations

from typing import Dict, Optional


class BookingError(ValueError):
    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(BookingError):
    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        first = next(iter(self.errors.values()), "Invalid input.")
        super().__init__(message or first)


class NotFound(BookingError):
    status_code = 404


class Forbidden(BookingError):
    status_code = 403


class Conflict(BookingError):
    status_code = 409


def error_payload(exc: BookingError) -> dict:
    payload = {"status": "error", "error": exc.message}
    if isinstance(exc, ValidationError):
        payload["errors"] = exc.errors
    return payload
