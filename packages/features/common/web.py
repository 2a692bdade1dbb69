from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import RedirectResponse, Response

from packages.features.common.errors import BookingError, error_payload
from services.datastore.base import StoreError

logger = logging.getLogger(__name__)


def _json(data: Any, status: int = 200) -> Response:
    return Response(
        content=json.dumps(data, ensure_ascii=False, default=str),
        status_code=status,
        media_type="application/json",
    )


def error_json(exc: Exception) -> Response:
    if isinstance(exc, BookingError):
        return _json(error_payload(exc), exc.status_code)
    if isinstance(exc, StoreError):
        logger.exception("Datastore failure")
        return _json({"status": "error", "error": "The database is unavailable. Please try again."}, 502)
    raise exc


def error_message(exc: Exception) -> str:
    if isinstance(exc, BookingError):
        return exc.message
    logger.exception("Datastore failure")
    return "The database is unavailable. Please try again."


async def read_payload(request: Request) -> Dict[str, Any]:
    """Body as a dict, whether the client posted JSON or a form."""
    content_type = (request.headers.get("content-type") or "").lower()
    if "application/json" in content_type:
        try:
            payload = await request.json()
        except ValueError:
            payload = {}
        return payload if isinstance(payload, dict) else {}
    form = await request.form()
    return {k: v for k, v in form.items() if isinstance(v, str)}


def redirect(url: str, msg: Optional[str] = None, err: Optional[str] = None, **params: Any) -> RedirectResponse:
    query = {k: v for k, v in params.items() if v not in (None, "")}
    if msg:
        query["msg"] = msg
    if err:
        query["err"] = err
    sep = "&" if "?" in url else "?"
    return RedirectResponse(url=url + (sep + urlencode(query) if query else ""), status_code=303)


def current_user(request: Request) -> Optional[Dict[str, Any]]:
    return request.app.state.get_current_user(request)


def is_admin(request: Request) -> bool:
    return request.app.state.is_admin(current_user(request))


def unauthenticated() -> Response:
    return _json({"status": "error", "error": "Not authenticated."}, 401)


def forbidden() -> Response:
    return _json({"status": "error", "error": "Administrator access required."}, 403)


def download(content: Any, filename: str, media_type: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def field(name: str, label: str, type: str = "text", options: Optional[list] = None, required: bool = True, **extra: Any) -> Dict[str, Any]:
    """Describe one form input for the shared form/edit templates."""
    return {"name": name, "label": label, "type": type, "options": options or [], "required": required, **extra}
