from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, List, Optional, Sequence

from packages.features.common.periods import to_datetime

_PHONE_RE = re.compile(r"^\d{10,15}$")
_NAME_RE = re.compile(r"^[A-Za-z\s]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def clean(v: Any) -> str:
    return str(v if v is not None else "").strip()


def normalize(s: Any) -> str:
    return " ".join(clean(s).lower().split())


def to_number(v: Any, default: Any = 0) -> Any:
    """Parse form input to int/float; blanks and garbage give ``default``."""
    if isinstance(v, bool):
        return default
    if isinstance(v, (int, float)):
        return v if not (isinstance(v, float) and math.isnan(v)) else default
    s = clean(v).replace(",", "")
    if s == "":
        return default
    try:
        if "." in s or "e" in s.lower():
            f = float(s)
            return default if math.isnan(f) else f
        return int(s)
    except ValueError:
        return default


def is_number(v: Any) -> bool:
    return to_number(v, None) is not None


def is_phone(v: Any) -> bool:
    return bool(_PHONE_RE.match(clean(v)))


def is_person_name(v: Any) -> bool:
    return bool(_NAME_RE.match(clean(v)))


def is_email(v: Any) -> bool:
    return bool(_EMAIL_RE.match(clean(v)))


def money(v: Any) -> float:
    n = to_number(v, 0)
    return float(n)


def fmt_money(v: Any) -> str:
    n = money(v)
    if n == int(n):
        return f"{int(n):,}"
    return f"{n:,.2f}"


def require(data: Dict[str, Any], fields: Dict[str, str], errors: Dict[str, str]) -> None:
    """Record ``"<Label> is required."`` for every blank field."""
    for key, label in fields.items():
        if clean(data.get(key)) == "":
            errors.setdefault(key, f"{label} is required.")


def matches_query(doc: Dict[str, Any], q: Optional[str], fields: Sequence[str]) -> bool:
    qn = normalize(q)
    if not qn:
        return True
    for f in fields:
        cur: Any = doc
        for part in f.split("."):
            cur = cur.get(part) if isinstance(cur, dict) else None
        if qn in normalize(cur):
            return True
    return False


def newest_first(docs: Iterable[Dict[str, Any]], key: str = "createdAt") -> List[Dict[str, Any]]:
    def _k(d: Dict[str, Any]):
        dt = to_datetime(d.get(key))
        return (dt is not None, dt.isoformat() if dt else "")

    return sorted(docs, key=_k, reverse=True)


def paginate(items: Sequence[Any], page: Any = 1, per_page: int = 10) -> Dict[str, Any]:
    total = len(items)
    pages = max(1, math.ceil(total / per_page)) if per_page else 1
    p = to_number(page, 1)
    p = int(p) if isinstance(p, (int, float)) else 1
    p = min(max(1, p), pages)
    start = (p - 1) * per_page
    return {
        "items": list(items[start : start + per_page]),
        "page": p,
        "pages": pages,
        "total": total,
        "per_page": per_page,
    }


def owned_by(doc: Dict[str, Any], user: Optional[Dict[str, Any]]) -> bool:
    if not user:
        return False
    uid = str(user.get("id") or "")
    owner = str(doc.get("userId") or doc.get("createdByUid") or "")
    if uid and owner:
        return owner == uid
    email = normalize(user.get("email"))
    return bool(email) and email == normalize(doc.get("userEmail") or doc.get("createdByEmail"))
