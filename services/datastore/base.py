from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional


class _ServerTimestamp:
    """Placeholder resolved by each backend to its own notion of 'now'."""

    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


class StoreError(RuntimeError):
    pass


def now_iso() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat() + "Z"


def new_id(prefix: str = "") -> str:
    token = uuid.uuid4().hex[:20]
    return f"{prefix}_{token}" if prefix else token


def get_path(doc: Dict[str, Any], field: str) -> Any:
    """Read a possibly dotted field ("passenger.passport") from a document."""
    cur: Any = doc
    for part in field.split("."):
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def matches(doc: Dict[str, Any], where: Optional[Dict[str, Any]]) -> bool:
    if not where:
        return True
    return all(get_path(doc, k) == v for k, v in where.items())


class DocumentStore:
    """Minimal document-database surface the features rely on.

    Documents are plain dicts. Every document returned carries its id under
    ``"id"``; the id is never persisted as a field.
    """

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        raise NotImplementedError

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        raise NotImplementedError

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        raise NotImplementedError

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        raise NotImplementedError

    def delete(self, collection: str, doc_id: str) -> bool:
        raise NotImplementedError

    def list(self, collection: str, where: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        raise NotImplementedError
