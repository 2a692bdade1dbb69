from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from services.datastore.base import (
    SERVER_TIMESTAMP,
    DocumentStore,
    StoreError,
    matches,
    new_id,
    now_iso,
)

logger = logging.getLogger(__name__)


def _resolve(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return now_iso()
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    return value


class JsonStore(DocumentStore):
    """One JSON file per collection under ``data_dir`` (``<collection>.json``)."""

    def __init__(self, data_dir: Path | str):
        self.data_dir = Path(data_dir)
        self._lock = threading.RLock()

    # ---------- Storage ----------
    def _path(self, collection: str) -> Path:
        safe = "".join(ch for ch in collection if ch.isalnum() or ch in "_-")
        if not safe:
            raise StoreError(f"Invalid collection name: {collection!r}")
        return self.data_dir / f"{safe}.json"

    def _load(self, collection: str) -> Dict[str, Dict[str, Any]]:
        path = self._path(collection)
        if not path.exists():
            return {}
        try:
            raw = path.read_text(encoding="utf-8")
            data = json.loads(raw) if raw.strip() else {}
        except (OSError, ValueError) as exc:
            logger.error("Could not read %s: %s", path, exc)
            raise StoreError(f"Could not read collection {collection}") from exc
        return data if isinstance(data, dict) else {}

    def _save(self, collection: str, docs: Dict[str, Dict[str, Any]]) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)
        path = self._path(collection)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(docs, ensure_ascii=False, indent=2, default=str), encoding="utf-8")
        tmp.replace(path)

    # ---------- DocumentStore ----------
    def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = new_id()
        self.set(collection, doc_id, data)
        return doc_id

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            doc = self._load(collection).get(str(doc_id))
        if doc is None:
            return None
        return {**doc, "id": str(doc_id)}

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        clean = {k: _resolve(v) for k, v in data.items() if k != "id"}
        with self._lock:
            docs = self._load(collection)
            docs[str(doc_id)] = clean
            self._save(collection, docs)

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            docs = self._load(collection)
            doc = docs.get(str(doc_id))
            if doc is None:
                raise KeyError(doc_id)
            for key, value in fields.items():
                if key == "id":
                    continue
                # Dotted keys update nested maps, as Firestore does.
                parts = key.split(".")
                target = doc
                for part in parts[:-1]:
                    nxt = target.get(part)
                    if not isinstance(nxt, dict):
                        nxt = {}
                        target[part] = nxt
                    target = nxt
                target[parts[-1]] = _resolve(value)
            self._save(collection, docs)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            docs = self._load(collection)
            if str(doc_id) not in docs:
                return False
            docs.pop(str(doc_id))
            self._save(collection, docs)
        return True

    def list(self, collection: str, where: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        with self._lock:
            docs = self._load(collection)
        out = []
        for doc_id, doc in docs.items():
            if not isinstance(doc, dict):
                continue
            item = {**doc, "id": doc_id}
            if matches(item, where):
                out.append(item)
        return out
