from __future__ import annotations

import logging
import os
from typing import Any, Dict, List, Optional

import firebase_admin
from firebase_admin import credentials, firestore
from google.api_core import exceptions as gexc
from google.cloud.firestore import FieldFilter

from services.datastore.base import SERVER_TIMESTAMP, DocumentStore, StoreError

logger = logging.getLogger(__name__)

FIREBASE_CREDENTIALS = os.getenv("FIREBASE_CREDENTIALS", "").strip()
FIREBASE_PROJECT_ID = os.getenv("FIREBASE_PROJECT_ID", "").strip()


def _resolve(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return firestore.SERVER_TIMESTAMP
    if isinstance(value, dict):
        return {k: _resolve(v) for k, v in value.items()}
    return value


def init_client():
    """Initialise the default Firebase app once and return a Firestore client."""
    try:
        app = firebase_admin.get_app()
    except ValueError:
        cred = credentials.Certificate(FIREBASE_CREDENTIALS) if FIREBASE_CREDENTIALS else None
        options = {"projectId": FIREBASE_PROJECT_ID} if FIREBASE_PROJECT_ID else None
        app = firebase_admin.initialize_app(cred, options)
        logger.info("Firebase app initialised (project=%s)", app.project_id)
    return firestore.client(app)


class FirestoreStore(DocumentStore):
    def __init__(self, client=None):
        self.db = client or init_client()

    def _wrap(self, action: str, collection: str, exc: Exception) -> StoreError:
        logger.error("Firestore %s on %s failed: %s", action, collection, exc)
        return StoreError(f"Database error while trying to {action} {collection}")

    def add(self, collection: str, data: Dict[str, Any]) -> str:
        clean = {k: _resolve(v) for k, v in data.items() if k != "id"}
        try:
            _, ref = self.db.collection(collection).add(clean)
        except gexc.GoogleAPIError as exc:
            raise self._wrap("add to", collection, exc) from exc
        return ref.id

    def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        try:
            snap = self.db.collection(collection).document(str(doc_id)).get()
        except gexc.GoogleAPIError as exc:
            raise self._wrap("read", collection, exc) from exc
        if not snap.exists:
            return None
        return {**(snap.to_dict() or {}), "id": snap.id}

    def set(self, collection: str, doc_id: str, data: Dict[str, Any]) -> None:
        clean = {k: _resolve(v) for k, v in data.items() if k != "id"}
        try:
            self.db.collection(collection).document(str(doc_id)).set(clean)
        except gexc.GoogleAPIError as exc:
            raise self._wrap("write", collection, exc) from exc

    def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        clean = {k: _resolve(v) for k, v in fields.items() if k != "id"}
        try:
            self.db.collection(collection).document(str(doc_id)).update(clean)
        except gexc.NotFound as exc:
            raise KeyError(doc_id) from exc
        except gexc.GoogleAPIError as exc:
            raise self._wrap("update", collection, exc) from exc

    def delete(self, collection: str, doc_id: str) -> bool:
        ref = self.db.collection(collection).document(str(doc_id))
        try:
            if not ref.get().exists:
                return False
            ref.delete()
        except gexc.GoogleAPIError as exc:
            raise self._wrap("delete from", collection, exc) from exc
        return True

    def list(self, collection: str, where: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        query = self.db.collection(collection)
        for field, value in (where or {}).items():
            query = query.where(filter=FieldFilter(field, "==", value))
        try:
            return [{**(d.to_dict() or {}), "id": d.id} for d in query.stream()]
        except gexc.GoogleAPIError as exc:
            raise self._wrap("list", collection, exc) from exc
