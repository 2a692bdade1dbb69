from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from services.datastore.base import DocumentStore

logger = logging.getLogger(__name__)

ROOT_DIR = Path(__file__).resolve().parents[2]

_store: Optional[DocumentStore] = None


def _build_store() -> DocumentStore:
    backend = (os.getenv("DATASTORE_BACKEND") or "json").strip().lower()
    if backend == "firestore":
        from services.datastore.firestore.service import FirestoreStore

        logger.info("Using Firestore datastore")
        return FirestoreStore()

    from services.datastore.json_files.service import JsonStore

    data_dir = os.getenv("DATA_DIR") or str(ROOT_DIR / "data")
    logger.info("Using JSON datastore at %s", data_dir)
    return JsonStore(data_dir)


def get_store() -> DocumentStore:
    global _store
    if _store is None:
        _store = _build_store()
    return _store


def use_store(store: Optional[DocumentStore]) -> None:
    """Replace the process-wide store (``None`` rebuilds it from the environment)."""
    global _store
    _store = store
