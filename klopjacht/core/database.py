"""
database.py — In-Memory Document Store
=======================================
Thread-safe collections of documents (plain dicts).
Every app goes through this single store; reads hand out deep copies,
so a document only changes when it is written back.

`modify()` is the atomic read-modify-write primitive: the callback sees
the current document under the store lock and either returns the new
document, returns None to leave it untouched, or raises.
"""

from __future__ import annotations

import copy
import threading
from collections.abc import Callable
from datetime import datetime, timezone

Filter = Callable[[dict], bool]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class InMemoryDB:
    """Thread-safe in-memory document store with collections."""

    def __init__(self):
        self._lock = threading.RLock()
        self._collections: dict[str, dict[str, dict]] = {}

    # ── Collection CRUD ──────────────────────────────

    def insert(self, collection: str, id: str, data: dict) -> dict:
        """Insert a document. An existing document with the same id is replaced."""
        with self._lock:
            coll = self._collections.setdefault(collection, {})
            created = coll.get(id, {}).get("_created_at", _now())
            record = {
                **copy.deepcopy(data),
                "_id": id,
                "_created_at": created,
                "_updated_at": _now(),
            }
            coll[id] = record
            return copy.deepcopy(record)

    def get(self, collection: str, id: str) -> dict | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(id)
            return copy.deepcopy(doc) if doc is not None else None

    def modify(self, collection: str, id: str, fn: Callable[[dict], dict | None]) -> dict | None:
        """
        Atomic read-modify-write of one document.

        Returns the stored document, or None when the document does not
        exist or `fn` declined the write.
        """
        with self._lock:
            coll = self._collections.get(collection, {})
            if id not in coll:
                return None
            updated = fn(copy.deepcopy(coll[id]))
            if updated is None:
                return None
            coll[id] = {
                **updated,
                "_id": id,
                "_created_at": coll[id].get("_created_at"),
                "_updated_at": _now(),
            }
            return copy.deepcopy(coll[id])

    def update_many(self, collection: str, filter_fn: Filter, data: dict) -> int:
        """Merge `data` into every matching document. Returns the match count."""
        with self._lock:
            coll = self._collections.get(collection, {})
            matched = [doc_id for doc_id, doc in coll.items() if filter_fn(doc)]
            for doc_id in matched:
                coll[doc_id] = {
                    **coll[doc_id],
                    **copy.deepcopy(data),
                    "_updated_at": _now(),
                }
            return len(matched)

    def delete(self, collection: str, id: str) -> bool:
        with self._lock:
            coll = self._collections.get(collection, {})
            if id in coll:
                del coll[id]
                return True
            return False

    def delete_many(self, collection: str, filter_fn: Filter) -> int:
        with self._lock:
            coll = self._collections.get(collection, {})
            matched = [doc_id for doc_id, doc in coll.items() if filter_fn(doc)]
            for doc_id in matched:
                del coll[doc_id]
            return len(matched)

    def find_one(self, collection: str, filter_fn: Filter) -> dict | None:
        with self._lock:
            for doc in self._collections.get(collection, {}).values():
                if filter_fn(doc):
                    return copy.deepcopy(doc)
            return None

    def list(self, collection: str, filter_fn: Filter | None = None) -> list[dict]:
        """All documents in a collection, optionally filtered."""
        with self._lock:
            records = list(self._collections.get(collection, {}).values())
            if filter_fn:
                records = [r for r in records if filter_fn(r)]
            return copy.deepcopy(records)

    def count(self, collection: str, filter_fn: Filter | None = None) -> int:
        with self._lock:
            coll = self._collections.get(collection, {})
            if filter_fn is None:
                return len(coll)
            return sum(1 for doc in coll.values() if filter_fn(doc))

    def clear(self, collection: str | None = None):
        """Drop one collection, or the whole store when None."""
        with self._lock:
            if collection:
                self._collections.pop(collection, None)
            else:
                self._collections.clear()


# ── Singleton Instance ───────────────────────────────

db = InMemoryDB()


# ── Collection names ─────────────────────────────────

GAMES = "games"
PLAYERS = "players"
