"""In-process document store guarded by a single mutex."""
from __future__ import annotations

import copy
import threading
import uuid
from typing import Any, Iterable

from krisis.store.base import Document, DocumentStore, Updater


class MemoryStore(DocumentStore):
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._docs: dict[tuple[str, str], dict[str, Document]] = {}

    def _collection(self, user_id: str, collection: str) -> dict[str, Document]:
        return self._docs.setdefault((user_id, collection), {})

    def get(self, user_id: str, collection: str, doc_id: str) -> Document | None:
        with self._lock:
            doc = self._collection(user_id, collection).get(doc_id)
            return copy.deepcopy(doc)

    def set(self, user_id: str, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        with self._lock:
            docs = self._collection(user_id, collection)
            if merge and doc_id in docs:
                docs[doc_id].update(copy.deepcopy(data))
            else:
                docs[doc_id] = copy.deepcopy(data)

    def add(self, user_id: str, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self.set(user_id, collection, doc_id, data)
        return doc_id

    def query(
        self, user_id: str, collection: str, field: str, values: Iterable[Any]
    ) -> list[tuple[str, Document]]:
        wanted = list(values)
        with self._lock:
            docs = self._collection(user_id, collection)
            return [
                (doc_id, copy.deepcopy(doc))
                for doc_id, doc in docs.items()
                if doc.get(field) in wanted
            ]

    def run_transaction(self, user_id: str, collection: str, doc_id: str, update: Updater) -> Document | None:
        with self._lock:
            docs = self._collection(user_id, collection)
            updated = update(copy.deepcopy(docs.get(doc_id)))
            if updated is None:
                return None
            docs[doc_id] = copy.deepcopy(updated)
            return copy.deepcopy(updated)
