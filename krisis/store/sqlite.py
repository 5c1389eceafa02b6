"""SQLite-backed document store.

Each document is a JSON body keyed by (user_id, collection, doc_id).
Transactions take the write lock up front (``BEGIN IMMEDIATE``) so two
read-modify-write calls on the same counter serialize instead of both
reading the old value. Lock contention past the busy timeout surfaces as
``database is locked`` and is retried with backoff.
"""
from __future__ import annotations

import json
import sqlite3
import threading
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Any, Iterable

from krisis.errors import StoreError
from krisis.log import get_logger
from krisis.retry import retry
from krisis.store.base import Document, DocumentStore, Updater

log = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS documents (
    user_id    TEXT NOT NULL,
    collection TEXT NOT NULL,
    doc_id     TEXT NOT NULL,
    body       TEXT NOT NULL,
    updated_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now')),
    PRIMARY KEY (user_id, collection, doc_id)
)
"""

_UPSERT = """
INSERT INTO documents (user_id, collection, doc_id, body)
VALUES (?, ?, ?, ?)
ON CONFLICT (user_id, collection, doc_id)
DO UPDATE SET body = excluded.body,
              updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
"""

_SELECT_ONE = "SELECT body FROM documents WHERE user_id = ? AND collection = ? AND doc_id = ?"


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _dumps(data: Document) -> str:
    return json.dumps(data, default=_json_default, sort_keys=True)


def _is_lock_conflict(exc: BaseException) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


class SqliteStore(DocumentStore):
    def __init__(self, path: str | Path, busy_timeout: float = 15.0) -> None:
        self.path = Path(path)
        self.busy_timeout = busy_timeout
        self._init_lock = threading.Lock()
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.path,
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        return conn

    def _init_schema(self) -> None:
        with self._init_lock:
            conn = self._connect()
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute(_SCHEMA)
            finally:
                conn.close()
        log.debug("SQLite store ready at %s", self.path)

    def get(self, user_id: str, collection: str, doc_id: str) -> Document | None:
        try:
            conn = self._connect()
            try:
                row = conn.execute(_SELECT_ONE, (user_id, collection, doc_id)).fetchone()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"read users/{user_id}/{collection}/{doc_id} failed: {exc}") from exc
        return json.loads(row["body"]) if row else None

    def set(self, user_id: str, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        if not merge:
            self._write(user_id, collection, doc_id, data)
            return

        def _merge(current: Document | None) -> Document:
            merged = dict(current or {})
            merged.update(data)
            return merged

        self.run_transaction(user_id, collection, doc_id, _merge)

    def add(self, user_id: str, collection: str, data: Document) -> str:
        doc_id = uuid.uuid4().hex[:20]
        self._write(user_id, collection, doc_id, data)
        return doc_id

    def query(
        self, user_id: str, collection: str, field: str, values: Iterable[Any]
    ) -> list[tuple[str, Document]]:
        wanted = list(values)
        if not wanted:
            return []
        placeholders = ", ".join("?" for _ in wanted)
        sql = (
            "SELECT doc_id, body FROM documents "
            "WHERE user_id = ? AND collection = ? "
            f"AND json_extract(body, ?) IN ({placeholders}) "
            "ORDER BY doc_id"
        )
        try:
            conn = self._connect()
            try:
                rows = conn.execute(sql, (user_id, collection, f"$.{field}", *wanted)).fetchall()
            finally:
                conn.close()
        except sqlite3.Error as exc:
            raise StoreError(f"query users/{user_id}/{collection} failed: {exc}") from exc
        return [(row["doc_id"], json.loads(row["body"])) for row in rows]

    def run_transaction(self, user_id: str, collection: str, doc_id: str, update: Updater) -> Document | None:
        try:
            return self._transact(user_id, collection, doc_id, update)
        except sqlite3.Error as exc:
            raise StoreError(f"transaction on users/{user_id}/{collection}/{doc_id} failed: {exc}") from exc

    def _write(self, user_id: str, collection: str, doc_id: str, data: Document) -> None:
        try:
            self._upsert(user_id, collection, doc_id, data)
        except sqlite3.Error as exc:
            raise StoreError(f"write users/{user_id}/{collection}/{doc_id} failed: {exc}") from exc

    @retry(max_attempts=3, retryable=(sqlite3.OperationalError,), when=_is_lock_conflict)
    def _upsert(self, user_id: str, collection: str, doc_id: str, data: Document) -> None:
        conn = self._connect()
        try:
            conn.execute(_UPSERT, (user_id, collection, doc_id, _dumps(data)))
        finally:
            conn.close()

    @retry(max_attempts=8, retryable=(sqlite3.OperationalError,), when=_is_lock_conflict)
    def _transact(self, user_id: str, collection: str, doc_id: str, update: Updater) -> Document | None:
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(_SELECT_ONE, (user_id, collection, doc_id)).fetchone()
            updated = update(json.loads(row["body"]) if row else None)
            if updated is None:
                conn.execute("ROLLBACK")
                return None
            conn.execute(_UPSERT, (user_id, collection, doc_id, _dumps(updated)))
            conn.execute("COMMIT")
            return json.loads(_dumps(updated))
        except BaseException:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            raise
        finally:
            conn.close()
