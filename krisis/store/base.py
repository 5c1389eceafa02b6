from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, Optional

Document = dict[str, Any]
Updater = Callable[[Optional[Document]], Optional[Document]]


class DocumentStore(ABC):
    """Per-user document collections with an atomic read-modify-write.

    Documents are addressed as ``users/{user_id}/{collection}/{doc_id}``.
    """

    @abstractmethod
    def get(self, user_id: str, collection: str, doc_id: str) -> Document | None:
        pass

    @abstractmethod
    def set(self, user_id: str, collection: str, doc_id: str, data: Document, merge: bool = False) -> None:
        pass

    @abstractmethod
    def add(self, user_id: str, collection: str, data: Document) -> str:
        """Insert under a generated id and return it."""

    @abstractmethod
    def query(
        self, user_id: str, collection: str, field: str, values: Iterable[Any]
    ) -> list[tuple[str, Document]]:
        """Documents whose top-level ``field`` equals one of ``values``."""

    @abstractmethod
    def run_transaction(self, user_id: str, collection: str, doc_id: str, update: Updater) -> Document | None:
        """Atomically read one document and hand it to ``update``.

        A dict returned by ``update`` replaces the document; ``None`` aborts
        with nothing written. Returns what was written. ``update`` may run
        more than once when the backend retries a write conflict, so it must
        depend only on its argument.
        """
