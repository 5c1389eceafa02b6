from pathlib import Path

from .base import DocumentStore
from .memory import MemoryStore
from .sqlite import SqliteStore

from krisis.config import PROJECT_ROOT
from krisis.log import get_logger

log = get_logger(__name__)

__all__ = ["DocumentStore", "MemoryStore", "SqliteStore", "get_store"]


def get_store(settings: dict) -> DocumentStore:
    cfg = settings.get("store", {})
    backend = str(cfg.get("backend", "sqlite")).lower()

    if backend == "memory":
        log.info("Using in-memory document store (data is lost on exit)")
        return MemoryStore()

    if backend == "sqlite":
        path = Path(cfg.get("path") or "data/krisis.db")
        if not path.is_absolute():
            path = PROJECT_ROOT / path
        log.info("Using SQLite document store at %s", path)
        return SqliteStore(path)

    raise ValueError(f"Unknown store backend: {backend!r}. Use 'sqlite' or 'memory'")
