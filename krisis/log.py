"""Logging setup for the pipeline, stdlib only.

Handlers are attached to the root logger on first use: stdout at
``LOG_LEVEL`` and, unless ``KRISIS_LOG_FILE`` is falsy, a daily DEBUG file
under ``logs/``.
"""
from __future__ import annotations

import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, MutableMapping

_LOG_DIR = Path(__file__).resolve().parent.parent / "logs"
_FORMAT = "%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"
_DATE_FMT = "%Y-%m-%d %H:%M:%S"
_configured = False


def get_logger(name: str) -> logging.Logger:
    """Return a named logger; configures root handlers on first call."""
    global _configured
    if not _configured:
        _configure()
        _configured = True
    return logging.getLogger(name)


class UserLogAdapter(logging.LoggerAdapter):
    """Prefixes every record with the acting user id."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> tuple[Any, MutableMapping[str, Any]]:
        return f"[uid={self.extra['uid']}] {msg}", kwargs


def for_user(logger: logging.Logger, uid: str | None) -> UserLogAdapter:
    return UserLogAdapter(logger, {"uid": uid or "-"})


def _file_logging_enabled() -> bool:
    return os.environ.get("KRISIS_LOG_FILE", "true").strip().lower() not in ("0", "false", "no")


def _configure() -> None:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = getattr(logging, level_name, logging.INFO)

    root = logging.getLogger()
    root.setLevel(level)

    if root.handlers:
        return

    formatter = logging.Formatter(_FORMAT, datefmt=_DATE_FMT)
    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    root.addHandler(console)

    if not _file_logging_enabled():
        return

    try:
        _LOG_DIR.mkdir(parents=True, exist_ok=True)
        log_file = _LOG_DIR / f"krisis_{datetime.now().strftime('%Y-%m-%d')}.log"
        fh = logging.FileHandler(log_file, encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(formatter)
        root.addHandler(fh)
    except OSError:
        pass
