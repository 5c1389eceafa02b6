"""Load pipeline settings and env configuration."""
from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

from krisis.log import get_logger

log = get_logger(__name__)

load_dotenv()

PROJECT_ROOT: Path = Path(__file__).resolve().parent.parent
CONFIG_DIR: Path = PROJECT_ROOT / "config"
SETTINGS_PATH: Path = CONFIG_DIR / "settings.yaml"
DATA_DIR: Path = PROJECT_ROOT / "data"

FEATURE_ANALYSIS = "dailyAnalysis"
FEATURE_JOB_SEARCH = "dailyJobSearch"

DEFAULT_SETTINGS: dict[str, Any] = {
    "quotas": {
        FEATURE_ANALYSIS: 5,
        FEATURE_JOB_SEARCH: 20,
    },
    "timeouts": {
        "page_fetch": 3.0,
        "search": 15.0,
        "completion": 30.0,
    },
    "store": {
        "backend": "sqlite",
        "path": str(DATA_DIR / "krisis.db"),
    },
    "llm": {
        "base_url": "https://api.groq.com/openai/v1",
        "model": "llama-3.3-70b-versatile",
        "temperature": 0.4,
    },
}


def _merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _merge(base[key], value)
        else:
            base[key] = value
    return base


def load_settings(path: Path | None = None) -> dict[str, Any]:
    """Defaults, overlaid with settings.yaml (if any), then env overrides."""
    settings = copy.deepcopy(DEFAULT_SETTINGS)
    path = path or SETTINGS_PATH
    if path.exists():
        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"{path.name} must contain a mapping, got {type(data).__name__}")
        _merge(settings, data)
        log.debug("Loaded settings overrides from %s", path.name)

    if get_env("KRISIS_STORE"):
        settings["store"]["backend"] = get_env("KRISIS_STORE").lower()
    if get_env("KRISIS_DB_PATH"):
        settings["store"]["path"] = get_env("KRISIS_DB_PATH")
    if get_env("LLM_BASE_URL"):
        settings["llm"]["base_url"] = get_env("LLM_BASE_URL")
    if get_env("GROQ_LLM_MODEL"):
        settings["llm"]["model"] = get_env("GROQ_LLM_MODEL")
    return settings


def quota_limit(settings: dict[str, Any], feature: str) -> int:
    return int(settings["quotas"][feature])


def get_env(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def get_search_api_key() -> str:
    # RAPIDAPI_KEY is the name the hosted functions were deployed with
    return get_env("JSEARCH_API_KEY") or get_env("RAPIDAPI_KEY")


def ensure_dirs() -> None:
    for d in (DATA_DIR, CONFIG_DIR):
        d.mkdir(parents=True, exist_ok=True)
