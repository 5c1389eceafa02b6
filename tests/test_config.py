"""Tests for settings loading and env overrides."""
import pytest

from krisis.config import (
    DEFAULT_SETTINGS,
    FEATURE_ANALYSIS,
    FEATURE_JOB_SEARCH,
    get_search_api_key,
    load_settings,
    quota_limit,
)

ENV_KEYS = ("KRISIS_STORE", "KRISIS_DB_PATH", "LLM_BASE_URL", "GROQ_LLM_MODEL")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


def test_defaults_when_file_missing(tmp_path):
    settings = load_settings(tmp_path / "absent.yaml")

    assert settings == DEFAULT_SETTINGS
    assert settings is not DEFAULT_SETTINGS
    assert quota_limit(settings, FEATURE_ANALYSIS) == 5
    assert quota_limit(settings, FEATURE_JOB_SEARCH) == 20


def test_yaml_overlays_nested_keys(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("quotas:\n  dailyAnalysis: 10\ntimeouts:\n  search: 5\n")

    settings = load_settings(path)

    assert quota_limit(settings, FEATURE_ANALYSIS) == 10
    assert quota_limit(settings, FEATURE_JOB_SEARCH) == 20
    assert settings["timeouts"]["search"] == 5
    assert settings["timeouts"]["page_fetch"] == 3.0


def test_empty_yaml_is_defaults(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("# nothing set\n")

    assert load_settings(path) == DEFAULT_SETTINGS


def test_non_mapping_yaml_rejected(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        load_settings(path)


def test_env_overrides_win(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text("store:\n  backend: sqlite\nllm:\n  model: from-yaml\n")
    monkeypatch.setenv("KRISIS_STORE", "Memory")
    monkeypatch.setenv("GROQ_LLM_MODEL", "from-env")
    monkeypatch.setenv("LLM_BASE_URL", "http://localhost:11434/v1")

    settings = load_settings(path)

    assert settings["store"]["backend"] == "memory"
    assert settings["llm"]["model"] == "from-env"
    assert settings["llm"]["base_url"] == "http://localhost:11434/v1"


def test_search_key_prefers_jsearch_name(monkeypatch):
    monkeypatch.setenv("JSEARCH_API_KEY", " primary ")
    monkeypatch.setenv("RAPIDAPI_KEY", "legacy")

    assert get_search_api_key() == "primary"
