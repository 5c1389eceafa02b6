"""
Shared fixtures: stores, a fixed clock, and stand-ins for the network clients.
"""
import copy
import json
import os
from datetime import datetime, timezone

import pytest

os.environ.setdefault("KRISIS_LOG_FILE", "false")

from krisis.config import DEFAULT_SETTINGS
from krisis.scoring import FitScorer
from krisis.store import MemoryStore, SqliteStore

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)

VALID_ANALYSIS = {
    "fitScore": 82,
    "matchAnalysis": "Strong backend overlap; no Kubernetes in production.",
    "missingKeywords": ["Kubernetes", "Terraform"],
    "suggestedImprovements": ["Quantify the latency work", "Add an infra project"],
    "ghostingRisk": 35,
    "tacticalSignal": "Reach out to the hiring manager directly this week.",
    "urgencyLevel": 4,
}


class FakeSearchClient:
    """Records calls; returns a canned payload or raises a canned error."""

    def __init__(self, payload=None, error=None):
        self.payload = payload if payload is not None else {"status": "OK", "data": []}
        self.error = error
        self.calls = []

    def search(self, query, page=1, num_pages=1, date_posted=None, remote_jobs_only=False):
        self.calls.append({
            "query": query,
            "page": page,
            "num_pages": num_pages,
            "date_posted": date_posted,
            "remote_jobs_only": remote_jobs_only,
        })
        if self.error is not None:
            raise self.error
        return self.payload


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def sqlite_store(tmp_path):
    return SqliteStore(tmp_path / "krisis.db")


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, tmp_path):
    if request.param == "memory":
        return MemoryStore()
    return SqliteStore(tmp_path / "krisis.db")


@pytest.fixture
def settings():
    s = copy.deepcopy(DEFAULT_SETTINGS)
    s["store"]["backend"] = "memory"
    return s


@pytest.fixture
def valid_analysis():
    return copy.deepcopy(VALID_ANALYSIS)


@pytest.fixture
def stub_scorer():
    """FitScorer whose completion call returns VALID_ANALYSIS and counts calls."""
    calls = []

    def complete(prompt):
        calls.append(prompt)
        return json.dumps(VALID_ANALYSIS)

    scorer = FitScorer(api_key="test", model="test-model", complete=complete)
    scorer.calls = calls
    return scorer


@pytest.fixture
def listing():
    return {
        "job_id": "abc123",
        "employer_name": "Acme Robotics",
        "employer_logo": "https://logo.example.com/acme.png",
        "job_title": "Senior Data Engineer",
        "job_description": "Build pipelines.",
        "job_apply_link": "https://acme.example.com/apply/123",
        "job_city": "Berlin",
        "job_country": "DE",
        "job_posted_at_datetime_utc": "2026-10-15T09:00:00.000Z",
    }
