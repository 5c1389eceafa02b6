"""Authenticated remote procedures fronting the intelligence pipeline.

Every procedure takes a ``CallRequest`` and either returns a JSON-ready dict
or raises ``ProcedureError``. Internal failures are logged with the acting
user and the relevant input, then reported to the caller opaquely.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from krisis.brief import BriefGenerator
from krisis.config import FEATURE_ANALYSIS, FEATURE_JOB_SEARCH, load_settings, quota_limit
from krisis.errors import (
    INTERNAL,
    INVALID_ARGUMENT,
    RESOURCE_EXHAUSTED,
    UNAUTHENTICATED,
    AnalysisError,
    JobSearchError,
    ProcedureError,
    StoreError,
)
from krisis.ingest import IngestionResolver
from krisis.log import for_user, get_logger
from krisis.models import utcnow
from krisis.quota import QuotaLedger
from krisis.scoring import FitScorer
from krisis.search import DATE_POSTED_CHOICES, JobSearchClient
from krisis.store import DocumentStore, get_store

log = get_logger(__name__)

ANALYSES_COLLECTION = "analyses"
APPLICATIONS_COLLECTION = "applications"
SNIPPET_LEN = 200


@dataclass
class CallRequest:
    uid: str | None
    data: dict[str, Any] = field(default_factory=dict)


def assert_authenticated(request: CallRequest) -> str:
    if not request.uid:
        raise ProcedureError(UNAUTHENTICATED, "You must be logged in to access this resource.")
    return request.uid


def _text_arg(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if isinstance(value, str) and value.strip():
        return value
    return None


class Procedures:
    def __init__(
        self,
        store: DocumentStore,
        scorer: FitScorer,
        search_client: JobSearchClient,
        resolver: IngestionResolver,
        settings: dict[str, Any],
    ) -> None:
        self.store = store
        self.ledger = QuotaLedger(store)
        self.scorer = scorer
        self.search_client = search_client
        self.resolver = resolver
        self.brief = BriefGenerator(store)
        self.settings = settings

    def _charge(self, uid: str, feature: str, label: str) -> None:
        ulog = for_user(log, uid)
        limit = quota_limit(self.settings, feature)
        try:
            result = self.ledger.check_and_increment(uid, feature, limit)
        except StoreError as exc:
            ulog.error("Quota transaction failed feature=%s: %s", feature, exc)
            raise ProcedureError(INTERNAL, "Failed to verify quota.") from exc
        if not result.allowed:
            raise ProcedureError(RESOURCE_EXHAUSTED, f"Daily {label} quota exceeded ({limit}/day).")

    def analyze_resume(self, request: CallRequest) -> dict[str, Any]:
        uid = assert_authenticated(request)
        ulog = for_user(log, uid)
        data = request.data or {}
        resume_text = _text_arg(data, "resumeText")
        job_description = _text_arg(data, "jobDescription")
        if resume_text is None or job_description is None:
            raise ProcedureError(INVALID_ARGUMENT, "Missing resumeText or jobDescription")
        application_id = _text_arg(data, "applicationId")

        self._charge(uid, FEATURE_ANALYSIS, "analysis")

        try:
            result = self.scorer.analyze(resume_text, job_description)
        except AnalysisError as exc:
            ulog.error("Analysis failed (%s): %s", type(exc).__name__, exc)
            raise ProcedureError(INTERNAL, "AI Analysis failed to complete.") from exc

        try:
            analysis_id = self.store.add(uid, ANALYSES_COLLECTION, {
                **result.to_dict(),
                "jobDescriptionSnippet": job_description[:SNIPPET_LEN],
                "applicationId": application_id,
                "createdAt": utcnow(),
                "model": self.scorer.model,
            })
            if application_id:
                self._attach_analysis(uid, application_id, analysis_id, result.to_dict())
        except StoreError as exc:
            ulog.error("Saving analysis failed: %s", exc)
            raise ProcedureError(INTERNAL, "AI Analysis failed to complete.") from exc

        ulog.info("Analysis %s stored (fit=%s)", analysis_id, result.fit_score)
        return {"success": True, "analysisId": analysis_id, "data": result.to_dict()}

    def _attach_analysis(self, uid: str, application_id: str, analysis_id: str, analysis: dict[str, Any]) -> None:
        if self.store.get(uid, APPLICATIONS_COLLECTION, application_id) is None:
            for_user(log, uid).warning("Application %s not found; analysis %s kept in log only",
                                       application_id, analysis_id)
            return
        self.store.set(uid, APPLICATIONS_COLLECTION, application_id, {
            "latestAnalysis": analysis,
            "lastAnalysisId": analysis_id,
        }, merge=True)

    def ingest_job_url(self, request: CallRequest) -> dict[str, Any]:
        uid = assert_authenticated(request)
        url = _text_arg(request.data or {}, "url")
        if url is None:
            raise ProcedureError(INVALID_ARGUMENT, "URL is required for ingestion.")

        ulog = for_user(log, uid)
        ulog.info("Starting job ingestion url=%s", url)
        draft = self.resolver.ingest(url.strip())
        if draft.degraded:
            ulog.warning("Ingestion of %s degraded: %s", url, draft.error or "listing not indexed")
        return {"success": True, "data": draft.to_dict()}

    def search_jobs(self, request: CallRequest) -> dict[str, Any]:
        uid = assert_authenticated(request)
        data = request.data or {}
        query = _text_arg(data, "query")
        if query is None:
            raise ProcedureError(INVALID_ARGUMENT, "Query is required")
        page = data.get("page")
        if page is None:
            page = 1
        if isinstance(page, bool) or not isinstance(page, int) or page < 1:
            raise ProcedureError(INVALID_ARGUMENT, "page must be a positive integer")
        date_posted = data.get("date_posted") or None
        if date_posted is not None and date_posted not in DATE_POSTED_CHOICES:
            raise ProcedureError(INVALID_ARGUMENT, f"date_posted must be one of {', '.join(DATE_POSTED_CHOICES)}")
        remote_only = bool(data.get("remote_jobs_only", False))

        self._charge(uid, FEATURE_JOB_SEARCH, "job search")

        try:
            return self.search_client.search(
                query, page=page, date_posted=date_posted, remote_jobs_only=remote_only,
            )
        except JobSearchError as exc:
            for_user(log, uid).error("Job search failed query=%r: %s", query, exc)
            raise ProcedureError(INTERNAL, "Job search failed.") from exc

    def generate_daily_tactical_brief(self, request: CallRequest, now: datetime | None = None) -> dict[str, Any]:
        uid = assert_authenticated(request)
        try:
            return self.brief.generate(uid, now=now)
        except StoreError as exc:
            for_user(log, uid).error("Tactical brief generation failed: %s", exc)
            raise ProcedureError(INTERNAL, "Failed to generate tactical brief.") from exc

    def registry(self) -> dict[str, Callable[[CallRequest], dict[str, Any]]]:
        """Procedures by their remote names."""
        return {
            "analyzeResume": self.analyze_resume,
            "ingestJobUrl": self.ingest_job_url,
            "searchJobs": self.search_jobs,
            "generateDailyTacticalBrief": self.generate_daily_tactical_brief,
        }


def get_procedures(settings: dict[str, Any] | None = None) -> Procedures:
    settings = settings or load_settings()
    timeouts = settings["timeouts"]
    store = get_store(settings)
    search_client = JobSearchClient(timeout=float(timeouts["search"]))
    return Procedures(
        store=store,
        scorer=FitScorer.from_settings(settings),
        search_client=search_client,
        resolver=IngestionResolver(search_client, fetch_timeout=float(timeouts["page_fetch"])),
        settings=settings,
    )
