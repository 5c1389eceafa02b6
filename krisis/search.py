"""JSearch API (RapidAPI): authenticated job-listing search."""
from __future__ import annotations

from typing import Any

import requests

from krisis.config import get_search_api_key
from krisis.errors import SearchAPIError, SearchConfigError
from krisis.log import get_logger

log = get_logger(__name__)

DATE_POSTED_CHOICES: tuple[str, ...] = ("all", "today", "3days", "week", "month")


class JobSearchClient:
    HOST = "jsearch.p.rapidapi.com"
    BASE = f"https://{HOST}"

    def __init__(self, api_key: str | None = None, timeout: float = 15.0, session: requests.Session | None = None) -> None:
        self.api_key: str = api_key if api_key is not None else get_search_api_key()
        self.timeout = timeout
        self.session = session or requests.Session()

    def search(
        self,
        query: str,
        page: int = 1,
        num_pages: int = 1,
        date_posted: str | None = None,
        remote_jobs_only: bool = False,
    ) -> dict[str, Any]:
        """One GET against /search; returns the upstream payload untouched.

        Not retried: a failure is the caller's to handle.
        """
        if not self.api_key:
            log.error("JSEARCH_API_KEY is missing")
            raise SearchConfigError("Server configuration error: JSEARCH_API_KEY not set.")
        if date_posted is not None and date_posted not in DATE_POSTED_CHOICES:
            raise ValueError(f"date_posted must be one of {DATE_POSTED_CHOICES}, got {date_posted!r}")

        params: dict[str, str] = {
            "query": query,
            "page": str(page or 1),
            "num_pages": str(num_pages or 1),
        }
        if date_posted:
            params["date_posted"] = date_posted
        if remote_jobs_only:
            params["remote_jobs_only"] = "true"

        try:
            r = self.session.get(
                f"{self.BASE}/search",
                params=params,
                headers={
                    "X-RapidAPI-Key": self.api_key,
                    "X-RapidAPI-Host": self.HOST,
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            log.error("JSearch request failed query=%r: %s", query, exc)
            raise SearchAPIError(f"JSearch request failed: {exc}") from exc

        if not r.ok:
            if r.status_code == 403:
                log.warning("JSearch 403: check the RapidAPI subscription for this key")
            log.error("JSearch API error status=%d body=%s", r.status_code, r.text[:500])
            raise SearchAPIError(
                f"JSearch API failed: {r.status_code} {r.reason}",
                status=r.status_code,
                body=r.text,
            )

        try:
            data = r.json()
        except ValueError as exc:
            raise SearchAPIError("JSearch returned a non-JSON body", status=r.status_code, body=r.text) from exc
        log.debug("JSearch query=%r page=%s returned %d listings", query, page, len(data.get("data") or []))
        return data


def listings(payload: dict[str, Any]) -> list[dict[str, Any]]:
    return list(payload.get("data") or [])
