"""Turn an arbitrary job-posting URL into a draft application record.

Resolution order:

1. ``<title>`` of the page itself (short, hard deadline; many boards block it).
2. Slug of a recognized job-board URL shape.
3. Last meaningful path segment of any URL.

The first usable query is looked up in the job-listing search. A hit is
taken as the canonical listing; no hit gives a degraded draft the user
completes by hand; any failure gives a minimal draft built from the URL.
``IngestionResolver.ingest`` never raises.
"""
from __future__ import annotations

import html
import re
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime, timezone
from typing import Any, Callable, Optional, Sequence
from urllib.parse import unquote, urlparse

import requests

from krisis.errors import IngestionError
from krisis.log import get_logger
from krisis.models import IngestedJobDraft
from krisis.search import JobSearchClient, listings

log = get_logger(__name__)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)

UNKNOWN_COMPANY = "Unknown (New Listing)"
IMPORTED_COMPANY = "Imported Job"
DEFAULT_ROLE = "New Application"

_MAX_PAGE_BYTES = 512 * 1024
_READ_CHUNK = 1024
_MIN_TITLE_LEN = 5
_BOARD_SLUG_MAX = 50

_TITLE_RE = re.compile(r"<title[^>]*>([^<]*)</title>", re.IGNORECASE)
_BOARD_SUFFIX_RE = re.compile(
    r"\s*[|\-–]\s*(?:LinkedIn|Indeed(?:\.com)?|Glassdoor)\s*$|\s+-\s+Job.*$",
    re.IGNORECASE,
)
_AUTH_WALL_RE = re.compile(
    r"\b(?:auth|authwall|authentication|log ?in|sign ?in|sign ?up)\b",
    re.IGNORECASE,
)

# (hostname fragment, slug pattern)
BOARD_SLUG_PATTERNS: tuple[tuple[str, re.Pattern], ...] = (
    ("linkedin", re.compile(r"linkedin\.com/jobs/view/([^/?#]+)", re.IGNORECASE)),
    ("glassdoor", re.compile(r"/job-listing/([^/?#]+?)(?:\.htm)?(?:[?#]|$)", re.IGNORECASE)),
)

PageFetcher = Callable[[str], Optional[str]]
QueryStrategy = Callable[[str, PageFetcher], Optional[str]]


def _humanize(segment: str) -> str:
    return re.sub(r"\s+", " ", re.sub(r"[-_]+", " ", unquote(segment))).strip()


def clean_title(raw: str) -> str | None:
    """Normalize a page title; None when it is an auth wall or too short to search on."""
    title = re.sub(r"\s+", " ", html.unescape(raw)).strip()
    title = _BOARD_SUFFIX_RE.sub("", title).strip()
    if len(title) <= _MIN_TITLE_LEN or _AUTH_WALL_RE.search(title):
        return None
    return title


def extract_title(page: str) -> str | None:
    match = _TITLE_RE.search(page)
    return match.group(1) if match else None


def query_from_page_title(url: str, fetch_page: PageFetcher) -> str | None:
    page = fetch_page(url)
    if not page:
        return None
    raw = extract_title(page)
    if raw is None:
        return None
    title = clean_title(raw)
    if title is None:
        log.debug("Rejected page title %r for %s", raw.strip()[:80], url)
    return title


def query_from_board_slug(url: str, fetch_page: PageFetcher) -> str | None:
    try:
        host = (urlparse(url).hostname or "").lower()
    except ValueError:
        return None
    for fragment, pattern in BOARD_SLUG_PATTERNS:
        if fragment not in host:
            continue
        match = pattern.search(url)
        if match:
            slug = _humanize(match.group(1))[:_BOARD_SLUG_MAX].strip()
            return slug or None
    return None


def query_from_path(url: str, fetch_page: PageFetcher) -> str | None:
    try:
        path = urlparse(url).path
    except ValueError:
        return None
    segments = [s for s in path.split("/") if len(s) > 3]
    if not segments:
        return None
    slug = re.sub(r"\.html?$", "", segments[-1], flags=re.IGNORECASE)
    return _humanize(slug) or None


DEFAULT_STRATEGIES: tuple[QueryStrategy, ...] = (
    query_from_page_title,
    query_from_board_slug,
    query_from_path,
)


def best_search_query(
    url: str, fetch_page: PageFetcher, strategies: Sequence[QueryStrategy] = DEFAULT_STRATEGIES
) -> str | None:
    """First non-empty answer from the ordered strategies."""
    for strategy in strategies:
        query = strategy(url, fetch_page)
        if query:
            log.debug("Query for %s from %s: %r", url, strategy.__name__, query)
            return query
    return None


def slug_from_url(url: Any) -> str | None:
    """Last path segment longer than two characters, dashes as spaces."""
    try:
        segments = [s for s in urlparse(str(url)).path.split("/") if len(s) > 2]
    except ValueError:
        return None
    if not segments:
        return None
    return unquote(segments[-1]).replace("-", " ").strip() or None


def page_encoding(r: requests.Response) -> str:
    """Declared charset, else UTF-8.

    requests reports ISO-8859-1 for any text/* response without a charset,
    which garbles non-ASCII titles.
    """
    content_type = r.headers.get("Content-Type") or ""
    if "charset=" in content_type.lower() and r.encoding:
        return r.encoding
    return "utf-8"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def draft_from_listing(hit: dict[str, Any]) -> IngestedJobDraft:
    city = hit.get("job_city") or ""
    country = hit.get("job_country") or ""
    location = f"{city}, {country}" if city and country else (city or country)
    return IngestedJobDraft(
        company=hit.get("employer_name") or "",
        role=hit.get("job_title") or "",
        description=hit.get("job_description") or "",
        apply_link=hit.get("job_apply_link") or "",
        location=location,
        logo=hit.get("employer_logo"),
        posted_at=hit.get("job_posted_at_datetime_utc"),
    )


def degraded_draft(url: str, query: str) -> IngestedJobDraft:
    return IngestedJobDraft(
        company=UNKNOWN_COMPANY,
        role=query,
        description=(
            f"Imported from URL: {url}\n\n"
            "Job details not yet indexed in global database. "
            "Please copy/paste description manually."
        ),
        apply_link=url,
        location="Remote/Unknown",
        logo=None,
        posted_at=_now_iso(),
        fallback_used=True,
    )


def error_draft(url: Any, message: str) -> IngestedJobDraft:
    return IngestedJobDraft(
        company=IMPORTED_COMPANY,
        role=slug_from_url(url) or DEFAULT_ROLE,
        description=f"Imported from URL: {url}\n\nAutomatic extraction failed.",
        apply_link=str(url),
        location="",
        logo=None,
        posted_at=_now_iso(),
        error=message or "Automatic extraction failed.",
    )


class IngestionResolver:
    def __init__(
        self,
        search_client: JobSearchClient,
        fetch_timeout: float = 3.0,
        session: requests.Session | None = None,
        strategies: Sequence[QueryStrategy] = DEFAULT_STRATEGIES,
    ) -> None:
        self.search_client = search_client
        self.fetch_timeout = fetch_timeout
        self.session = session or requests.Session()
        self.strategies = tuple(strategies)

    def fetch_page(self, url: str) -> str | None:
        """Read the page head within ``fetch_timeout`` seconds of wall-clock time.

        The read runs on a worker thread; when the deadline passes the
        response is closed and None is returned, however slowly the server
        is still sending. Any other failure also returns None.
        """
        opened: dict[str, requests.Response] = {}
        pool = ThreadPoolExecutor(max_workers=1)
        future = pool.submit(self._read_head, url, time.monotonic() + self.fetch_timeout, opened)
        try:
            return future.result(timeout=self.fetch_timeout)
        except FutureTimeout:
            log.warning("Title fetch passed %.1fs for %s, falling back to URL parsing", self.fetch_timeout, url)
            if "response" in opened:
                opened["response"].close()
            return None
        except (requests.RequestException, ValueError, LookupError) as exc:
            log.warning("Title fetch failed for %s (%s), falling back to URL parsing", url, exc)
            return None
        finally:
            pool.shutdown(wait=False)

    def _read_head(self, url: str, deadline: float, opened: dict[str, requests.Response]) -> str | None:
        with self.session.get(
            url,
            headers={"User-Agent": BROWSER_USER_AGENT, "Accept": "text/html,*/*;q=0.8"},
            timeout=self.fetch_timeout,
            stream=True,
            allow_redirects=True,
        ) as r:
            opened["response"] = r
            if not r.ok:
                log.warning("Title fetch got HTTP %d for %s, falling back to URL parsing", r.status_code, url)
                return None
            buf = bytearray()
            for chunk in r.iter_content(chunk_size=_READ_CHUNK):
                # overlap so a tag split across chunks is still seen
                scan_from = max(0, len(buf) - 8)
                buf.extend(chunk)
                if b"</title>" in bytes(buf[scan_from:]).lower() or len(buf) >= _MAX_PAGE_BYTES:
                    break
                if time.monotonic() > deadline:
                    return None
            return bytes(buf).decode(page_encoding(r), errors="replace")

    def _resolve(self, url: str) -> IngestedJobDraft:
        query = best_search_query(url, self.fetch_page, self.strategies)
        if not query:
            raise IngestionError("Could not extract meaningful keywords from URL.")

        log.info("Ingesting %s via search: %r", url, query)
        hits = listings(self.search_client.search(query, page=1, num_pages=1))
        if not hits:
            log.warning("No search results for %r (url=%s), returning placeholder draft", query, url)
            return degraded_draft(url, query)

        return draft_from_listing(hits[0])

    def ingest(self, url: str) -> IngestedJobDraft:
        try:
            return self._resolve(url)
        except Exception as exc:
            log.error("Job ingestion failed url=%s: %s: %s", url, type(exc).__name__, exc)
            return error_draft(url, str(exc))
