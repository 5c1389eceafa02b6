"""Exception types for the intelligence pipeline."""
from __future__ import annotations

from typing import Any

UNAUTHENTICATED = "unauthenticated"
INVALID_ARGUMENT = "invalid-argument"
RESOURCE_EXHAUSTED = "resource-exhausted"
INTERNAL = "internal"


class ProcedureError(Exception):
    """Caller-facing failure of a remote procedure.

    The message is what the caller sees; internal details belong in the
    server log, not here.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code
        self.message = message

    def to_dict(self) -> dict[str, Any]:
        return {"error": {"code": self.code, "message": self.message}}

    def __repr__(self) -> str:
        return f"ProcedureError({self.code!r}, {self.message!r})"


class StoreError(Exception):
    """The document store could not complete a read or write."""


class AnalysisError(Exception):
    """Fit analysis failed; the caller only ever learns that it failed."""


class CompletionError(AnalysisError):
    """The completion provider call itself failed (auth, timeout, rate limit, empty body)."""


class AnalysisParseError(AnalysisError):
    """The provider answered, but not with a valid analysis document."""

    def __init__(self, message: str, raw: str = "") -> None:
        super().__init__(message)
        self.raw = raw


class JobSearchError(Exception):
    """Base for job-listing search failures."""


class SearchConfigError(JobSearchError):
    """Search credentials are not configured."""


class SearchAPIError(JobSearchError):
    """The listing API answered with a non-success status, or not at all."""

    def __init__(self, message: str, status: int | None = None, body: str = "") -> None:
        super().__init__(message)
        self.status = status
        self.body = body


class IngestionError(Exception):
    """No usable signal could be recovered from a job URL."""
