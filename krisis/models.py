"""Data models for application records, analyses, quotas and briefs."""
from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any

# Canonical status vocabulary written by the record layer.
STATUS_APPLIED = "Applied"
STATUS_PHONE_SCREEN = "Phone Screen"
STATUS_TECHNICAL_INTERVIEW = "Technical Interview"
STATUS_FINAL_ROUND = "Final Round"
STATUS_OFFER = "Offer"
STATUS_REJECTED = "Rejected"

RECORD_STATUSES: tuple[str, ...] = (
    STATUS_APPLIED,
    STATUS_PHONE_SCREEN,
    STATUS_TECHNICAL_INTERVIEW,
    STATUS_FINAL_ROUND,
    STATUS_OFFER,
    STATUS_REJECTED,
)

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_CRITICAL = "critical"

RISK_LEVELS: tuple[str, ...] = (RISK_LOW, RISK_MEDIUM, RISK_HIGH, RISK_CRITICAL)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def today_key(now: datetime | None = None) -> str:
    """Day key (YYYY-MM-DD, UTC) used for quota counters."""
    return (now or utcnow()).astimezone(timezone.utc).strftime("%Y-%m-%d")


def parse_timestamp(value: Any) -> datetime | None:
    """Coerce a stored date/timestamp into an aware UTC datetime.

    Bare ``YYYY-MM-DD`` strings are taken as midnight UTC.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _require_number(data: dict[str, Any], key: str, low: float, high: float) -> float:
    value = data.get(key)
    if not _is_number(value):
        raise ValueError(f"{key} must be a number, got {value!r}")
    if not low <= value <= high:
        raise ValueError(f"{key}={value} outside [{low:g}, {high:g}]")
    return value


def _require_text(data: dict[str, Any], key: str) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string, got {type(value).__name__}")
    return value


def _require_text_list(data: dict[str, Any], key: str) -> tuple[str, ...]:
    value = data.get(key)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{key} must be a list of strings")
    return tuple(value)


@dataclass(frozen=True)
class AnalysisResult:
    fit_score: float
    match_analysis: str
    missing_keywords: tuple[str, ...]
    suggested_improvements: tuple[str, ...]
    ghosting_risk: float
    tactical_signal: str
    urgency_level: int

    @classmethod
    def from_dict(cls, data: Any) -> "AnalysisResult":
        """Validate a decoded analysis document; raises ValueError on any mismatch."""
        if not isinstance(data, dict):
            raise ValueError(f"analysis must be an object, got {type(data).__name__}")
        urgency = _require_number(data, "urgencyLevel", 1, 5)
        if urgency != int(urgency):
            raise ValueError(f"urgencyLevel must be a whole number, got {urgency}")
        return cls(
            fit_score=_require_number(data, "fitScore", 0, 100),
            match_analysis=_require_text(data, "matchAnalysis"),
            missing_keywords=_require_text_list(data, "missingKeywords"),
            suggested_improvements=_require_text_list(data, "suggestedImprovements"),
            ghosting_risk=_require_number(data, "ghostingRisk", 0, 100),
            tactical_signal=_require_text(data, "tacticalSignal"),
            urgency_level=int(urgency),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "fitScore": self.fit_score,
            "matchAnalysis": self.match_analysis,
            "missingKeywords": list(self.missing_keywords),
            "suggestedImprovements": list(self.suggested_improvements),
            "ghostingRisk": self.ghosting_risk,
            "tacticalSignal": self.tactical_signal,
            "urgencyLevel": self.urgency_level,
        }


@dataclass
class ApplicationRecord:
    id: str
    company: str
    role: str
    status: str
    date_applied: str
    last_updated: datetime | None = None
    visa_sponsorship: bool = False
    latest_analysis: AnalysisResult | None = None
    ai_urgency: int | None = None

    @classmethod
    def from_dict(cls, doc_id: str, data: dict[str, Any]) -> "ApplicationRecord":
        latest: AnalysisResult | None = None
        raw_latest = data.get("latestAnalysis")
        if isinstance(raw_latest, dict):
            try:
                latest = AnalysisResult.from_dict(raw_latest)
            except ValueError:
                latest = None

        # Older records carry the AI signal flat on the document; unset or
        # out-of-range values mean no signal.
        ai_urgency: int | None = None
        if latest is not None:
            ai_urgency = latest.urgency_level
        elif _is_number(data.get("urgencyLevel")) and 1 <= data["urgencyLevel"] <= 5:
            ai_urgency = int(data["urgencyLevel"])

        return cls(
            id=doc_id,
            company=str(data.get("company", "")),
            role=str(data.get("role", "")),
            status=str(data.get("status", "")),
            date_applied=str(data.get("dateApplied", "")),
            last_updated=parse_timestamp(data.get("lastUpdated")),
            visa_sponsorship=bool(data.get("visaSponsorship", False)),
            latest_analysis=latest,
            ai_urgency=ai_urgency,
        )

    def last_activity(self) -> datetime:
        """When the record last moved: lastUpdated, else the application date."""
        if self.last_updated is not None:
            return self.last_updated
        applied = parse_timestamp(self.date_applied)
        if applied is None:
            raise ValueError(f"Application {self.id} has no dateApplied")
        return applied


@dataclass
class QuotaCounter:
    count: int = 0
    date: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "QuotaCounter":
        if not data:
            return cls()
        return cls(count=int(data.get("count", 0)), date=str(data.get("date", "")))

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "date": self.date}

    def effective_count(self, today: str) -> int:
        """A counter from an earlier day counts as zero."""
        return self.count if self.date == today else 0


@dataclass
class QuotaCheckResult:
    allowed: bool
    count: int
    remaining: int


@dataclass
class TacticalItem:
    application_id: str
    company: str
    role: str
    action: str
    urgency: int
    risk_level: str
    days_since_activity: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "applicationId": self.application_id,
            "company": self.company,
            "role": self.role,
            "action": self.action,
            "urgency": self.urgency,
            "riskLevel": self.risk_level,
            "daysSinceActivity": self.days_since_activity,
        }


@dataclass
class IngestedJobDraft:
    company: str
    role: str
    description: str
    apply_link: str
    location: str = ""
    logo: str | None = None
    posted_at: str | None = None
    inferred_from_url: bool = True
    fallback_used: bool = False
    error: str | None = None

    @property
    def degraded(self) -> bool:
        return self.fallback_used or self.error is not None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "company": self.company,
            "role": self.role,
            "description": self.description,
            "apply_link": self.apply_link,
            "location": self.location,
            "logo": self.logo,
            "posted_at": self.posted_at,
            "inferred_from_url": self.inferred_from_url,
        }
        if self.fallback_used:
            payload["fallback_used"] = True
        if self.error is not None:
            payload["error"] = self.error
        return payload
