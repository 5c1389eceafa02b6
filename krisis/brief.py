"""Daily tactical brief: what to do next on each active application."""
from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from krisis.log import get_logger
from krisis.models import (
    RISK_CRITICAL,
    RISK_HIGH,
    RISK_LOW,
    RISK_MEDIUM,
    STATUS_APPLIED,
    STATUS_OFFER,
    ApplicationRecord,
    TacticalItem,
    utcnow,
)
from krisis.store.base import DocumentStore

log = get_logger(__name__)

APPLICATIONS_COLLECTION = "applications"

# NOTE: the record layer writes "Phone Screen" / "Technical Interview" /
# "Final Round", none of which appear here, so records in those stages are
# not picked up by the brief. Left as-is until the vocabularies are unified.
STATUS_INTERVIEW = "Interview"
STATUS_SCREENING = "Screening"

ACTIVE_STATUSES: tuple[str, ...] = (STATUS_APPLIED, STATUS_INTERVIEW, STATUS_SCREENING, STATUS_OFFER)
INTERVIEW_STATUSES: tuple[str, ...] = (STATUS_INTERVIEW, STATUS_SCREENING)

ACTION_MONITOR = "monitor status"
ACTION_FOLLOW_UP = "send first follow-up"
ACTION_CONSIDER_ARCHIVE = "consider archiving"
ACTION_ARCHIVE_GHOSTED = "archive as ghosted"
ACTION_CHECK_IN = "send post-interview check-in"
ACTION_PREP = "prepare tactical notes"
ACTION_NEGOTIATE = "review terms and negotiate"

FOLLOW_UP_AFTER_DAYS = 7
STALE_AFTER_DAYS = 14
GHOSTED_AFTER_DAYS = 30
INTERVIEW_CHECK_IN_AFTER_DAYS = 3

MIN_URGENCY = 1
MAX_URGENCY = 5


def days_since(moment: datetime, now: datetime) -> int:
    """Whole days elapsed, never negative."""
    return max(0, math.floor((now - moment).total_seconds() / 86400))


def merge_urgency(rule_urgency: int, ai_urgency: int) -> int:
    """Ceiling of the mean of the two signals, kept within 1..5."""
    merged = math.ceil((rule_urgency + ai_urgency) / 2)
    return min(MAX_URGENCY, max(MIN_URGENCY, merged))


def assess(record: ApplicationRecord, now: datetime) -> TacticalItem:
    days = days_since(record.last_activity(), now)
    status = record.status

    urgency = 1
    risk = RISK_LOW
    action = ACTION_MONITOR

    # Rules run in order; a later match overrides an earlier one.
    if status == STATUS_APPLIED:
        if days > STALE_AFTER_DAYS:
            risk, urgency, action = RISK_HIGH, 2, ACTION_CONSIDER_ARCHIVE
        elif days > FOLLOW_UP_AFTER_DAYS:
            risk, urgency, action = RISK_MEDIUM, 3, ACTION_FOLLOW_UP

    if status in INTERVIEW_STATUSES:
        urgency = 5
        risk = RISK_LOW
        if days > INTERVIEW_CHECK_IN_AFTER_DAYS:
            risk, action = RISK_MEDIUM, ACTION_CHECK_IN
        else:
            action = ACTION_PREP

    if status == STATUS_OFFER:
        urgency = 5
        action = ACTION_NEGOTIATE

    if status == STATUS_APPLIED and days > GHOSTED_AFTER_DAYS:
        risk, urgency, action = RISK_CRITICAL, 1, ACTION_ARCHIVE_GHOSTED

    if record.ai_urgency is not None:
        urgency = merge_urgency(urgency, record.ai_urgency)

    return TacticalItem(
        application_id=record.id,
        company=record.company,
        role=record.role,
        action=action,
        urgency=urgency,
        risk_level=risk,
        days_since_activity=days,
    )


def prioritize(items: list[TacticalItem]) -> list[TacticalItem]:
    """Most urgent first; within a tier, the longest-neglected first."""
    return sorted(items, key=lambda i: (-i.urgency, -i.days_since_activity))


class BriefGenerator:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def generate(self, user_id: str, now: datetime | None = None) -> dict[str, Any]:
        now = now or utcnow()
        docs = self.store.query(user_id, APPLICATIONS_COLLECTION, "status", ACTIVE_STATUSES)
        items: list[TacticalItem] = []
        for doc_id, data in docs:
            try:
                items.append(assess(ApplicationRecord.from_dict(doc_id, data), now))
            except ValueError as exc:
                log.warning("Skipping application %s in brief for uid=%s: %s", doc_id, user_id, exc)

        ordered = prioritize(items)
        log.info("Tactical brief uid=%s: %d active item(s)", user_id, len(ordered))
        return {
            "date": now.isoformat(),
            "items": [item.to_dict() for item in ordered],
            "totalActive": len(ordered),
        }
