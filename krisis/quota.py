"""Per-user, per-feature daily usage counters."""
from __future__ import annotations

from datetime import datetime

from krisis.log import get_logger
from krisis.models import QuotaCheckResult, QuotaCounter, today_key
from krisis.store.base import Document, DocumentStore

log = get_logger(__name__)

COUNTERS_COLLECTION = "counters"


class QuotaLedger:
    """Check-and-increment over ``users/{uid}/counters/{feature}``.

    The whole read-compare-write runs inside one store transaction, so
    concurrent callers on the same (user, feature) can never push the count
    past the limit. Running out is an ordinary ``allowed=False`` result.
    """

    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def check_and_increment(
        self, user_id: str, feature: str, limit: int, now: datetime | None = None
    ) -> QuotaCheckResult:
        today = today_key(now)
        seen: dict[str, int] = {}

        def _increment(current: Document | None) -> Document | None:
            counter = QuotaCounter.from_dict(current)
            count = counter.effective_count(today)
            seen["count"] = count
            if count + 1 > limit:
                return None
            return QuotaCounter(count=count + 1, date=today).to_dict()

        written = self.store.run_transaction(user_id, COUNTERS_COLLECTION, feature, _increment)
        if written is None:
            log.info("Quota exhausted uid=%s feature=%s (%d/%d on %s)", user_id, feature, seen["count"], limit, today)
            return QuotaCheckResult(allowed=False, count=seen["count"], remaining=0)

        count = int(written["count"])
        log.debug("Quota uid=%s feature=%s now %d/%d", user_id, feature, count, limit)
        return QuotaCheckResult(allowed=True, count=count, remaining=limit - count)

    def usage(self, user_id: str, feature: str, now: datetime | None = None) -> int:
        """Today's count without touching it."""
        counter = QuotaCounter.from_dict(self.store.get(user_id, COUNTERS_COLLECTION, feature))
        return counter.effective_count(today_key(now))
