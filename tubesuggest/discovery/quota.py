"""
YouTube Data API quota accounting.

The API grants a daily unit budget that resets at midnight UTC. search.list
costs 100 units per call; videos.list costs 1 unit per batch of 50 ids.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional

logger = logging.getLogger(__name__)

SEARCH_COST = 100
VIDEO_DETAILS_COST = 1
VIDEO_DETAILS_BATCH = 50
DEFAULT_DAILY_LIMIT = 10_000
WARNING_RATIO = 0.8


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def next_quota_reset(now: Optional[datetime] = None) -> datetime:
    """Return the next midnight UTC after `now`."""
    now = now or _utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    today = now.astimezone(timezone.utc).date()
    return datetime.combine(today + timedelta(days=1), time.min, tzinfo=timezone.utc)


def video_details_cost(video_count: int) -> int:
    """Units needed to fetch statistics for `video_count` videos."""
    batches = max(1, math.ceil(video_count / VIDEO_DETAILS_BATCH))
    return batches * VIDEO_DETAILS_COST


def estimate_run_cost(topic_count: int, channel_count: int, estimated_videos: int = 100) -> int:
    """Rough unit cost of a suggestion run: one search per source plus details."""
    return (topic_count + channel_count) * SEARCH_COST + video_details_cost(estimated_videos)


@dataclass
class QuotaStatus:
    daily_limit: int
    used: int
    reset_at: datetime
    calls_by_operation: dict[str, int] = field(default_factory=dict)

    @property
    def remaining(self) -> int:
        return max(0, self.daily_limit - self.used)

    @property
    def is_exhausted(self) -> bool:
        return self.used >= self.daily_limit

    @property
    def usage_percentage(self) -> float:
        if self.daily_limit <= 0:
            return 100.0
        return min(100.0, self.used / self.daily_limit * 100)


class QuotaTracker:
    """Tracks units spent against the daily budget."""

    def __init__(
        self,
        daily_limit: int = DEFAULT_DAILY_LIMIT,
        used: int = 0,
        day: Optional[date] = None,
    ):
        self.daily_limit = daily_limit
        self.used = used
        self.day = day or _utcnow().date()
        self.calls_by_operation: dict[str, int] = {}
        self._warned = False

    def _roll_over(self, now: Optional[datetime]) -> None:
        now = now or _utcnow()
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        today = now.astimezone(timezone.utc).date()
        if today != self.day:
            logger.info(
                "Daily quota reset. Previous usage: %d/%d", self.used, self.daily_limit
            )
            self.day = today
            self.used = 0
            self.calls_by_operation.clear()
            self._warned = False

    def can_spend(self, units: int, now: Optional[datetime] = None) -> bool:
        """Whether `units` more would stay within today's budget."""
        self._roll_over(now)
        available = self.used + units <= self.daily_limit
        if not available:
            logger.warning(
                "Quota check failed: required %d, used %d, limit %d",
                units, self.used, self.daily_limit,
            )
        return available

    def record(self, units: int, operation: str, now: Optional[datetime] = None) -> None:
        """Record units spent by one API call."""
        self._roll_over(now)
        self.used += units
        self.calls_by_operation[operation] = self.calls_by_operation.get(operation, 0) + 1
        logger.debug(
            "Quota recorded: %d units for %s, total %d/%d",
            units, operation, self.used, self.daily_limit,
        )
        if not self._warned and self.used >= self.daily_limit * WARNING_RATIO:
            self._warned = True
            logger.warning(
                "YouTube quota usage at %d/%d units", self.used, self.daily_limit
            )

    def try_reserve(self, units: int, operation: str, now: Optional[datetime] = None) -> bool:
        """Check and record in one step; False (nothing recorded) if over budget.

        Must be called before the request is awaited so concurrent callers
        cannot all pass the check against the same remaining units.
        """
        if not self.can_spend(units, now):
            return False
        self.record(units, operation, now)
        return True

    def mark_exhausted(self, now: Optional[datetime] = None) -> None:
        """Provider said the quota is gone; stop spending until the reset."""
        self._roll_over(now)
        self.used = max(self.used, self.daily_limit)

    def status(self, now: Optional[datetime] = None) -> QuotaStatus:
        self._roll_over(now)
        return QuotaStatus(
            daily_limit=self.daily_limit,
            used=self.used,
            reset_at=next_quota_reset(now),
            calls_by_operation=dict(self.calls_by_operation),
        )
