"""
Suggestion pipeline orchestrator.

Combines the user's topics, tracked channels and ratings with YouTube
search into one ranked suggestion list.
"""
import logging
import time
from datetime import datetime, timedelta, timezone
from typing import Optional

import numpy as np

from ..errors import AccessError, ValidationError
from .aggregator import SuggestionAggregator
from .fetcher import SourceFetcher, build_sources
from .models import (
    RunStatus,
    SourceKind,
    Suggestion,
    SuggestionRun,
    Topic,
    TrackedChannel,
)
from .providers import ChannelProvider, TopicProvider
from .quota import QuotaTracker, next_quota_reset
from .ratings import RatingIndex
from .youtube_search import YouTubeSearchProvider

logger = logging.getLogger(__name__)

DEFAULT_LOOKBACK_DAYS = 30


def _score_stats(suggestions: list[Suggestion]) -> tuple[float, dict[str, int]]:
    """Average score and a per-integer-bucket distribution ("7-8": n)."""
    if not suggestions:
        return 0.0, {}
    scores = np.array([s.relevance_score for s in suggestions], dtype=float)
    buckets, counts = np.unique(np.floor(scores).astype(int), return_counts=True)
    distribution = {
        f"{b}-{b + 1}": int(c) for b, c in zip(buckets.tolist(), counts.tolist())
    }
    return round(float(scores.mean()), 3), distribution


def _validate_id(value, what: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid {what}: {value!r}")
    return value


class SuggestionPipeline:
    """Orchestrates one suggestion run for a user."""

    def __init__(
        self,
        topics: TopicProvider,
        channels: ChannelProvider,
        rating_index: RatingIndex,
        fetcher: SourceFetcher,
        aggregator: SuggestionAggregator,
        lookback_days: int = DEFAULT_LOOKBACK_DAYS,
        max_suggestions: Optional[int] = None,
    ):
        self.topics = topics
        self.channels = channels
        self.rating_index = rating_index
        self.fetcher = fetcher
        self.aggregator = aggregator
        self.lookback_days = lookback_days
        self.max_suggestions = max_suggestions

    async def run(
        self,
        user_id: str,
        topic_ids: Optional[list[str]] = None,
        include_channels: bool = True,
        now: Optional[datetime] = None,
    ) -> SuggestionRun:
        """Run the full suggestion pipeline.

        Steps:
            1. Validate the request and load topics and tracked channels
            2. Build rating exclusions once for the run
            3. Fetch every topic and non-excluded channel concurrently
            4. Score, deduplicate and rank the candidates

        Args:
            user_id: The requesting user.
            topic_ids: Restrict the run to these topics (must be the user's).
            include_channels: Also fetch the user's tracked channels.
            now: Clock override for the lookback window and quota reset.

        Returns:
            SuggestionRun with the ordered suggestions and the run status.

        Raises:
            ValidationError: Blank user id or topic id.
            AccessError: A requested topic is not owned by the user. Skipped
                when the topic store fails; that run comes back PARTIAL.
        """
        started = time.perf_counter()
        now = now or datetime.now(timezone.utc)
        _validate_id(user_id, "user id")
        if topic_ids is not None:
            for topic_id in topic_ids:
                _validate_id(topic_id, "topic id")

        failed_sources: list[str] = []

        # 1. Topics and channels
        topics = self._load_topics(user_id, failed_sources)
        # ownership cannot be checked when the topic store is unavailable
        if topic_ids is not None and "topics" not in failed_sources:
            owned = {t.topic_id for t in topics}
            foreign = [t for t in topic_ids if t not in owned]
            if foreign:
                raise AccessError(
                    f"Topic(s) {', '.join(foreign)} not found for user {user_id}"
                )
            wanted = set(topic_ids)
            topics = [t for t in topics if t.topic_id in wanted]

        channels = (
            self._load_channels(user_id, failed_sources) if include_channels else []
        )

        # 2. Ratings
        exclusions = self.rating_index.build_exclusions(user_id)

        # 3. Fetch
        sources = build_sources(topics, channels, exclusions)
        published_after = now - timedelta(days=self.lookback_days)
        logger.info(
            "Fetching %d sources for user %s (%d topics, %d channels)",
            len(sources), user_id, len(topics), len(sources) - len(topics),
        )
        fetch_run = await self.fetcher.fetch_all(sources, published_after)
        failed_sources.extend(
            r.source.describe() for r in fetch_run.failed
            if r.source is not None and not r.quota_exceeded
        )

        # 4. Aggregate
        aggregation = self.aggregator.aggregate_with_stats(
            user_id, fetch_run.results, topics, exclusions
        )
        suggestions = aggregation.suggestions
        if self.max_suggestions is not None:
            suggestions = suggestions[: self.max_suggestions]

        if fetch_run.quota_exceeded:
            status = RunStatus.PARTIAL_QUOTA
        elif failed_sources:
            status = RunStatus.PARTIAL
        else:
            status = RunStatus.COMPLETE

        average, distribution = _score_stats(suggestions)
        run = SuggestionRun(
            user_id=user_id,
            suggestions=suggestions,
            status=status,
            quota_exceeded=fetch_run.quota_exceeded,
            retry_after=next_quota_reset(now) if fetch_run.quota_exceeded else None,
            failed_sources=failed_sources,
            skipped_sources=[s.describe() for s in fetch_run.skipped],
            fetched_channel_ids=[
                r.source.key for r in fetch_run.results
                if r.success and r.source is not None
                and r.source.kind == SourceKind.CHANNEL
            ],
            topic_candidates=aggregation.topic_candidates,
            channel_candidates=aggregation.channel_candidates,
            excluded_count=aggregation.excluded_count,
            duplicates_merged=aggregation.duplicates_merged,
            average_score=average,
            score_distribution=distribution,
            processing_seconds=round(time.perf_counter() - started, 3),
        )
        logger.info("Run for user %s finished: %s", user_id, run.summary_message())
        return run

    def _load_topics(self, user_id: str, failed_sources: list[str]) -> list[Topic]:
        try:
            return list(self.topics.get_user_topics(user_id))
        except Exception as e:
            logger.error("Failed to load topics for user %s: %s", user_id, e)
            failed_sources.append("topics")
            return []

    def _load_channels(
        self, user_id: str, failed_sources: list[str]
    ) -> list[TrackedChannel]:
        try:
            return list(self.channels.get_tracked_channels(user_id))
        except Exception as e:
            logger.error("Failed to load tracked channels for user %s: %s", user_id, e)
            failed_sources.append("channels")
            return []


def build_pipeline(config, db, quota: QuotaTracker) -> tuple[SuggestionPipeline, YouTubeSearchProvider]:
    """Wire the pipeline from configuration and a connected Database.

    The caller owns the returned provider and must close it.
    """
    provider = YouTubeSearchProvider(
        api_key=config.require_api_key(),
        quota=quota,
        timeout=config.request_timeout,
    )
    rating_index = RatingIndex(db)
    pipeline = SuggestionPipeline(
        topics=db,
        channels=db,
        rating_index=rating_index,
        fetcher=SourceFetcher(
            provider,
            concurrency=config.fetch_concurrency,
            topic_max_results=config.topic_max_results,
            channel_max_results=config.channel_max_results,
        ),
        aggregator=SuggestionAggregator(rating_index),
        lookback_days=config.lookback_days,
        max_suggestions=config.max_suggestions if config.max_suggestions > 0 else None,
    )
    return pipeline, provider
