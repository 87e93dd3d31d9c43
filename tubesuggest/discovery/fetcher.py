"""
Bounded-concurrency fetching of topic and channel sources.

A fixed pool of workers drains a queue of SourceDescriptors. The first
result that reports quota_exceeded stops every worker from starting
another fetch; fetches already in flight finish and are kept.
"""
import asyncio
import logging
from datetime import datetime
from typing import Optional

from ..errors import ValidationError
from .models import (
    FetchResult,
    FetchRunResult,
    RatingExclusions,
    SourceDescriptor,
    SourceKind,
    Topic,
    TrackedChannel,
)
from .providers import VideoSearchProvider

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 3
DEFAULT_TOPIC_MAX_RESULTS = 25
DEFAULT_CHANNEL_MAX_RESULTS = 50


def build_sources(
    topics: list[Topic],
    channels: list[TrackedChannel],
    exclusions: Optional[RatingExclusions] = None,
) -> list[SourceDescriptor]:
    """One descriptor per topic and per tracked channel.

    Channels the user rated 1 star are dropped here so no quota is spent
    on them.
    """
    excluded = exclusions.excluded_channel_ids if exclusions else frozenset()
    sources = [SourceDescriptor.for_topic(t) for t in topics]
    for channel in channels:
        if channel.channel_id in excluded:
            logger.debug("Skipping excluded channel %s", channel.channel_id)
            continue
        sources.append(SourceDescriptor.for_channel(channel))
    return sources


class SourceFetcher:
    """Runs provider searches for many sources under a worker pool."""

    def __init__(
        self,
        provider: VideoSearchProvider,
        concurrency: int = DEFAULT_CONCURRENCY,
        topic_max_results: int = DEFAULT_TOPIC_MAX_RESULTS,
        channel_max_results: int = DEFAULT_CHANNEL_MAX_RESULTS,
    ):
        if concurrency < 1:
            raise ValueError(f"concurrency must be at least 1, got {concurrency}")
        for name, value in (
            ("topic_max_results", topic_max_results),
            ("channel_max_results", channel_max_results),
        ):
            if value < 1:
                raise ValidationError(f"{name} must be positive, got {value}")
        self.provider = provider
        self.concurrency = concurrency
        self.topic_max_results = topic_max_results
        self.channel_max_results = channel_max_results

    async def fetch(
        self,
        source: SourceDescriptor,
        published_after: Optional[datetime],
        max_results: Optional[int] = None,
    ) -> FetchResult:
        """Fetch one source. Provider faults become failed results."""
        if max_results is not None and max_results < 1:
            raise ValidationError(f"max_results must be positive, got {max_results}")
        try:
            if source.kind == SourceKind.TOPIC:
                result = await self.provider.search_by_topic(
                    source.label,
                    published_after,
                    max_results or self.topic_max_results,
                )
            else:
                result = await self.provider.search_by_channel(
                    source.key,
                    max_results or self.channel_max_results,
                    source.published_after or published_after,
                )
        except Exception as e:
            logger.warning("Fetch failed for %s: %s", source.describe(), e)
            result = FetchResult.failure(str(e) or type(e).__name__)

        result.source = source
        if not result.success and not result.quota_exceeded:
            logger.warning("Source %s failed: %s", source.describe(), result.error)
        return result

    async def fetch_all(
        self,
        sources: list[SourceDescriptor],
        published_after: Optional[datetime],
    ) -> FetchRunResult:
        """Fetch every source, stopping new work once the quota runs out.

        Returns:
            FetchRunResult with results in completion order, the quota flag,
            and the sources that were never started.
        """
        run = FetchRunResult()
        if not sources:
            return run

        queue: asyncio.Queue = asyncio.Queue()
        for source in sources:
            queue.put_nowait(source)

        quota_hit = asyncio.Event()
        collector_lock = asyncio.Lock()

        async def worker() -> None:
            while True:
                try:
                    source = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                if quota_hit.is_set():
                    run.skipped.append(source)
                    continue

                result = await self.fetch(source, published_after)
                async with collector_lock:
                    run.results.append(result)

                if result.quota_exceeded and not quota_hit.is_set():
                    logger.warning(
                        "YouTube quota exceeded while fetching %s; "
                        "cancelling remaining sources",
                        source.describe(),
                    )
                    quota_hit.set()

        pool_size = min(self.concurrency, len(sources))
        await asyncio.gather(*(worker() for _ in range(pool_size)))

        run.quota_exceeded = quota_hit.is_set()
        logger.info(
            "Fetched %d/%d sources (%d failed, %d skipped%s)",
            len(run.results),
            len(sources),
            len(run.failed),
            len(run.skipped),
            ", quota exceeded" if run.quota_exceeded else "",
        )
        return run
