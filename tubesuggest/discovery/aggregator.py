"""
Merge fetch results into one ranked, deduplicated suggestion list.

Ordering is recomputed from the full candidate set, so it does not depend
on the order in which fetches completed:
  relevance score desc, then published date desc, then video id.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from ..errors import InternalScoringError
from .models import (
    MAX_SCORE,
    MIN_SCORE,
    AggregationResult,
    FetchResult,
    RatingExclusions,
    RelevanceResult,
    SourceKind,
    Suggestion,
    SuggestionSource,
    Topic,
    VideoCandidate,
    tier_for_score,
)
from .ratings import RatingIndex
from .relevance import NEUTRAL_RESULT, score_relevance

logger = logging.getLogger(__name__)

ScoreFn = Callable[[Topic, VideoCandidate], RelevanceResult]

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class _MergedEntry:
    candidate: VideoCandidate
    score: float
    keywords: set[str] = field(default_factory=set)
    topics: set[str] = field(default_factory=set)
    via_topic: bool = False
    via_channel: bool = False

    def source(self) -> SuggestionSource:
        if self.via_topic and self.via_channel:
            return SuggestionSource.BOTH
        if self.via_channel:
            return SuggestionSource.TRACKED_CHANNEL
        return SuggestionSource.TOPIC_SEARCH


def _sort_key(suggestion: Suggestion):
    published = suggestion.published_at or _OLDEST
    if published.tzinfo is None:
        published = published.replace(tzinfo=timezone.utc)
    return (-suggestion.relevance_score, -published.timestamp(), suggestion.video_id)


class SuggestionAggregator:
    """Filters, scores, deduplicates, sorts and tiers fetched candidates."""

    def __init__(
        self,
        rating_index: Optional[RatingIndex] = None,
        score_fn: ScoreFn = score_relevance,
    ):
        self.rating_index = rating_index
        self.score_fn = score_fn

    def aggregate(
        self,
        user_id: str,
        fetch_results: list[FetchResult],
        topics: list[Topic],
        exclusions: Optional[RatingExclusions] = None,
    ) -> list[Suggestion]:
        """Return the ordered suggestion list for a user."""
        return self.aggregate_with_stats(
            user_id, fetch_results, topics, exclusions
        ).suggestions

    def aggregate_with_stats(
        self,
        user_id: str,
        fetch_results: list[FetchResult],
        topics: list[Topic],
        exclusions: Optional[RatingExclusions] = None,
    ) -> AggregationResult:
        """Aggregate and also report counts and per-candidate errors.

        Args:
            user_id: The requesting user.
            fetch_results: Results from SourceFetcher, in any order.
            topics: The user's topics; topic-sourced results are scored
                against the topic their descriptor names.
            exclusions: Precomputed rating exclusions. Built from the
                rating index when omitted.
        """
        if exclusions is None:
            exclusions = (
                self.rating_index.build_exclusions(user_id)
                if self.rating_index is not None
                else RatingExclusions()
            )

        topics_by_id = {t.topic_id: t for t in topics}
        result = AggregationResult()
        merged: dict[str, _MergedEntry] = {}

        for fetch_result in fetch_results:
            source = fetch_result.source
            topic = None
            if source is not None and source.kind == SourceKind.TOPIC:
                topic = topics_by_id.get(source.key)
                if topic is None:
                    logger.warning(
                        "Topic %s not in the user's topic list; scoring against '%s'",
                        source.key, source.label,
                    )
                    topic = Topic(topic_id=source.key, name=source.label)

            for candidate in fetch_result.candidates:
                if topic is not None:
                    result.topic_candidates += 1
                else:
                    result.channel_candidates += 1

                try:
                    if exclusions.excludes(candidate):
                        result.excluded_count += 1
                        continue
                    relevance = (
                        self._score(topic, candidate, result)
                        if topic is not None
                        else NEUTRAL_RESULT
                    )
                    if self._merge(merged, candidate, relevance, topic):
                        result.duplicates_merged += 1
                except Exception as e:
                    video_id = getattr(candidate, "video_id", "") or ""
                    logger.error("Dropping candidate %s: %s", video_id or "<unknown>", e)
                    result.errors.append(
                        InternalScoringError(f"Merge failed: {e}", video_id=video_id)
                    )

        keyed = []
        for video_id, entry in merged.items():
            try:
                suggestion = self._finalize(entry, exclusions)
                keyed.append((_sort_key(suggestion), suggestion))
            except Exception as e:
                logger.error("Dropping candidate %s: %s", video_id, e)
                result.errors.append(
                    InternalScoringError(f"Finalize failed: {e}", video_id=video_id)
                )

        keyed.sort(key=lambda pair: pair[0])
        suggestions = [suggestion for _, suggestion in keyed]
        result.suggestions = suggestions

        logger.info(
            "Aggregated %d suggestions for user %s "
            "(%d topic / %d channel candidates, %d excluded, %d duplicates, %d errors)",
            len(suggestions),
            user_id,
            result.topic_candidates,
            result.channel_candidates,
            result.excluded_count,
            result.duplicates_merged,
            len(result.errors),
        )
        return result

    def _score(
        self, topic: Topic, candidate: VideoCandidate, result: AggregationResult
    ) -> RelevanceResult:
        """Score one pair, falling back to the neutral result on any fault."""
        try:
            return self.score_fn(topic, candidate)
        except Exception as e:
            logger.warning(
                "Scoring failed for video %s / topic '%s': %s",
                candidate.video_id, topic.name, e,
            )
            result.errors.append(
                InternalScoringError(f"Scoring failed: {e}", video_id=candidate.video_id)
            )
            return NEUTRAL_RESULT

    @staticmethod
    def _merge(
        merged: dict[str, _MergedEntry],
        candidate: VideoCandidate,
        relevance: RelevanceResult,
        topic: Optional[Topic],
    ) -> bool:
        """Fold one scored candidate into the map. Returns True on a duplicate."""
        if not candidate.video_id:
            raise InternalScoringError("Candidate has no video id")

        score = max(MIN_SCORE, min(MAX_SCORE, float(relevance.relevance_score)))
        entry = merged.get(candidate.video_id)
        is_duplicate = entry is not None
        if entry is None:
            entry = _MergedEntry(candidate=candidate, score=score)
            merged[candidate.video_id] = entry
        elif score > entry.score:
            entry.candidate = candidate
            entry.score = score

        entry.keywords.update(relevance.matched_keywords)
        if topic is not None:
            entry.topics.add(topic.name)
            entry.via_topic = True
        else:
            entry.via_channel = True
        return is_duplicate

    @staticmethod
    def _finalize(entry: _MergedEntry, exclusions: RatingExclusions) -> Suggestion:
        return Suggestion(
            candidate=entry.candidate,
            relevance_score=entry.score,
            matched_keywords=frozenset(entry.keywords),
            contributing_topics=frozenset(entry.topics),
            tier=tier_for_score(entry.score),
            source=entry.source(),
            channel_rating=exclusions.channel_boost.get(entry.candidate.channel_id),
        )
