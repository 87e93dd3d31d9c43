"""
Data models for the suggestion pipeline.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

# Topic words of this length or shorter are ignored ("a", "an", "ai", ...)
MIN_KEYWORD_LENGTH = 3

NEUTRAL_SCORE = 5.0
MAX_SCORE = 10.0
MIN_SCORE = 0.0


@dataclass(frozen=True)
class Topic:
    """A user-defined interest used to search for videos."""
    topic_id: str
    name: str

    @property
    def keywords(self) -> frozenset[str]:
        """Lowercased words of the name longer than two characters."""
        return frozenset(
            word for word in self.name.lower().split()
            if len(word) >= MIN_KEYWORD_LENGTH
        )


@dataclass(frozen=True)
class TrackedChannel:
    """A YouTube channel the user follows."""
    channel_id: str
    name: str
    last_check_date: Optional[datetime] = None


@dataclass(frozen=True)
class VideoCandidate:
    """A YouTube video returned by a search, not yet filtered or scored."""
    video_id: str
    title: str
    description: str
    channel_id: str
    channel_name: str
    published_at: Optional[datetime]
    duration_seconds: int = 0
    views: int = 0
    likes: int = 0
    comments: int = 0
    thumbnail_url: str = ""


class SourceKind(str, Enum):
    TOPIC = "topic"
    CHANNEL = "channel"


@dataclass(frozen=True)
class SourceDescriptor:
    """One unit of fetch work: a topic search or a tracked-channel listing."""
    kind: SourceKind
    key: str  # topic id or YouTube channel id
    label: str  # topic name or channel name
    published_after: Optional[datetime] = None

    @classmethod
    def for_topic(cls, topic: Topic) -> "SourceDescriptor":
        return cls(kind=SourceKind.TOPIC, key=topic.topic_id, label=topic.name)

    @classmethod
    def for_channel(cls, channel: TrackedChannel) -> "SourceDescriptor":
        return cls(
            kind=SourceKind.CHANNEL,
            key=channel.channel_id,
            label=channel.name,
            published_after=channel.last_check_date,
        )

    def describe(self) -> str:
        return f"{self.kind.value}:{self.label or self.key}"


@dataclass
class FetchResult:
    """Outcome of one provider call for one source."""
    success: bool
    candidates: list[VideoCandidate] = field(default_factory=list)
    quota_exceeded: bool = False
    error: str = ""
    error_kind: str = ""  # one of the errors.SuggestionError.kind values
    source: Optional[SourceDescriptor] = None

    @classmethod
    def ok(cls, candidates: list[VideoCandidate]) -> "FetchResult":
        return cls(success=True, candidates=list(candidates))

    @classmethod
    def failure(cls, error: str, error_kind: str = "transient") -> "FetchResult":
        return cls(success=False, error=error, error_kind=error_kind)

    @classmethod
    def quota(cls, error: str = "YouTube API quota exceeded") -> "FetchResult":
        return cls(
            success=False,
            quota_exceeded=True,
            error=error,
            error_kind="quota_exceeded",
        )


class RelevanceResult(BaseModel):
    """Keyword relevance between a topic and a video."""
    model_config = ConfigDict(frozen=True)

    relevance_score: float  # 0.0-10.0
    matched_keywords: frozenset[str] = frozenset()


class Tier(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


# Evaluated top to bottom; the first threshold the score reaches wins.
TIER_THRESHOLDS: tuple[tuple[float, Tier], ...] = (
    (8.0, Tier.HIGH),
    (6.0, Tier.MEDIUM),
    (MIN_SCORE, Tier.LOW),
)


def tier_for_score(score: float) -> Tier:
    """Map a relevance score to its display tier."""
    for threshold, tier in TIER_THRESHOLDS:
        if score >= threshold:
            return tier
    return Tier.LOW


class SuggestionSource(str, Enum):
    TOPIC_SEARCH = "topic_search"
    TRACKED_CHANNEL = "tracked_channel"
    BOTH = "both"


@dataclass(frozen=True)
class Suggestion:
    """A scored, deduplicated video suggestion."""
    candidate: VideoCandidate
    relevance_score: float
    matched_keywords: frozenset[str]
    contributing_topics: frozenset[str]
    tier: Tier
    source: SuggestionSource
    channel_rating: Optional[int] = None  # 2-5 stars when the user rated the channel

    @property
    def video_id(self) -> str:
        return self.candidate.video_id

    @property
    def channel_id(self) -> str:
        return self.candidate.channel_id

    @property
    def published_at(self) -> Optional[datetime]:
        return self.candidate.published_at

    def match_reason(self) -> str:
        """Short explanation of why this video matched."""
        keywords = sorted(self.matched_keywords)
        if not keywords:
            if self.source == SuggestionSource.TRACKED_CHANNEL:
                return f"New from {self.candidate.channel_name}"
            return "General topic match"
        if len(keywords) == 1:
            return f"Contains '{keywords[0]}'"
        if len(keywords) == 2:
            return f"Contains '{keywords[0]}' and '{keywords[1]}'"
        remaining = len(keywords) - 2
        return (
            f"Contains '{keywords[0]}', '{keywords[1]}' and {remaining} "
            f"other keyword{'' if remaining == 1 else 's'}"
        )


@dataclass(frozen=True)
class RatingExclusions:
    """Per-user exclusion sets and channel boost map derived from ratings."""
    excluded_channel_ids: frozenset[str] = frozenset()
    excluded_video_ids: frozenset[str] = frozenset()
    channel_boost: dict[str, int] = field(default_factory=dict)

    def excludes(self, candidate: VideoCandidate) -> bool:
        return (
            candidate.video_id in self.excluded_video_ids
            or candidate.channel_id in self.excluded_channel_ids
        )


@dataclass
class FetchRunResult:
    """All fetch results for one run."""
    results: list[FetchResult] = field(default_factory=list)
    quota_exceeded: bool = False
    skipped: list[SourceDescriptor] = field(default_factory=list)

    @property
    def failed(self) -> list[FetchResult]:
        return [r for r in self.results if not r.success]


@dataclass
class AggregationResult:
    """Ordered suggestions plus per-candidate bookkeeping."""
    suggestions: list[Suggestion] = field(default_factory=list)
    errors: list = field(default_factory=list)  # InternalScoringError values
    topic_candidates: int = 0
    channel_candidates: int = 0
    excluded_count: int = 0
    duplicates_merged: int = 0


class RunStatus(str, Enum):
    COMPLETE = "complete"
    PARTIAL = "partial"
    PARTIAL_QUOTA = "partial_quota"


@dataclass
class SuggestionRun:
    """Result of one suggestion run, handed to display/persistence."""
    user_id: str
    suggestions: list[Suggestion]
    status: RunStatus
    quota_exceeded: bool = False
    retry_after: Optional[datetime] = None
    failed_sources: list[str] = field(default_factory=list)
    skipped_sources: list[str] = field(default_factory=list)
    fetched_channel_ids: list[str] = field(default_factory=list)
    topic_candidates: int = 0
    channel_candidates: int = 0
    excluded_count: int = 0
    duplicates_merged: int = 0
    average_score: float = 0.0
    score_distribution: dict[str, int] = field(default_factory=dict)
    processing_seconds: float = 0.0

    def summary_message(self) -> str:
        """One-line summary for user feedback."""
        if not self.suggestions:
            message = "No new suggestions found based on your topics and channels"
        else:
            count = len(self.suggestions)
            message = (
                f"Generated {count} suggestion{'' if count == 1 else 's'} from "
                f"{self.topic_candidates + self.channel_candidates} videos discovered"
            )
        if self.status == RunStatus.PARTIAL_QUOTA:
            when = self.retry_after.isoformat() if self.retry_after else "the next quota reset"
            message += f" (partial: YouTube quota exceeded, retry after {when})"
        elif self.status == RunStatus.PARTIAL:
            message += f" (partial: {len(self.failed_sources)} source(s) failed)"
        return message
