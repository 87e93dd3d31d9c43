"""
Collaborator contracts consumed by the suggestion pipeline.

The SQLite Database implements the topic, channel and rating providers;
YouTubeSearchProvider implements the search provider.
"""
from datetime import datetime
from typing import Optional, Protocol

from .models import FetchResult, Topic, TrackedChannel


class TopicProvider(Protocol):
    def get_user_topics(self, user_id: str) -> list[Topic]:
        ...


class ChannelProvider(Protocol):
    def get_tracked_channels(self, user_id: str) -> list[TrackedChannel]:
        ...


class RatingProvider(Protocol):
    """Raw rating lookups. Implementations must not filter anything out."""

    def get_channel_ratings(self, user_id: str) -> dict[str, int]:
        ...

    def get_low_rated_channel_ids(self, user_id: str) -> list[str]:
        ...

    def get_video_ratings(self, user_id: str) -> dict[str, int]:
        ...


class VideoSearchProvider(Protocol):
    async def search_by_topic(
        self,
        keyword: str,
        published_after: Optional[datetime],
        max_results: int,
    ) -> FetchResult:
        ...

    async def search_by_channel(
        self,
        channel_id: str,
        max_results: int,
        published_after: Optional[datetime] = None,
    ) -> FetchResult:
        ...
