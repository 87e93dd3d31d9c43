"""
Search YouTube for videos by topic keyword or by channel, with full stats
enrichment.

Each search is a search.list call (100 quota units) followed by a
videos.list call for statistics and durations (1 unit per 50 videos).
"""
import logging
import re
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from .models import FetchResult, VideoCandidate
from .quota import SEARCH_COST, QuotaTracker, video_details_cost

logger = logging.getLogger(__name__)

YOUTUBE_API_BASE = "https://www.googleapis.com/youtube/v3"
DEFAULT_TIMEOUT = 30.0
MAX_RESULTS_PER_CALL = 50

# errors[].reason values YouTube uses for an exhausted daily budget
QUOTA_REASONS = frozenset({"quotaExceeded", "dailyLimitExceeded"})


def _parse_duration(duration_str: str) -> int:
    """Parse ISO 8601 duration (PT1H2M3S) to seconds."""
    match = re.match(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?", duration_str or "")
    if not match:
        return 0
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    seconds = int(match.group(3) or 0)
    return hours * 3600 + minutes * 60 + seconds


def _parse_published_at(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp ("2025-01-01T00:00:00Z") to an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Unparseable publishedAt: %s", value)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _format_published_after(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _best_thumbnail(thumbnails: dict) -> str:
    return (
        thumbnails.get("high", {}).get("url")
        or thumbnails.get("medium", {}).get("url")
        or thumbnails.get("default", {}).get("url", "")
    )


def _is_quota_error(response: httpx.Response) -> bool:
    """Whether an error response means the daily quota is spent.

    A 403 whose body cannot be read is treated as a quota error.
    """
    if response.status_code != 403:
        return False
    try:
        body = response.json()
    except ValueError:
        return True
    error = body.get("error") if isinstance(body, dict) else None
    errors = error.get("errors", []) if isinstance(error, dict) else []
    reasons = {e.get("reason") for e in errors if isinstance(e, dict)}
    if not reasons:
        return True
    return bool(reasons & QUOTA_REASONS)


def _candidate_from_item(item: dict) -> VideoCandidate:
    snippet = item.get("snippet", {})
    stats = item.get("statistics", {})
    content = item.get("contentDetails", {})
    return VideoCandidate(
        video_id=item["id"],
        title=snippet.get("title", ""),
        description=snippet.get("description", ""),
        channel_id=snippet.get("channelId", ""),
        channel_name=snippet.get("channelTitle", ""),
        published_at=_parse_published_at(snippet.get("publishedAt")),
        duration_seconds=_parse_duration(content.get("duration", "")),
        views=int(stats.get("viewCount", 0)),
        likes=int(stats.get("likeCount", 0)),
        comments=int(stats.get("commentCount", 0)),
        thumbnail_url=_best_thumbnail(snippet.get("thumbnails", {})),
    )


class YouTubeSearchProvider:
    """Async YouTube Data API client returning FetchResult values."""

    def __init__(
        self,
        api_key: str,
        quota: Optional[QuotaTracker] = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            api_key: YouTube Data API key.
            quota: Tracker charged before each call is sent.
            timeout: Per-request timeout in seconds.
            client: Pre-built client (tests inject one with a mock transport).
        """
        self.api_key = api_key
        self.quota = quota
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def search_by_topic(
        self,
        keyword: str,
        published_after: Optional[datetime],
        max_results: int,
    ) -> FetchResult:
        """Search all of YouTube for videos matching a topic keyword."""
        params: dict[str, Any] = {
            "part": "snippet",
            "q": keyword,
            "type": "video",
            "order": "relevance",
            "maxResults": min(max(1, max_results), MAX_RESULTS_PER_CALL),
        }
        if published_after is not None:
            params["publishedAfter"] = _format_published_after(published_after)
        return await self._search(params, f"topic '{keyword}'")

    async def search_by_channel(
        self,
        channel_id: str,
        max_results: int,
        published_after: Optional[datetime] = None,
    ) -> FetchResult:
        """List a channel's newest videos, optionally only those after a date."""
        if not channel_id:
            return FetchResult.failure("Channel ID is required", error_kind="validation")
        params: dict[str, Any] = {
            "part": "snippet",
            "channelId": channel_id,
            "type": "video",
            "order": "date",
            "maxResults": min(max(1, max_results), MAX_RESULTS_PER_CALL),
        }
        if published_after is not None:
            params["publishedAfter"] = _format_published_after(published_after)
        return await self._search(params, f"channel {channel_id}")

    def _reserve(self, units: int, operation: str) -> bool:
        """Charge the tracker before the call; units stay spent if it fails."""
        return self.quota is None or self.quota.try_reserve(units, operation)

    async def _search(self, params: dict[str, Any], label: str) -> FetchResult:
        if not self._reserve(SEARCH_COST, "search"):
            return FetchResult.quota()

        client = self._get_client()
        try:
            # Step 1: Search for video IDs
            resp = await client.get(
                f"{YOUTUBE_API_BASE}/search", params={**params, "key": self.api_key}
            )
            resp.raise_for_status()

            items = resp.json().get("items", [])
            video_ids = [
                item["id"]["videoId"]
                for item in items
                if isinstance(item.get("id"), dict) and item["id"].get("videoId")
            ]
            if not video_ids:
                logger.info("No YouTube results for %s", label)
                return FetchResult.ok([])

            # Step 2: Fetch full stats for all found videos
            details_cost = video_details_cost(len(video_ids))
            if not self._reserve(details_cost, "videos"):
                return FetchResult.quota()

            resp = await client.get(
                f"{YOUTUBE_API_BASE}/videos",
                params={
                    "part": "snippet,statistics,contentDetails",
                    "id": ",".join(video_ids),
                    "key": self.api_key,
                },
            )
            resp.raise_for_status()

            candidates = [
                _candidate_from_item(item) for item in resp.json().get("items", [])
            ]
            logger.info("Found %d YouTube videos for %s", len(candidates), label)
            return FetchResult.ok(candidates)

        except httpx.HTTPStatusError as e:
            if _is_quota_error(e.response):
                logger.error("YouTube API quota exceeded during %s", label)
                if self.quota is not None:
                    self.quota.mark_exhausted()
                return FetchResult.quota()
            logger.error("YouTube API error for %s: %s", label, e)
            return FetchResult.failure(
                f"YouTube API error {e.response.status_code}"
            )
        except httpx.TimeoutException:
            logger.warning("YouTube request timed out for %s", label)
            return FetchResult.failure("YouTube request timed out")
        except httpx.HTTPError as e:
            logger.error("YouTube search failed for %s: %s", label, e)
            return FetchResult.failure(f"YouTube request failed: {e}")
        except (KeyError, ValueError) as e:
            logger.error("Malformed YouTube response for %s: %s", label, e)
            return FetchResult.failure(f"Malformed YouTube response: {e}")
