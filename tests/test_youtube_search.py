"""
Tests for the YouTube search provider.
"""
import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from tubesuggest.discovery.fetcher import SourceFetcher
from tubesuggest.discovery.models import SourceDescriptor, Topic
from tubesuggest.discovery.quota import QuotaTracker
from tubesuggest.discovery.youtube_search import (
    YouTubeSearchProvider,
    _format_published_after,
    _is_quota_error,
    _parse_duration,
    _parse_published_at,
)

SEARCH_BODY = {
    "items": [
        {"id": {"videoId": "vid1"}},
        {"id": {"videoId": "vid2"}},
        {"id": {"kind": "youtube#channel"}},
    ]
}

DETAILS_BODY = {
    "items": [
        {
            "id": "vid1",
            "snippet": {
                "title": "Learn Python Fast",
                "description": "python basics",
                "channelId": "UC1",
                "channelTitle": "CodeCh",
                "publishedAt": "2025-01-02T10:00:00Z",
                "thumbnails": {"high": {"url": "https://example.com/1.jpg"}},
            },
            "statistics": {"viewCount": "1000", "likeCount": "50", "commentCount": "10"},
            "contentDetails": {"duration": "PT10M30S"},
        },
        {
            "id": "vid2",
            "snippet": {
                "title": "Another one",
                "channelId": "UC2",
                "channelTitle": "OtherCh",
                "publishedAt": "2025-01-03T10:00:00Z",
                "thumbnails": {"default": {"url": "https://example.com/2.jpg"}},
            },
            "statistics": {},
            "contentDetails": {"duration": "PT45S"},
        },
    ]
}

QUOTA_BODY = {
    "error": {
        "code": 403,
        "message": "quota",
        "errors": [{"reason": "quotaExceeded", "domain": "youtube.quota"}],
    }
}


def _make_provider(handler, quota=None):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return YouTubeSearchProvider("test-key", quota=quota, client=client)


def _ok_handler(requests):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if request.url.path.endswith("/search"):
            return httpx.Response(200, json=SEARCH_BODY)
        return httpx.Response(200, json=DETAILS_BODY)
    return handler


# ── Helpers ───────────────────────────────────────────────────────────


class TestParsing:
    def test_parse_duration(self):
        assert _parse_duration("PT1H2M3S") == 3723
        assert _parse_duration("PT5M30S") == 330
        assert _parse_duration("PT45S") == 45
        assert _parse_duration("PT1H") == 3600
        assert _parse_duration("") == 0
        assert _parse_duration(None) == 0

    def test_parse_published_at(self):
        assert _parse_published_at("2025-01-01T00:00:00Z") == datetime(
            2025, 1, 1, tzinfo=timezone.utc
        )
        assert _parse_published_at(None) is None
        assert _parse_published_at("yesterday") is None

    def test_format_published_after(self):
        assert _format_published_after(datetime(2025, 2, 1, 8, 30)) == "2025-02-01T08:30:00Z"


class TestIsQuotaError:
    def test_quota_reason(self):
        assert _is_quota_error(httpx.Response(403, json=QUOTA_BODY))

    def test_daily_limit_reason(self):
        body = {"error": {"errors": [{"reason": "dailyLimitExceeded"}]}}
        assert _is_quota_error(httpx.Response(403, json=body))

    def test_other_forbidden_reason(self):
        body = {"error": {"errors": [{"reason": "forbidden"}]}}
        assert not _is_quota_error(httpx.Response(403, json=body))

    def test_unreadable_403_is_quota(self):
        assert _is_quota_error(httpx.Response(403, text="<html>nope</html>"))

    def test_non_403(self):
        assert not _is_quota_error(httpx.Response(500, json=QUOTA_BODY))


# ── Searches ──────────────────────────────────────────────────────────


class TestSearchByTopic:
    @pytest.mark.asyncio
    async def test_returns_enriched_candidates(self):
        requests = []
        quota = QuotaTracker(daily_limit=10_000)
        provider = _make_provider(_ok_handler(requests), quota=quota)

        result = await provider.search_by_topic(
            "python", datetime(2025, 1, 1, tzinfo=timezone.utc), 10
        )
        await provider.close()

        assert result.success
        assert [c.video_id for c in result.candidates] == ["vid1", "vid2"]
        first = result.candidates[0]
        assert first.views == 1000
        assert first.duration_seconds == 630
        assert first.channel_id == "UC1"
        assert first.thumbnail_url == "https://example.com/1.jpg"
        assert result.candidates[1].description == ""
        assert result.candidates[1].views == 0

        search_params = requests[0].url.params
        assert search_params["q"] == "python"
        assert search_params["order"] == "relevance"
        assert search_params["publishedAfter"] == "2025-01-01T00:00:00Z"
        assert search_params["key"] == "test-key"
        assert requests[1].url.params["id"] == "vid1,vid2"

        assert quota.used == 101

    @pytest.mark.asyncio
    async def test_no_results_skips_details_call(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"items": []})

        provider = _make_provider(handler)
        result = await provider.search_by_topic("nothing", None, 10)
        await provider.close()

        assert result.success
        assert result.candidates == []
        assert len(requests) == 1
        assert "publishedAfter" not in requests[0].url.params

    @pytest.mark.asyncio
    async def test_quota_exceeded_response(self):
        quota = QuotaTracker(daily_limit=10_000)
        provider = _make_provider(
            lambda request: httpx.Response(403, json=QUOTA_BODY), quota=quota
        )
        result = await provider.search_by_topic("python", None, 10)
        await provider.close()

        assert not result.success
        assert result.quota_exceeded
        assert result.error_kind == "quota_exceeded"
        assert quota.status().is_exhausted

    @pytest.mark.asyncio
    async def test_local_quota_exhausted_makes_no_request(self):
        requests = []
        quota = QuotaTracker(daily_limit=50)
        provider = _make_provider(_ok_handler(requests), quota=quota)
        result = await provider.search_by_topic("python", None, 10)
        await provider.close()

        assert result.quota_exceeded
        assert requests == []

    @pytest.mark.asyncio
    async def test_server_error_is_transient_failure(self):
        provider = _make_provider(lambda request: httpx.Response(500, text="boom"))
        result = await provider.search_by_topic("python", None, 10)
        await provider.close()

        assert not result.success
        assert not result.quota_exceeded
        assert result.error_kind == "transient"
        assert "500" in result.error

    @pytest.mark.asyncio
    async def test_timeout_is_transient_failure(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        provider = _make_provider(handler)
        result = await provider.search_by_topic("python", None, 10)
        await provider.close()

        assert not result.success
        assert result.error == "YouTube request timed out"

    @pytest.mark.asyncio
    async def test_malformed_details(self):
        def handler(request):
            if request.url.path.endswith("/search"):
                return httpx.Response(200, json=SEARCH_BODY)
            return httpx.Response(200, json={"items": [{"snippet": {}}]})

        provider = _make_provider(handler)
        result = await provider.search_by_topic("python", None, 10)
        await provider.close()

        assert not result.success
        assert "Malformed" in result.error


class TestSearchByChannel:
    @pytest.mark.asyncio
    async def test_channel_params(self):
        requests = []
        provider = _make_provider(_ok_handler(requests))
        result = await provider.search_by_channel(
            "UC1", 80, datetime(2025, 1, 5, tzinfo=timezone.utc)
        )
        await provider.close()

        assert result.success
        params = requests[0].url.params
        assert params["channelId"] == "UC1"
        assert params["order"] == "date"
        assert params["maxResults"] == "50"
        assert params["publishedAfter"] == "2025-01-05T00:00:00Z"

    @pytest.mark.asyncio
    async def test_empty_channel_id(self):
        requests = []
        provider = _make_provider(_ok_handler(requests))
        result = await provider.search_by_channel("", 10)
        await provider.close()

        assert not result.success
        assert result.error_kind == "validation"
        assert requests == []


class TestConcurrentQuota:
    @pytest.mark.asyncio
    async def test_concurrent_searches_stay_within_budget(self):
        search_calls = []

        async def slow_handler(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(0.02)
            if request.url.path.endswith("/search"):
                search_calls.append(request.url.params["q"])
                return httpx.Response(200, json=SEARCH_BODY)
            return httpx.Response(200, json=DETAILS_BODY)

        # room for exactly one search plus its details call
        quota = QuotaTracker(daily_limit=10_000, used=9_850)
        provider = _make_provider(slow_handler, quota=quota)
        fetcher = SourceFetcher(provider, concurrency=3)
        sources = [
            SourceDescriptor.for_topic(Topic(f"t{i}", f"topic {i}")) for i in range(3)
        ]

        run = await fetcher.fetch_all(sources, None)
        await provider.close()

        assert len(search_calls) == 1
        assert quota.used <= quota.daily_limit
        assert quota.used == 9_850 + 100 + 1
        assert run.quota_exceeded
        assert sum(r.success for r in run.results) == 1

    @pytest.mark.asyncio
    async def test_failed_call_keeps_reserved_units(self):
        quota = QuotaTracker(daily_limit=10_000)
        provider = _make_provider(lambda request: httpx.Response(500, text="boom"), quota=quota)
        result = await provider.search_by_topic("python", None, 10)
        await provider.close()

        assert not result.success
        assert quota.used == 100
