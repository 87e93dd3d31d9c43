"""Application configuration loaded from environment variables."""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        return default


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name, str(default))
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    youtube_api_key: Optional[str]
    database_path: str
    log_level: str

    # Fetching
    fetch_concurrency: int
    topic_max_results: int
    channel_max_results: int
    lookback_days: int
    request_timeout: float

    # Quota
    daily_quota_limit: int

    # Output
    max_suggestions: int

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        youtube_api_key = os.getenv("YOUTUBE_API_KEY") or None
        database_path = os.getenv("DATABASE_PATH", "tubesuggest.db")
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        fetch_concurrency = _int_env("FETCH_CONCURRENCY", 3)
        if fetch_concurrency < 1:
            raise ConfigurationError(
                f"FETCH_CONCURRENCY must be at least 1, got: {fetch_concurrency}"
            )

        topic_max_results = _int_env("TOPIC_MAX_RESULTS", 25)
        channel_max_results = _int_env("CHANNEL_MAX_RESULTS", 50)
        lookback_days = _int_env("LOOKBACK_DAYS", 30)
        request_timeout = _float_env("REQUEST_TIMEOUT", 30.0)
        daily_quota_limit = _int_env("DAILY_QUOTA_LIMIT", 10_000)
        max_suggestions = _int_env("MAX_SUGGESTIONS", 50)

        return cls(
            youtube_api_key=youtube_api_key,
            database_path=database_path,
            log_level=log_level,
            fetch_concurrency=fetch_concurrency,
            topic_max_results=topic_max_results,
            channel_max_results=channel_max_results,
            lookback_days=lookback_days,
            request_timeout=request_timeout,
            daily_quota_limit=daily_quota_limit,
            max_suggestions=max_suggestions,
        )

    def require_api_key(self) -> str:
        """Return the YouTube API key or raise if it is not configured."""
        if not self.youtube_api_key:
            raise ConfigurationError("YOUTUBE_API_KEY environment variable is required")
        return self.youtube_api_key
