"""
SQLite store for topics, tracked channels, ratings and quota usage.

Implements the topic, channel and rating provider contracts the suggestion
pipeline reads from. Suggestions themselves are not stored here.
"""
import sqlite3
import uuid
from datetime import date, datetime, timezone
from typing import Dict, List, Optional

from ..discovery.models import Topic, TrackedChannel


def _parse_timestamp(value) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _validate_stars(stars: int) -> int:
    if not isinstance(stars, int) or not 1 <= stars <= 5:
        raise ValueError(f"Rating must be between 1 and 5 stars, got: {stars!r}")
    return stars


class Database:
    """SQLite adapter for the suggestion service."""

    def __init__(self, connection_string: str):
        """
        Initialize database connection.

        Args:
            connection_string: Path to the SQLite .db file (":memory:" works).
        """
        self.connection_string = connection_string
        self._conn: Optional[sqlite3.Connection] = None

    def connect(self) -> None:
        """Establish database connection."""
        self._conn = sqlite3.connect(self.connection_string)
        self._conn.row_factory = sqlite3.Row

    def close(self) -> None:
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self):
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def _require_conn(self) -> sqlite3.Connection:
        if not self._conn:
            raise RuntimeError("Database not connected")
        return self._conn

    def ensure_tables(self) -> None:
        """Create all tables if they don't exist."""
        conn = self._require_conn()
        conn.executescript("""
            CREATE TABLE IF NOT EXISTS topics (
                topic_id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                name TEXT NOT NULL,
                created_at TEXT NOT NULL,
                UNIQUE(user_id, name)
            );

            CREATE TABLE IF NOT EXISTS tracked_channels (
                user_id TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                name TEXT NOT NULL,
                last_check_date TEXT,
                added_at TEXT NOT NULL,
                PRIMARY KEY (user_id, channel_id)
            );

            CREATE TABLE IF NOT EXISTS channel_ratings (
                user_id TEXT NOT NULL,
                channel_id TEXT NOT NULL,
                stars INTEGER NOT NULL,
                rated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, channel_id)
            );

            CREATE TABLE IF NOT EXISTS video_ratings (
                user_id TEXT NOT NULL,
                video_id TEXT NOT NULL,
                stars INTEGER NOT NULL,
                rated_at TEXT NOT NULL,
                PRIMARY KEY (user_id, video_id)
            );

            CREATE TABLE IF NOT EXISTS quota_usage (
                day TEXT PRIMARY KEY,
                units_used INTEGER NOT NULL
            );
        """)
        conn.commit()

    # ── Topics ────────────────────────────────────────────────────────

    def add_topic(self, user_id: str, name: str) -> Topic:
        """Add a topic for a user and return it."""
        conn = self._require_conn()
        name = " ".join(name.split())
        if not name:
            raise ValueError("Topic name is required")

        topic = Topic(topic_id=uuid.uuid4().hex, name=name)
        try:
            conn.execute("""
                INSERT INTO topics (topic_id, user_id, name, created_at)
                VALUES (?, ?, ?, ?)
            """, (topic.topic_id, user_id, name, datetime.now(timezone.utc).isoformat()))
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Topic '{name}' already exists") from e
        conn.commit()
        return topic

    def remove_topic(self, user_id: str, topic_id: str) -> bool:
        """Delete one of the user's topics. Returns False if it wasn't theirs."""
        conn = self._require_conn()
        cursor = conn.execute(
            "DELETE FROM topics WHERE user_id = ? AND topic_id = ?",
            (user_id, topic_id),
        )
        conn.commit()
        return cursor.rowcount > 0

    def get_user_topics(self, user_id: str) -> List[Topic]:
        conn = self._require_conn()
        rows = conn.execute("""
            SELECT topic_id, name FROM topics
            WHERE user_id = ?
            ORDER BY created_at, name
        """, (user_id,)).fetchall()
        return [Topic(topic_id=row["topic_id"], name=row["name"]) for row in rows]

    # ── Tracked channels ──────────────────────────────────────────────

    def add_tracked_channel(self, user_id: str, channel_id: str, name: str) -> TrackedChannel:
        """Start tracking a channel (idempotent; keeps the last check date)."""
        conn = self._require_conn()
        if not channel_id:
            raise ValueError("Channel ID is required")
        conn.execute("""
            INSERT INTO tracked_channels (user_id, channel_id, name, added_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, channel_id) DO UPDATE SET
                name = excluded.name
        """, (user_id, channel_id, name, datetime.now(timezone.utc).isoformat()))
        conn.commit()
        return TrackedChannel(channel_id=channel_id, name=name)

    def get_tracked_channels(self, user_id: str) -> List[TrackedChannel]:
        conn = self._require_conn()
        rows = conn.execute("""
            SELECT channel_id, name, last_check_date FROM tracked_channels
            WHERE user_id = ?
            ORDER BY added_at, channel_id
        """, (user_id,)).fetchall()
        return [
            TrackedChannel(
                channel_id=row["channel_id"],
                name=row["name"],
                last_check_date=_parse_timestamp(row["last_check_date"]),
            )
            for row in rows
        ]

    def update_channel_last_check(
        self, user_id: str, channel_id: str, checked_at: Optional[datetime] = None
    ) -> None:
        conn = self._require_conn()
        checked_at = checked_at or datetime.now(timezone.utc)
        conn.execute("""
            UPDATE tracked_channels SET last_check_date = ?
            WHERE user_id = ? AND channel_id = ?
        """, (checked_at.isoformat(), user_id, channel_id))
        conn.commit()

    # ── Ratings ───────────────────────────────────────────────────────

    def rate_channel(self, user_id: str, channel_id: str, stars: int) -> None:
        conn = self._require_conn()
        _validate_stars(stars)
        conn.execute("""
            INSERT INTO channel_ratings (user_id, channel_id, stars, rated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, channel_id) DO UPDATE SET
                stars = excluded.stars,
                rated_at = excluded.rated_at
        """, (user_id, channel_id, stars, datetime.now(timezone.utc).isoformat()))
        conn.commit()

    def rate_video(self, user_id: str, video_id: str, stars: int) -> None:
        conn = self._require_conn()
        _validate_stars(stars)
        conn.execute("""
            INSERT INTO video_ratings (user_id, video_id, stars, rated_at)
            VALUES (?, ?, ?, ?)
            ON CONFLICT(user_id, video_id) DO UPDATE SET
                stars = excluded.stars,
                rated_at = excluded.rated_at
        """, (user_id, video_id, stars, datetime.now(timezone.utc).isoformat()))
        conn.commit()

    def get_channel_ratings(self, user_id: str) -> Dict[str, int]:
        conn = self._require_conn()
        rows = conn.execute(
            "SELECT channel_id, stars FROM channel_ratings WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        return {row["channel_id"]: row["stars"] for row in rows}

    def get_low_rated_channel_ids(self, user_id: str) -> List[str]:
        conn = self._require_conn()
        rows = conn.execute("""
            SELECT channel_id FROM channel_ratings
            WHERE user_id = ? AND stars = 1
            ORDER BY channel_id
        """, (user_id,)).fetchall()
        return [row["channel_id"] for row in rows]

    def get_video_ratings(self, user_id: str) -> Dict[str, int]:
        conn = self._require_conn()
        rows = conn.execute(
            "SELECT video_id, stars FROM video_ratings WHERE user_id = ?",
            (user_id,),
        ).fetchall()
        return {row["video_id"]: row["stars"] for row in rows}

    # ── Quota usage ───────────────────────────────────────────────────

    def get_quota_usage(self, day: date) -> int:
        """Units recorded for a UTC day (0 if none)."""
        conn = self._require_conn()
        row = conn.execute(
            "SELECT units_used FROM quota_usage WHERE day = ?", (day.isoformat(),)
        ).fetchone()
        return row["units_used"] if row else 0

    def save_quota_usage(self, day: date, units_used: int) -> None:
        conn = self._require_conn()
        conn.execute("""
            INSERT INTO quota_usage (day, units_used) VALUES (?, ?)
            ON CONFLICT(day) DO UPDATE SET units_used = excluded.units_used
        """, (day.isoformat(), units_used))
        conn.commit()
