#!/usr/bin/env python3
"""
CLI for topic- and channel-based YouTube video suggestions

Usage:
    python -m tubesuggest.cli --user-id alice add-topic "machine learning"
    python -m tubesuggest.cli --user-id alice list-topics
    python -m tubesuggest.cli --user-id alice remove-topic TOPIC_ID
    python -m tubesuggest.cli --user-id alice track-channel CHANNEL_ID "Channel Name"
    python -m tubesuggest.cli --user-id alice rate-channel CHANNEL_ID 1
    python -m tubesuggest.cli --user-id alice rate-video VIDEO_ID 5
    python -m tubesuggest.cli --user-id alice suggest [--topic TOPIC_ID] [--no-channels]
    python -m tubesuggest.cli quota-status
"""
import argparse
import asyncio
import json
import logging
import sys
from datetime import datetime, timezone

from .config import Config, ConfigurationError
from .db.database import Database
from .discovery.models import SuggestionRun
from .discovery.pipeline import build_pipeline
from .discovery.quota import QuotaTracker
from .errors import SuggestionError

logger = logging.getLogger(__name__)


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="YouTube video suggestions from topics, channels and ratings"
    )
    parser.add_argument(
        "--db-path",
        default=None,
        help="Path to SQLite database (default: DATABASE_PATH or tubesuggest.db)"
    )
    parser.add_argument(
        "--user-id",
        default="local",
        help="User to act for (default: local)"
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    add_topic_parser = subparsers.add_parser("add-topic", help="Add an interest topic")
    add_topic_parser.add_argument("name", help="Topic name, e.g. 'machine learning'")

    subparsers.add_parser("list-topics", help="List the user's topics")

    remove_topic_parser = subparsers.add_parser("remove-topic", help="Remove a topic")
    remove_topic_parser.add_argument("topic_id", help="Topic ID from list-topics")

    track_parser = subparsers.add_parser("track-channel", help="Track a YouTube channel")
    track_parser.add_argument("channel_id", help="YouTube channel ID (UC...)")
    track_parser.add_argument("name", nargs="?", default="", help="Channel display name")

    rate_channel_parser = subparsers.add_parser(
        "rate-channel",
        help="Rate a channel 1-5 stars (1 star excludes it from suggestions)"
    )
    rate_channel_parser.add_argument("channel_id", help="YouTube channel ID")
    rate_channel_parser.add_argument("stars", type=int, choices=range(1, 6))

    rate_video_parser = subparsers.add_parser(
        "rate-video",
        help="Rate a video 1-5 stars (1 star excludes it from suggestions)"
    )
    rate_video_parser.add_argument("video_id", help="YouTube video ID")
    rate_video_parser.add_argument("stars", type=int, choices=range(1, 6))

    suggest_parser = subparsers.add_parser(
        "suggest",
        help="Generate ranked suggestions from topics and tracked channels"
    )
    suggest_parser.add_argument(
        "--topic",
        dest="topic_ids",
        action="append",
        help="Only search this topic ID (repeatable; default: all topics)"
    )
    suggest_parser.add_argument(
        "--no-channels",
        action="store_true",
        help="Skip tracked channel updates"
    )
    suggest_parser.add_argument(
        "--limit",
        type=int,
        default=20,
        help="Max suggestions to print (default: 20)"
    )

    subparsers.add_parser("quota-status", help="Show today's YouTube quota usage")

    return parser.parse_args(argv)


def _suggestion_to_dict(s) -> dict:
    c = s.candidate
    return {
        "video_id": c.video_id,
        "title": c.title,
        "channel_id": c.channel_id,
        "channel_name": c.channel_name,
        "published_at": c.published_at.isoformat() if c.published_at else None,
        "views": c.views,
        "duration_seconds": c.duration_seconds,
        "thumbnail_url": c.thumbnail_url,
        "relevance_score": round(s.relevance_score, 2),
        "tier": s.tier.value,
        "source": s.source.value,
        "matched_keywords": sorted(s.matched_keywords),
        "contributing_topics": sorted(s.contributing_topics),
        "channel_rating": s.channel_rating,
        "reason": s.match_reason(),
    }


def _run_to_dict(run: SuggestionRun) -> dict:
    return {
        "status": run.status.value,
        "summary": run.summary_message(),
        "quota_exceeded": run.quota_exceeded,
        "retry_after": run.retry_after.isoformat() if run.retry_after else None,
        "failed_sources": run.failed_sources,
        "skipped_sources": run.skipped_sources,
        "topic_candidates": run.topic_candidates,
        "channel_candidates": run.channel_candidates,
        "excluded": run.excluded_count,
        "duplicates_merged": run.duplicates_merged,
        "average_score": run.average_score,
        "score_distribution": run.score_distribution,
        "processing_seconds": run.processing_seconds,
        "total_suggestions": len(run.suggestions),
        "suggestions": [_suggestion_to_dict(s) for s in run.suggestions],
    }


def cmd_add_topic(db: Database, args) -> dict:
    """Execute the add-topic command."""
    topic = db.add_topic(args.user_id, args.name)
    return {
        "command": "add-topic",
        "topic": {"topic_id": topic.topic_id, "name": topic.name,
                  "keywords": sorted(topic.keywords)},
    }


def cmd_list_topics(db: Database, args) -> dict:
    """Execute the list-topics command."""
    topics = db.get_user_topics(args.user_id)
    return {
        "command": "list-topics",
        "count": len(topics),
        "topics": [{"topic_id": t.topic_id, "name": t.name} for t in topics],
    }


def cmd_remove_topic(db: Database, args) -> dict:
    """Execute the remove-topic command."""
    removed = db.remove_topic(args.user_id, args.topic_id)
    return {"command": "remove-topic", "topic_id": args.topic_id, "removed": removed}


def cmd_track_channel(db: Database, args) -> dict:
    """Execute the track-channel command."""
    channel = db.add_tracked_channel(args.user_id, args.channel_id, args.name or args.channel_id)
    return {
        "command": "track-channel",
        "channel": {"channel_id": channel.channel_id, "name": channel.name},
    }


def cmd_rate_channel(db: Database, args) -> dict:
    """Execute the rate-channel command."""
    db.rate_channel(args.user_id, args.channel_id, args.stars)
    return {"command": "rate-channel", "channel_id": args.channel_id, "stars": args.stars}


def cmd_rate_video(db: Database, args) -> dict:
    """Execute the rate-video command."""
    db.rate_video(args.user_id, args.video_id, args.stars)
    return {"command": "rate-video", "video_id": args.video_id, "stars": args.stars}


def _load_quota(db: Database, config: Config) -> QuotaTracker:
    today = datetime.now(timezone.utc).date()
    return QuotaTracker(
        daily_limit=config.daily_quota_limit,
        used=db.get_quota_usage(today),
        day=today,
    )


async def cmd_suggest(db: Database, args, config: Config) -> dict:
    """Execute the suggest command: a full pipeline run."""
    quota = _load_quota(db, config)
    try:
        pipeline, provider = build_pipeline(config, db, quota)
    except (ConfigurationError, SuggestionError) as e:
        return {"command": "suggest", "success": False, "error": str(e)}

    try:
        run = await pipeline.run(
            args.user_id,
            topic_ids=args.topic_ids,
            include_channels=not args.no_channels,
        )
    except SuggestionError as e:
        logger.error("Suggestion run rejected: %s", e)
        return {"command": "suggest", "success": False, "error": str(e)}
    finally:
        await provider.close()
        db.save_quota_usage(quota.day, quota.used)

    checked_at = datetime.now(timezone.utc)
    for channel_id in run.fetched_channel_ids:
        db.update_channel_last_check(args.user_id, channel_id, checked_at)

    return {"command": "suggest", "success": True, **_run_to_dict(run)}


def cmd_quota_status(db: Database, args, config: Config) -> dict:
    """Execute the quota-status command."""
    status = _load_quota(db, config).status()
    return {
        "command": "quota-status",
        "daily_limit": status.daily_limit,
        "used": status.used,
        "remaining": status.remaining,
        "usage_percentage": round(status.usage_percentage, 1),
        "exhausted": status.is_exhausted,
        "reset_at": status.reset_at.isoformat(),
    }


def _print_result(args, result: dict) -> None:
    print(f"\n{'=' * 50}")
    print(f"Command: {result['command']}")
    print(f"{'=' * 50}")

    if result.get("success") is False:
        print(f"Error: {result.get('error', 'Unknown error')}")

    elif args.command == "add-topic":
        t = result["topic"]
        print(f"Added topic '{t['name']}' ({t['topic_id']})")
        print(f"  Keywords: {', '.join(t['keywords']) or '(none, neutral scoring)'}")

    elif args.command == "list-topics":
        print(f"Topics: {result['count']}")
        for t in result["topics"]:
            print(f"  {t['topic_id']}  {t['name']}")

    elif args.command == "remove-topic":
        print(f"Removed: {'yes' if result['removed'] else 'no (not found)'}")

    elif args.command == "track-channel":
        ch = result["channel"]
        print(f"Tracking {ch['name']} ({ch['channel_id']})")

    elif args.command in ("rate-channel", "rate-video"):
        target = result.get("channel_id") or result.get("video_id")
        print(f"Rated {target}: {result['stars']} star(s)")

    elif args.command == "suggest":
        print(result["summary"])
        print(f"Status: {result['status']}")
        print(f"Candidates: {result['topic_candidates']} topic, "
              f"{result['channel_candidates']} channel | "
              f"excluded {result['excluded']} | duplicates {result['duplicates_merged']}")
        if result["failed_sources"]:
            print(f"Failed sources: {', '.join(result['failed_sources'])}")
        if result["skipped_sources"]:
            print(f"Skipped (quota): {', '.join(result['skipped_sources'])}")
        for i, s in enumerate(result["suggestions"][:args.limit], 1):
            print(f"\n  #{i} [{s['relevance_score']:.1f} {s['tier']}] {s['title'][:60]}")
            print(f"     Channel: {s['channel_name']} | Source: {s['source']}")
            print(f"     {s['reason']}")
            if s["contributing_topics"]:
                print(f"     Topics: {', '.join(s['contributing_topics'])}")

    elif args.command == "quota-status":
        print(f"Used: {result['used']:,}/{result['daily_limit']:,} "
              f"({result['usage_percentage']}%)")
        print(f"Remaining: {result['remaining']:,}")
        print(f"Resets at: {result['reset_at']}")

    print(f"{'=' * 50}\n")


async def main(argv=None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    config = Config.from_env()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else config.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    with Database(args.db_path or config.database_path) as db:
        db.ensure_tables()
        try:
            if args.command == "add-topic":
                result = cmd_add_topic(db, args)
            elif args.command == "list-topics":
                result = cmd_list_topics(db, args)
            elif args.command == "remove-topic":
                result = cmd_remove_topic(db, args)
            elif args.command == "track-channel":
                result = cmd_track_channel(db, args)
            elif args.command == "rate-channel":
                result = cmd_rate_channel(db, args)
            elif args.command == "rate-video":
                result = cmd_rate_video(db, args)
            elif args.command == "suggest":
                result = await cmd_suggest(db, args, config)
            elif args.command == "quota-status":
                result = cmd_quota_status(db, args, config)
            else:
                logger.error("Unknown command: %s", args.command)
                return 1
        except ValueError as e:
            result = {"command": args.command, "success": False, "error": str(e)}

    if args.json:
        print(json.dumps(result, indent=2))
    else:
        _print_result(args, result)
    return 0 if result.get("success", True) else 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
