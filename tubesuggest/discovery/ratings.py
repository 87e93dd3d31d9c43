"""
Rating-derived exclusion and boost data for one user.

A 1-star rating on a channel or video removes it from suggestions for
good; 2-5 star channel ratings are exposed as a boost map for callers.
"""
import logging

from .models import RatingExclusions
from .providers import RatingProvider

logger = logging.getLogger(__name__)

EXCLUDED_STARS = 1
MIN_STARS = 1
MAX_STARS = 5


class RatingIndex:
    """Builds per-user exclusions from rating history."""

    def __init__(self, ratings: RatingProvider):
        self.ratings = ratings

    def build_exclusions(self, user_id: str) -> RatingExclusions:
        """Build exclusion sets and the channel boost map for a user.

        Any failure reading ratings yields empty exclusions: the run goes on
        and includes everything rather than aborting.
        """
        try:
            channel_ratings = self.ratings.get_channel_ratings(user_id)
            low_rated_channels = self.ratings.get_low_rated_channel_ids(user_id)
            video_ratings = self.ratings.get_video_ratings(user_id)
        except Exception as e:
            logger.error("Failed to load ratings for user %s: %s", user_id, e)
            return RatingExclusions()

        excluded_channels = set(low_rated_channels)
        channel_boost: dict[str, int] = {}
        for channel_id, stars in channel_ratings.items():
            if not MIN_STARS <= stars <= MAX_STARS:
                logger.warning(
                    "Ignoring out-of-range rating %s for channel %s", stars, channel_id
                )
                continue
            if stars == EXCLUDED_STARS:
                excluded_channels.add(channel_id)
            else:
                channel_boost[channel_id] = stars

        # A channel in the low-rated list is never boosted
        for channel_id in excluded_channels:
            channel_boost.pop(channel_id, None)

        excluded_videos = {
            video_id for video_id, stars in video_ratings.items()
            if stars == EXCLUDED_STARS
        }

        logger.info(
            "Ratings for user %s: %d excluded channels, %d excluded videos, "
            "%d boosted channels",
            user_id,
            len(excluded_channels),
            len(excluded_videos),
            len(channel_boost),
        )
        return RatingExclusions(
            excluded_channel_ids=frozenset(excluded_channels),
            excluded_video_ids=frozenset(excluded_videos),
            channel_boost=channel_boost,
        )
