"""
Keyword relevance scoring between a topic and a YouTube video.

Scores start from a neutral 5.0 and only ever go up, capped at 10.0:
  +1.5 per topic keyword found in the title
  +0.5 per topic keyword found only in the description
  +0.5 per title match when more than one keyword hit the title
  +2.0 when the whole topic name appears in the title
"""
import logging

from .models import (
    MAX_SCORE,
    NEUTRAL_SCORE,
    RelevanceResult,
    Topic,
    VideoCandidate,
)

logger = logging.getLogger(__name__)

TITLE_MATCH_POINTS = 1.5
DESCRIPTION_MATCH_POINTS = 0.5
MULTI_TITLE_MATCH_POINTS = 0.5
EXACT_PHRASE_POINTS = 2.0

NEUTRAL_RESULT = RelevanceResult(relevance_score=NEUTRAL_SCORE)


def score_relevance(topic: Topic, candidate: VideoCandidate) -> RelevanceResult:
    """Score how relevant a video is to a topic.

    Pure function of the topic name and the video's title and description.
    Raises on malformed input (e.g. a missing title); callers substitute
    NEUTRAL_RESULT in that case.

    Args:
        topic: The user's topic.
        candidate: The video to score.

    Returns:
        RelevanceResult with the score in [0, 10] and the matched keywords.
    """
    keywords = topic.keywords
    if not keywords:
        return NEUTRAL_RESULT

    title = candidate.title.lower()
    description = candidate.description.lower()

    score = NEUTRAL_SCORE
    title_matches = 0
    matched: set[str] = set()

    for keyword in keywords:
        if keyword in title:
            title_matches += 1
            matched.add(keyword)
            score += TITLE_MATCH_POINTS
        elif keyword in description:
            matched.add(keyword)
            score += DESCRIPTION_MATCH_POINTS

    # Stacks on top of the per-keyword title points
    if title_matches > 1:
        score += title_matches * MULTI_TITLE_MATCH_POINTS

    if topic.name.lower() in title:
        score += EXACT_PHRASE_POINTS

    return RelevanceResult(
        relevance_score=min(score, MAX_SCORE),
        matched_keywords=frozenset(matched),
    )
