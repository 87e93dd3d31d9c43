"""
Tests for keyword relevance scoring.
"""
from datetime import datetime, timezone

import pytest

from tubesuggest.discovery.models import RelevanceResult, Topic, VideoCandidate
from tubesuggest.discovery.relevance import NEUTRAL_RESULT, score_relevance


def _make_candidate(title="Test Video", description="", video_id="abc123"):
    return VideoCandidate(
        video_id=video_id,
        title=title,
        description=description,
        channel_id="UC123",
        channel_name="TestChannel",
        published_at=datetime(2025, 1, 1, tzinfo=timezone.utc),
    )


class TestTopicKeywords:
    def test_short_words_dropped(self):
        topic = Topic("t1", "AI in Machine Learning")
        assert topic.keywords == frozenset({"machine", "learning"})

    def test_lowercased(self):
        assert Topic("t1", "PYTHON Tips").keywords == frozenset({"python", "tips"})

    def test_all_short_words(self):
        assert Topic("t1", "AI").keywords == frozenset()

    def test_whitespace_only(self):
        assert Topic("t1", "   ").keywords == frozenset()


class TestScoreRelevance:
    def test_full_title_match_caps_at_ten(self):
        # 5 + 1.5 + 1.5 + (2 * 0.5) + 2.0 = 11.0 -> capped
        result = score_relevance(
            Topic("t1", "Machine Learning"),
            _make_candidate(title="Intro to Machine Learning"),
        )
        assert result.relevance_score == 10.0
        assert result.matched_keywords == frozenset({"machine", "learning"})

    def test_no_usable_keywords_is_neutral(self):
        result = score_relevance(Topic("t1", "AI"), _make_candidate(title="AI news"))
        assert result.relevance_score == 5.0
        assert result.matched_keywords == frozenset()

    def test_single_title_match(self):
        result = score_relevance(
            Topic("t1", "python"), _make_candidate(title="Advanced python")
        )
        # 5 + 1.5 + exact phrase 2.0
        assert result.relevance_score == pytest.approx(8.5)
        assert result.matched_keywords == frozenset({"python"})

    def test_description_only_match(self):
        result = score_relevance(
            Topic("t1", "rust async"),
            _make_candidate(title="Weekly show", description="Talking about rust today"),
        )
        assert result.relevance_score == pytest.approx(5.5)
        assert result.matched_keywords == frozenset({"rust"})

    def test_title_match_not_counted_again_in_description(self):
        result = score_relevance(
            Topic("t1", "guitar"),
            _make_candidate(title="Guitar lesson", description="guitar guitar"),
        )
        assert result.relevance_score == pytest.approx(5.0 + 1.5 + 2.0)

    def test_two_title_matches_without_phrase(self):
        result = score_relevance(
            Topic("t1", "learning machine"),
            _make_candidate(title="Machine basics and learning"),
        )
        # 5 + 1.5 + 1.5 + 2 * 0.5, the exact phrase is absent
        assert result.relevance_score == pytest.approx(9.0)

    def test_exact_phrase_bonus(self):
        # only "sea" is a keyword, so both titles get the same keyword points
        topic = Topic("t1", "go to sea")
        without = score_relevance(topic, _make_candidate(title="sea go"))
        with_phrase = score_relevance(topic, _make_candidate(title="we go to sea"))
        assert with_phrase.relevance_score - without.relevance_score == pytest.approx(2.0)

    def test_no_match_is_neutral(self):
        result = score_relevance(
            Topic("t1", "cooking"), _make_candidate(title="Car review", description="engine")
        )
        assert result.relevance_score == 5.0
        assert result.matched_keywords == frozenset()

    def test_substring_match(self):
        result = score_relevance(
            Topic("t1", "cook"), _make_candidate(title="Cooking at home")
        )
        assert "cook" in result.matched_keywords

    def test_deterministic(self):
        topic = Topic("t1", "home workout routine")
        candidate = _make_candidate(
            title="10 minute home workout", description="a full routine"
        )
        assert score_relevance(topic, candidate) == score_relevance(topic, candidate)

    def test_score_in_range(self):
        topic = Topic("t1", "one two three four five six")
        candidate = _make_candidate(title="one two three four five six")
        result = score_relevance(topic, candidate)
        assert 0.0 <= result.relevance_score <= 10.0

    def test_missing_title_raises(self):
        candidate = _make_candidate()
        object.__setattr__(candidate, "title", None)
        with pytest.raises(AttributeError):
            score_relevance(Topic("t1", "python"), candidate)


class TestRelevanceResult:
    def test_neutral_result(self):
        assert NEUTRAL_RESULT.relevance_score == 5.0
        assert NEUTRAL_RESULT.matched_keywords == frozenset()

    def test_frozen(self):
        result = RelevanceResult(relevance_score=7.0, matched_keywords={"a"})
        with pytest.raises(Exception):
            result.relevance_score = 1.0
