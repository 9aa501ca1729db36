"""Tests for the streaming sentiment aggregate."""

import pytest

from stakecast.engine.aggregate import accumulate, dominant_sentiment, empty_aggregate, is_consistent
from stakecast.engine.types import InvalidSentimentError
from stakecast.shared.enums import Sentiment


def _feed(*sentiments):
    aggregate = empty_aggregate("BTC", 1)
    for s in sentiments:
        aggregate = accumulate(aggregate, s)
    return aggregate


class TestAccumulate:
    def test_first_submission_sets_average(self):
        aggregate = _feed(Sentiment.BULLISH)
        assert aggregate.bullish_count == 1
        assert aggregate.total_predictions == 1
        assert aggregate.weighted_sentiment == 3

    def test_counts_track_each_sentiment(self):
        aggregate = _feed(1, 1, 2, 3, 3, 3)
        assert (aggregate.bearish_count, aggregate.neutral_count, aggregate.bullish_count) == (2, 1, 3)
        assert aggregate.total_predictions == 6
        assert is_consistent(aggregate)

    def test_recurrence_retruncates_each_step(self):
        """[1, 2, 3] averages to 2 exactly, the stepwise recurrence yields 1."""
        aggregate = _feed(1, 2, 3)
        # 1 -> (1*1 + 2) // 2 = 1 -> (1*2 + 3) // 3 = 1
        assert aggregate.weighted_sentiment == 1

    def test_recurrence_order_dependent(self):
        assert _feed(3, 1, 1).weighted_sentiment == 1
        assert _feed(3, 1, 3).weighted_sentiment == 2

    def test_does_not_mutate_input(self):
        base = empty_aggregate("BTC", 1)
        accumulate(base, Sentiment.NEUTRAL)
        assert base.total_predictions == 0

    def test_invalid_sentiment(self):
        with pytest.raises(InvalidSentimentError):
            accumulate(empty_aggregate("BTC", 1), 4)


class TestDominantSentiment:
    def test_empty(self):
        assert dominant_sentiment(empty_aggregate("BTC", 1)) is None

    def test_majority(self):
        assert dominant_sentiment(_feed(1, 1, 3)) is Sentiment.BEARISH

    def test_tie_prefers_neutral(self):
        assert dominant_sentiment(_feed(1, 2, 3)) is Sentiment.NEUTRAL

    def test_tie_without_neutral_prefers_bullish(self):
        assert dominant_sentiment(_feed(1, 3)) is Sentiment.BULLISH
