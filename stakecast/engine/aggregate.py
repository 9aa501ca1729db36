"""Streaming per-round sentiment aggregate.

The weighted sentiment is maintained with the recurrence

    new = (old * n + value) // (n + 1)

which re-truncates at every step. Stored aggregates depend on this exact
sequence, so it must not be replaced with a running sum.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from stakecast.shared.enums import Sentiment

from .types import InvalidSentimentError, SentimentAggregate


def empty_aggregate(asset_id: str, round_id: int) -> SentimentAggregate:
    return SentimentAggregate(asset_id=asset_id, round_id=round_id)


def accumulate(aggregate: SentimentAggregate, sentiment: Sentiment | int) -> SentimentAggregate:
    """Return the aggregate after one more accepted submission."""
    try:
        sentiment = Sentiment(sentiment)
    except ValueError:
        raise InvalidSentimentError(f"unknown sentiment {sentiment!r}", sentiment=sentiment)

    old_total = aggregate.total_predictions
    weighted = (aggregate.weighted_sentiment * old_total + int(sentiment)) // (old_total + 1)

    return replace(
        aggregate,
        bearish_count=aggregate.bearish_count + (sentiment is Sentiment.BEARISH),
        neutral_count=aggregate.neutral_count + (sentiment is Sentiment.NEUTRAL),
        bullish_count=aggregate.bullish_count + (sentiment is Sentiment.BULLISH),
        total_predictions=old_total + 1,
        weighted_sentiment=weighted,
    )


def dominant_sentiment(aggregate: SentimentAggregate) -> Optional[Sentiment]:
    """Most common sentiment; ties go to NEUTRAL, then BULLISH."""
    if aggregate.total_predictions == 0:
        return None
    counts = [
        (aggregate.neutral_count, Sentiment.NEUTRAL),
        (aggregate.bullish_count, Sentiment.BULLISH),
        (aggregate.bearish_count, Sentiment.BEARISH),
    ]
    best = max(count for count, _ in counts)
    for count, sentiment in counts:
        if count == best:
            return sentiment
    return None


def is_consistent(aggregate: SentimentAggregate) -> bool:
    return (
        aggregate.bearish_count + aggregate.neutral_count + aggregate.bullish_count
        == aggregate.total_predictions
    )


__all__ = ["empty_aggregate", "accumulate", "dominant_sentiment", "is_consistent"]
