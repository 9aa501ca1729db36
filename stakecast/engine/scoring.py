"""Hybrid accuracy scoring.

A prediction is scored on two axes against the realized price:

- Direction: did the submitted sentiment match the move from the round's
  initial price? Bullish wins on any non-negative move, bearish on any
  drop, neutral when the move stays within a 5% band.
- Price proximity: 100 minus the percentage error of the predicted price,
  floored at 0.

A correct direction averages the price accuracy with 100; a wrong one
halves it. All divisions truncate, so scores are reproducible on any
platform.
"""

from __future__ import annotations

from stakecast.shared.enums import Sentiment

from .arithmetic import abs_diff, clamp, floor_div
from .types import InvalidSentimentError, ValidationError


NEUTRAL_BAND_PERCENT = 5
MAX_ACCURACY = 100


def percent_change(actual_price: int, initial_price: int) -> int:
    """Absolute percentage move from initial to actual, truncated."""
    return floor_div(abs_diff(actual_price, initial_price) * 100, initial_price)


def is_direction_correct(sentiment: Sentiment | int, actual_price: int, initial_price: int) -> bool:
    try:
        sentiment = Sentiment(sentiment)
    except ValueError:
        raise InvalidSentimentError(f"unknown sentiment {sentiment!r}", sentiment=sentiment)

    if sentiment is Sentiment.BULLISH:
        return actual_price >= initial_price
    if sentiment is Sentiment.BEARISH:
        return actual_price < initial_price
    return percent_change(actual_price, initial_price) <= NEUTRAL_BAND_PERCENT


def price_accuracy(predicted_price: int, actual_price: int) -> int:
    """Price proximity in [0, 100].

    Returns 0 for an unset (zero) actual price. Errors above 100% clamp to 0.
    """
    if actual_price <= 0:
        return 0
    error_pct = floor_div(abs_diff(predicted_price, actual_price) * 100, actual_price)
    return clamp(MAX_ACCURACY - error_pct, 0, MAX_ACCURACY)


def accuracy_score(
    predicted_price: int,
    actual_price: int,
    sentiment: Sentiment | int,
    initial_price: int,
) -> int:
    """Combine direction and price proximity into a 0-100 accuracy score.

    Args:
        predicted_price: Price target submitted with the prediction
        actual_price: Realized price the round was resolved with
        sentiment: Submitted sentiment
        initial_price: Round's reference price at creation

    Returns:
        Integer accuracy score in [0, 100]

    Raises:
        ValidationError: If initial_price is zero
        InvalidSentimentError: If sentiment is not a known value
    """
    if initial_price <= 0:
        raise ValidationError("initial_price must be positive", initial_price=initial_price)

    price_score = price_accuracy(predicted_price, actual_price)
    if is_direction_correct(sentiment, actual_price, initial_price):
        return (price_score + MAX_ACCURACY) // 2
    return price_score // 2


__all__ = [
    "NEUTRAL_BAND_PERCENT",
    "MAX_ACCURACY",
    "percent_change",
    "is_direction_correct",
    "price_accuracy",
    "accuracy_score",
]
