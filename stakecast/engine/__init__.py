"""Pure market engines: scoring, rewards, aggregates and reputation.

Nothing in this package touches storage. The round controller feeds these
functions with records read inside its transaction and writes the results
back in the same transaction.
"""

from .aggregate import accumulate, dominant_sentiment, empty_aggregate
from .reputation import apply_outcome, default_reputation
from .rewards import gross_reward, is_correct, protocol_fee, settle
from .scoring import accuracy_score, is_direction_correct, price_accuracy

__all__ = [
    "accumulate",
    "dominant_sentiment",
    "empty_aggregate",
    "apply_outcome",
    "default_reputation",
    "gross_reward",
    "is_correct",
    "protocol_fee",
    "settle",
    "accuracy_score",
    "is_direction_correct",
    "price_accuracy",
]
