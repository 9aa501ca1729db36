from .base import Base, metadata
from .market import (
    EscrowJournalRow,
    PredictionRow,
    ProtocolStateRow,
    ReputationRow,
    RoundRow,
    SentimentAggregateRow,
)

__all__ = [
    "Base",
    "metadata",
    "EscrowJournalRow",
    "PredictionRow",
    "ProtocolStateRow",
    "ReputationRow",
    "RoundRow",
    "SentimentAggregateRow",
]
