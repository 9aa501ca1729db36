from .common import APIError, APIVersion, ErrorResponse, ResponseMeta, error_response
from .market import (
    ClaimReceipt,
    ClaimRewardRequest,
    CreateRoundRequest,
    PlatformStatsView,
    PredictionView,
    ReputationView,
    ResolveRoundRequest,
    RoundListView,
    RoundView,
    SentimentView,
    SubmitPredictionRequest,
)

__all__ = [
    "APIError",
    "APIVersion",
    "ErrorResponse",
    "ResponseMeta",
    "error_response",
    "ClaimReceipt",
    "ClaimRewardRequest",
    "CreateRoundRequest",
    "PlatformStatsView",
    "PredictionView",
    "ReputationView",
    "ResolveRoundRequest",
    "RoundListView",
    "RoundView",
    "SentimentView",
    "SubmitPredictionRequest",
]
