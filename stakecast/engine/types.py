"""Type definitions, records and errors for the market engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from stakecast.shared.enums import ErrorCategory, Sentiment


# Largest amount/price/height the store can hold (signed 64-bit column)
MAX_UINT = 2**63 - 1
MAX_ASSET_ID_LENGTH = 20
DEFAULT_REPUTATION_SCORE = 50


# Errors


class ProtocolError(Exception):
    """Base class for every guard failure raised by a transition.

    A raised ProtocolError always aborts the whole transition; nothing it
    touched is committed.
    """

    code: str = "protocol_error"
    category: ErrorCategory = ErrorCategory.VALIDATION

    def __init__(self, message: str = "", **details: Any):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details: Dict[str, Any] = details

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "category": self.category.value,
            "message": self.message,
            "details": self.details or None,
        }


class OwnerOnlyError(ProtocolError):
    code = "owner_only"
    category = ErrorCategory.AUTHORIZATION


class NotFoundError(ProtocolError):
    code = "not_found"
    category = ErrorCategory.NOT_FOUND


class ValidationError(ProtocolError):
    """Raised when input validation fails."""

    code = "validation_error"
    category = ErrorCategory.VALIDATION


class InsufficientStakeError(ValidationError):
    code = "insufficient_stake"


class InvalidSentimentError(ValidationError):
    code = "invalid_sentiment"


class InvalidTimeframeError(ValidationError):
    code = "invalid_timeframe"


class InvalidFeeError(ValidationError):
    code = "invalid_fee"


class InvalidAssetError(ValidationError):
    code = "invalid_asset"


class AmountOverflowError(ValidationError):
    code = "amount_overflow"


class PhaseError(ProtocolError):
    code = "phase_error"
    category = ErrorCategory.PHASE


class PredictionClosedError(PhaseError):
    code = "prediction_closed"


class PredictionActiveError(PhaseError):
    code = "prediction_active"


class AlreadyResolvedError(PhaseError):
    code = "already_resolved"


class AlreadyPredictedError(PhaseError):
    code = "already_predicted"


class AlreadyRewardedError(AlreadyPredictedError):
    """Second claim on a prediction. Matches AlreadyPredictedError handlers."""

    code = "already_rewarded"


class LedgerError(ProtocolError):
    code = "ledger_error"
    category = ErrorCategory.LEDGER


class InsufficientFundsError(LedgerError):
    code = "insufficient_funds"


class InsufficientEscrowError(LedgerError):
    code = "insufficient_escrow"


# Records


@dataclass(frozen=True)
class Round:
    asset_id: str
    round_id: int
    start_block: int
    end_block: int  # last height accepting submissions
    target_block: int  # first height at which resolution is allowed
    initial_price: int
    final_price: int
    total_stake: int
    resolved: bool
    creator: str


@dataclass(frozen=True)
class Prediction:
    asset_id: str
    round_id: int
    predictor: str
    sentiment: Sentiment
    predicted_price: int
    stake_amount: int
    submitted_at: int
    rewarded: bool


@dataclass(frozen=True)
class SentimentAggregate:
    asset_id: str
    round_id: int
    bearish_count: int = 0
    neutral_count: int = 0
    bullish_count: int = 0
    total_predictions: int = 0
    weighted_sentiment: int = 0


@dataclass(frozen=True)
class Reputation:
    identity: str
    total_predictions: int = 0
    correct_predictions: int = 0
    total_earnings: int = 0
    reputation_score: int = DEFAULT_REPUTATION_SCORE


@dataclass(frozen=True)
class ProtocolState:
    owner: str
    total_rounds: int
    total_volume: int
    total_fees: int
    min_stake: int
    fee_percentage: int


@dataclass(frozen=True)
class RewardBreakdown:
    accuracy: int
    gross_reward: int
    protocol_fee: int
    net_reward: int
    is_correct: bool


@dataclass(frozen=True)
class ClaimResult:
    accuracy_score: int
    reward_amount: int
    protocol_fee: int
    is_correct: bool
    receipt_hash: Optional[str] = None
    height: Optional[int] = None


@dataclass(frozen=True)
class PlatformStats:
    total_rounds: int
    total_volume: int
    total_fees: int
    min_stake: int
    fee_percentage: int


__all__ = [
    "MAX_UINT",
    "MAX_ASSET_ID_LENGTH",
    "DEFAULT_REPUTATION_SCORE",
    "ProtocolError",
    "OwnerOnlyError",
    "NotFoundError",
    "ValidationError",
    "InsufficientStakeError",
    "InvalidSentimentError",
    "InvalidTimeframeError",
    "InvalidFeeError",
    "InvalidAssetError",
    "AmountOverflowError",
    "PhaseError",
    "PredictionClosedError",
    "PredictionActiveError",
    "AlreadyResolvedError",
    "AlreadyPredictedError",
    "AlreadyRewardedError",
    "LedgerError",
    "InsufficientFundsError",
    "InsufficientEscrowError",
    "Round",
    "Prediction",
    "SentimentAggregate",
    "Reputation",
    "ProtocolState",
    "RewardBreakdown",
    "ClaimResult",
    "PlatformStats",
]
