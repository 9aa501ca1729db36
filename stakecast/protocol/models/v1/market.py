"""API v1 market models: transition requests and read views.

Requests do only shape validation. Every protocol guard (sentiment range,
minimum stake, phase checks) is enforced by the round controller so that
the same error codes come back regardless of entry point.
"""
from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from stakecast.engine.aggregate import dominant_sentiment
from stakecast.engine.types import (
    ClaimResult,
    PlatformStats,
    Prediction,
    Reputation,
    Round,
    SentimentAggregate,
)
from stakecast.shared.enums import RoundPhase, Sentiment

from .common import APIVersion, ResponseMeta


class CreateRoundRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: APIVersion = Field(default=APIVersion.V1)
    caller: str = Field(min_length=1)
    asset_id: str = Field(min_length=1, max_length=20)
    duration_blocks: int = Field(ge=0, description="Blocks during which submissions are accepted")
    evaluation_blocks: int = Field(ge=0, description="Blocks between close and earliest resolution")
    initial_price: int = Field(ge=0)


class SubmitPredictionRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: APIVersion = Field(default=APIVersion.V1)
    caller: str = Field(min_length=1)
    asset_id: str = Field(min_length=1, max_length=20)
    round_id: int = Field(ge=0)
    sentiment: int = Field(description="1 bearish | 2 neutral | 3 bullish")
    predicted_price: int = Field(ge=0)
    stake_amount: int = Field(ge=0)


class ResolveRoundRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: APIVersion = Field(default=APIVersion.V1)
    caller: str = Field(min_length=1)
    asset_id: str = Field(min_length=1, max_length=20)
    round_id: int = Field(ge=0)
    final_price: int = Field(ge=0)


class ClaimRewardRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    version: APIVersion = Field(default=APIVersion.V1)
    caller: str = Field(min_length=1)
    asset_id: str = Field(min_length=1, max_length=20)
    round_id: int = Field(ge=0)


class RoundView(BaseModel):
    asset_id: str
    round_id: int
    start_block: int
    end_block: int
    target_block: int
    initial_price: int
    final_price: int
    total_stake: int
    resolved: bool
    creator: str
    phase: Optional[RoundPhase] = None

    @classmethod
    def from_record(cls, rnd: Round, phase: Optional[RoundPhase] = None) -> "RoundView":
        return cls(
            asset_id=rnd.asset_id,
            round_id=rnd.round_id,
            start_block=rnd.start_block,
            end_block=rnd.end_block,
            target_block=rnd.target_block,
            initial_price=rnd.initial_price,
            final_price=rnd.final_price,
            total_stake=rnd.total_stake,
            resolved=rnd.resolved,
            creator=rnd.creator,
            phase=phase,
        )


class RoundListView(BaseModel):
    rounds: List[RoundView] = Field(default_factory=list)


class PredictionView(BaseModel):
    asset_id: str
    round_id: int
    predictor: str
    sentiment: Sentiment
    predicted_price: int
    stake_amount: int
    submitted_at: int
    rewarded: bool

    @classmethod
    def from_record(cls, prediction: Prediction) -> "PredictionView":
        return cls(
            asset_id=prediction.asset_id,
            round_id=prediction.round_id,
            predictor=prediction.predictor,
            sentiment=prediction.sentiment,
            predicted_price=prediction.predicted_price,
            stake_amount=prediction.stake_amount,
            submitted_at=prediction.submitted_at,
            rewarded=prediction.rewarded,
        )


class SentimentView(BaseModel):
    asset_id: str
    round_id: int
    bearish_count: int
    neutral_count: int
    bullish_count: int
    total_predictions: int
    weighted_sentiment: int
    dominant: Optional[Sentiment] = None

    @classmethod
    def from_record(cls, aggregate: SentimentAggregate) -> "SentimentView":
        return cls(
            asset_id=aggregate.asset_id,
            round_id=aggregate.round_id,
            bearish_count=aggregate.bearish_count,
            neutral_count=aggregate.neutral_count,
            bullish_count=aggregate.bullish_count,
            total_predictions=aggregate.total_predictions,
            weighted_sentiment=aggregate.weighted_sentiment,
            dominant=dominant_sentiment(aggregate),
        )


class ReputationView(BaseModel):
    identity: str
    total_predictions: int
    correct_predictions: int
    total_earnings: int
    reputation_score: int = Field(ge=0, le=100)

    @classmethod
    def from_record(cls, record: Reputation) -> "ReputationView":
        return cls(
            identity=record.identity,
            total_predictions=record.total_predictions,
            correct_predictions=record.correct_predictions,
            total_earnings=record.total_earnings,
            reputation_score=record.reputation_score,
        )


class PlatformStatsView(BaseModel):
    total_rounds: int
    total_volume: int
    total_fees: int
    min_stake: int
    fee_percentage: int = Field(ge=0, le=100)

    @classmethod
    def from_record(cls, stats: PlatformStats) -> "PlatformStatsView":
        return cls(
            total_rounds=stats.total_rounds,
            total_volume=stats.total_volume,
            total_fees=stats.total_fees,
            min_stake=stats.min_stake,
            fee_percentage=stats.fee_percentage,
        )


class ClaimReceipt(BaseModel):
    meta: ResponseMeta = Field(default_factory=ResponseMeta)
    accuracy_score: int = Field(ge=0, le=100)
    reward_amount: int = Field(ge=0)
    protocol_fee: int = Field(ge=0)
    is_correct: bool
    receipt_hash: Optional[str] = None

    @classmethod
    def from_result(cls, result: ClaimResult, height: Optional[int] = None) -> "ClaimReceipt":
        return cls(
            meta=ResponseMeta(height=result.height if height is None else height),
            accuracy_score=result.accuracy_score,
            reward_amount=result.reward_amount,
            protocol_fee=result.protocol_fee,
            is_correct=result.is_correct,
            receipt_hash=result.receipt_hash,
        )


__all__ = [
    "CreateRoundRequest",
    "SubmitPredictionRequest",
    "ResolveRoundRequest",
    "ClaimRewardRequest",
    "RoundView",
    "RoundListView",
    "PredictionView",
    "SentimentView",
    "ReputationView",
    "PlatformStatsView",
    "ClaimReceipt",
]
