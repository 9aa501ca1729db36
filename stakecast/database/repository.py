from __future__ import annotations

from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stakecast.engine.types import (
    Prediction,
    ProtocolState,
    Reputation,
    Round,
    SentimentAggregate,
)
from stakecast.shared.enums import Sentiment

from .schema.market import (
    PredictionRow,
    ProtocolStateRow,
    ReputationRow,
    RoundRow,
    SentimentAggregateRow,
)


_STATE_ID = 1


# Row <-> record conversion


def _round_from_row(row: RoundRow) -> Round:
    return Round(
        asset_id=row.asset_id,
        round_id=row.round_id,
        start_block=row.start_block,
        end_block=row.end_block,
        target_block=row.target_block,
        initial_price=row.initial_price,
        final_price=row.final_price,
        total_stake=row.total_stake,
        resolved=bool(row.resolved),
        creator=row.creator,
    )


def _prediction_from_row(row: PredictionRow) -> Prediction:
    return Prediction(
        asset_id=row.asset_id,
        round_id=row.round_id,
        predictor=row.predictor,
        sentiment=Sentiment(row.sentiment),
        predicted_price=row.predicted_price,
        stake_amount=row.stake_amount,
        submitted_at=row.submitted_at,
        rewarded=bool(row.rewarded),
    )


def _aggregate_from_row(row: SentimentAggregateRow) -> SentimentAggregate:
    return SentimentAggregate(
        asset_id=row.asset_id,
        round_id=row.round_id,
        bearish_count=row.bearish_count,
        neutral_count=row.neutral_count,
        bullish_count=row.bullish_count,
        total_predictions=row.total_predictions,
        weighted_sentiment=row.weighted_sentiment,
    )


def _reputation_from_row(row: ReputationRow) -> Reputation:
    return Reputation(
        identity=row.identity,
        total_predictions=row.total_predictions,
        correct_predictions=row.correct_predictions,
        total_earnings=row.total_earnings,
        reputation_score=row.reputation_score,
    )


def _state_from_row(row: ProtocolStateRow) -> ProtocolState:
    return ProtocolState(
        owner=row.owner,
        total_rounds=row.total_rounds,
        total_volume=row.total_volume,
        total_fees=row.total_fees,
        min_stake=row.min_stake,
        fee_percentage=row.fee_percentage,
    )


# Protocol state


async def get_protocol_state(session: AsyncSession) -> Optional[ProtocolState]:
    row = await session.get(ProtocolStateRow, _STATE_ID)
    return _state_from_row(row) if row is not None else None


async def insert_protocol_state(session: AsyncSession, state: ProtocolState) -> None:
    session.add(
        ProtocolStateRow(
            id=_STATE_ID,
            owner=state.owner,
            total_rounds=state.total_rounds,
            total_volume=state.total_volume,
            total_fees=state.total_fees,
            min_stake=state.min_stake,
            fee_percentage=state.fee_percentage,
        )
    )
    await session.flush()


async def save_protocol_state(session: AsyncSession, state: ProtocolState) -> None:
    row = await session.get(ProtocolStateRow, _STATE_ID)
    if row is None:
        await insert_protocol_state(session, state)
        return
    row.owner = state.owner
    row.total_rounds = state.total_rounds
    row.total_volume = state.total_volume
    row.total_fees = state.total_fees
    row.min_stake = state.min_stake
    row.fee_percentage = state.fee_percentage
    await session.flush()


# Rounds


async def get_round(session: AsyncSession, asset_id: str, round_id: int) -> Optional[Round]:
    row = await session.get(RoundRow, (asset_id, round_id))
    return _round_from_row(row) if row is not None else None


async def insert_round(session: AsyncSession, rnd: Round) -> None:
    session.add(
        RoundRow(
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
        )
    )
    await session.flush()


async def save_round(session: AsyncSession, rnd: Round) -> None:
    """Write back the mutable round fields (stake total and resolution)."""
    row = await session.get(RoundRow, (rnd.asset_id, rnd.round_id))
    if row is None:
        raise LookupError(f"round {rnd.asset_id}/{rnd.round_id} vanished mid-transaction")
    row.total_stake = rnd.total_stake
    row.final_price = rnd.final_price
    row.resolved = rnd.resolved
    await session.flush()


async def list_rounds(session: AsyncSession, asset_id: str | None = None) -> List[Round]:
    stmt = select(RoundRow).order_by(RoundRow.round_id)
    if asset_id is not None:
        stmt = stmt.where(RoundRow.asset_id == asset_id)
    rows = await session.execute(stmt)
    return [_round_from_row(row) for row in rows.scalars().all()]


# Predictions


async def get_prediction(
    session: AsyncSession, asset_id: str, round_id: int, predictor: str
) -> Optional[Prediction]:
    row = await session.get(PredictionRow, (asset_id, round_id, predictor))
    return _prediction_from_row(row) if row is not None else None


async def insert_prediction(session: AsyncSession, prediction: Prediction) -> None:
    session.add(
        PredictionRow(
            asset_id=prediction.asset_id,
            round_id=prediction.round_id,
            predictor=prediction.predictor,
            sentiment=int(prediction.sentiment),
            predicted_price=prediction.predicted_price,
            stake_amount=prediction.stake_amount,
            submitted_at=prediction.submitted_at,
            rewarded=prediction.rewarded,
        )
    )
    await session.flush()


async def mark_rewarded(session: AsyncSession, asset_id: str, round_id: int, predictor: str) -> None:
    row = await session.get(PredictionRow, (asset_id, round_id, predictor))
    if row is None:
        raise LookupError(f"prediction {asset_id}/{round_id}/{predictor} vanished mid-transaction")
    row.rewarded = True
    await session.flush()


async def list_predictions(session: AsyncSession, asset_id: str, round_id: int) -> List[Prediction]:
    stmt = (
        select(PredictionRow)
        .where(PredictionRow.asset_id == asset_id)
        .where(PredictionRow.round_id == round_id)
        .order_by(PredictionRow.predictor)
    )
    rows = await session.execute(stmt)
    return [_prediction_from_row(row) for row in rows.scalars().all()]


async def sum_round_stakes(session: AsyncSession, asset_id: str, round_id: int) -> int:
    stmt = (
        select(func.coalesce(func.sum(PredictionRow.stake_amount), 0))
        .where(PredictionRow.asset_id == asset_id)
        .where(PredictionRow.round_id == round_id)
    )
    return int((await session.execute(stmt)).scalar_one())


# Sentiment aggregates


async def get_aggregate(session: AsyncSession, asset_id: str, round_id: int) -> Optional[SentimentAggregate]:
    row = await session.get(SentimentAggregateRow, (asset_id, round_id))
    return _aggregate_from_row(row) if row is not None else None


async def save_aggregate(session: AsyncSession, aggregate: SentimentAggregate) -> None:
    row = await session.get(SentimentAggregateRow, (aggregate.asset_id, aggregate.round_id))
    if row is None:
        row = SentimentAggregateRow(asset_id=aggregate.asset_id, round_id=aggregate.round_id)
        session.add(row)
    row.bearish_count = aggregate.bearish_count
    row.neutral_count = aggregate.neutral_count
    row.bullish_count = aggregate.bullish_count
    row.total_predictions = aggregate.total_predictions
    row.weighted_sentiment = aggregate.weighted_sentiment
    await session.flush()


# Reputation


async def get_reputation(session: AsyncSession, identity: str) -> Optional[Reputation]:
    row = await session.get(ReputationRow, identity)
    return _reputation_from_row(row) if row is not None else None


async def save_reputation(session: AsyncSession, record: Reputation) -> None:
    row = await session.get(ReputationRow, record.identity)
    if row is None:
        row = ReputationRow(identity=record.identity)
        session.add(row)
    row.total_predictions = record.total_predictions
    row.correct_predictions = record.correct_predictions
    row.total_earnings = record.total_earnings
    row.reputation_score = record.reputation_score
    await session.flush()


__all__ = [
    "get_protocol_state",
    "insert_protocol_state",
    "save_protocol_state",
    "get_round",
    "insert_round",
    "save_round",
    "list_rounds",
    "get_prediction",
    "insert_prediction",
    "mark_rewarded",
    "list_predictions",
    "sum_round_stakes",
    "get_aggregate",
    "save_aggregate",
    "get_reputation",
    "save_reputation",
]
