"""Round lifecycle controller.

Entry point for every state transition of the market:

    create_round -> submit_prediction* -> resolve_round -> claim_reward*

Each public operation is one atomic transition. It holds the controller
lock and a single database transaction for its whole read-modify-write
sequence; any raised error rolls the transaction back so the store is left
exactly as it was. Ledger transfers are the last step before commit.

Phases of a round at block height h:
1. OPEN                 h <= end_block, submissions accepted
2. AWAITING_RESOLUTION  end_block < h < target_block
3. RESOLVABLE           h >= target_block, not yet resolved
4. RESOLVED             final price recorded, claims accepted
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from stakecast.config import Settings
from stakecast.database import repository as repo
from stakecast.database.dbm import DBM
from stakecast.engine.aggregate import accumulate, empty_aggregate, is_consistent
from stakecast.engine.arithmetic import checked_add, to_uint
from stakecast.engine.audit import TransitionAuditLogger
from stakecast.engine.reputation import apply_outcome, default_reputation
from stakecast.engine.rewards import MAX_FEE_PERCENTAGE, settle
from stakecast.engine.scoring import accuracy_score
from stakecast.engine.types import (
    AlreadyPredictedError,
    AlreadyResolvedError,
    AlreadyRewardedError,
    ClaimResult,
    InsufficientStakeError,
    InvalidAssetError,
    InvalidFeeError,
    InvalidSentimentError,
    InvalidTimeframeError,
    NotFoundError,
    OwnerOnlyError,
    PlatformStats,
    Prediction,
    PredictionActiveError,
    PredictionClosedError,
    ProtocolError,
    ProtocolState,
    Reputation,
    Round,
    SentimentAggregate,
    ValidationError,
)
from stakecast.shared.enums import RoundPhase, Sentiment

from .clock import BlockClock
from .ledger import EscrowLedger

logger = logging.getLogger(__name__)


def parse_sentiment(value: Any) -> Sentiment:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidSentimentError(f"sentiment must be 1, 2 or 3, got {value!r}", sentiment=value)
    try:
        return Sentiment(value)
    except ValueError:
        raise InvalidSentimentError(f"sentiment must be 1, 2 or 3, got {value!r}", sentiment=value)


def phase_at(rnd: Round, height: int) -> RoundPhase:
    if rnd.resolved:
        return RoundPhase.RESOLVED
    if height <= rnd.end_block:
        return RoundPhase.OPEN
    if height >= rnd.target_block:
        return RoundPhase.RESOLVABLE
    return RoundPhase.AWAITING_RESOLUTION


class RoundController:
    """Serialized state machine over rounds, predictions and reputation."""

    def __init__(
        self,
        dbm: DBM,
        ledger: EscrowLedger,
        clock: BlockClock,
        settings: Optional[Settings] = None,
        audit: Optional[TransitionAuditLogger] = None,
    ):
        self.dbm = dbm
        self.ledger = ledger
        self.clock = clock
        self.settings = settings or dbm.settings
        self.audit = audit or TransitionAuditLogger()
        self._lock = asyncio.Lock()

    # Transaction plumbing

    @asynccontextmanager
    async def _transition(self, operation: str) -> AsyncIterator[Tuple[AsyncSession, int]]:
        """Yield a session and the block height, both taken under the controller lock."""
        async with self._lock:
            height = self.clock.height()
            try:
                async with self.dbm.transaction() as session:
                    yield session, height
            except ProtocolError as e:
                self.audit.log_rejection(operation, height, e.code, e.message)
                raise

    async def _state(self, session: AsyncSession) -> ProtocolState:
        state = await repo.get_protocol_state(session)
        if state is None:
            state = self._initial_state()
            await repo.insert_protocol_state(session, state)
            logger.info({"protocol": {"event": "initialized", "owner": state.owner}})
        return state

    def _initial_state(self) -> ProtocolState:
        params = self.settings.protocol
        return ProtocolState(
            owner=self.settings.owner,
            total_rounds=0,
            total_volume=0,
            total_fees=0,
            min_stake=params.min_stake,
            fee_percentage=params.fee_percentage,
        )

    async def _round(self, session: AsyncSession, asset_id: str, round_id: int) -> Round:
        rnd = await repo.get_round(session, asset_id, round_id)
        if rnd is None:
            raise NotFoundError(f"round {asset_id}/{round_id} not found", asset_id=asset_id, round_id=round_id)
        return rnd

    def _validate_asset(self, asset_id: Any) -> str:
        max_len = self.settings.protocol.max_asset_id_length
        if not isinstance(asset_id, str) or not asset_id or len(asset_id) > max_len:
            raise InvalidAssetError(
                f"asset_id must be a non-empty string of at most {max_len} characters",
                asset_id=asset_id,
            )
        return asset_id

    # Transitions

    async def initialize_protocol(self) -> ProtocolState:
        """Create the protocol state record from settings if it does not exist."""
        async with self._transition("initialize_protocol") as (session, height):
            return await self._state(session)

    async def create_round(
        self,
        caller: str,
        asset_id: str,
        duration_blocks: int,
        evaluation_blocks: int,
        initial_price: int,
    ) -> int:
        """Open a new round and return its id.

        Submissions are accepted up to ``start + duration_blocks``; resolution
        becomes possible at ``start + duration_blocks + evaluation_blocks``.
        """
        async with self._transition("create_round") as (session, height):
            asset_id = self._validate_asset(asset_id)
            duration_blocks = to_uint(duration_blocks, "duration_blocks")
            evaluation_blocks = to_uint(evaluation_blocks, "evaluation_blocks")
            initial_price = to_uint(initial_price, "initial_price")
            if duration_blocks == 0 or evaluation_blocks == 0 or initial_price == 0:
                raise InvalidTimeframeError(
                    "duration_blocks, evaluation_blocks and initial_price must be positive",
                    duration_blocks=duration_blocks,
                    evaluation_blocks=evaluation_blocks,
                    initial_price=initial_price,
                )

            state = await self._state(session)
            end_block = checked_add(height, duration_blocks, "end_block")
            target_block = checked_add(end_block, evaluation_blocks, "target_block")
            round_id = checked_add(state.total_rounds, 1, "round_id")

            rnd = Round(
                asset_id=asset_id,
                round_id=round_id,
                start_block=height,
                end_block=end_block,
                target_block=target_block,
                initial_price=initial_price,
                final_price=0,
                total_stake=0,
                resolved=False,
                creator=caller,
            )
            await repo.insert_round(session, rnd)
            await repo.save_aggregate(session, empty_aggregate(asset_id, round_id))
            await repo.save_protocol_state(session, replace(state, total_rounds=round_id))

        self.audit.log_transition(
            "create_round",
            height,
            {
                "caller": caller,
                "asset_id": asset_id,
                "round_id": round_id,
                "end_block": end_block,
                "target_block": target_block,
                "initial_price": initial_price,
            },
        )
        return round_id

    async def submit_prediction(
        self,
        caller: str,
        asset_id: str,
        round_id: int,
        sentiment: int,
        predicted_price: int,
        stake_amount: int,
    ) -> Prediction:
        async with self._transition("submit_prediction") as (session, height):
            rnd = await self._round(session, asset_id, round_id)
            state = await self._state(session)

            sentiment = parse_sentiment(sentiment)
            predicted_price = to_uint(predicted_price, "predicted_price")
            stake_amount = to_uint(stake_amount, "stake_amount")
            if stake_amount < state.min_stake:
                raise InsufficientStakeError(
                    f"stake {stake_amount} below minimum {state.min_stake}",
                    stake_amount=stake_amount,
                    min_stake=state.min_stake,
                )
            if height > rnd.end_block:
                raise PredictionClosedError(
                    f"round {asset_id}/{round_id} closed at block {rnd.end_block}",
                    height=height,
                    end_block=rnd.end_block,
                )
            if await repo.get_prediction(session, asset_id, round_id, caller) is not None:
                raise AlreadyPredictedError(
                    f"{caller} already predicted in round {asset_id}/{round_id}",
                    predictor=caller,
                )
            if rnd.resolved:
                raise AlreadyResolvedError(f"round {asset_id}/{round_id} already resolved")

            total_stake = checked_add(rnd.total_stake, stake_amount, "total_stake")
            total_volume = checked_add(state.total_volume, stake_amount, "total_volume")

            prediction = Prediction(
                asset_id=asset_id,
                round_id=round_id,
                predictor=caller,
                sentiment=sentiment,
                predicted_price=predicted_price,
                stake_amount=stake_amount,
                submitted_at=height,
                rewarded=False,
            )
            await repo.insert_prediction(session, prediction)

            aggregate = await repo.get_aggregate(session, asset_id, round_id) or empty_aggregate(asset_id, round_id)
            await repo.save_aggregate(session, accumulate(aggregate, sentiment))
            await repo.save_round(session, replace(rnd, total_stake=total_stake))
            await repo.save_protocol_state(session, replace(state, total_volume=total_volume))

            await self.ledger.deposit(session, caller, stake_amount, memo=f"stake:{asset_id}:{round_id}")

        self.audit.log_transition(
            "submit_prediction",
            height,
            {
                "caller": caller,
                "asset_id": asset_id,
                "round_id": round_id,
                "sentiment": int(sentiment),
                "predicted_price": predicted_price,
                "stake_amount": stake_amount,
                "total_stake": total_stake,
            },
        )
        return prediction

    async def resolve_round(self, caller: str, asset_id: str, round_id: int, final_price: int) -> Round:
        async with self._transition("resolve_round") as (session, height):
            rnd = await self._round(session, asset_id, round_id)
            state = await self._state(session)

            if caller != state.owner and caller != rnd.creator:
                raise OwnerOnlyError(
                    f"{caller} may not resolve round {asset_id}/{round_id}",
                    caller=caller,
                )
            if height < rnd.target_block:
                raise PredictionActiveError(
                    f"round {asset_id}/{round_id} resolvable from block {rnd.target_block}",
                    height=height,
                    target_block=rnd.target_block,
                )
            if rnd.resolved:
                raise AlreadyResolvedError(f"round {asset_id}/{round_id} already resolved")
            final_price = to_uint(final_price, "final_price")
            if final_price == 0:
                raise InvalidTimeframeError("final_price must be positive", final_price=final_price)

            resolved = replace(rnd, final_price=final_price, resolved=True)
            await repo.save_round(session, resolved)

        self.audit.log_transition(
            "resolve_round",
            height,
            {
                "caller": caller,
                "asset_id": asset_id,
                "round_id": round_id,
                "final_price": final_price,
            },
        )
        return resolved

    async def claim_reward(self, caller: str, asset_id: str, round_id: int) -> ClaimResult:
        """Score the caller's prediction, pay out the net reward and update reputation.

        Raises:
            NotFoundError: Unknown round or no prediction from the caller
            PredictionActiveError: Round not resolved yet
            AlreadyRewardedError: Reward already claimed
        """
        async with self._transition("claim_reward") as (session, height):
            rnd = await self._round(session, asset_id, round_id)
            if not rnd.resolved or rnd.final_price == 0:
                raise PredictionActiveError(f"round {asset_id}/{round_id} not resolved yet")
            prediction = await repo.get_prediction(session, asset_id, round_id, caller)
            if prediction is None:
                raise NotFoundError(
                    f"no prediction from {caller} in round {asset_id}/{round_id}",
                    predictor=caller,
                )
            if prediction.rewarded:
                raise AlreadyRewardedError(f"{caller} already claimed round {asset_id}/{round_id}")
            state = await self._state(session)

            accuracy = accuracy_score(
                prediction.predicted_price,
                rnd.final_price,
                prediction.sentiment,
                rnd.initial_price,
            )
            breakdown = settle(accuracy, prediction.stake_amount, rnd.total_stake, state.fee_percentage)

            await repo.mark_rewarded(session, asset_id, round_id, caller)
            reputation = await repo.get_reputation(session, caller) or default_reputation(caller)
            await repo.save_reputation(
                session,
                apply_outcome(reputation, breakdown.is_correct, breakdown.net_reward),
            )
            await repo.save_protocol_state(
                session,
                replace(state, total_fees=checked_add(state.total_fees, breakdown.protocol_fee, "total_fees")),
            )

            await self.ledger.payout(session, caller, breakdown.net_reward, memo=f"reward:{asset_id}:{round_id}")

        receipt_hash = self.audit.log_transition(
            "claim_reward",
            height,
            {
                "caller": caller,
                "asset_id": asset_id,
                "round_id": round_id,
                "accuracy": breakdown.accuracy,
                "gross_reward": breakdown.gross_reward,
                "protocol_fee": breakdown.protocol_fee,
                "net_reward": breakdown.net_reward,
                "is_correct": breakdown.is_correct,
            },
        )
        return ClaimResult(
            accuracy_score=breakdown.accuracy,
            reward_amount=breakdown.net_reward,
            protocol_fee=breakdown.protocol_fee,
            is_correct=breakdown.is_correct,
            receipt_hash=receipt_hash,
            height=height,
        )

    async def set_fee_percentage(self, caller: str, fee_percentage: int) -> ProtocolState:
        async with self._transition("set_fee_percentage") as (session, height):
            state = await self._state(session)
            if caller != state.owner:
                raise OwnerOnlyError(f"{caller} is not the protocol owner", caller=caller)
            fee_percentage = to_uint(fee_percentage, "fee_percentage")
            if fee_percentage > MAX_FEE_PERCENTAGE:
                raise InvalidFeeError(
                    f"fee_percentage {fee_percentage} outside 0-{MAX_FEE_PERCENTAGE}",
                    fee_percentage=fee_percentage,
                )
            updated = replace(state, fee_percentage=fee_percentage)
            await repo.save_protocol_state(session, updated)

        self.audit.log_transition(
            "set_fee_percentage", height, {"caller": caller, "fee_percentage": fee_percentage}
        )
        return updated

    async def set_min_stake(self, caller: str, min_stake: int) -> ProtocolState:
        async with self._transition("set_min_stake") as (session, height):
            state = await self._state(session)
            if caller != state.owner:
                raise OwnerOnlyError(f"{caller} is not the protocol owner", caller=caller)
            min_stake = to_uint(min_stake, "min_stake")
            if min_stake == 0:
                raise ValidationError("min_stake must be positive", min_stake=min_stake)
            updated = replace(state, min_stake=min_stake)
            await repo.save_protocol_state(session, updated)

        self.audit.log_transition("set_min_stake", height, {"caller": caller, "min_stake": min_stake})
        return updated

    # Read-only views

    async def get_round(self, asset_id: str, round_id: int) -> Round:
        async with self.dbm.session() as session:
            return await self._round(session, asset_id, round_id)

    async def list_rounds(self, asset_id: Optional[str] = None) -> List[Round]:
        """All rounds in creation order, optionally for a single asset."""
        async with self.dbm.session() as session:
            return await repo.list_rounds(session, asset_id)

    async def get_prediction(self, asset_id: str, round_id: int, predictor: str) -> Prediction:
        async with self.dbm.session() as session:
            prediction = await repo.get_prediction(session, asset_id, round_id, predictor)
        if prediction is None:
            raise NotFoundError(
                f"no prediction from {predictor} in round {asset_id}/{round_id}",
                predictor=predictor,
            )
        return prediction

    async def get_sentiment(self, asset_id: str, round_id: int) -> SentimentAggregate:
        async with self.dbm.session() as session:
            aggregate = await repo.get_aggregate(session, asset_id, round_id)
        if aggregate is None:
            raise NotFoundError(f"no sentiment for round {asset_id}/{round_id}", asset_id=asset_id, round_id=round_id)
        return aggregate

    async def get_reputation(self, identity: str) -> Reputation:
        async with self.dbm.session() as session:
            record = await repo.get_reputation(session, identity)
        if record is None:
            raise NotFoundError(f"no reputation for {identity}", identity=identity)
        return record

    async def get_platform_stats(self) -> PlatformStats:
        async with self.dbm.session() as session:
            state = await repo.get_protocol_state(session)
        if state is None:
            state = self._initial_state()
        return PlatformStats(
            total_rounds=state.total_rounds,
            total_volume=state.total_volume,
            total_fees=state.total_fees,
            min_stake=state.min_stake,
            fee_percentage=state.fee_percentage,
        )

    async def round_phase(self, asset_id: str, round_id: int) -> RoundPhase:
        rnd = await self.get_round(asset_id, round_id)
        return phase_at(rnd, self.clock.height())

    async def check_round_invariants(self, asset_id: str, round_id: int) -> Dict[str, bool]:
        """Recompute the round's bookkeeping from its predictions.

        Returns a mapping of invariant name to whether it holds.
        """
        async with self.dbm.session() as session:
            rnd = await self._round(session, asset_id, round_id)
            staked = await repo.sum_round_stakes(session, asset_id, round_id)
            aggregate = await repo.get_aggregate(session, asset_id, round_id)
            predictions = await repo.list_predictions(session, asset_id, round_id)
        return {
            "total_stake_matches": staked == rnd.total_stake,
            "aggregate_counts_consistent": aggregate is not None and is_consistent(aggregate),
            "aggregate_matches_predictions": aggregate is not None
            and aggregate.total_predictions == len(predictions),
            "final_price_iff_resolved": (rnd.final_price > 0) == rnd.resolved,
        }


__all__ = ["RoundController", "parse_sentiment", "phase_at"]
