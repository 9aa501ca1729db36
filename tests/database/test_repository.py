"""Tests for the market store schema and repository helpers."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from stakecast.database import initialize
from stakecast.database import repository as repo
from stakecast.engine.types import Prediction, ProtocolState, Reputation, Round
from stakecast.shared.enums import Sentiment


def _round(round_id=1, **overrides):
    fields = dict(
        asset_id="BTC",
        round_id=round_id,
        start_block=100,
        end_block=110,
        target_block=115,
        initial_price=100,
        final_price=0,
        total_stake=0,
        resolved=False,
        creator="creator",
    )
    fields.update(overrides)
    return Round(**fields)


def _prediction(predictor="alice", **overrides):
    fields = dict(
        asset_id="BTC",
        round_id=1,
        predictor=predictor,
        sentiment=Sentiment.BULLISH,
        predicted_price=120,
        stake_amount=1_000_000,
        submitted_at=102,
        rewarded=False,
    )
    fields.update(overrides)
    return Prediction(**fields)


class TestSchema:
    @pytest.mark.asyncio
    async def test_initialize_is_idempotent(self, dbm):
        await initialize(dbm)
        async with dbm.session() as session:
            result = await session.execute(text("SELECT name FROM sqlite_master WHERE type = 'table'"))
            names = set(result.scalars().all())
        assert {
            "protocol_state",
            "prediction_round",
            "prediction",
            "sentiment_aggregate",
            "reputation",
            "escrow_journal",
        } <= names

    @pytest.mark.asyncio
    async def test_foreign_keys_enforced(self, dbm):
        with pytest.raises(IntegrityError):
            async with dbm.transaction() as session:
                await repo.insert_prediction(session, _prediction())

    @pytest.mark.asyncio
    async def test_resolved_requires_final_price(self, dbm):
        with pytest.raises(IntegrityError):
            async with dbm.transaction() as session:
                await repo.insert_round(session, _round(resolved=True, final_price=0))

    @pytest.mark.asyncio
    async def test_fee_bounds_enforced(self, dbm):
        state = ProtocolState("owner", 0, 0, 0, 1, 101)
        with pytest.raises(IntegrityError):
            async with dbm.transaction() as session:
                await repo.insert_protocol_state(session, state)


class TestRepository:
    @pytest.mark.asyncio
    async def test_round_round_trip_and_update(self, dbm):
        async with dbm.transaction() as session:
            await repo.insert_round(session, _round())
            await repo.save_round(session, _round(total_stake=5, final_price=130, resolved=True))

        async with dbm.session() as session:
            rnd = await repo.get_round(session, "BTC", 1)
            assert await repo.get_round(session, "ETH", 1) is None
        assert rnd == _round(total_stake=5, final_price=130, resolved=True)

    @pytest.mark.asyncio
    async def test_list_rounds_by_asset(self, dbm):
        async with dbm.transaction() as session:
            await repo.insert_round(session, _round(1))
            await repo.insert_round(session, _round(2, asset_id="ETH"))
            await repo.insert_round(session, _round(3))

        async with dbm.session() as session:
            assert [r.round_id for r in await repo.list_rounds(session)] == [1, 2, 3]
            assert [r.round_id for r in await repo.list_rounds(session, "BTC")] == [1, 3]

    @pytest.mark.asyncio
    async def test_predictions_and_stake_sum(self, dbm):
        async with dbm.transaction() as session:
            await repo.insert_round(session, _round())
            await repo.insert_prediction(session, _prediction("alice"))
            await repo.insert_prediction(session, _prediction("bob", sentiment=Sentiment.BEARISH, stake_amount=7))
            await repo.mark_rewarded(session, "BTC", 1, "bob")

        async with dbm.session() as session:
            predictions = await repo.list_predictions(session, "BTC", 1)
            staked = await repo.sum_round_stakes(session, "BTC", 1)
            empty = await repo.sum_round_stakes(session, "BTC", 2)

        assert [p.predictor for p in predictions] == ["alice", "bob"]
        assert predictions[1].sentiment is Sentiment.BEARISH
        assert predictions[1].rewarded
        assert staked == 1_000_007
        assert empty == 0

    @pytest.mark.asyncio
    async def test_duplicate_prediction_key(self, dbm):
        async with dbm.transaction() as session:
            await repo.insert_round(session, _round())
            await repo.insert_prediction(session, _prediction())
        with pytest.raises(IntegrityError):
            async with dbm.transaction() as session:
                await repo.insert_prediction(session, _prediction())

    @pytest.mark.asyncio
    async def test_reputation_upsert(self, dbm):
        async with dbm.transaction() as session:
            await repo.save_reputation(session, Reputation("alice", 1, 1, 10, 100))
            await repo.save_reputation(session, Reputation("alice", 2, 1, 15, 50))

        async with dbm.session() as session:
            assert await repo.get_reputation(session, "alice") == Reputation("alice", 2, 1, 15, 50)
            assert await repo.get_reputation(session, "bob") is None

    @pytest.mark.asyncio
    async def test_amounts_up_to_signed_64_bit(self, dbm):
        big = 2**63 - 1
        async with dbm.transaction() as session:
            await repo.insert_round(session, _round(initial_price=big, total_stake=big))
        async with dbm.session() as session:
            rnd = await repo.get_round(session, "BTC", 1)
        assert rnd.initial_price == big
        assert rnd.total_stake == big
