"""Guard failures and their all-or-nothing effect on stored state."""

import asyncio

import pytest
import pytest_asyncio

from stakecast.engine.types import (
    AlreadyPredictedError,
    AlreadyResolvedError,
    AlreadyRewardedError,
    AmountOverflowError,
    InsufficientEscrowError,
    InsufficientFundsError,
    InsufficientStakeError,
    InvalidAssetError,
    InvalidFeeError,
    InvalidSentimentError,
    InvalidTimeframeError,
    MAX_UINT,
    NotFoundError,
    OwnerOnlyError,
    PredictionActiveError,
    PredictionClosedError,
    ValidationError,
)
from stakecast.market import InMemoryLedger, RoundController

OWNER = "owner"
CREATOR = "creator"
STAKE = 1_000_000


class _BlockPerDepositLedger(InMemoryLedger):
    """Each accepted stake takes one block to land."""

    def __init__(self, clock, balances):
        super().__init__(balances)
        self.clock = clock

    async def deposit(self, session, identity, amount, memo=""):
        await super().deposit(session, identity, amount, memo=memo)
        self.clock.advance()


async def _snapshot(controller, ledger, asset_id="BTC", round_id=1):
    return (
        await controller.get_round(asset_id, round_id),
        await controller.get_sentiment(asset_id, round_id),
        await controller.get_platform_stats(),
        dict(ledger.balances),
        ledger.escrow,
        list(ledger.transfers),
    )


@pytest_asyncio.fixture
async def open_round(controller):
    return await controller.create_round(CREATOR, "BTC", 10, 5, 100)


class TestCreateRoundGuards:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("duration,evaluation,price", [(0, 5, 100), (10, 0, 100), (10, 5, 0)])
    async def test_zero_inputs(self, controller, duration, evaluation, price):
        with pytest.raises(InvalidTimeframeError):
            await controller.create_round(CREATOR, "BTC", duration, evaluation, price)
        assert (await controller.get_platform_stats()).total_rounds == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("asset_id", ["", "X" * 21, None])
    async def test_bad_asset_id(self, controller, asset_id):
        with pytest.raises(InvalidAssetError):
            await controller.create_round(CREATOR, asset_id, 10, 5, 100)

    @pytest.mark.asyncio
    async def test_twenty_character_asset_accepted(self, controller):
        assert await controller.create_round(CREATOR, "X" * 20, 10, 5, 100) == 1

    @pytest.mark.asyncio
    async def test_negative_duration(self, controller):
        with pytest.raises(ValidationError):
            await controller.create_round(CREATOR, "BTC", -1, 5, 100)

    @pytest.mark.asyncio
    async def test_window_overflow(self, controller):
        with pytest.raises(AmountOverflowError):
            await controller.create_round(CREATOR, "BTC", MAX_UINT, 5, 100)
        assert (await controller.get_platform_stats()).total_rounds == 0

    @pytest.mark.asyncio
    async def test_failed_create_does_not_consume_round_id(self, controller):
        with pytest.raises(InvalidTimeframeError):
            await controller.create_round(CREATOR, "BTC", 0, 5, 100)
        assert await controller.create_round(CREATOR, "BTC", 10, 5, 100) == 1


class TestSubmitGuards:
    @pytest.mark.asyncio
    async def test_unknown_round(self, controller):
        with pytest.raises(NotFoundError):
            await controller.submit_prediction("alice", "BTC", 99, 3, 120, STAKE)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("sentiment", [0, 4, True, "3", 2.0])
    async def test_invalid_sentiment_changes_nothing(self, controller, ledger, open_round, sentiment):
        before = await _snapshot(controller, ledger)
        with pytest.raises(InvalidSentimentError):
            await controller.submit_prediction("alice", "BTC", open_round, sentiment, 120, STAKE)
        assert await _snapshot(controller, ledger) == before

    @pytest.mark.asyncio
    async def test_stake_below_minimum(self, controller, ledger, open_round):
        before = await _snapshot(controller, ledger)
        with pytest.raises(InsufficientStakeError) as exc_info:
            await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE - 1)
        assert exc_info.value.details["min_stake"] == STAKE
        assert await _snapshot(controller, ledger) == before

    @pytest.mark.asyncio
    async def test_stake_exactly_minimum(self, controller, open_round):
        prediction = await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        assert prediction.stake_amount == STAKE

    @pytest.mark.asyncio
    async def test_closed_after_end_block(self, controller, ledger, clock, open_round):
        clock.set(111)
        before = await _snapshot(controller, ledger)
        with pytest.raises(PredictionClosedError):
            await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        assert await _snapshot(controller, ledger) == before

    @pytest.mark.asyncio
    async def test_duplicate_prediction(self, controller, ledger, open_round):
        await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        before = await _snapshot(controller, ledger)
        with pytest.raises(AlreadyPredictedError):
            await controller.submit_prediction("alice", "BTC", open_round, 1, 80, STAKE)
        assert await _snapshot(controller, ledger) == before

    @pytest.mark.asyncio
    async def test_same_identity_other_round(self, controller, open_round):
        other = await controller.create_round(CREATOR, "BTC", 10, 5, 100)
        await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        await controller.submit_prediction("alice", "BTC", other, 3, 120, STAKE)

    @pytest.mark.asyncio
    async def test_unfunded_identity_rolls_back(self, controller, ledger, open_round):
        before = await _snapshot(controller, ledger)
        with pytest.raises(InsufficientFundsError):
            await controller.submit_prediction("dave", "BTC", open_round, 3, 120, STAKE)
        with pytest.raises(NotFoundError):
            await controller.get_prediction("BTC", open_round, "dave")

        rnd, aggregate, stats, *_ = await _snapshot(controller, ledger)
        assert (rnd, aggregate, stats) == before[:3]

    @pytest.mark.asyncio
    async def test_rejected_submit_can_be_retried(self, controller, ledger, open_round):
        with pytest.raises(InsufficientFundsError):
            await controller.submit_prediction("dave", "BTC", open_round, 3, 120, STAKE)
        ledger.fund("dave", STAKE)
        await controller.submit_prediction("dave", "BTC", open_round, 3, 120, STAKE)
        assert (await controller.get_round("BTC", open_round)).total_stake == STAKE


class TestResolveGuards:
    @pytest.mark.asyncio
    async def test_stranger_cannot_resolve(self, controller, clock, open_round):
        clock.set(115)
        with pytest.raises(OwnerOnlyError):
            await controller.resolve_round("mallory", "BTC", open_round, 130)
        assert not (await controller.get_round("BTC", open_round)).resolved

    @pytest.mark.asyncio
    async def test_owner_can_resolve_any_round(self, controller, clock, open_round):
        clock.set(115)
        rnd = await controller.resolve_round(OWNER, "BTC", open_round, 130)
        assert rnd.resolved

    @pytest.mark.asyncio
    @pytest.mark.parametrize("height", [100, 110, 114])
    async def test_before_target_block(self, controller, clock, open_round, height):
        clock.set(height)
        with pytest.raises(PredictionActiveError):
            await controller.resolve_round(CREATOR, "BTC", open_round, 130)

    @pytest.mark.asyncio
    async def test_zero_final_price(self, controller, clock, open_round):
        clock.set(115)
        with pytest.raises(InvalidTimeframeError):
            await controller.resolve_round(CREATOR, "BTC", open_round, 0)
        assert not (await controller.get_round("BTC", open_round)).resolved

    @pytest.mark.asyncio
    async def test_second_resolution(self, controller, clock, open_round):
        clock.set(115)
        await controller.resolve_round(CREATOR, "BTC", open_round, 130)
        with pytest.raises(AlreadyResolvedError):
            await controller.resolve_round(OWNER, "BTC", open_round, 200)
        assert (await controller.get_round("BTC", open_round)).final_price == 130

    @pytest.mark.asyncio
    async def test_submit_after_resolution_is_closed(self, controller, clock, open_round):
        clock.set(115)
        await controller.resolve_round(CREATOR, "BTC", open_round, 130)
        with pytest.raises(PredictionClosedError):
            await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)


class TestClaimGuards:
    @pytest.mark.asyncio
    async def test_claim_before_resolution(self, controller, clock, open_round):
        await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        clock.set(120)
        with pytest.raises(PredictionActiveError):
            await controller.claim_reward("alice", "BTC", open_round)

    @pytest.mark.asyncio
    async def test_claim_without_prediction(self, controller, clock, open_round):
        await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        clock.set(115)
        await controller.resolve_round(CREATOR, "BTC", open_round, 130)
        with pytest.raises(NotFoundError):
            await controller.claim_reward("bob", "BTC", open_round)
        with pytest.raises(NotFoundError):
            await controller.get_reputation("bob")

    @pytest.mark.asyncio
    async def test_double_claim(self, controller, ledger, clock, open_round):
        await controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE)
        clock.set(115)
        await controller.resolve_round(CREATOR, "BTC", open_round, 130)
        await controller.claim_reward("alice", "BTC", open_round)

        balance = ledger.balance_of("alice")
        with pytest.raises(AlreadyRewardedError) as exc_info:
            await controller.claim_reward("alice", "BTC", open_round)
        assert isinstance(exc_info.value, AlreadyPredictedError)
        assert ledger.balance_of("alice") == balance
        assert (await controller.get_reputation("alice")).total_predictions == 1

    @pytest.mark.asyncio
    async def test_payout_beyond_escrow_rolls_back(self, controller, ledger, clock, open_round):
        """A perfect call with no fee is owed stake + 1% of the pool, more than escrow holds."""
        await controller.set_fee_percentage(OWNER, 0)
        await controller.submit_prediction("alice", "BTC", open_round, 3, 130, STAKE)
        clock.set(115)
        await controller.resolve_round(CREATOR, "BTC", open_round, 130)

        with pytest.raises(InsufficientEscrowError):
            await controller.claim_reward("alice", "BTC", open_round)

        assert not (await controller.get_prediction("BTC", open_round, "alice")).rewarded
        assert (await controller.get_platform_stats()).total_fees == 0
        with pytest.raises(NotFoundError):
            await controller.get_reputation("alice")
        assert ledger.escrow == STAKE


class TestOwnerConfiguration:
    @pytest.mark.asyncio
    async def test_fee_owner_only(self, controller):
        with pytest.raises(OwnerOnlyError):
            await controller.set_fee_percentage("mallory", 1)
        assert (await controller.get_platform_stats()).fee_percentage == 5

    @pytest.mark.asyncio
    async def test_fee_above_hundred(self, controller):
        with pytest.raises(InvalidFeeError):
            await controller.set_fee_percentage(OWNER, 101)
        assert (await controller.set_fee_percentage(OWNER, 100)).fee_percentage == 100

    @pytest.mark.asyncio
    async def test_min_stake_owner_only(self, controller):
        with pytest.raises(OwnerOnlyError):
            await controller.set_min_stake(CREATOR, 1)

    @pytest.mark.asyncio
    async def test_min_stake_positive(self, controller):
        with pytest.raises(ValidationError):
            await controller.set_min_stake(OWNER, 0)


class TestViews:
    @pytest.mark.asyncio
    async def test_missing_records(self, controller):
        with pytest.raises(NotFoundError):
            await controller.get_round("BTC", 1)
        with pytest.raises(NotFoundError):
            await controller.get_sentiment("BTC", 1)
        with pytest.raises(NotFoundError):
            await controller.get_prediction("BTC", 1, "alice")
        with pytest.raises(NotFoundError):
            await controller.round_phase("BTC", 1)

    @pytest.mark.asyncio
    async def test_round_keyed_by_asset(self, controller, open_round):
        with pytest.raises(NotFoundError):
            await controller.get_round("ETH", open_round)

    @pytest.mark.asyncio
    async def test_list_rounds(self, controller, open_round):
        await controller.create_round(CREATOR, "ETH", 10, 5, 100)
        await controller.create_round(CREATOR, "BTC", 20, 5, 100)

        listed = [(r.asset_id, r.round_id) for r in await controller.list_rounds()]
        assert listed == [("BTC", open_round), ("ETH", 2), ("BTC", 3)]
        assert [r.round_id for r in await controller.list_rounds("BTC")] == [open_round, 3]
        assert await controller.list_rounds("DOGE") == []


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_concurrent_submissions_serialize(self, controller, ledger, open_round):
        identities = [f"user{i}" for i in range(5)]
        for identity in identities:
            ledger.fund(identity, STAKE)

        await asyncio.gather(*[
            controller.submit_prediction(identity, "BTC", open_round, 1 + i % 3, 100, STAKE)
            for i, identity in enumerate(identities)
        ])

        assert (await controller.get_round("BTC", open_round)).total_stake == 5 * STAKE
        assert (await controller.get_sentiment("BTC", open_round)).total_predictions == 5
        checks = await controller.check_round_invariants("BTC", open_round)
        assert all(checks.values()), checks

    @pytest.mark.asyncio
    async def test_racing_duplicate_submissions(self, controller, ledger, open_round):
        results = await asyncio.gather(
            controller.submit_prediction("alice", "BTC", open_round, 3, 120, STAKE),
            controller.submit_prediction("alice", "BTC", open_round, 1, 80, STAKE),
            return_exceptions=True,
        )
        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], AlreadyPredictedError)
        assert ledger.escrow == STAKE

    @pytest.mark.asyncio
    async def test_queued_submission_uses_height_it_runs_at(self, dbm, clock, settings):
        ledger = _BlockPerDepositLedger(clock, {"alice": STAKE, "bob": STAKE})
        controller = RoundController(dbm, ledger, clock, settings)
        round_id = await controller.create_round(CREATOR, "BTC", 10, 5, 100)
        clock.set(110)

        alice, bob = await asyncio.gather(
            controller.submit_prediction("alice", "BTC", round_id, 3, 120, STAKE),
            controller.submit_prediction("bob", "BTC", round_id, 1, 80, STAKE),
            return_exceptions=True,
        )

        # alice's stake lands at 110 and moves the chain to 111 before bob runs
        assert alice.submitted_at == 110
        assert isinstance(bob, PredictionClosedError)
        assert bob.details["height"] == 111
        assert (await controller.get_round("BTC", round_id)).total_stake == STAKE
        assert ledger.balance_of("bob") == STAKE
