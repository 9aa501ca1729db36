"""Reward computation from accuracy, stake and pool size."""

from __future__ import annotations

from .arithmetic import clamp
from .types import InvalidFeeError, RewardBreakdown


CORRECT_THRESHOLD = 50
# Pool component is scaled down 100x relative to the stake component
POOL_BONUS_DIVISOR = 10_000
MAX_FEE_PERCENTAGE = 100


def gross_reward(accuracy: int, stake: int, total_pool: int) -> int:
    """Stake-proportional base plus a pool-proportional bonus."""
    accuracy = clamp(accuracy, 0, 100)
    base = stake * accuracy // 100
    bonus = total_pool * accuracy // POOL_BONUS_DIVISOR
    return base + bonus


def protocol_fee(gross: int, fee_percentage: int) -> int:
    if not 0 <= fee_percentage <= MAX_FEE_PERCENTAGE:
        raise InvalidFeeError(f"fee_percentage {fee_percentage} outside 0-100", fee_percentage=fee_percentage)
    return gross * fee_percentage // 100


def is_correct(accuracy: int) -> bool:
    return accuracy >= CORRECT_THRESHOLD


def settle(accuracy: int, stake: int, total_pool: int, fee_percentage: int) -> RewardBreakdown:
    """Compute the full payout breakdown for one claim.

    Args:
        accuracy: Accuracy score in [0, 100]
        stake: The claimant's stake
        total_pool: Round's total staked amount
        fee_percentage: Protocol fee in [0, 100]

    Returns:
        RewardBreakdown with gross, fee and net amounts
    """
    gross = gross_reward(accuracy, stake, total_pool)
    fee = protocol_fee(gross, fee_percentage)
    return RewardBreakdown(
        accuracy=accuracy,
        gross_reward=gross,
        protocol_fee=fee,
        net_reward=gross - fee,
        is_correct=is_correct(accuracy),
    )


__all__ = [
    "CORRECT_THRESHOLD",
    "POOL_BONUS_DIVISOR",
    "MAX_FEE_PERCENTAGE",
    "gross_reward",
    "protocol_fee",
    "is_correct",
    "settle",
]
