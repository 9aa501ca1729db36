"""Protocol parameters.

These values seed the persisted protocol state the first time a store is
initialized. After that the owner changes fee and minimum stake through
the controller, and the stored values win over configuration.

IMPORTANT: Replaying verifiers must start from the same parameters to
reproduce payouts.
"""

from __future__ import annotations

from pydantic import BaseModel, Field


class ProtocolParams(BaseModel):
    """Economic parameters of the market."""

    min_stake: int = Field(
        default=1_000_000,
        ge=1,
        le=2**63 - 1,
        description="Smallest stake accepted with a prediction (base units).",
    )
    fee_percentage: int = Field(
        default=5,
        ge=0,
        le=100,
        description="Percentage deducted from every gross reward before payout.",
    )
    max_asset_id_length: int = Field(
        default=20,
        ge=1,
        le=20,
        description="Maximum length of an asset identifier.",
    )


DEFAULT_PROTOCOL_PARAMS = ProtocolParams()


def get_protocol_params() -> ProtocolParams:
    return DEFAULT_PROTOCOL_PARAMS


__all__ = ["ProtocolParams", "DEFAULT_PROTOCOL_PARAMS", "get_protocol_params"]
