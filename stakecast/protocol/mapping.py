"""Map v1 requests onto controller transitions and records onto views.

``dispatch`` is the single boundary between wire shapes and the round
controller: protocol errors come back as an ``ErrorResponse`` envelope,
anything else propagates.
"""
from __future__ import annotations

from typing import Union

from pydantic import BaseModel

from stakecast.engine.types import ProtocolError
from stakecast.market.controller import RoundController

from .models.v1 import (
    ClaimReceipt,
    ClaimRewardRequest,
    CreateRoundRequest,
    ErrorResponse,
    PredictionView,
    ResolveRoundRequest,
    RoundView,
    SubmitPredictionRequest,
    error_response,
)

TransitionRequest = Union[CreateRoundRequest, SubmitPredictionRequest, ResolveRoundRequest, ClaimRewardRequest]


async def dispatch(controller: RoundController, request: TransitionRequest) -> BaseModel:
    try:
        return await _apply(controller, request)
    except ProtocolError as e:
        return error_response(e)


async def _apply(controller: RoundController, request: TransitionRequest) -> BaseModel:
    if isinstance(request, CreateRoundRequest):
        round_id = await controller.create_round(
            request.caller,
            request.asset_id,
            request.duration_blocks,
            request.evaluation_blocks,
            request.initial_price,
        )
        rnd = await controller.get_round(request.asset_id, round_id)
        return RoundView.from_record(rnd, await controller.round_phase(request.asset_id, round_id))
    if isinstance(request, SubmitPredictionRequest):
        prediction = await controller.submit_prediction(
            request.caller,
            request.asset_id,
            request.round_id,
            request.sentiment,
            request.predicted_price,
            request.stake_amount,
        )
        return PredictionView.from_record(prediction)
    if isinstance(request, ResolveRoundRequest):
        rnd = await controller.resolve_round(request.caller, request.asset_id, request.round_id, request.final_price)
        return RoundView.from_record(rnd, await controller.round_phase(request.asset_id, request.round_id))
    if isinstance(request, ClaimRewardRequest):
        result = await controller.claim_reward(request.caller, request.asset_id, request.round_id)
        return ClaimReceipt.from_result(result)
    raise TypeError(f"unsupported request type {type(request).__name__}")


__all__ = ["dispatch", "TransitionRequest", "ErrorResponse"]
