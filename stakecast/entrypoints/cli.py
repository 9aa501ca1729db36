"""Command line front end for a local market store.

Every invocation opens the SQLite store, applies one transition or view at
the block height given with ``--height``, prints the JSON result and exits.
Escrow transfers are recorded in the store's journal.
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Callable, Dict, List, Optional

import pydantic
from pydantic import BaseModel

from stakecast.config import Settings, load_settings, sanitize_dict
from stakecast.config.core import last_yaml_path
from stakecast.database import DBM, initialize
from stakecast.database.dbm import build_sqlite_url
from stakecast.engine.types import ProtocolError
from stakecast.market import JournalLedger, ManualClock, RoundController, phase_at
from stakecast.protocol.mapping import dispatch
from stakecast.protocol.models.v1 import (
    APIError,
    ClaimRewardRequest,
    CreateRoundRequest,
    ErrorResponse,
    PlatformStatsView,
    PredictionView,
    ReputationView,
    ResolveRoundRequest,
    RoundListView,
    RoundView,
    SentimentView,
    SubmitPredictionRequest,
    error_response,
)
from stakecast.shared.enums import ErrorCategory
from stakecast.shared.logging import configure_logging, setup_events_logger

logger = logging.getLogger("stakecast.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="stakecast", description="Staking prediction market")
    parser.add_argument("--config", type=str, default=None, help="YAML settings file")
    parser.add_argument("--db", type=str, default=None, help="SQLite file (overrides settings)")
    parser.add_argument("--height", type=int, default=0, help="Current block height")
    parser.add_argument("--caller", type=str, default=None, help="Calling identity (defaults to owner)")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init", help="Create the schema and protocol state")

    p = sub.add_parser("create-round")
    p.add_argument("asset_id")
    p.add_argument("duration_blocks", type=int)
    p.add_argument("evaluation_blocks", type=int)
    p.add_argument("initial_price", type=int)

    p = sub.add_parser("submit")
    p.add_argument("asset_id")
    p.add_argument("round_id", type=int)
    p.add_argument("sentiment", type=int, help="1 bearish, 2 neutral, 3 bullish")
    p.add_argument("predicted_price", type=int)
    p.add_argument("stake_amount", type=int)

    p = sub.add_parser("resolve")
    p.add_argument("asset_id")
    p.add_argument("round_id", type=int)
    p.add_argument("final_price", type=int)

    p = sub.add_parser("claim")
    p.add_argument("asset_id")
    p.add_argument("round_id", type=int)

    p = sub.add_parser("show-round")
    p.add_argument("asset_id")
    p.add_argument("round_id", type=int)

    p = sub.add_parser("list-rounds")
    p.add_argument("--asset", type=str, default=None, help="Only rounds for this asset")

    p = sub.add_parser("show-prediction")
    p.add_argument("asset_id")
    p.add_argument("round_id", type=int)
    p.add_argument("predictor")

    p = sub.add_parser("show-sentiment")
    p.add_argument("asset_id")
    p.add_argument("round_id", type=int)

    p = sub.add_parser("show-reputation")
    p.add_argument("identity")

    sub.add_parser("stats")

    p = sub.add_parser("set-fee")
    p.add_argument("fee_percentage", type=int)

    p = sub.add_parser("set-min-stake")
    p.add_argument("min_stake", type=int)

    return parser


async def _views(controller: RoundController, args: argparse.Namespace) -> BaseModel:
    if args.command == "show-round":
        rnd = await controller.get_round(args.asset_id, args.round_id)
        return RoundView.from_record(rnd, await controller.round_phase(args.asset_id, args.round_id))
    if args.command == "list-rounds":
        height = controller.clock.height()
        rounds = await controller.list_rounds(args.asset)
        return RoundListView(rounds=[RoundView.from_record(rnd, phase_at(rnd, height)) for rnd in rounds])
    if args.command == "show-prediction":
        return PredictionView.from_record(await controller.get_prediction(args.asset_id, args.round_id, args.predictor))
    if args.command == "show-sentiment":
        return SentimentView.from_record(await controller.get_sentiment(args.asset_id, args.round_id))
    if args.command == "show-reputation":
        return ReputationView.from_record(await controller.get_reputation(args.identity))
    raise ValueError(f"not a view command: {args.command}")


def _request(args: argparse.Namespace, caller: str) -> Optional[BaseModel]:
    builders: Dict[str, Callable[[], BaseModel]] = {
        "create-round": lambda: CreateRoundRequest(
            caller=caller,
            asset_id=args.asset_id,
            duration_blocks=args.duration_blocks,
            evaluation_blocks=args.evaluation_blocks,
            initial_price=args.initial_price,
        ),
        "submit": lambda: SubmitPredictionRequest(
            caller=caller,
            asset_id=args.asset_id,
            round_id=args.round_id,
            sentiment=args.sentiment,
            predicted_price=args.predicted_price,
            stake_amount=args.stake_amount,
        ),
        "resolve": lambda: ResolveRoundRequest(
            caller=caller, asset_id=args.asset_id, round_id=args.round_id, final_price=args.final_price
        ),
        "claim": lambda: ClaimRewardRequest(caller=caller, asset_id=args.asset_id, round_id=args.round_id),
    }
    builder = builders.get(args.command)
    return builder() if builder else None


async def run(args: argparse.Namespace, settings: Settings) -> BaseModel:
    url = build_sqlite_url(args.db) if args.db else None
    dbm = DBM(settings, url=url)
    try:
        await initialize(dbm)
        controller = RoundController(dbm, JournalLedger(), ManualClock(args.height), settings)
        caller = args.caller or settings.owner

        try:
            request = _request(args, caller)
        except pydantic.ValidationError as e:
            return ErrorResponse(
                error=APIError(
                    code="invalid_request",
                    category=ErrorCategory.VALIDATION,
                    message=str(e.errors()[0].get("msg", "invalid request")),
                    details={"fields": ",".join(str(err["loc"][-1]) for err in e.errors())},
                )
            )
        if request is not None:
            return await dispatch(controller, request)

        try:
            if args.command == "init":
                await controller.initialize_protocol()
                return PlatformStatsView.from_record(await controller.get_platform_stats())
            if args.command == "stats":
                return PlatformStatsView.from_record(await controller.get_platform_stats())
            if args.command == "set-fee":
                await controller.set_fee_percentage(caller, args.fee_percentage)
                return PlatformStatsView.from_record(await controller.get_platform_stats())
            if args.command == "set-min-stake":
                await controller.set_min_stake(caller, args.min_stake)
                return PlatformStatsView.from_record(await controller.get_platform_stats())
            return await _views(controller, args)
        except ProtocolError as e:
            return error_response(e)
    finally:
        await dbm.dispose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = load_settings(args.config)

    configure_logging(settings.logging.level, settings.logging.json_logs)
    if settings.logging.events_dir:
        setup_events_logger(settings.logging.events_dir, settings.logging.events_retention_size)
    logger.debug({"settings": sanitize_dict(settings.model_dump()), "config_file": last_yaml_path()})

    result = asyncio.run(run(args, settings))
    print(json.dumps(result.model_dump(mode="json"), indent=2, sort_keys=True))
    return 1 if isinstance(result, ErrorResponse) else 0


if __name__ == "__main__":
    sys.exit(main())
