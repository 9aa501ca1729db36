"""Shared fixtures: temporary market store, manual clock, funded ledger."""

from __future__ import annotations

import pytest
import pytest_asyncio

from stakecast.config import Settings
from stakecast.config.protocol_params import ProtocolParams
from stakecast.database import DBM, initialize
from stakecast.database.dbm import build_sqlite_url
from stakecast.market import InMemoryLedger, ManualClock, RoundController

OWNER = "owner"
CREATOR = "creator"
START_HEIGHT = 100
FUNDED = 10**12


@pytest.fixture
def settings() -> Settings:
    return Settings(
        owner=OWNER,
        test_mode=True,
        protocol=ProtocolParams(min_stake=1_000_000, fee_percentage=5),
    )


@pytest_asyncio.fixture
async def dbm(tmp_path, settings):
    manager = DBM(settings, url=build_sqlite_url(str(tmp_path / "market.db")))
    await initialize(manager)
    yield manager
    await manager.dispose()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START_HEIGHT)


@pytest.fixture
def ledger() -> InMemoryLedger:
    return InMemoryLedger({"alice": FUNDED, "bob": FUNDED, "carol": FUNDED})


@pytest.fixture
def controller(dbm, ledger, clock, settings) -> RoundController:
    return RoundController(dbm, ledger, clock, settings)
