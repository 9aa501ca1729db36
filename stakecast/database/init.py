from __future__ import annotations

import logging

from .dbm import DBM
from .schema import metadata

logger = logging.getLogger(__name__)


async def initialize(dbm: DBM) -> None:
    """Create every market table that does not exist yet."""
    async with dbm.engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    logger.info({"market_db": {"event": "schema_ready", "url": _redact(dbm.url)}})


def _redact(url: str) -> str:
    # sqlite URLs carry no credentials; anything else keeps only scheme and host part
    if url.startswith("sqlite"):
        return url
    scheme, _, rest = url.partition("://")
    return f"{scheme}://***@{rest.rsplit('@', 1)[-1]}"
