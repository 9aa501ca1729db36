from __future__ import annotations

from enum import Enum, IntEnum


class Sentiment(IntEnum):
    """Directional belief submitted with a stake.

    The integer values are part of the external contract and feed the
    weighted-sentiment average directly.
    """

    BEARISH = 1
    NEUTRAL = 2
    BULLISH = 3


class RoundPhase(str, Enum):
    OPEN = "open"
    AWAITING_RESOLUTION = "awaiting_resolution"
    RESOLVABLE = "resolvable"
    RESOLVED = "resolved"


class ErrorCategory(str, Enum):
    AUTHORIZATION = "authorization"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    PHASE = "phase"
    LEDGER = "ledger"


__all__ = ["Sentiment", "RoundPhase", "ErrorCategory"]
