from .clock import BlockClock, ManualClock
from .controller import RoundController, parse_sentiment, phase_at
from .ledger import EscrowLedger, InMemoryLedger, JournalLedger

__all__ = [
    "BlockClock",
    "ManualClock",
    "RoundController",
    "parse_sentiment",
    "phase_at",
    "EscrowLedger",
    "InMemoryLedger",
    "JournalLedger",
]
