"""
Persistent store for market state.

Holds the protocol state record, rounds, predictions, sentiment aggregates,
reputation and the escrow journal in one SQLite file.
"""
from .dbm import DBM
from .init import initialize

__all__ = ["initialize", "DBM"]
