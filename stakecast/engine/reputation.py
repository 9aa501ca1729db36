"""Cumulative per-identity reputation.

Reputation never decays: the score is simply the share of correct calls
over an identity's full claim history.
"""

from __future__ import annotations

from dataclasses import replace

from .arithmetic import checked_add
from .types import DEFAULT_REPUTATION_SCORE, Reputation


def default_reputation(identity: str) -> Reputation:
    return Reputation(identity=identity)


def reputation_score(correct_predictions: int, total_predictions: int) -> int:
    if total_predictions == 0:
        return DEFAULT_REPUTATION_SCORE
    return correct_predictions * 100 // total_predictions


def apply_outcome(record: Reputation, is_correct: bool, net_earnings: int) -> Reputation:
    """Fold one claimed prediction into a reputation record."""
    total = record.total_predictions + 1
    correct = record.correct_predictions + (1 if is_correct else 0)
    return replace(
        record,
        total_predictions=total,
        correct_predictions=correct,
        total_earnings=checked_add(record.total_earnings, net_earnings, "total_earnings"),
        reputation_score=reputation_score(correct, total),
    )


__all__ = ["default_reputation", "reputation_score", "apply_outcome"]
