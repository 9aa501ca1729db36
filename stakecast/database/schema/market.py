"""Market state tables: protocol state, rounds, predictions, aggregates, reputation."""

from __future__ import annotations

from sqlalchemy import BigInteger, Boolean, CheckConstraint, ForeignKeyConstraint, Index, Integer, SmallInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class ProtocolStateRow(Base):
    __tablename__ = "protocol_state"

    id: Mapped[int] = mapped_column(
        Integer,
        primary_key=True,
        comment="Always 1; the table holds a single configuration record",
    )
    owner: Mapped[str] = mapped_column(String(128), nullable=False, comment="Protocol owner identity")
    total_rounds: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Round id counter; last allocated round id",
    )
    total_volume: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Sum of all accepted stakes across rounds",
    )
    total_fees: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
        comment="Sum of protocol fees withheld from claims",
    )
    min_stake: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Minimum accepted stake")
    fee_percentage: Mapped[int] = mapped_column(SmallInteger, nullable=False, comment="Protocol fee percent")

    __table_args__ = (
        CheckConstraint("id = 1", name="single_row"),
        CheckConstraint("fee_percentage BETWEEN 0 AND 100", name="fee_bounds"),
        {"comment": "Process-wide counters and owner-gated configuration"},
    )


class RoundRow(Base):
    __tablename__ = "prediction_round"

    asset_id: Mapped[str] = mapped_column(String(20), primary_key=True, comment="Asset identifier")
    round_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, comment="Monotonic round id")
    start_block: Mapped[int] = mapped_column(BigInteger, nullable=False)
    end_block: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Last height accepting submissions")
    target_block: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Earliest resolution height")
    initial_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    final_price: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0, comment="0 until resolved")
    total_stake: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    resolved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    creator: Mapped[str] = mapped_column(String(128), nullable=False)

    __table_args__ = (
        CheckConstraint("end_block >= start_block", name="end_after_start"),
        CheckConstraint("target_block >= end_block", name="target_after_end"),
        CheckConstraint("initial_price > 0", name="initial_price_positive"),
        CheckConstraint("(resolved = 1) = (final_price > 0)", name="final_price_iff_resolved"),
        Index("ix_prediction_round_round_id", "round_id"),
        {"comment": "Prediction rounds keyed by (asset, round id)"},
    )


class PredictionRow(Base):
    __tablename__ = "prediction"

    asset_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    round_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    predictor: Mapped[str] = mapped_column(String(128), primary_key=True)
    sentiment: Mapped[int] = mapped_column(SmallInteger, nullable=False, comment="1 bearish, 2 neutral, 3 bullish")
    predicted_price: Mapped[int] = mapped_column(BigInteger, nullable=False)
    stake_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    submitted_at: Mapped[int] = mapped_column(BigInteger, nullable=False, comment="Submission block height")
    rewarded: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        ForeignKeyConstraint(
            ["asset_id", "round_id"],
            ["prediction_round.asset_id", "prediction_round.round_id"],
            name="fk_prediction_round",
        ),
        CheckConstraint("sentiment BETWEEN 1 AND 3", name="sentiment_range"),
        Index("ix_prediction_predictor", "predictor"),
        {"comment": "One prediction per (round, predictor)"},
    )


class SentimentAggregateRow(Base):
    __tablename__ = "sentiment_aggregate"

    asset_id: Mapped[str] = mapped_column(String(20), primary_key=True)
    round_id: Mapped[int] = mapped_column(BigInteger, primary_key=True)
    bearish_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    neutral_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bullish_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_predictions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    weighted_sentiment: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        ForeignKeyConstraint(
            ["asset_id", "round_id"],
            ["prediction_round.asset_id", "prediction_round.round_id"],
            name="fk_sentiment_aggregate_round",
        ),
        CheckConstraint(
            "bearish_count + neutral_count + bullish_count = total_predictions",
            name="counts_sum",
        ),
        {"comment": "Streaming sentiment counts per round"},
    )


class ReputationRow(Base):
    __tablename__ = "reputation"

    identity: Mapped[str] = mapped_column(String(128), primary_key=True)
    total_predictions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    correct_predictions: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    total_earnings: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    reputation_score: Mapped[int] = mapped_column(SmallInteger, nullable=False, default=50)

    __table_args__ = (
        CheckConstraint("correct_predictions <= total_predictions", name="correct_le_total"),
        {"comment": "Cumulative per-identity claim history"},
    )


class EscrowJournalRow(Base):
    __tablename__ = "escrow_journal"

    entry_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identity: Mapped[str] = mapped_column(String(128), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False, comment="deposit or payout")
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    memo: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    __table_args__ = (
        CheckConstraint("direction IN ('deposit', 'payout')", name="direction_kind"),
        CheckConstraint("amount >= 0", name="amount_non_negative"),
        Index("ix_escrow_journal_identity", "identity"),
        {"comment": "Append-only escrow transfer journal"},
    )


__all__ = [
    "ProtocolStateRow",
    "RoundRow",
    "PredictionRow",
    "SentimentAggregateRow",
    "ReputationRow",
    "EscrowJournalRow",
]
