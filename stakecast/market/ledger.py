"""Escrow ledger collaborators.

The controller never moves currency itself. It asks an ``EscrowLedger`` to
pull a stake into protocol escrow on submission and to pay a reward out of
escrow on claim, as the last step of the transition. A ledger error aborts
the transition and the store rolls back.

Implementations:
- InMemoryLedger: account balances held in memory (tests, simulations)
- JournalLedger: append-only journal rows written in the caller's transaction
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Dict, List, Optional, Tuple

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from stakecast.database.schema.market import EscrowJournalRow
from stakecast.engine.arithmetic import to_uint
from stakecast.engine.types import InsufficientEscrowError, InsufficientFundsError

logger = logging.getLogger(__name__)

DEPOSIT = "deposit"
PAYOUT = "payout"


class EscrowLedger(ABC):
    @abstractmethod
    async def deposit(self, session: AsyncSession, identity: str, amount: int, memo: str = "") -> None:
        """Move ``amount`` from ``identity`` into protocol escrow."""

    @abstractmethod
    async def payout(self, session: AsyncSession, identity: str, amount: int, memo: str = "") -> None:
        """Move ``amount`` from protocol escrow to ``identity``."""

    @abstractmethod
    async def escrow_balance(self, session: Optional[AsyncSession] = None) -> int:
        ...


class InMemoryLedger(EscrowLedger):
    """Balances kept in process memory.

    Transfers only happen once every guard has passed, as the final step of
    a transition, so a rejected transition never reaches this object.
    """

    def __init__(self, balances: Optional[Dict[str, int]] = None):
        self.balances: Dict[str, int] = defaultdict(int)
        for identity, amount in (balances or {}).items():
            self.balances[identity] = to_uint(amount, "balance")
        self.escrow = 0
        self.transfers: List[Tuple[str, str, int, str]] = []

    def fund(self, identity: str, amount: int) -> None:
        self.balances[identity] += to_uint(amount, "amount")

    def balance_of(self, identity: str) -> int:
        return self.balances.get(identity, 0)

    async def deposit(self, session: AsyncSession, identity: str, amount: int, memo: str = "") -> None:
        if self.balances[identity] < amount:
            raise InsufficientFundsError(
                f"{identity} holds {self.balances[identity]}, needs {amount}",
                identity=identity,
                amount=amount,
            )
        self.balances[identity] -= amount
        self.escrow += amount
        self.transfers.append((DEPOSIT, identity, amount, memo))
        logger.debug({"escrow": {"event": DEPOSIT, "identity": identity, "amount": amount, "memo": memo}})

    async def payout(self, session: AsyncSession, identity: str, amount: int, memo: str = "") -> None:
        if self.escrow < amount:
            raise InsufficientEscrowError(
                f"escrow holds {self.escrow}, payout needs {amount}",
                identity=identity,
                amount=amount,
            )
        self.escrow -= amount
        self.balances[identity] += amount
        self.transfers.append((PAYOUT, identity, amount, memo))
        logger.debug({"escrow": {"event": PAYOUT, "identity": identity, "amount": amount, "memo": memo}})

    async def escrow_balance(self, session: Optional[AsyncSession] = None) -> int:
        return self.escrow


class JournalLedger(EscrowLedger):
    """Escrow accounting as journal rows in the market store.

    Entries share the caller's transaction, so a transfer commits exactly
    when the transition that caused it commits. Depositor balances are not
    tracked here; the host ledger is assumed to have authorized the debit.
    """

    async def deposit(self, session: AsyncSession, identity: str, amount: int, memo: str = "") -> None:
        session.add(EscrowJournalRow(identity=identity, direction=DEPOSIT, amount=amount, memo=memo[:128]))
        await session.flush()

    async def payout(self, session: AsyncSession, identity: str, amount: int, memo: str = "") -> None:
        balance = await self.escrow_balance(session)
        if balance < amount:
            raise InsufficientEscrowError(
                f"escrow holds {balance}, payout needs {amount}",
                identity=identity,
                amount=amount,
            )
        session.add(EscrowJournalRow(identity=identity, direction=PAYOUT, amount=amount, memo=memo[:128]))
        await session.flush()

    async def escrow_balance(self, session: Optional[AsyncSession] = None) -> int:
        if session is None:
            raise ValueError("JournalLedger needs a session to read the journal")
        signed = case(
            (EscrowJournalRow.direction == DEPOSIT, EscrowJournalRow.amount),
            else_=-EscrowJournalRow.amount,
        )
        stmt = select(func.coalesce(func.sum(signed), 0))
        return int((await session.execute(stmt)).scalar_one())

    async def entries(self, session: AsyncSession, identity: Optional[str] = None) -> List[EscrowJournalRow]:
        stmt = select(EscrowJournalRow).order_by(EscrowJournalRow.entry_id)
        if identity is not None:
            stmt = stmt.where(EscrowJournalRow.identity == identity)
        return list((await session.execute(stmt)).scalars().all())


__all__ = ["EscrowLedger", "InMemoryLedger", "JournalLedger", "DEPOSIT", "PAYOUT"]
