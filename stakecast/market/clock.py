from __future__ import annotations

from abc import ABC, abstractmethod

from stakecast.engine.arithmetic import to_uint


class BlockClock(ABC):
    """Source of the host's current block height."""

    @abstractmethod
    def height(self) -> int:
        ...


class ManualClock(BlockClock):
    """Clock driven explicitly by the caller (tests, CLI, simulations)."""

    def __init__(self, height: int = 0):
        self._height = to_uint(height, "height")

    def height(self) -> int:
        return self._height

    def set(self, height: int) -> None:
        height = to_uint(height, "height")
        if height < self._height:
            raise ValueError(f"block height cannot move backwards ({self._height} -> {height})")
        self._height = height

    def advance(self, blocks: int = 1) -> int:
        self.set(self._height + to_uint(blocks, "blocks"))
        return self._height


__all__ = ["BlockClock", "ManualClock"]
