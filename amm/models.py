"""Constant-product pool models."""

from dataclasses import dataclass
from enum import Enum
from typing import Tuple


class SwapDirection(Enum):
    X_TO_Y = "X_TO_Y"
    Y_TO_X = "Y_TO_X"

    def reverse(self) -> "SwapDirection":
        return SwapDirection.Y_TO_X if self == SwapDirection.X_TO_Y else SwapDirection.X_TO_Y


@dataclass
class Pool:
    """Two integer reserves; mutated in place by each applied swap."""

    reserve_x: int
    reserve_y: int

    def __post_init__(self) -> None:
        if self.reserve_x < 0 or self.reserve_y < 0:
            raise ValueError("Pool reserves must be non-negative.")

    @property
    def k(self) -> int:
        return self.reserve_x * self.reserve_y

    def reserves_for(self, direction: SwapDirection) -> Tuple[int, int]:
        """Return (input reserve, output reserve) for a swap in ``direction``."""

        if direction == SwapDirection.X_TO_Y:
            return self.reserve_x, self.reserve_y
        return self.reserve_y, self.reserve_x

    def snapshot(self) -> "Pool":
        return Pool(reserve_x=self.reserve_x, reserve_y=self.reserve_y)

    def to_dict(self) -> dict:
        return {"reserve_x": self.reserve_x, "reserve_y": self.reserve_y, "k": self.k}


@dataclass(frozen=True)
class SwapReceipt:
    direction: SwapDirection
    amount_in: int
    amount_out: int
    price_impact_pct: float
    k_before: int
    k_after: int

    def to_dict(self) -> dict:
        return {
            "direction": self.direction.value,
            "amount_in": self.amount_in,
            "amount_out": self.amount_out,
            "price_impact_pct": self.price_impact_pct,
            "k_before": self.k_before,
            "k_after": self.k_after,
        }


@dataclass(frozen=True)
class SandwichResult:
    """Front-run, victim and back-run legs of one simulated sandwich.

    ``profit`` is denominated in the front leg's input asset; ``victim_shortfall``
    is what the victim lost to the front-run in the victim's output asset.
    """

    front: SwapReceipt
    victim: SwapReceipt
    back: SwapReceipt
    profit: int
    victim_shortfall: int
    initial_pool: Pool
    final_pool: Pool

    def to_dict(self) -> dict:
        return {
            "front": self.front.to_dict(),
            "victim": self.victim.to_dict(),
            "back": self.back.to_dict(),
            "profit": self.profit,
            "victim_shortfall": self.victim_shortfall,
            "initial_pool": self.initial_pool.to_dict(),
            "final_pool": self.final_pool.to_dict(),
        }
