"""Ordering verifier models."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class Ordering(Enum):
    BEFORE = "BEFORE"
    AFTER = "AFTER"
    SAME_BLOCK_BEFORE = "SAME_BLOCK_BEFORE"
    SAME_BLOCK_AFTER = "SAME_BLOCK_AFTER"
    SAME_BLOCK_INCONCLUSIVE = "SAME_BLOCK_INCONCLUSIVE"
    UNKNOWN = "UNKNOWN"

    @property
    def first(self) -> Optional[bool]:
        """True when the left side took effect first, None when undecided."""

        if self in (Ordering.BEFORE, Ordering.SAME_BLOCK_BEFORE):
            return True
        if self in (Ordering.AFTER, Ordering.SAME_BLOCK_AFTER):
            return False
        return None

    @property
    def conclusive(self) -> bool:
        return self.first is not None

    def reverse(self) -> "Ordering":
        return _REVERSED[self]


_REVERSED = {
    Ordering.BEFORE: Ordering.AFTER,
    Ordering.AFTER: Ordering.BEFORE,
    Ordering.SAME_BLOCK_BEFORE: Ordering.SAME_BLOCK_AFTER,
    Ordering.SAME_BLOCK_AFTER: Ordering.SAME_BLOCK_BEFORE,
    Ordering.SAME_BLOCK_INCONCLUSIVE: Ordering.SAME_BLOCK_INCONCLUSIVE,
    Ordering.UNKNOWN: Ordering.UNKNOWN,
}


@dataclass(frozen=True)
class Placement:
    """Where a transaction was sequenced: block height and optional index."""

    height: int
    index: Optional[int] = None

    def __post_init__(self) -> None:
        if self.height < 1:
            raise ValueError("Block height must be positive.")
        if self.index is not None and self.index < 0:
            raise ValueError("Intra-block index must be non-negative.")

    def to_dict(self) -> dict:
        return {"height": self.height, "index": self.index}

    def __str__(self) -> str:
        if self.index is None:
            return str(self.height)
        return f"{self.height}:{self.index}"


@dataclass(frozen=True)
class SequenceCheck:
    """Outcome of checking receive order against send order.

    ``violations`` and ``inconclusive_pairs`` hold positions of adjacent pairs
    ``(i, i + 1)`` in send order.
    """

    preserved: bool
    violations: Tuple[Tuple[int, int], ...] = ()
    inconclusive_pairs: Tuple[Tuple[int, int], ...] = ()

    def to_dict(self) -> dict:
        return {
            "preserved": self.preserved,
            "violations": [list(pair) for pair in self.violations],
            "inconclusive_pairs": [list(pair) for pair in self.inconclusive_pairs],
        }
