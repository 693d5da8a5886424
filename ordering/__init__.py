from .models import Ordering, Placement, SequenceCheck
from .verifier import (
    DegenerateComparisonError,
    TxNotInBlockError,
    check_sequence_preserved,
    compare,
    locate,
    resolve_intra_block_index,
)

__all__ = [
    "DegenerateComparisonError",
    "Ordering",
    "Placement",
    "SequenceCheck",
    "TxNotInBlockError",
    "check_sequence_preserved",
    "compare",
    "locate",
    "resolve_intra_block_index",
]
