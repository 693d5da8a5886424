"""Classify the relative order of two sequenced transactions."""

import logging
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

from chain_gateway.codec import tx_hash_of
from chain_gateway.gateway import ChainGateway, GatewayError
from chain_gateway.models import BlockRecord, TxRecord

from .models import Ordering, Placement, SequenceCheck

logger = logging.getLogger(__name__)


class DegenerateComparisonError(ValueError):
    """Raised when a placement is compared with itself."""


class TxNotInBlockError(LookupError):
    """Raised when no decodable entry of a block hashes to the requested tx."""


def compare(a: Placement, b: Placement) -> Ordering:
    """Return where ``a`` sits relative to ``b``.

    Equal heights resolve only when both sides carry an intra-block index;
    otherwise the result is SAME_BLOCK_INCONCLUSIVE, never a guess.
    """

    if a.height < b.height:
        return Ordering.BEFORE
    if a.height > b.height:
        return Ordering.AFTER
    if a.index is None or b.index is None:
        return Ordering.SAME_BLOCK_INCONCLUSIVE
    if a.index == b.index:
        raise DegenerateComparisonError(f"Cannot order placement {a} against itself.")
    return Ordering.SAME_BLOCK_BEFORE if a.index < b.index else Ordering.SAME_BLOCK_AFTER


def resolve_intra_block_index(block: BlockRecord, tx_hash: str) -> int:
    wanted = tx_hash.upper()
    for index, raw in enumerate(block.raw_txs):
        if raw is not None and tx_hash_of(raw) == wanted:
            return index
    raise TxNotInBlockError(f"tx {tx_hash} not found among decodable txs of block {block.height}")


def check_sequence_preserved(recv_placements: Sequence[Placement]) -> SequenceCheck:
    """Check that receives, listed in send order, never move backwards."""

    violations: List[Tuple[int, int]] = []
    inconclusive: List[Tuple[int, int]] = []
    for position in range(len(recv_placements) - 1):
        pair = (position, position + 1)
        earlier, later = recv_placements[position], recv_placements[position + 1]
        try:
            ordering = compare(earlier, later)
        except DegenerateComparisonError:
            # Both receives sit in one tx; message order is not observable here.
            inconclusive.append(pair)
            continue
        if ordering.first is False:
            violations.append(pair)
        elif ordering.first is None:
            inconclusive.append(pair)

    return SequenceCheck(
        preserved=not violations,
        violations=tuple(violations),
        inconclusive_pairs=tuple(inconclusive),
    )


def locate(gateway: ChainGateway, records: Sequence[TxRecord]) -> Tuple[Placement, ...]:
    """Return placements for ``records``, resolving indices where heights collide.

    Each shared block is fetched once. A block that cannot be fetched, or a tx
    missing from its decodable entries, leaves that index unset.
    """

    for record in records:
        if record.height is None:
            raise ValueError(f"tx {record.tx_hash} has no block height yet")

    by_height: Dict[int, List[TxRecord]] = defaultdict(list)
    for record in records:
        by_height[record.height].append(record)

    indices: Dict[str, int] = {}
    for height, sharing in by_height.items():
        if len(sharing) < 2:
            continue
        try:
            block = gateway.query_block(height)
        except GatewayError as exc:
            logger.warning("Block %d unavailable for intra-block ordering: %s", height, exc)
            continue
        for record in sharing:
            try:
                indices[record.tx_hash] = resolve_intra_block_index(block, record.tx_hash)
            except TxNotInBlockError as exc:
                logger.warning("%s", exc)

    return tuple(
        Placement(height=record.height, index=indices.get(record.tx_hash)) for record in records
    )
