"""Correlate packet send events on the source chain with receive events on the destination."""

import logging
from typing import Iterable, Optional, Tuple

from chain_gateway.gateway import ChainGateway
from chain_gateway.models import EventPredicate, TxEvent, TxRecord

from .models import (
    DST_CHANNEL_ATTR,
    DST_PORT_ATTR,
    RECV_PACKET_EVENT,
    SEND_PACKET_EVENT,
    SEQUENCE_ATTR,
    SRC_CHANNEL_ATTR,
    SRC_PORT_ATTR,
    PacketIdentity,
)

logger = logging.getLogger(__name__)


class PacketNotFoundError(LookupError):
    """Raised when no event carries the requested packet identity."""


def extract_sent_packet(tx: TxRecord, expected_port: str, expected_channel: str) -> PacketIdentity:
    """Return the identity of the packet ``tx`` sent on the given channel end.

    Rejected transactions never yield a packet, whatever events they carry.
    Events for other channels are skipped even when their sequence matches.
    """

    if not tx.succeeded:
        raise PacketNotFoundError(
            f"tx {tx.tx_hash} was rejected (code {tx.code}); no packet to extract"
        )

    for event in _events_of(tx, SEND_PACKET_EVENT):
        if event.attribute(SRC_PORT_ATTR) != expected_port:
            continue
        if event.attribute(SRC_CHANNEL_ATTR) != expected_channel:
            continue
        sequence = _parse_sequence(event.attribute(SEQUENCE_ATTR))
        if sequence is None:
            raise PacketNotFoundError(
                f"send_packet event in tx {tx.tx_hash} has no usable sequence"
            )
        return PacketIdentity(port=expected_port, channel=expected_channel, sequence=sequence)

    raise PacketNotFoundError(
        f"no send_packet event for {expected_port}/{expected_channel} in tx {tx.tx_hash}"
    )


def find_received_packet(
    gateway: ChainGateway,
    port: str,
    channel: str,
    sequence: int,
    limit: int = 1,
) -> TxRecord:
    """Find the receive transaction for (port, channel, sequence) on the destination.

    One indexed search, no retries. Every candidate is checked against its own
    events so a loose index match is never returned.
    """

    candidates = gateway.query_txs_by_event(
        (
            EventPredicate(RECV_PACKET_EVENT, DST_PORT_ATTR, port),
            EventPredicate(RECV_PACKET_EVENT, DST_CHANNEL_ATTR, channel),
            EventPredicate(RECV_PACKET_EVENT, SEQUENCE_ATTR, str(sequence)),
        ),
        limit=limit,
    )
    if len(candidates) > 1:
        logger.warning(
            "Index returned %d receive candidates for %s/%s seq %d",
            len(candidates), port, channel, sequence,
        )

    for candidate in candidates:
        if candidate.succeeded and _carries_receive(candidate, port, channel, sequence):
            return candidate
        logger.debug("Discarding receive candidate %s: events do not match", candidate.tx_hash)

    raise PacketNotFoundError(
        f"no receive transaction for {port}/{channel} seq {sequence} on {gateway.chain_id}"
    )


def _carries_receive(tx: TxRecord, port: str, channel: str, sequence: int) -> bool:
    return any(
        event.attribute(DST_PORT_ATTR) == port
        and event.attribute(DST_CHANNEL_ATTR) == channel
        and _parse_sequence(event.attribute(SEQUENCE_ATTR)) == sequence
        for event in _events_of(tx, RECV_PACKET_EVENT)
    )


def _events_of(tx: TxRecord, event_type: str) -> Iterable[TxEvent]:
    # Some node versions only populate the top-level list.
    events: Tuple[TxEvent, ...] = tx.log_events or tx.events
    return (event for event in events if event.type == event_type)


def _parse_sequence(value: Optional[str]) -> Optional[int]:
    if not value:
        return None
    value = value.strip()
    if not (value.isascii() and value.isdigit()):
        return None
    sequence = int(value)
    return sequence if sequence > 0 else None
