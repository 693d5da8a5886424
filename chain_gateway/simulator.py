"""Simulate two linked chains and a relayer without process or network calls."""

import itertools
import json
import re
import threading
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .codec import tx_hash_of
from .gateway import GatewayError, TxNotFoundError
from .models import (
    BlockRecord,
    EventAttribute,
    EventPredicate,
    TxEvent,
    TxKind,
    TxParams,
    TxRecord,
)
from .relayer import RelayOutcome, RelayStatus

_DEFAULT_FEE = "1000stake"
_INSUFFICIENT_FUNDS_CODE = 5
_FEE_AMOUNT = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class _Pending:
    raw: bytes
    record: TxRecord
    priority: int
    arrival: int


@dataclass(frozen=True)
class ChannelLink:
    path: str
    src_port: str
    src_channel: str
    dst_port: str
    dst_channel: str
    ordered: bool = False


class SimulatedChain:
    """In-memory chain that commits pending txs on the next read.

    Pending transactions enter a block ordered by fee (highest first), then by
    arrival, which models validator fee priority within a block.
    """

    def __init__(self, chain_id: str, start_height: int = 1) -> None:
        self._chain_id = chain_id
        self._height = start_height
        self._lock = threading.RLock()
        self._arrivals = itertools.count()
        self._pending: List[_Pending] = []
        self._blocks: Dict[int, Tuple[Optional[bytes], ...]] = {}
        self._committed: Dict[str, TxRecord] = {}
        self._order: List[str] = []
        self._balances: Dict[Tuple[str, str], int] = {}
        self._sequences: Dict[Tuple[str, str], int] = {}
        self._links: Dict[Tuple[str, str], ChannelLink] = {}

    @property
    def chain_id(self) -> str:
        return self._chain_id

    @property
    def height(self) -> int:
        with self._lock:
            return self._height

    def fund(self, key_or_address: str, denom: str, amount: int) -> None:
        address = self._address(key_or_address)
        with self._lock:
            self._balances[(address, denom)] = self._balances.get((address, denom), 0) + amount

    def register_link(self, link: ChannelLink) -> None:
        with self._lock:
            self._links[(link.src_port, link.src_channel)] = link

    def submit(self, kind: TxKind, params: TxParams) -> TxRecord:
        if params.amount <= 0:
            raise ValueError("Submitted amount must be positive.")

        with self._lock:
            sender = self._address(params.from_key)
            if self._balances.get((sender, params.denom), 0) < params.amount:
                return TxRecord(
                    tx_hash=tx_hash_of(self._encode(kind, params, sender)),
                    code=_INSUFFICIENT_FUNDS_CODE,
                    raw_log=f"insufficient funds: {sender} holds less than {params.coin}",
                )

            if kind == TxKind.TRANSFER:
                log_events = (
                    _event(
                        "transfer",
                        recipient=self._address(params.recipient),
                        sender=sender,
                        amount=params.coin,
                    ),
                )
                self._move(sender, self._address(params.recipient), params.denom, params.amount)
            elif kind == TxKind.SEND:
                log_events = (self._send_packet_event(sender, params),)
                self._move(sender, f"escrow:{params.channel}", params.denom, params.amount)
            else:
                raise ValueError(f"Unsupported transaction kind: {kind}")

            raw = self._encode(kind, params, sender)
            return self._enqueue(raw, log_events, params.fee or _DEFAULT_FEE)

    def query_tx(self, tx_hash: str) -> TxRecord:
        with self._lock:
            self._commit()
            record = self._committed.get(tx_hash.upper())
        if record is None:
            raise TxNotFoundError(f"query tx {tx_hash}", f"tx {tx_hash} not found")
        return record

    def query_txs_by_event(
        self, predicates: Sequence[EventPredicate], limit: int = 1
    ) -> Tuple[TxRecord, ...]:
        if not predicates:
            raise ValueError("At least one event predicate is required.")
        with self._lock:
            self._commit()
            matches = [
                self._committed[tx_hash]
                for tx_hash in self._order
                if _matches(self._committed[tx_hash], predicates)
            ]
        return tuple(matches[:limit])

    def query_block(self, height: int) -> BlockRecord:
        with self._lock:
            self._commit()
            if height not in self._blocks:
                raise GatewayError(f"query block {height}", "block not available")
            return BlockRecord(height=height, raw_txs=self._blocks[height])

    def query_balance(self, address: str, denom: str) -> int:
        with self._lock:
            self._commit()
            return self._balances.get((self._address(address), denom), 0)

    def resolve_address(self, key_name: str) -> str:
        return self._address(key_name)

    def status(self) -> None:
        return None

    def commit(self) -> Optional[int]:
        """Commit pending transactions; return the new height, if any."""

        with self._lock:
            return self._commit()

    def corrupt_block_entry(self, height: int, index: int) -> None:
        """Make one block entry undecodable, as a malformed listing would."""

        with self._lock:
            txs = list(self._blocks[height])
            txs[index] = None
            self._blocks[height] = tuple(txs)

    def deliver(self, link: ChannelLink, sequence: int, packet_data: Dict[str, object]) -> TxRecord:
        """Queue a receive transaction for a packet relayed onto this chain."""

        with self._lock:
            receiver = str(packet_data.get("receiver", ""))
            denom = str(packet_data.get("denom", ""))
            amount = int(packet_data.get("amount", 0))
            self._balances[(receiver, denom)] = self._balances.get((receiver, denom), 0) + amount
            event = _event(
                "recv_packet",
                packet_src_port=link.src_port,
                packet_src_channel=link.src_channel,
                packet_dst_port=link.dst_port,
                packet_dst_channel=link.dst_channel,
                packet_sequence=str(sequence),
                packet_channel_ordering="ORDER_ORDERED" if link.ordered else "ORDER_UNORDERED",
            )
            raw = json.dumps(
                {
                    "msg": "recv_packet",
                    "chain_id": self._chain_id,
                    "channel": link.dst_channel,
                    "sequence": sequence,
                },
                sort_keys=True,
            ).encode("utf-8")
            return self._enqueue(raw, (event,), _DEFAULT_FEE)

    def has_received(self, link: ChannelLink, sequence: int) -> bool:
        predicates = _recv_predicates(link, sequence)
        with self._lock:
            records = list(self._committed.values()) + [item.record for item in self._pending]
        return any(_matches(record, predicates) for record in records)

    def sent_packet(self, link: ChannelLink, sequence: int) -> Optional[Dict[str, object]]:
        predicates = (
            EventPredicate("send_packet", "packet_src_port", link.src_port),
            EventPredicate("send_packet", "packet_src_channel", link.src_channel),
            EventPredicate("send_packet", "packet_sequence", str(sequence)),
        )
        for record in self.query_txs_by_event(predicates, limit=1):
            for event in record.log_events:
                if event.type == "send_packet" and event.attribute("packet_data"):
                    return json.loads(event.attribute("packet_data"))
        return None

    def _send_packet_event(self, sender: str, params: TxParams) -> TxEvent:
        link = self._links.get((params.port, params.channel))
        if link is None:
            raise GatewayError(
                "ibc transfer", f"no channel {params.port}/{params.channel} on {self._chain_id}"
            )
        key = (params.port, params.channel)
        sequence = self._sequences.get(key, 0) + 1
        self._sequences[key] = sequence
        data = json.dumps(
            {
                "amount": params.amount,
                "denom": params.denom,
                "receiver": params.recipient,
                "sender": sender,
            },
            sort_keys=True,
        )
        return _event(
            "send_packet",
            packet_data=data,
            packet_src_port=link.src_port,
            packet_src_channel=link.src_channel,
            packet_dst_port=link.dst_port,
            packet_dst_channel=link.dst_channel,
            packet_sequence=str(sequence),
        )

    def _enqueue(self, raw: bytes, log_events: Tuple[TxEvent, ...], fee: str) -> TxRecord:
        record = TxRecord(tx_hash=tx_hash_of(raw), code=0, log_events=log_events)
        self._pending.append(
            _Pending(raw=raw, record=record, priority=_fee_amount(fee), arrival=next(self._arrivals))
        )
        # Broadcast responses carry neither height nor events.
        return TxRecord(tx_hash=record.tx_hash, code=0)

    def _commit(self) -> Optional[int]:
        if not self._pending:
            return None
        self._height += 1
        ordered = sorted(self._pending, key=lambda item: (-item.priority, item.arrival))
        self._pending = []
        self._blocks[self._height] = tuple(item.raw for item in ordered)
        for item in ordered:
            self._committed[item.record.tx_hash] = replace(item.record, height=self._height)
            self._order.append(item.record.tx_hash)
        return self._height

    def _move(self, sender: str, recipient: str, denom: str, amount: int) -> None:
        self._balances[(sender, denom)] -= amount
        self._balances[(recipient, denom)] = self._balances.get((recipient, denom), 0) + amount

    def _address(self, key_or_address: str) -> str:
        if ":" in key_or_address:
            return key_or_address
        return f"{self._chain_id}:{key_or_address}"

    def _encode(self, kind: TxKind, params: TxParams, sender: str) -> bytes:
        payload = {
            "kind": kind.value,
            "sender": sender,
            "recipient": params.recipient,
            "coin": params.coin,
            "fee": params.fee or _DEFAULT_FEE,
            "port": params.port,
            "channel": params.channel,
            "nonce": next(self._arrivals),
        }
        return json.dumps(payload, sort_keys=True).encode("utf-8")


class SimulatedRelayer:
    """Deliver packets between two simulated chains on request."""

    def __init__(self, source: SimulatedChain, destination: SimulatedChain) -> None:
        self._source = source
        self._destination = destination
        self._paths: Dict[str, ChannelLink] = {}

    def add_path(self, link: ChannelLink) -> None:
        self._paths[link.path] = link
        self._source.register_link(link)

    def relay_packet(self, path: str, channel: str, sequence: int) -> RelayOutcome:
        link = self._paths.get(path)
        if link is None or link.src_channel != channel:
            return RelayOutcome(RelayStatus.ERROR, f"unknown path {path} for channel {channel}")

        if self._destination.has_received(link, sequence):
            return RelayOutcome(RelayStatus.ALREADY_RELAYED, f"seq {sequence} already received")

        data = self._source.sent_packet(link, sequence)
        if data is None:
            return RelayOutcome(RelayStatus.NOTHING_TO_RELAY, f"no packet with seq {sequence}")

        # Ordered channels deliver every earlier pending packet first.
        earlier: Iterable[int] = range(1, sequence) if link.ordered else ()
        for prior in earlier:
            if self._destination.has_received(link, prior):
                continue
            prior_data = self._source.sent_packet(link, prior)
            if prior_data is not None:
                self._destination.deliver(link, prior, prior_data)

        record = self._destination.deliver(link, sequence, data)
        return RelayOutcome(RelayStatus.RELAYED, f"recv tx {record.tx_hash}")


class SimulatedNetwork:
    """Two simulated chains joined by channel links and one relayer."""

    def __init__(self, chain_a_id: str = "chain-a", chain_b_id: str = "chain-b") -> None:
        self.chain_a = SimulatedChain(chain_a_id)
        self.chain_b = SimulatedChain(chain_b_id)
        self.relayer = SimulatedRelayer(self.chain_a, self.chain_b)

    def link(
        self,
        path: str,
        src_channel: str,
        dst_channel: str,
        src_port: str = "transfer",
        dst_port: str = "transfer",
        ordered: bool = False,
    ) -> ChannelLink:
        link = ChannelLink(
            path=path,
            src_port=src_port,
            src_channel=src_channel,
            dst_port=dst_port,
            dst_channel=dst_channel,
            ordered=ordered,
        )
        self.relayer.add_path(link)
        return link


def _event(event_type: str, **attributes: str) -> TxEvent:
    return TxEvent(
        type=event_type,
        attributes=tuple(EventAttribute(key=key, value=value) for key, value in attributes.items()),
    )


def _recv_predicates(link: ChannelLink, sequence: int) -> Tuple[EventPredicate, ...]:
    return (
        EventPredicate("recv_packet", "packet_dst_port", link.dst_port),
        EventPredicate("recv_packet", "packet_dst_channel", link.dst_channel),
        EventPredicate("recv_packet", "packet_sequence", str(sequence)),
    )


def _matches(record: TxRecord, predicates: Sequence[EventPredicate]) -> bool:
    events = record.log_events + record.events
    for predicate in predicates:
        if not any(
            event.type == predicate.event_type
            and event.attribute(predicate.attribute) == predicate.value
            for event in events
        ):
            return False
    return True


def _fee_amount(fee: str) -> int:
    match = _FEE_AMOUNT.match(fee)
    return int(match.group(1)) if match else 0
