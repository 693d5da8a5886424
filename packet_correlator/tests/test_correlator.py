"""Tests for packet send extraction and receive lookup."""

import unittest

from chain_gateway.models import EventAttribute, TxEvent, TxRecord
from packet_correlator.correlator import PacketNotFoundError, extract_sent_packet, find_received_packet
from packet_correlator.models import PacketIdentity


def _event(event_type: str, **attrs: str) -> TxEvent:
    return TxEvent(type=event_type, attributes=tuple(EventAttribute(k, v) for k, v in attrs.items()))


def _send_event(channel: str, sequence: str, port: str = "transfer") -> TxEvent:
    return _event("send_packet", packet_src_port=port, packet_src_channel=channel, packet_sequence=sequence)


def _recv(tx_hash: str, channel: str, sequence: str, port: str = "transfer", code: int = 0) -> TxRecord:
    return TxRecord(
        tx_hash=tx_hash,
        code=code,
        height=101,
        log_events=(
            _event("recv_packet", packet_dst_port=port, packet_dst_channel=channel, packet_sequence=sequence),
        ),
    )


class StubGateway:
    chain_id = "chain-b"

    def __init__(self, *candidates: TxRecord) -> None:
        self.candidates = candidates
        self.queries = []

    def query_txs_by_event(self, predicates, limit=1):
        self.queries.append((tuple(predicates), limit))
        return self.candidates[:limit]


class ExtractSentPacketTests(unittest.TestCase):
    def test_extracts_matching_channel(self) -> None:
        tx = TxRecord(
            tx_hash="S1",
            code=0,
            log_events=(_send_event("c-1", "3"), _send_event("c-0", "5")),
        )
        self.assertEqual(
            extract_sent_packet(tx, "transfer", "c-0"),
            PacketIdentity(port="transfer", channel="c-0", sequence=5),
        )

    def test_rejected_tx_never_yields_packet(self) -> None:
        tx = TxRecord(tx_hash="S1", code=11, log_events=(_send_event("c-0", "5"),))
        with self.assertRaises(PacketNotFoundError):
            extract_sent_packet(tx, "transfer", "c-0")

    def test_other_channel_with_same_sequence_is_ignored(self) -> None:
        tx = TxRecord(tx_hash="S1", code=0, log_events=(_send_event("c-1", "5"),))
        with self.assertRaises(PacketNotFoundError):
            extract_sent_packet(tx, "transfer", "c-0")

    def test_other_port_is_ignored(self) -> None:
        tx = TxRecord(tx_hash="S1", code=0, log_events=(_send_event("c-0", "5", port="icahost"),))
        with self.assertRaises(PacketNotFoundError):
            extract_sent_packet(tx, "transfer", "c-0")

    def test_falls_back_to_top_level_events(self) -> None:
        tx = TxRecord(tx_hash="S1", code=0, events=(_send_event("c-0", "8"),))
        self.assertEqual(extract_sent_packet(tx, "transfer", "c-0").sequence, 8)

    def test_primary_events_take_precedence(self) -> None:
        tx = TxRecord(
            tx_hash="S1",
            code=0,
            log_events=(_event("message", action="transfer"),),
            events=(_send_event("c-0", "8"),),
        )
        with self.assertRaises(PacketNotFoundError):
            extract_sent_packet(tx, "transfer", "c-0")

    def test_empty_or_malformed_sequence(self) -> None:
        for value in ("", "abc", "0", "\u00b2", "\u0663"):
            tx = TxRecord(tx_hash="S1", code=0, log_events=(_send_event("c-0", value),))
            with self.assertRaises(PacketNotFoundError, msg=value):
                extract_sent_packet(tx, "transfer", "c-0")


class FindReceivedPacketTests(unittest.TestCase):
    def test_returns_validated_candidate(self) -> None:
        gateway = StubGateway(_recv("R1", "c-0", "5"))
        record = find_received_packet(gateway, "transfer", "c-0", 5)

        self.assertEqual(record.tx_hash, "R1")
        predicates, limit = gateway.queries[0]
        self.assertEqual(limit, 1)
        self.assertEqual(
            [(p.event_type, p.attribute, p.value) for p in predicates],
            [
                ("recv_packet", "packet_dst_port", "transfer"),
                ("recv_packet", "packet_dst_channel", "c-0"),
                ("recv_packet", "packet_sequence", "5"),
            ],
        )

    def test_index_false_positive_is_rejected(self) -> None:
        gateway = StubGateway(_recv("R1", "c-1", "5"))
        with self.assertRaises(PacketNotFoundError):
            find_received_packet(gateway, "transfer", "c-0", 5)

    def test_sequence_mismatch_is_rejected(self) -> None:
        gateway = StubGateway(_recv("R1", "c-0", "50"))
        with self.assertRaises(PacketNotFoundError):
            find_received_packet(gateway, "transfer", "c-0", 5)

    def test_no_candidates(self) -> None:
        with self.assertRaises(PacketNotFoundError):
            find_received_packet(StubGateway(), "transfer", "c-0", 5)

    def test_skips_bad_candidates_when_limit_allows(self) -> None:
        gateway = StubGateway(_recv("R1", "c-1", "5"), _recv("R2", "c-0", "5"))
        record = find_received_packet(gateway, "transfer", "c-0", 5, limit=2)
        self.assertEqual(record.tx_hash, "R2")

    def test_failed_receive_is_not_returned(self) -> None:
        gateway = StubGateway(_recv("R1", "c-0", "5", code=1))
        with self.assertRaises(PacketNotFoundError):
            find_received_packet(gateway, "transfer", "c-0", 5)

    def test_non_ascii_digit_sequence_is_not_a_match(self) -> None:
        gateway = StubGateway(_recv("R1", "c-0", "\u00b2"))
        with self.assertRaises(PacketNotFoundError):
            find_received_packet(gateway, "transfer", "c-0", 2)


if __name__ == "__main__":
    unittest.main()
