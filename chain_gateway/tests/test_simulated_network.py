"""Tests for the in-memory two-chain network."""

import unittest

from chain_gateway.codec import tx_hash_of
from chain_gateway.gateway import GatewayError, TxNotFoundError
from chain_gateway.models import EventPredicate, TxKind, TxParams
from chain_gateway.relayer import RelayStatus
from chain_gateway.simulator import SimulatedNetwork


class SimulatedNetworkTests(unittest.TestCase):
    def setUp(self) -> None:
        self.network = SimulatedNetwork()
        self.link = self.network.link("transfer", "channel-0", "channel-1")
        self.network.chain_a.fund("userA", "token", 10_000)
        self.network.chain_b.fund("attackerB", "stake", 10_000)

    def _send(self, amount: int = 100):
        return self.network.chain_a.submit(
            TxKind.SEND,
            TxParams(
                from_key="userA",
                recipient=self.network.chain_b.resolve_address("userB"),
                amount=amount,
                denom="token",
                port="transfer",
                channel="channel-0",
            ),
        )

    def test_submit_returns_unindexed_record(self) -> None:
        record = self._send()
        self.assertTrue(record.succeeded)
        self.assertIsNone(record.height)
        self.assertEqual(record.log_events, ())

    def test_query_commits_with_send_packet_event(self) -> None:
        record = self._send()
        committed = self.network.chain_a.query_tx(record.tx_hash)

        self.assertIsNotNone(committed.height)
        event = committed.log_events[0]
        self.assertEqual(event.type, "send_packet")
        self.assertEqual(event.attribute("packet_src_channel"), "channel-0")
        self.assertEqual(event.attribute("packet_dst_channel"), "channel-1")
        self.assertEqual(event.attribute("packet_sequence"), "1")

    def test_sequences_increase_per_channel(self) -> None:
        first = self._send()
        second = self._send()
        chain = self.network.chain_a
        self.assertEqual(chain.query_tx(first.tx_hash).log_events[0].attribute("packet_sequence"), "1")
        self.assertEqual(chain.query_tx(second.tx_hash).log_events[0].attribute("packet_sequence"), "2")

    def test_unknown_tx_not_found(self) -> None:
        with self.assertRaises(TxNotFoundError):
            self.network.chain_b.query_tx("DEADBEEF")

    def test_insufficient_funds_rejected(self) -> None:
        record = self.network.chain_b.submit(
            TxKind.TRANSFER,
            TxParams(from_key="userB", recipient="attackerB", amount=5, denom="stake"),
        )
        self.assertFalse(record.succeeded)
        self.assertIn("insufficient funds", record.raw_log)

    def test_higher_fee_sorts_first_within_block(self) -> None:
        chain = self.network.chain_b
        chain.fund("userB", "stake", 100)
        low = chain.submit(
            TxKind.TRANSFER,
            TxParams(from_key="userB", recipient="x", amount=1, denom="stake", fee="1000stake"),
        )
        high = chain.submit(
            TxKind.TRANSFER,
            TxParams(from_key="attackerB", recipient="x", amount=1, denom="stake", fee="5000stake"),
        )

        height = chain.commit()
        block = chain.query_block(height)
        hashes = [tx_hash_of(raw) for raw in block.raw_txs]
        self.assertEqual(hashes, [high.tx_hash, low.tx_hash])

    def test_relay_delivers_and_credits_receiver(self) -> None:
        self._send(250)
        outcome = self.network.relayer.relay_packet("transfer", "channel-0", 1)
        self.assertEqual(outcome.status, RelayStatus.RELAYED)

        found = self.network.chain_b.query_txs_by_event(
            (
                EventPredicate("recv_packet", "packet_dst_channel", "channel-1"),
                EventPredicate("recv_packet", "packet_sequence", "1"),
            )
        )
        self.assertEqual(len(found), 1)
        self.assertEqual(self.network.chain_b.query_balance("userB", "token"), 250)

    def test_second_relay_is_already_relayed(self) -> None:
        self._send()
        self.network.relayer.relay_packet("transfer", "channel-0", 1)
        outcome = self.network.relayer.relay_packet("transfer", "channel-0", 1)
        self.assertEqual(outcome.status, RelayStatus.ALREADY_RELAYED)

    def test_relay_without_packet_is_nothing_to_relay(self) -> None:
        outcome = self.network.relayer.relay_packet("transfer", "channel-0", 9)
        self.assertEqual(outcome.status, RelayStatus.NOTHING_TO_RELAY)

    def test_relay_on_unknown_path_is_error(self) -> None:
        outcome = self.network.relayer.relay_packet("nope", "channel-0", 1)
        self.assertEqual(outcome.status, RelayStatus.ERROR)

    def test_ordered_link_delivers_earlier_packets_first(self) -> None:
        self.network.link("ordered", "channel-2", "channel-3", ordered=True)
        for _ in range(2):
            self.network.chain_a.submit(
                TxKind.SEND,
                TxParams(
                    from_key="userA", recipient="chain-b:userB", amount=10, denom="token",
                    port="transfer", channel="channel-2",
                ),
            )
        self.network.relayer.relay_packet("ordered", "channel-2", 2)

        chain = self.network.chain_b
        chain.commit()
        first = chain.query_txs_by_event((EventPredicate("recv_packet", "packet_sequence", "1"),))
        self.assertEqual(len(first), 1)
        block = chain.query_block(first[0].height)
        self.assertEqual(tx_hash_of(block.raw_txs[0]), first[0].tx_hash)

    def test_missing_block_raises(self) -> None:
        with self.assertRaises(GatewayError):
            self.network.chain_b.query_block(999)

    def test_corrupted_entry_is_none(self) -> None:
        chain = self.network.chain_b
        chain.submit(TxKind.TRANSFER, TxParams(from_key="attackerB", recipient="x", amount=1, denom="stake"))
        height = chain.commit()
        chain.corrupt_block_entry(height, 0)
        self.assertEqual(chain.query_block(height).raw_txs, (None,))


if __name__ == "__main__":
    unittest.main()
