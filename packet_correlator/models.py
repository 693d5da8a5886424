"""Packet identity model shared by send and receive correlation."""

from dataclasses import dataclass

SEND_PACKET_EVENT = "send_packet"
RECV_PACKET_EVENT = "recv_packet"

SRC_PORT_ATTR = "packet_src_port"
SRC_CHANNEL_ATTR = "packet_src_channel"
DST_PORT_ATTR = "packet_dst_port"
DST_CHANNEL_ATTR = "packet_dst_channel"
SEQUENCE_ATTR = "packet_sequence"


@dataclass(frozen=True)
class PacketIdentity:
    """One in-flight packet on a given channel end."""

    port: str
    channel: str
    sequence: int

    def __post_init__(self) -> None:
        if self.sequence < 1:
            raise ValueError("Packet sequence must be positive.")

    def to_dict(self) -> dict:
        return {"port": self.port, "channel": self.channel, "sequence": self.sequence}
