from .correlator import PacketNotFoundError, extract_sent_packet, find_received_packet
from .models import RECV_PACKET_EVENT, SEND_PACKET_EVENT, PacketIdentity

__all__ = [
    "PacketIdentity",
    "PacketNotFoundError",
    "RECV_PACKET_EVENT",
    "SEND_PACKET_EVENT",
    "extract_sent_packet",
    "find_received_packet",
]
