"""Chain gateway models for transactions, events, and blocks."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class TxKind(Enum):
    TRANSFER = "TRANSFER"
    SEND = "SEND"


@dataclass(frozen=True)
class EventAttribute:
    key: str
    value: str


@dataclass(frozen=True)
class TxEvent:
    type: str
    attributes: Tuple[EventAttribute, ...] = ()

    def attribute(self, key: str) -> Optional[str]:
        """Return the first value recorded under ``key``, if any."""

        for attr in self.attributes:
            if attr.key == key:
                return attr.value
        return None


@dataclass(frozen=True)
class TxRecord:
    """One transaction as reported by a chain node.

    ``log_events`` holds the events from the per-message logs; ``events``
    holds the top-level list newer node versions populate instead.
    """

    tx_hash: str
    code: int
    height: Optional[int] = None
    log_events: Tuple[TxEvent, ...] = ()
    events: Tuple[TxEvent, ...] = ()
    raw_log: str = ""
    gas_wanted: Optional[int] = None
    gas_used: Optional[int] = None
    timestamp: str = ""

    @property
    def succeeded(self) -> bool:
        return self.code == 0


@dataclass(frozen=True)
class TxParams:
    from_key: str
    recipient: str
    amount: int
    denom: str
    fee: Optional[str] = None
    port: Optional[str] = None
    channel: Optional[str] = None

    @property
    def coin(self) -> str:
        return f"{self.amount}{self.denom}"


@dataclass(frozen=True)
class EventPredicate:
    event_type: str
    attribute: str
    value: str

    def render(self) -> str:
        return f"{self.event_type}.{self.attribute}='{self.value}'"


@dataclass(frozen=True)
class BlockRecord:
    height: int
    raw_txs: Tuple[Optional[bytes], ...] = ()


@dataclass(frozen=True)
class ChainEndpoint:
    chain_id: str
    rpc: str
    home: str


@dataclass(frozen=True)
class FeePolicy:
    default_fee: str = "1000stake"
    priority_fee: str = "5000stake"
    gas_flags: Tuple[str, ...] = ("--gas=auto", "--gas-adjustment=1.2")
    keyring_backend: str = "test"
