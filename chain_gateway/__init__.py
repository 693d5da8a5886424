from .codec import DecodeError, decode_balance, decode_block, decode_search, decode_tx, tx_hash_of
from .gateway import ChainGateway, CliChainGateway, GatewayError, TxNotFoundError
from .models import (
    BlockRecord,
    ChainEndpoint,
    EventAttribute,
    EventPredicate,
    FeePolicy,
    TxEvent,
    TxKind,
    TxParams,
    TxRecord,
)
from .relayer import CliRelayTrigger, RelayerError, RelayOutcome, RelayStatus, RelayTrigger, classify_relay_result
from .runner import CommandResult, CommandRunner, SubprocessRunner
from .simulator import ChannelLink, SimulatedChain, SimulatedNetwork, SimulatedRelayer

__all__ = [
    "BlockRecord",
    "ChainEndpoint",
    "ChainGateway",
    "ChannelLink",
    "CliChainGateway",
    "CliRelayTrigger",
    "CommandResult",
    "CommandRunner",
    "DecodeError",
    "EventAttribute",
    "EventPredicate",
    "FeePolicy",
    "GatewayError",
    "RelayOutcome",
    "RelayStatus",
    "RelayTrigger",
    "RelayerError",
    "SimulatedChain",
    "SimulatedNetwork",
    "SimulatedRelayer",
    "SubprocessRunner",
    "TxEvent",
    "TxKind",
    "TxNotFoundError",
    "TxParams",
    "TxRecord",
    "classify_relay_result",
    "decode_balance",
    "decode_block",
    "decode_search",
    "decode_tx",
    "tx_hash_of",
]
