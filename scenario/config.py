"""Lab configuration, built once from the environment and an optional .env file."""

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Tuple

from dotenv import dotenv_values

from chain_gateway.models import ChainEndpoint, FeePolicy

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when required configuration is missing or malformed."""


class ChannelOrder(Enum):
    ORDERED = "ORDERED"
    UNORDERED = "UNORDERED"


@dataclass(frozen=True)
class ChannelRoute:
    """A relayer path plus the channel ends it connects, chain A to chain B."""

    name: str
    path: str
    src_channel: str
    dst_channel: str
    order: ChannelOrder = ChannelOrder.UNORDERED
    port: str = "transfer"

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "path": self.path,
            "port": self.port,
            "src_channel": self.src_channel,
            "dst_channel": self.dst_channel,
            "order": self.order.value,
        }


@dataclass(frozen=True)
class Roles:
    victim: str = "userA"
    recipient: str = "userB"
    attacker: str = "attackerB"
    market_maker: str = "mockDexB"


@dataclass(frozen=True)
class Denoms:
    ibc: str = "token"
    stake: str = "stake"


TRANSFER_ROUTE = "transfer"
ORDERED_ROUTE = "ordered"
UNORDERED_ROUTE = "unordered"


def default_routes() -> Tuple[ChannelRoute, ...]:
    return (
        ChannelRoute(TRANSFER_ROUTE, "a-b-transfer", "channel-0", "channel-0"),
        ChannelRoute(ORDERED_ROUTE, "a-b-ordered", "channel-0", "channel-0", ChannelOrder.ORDERED),
        ChannelRoute(UNORDERED_ROUTE, "a-b-unordered", "channel-1", "channel-1"),
    )


@dataclass(frozen=True)
class LabConfig:
    chain_a: ChainEndpoint
    chain_b: ChainEndpoint
    relayer_home: str
    node_binary: str = "simd"
    relayer_binary: str = "rly"
    routes: Tuple[ChannelRoute, ...] = field(default_factory=default_routes)
    roles: Roles = field(default_factory=Roles)
    fees: FeePolicy = field(default_factory=FeePolicy)
    denoms: Denoms = field(default_factory=Denoms)

    def route(self, name: str) -> ChannelRoute:
        for route in self.routes:
            if route.name == name:
                return route
        raise ConfigError(f"Unknown channel route: {name}")

    def summary(self) -> dict:
        return {
            "chain_a": {"chain_id": self.chain_a.chain_id, "rpc": self.chain_a.rpc, "home": self.chain_a.home},
            "chain_b": {"chain_id": self.chain_b.chain_id, "rpc": self.chain_b.rpc, "home": self.chain_b.home},
            "relayer_home": self.relayer_home,
            "node_binary": self.node_binary,
            "relayer_binary": self.relayer_binary,
            "routes": [route.to_dict() for route in self.routes],
        }


_REQUIRED = (
    "CHAIN_A_ID_ENV",
    "CHAIN_A_RPC_ENV",
    "CHAIN_A_HOME_ENV",
    "CHAIN_B_ID_ENV",
    "CHAIN_B_RPC_ENV",
    "CHAIN_B_HOME_ENV",
    "RLY_CONFIG_FILE_ENV",
)


def load_config(
    environ: Optional[Mapping[str, str]] = None,
    env_file: Optional[str] = None,
) -> LabConfig:
    """Build the configuration; process environment values win over the file."""

    values = {}
    if env_file is not None:
        if not os.path.isfile(env_file):
            raise ConfigError(f"Env file not found: {env_file}")
        values.update({key: value for key, value in dotenv_values(env_file).items() if value is not None})
    values.update(os.environ if environ is None else environ)

    def get(name: str, default: str = "") -> str:
        return (values.get(name) or default).strip()

    missing = [name for name in _REQUIRED if not get(name)]
    if missing:
        raise ConfigError("Required environment variables are not set: " + ", ".join(missing))

    defaults = {route.name: route for route in default_routes()}
    routes = tuple(
        ChannelRoute(
            name=name,
            path=get(f"RLY_PATH_{prefix}_ENV", defaults[name].path),
            src_channel=get(f"{prefix}_CHANNEL_A_ENV", defaults[name].src_channel),
            dst_channel=get(f"{prefix}_CHANNEL_B_ENV", defaults[name].dst_channel),
            order=defaults[name].order,
        )
        for name, prefix in (
            (TRANSFER_ROUTE, "TRANSFER"),
            (ORDERED_ROUTE, "ORDERED"),
            (UNORDERED_ROUTE, "UNORDERED"),
        )
    )

    gas_flags = tuple(get("GAS_FLAGS_ENV", " ".join(FeePolicy.gas_flags)).split())
    config = LabConfig(
        chain_a=ChainEndpoint(get("CHAIN_A_ID_ENV"), get("CHAIN_A_RPC_ENV"), get("CHAIN_A_HOME_ENV")),
        chain_b=ChainEndpoint(get("CHAIN_B_ID_ENV"), get("CHAIN_B_RPC_ENV"), get("CHAIN_B_HOME_ENV")),
        relayer_home=_expand_path(get("RLY_CONFIG_FILE_ENV"), values),
        node_binary=get("SIMD_BINARY_ENV", "simd"),
        relayer_binary=get("RLY_BINARY_ENV", "rly"),
        routes=routes,
        roles=Roles(
            victim=get("VICTIM_KEY_ENV", Roles.victim),
            recipient=get("RECIPIENT_KEY_ENV", Roles.recipient),
            attacker=get("ATTACKER_KEY_ENV", Roles.attacker),
            market_maker=get("MARKET_MAKER_KEY_ENV", Roles.market_maker),
        ),
        fees=FeePolicy(
            default_fee=get("DEFAULT_FEE_ENV", FeePolicy.default_fee),
            priority_fee=get("PRIORITY_FEE_ENV", FeePolicy.priority_fee),
            gas_flags=gas_flags,
            keyring_backend=get("KEYRING_BACKEND_ENV", FeePolicy.keyring_backend),
        ),
        denoms=Denoms(
            ibc=get("IBC_DENOM_ENV", Denoms.ibc),
            stake=get("STAKE_DENOM_ENV", Denoms.stake),
        ),
    )
    logger.info(
        "Configuration loaded: chain A %s at %s, chain B %s at %s, relayer home %s",
        config.chain_a.chain_id, config.chain_a.rpc,
        config.chain_b.chain_id, config.chain_b.rpc,
        config.relayer_home,
    )
    return config


def _expand_path(path: str, values: Mapping[str, str]) -> str:
    expanded = os.path.expanduser(path)
    # $VARS resolve against the same mapping the config was read from.
    for name in sorted(values, key=len, reverse=True):
        expanded = expanded.replace(f"${{{name}}}", values[name]).replace(f"${name}", values[name])
    return expanded
