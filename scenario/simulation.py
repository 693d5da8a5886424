"""Wire an orchestrator to the in-memory network for dry runs."""

from typing import Optional, Tuple

from chain_gateway.models import ChainEndpoint
from chain_gateway.simulator import SimulatedNetwork

from .config import (
    ORDERED_ROUTE,
    TRANSFER_ROUTE,
    UNORDERED_ROUTE,
    ChannelOrder,
    ChannelRoute,
    LabConfig,
)
from .orchestrator import ScenarioOrchestrator
from .polling import RetryPolicy

_STARTING_BALANCE = 1_000_000


def simulated_config() -> LabConfig:
    return LabConfig(
        chain_a=ChainEndpoint(chain_id="chain-a", rpc="sim://chain-a", home="-"),
        chain_b=ChainEndpoint(chain_id="chain-b", rpc="sim://chain-b", home="-"),
        relayer_home="-",
        routes=(
            ChannelRoute(TRANSFER_ROUTE, "a-b-transfer", "channel-0", "channel-0"),
            ChannelRoute(ORDERED_ROUTE, "a-b-ordered", "channel-1", "channel-1", ChannelOrder.ORDERED),
            ChannelRoute(UNORDERED_ROUTE, "a-b-unordered", "channel-2", "channel-2"),
        ),
    )


def build_simulated_lab(
    config: Optional[LabConfig] = None,
) -> Tuple[ScenarioOrchestrator, SimulatedNetwork]:
    """Return an orchestrator over a freshly funded simulated network."""

    config = config or simulated_config()
    network = SimulatedNetwork(config.chain_a.chain_id, config.chain_b.chain_id)
    for route in config.routes:
        network.link(
            route.path,
            route.src_channel,
            route.dst_channel,
            src_port=route.port,
            dst_port=route.port,
            ordered=route.order == ChannelOrder.ORDERED,
        )

    roles, denoms = config.roles, config.denoms
    network.chain_a.fund(roles.victim, denoms.ibc, _STARTING_BALANCE)
    for key in (roles.attacker, roles.market_maker, roles.recipient):
        network.chain_b.fund(key, denoms.ibc, _STARTING_BALANCE)
        network.chain_b.fund(key, denoms.stake, _STARTING_BALANCE)

    orchestrator = ScenarioOrchestrator(
        config,
        network.chain_a,
        network.chain_b,
        network.relayer,
        retry=RetryPolicy(attempts=3, initial_delay=0.0, max_delay=0.0),
        race_timeout=5.0,
        sleep=lambda _: None,
    )
    return orchestrator, network
