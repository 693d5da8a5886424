"""Named scenarios reproducing the four classic front-running probes."""

from typing import Dict, Tuple

from .config import ORDERED_ROUTE, TRANSFER_ROUTE, UNORDERED_ROUTE
from .models import MarketLeg, ScenarioDescriptor


class UnknownScenarioError(LookupError):
    """Raised when a scenario name has no preset."""


_PRESETS: Dict[str, Tuple[ScenarioDescriptor, ...]] = {
    "relayer-frontrun": (
        ScenarioDescriptor(
            name="relayer-frontrun",
            description="Attacker lands a chain-B tx before the relayer delivers the victim's packet.",
            route=TRANSFER_ROUTE,
            victim_amount=100,
        ),
    ),
    "fee-priority-race": (
        ScenarioDescriptor(
            name="fee-priority-race",
            description="Relay and a high-fee attacker tx race into the same chain-B block.",
            route=TRANSFER_ROUTE,
            victim_amount=100,
            priority_fee=True,
            race_relay=True,
            await_attacker_inclusion=False,
        ),
    ),
    "dex-sandwich": (
        ScenarioDescriptor(
            name="dex-sandwich",
            description="Attacker sandwiches the victim's swap of delivered tokens on a chain-B pool.",
            route=TRANSFER_ROUTE,
            victim_amount=5000,
            market=MarketLeg(execute_on_chain=True),
        ),
    ),
    "channel-order": (
        ScenarioDescriptor(
            name="channel-order/ordered",
            description="Two packets on an ordered channel with an attacker tx between deliveries.",
            route=ORDERED_ROUTE,
            victim_amount=10,
            packet_count=2,
        ),
        ScenarioDescriptor(
            name="channel-order/unordered",
            description="Two packets on an unordered channel with an attacker tx between deliveries.",
            route=UNORDERED_ROUTE,
            victim_amount=10,
            packet_count=2,
        ),
    ),
}


def scenario_names() -> Tuple[str, ...]:
    return tuple(_PRESETS)


def get_scenario(name: str) -> Tuple[ScenarioDescriptor, ...]:
    """Return the descriptors to run, in order, for the named scenario."""

    try:
        return _PRESETS[name]
    except KeyError:
        raise UnknownScenarioError(
            f"Unknown scenario {name!r}; choose one of: {', '.join(_PRESETS)}"
        ) from None
