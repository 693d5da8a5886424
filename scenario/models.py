"""Scenario descriptors, run states and verdicts."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from amm.models import SandwichResult
from chain_gateway.relayer import RelayStatus
from ordering.models import Ordering, Placement, SequenceCheck
from packet_correlator.models import PacketIdentity


class ScenarioState(Enum):
    INIT = "INIT"
    VICTIM_SUBMITTED = "VICTIM_SUBMITTED"
    PACKET_OBSERVED = "PACKET_OBSERVED"
    ATTACKER_ACTION = "ATTACKER_ACTION"
    RELAY_TRIGGERED = "RELAY_TRIGGERED"
    OUTCOME_OBSERVED = "OUTCOME_OBSERVED"
    VERDICT = "VERDICT"
    ABORTED = "ABORTED"


STATE_ORDER: Tuple[ScenarioState, ...] = (
    ScenarioState.INIT,
    ScenarioState.VICTIM_SUBMITTED,
    ScenarioState.PACKET_OBSERVED,
    ScenarioState.ATTACKER_ACTION,
    ScenarioState.RELAY_TRIGGERED,
    ScenarioState.OUTCOME_OBSERVED,
    ScenarioState.VERDICT,
)


class Severity(Enum):
    NO_FRONT_RUN = "NO_FRONT_RUN"
    INCONCLUSIVE = "INCONCLUSIVE"
    FRONT_RUN = "FRONT_RUN"
    PROTOCOL_VIOLATION = "PROTOCOL_VIOLATION"


@dataclass(frozen=True)
class MarketLeg:
    """Sandwich trades around the victim's delivered tokens.

    Reserves are (ibc, stake); the front and victim legs sell the ibc denom,
    the back leg sells the front leg's stake output unless ``back_amount`` is set.
    """

    reserve_ibc: int = 2000
    reserve_stake: int = 2000
    front_amount: int = 100
    victim_swap_amount: Optional[int] = None
    back_amount: Optional[int] = None
    execute_on_chain: bool = False

    def __post_init__(self) -> None:
        if self.reserve_ibc <= 0 or self.reserve_stake <= 0:
            raise ValueError("Market reserves must be positive.")
        if self.front_amount <= 0:
            raise ValueError("Front-run amount must be positive.")
        if self.victim_swap_amount is not None and self.victim_swap_amount <= 0:
            raise ValueError("Victim swap amount must be positive.")
        if self.back_amount is not None and self.back_amount <= 0:
            raise ValueError("Back-run amount must be positive.")


@dataclass(frozen=True)
class ScenarioDescriptor:
    name: str
    description: str
    route: str
    victim_amount: int = 100
    packet_count: int = 1
    attacker_amount: int = 1
    priority_fee: bool = False
    race_relay: bool = False
    await_attacker_inclusion: bool = True
    market: Optional[MarketLeg] = None

    def __post_init__(self) -> None:
        if self.victim_amount <= 0 or self.attacker_amount <= 0:
            raise ValueError("Scenario amounts must be positive.")
        if self.packet_count < 1:
            raise ValueError("A scenario sends at least one packet.")
        if self.race_relay and self.await_attacker_inclusion:
            raise ValueError("A raced relay cannot wait for attacker inclusion first.")
        if self.market is not None and self.victim_swap_amount <= 0:
            raise ValueError(
                f"Victim amount {self.victim_amount} leaves nothing to swap; set victim_swap_amount explicitly."
            )

    @property
    def victim_swap_amount(self) -> Optional[int]:
        if self.market is None:
            return None
        if self.market.victim_swap_amount is not None:
            return self.market.victim_swap_amount
        return self.victim_amount // 2

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "route": self.route,
            "victim_amount": self.victim_amount,
            "packet_count": self.packet_count,
            "attacker_amount": self.attacker_amount,
            "priority_fee": self.priority_fee,
            "race_relay": self.race_relay,
            "await_attacker_inclusion": self.await_attacker_inclusion,
            "market": None if self.market is None else {
                "reserve_ibc": self.market.reserve_ibc,
                "reserve_stake": self.market.reserve_stake,
                "front_amount": self.market.front_amount,
                "victim_swap_amount": self.victim_swap_amount,
                "back_amount": self.market.back_amount,
                "execute_on_chain": self.market.execute_on_chain,
            },
        }


@dataclass(frozen=True)
class ScenarioVerdict:
    scenario: str
    route: str
    ordering: Ordering
    severity: Severity
    profit: Optional[int] = None
    sequence_respected: Optional[bool] = None
    relay_status: Optional[RelayStatus] = None
    packets: Tuple[PacketIdentity, ...] = ()
    attacker_placement: Optional[Placement] = None
    receive_placement: Optional[Placement] = None
    sequence_check: Optional[SequenceCheck] = None
    market: Optional[SandwichResult] = None
    sandwich_ordered: Optional[bool] = None
    notes: Tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict:
        return {
            "scenario": self.scenario,
            "route": self.route,
            "ordering": self.ordering.value,
            "severity": self.severity.value,
            "profit": self.profit,
            "sequence_respected": self.sequence_respected,
            "relay_status": None if self.relay_status is None else self.relay_status.value,
            "packets": [packet.to_dict() for packet in self.packets],
            "attacker_placement": _placement_dict(self.attacker_placement),
            "receive_placement": _placement_dict(self.receive_placement),
            "sequence_check": None if self.sequence_check is None else self.sequence_check.to_dict(),
            "market": None if self.market is None else self.market.to_dict(),
            "sandwich_ordered": self.sandwich_ordered,
            "notes": list(self.notes),
        }


def _placement_dict(placement: Optional[Placement]) -> Optional[dict]:
    return None if placement is None else placement.to_dict()
