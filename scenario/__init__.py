from .config import ChannelOrder, ChannelRoute, ConfigError, LabConfig, Roles, load_config
from .models import MarketLeg, ScenarioDescriptor, ScenarioState, ScenarioVerdict, Severity
from .orchestrator import ScenarioAbortedError, ScenarioOrchestrator, StateTransitionError, classify_severity
from .polling import PollExhaustedError, RetryPolicy, poll
from .presets import UnknownScenarioError, get_scenario, scenario_names
from .simulation import build_simulated_lab, simulated_config

__all__ = [
    "ChannelOrder",
    "ChannelRoute",
    "ConfigError",
    "LabConfig",
    "MarketLeg",
    "PollExhaustedError",
    "RetryPolicy",
    "Roles",
    "ScenarioAbortedError",
    "ScenarioDescriptor",
    "ScenarioOrchestrator",
    "ScenarioState",
    "ScenarioVerdict",
    "Severity",
    "StateTransitionError",
    "UnknownScenarioError",
    "build_simulated_lab",
    "classify_severity",
    "get_scenario",
    "load_config",
    "poll",
    "scenario_names",
    "simulated_config",
]
