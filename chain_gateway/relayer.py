"""Relay trigger for delivering pending packets to the destination chain."""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol, Tuple

from .runner import CommandResult, CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)


class RelayStatus(Enum):
    RELAYED = "RELAYED"
    ALREADY_RELAYED = "ALREADY_RELAYED"
    NOTHING_TO_RELAY = "NOTHING_TO_RELAY"
    ERROR = "ERROR"


@dataclass(frozen=True)
class RelayOutcome:
    status: RelayStatus
    detail: str = ""

    @property
    def tolerated(self) -> bool:
        return self.status != RelayStatus.ERROR


class RelayTrigger(Protocol):
    def relay_packet(self, path: str, channel: str, sequence: int) -> RelayOutcome:
        ...


class RelayerError(RuntimeError):
    """Raised when the relayer configuration itself is unusable."""


# Relayer diagnostics mapped once, here, onto the closed status set.
_TOLERATED_DIAGNOSTICS: Tuple[Tuple[str, RelayStatus], ...] = (
    ("no packets to relay found", RelayStatus.NOTHING_TO_RELAY),
    ("0/0 packets relayed", RelayStatus.NOTHING_TO_RELAY),
    ("already relayed", RelayStatus.ALREADY_RELAYED),
    ("result does not exist", RelayStatus.ALREADY_RELAYED),
    ("packet messages are redundant", RelayStatus.ALREADY_RELAYED),
)


class CliRelayTrigger:
    """Flush pending packets for one relayer path via the relayer binary."""

    def __init__(
        self,
        home: str,
        binary: str = "rly",
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self._home = home
        self._binary = binary
        self._runner = runner or SubprocessRunner()

    def relay_packet(self, path: str, channel: str, sequence: int) -> RelayOutcome:
        result = self._runner([
            self._binary, "tx", "flush", path, channel, "--home", self._home,
        ])
        outcome = classify_relay_result(result)
        if outcome.status == RelayStatus.ERROR:
            logger.warning(
                "Relay of seq %s on %s/%s failed: %s", sequence, path, channel, outcome.detail
            )
        else:
            logger.info(
                "Relay of seq %s on %s/%s: %s", sequence, path, channel, outcome.status.value
            )
        return outcome

    def show_path(self, path: str) -> str:
        result = self._runner([self._binary, "paths", "show", path, "--home", self._home])
        if not result.ok:
            raise RelayerError(f"Relayer path {path} not available: {result.describe()}")
        return result.stdout


def classify_relay_result(result: CommandResult) -> RelayOutcome:
    text = f"{result.stderr}\n{result.stdout}".lower()
    for marker, status in _TOLERATED_DIAGNOSTICS:
        if marker in text:
            return RelayOutcome(status=status, detail=marker)
    if result.ok:
        return RelayOutcome(status=RelayStatus.RELAYED, detail=result.stderr or result.stdout)
    return RelayOutcome(status=RelayStatus.ERROR, detail=result.describe())
