"""Bounded subprocess execution for the node and relayer binaries."""

import logging
import subprocess
from dataclasses import dataclass
from typing import Callable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    args: tuple
    returncode: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def describe(self) -> str:
        return (
            f"command '{' '.join(self.args)}' exited {self.returncode}; "
            f"stdout: {self.stdout!r}; stderr: {self.stderr!r}"
        )


CommandRunner = Callable[[Sequence[str]], CommandResult]


class SubprocessRunner:
    """Run a command with a hard timeout and captured, stripped output."""

    def __init__(self, timeout: float = 60.0) -> None:
        self._timeout = timeout

    def __call__(self, args: Sequence[str]) -> CommandResult:
        argv = tuple(args)
        logger.debug("Executing: %s", " ".join(argv))
        try:
            proc = subprocess.run(
                argv,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            return CommandResult(
                args=argv,
                returncode=-1,
                stdout=_as_text(exc.stdout),
                stderr=f"timed out after {self._timeout}s",
            )
        except OSError as exc:
            return CommandResult(args=argv, returncode=-1, stdout="", stderr=str(exc))

        return CommandResult(
            args=argv,
            returncode=proc.returncode,
            stdout=(proc.stdout or "").strip(),
            stderr=(proc.stderr or "").strip(),
        )


def _as_text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace").strip()
    return str(value).strip()
