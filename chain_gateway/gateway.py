"""Chain query gateway backed by the node client command line."""

import json
import logging
from typing import List, Optional, Protocol, Sequence, Tuple

from .codec import DecodeError, decode_balance, decode_block, decode_search, decode_tx
from .models import (
    BlockRecord,
    ChainEndpoint,
    EventPredicate,
    FeePolicy,
    TxKind,
    TxParams,
    TxRecord,
)
from .runner import CommandResult, CommandRunner, SubprocessRunner

logger = logging.getLogger(__name__)


class GatewayError(RuntimeError):
    """Raised when a chain request fails; carries the operation and context."""

    def __init__(self, operation: str, detail: str) -> None:
        super().__init__(f"{operation} failed: {detail}")
        self.operation = operation
        self.detail = detail


class TxNotFoundError(GatewayError):
    """Raised when a transaction is not (yet) indexed by the node."""


class ChainGateway(Protocol):
    @property
    def chain_id(self) -> str:
        ...

    def submit(self, kind: TxKind, params: TxParams) -> TxRecord:
        ...

    def query_tx(self, tx_hash: str) -> TxRecord:
        ...

    def query_txs_by_event(
        self, predicates: Sequence[EventPredicate], limit: int = 1
    ) -> Tuple[TxRecord, ...]:
        ...

    def query_block(self, height: int) -> BlockRecord:
        ...

    def query_balance(self, address: str, denom: str) -> int:
        ...

    def resolve_address(self, key_name: str) -> str:
        ...

    def status(self) -> None:
        ...


_NOT_FOUND_MARKERS = ("not found", "no balance")


class CliChainGateway:
    """Issue requests against one chain through its node client binary."""

    def __init__(
        self,
        endpoint: ChainEndpoint,
        binary: str = "simd",
        fees: Optional[FeePolicy] = None,
        runner: Optional[CommandRunner] = None,
    ) -> None:
        self._endpoint = endpoint
        self._binary = binary
        self._fees = fees or FeePolicy()
        self._runner = runner or SubprocessRunner()

    @property
    def chain_id(self) -> str:
        return self._endpoint.chain_id

    def submit(self, kind: TxKind, params: TxParams) -> TxRecord:
        if params.amount <= 0:
            raise ValueError("Submitted amount must be positive.")

        if kind == TxKind.TRANSFER:
            operation = "bank send"
            args = ["tx", "bank", "send", params.from_key, params.recipient, params.coin]
        elif kind == TxKind.SEND:
            if not params.port or not params.channel:
                raise ValueError("Packet sends require a source port and channel.")
            operation = "ibc transfer"
            args = [
                "tx", "ibc-transfer", "transfer",
                params.port, params.channel, params.recipient, params.coin,
                "--from", params.from_key,
            ]
        else:
            raise ValueError(f"Unsupported transaction kind: {kind}")

        args += [
            "--chain-id", self._endpoint.chain_id,
            "--node", self._endpoint.rpc,
            "--home", self._endpoint.home,
            "--keyring-backend", self._fees.keyring_backend,
            "--fees", params.fee or self._fees.default_fee,
            "-y", "-o", "json",
        ]
        args += list(self._fees.gas_flags)

        result = self._run(args)
        if not result.ok:
            raise GatewayError(operation, result.describe())
        record = self._decode(operation, result, decode_tx)
        if not record.tx_hash:
            raise GatewayError(operation, f"response carried no tx hash: {result.stdout!r}")
        logger.info(
            "%s on %s submitted: %s (code %d)",
            operation, self.chain_id, record.tx_hash, record.code,
        )
        return record

    def query_tx(self, tx_hash: str) -> TxRecord:
        operation = f"query tx {tx_hash}"
        result = self._run([
            "query", "tx", tx_hash,
            "--chain-id", self._endpoint.chain_id,
            "--node", self._endpoint.rpc,
            "-o", "json",
        ])
        if not result.ok:
            if _mentions_not_found(result):
                raise TxNotFoundError(operation, result.describe())
            raise GatewayError(operation, result.describe())
        record = self._decode(operation, result, decode_tx)
        if not record.tx_hash:
            raise TxNotFoundError(operation, f"empty response: {result.stdout!r}")
        return record

    def query_txs_by_event(
        self, predicates: Sequence[EventPredicate], limit: int = 1
    ) -> Tuple[TxRecord, ...]:
        if not predicates:
            raise ValueError("At least one event predicate is required.")
        if limit < 1:
            raise ValueError("limit must be at least 1.")

        query = " AND ".join(predicate.render() for predicate in predicates)
        operation = f"query txs [{query}]"
        result = self._run([
            "query", "txs", "--query", query,
            "--node", self._endpoint.rpc,
            "--chain-id", self._endpoint.chain_id,
            "-o", "json",
            "--limit", str(limit),
            "--order_by", "asc",
        ])
        if not result.ok:
            raise GatewayError(operation, result.describe())
        return self._decode(operation, result, decode_search)[:limit]

    def query_block(self, height: int) -> BlockRecord:
        operation = f"query block {height}"
        result = self._run([
            "query", "block", str(height),
            "--node", self._endpoint.rpc,
            "-o", "json",
        ])
        if not result.ok:
            raise GatewayError(operation, result.describe())
        return self._decode(operation, result, decode_block)

    def query_balance(self, address: str, denom: str) -> int:
        operation = f"query balance {address} {denom}"
        result = self._run([
            "query", "bank", "balances", address,
            "--node", self._endpoint.rpc,
            "--chain-id", self._endpoint.chain_id,
            "-o", "json",
        ])
        if not result.ok:
            if _mentions_not_found(result):
                return 0
            raise GatewayError(operation, result.describe())
        if not result.stdout or result.stdout == "{}":
            return 0
        return self._decode(operation, result, decode_balance, denom)

    def resolve_address(self, key_name: str) -> str:
        result = self._run([
            "keys", "show", key_name, "-a",
            "--keyring-backend", self._fees.keyring_backend,
            "--home", self._endpoint.home,
        ])
        if not result.ok or not result.stdout:
            raise GatewayError(f"keys show {key_name}", result.describe())
        return result.stdout.strip()

    def status(self) -> None:
        result = self._run(["status", "--node", self._endpoint.rpc])
        if not result.ok:
            raise GatewayError(f"status {self._endpoint.rpc}", result.describe())

    def _run(self, args: List[str]) -> CommandResult:
        return self._runner([self._binary, *args])

    @staticmethod
    def _decode(operation: str, result: CommandResult, decoder, *args):
        try:
            return decoder(json.loads(result.stdout), *args)
        except json.JSONDecodeError as exc:
            raise GatewayError(operation, f"invalid JSON output: {result.stdout!r}") from exc
        except DecodeError as exc:
            raise GatewayError(operation, str(exc)) from exc


def _mentions_not_found(result: CommandResult) -> bool:
    text = f"{result.stderr} {result.stdout}".lower()
    return any(marker in text for marker in _NOT_FOUND_MARKERS)
