"""Operator CLI for the interchain front-running lab."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Iterable, List, Optional, Tuple

from amm.engine import InvariantViolationError, apply_swap, create_pool, price_impact, quote_swap, simulate_sandwich
from amm.models import SwapDirection
from chain_gateway.gateway import CliChainGateway, GatewayError
from chain_gateway.models import TxKind, TxParams
from chain_gateway.relayer import CliRelayTrigger, RelayerError
from ordering.models import Placement
from ordering.verifier import check_sequence_preserved, compare
from packet_correlator.correlator import extract_sent_packet
from scenario.config import TRANSFER_ROUTE, LabConfig, load_config
from scenario.orchestrator import ScenarioAbortedError, ScenarioOrchestrator, StateTransitionError
from scenario.polling import PollExhaustedError, RetryPolicy, poll
from scenario.presets import get_scenario, scenario_names
from scenario.simulation import build_simulated_lab

logger = logging.getLogger(__name__)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="ibc-lab")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run")
    run_parser.add_argument("scenario", choices=scenario_names())
    run_parser.add_argument("--env-file")
    run_parser.add_argument("--dry-run", action="store_true")
    run_parser.add_argument("--attempts", type=int, default=10)
    run_parser.add_argument("--race-timeout", type=float, default=20.0)
    run_parser.set_defaults(func=_run_scenario)

    list_parser = subparsers.add_parser("scenarios")
    list_parser.set_defaults(func=_list_scenarios)

    validate_parser = subparsers.add_parser("validate")
    validate_parser.add_argument("--env-file")
    validate_parser.add_argument("--transfer-test", action="store_true")
    validate_parser.set_defaults(func=_validate)

    amm_parser = subparsers.add_parser("amm")
    amm_sub = amm_parser.add_subparsers(dest="amm_command", required=True)

    amm_quote = amm_sub.add_parser("quote")
    _add_swap_args(amm_quote)
    amm_quote.set_defaults(func=_amm_quote)

    amm_impact = amm_sub.add_parser("impact")
    _add_swap_args(amm_impact)
    amm_impact.set_defaults(func=_amm_impact)

    amm_sandwich = amm_sub.add_parser("sandwich")
    amm_sandwich.add_argument("--reserve-x", type=int, default=2000)
    amm_sandwich.add_argument("--reserve-y", type=int, default=2000)
    amm_sandwich.add_argument("--front", type=int, required=True)
    amm_sandwich.add_argument("--victim", type=int, required=True)
    amm_sandwich.add_argument("--back", type=int)
    amm_sandwich.set_defaults(func=_amm_sandwich)

    order_parser = subparsers.add_parser("order")
    order_sub = order_parser.add_subparsers(dest="order_command", required=True)

    order_compare = order_sub.add_parser("compare")
    order_compare.add_argument("--a", required=True)
    order_compare.add_argument("--b", required=True)
    order_compare.set_defaults(func=_order_compare)

    order_sequence = order_sub.add_parser("sequence")
    order_sequence.add_argument("--placement", action="append", required=True)
    order_sequence.set_defaults(func=_order_sequence)

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        return args.func(args)
    except (
        ValueError,
        LookupError,
        GatewayError,
        RelayerError,
        PollExhaustedError,
        ScenarioAbortedError,
        StateTransitionError,
        InvariantViolationError,
    ) as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 2


def _run_scenario(args: argparse.Namespace) -> int:
    descriptors = get_scenario(args.scenario)
    if args.dry_run:
        orchestrator, _ = build_simulated_lab()
    else:
        config = load_config(env_file=args.env_file)
        orchestrator = _live_orchestrator(config, args.attempts, args.race_timeout)

    results = orchestrator.run_all(descriptors)
    print(json.dumps([result.to_dict() for result in results], indent=2))
    return 1 if any(isinstance(result, ScenarioAbortedError) for result in results) else 0


def _list_scenarios(args: argparse.Namespace) -> int:
    payload = [
        {"name": name, "runs": [descriptor.to_dict() for descriptor in get_scenario(name)]}
        for name in scenario_names()
    ]
    print(json.dumps(payload, indent=2))
    return 0


def _validate(args: argparse.Namespace) -> int:
    config = load_config(env_file=args.env_file)
    source, destination = _live_gateways(config)
    relayer = CliRelayTrigger(config.relayer_home, binary=config.relayer_binary)

    checks = []
    for label, gateway in (("chain A", source), ("chain B", destination)):
        checks.append(_check(f"{label} status", gateway.status))
    for route in config.routes:
        checks.append(_check(f"relayer path {route.path}", lambda path=route.path: relayer.show_path(path)))
    if args.transfer_test:
        checks.append(_check("basic transfer", lambda: _transfer_probe(config, source, destination)))

    print(json.dumps({"config": config.summary(), "checks": checks}, indent=2))
    return 0 if all(check["ok"] for check in checks) else 1


def _check(name: str, probe) -> dict:
    try:
        result = probe()
    except (GatewayError, RelayerError, LookupError, TimeoutError) as exc:
        logger.warning("Check %s failed: %s", name, exc)
        return {"name": name, "ok": False, "detail": str(exc)}
    return {"name": name, "ok": True, "detail": "" if result is None else str(result)[:200]}


def _transfer_probe(config: LabConfig, source: CliChainGateway, destination: CliChainGateway) -> str:
    route = config.route(TRANSFER_ROUTE)
    record = source.submit(
        TxKind.SEND,
        TxParams(
            from_key=config.roles.victim,
            recipient=destination.resolve_address(config.roles.recipient),
            amount=1,
            denom=config.denoms.ibc,
            port=route.port,
            channel=route.src_channel,
        ),
    )
    if not record.succeeded:
        raise GatewayError("ibc transfer", f"rejected with code {record.code}: {record.raw_log}")
    indexed = poll(
        lambda: source.query_tx(record.tx_hash),
        (GatewayError,),
        RetryPolicy(attempts=5),
        f"transfer {record.tx_hash}",
    )
    packet = extract_sent_packet(indexed, route.port, route.src_channel)
    return f"packet {packet.port}/{packet.channel} seq {packet.sequence}"


def _amm_quote(args: argparse.Namespace) -> int:
    amount_out = quote_swap(args.amount_in, args.reserve_in, args.reserve_out)
    print(json.dumps({"amount_in": args.amount_in, "amount_out": amount_out}, indent=2))
    return 0


def _amm_impact(args: argparse.Namespace) -> int:
    pool = create_pool(args.reserve_in, args.reserve_out)
    receipt = apply_swap(pool, SwapDirection.X_TO_Y, args.amount_in)
    impact = price_impact(args.amount_in, args.reserve_in, args.reserve_out)
    print(
        json.dumps(
            {
                "amount_in": args.amount_in,
                "amount_out": receipt.amount_out,
                "price_impact_pct": impact,
                "pool_after": pool.to_dict(),
            },
            indent=2,
        )
    )
    return 0


def _amm_sandwich(args: argparse.Namespace) -> int:
    pool = create_pool(args.reserve_x, args.reserve_y)
    result = simulate_sandwich(pool, args.front, args.victim, back_amount=args.back)
    print(json.dumps(result.to_dict(), indent=2))
    return 0


def _order_compare(args: argparse.Namespace) -> int:
    a, b = _parse_placement(args.a), _parse_placement(args.b)
    ordering = compare(a, b)
    print(json.dumps({"a": a.to_dict(), "b": b.to_dict(), "ordering": ordering.value}, indent=2))
    return 0


def _order_sequence(args: argparse.Namespace) -> int:
    placements = _parse_placements(args.placement)
    check = check_sequence_preserved(placements)
    print(json.dumps(check.to_dict(), indent=2))
    return 0


def _add_swap_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--amount-in", type=int, required=True)
    parser.add_argument("--reserve-in", type=int, required=True)
    parser.add_argument("--reserve-out", type=int, required=True)


def _parse_placement(value: str) -> Placement:
    height, _, index = value.partition(":")
    try:
        return Placement(height=int(height), index=int(index) if index else None)
    except ValueError as exc:
        raise ValueError(f"Placement must be formatted as HEIGHT[:INDEX], got {value!r}.") from exc


def _parse_placements(values: Iterable[str]) -> Tuple[Placement, ...]:
    return tuple(_parse_placement(value) for value in values)


def _live_gateways(config: LabConfig) -> Tuple[CliChainGateway, CliChainGateway]:
    return (
        CliChainGateway(config.chain_a, binary=config.node_binary, fees=config.fees),
        CliChainGateway(config.chain_b, binary=config.node_binary, fees=config.fees),
    )


def _live_orchestrator(config: LabConfig, attempts: int, race_timeout: float) -> ScenarioOrchestrator:
    source, destination = _live_gateways(config)
    relayer = CliRelayTrigger(config.relayer_home, binary=config.relayer_binary)
    return ScenarioOrchestrator(
        config,
        source,
        destination,
        relayer,
        retry=RetryPolicy(attempts=attempts),
        race_timeout=race_timeout,
    )


if __name__ == "__main__":
    raise SystemExit(main())
