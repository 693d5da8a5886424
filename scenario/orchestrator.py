"""Drive one front-running scenario from victim send to verdict."""

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Callable, Iterable, List, Optional, Tuple, Union

from amm.engine import InvariantViolationError, create_pool, simulate_sandwich
from amm.models import SandwichResult, SwapDirection
from chain_gateway.gateway import ChainGateway, GatewayError
from chain_gateway.models import TxKind, TxParams, TxRecord
from chain_gateway.relayer import RelayOutcome, RelayTrigger
from ordering.models import Ordering, Placement, SequenceCheck
from ordering.verifier import DegenerateComparisonError, check_sequence_preserved, compare, locate
from packet_correlator.correlator import PacketNotFoundError, extract_sent_packet, find_received_packet
from packet_correlator.models import PacketIdentity

from .config import ChannelOrder, ChannelRoute, LabConfig
from .models import STATE_ORDER, ScenarioDescriptor, ScenarioState, ScenarioVerdict, Severity
from .polling import PollExhaustedError, RetryPolicy, poll

logger = logging.getLogger(__name__)


class StateTransitionError(RuntimeError):
    """Raised when a scenario step runs out of order."""


class ScenarioAbortedError(RuntimeError):
    """Raised when a scenario cannot continue; carries the state it stopped in."""

    def __init__(self, scenario: str, state: ScenarioState, reason: str) -> None:
        super().__init__(f"Scenario {scenario} aborted in {state.value}: {reason}")
        self.scenario = scenario
        self.state = state
        self.reason = reason

    def to_dict(self) -> dict:
        return {
            "scenario": self.scenario,
            "aborted": True,
            "state": self.state.value,
            "reason": self.reason,
        }


def classify_severity(
    ordering: Ordering,
    sequence_check: Optional[SequenceCheck],
    channel_order: ChannelOrder,
) -> Severity:
    if (
        sequence_check is not None
        and not sequence_check.preserved
        and channel_order == ChannelOrder.ORDERED
    ):
        return Severity.PROTOCOL_VIOLATION
    if ordering.first is True:
        return Severity.FRONT_RUN
    if ordering.first is False:
        return Severity.NO_FRONT_RUN
    return Severity.INCONCLUSIVE


@dataclass(frozen=True)
class _Submission:
    tx_hash: Optional[str]
    notes: Tuple[str, ...] = ()
    paid_out: bool = False


@dataclass
class _Run:
    descriptor: ScenarioDescriptor
    route: ChannelRoute
    recipient: str = ""
    attacker: str = ""
    maker: str = ""
    victim_hashes: List[str] = field(default_factory=list)
    packets: List[PacketIdentity] = field(default_factory=list)
    attacker_hash: Optional[str] = None
    attacker_record: Optional[TxRecord] = None
    relay_issued: bool = False
    relay_outcome: Optional[RelayOutcome] = None
    receives: List[Optional[TxRecord]] = field(default_factory=list)
    sandwich: Optional[SandwichResult] = None
    sandwich_ordered: Optional[bool] = None
    maker_before: Optional[Tuple[int, int]] = None
    maker_expected: List[int] = field(default_factory=lambda: [0, 0])
    notes: List[str] = field(default_factory=list)

    def note(self, message: str) -> None:
        logger.warning("%s: %s", self.descriptor.name, message)
        self.notes.append(message)


class ScenarioOrchestrator:
    """Sequence victim, attacker and relay actions against two chains.

    Runs are strictly sequential; the pool model is touched only by the thread
    calling :meth:`run`. The only concurrency is the optional relay race.
    """

    def __init__(
        self,
        config: LabConfig,
        source: ChainGateway,
        destination: ChainGateway,
        relayer: RelayTrigger,
        retry: Optional[RetryPolicy] = None,
        race_timeout: float = 20.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._source = source
        self._destination = destination
        self._relayer = relayer
        self._retry = retry or RetryPolicy()
        self._race_timeout = race_timeout
        self._sleep = sleep
        self._state = ScenarioState.INIT
        self._cancelled = threading.Event()
        self._current: Optional[str] = None

    @property
    def state(self) -> ScenarioState:
        return self._state

    def cancel(self) -> None:
        """Stop the running scenario at its next state transition."""

        self._cancelled.set()

    def run(self, descriptor: ScenarioDescriptor) -> ScenarioVerdict:
        if self._state not in (ScenarioState.INIT, ScenarioState.VERDICT, ScenarioState.ABORTED):
            raise StateTransitionError(f"Scenario {self._current} is still running.")

        self._state = ScenarioState.INIT
        self._current = descriptor.name
        self._cancelled.clear()
        logger.info("Scenario %s starting on route %s", descriptor.name, descriptor.route)
        try:
            run = _Run(descriptor=descriptor, route=self._config.route(descriptor.route))
            self._plan_market(run)
            self._resolve_roles(run)
            self._submit_victim(run)
            self._observe_packets(run)
            self._attack(run)
            self._relay(run)
            self._observe_outcome(run)
            return self._verdict(run)
        except ScenarioAbortedError as exc:
            self._state = ScenarioState.ABORTED
            logger.error("%s", exc)
            raise
        except Exception:
            self._state = ScenarioState.ABORTED
            raise

    def run_all(
        self, descriptors: Iterable[ScenarioDescriptor]
    ) -> List[Union[ScenarioVerdict, ScenarioAbortedError]]:
        """Run descriptors in order; an aborted run is recorded and the next one still runs."""

        results: List[Union[ScenarioVerdict, ScenarioAbortedError]] = []
        for descriptor in descriptors:
            try:
                results.append(self.run(descriptor))
            except ScenarioAbortedError as exc:
                results.append(exc)
                if exc.reason == "cancelled":
                    break
        return results

    def _aborted(self, run: _Run, reason: str) -> ScenarioAbortedError:
        return ScenarioAbortedError(run.descriptor.name, self._state, reason)

    def _advance(self, run: _Run, target: ScenarioState) -> None:
        if self._cancelled.is_set():
            raise self._aborted(run, "cancelled")
        position = STATE_ORDER.index(self._state) if self._state in STATE_ORDER else -1
        if position < 0 or position + 1 >= len(STATE_ORDER) or STATE_ORDER[position + 1] != target:
            raise StateTransitionError(f"Cannot move from {self._state.value} to {target.value}.")
        logger.info("%s: %s -> %s", run.descriptor.name, self._state.value, target.value)
        self._state = target

    def _plan_market(self, run: _Run) -> None:
        """Simulate the sandwich before any funds move; an untradeable leg aborts the run."""

        descriptor = run.descriptor
        market = descriptor.market
        if market is None:
            return
        try:
            run.sandwich = simulate_sandwich(
                create_pool(market.reserve_ibc, market.reserve_stake),
                front_amount=market.front_amount,
                victim_amount=descriptor.victim_swap_amount,
                back_amount=market.back_amount,
                direction=SwapDirection.X_TO_Y,
            )
        except (ValueError, InvariantViolationError) as exc:
            raise self._aborted(run, f"market leg cannot trade: {exc}") from exc

    def _resolve_roles(self, run: _Run) -> None:
        roles = self._config.roles
        try:
            run.recipient = self._destination.resolve_address(roles.recipient)
            run.attacker = self._destination.resolve_address(roles.attacker)
            if run.descriptor.market is not None:
                run.maker = self._destination.resolve_address(roles.market_maker)
        except GatewayError as exc:
            raise self._aborted(run, f"role address lookup failed: {exc}") from exc

    def _submit_victim(self, run: _Run) -> None:
        descriptor, route = run.descriptor, run.route
        for _ in range(descriptor.packet_count):
            params = TxParams(
                from_key=self._config.roles.victim,
                recipient=run.recipient,
                amount=descriptor.victim_amount,
                denom=self._config.denoms.ibc,
                fee=self._config.fees.default_fee,
                port=route.port,
                channel=route.src_channel,
            )
            try:
                record = self._source.submit(TxKind.SEND, params)
            except GatewayError as exc:
                raise self._aborted(run, f"victim send failed: {exc}") from exc
            if not record.succeeded:
                raise self._aborted(
                    run, f"victim tx {record.tx_hash} rejected with code {record.code}: {record.raw_log}"
                )
            run.victim_hashes.append(record.tx_hash)
        self._advance(run, ScenarioState.VICTIM_SUBMITTED)

    def _observe_packets(self, run: _Run) -> None:
        route = run.route
        for tx_hash in run.victim_hashes:
            try:
                record = self._poll(
                    lambda h=tx_hash: self._source.query_tx(h),
                    (GatewayError,),
                    f"victim tx {tx_hash} on {self._source.chain_id}",
                )
            except PollExhaustedError as exc:
                raise self._aborted(run, f"victim tx never indexed: {exc}") from exc
            try:
                packet = extract_sent_packet(record, route.port, route.src_channel)
            except PacketNotFoundError as exc:
                raise self._aborted(run, str(exc)) from exc
            logger.info(
                "%s: observed packet %s/%s seq %d",
                run.descriptor.name, packet.port, packet.channel, packet.sequence,
            )
            run.packets.append(packet)
        self._advance(run, ScenarioState.PACKET_OBSERVED)

        # Earlier packets are delivered before the attacker acts.
        for packet in run.packets[:-1]:
            self._trigger_relay(run, packet)

    def _attack(self, run: _Run) -> None:
        descriptor = run.descriptor
        market = descriptor.market
        if market is not None and market.execute_on_chain:
            run.maker_before = self._maker_balances(run)

        fee = self._config.fees.priority_fee if descriptor.priority_fee else self._config.fees.default_fee
        if descriptor.race_relay:
            submission = self._race(run, fee)
        else:
            submission = self._submit_attacker(run, fee)
        run.notes.extend(submission.notes)
        run.attacker_hash = submission.tx_hash
        if run.attacker_hash and market is not None and market.execute_on_chain:
            run.maker_expected[0] += run.sandwich.front.amount_in
            if submission.paid_out:
                run.maker_expected[1] -= run.sandwich.front.amount_out

        if run.attacker_hash and descriptor.await_attacker_inclusion:
            run.attacker_record = self._await_tx(run, run.attacker_hash, "attacker tx")
        self._advance(run, ScenarioState.ATTACKER_ACTION)

    def _submit_attacker(self, run: _Run, fee: str) -> _Submission:
        """Submit the attacker's transaction; touches no shared run state."""

        denoms = self._config.denoms
        market = run.descriptor.market
        if market is not None and market.execute_on_chain:
            first = TxParams(
                from_key=self._config.roles.attacker,
                recipient=run.maker,
                amount=run.sandwich.front.amount_in,
                denom=denoms.ibc,
                fee=fee,
            )
        else:
            first = TxParams(
                from_key=self._config.roles.attacker,
                recipient=run.attacker,
                amount=run.descriptor.attacker_amount,
                denom=denoms.ibc,
                fee=fee,
            )

        try:
            record = self._destination.submit(TxKind.TRANSFER, first)
        except GatewayError as exc:
            return _Submission(None, (f"attacker tx failed: {exc}",))
        if not record.succeeded:
            return _Submission(
                None, (f"attacker tx {record.tx_hash} rejected with code {record.code}: {record.raw_log}",)
            )

        notes: Tuple[str, ...] = ()
        paid_out = False
        if market is not None and market.execute_on_chain:
            payout = self._payout(run, run.attacker, run.sandwich.front.amount_out, denoms.stake)
            if payout is not None:
                notes = (f"market maker front-leg payout failed: {payout}",)
            else:
                paid_out = True
        logger.info("%s: attacker tx %s submitted", run.descriptor.name, record.tx_hash)
        return _Submission(record.tx_hash, notes, paid_out)

    def _race(self, run: _Run, fee: str) -> _Submission:
        target = run.packets[-1]
        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="relay-race")
        try:
            relay_future = executor.submit(
                self._relayer.relay_packet, run.route.path, run.route.src_channel, target.sequence
            )
            attack_future = executor.submit(self._submit_attacker, run, fee)
            done, _ = wait((relay_future, attack_future), timeout=self._race_timeout)
        finally:
            executor.shutdown(wait=False)

        run.relay_issued = True
        if relay_future in done:
            run.relay_outcome = relay_future.result()
            self._log_relay(run, target, run.relay_outcome)
        else:
            run.note(f"relay did not finish within {self._race_timeout:.0f}s; outcome unknown")

        if attack_future in done:
            return attack_future.result()
        return _Submission(None, (f"attacker submission did not finish within {self._race_timeout:.0f}s",))

    def _relay(self, run: _Run) -> None:
        if not run.relay_issued:
            run.relay_outcome = self._trigger_relay(run, run.packets[-1])
            run.relay_issued = True
        self._advance(run, ScenarioState.RELAY_TRIGGERED)

    def _trigger_relay(self, run: _Run, packet: PacketIdentity) -> RelayOutcome:
        outcome = self._relayer.relay_packet(run.route.path, run.route.src_channel, packet.sequence)
        self._log_relay(run, packet, outcome)
        return outcome

    def _log_relay(self, run: _Run, packet: PacketIdentity, outcome: RelayOutcome) -> None:
        if outcome.tolerated:
            logger.info("%s: relay of seq %d: %s", run.descriptor.name, packet.sequence, outcome.status.value)
        else:
            run.note(f"relay of seq {packet.sequence} failed: {outcome.detail}")

    def _observe_outcome(self, run: _Run) -> None:
        route = run.route
        for packet in run.packets:
            try:
                record = self._poll(
                    lambda seq=packet.sequence: find_received_packet(
                        self._destination, route.port, route.dst_channel, seq
                    ),
                    (PacketNotFoundError, GatewayError),
                    f"receive of seq {packet.sequence} on {self._destination.chain_id}",
                )
            except PollExhaustedError as exc:
                run.note(str(exc))
                record = None
            run.receives.append(record)

        if run.attacker_hash and run.attacker_record is None:
            run.attacker_record = self._await_tx(run, run.attacker_hash, "attacker tx")

        market = run.descriptor.market
        if market is not None and market.execute_on_chain:
            self._complete_market(run)
        self._advance(run, ScenarioState.OUTCOME_OBSERVED)

    def _complete_market(self, run: _Run) -> None:
        receive = run.receives[-1]
        if receive is None or run.attacker_hash is None:
            run.note("victim and back-run swaps skipped: front-run or receive missing")
            return

        roles, denoms, sandwich = self._config.roles, self._config.denoms, run.sandwich
        victim_leg = self._swap_on_chain(
            run, roles.recipient, run.recipient, sandwich.victim.amount_in, denoms.ibc,
            sandwich.victim.amount_out, denoms.stake, "victim swap",
        )
        if victim_leg is None:
            return
        back_leg = self._swap_on_chain(
            run, roles.attacker, run.attacker, sandwich.back.amount_in, denoms.stake,
            sandwich.back.amount_out, denoms.ibc, "back-run swap",
        )
        if back_leg is None:
            return

        back_record = self._await_tx(run, back_leg, "back-run tx")
        if back_record is not None:
            run.sandwich_ordered = self._check_sandwich_order(run, run.attacker_record, receive, back_record)
        self._reconcile_maker(run)

    def _check_sandwich_order(
        self,
        run: _Run,
        front: Optional[TxRecord],
        receive: TxRecord,
        back: TxRecord,
    ) -> Optional[bool]:
        """True when front-run <= victim receive <= back-run, None when undecided."""

        if front is None or any(record.height is None for record in (front, receive, back)):
            run.note("sandwich order unchecked: a leg has no block height")
            return None
        front_at, receive_at, back_at = locate(self._destination, (front, receive, back))
        try:
            leading, trailing = compare(front_at, receive_at), compare(receive_at, back_at)
        except DegenerateComparisonError as exc:
            run.note(f"sandwich order undecided: {exc}")
            return None
        if leading.first is False:
            run.note(f"front-run at {front_at} landed after the victim's receive at {receive_at}")
        if trailing.first is False:
            run.note(f"back-run at {back_at} landed before the victim's receive at {receive_at}")
        if leading.first is False or trailing.first is False:
            return False
        if leading.first is None or trailing.first is None:
            run.note(f"sandwich order undecided: front {front_at}, receive {receive_at}, back {back_at}")
            return None
        return True

    def _swap_on_chain(
        self,
        run: _Run,
        trader_key: str,
        trader_address: str,
        amount_in: int,
        denom_in: str,
        amount_out: int,
        denom_out: str,
        label: str,
    ) -> Optional[str]:
        """Pay the maker, then pay the trader; return the paying tx hash."""

        try:
            record = self._destination.submit(
                TxKind.TRANSFER,
                TxParams(
                    from_key=trader_key,
                    recipient=run.maker,
                    amount=amount_in,
                    denom=denom_in,
                    fee=self._config.fees.default_fee,
                ),
            )
        except GatewayError as exc:
            run.note(f"{label} failed: {exc}")
            return None
        if not record.succeeded:
            run.note(f"{label} rejected with code {record.code}: {record.raw_log}")
            return None

        ibc_in = denom_in == self._config.denoms.ibc
        run.maker_expected[0 if ibc_in else 1] += amount_in
        if amount_out > 0:
            failure = self._payout(run, trader_address, amount_out, denom_out)
            if failure is not None:
                run.note(f"{label} payout failed: {failure}")
            else:
                run.maker_expected[1 if ibc_in else 0] -= amount_out
        return record.tx_hash

    def _payout(self, run: _Run, recipient: str, amount: int, denom: str) -> Optional[str]:
        """Pay from the market maker once its reserve covers ``amount``."""

        try:
            held = self._destination.query_balance(run.maker, denom)
        except GatewayError as exc:
            return f"market maker reserve unavailable: {exc}"
        if held < amount:
            return f"market maker holds {held}{denom}, short of {amount}{denom}"
        return self._transfer(self._config.roles.market_maker, recipient, amount, denom)

    def _transfer(self, from_key: str, recipient: str, amount: int, denom: str) -> Optional[str]:
        """Submit a plain transfer; return a failure description or None."""

        try:
            record = self._destination.submit(
                TxKind.TRANSFER,
                TxParams(
                    from_key=from_key,
                    recipient=recipient,
                    amount=amount,
                    denom=denom,
                    fee=self._config.fees.default_fee,
                ),
            )
        except GatewayError as exc:
            return str(exc)
        if not record.succeeded:
            return f"code {record.code}: {record.raw_log}"
        return None

    def _maker_balances(self, run: _Run) -> Optional[Tuple[int, int]]:
        denoms = self._config.denoms
        try:
            return (
                self._destination.query_balance(run.maker, denoms.ibc),
                self._destination.query_balance(run.maker, denoms.stake),
            )
        except GatewayError as exc:
            run.note(f"market maker balance unavailable: {exc}")
            return None

    def _reconcile_maker(self, run: _Run) -> None:
        if run.maker_before is None:
            return
        after = self._maker_balances(run)
        if after is None:
            return
        for position, denom in enumerate((self._config.denoms.ibc, self._config.denoms.stake)):
            actual = after[position] - run.maker_before[position]
            expected = run.maker_expected[position]
            if actual != expected:
                run.note(
                    f"market maker {denom} moved by {actual}, simulation expected {expected}"
                )

    def _await_tx(self, run: _Run, tx_hash: str, label: str) -> Optional[TxRecord]:
        try:
            record = self._poll(
                lambda: self._destination.query_tx(tx_hash),
                (GatewayError,),
                f"{label} {tx_hash} on {self._destination.chain_id}",
            )
        except PollExhaustedError as exc:
            run.note(str(exc))
            return None
        if not record.succeeded:
            run.note(f"{label} {tx_hash} failed in block with code {record.code}")
            return None
        return record

    def _verdict(self, run: _Run) -> ScenarioVerdict:
        descriptor, route = run.descriptor, run.route
        attacker_at: Optional[Placement] = None
        receive_at: Optional[Placement] = None
        ordering = Ordering.UNKNOWN

        receive = run.receives[-1] if run.receives else None
        attacker = run.attacker_record
        if receive is not None and receive.height is None:
            run.note(f"receive tx {receive.tx_hash} reported no height")
            receive = None
        if attacker is not None and attacker.height is None:
            run.note(f"attacker tx {attacker.tx_hash} reported no height")
            attacker = None
        if receive is not None and attacker is not None:
            attacker_at, receive_at = locate(self._destination, (attacker, receive))
            try:
                ordering = compare(attacker_at, receive_at)
            except DegenerateComparisonError as exc:
                run.note(str(exc))
                ordering = Ordering.SAME_BLOCK_INCONCLUSIVE
        elif receive is not None:
            receive_at = Placement(receive.height)

        sequence_check: Optional[SequenceCheck] = None
        if len(run.packets) > 1:
            if all(record is not None and record.height is not None for record in run.receives):
                sequence_check = check_sequence_preserved(locate(self._destination, run.receives))
                if not sequence_check.preserved:
                    run.note(
                        f"receives out of send order on {route.order.value.lower()} channel "
                        f"{route.dst_channel}: pairs {list(sequence_check.violations)}"
                    )
            else:
                run.note("sequence check skipped: not every receive was observed")

        severity = classify_severity(ordering, sequence_check, route.order)
        self._advance(run, ScenarioState.VERDICT)
        verdict = ScenarioVerdict(
            scenario=descriptor.name,
            route=route.name,
            ordering=ordering,
            severity=severity,
            profit=None if run.sandwich is None else run.sandwich.profit,
            sequence_respected=None if sequence_check is None else sequence_check.preserved,
            relay_status=None if run.relay_outcome is None else run.relay_outcome.status,
            packets=tuple(run.packets),
            attacker_placement=attacker_at,
            receive_placement=receive_at,
            sequence_check=sequence_check,
            market=run.sandwich,
            sandwich_ordered=run.sandwich_ordered,
            notes=tuple(run.notes),
        )
        logger.info(
            "%s verdict: %s (%s), relay %s",
            descriptor.name,
            ordering.value,
            severity.value,
            verdict.relay_status.value if verdict.relay_status else "unknown",
        )
        return verdict

    def _poll(self, operation, retry_on, description: str):
        return poll(operation, retry_on, self._retry, description, sleep=self._sleep)

