"""Fee-free constant-product swap math."""

import logging
from typing import Optional

from .models import Pool, SandwichResult, SwapDirection, SwapReceipt

logger = logging.getLogger(__name__)


class InsufficientReserveError(ValueError):
    """Raised when a swap input is non-positive or would drain the output reserve."""


class EmptyReserveError(ValueError):
    """Raised when a calculation needs a reserve that is zero."""


class InvariantViolationError(RuntimeError):
    """Raised when a swap would lower the pool product."""


class DegenerateSandwichError(ValueError):
    """Raised when sandwich legs cannot all trade against the pool."""


def create_pool(reserve_x: int, reserve_y: int) -> Pool:
    if reserve_x <= 0 or reserve_y <= 0:
        raise EmptyReserveError("A new pool needs positive reserves on both legs.")
    return Pool(reserve_x=reserve_x, reserve_y=reserve_y)


def quote_swap(amount_in: int, reserve_in: int, reserve_out: int) -> int:
    """Return floor(amount_in * reserve_out / (reserve_in + amount_in))."""

    _require_int(amount_in=amount_in, reserve_in=reserve_in, reserve_out=reserve_out)
    if amount_in < 0 or reserve_in < 0 or reserve_out < 0:
        raise ValueError("Swap amounts and reserves must be non-negative.")
    if reserve_in + amount_in == 0:
        raise EmptyReserveError("Input reserve and amount are both zero.")
    return (amount_in * reserve_out) // (reserve_in + amount_in)


def price_impact(amount_in: int, reserve_in: int, reserve_out: int) -> float:
    """Percentage drop in marginal price caused by the trade, pool untouched."""

    if reserve_in == 0 or reserve_out == 0:
        raise EmptyReserveError("Reserves cannot be zero.")
    amount_out = quote_swap(amount_in, reserve_in, reserve_out)
    price_before = reserve_out / reserve_in
    price_after = (reserve_out - amount_out) / (reserve_in + amount_in)
    return (price_before - price_after) / price_before * 100.0


def apply_swap(pool: Pool, direction: SwapDirection, amount_in: int) -> SwapReceipt:
    if amount_in <= 0:
        raise InsufficientReserveError(f"Swap input must be positive, got {amount_in}.")

    reserve_in, reserve_out = pool.reserves_for(direction)
    amount_out = quote_swap(amount_in, reserve_in, reserve_out)
    if amount_out >= reserve_out:
        raise InsufficientReserveError(
            f"Swap of {amount_in} would drain the output reserve of {reserve_out}."
        )
    impact = price_impact(amount_in, reserve_in, reserve_out)

    k_before = pool.k
    new_in, new_out = reserve_in + amount_in, reserve_out - amount_out
    if new_in * new_out < k_before:
        raise InvariantViolationError(
            f"Swap of {amount_in} would lower K from {k_before} to {new_in * new_out}."
        )

    if direction == SwapDirection.X_TO_Y:
        pool.reserve_x, pool.reserve_y = new_in, new_out
    else:
        pool.reserve_y, pool.reserve_x = new_in, new_out

    logger.debug(
        "Swap %s: in %d out %d, K %d -> %d", direction.value, amount_in, amount_out, k_before, pool.k
    )
    return SwapReceipt(
        direction=direction,
        amount_in=amount_in,
        amount_out=amount_out,
        price_impact_pct=impact,
        k_before=k_before,
        k_after=pool.k,
    )


def simulate_sandwich(
    pool: Pool,
    front_amount: int,
    victim_amount: int,
    back_amount: Optional[int] = None,
    direction: SwapDirection = SwapDirection.X_TO_Y,
) -> SandwichResult:
    """Run front-run, victim and back-run swaps against ``pool`` in place.

    The front and victim legs trade in ``direction``; the back leg sells the
    front leg's output (or ``back_amount``) the opposite way.
    """

    if front_amount <= 0 or victim_amount <= 0:
        raise DegenerateSandwichError(
            f"Front-run and victim amounts must be positive, got {front_amount} and {victim_amount}."
        )
    initial = pool.snapshot()
    reserves = initial.reserves_for(direction)
    if back_amount is None and quote_swap(front_amount, *reserves) == 0:
        raise DegenerateSandwichError(
            f"Front-run of {front_amount} buys nothing from reserves {reserves}; nothing to back-run."
        )
    unattacked_out = quote_swap(victim_amount, *reserves)

    front = apply_swap(pool, direction, front_amount)
    victim = apply_swap(pool, direction, victim_amount)
    back = apply_swap(
        pool,
        direction.reverse(),
        front.amount_out if back_amount is None else back_amount,
    )

    return SandwichResult(
        front=front,
        victim=victim,
        back=back,
        profit=back.amount_out - front.amount_in,
        victim_shortfall=unattacked_out - victim.amount_out,
        initial_pool=initial,
        final_pool=pool.snapshot(),
    )


def _require_int(**values: object) -> None:
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"{name} must be an integer, got {type(value).__name__}.")
