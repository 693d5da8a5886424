from .engine import (
    DegenerateSandwichError,
    EmptyReserveError,
    InsufficientReserveError,
    InvariantViolationError,
    apply_swap,
    create_pool,
    price_impact,
    quote_swap,
    simulate_sandwich,
)
from .models import Pool, SandwichResult, SwapDirection, SwapReceipt

__all__ = [
    "DegenerateSandwichError",
    "EmptyReserveError",
    "InsufficientReserveError",
    "InvariantViolationError",
    "Pool",
    "SandwichResult",
    "SwapDirection",
    "SwapReceipt",
    "apply_swap",
    "create_pool",
    "price_impact",
    "quote_swap",
    "simulate_sandwich",
]
