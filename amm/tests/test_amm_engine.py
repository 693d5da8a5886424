"""Tests for constant-product swap math and pool invariants."""

import random
import unittest

from amm.engine import (
    DegenerateSandwichError,
    EmptyReserveError,
    InsufficientReserveError,
    apply_swap,
    create_pool,
    price_impact,
    quote_swap,
    simulate_sandwich,
)
from amm.models import Pool, SwapDirection


class QuoteSwapTests(unittest.TestCase):
    def test_floor_formula(self) -> None:
        self.assertEqual(quote_swap(100, 2000, 2000), 95)
        self.assertEqual(quote_swap(2500, 2100, 1905), 1035)

    def test_monotonic_and_bounded(self) -> None:
        for reserve_in, reserve_out in ((2000, 2000), (10, 5000), (5000, 10), (1, 1)):
            previous = -1
            for amount in range(1, 400):
                out = quote_swap(amount, reserve_in, reserve_out)
                self.assertGreaterEqual(out, previous)
                self.assertLess(out, reserve_out)
                previous = out

    def test_strictly_increasing_when_steps_are_resolvable(self) -> None:
        outputs = [quote_swap(amount, 2000, 2_000_000) for amount in range(1, 200)]
        self.assertEqual(outputs, sorted(set(outputs)))

    def test_rejects_non_integer_input(self) -> None:
        with self.assertRaises(TypeError):
            quote_swap(1.5, 2000, 2000)

    def test_rejects_negative_and_empty(self) -> None:
        with self.assertRaises(ValueError):
            quote_swap(-1, 2000, 2000)
        with self.assertRaises(EmptyReserveError):
            quote_swap(0, 0, 2000)


class ApplySwapTests(unittest.TestCase):
    def test_reference_swap(self) -> None:
        pool = create_pool(2000, 2000)
        receipt = apply_swap(pool, SwapDirection.X_TO_Y, 100)

        self.assertEqual(receipt.amount_out, 95)
        self.assertEqual((pool.reserve_x, pool.reserve_y), (2100, 1905))
        self.assertEqual(pool.k, 4_000_500)
        self.assertGreaterEqual(receipt.k_after, receipt.k_before)
        self.assertEqual(receipt.k_before, 4_000_000)

    def test_reverse_direction_updates_other_leg(self) -> None:
        pool = Pool(reserve_x=2000, reserve_y=2000)
        apply_swap(pool, SwapDirection.Y_TO_X, 100)
        self.assertEqual((pool.reserve_x, pool.reserve_y), (1905, 2100))

    def test_non_positive_input_rejected(self) -> None:
        pool = Pool(reserve_x=2000, reserve_y=2000)
        for amount in (0, -5):
            with self.assertRaises(InsufficientReserveError):
                apply_swap(pool, SwapDirection.X_TO_Y, amount)
        self.assertEqual(pool.k, 4_000_000)

    def test_draining_swap_rejected(self) -> None:
        pool = Pool(reserve_x=0, reserve_y=1)
        with self.assertRaises(InsufficientReserveError):
            apply_swap(pool, SwapDirection.X_TO_Y, 1000)
        self.assertEqual((pool.reserve_x, pool.reserve_y), (0, 1))

    def test_k_never_decreases_over_random_swaps(self) -> None:
        rng = random.Random(7)
        pool = Pool(reserve_x=50_000, reserve_y=80_000)
        for _ in range(500):
            direction = rng.choice(list(SwapDirection))
            amount = rng.randint(1, 5_000)
            k_before = pool.k
            try:
                apply_swap(pool, direction, amount)
            except InsufficientReserveError:
                continue
            self.assertGreaterEqual(pool.k, k_before)
            self.assertGreater(pool.reserve_x, 0)
            self.assertGreater(pool.reserve_y, 0)


class PriceImpactTests(unittest.TestCase):
    def test_reference_impact(self) -> None:
        expected = (1.0 - (1905 / 2100)) * 100.0
        self.assertAlmostEqual(price_impact(100, 2000, 2000), expected, places=9)

    def test_does_not_mutate(self) -> None:
        pool = Pool(reserve_x=2000, reserve_y=2000)
        price_impact(100, pool.reserve_x, pool.reserve_y)
        self.assertEqual(pool.k, 4_000_000)

    def test_zero_reserve_rejected(self) -> None:
        with self.assertRaises(EmptyReserveError):
            price_impact(10, 0, 2000)
        with self.assertRaises(EmptyReserveError):
            price_impact(10, 2000, 0)


class SandwichTests(unittest.TestCase):
    def test_dex_sandwich_legs(self) -> None:
        pool = create_pool(2000, 2000)
        result = simulate_sandwich(pool, front_amount=100, victim_amount=2500)

        self.assertEqual(result.front.amount_out, 95)
        self.assertEqual(result.victim.amount_out, 1035)
        self.assertEqual(result.back.direction, SwapDirection.Y_TO_X)
        self.assertEqual(result.back.amount_in, 95)
        self.assertEqual(result.back.amount_out, 452)
        self.assertEqual(result.profit, 352)
        self.assertEqual(result.victim_shortfall, quote_swap(2500, 2000, 2000) - 1035)
        self.assertEqual(result.initial_pool.k, 4_000_000)
        self.assertEqual(result.final_pool, pool)

    def test_explicit_back_amount(self) -> None:
        result = simulate_sandwich(Pool(2000, 2000), front_amount=100, victim_amount=10, back_amount=50)
        self.assertEqual(result.back.amount_in, 50)
        self.assertEqual(result.profit, result.back.amount_out - 100)

    def test_small_victim_leaves_attacker_at_loss(self) -> None:
        result = simulate_sandwich(Pool(2000, 2000), front_amount=100, victim_amount=1)
        self.assertLessEqual(result.profit, 0)

    def test_front_run_with_no_output_is_rejected(self) -> None:
        pool = Pool(2000, 2000)
        with self.assertRaises(DegenerateSandwichError):
            simulate_sandwich(pool, front_amount=1, victim_amount=10)
        self.assertEqual(pool, Pool(2000, 2000))

    def test_zero_victim_amount_is_rejected(self) -> None:
        with self.assertRaises(DegenerateSandwichError):
            simulate_sandwich(Pool(2000, 2000), front_amount=100, victim_amount=0)


if __name__ == "__main__":
    unittest.main()
