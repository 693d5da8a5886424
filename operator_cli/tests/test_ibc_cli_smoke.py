"""Smoke tests for the lab CLI."""

import json
import unittest
from contextlib import redirect_stderr, redirect_stdout
from dataclasses import replace
from io import StringIO
from unittest.mock import patch

from operator_cli.cli import main
from scenario.models import MarketLeg
from scenario.presets import get_scenario


class LabCliSmokeTests(unittest.TestCase):
    def _run(self, args):
        out, err = StringIO(), StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(args)
        return code, out.getvalue(), err.getvalue()

    def test_amm_quote_outputs_json(self) -> None:
        code, output, _ = self._run(
            ["amm", "quote", "--amount-in", "100", "--reserve-in", "2000", "--reserve-out", "2000"]
        )
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output), {"amount_in": 100, "amount_out": 95})

    def test_amm_impact_reports_pool_after(self) -> None:
        code, output, _ = self._run(
            ["amm", "impact", "--amount-in", "100", "--reserve-in", "2000", "--reserve-out", "2000"]
        )
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["amount_out"], 95)
        self.assertEqual(payload["pool_after"]["reserve_x"], 2100)
        self.assertGreater(payload["price_impact_pct"], 0)

    def test_amm_sandwich_worked_example(self) -> None:
        code, output, _ = self._run(["amm", "sandwich", "--front", "100", "--victim", "2500"])
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertEqual(payload["profit"], 352)
        self.assertEqual(payload["victim"]["amount_out"], 1035)

    def test_amm_zero_reserve_is_an_error(self) -> None:
        code, output, err = self._run(
            ["amm", "quote", "--amount-in", "10", "--reserve-in", "0", "--reserve-out", "2000"]
        )
        self.assertEqual(code, 2)
        self.assertEqual(output, "")
        self.assertIn("ERROR:", err)

    def test_order_compare_heights(self) -> None:
        code, output, _ = self._run(["order", "compare", "--a", "100", "--b", "101"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["ordering"], "BEFORE")

    def test_order_compare_same_block(self) -> None:
        code, output, _ = self._run(["order", "compare", "--a", "120:5", "--b", "120:2"])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(output)["ordering"], "SAME_BLOCK_AFTER")

    def test_order_compare_identical_placements_fail(self) -> None:
        code, _, err = self._run(["order", "compare", "--a", "120:2", "--b", "120:2"])
        self.assertEqual(code, 2)
        self.assertIn("ERROR:", err)

    def test_invalid_placement_is_rejected(self) -> None:
        code, _, err = self._run(["order", "compare", "--a", "tall", "--b", "101"])
        self.assertEqual(code, 2)
        self.assertIn("HEIGHT[:INDEX]", err)

    def test_order_sequence_flags_violation(self) -> None:
        code, output, _ = self._run(
            ["order", "sequence", "--placement", "100", "--placement", "99"]
        )
        self.assertEqual(code, 0)
        payload = json.loads(output)
        self.assertFalse(payload["preserved"])
        self.assertEqual(payload["violations"], [[0, 1]])

    def test_scenarios_lists_presets(self) -> None:
        code, output, _ = self._run(["scenarios"])
        self.assertEqual(code, 0)
        names = [entry["name"] for entry in json.loads(output)]
        self.assertIn("dex-sandwich", names)
        self.assertIn("channel-order", names)

    def test_dry_run_dex_sandwich(self) -> None:
        code, output, _ = self._run(["run", "dex-sandwich", "--dry-run"])
        self.assertEqual(code, 0)
        (verdict,) = json.loads(output)
        self.assertEqual(verdict["ordering"], "BEFORE")
        self.assertEqual(verdict["severity"], "FRONT_RUN")
        self.assertEqual(verdict["profit"], 352)

    def test_dry_run_channel_order_returns_both_routes(self) -> None:
        code, output, _ = self._run(["run", "channel-order", "--dry-run"])
        self.assertEqual(code, 0)
        self.assertEqual([v["route"] for v in json.loads(output)], ["ordered", "unordered"])

    def test_aborted_run_does_not_stop_the_next_one(self) -> None:
        ordered, unordered = get_scenario("channel-order")
        untradeable = replace(ordered, market=MarketLeg(front_amount=1))
        with patch("operator_cli.cli.get_scenario", return_value=(untradeable, unordered)):
            code, output, _ = self._run(["run", "channel-order", "--dry-run"])

        self.assertEqual(code, 1)
        first, second = json.loads(output)
        self.assertTrue(first["aborted"])
        self.assertEqual(first["state"], "INIT")
        self.assertEqual(second["route"], "unordered")
        self.assertEqual(second["ordering"], "BEFORE")

    def test_missing_env_file_is_a_config_error(self) -> None:
        code, _, err = self._run(["validate", "--env-file", "/nonexistent/lab.env"])
        self.assertEqual(code, 2)
        self.assertIn("ERROR:", err)


if __name__ == "__main__":
    unittest.main()
