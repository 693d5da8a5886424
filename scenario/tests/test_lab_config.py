"""Tests for environment-driven lab configuration."""

import os
import tempfile
import unittest

from scenario.config import ChannelOrder, ConfigError, load_config

BASE_ENV = {
    "CHAIN_A_ID_ENV": "chain-a",
    "CHAIN_A_RPC_ENV": "tcp://localhost:26657",
    "CHAIN_A_HOME_ENV": "/data/a",
    "CHAIN_B_ID_ENV": "chain-b",
    "CHAIN_B_RPC_ENV": "tcp://localhost:36657",
    "CHAIN_B_HOME_ENV": "/data/b",
    "RLY_CONFIG_FILE_ENV": "/data/rly",
}


class LoadConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = load_config(environ=BASE_ENV)

        self.assertEqual(config.chain_a.chain_id, "chain-a")
        self.assertEqual(config.chain_b.rpc, "tcp://localhost:36657")
        self.assertEqual(config.node_binary, "simd")
        self.assertEqual(config.relayer_binary, "rly")
        self.assertEqual(config.roles.attacker, "attackerB")
        self.assertEqual(config.fees.default_fee, "1000stake")
        self.assertEqual(config.fees.gas_flags, ("--gas=auto", "--gas-adjustment=1.2"))
        self.assertEqual(config.denoms.ibc, "token")
        self.assertEqual(config.route("transfer").path, "a-b-transfer")
        self.assertEqual(config.route("ordered").order, ChannelOrder.ORDERED)
        self.assertEqual(config.route("unordered").src_channel, "channel-1")

    def test_missing_variables_listed_together(self) -> None:
        env = dict(BASE_ENV)
        del env["CHAIN_B_RPC_ENV"]
        env["RLY_CONFIG_FILE_ENV"] = "  "

        with self.assertRaises(ConfigError) as ctx:
            load_config(environ=env)
        self.assertIn("CHAIN_B_RPC_ENV", str(ctx.exception))
        self.assertIn("RLY_CONFIG_FILE_ENV", str(ctx.exception))

    def test_overrides(self) -> None:
        env = dict(
            BASE_ENV,
            SIMD_BINARY_ENV="gaiad",
            PRIORITY_FEE_ENV="9000stake",
            GAS_FLAGS_ENV="--gas=300000",
            ORDERED_CHANNEL_A_ENV="channel-7",
            RLY_PATH_ORDERED_ENV="ab-ord",
            ATTACKER_KEY_ENV="mallory",
        )
        config = load_config(environ=env)

        self.assertEqual(config.node_binary, "gaiad")
        self.assertEqual(config.fees.priority_fee, "9000stake")
        self.assertEqual(config.fees.gas_flags, ("--gas=300000",))
        self.assertEqual(config.route("ordered").src_channel, "channel-7")
        self.assertEqual(config.route("ordered").path, "ab-ord")
        self.assertEqual(config.roles.attacker, "mallory")

    def test_relayer_path_expansion(self) -> None:
        env = dict(BASE_ENV, RLY_CONFIG_FILE_ENV="$LAB_ROOT/relayer", LAB_ROOT="/srv/lab")
        self.assertEqual(load_config(environ=env).relayer_home, "/srv/lab/relayer")

        env = dict(BASE_ENV, RLY_CONFIG_FILE_ENV="~/relayer")
        self.assertEqual(load_config(environ=env).relayer_home, os.path.expanduser("~/relayer"))

    def test_env_file_is_overlaid_by_environment(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, ".env")
            with open(path, "w", encoding="utf-8") as handle:
                for key, value in BASE_ENV.items():
                    handle.write(f"{key}={value}\n")
                handle.write("CHAIN_A_ID_ENV=from-file\n")

            config = load_config(environ={"CHAIN_B_ID_ENV": "from-env"}, env_file=path)

        self.assertEqual(config.chain_a.chain_id, "from-file")
        self.assertEqual(config.chain_b.chain_id, "from-env")

    def test_missing_env_file(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(environ=BASE_ENV, env_file="/nonexistent/.env")

    def test_unknown_route(self) -> None:
        with self.assertRaises(ConfigError):
            load_config(environ=BASE_ENV).route("sideways")


if __name__ == "__main__":
    unittest.main()
