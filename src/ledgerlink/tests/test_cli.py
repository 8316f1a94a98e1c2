"""
Test the command-line interface.

Each command runs against a fake remote service and a store shared across
invocations, so state carries over from one command to the next.
"""

import os
import unittest
import sys
import tempfile
from pathlib import Path
from unittest import mock

# Add src to path
src_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(src_dir))

from click.testing import CliRunner

from ledgerlink.cli import cli
from ledgerlink.session import LedgerSession
from ledgerlink.store import MemoryStore
from fakes import FakeGateway


class TestCLI(unittest.TestCase):
    """Test CLI commands"""

    def setUp(self):
        self.runner = CliRunner()
        self.store = MemoryStore()
        self.gateway = FakeGateway()
        patcher = mock.patch(
            "ledgerlink.cli.LedgerSession.from_config",
            side_effect=lambda config: LedgerSession(self.gateway, self.store, persist_debounce=0.01),
        )
        patcher.start()
        self.addCleanup(patcher.stop)

    def invoke(self, *args):
        return self.runner.invoke(cli, list(args))

    def test_wallet_create_and_list(self):
        result = self.invoke("wallet", "create")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Created wallet addr-1", result.output)
        self.assertIn("Private key: priv-addr-1", result.output)

        self.gateway.balances["addr-1"] = 25
        result = self.invoke("wallet", "list")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("addr-1  balance=25  (local)", result.output)

    def test_wallet_list_empty(self):
        result = self.invoke("wallet", "list")
        self.assertEqual(result.exit_code, 0)
        self.assertIn("No wallets yet", result.output)

    def test_wallet_list_without_refresh(self):
        self.invoke("wallet", "create")
        result = self.invoke("wallet", "list", "--no-refresh")
        self.assertIn("addr-1  balance=0  (local)", result.output)
        self.assertEqual(self.gateway.call_count("get_balance"), 0)

    def test_duplicate_import_fails(self):
        result = self.invoke("wallet", "import", "--private-key", "priv-A")
        self.assertEqual(result.exit_code, 0, result.output)
        result = self.invoke("wallet", "import", "--private-key", "priv-A")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Wallet A has already been imported", result.output)

    def test_delete_wallet(self):
        self.invoke("wallet", "import", "--private-key", "priv-A")
        self.assertEqual(self.invoke("wallet", "delete", "A").exit_code, 0)
        result = self.invoke("wallet", "delete", "A")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Unknown wallet: A", result.output)

    def test_send(self):
        self.invoke("wallet", "import", "--private-key", "priv-A")
        self.gateway.balances["A"] = 10

        result = self.invoke("send", "--from", "A", "--to", "B", "--amount", "50")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Insufficient balance. Current balance: 10", result.output)

        result = self.invoke("send", "--from", "A", "--to", "B", "--amount", "4")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Submitted 4 to B", result.output)

    def test_send_invalid_amount(self):
        self.invoke("wallet", "import", "--private-key", "priv-A")
        result = self.invoke("send", "--from", "A", "--to", "B", "--amount", "lots")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("Please enter a valid amount", result.output)

    def test_mine(self):
        result = self.invoke("mine", "M")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Mined block #2", result.output)

    def test_chain_commands(self):
        result = self.invoke("chain", "info")
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Height: 2", result.output)
        self.assertIn("Difficulty: 2", result.output)

        self.assertIn("Chain is valid", self.invoke("chain", "validate").output)
        self.gateway.valid = False
        self.assertEqual(self.invoke("chain", "validate").exit_code, 1)

    def test_transport_failure_is_reported(self):
        self.gateway.failing.add("get_chain_snapshot")
        result = self.invoke("chain", "info")
        self.assertEqual(result.exit_code, 1)
        self.assertIn("get_chain_snapshot unavailable", result.output)

    def test_view_is_remembered(self):
        self.assertEqual(self.invoke("view").output.strip(), "dashboard")
        self.assertEqual(self.invoke("view", "mining").exit_code, 0)
        self.assertEqual(self.invoke("view").output.strip(), "mining")
        self.assertNotEqual(self.invoke("view", "settings").exit_code, 0)

    def test_init_creates_datadir(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            datadir = Path(tmpdir) / "data"
            config_path = Path(tmpdir) / "ledgerlink.conf"
            config_path.write_text(f"[storage]\ndatadir={datadir}\n")

            result = self.invoke("--config", str(config_path), "init")
            self.assertEqual(result.exit_code, 0, result.output)
            self.assertTrue(datadir.is_dir())


class TestCLIWithoutLevelDB(unittest.TestCase):
    """Test CLI behaviour when the LevelDB bindings are missing"""

    def test_missing_plyvel_is_a_clean_error(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            env = {"LEDGERLINK_STORE": "leveldb", "LEDGERLINK_DATADIR": tmpdir}
            with mock.patch.dict(os.environ, env), \
                    mock.patch("ledgerlink.store._LEVELDB_AVAILABLE", False):
                result = CliRunner().invoke(cli, ["wallet", "list"])

        self.assertEqual(result.exit_code, 1)
        self.assertIn("store = memory", result.output)
        self.assertNotIsInstance(result.exception, ImportError)


if __name__ == "__main__":
    unittest.main()
