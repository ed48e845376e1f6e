"""
GlucoGuard CLI Test Suite
"""

import io
import json
import logging
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

from glucoguard import config
from glucoguard.cli import main


class TestCli(unittest.TestCase):

    def setUp(self):
        # main() reconfigures the root logger
        self.root = logging.getLogger()
        self.saved_handlers = self.root.handlers[:]
        self.saved_level = self.root.level

    def tearDown(self):
        for handler in self.root.handlers[:]:
            self.root.removeHandler(handler)
        for handler in self.saved_handlers:
            self.root.addHandler(handler)
        self.root.setLevel(self.saved_level)

    def run_cli(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with redirect_stdout(out), redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def test_demo_succeeds(self):
        code, out, _ = self.run_cli("demo", "--value", "150", "--disclose")
        self.assertEqual(code, 0)
        self.assertIn('"phase": "SUCCEEDED"', out)
        self.assertIn('"decrypted_value": true', out)

    def test_demo_invalid_value(self):
        code, out, err = self.run_cli("demo", "--value", "sugar")
        self.assertEqual(code, 2)
        self.assertEqual(out, "")
        self.assertIn("Glucose value must be a whole number", err)

    def test_demo_network_switch_discards_check(self):
        code, out, _ = self.run_cli("demo", "-v", "150", "--switch-network-during-check", "11155111")
        self.assertEqual(code, 1)
        self.assertIn('"phase": "STALE"', out)

    def test_demo_unsupported_network_fails(self):
        code, out, _ = self.run_cli("--plain-logs", "demo", "-v", "150", "-n", "5")
        self.assertEqual(code, 1)
        self.assertIn('"phase": "FAILED"', out)

    def test_status_ready(self):
        code, out, _ = self.run_cli("status")
        self.assertEqual(code, 0)
        report = json.loads(out)
        self.assertEqual(report["status"], "Ready for glucose assessment")
        self.assertEqual(report["engine"], "Ready")

    def test_status_disconnected(self):
        code, out, _ = self.run_cli("status", "--disconnected")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["status"], "Please connect your wallet")

    def test_status_engine_unavailable(self):
        code, out, err = self.run_cli("status", "-n", "5")
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out)["status"], "Initializing FHEVM...")
        self.assertIn("initialization failed", err)

    def test_production_refuses_invalid_config(self):
        with mock.patch.object(config, "ENV", "prod"), mock.patch.object(config, "HISTORY_SIZE", -1):
            code, out, err = self.run_cli("status")
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("Invalid configuration: history_size", err)

    def test_no_command_prints_help(self):
        code, out, _ = self.run_cli()
        self.assertEqual(code, 0)
        self.assertIn("usage", out)


if __name__ == "__main__":
    unittest.main()
