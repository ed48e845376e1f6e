"""
GlucoGuard Configuration and Status Test Suite
"""

import os
import unittest
from unittest import mock

from glucoguard import config
from glucoguard.engine import InstanceStatus
from glucoguard.session import build_devnet_session
from glucoguard.status import (
    STATUS_CONNECT_WALLET,
    STATUS_ENGINE_LOADING,
    STATUS_NOT_DEPLOYED,
    STATUS_READY,
    describe_system_status,
    network_label,
    status_report,
)


class TestConfig(unittest.TestCase):

    def test_defaults_validate(self):
        checks = config.validate_config()
        self.assertTrue(all(checks.values()), checks)

    def test_mock_chains_only_for_local(self):
        self.assertEqual(config.mock_chains_for(config.LOCAL_CHAIN_ID), {31337: config.LOCAL_RPC_URL})
        self.assertIsNone(config.mock_chains_for(config.SEPOLIA_CHAIN_ID))
        self.assertIsNone(config.mock_chains_for(None))

    def test_rpc_url_for(self):
        self.assertEqual(config.rpc_url_for(31337), config.LOCAL_RPC_URL)
        self.assertIsNone(config.rpc_url_for(5))

    def test_risk_threshold(self):
        self.assertEqual(config.RISK_THRESHOLD, 140)

    def test_environment_flags(self):
        with mock.patch.object(config, "ENV", "prod"):
            self.assertTrue(config.is_production())
        with mock.patch.object(config, "ENV", "dev"):
            self.assertFalse(config.is_production())
        with mock.patch.dict(os.environ, {"GLUCOGUARD_DEBUG": "true"}):
            self.assertTrue(config.is_debug())
        with mock.patch.dict(os.environ, {"GLUCOGUARD_DEBUG": ""}):
            self.assertFalse(config.is_debug())

    def test_inverted_range_fails_validation(self):
        with mock.patch.object(config, "GLUCOSE_MIN", 500), mock.patch.object(config, "GLUCOSE_MAX", 100):
            self.assertFalse(config.validate_config()["glucose_range"])


class TestDescribeSystemStatus(unittest.TestCase):

    def test_ready(self):
        self.assertEqual(describe_system_status(True, InstanceStatus.READY, True), STATUS_READY)

    def test_wallet_first(self):
        for engine in InstanceStatus:
            with self.subTest(engine=engine):
                self.assertEqual(describe_system_status(False, engine, False), STATUS_CONNECT_WALLET)

    def test_engine_before_deployment(self):
        self.assertEqual(describe_system_status(True, InstanceStatus.ERROR, False), STATUS_ENGINE_LOADING)
        self.assertEqual(describe_system_status(True, InstanceStatus.INITIALIZING, True), STATUS_ENGINE_LOADING)

    def test_not_deployed(self):
        self.assertEqual(describe_system_status(True, InstanceStatus.READY, False), STATUS_NOT_DEPLOYED)


class TestNetworkLabel(unittest.TestCase):

    def test_labels(self):
        self.assertEqual(network_label(31337), "Local Hardhat")
        self.assertEqual(network_label(None), "Unknown")
        self.assertEqual(network_label(11155111), "Chain 11155111")


class TestStatusReport(unittest.IsolatedAsyncioTestCase):

    async def test_report_follows_live_state(self):
        session = build_devnet_session(signer_id="0xabc")
        try:
            report = status_report(session.coordinator)
            self.assertEqual(report["connection"], "Connected")
            self.assertEqual(report["engine"], "Loading...")
            self.assertEqual(report["status"], STATUS_ENGINE_LOADING)
            self.assertFalse(report["can_check_risk"])

            await session.coordinator.submit_glucose(130)
            report = status_report(session.coordinator)
            self.assertEqual(report["engine"], "Ready")
            self.assertEqual(report["status"], STATUS_READY)
            self.assertEqual(report["network"], "Local Hardhat")
            self.assertEqual(report["recent_submissions"], [130])
            self.assertEqual(report["message"], "Glucose value submitted.")
            self.assertTrue(report["can_check_risk"])
            self.assertFalse(report["can_decrypt"])

            session.environment.disconnect()
            report = status_report(session.coordinator)
            self.assertEqual(report["connection"], "Disconnected")
            self.assertEqual(report["status"], STATUS_CONNECT_WALLET)
        finally:
            session.close()


if __name__ == "__main__":
    unittest.main()
