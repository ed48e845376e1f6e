"""
GlucoGuard Engine Lifecycle Test Suite

Critical invariant tested:
    A READY instance is only ever handed out for the network it was built for,
    and concurrent callers share one bootstrap attempt.
"""

import asyncio
import unittest

from glucoguard import engine
from glucoguard.devnet import Devnet, DevnetBootstrap
from glucoguard.engine import CryptoInstanceManager, InstanceStatus
from glucoguard.environment import LiveEnvironment
from glucoguard.errors import InitializationError

LOCAL = 31337
OTHER = 11155111


async def wait_until(predicate, spins: int = 500):
    for _ in range(spins):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")


class TestCryptoInstanceManager(unittest.IsolatedAsyncioTestCase):

    def setUp(self):
        self.bootstrap = DevnetBootstrap(Devnet(), supported_networks={LOCAL, OTHER})
        self.manager = CryptoInstanceManager(self.bootstrap)

    async def test_initial_state(self):
        self.assertEqual(self.manager.status, InstanceStatus.UNINITIALIZED)
        self.assertIsNone(self.manager.network_id)

    async def test_ready_instance_is_reused(self):
        first = await self.manager.ensure_ready(LOCAL)
        second = await self.manager.ensure_ready(LOCAL)
        self.assertIs(first, second)
        self.assertEqual(self.bootstrap.attempts, 1)
        self.assertTrue(self.manager.is_ready_for(LOCAL))
        self.assertEqual(first.network_id, LOCAL)

    async def test_concurrent_callers_share_one_bootstrap(self):
        """Two callers while INITIALIZING observe the same READY instance."""
        self.bootstrap.gate.pause()
        t1 = asyncio.ensure_future(self.manager.ensure_ready(LOCAL))
        t2 = asyncio.ensure_future(self.manager.ensure_ready(LOCAL))
        await wait_until(lambda: self.bootstrap.gate.waiting == 1)

        self.assertEqual(self.manager.status, InstanceStatus.INITIALIZING)
        self.bootstrap.gate.resume()
        first, second = await asyncio.gather(t1, t2)

        self.assertIs(first, second)
        self.assertEqual(self.bootstrap.attempts, 1)
        self.assertEqual(self.manager.status, InstanceStatus.READY)

    async def test_concurrent_callers_share_one_failure(self):
        self.bootstrap.inject_failure(ConnectionError("relayer unreachable"))
        self.bootstrap.gate.pause()
        t1 = asyncio.ensure_future(self.manager.ensure_ready(LOCAL))
        t2 = asyncio.ensure_future(self.manager.ensure_ready(LOCAL))
        await wait_until(lambda: self.bootstrap.gate.waiting == 1)
        self.bootstrap.gate.resume()

        results = await asyncio.gather(t1, t2, return_exceptions=True)

        self.assertEqual(self.bootstrap.attempts, 1)
        for result in results:
            self.assertIsInstance(result, InitializationError)
            self.assertIsInstance(result.cause, ConnectionError)
        self.assertIs(results[0], results[1])
        self.assertEqual(self.manager.status, InstanceStatus.ERROR)
        self.assertIsInstance(self.manager.last_error, InitializationError)

    async def test_retry_after_error(self):
        self.bootstrap.inject_failure(ConnectionError("down"))
        with self.assertRaises(InitializationError):
            await self.manager.ensure_ready(LOCAL)

        instance = await self.manager.ensure_ready(LOCAL)

        self.assertEqual(self.bootstrap.attempts, 2)
        self.assertEqual(self.manager.status, InstanceStatus.READY)
        self.assertIsNone(self.manager.last_error)
        self.assertEqual(instance.network_id, LOCAL)

    async def test_unsupported_network_fails(self):
        with self.assertRaises(InitializationError) as ctx:
            await self.manager.ensure_ready(5)
        self.assertEqual(ctx.exception.network_id, 5)
        self.assertEqual(self.manager.state().status, InstanceStatus.ERROR)

    async def test_no_network_fails_without_bootstrap(self):
        with self.assertRaises(InitializationError):
            await self.manager.ensure_ready(None)
        self.assertEqual(self.bootstrap.attempts, 0)

    async def test_different_network_rebuilds(self):
        local = await self.manager.ensure_ready(LOCAL)
        other = await self.manager.ensure_ready(OTHER)
        self.assertIsNot(local, other)
        self.assertTrue(self.manager.is_ready_for(OTHER))
        self.assertFalse(self.manager.is_ready_for(LOCAL))
        self.assertEqual(self.bootstrap.attempts, 2)

    async def test_network_change_invalidates(self):
        env = LiveEnvironment(LOCAL, "0xabc")
        env.subscribe(self.manager.on_environment_change)
        await self.manager.ensure_ready(LOCAL)

        env.switch_network(OTHER)

        self.assertEqual(self.manager.status, InstanceStatus.UNINITIALIZED)
        self.assertIsNone(self.manager.network_id)

    async def test_signer_change_keeps_instance(self):
        env = LiveEnvironment(LOCAL, "0xabc")
        env.subscribe(self.manager.on_environment_change)
        await self.manager.ensure_ready(LOCAL)

        env.switch_signer("0xdef")

        self.assertTrue(self.manager.is_ready_for(LOCAL))

    async def test_invalidated_bootstrap_is_not_installed(self):
        """A bootstrap superseded by a network change must not become READY."""
        self.bootstrap.gate.pause()
        task = asyncio.ensure_future(self.manager.ensure_ready(LOCAL))
        await wait_until(lambda: self.bootstrap.gate.waiting == 1)

        self.manager.invalidate()
        self.bootstrap.gate.resume()
        instance = await task

        self.assertEqual(instance.network_id, LOCAL)
        self.assertEqual(self.manager.status, InstanceStatus.UNINITIALIZED)
        self.assertFalse(self.manager.is_ready_for(LOCAL))

    async def test_switch_while_initializing_starts_new_attempt(self):
        self.bootstrap.gate.pause()
        first = asyncio.ensure_future(self.manager.ensure_ready(LOCAL))
        await wait_until(lambda: self.bootstrap.gate.waiting == 1)

        self.bootstrap.gate.resume()
        second = await self.manager.ensure_ready(OTHER)
        await first

        self.assertEqual(self.bootstrap.attempts, 2)
        self.assertTrue(self.manager.is_ready_for(OTHER))
        self.assertEqual(second.network_id, OTHER)


class TestModuleDocumentation(unittest.TestCase):

    def test_state_machine_diagram(self):
        self.assertIn("INITIALIZING --fail--> ERROR", engine.__doc__)
        self.assertNotIn("\\", engine.__doc__)


if __name__ == "__main__":
    unittest.main()
