"""
Test the background sync loops.

This test verifies overlap suppression, failure isolation, cancellation
and that loop lifetimes follow the wallet collection and active view.
"""

import asyncio
import unittest
import sys
from pathlib import Path

# Add src to path
src_dir = Path(__file__).parent.parent.parent
sys.path.insert(0, str(src_dir))

from ledgerlink.registry import WalletRegistry
from ledgerlink.scheduler import PollingLoop, SyncScheduler
from fakes import FakeGateway, make_snapshot, make_wallet, wait_for


class TestPollingLoop(unittest.IsolatedAsyncioTestCase):
    """Test PollingLoop"""

    async def test_fetches_immediately_then_periodically(self):
        results = []

        async def fetch():
            return len(results)

        loop = PollingLoop("counter", 0.02, fetch, results.append)
        loop.start()
        await wait_for(lambda: len(results) >= 3)
        await loop.stop()

        self.assertEqual(results[:3], [0, 1, 2])
        self.assertFalse(loop.running)

    async def test_late_result_is_discarded_after_cancel(self):
        """Test that a fetch completing after cancellation never reaches apply"""
        gate = asyncio.Event()
        applied = []

        async def stubborn_fetch():
            try:
                await gate.wait()
            except asyncio.CancelledError:
                # Finish anyway, as a fetch that ignores cancellation would
                pass
            return "late"

        loop = PollingLoop("stubborn", 60, stubborn_fetch, applied.append)
        loop.start()
        await wait_for(lambda: loop.fetching)

        tasks = loop.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

        self.assertEqual(applied, [])
        self.assertEqual(loop.fetch_count, 1)

    async def test_failed_fetch_is_counted_and_loop_continues(self):
        attempts = []
        applied = []

        async def flaky():
            attempts.append(1)
            if len(attempts) == 1:
                raise RuntimeError("service down")
            return "ok"

        loop = PollingLoop("flaky", 0.02, flaky, applied.append)
        loop.start()
        await wait_for(lambda: applied)
        await loop.stop()

        self.assertEqual(loop.failures, 1)
        self.assertEqual(applied[0], "ok")
        self.assertIsNotNone(loop.last_success)

    async def test_trigger_requires_running_loop(self):
        async def fetch():
            return None

        loop = PollingLoop("idle", 60, fetch, lambda result: None)
        self.assertFalse(loop.trigger())


class TestSyncScheduler(unittest.IsolatedAsyncioTestCase):
    """Test SyncScheduler"""

    async def asyncSetUp(self):
        self.gateway = FakeGateway()
        self.registry = WalletRegistry()
        self.scheduler = SyncScheduler(
            self.gateway,
            self.registry,
            chain_interval=60,
            balance_interval=60,
            pending_interval=60,
        )

    async def asyncTearDown(self):
        await self.scheduler.stop()

    async def test_chain_fetched_on_start(self):
        self.assertIsNone(self.scheduler.chain_snapshot)
        self.scheduler.start()
        await wait_for(lambda: self.scheduler.chain_snapshot is not None)
        self.assertEqual(self.scheduler.chain_snapshot, self.gateway.snapshot)

    async def test_overlapping_ticks_are_dropped(self):
        """Test that at most one chain fetch is in flight at a time"""
        self.gateway.chain_gate = asyncio.Event()
        self.scheduler.chain_loop.interval = 0.01
        self.scheduler.start()
        await wait_for(lambda: self.gateway.call_count("get_chain_snapshot") == 1)

        self.assertFalse(self.scheduler.refresh_chain())
        await asyncio.sleep(0.1)

        self.assertEqual(self.gateway.call_count("get_chain_snapshot"), 1)
        self.assertGreater(self.scheduler.chain_loop.dropped_ticks, 1)
        self.assertIsNone(self.scheduler.chain_snapshot)

        self.gateway.chain_gate.set()
        await wait_for(lambda: self.scheduler.chain_snapshot is not None)

    async def test_failed_refresh_keeps_previous_snapshot(self):
        self.scheduler.start()
        await wait_for(lambda: self.scheduler.chain_loop.last_success is not None)
        first = self.scheduler.chain_snapshot

        self.gateway.snapshot = make_snapshot(height=5)
        self.gateway.failing.add("get_chain_snapshot")
        self.assertTrue(self.scheduler.refresh_chain())
        await wait_for(lambda: self.scheduler.chain_loop.failures == 1)

        self.assertIs(self.scheduler.chain_snapshot, first)

    async def test_older_poll_does_not_replace_newer_refresh(self):
        """Test that a slow background fetch cannot roll back a later refresh"""
        self.gateway.chain_gate = asyncio.Event()
        self.scheduler.start()
        await wait_for(lambda: self.gateway.call_count("get_chain_snapshot") == 1)

        # A user refresh issued after the poll lands first
        sequence = self.scheduler.next_chain_sequence()
        self.assertTrue(self.scheduler.publish_chain(make_snapshot(height=5), sequence))

        self.gateway.chain_gate.set()
        await wait_for(lambda: not self.scheduler.chain_loop.fetching)

        self.assertEqual(self.scheduler.chain_snapshot.height, 5)
        self.assertEqual(self.scheduler.chain_loop.failures, 0)

    async def test_publish_without_sequence_is_newest(self):
        early = self.scheduler.next_chain_sequence()
        self.assertTrue(self.scheduler.publish_chain(make_snapshot(height=3)))
        self.assertFalse(self.scheduler.publish_chain(make_snapshot(height=1), early))
        self.assertEqual(self.scheduler.chain_snapshot.height, 3)

    async def test_partial_balance_failure(self):
        """Test that one failing address does not block the others"""
        self.registry.add(make_wallet("A", balance=1))
        self.registry.add(make_wallet("B", balance=5))
        self.gateway.balances = {"A": 10, "B": 20}
        self.gateway.failing_addresses.add("B")

        self.scheduler.start()
        await wait_for(lambda: self.registry.get("A").balance_amount == 10)

        self.assertEqual(self.registry.get("B").balance_amount, 5)

    async def test_balance_loop_follows_wallet_count(self):
        self.scheduler.start()
        self.assertFalse(self.scheduler.balance_loop.running)

        self.registry.add(make_wallet("A"))
        self.assertTrue(self.scheduler.balance_loop.running)
        await wait_for(lambda: self.registry.get("A").balance_amount == 0)

        self.registry.remove("A")
        self.assertFalse(self.scheduler.balance_loop.running)

    async def test_added_wallet_gets_balance_without_waiting(self):
        self.registry.add(make_wallet("A"))
        self.scheduler.start()
        await wait_for(lambda: self.registry.get("A").balance_amount is not None)

        self.gateway.balances["C"] = 7
        self.registry.add(make_wallet("C"))
        await wait_for(lambda: self.registry.get("C").balance_amount == 7)

    async def test_removed_wallet_not_resurrected(self):
        """Test that a balance arriving for a removed wallet is dropped"""
        self.registry.add(make_wallet("A"))
        self.registry.add(make_wallet("B"))
        self.gateway.balances = {"A": 3, "B": 4}
        self.gateway.balance_gates["B"] = asyncio.Event()

        self.scheduler.start()
        await wait_for(lambda: ("get_balance", "B") in self.gateway.calls)
        self.registry.remove("B")
        self.gateway.balance_gates["B"].set()

        await wait_for(lambda: self.registry.get("A").balance_amount == 3)
        self.assertNotIn("B", self.registry)
        self.assertEqual(len(self.registry), 1)

    async def test_pending_loop_follows_view(self):
        self.scheduler.start()
        self.assertFalse(self.scheduler.pending_loop.running)

        await self.gateway.submit_transaction("A", "B", 2.0, "priv-A")
        self.scheduler.set_pending_active(True)
        self.assertTrue(self.scheduler.pending_loop.running)
        await wait_for(lambda: len(self.scheduler.pending_transactions) == 1)
        self.assertEqual(self.scheduler.pending_transactions[0].to_address, "B")

        self.scheduler.set_pending_active(False)
        self.assertFalse(self.scheduler.pending_loop.running)

    async def test_pending_active_before_start(self):
        self.scheduler.set_pending_active(True)
        self.assertFalse(self.scheduler.pending_loop.running)
        self.scheduler.start()
        self.assertTrue(self.scheduler.pending_loop.running)

    async def test_no_writes_after_stop(self):
        self.registry.add(make_wallet("A", balance=1))
        self.gateway.balances = {"A": 50}
        self.gateway.balance_gates["A"] = asyncio.Event()

        self.scheduler.start()
        await wait_for(lambda: ("get_balance", "A") in self.gateway.calls)
        await self.scheduler.stop()
        self.gateway.balance_gates["A"].set()
        await asyncio.sleep(0.05)

        self.assertEqual(self.registry.get("A").balance_amount, 1)
        self.assertFalse(self.scheduler.is_running)
        self.assertFalse(self.scheduler.chain_loop.running)

    async def test_reconcile_balances_once(self):
        self.registry.add(make_wallet("A"))
        self.gateway.balances = {"A": 9}
        changed = await self.scheduler.reconcile_balances()
        self.assertEqual(changed, 1)
        self.assertEqual(self.registry.get("A").balance_amount, 9)


if __name__ == "__main__":
    unittest.main()
