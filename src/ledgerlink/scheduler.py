"""
Background reconciliation against the remote ledger service.

Three independent polling loops keep the local view fresh:

- chain: full ChainSnapshot every 30s, always on while the scheduler runs
- balances: one balance request per held wallet every 60s, only while at
  least one wallet is held
- pending: pending transaction list every 10s, only while the transactions
  view is active

Every loop is an explicitly owned asyncio task. A tick that arrives while
the previous fetch is still running is dropped, and results that complete
after a loop was cancelled are discarded instead of applied.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from ledgerlink.gateway import RemoteGateway
from ledgerlink.models import ChainSnapshot, Transaction, Wallet
from ledgerlink.registry import WalletRegistry

logger = logging.getLogger(__name__)

CHAIN_INTERVAL = 30.0
BALANCE_INTERVAL = 60.0
PENDING_INTERVAL = 10.0

T = TypeVar("T")


class PollingLoop(Generic[T]):
    """Periodic fetch-then-apply task with overlap suppression."""

    def __init__(
        self,
        name: str,
        interval: float,
        fetch: Callable[[], Awaitable[T]],
        apply: Callable[[T], None],
    ) -> None:
        """
        Args:
            name: Loop name used in logs and task names
            interval: Seconds between ticks
            fetch: Coroutine function producing a result; may raise
            apply: Synchronous callback writing the result to shared state
        """
        self.name = name
        self.interval = interval
        self._fetch = fetch
        self._apply = apply

        self._task: Optional[asyncio.Task] = None
        self._inflight: Optional[asyncio.Task] = None
        # Bumped on every start/cancel; a fetch only applies if it still matches
        self._generation = 0

        self.fetch_count = 0
        self.dropped_ticks = 0
        self.failures = 0
        self.last_success: Optional[float] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def fetching(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def start(self) -> None:
        """Start ticking: one fetch now, then one per interval."""
        if self.running:
            return
        self._generation += 1
        self._task = asyncio.create_task(
            self._run(self._generation), name=f"ledgerlink-{self.name}-loop"
        )
        logger.info(f"Started {self.name} loop (every {self.interval:g}s)")

    async def _run(self, generation: int) -> None:
        while True:
            self._tick(generation)
            await asyncio.sleep(self.interval)

    def trigger(self) -> bool:
        """Run an extra tick now; returns False if not running or still busy."""
        if not self.running:
            return False
        return self._tick(self._generation)

    def _tick(self, generation: int) -> bool:
        if self.fetching:
            self.dropped_ticks += 1
            logger.debug(f"{self.name}: previous fetch still in flight, dropping tick")
            return False
        self._inflight = asyncio.create_task(
            self._fetch_and_apply(generation), name=f"ledgerlink-{self.name}-fetch"
        )
        return True

    async def _fetch_and_apply(self, generation: int) -> None:
        self.fetch_count += 1
        try:
            result = await self._fetch()
        except Exception as e:
            self.failures += 1
            logger.warning(f"{self.name} refresh failed: {e}")
            return

        if generation != self._generation:
            logger.debug(f"{self.name}: discarding result that arrived after cancellation")
            return

        try:
            self._apply(result)
        except Exception as e:
            logger.error(f"Error applying {self.name} result: {e}", exc_info=True)
            return
        self.last_success = time.monotonic()

    def cancel(self) -> List[asyncio.Task]:
        """
        Stop the loop without waiting.

        No result is applied after this returns, even if a fetch completes
        later. Returns the tasks that were cancelled.
        """
        self._generation += 1
        tasks = [t for t in (self._task, self._inflight) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if self._task is not None:
            logger.info(f"Stopped {self.name} loop")
        self._task = None
        self._inflight = None
        return tasks

    async def stop(self) -> None:
        """Cancel the loop and wait for its tasks to finish."""
        tasks = self.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class SyncScheduler:
    """Drives the chain, balance and pending-transaction loops."""

    def __init__(
        self,
        gateway: RemoteGateway,
        registry: WalletRegistry,
        chain_interval: float = CHAIN_INTERVAL,
        balance_interval: float = BALANCE_INTERVAL,
        pending_interval: float = PENDING_INTERVAL,
    ) -> None:
        self.gateway = gateway
        self.registry = registry

        self.chain_loop: PollingLoop[Tuple[int, ChainSnapshot]] = PollingLoop(
            "chain", chain_interval, self._fetch_chain, self._apply_chain
        )
        self.balance_loop: PollingLoop[Dict[str, float]] = PollingLoop(
            "balances", balance_interval, self.fetch_balances, self._apply_balances
        )
        self.pending_loop: PollingLoop[List[Transaction]] = PollingLoop(
            "pending", pending_interval, gateway.get_pending_transactions, self._apply_pending
        )

        self._chain: Optional[ChainSnapshot] = None
        # Chain fetches are numbered when issued; older results never replace newer ones
        self._chain_sequence = 0
        self._published_sequence = 0
        self._pending: Tuple[Transaction, ...] = ()
        self._started = False
        self._pending_active = False
        self._wallet_count = len(registry)

    @property
    def chain_snapshot(self) -> Optional[ChainSnapshot]:
        """Latest chain snapshot, None until the first successful fetch"""
        return self._chain

    @property
    def pending_transactions(self) -> Tuple[Transaction, ...]:
        return self._pending

    @property
    def is_running(self) -> bool:
        return self._started

    def start(self) -> None:
        """Start the chain loop, and the balance loop if any wallet is held."""
        if self._started:
            logger.warning("SyncScheduler already running")
            return
        self._started = True
        self._wallet_count = len(self.registry)
        self.registry.add_listener(self._on_wallets_changed)

        self.chain_loop.start()
        if self._wallet_count:
            self.balance_loop.start()
        if self._pending_active:
            self.pending_loop.start()

    async def stop(self) -> None:
        """Stop every loop; nothing is written to shared state afterwards."""
        if not self._started:
            return
        self._started = False
        self.registry.remove_listener(self._on_wallets_changed)
        await asyncio.gather(
            self.chain_loop.stop(),
            self.balance_loop.stop(),
            self.pending_loop.stop(),
        )

    def set_pending_active(self, active: bool) -> None:
        """Run the pending loop only while the transactions view is shown."""
        self._pending_active = active
        if not self._started:
            return
        if active:
            self.pending_loop.start()
        else:
            self.pending_loop.cancel()

    def refresh_chain(self) -> bool:
        return self.chain_loop.trigger()

    def refresh_balances(self) -> bool:
        return self.balance_loop.trigger()

    def refresh_pending(self) -> bool:
        return self.pending_loop.trigger()

    def next_chain_sequence(self) -> int:
        """Number a chain fetch; call before issuing the request."""
        self._chain_sequence += 1
        return self._chain_sequence

    def publish_chain(self, snapshot: ChainSnapshot, sequence: Optional[int] = None) -> bool:
        """
        Replace the published snapshot with a newer one.

        Args:
            snapshot: Freshly fetched chain
            sequence: Number from next_chain_sequence() taken when the fetch
                was issued; None publishes as the newest

        Returns:
            False if a fetch issued later has already been published
        """
        if sequence is None:
            sequence = self.next_chain_sequence()
        if sequence < self._published_sequence:
            logger.debug(f"Dropping chain snapshot #{sequence}, #{self._published_sequence} already published")
            return False
        self._published_sequence = sequence
        self._chain = snapshot
        logger.debug(f"Chain snapshot updated (height {snapshot.height})")
        return True

    async def _fetch_chain(self) -> Tuple[int, ChainSnapshot]:
        sequence = self.next_chain_sequence()
        return sequence, await self.gateway.get_chain_snapshot()

    def _apply_chain(self, result: Tuple[int, ChainSnapshot]) -> None:
        sequence, snapshot = result
        self.publish_chain(snapshot, sequence)

    async def fetch_balances(self) -> Dict[str, float]:
        """Fetch every held balance in parallel; failed addresses are left out."""
        addresses = self.registry.addresses()
        results = await asyncio.gather(
            *(self.gateway.get_balance(address) for address in addresses),
            return_exceptions=True,
        )
        balances: Dict[str, float] = {}
        for address, result in zip(addresses, results):
            if isinstance(result, BaseException):
                logger.warning(f"Balance fetch for {address} failed: {result}")
                continue
            balances[address] = result
        return balances

    async def reconcile_balances(self) -> int:
        """Fetch and merge balances once, outside the periodic loop."""
        return self.registry.merge_balances(await self.fetch_balances())

    def _apply_balances(self, balances: Dict[str, float]) -> None:
        changed = self.registry.merge_balances(balances)
        logger.debug(f"Merged {len(balances)} balances ({changed} changed)")

    def _apply_pending(self, transactions: List[Transaction]) -> None:
        self._pending = tuple(transactions)

    def _on_wallets_changed(self, wallets: Tuple[Wallet, ...]) -> None:
        previous, self._wallet_count = self._wallet_count, len(wallets)
        if not self._started:
            return
        if not wallets:
            self.balance_loop.cancel()
        elif not self.balance_loop.running:
            self.balance_loop.start()
        elif len(wallets) > previous:
            self.balance_loop.trigger()
