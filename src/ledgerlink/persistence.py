"""
Wallet and view persistence with corruption recovery.

Two logical records live in the key-value store: ``wallets`` (JSON list of
wallet records, secrets included) and ``lastView`` (plain string). Absence of
either record is a valid initial state.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import ValidationError

from ledgerlink.errors import PersistenceCorruption
from ledgerlink.models import Wallet, WalletRecord
from ledgerlink.store import KeyValueStore

logger = logging.getLogger(__name__)

WALLETS_KEY = "wallets"
VIEW_KEY = "lastView"


@dataclass
class LoadResult:
    """Outcome of PersistenceStore.load()"""
    wallets: List[Wallet] = field(default_factory=list)
    last_view: Optional[str] = None
    corruption: Optional[PersistenceCorruption] = None

    @property
    def data_reset(self) -> bool:
        """True when a corrupted record was discarded during load"""
        return self.corruption is not None


def _parse_wallets(raw: str) -> List[Wallet]:
    """Parse the wallets record; raise ValueError on any structural problem."""
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid JSON ({e.msg})") from e
    if not isinstance(data, list):
        raise ValueError(f"expected a list, got {type(data).__name__}")

    wallets: List[Wallet] = []
    seen = set()
    for position, item in enumerate(data):
        try:
            wallet = WalletRecord.model_validate(item).to_wallet()
        except ValidationError as e:
            raise ValueError(f"invalid wallet at position {position}: {e.error_count()} error(s)") from e
        if wallet.address in seen:
            raise ValueError(f"duplicate address {wallet.address}")
        seen.add(wallet.address)
        wallets.append(wallet)
    return wallets


class PersistenceStore:
    """Loads and saves the wallet collection and the last active view."""

    def __init__(self, store: KeyValueStore) -> None:
        self.store = store
        self._lock = asyncio.Lock()

    async def load(self) -> LoadResult:
        """
        Restore persisted state.

        Never raises for bad stored data: a corrupted wallets record is
        deleted and reported through ``LoadResult.corruption``.
        """
        async with self._lock:
            result = LoadResult()

            raw = await self.store.get(WALLETS_KEY)
            if raw is not None and raw.strip():
                try:
                    result.wallets = _parse_wallets(raw)
                except ValueError as e:
                    result.corruption = PersistenceCorruption(WALLETS_KEY, str(e))
                    logger.warning(f"Discarding corrupted wallet data: {e}")
                    await self.store.delete(WALLETS_KEY)

            view = await self.store.get(VIEW_KEY)
            if view:
                result.last_view = view

            logger.info(f"Loaded {len(result.wallets)} wallets (last view: {result.last_view})")
            return result

    async def save_wallets(self, wallets: Sequence[Wallet]) -> None:
        """Replace the stored wallet collection; an empty one removes the record."""
        async with self._lock:
            if not wallets:
                await self.store.delete(WALLETS_KEY)
                return
            records = [WalletRecord.from_wallet(w).dump() for w in wallets]
            await self.store.put(WALLETS_KEY, json.dumps(records))

    async def save_view(self, view: str) -> None:
        """Remember the last active view."""
        async with self._lock:
            await self.store.put(VIEW_KEY, view)


class DebouncedWriter:
    """
    Coalescing write-through for registry and view changes.

    Callers hand over the latest state and return immediately; the writer
    persists only the most recent value once no new change has arrived for
    ``delay`` seconds.
    """

    def __init__(self, persistence: PersistenceStore, delay: float = 0.5) -> None:
        self.persistence = persistence
        self.delay = delay
        self._pending_wallets: Optional[Sequence[Wallet]] = None
        self._pending_view: Optional[str] = None
        self._timer: Optional[asyncio.Task] = None
        self._writing: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def has_pending(self) -> bool:
        return self._pending_wallets is not None or self._pending_view is not None

    def schedule_wallets(self, wallets: Sequence[Wallet]) -> None:
        self._pending_wallets = tuple(wallets)
        self._arm()

    def schedule_view(self, view: str) -> None:
        self._pending_view = view
        self._arm()

    def _arm(self) -> None:
        if self._closed:
            logger.debug("Writer closed, ignoring scheduled write")
            return
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._delayed_flush())

    async def _delayed_flush(self) -> None:
        await asyncio.sleep(self.delay)
        # Past the sleep the task must not be cancelled by a newer change
        self._writing, self._timer = self._timer, None
        await self._write_pending()

    async def _write_pending(self) -> None:
        wallets, self._pending_wallets = self._pending_wallets, None
        view, self._pending_view = self._pending_view, None
        try:
            if wallets is not None:
                await self.persistence.save_wallets(wallets)
            if view is not None:
                await self.persistence.save_view(view)
        except Exception as e:
            logger.error(f"Failed to persist state: {e}", exc_info=True)

    async def flush(self) -> None:
        """Write pending records now."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        self._timer = None
        if self._writing is not None and not self._writing.done():
            await self._writing
        await self._write_pending()

    async def close(self) -> None:
        """Flush and refuse further writes."""
        await self.flush()
        self._closed = True
