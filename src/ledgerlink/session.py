"""
Client session: the state the presentation layer reads and the actions it
calls.

A session restores wallets and the last view from storage, keeps them
reconciled with the remote service through the SyncScheduler, writes every
wallet change back to storage, and reports the outcome of user actions on
the NotificationChannel.
"""

import logging
from collections import deque
from contextlib import contextmanager
from typing import Deque, Iterator, Optional, Tuple, Union

from ledgerlink.config import ClientConfig
from ledgerlink.errors import DuplicateWallet, InvalidInput, LedgerClientError, SessionClosed
from ledgerlink.gateway import HttpGateway, RemoteGateway
from ledgerlink.models import Block, ChainSnapshot, LocalWallet, Transaction, Wallet
from ledgerlink.notifications import NotificationChannel
from ledgerlink.persistence import DebouncedWriter, PersistenceStore
from ledgerlink.registry import WalletRegistry
from ledgerlink.scheduler import SyncScheduler
from ledgerlink.store import KeyValueStore, open_store
from ledgerlink.validation import (
    DEFAULT_VIEW,
    TRANSACTIONS_VIEW,
    VIEWS,
    check_view,
    parse_amount,
    require_text,
)

logger = logging.getLogger(__name__)

MINING_HISTORY_SIZE = 10

DATA_RESET_MESSAGE = "Wallet data was corrupted and has been reset"
REQUIRED_FIELDS_MESSAGE = "Please fill in all required fields"
SESSION_CLOSED_MESSAGE = "The session is closed"


class LedgerSession:
    """Owns the wallet registry, the sync loops and persistence for one client.

    The session takes ownership of the gateway and the store and closes
    both in ``close()``.
    """

    def __init__(
        self,
        gateway: RemoteGateway,
        store: KeyValueStore,
        *,
        chain_interval: float = 30.0,
        balance_interval: float = 60.0,
        pending_interval: float = 10.0,
        persist_debounce: float = 0.5,
        notifications: Optional[NotificationChannel] = None,
    ) -> None:
        self.gateway = gateway
        self.store = store
        self.registry = WalletRegistry()
        self.persistence = PersistenceStore(store)
        self.writer = DebouncedWriter(self.persistence, delay=persist_debounce)
        self.notifications = notifications or NotificationChannel()
        self.scheduler = SyncScheduler(
            gateway,
            self.registry,
            chain_interval=chain_interval,
            balance_interval=balance_interval,
            pending_interval=pending_interval,
        )

        self.chain_valid: Optional[bool] = None
        self._view = DEFAULT_VIEW
        self._mining_history: Deque[Block] = deque(maxlen=MINING_HISTORY_SIZE)
        self._opened = False
        self._closed = False

    @classmethod
    def from_config(cls, config: ClientConfig) -> "LedgerSession":
        """Build a session talking HTTP to ``api_url`` with the configured store."""
        store = open_store(config.get('store'), config.datadir)
        gateway = HttpGateway(config.get('api_url'), timeout=config.getfloat('request_timeout'))
        notifications = NotificationChannel(
            error_timeout=config.getfloat('error_timeout'),
            success_timeout=config.getfloat('success_timeout'),
        )
        return cls(
            gateway,
            store,
            chain_interval=config.getfloat('chain_interval'),
            balance_interval=config.getfloat('balance_interval'),
            pending_interval=config.getfloat('pending_interval'),
            persist_debounce=config.getfloat('persist_debounce'),
            notifications=notifications,
        )

    # Lifecycle

    async def open(self, start_sync: bool = True) -> None:
        """
        Restore persisted state and start reconciliation.

        Args:
            start_sync: Start the background loops (one-shot tools pass False)
        """
        if self._opened:
            return
        await self.store.open()
        result = await self.persistence.load()

        for wallet in result.wallets:
            self.registry.add(wallet)
        self._view = result.last_view if result.last_view in VIEWS else DEFAULT_VIEW
        if result.data_reset:
            self.notifications.error(DATA_RESET_MESSAGE)

        # Subscribe after seeding so restored wallets are not written back
        self.registry.add_listener(self.writer.schedule_wallets)
        self._opened = True

        if start_sync:
            self.scheduler.set_pending_active(self._view == TRANSACTIONS_VIEW)
            self.scheduler.start()

    async def close(self) -> None:
        """Stop all loops, flush pending writes and release resources."""
        if self._closed:
            return
        self._closed = True
        await self.scheduler.stop()
        self.registry.remove_listener(self.writer.schedule_wallets)
        await self.writer.close()
        await self.store.close()
        await self.gateway.aclose()
        logger.info("Session closed")

    async def __aenter__(self) -> "LedgerSession":
        await self.open()
        return self

    async def __aexit__(self, *args) -> None:
        await self.close()

    # Read access

    @property
    def wallets(self) -> Tuple[Wallet, ...]:
        return self.registry.snapshot()

    @property
    def chain(self) -> Optional[ChainSnapshot]:
        return self.scheduler.chain_snapshot

    @property
    def pending_transactions(self) -> Tuple[Transaction, ...]:
        return self.scheduler.pending_transactions

    @property
    def mining_history(self) -> Tuple[Block, ...]:
        """Blocks mined from this client, newest first"""
        return tuple(self._mining_history)

    @property
    def view(self) -> str:
        return self._view

    @property
    def is_closed(self) -> bool:
        return self._closed

    # User actions

    @contextmanager
    def _surface(self, failure_message: Optional[str] = None) -> Iterator[None]:
        """Publish errors raised by a user action on the error slot, then re-raise."""
        try:
            yield
        except (InvalidInput, DuplicateWallet, SessionClosed) as e:
            self.notifications.error(str(e))
            raise
        except LedgerClientError as e:
            logger.warning(f"{failure_message or 'Action failed'}: {e}")
            self.notifications.error(failure_message or str(e))
            raise

    def _require_open(self) -> None:
        if self._closed:
            raise SessionClosed(SESSION_CLOSED_MESSAGE)

    def _hold(self, wallet: Wallet) -> Wallet:
        """Add a freshly created or imported wallet, known balance 0."""
        if self._closed:
            raise SessionClosed(f"Session closed before wallet {wallet.address} could be saved")
        wallet = wallet.with_balance(0)
        self.registry.add(wallet)
        return wallet

    def set_view(self, view: str) -> None:
        """Switch the active view; the pending loop runs only on the transactions view."""
        with self._surface():
            self._require_open()
            view = check_view(view)
        self._view = view
        self.writer.schedule_view(view)
        self.scheduler.set_pending_active(view == TRANSACTIONS_VIEW)

    async def create_wallet(self) -> Wallet:
        with self._surface("Failed to create wallet, please retry."):
            self._require_open()
            wallet = self._hold(await self.gateway.create_wallet())
        self.notifications.success("Wallet created! Be sure to keep your private key safe.")
        return wallet

    async def import_wallet(self, private_key: Optional[str]) -> Wallet:
        with self._surface("Failed to import wallet, please check the private key."):
            self._require_open()
            key = require_text(private_key, "Please enter a private key")
            for held in self.registry:
                if isinstance(held, LocalWallet) and held.private_key == key:
                    raise DuplicateWallet(held.address)
            wallet = await self.gateway.import_wallet(key)
            # The service may derive an address already held under another key
            if wallet.address in self.registry:
                raise DuplicateWallet(wallet.address)
            wallet = self._hold(wallet)
        self.notifications.success("Wallet imported!")
        return wallet

    def delete_wallet(self, address: str) -> bool:
        with self._surface():
            self._require_open()
        removed = self.registry.remove(address)
        if removed:
            self.notifications.success("Wallet deleted")
        return removed

    async def submit_transaction(
        self,
        from_address: Optional[str],
        to_address: Optional[str],
        amount: Union[str, int, float, None],
        private_key: Optional[str] = None,
    ) -> Transaction:
        """
        Validate and submit a transfer.

        The private key defaults to the sending wallet's own key. Amounts
        above the sending wallet's last known balance are rejected before
        anything is sent.
        """
        with self._surface("Failed to create the transaction, please check your input."):
            self._require_open()
            sender = require_text(from_address, REQUIRED_FIELDS_MESSAGE)
            recipient = require_text(to_address, REQUIRED_FIELDS_MESSAGE)
            if amount is None or (isinstance(amount, str) and not amount.strip()):
                raise InvalidInput(REQUIRED_FIELDS_MESSAGE)
            wallet = self.registry.get(sender)
            if not private_key and isinstance(wallet, LocalWallet):
                private_key = wallet.private_key
            key = require_text(private_key, REQUIRED_FIELDS_MESSAGE)
            value = parse_amount(amount)

            balance = wallet.balance_amount if wallet is not None else None
            if balance is not None and value > balance:
                raise InvalidInput(f"Insufficient balance. Current balance: {balance:g}")

            transaction = await self.gateway.submit_transaction(sender, recipient, value, key)

        self.notifications.success("Transaction created! Waiting for a miner to confirm it.")
        if not self._closed:
            self.scheduler.refresh_pending()
            self.scheduler.refresh_balances()
        return transaction

    async def mine(self, miner_address: Optional[str]) -> Block:
        with self._surface("Mining failed."):
            self._require_open()
            miner = require_text(miner_address, "Please select a wallet to receive the mining reward")
            block = await self.gateway.mine(miner)
        self._mining_history.appendleft(block)
        self.notifications.success(f"Mining succeeded! Block #{block.index} has been added to the chain")
        return block

    async def validate_chain(self) -> bool:
        with self._surface("Chain validation request failed, please retry."):
            self._require_open()
            valid = await self.gateway.validate_chain()
        self.chain_valid = valid
        self.notifications.success("Chain validation passed!" if valid else "Chain validation failed!")
        return valid

    async def refresh_chain(self) -> ChainSnapshot:
        """Fetch the chain now, surfacing failures (unlike the background loop)."""
        with self._surface("Failed to fetch chain data, please retry."):
            self._require_open()
            sequence = self.scheduler.next_chain_sequence()
            snapshot = await self.gateway.get_chain_snapshot()
        if not self._closed:
            self.scheduler.publish_chain(snapshot, sequence)
        return snapshot
