"""ledgerlink - state synchronization client for a remote ledger service."""

__version__ = "0.1.0"

# Core modules
from ledgerlink.errors import (
    DuplicateWallet,
    InvalidInput,
    LedgerClientError,
    PersistenceCorruption,
    RemoteRejection,
    SessionClosed,
    TransportFailure,
)
from ledgerlink.gateway import HttpGateway, RemoteGateway
from ledgerlink.models import (
    Block,
    ChainSnapshot,
    LocalWallet,
    Transaction,
    WatchOnlyWallet,
)
from ledgerlink.notifications import NotificationChannel
from ledgerlink.persistence import PersistenceStore
from ledgerlink.registry import WalletRegistry
from ledgerlink.scheduler import SyncScheduler
from ledgerlink.session import LedgerSession
from ledgerlink.store import LevelDBStore, MemoryStore

__all__ = [
    "__version__",
    "LedgerSession",
    "WalletRegistry",
    "SyncScheduler",
    "PersistenceStore",
    "NotificationChannel",
    "RemoteGateway",
    "HttpGateway",
    "MemoryStore",
    "LevelDBStore",
    "LocalWallet",
    "WatchOnlyWallet",
    "Block",
    "ChainSnapshot",
    "Transaction",
    "LedgerClientError",
    "TransportFailure",
    "RemoteRejection",
    "PersistenceCorruption",
    "DuplicateWallet",
    "InvalidInput",
    "SessionClosed",
]
