"""Durable key-value storage backends."""

import asyncio
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Dict, Optional, Union

try:
    import plyvel
    _LEVELDB_AVAILABLE = True
except ImportError:
    _LEVELDB_AVAILABLE = False
    plyvel = None  # type: ignore


class KeyValueStore(ABC):
    """Async string key-value store."""

    async def open(self) -> None:
        """Open the underlying medium."""

    async def close(self) -> None:
        """Release the underlying medium."""

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the value for ``key`` or None if absent."""

    @abstractmethod
    async def put(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Remove ``key``; absent keys are ignored."""


class MemoryStore(KeyValueStore):
    """In-process store, mainly for tests."""

    def __init__(self, initial: Optional[Dict[str, str]] = None) -> None:
        self.data: Dict[str, str] = dict(initial or {})

    async def get(self, key: str) -> Optional[str]:
        return self.data.get(key)

    async def put(self, key: str, value: str) -> None:
        self.data[key] = value

    async def delete(self, key: str) -> None:
        self.data.pop(key, None)


class LevelDBStore(KeyValueStore):
    """LevelDB-backed store."""

    def __init__(self, db_path: Union[str, Path], create_if_missing: bool = True) -> None:
        """
        Args:
            db_path: Directory holding the wallet records; created on demand
            create_if_missing: Let LevelDB create a fresh database there

        Raises:
            ImportError: LevelDB bindings are missing; install the
                ``leveldb`` extra or configure ``store = memory``
        """
        if not _LEVELDB_AVAILABLE:
            raise ImportError(
                "The leveldb store needs plyvel: install ledgerlink[leveldb] "
                "or set store = memory in the config"
            )

        self.db_path = Path(db_path)
        self.db_path.mkdir(parents=True, exist_ok=True)
        self.create_if_missing = create_if_missing

        # One worker keeps writes in submission order
        self.executor = ThreadPoolExecutor(max_workers=1)
        self.db: Optional[Any] = None

    async def open(self) -> None:
        """Open the database connection."""
        if self.db is not None:
            return
        loop = asyncio.get_running_loop()
        self.db = await loop.run_in_executor(
            self.executor,
            lambda: plyvel.DB(str(self.db_path), create_if_missing=self.create_if_missing),
        )

    async def close(self) -> None:
        """Close the database connection."""
        if self.db:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(self.executor, self._close_db)
        self.executor.shutdown(wait=True)

    def _close_db(self) -> None:
        """Close the database (called from executor)."""
        if self.db:
            self.db.close()
            self.db = None

    def _require_open(self) -> Any:
        if not self.db:
            raise RuntimeError("Database not open")
        return self.db

    async def get(self, key: str) -> Optional[str]:
        db = self._require_open()
        loop = asyncio.get_running_loop()
        raw = await loop.run_in_executor(self.executor, db.get, key.encode("utf-8"))
        if raw is None:
            return None
        return raw.decode("utf-8", errors="replace")

    async def put(self, key: str, value: str) -> None:
        db = self._require_open()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(
            self.executor, db.put, key.encode("utf-8"), value.encode("utf-8")
        )

    async def delete(self, key: str) -> None:
        db = self._require_open()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(self.executor, db.delete, key.encode("utf-8"))


def open_store(kind: str, datadir: Union[str, Path]) -> KeyValueStore:
    """Build a store by name (``leveldb`` or ``memory``)."""
    if kind == "memory":
        return MemoryStore()
    if kind == "leveldb":
        return LevelDBStore(Path(datadir) / "wallets.ldb")
    raise ValueError(f"Unknown store type: {kind}")
