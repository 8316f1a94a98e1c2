"""
Client for the remote ledger service.

The remote service owns the chain, mining and signature checks. This module
only moves JSON back and forth and sorts every failure into one of two
buckets: the service could not be reached (TransportFailure) or it answered
with something other than success (RemoteRejection).
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ledgerlink.errors import RemoteRejection, TransportFailure
from ledgerlink.models import (
    Block,
    ChainSnapshot,
    Transaction,
    Wallet,
    WalletRecord,
)

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "http://localhost:3001/api"

M = TypeVar("M", bound=BaseModel)


class RemoteGateway(ABC):
    """Async interface to the remote ledger service."""

    @abstractmethod
    async def get_chain_snapshot(self) -> ChainSnapshot:
        """Fetch the full chain, pending transactions and parameters."""

    @abstractmethod
    async def validate_chain(self) -> bool:
        """Ask the service to validate its chain."""

    @abstractmethod
    async def create_wallet(self) -> Wallet:
        """Create a new key-pair on the service."""

    @abstractmethod
    async def import_wallet(self, private_key: str) -> Wallet:
        """Derive the wallet for an existing private key."""

    @abstractmethod
    async def get_balance(self, address: str) -> float:
        """Fetch the balance of one address."""

    @abstractmethod
    async def submit_transaction(
        self,
        from_address: str,
        to_address: str,
        amount: float,
        private_key: str,
    ) -> Transaction:
        """Sign and submit a transfer."""

    @abstractmethod
    async def get_pending_transactions(self) -> List[Transaction]:
        """Fetch transactions not yet included in a block."""

    @abstractmethod
    async def mine(self, miner_address: str) -> Block:
        """Mine pending transactions, paying the reward to ``miner_address``."""

    async def aclose(self) -> None:
        """Release transport resources."""


def _parse(model: Type[M], data: Any, what: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as e:
        raise RemoteRejection(f"Malformed {what} in response: {e.error_count()} error(s)") from e


class HttpGateway(RemoteGateway):
    """
    RemoteGateway over the service's JSON/HTTP API.

    Example:
        >>> async with HttpGateway("http://localhost:3001/api") as gateway:
        ...     snapshot = await gateway.get_chain_snapshot()
    """

    def __init__(
        self,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        """
        Args:
            base_url: API root, e.g. http://localhost:3001/api
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests pass a MockTransport)
        """
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers={"Content-Type": "application/json"},
            transport=transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Perform one call; raise TransportFailure or RemoteRejection on failure."""
        url = f"{self.base_url}{path}"
        try:
            response = await self._client.request(method, url, json=payload)
        except httpx.TimeoutException as e:
            raise TransportFailure(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise TransportFailure(f"{method} {path} failed: {e}") from e

        if response.is_error:
            raise RemoteRejection(f"{method} {path} returned HTTP {response.status_code}")

        try:
            data = response.json()
        except ValueError as e:
            raise RemoteRejection(f"{method} {path} returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise RemoteRejection(f"{method} {path} returned an unexpected body")
        if data.get("success") is False:
            raise RemoteRejection(f"{method} {path} reported failure")
        return data

    async def get_chain_snapshot(self) -> ChainSnapshot:
        data = await self._request("GET", "/blockchain")
        return _parse(ChainSnapshot, data, "chain")

    async def validate_chain(self) -> bool:
        data = await self._request("GET", "/blockchain/validate")
        is_valid = data.get("isValid")
        if not isinstance(is_valid, bool):
            raise RemoteRejection("Validation response has no isValid flag")
        return is_valid

    async def create_wallet(self) -> Wallet:
        data = await self._request("POST", "/wallet/create")
        return _parse(WalletRecord, data.get("wallet"), "wallet").to_wallet()

    async def import_wallet(self, private_key: str) -> Wallet:
        data = await self._request("POST", "/wallet/import", {"privateKey": private_key})
        record = _parse(WalletRecord, data.get("wallet"), "wallet")
        # The service does not necessarily echo the key back
        return record.model_copy(update={"private_key": private_key}).to_wallet()

    async def get_balance(self, address: str) -> float:
        data = await self._request("GET", f"/wallet/{address}/balance")
        balance = data.get("balance")
        if isinstance(balance, bool) or not isinstance(balance, (int, float)):
            raise RemoteRejection(f"Balance response for {address} has no numeric balance")
        return float(balance)

    async def submit_transaction(
        self,
        from_address: str,
        to_address: str,
        amount: float,
        private_key: str,
    ) -> Transaction:
        data = await self._request("POST", "/transaction", {
            "fromAddress": from_address,
            "toAddress": to_address,
            "amount": amount,
            "privateKey": private_key,
        })
        if data.get("transaction") is not None:
            return _parse(Transaction, data["transaction"], "transaction")
        # Older services only acknowledge the submission
        return Transaction(
            from_address=from_address,
            to_address=to_address,
            amount=amount,
            timestamp=int(time.time() * 1000),
        )

    async def get_pending_transactions(self) -> List[Transaction]:
        data = await self._request("GET", "/transactions/pending")
        items = data.get("pendingTransactions")
        if not isinstance(items, list):
            raise RemoteRejection("Pending response has no transaction list")
        return [_parse(Transaction, item, "transaction") for item in items]

    async def mine(self, miner_address: str) -> Block:
        data = await self._request("POST", "/mine", {"minerAddress": miner_address})
        return _parse(Block, data.get("block"), "block")

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpGateway":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()
