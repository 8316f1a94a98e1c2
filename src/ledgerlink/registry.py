"""In-memory wallet collection."""

import logging
from typing import Callable, Dict, Iterator, List, Mapping, Optional, Tuple

from ledgerlink.errors import DuplicateWallet
from ledgerlink.models import Wallet

logger = logging.getLogger(__name__)

WalletListener = Callable[[Tuple[Wallet, ...]], None]


class WalletRegistry:
    """Owns the canonical set of wallets, keyed by address."""

    def __init__(self) -> None:
        self._wallets: Dict[str, Wallet] = {}
        self._listeners: List[WalletListener] = []

    def add(self, wallet: Wallet) -> None:
        """Add a wallet.

        Raises:
            DuplicateWallet: If a wallet with the same address is held
        """
        if wallet.address in self._wallets:
            raise DuplicateWallet(wallet.address)
        self._wallets[wallet.address] = wallet
        logger.info(f"Added wallet {wallet.address}")
        self._notify()

    def remove(self, address: str) -> bool:
        """Remove a wallet; returns False if it was not held."""
        if self._wallets.pop(address, None) is None:
            return False
        logger.info(f"Removed wallet {address}")
        self._notify()
        return True

    def merge_balances(self, updates: Mapping[str, float]) -> int:
        """
        Apply freshly fetched balances.

        Only wallets that are still held and appear in ``updates`` change;
        every other wallet keeps its previous balance. Addresses that are no
        longer held are ignored.

        Returns:
            Number of wallets whose balance changed
        """
        changed = 0
        for address, amount in updates.items():
            wallet = self._wallets.get(address)
            if wallet is None:
                logger.debug(f"Ignoring balance for removed wallet {address}")
                continue
            if wallet.balance_amount == amount:
                continue
            self._wallets[address] = wallet.with_balance(amount)
            changed += 1
        if changed:
            self._notify()
        return changed

    def get(self, address: str) -> Optional[Wallet]:
        return self._wallets.get(address)

    def addresses(self) -> List[str]:
        return list(self._wallets)

    def snapshot(self) -> Tuple[Wallet, ...]:
        """Immutable copy of the collection, in insertion order."""
        return tuple(self._wallets.values())

    def __len__(self) -> int:
        return len(self._wallets)

    def __contains__(self, address: object) -> bool:
        return address in self._wallets

    def __iter__(self) -> Iterator[Wallet]:
        return iter(self.snapshot())

    def add_listener(self, listener: WalletListener) -> None:
        """Register a callback invoked with the new snapshot after each change."""
        self._listeners.append(listener)

    def remove_listener(self, listener: WalletListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                logger.warning(f"Error in wallet listener: {e}", exc_info=True)
