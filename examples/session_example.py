#!/usr/bin/env python3
"""Example demonstrating a ledgerlink session against a running ledger service.

This example shows how to:
- Open a session with an in-memory store
- Create a wallet and wait for its balance to be reconciled
- Mine a block and read the refreshed chain snapshot
"""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from ledgerlink import HttpGateway, LedgerClientError, LedgerSession, MemoryStore


async def example_session(api_url: str) -> None:
    """Create a wallet, mine to it and show the result."""
    print("\n" + "=" * 60)
    print("Example: LedgerSession")
    print("=" * 60)

    session = LedgerSession(
        HttpGateway(api_url),
        MemoryStore(),
        chain_interval=5,
        balance_interval=5,
    )
    async with session:
        wallet = await session.create_wallet()
        print(f"✓ Created wallet {wallet.address}")

        block = await session.mine(wallet.address)
        print(f"✓ Mined block #{block.index} ({len(block.transactions)} transactions)")

        await session.scheduler.reconcile_balances()
        print(f"  Balance: {session.registry.get(wallet.address).balance_amount}")

        snapshot = await session.refresh_chain()
        print(f"  Chain height: {snapshot.height}, difficulty: {snapshot.difficulty}")

        for kind, notification in (("success", session.notifications.current_success),
                                   ("error", session.notifications.current_error)):
            if notification is not None:
                print(f"  [{kind}] {notification.message}")


def main():
    api_url = sys.argv[1] if len(sys.argv) > 1 else "http://localhost:3001/api"
    try:
        asyncio.run(example_session(api_url))
    except LedgerClientError as e:
        print(f"✗ {e}")
        print("\nMake sure the ledger service is running at", api_url)
        sys.exit(1)


if __name__ == "__main__":
    main()
