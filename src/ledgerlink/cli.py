"""Command-line interface for the ledger client."""

import asyncio
import logging
from pathlib import Path
from typing import Awaitable, Callable, Optional, TypeVar

import click

from ledgerlink import __version__
from ledgerlink.config import ClientConfig
from ledgerlink.errors import LedgerClientError
from ledgerlink.models import LocalWallet, Wallet
from ledgerlink.notifications import Notification, NotificationKind
from ledgerlink.session import LedgerSession
from ledgerlink.validation import VIEWS

T = TypeVar("T")


def setup_logging(debug: bool, log_timestamps: bool) -> None:
    """Configure the root logger from the debug/logtimestamps settings."""
    fmt = "%(levelname)s %(name)s: %(message)s"
    if log_timestamps:
        fmt = "%(asctime)s " + fmt
    logging.basicConfig(level=logging.DEBUG if debug else logging.INFO, format=fmt)


def _build_session(config: ClientConfig) -> LedgerSession:
    try:
        return LedgerSession.from_config(config)
    except ImportError as e:
        raise click.ClickException(str(e)) from e


def _run(config: ClientConfig, action: Callable[[LedgerSession], Awaitable[T]]) -> T:
    """Open a session without background loops, run one action, close it."""
    async def runner() -> T:
        session = _build_session(config)
        await session.open(start_sync=False)
        try:
            return await action(session)
        finally:
            await session.close()

    try:
        return asyncio.run(runner())
    except LedgerClientError as e:
        raise click.ClickException(str(e)) from e


def _format_wallet(wallet: Wallet) -> str:
    balance = wallet.balance_amount
    shown = "unknown" if balance is None else f"{balance:g}"
    kind = "local" if isinstance(wallet, LocalWallet) else "watch-only"
    return f"{wallet.address}  balance={shown}  ({kind})"


def _echo_notification(kind: NotificationKind, notification: Optional[Notification]) -> None:
    if notification is not None:
        click.echo(f"[{kind.value}] {notification.message}")


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file (default: ~/.ledgerlink/ledgerlink.conf)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path]) -> None:
    """ledgerlink - client for a remote ledger service."""
    config = ClientConfig(str(config_path) if config_path else None)
    setup_logging(config.getboolean('debug'), config.getboolean('logtimestamps'))
    ctx.obj = config


@cli.command()
@click.pass_obj
def init(config: ClientConfig) -> None:
    """Initialize the data directory."""
    datadir = config.datadir
    click.echo(f"Initializing data directory: {datadir}")
    datadir.mkdir(parents=True, exist_ok=True)
    click.echo("✓ Data directory initialized")


@cli.command()
@click.option("--host", default=None, help="Bind address (default from config)")
@click.option("--port", type=int, default=None, help="Bind port (default from config)")
@click.pass_obj
def serve(config: ClientConfig, host: Optional[str], port: Optional[int]) -> None:
    """Serve the local API and keep state in sync."""
    import uvicorn

    from ledgerlink.api import APIServer

    server = APIServer(_build_session(config))
    uvicorn.run(
        server.get_app(),
        host=host or config.get('host'),
        port=port or config.getint('port'),
        log_level="debug" if config.getboolean('debug') else "info",
    )


@cli.command()
@click.option("--report-every", type=float, default=10.0, help="Seconds between status lines")
@click.pass_obj
def watch(config: ClientConfig, report_every: float) -> None:
    """Run the sync loops and print state until interrupted."""
    async def run() -> None:
        session = _build_session(config)
        session.notifications.add_listener(_echo_notification)
        async with session:
            while True:
                await asyncio.sleep(report_every)
                chain = session.chain
                height = chain.height if chain else "?"
                pending = len(chain.pending_transactions) if chain else "?"
                click.echo(f"chain height={height} pending={pending}")
                for wallet in session.wallets:
                    click.echo(f"  {_format_wallet(wallet)}")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@cli.group()
def wallet() -> None:
    """Wallet management commands."""
    pass


@wallet.command("create")
@click.pass_obj
def wallet_create(config: ClientConfig) -> None:
    """Create a new wallet on the remote service."""
    async def action(session: LedgerSession) -> Wallet:
        return await session.create_wallet()

    created = _run(config, action)
    click.echo(f"✓ Created wallet {created.address}")
    if isinstance(created, LocalWallet):
        click.echo(f"  Private key: {created.private_key}")
        click.echo("  Keep this key safe; it cannot be recovered.")


@wallet.command("import")
@click.option("--private-key", prompt=True, hide_input=True, help="Private key to import")
@click.pass_obj
def wallet_import(config: ClientConfig, private_key: str) -> None:
    """Import a wallet from its private key."""
    async def action(session: LedgerSession) -> Wallet:
        return await session.import_wallet(private_key)

    imported = _run(config, action)
    click.echo(f"✓ Imported wallet {imported.address}")


@wallet.command("list")
@click.option("--refresh/--no-refresh", default=True, help="Fetch balances before listing")
@click.pass_obj
def wallet_list(config: ClientConfig, refresh: bool) -> None:
    """List held wallets."""
    async def action(session: LedgerSession):
        if refresh and session.wallets:
            await session.scheduler.reconcile_balances()
        return session.wallets

    wallets = _run(config, action)
    if not wallets:
        click.echo("No wallets yet. Create one with: ledgerlink wallet create")
        return
    click.echo("Wallets:")
    for w in wallets:
        click.echo(f"  {_format_wallet(w)}")


@wallet.command("delete")
@click.argument("address")
@click.pass_obj
def wallet_delete(config: ClientConfig, address: str) -> None:
    """Forget a wallet (its private key is removed from local storage)."""
    async def action(session: LedgerSession) -> bool:
        return session.delete_wallet(address)

    if not _run(config, action):
        raise click.ClickException(f"Unknown wallet: {address}")
    click.echo(f"✓ Deleted wallet {address}")


@cli.command()
@click.option("--from", "from_address", required=True, help="Sending wallet address")
@click.option("--to", "to_address", required=True, help="Recipient address")
@click.option("--amount", required=True, help="Amount to send")
@click.option("--private-key", default=None, help="Signing key (defaults to the wallet's own)")
@click.pass_obj
def send(
    config: ClientConfig,
    from_address: str,
    to_address: str,
    amount: str,
    private_key: Optional[str],
) -> None:
    """Submit a transfer."""
    async def action(session: LedgerSession):
        # Check against a fresh balance rather than the stored one
        await session.scheduler.reconcile_balances()
        return await session.submit_transaction(from_address, to_address, amount, private_key)

    transaction = _run(config, action)
    click.echo(f"✓ Submitted {transaction.amount:g} to {transaction.to_address}; waiting for a miner")


@cli.command()
@click.argument("miner_address")
@click.pass_obj
def mine(config: ClientConfig, miner_address: str) -> None:
    """Mine pending transactions, paying the reward to MINER_ADDRESS."""
    async def action(session: LedgerSession):
        return await session.mine(miner_address)

    block = _run(config, action)
    click.echo(f"✓ Mined block #{block.index} ({block.hash[:16]}...) with {len(block.transactions)} transactions")


@cli.group()
def chain() -> None:
    """Chain inspection commands."""
    pass


@chain.command("info")
@click.pass_obj
def chain_info(config: ClientConfig) -> None:
    """Show chain parameters and the latest block."""
    async def action(session: LedgerSession):
        return await session.refresh_chain()

    snapshot = _run(config, action)
    click.echo(f"Height: {snapshot.height}")
    click.echo(f"Difficulty: {snapshot.difficulty}")
    click.echo(f"Mining reward: {snapshot.mining_reward:g}")
    click.echo(f"Pending transactions: {len(snapshot.pending_transactions)}")
    latest = snapshot.latest_block
    if latest is not None:
        click.echo(f"Latest block: #{latest.index} {latest.hash}")


@chain.command("validate")
@click.pass_obj
def chain_validate(config: ClientConfig) -> None:
    """Ask the remote service to validate its chain."""
    async def action(session: LedgerSession) -> bool:
        return await session.validate_chain()

    if _run(config, action):
        click.echo("✓ Chain is valid")
    else:
        raise click.ClickException("Chain validation failed")


@cli.command()
@click.argument("name", required=False, type=click.Choice(VIEWS))
@click.pass_obj
def view(config: ClientConfig, name: Optional[str]) -> None:
    """Show or set the view restored on next start."""
    async def action(session: LedgerSession) -> str:
        if name:
            session.set_view(name)
        return session.view

    click.echo(_run(config, action))


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
