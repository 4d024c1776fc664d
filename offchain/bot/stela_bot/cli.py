"""
CLI entry point for the Stela settlement bot.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv

from stela_core.config import ConfigurationError
from stela_core.db import StelaStore
from stela_core.rpc import StarknetRPC, StarknetRPCConfig

from .account import StarknetAccount
from .bot import SettlementBot
from .config import Settings
from .submitter import TransactionSubmitter

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="stela-bot",
    help="Stela settlement bot: settles matched orders, liquidates expired loans",
    add_completion=False,
)


def _load_settings(config_path: Optional[Path], require_account: bool = True) -> Settings:
    load_dotenv(config_path)
    settings = Settings()
    if require_account:
        try:
            settings.validate_required()
        except ConfigurationError as e:
            typer.echo(f"Error: {e}", err=True)
            raise typer.Exit(1)
    return settings


def _build_bot(settings: Settings) -> SettlementBot:
    account = StarknetAccount(
        rpc_url=settings.rpc_url,
        address=settings.bot_address,
        private_key=settings.bot_private_key,
        chain_id=settings.chain_id,
    )
    rpc = StarknetRPC(
        StarknetRPCConfig(url=settings.rpc_url, timeout=settings.rpc_timeout_seconds)
    )
    return SettlementBot(
        settings=settings,
        store=StelaStore(settings.database_url),
        rpc=rpc,
        submitter=TransactionSubmitter(account, tx_timeout=settings.tx_timeout_seconds),
    )


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
    once: bool = typer.Option(
        False,
        "--once",
        help="Run a single pass and exit",
    ),
) -> None:
    """
    Run the settlement bot.
    """
    settings = _load_settings(config_path)
    bot = _build_bot(settings)

    if once:
        result = asyncio.run(bot.run_once())
        if result.skipped:
            typer.echo("Skipped: another run holds the lock")
        else:
            typer.echo(
                f"Settled {result.settled}, liquidated {result.liquidated}, "
                f"expired {result.orders_expired} orders / {result.inscriptions_expired} inscriptions"
            )
            if result.deferred:
                typer.echo(f"Deferred {result.deferred} to the next run")
        return

    typer.echo(f"Bot {settings.bot_address} on {settings.stela_address}")
    typer.echo("Running in continuous mode. Press Ctrl+C to stop.")
    try:
        asyncio.run(bot.run())
    except KeyboardInterrupt:
        typer.echo("\nStopping bot...")
        bot.stop()


@app.command()
def status(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Show lock, indexer cursor and order queue sizes.
    """
    settings = _load_settings(config_path, require_account=False)
    store = StelaStore(settings.database_url)

    held_since = store.get_lock()
    last_block = store.get_last_block()

    typer.echo(f"Lock: {'held since ' + str(held_since) if held_since is not None else 'free'}")
    typer.echo(f"Last indexed block: {last_block if last_block is not None else 'none'}")
    typer.echo(f"Pending orders: {store.count_orders('pending')}")
    typer.echo(f"Matched orders: {store.count_orders('matched')}")
    store.close()

    if settings.rpc_url:
        rpc = StarknetRPC(StarknetRPCConfig(url=settings.rpc_url, timeout=settings.rpc_timeout_seconds))

        async def _check() -> bool:
            try:
                return await rpc.check_connectivity()
            finally:
                await rpc.close()

        reachable = asyncio.run(_check())
        typer.echo(f"RPC: {'OK' if reachable else 'unreachable'}")


@app.command()
def version() -> None:
    """Show the bot version."""
    from stela_bot import __version__
    typer.echo(f"stela-bot v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
