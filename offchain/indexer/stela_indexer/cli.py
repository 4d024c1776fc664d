"""
CLI entry point for the Stela indexer.
"""

import asyncio
from pathlib import Path
from typing import Optional

import structlog
import typer
from dotenv import load_dotenv

from stela_core.config import ConfigurationError
from stela_core.rpc import StarknetRPC, StarknetRPCConfig

from .config import Settings
from .stream import EventStream
from .transform import EventTransformer
from .webhook import WebhookSender

# Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ]
)

app = typer.Typer(
    name="stela-indexer",
    help="Stela event indexer: StarkNet events -> webhook receiver",
    add_completion=False,
)


def _load_settings(config_path: Optional[Path]) -> Settings:
    load_dotenv(config_path)
    settings = Settings()
    try:
        settings.validate_required()
    except ConfigurationError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    return settings


def _build_stream(settings: Settings, start_block: Optional[int] = None) -> EventStream:
    rpc = StarknetRPC(
        StarknetRPCConfig(url=settings.rpc_url, timeout=settings.rpc_timeout_seconds)
    )
    transformer = EventTransformer(
        rpc, settings.stela_address, read_timeout=settings.rpc_timeout_seconds
    )
    sender = WebhookSender(settings.webhook_url, settings.webhook_secret)
    return EventStream(
        rpc=rpc,
        transformer=transformer,
        sender=sender,
        stela_address=settings.stela_address,
        start_block=start_block if start_block is not None else settings.start_block,
        poll_interval=settings.poll_interval_seconds,
        chunk_size=settings.events_chunk_size,
    )


@app.command()
def run(
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
    start_block: Optional[int] = typer.Option(
        None,
        "--start-block",
        help="Block to start from when the receiver has no cursor (overrides START_BLOCK)",
    ),
) -> None:
    """
    Stream Stela events to the webhook receiver until interrupted.
    """
    settings = _load_settings(config_path)
    stream = _build_stream(settings, start_block)

    typer.echo(f"Indexing {settings.stela_address} -> {settings.webhook_url}")
    typer.echo("Running in continuous mode. Press Ctrl+C to stop.")

    async def _run() -> None:
        try:
            await stream.run()
        finally:
            await stream.sender.close()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        typer.echo("\nStopping indexer...")
        stream.stop()


@app.command()
def backfill(
    from_block: int = typer.Option(..., "--from", help="First block (inclusive)"),
    to_block: int = typer.Option(..., "--to", help="Last block (inclusive)"),
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to .env configuration file",
    ),
) -> None:
    """
    Re-deliver a fixed block range once and exit.

    Blocks at or below the receiver cursor are acknowledged as already seen.
    """
    if to_block < from_block:
        typer.echo("Error: --to must be >= --from", err=True)
        raise typer.Exit(1)

    settings = _load_settings(config_path)
    stream = _build_stream(settings)

    async def _backfill() -> int:
        try:
            return await stream.poll_once(from_block, to_block)
        finally:
            await stream.sender.close()

    next_block = asyncio.run(_backfill())
    typer.echo(f"Backfilled blocks {from_block}..{next_block - 1}")


@app.command()
def version() -> None:
    """Show the indexer version."""
    from stela_indexer import __version__
    typer.echo(f"stela-indexer v{__version__}")


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
