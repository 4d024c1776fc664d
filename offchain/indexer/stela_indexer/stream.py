"""
Polling event stream over starknet_getEvents.

Each cycle reads events for the Stela contract from the next unprocessed
block up to the chain head, groups them per block in chain order, transforms
them, and delivers one webhook batch per block. On any failure the stream
backs off and resumes from the receiver's cursor (GET /health), so the
receiver stays the single source of truth for progress.
"""

import asyncio
from typing import Any, Optional

import structlog

from stela_core.felt import to_int

from .transform import SELECTORS, DomainEvent, EventTransformer, RawEvent
from .webhook import WebhookSender

logger = structlog.get_logger()

RECONNECT_INITIAL_SECONDS = 5.0
RECONNECT_MAX_SECONDS = 300.0


def backoff_delay(
    attempt: int,
    initial: float = RECONNECT_INITIAL_SECONDS,
    cap: float = RECONNECT_MAX_SECONDS,
) -> float:
    """Capped exponential delay for reconnect attempt `attempt` (0-based)."""
    return min(initial * (2**attempt), cap)


class EventStream:
    """
    Long-running consumer of Stela events.

    Reconnects forever with capped exponential backoff.
    """

    def __init__(
        self,
        rpc: Any,
        transformer: EventTransformer,
        sender: WebhookSender,
        stela_address: str,
        start_block: int = 0,
        poll_interval: float = 10.0,
        chunk_size: int = 100,
    ):
        self.rpc = rpc
        self.transformer = transformer
        self.sender = sender
        self.stela_address = stela_address
        self.start_block = start_block
        self.poll_interval = poll_interval
        self.chunk_size = chunk_size
        self._running = False
        self._sleep = asyncio.sleep

    async def resolve_start_block(self) -> int:
        """Receiver cursor + 1, or START_BLOCK if the receiver has none."""
        last_block = await self.sender.fetch_last_block()
        start = last_block + 1 if last_block is not None else self.start_block
        logger.info("stream_start_block", start_block=start, receiver_last_block=last_block)
        return start

    async def fetch_events(self, from_block: int, to_block: int) -> list[dict[str, Any]]:
        """All Stela events in [from_block, to_block], following continuation tokens."""
        events: list[dict[str, Any]] = []
        token: Optional[str] = None
        while True:
            page, token = await self.rpc.get_events(
                self.stela_address,
                list(SELECTORS.values()),
                from_block,
                to_block,
                chunk_size=self.chunk_size,
                continuation_token=token,
            )
            events.extend(page)
            if not token:
                return events

    async def _transaction_calldata(
        self, tx_hash: str, cache: dict[int, Optional[list[str]]]
    ) -> Optional[list[str]]:
        key = to_int(tx_hash)
        if key not in cache:
            try:
                cache[key] = await self.rpc.get_transaction_calldata(tx_hash)
            except Exception as e:
                # Event still goes out, without asset detail
                logger.warning("calldata_fetch_failed", tx_hash=tx_hash, error=str(e))
                cache[key] = None
        return cache[key]

    async def process_block(self, block_number: int, raw_events: list[RawEvent]) -> int:
        """
        Transform one block's events and deliver them as a single batch.

        Returns:
            Number of domain events delivered
        """
        timestamp = await self.rpc.get_block_timestamp(block_number)
        calldata_cache: dict[int, Optional[list[str]]] = {}

        domain_events: list[DomainEvent] = []
        for raw in raw_events:
            if raw.selector == SELECTORS["InscriptionCreated"]:
                raw.calldata = await self._transaction_calldata(raw.transaction_hash, calldata_cache)
            event = await self.transformer.transform(raw, block_number, timestamp)
            if event is not None:
                domain_events.append(event)

        if not domain_events:
            return 0

        logger.info("block_processing", block_number=block_number, events=len(domain_events))
        await self.sender.send_batch(block_number, [e.to_dict() for e in domain_events])
        return len(domain_events)

    async def poll_once(self, from_block: int, to_block: Optional[int] = None) -> int:
        """
        Process every block in [from_block, to_block or head].

        Returns:
            The next block to poll from
        """
        head = await self.rpc.get_block_number()
        end = head if to_block is None else min(to_block, head)
        if end < from_block:
            return from_block

        by_block: dict[int, list[RawEvent]] = {}
        for event in await self.fetch_events(from_block, end):
            raw = RawEvent.from_rpc(event)
            if raw.block_number is None:
                continue
            by_block.setdefault(raw.block_number, []).append(raw)

        for block_number in sorted(by_block):
            await self.process_block(block_number, by_block[block_number])

        logger.debug("stream_polled", from_block=from_block, to_block=end, blocks=len(by_block))
        return end + 1

    async def run(self) -> None:
        """Poll forever; every failure re-syncs from the receiver after a backoff."""
        self._running = True
        logger.info("stream_starting", stela_address=self.stela_address)

        next_block: Optional[int] = None
        attempt = 0
        while self._running:
            try:
                if next_block is None:
                    next_block = await self.resolve_start_block()
                next_block = await self.poll_once(next_block)
                attempt = 0
                await self._sleep(self.poll_interval)
            except Exception as e:
                delay = backoff_delay(attempt)
                logger.error(
                    "stream_cycle_failed",
                    error=str(e),
                    attempt=attempt + 1,
                    retry_in_seconds=delay,
                )
                attempt += 1
                next_block = None
                await self._sleep(delay)

    def stop(self) -> None:
        """Stop after the current cycle."""
        self._running = False
        logger.info("stream_stopping")
