"""
Stela Indexer

Polls the Stela contract's events over StarkNet JSON-RPC, turns them into
domain events (enriched with contract reads and create_inscription calldata)
and delivers one authenticated webhook batch per block.

Usage:
    # Stream from the receiver's cursor
    stela-indexer run

    # Re-deliver a block range
    stela-indexer backfill --from 100 --to 200
"""

__version__ = "0.1.0"

from .stream import EventStream
from .transform import SELECTORS, DomainEvent, EventTransformer, RawEvent
from .webhook import WebhookDeliveryError, WebhookRejectedError, WebhookSender

__all__ = [
    "__version__",
    "EventStream",
    "SELECTORS",
    "DomainEvent",
    "EventTransformer",
    "RawEvent",
    "WebhookDeliveryError",
    "WebhookRejectedError",
    "WebhookSender",
]
