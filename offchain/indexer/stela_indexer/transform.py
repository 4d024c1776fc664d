"""
Raw Stela contract events -> normalized domain events.

Dispatch is by keys[0] (the event selector). Field offsets:

    InscriptionCreated     keys  [sel, id_lo, id_hi, creator]
    InscriptionSigned      keys  [sel, id_lo, id_hi, borrower, lender]
                           data  [pct_lo, pct_hi, shares_lo, shares_hi]
    InscriptionCancelled   keys  [sel, id_lo, id_hi]        data [creator]
    InscriptionRepaid      keys  [sel, id_lo, id_hi]        data [repayer]
    InscriptionLiquidated  keys  [sel, id_lo, id_hi]        data [liquidator]
    SharesRedeemed         keys  [sel, id_lo, id_hi, redeemer]
                           data  [shares_lo, shares_hi]
    TransferSingle         keys  [sel, operator, from, to]
                           data  [id_lo, id_hi, value_lo, value_hi]

Created and Signed are enriched with contract reads. A failed read gives a
degraded event (zeros / None), never a dropped one.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

from stela_core.calldata import (
    CreateInscriptionAssets,
    extract_inner_calldata,
    parse_create_inscription_calldata,
)
from stela_core.constants import MAX_BPS
from stela_core.felt import (
    from_u256,
    get_selector_from_name,
    inscription_id_to_hex,
    is_zero,
    pad_address,
    to_int,
)
from stela_core.rpc import StarknetRPC, StarknetRPCError

logger = structlog.get_logger()

EVENT_NAMES = (
    "InscriptionCreated",
    "InscriptionSigned",
    "InscriptionCancelled",
    "InscriptionRepaid",
    "InscriptionLiquidated",
    "SharesRedeemed",
    "TransferSingle",
)

SELECTORS: dict[str, int] = {name: get_selector_from_name(name) for name in EVENT_NAMES}
SELECTOR_NAMES: dict[int, str] = {sel: name for name, sel in SELECTORS.items()}

CREATE_INSCRIPTION_SELECTOR = get_selector_from_name("create_inscription")

# get_inscription result layout
_INSCRIPTION_FIELDS = (
    "borrower",
    "lender",
    "duration",
    "deadline",
    "signed_at",
    "issued_debt_percentage_lo",
    "issued_debt_percentage_hi",
    "is_repaid",
    "liquidated",
    "multi_lender",
    "debt_asset_count",
    "interest_asset_count",
    "collateral_asset_count",
)


@dataclass
class RawEvent:
    """One event as returned by starknet_getEvents."""

    keys: list[str]
    data: list[str]
    transaction_hash: str
    block_number: Optional[int] = None
    calldata: Optional[list[str]] = None

    @classmethod
    def from_rpc(cls, event: dict[str, Any]) -> "RawEvent":
        return cls(
            keys=list(event.get("keys", [])),
            data=list(event.get("data", [])),
            transaction_hash=event.get("transaction_hash", ""),
            block_number=event.get("block_number"),
        )

    @property
    def selector(self) -> Optional[int]:
        try:
            return to_int(self.keys[0]) if self.keys else None
        except ValueError:
            return None


@dataclass
class DomainEvent:
    """Normalized event, as delivered in webhook batches."""

    event_type: str
    tx_hash: str
    block_number: int
    timestamp: int
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type,
            "tx_hash": self.tx_hash,
            "block_number": self.block_number,
            "timestamp": self.timestamp,
            "data": self.data,
        }


def parse_inscription_id(keys: list[str]) -> str:
    """Inscription id from keys[1] (low) and keys[2] (high)."""
    return inscription_id_to_hex(keys[1], keys[2])


class EventTransformer:
    """
    Maps raw Stela events to domain events.

    Contract reads go through `rpc` and are bounded by `read_timeout`.
    """

    def __init__(self, rpc: StarknetRPC, stela_address: str, read_timeout: float = 10.0):
        self.rpc = rpc
        self.stela_address = pad_address(stela_address)
        self.read_timeout = read_timeout
        self._handlers = {
            "InscriptionCreated": self._on_created,
            "InscriptionSigned": self._on_signed,
            "InscriptionCancelled": self._on_cancelled,
            "InscriptionRepaid": self._on_repaid,
            "InscriptionLiquidated": self._on_liquidated,
            "SharesRedeemed": self._on_redeemed,
            "TransferSingle": self._on_transfer_single,
        }

    async def transform(
        self, event: RawEvent, block_number: int, timestamp: int
    ) -> Optional[DomainEvent]:
        """
        Transform one raw event.

        Returns:
            The domain event, or None for unknown selectors and malformed events
        """
        selector = event.selector
        name = SELECTOR_NAMES.get(selector) if selector is not None else None
        if name is None:
            logger.warning(
                "unknown_event_selector",
                selector=event.keys[0] if event.keys else None,
                tx_hash=event.transaction_hash,
            )
            return None

        try:
            event_type, payload = await self._handlers[name](event)
        except (IndexError, ValueError) as e:
            logger.error(
                "event_transform_failed",
                event_name=name,
                tx_hash=event.transaction_hash,
                error=str(e),
            )
            return None

        return DomainEvent(
            event_type=event_type,
            tx_hash=event.transaction_hash,
            block_number=block_number,
            timestamp=timestamp,
            data=payload,
        )

    # ------------------------------------------------------------------
    # Contract reads
    # ------------------------------------------------------------------

    async def _read(self, entrypoint: str, calldata: list[int]) -> Optional[list[int]]:
        try:
            return await asyncio.wait_for(
                self.rpc.call(self.stela_address, entrypoint, calldata),
                timeout=self.read_timeout,
            )
        except (StarknetRPCError, httpx.HTTPError, asyncio.TimeoutError, ValueError) as e:
            # ValueError covers non-JSON bodies and malformed felts in the result
            logger.warning("enrichment_read_failed", entrypoint=entrypoint, error=str(e) or type(e).__name__)
            return None

    async def fetch_inscription(self, id_lo: int, id_hi: int) -> Optional[dict[str, int]]:
        """Current on-chain terms of an inscription, or None if unreadable."""
        result = await self._read("get_inscription", [id_lo, id_hi])
        if result is None:
            return None
        if len(result) < len(_INSCRIPTION_FIELDS):
            logger.warning("enrichment_read_short", entrypoint="get_inscription", length=len(result))
            return None
        return dict(zip(_INSCRIPTION_FIELDS, result))

    async def fetch_locker(self, id_lo: int, id_hi: int) -> Optional[str]:
        """Locker address of an inscription; None when unset or unreadable."""
        result = await self._read("get_locker", [id_lo, id_hi])
        if not result or is_zero(result[0]):
            return None
        return pad_address(result[0])

    # ------------------------------------------------------------------
    # Per-event handlers
    # ------------------------------------------------------------------

    async def _on_created(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        id_lo, id_hi = to_int(event.keys[1]), to_int(event.keys[2])
        inscription_id = inscription_id_to_hex(id_lo, id_hi)
        creator = pad_address(event.keys[3])

        on_chain = await self.fetch_inscription(id_lo, id_hi) or {}

        assets: Optional[CreateInscriptionAssets] = None
        if event.calldata:
            inner = extract_inner_calldata(event.calldata, CREATE_INSCRIPTION_SELECTOR)
            if inner is not None:
                assets = parse_create_inscription_calldata(inner)
        if assets is None:
            assets = CreateInscriptionAssets(debt=[], interest=[], collateral=[])

        return "created", {
            "inscription_id": inscription_id,
            "creator": creator,
            "status": "open",
            "multi_lender": 1 if on_chain.get("multi_lender") else 0,
            "duration": on_chain.get("duration", 0),
            "deadline": on_chain.get("deadline", 0),
            "debt_asset_count": on_chain.get("debt_asset_count", 0),
            "interest_asset_count": on_chain.get("interest_asset_count", 0),
            "collateral_asset_count": on_chain.get("collateral_asset_count", 0),
            "assets": assets.to_dict(),
        }

    async def _on_signed(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        id_lo, id_hi = to_int(event.keys[1]), to_int(event.keys[2])
        issued = from_u256(event.data[0], event.data[1])
        shares = from_u256(event.data[2], event.data[3])

        locker = await self.fetch_locker(id_lo, id_hi)

        return "signed", {
            "inscription_id": inscription_id_to_hex(id_lo, id_hi),
            "borrower": pad_address(event.keys[3]),
            "lender": pad_address(event.keys[4]),
            "issued_debt_percentage": issued,
            "shares": str(shares),
            "status": "filled" if issued >= MAX_BPS else "partial",
            "locker_address": locker,
        }

    async def _on_cancelled(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        return "cancelled", {
            "inscription_id": parse_inscription_id(event.keys),
            "creator": pad_address(event.data[0]),
        }

    async def _on_repaid(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        return "repaid", {
            "inscription_id": parse_inscription_id(event.keys),
            "repayer": pad_address(event.data[0]),
        }

    async def _on_liquidated(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        return "liquidated", {
            "inscription_id": parse_inscription_id(event.keys),
            "liquidator": pad_address(event.data[0]),
        }

    async def _on_redeemed(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        return "redeemed", {
            "inscription_id": parse_inscription_id(event.keys),
            "redeemer": pad_address(event.keys[3]),
            "shares": str(from_u256(event.data[0], event.data[1])),
        }

    async def _on_transfer_single(self, event: RawEvent) -> tuple[str, dict[str, Any]]:
        return "transfer_single", {
            "inscription_id": inscription_id_to_hex(event.data[0], event.data[1]),
            "from": pad_address(event.keys[2]),
            "to": pad_address(event.keys[3]),
            "value": str(from_u256(event.data[2], event.data[3])),
        }
