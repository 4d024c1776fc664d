"""
Apply validated webhook events to the store.

Every write here is idempotent so a redelivered batch is harmless: assets and
events are insert-if-absent, status updates only move forward, and share
balances move only when their transfer event is new.
"""

import structlog

from stela_core.db import StelaStore

from .models import (
    CancelledEvent,
    CreatedEvent,
    LiquidatedEvent,
    RedeemedEvent,
    RepaidEvent,
    SignedEvent,
    TransferSingleEvent,
    WebhookEvent,
)

logger = structlog.get_logger()


def _log_event(store: StelaStore, event: WebhookEvent) -> bool:
    return store.insert_event(
        inscription_id=event.data.inscription_id,
        event_type=event.event_type,
        tx_hash=event.tx_hash,
        block_number=event.block_number,
        timestamp=event.timestamp,
        data=event.data.model_dump(mode="json", by_alias=True),
    )


def _on_created(store: StelaStore, event: CreatedEvent) -> None:
    data = event.data
    store.upsert_created(
        inscription_id=data.inscription_id,
        creator=data.creator,
        multi_lender=bool(data.multi_lender),
        duration=data.duration,
        deadline=data.deadline,
        debt_asset_count=data.debt_asset_count,
        interest_asset_count=data.interest_asset_count,
        collateral_asset_count=data.collateral_asset_count,
        block_number=event.block_number,
        timestamp=event.timestamp,
    )
    for role in ("debt", "interest", "collateral"):
        for index, asset in enumerate(getattr(data.assets, role)):
            store.insert_asset(
                inscription_id=data.inscription_id,
                asset_role=role,
                asset_index=index,
                asset_address=asset.asset_address,
                asset_type=asset.asset_type,
                value=asset.value,
                token_id=asset.token_id,
            )
    _log_event(store, event)


def _on_signed(store: StelaStore, event: SignedEvent) -> None:
    data = event.data
    store.apply_signed(
        inscription_id=data.inscription_id,
        borrower=data.borrower,
        lender=data.lender,
        issued_debt_percentage=data.issued_debt_percentage,
        status=data.status,
        timestamp=event.timestamp,
    )
    if data.locker_address:
        store.upsert_locker(data.inscription_id, data.locker_address, event.timestamp)
    _log_event(store, event)


def _on_status(store: StelaStore, event: WebhookEvent, status: str) -> None:
    store.update_inscription_status(event.data.inscription_id, status, event.timestamp)
    _log_event(store, event)


def _on_transfer(store: StelaStore, event: TransferSingleEvent) -> None:
    data = event.data
    store.record_share_transfer(
        inscription_id=data.inscription_id,
        from_address=data.from_address,
        to_address=data.to,
        value=int(data.value),
        tx_hash=event.tx_hash,
        block_number=event.block_number,
        timestamp=event.timestamp,
    )


def apply_event(store: StelaStore, event: WebhookEvent) -> None:
    """
    Apply one event. Store errors propagate to the caller, which decides
    whether the batch succeeded.
    """
    if isinstance(event, CreatedEvent):
        _on_created(store, event)
    elif isinstance(event, SignedEvent):
        _on_signed(store, event)
    elif isinstance(event, CancelledEvent):
        _on_status(store, event, "cancelled")
    elif isinstance(event, RepaidEvent):
        _on_status(store, event, "repaid")
    elif isinstance(event, LiquidatedEvent):
        _on_status(store, event, "liquidated")
    elif isinstance(event, RedeemedEvent):
        _log_event(store, event)
    elif isinstance(event, TransferSingleEvent):
        _on_transfer(store, event)
    else:
        raise TypeError(f"Unhandled event type: {type(event).__name__}")

    logger.debug(
        "event_applied",
        event_type=event.event_type,
        inscription_id=event.data.inscription_id,
        tx_hash=event.tx_hash,
    )
