"""
Stela API - webhook receiver and order book for the Stela indexer and bot.

Provides REST endpoints for:
- Receiving indexer batches (POST /webhook/events)
- Health checks and cursor (GET /health)
- Inscription reads (GET /inscriptions, /inscriptions/{id}, ...)
- Share balances (GET /shares/{address})
- Off-chain orders and offers (GET/POST/DELETE /orders, POST /orders/{id}/offer)
"""

import time
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Optional

import structlog
import uvicorn
from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from stela_core.config import ConfigurationError
from stela_core.db import OrderNotPendingError, StelaStore
from stela_core.felt import normalize_inscription_id, pad_address
from stela_core.orders import (
    cancel_message_hash,
    normalize_order_data,
    offer_message_hash,
    order_message_hash,
    resolve_order_hash,
)
from stela_core.rpc import StarknetRPC
from stela_core.signature import normalize_signature

from . import __version__
from .auth import verify_webhook_token
from .config import Settings, get_settings
from .deps import get_rpc, get_store
from .handlers import apply_event
from .models import (
    CancelOrderRequest,
    CreateOfferRequest,
    CreateOrderRequest,
    HealthResponse,
    WebhookPayload,
)
from .verify import verify_nonce, verify_signature

# Configure logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    settings = get_settings()

    if not settings.webhook_secret:
        logger.warning("webhook_secret_missing", detail="POST /webhook/events will answer 503")

    logger.info(
        "api_started",
        version=__version__,
        host=settings.host,
        port=settings.port,
        rpc_url=settings.rpc_url,
        verify_signatures=settings.verify_signatures,
    )

    yield

    logger.info("api_stopped")


# Create FastAPI app
app = FastAPI(
    title="Stela API",
    description="Webhook receiver and order book for Stela",
    version=__version__,
    lifespan=lifespan,
)


# Add CORS middleware
_settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=_settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _now() -> int:
    return int(time.time())


# ============================================================================
# Health Check
# ============================================================================


@app.get("/health", response_model=HealthResponse)
async def health_check(store: StelaStore = Depends(get_store)) -> HealthResponse:
    """
    Liveness plus the ingestion cursor.

    The indexer resumes from last_block + 1.
    """
    return HealthResponse(ok=True, last_block=store.get_last_block(), version=__version__)


# ============================================================================
# Webhook
# ============================================================================


@app.post("/webhook/events")
async def webhook_events(
    request: Request,
    _: bool = Depends(verify_webhook_token),
    store: StelaStore = Depends(get_store),
) -> Any:
    """
    Apply one block's events.

    - block_number <= cursor: already processed, 200 {ok, skipped}
    - every event applied: cursor advances, 200 {ok, processed}
    - any event failed: cursor stays, 500 {ok: false, processed, failed}
    """
    try:
        body = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"ok": False, "error": "Invalid JSON"})

    try:
        payload = WebhookPayload.model_validate(body)
    except ValidationError as e:
        return JSONResponse(
            status_code=400,
            content={
                "ok": False,
                "error": "Malformed batch",
                "details": [
                    {"loc": [str(p) for p in err["loc"]], "msg": err["msg"]} for err in e.errors()
                ],
            },
        )

    last_block = store.get_last_block()
    if last_block is not None and payload.block_number <= last_block:
        logger.info("batch_skipped", block_number=payload.block_number, last_block=last_block)
        return {"ok": True, "skipped": True}

    processed = 0
    failed = 0
    for event in payload.events:
        try:
            apply_event(store, event)
            processed += 1
        except Exception as e:
            failed += 1
            logger.error(
                "event_apply_failed",
                block_number=payload.block_number,
                event_type=event.event_type,
                tx_hash=event.tx_hash,
                error=str(e),
            )

    if failed:
        logger.warning(
            "batch_partially_failed",
            block_number=payload.block_number,
            processed=processed,
            failed=failed,
        )
        return JSONResponse(
            status_code=500,
            content={"ok": False, "processed": processed, "failed": failed},
        )

    store.advance_last_block(payload.block_number)
    logger.info("batch_applied", block_number=payload.block_number, processed=processed)
    return {"ok": True, "processed": processed}


# ============================================================================
# Inscriptions
# ============================================================================


def _inscription_id(value: str) -> str:
    try:
        return normalize_inscription_id(value)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid inscription id")


@app.get("/inscriptions")
async def list_inscriptions(
    status: Optional[str] = Query(None),
    address: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: StelaStore = Depends(get_store),
) -> dict[str, Any]:
    """List inscriptions, optionally by status and participant address."""
    try:
        rows = store.list_inscriptions(status=status, address=address, page=page, limit=limit)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid address")
    return {"data": rows, "meta": {"page": page, "limit": limit, "total": len(rows)}}


@app.get("/inscriptions/{inscription_id}")
async def get_inscription(
    inscription_id: str, store: StelaStore = Depends(get_store)
) -> dict[str, Any]:
    inscription_id = _inscription_id(inscription_id)
    inscription = store.get_inscription(inscription_id)
    if inscription is None:
        raise HTTPException(status_code=404, detail="Inscription not found")
    return {"data": {**inscription, "assets": store.get_assets(inscription_id)}}


@app.get("/inscriptions/{inscription_id}/events")
async def get_inscription_events(
    inscription_id: str, store: StelaStore = Depends(get_store)
) -> dict[str, Any]:
    return {"data": store.get_events(_inscription_id(inscription_id))}


@app.get("/inscriptions/{inscription_id}/locker")
async def get_inscription_locker(
    inscription_id: str, store: StelaStore = Depends(get_store)
) -> dict[str, Any]:
    locker = store.get_locker(_inscription_id(inscription_id))
    if locker is None:
        raise HTTPException(status_code=404, detail="Locker not found")
    return {"data": locker}


@app.get("/shares/{address}")
async def get_shares(address: str, store: StelaStore = Depends(get_store)) -> dict[str, Any]:
    """Share balances of an account across inscriptions."""
    try:
        balances = store.get_share_balances(address)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid address")
    return {"data": balances}


# ============================================================================
# Orders
# ============================================================================


async def _require_signature(
    rpc: StarknetRPC, signer: str, message_hash: int, signature: list[str]
) -> None:
    if not await verify_signature(rpc, signer, message_hash, signature):
        raise HTTPException(status_code=401, detail="Invalid signature")


async def _require_nonce(
    rpc: StarknetRPC, settings: Settings, address: str, nonce: str
) -> None:
    check = await verify_nonce(rpc, settings.stela_address, address, nonce)
    if not check.valid:
        raise HTTPException(
            status_code=409,
            detail=f"Nonce mismatch: submitted {check.submitted}, on-chain {check.on_chain}",
        )


@app.get("/orders")
async def list_orders(
    status: Optional[str] = Query("pending"),
    address: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    store: StelaStore = Depends(get_store),
) -> dict[str, Any]:
    """List orders; pending by default."""
    try:
        orders = store.list_orders(status=status, address=address, page=page, limit=limit)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid address")
    data = [order.to_dict() for order in orders]
    return {"data": data, "meta": {"page": page, "limit": limit, "total": len(data)}}


@app.get("/orders/{order_id}")
async def get_order(order_id: str, store: StelaStore = Depends(get_store)) -> dict[str, Any]:
    order = store.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    offers = [offer.to_dict() for offer in store.get_offers(order_id)]
    return {"data": {**order.to_dict(), "offers": offers}}


@app.post("/orders")
async def create_order(
    request: CreateOrderRequest,
    settings: Settings = Depends(get_settings),
    store: StelaStore = Depends(get_store),
    rpc: StarknetRPC = Depends(get_rpc),
) -> dict[str, Any]:
    """
    Store a borrower-signed InscriptionOrder.

    The SNIP-12 hash is computed server-side and stored as order_hash; the
    signature and nonce are checked against the chain when VERIFY_SIGNATURES
    is on.
    """
    if request.deadline <= _now():
        raise HTTPException(status_code=400, detail="Deadline must be in the future")

    try:
        order_data = normalize_order_data(request.order_data)
        signature = normalize_signature(request.borrower_signature)
        order_data.pop("order_hash", None)
        if order_data["borrower"] and pad_address(order_data["borrower"]) != request.borrower:
            raise ValueError("order_data.borrower does not match borrower")
        order_data["borrower"] = request.borrower
        message_hash = order_message_hash(
            order_data, request.nonce, request.borrower, settings.chain_id
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    order_data["order_hash"] = hex(message_hash)

    if settings.verify_signatures:
        await _require_signature(rpc, request.borrower, message_hash, signature)
        await _require_nonce(rpc, settings, request.borrower, request.nonce)

    order_id = request.id or str(uuid.uuid4())
    try:
        store.create_order(
            order_id=order_id,
            borrower=request.borrower,
            order_data=order_data,
            borrower_signature=signature,
            nonce=request.nonce,
            deadline=request.deadline,
        )
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Order already exists")

    return {"ok": True, "id": order_id, "order_hash": order_data["order_hash"]}


@app.delete("/orders/{order_id}")
async def cancel_order(
    order_id: str,
    request: Optional[CancelOrderRequest] = Body(None),
    settings: Settings = Depends(get_settings),
    store: StelaStore = Depends(get_store),
    rpc: StarknetRPC = Depends(get_rpc),
) -> dict[str, Any]:
    """Cancel a pending order; only its borrower may do so."""
    order = store.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.status != "pending":
        raise HTTPException(status_code=400, detail="Order is not pending")

    request = request or CancelOrderRequest()
    try:
        caller = pad_address(request.borrower)
    except ValueError:
        caller = None
    if caller != order.borrower:
        raise HTTPException(status_code=403, detail="Not authorized to cancel this order")

    if settings.verify_signatures and request.signature is not None:
        try:
            signature = normalize_signature(request.signature)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        message_hash = cancel_message_hash(order_id, order.borrower, settings.chain_id)
        await _require_signature(rpc, order.borrower, message_hash, signature)

    if not store.update_order_status(order_id, "cancelled", from_status="pending"):
        raise HTTPException(status_code=400, detail="Order is not pending")

    return {"ok": True}


@app.post("/orders/{order_id}/offer")
async def create_offer(
    order_id: str,
    request: CreateOfferRequest,
    settings: Settings = Depends(get_settings),
    store: StelaStore = Depends(get_store),
    rpc: StarknetRPC = Depends(get_rpc),
) -> dict[str, Any]:
    """
    Accept a lender-signed LendOffer and move the order to matched.
    """
    order = store.get_order(order_id)
    if order is None:
        raise HTTPException(status_code=404, detail="Order not found")
    if order.status != "pending":
        raise HTTPException(status_code=400, detail="Order is not pending")
    if order.deadline <= _now():
        raise HTTPException(status_code=400, detail="Order deadline has passed")

    try:
        signature = normalize_signature(request.lender_signature)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if settings.verify_signatures:
        order_hash = resolve_order_hash(
            order.order_data, order.nonce, order.borrower, settings.chain_id
        )
        message_hash = offer_message_hash(
            order_hash, request.lender, request.bps, request.nonce, settings.chain_id
        )
        await _require_signature(rpc, request.lender, message_hash, signature)
        await _require_nonce(rpc, settings, request.lender, request.nonce)

    offer_id = request.id or str(uuid.uuid4())
    try:
        store.create_offer(
            offer_id=offer_id,
            order_id=order_id,
            lender=request.lender,
            bps=request.bps,
            lender_signature=signature,
            nonce=request.nonce,
        )
    except OrderNotPendingError:
        raise HTTPException(status_code=400, detail="Order is not pending")
    except IntegrityError:
        raise HTTPException(status_code=409, detail="Offer already exists")

    return {"ok": True, "id": offer_id}


# ============================================================================
# Entry Point
# ============================================================================


def run() -> None:
    """Run the API server."""
    settings = get_settings()
    try:
        settings.validate_required()
    except ConfigurationError as e:
        logger.error("configuration_invalid", missing=e.missing)
        raise SystemExit(1)

    uvicorn.run(
        "stela_api.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    run()
