"""
Settlement bot main loop.

Each run, under the store-backed lock:
1. Expire pending orders and open inscriptions past their deadline
2. Re-check nonces of matched order/offer pairs and submit settle
3. Submit liquidate for filled inscriptions past signed_at + duration
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Optional

import httpx
import structlog

from stela_core.db import MatchedPair, OfferRecord, OrderRecord, StelaStore
from stela_core.felt import to_int
from stela_core.rpc import StarknetRPC, StarknetRPCError

from .config import Settings
from .settle import build_liquidate_calldata, build_settle_calldata
from .submitter import TransactionSubmitter

logger = structlog.get_logger()


@dataclass
class BotRunResult:
    """Counters for one bot run."""

    skipped: bool = False
    orders_expired: int = 0
    inscriptions_expired: int = 0
    settled: int = 0
    settle_failed: int = 0
    stale_orders: int = 0
    stale_offers: int = 0
    in_flight: int = 0
    deferred: int = 0
    liquidated: int = 0
    liquidate_failed: int = 0


class SettlementBot:
    """Settles matched orders and liquidates expired inscriptions."""

    def __init__(
        self,
        settings: Settings,
        store: StelaStore,
        rpc: StarknetRPC,
        submitter: TransactionSubmitter,
    ):
        self.settings = settings
        self.store = store
        self.rpc = rpc
        self.submitter = submitter
        self._running = False
        self._sleep = asyncio.sleep
        self._clock = time.monotonic

    async def run_once(self, now: Optional[int] = None) -> BotRunResult:
        """Run one pass; skipped if another run holds the lock."""
        now = now if now is not None else int(time.time())

        stamp = self.store.try_acquire_lock(now, self.settings.lock_ttl_seconds)
        if stamp is None:
            logger.info("run_skipped", reason="lock_held")
            return BotRunResult(skipped=True)

        result = BotRunResult()
        # stop starting submissions while there is still time to finish them
        # before the lock can be taken over
        deadline = self._clock() + self.settings.run_budget_seconds
        try:
            result.orders_expired = self.store.expire_orders(now)
            result.inscriptions_expired = self.store.expire_open_inscriptions(now)
            if result.orders_expired or result.inscriptions_expired:
                logger.info(
                    "expired_stale",
                    orders=result.orders_expired,
                    inscriptions=result.inscriptions_expired,
                )

            await self.settle_matched(now, result, deadline)
            await self.liquidate_expired(now, result, deadline)
        finally:
            self.store.release_lock(stamp)

        logger.info("run_complete", **asdict(result))
        return result

    # ========================================================================
    # Settlement
    # ========================================================================

    async def _read_nonce(self, address: str) -> int:
        return await asyncio.wait_for(
            self.rpc.get_contract_nonce(self.settings.stela_address, address),
            timeout=self.settings.rpc_timeout_seconds,
        )

    def _out_of_time(self, deadline: Optional[float], remaining: int, result: BotRunResult) -> bool:
        if deadline is None or self._clock() < deadline:
            return False
        result.deferred += remaining
        logger.warning("run_budget_exhausted", deferred=remaining)
        return True

    async def settle_matched(
        self, now: int, result: BotRunResult, deadline: Optional[float] = None
    ) -> None:
        pairs = self.store.get_matched_orders(now, limit=self.settings.settlement_batch_size)
        if pairs:
            logger.info("matched_orders_found", count=len(pairs))

        for i, pair in enumerate(pairs):
            if self._out_of_time(deadline, len(pairs) - i, result):
                return
            outcome = await self.settle_pair(pair, now)
            if outcome == "settled":
                result.settled += 1
            elif outcome == "stale_order":
                result.stale_orders += 1
            elif outcome == "stale_offer":
                result.stale_offers += 1
            elif outcome == "in_flight":
                result.in_flight += 1
            else:
                result.settle_failed += 1

    async def settle_pair(self, pair: MatchedPair, now: int) -> str:
        """
        Settle one matched pair.

        Returns one of: settled, stale_order, stale_offer, in_flight,
        nonce_unavailable, invalid, failed. Only the first three change the
        order or offer status.
        """
        order, offer = pair.order, pair.offer

        # a run that took over a stale lock may find the previous run's settle
        # still awaiting confirmation
        claim_window = self.settings.lock_ttl_seconds + int(self.settings.tx_timeout_seconds)
        if not self.store.claim_settlement(order.id, now, claim_window):
            logger.info("settlement_in_flight", order_id=order.id)
            return "in_flight"

        outcome = await self._settle_claimed(order, offer)
        if outcome != "settled":
            self.store.release_settlement_claim(order.id)
        return outcome

    async def _settle_claimed(self, order: OrderRecord, offer: OfferRecord) -> str:
        try:
            borrower_nonce = await self._read_nonce(order.borrower)
            lender_nonce = await self._read_nonce(offer.lender)
        except (StarknetRPCError, httpx.HTTPError, asyncio.TimeoutError) as e:
            logger.warning("nonce_read_failed", order_id=order.id, error=str(e))
            return "nonce_unavailable"

        if borrower_nonce != to_int(order.nonce):
            logger.info(
                "order_nonce_stale",
                order_id=order.id,
                stored=order.nonce,
                on_chain=borrower_nonce,
            )
            self.store.update_order_status(order.id, "expired", from_status="matched")
            return "stale_order"

        if lender_nonce != to_int(offer.nonce):
            logger.info(
                "offer_nonce_stale",
                offer_id=offer.id,
                stored=offer.nonce,
                on_chain=lender_nonce,
            )
            self.store.update_offer_status(offer.id, "expired")
            self.store.update_order_status(order.id, "pending", from_status="matched")
            return "stale_offer"

        try:
            calldata = build_settle_calldata(order, offer, self.settings.chain_id)
        except ValueError as e:
            logger.error("settle_calldata_invalid", order_id=order.id, error=str(e))
            return "invalid"

        submitted = await self.submitter.execute(self.settings.stela_address, "settle", calldata)
        if not submitted.success:
            logger.error("settle_failed", order_id=order.id, offer_id=offer.id, error=submitted.error)
            return "failed"

        self.store.update_order_status(order.id, "settled", from_status="matched")
        self.store.update_offer_status(offer.id, "settled")
        logger.info("order_settled", order_id=order.id, offer_id=offer.id, tx_hash=submitted.tx_hash)
        return "settled"

    # ========================================================================
    # Liquidation
    # ========================================================================

    async def liquidate_expired(
        self, now: int, result: BotRunResult, deadline: Optional[float] = None
    ) -> None:
        candidates = self.store.find_liquidatable(now, limit=self.settings.liquidation_batch_size)
        if candidates:
            logger.info("liquidation_candidates_found", count=len(candidates))

        for i, inscription in enumerate(candidates):
            if self._out_of_time(deadline, len(candidates) - i, result):
                return
            inscription_id = inscription["id"]
            try:
                calldata = build_liquidate_calldata(inscription_id)
            except ValueError as e:
                logger.error("liquidate_calldata_invalid", inscription_id=inscription_id, error=str(e))
                result.liquidate_failed += 1
                continue

            submitted = await self.submitter.execute(
                self.settings.stela_address, "liquidate", calldata
            )
            if submitted.success:
                result.liquidated += 1
                logger.info("inscription_liquidated", inscription_id=inscription_id, tx_hash=submitted.tx_hash)
            else:
                result.liquidate_failed += 1
                logger.error("liquidate_failed", inscription_id=inscription_id, error=submitted.error)

    # ========================================================================
    # Loop
    # ========================================================================

    async def run(self) -> None:
        """Run until stopped."""
        self._running = True
        logger.info(
            "bot_starting",
            stela_address=self.settings.stela_address,
            poll_interval=self.settings.poll_interval_seconds,
        )

        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error("run_error", error=str(e))

            await self._sleep(self.settings.poll_interval_seconds)

    def stop(self) -> None:
        self._running = False
        logger.info("bot_stopping")
