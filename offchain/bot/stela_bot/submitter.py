"""
Transaction submission with bounded confirmation waits.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import structlog

logger = structlog.get_logger()


@dataclass
class SubmitResult:
    """Result of submitting a transaction."""

    success: bool
    tx_hash: Optional[str] = None
    error: Optional[str] = None


class TransactionSubmitter:
    """
    Sends one call per transaction and waits for it to be accepted.

    `account` provides:
        async invoke(contract_address, entrypoint, calldata) -> tx hash
        async wait_for_tx(tx_hash) -> None, raising if the tx reverted
    """

    def __init__(self, account: Any, tx_timeout: float = 120.0):
        self.account = account
        self.tx_timeout = tx_timeout

    async def execute(
        self, contract_address: str, entrypoint: str, calldata: Sequence[int]
    ) -> SubmitResult:
        """Submit and confirm; never raises."""
        try:
            tx_hash = await self.account.invoke(contract_address, entrypoint, list(calldata))
        except Exception as e:
            logger.error("tx_submit_failed", entrypoint=entrypoint, error=str(e))
            return SubmitResult(success=False, error=str(e))

        logger.info("tx_sent", entrypoint=entrypoint, tx_hash=tx_hash)

        try:
            await asyncio.wait_for(self.account.wait_for_tx(tx_hash), timeout=self.tx_timeout)
        except asyncio.TimeoutError:
            logger.error("tx_confirmation_timeout", tx_hash=tx_hash, timeout=self.tx_timeout)
            return SubmitResult(
                success=False,
                tx_hash=tx_hash,
                error=f"Confirmation timed out after {self.tx_timeout}s",
            )
        except Exception as e:
            logger.error("tx_failed", tx_hash=tx_hash, error=str(e))
            return SubmitResult(success=False, tx_hash=tx_hash, error=str(e))

        logger.info("tx_confirmed", entrypoint=entrypoint, tx_hash=tx_hash)
        return SubmitResult(success=True, tx_hash=tx_hash)
