"""
Webhook sender: delivers per-block event batches to the receiver.

Retry policy:
- 2xx: delivered
- 4xx other than 429: permanently rejected, raised immediately
- 429, 5xx, network errors: retried with exponential backoff, then
  WebhookDeliveryError
"""

from typing import Any, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = structlog.get_logger()

MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0


class WebhookError(Exception):
    """Base class for webhook delivery errors."""


class WebhookRejectedError(WebhookError):
    """Receiver refused the batch; retrying will not help."""

    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        self.body = body
        super().__init__(f"Webhook rejected: {status_code} {body}")


class WebhookDeliveryError(WebhookError):
    """Batch could not be delivered within the retry budget."""


class _TransientStatus(WebhookError):
    def __init__(self, status_code: int, body: str):
        self.status_code = status_code
        super().__init__(f"Webhook POST failed ({status_code}): {body}")


def is_permanent_rejection(status_code: int) -> bool:
    return 400 <= status_code < 500 and status_code != 429


class WebhookSender:
    """
    Posts `{block_number, events, cursor}` batches with a bearer token.
    """

    def __init__(
        self,
        url: str,
        secret: str,
        client: Optional[httpx.AsyncClient] = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SECONDS,
        timeout: float = 30.0,
    ):
        self.base_url = url.rstrip("/")
        self._secret = secret
        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.max_retries = max_retries
        self.initial_backoff = initial_backoff

    @property
    def events_url(self) -> str:
        return f"{self.base_url}/webhook/events"

    async def close(self) -> None:
        await self.client.aclose()

    async def _post(self, payload: dict[str, Any]) -> None:
        response = await self.client.post(
            self.events_url,
            json=payload,
            headers={"Authorization": f"Bearer {self._secret}"},
        )
        if response.is_success:
            return

        body = response.text
        logger.warning(
            "webhook_post_failed",
            status_code=response.status_code,
            block_number=payload["block_number"],
        )
        if is_permanent_rejection(response.status_code):
            raise WebhookRejectedError(response.status_code, body)
        raise _TransientStatus(response.status_code, body)

    async def send_batch(self, block_number: int, events: list[dict[str, Any]]) -> None:
        """
        Deliver one block's events.

        Raises:
            WebhookRejectedError: on a permanent 4xx
            WebhookDeliveryError: when retries are exhausted
        """
        payload = {
            "block_number": block_number,
            "events": events,
            "cursor": str(block_number),
        }

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_exponential(multiplier=self.initial_backoff),
            retry=retry_if_not_exception_type(WebhookRejectedError),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    await self._post(payload)
        except (httpx.HTTPError, _TransientStatus) as e:
            raise WebhookDeliveryError(
                f"Delivery of block {block_number} failed after {self.max_retries} attempts: {e}"
            ) from e

        logger.info("batch_delivered", block_number=block_number, events=len(events))

    async def fetch_last_block(self) -> Optional[int]:
        """
        Receiver cursor from GET /health.

        Returns:
            last_block, or None if the receiver has none or is unreachable
        """
        try:
            response = await self.client.get(f"{self.base_url}/health")
        except httpx.HTTPError as e:
            logger.warning("health_fetch_failed", error=str(e))
            return None

        if not response.is_success:
            logger.warning("health_fetch_failed", status_code=response.status_code)
            return None

        last_block = response.json().get("last_block")
        return int(last_block) if last_block is not None else None
