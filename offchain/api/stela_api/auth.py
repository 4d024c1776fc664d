"""
Bearer-token authentication for the webhook endpoint.

Security model:
- WEBHOOK_SECRET unset: the webhook endpoint answers 503 (never open)
- Token via `Authorization: Bearer <secret>` header only
- Comparison is over SHA-256 digests with hmac.compare_digest, so timing
  depends on neither the token content nor its length
"""

import hashlib
import hmac
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .config import Settings, get_settings

bearer_scheme = HTTPBearer(auto_error=False)


def tokens_match(presented: str, expected: str) -> bool:
    """Constant-time token comparison."""
    presented_digest = hashlib.sha256(presented.encode("utf-8")).digest()
    expected_digest = hashlib.sha256(expected.encode("utf-8")).digest()
    return hmac.compare_digest(presented_digest, expected_digest)


async def verify_webhook_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> bool:
    """
    Verify the indexer's bearer token.

    Returns:
        True if authentication passes

    Raises:
        HTTPException: 503 if no secret is configured, 403 if the token is
            missing or wrong
    """
    if not settings.webhook_secret:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="WEBHOOK_SECRET not configured",
        )

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Bearer token required",
        )

    if not tokens_match(credentials.credentials, settings.webhook_secret):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid webhook token",
        )

    return True
