"""
Signature and nonce checks for off-chain orders and offers.

The two checks fail in opposite directions on RPC trouble:
- verify_signature fails closed: any error means "not valid"
- verify_nonce fails open: any error means "valid"; the settlement bot
  re-reads nonces strictly before submitting anything
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Sequence

import httpx
import structlog

from stela_core.constants import VALID_SIGNATURE_SENTINELS
from stela_core.felt import Felt, pad_address, to_int
from stela_core.rpc import StarknetRPC, StarknetRPCError

logger = structlog.get_logger()

_RPC_ERRORS = (StarknetRPCError, httpx.HTTPError, asyncio.TimeoutError, ValueError)


@dataclass
class NonceCheck:
    """Result of comparing a submitted nonce with the on-chain one."""

    valid: bool
    on_chain: Optional[int]
    submitted: int


async def verify_signature(
    rpc: StarknetRPC,
    signer_address: Felt,
    message_hash: int,
    signature: Sequence[Felt],
) -> bool:
    """
    Ask the signer's account contract whether `signature` signs `message_hash`.

    Calls SNIP-6 is_valid_signature(hash, signature: Array<felt252>).
    """
    calldata = [message_hash, len(signature), *[to_int(s) for s in signature]]
    try:
        result = await rpc.call(signer_address, "is_valid_signature", calldata)
    except _RPC_ERRORS as e:
        logger.warning(
            "signature_check_failed",
            signer=pad_address(signer_address),
            error=str(e) or type(e).__name__,
        )
        return False

    valid = bool(result) and result[0] in VALID_SIGNATURE_SENTINELS
    if not valid:
        logger.info("signature_rejected", signer=pad_address(signer_address))
    return valid


async def verify_nonce(
    rpc: StarknetRPC,
    stela_address: Felt,
    address: Felt,
    expected_nonce: Felt,
) -> NonceCheck:
    """Compare `expected_nonce` with the Stela contract's nonces(address)."""
    submitted = to_int(expected_nonce)
    try:
        on_chain = await rpc.get_contract_nonce(stela_address, address)
    except _RPC_ERRORS as e:
        logger.warning(
            "nonce_check_unavailable",
            address=pad_address(address),
            error=str(e) or type(e).__name__,
        )
        return NonceCheck(valid=True, on_chain=None, submitted=submitted)

    return NonceCheck(valid=on_chain == submitted, on_chain=on_chain, submitted=submitted)
