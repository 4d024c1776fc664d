"""
StarkNet account used by the bot to pay for settle / liquidate.

Requires the `submit` extra (starknet-py).
"""

from typing import Sequence

import structlog
from starknet_py.net.account.account import Account
from starknet_py.net.client_models import Call
from starknet_py.net.full_node_client import FullNodeClient
from starknet_py.net.models import StarknetChainId
from starknet_py.net.signer.key_pair import KeyPair

from stela_core.felt import encode_shortstring, get_selector_from_name, to_int

logger = structlog.get_logger()


class StarknetAccount:
    """Signs and sends v3 invoke transactions from the bot account."""

    def __init__(self, rpc_url: str, address: str, private_key: str, chain_id: str):
        self.client = FullNodeClient(node_url=rpc_url)
        self.account = Account(
            client=self.client,
            address=to_int(address),
            key_pair=KeyPair.from_private_key(to_int(private_key)),
            chain=StarknetChainId(encode_shortstring(chain_id)),
        )
        logger.info("bot_account_initialized", address=address, chain_id=chain_id)

    async def invoke(self, contract_address: str, entrypoint: str, calldata: Sequence[int]) -> str:
        call = Call(
            to_addr=to_int(contract_address),
            selector=get_selector_from_name(entrypoint),
            calldata=list(calldata),
        )
        response = await self.account.execute_v3(calls=[call], auto_estimate=True)
        return hex(response.transaction_hash)

    async def wait_for_tx(self, tx_hash: str) -> None:
        """Wait for acceptance; raises on revert or rejection."""
        await self.client.wait_for_tx(to_int(tx_hash))
