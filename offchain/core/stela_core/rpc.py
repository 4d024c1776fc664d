"""
StarkNet JSON-RPC client for contract reads, events and transactions.
"""

from typing import Any, Optional, Sequence

import httpx
from pydantic import BaseModel

from .felt import Felt, get_selector_from_name, pad_address, to_hex, to_int


class StarknetRPCConfig(BaseModel):
    """Configuration for StarkNet RPC connection."""

    url: str = "http://localhost:9545"
    timeout: float = 30.0


class StarknetRPCError(Exception):
    """Error from StarkNet RPC call."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"RPC Error {code}: {message}")


class StarknetRPC:
    """
    Async StarkNet JSON-RPC client.

    Provides the reads the indexer, API and bot need: view calls,
    event pages, transactions and block headers.
    """

    def __init__(self, config: StarknetRPCConfig):
        self.config = config
        self._request_id = 0

    async def _call(self, method: str, params: Any = None) -> Any:
        """Make RPC call."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params if params is not None else [],
        }

        async with httpx.AsyncClient(timeout=self.config.timeout) as client:
            response = await client.post(self.config.url, json=payload)
            response.raise_for_status()
            result = response.json()

        if result.get("error"):
            error = result["error"]
            raise StarknetRPCError(error.get("code", -1), error.get("message", "Unknown error"))

        return result.get("result")

    async def close(self) -> None:
        """Nothing pooled; kept for symmetry with long-lived clients."""

    async def call(
        self,
        contract_address: Felt,
        entrypoint: str,
        calldata: Sequence[Felt] = (),
        block_id: Any = "latest",
    ) -> list[int]:
        """View call; returns the result felts as ints."""
        request = {
            "contract_address": pad_address(contract_address),
            "entry_point_selector": hex(get_selector_from_name(entrypoint)),
            "calldata": [to_hex(v) for v in calldata],
        }
        result = await self._call("starknet_call", {"request": request, "block_id": block_id})
        return [to_int(v) for v in (result or [])]

    async def get_block_number(self) -> int:
        """Latest accepted block number."""
        return int(await self._call("starknet_blockNumber"))

    async def get_block_timestamp(self, block_number: int) -> int:
        block = await self._call(
            "starknet_getBlockWithTxHashes", {"block_id": {"block_number": block_number}}
        )
        return int(block.get("timestamp", 0))

    async def get_transaction(self, tx_hash: str) -> dict[str, Any]:
        return await self._call("starknet_getTransactionByHash", {"transaction_hash": tx_hash})

    async def get_transaction_calldata(self, tx_hash: str) -> Optional[list[str]]:
        """Invoke calldata of a transaction, or None for other tx types."""
        tx = await self.get_transaction(tx_hash)
        calldata = tx.get("calldata") if tx else None
        return list(calldata) if calldata is not None else None

    async def get_events(
        self,
        address: Felt,
        keys: Sequence[Felt],
        from_block: int,
        to_block: int,
        chunk_size: int = 100,
        continuation_token: Optional[str] = None,
    ) -> tuple[list[dict[str, Any]], Optional[str]]:
        """
        One page of events emitted by `address` whose first key is in `keys`.

        Returns:
            (events, continuation_token)
        """
        event_filter: dict[str, Any] = {
            "from_block": {"block_number": from_block},
            "to_block": {"block_number": to_block},
            "address": pad_address(address),
            "keys": [[hex(to_int(k)) for k in keys]],
            "chunk_size": chunk_size,
        }
        if continuation_token:
            event_filter["continuation_token"] = continuation_token

        result = await self._call("starknet_getEvents", {"filter": event_filter})
        return list(result.get("events", [])), result.get("continuation_token")

    # Convenience methods for Stela contract reads

    async def get_contract_nonce(self, contract_address: Felt, owner: Felt) -> int:
        """Current off-chain-signature nonce of `owner` (contract `nonces`)."""
        result = await self.call(contract_address, "nonces", [owner])
        if not result:
            raise StarknetRPCError(-1, "nonces returned no data")
        return result[0]

    async def check_connectivity(self) -> bool:
        try:
            await self.get_block_number()
            return True
        except (httpx.HTTPError, StarknetRPCError):
            return False


class MockStarknetRPC(StarknetRPC):
    """
    Mock StarkNet RPC for testing without a node.
    Answers the JSON-RPC methods from registered data.
    """

    def __init__(self) -> None:
        super().__init__(StarknetRPCConfig(url="mock://"))
        self.block_number = 0
        self._call_results: dict[tuple[int, int], Any] = {}
        self._events: list[dict[str, Any]] = []
        self._transactions: dict[int, dict[str, Any]] = {}
        self._timestamps: dict[int, int] = {}
        self.requests: list[tuple[str, Any]] = []

    def set_call_result(
        self, contract_address: Felt, entrypoint: str, result: Any
    ) -> None:
        """
        Register the result of a view call.

        `result` may be a list of felts, an Exception instance to raise, or
        a callable taking the calldata (list of ints) and returning either.
        """
        key = (to_int(contract_address), get_selector_from_name(entrypoint))
        self._call_results[key] = result

    def add_event(
        self,
        block_number: int,
        keys: list[Felt],
        data: list[Felt],
        transaction_hash: str,
        from_address: Felt = 0,
    ) -> None:
        self._events.append(
            {
                "from_address": pad_address(from_address),
                "keys": [to_hex(k) for k in keys],
                "data": [to_hex(d) for d in data],
                "block_number": block_number,
                "transaction_hash": transaction_hash,
            }
        )
        self.block_number = max(self.block_number, block_number)

    def add_transaction(self, tx_hash: str, calldata: list[Felt]) -> None:
        self._transactions[to_int(tx_hash)] = {
            "transaction_hash": tx_hash,
            "type": "INVOKE",
            "calldata": [to_hex(c) for c in calldata],
        }

    def set_block_timestamp(self, block_number: int, timestamp: int) -> None:
        self._timestamps[block_number] = timestamp

    async def _call(self, method: str, params: Any = None) -> Any:
        self.requests.append((method, params))

        if method == "starknet_blockNumber":
            return self.block_number

        if method == "starknet_call":
            request = params["request"]
            key = (to_int(request["contract_address"]), to_int(request["entry_point_selector"]))
            if key not in self._call_results:
                raise StarknetRPCError(40, "Contract error")
            result = self._call_results[key]
            if callable(result) and not isinstance(result, Exception):
                result = result([to_int(c) for c in request["calldata"]])
            if isinstance(result, Exception):
                raise result
            return [to_hex(v) for v in result]

        if method == "starknet_getEvents":
            event_filter = params["filter"]
            from_block = event_filter["from_block"]["block_number"]
            to_block = event_filter["to_block"]["block_number"]
            wanted = {to_int(k) for k in event_filter["keys"][0]}
            address = to_int(event_filter["address"])
            matching = [
                e
                for e in self._events
                if from_block <= e["block_number"] <= to_block
                and to_int(e["keys"][0]) in wanted
                and to_int(e["from_address"]) in (0, address)
            ]
            start = int(event_filter.get("continuation_token") or 0)
            end = start + event_filter["chunk_size"]
            token = str(end) if end < len(matching) else None
            return {"events": matching[start:end], "continuation_token": token}

        if method == "starknet_getTransactionByHash":
            tx = self._transactions.get(to_int(params["transaction_hash"]))
            if tx is None:
                raise StarknetRPCError(29, "Transaction hash not found")
            return tx

        if method == "starknet_getBlockWithTxHashes":
            block_number = params["block_id"]["block_number"]
            return {"block_number": block_number, "timestamp": self._timestamps.get(block_number, 0)}

        raise StarknetRPCError(-32601, f"Method not found: {method}")
