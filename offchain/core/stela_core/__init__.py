"""
Stela Core

Shared building blocks for the Stela off-chain services:
- felt / u256 helpers and StarkNet selectors
- SNIP-12 typed data for orders, offers and cancels
- calldata decoding / encoding for asset lists and multicalls
- storage layer for inscriptions, orders and offers
- async StarkNet JSON-RPC client
"""

__version__ = "0.1.0"

from .calldata import (
    CalldataError,
    ParsedAsset,
    extract_inner_calldata,
    hash_assets,
    parse_asset_array,
    serialize_asset_array,
)
from .db import StelaStore
from .felt import from_u256, get_selector_from_name, inscription_id_to_hex, to_u256
from .rpc import MockStarknetRPC, StarknetRPC, StarknetRPCConfig, StarknetRPCError

__all__ = [
    "__version__",
    "CalldataError",
    "ParsedAsset",
    "extract_inner_calldata",
    "hash_assets",
    "parse_asset_array",
    "serialize_asset_array",
    "StelaStore",
    "from_u256",
    "get_selector_from_name",
    "inscription_id_to_hex",
    "to_u256",
    "MockStarknetRPC",
    "StarknetRPC",
    "StarknetRPCConfig",
    "StarknetRPCError",
]
