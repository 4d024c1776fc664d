"""
Calldata decoding and encoding for Stela asset lists.

Asset lists are serialized as a count followed by 6-felt records:

    [count, (address, type_enum, value_lo, value_hi, token_id_lo, token_id_hi)*]

The same layout is used when decoding `create_inscription` calldata, when
building `settle` calldata, and when committing an asset list to a single
felt with Poseidon (hash_assets), so all three go through this module.
"""

import re
from dataclasses import dataclass
from typing import Any, Optional, Sequence

import structlog
from poseidon_py.poseidon_hash import poseidon_hash_many

from .constants import (
    ASSET_RECORD_SIZE,
    ASSET_TYPE_IDS,
    ASSET_TYPE_NAMES,
    MAX_MULTICALL_CALLS,
)
from .felt import Felt, from_u256, pad_address, to_int, to_u256

logger = structlog.get_logger()

_UNKNOWN_TYPE = re.compile(r"^unknown\((\d+)\)$")


class CalldataError(ValueError):
    """Malformed or truncated calldata."""


@dataclass(frozen=True)
class ParsedAsset:
    """One asset of a debt / interest / collateral list."""

    address: str  # 0x + 64 hex
    asset_type: str  # ERC20, ERC721, ERC1155, ERC4626 or unknown(N)
    value: int
    token_id: int = 0

    def to_dict(self) -> dict[str, str]:
        return {
            "asset_address": self.address,
            "asset_type": self.asset_type,
            "value": str(self.value),
            "token_id": str(self.token_id),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ParsedAsset":
        """
        Build from an API / order_data dict.

        Accepts `asset_address` or `address`, `asset_type` or `type`;
        `token_id` defaults to 0.
        """
        address = data.get("asset_address", data.get("address"))
        asset_type = data.get("asset_type", data.get("type"))
        if address is None or asset_type is None:
            raise ValueError("Asset requires an address and a type")
        asset_type = str(asset_type)
        asset_type_id(asset_type)
        return cls(
            address=pad_address(address),
            asset_type=asset_type,
            value=to_int(data.get("value", 0)),
            token_id=to_int(data.get("token_id", 0) or 0),
        )


@dataclass
class CreateInscriptionAssets:
    """Asset breakdown recovered from a create_inscription call."""

    debt: list[ParsedAsset]
    interest: list[ParsedAsset]
    collateral: list[ParsedAsset]

    def to_dict(self) -> dict[str, list[dict[str, str]]]:
        return {
            "debt": [a.to_dict() for a in self.debt],
            "interest": [a.to_dict() for a in self.interest],
            "collateral": [a.to_dict() for a in self.collateral],
        }


def asset_type_name(type_id: int) -> str:
    """Enum value to tag; unrecognized values are kept as unknown(N)."""
    return ASSET_TYPE_NAMES.get(type_id, f"unknown({type_id})")


def asset_type_id(name: str) -> int:
    """Tag to enum value (inverse of asset_type_name)."""
    if name in ASSET_TYPE_IDS:
        return ASSET_TYPE_IDS[name]
    match = _UNKNOWN_TYPE.match(name)
    if match:
        return int(match.group(1))
    raise ValueError(f"Unknown asset type: {name!r}")


def _felt_at(calldata: Sequence[Felt], pos: int) -> int:
    if pos >= len(calldata):
        raise CalldataError(f"Calldata truncated at index {pos} (length {len(calldata)})")
    try:
        return to_int(calldata[pos])
    except ValueError as e:
        raise CalldataError(f"Invalid felt at index {pos}: {e}") from e


def parse_asset_array(
    calldata: Sequence[Felt], offset: int
) -> tuple[list[ParsedAsset], int]:
    """
    Decode a count-prefixed asset array starting at `offset`.

    Returns:
        (assets, next_offset)

    Raises:
        CalldataError: if the array runs past the end of calldata or a
            value half does not fit in 128 bits
    """
    count = _felt_at(calldata, offset)
    pos = offset + 1

    end = pos + count * ASSET_RECORD_SIZE
    if end > len(calldata):
        raise CalldataError(
            f"Asset array of {count} records needs {end} felts, got {len(calldata)}"
        )

    assets = []
    for _ in range(count):
        address, type_enum, value_lo, value_hi, token_lo, token_hi = (
            _felt_at(calldata, pos + i) for i in range(ASSET_RECORD_SIZE)
        )
        try:
            value = from_u256(value_lo, value_hi)
            token_id = from_u256(token_lo, token_hi)
        except ValueError as e:
            raise CalldataError(str(e)) from e

        assets.append(
            ParsedAsset(
                address=pad_address(address),
                asset_type=asset_type_name(type_enum),
                value=value,
                token_id=token_id,
            )
        )
        pos += ASSET_RECORD_SIZE

    return assets, pos


def serialize_asset_array(assets: Sequence[ParsedAsset]) -> list[int]:
    """Encode assets as [count, (address, type, v_lo, v_hi, t_lo, t_hi)*]."""
    out = [len(assets)]
    for asset in assets:
        value_lo, value_hi = to_u256(asset.value)
        token_lo, token_hi = to_u256(asset.token_id)
        out.extend(
            [
                to_int(asset.address),
                asset_type_id(asset.asset_type),
                value_lo,
                value_hi,
                token_lo,
                token_hi,
            ]
        )
    return out


def hash_assets(assets: Sequence[ParsedAsset]) -> int:
    """Poseidon commitment to an ordered asset list (matches the contract)."""
    return poseidon_hash_many(serialize_asset_array(assets))


def extract_inner_calldata(
    calldata: Sequence[Felt], selector: Felt
) -> Optional[list[Felt]]:
    """
    Find the arguments of the first call to `selector` in SNIP-6 multicall
    calldata: [num_calls, (to, selector, calldata_len, ...calldata)*].

    Returns None when no call matches or the structure is malformed
    (call count outside [1, MAX_MULTICALL_CALLS], slice out of bounds).
    """
    try:
        target = to_int(selector)
        num_calls = to_int(calldata[0]) if calldata else 0
    except ValueError:
        return None

    if not 1 <= num_calls <= MAX_MULTICALL_CALLS:
        return None

    pos = 1
    for _ in range(num_calls):
        if pos + 3 > len(calldata):
            return None
        try:
            call_selector = to_int(calldata[pos + 1])
            length = to_int(calldata[pos + 2])
        except ValueError:
            return None

        start = pos + 3
        end = start + length
        if end > len(calldata):
            return None

        if call_selector == target:
            return list(calldata[start:end])

        pos = end

    return None


def parse_create_inscription_calldata(
    inner_calldata: Sequence[Felt],
) -> Optional[CreateInscriptionAssets]:
    """
    Decode the asset lists of a create_inscription call.

    Layout: is_borrow, debt_assets[], interest_assets[], collateral_assets[],
    duration, deadline, multi_lender. Returns None if the lists cannot be
    decoded.
    """
    try:
        offset = 1  # is_borrow
        debt, offset = parse_asset_array(inner_calldata, offset)
        interest, offset = parse_asset_array(inner_calldata, offset)
        collateral, _ = parse_asset_array(inner_calldata, offset)
    except CalldataError as e:
        logger.warning("create_calldata_parse_failed", error=str(e))
        return None

    return CreateInscriptionAssets(debt=debt, interest=interest, collateral=collateral)
