"""
SNIP-12 (revision 1) typed data for off-chain orders, offers and cancels.

The builders below produce the JSON typed data wallets sign; hashing is
done by starknet-py.
"""

from dataclasses import dataclass
from typing import Any

from starknet_py.utils.typed_data import TypedData

from .calldata import ParsedAsset, hash_assets
from .constants import (
    DEFAULT_CHAIN_ID,
    SNIP12_DOMAIN_NAME,
    SNIP12_DOMAIN_VERSION,
    SNIP12_REVISION,
)
from .felt import Felt, to_int

TypeDefs = dict[str, list[dict[str, str]]]

DOMAIN_TYPE_NAME = "StarknetDomain"

STARKNET_DOMAIN_TYPE = [
    {"name": "name", "type": "shortstring"},
    {"name": "version", "type": "shortstring"},
    {"name": "chainId", "type": "shortstring"},
    {"name": "revision", "type": "shortstring"},
]


@dataclass
class InscriptionOrder:
    """Borrower intent, as signed off-chain."""

    borrower: str
    debt_assets: list[ParsedAsset]
    interest_assets: list[ParsedAsset]
    collateral_assets: list[ParsedAsset]
    duration: int
    deadline: int
    multi_lender: bool
    nonce: int
    debt_count: int | None = None
    interest_count: int | None = None
    collateral_count: int | None = None

    def counts(self) -> tuple[int, int, int]:
        return (
            self.debt_count if self.debt_count is not None else len(self.debt_assets),
            self.interest_count if self.interest_count is not None else len(self.interest_assets),
            self.collateral_count if self.collateral_count is not None else len(self.collateral_assets),
        )


@dataclass
class LendOffer:
    """Lender acceptance of a specific order hash."""

    order_hash: int
    lender: str
    issued_debt_percentage: int  # bps
    nonce: int


def create_snip12_domain(chain_id: str = DEFAULT_CHAIN_ID) -> dict[str, str]:
    """Create SNIP-12 domain data."""
    return {
        "name": SNIP12_DOMAIN_NAME,
        "version": SNIP12_DOMAIN_VERSION,
        "chainId": chain_id,
        "revision": SNIP12_REVISION,
    }


def create_inscription_order_types() -> TypeDefs:
    return {
        DOMAIN_TYPE_NAME: STARKNET_DOMAIN_TYPE,
        "InscriptionOrder": [
            {"name": "borrower", "type": "ContractAddress"},
            {"name": "debt_hash", "type": "felt"},
            {"name": "interest_hash", "type": "felt"},
            {"name": "collateral_hash", "type": "felt"},
            {"name": "debt_count", "type": "u128"},
            {"name": "interest_count", "type": "u128"},
            {"name": "collateral_count", "type": "u128"},
            {"name": "duration", "type": "u128"},
            {"name": "deadline", "type": "u128"},
            {"name": "multi_lender", "type": "bool"},
            {"name": "nonce", "type": "felt"},
        ],
    }


def create_lend_offer_types() -> TypeDefs:
    return {
        DOMAIN_TYPE_NAME: STARKNET_DOMAIN_TYPE,
        "LendOffer": [
            {"name": "order_hash", "type": "felt"},
            {"name": "lender", "type": "ContractAddress"},
            {"name": "issued_debt_percentage", "type": "u256"},
            {"name": "nonce", "type": "felt"},
        ],
    }


def create_cancel_order_types() -> TypeDefs:
    return {
        DOMAIN_TYPE_NAME: STARKNET_DOMAIN_TYPE,
        "CancelOrder": [
            {"name": "order_id", "type": "string"},
        ],
    }


def inscription_order_typed_data(
    order: InscriptionOrder, chain_id: str = DEFAULT_CHAIN_ID
) -> dict[str, Any]:
    """Full typed data for an InscriptionOrder."""
    debt_count, interest_count, collateral_count = order.counts()
    return {
        "types": create_inscription_order_types(),
        "primaryType": "InscriptionOrder",
        "domain": create_snip12_domain(chain_id),
        "message": {
            "borrower": order.borrower,
            "debt_hash": hex(hash_assets(order.debt_assets)),
            "interest_hash": hex(hash_assets(order.interest_assets)),
            "collateral_hash": hex(hash_assets(order.collateral_assets)),
            "debt_count": str(debt_count),
            "interest_count": str(interest_count),
            "collateral_count": str(collateral_count),
            "duration": str(order.duration),
            "deadline": str(order.deadline),
            "multi_lender": order.multi_lender,
            "nonce": str(order.nonce),
        },
    }


def lend_offer_typed_data(
    offer: LendOffer, chain_id: str = DEFAULT_CHAIN_ID
) -> dict[str, Any]:
    """Full typed data for a LendOffer."""
    low = offer.issued_debt_percentage & (2**128 - 1)
    high = offer.issued_debt_percentage >> 128
    return {
        "types": create_lend_offer_types(),
        "primaryType": "LendOffer",
        "domain": create_snip12_domain(chain_id),
        "message": {
            "order_hash": hex(offer.order_hash),
            "lender": offer.lender,
            "issued_debt_percentage": {"low": str(low), "high": str(high)},
            "nonce": str(offer.nonce),
        },
    }


def cancel_order_typed_data(order_id: str, chain_id: str = DEFAULT_CHAIN_ID) -> dict[str, Any]:
    """Full typed data for a CancelOrder."""
    return {
        "types": create_cancel_order_types(),
        "primaryType": "CancelOrder",
        "domain": create_snip12_domain(chain_id),
        "message": {"order_id": order_id},
    }


def get_message_hash(typed_data: dict[str, Any], account_address: Felt) -> int:
    """SNIP-12 message hash bound to the signing account."""
    return TypedData.from_dict(typed_data).message_hash(to_int(account_address))
