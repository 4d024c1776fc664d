"""
Off-chain order helpers: order_data normalization and signed-message hashes.

Clients submit order_data with either snake_case or camelCase keys; it is
normalized once on ingress and stored in snake_case.
"""

import json
from typing import Any, Union

from .calldata import ParsedAsset
from .constants import DEFAULT_CHAIN_ID
from .felt import pad_address, to_int
from .typed_data import (
    InscriptionOrder,
    LendOffer,
    cancel_order_typed_data,
    get_message_hash,
    inscription_order_typed_data,
    lend_offer_typed_data,
)

_KEY_ALIASES = {
    "debtAssets": "debt_assets",
    "interestAssets": "interest_assets",
    "collateralAssets": "collateral_assets",
    "debtCount": "debt_count",
    "interestCount": "interest_count",
    "collateralCount": "collateral_count",
    "multiLender": "multi_lender",
    "orderHash": "order_hash",
}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1")
    return bool(value)


def normalize_order_data(raw: Union[str, dict[str, Any], None]) -> dict[str, Any]:
    """
    Parse order_data (dict or JSON string) into snake_case form.

    Raises:
        ValueError: if a JSON string cannot be parsed into an object
    """
    if raw is None:
        parsed: dict[str, Any] = {}
    elif isinstance(raw, str):
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ValueError(f"order_data is not valid JSON: {e}") from e
        if not isinstance(parsed, dict):
            raise ValueError("order_data must be a JSON object")
    else:
        parsed = dict(raw)

    data = {}
    for key, value in parsed.items():
        data.setdefault(_KEY_ALIASES.get(key, key), value)

    normalized: dict[str, Any] = {
        "borrower": data.get("borrower", ""),
        "debt_assets": list(data.get("debt_assets") or []),
        "interest_assets": list(data.get("interest_assets") or []),
        "collateral_assets": list(data.get("collateral_assets") or []),
        "debt_count": int(data.get("debt_count") or len(data.get("debt_assets") or [])),
        "interest_count": int(data.get("interest_count") or len(data.get("interest_assets") or [])),
        "collateral_count": int(
            data.get("collateral_count") or len(data.get("collateral_assets") or [])
        ),
        "duration": str(data.get("duration", "0")),
        "deadline": str(data.get("deadline", "0")),
        "multi_lender": _as_bool(data.get("multi_lender", False)),
    }
    if data.get("order_hash"):
        normalized["order_hash"] = data["order_hash"]
    return normalized


def order_assets(order_data: dict[str, Any]) -> tuple[list[ParsedAsset], ...]:
    """(debt, interest, collateral) asset lists of normalized order_data."""
    return tuple(
        [ParsedAsset.from_dict(a) for a in order_data.get(role, [])]
        for role in ("debt_assets", "interest_assets", "collateral_assets")
    )


def build_inscription_order(order_data: dict[str, Any], nonce: Any, borrower: str) -> InscriptionOrder:
    debt, interest, collateral = order_assets(order_data)
    return InscriptionOrder(
        borrower=pad_address(borrower),
        debt_assets=debt,
        interest_assets=interest,
        collateral_assets=collateral,
        duration=to_int(order_data.get("duration", 0)),
        deadline=to_int(order_data.get("deadline", 0)),
        multi_lender=bool(order_data.get("multi_lender", False)),
        nonce=to_int(nonce),
        debt_count=order_data.get("debt_count"),
        interest_count=order_data.get("interest_count"),
        collateral_count=order_data.get("collateral_count"),
    )


def order_message_hash(
    order_data: dict[str, Any],
    nonce: Any,
    borrower: str,
    chain_id: str = DEFAULT_CHAIN_ID,
) -> int:
    """SNIP-12 hash of the InscriptionOrder the borrower signed."""
    order = build_inscription_order(order_data, nonce, borrower)
    return get_message_hash(inscription_order_typed_data(order, chain_id), order.borrower)


def resolve_order_hash(
    order_data: dict[str, Any],
    nonce: Any,
    borrower: str,
    chain_id: str = DEFAULT_CHAIN_ID,
) -> int:
    """Stored order_hash when the client supplied one, otherwise recomputed."""
    if order_data.get("order_hash"):
        return to_int(order_data["order_hash"])
    return order_message_hash(order_data, nonce, borrower, chain_id)


def offer_message_hash(
    order_hash: int,
    lender: str,
    bps: int,
    nonce: Any,
    chain_id: str = DEFAULT_CHAIN_ID,
) -> int:
    """SNIP-12 hash of the LendOffer the lender signed."""
    offer = LendOffer(
        order_hash=order_hash,
        lender=pad_address(lender),
        issued_debt_percentage=bps,
        nonce=to_int(nonce),
    )
    return get_message_hash(lend_offer_typed_data(offer, chain_id), offer.lender)


def cancel_message_hash(order_id: str, borrower: str, chain_id: str = DEFAULT_CHAIN_ID) -> int:
    return get_message_hash(cancel_order_typed_data(order_id, chain_id), borrower)
