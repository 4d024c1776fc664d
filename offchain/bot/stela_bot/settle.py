"""
Calldata builders for the bot's two contract calls.

settle(order, debt_assets, interest_assets, collateral_assets,
       borrower_sig, offer, lender_sig):

    [borrower, debt_hash, interest_hash, collateral_hash,
     debt_count, interest_count, collateral_count,
     duration, deadline, multi_lender, nonce]
    debt_assets[]  interest_assets[]  collateral_assets[]
    [len(borrower_sig), *borrower_sig]
    [order_hash, lender, bps_lo, bps_hi, lender_nonce]
    [len(lender_sig), *lender_sig]

liquidate(inscription_id: u256) -> [id_lo, id_hi]

Asset arrays and hashes use the same encoding as the indexer's decoder.
"""

from stela_core.calldata import hash_assets, serialize_asset_array
from stela_core.constants import DEFAULT_CHAIN_ID
from stela_core.db import OfferRecord, OrderRecord
from stela_core.felt import to_int, to_u256
from stela_core.orders import build_inscription_order, resolve_order_hash


def build_settle_calldata(
    order: OrderRecord, offer: OfferRecord, chain_id: str = DEFAULT_CHAIN_ID
) -> list[int]:
    """
    Flatten a matched order/offer pair into settle calldata.

    Raises:
        ValueError: if the stored order data cannot be encoded
    """
    inscription = build_inscription_order(order.order_data, order.nonce, order.borrower)
    debt_count, interest_count, collateral_count = inscription.counts()

    calldata = [
        to_int(inscription.borrower),
        hash_assets(inscription.debt_assets),
        hash_assets(inscription.interest_assets),
        hash_assets(inscription.collateral_assets),
        debt_count,
        interest_count,
        collateral_count,
        inscription.duration,
        inscription.deadline,
        1 if inscription.multi_lender else 0,
        inscription.nonce,
    ]
    calldata += serialize_asset_array(inscription.debt_assets)
    calldata += serialize_asset_array(inscription.interest_assets)
    calldata += serialize_asset_array(inscription.collateral_assets)

    calldata.append(len(order.borrower_signature))
    calldata += [to_int(part) for part in order.borrower_signature]

    order_hash = resolve_order_hash(order.order_data, order.nonce, order.borrower, chain_id)
    bps_lo, bps_hi = to_u256(offer.bps)
    calldata += [order_hash, to_int(offer.lender), bps_lo, bps_hi, to_int(offer.nonce)]

    calldata.append(len(offer.lender_signature))
    calldata += [to_int(part) for part in offer.lender_signature]
    return calldata


def build_liquidate_calldata(inscription_id: str) -> list[int]:
    id_lo, id_hi = to_u256(inscription_id)
    return [id_lo, id_hi]
