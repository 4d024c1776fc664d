"""
Protocol constants shared by the indexer, API and bot.
"""

U128_MAX = 2**128 - 1
U256_MAX = 2**256 - 1

# Basis points: 10000 = 100%
MAX_BPS = 10_000

# Multicall sanity bound for __execute__ calldata
MAX_MULTICALL_CALLS = 20

# Fields per serialized asset: address, type, value_lo, value_hi, token_id_lo, token_id_hi
ASSET_RECORD_SIZE = 6

ASSET_TYPE_NAMES: dict[int, str] = {
    0: "ERC20",
    1: "ERC721",
    2: "ERC1155",
    3: "ERC4626",
}
ASSET_TYPE_IDS: dict[str, int] = {name: idx for idx, name in ASSET_TYPE_NAMES.items()}

ASSET_ROLES = ("debt", "interest", "collateral")

INSCRIPTION_STATUSES = (
    "open",
    "partial",
    "filled",
    "repaid",
    "liquidated",
    "expired",
    "cancelled",
)

# Allowed source statuses for each inscription status transition
INSCRIPTION_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "partial": ("open", "partial"),
    "filled": ("open", "partial"),
    "cancelled": ("open",),
    "expired": ("open",),
    "repaid": ("partial", "filled"),
    "liquidated": ("partial", "filled"),
}

ORDER_STATUSES = ("pending", "matched", "settled", "cancelled", "expired")
OFFER_STATUSES = ("pending", "settled", "expired", "cancelled")

# Success sentinels returned by SNIP-6 is_valid_signature
VALID_SIGNATURE_SENTINELS = frozenset({0x56414C4944, 1})  # 'VALID', legacy true

# SNIP-12 domain defaults
SNIP12_DOMAIN_NAME = "Stela"
SNIP12_DOMAIN_VERSION = "v1"
SNIP12_REVISION = "1"
DEFAULT_CHAIN_ID = "SN_SEPOLIA"

# Webhook receiver batch bound
MAX_BATCH_EVENTS = 500

ZERO_ADDRESS = "0x" + "0" * 64
