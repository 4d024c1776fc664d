"""
Pydantic models for API requests and responses.
"""

from typing import Annotated, Any, Literal, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field

from stela_core.constants import MAX_BATCH_EVENTS, MAX_BPS
from stela_core.felt import normalize_inscription_id, pad_address, to_int


def _address(value: str) -> str:
    return pad_address(value)


def _decimal(value: Union[int, str]) -> str:
    return str(to_int(value))


Address = Annotated[str, AfterValidator(_address)]
InscriptionId = Annotated[str, AfterValidator(normalize_inscription_id)]
# u256 amounts travel as decimal strings
Amount = Annotated[Union[int, str], AfterValidator(_decimal)]


# ============================================================================
# Webhook events
# ============================================================================


class AssetModel(BaseModel):
    """One decoded asset of a created inscription."""

    asset_address: Address
    asset_type: str
    value: Amount = "0"
    token_id: Amount = "0"


class CreatedAssets(BaseModel):
    debt: list[AssetModel] = Field(default_factory=list)
    interest: list[AssetModel] = Field(default_factory=list)
    collateral: list[AssetModel] = Field(default_factory=list)


class CreatedData(BaseModel):
    inscription_id: InscriptionId
    creator: Address
    status: Literal["open"] = "open"
    multi_lender: int = Field(0, ge=0, le=1)
    duration: int = Field(0, ge=0)
    deadline: int = Field(0, ge=0)
    debt_asset_count: int = Field(0, ge=0)
    interest_asset_count: int = Field(0, ge=0)
    collateral_asset_count: int = Field(0, ge=0)
    assets: CreatedAssets = Field(default_factory=CreatedAssets)


class SignedData(BaseModel):
    inscription_id: InscriptionId
    borrower: Address
    lender: Address
    issued_debt_percentage: int = Field(..., ge=0, le=MAX_BPS)
    shares: Amount = "0"
    status: Literal["partial", "filled"]
    locker_address: Optional[Address] = None


class CancelledData(BaseModel):
    inscription_id: InscriptionId
    creator: Address


class RepaidData(BaseModel):
    inscription_id: InscriptionId
    repayer: Address


class LiquidatedData(BaseModel):
    inscription_id: InscriptionId
    liquidator: Address


class RedeemedData(BaseModel):
    inscription_id: InscriptionId
    redeemer: Address
    shares: Amount


class TransferSingleData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    inscription_id: InscriptionId
    from_address: Address = Field(..., alias="from")
    to: Address
    value: Amount


class _EventBase(BaseModel):
    tx_hash: str = Field(..., min_length=1)
    block_number: int = Field(..., ge=0)
    timestamp: int = Field(..., ge=0)


class CreatedEvent(_EventBase):
    event_type: Literal["created"]
    data: CreatedData


class SignedEvent(_EventBase):
    event_type: Literal["signed"]
    data: SignedData


class CancelledEvent(_EventBase):
    event_type: Literal["cancelled"]
    data: CancelledData


class RepaidEvent(_EventBase):
    event_type: Literal["repaid"]
    data: RepaidData


class LiquidatedEvent(_EventBase):
    event_type: Literal["liquidated"]
    data: LiquidatedData


class RedeemedEvent(_EventBase):
    event_type: Literal["redeemed"]
    data: RedeemedData


class TransferSingleEvent(_EventBase):
    event_type: Literal["transfer_single"]
    data: TransferSingleData


WebhookEvent = Annotated[
    Union[
        CreatedEvent,
        SignedEvent,
        CancelledEvent,
        RepaidEvent,
        LiquidatedEvent,
        RedeemedEvent,
        TransferSingleEvent,
    ],
    Field(discriminator="event_type"),
]


class WebhookPayload(BaseModel):
    """One block's worth of events from the indexer."""

    block_number: int = Field(..., ge=0)
    events: list[WebhookEvent] = Field(..., max_length=MAX_BATCH_EVENTS)
    cursor: Optional[str] = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "block_number": 812345,
                    "cursor": "812345",
                    "events": [
                        {
                            "event_type": "cancelled",
                            "tx_hash": "0x5c1d...",
                            "block_number": 812345,
                            "timestamp": 1718000000,
                            "data": {
                                "inscription_id": "0x" + "0" * 63 + "7",
                                "creator": "0x" + "0" * 62 + "ab",
                            },
                        }
                    ],
                }
            ]
        }
    }


# ============================================================================
# Health
# ============================================================================


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool = Field(..., description="Service is up")
    last_block: Optional[int] = Field(None, description="Last fully processed block")
    version: str = Field(..., description="API version")


# ============================================================================
# Orders
# ============================================================================


class CreateOrderRequest(BaseModel):
    """Borrower order submission."""

    id: Optional[str] = Field(None, max_length=128, description="Client-chosen id (uuid if omitted)")
    borrower: Address
    order_data: Union[dict[str, Any], str] = Field(
        ..., description="InscriptionOrder fields; camelCase or snake_case keys"
    )
    borrower_signature: Any = Field(..., description="[r, s], {r, s} or a JSON string of either")
    nonce: Amount
    deadline: int = Field(..., gt=0, description="Unix seconds")


class CreateOfferRequest(BaseModel):
    """Lender offer against a pending order."""

    id: Optional[str] = Field(None, max_length=128, description="Client-chosen id (uuid if omitted)")
    lender: Address
    bps: int = Field(..., ge=1, le=MAX_BPS, description="Issued debt percentage in basis points")
    lender_signature: Any
    nonce: Amount


class CancelOrderRequest(BaseModel):
    """Borrower cancellation; signature is checked when present."""

    borrower: str = ""
    signature: Optional[Any] = None
