from typing import Any

from pydantic import BaseModel, Field

from gtx_privacy.core.models import Origin


class UnlockRequest(BaseModel):
    """Request model for unlocking a signing session."""

    secret_key: str = Field(..., description="Wallet's 32-byte secp256k1 secret key (hex)")


class ViewKeyRequest(BaseModel):
    """Request model for opening a read-only session from an exported view key."""

    owner: str = Field(..., description="Identity whose history the view key decrypts")
    view_key: str = Field(..., description="32-byte view key (hex)")


class SessionResponse(BaseModel):
    session_token: str = Field(..., description="Pass as the X-Session-Token header on later calls")
    owner: str
    read_only: bool = False


class AmountRequest(BaseModel):
    amount: int = Field(..., gt=0, description="Amount in token base units")


class ShieldRequest(AmountRequest):
    origin: Origin = Field(Origin.SOLAR, description="Provenance tag of the shielded energy")


class BatchShieldRequest(BaseModel):
    amounts: list[int] = Field(..., min_length=1)
    origin: Origin = Origin.SOLAR


class TransferRequest(AmountRequest):
    recipient: str = Field(..., description="Recipient identity")


class UnshieldRequest(AmountRequest):
    token_account: str | None = Field(
        None,
        description="Public token account to receive funds. Defaults to the owner.",
    )


class ReceiptResponse(BaseModel):
    """Ledger confirmation of a submitted operation."""

    signature: str
    slot: int
    tx_counter: int


class BalanceResponse(BaseModel):
    owner: str
    commitment: str | None
    amount: int | None = Field(None, description="Cached plaintext amount; null when unknown")
    origin: Origin | None
    tx_counter: int
    last_update_slot: int
    is_initialized: bool
    staked: int = 0


class HistoryEntryResponse(BaseModel):
    type: str
    amount: float
    timestamp: int
    details: dict[str, Any] = Field(default_factory=dict)


class StealthLinkRequest(BaseModel):
    link: str


class StealthLinkResponse(BaseModel):
    link: str = Field(..., description="Bearer link. Anyone holding it can claim the amount.")


class TradeOfferRequest(AmountRequest):
    price: float = Field(..., ge=0, description="Price per token unit")


class TradeInviteRequest(BaseModel):
    invite: str


class TradeInviteResponse(BaseModel):
    invite: str


class TradeOfferResponse(BaseModel):
    id: str
    amount: int
    price: float
    seller: str
    timestamp: int
    status: str


class RollupOperationRequest(AmountRequest):
    origin: Origin = Origin.SOLAR


class RollupOperationResponse(BaseModel):
    id: str
    amount: int
    origin: Origin
    commitment: str


class SolvencyResponse(BaseModel):
    asset: str
    solvent: bool
