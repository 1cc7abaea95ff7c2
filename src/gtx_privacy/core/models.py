"""
Core data models for the confidential balance engine.
All amounts are integer energy-token base units.
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from gtx_privacy.errors import PrivacyError

_COMMITMENT_RE = re.compile(r"^0[23][0-9a-f]{64}$")


class AccountSchemaError(PrivacyError):
    """The ledger returned an account that does not match the expected schema."""
    pass


class Origin(str, Enum):
    """Provenance category of shielded energy."""
    SOLAR = "Solar"
    WIND = "Wind"
    GRID = "Grid"


class PrivateBalanceState(BaseModel):
    """
    Local view of the shielded balance.

    `amount` is the cached plaintext total. It is advisory: None means the
    engine does not know it (locked session, or the store was lost).
    """
    model_config = ConfigDict(frozen=True)

    commitment: str = ""
    amount: int | None = None
    origin: Origin | None = None
    tx_counter: int = 0
    last_update_slot: int = 0
    is_initialized: bool = False


# ------------------------------------------------------------------
# Ledger account schema (tagged variants, validated at the boundary)
# ------------------------------------------------------------------


class PrivateBalanceAccount(BaseModel):
    """Per-(owner, asset) ledger account holding the current commitment."""
    kind: Literal["private_balance"] = "private_balance"
    owner: str
    asset: str
    commitment: str
    tx_counter: int = Field(ge=0)
    last_update_slot: int = Field(default=0, ge=0)

    @field_validator("commitment")
    @classmethod
    def _compressed_point(cls, v: str) -> str:
        v = v.lower()
        if not _COMMITMENT_RE.match(v):
            raise ValueError("commitment must be a 33-byte compressed point in hex")
        return v


class MissingAccount(BaseModel):
    """No account exists yet for this owner and asset."""
    kind: Literal["missing"] = "missing"


LedgerAccount = Annotated[Union[PrivateBalanceAccount, MissingAccount], Field(discriminator="kind")]

_ACCOUNT_ADAPTER: TypeAdapter[Any] = TypeAdapter(LedgerAccount)


def parse_ledger_account(raw: dict[str, Any] | None) -> PrivateBalanceAccount | MissingAccount:
    """
    Validate a raw ledger account payload.

    Raises:
        AccountSchemaError: If the payload matches no known variant.
    """
    if raw is None:
        return MissingAccount()
    try:
        return _ACCOUNT_ADAPTER.validate_python(raw)
    except ValidationError as e:
        raise AccountSchemaError(f"Invalid ledger account: {e}") from e


class LedgerReceipt(BaseModel):
    """Confirmation returned by the ledger for an executed instruction."""
    signature: str
    slot: int = 0
    tx_counter: int = 0


class VaultState(BaseModel):
    """Public backing of the shielded pool."""
    vault_balance: int
    total_shielded: int


class HistoryEntry(BaseModel):
    """One decrypted record of the user's own activity."""
    type: str
    amount: float
    timestamp: int
    details: dict[str, Any] = Field(default_factory=dict)
