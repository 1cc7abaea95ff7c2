"""
API module for gtx-privacy.

Provides FastAPI routes and models exposing the PrivacyEngine as a REST API.
"""

from gtx_privacy.api.models import (
    AmountRequest,
    BalanceResponse,
    HistoryEntryResponse,
    ReceiptResponse,
    SessionResponse,
    ShieldRequest,
    TransferRequest,
)

__all__ = [
    "AmountRequest",
    "BalanceResponse",
    "HistoryEntryResponse",
    "ReceiptResponse",
    "SessionResponse",
    "ShieldRequest",
    "TransferRequest",
]
