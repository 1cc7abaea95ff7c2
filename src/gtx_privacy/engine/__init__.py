"""engine module init"""
from gtx_privacy.engine.balance import BalanceCache
from gtx_privacy.engine.builder import InstructionBuilder, InstructionBuilderError
from gtx_privacy.engine.engine import STAKING_VAULT, PrivacyEngine
from gtx_privacy.engine.history import DecryptionFailure, EncryptedHistoryLog
from gtx_privacy.engine.policy import PolicyEngine, PolicyType, PolicyViolation, PrivacyPolicy
from gtx_privacy.engine.rollup import PendingOperation, RollupAggregator
from gtx_privacy.engine.stealth import StealthLinkError, StealthPayload, create_stealth_link, parse_stealth_link
from gtx_privacy.engine.trade import (
    MARKET_ESCROW,
    InvalidTradeTransition,
    PaymentGateway,
    SimulatedPaymentGateway,
    TradeInviteError,
    TradeOffer,
    TradeStatus,
)

__all__ = [
    "BalanceCache",
    "DecryptionFailure",
    "EncryptedHistoryLog",
    "InstructionBuilder",
    "InstructionBuilderError",
    "InvalidTradeTransition",
    "MARKET_ESCROW",
    "PaymentGateway",
    "PendingOperation",
    "PolicyEngine",
    "PolicyType",
    "PolicyViolation",
    "PrivacyEngine",
    "PrivacyPolicy",
    "RollupAggregator",
    "STAKING_VAULT",
    "SimulatedPaymentGateway",
    "StealthLinkError",
    "StealthPayload",
    "TradeInviteError",
    "TradeOffer",
    "TradeStatus",
    "create_stealth_link",
    "parse_stealth_link",
]
