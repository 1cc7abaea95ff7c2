"""core module init"""
from gtx_privacy.core.ledger import (
    HttpLedgerClient,
    InMemoryLedger,
    LedgerClient,
    LedgerRejection,
    LedgerUnavailable,
)
from gtx_privacy.core.models import (
    AccountSchemaError,
    HistoryEntry,
    LedgerReceipt,
    MissingAccount,
    Origin,
    PrivateBalanceAccount,
    PrivateBalanceState,
    VaultState,
    parse_ledger_account,
)
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.store import JsonFileStore, KeyValueStore, MemoryStore
from gtx_privacy.core.wallet import LocalSigner, Signer, WalletError, is_valid_identity, validate_identity

__all__ = [
    "AccountSchemaError",
    "HistoryEntry",
    "HttpLedgerClient",
    "InMemoryLedger",
    "JsonFileStore",
    "KeyValueStore",
    "LedgerClient",
    "LedgerReceipt",
    "LedgerRejection",
    "LedgerUnavailable",
    "LocalSigner",
    "MemoryStore",
    "MissingAccount",
    "Origin",
    "PrivateBalanceAccount",
    "PrivateBalanceState",
    "Signer",
    "UnlockedSession",
    "VaultState",
    "WalletError",
    "is_valid_identity",
    "parse_ledger_account",
    "validate_identity",
]
