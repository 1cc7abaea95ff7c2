"""
Remote ledger call contract.

The ledger program stores one account per (owner, asset) holding the
current commitment and sequence counter, and a global nullifier set. It
executes instructions built by gtx_privacy.engine.builder:

    shield(amount, commitment, proof, expectedCounter)
    privateTransfer(senderCommitment, recipientCommitment, proofBundle, nullifier)
    unshield(amount, senderCommitment, proofBundle, nullifier)
    settleRollup(aggregateProof, operations)

A returned LedgerReceipt is the only authoritative commit signal.

Implementations:
    HttpLedgerClient: JSON over HTTP to a ledger gateway
    InMemoryLedger:   reference ledger for dry runs and tests
"""

from __future__ import annotations

import copy
import logging
import secrets
import threading
from abc import ABC, abstractmethod
from typing import Any

import httpx

from gtx_privacy.core.models import LedgerReceipt, VaultState
from gtx_privacy.crypto.pedersen import PedersenCommitment, decode_point
from gtx_privacy.crypto.range_proof import RangeProof, verify_range
from gtx_privacy.errors import PrivacyError

logger = logging.getLogger("gtx_privacy.ledger")


class LedgerRejection(PrivacyError):
    """The ledger refused or failed to execute an instruction. Refresh before retrying."""
    pass


class LedgerUnavailable(LedgerRejection):
    """The ledger could not be reached or timed out."""
    pass


class LedgerClient(ABC):

    @abstractmethod
    def fetch_private_balance(self, owner: str, asset: str) -> dict[str, Any] | None:
        """Raw account payload, or None if no account exists."""

    @abstractmethod
    def submit(self, instruction: dict[str, Any]) -> LedgerReceipt:
        """Execute one instruction and wait for confirmation."""

    @abstractmethod
    def submit_batch(self, instructions: list[dict[str, Any]]) -> LedgerReceipt:
        """Execute several instructions atomically in one submission."""

    @abstractmethod
    def get_vault_state(self, asset: str) -> VaultState:
        """Public vault backing and total shielded supply."""


class HttpLedgerClient(LedgerClient):
    """
    Synchronous client for a ledger gateway.

    Usage:
        ledger = HttpLedgerClient("http://localhost:8899")
        raw = ledger.fetch_private_balance(owner, asset)
    """

    def __init__(self, url: str, api_key: str | None = None, timeout: float = 30.0) -> None:
        self.url = url.rstrip("/")
        headers: dict[str, str] = {"Content-Type": "application/json"}
        if api_key:
            headers["api_key"] = api_key
        self._client = httpx.Client(headers=headers, timeout=timeout)

    def fetch_private_balance(self, owner: str, asset: str) -> dict[str, Any] | None:
        response = self._request("GET", f"/accounts/private-balance/{owner}/{asset}")
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise LedgerRejection(f"API error {response.status_code}: {response.text}")
        return response.json()

    def submit(self, instruction: dict[str, Any]) -> LedgerReceipt:
        return self._confirm("/instructions", instruction)

    def submit_batch(self, instructions: list[dict[str, Any]]) -> LedgerReceipt:
        return self._confirm("/instructions/batch", {"instructions": instructions})

    def get_vault_state(self, asset: str) -> VaultState:
        response = self._request("GET", f"/vault/{asset}")
        if response.status_code != 200:
            raise LedgerRejection(f"API error {response.status_code}: {response.text}")
        return VaultState(**response.json())

    def _confirm(self, path: str, payload: dict[str, Any]) -> LedgerReceipt:
        response = self._request("POST", path, json=payload)
        if response.status_code != 200:
            raise LedgerRejection(f"Instruction rejected: {response.status_code} - {response.text}")
        return LedgerReceipt(**response.json())

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return self._client.request(method, f"{self.url}{path}", **kwargs)
        except httpx.HTTPError as e:
            raise LedgerUnavailable(f"Ledger unreachable at {self.url}{path}: {e}") from e

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> HttpLedgerClient:
        return self

    def __exit__(self, *_: Any) -> None:
        self.close()


class InMemoryLedger(LedgerClient):
    """
    Reference ledger program.

    Enforces nullifier uniqueness, the expected sequence counter of the
    sender account, and public vault backing on unshield. Shield replaces
    the account commitment (one commitment per account).

    Args:
        verify_proofs: Also check range proofs produced by LocalProver.
    """

    def __init__(self, verify_proofs: bool = False) -> None:
        self.verify_proofs = verify_proofs
        self.accounts: dict[tuple[str, str], dict[str, Any]] = {}
        self.nullifiers: set[str] = set()
        self.vault: dict[str, int] = {}
        self.shielded: dict[str, int] = {}
        self.rollups: list[dict[str, Any]] = []
        self.slot = 0
        self._lock = threading.Lock()

    def fetch_private_balance(self, owner: str, asset: str) -> dict[str, Any] | None:
        with self._lock:
            account = self.accounts.get((owner, asset))
            if account is None:
                return None
            return {"kind": "private_balance", "owner": owner, "asset": asset, **account}

    def submit(self, instruction: dict[str, Any]) -> LedgerReceipt:
        return self.submit_batch([instruction])

    def submit_batch(self, instructions: list[dict[str, Any]]) -> LedgerReceipt:
        with self._lock:
            snapshot = self._snapshot()
            self.slot += 1
            counter = 0
            try:
                for ix in instructions:
                    counter = self._execute(ix)
            except LedgerRejection:
                self._restore(snapshot)
                raise
            return LedgerReceipt(signature=secrets.token_hex(32), slot=self.slot, tx_counter=counter)

    def get_vault_state(self, asset: str) -> VaultState:
        with self._lock:
            return VaultState(vault_balance=self.vault.get(asset, 0), total_shielded=self.shielded.get(asset, 0))

    # ------------------------------------------------------------------
    # Instruction handlers
    # ------------------------------------------------------------------

    def _execute(self, ix: dict[str, Any]) -> int:
        name = ix.get("instruction")
        handler = {
            "shield": self._shield,
            "privateTransfer": self._private_transfer,
            "unshield": self._unshield,
            "settleRollup": self._settle_rollup,
        }.get(name)
        if handler is None:
            raise LedgerRejection(f"Unknown instruction: {name!r}")
        return handler(ix["accounts"], ix["args"])

    def _shield(self, accounts: dict[str, Any], args: dict[str, Any]) -> int:
        asset = accounts["asset"]
        amount = int(args["amount"])
        if amount <= 0:
            raise LedgerRejection("Shield amount must be positive")
        commitment = self._check_point(args["commitment"])
        if self.verify_proofs:
            self._check_range(commitment, args["proof"])
        key = (accounts["owner"], asset)
        expected = args.get("expected_counter")
        current = self.accounts.get(key, {}).get("tx_counter", 0)
        if expected is not None and expected != current:
            raise LedgerRejection(f"Stale sequence counter: expected {current}, got {expected}")
        account = self.accounts.setdefault(key, {"commitment": commitment, "tx_counter": 0, "last_update_slot": 0})
        account["commitment"] = commitment
        account["tx_counter"] += 1
        account["last_update_slot"] = self.slot
        self.vault[asset] = self.vault.get(asset, 0) + amount
        self.shielded[asset] = self.shielded.get(asset, 0) + amount
        return account["tx_counter"]

    def _spend(self, accounts: dict[str, Any], args: dict[str, Any]) -> dict[str, Any]:
        account = self.accounts.get((accounts["owner"], accounts["asset"]))
        if account is None:
            raise LedgerRejection("Sender has no private balance account")
        expected = args.get("expected_counter")
        if expected is not None and expected != account["tx_counter"]:
            raise LedgerRejection(
                f"Stale sequence counter: expected {account['tx_counter']}, got {expected}"
            )
        nullifier = args["nullifier"]
        if nullifier in self.nullifiers:
            raise LedgerRejection(f"Nullifier {nullifier[:16]}... already consumed")
        bundle = args["proof_bundle"]
        if self.verify_proofs:
            self._check_range(bundle["amount_commitment"], bundle["amount_proof"])
            self._check_range(bundle["remaining_commitment"], bundle["remaining_proof"])
        self.nullifiers.add(nullifier)
        account["commitment"] = self._check_point(args["sender_commitment"])
        account["tx_counter"] += 1
        account["last_update_slot"] = self.slot
        return account

    def _private_transfer(self, accounts: dict[str, Any], args: dict[str, Any]) -> int:
        recipient_commitment = self._check_point(args["recipient_commitment"])
        account = self._spend(accounts, args)
        key = (accounts["recipient"], accounts["asset"])
        recipient = self.accounts.get(key)
        if recipient is None:
            self.accounts[key] = {"commitment": recipient_commitment, "tx_counter": 0, "last_update_slot": self.slot}
        else:
            recipient["commitment"] = PedersenCommitment.add(recipient["commitment"], recipient_commitment)
            recipient["last_update_slot"] = self.slot
        return account["tx_counter"]

    def _unshield(self, accounts: dict[str, Any], args: dict[str, Any]) -> int:
        asset = accounts["asset"]
        amount = int(args["amount"])
        if self.vault.get(asset, 0) < amount:
            raise LedgerRejection("Insufficient vault backing for unshield")
        account = self._spend(accounts, args)
        self.vault[asset] -= amount
        self.shielded[asset] = self.shielded.get(asset, 0) - amount
        return account["tx_counter"]

    def _settle_rollup(self, accounts: dict[str, Any], args: dict[str, Any]) -> int:
        if not args.get("operations"):
            raise LedgerRejection("Rollup contains no operations")
        self.rollups.append({"owner": accounts["owner"], **args})
        account = self.accounts.get((accounts["owner"], accounts["asset"]))
        return account["tx_counter"] if account else 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _check_point(hex_str: str) -> str:
        try:
            decode_point(hex_str)
        except ValueError as e:
            raise LedgerRejection(f"Invalid commitment: {e}") from e
        return hex_str.lower()

    @staticmethod
    def _check_range(commitment: str, proof_hex: str) -> None:
        try:
            proof = RangeProof.from_bytes(commitment, bytes.fromhex(proof_hex))
        except ValueError as e:
            raise LedgerRejection(f"Malformed proof: {e}") from e
        if not verify_range(proof):
            raise LedgerRejection("Range proof verification failed")

    def _snapshot(self) -> tuple:
        return (
            copy.deepcopy(self.accounts),
            set(self.nullifiers),
            dict(self.vault),
            dict(self.shielded),
            list(self.rollups),
        )

    def _restore(self, snapshot: tuple) -> None:
        self.accounts, self.nullifiers, self.vault, self.shielded, self.rollups = snapshot
