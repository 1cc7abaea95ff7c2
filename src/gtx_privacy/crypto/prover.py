"""
Proof boundary: the request/response contract to a proving capability.

The engine treats a ProofBackend as a black box that may be slow and may
fail. Two backends ship with the package:

- LocalProver:  reference proofs from gtx_privacy.crypto.range_proof
- RemoteProver: JSON over HTTP to an external proving service

Retrying a failed call regenerates a proof from scratch; no prover state
is replayed.
"""

from __future__ import annotations

import base64
import logging
import secrets
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from gtx_privacy.crypto.keys import blinding_scalar
from gtx_privacy.crypto.pedersen import SECP256K1_N, PedersenCommitment
from gtx_privacy.crypto.range_proof import MAX_BIT_LENGTH, prove_balance, prove_range
from gtx_privacy.errors import PrivacyError

logger = logging.getLogger("gtx_privacy.prover")


class ProofGenerationFailure(PrivacyError):
    """The proving capability failed or timed out. Safe to retry."""
    pass


@dataclass(frozen=True)
class RangeProofResult:
    commitment: str
    proof_bytes: bytes


@dataclass(frozen=True)
class TransferProofBundle:
    """Everything a private transfer or unshield carries to the ledger."""
    amount_commitment: str
    amount_proof: bytes
    remaining_commitment: str
    remaining_proof: bytes
    balance_equality_proof: bytes

    def to_dict(self) -> dict[str, str]:
        return {
            "amount_commitment": self.amount_commitment,
            "amount_proof": self.amount_proof.hex(),
            "remaining_commitment": self.remaining_commitment,
            "remaining_proof": self.remaining_proof.hex(),
            "balance_equality_proof": self.balance_equality_proof.hex(),
        }


class ProofBackend(ABC):
    """Interface the engine needs from a proving capability."""

    @abstractmethod
    def create_range_proof(self, amount: int, blinding: bytes) -> RangeProofResult:
        """Commit to `amount` under `blinding` and prove it is in range."""

    @abstractmethod
    def create_transfer_proof(
        self,
        amount: int,
        prior_amount: int,
        b_old: bytes,
        b_tr: bytes,
        b_remaining: bytes | None = None,
    ) -> TransferProofBundle:
        """
        Prove that the sender's remaining commitment equals prior minus
        amount, and that amount is in range.

        Args:
            b_old: Blinding of the sender's current commitment.
            b_tr: Fresh blinding for the transferred amount.
            b_remaining: Blinding for the sender's new commitment. The
                backend picks one when omitted.
        """


class LocalProver(ProofBackend):
    """
    In-process reference prover.

    Args:
        bit_length: Width of range proofs. Amounts must fit in it.
    """

    def __init__(self, bit_length: int = MAX_BIT_LENGTH) -> None:
        self.bit_length = bit_length

    def create_range_proof(self, amount: int, blinding: bytes) -> RangeProofResult:
        try:
            proof = prove_range(blinding_scalar(blinding), amount, self.bit_length)
        except ValueError as e:
            raise ProofGenerationFailure(f"Range proof failed: {e}") from e
        return RangeProofResult(commitment=proof.commitment_hex, proof_bytes=proof.to_bytes())

    def create_transfer_proof(
        self,
        amount: int,
        prior_amount: int,
        b_old: bytes,
        b_tr: bytes,
        b_remaining: bytes | None = None,
    ) -> TransferProofBundle:
        if amount > prior_amount:
            raise ProofGenerationFailure(
                f"Cannot prove transfer of {amount} from a balance of {prior_amount}"
            )
        try:
            r_old = blinding_scalar(b_old)
            r_tr = blinding_scalar(b_tr)
            r_rem = blinding_scalar(b_remaining or secrets.token_bytes(32))
            if (r_old - r_tr - r_rem) % SECP256K1_N == 0:
                raise ValueError("degenerate blinding combination")

            amount_proof = prove_range(r_tr, amount, self.bit_length)
            remaining_proof = prove_range(r_rem, prior_amount - amount, self.bit_length)
            balance = prove_balance(
                PedersenCommitment.commit(r_old, prior_amount),
                amount_proof.commitment_hex,
                remaining_proof.commitment_hex,
                r_old - r_tr - r_rem,
            )
        except ValueError as e:
            raise ProofGenerationFailure(f"Transfer proof failed: {e}") from e

        return TransferProofBundle(
            amount_commitment=amount_proof.commitment_hex,
            amount_proof=amount_proof.to_bytes(),
            remaining_commitment=remaining_proof.commitment_hex,
            remaining_proof=remaining_proof.to_bytes(),
            balance_equality_proof=balance.to_bytes(),
        )


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


class RemoteProver(ProofBackend):
    """
    Client for an HTTP proving service.

    Endpoints:
        POST {url}/range-proof     {"amount", "blinding"}
        POST {url}/transfer-proof  {"amount", "prior_amount", "b_old", "b_tr", "b_remaining"}

    Binary fields travel as base64; commitments as compressed-point hex.
    """

    def __init__(self, url: str, timeout: float = 60.0, client: httpx.Client | None = None) -> None:
        self.url = url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout, headers={"Content-Type": "application/json"})

    def create_range_proof(self, amount: int, blinding: bytes) -> RangeProofResult:
        data = self._post("/range-proof", {"amount": amount, "blinding": _b64(blinding)})
        try:
            return RangeProofResult(
                commitment=data["commitment"],
                proof_bytes=base64.b64decode(data["proof"]),
            )
        except (KeyError, ValueError) as e:
            raise ProofGenerationFailure(f"Malformed range proof response: {e}") from e

    def create_transfer_proof(
        self,
        amount: int,
        prior_amount: int,
        b_old: bytes,
        b_tr: bytes,
        b_remaining: bytes | None = None,
    ) -> TransferProofBundle:
        payload: dict[str, Any] = {
            "amount": amount,
            "prior_amount": prior_amount,
            "b_old": _b64(b_old),
            "b_tr": _b64(b_tr),
        }
        if b_remaining is not None:
            payload["b_remaining"] = _b64(b_remaining)
        data = self._post("/transfer-proof", payload)
        try:
            return TransferProofBundle(
                amount_commitment=data["amount_commitment"],
                amount_proof=base64.b64decode(data["amount_proof"]),
                remaining_commitment=data["remaining_commitment"],
                remaining_proof=base64.b64decode(data["remaining_proof"]),
                balance_equality_proof=base64.b64decode(data["balance_equality_proof"]),
            )
        except (KeyError, ValueError) as e:
            raise ProofGenerationFailure(f"Malformed transfer proof response: {e}") from e

    def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = self._client.post(f"{self.url}{path}", json=payload)
        except httpx.HTTPError as e:
            raise ProofGenerationFailure(f"Prover unreachable at {self.url}{path}: {e}") from e
        if response.status_code != 200:
            raise ProofGenerationFailure(f"Prover error {response.status_code}: {response.text}")
        return response.json()

    def close(self) -> None:
        self._client.close()
