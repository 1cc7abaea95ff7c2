"""
InstructionBuilder: ledger instruction payloads for each operation kind.

The builder only shapes data. It never derives keys or talks to the
ledger; PrivacyEngine feeds it commitments, proofs and nullifiers and
hands the result to a LedgerClient.

Instruction format:
    {
        "instruction": "shield" | "privateTransfer" | "unshield" | "settleRollup",
        "accounts": {"owner": ..., "asset": ..., ...},
        "args": {...}
    }
Binary values travel as lowercase hex.
"""

from __future__ import annotations

from typing import Any

from gtx_privacy.core.wallet import validate_identity
from gtx_privacy.crypto.prover import TransferProofBundle


class InstructionBuilderError(ValueError):
    pass


class InstructionBuilder:
    """
    Usage:
        ix = InstructionBuilder(owner, asset).shield(500, commitment, proof)
        receipt = ledger.submit(ix)
    """

    def __init__(self, owner: str, asset: str) -> None:
        self.owner = validate_identity(owner)
        if not asset:
            raise InstructionBuilderError("asset is required")
        self.asset = asset

    def _accounts(self, **extra: str) -> dict[str, str]:
        return {"owner": self.owner, "asset": self.asset, **extra}

    def shield(self, amount: int, commitment: str, proof: bytes, expected_counter: int | None = None) -> dict[str, Any]:
        if amount <= 0:
            raise InstructionBuilderError(f"Shield amount must be positive, got {amount}")
        return {
            "instruction": "shield",
            "accounts": self._accounts(),
            "args": {
                "amount": amount,
                "commitment": commitment,
                "proof": proof.hex(),
                "expected_counter": expected_counter,
            },
        }

    def private_transfer(
        self,
        recipient: str,
        expected_counter: int,
        bundle: TransferProofBundle,
        nullifier: bytes,
    ) -> dict[str, Any]:
        return {
            "instruction": "privateTransfer",
            "accounts": self._accounts(recipient=validate_identity(recipient)),
            "args": {
                "expected_counter": expected_counter,
                "sender_commitment": bundle.remaining_commitment,
                "recipient_commitment": bundle.amount_commitment,
                "proof_bundle": bundle.to_dict(),
                "nullifier": nullifier.hex(),
            },
        }

    def unshield(
        self,
        amount: int,
        expected_counter: int,
        bundle: TransferProofBundle,
        nullifier: bytes,
        token_account: str | None = None,
    ) -> dict[str, Any]:
        if amount <= 0:
            raise InstructionBuilderError(f"Unshield amount must be positive, got {amount}")
        return {
            "instruction": "unshield",
            "accounts": self._accounts(token_account=validate_identity(token_account) if token_account else self.owner),
            "args": {
                "amount": amount,
                "expected_counter": expected_counter,
                "sender_commitment": bundle.remaining_commitment,
                "proof_bundle": bundle.to_dict(),
                "nullifier": nullifier.hex(),
            },
        }

    def settle_rollup(self, aggregate_proof: bytes, operations: list[dict[str, Any]]) -> dict[str, Any]:
        if not operations:
            raise InstructionBuilderError("Rollup needs at least one operation")
        return {
            "instruction": "settleRollup",
            "accounts": self._accounts(),
            "args": {"aggregate_proof": aggregate_proof.hex(), "operations": operations},
        }
