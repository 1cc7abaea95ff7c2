"""
Reference range and balance-equality proofs over Pedersen Commitments.

Provides:
- RangeProof: bit-decomposition proof that C hides a value in [0, 2^n)
- BalanceProof: Schnorr proof that C_old - C_amount - C_remaining is a
  pure G-multiple, i.e. the transfer conserves value

These back the LocalProver. A production deployment plugs a real
zero-knowledge backend into the same ProofBackend interface; the engine
never inspects proof bytes.

Conservation:
    C_old       = b_old·G + v_old·H
    C_amount    = b_tr ·G + v    ·H
    C_remaining = b_rem·G + (v_old - v)·H
    D = C_old - C_amount - C_remaining = (b_old - b_tr - b_rem)·G

References:
    [Bun18] B. Bünz et al., "Bulletproofs", 2018 IEEE S&P, §4.2.
    [Sch91] C.P. Schnorr, "Efficient Signature Generation by Smart Cards".
"""

from __future__ import annotations

import hashlib
import secrets
from dataclasses import dataclass

from gtx_privacy.crypto.pedersen import (
    _GENERATOR,
    SECP256K1_N,
    PedersenCommitment,
    decode_point,
    encode_point,
)

MAX_BIT_LENGTH = 64
"""Widest range supported (64-bit unsigned amounts)."""

_POINT_LEN = 33
_HASH_LEN = 32


def _random_scalar() -> int:
    return secrets.randbelow(SECP256K1_N - 1) + 1


# ==============================================================================
# Range Proof
# ==============================================================================


@dataclass(frozen=True)
class RangeProof:
    """
    Attests that commitment_hex hides a value in [0, 2^bit_length).

    Attributes:
        commitment_hex: The Pedersen Commitment C = r·G + v·H.
        bit_commitments: Per-bit commitments C_i with Σ 2^i·C_i == C.
        proof_hash: SHA-256 digest binding the bits to C.
    """
    commitment_hex: str
    bit_commitments: list[str]
    proof_hash: str

    @property
    def bit_length(self) -> int:
        return len(self.bit_commitments)

    def to_bytes(self) -> bytes:
        """Wire form: bit commitments (33 bytes each) followed by the 32-byte hash."""
        return b"".join(bytes.fromhex(c) for c in self.bit_commitments) + bytes.fromhex(self.proof_hash)

    @classmethod
    def from_bytes(cls, commitment_hex: str, raw: bytes) -> RangeProof:
        body_len = len(raw) - _HASH_LEN
        if body_len <= 0 or body_len % _POINT_LEN:
            raise ValueError(f"Malformed range proof of {len(raw)} bytes")
        bits = [
            raw[i:i + _POINT_LEN].hex()
            for i in range(0, body_len, _POINT_LEN)
        ]
        return cls(commitment_hex=commitment_hex, bit_commitments=bits, proof_hash=raw[body_len:].hex())


def _range_hash(commitment_hex: str, bit_commitments: list[str]) -> str:
    hasher = hashlib.sha256()
    hasher.update(bytes.fromhex(commitment_hex))
    for bc in bit_commitments:
        hasher.update(bytes.fromhex(bc))
    return hasher.hexdigest()


def prove_range(blinding_factor: int, value: int, bit_length: int = MAX_BIT_LENGTH) -> RangeProof:
    """
    Prove value ∈ [0, 2^bit_length) for C = r·G + value·H.

    Per-bit blindings are random except the last, which absorbs the
    remainder so that Σ 2^i·r_i == r (mod N).

    Raises:
        ValueError: If value is out of range or blinding_factor is invalid.
    """
    if not 0 < bit_length <= MAX_BIT_LENGTH:
        raise ValueError(f"bit_length must be in [1, {MAX_BIT_LENGTH}], got {bit_length}")
    if value < 0 or value >= (1 << bit_length):
        raise ValueError(f"Value {value} out of range [0, 2^{bit_length})")
    if blinding_factor <= 0 or blinding_factor >= SECP256K1_N:
        raise ValueError("Blinding factor out of range [1, N-1]")

    commitment = PedersenCommitment.commit(blinding_factor, value)

    bit_blindings: list[int] = []
    remaining_r = blinding_factor
    for i in range(bit_length - 1):
        ri = _random_scalar()
        bit_blindings.append(ri)
        remaining_r = (remaining_r - ri * (1 << i)) % SECP256K1_N
    last_power_inv = pow(1 << (bit_length - 1), SECP256K1_N - 2, SECP256K1_N)
    r_last = (remaining_r * last_power_inv) % SECP256K1_N
    if r_last == 0:
        # Negligible; retry with fresh randomness.
        return prove_range(blinding_factor, value, bit_length)
    bit_blindings.append(r_last)

    bit_commitments = [
        PedersenCommitment.commit(bit_blindings[i], (value >> i) & 1)
        for i in range(bit_length)
    ]

    return RangeProof(
        commitment_hex=commitment,
        bit_commitments=bit_commitments,
        proof_hash=_range_hash(commitment, bit_commitments),
    )


def verify_range(proof: RangeProof) -> bool:
    """Check the hash binding and that Σ 2^i·C_i equals the commitment."""
    if not proof.bit_commitments:
        return False
    if _range_hash(proof.commitment_hex, proof.bit_commitments) != proof.proof_hash:
        return False
    try:
        weighted_sum = None
        for i, bc_hex in enumerate(proof.bit_commitments):
            weighted = (1 << i) * decode_point(bc_hex)
            weighted_sum = weighted if weighted_sum is None else weighted_sum + weighted
        return encode_point(weighted_sum) == proof.commitment_hex.lower()
    except ValueError:
        return False


# ==============================================================================
# Balance Proof (value conservation)
# ==============================================================================


@dataclass(frozen=True)
class BalanceProof:
    """
    Schnorr proof of knowledge of Δr with D = Δr·G, where
    D = C_old - C_amount - C_remaining.

    Attributes:
        residual_hex: The residual point D.
        nonce_hex: Schnorr nonce commitment R = k·G.
        response: s = k + e·Δr mod N.
    """
    residual_hex: str
    nonce_hex: str
    response: int

    def to_bytes(self) -> bytes:
        return bytes.fromhex(self.residual_hex) + bytes.fromhex(self.nonce_hex) + self.response.to_bytes(32, "big")

    @classmethod
    def from_bytes(cls, raw: bytes) -> BalanceProof:
        if len(raw) != 2 * _POINT_LEN + 32:
            raise ValueError(f"Malformed balance proof of {len(raw)} bytes")
        return cls(
            residual_hex=raw[:_POINT_LEN].hex(),
            nonce_hex=raw[_POINT_LEN:2 * _POINT_LEN].hex(),
            response=int.from_bytes(raw[2 * _POINT_LEN:], "big"),
        )


def _challenge(residual_hex: str, nonce_hex: str, commitments: list[str]) -> int:
    hasher = hashlib.sha256(b"GridTokenX_Balance_Proof_v1")
    hasher.update(bytes.fromhex(residual_hex))
    hasher.update(bytes.fromhex(nonce_hex))
    for c in commitments:
        hasher.update(bytes.fromhex(c))
    return int.from_bytes(hasher.digest(), "big") % SECP256K1_N


def prove_balance(
    old_commitment: str,
    amount_commitment: str,
    remaining_commitment: str,
    delta_r: int,
) -> BalanceProof:
    """
    Prove old = amount + remaining in value.

    Args:
        delta_r: b_old - b_tr - b_rem (mod N), the discrete log of D.

    Raises:
        ValueError: If delta_r is zero (D would be the identity).
    """
    delta_r %= SECP256K1_N
    if delta_r == 0:
        raise ValueError("Residual blinding is zero; choose a different remaining blinding")
    residual = PedersenCommitment.subtract(
        PedersenCommitment.subtract(old_commitment, amount_commitment),
        remaining_commitment,
    )
    k = _random_scalar()
    nonce_hex = encode_point(k * _GENERATOR)
    e = _challenge(residual, nonce_hex, [old_commitment, amount_commitment, remaining_commitment])
    return BalanceProof(residual_hex=residual, nonce_hex=nonce_hex, response=(k + e * delta_r) % SECP256K1_N)


def verify_balance(
    proof: BalanceProof,
    old_commitment: str,
    amount_commitment: str,
    remaining_commitment: str,
) -> bool:
    """Check D matches the commitments and s·G == R + e·D."""
    try:
        expected = PedersenCommitment.subtract(
            PedersenCommitment.subtract(old_commitment, amount_commitment),
            remaining_commitment,
        )
        if expected != proof.residual_hex:
            return False
        e = _challenge(proof.residual_hex, proof.nonce_hex, [old_commitment, amount_commitment, remaining_commitment])
        lhs = proof.response * _GENERATOR
        rhs = decode_point(proof.nonce_hex) + e * decode_point(proof.residual_hex)
        return encode_point(lhs) == encode_point(rhs)
    except ValueError:
        return False
