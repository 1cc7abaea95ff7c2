"""
Pedersen Commitments over secp256k1 for the shielded energy balance.

Provides:
- hash_to_curve: NUMS secondary generator derivation (domain separated)
- PedersenCommitment: commit / verify / homomorphic add and subtract
- find_committed_amount: bounded search used by the balance recovery path
- Point encode/decode utilities for compressed secp256k1 points

Mathematical foundation:
    C = r·G + amount·H
    where H = hash_to_curve("GridTokenX_Pedersen_H_v1" || G) has no known
    discrete log with respect to G. The ledger only ever stores C.

References:
    [Ped91] T.P. Pedersen, "Non-Interactive and Information-Theoretic Secure
            Verifiable Secret Sharing", CRYPTO '91, §3.
    [H2C]   IETF draft-irtf-cfrg-hash-to-curve, §5 (try-and-increment method).
"""

from __future__ import annotations

import hashlib

import ecdsa
import ecdsa.ellipticcurve as ec

# ==============================================================================
# secp256k1 curve constants
# ==============================================================================

# Field prime
SECP256K1_P = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEFFFFFC2F

# Group order
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Generator point (compressed)
G_COMPRESSED = "0279be667ef9dcbbac55a06295ce870b07029bfcdb2dce28d959f2815b16f81798"

H_DOMAIN = b"GridTokenX_Pedersen_H_v1"

_CURVE = ecdsa.SECP256k1.curve
_GENERATOR = ecdsa.SECP256k1.generator


# ==============================================================================
# Point utilities
# ==============================================================================


def decode_point(hex_str: str) -> ec.PointJacobi:
    """
    Decode a 33-byte compressed secp256k1 point.

    Raises:
        ValueError: If the hex string is malformed or not on the curve.
    """
    raw = bytes.fromhex(hex_str)
    if len(raw) != 33:
        raise ValueError(f"Expected 33 bytes, got {len(raw)}")
    prefix = raw[0]
    if prefix not in (0x02, 0x03):
        raise ValueError(f"Invalid prefix byte: 0x{prefix:02x}")

    x = int.from_bytes(raw[1:], "big")
    y_sq = (pow(x, 3, SECP256K1_P) + 7) % SECP256K1_P
    y = pow(y_sq, (SECP256K1_P + 1) // 4, SECP256K1_P)
    if (y * y) % SECP256K1_P != y_sq:
        raise ValueError(f"X coordinate 0x{x:064x} does not correspond to a curve point")

    if (y % 2 == 0) != (prefix == 0x02):
        y = SECP256K1_P - y

    return ec.PointJacobi(_CURVE, x, y, 1)


def encode_point(pt: ec.AbstractPoint) -> str:
    """
    Encode a point as 66-char compressed hex.

    Raises:
        ValueError: If the point is the identity.
    """
    if pt == ec.INFINITY:
        raise ValueError("Cannot encode the point at infinity")
    prefix = b"\x02" if pt.y() % 2 == 0 else b"\x03"
    return (prefix + pt.x().to_bytes(32, "big")).hex()


def hash_to_curve(seed_point_hex: str, domain: bytes = H_DOMAIN) -> str:
    """
    Derive a NUMS generator from a seed point by try-and-increment.

        1. x = int(SHA256(domain || seed_bytes)) mod p
        2. while x³+7 is not a quadratic residue mod p: x += 1
        3. take the even-y point (0x02 prefix)

    Args:
        seed_point_hex: 66-char compressed hex of the seed generator.
        domain: Domain-separation tag mixed into the hash.

    Returns:
        66-char compressed hex of the derived point.
    """
    seed_bytes = bytes.fromhex(seed_point_hex)
    if len(seed_bytes) != 33:
        raise ValueError(f"Seed point must be 33 bytes, got {len(seed_bytes)}")

    digest = hashlib.sha256(domain + seed_bytes).digest()
    x = int.from_bytes(digest, "big") % SECP256K1_P

    for _ in range(1000):
        y_sq = (pow(x, 3, SECP256K1_P) + 7) % SECP256K1_P
        # Euler criterion
        if pow(y_sq, (SECP256K1_P - 1) // 2, SECP256K1_P) == 1:
            return (b"\x02" + x.to_bytes(32, "big")).hex()
        x = (x + 1) % SECP256K1_P

    raise RuntimeError("hash_to_curve: failed to find a valid point in 1000 iterations")


NUMS_H = hash_to_curve(G_COMPRESSED)
"""Secondary generator H used for every balance commitment."""

_H_POINT = decode_point(NUMS_H)


def scalar_from_bytes(raw: bytes) -> int:
    """
    Interpret 32 bytes of key material as a scalar in [1, N-1].

    Raises:
        ValueError: If the input is not 32 bytes or reduces to zero.
    """
    if len(raw) != 32:
        raise ValueError(f"Blinding factor must be 32 bytes, got {len(raw)}")
    r = int.from_bytes(raw, "big") % SECP256K1_N
    if r == 0:
        raise ValueError("Blinding factor reduces to zero mod N")
    return r


# ==============================================================================
# PedersenCommitment
# ==============================================================================


class PedersenCommitment:
    """
    Pedersen Commitment scheme over secp256k1.

    A commitment C = r·G + amount·H is hiding, binding and additively
    homomorphic: C1 + C2 commits to (a1 + a2) under (r1 + r2).
    """

    @staticmethod
    def commit(blinding_factor: int, amount: int) -> str:
        """
        Create C = r·G + amount·H.

        Raises:
            ValueError: If blinding_factor is out of range or amount is negative.
        """
        if blinding_factor <= 0 or blinding_factor >= SECP256K1_N:
            raise ValueError(f"blinding_factor must be in [1, N-1], got {blinding_factor}")
        if amount < 0:
            raise ValueError(f"amount must be non-negative, got {amount}")

        C = blinding_factor * _GENERATOR
        if amount:
            C = C + amount * _H_POINT
        return encode_point(C)

    @staticmethod
    def verify(commitment_hex: str, blinding_factor: int, amount: int) -> bool:
        """Check that C == r·G + amount·H."""
        try:
            return PedersenCommitment.commit(blinding_factor, amount) == commitment_hex.lower()
        except ValueError:
            return False

    @staticmethod
    def add(a_hex: str, b_hex: str) -> str:
        """Homomorphic sum of two commitments."""
        return encode_point(decode_point(a_hex) + decode_point(b_hex))

    @staticmethod
    def subtract(a_hex: str, b_hex: str) -> str:
        """Homomorphic difference a - b."""
        return encode_point(decode_point(a_hex) + (-decode_point(b_hex)))


def find_committed_amount(commitment_hex: str, blinding_factor: int, max_search: int) -> int | None:
    """
    Search amount in [0, max_search] such that C == r·G + amount·H.

    Walks C - r·G down by H one step at a time, so the cost is one point
    addition per candidate. Returns None when no amount in range matches.
    """
    target = decode_point(commitment_hex) + (-(blinding_factor * _GENERATOR))
    if target == ec.INFINITY:
        return 0
    acc = ec.INFINITY
    for amount in range(1, max_search + 1):
        acc = acc + _H_POINT
        if acc == target:
            return amount
    return None
