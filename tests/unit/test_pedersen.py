"""
Unit tests for gtx_privacy.crypto.pedersen: Pedersen Commitments & NUMS generation.

All tests are pure math: no network, no mocks, no external dependencies
beyond the ecdsa library.
"""

import secrets

import pytest

from gtx_privacy.crypto.pedersen import (
    G_COMPRESSED,
    NUMS_H,
    SECP256K1_N,
    SECP256K1_P,
    PedersenCommitment,
    decode_point,
    encode_point,
    find_committed_amount,
    hash_to_curve,
    scalar_from_bytes,
)


def _random_r() -> int:
    return secrets.randbelow(SECP256K1_N - 1) + 1


# ==============================================================================
# hash_to_curve tests
# ==============================================================================


class TestHashToCurve:
    """Tests for the NUMS generator derivation."""

    def test_deterministic(self):
        assert hash_to_curve(G_COMPRESSED) == hash_to_curve(G_COMPRESSED)

    def test_on_curve(self):
        """Output point must satisfy y² = x³ + 7 mod p."""
        pt = decode_point(NUMS_H)
        x, y = pt.x(), pt.y()
        assert (y * y) % SECP256K1_P == (pow(x, 3, SECP256K1_P) + 7) % SECP256K1_P

    def test_not_generator(self):
        """H must not equal G (would break binding property)."""
        assert NUMS_H != G_COMPRESSED

    def test_domain_separation(self):
        assert hash_to_curve(G_COMPRESSED, domain=b"other-domain") != NUMS_H

    def test_invalid_seed_length(self):
        with pytest.raises(ValueError, match="33 bytes"):
            hash_to_curve("0279be667ef9dcbbac")


# ==============================================================================
# Point encode/decode tests
# ==============================================================================


class TestPointCodec:

    def test_roundtrip_generator(self):
        assert encode_point(decode_point(G_COMPRESSED)) == G_COMPRESSED

    def test_roundtrip_random_point(self):
        pt = _random_r() * decode_point(G_COMPRESSED)
        pt2 = decode_point(encode_point(pt))
        assert pt2.x() == pt.x() and pt2.y() == pt.y()

    def test_decode_invalid_prefix(self):
        with pytest.raises(ValueError, match="Invalid prefix"):
            decode_point("04" + "aa" * 32)

    def test_decode_wrong_length(self):
        with pytest.raises(ValueError, match="33 bytes"):
            decode_point("02aabb")


# ==============================================================================
# PedersenCommitment tests
# ==============================================================================


class TestPedersenCommitment:

    def test_commit_produces_valid_point(self):
        C = PedersenCommitment.commit(_random_r(), 100)
        assert len(C) == 66
        assert C[:2] in ("02", "03")
        decode_point(C)

    def test_verify_roundtrip(self):
        r = _random_r()
        C = PedersenCommitment.commit(r, 500)
        assert PedersenCommitment.verify(C, r, 500) is True

    def test_verify_wrong_amount(self):
        """Changing the amount by even 1 must fail verification."""
        r = _random_r()
        C = PedersenCommitment.commit(r, 100)
        assert PedersenCommitment.verify(C, r, 99) is False
        assert PedersenCommitment.verify(C, r, 101) is False

    def test_verify_wrong_blinding(self):
        r = secrets.randbelow(SECP256K1_N - 2) + 1
        C = PedersenCommitment.commit(r, 100)
        assert PedersenCommitment.verify(C, r + 1, 100) is False

    def test_zero_amount_commit(self):
        """commit(r, 0) should equal r·G (no H component)."""
        r = _random_r()
        assert PedersenCommitment.commit(r, 0) == encode_point(r * decode_point(G_COMPRESSED))

    def test_homomorphic_addition(self):
        r1, r2 = _random_r(), _random_r()
        C_sum = PedersenCommitment.add(PedersenCommitment.commit(r1, 50), PedersenCommitment.commit(r2, 75))
        assert C_sum == PedersenCommitment.commit((r1 + r2) % SECP256K1_N, 125)

    def test_homomorphic_subtraction(self):
        """A 500 kWh balance minus a 200 kWh transfer commits to 300 under r1 - r2."""
        r2 = secrets.randbelow(SECP256K1_N // 2) + 1
        r1 = r2 + secrets.randbelow(SECP256K1_N // 2 - 1) + 1
        diff = PedersenCommitment.subtract(PedersenCommitment.commit(r1, 500), PedersenCommitment.commit(r2, 200))
        assert diff == PedersenCommitment.commit(r1 - r2, 300)

    def test_commit_rejects_zero_blinding(self):
        with pytest.raises(ValueError, match="blinding_factor"):
            PedersenCommitment.commit(0, 100)

    def test_commit_rejects_negative_amount(self):
        with pytest.raises(ValueError, match="non-negative"):
            PedersenCommitment.commit(_random_r(), -1)


# ==============================================================================
# Scalars & amount search
# ==============================================================================


class TestScalarFromBytes:

    def test_in_range(self):
        r = scalar_from_bytes(secrets.token_bytes(32))
        assert 0 < r < SECP256K1_N

    def test_wrong_length(self):
        with pytest.raises(ValueError, match="32 bytes"):
            scalar_from_bytes(b"\x01" * 16)

    def test_zero_rejected(self):
        with pytest.raises(ValueError, match="zero"):
            scalar_from_bytes(bytes(32))

    def test_order_reduces_to_zero(self):
        with pytest.raises(ValueError, match="zero"):
            scalar_from_bytes(SECP256K1_N.to_bytes(32, "big"))


class TestFindCommittedAmount:

    def test_finds_amount(self):
        r = _random_r()
        assert find_committed_amount(PedersenCommitment.commit(r, 321), r, 1000) == 321

    def test_finds_zero(self):
        r = _random_r()
        assert find_committed_amount(PedersenCommitment.commit(r, 0), r, 10) == 0

    def test_beyond_bound_returns_none(self):
        r = _random_r()
        assert find_committed_amount(PedersenCommitment.commit(r, 50), r, 49) is None

    def test_wrong_blinding_returns_none(self):
        r = _random_r()
        C = PedersenCommitment.commit(r, 5)
        assert find_committed_amount(C, (r + 1) % SECP256K1_N or 1, 100) is None
