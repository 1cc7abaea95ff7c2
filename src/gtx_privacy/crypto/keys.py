"""
Key derivation chain: wallet signature -> root seed -> per-index secrets.

Every function here is pure. Re-running a derivation with the same inputs
yields the same bytes, which is what lets a balance be recovered from one
signature without persisting any private key:

    root_seed      = SHA256("GridTokenX_Privacy_Root_v1:" || hex(signature))
    blinding(i)    = SHA256("GridTokenX_Blinding_Factor:{i}:" || hex(root_seed))
    encryption_key = SHA256("GridTokenX_Encryption_Key_v1:" || hex(root_seed))
"""

from __future__ import annotations

import hashlib

from gtx_privacy.crypto.pedersen import scalar_from_bytes

SEED_LENGTH = 32

ROOT_DOMAIN = "GridTokenX_Privacy_Root_v1"
BLINDING_DOMAIN = "GridTokenX_Blinding_Factor"
ENCRYPTION_DOMAIN = "GridTokenX_Encryption_Key_v1"


def _sha256_text(text: str) -> bytes:
    return hashlib.sha256(text.encode("utf-8")).digest()


def _check_seed(seed: bytes | bytearray) -> None:
    if len(seed) != SEED_LENGTH:
        raise ValueError(f"Root seed must be {SEED_LENGTH} bytes, got {len(seed)}")


def unlock_message(owner: str) -> bytes:
    """Challenge the wallet signs on unlock. Embeds the owner so the seed is bound to it."""
    return (
        "GridTokenX Privacy Access\n\n"
        "Authorize access to your confidential GridToken assets.\n"
        "Your balance will be recovered using your signature.\n\n"
        f"Wallet: {owner}"
    ).encode("utf-8")


def derive_root_seed(signature: bytes) -> bytes:
    """Hash a wallet signature into the 32-byte root seed."""
    if not signature:
        raise ValueError("Signature must be non-empty")
    return _sha256_text(f"{ROOT_DOMAIN}:{bytes(signature).hex()}")


def derive_blinding_factor(seed: bytes | bytearray, index: int) -> bytes:
    """Blinding factor for sequence index `index`."""
    _check_seed(seed)
    if index < 0:
        raise ValueError(f"Sequence index must be non-negative, got {index}")
    return _sha256_text(f"{BLINDING_DOMAIN}:{index}:{bytes(seed).hex()}")


def derive_encryption_key(seed: bytes | bytearray) -> bytes:
    """Symmetric key for the history log (doubles as the view key)."""
    _check_seed(seed)
    return _sha256_text(f"{ENCRYPTION_DOMAIN}:{bytes(seed).hex()}")


def blinding_scalar(blinding: bytes) -> int:
    """Blinding factor bytes as a commitment scalar."""
    return scalar_from_bytes(blinding)
