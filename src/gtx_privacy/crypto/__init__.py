"""
gtx_privacy.crypto: key hierarchy and proof primitives.

Provides:
- Deterministic key derivation from one wallet signature
- Pedersen Commitments (C = rG + amount*H) with a NUMS generator
- Bit-decomposition range proofs and Schnorr balance proofs
- The proof backend boundary (local and remote)
- Nullifier generation
"""

from gtx_privacy.crypto.keys import (
    blinding_scalar,
    derive_blinding_factor,
    derive_encryption_key,
    derive_root_seed,
    unlock_message,
)
from gtx_privacy.crypto.nullifier import NullifierGuard
from gtx_privacy.crypto.pedersen import (
    G_COMPRESSED,
    NUMS_H,
    PedersenCommitment,
    decode_point,
    encode_point,
    find_committed_amount,
    hash_to_curve,
)
from gtx_privacy.crypto.prover import (
    LocalProver,
    ProofBackend,
    ProofGenerationFailure,
    RangeProofResult,
    RemoteProver,
    TransferProofBundle,
)
from gtx_privacy.crypto.range_proof import (
    BalanceProof,
    RangeProof,
    prove_balance,
    prove_range,
    verify_balance,
    verify_range,
)

__all__ = [
    # Keys
    "blinding_scalar",
    "derive_blinding_factor",
    "derive_encryption_key",
    "derive_root_seed",
    "unlock_message",
    # Pedersen
    "NUMS_H",
    "G_COMPRESSED",
    "PedersenCommitment",
    "decode_point",
    "encode_point",
    "find_committed_amount",
    "hash_to_curve",
    # Range Proofs
    "RangeProof",
    "BalanceProof",
    "prove_range",
    "verify_range",
    "prove_balance",
    "verify_balance",
    # Proof boundary
    "LocalProver",
    "ProofBackend",
    "ProofGenerationFailure",
    "RangeProofResult",
    "RemoteProver",
    "TransferProofBundle",
    "NullifierGuard",
]
