"""
UnlockedSession: the in-memory holder of the root seed.

A session is created by `unlock()` from one wallet signature and destroyed
by `lock()`, which zeroes the seed. It is passed explicitly into every
engine call; there is no module-level session.

A session opened from an exported view key carries only the encryption
key. It can decrypt history but cannot authorize any operation.
"""

from __future__ import annotations

import logging

from gtx_privacy.core.wallet import Signer, validate_identity
from gtx_privacy.crypto.keys import (
    SEED_LENGTH,
    derive_blinding_factor,
    derive_encryption_key,
    derive_root_seed,
    unlock_message,
)
from gtx_privacy.errors import ReadOnlySession, SessionLocked

logger = logging.getLogger("gtx_privacy.session")


class UnlockedSession:
    """
    Usage:
        session = UnlockedSession.unlock(signer)
        bf = session.blinding_factor(3)
        session.lock()
    """

    def __init__(self, owner: str, root_seed: bytes | None, encryption_key: bytes) -> None:
        self.owner = validate_identity(owner)
        self._seed = bytearray(root_seed) if root_seed is not None else None
        self._encryption_key = bytearray(encryption_key)
        self._locked = False

    @classmethod
    def unlock(cls, signer: Signer) -> UnlockedSession:
        owner = validate_identity(signer.identity)
        signature = signer.sign_message(unlock_message(owner))
        seed = derive_root_seed(signature)
        logger.info(f"Privacy session unlocked for {owner[:12]}...")
        return cls(owner, seed, derive_encryption_key(seed))

    @classmethod
    def from_view_key(cls, owner: str, view_key_hex: str) -> UnlockedSession:
        """
        Open a read-only session from an exported view key.

        Raises:
            ValueError: If the key is not 32 bytes of hex.
        """
        key = bytes.fromhex(view_key_hex)
        if len(key) != SEED_LENGTH:
            raise ValueError(f"View key must be {SEED_LENGTH} bytes, got {len(key)}")
        return cls(owner, None, key)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_locked(self) -> bool:
        return self._locked

    @property
    def read_only(self) -> bool:
        return self._seed is None

    def lock(self) -> None:
        """Zero all key material. The session cannot be reused."""
        if self._seed is not None:
            self._seed[:] = bytes(len(self._seed))
        self._encryption_key[:] = bytes(len(self._encryption_key))
        self._seed = None
        self._locked = True
        logger.info(f"Privacy session locked for {self.owner[:12]}...")

    def require_readable(self) -> None:
        if self._locked:
            raise SessionLocked("Privacy session is locked")

    def require_writable(self) -> None:
        self.require_readable()
        if self._seed is None:
            raise ReadOnlySession("Session was opened with a view key and cannot sign operations")

    # ------------------------------------------------------------------
    # Key access
    # ------------------------------------------------------------------

    @property
    def encryption_key(self) -> bytes:
        self.require_readable()
        return bytes(self._encryption_key)

    def blinding_factor(self, index: int) -> bytes:
        self.require_writable()
        return derive_blinding_factor(self._seed, index)

    def export_view_key(self) -> str:
        return self.encryption_key.hex()

    def __repr__(self) -> str:
        state = "locked" if self._locked else "read-only" if self.read_only else "unlocked"
        return f"UnlockedSession(owner={self.owner!r}, state={state!r})"
