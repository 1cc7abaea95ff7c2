"""
Wallet: the signing collaborator used to unlock the privacy session.

The engine asks the wallet for exactly one signature per unlock, over a
challenge that embeds the owner identity. Private keys never leave this
module; the engine only sees the identity string and the signature.

Signatures must be deterministic (same key + same message -> same bytes),
otherwise the derived root seed would change on every unlock.
"""

from __future__ import annotations

import hashlib
import re
from abc import ABC, abstractmethod

import ecdsa
from ecdsa.util import sigencode_string

from gtx_privacy.errors import InvalidIdentity, PrivacyError

_HEX_IDENTITY_RE = re.compile(r"^0[23][0-9a-f]{64}$")
_BASE58_IDENTITY_RE = re.compile(r"^[1-9A-HJ-NP-Za-km-z]{32,44}$")


class WalletError(PrivacyError):
    pass


def is_valid_identity(identity: str) -> bool:
    """Compressed secp256k1 public key (hex) or a base58 account address."""
    if not identity or not isinstance(identity, str):
        return False
    return bool(_HEX_IDENTITY_RE.match(identity) or _BASE58_IDENTITY_RE.match(identity))


def validate_identity(identity: str) -> str:
    """
    Raises:
        InvalidIdentity: If the identity is not a well-formed address.
    """
    if not is_valid_identity(identity):
        raise InvalidIdentity(f"Invalid wallet address: {identity!r}")
    return identity


class Signer(ABC):
    """Anything that can sign the unlock challenge for an identity."""

    @property
    @abstractmethod
    def identity(self) -> str:
        ...

    @abstractmethod
    def sign_message(self, message: bytes) -> bytes:
        ...


class LocalSigner(Signer):
    """
    secp256k1 signer holding a key in memory.

    Uses RFC 6979 deterministic nonces, so unlocking twice with the same key
    yields the same root seed.

    Usage:
        signer = LocalSigner.generate()
        signer = LocalSigner.from_secret_hex("11" * 32)
    """

    def __init__(self, signing_key: ecdsa.SigningKey) -> None:
        self._key = signing_key
        self._identity = signing_key.get_verifying_key().to_string("compressed").hex()

    @classmethod
    def generate(cls) -> LocalSigner:
        return cls(ecdsa.SigningKey.generate(curve=ecdsa.SECP256k1, hashfunc=hashlib.sha256))

    @classmethod
    def from_secret_hex(cls, secret_hex: str) -> LocalSigner:
        try:
            raw = bytes.fromhex(secret_hex)
            return cls(ecdsa.SigningKey.from_string(raw, curve=ecdsa.SECP256k1, hashfunc=hashlib.sha256))
        except (ValueError, ecdsa.MalformedPointError) as e:
            raise WalletError(f"Invalid secret key: {e}") from e

    @property
    def identity(self) -> str:
        return self._identity

    def sign_message(self, message: bytes) -> bytes:
        return self._key.sign_deterministic(message, sigencode=sigencode_string)

    def verify(self, message: bytes, signature: bytes) -> bool:
        try:
            return self._key.get_verifying_key().verify(signature, message)
        except ecdsa.BadSignatureError:
            return False

    def __repr__(self) -> str:
        return f"LocalSigner(identity={self._identity!r})"
