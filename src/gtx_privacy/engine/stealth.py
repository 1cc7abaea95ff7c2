"""
Stealth link codec.

A stealth link is a bearer token: {amount, blinding, tx_counter} sealed with
AES-256-GCM under a key derived from a random one-time passcode, with the
passcode embedded next to the ciphertext:

    link = urlsafe_b64(JSON{"v": 1, "p": passcode_hex, "n": nonce_b64, "d": ct_b64})
    key  = SHA256("GridTokenX_Stealth_v1:" || passcode_hex)

Whoever holds the string can open it. Single redemption is enforced by the
engine's claim registry, not by the codec.
"""

from __future__ import annotations

import base64
import hashlib
import json
import secrets
from dataclasses import dataclass

from Crypto.Cipher import AES

from gtx_privacy.errors import PrivacyError

LINK_VERSION = 1
PASSCODE_BYTES = 16
STEALTH_DOMAIN = "GridTokenX_Stealth_v1"


class StealthLinkError(PrivacyError):
    """The link is malformed, corrupted or already claimed."""
    pass


@dataclass(frozen=True)
class StealthPayload:
    amount: int
    blinding: str
    tx_counter: int
    key: bytes = b""

    @property
    def blinding_bytes(self) -> bytes:
        return bytes.fromhex(self.blinding)

    @property
    def claim_id(self) -> str:
        """Stable identifier of this link's secret, used to refuse a second claim."""
        return hashlib.sha256(
            f"GridTokenX_Stealth_Claim:{self.tx_counter}:{self.blinding}".encode("utf-8")
        ).hexdigest()


def passcode_key(passcode: str) -> bytes:
    return hashlib.sha256(f"{STEALTH_DOMAIN}:{passcode}".encode("utf-8")).digest()


def create_stealth_link(amount: int, blinding: bytes, tx_counter: int) -> str:
    """Seal a claimable secret into a portable string."""
    if amount <= 0:
        raise ValueError(f"Stealth link amount must be positive, got {amount}")
    passcode = secrets.token_hex(PASSCODE_BYTES)
    body = json.dumps({"amount": amount, "blinding": blinding.hex(), "txCounter": tx_counter})

    nonce = secrets.token_bytes(12)
    cipher = AES.new(passcode_key(passcode), AES.MODE_GCM, nonce=nonce)
    ciphertext, tag = cipher.encrypt_and_digest(body.encode("utf-8"))

    package = {
        "v": LINK_VERSION,
        "p": passcode,
        "n": base64.b64encode(nonce).decode("ascii"),
        "d": base64.b64encode(ciphertext + tag).decode("ascii"),
    }
    return base64.urlsafe_b64encode(json.dumps(package).encode("utf-8")).decode("ascii")


def parse_stealth_link(encoded: str) -> StealthPayload:
    """
    Raises:
        StealthLinkError: If the link cannot be decoded or authenticated.
    """
    try:
        package = json.loads(base64.urlsafe_b64decode(encoded.strip().encode("ascii")))
        if package.get("v") != LINK_VERSION:
            raise ValueError(f"unsupported version {package.get('v')!r}")
        key = passcode_key(package["p"])
        nonce = base64.b64decode(package["n"])
        sealed = base64.b64decode(package["d"])
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        body = cipher.decrypt_and_verify(sealed[:-16], sealed[-16:])
        data = json.loads(body)
        payload = StealthPayload(
            amount=int(data["amount"]),
            blinding=data["blinding"],
            tx_counter=int(data["txCounter"]),
            key=key,
        )
        if len(payload.blinding_bytes) != 32 or payload.amount <= 0:
            raise ValueError("payload out of range")
        return payload
    except (ValueError, KeyError, TypeError, AttributeError, UnicodeError) as e:
        raise StealthLinkError("Invalid or corrupted stealth link") from e
