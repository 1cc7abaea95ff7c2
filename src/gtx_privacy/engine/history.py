"""
Encrypted history log.

Each entry is JSON, sealed with AES-256-GCM under the session's encryption
key and stored as base64(nonce || ciphertext || tag) in an append-only list.
Loading skips entries that fail to decrypt instead of failing the whole load,
so a wrong key simply yields no entries.
"""

from __future__ import annotations

import base64
import json
import logging
import os
import time
from typing import Any

from Crypto.Cipher import AES

from gtx_privacy.core.models import HistoryEntry
from gtx_privacy.core.store import HISTORY_PREFIX, KeyValueStore, namespaced
from gtx_privacy.errors import PrivacyError

logger = logging.getLogger("gtx_privacy.history")

NONCE_LENGTH = 12
TAG_LENGTH = 16


class DecryptionFailure(PrivacyError):
    """One history blob could not be decrypted (wrong key or corrupted)."""
    pass


def encrypt_blob(data: dict[str, Any], key: bytes) -> str:
    nonce = os.urandom(NONCE_LENGTH)
    cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
    ciphertext, tag = cipher.encrypt_and_digest(json.dumps(data).encode("utf-8"))
    return base64.b64encode(nonce + ciphertext + tag).decode("ascii")


def decrypt_blob(blob: str, key: bytes) -> dict[str, Any]:
    """
    Raises:
        DecryptionFailure: On a wrong key, tampering or malformed input.
    """
    try:
        raw = base64.b64decode(blob)
        if len(raw) < NONCE_LENGTH + TAG_LENGTH:
            raise ValueError("blob too short")
        nonce, body = raw[:NONCE_LENGTH], raw[NONCE_LENGTH:]
        cipher = AES.new(key, AES.MODE_GCM, nonce=nonce)
        plaintext = cipher.decrypt_and_verify(body[:-TAG_LENGTH], body[-TAG_LENGTH:])
        return json.loads(plaintext)
    except (ValueError, KeyError) as e:
        raise DecryptionFailure("Failed to decrypt history: invalid key or corrupted data") from e


class EncryptedHistoryLog:
    """Per-owner append-only list of encrypted entries in a KeyValueStore."""

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    def push(
        self,
        owner: str,
        key: bytes,
        type: str,
        amount: float,
        details: dict[str, Any] | None = None,
    ) -> HistoryEntry:
        entry = HistoryEntry(
            type=type,
            amount=amount,
            timestamp=int(time.time() * 1000),
            details=details or {},
        )
        storage_key = namespaced(HISTORY_PREFIX, owner)
        blobs = self._store.get_json(storage_key, [])
        blobs.append(encrypt_blob(entry.model_dump(), key))
        self._store.set_json(storage_key, blobs)
        return entry

    def load(self, owner: str, key: bytes) -> list[HistoryEntry]:
        """All decryptable entries, newest first (later appends first on equal timestamps)."""
        blobs = self._store.get_json(namespaced(HISTORY_PREFIX, owner), [])
        decrypted: list[tuple[int, int, HistoryEntry]] = []
        for position, blob in enumerate(blobs):
            try:
                entry = HistoryEntry(**decrypt_blob(blob, key))
            except (DecryptionFailure, ValueError):
                logger.debug(f"Skipping undecryptable history entry {position}")
                continue
            decrypted.append((entry.timestamp, position, entry))
        decrypted.sort(key=lambda item: (item[0], item[1]), reverse=True)
        return [entry for _, _, entry in decrypted]

    def count_raw(self, owner: str) -> int:
        return len(self._store.get_json(namespaced(HISTORY_PREFIX, owner), []))
