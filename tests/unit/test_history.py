"""
Unit tests for gtx_privacy.engine.history: the encrypted activity log.
"""

import secrets

import pytest

from gtx_privacy.core.store import HISTORY_PREFIX, MemoryStore, namespaced
from gtx_privacy.engine.history import (
    DecryptionFailure,
    EncryptedHistoryLog,
    decrypt_blob,
    encrypt_blob,
)

OWNER = "02" + "c3" * 32


class TestBlobCipher:

    def test_roundtrip(self):
        key = secrets.token_bytes(32)
        assert decrypt_blob(encrypt_blob({"a": 1}, key), key) == {"a": 1}

    def test_fresh_nonce_per_blob(self):
        key = secrets.token_bytes(32)
        assert encrypt_blob({"a": 1}, key) != encrypt_blob({"a": 1}, key)

    def test_wrong_key(self):
        blob = encrypt_blob({"a": 1}, secrets.token_bytes(32))
        with pytest.raises(DecryptionFailure):
            decrypt_blob(blob, secrets.token_bytes(32))

    def test_garbage(self):
        with pytest.raises(DecryptionFailure):
            decrypt_blob("AAAA", secrets.token_bytes(32))


class TestEncryptedHistoryLog:

    def test_newest_first(self):
        log = EncryptedHistoryLog(MemoryStore())
        key = secrets.token_bytes(32)
        log.push(OWNER, key, "SHIELD", 500)
        log.push(OWNER, key, "TRANSFER", 200, {"to": "someone"})
        entries = log.load(OWNER, key)
        assert [e.type for e in entries] == ["TRANSFER", "SHIELD"]
        assert entries[0].details == {"to": "someone"}

    def test_wrong_key_yields_nothing(self):
        log = EncryptedHistoryLog(MemoryStore())
        log.push(OWNER, secrets.token_bytes(32), "SHIELD", 500)
        log.push(OWNER, secrets.token_bytes(32), "SHIELD", 100)
        assert log.load(OWNER, secrets.token_bytes(32)) == []

    def test_skips_only_undecryptable_entries(self):
        store = MemoryStore()
        log = EncryptedHistoryLog(store)
        key = secrets.token_bytes(32)
        log.push(OWNER, key, "SHIELD", 500)
        blobs = store.get_json(namespaced(HISTORY_PREFIX, OWNER), [])
        store.set_json(namespaced(HISTORY_PREFIX, OWNER), blobs + ["corrupted"])
        log.push(OWNER, key, "WITHDRAW", 10)
        assert [e.type for e in log.load(OWNER, key)] == ["WITHDRAW", "SHIELD"]
        assert log.count_raw(OWNER) == 3

    def test_owners_are_separate(self):
        log = EncryptedHistoryLog(MemoryStore())
        key = secrets.token_bytes(32)
        log.push(OWNER, key, "SHIELD", 1)
        assert log.load("03" + "c3" * 32, key) == []
