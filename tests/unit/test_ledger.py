"""
Unit tests for the ledger call contract, account schema and key-value stores.

InMemoryLedger is driven with instructions from InstructionBuilder and
proofs from LocalProver, the same way PrivacyEngine drives it.
"""

import secrets
from unittest.mock import MagicMock

import httpx
import pytest

from gtx_privacy.core.ledger import HttpLedgerClient, InMemoryLedger, LedgerRejection, LedgerUnavailable
from gtx_privacy.core.models import (
    AccountSchemaError,
    MissingAccount,
    PrivateBalanceAccount,
    parse_ledger_account,
)
from gtx_privacy.core.store import JsonFileStore, MemoryStore, namespaced
from gtx_privacy.crypto.prover import LocalProver
from gtx_privacy.engine.builder import InstructionBuilder, InstructionBuilderError
from gtx_privacy.errors import InvalidIdentity

OWNER = "02" + "a1" * 32
RECIPIENT = "03" + "b2" * 32
ASSET = "GRX"

prover = LocalProver(bit_length=16)


def _shield_ix(amount: int, expected_counter: int | None = None) -> dict:
    proof = prover.create_range_proof(amount, secrets.token_bytes(32))
    return InstructionBuilder(OWNER, ASSET).shield(amount, proof.commitment, proof.proof_bytes, expected_counter)


def _transfer_ix(amount: int, prior: int, counter: int, nullifier: bytes | None = None) -> dict:
    bundle = prover.create_transfer_proof(amount, prior, secrets.token_bytes(32), secrets.token_bytes(32))
    return InstructionBuilder(OWNER, ASSET).private_transfer(
        RECIPIENT, counter, bundle, nullifier or secrets.token_bytes(32)
    )


def _unshield_ix(amount: int, prior: int, counter: int) -> dict:
    bundle = prover.create_transfer_proof(amount, prior, secrets.token_bytes(32), secrets.token_bytes(32))
    return InstructionBuilder(OWNER, ASSET).unshield(amount, counter, bundle, secrets.token_bytes(32))


# ==============================================================================
# Account schema
# ==============================================================================


class TestAccountSchema:

    def test_missing(self):
        assert isinstance(parse_ledger_account(None), MissingAccount)

    def test_private_balance(self):
        account = parse_ledger_account({
            "kind": "private_balance",
            "owner": OWNER,
            "asset": ASSET,
            "commitment": "02" + "AB" * 32,
            "tx_counter": 3,
        })
        assert isinstance(account, PrivateBalanceAccount)
        assert account.commitment == "02" + "ab" * 32

    def test_bad_commitment(self):
        with pytest.raises(AccountSchemaError):
            parse_ledger_account({"kind": "private_balance", "owner": OWNER, "asset": ASSET,
                                  "commitment": "04" + "ab" * 32, "tx_counter": 0})

    def test_unknown_kind(self):
        with pytest.raises(AccountSchemaError):
            parse_ledger_account({"kind": "token_account"})

    def test_negative_counter(self):
        with pytest.raises(AccountSchemaError):
            parse_ledger_account({"kind": "private_balance", "owner": OWNER, "asset": ASSET,
                                  "commitment": "02" + "ab" * 32, "tx_counter": -1})


# ==============================================================================
# InMemoryLedger
# ==============================================================================


class TestInMemoryLedger:

    def test_shield_creates_account(self):
        ledger = InMemoryLedger(verify_proofs=True)
        ix = _shield_ix(500, expected_counter=0)
        receipt = ledger.submit(ix)
        assert receipt.tx_counter == 1
        raw = ledger.fetch_private_balance(OWNER, ASSET)
        assert raw["commitment"] == ix["args"]["commitment"]
        assert ledger.get_vault_state(ASSET).vault_balance == 500

    def test_shield_stale_counter(self):
        ledger = InMemoryLedger()
        ledger.submit(_shield_ix(500, expected_counter=0))
        with pytest.raises(LedgerRejection, match="Stale"):
            ledger.submit(_shield_ix(100, expected_counter=0))

    def test_missing_account(self):
        assert InMemoryLedger().fetch_private_balance(OWNER, ASSET) is None

    def test_transfer_consumes_nullifier_once(self):
        ledger = InMemoryLedger(verify_proofs=True)
        ledger.submit(_shield_ix(500, 0))
        nullifier = secrets.token_bytes(32)
        ledger.submit(_transfer_ix(200, 500, counter=1, nullifier=nullifier))
        assert ledger.fetch_private_balance(RECIPIENT, ASSET) is not None
        with pytest.raises(LedgerRejection, match="already consumed"):
            ledger.submit(_transfer_ix(100, 300, counter=2, nullifier=nullifier))

    def test_transfer_stale_counter(self):
        ledger = InMemoryLedger()
        ledger.submit(_shield_ix(500, 0))
        with pytest.raises(LedgerRejection, match="Stale"):
            ledger.submit(_transfer_ix(200, 500, counter=0))

    def test_transfer_without_account(self):
        with pytest.raises(LedgerRejection, match="no private balance"):
            InMemoryLedger().submit(_transfer_ix(1, 1, counter=0))

    def test_unshield_needs_vault_backing(self):
        ledger = InMemoryLedger()
        ledger.submit(_shield_ix(100, 0))
        ledger.submit(_unshield_ix(60, 100, counter=1))
        assert ledger.get_vault_state(ASSET).vault_balance == 40
        with pytest.raises(LedgerRejection, match="vault"):
            ledger.submit(_unshield_ix(50, 50, counter=2))

    def test_batch_is_atomic(self):
        ledger = InMemoryLedger()
        good = _shield_ix(10, 0)
        stale = _shield_ix(20, 0)
        with pytest.raises(LedgerRejection):
            ledger.submit_batch([good, stale])
        assert ledger.fetch_private_balance(OWNER, ASSET) is None
        assert ledger.get_vault_state(ASSET).vault_balance == 0

    def test_tampered_range_proof_rejected(self):
        ledger = InMemoryLedger(verify_proofs=True)
        ix = _shield_ix(10, 0)
        other = prover.create_range_proof(11, secrets.token_bytes(32))
        ix["args"]["commitment"] = other.commitment
        with pytest.raises(LedgerRejection, match="Range proof"):
            ledger.submit(ix)

    def test_unknown_instruction(self):
        with pytest.raises(LedgerRejection, match="Unknown instruction"):
            InMemoryLedger().submit({"instruction": "mint", "accounts": {}, "args": {}})


# ==============================================================================
# HttpLedgerClient
# ==============================================================================


class TestHttpLedgerClient:

    def _client(self, response=None, error=None) -> HttpLedgerClient:
        ledger = HttpLedgerClient("http://ledger:8899/", api_key="k")
        ledger._client = MagicMock()
        if error is not None:
            ledger._client.request.side_effect = error
        else:
            ledger._client.request.return_value = response
        return ledger

    def _response(self, status: int, payload=None) -> MagicMock:
        response = MagicMock()
        response.status_code = status
        response.json.return_value = payload
        response.text = str(payload)
        return response

    def test_fetch_404_is_missing(self):
        ledger = self._client(self._response(404))
        assert ledger.fetch_private_balance(OWNER, ASSET) is None
        method, url = ledger._client.request.call_args.args
        assert method == "GET"
        assert url == f"http://ledger:8899/accounts/private-balance/{OWNER}/{ASSET}"

    def test_submit_returns_receipt(self):
        ledger = self._client(self._response(200, {"signature": "ab" * 32, "slot": 9, "tx_counter": 2}))
        receipt = ledger.submit({"instruction": "shield"})
        assert receipt.slot == 9

    def test_rejection(self):
        ledger = self._client(self._response(409, {"error": "stale"}))
        with pytest.raises(LedgerRejection, match="409"):
            ledger.submit({"instruction": "shield"})

    def test_unreachable(self):
        ledger = self._client(error=httpx.ConnectTimeout("timeout"))
        with pytest.raises(LedgerUnavailable):
            ledger.get_vault_state(ASSET)


# ==============================================================================
# Builder & stores
# ==============================================================================


class TestInstructionBuilder:

    def test_rejects_non_positive_shield(self):
        with pytest.raises(InstructionBuilderError):
            InstructionBuilder(OWNER, ASSET).shield(0, "02" + "aa" * 32, b"")

    def test_unshield_defaults_token_account_to_owner(self):
        bundle = prover.create_transfer_proof(1, 1, secrets.token_bytes(32), secrets.token_bytes(32))
        ix = InstructionBuilder(OWNER, ASSET).unshield(1, 1, bundle, b"\x00" * 32)
        assert ix["accounts"]["token_account"] == OWNER

    def test_unshield_rejects_malformed_token_account(self):
        bundle = prover.create_transfer_proof(1, 1, secrets.token_bytes(32), secrets.token_bytes(32))
        with pytest.raises(InvalidIdentity):
            InstructionBuilder(OWNER, ASSET).unshield(1, 1, bundle, b"\x00" * 32, token_account="not-an-address")

    def test_empty_rollup_rejected(self):
        with pytest.raises(InstructionBuilderError):
            InstructionBuilder(OWNER, ASSET).settle_rollup(b"\x00" * 32, [])


class TestStores:

    def test_namespacing(self):
        assert namespaced("gtx_priv_bal_", OWNER) == f"gtx_priv_bal_{OWNER}"

    def test_memory_store_json(self):
        store = MemoryStore()
        store.set_json("k", [1, 2])
        assert store.get_json("k", []) == [1, 2]
        store.delete("k")
        assert store.get_json("k", "default") == "default"

    def test_corrupt_json_falls_back(self):
        store = MemoryStore()
        store.set("k", "{not json")
        assert store.get_json("k", []) == []

    def test_json_file_store_persists(self, tmp_path):
        path = str(tmp_path / "store.json")
        JsonFileStore(path).set("a", "1")
        reopened = JsonFileStore(path)
        assert reopened.get("a") == "1"
        reopened.delete("a")
        assert JsonFileStore(path).get("a") is None
