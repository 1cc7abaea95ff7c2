"""
Integration tests for the shielded balance lifecycle.
Requires a ledger gateway at GTX_LEDGER_URL that accepts the shield,
privateTransfer and unshield instructions.

These tests drive PrivacyEngine through the HTTP ledger client: account
fetch, shield, private transfer, unshield and vault solvency.

Run with: python -m pytest tests/integration/test_privacy_lifecycle.py -v -m integration
"""

import os

import httpx
import pytest

from gtx_privacy.config import EngineConfig
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.wallet import LocalSigner
from gtx_privacy.engine.engine import PrivacyEngine

pytestmark = pytest.mark.integration

LEDGER_URL = os.environ.get("GTX_LEDGER_URL", "")


@pytest.fixture(scope="module")
def engine():
    if not LEDGER_URL:
        pytest.skip("GTX_LEDGER_URL not set")
    try:
        httpx.get(LEDGER_URL, timeout=5.0)
    except httpx.HTTPError as e:
        pytest.skip(f"Ledger gateway unreachable: {e}")
    return PrivacyEngine.from_config(EngineConfig.from_env())


@pytest.fixture(scope="module")
def session():
    return UnlockedSession.unlock(LocalSigner.generate())


# --- Shield ---

def test_fresh_account_is_uninitialized(engine, session):
    state = engine.refresh(session)
    assert state.is_initialized is False
    assert state.tx_counter == 0


def test_shield_creates_account(engine, session):
    receipt = engine.shield(session, 500)
    assert receipt.signature
    state = engine.refresh(session)
    assert state.is_initialized
    assert state.tx_counter == 1
    assert state.amount == 500
    print(f"\n[+] Shielded 500 ({receipt.signature[:16]}...)")


# --- Spend path ---

def test_private_transfer(engine, session):
    recipient = LocalSigner.generate().identity
    engine.transfer(session, recipient, 200)
    state = engine.refresh(session)
    assert state.amount == 300
    assert state.tx_counter == 2
    print(f"\n[+] Transferred 200 to {recipient[:12]}...")


def test_unshield(engine, session):
    engine.unshield(session, 100)
    assert engine.refresh(session).amount == 200


def test_recovery_matches_cache(engine, session):
    assert engine.recover_balance(session) == 200


def test_vault_stays_solvent(engine):
    assert engine.verify_solvency() is True
