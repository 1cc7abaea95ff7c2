"""
Unit tests for gtx_privacy.engine.balance: the commitment & balance cache.
"""

import threading

import pytest

from gtx_privacy.core.ledger import InMemoryLedger
from gtx_privacy.core.models import AccountSchemaError, Origin
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.store import BALANCE_PREFIX, ORIGIN_PREFIX, MemoryStore, namespaced
from gtx_privacy.core.wallet import LocalSigner
from gtx_privacy.crypto.keys import blinding_scalar
from gtx_privacy.crypto.pedersen import PedersenCommitment
from gtx_privacy.engine.balance import BalanceCache

ASSET = "GRX"


@pytest.fixture
def session():
    return UnlockedSession.unlock(LocalSigner.generate())


def _seed_account(ledger: InMemoryLedger, session: UnlockedSession, amount: int, counter: int) -> str:
    commitment = PedersenCommitment.commit(blinding_scalar(session.blinding_factor(counter)), amount)
    ledger.accounts[(session.owner, ASSET)] = {"commitment": commitment, "tx_counter": counter, "last_update_slot": 4}
    return commitment


def test_missing_account_is_zero_uninitialized(session):
    cache = BalanceCache(session.owner, ASSET, InMemoryLedger(), MemoryStore())
    state = cache.refresh(session)
    assert state.amount == 0
    assert state.is_initialized is False
    assert state.tx_counter == 0


def test_refresh_reconciles_with_store(session):
    ledger, store = InMemoryLedger(), MemoryStore()
    commitment = _seed_account(ledger, session, 500, 3)
    store.set(namespaced(BALANCE_PREFIX, session.owner), "500")
    store.set(namespaced(ORIGIN_PREFIX, session.owner), "Wind")

    state = BalanceCache(session.owner, ASSET, ledger, store).refresh(session)

    assert state.commitment == commitment
    assert state.amount == 500
    assert state.origin == Origin.WIND
    assert state.tx_counter == 3
    assert state.last_update_slot == 4


def test_refresh_without_session_leaves_amount_unknown(session):
    ledger, store = InMemoryLedger(), MemoryStore()
    _seed_account(ledger, session, 500, 1)
    store.set(namespaced(BALANCE_PREFIX, session.owner), "500")
    state = BalanceCache(session.owner, ASSET, ledger, store).refresh()
    assert state.is_initialized
    assert state.amount is None


def test_refresh_rejects_malformed_account(session):
    ledger = InMemoryLedger()
    ledger.accounts[(session.owner, ASSET)] = {"commitment": "zz", "tx_counter": 1, "last_update_slot": 0}
    with pytest.raises(AccountSchemaError):
        BalanceCache(session.owner, ASSET, ledger, MemoryStore()).refresh(session)


def test_recover_amount(session):
    ledger, store = InMemoryLedger(), MemoryStore()
    _seed_account(ledger, session, 742, 5)
    cache = BalanceCache(session.owner, ASSET, ledger, store)
    cache.refresh(session)

    assert cache.recover_amount(session, max_search=1_000) == 742
    assert cache.state.amount == 742
    assert store.get(namespaced(BALANCE_PREFIX, session.owner)) == "742"


def test_recover_amount_out_of_bound(session):
    ledger = InMemoryLedger()
    _seed_account(ledger, session, 742, 5)
    cache = BalanceCache(session.owner, ASSET, ledger, MemoryStore())
    cache.refresh(session)
    assert cache.recover_amount(session, max_search=100) is None
    assert cache.state.amount is None


def test_commit_persists_and_advances(session):
    store = MemoryStore()
    cache = BalanceCache(session.owner, ASSET, InMemoryLedger(), store)
    state = cache.commit(amount=500, tx_counter=1, commitment="02" + "ab" * 32, origin=Origin.SOLAR, slot=7)
    assert state.amount == 500
    assert state.is_initialized
    assert store.get(namespaced(BALANCE_PREFIX, session.owner)) == "500"
    assert store.get(namespaced(ORIGIN_PREFIX, session.owner)) == "Solar"


def test_commit_never_moves_counter_backwards(session):
    cache = BalanceCache(session.owner, ASSET, InMemoryLedger(), MemoryStore())
    cache.commit(amount=1, tx_counter=3)
    with pytest.raises(ValueError, match="backwards"):
        cache.commit(amount=1, tx_counter=2)
    assert cache.state.tx_counter == 3


def test_refresh_ignores_ledger_behind_cache(session):
    ledger = InMemoryLedger()
    _seed_account(ledger, session, 500, 1)
    cache = BalanceCache(session.owner, ASSET, ledger, MemoryStore())
    cache.commit(amount=300, tx_counter=3, commitment="02" + "ab" * 32)

    state = cache.refresh(session)

    assert state.tx_counter == 3
    assert state.amount == 300
    assert state.commitment == "02" + "ab" * 32


def test_refresh_skipped_while_write_lock_held(session):
    ledger = InMemoryLedger()
    _seed_account(ledger, session, 500, 1)
    cache = BalanceCache(session.owner, ASSET, ledger, MemoryStore())
    holding, release = threading.Event(), threading.Event()

    def operation():
        with cache.write_lock:
            holding.set()
            release.wait(5)

    worker = threading.Thread(target=operation)
    worker.start()
    try:
        assert holding.wait(5)
        state = cache.refresh(session)
        assert state.is_initialized is False
        assert state.tx_counter == 0
    finally:
        release.set()
        worker.join(5)

    assert cache.refresh(session).tx_counter == 1


def test_viewer_refresh_keeps_owner_amount(session):
    ledger, store = InMemoryLedger(), MemoryStore()
    _seed_account(ledger, session, 500, 1)
    store.set(namespaced(BALANCE_PREFIX, session.owner), "500")
    store.set(namespaced(ORIGIN_PREFIX, session.owner), "Wind")
    cache = BalanceCache(session.owner, ASSET, ledger, store)
    viewer = UnlockedSession.from_view_key(session.owner, session.export_view_key())

    seen = cache.refresh(viewer)

    assert seen.is_initialized
    assert seen.amount is None
    assert seen.origin is None
    assert cache.state.amount == 500
    assert cache.view(session).origin == Origin.WIND
