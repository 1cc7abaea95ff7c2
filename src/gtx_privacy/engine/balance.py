"""
Commitment & balance cache.

Holds the PrivateBalanceState for one (owner, asset) pair. The ledger's
commitment and sequence counter are authoritative; the plaintext amount
comes from the local store and is advisory, because a commitment cannot be
opened without its blinding factor and a bounded search.

Locking:
    write_lock   RLock held by a mutating operation for its whole duration
                 (counter read -> proof -> ledger call -> commit).
    _commit_lock short lock around snapshot reads and commits.
    refresh      tries write_lock without blocking and returns the current
                 state if an operation is in flight, so it never waits on
                 a proof and never lands between a ledger call and its commit.
"""

from __future__ import annotations

import logging
import threading

from gtx_privacy.core.ledger import LedgerClient
from gtx_privacy.core.models import (
    MissingAccount,
    Origin,
    PrivateBalanceState,
    parse_ledger_account,
)
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.store import (
    BALANCE_PREFIX,
    ORIGIN_PREFIX,
    KeyValueStore,
    namespaced,
)
from gtx_privacy.crypto.keys import blinding_scalar
from gtx_privacy.crypto.pedersen import find_committed_amount

logger = logging.getLogger("gtx_privacy.balance")

DEFAULT_RECOVERY_SEARCH = 100_000


class BalanceCache:

    def __init__(self, owner: str, asset: str, ledger: LedgerClient, store: KeyValueStore) -> None:
        self.owner = owner
        self.asset = asset
        self._ledger = ledger
        self._store = store
        self._state = PrivateBalanceState()
        self.write_lock = threading.RLock()
        self._commit_lock = threading.Lock()

    @property
    def state(self) -> PrivateBalanceState:
        with self._commit_lock:
            return self._state

    # ------------------------------------------------------------------
    # Sync
    # ------------------------------------------------------------------

    def view(self, session: UnlockedSession | None = None) -> PrivateBalanceState:
        """
        The state as `session` may see it.

        Sessions that cannot sign (none, locked, view-key) get the amount and
        origin redacted; the shared state keeps them.
        """
        state = self.state
        if _can_open(session) or not state.is_initialized:
            return state
        return state.model_copy(update={"amount": None, "origin": None})

    def refresh(self, session: UnlockedSession | None = None) -> PrivateBalanceState:
        """
        Re-read the ledger account and reconcile with the stored amount.

        Skipped while a mutating operation holds the write lock; that
        operation commits a state at least as new as the ledger's. The
        sequence counter never moves backwards: a ledger snapshot older than
        the cached state is ignored.
        """
        if not self.write_lock.acquire(blocking=False):
            logger.debug(f"Refresh skipped for {self.owner[:12]}...: operation in flight")
            return self.view(session)
        try:
            account = parse_ledger_account(self._ledger.fetch_private_balance(self.owner, self.asset))
            with self._commit_lock:
                current = self._state
                ledger_counter = 0 if isinstance(account, MissingAccount) else account.tx_counter
                if ledger_counter < current.tx_counter:
                    logger.warning(
                        f"Ledger counter {ledger_counter} behind cached {current.tx_counter}; keeping cached state"
                    )
                elif isinstance(account, MissingAccount):
                    self._state = PrivateBalanceState(amount=0, is_initialized=False)
                else:
                    stored = self._store.get(namespaced(BALANCE_PREFIX, self.owner))
                    self._state = PrivateBalanceState(
                        commitment=account.commitment,
                        amount=int(stored) if stored is not None else None,
                        origin=Origin(self._store.get(namespaced(ORIGIN_PREFIX, self.owner)) or Origin.SOLAR.value),
                        tx_counter=account.tx_counter,
                        last_update_slot=account.last_update_slot,
                        is_initialized=True,
                    )
        finally:
            self.write_lock.release()
        return self.view(session)

    def recover_amount(self, session: UnlockedSession, max_search: int = DEFAULT_RECOVERY_SEARCH) -> int | None:
        """
        Rebuild a lost cached amount from the commitment.

        Derives the blinding factor at the current counter and searches
        amounts up to `max_search`. Works for commitments whose blinding was
        derived at that index; returns None otherwise.
        """
        state = self.state
        if not state.is_initialized or not state.commitment:
            return None
        r = blinding_scalar(session.blinding_factor(state.tx_counter))
        amount = find_committed_amount(state.commitment, r, max_search)
        if amount is None:
            logger.warning(f"Recovery found no amount <= {max_search} at index {state.tx_counter}")
            return None
        with self._commit_lock:
            self._store.set(namespaced(BALANCE_PREFIX, self.owner), str(amount))
            self._state = self._state.model_copy(update={"amount": amount})
        logger.info(f"Recovered cached amount at index {state.tx_counter}")
        return amount

    # ------------------------------------------------------------------
    # Commit (called by the engine after ledger confirmation only)
    # ------------------------------------------------------------------

    def commit(
        self,
        *,
        amount: int,
        tx_counter: int,
        commitment: str | None = None,
        origin: Origin | None = None,
        slot: int | None = None,
    ) -> PrivateBalanceState:
        with self._commit_lock:
            current = self._state
            if tx_counter < current.tx_counter:
                raise ValueError(f"Sequence counter cannot go backwards ({current.tx_counter} -> {tx_counter})")
            self._store.set(namespaced(BALANCE_PREFIX, self.owner), str(amount))
            if origin is not None:
                self._store.set(namespaced(ORIGIN_PREFIX, self.owner), origin.value)
            self._state = current.model_copy(update={
                "amount": amount,
                "tx_counter": tx_counter,
                "commitment": commitment or current.commitment,
                "origin": origin or current.origin,
                "last_update_slot": slot if slot is not None else current.last_update_slot,
                "is_initialized": True,
            })
            return self._state


def _can_open(session: UnlockedSession | None) -> bool:
    return session is not None and not session.read_only and not session.is_locked
