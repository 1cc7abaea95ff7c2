"""
PrivacyEngine: the confidential balance and transaction engine.

Composes key derivation, the policy gate, the proof backend, the ledger
call and the balance cache for every operation kind. One engine serves
many owners; each owner gets a BalanceCache whose write lock is held for
the whole of a mutating operation (counter read -> proof -> ledger
submission -> counter advance).

Nothing in the cache changes unless the ledger returned a receipt.

Usage:
    engine = PrivacyEngine(InMemoryLedger(), LocalProver())
    session = UnlockedSession.unlock(LocalSigner.generate())
    engine.shield(session, 500)
    engine.transfer(session, recipient, 200)
"""

from __future__ import annotations

import logging
import secrets
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from gtx_privacy.config import EngineConfig
from gtx_privacy.core.ledger import HttpLedgerClient, InMemoryLedger, LedgerClient
from gtx_privacy.core.models import (
    HistoryEntry,
    LedgerReceipt,
    Origin,
    PrivateBalanceState,
)
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.store import (
    CLAIMS_PREFIX,
    STAKED_PREFIX,
    JsonFileStore,
    KeyValueStore,
    MemoryStore,
    namespaced,
)
from gtx_privacy.core.wallet import validate_identity
from gtx_privacy.crypto.nullifier import NullifierGuard
from gtx_privacy.crypto.prover import (
    LocalProver,
    ProofBackend,
    ProofGenerationFailure,
    RemoteProver,
)
from gtx_privacy.engine.balance import BalanceCache
from gtx_privacy.engine.builder import InstructionBuilder
from gtx_privacy.engine.history import EncryptedHistoryLog
from gtx_privacy.engine.policy import PolicyEngine
from gtx_privacy.engine.rollup import PendingOperation, RollupAggregator
from gtx_privacy.engine.stealth import StealthLinkError, create_stealth_link, parse_stealth_link
from gtx_privacy.engine.trade import (
    MARKET_ESCROW,
    InvalidTradeTransition,
    PaymentGateway,
    SimulatedPaymentGateway,
    TradeBook,
    TradeOffer,
    TradeStatus,
    decode_invite,
    encode_invite,
    new_offer_id,
)
from gtx_privacy.errors import (
    BalanceNotInitialized,
    BalanceUnknown,
    InsufficientBalance,
    PreconditionError,
    PrivacyError,
)

logger = logging.getLogger("gtx_privacy.engine")

STAKING_VAULT = "GridStakeEscrow1111111111111111111111111"

T = TypeVar("T")


class PrivacyEngine:
    """
    Args:
        ledger:          Remote ledger client.
        prover:          Proof backend.
        store:           Key-value store for cached amounts, history, offers and claims.
        asset:           Energy token identifier; defaults to config.asset.
        policies:        Policy gate evaluated before any proof is requested.
        payment_gateway: Confirms public payments for trade purchases.
        config:          Retry and recovery settings.
    """

    def __init__(
        self,
        ledger: LedgerClient,
        prover: ProofBackend,
        store: KeyValueStore | None = None,
        asset: str | None = None,
        policies: PolicyEngine | None = None,
        payment_gateway: PaymentGateway | None = None,
        config: EngineConfig | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.ledger = ledger
        self.prover = prover
        self.store = store if store is not None else MemoryStore()
        self.asset = asset or self.config.asset
        self.policies = policies if policies is not None else PolicyEngine()
        self.payment_gateway = payment_gateway or SimulatedPaymentGateway()
        self.nullifiers = NullifierGuard()
        self.history = EncryptedHistoryLog(self.store)
        self.trade_book = TradeBook(self.store)
        self._caches: dict[str, BalanceCache] = {}
        self._rollups: dict[str, RollupAggregator] = {}
        self._registry_lock = threading.Lock()
        self._in_flight: set[str] = set()

    @classmethod
    def from_config(cls, config: EngineConfig, policies: PolicyEngine | None = None) -> PrivacyEngine:
        """Wire HTTP or in-process collaborators depending on which URLs are set."""
        if config.ledger_url:
            ledger: LedgerClient = HttpLedgerClient(config.ledger_url, config.ledger_api_key, config.http_timeout)
        else:
            logger.warning("No ledger URL configured, using the in-memory reference ledger")
            ledger = InMemoryLedger(verify_proofs=True)
        if config.prover_url:
            prover: ProofBackend = RemoteProver(config.prover_url, timeout=config.http_timeout)
        else:
            prover = LocalProver(bit_length=config.range_bits)
        store: KeyValueStore = JsonFileStore(config.store_path) if config.store_path else MemoryStore()
        return cls(ledger, prover, store=store, policies=policies, config=config)

    # ------------------------------------------------------------------
    # Per-owner state
    # ------------------------------------------------------------------

    def _cache(self, session: UnlockedSession) -> BalanceCache:
        with self._registry_lock:
            cache = self._caches.get(session.owner)
            created = cache is None
            if created:
                cache = BalanceCache(session.owner, self.asset, self.ledger, self.store)
                # writers for this owner wait until the first load is in
                cache.write_lock.acquire()
                self._caches[session.owner] = cache
        if created:
            try:
                cache.refresh(session)
            except Exception:
                with self._registry_lock:
                    self._caches.pop(session.owner, None)
                raise
            finally:
                cache.write_lock.release()
        return cache

    def _aggregator(self, owner: str) -> RollupAggregator:
        with self._registry_lock:
            return self._rollups.setdefault(owner, RollupAggregator())

    def _builder(self, session: UnlockedSession) -> InstructionBuilder:
        return InstructionBuilder(session.owner, self.asset)

    @contextmanager
    def _exclusive(self, key: str, busy: PrivacyError) -> Iterator[None]:
        """Hold `key` (an offer or stealth claim) for one redeemer; raise `busy` if taken."""
        with self._registry_lock:
            if key in self._in_flight:
                raise busy
            self._in_flight.add(key)
        try:
            yield
        finally:
            with self._registry_lock:
                self._in_flight.discard(key)

    def balance(self, session: UnlockedSession) -> PrivateBalanceState:
        """
        Current cached state. Reads never wait on an in-flight proof.

        View-key sessions see the amount and origin redacted.
        """
        session.require_readable()
        return self._cache(session).view(session)

    def refresh(self, session: UnlockedSession) -> PrivateBalanceState:
        session.require_readable()
        cache = self._cache(session)
        return cache.refresh(session)

    def recover_balance(self, session: UnlockedSession, max_search: int | None = None) -> int | None:
        """Rebuild a lost cached amount by searching the current commitment."""
        session.require_writable()
        cache = self._cache(session)
        with cache.write_lock:
            cache.refresh(session)
            return cache.recover_amount(session, max_search or self.config.recovery_max_search)

    def load_history(self, session: UnlockedSession) -> list[HistoryEntry]:
        session.require_readable()
        return self.history.load(session.owner, session.encryption_key)

    def export_view_key(self, session: UnlockedSession) -> str:
        session.require_readable()
        return session.export_view_key()

    def staked_amount(self, owner: str) -> int:
        return int(self.store.get(namespaced(STAKED_PREFIX, owner)) or 0)

    def rollup_queue(self, owner: str) -> list[PendingOperation]:
        return self._aggregator(owner).pending

    # ------------------------------------------------------------------
    # Proof boundary
    # ------------------------------------------------------------------

    def _prove(self, label: str, attempt: Callable[[], T]) -> T:
        """Run `attempt`, retrying with fresh randomness on ProofGenerationFailure."""
        retries = self.config.proof_retries
        for n in range(retries + 1):
            try:
                return attempt()
            except ProofGenerationFailure as e:
                if n == retries:
                    raise
                logger.warning(f"{label} proof failed (attempt {n + 1}/{retries + 1}): {e}")
        raise AssertionError("unreachable")

    # ------------------------------------------------------------------
    # Shield
    # ------------------------------------------------------------------

    def shield(self, session: UnlockedSession, amount: int, origin: Origin = Origin.SOLAR) -> LedgerReceipt:
        """
        Move public tokens into the shielded balance.

        The cached amount is set to `amount` (each shield replaces the
        account's single commitment).

        Raises:
            PolicyViolation: Before any proof is requested.
            ProofGenerationFailure, LedgerRejection: State unchanged.
        """
        return self._shield(session, amount, origin, "SHIELD", accumulate=False)

    def _shield(
        self,
        session: UnlockedSession,
        amount: int,
        origin: Origin | None,
        history_type: str,
        details: dict[str, Any] | None = None,
        accumulate: bool = True,
    ) -> LedgerReceipt:
        session.require_writable()
        if amount <= 0:
            raise ValueError(f"Shield amount must be positive, got {amount}")
        cache = self._cache(session)
        with cache.write_lock:
            state = cache.state
            origin = origin or state.origin or Origin.SOLAR
            total = amount
            if accumulate and state.is_initialized:
                if state.amount is None:
                    raise BalanceUnknown("Cached amount unknown; refresh or recover before crediting")
                total = state.amount + amount

            self.policies.check("SHIELD", amount, {"origin": origin})

            next_idx = state.tx_counter + 1
            blinding = session.blinding_factor(next_idx)
            proof = self._prove("Range", lambda: self.prover.create_range_proof(total, blinding))

            instruction = self._builder(session).shield(
                amount, proof.commitment, proof.proof_bytes, expected_counter=state.tx_counter
            )
            receipt = self.ledger.submit(instruction)

            cache.commit(
                amount=total,
                tx_counter=next_idx,
                commitment=proof.commitment,
                origin=origin,
                slot=receipt.slot,
            )
            self.history.push(
                session.owner,
                session.encryption_key,
                history_type,
                amount,
                {"signature": receipt.signature, "origin": origin.value, **(details or {})},
            )
        logger.info(f"{history_type}: {amount} -> index {next_idx} ({receipt.signature[:16]}...)")
        return receipt

    def batch_shield(self, session: UnlockedSession, amounts: list[int], origin: Origin = Origin.SOLAR) -> LedgerReceipt:
        """
        Shield several amounts in one atomic ledger submission.

        Each instruction commits to the running total at its own index, so
        the final commitment opens to the previous balance plus the sum.
        """
        session.require_writable()
        if not amounts or any(a <= 0 for a in amounts):
            raise ValueError("batch_shield needs at least one positive amount")
        cache = self._cache(session)
        builder = self._builder(session)
        with cache.write_lock:
            state = cache.state
            running = 0
            if state.is_initialized:
                if state.amount is None:
                    raise BalanceUnknown("Cached amount unknown; refresh or recover before crediting")
                running = state.amount

            for amount in amounts:
                self.policies.check("SHIELD", amount, {"origin": origin})

            instructions = []
            commitment = state.commitment
            for offset, amount in enumerate(amounts):
                idx = state.tx_counter + offset + 1
                running += amount
                blinding = session.blinding_factor(idx)
                proof = self._prove("Range", lambda: self.prover.create_range_proof(running, blinding))
                instructions.append(
                    builder.shield(amount, proof.commitment, proof.proof_bytes, expected_counter=idx - 1)
                )
                commitment = proof.commitment

            receipt = self.ledger.submit_batch(instructions)

            cache.commit(
                amount=running,
                tx_counter=state.tx_counter + len(amounts),
                commitment=commitment,
                origin=origin,
                slot=receipt.slot,
            )
            self.history.push(
                session.owner,
                session.encryption_key,
                "BATCH_SHIELD",
                sum(amounts),
                {"signature": receipt.signature, "count": len(amounts), "origin": origin.value},
            )
        logger.info(f"Batch shield of {len(amounts)} operations ({receipt.signature[:16]}...)")
        return receipt

    # ------------------------------------------------------------------
    # Transfer / unshield
    # ------------------------------------------------------------------

    def transfer(self, session: UnlockedSession, recipient: str, amount: int) -> LedgerReceipt:
        """
        Send `amount` from the shielded balance to another identity.

        Raises:
            BalanceNotInitialized, BalanceUnknown, InsufficientBalance: Preconditions.
            PolicyViolation: Before any proof is requested.
        """
        recipient = validate_identity(recipient)
        if recipient == session.owner:
            raise PreconditionError("Cannot transfer to your own shielded balance")
        return self._spend(session, amount, "TRANSFER", {"to": recipient}, recipient=recipient)

    def unshield(self, session: UnlockedSession, amount: int, token_account: str | None = None) -> LedgerReceipt:
        """Withdraw `amount` from the shielded balance to a public token account."""
        if token_account is not None:
            token_account = validate_identity(token_account)
        return self._spend(session, amount, "WITHDRAW", {"to": token_account or session.owner}, token_account=token_account)

    def _spend(
        self,
        session: UnlockedSession,
        amount: int,
        history_type: str,
        details: dict[str, Any],
        recipient: str | None = None,
        token_account: str | None = None,
    ) -> LedgerReceipt:
        session.require_writable()
        if amount <= 0:
            raise ValueError(f"Amount must be positive, got {amount}")
        cache = self._cache(session)
        with cache.write_lock:
            state = cache.state
            self._require_funds(state, amount)
            self.policies.check(history_type, amount, {"origin": state.origin} if state.origin else {})

            b_old = session.blinding_factor(state.tx_counter)
            b_new = session.blinding_factor(state.tx_counter + 1)
            bundle = self._prove(
                "Transfer",
                lambda: self.prover.create_transfer_proof(
                    amount, state.amount, b_old, secrets.token_bytes(32), b_remaining=b_new
                ),
            )
            nullifier = self.nullifiers.fresh()

            builder = self._builder(session)
            if recipient is not None:
                instruction = builder.private_transfer(recipient, state.tx_counter, bundle, nullifier)
            else:
                instruction = builder.unshield(amount, state.tx_counter, bundle, nullifier, token_account)
            receipt = self.ledger.submit(instruction)

            cache.commit(
                amount=state.amount - amount,
                tx_counter=state.tx_counter + 1,
                commitment=bundle.remaining_commitment,
                slot=receipt.slot,
            )
            self.history.push(
                session.owner,
                session.encryption_key,
                history_type,
                amount,
                {"signature": receipt.signature, **details},
            )
        logger.info(f"{history_type}: {amount} ({receipt.signature[:16]}...)")
        return receipt

    @staticmethod
    def _require_funds(state: PrivateBalanceState, amount: int) -> None:
        if not state.is_initialized:
            raise BalanceNotInitialized("No shielded balance; shield tokens first")
        if state.amount is None:
            raise BalanceUnknown("Cached amount unknown; refresh or recover the balance")
        if amount > state.amount:
            raise InsufficientBalance(f"Requested {amount} but only {state.amount} is shielded")

    # ------------------------------------------------------------------
    # Staking
    # ------------------------------------------------------------------

    def stake_private(self, session: UnlockedSession, amount: int) -> LedgerReceipt:
        cache = self._cache(session)
        with cache.write_lock:
            receipt = self._spend(session, amount, "STAKE", {"to": STAKING_VAULT}, recipient=STAKING_VAULT)
            key = namespaced(STAKED_PREFIX, session.owner)
            self.store.set(key, str(self.staked_amount(session.owner) + amount))
        return receipt

    def unstake_private(self, session: UnlockedSession, amount: int) -> LedgerReceipt:
        session.require_writable()
        cache = self._cache(session)
        with cache.write_lock:
            staked = self.staked_amount(session.owner)
            if amount > staked:
                raise InsufficientBalance(f"Requested {amount} but only {staked} is staked")
            receipt = self._shield(session, amount, None, "UNSTAKE", {"from": STAKING_VAULT})
            self.store.set(namespaced(STAKED_PREFIX, session.owner), str(staked - amount))
        return receipt

    # ------------------------------------------------------------------
    # Stealth links
    # ------------------------------------------------------------------

    def create_stealth_link(self, session: UnlockedSession, amount: int) -> str:
        """
        Package a claimable secret for `amount` at the next sequence index.

        Does not touch the ledger; the balance must cover the amount.
        """
        session.require_writable()
        if amount <= 0:
            raise ValueError(f"Stealth link amount must be positive, got {amount}")
        cache = self._cache(session)
        with cache.write_lock:
            state = cache.state
            self._require_funds(state, amount)
            next_idx = state.tx_counter + 1
            link = create_stealth_link(amount, session.blinding_factor(next_idx), next_idx)
        logger.info(f"Stealth link created for {amount} at index {next_idx}")
        return link

    def claim_stealth_link(self, session: UnlockedSession, link: str) -> LedgerReceipt:
        """
        Redeem a stealth link into the claimant's balance.

        A link is redeemed by one claimant at a time; the claim is recorded
        only after the ledger confirms, so a failed claim can be retried.

        Raises:
            StealthLinkError: If the link is corrupt, being claimed, or was already claimed here.
        """
        session.require_writable()
        payload = parse_stealth_link(link)
        claims_key = namespaced(CLAIMS_PREFIX, self.asset)
        with self._exclusive(f"claim:{payload.claim_id}", StealthLinkError("Stealth link is already being claimed")):
            if payload.claim_id in self.store.get_json(claims_key, []):
                raise StealthLinkError("Stealth link has already been claimed")
            receipt = self._shield(
                session, payload.amount, None, "STEALTH_CLAIM", {"linkIndex": payload.tx_counter}
            )
            with self._registry_lock:
                claims = self.store.get_json(claims_key, [])
                claims.append(payload.claim_id)
                self.store.set_json(claims_key, claims)
        return receipt

    # ------------------------------------------------------------------
    # Trade escrow
    # ------------------------------------------------------------------

    def create_trade_offer(self, session: UnlockedSession, amount: int, price: float) -> str:
        """Escrow `amount` with the market and return a portable invite."""
        if price < 0:
            raise ValueError(f"Price must be non-negative, got {price}")
        offer_id = new_offer_id()
        cache = self._cache(session)
        with cache.write_lock:
            receipt = self._spend(
                session, amount, "TRANSFER", {"to": MARKET_ESCROW, "offerId": offer_id}, recipient=MARKET_ESCROW
            )
            offer = TradeOffer(
                id=offer_id,
                amount=amount,
                price=price,
                seller=session.owner,
                timestamp=int(time.time() * 1000),
                signature=receipt.signature,
            )
            self.trade_book.record(offer)
        logger.info(f"Trade offer {offer_id} opened: {amount} @ {price}")
        return encode_invite(offer)

    def fulfill_trade_offer(self, session: UnlockedSession, invite: str) -> LedgerReceipt:
        """
        Buy an offer: confirm the public payment, then shield the escrowed amount.

        The offer is held exclusively from the status check until it is
        marked SOLD. Offers this store has not seen are recorded as SOLD so
        the same invite cannot be redeemed twice here.

        Raises:
            TradeInviteError: If the invite is malformed.
            InvalidTradeTransition: If the offer is being settled or no longer OPEN.
        """
        session.require_writable()
        offer = decode_invite(invite)
        busy = InvalidTradeTransition(f"Offer {offer.id} is already being settled")
        with self._exclusive(f"offer:{offer.seller}:{offer.id}", busy):
            known = self.trade_book.get(offer.seller, offer.id)
            if known is not None and known.status != TradeStatus.OPEN:
                raise InvalidTradeTransition(f"Offer {offer.id} is {known.status.value}")
            if not self.payment_gateway.confirm_payment(offer):
                raise PreconditionError(f"Payment for offer {offer.id} was not confirmed")

            receipt = self._shield(
                session,
                offer.amount,
                None,
                "P2P_PURCHASE",
                {"offerId": offer.id, "seller": offer.seller, "price": offer.price, "totalPaid": offer.total_price},
            )
            if known is not None:
                self.trade_book.transition(offer.seller, offer.id, TradeStatus.SOLD)
            else:
                self.trade_book.record(offer.model_copy(update={"status": TradeStatus.SOLD}))
        return receipt

    def cancel_trade_offer(self, session: UnlockedSession, offer_id: str) -> TradeOffer:
        """Close an OPEN offer and credit the escrowed amount back to the seller."""
        session.require_writable()
        busy = InvalidTradeTransition(f"Offer {offer_id} is already being settled")
        with self._exclusive(f"offer:{session.owner}:{offer_id}", busy):
            offer = self.trade_book.get(session.owner, offer_id)
            if offer is None:
                raise InvalidTradeTransition(f"Unknown offer {offer_id}")
            if offer.status != TradeStatus.OPEN:
                raise InvalidTradeTransition(f"Offer {offer_id} is {offer.status.value}")
            self._shield(session, offer.amount, None, "SHIELD", {"from": MARKET_ESCROW, "offerId": offer_id})
            return self.trade_book.transition(session.owner, offer_id, TradeStatus.CANCELLED)

    # ------------------------------------------------------------------
    # Rollups
    # ------------------------------------------------------------------

    def prepare_rollup_operation(
        self, session: UnlockedSession, amount: int, origin: Origin = Origin.SOLAR
    ) -> PendingOperation:
        """Prove one operation and queue it for the owner's next rollup."""
        session.require_writable()
        if amount <= 0:
            raise ValueError(f"Rollup amount must be positive, got {amount}")
        self.policies.check("ROLLUP", amount, {"origin": origin})
        proof = self._prove(
            "Range", lambda: self.prover.create_range_proof(amount, secrets.token_bytes(32))
        )
        op = PendingOperation(amount=amount, commitment=proof.commitment, proof_bytes=proof.proof_bytes, origin=origin)
        self._aggregator(session.owner).enqueue(op)
        return op

    def submit_rollup(
        self, session: UnlockedSession, operations: list[PendingOperation] | None = None
    ) -> LedgerReceipt:
        session.require_writable()
        cache = self._cache(session)
        with cache.write_lock:
            return self._aggregator(session.owner).submit(
                self._builder(session),
                self.ledger,
                self.history,
                session.encryption_key,
                operations,
            )

    # ------------------------------------------------------------------
    # Vault
    # ------------------------------------------------------------------

    def verify_solvency(self) -> bool:
        """True when the public vault backs every shielded token."""
        vault = self.ledger.get_vault_state(self.asset)
        solvent = vault.vault_balance >= vault.total_shielded
        if not solvent:
            logger.error(f"Vault under-collateralized: {vault.vault_balance} < {vault.total_shielded}")
        return solvent
