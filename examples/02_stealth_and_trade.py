#!/usr/bin/env python3
"""
Example 02: Stealth links and peer-to-peer energy trades.

Usage:
    python examples/02_stealth_and_trade.py
"""

from gtx_privacy import PrivacyEngine
from gtx_privacy.core.ledger import InMemoryLedger
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.wallet import LocalSigner
from gtx_privacy.crypto.prover import LocalProver
from gtx_privacy.engine.stealth import StealthLinkError

engine = PrivacyEngine(InMemoryLedger(), LocalProver(bit_length=32))
seller = UnlockedSession.unlock(LocalSigner.generate())
buyer = UnlockedSession.unlock(LocalSigner.generate())

engine.shield(seller, 1_000)

print("=== Stealth Link ===")
link = engine.create_stealth_link(seller, 50)
print(f"  link: {link[:40]}...")
engine.claim_stealth_link(buyer, link)
print(f"  buyer balance after claim: {engine.balance(buyer).amount}")
try:
    engine.claim_stealth_link(buyer, link)
except StealthLinkError as e:
    print(f"  second claim -> BLOCKED: {e}")

print()
print("=== P2P Trade ===")
invite = engine.create_trade_offer(seller, 300, 0.12)
print(f"  seller escrowed 300 -> balance {engine.balance(seller).amount}")
engine.fulfill_trade_offer(buyer, invite)
print(f"  buyer balance after purchase: {engine.balance(buyer).amount}")
for offer in engine.trade_book.offers(seller.owner):
    print(f"  offer {offer.id}: {offer.amount} @ {offer.price} -> {offer.status.value}")

print()
print(f"Vault solvent: {engine.verify_solvency()}")
