#!/usr/bin/env python3
"""
Example 01: Shield, transfer and recover a private balance.

Runs entirely in-process against the reference ledger and local prover.

Usage:
    python examples/01_private_balance.py
"""

from gtx_privacy import PrivacyEngine
from gtx_privacy.core.ledger import InMemoryLedger
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.wallet import LocalSigner
from gtx_privacy.crypto.prover import LocalProver

ledger = InMemoryLedger(verify_proofs=True)
engine = PrivacyEngine(ledger, LocalProver(bit_length=32))

alice = UnlockedSession.unlock(LocalSigner.generate())
bob = LocalSigner.generate().identity

print("=== Private Balance Demo ===")
print()

engine.shield(alice, 500)
state = engine.balance(alice)
print(f"[1] Shielded 500 kWh -> commitment {state.commitment[:16]}... (counter {state.tx_counter})")

engine.transfer(alice, bob, 200)
print(f"[2] Sent 200 to {bob[:12]}... -> balance {engine.balance(alice).amount}")

# A second device with an empty store only sees the commitment
other_device = PrivacyEngine(ledger, LocalProver(bit_length=32))
print(f"[3] Fresh device sees amount: {other_device.refresh(alice).amount}")
print(f"[4] Recovered from commitment: {other_device.recover_balance(alice, max_search=1_000)}")

print()
print("History (newest first):")
for entry in engine.load_history(alice):
    print(f"  {entry.type:<10} {entry.amount}")

alice.lock()
