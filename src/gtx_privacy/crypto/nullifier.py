"""
Nullifier generation for spends (transfer, unshield, stake, escrow).

The ledger enforces "each nullifier is consumed once". The guard's only job
is to make sure this process never emits the same nullifier twice.
"""

from __future__ import annotations

import logging
import secrets
import threading

logger = logging.getLogger("gtx_privacy.nullifier")

NULLIFIER_LENGTH = 32


class NullifierGuard:
    """
    Emits fresh 32-byte random nullifiers.

    Usage:
        guard = NullifierGuard()
        nullifier = guard.fresh()
    """

    def __init__(self) -> None:
        self._emitted: set[bytes] = set()
        self._lock = threading.Lock()

    def fresh(self) -> bytes:
        with self._lock:
            while True:
                candidate = secrets.token_bytes(NULLIFIER_LENGTH)
                if candidate not in self._emitted:
                    self._emitted.add(candidate)
                    return candidate
                logger.warning("Discarded colliding nullifier candidate")

    @property
    def emitted_count(self) -> int:
        return len(self._emitted)

    def __contains__(self, nullifier: bytes) -> bool:
        return nullifier in self._emitted
