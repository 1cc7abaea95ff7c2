"""
Rollup aggregator: batches proved operations into one ledger submission.

Operations are queued with their commitment and proof already attached.
`submit` folds every constituent proof into one aggregate digest, settles
the batch with a single ledger call, writes one history entry per
operation, and clears the queue. If the ledger call fails the queue is
left exactly as it was so the caller can retry the whole batch.
"""

from __future__ import annotations

import hashlib
import logging
import secrets
import threading
from dataclasses import dataclass, field
from typing import Any

from gtx_privacy.core.ledger import LedgerClient
from gtx_privacy.core.models import LedgerReceipt, Origin
from gtx_privacy.engine.builder import InstructionBuilder
from gtx_privacy.engine.history import EncryptedHistoryLog

logger = logging.getLogger("gtx_privacy.rollup")

MAX_ROLLUP_SIZE = 64


@dataclass(frozen=True)
class PendingOperation:
    amount: int
    commitment: str
    proof_bytes: bytes
    origin: Origin = Origin.SOLAR
    id: str = field(default_factory=lambda: f"TX-{secrets.token_hex(3).upper()}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "commitment": self.commitment,
            "proof": self.proof_bytes.hex(),
            "origin": self.origin.value,
        }


def aggregate_proofs(operations: list[PendingOperation]) -> bytes:
    """Order-sensitive digest binding every constituent commitment and proof."""
    hasher = hashlib.sha256(b"GridTokenX_Rollup_v1")
    for op in operations:
        hasher.update(bytes.fromhex(op.commitment))
        hasher.update(hashlib.sha256(op.proof_bytes).digest())
    return hasher.digest()


class RollupAggregator:
    """
    Usage:
        aggregator = RollupAggregator()
        aggregator.enqueue(op)
        receipt = aggregator.submit(builder, ledger, history, key)
    """

    def __init__(self, max_size: int = MAX_ROLLUP_SIZE) -> None:
        self.max_size = max_size
        self._queue: list[PendingOperation] = []
        self._lock = threading.Lock()

    @property
    def pending(self) -> list[PendingOperation]:
        with self._lock:
            return list(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, op: PendingOperation) -> None:
        with self._lock:
            if len(self._queue) >= self.max_size:
                raise ValueError(f"Rollup queue is full ({self.max_size} operations)")
            self._queue.append(op)

    def submit(
        self,
        builder: InstructionBuilder,
        ledger: LedgerClient,
        history: EncryptedHistoryLog,
        encryption_key: bytes,
        operations: list[PendingOperation] | None = None,
    ) -> LedgerReceipt:
        """
        Settle the queued operations (or `operations`, which replace the queue).

        Raises:
            ValueError: If there is nothing to settle.
            LedgerRejection: The queue is left unchanged.
        """
        with self._lock:
            batch = list(operations) if operations is not None else list(self._queue)
            if not batch:
                raise ValueError("No pending operations to roll up")

            aggregate = aggregate_proofs(batch)
            instruction = builder.settle_rollup(aggregate, [op.to_dict() for op in batch])
            receipt = ledger.submit(instruction)

            for op in batch:
                history.push(
                    builder.owner,
                    encryption_key,
                    "ROLLUP_SETTLEMENT",
                    op.amount,
                    {"rollupId": receipt.signature, "operationId": op.id, "origin": op.origin.value},
                )
            self._queue = []

        logger.info(f"Rollup settled: {len(batch)} operations in {receipt.signature[:16]}...")
        return receipt
