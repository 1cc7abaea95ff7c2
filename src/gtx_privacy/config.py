"""
Engine configuration.

Every field can be set from the environment via EngineConfig.from_env():

    GTX_ASSET                 energy token identifier      (default "GRX")
    GTX_LEDGER_URL            ledger gateway; empty = in-memory reference ledger
    GTX_LEDGER_API_KEY        optional api_key header for the gateway
    GTX_PROVER_URL            proving service; empty = in-process LocalProver
    GTX_STORE_PATH            JSON file for the key-value store; empty = memory
    GTX_HTTP_TIMEOUT          seconds for ledger/prover HTTP calls
    GTX_PROOF_RETRIES         extra attempts after a proof failure
    GTX_RECOVERY_MAX_SEARCH   upper bound for balance recovery search
    GTX_RANGE_BITS            range proof width for the LocalProver
"""

from __future__ import annotations

import os
from dataclasses import dataclass


@dataclass
class EngineConfig:
    asset: str = "GRX"
    ledger_url: str = ""
    ledger_api_key: str | None = None
    prover_url: str = ""
    store_path: str = ""
    http_timeout: float = 30.0
    proof_retries: int = 1
    recovery_max_search: int = 100_000
    range_bits: int = 64

    def __post_init__(self) -> None:
        if self.proof_retries < 0:
            raise ValueError(f"proof_retries must be >= 0, got {self.proof_retries}")
        if not 0 < self.range_bits <= 64:
            raise ValueError(f"range_bits must be in [1, 64], got {self.range_bits}")

    @classmethod
    def from_env(cls) -> EngineConfig:
        return cls(
            asset=os.getenv("GTX_ASSET", "GRX"),
            ledger_url=os.getenv("GTX_LEDGER_URL", ""),
            ledger_api_key=os.getenv("GTX_LEDGER_API_KEY") or None,
            prover_url=os.getenv("GTX_PROVER_URL", ""),
            store_path=os.getenv("GTX_STORE_PATH", ""),
            http_timeout=float(os.getenv("GTX_HTTP_TIMEOUT", "30")),
            proof_retries=int(os.getenv("GTX_PROOF_RETRIES", "1")),
            recovery_max_search=int(os.getenv("GTX_RECOVERY_MAX_SEARCH", "100000")),
            range_bits=int(os.getenv("GTX_RANGE_BITS", "64")),
        )
