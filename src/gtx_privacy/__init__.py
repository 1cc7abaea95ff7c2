"""
gtx-privacy: confidential balance and transaction engine for GridTokenX energy trading.

Usage:
    from gtx_privacy import PrivacyEngine, UnlockedSession, LocalSigner
    from gtx_privacy.core import InMemoryLedger
    from gtx_privacy.crypto import LocalProver
"""

from gtx_privacy.config import EngineConfig
from gtx_privacy.core.models import Origin, PrivateBalanceState
from gtx_privacy.core.session import UnlockedSession
from gtx_privacy.core.wallet import LocalSigner
from gtx_privacy.engine.engine import PrivacyEngine
from gtx_privacy.errors import PrivacyError

__version__ = "0.1.0"
__all__ = [
    "EngineConfig",
    "LocalSigner",
    "Origin",
    "PrivacyEngine",
    "PrivacyError",
    "PrivateBalanceState",
    "UnlockedSession",
]
