"""
Policy layer for value leaving shielded state.

User-defined rules are evaluated against every mutating operation before
any blinding factor is used or proof requested. Evaluation is local and
cheap; nothing is cached between calls.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from gtx_privacy.errors import PrivacyError

logger = logging.getLogger("gtx_privacy.policy")


class PolicyViolation(PrivacyError):
    """Raised when an operation violates a configured privacy policy."""
    pass


class PolicyType(str, Enum):
    MAX_AMOUNT = "MAX_AMOUNT"
    ORIGIN_RESTRICTION = "ORIGIN_RESTRICTION"


@dataclass(frozen=True)
class PrivacyPolicy:
    """
    One rule.

    Args:
        type:  MAX_AMOUNT (value: numeric cap) or ORIGIN_RESTRICTION
               (value: the only origin allowed, e.g. "Solar")
        value: Rule parameter.
        name:  Display name.
        id:    Assigned by PolicyEngine.add_policy when empty.
    """
    type: PolicyType
    value: Any
    name: str = ""
    id: str = ""

    def evaluate(self, action: str, amount: float, details: dict[str, Any]) -> None:
        if self.type == PolicyType.MAX_AMOUNT and amount > self.value:
            raise PolicyViolation(
                f"Policy Violation: {action} amount {amount} exceeds maximum of {self.value}"
            )
        if self.type == PolicyType.ORIGIN_RESTRICTION:
            origin = details.get("origin")
            origin = getattr(origin, "value", origin)
            if origin and origin != self.value:
                raise PolicyViolation(
                    f"Policy Violation: {action} requires {self.value} energy origin, got {origin}"
                )


@dataclass
class PolicyEngine:
    """Ordered collection of policies; the first violated rule wins."""
    _policies: list[PrivacyPolicy] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def policies(self) -> list[PrivacyPolicy]:
        with self._lock:
            return list(self._policies)

    def add_policy(self, policy: PrivacyPolicy) -> PrivacyPolicy:
        if not policy.id:
            policy = PrivacyPolicy(
                type=PolicyType(policy.type),
                value=policy.value,
                name=policy.name or policy.type.value,
                id=secrets.token_hex(5),
            )
        with self._lock:
            self._policies = [*self._policies, policy]
        logger.info(f"Policy added: {policy.name} ({policy.type.value}={policy.value})")
        return policy

    def remove_policy(self, policy_id: str) -> bool:
        with self._lock:
            before = len(self._policies)
            self._policies = [p for p in self._policies if p.id != policy_id]
            return len(self._policies) != before

    def check(self, action: str, amount: float, details: dict[str, Any] | None = None) -> None:
        """
        Raises:
            PolicyViolation: On the first rule (in insertion order) that fails.
        """
        details = details or {}
        for policy in self.policies:
            policy.evaluate(action, amount, details)
