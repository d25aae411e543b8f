"""Entitlement decisions.

``resolve`` only reads account state. Consuming the entitlement is the
ledger's job, inside the same transaction that read the state.
"""
from __future__ import annotations

import enum
from typing import Protocol


class Decision(str, enum.Enum):
    ALLOW_FREE = "allow_free"
    ALLOW_PAID = "allow_paid"
    DENY = "deny"

    @property
    def allowed(self) -> bool:
        return self is not Decision.DENY


class EntitlementState(Protocol):
    free_trial_used: bool
    credits: int


def resolve(account: EntitlementState) -> Decision:
    if not account.free_trial_used:
        return Decision.ALLOW_FREE
    if account.credits > 0:
        return Decision.ALLOW_PAID
    return Decision.DENY
