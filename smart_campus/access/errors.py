"""Error taxonomy for access control."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .types import Decision


class PolicyConfigError(ValueError):
    """Raised when the policy YAML configuration is invalid."""


class MalformedPrincipal(ValueError):
    """Raised when a Principal cannot be built from session data."""


class PolicyDenied(Exception):
    """
    Raised by callers that prefer exceptions over branching on a Decision.

    The evaluator itself never raises this; request guards do.
    """

    def __init__(self, decision: Decision) -> None:
        super().__init__(decision.reason)
        self.decision = decision

    @property
    def reason(self) -> str:
        return self.decision.reason


class UnknownPolicy(PolicyDenied):
    """Deny caused by a missing (role, kind, action) entry in the policy table."""


class AuditWriteFailure(RuntimeError):
    """An audit entry could not be persisted. Reported, never propagated to callers."""
