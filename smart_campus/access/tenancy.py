"""School (tenant) status and feature gate."""

from __future__ import annotations

from dataclasses import dataclass, field

from .types import Decision, Principal, ResourceKind

ACTIVE = "active"

# Feature flag guarding each kind; kinds not listed are always available.
KIND_FEATURES: dict[ResourceKind, str] = {
    ResourceKind.FEE: "fee",
    ResourceKind.ATTENDANCE: "attendance",
    ResourceKind.RESULT: "exam",
    ResourceKind.EXAM: "exam",
    ResourceKind.ADMIT_CARD: "exam",
    ResourceKind.NOTICE: "notice",
    ResourceKind.ROUTINE: "routine",
    ResourceKind.ASSIGNMENT: "assignment",
}


@dataclass(frozen=True)
class TenantStatus:
    tenant_id: str
    is_active: bool = True
    subscription_status: str = ACTIVE
    plan: str = "trial"
    features: frozenset[str] = field(default_factory=frozenset)


def check_tenant(principal: Principal, tenant: TenantStatus | None, kind: ResourceKind | None = None) -> Decision:
    """
    Gate access on the caller's school being usable.

    super_admin is exempt. Otherwise the school must exist, be the caller's own,
    be active, have an active subscription and (for ``kind``) have the feature enabled.
    """

    if principal.is_super_admin:
        return Decision.allow()
    if tenant is None or tenant.tenant_id != principal.tenant_id:
        return Decision.deny("tenant not found")
    if not tenant.is_active:
        return Decision.deny("tenant inactive")
    if tenant.subscription_status != ACTIVE:
        return Decision.deny("subscription inactive")

    feature = KIND_FEATURES.get(kind) if kind is not None else None
    if feature is not None and feature not in tenant.features:
        return Decision.deny("feature not enabled")
    return Decision.allow()


# Per-plan caps on how many records of a kind a school may hold; None means unlimited.
# Unknown plans get the trial limits.
PLAN_LIMITS: dict[str, dict[ResourceKind, int | None]] = {
    "trial": {ResourceKind.USER: 50, ResourceKind.STUDENT: 200, ResourceKind.TEACHER: 20},
    "basic": {ResourceKind.USER: 200, ResourceKind.STUDENT: 1000, ResourceKind.TEACHER: 50},
    "standard": {ResourceKind.USER: 1000, ResourceKind.STUDENT: 5000, ResourceKind.TEACHER: 200},
    "premium": {ResourceKind.USER: 5000, ResourceKind.STUDENT: 20000, ResourceKind.TEACHER: 1000},
    "enterprise": {ResourceKind.USER: None, ResourceKind.STUDENT: None, ResourceKind.TEACHER: None},
}


def plan_limit(plan: str, kind: ResourceKind) -> int | None:
    limits = PLAN_LIMITS.get(plan, PLAN_LIMITS["trial"])
    return limits.get(kind)


def check_plan_limit(principal: Principal, tenant: TenantStatus, kind: ResourceKind, current_count: int) -> Decision:
    """
    Gate a create of ``kind`` on the school's subscription plan.

    ``current_count`` is how many ``kind`` records the school already holds.
    super_admin is exempt; kinds without a cap are always allowed.
    """

    if principal.is_super_admin:
        return Decision.allow()
    limit = plan_limit(tenant.plan, kind)
    if limit is not None and current_count >= limit:
        return Decision.deny("plan limit exceeded")
    return Decision.allow()
