from __future__ import annotations

import logging
from typing import Any, Mapping

from smart_campus.access import (
    Action,
    AuditSink,
    Decision,
    FilterPredicate,
    Outcome,
    PolicyDenied,
    PolicyStore,
    Principal,
    ResourceDescriptor,
    ResourceKind,
    UnknownPolicy,
    decide,
    scope_for,
)
from smart_campus.access.policy import REASON_NO_POLICY
from smart_campus.access.types import coerce_enum, label

logger = logging.getLogger(__name__)

COLLECTION = "*"


class AccessGuard:
    """
    The one place route handlers go for authorization.

    - authorize(): decide + audit (mutations, super_admin access, cross-tenant access)
    - require(): authorize, then raise PolicyDenied on Deny
    - collection_scope(): scope_for, auditing super_admin's unscoped reads

    ``context`` (client ip, user agent, device id) is added to the details of
    every audit entry this guard records; see with_context().
    """

    def __init__(
        self,
        policy_store: PolicyStore,
        audit_sink: AuditSink,
        context: Mapping[str, Any] | None = None,
    ) -> None:
        self._policy_store = policy_store
        self._audit_sink = audit_sink
        self._context = dict(context or {})

    @property
    def audit_sink(self) -> AuditSink:
        return self._audit_sink

    def with_context(self, context: Mapping[str, Any]) -> AccessGuard:
        """A guard for one request: same policy store and sink, request metadata attached."""
        return AccessGuard(self._policy_store, self._audit_sink, context)

    def _details(self, details: Mapping[str, Any] | None) -> dict[str, Any]:
        return {**self._context, **(details or {})}

    def authorize(
        self,
        principal: Principal,
        action: Action | str,
        resource: ResourceDescriptor,
        details: Mapping[str, Any] | None = None,
        gate: Decision | None = None,
    ) -> Decision:
        """
        Decide and audit.

        ``gate`` is an already-evaluated precondition (e.g. a plan limit). It only
        applies when the policy allows; a denying gate then replaces the decision.
        """

        decision = decide(principal, action, resource, self._policy_store.current())
        if decision.allowed and gate is not None and not gate.allowed:
            decision = gate

        action = coerce_enum(Action, action)
        is_mutation = not isinstance(action, Action) or action.is_mutation
        cross_tenant = resource.tenant_id is not None and resource.tenant_id != principal.tenant_id

        if not decision.allowed:
            log = logger.warning if decision.reason == REASON_NO_POLICY else logger.info
            log(
                "Access denied principal=%s role=%s action=%s kind=%s id=%s reason=%s",
                principal.id,
                label(principal.role),
                label(action),
                label(resource.kind),
                resource.id,
                decision.reason,
            )
        elif cross_tenant:
            logger.info(
                "Cross-tenant access principal=%s action=%s kind=%s id=%s tenant=%s",
                principal.id,
                label(action),
                label(resource.kind),
                resource.id,
                resource.tenant_id,
            )

        if is_mutation or principal.is_super_admin or cross_tenant:
            self._audit_sink.record(
                principal,
                action,
                resource.kind,
                resource.id,
                decision.outcome,
                tenant_id=resource.tenant_id,
                reason=decision.reason,
                details=self._details(details),
            )
        return decision

    def require(
        self,
        principal: Principal,
        action: Action | str,
        resource: ResourceDescriptor,
        details: Mapping[str, Any] | None = None,
        gate: Decision | None = None,
    ) -> Decision:
        decision = self.authorize(principal, action, resource, details, gate)
        if decision.allowed:
            return decision
        if decision.reason == REASON_NO_POLICY:
            raise UnknownPolicy(decision)
        raise PolicyDenied(decision)

    def collection_scope(self, principal: Principal, kind: ResourceKind) -> FilterPredicate:
        predicate = scope_for(principal, kind, self._policy_store.current())
        if principal.is_super_admin:
            self._audit_sink.record(
                principal,
                Action.READ,
                kind,
                COLLECTION,
                Outcome.DENY if predicate.match_nothing else Outcome.ALLOW,
                reason="collection scope",
                details=self._details(None),
            )
        return predicate
