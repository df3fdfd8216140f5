"""
Tenant-scoped authorization for Smart Campus.

This package has no dependency on other smart_campus packages (db, security, routers).
Use decide() for single-resource operations, scope_for() for collection reads and
AuditSink.record() for every state-changing decision.
"""

from .audit import AuditEntry, AuditSink, InMemoryAuditStore, QueuedAuditSink
from .errors import AuditWriteFailure, MalformedPrincipal, PolicyConfigError, PolicyDenied, UnknownPolicy
from .policy import PolicyRule, PolicyStore, PolicyTable, decide, load_policy_table
from .scoping import FilterPredicate, scope_for
from .tenancy import TenantStatus, check_plan_limit, check_tenant
from .types import Action, Decision, Outcome, Principal, ResourceDescriptor, ResourceKind, Role

__all__ = [
    "Action",
    "AuditEntry",
    "AuditSink",
    "AuditWriteFailure",
    "Decision",
    "FilterPredicate",
    "InMemoryAuditStore",
    "MalformedPrincipal",
    "Outcome",
    "PolicyConfigError",
    "PolicyDenied",
    "PolicyRule",
    "PolicyStore",
    "PolicyTable",
    "Principal",
    "QueuedAuditSink",
    "ResourceDescriptor",
    "ResourceKind",
    "Role",
    "TenantStatus",
    "UnknownPolicy",
    "check_plan_limit",
    "check_tenant",
    "decide",
    "load_policy_table",
    "scope_for",
]
