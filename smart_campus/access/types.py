"""Immutable per-request values used by the policy evaluator and scoping filter."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, TypeVar

from .errors import MalformedPrincipal

E = TypeVar("E", bound=Enum)


class Role(str, Enum):
    SUPER_ADMIN = "super_admin"
    ADMIN = "admin"
    PRINCIPAL = "principal"
    TEACHER = "teacher"
    STUDENT = "student"
    PARENT = "parent"
    ACCOUNTANT = "accountant"


class ResourceKind(str, Enum):
    SCHOOL = "school"
    USER = "user"
    STUDENT = "student"
    TEACHER = "teacher"
    FEE = "fee"
    NOTICE = "notice"
    ASSIGNMENT = "assignment"
    RESULT = "result"
    ATTENDANCE = "attendance"
    ROUTINE = "routine"
    EXAM = "exam"
    ADMIT_CARD = "admit_card"
    AUDIT_LOG = "audit_log"


class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def is_mutation(self) -> bool:
        return self is not Action.READ


class Outcome(str, Enum):
    ALLOW = "allow"
    DENY = "deny"


# Roles that may skip ownership checks when they hold the kind's manage_* permission.
OWNERSHIP_EXEMPT_ROLES = frozenset({Role.PRINCIPAL, Role.ADMIN})

MANAGE_PERMISSIONS: dict[ResourceKind, str] = {
    ResourceKind.SCHOOL: "manage_schools",
    ResourceKind.USER: "manage_users",
    ResourceKind.STUDENT: "manage_students",
    ResourceKind.TEACHER: "manage_teachers",
    ResourceKind.FEE: "manage_fees",
    ResourceKind.NOTICE: "manage_notices",
    ResourceKind.ASSIGNMENT: "manage_assignments",
    ResourceKind.RESULT: "manage_results",
    ResourceKind.ATTENDANCE: "manage_attendance",
    ResourceKind.ROUTINE: "manage_routines",
    ResourceKind.EXAM: "manage_exams",
    ResourceKind.ADMIT_CARD: "manage_admit_cards",
    ResourceKind.AUDIT_LOG: "manage_audit_log",
}


def coerce_enum(enum_cls: type[E], value: object) -> E | object:
    """
    Return the enum member for ``value`` or ``value`` itself when it is unknown.

    Unknown values are kept (not raised) so the evaluator can deny them.
    """

    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return value


def label(value: object) -> str:
    """Plain string for an enum member or an unknown raw value (for logs and audit rows)."""
    return str(value.value) if isinstance(value, Enum) else str(value)


def _str_set(values: Iterable[object] | None) -> frozenset[str]:
    return frozenset(str(v) for v in (values or ()))


@dataclass(frozen=True)
class Principal:
    """
    The authenticated caller for one request.

    Built once from verified session data and discarded when the request ends.
    ``linked_entity_ids`` holds the ids the caller is personally tied to
    (a parent's children, a teacher's classes, a student's own record).
    """

    id: str
    role: Role | str
    tenant_id: str | None = None
    permissions: frozenset[str] = field(default_factory=frozenset)
    linked_entity_ids: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        if self.id is None or str(self.id).strip() == "":
            raise MalformedPrincipal("principal id is required")
        object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "role", coerce_enum(Role, self.role))
        tenant = str(self.tenant_id).strip() if self.tenant_id is not None else ""
        object.__setattr__(self, "tenant_id", tenant or None)
        if self.role is not Role.SUPER_ADMIN and self.tenant_id is None:
            raise MalformedPrincipal(f"role {label(self.role)!r} requires a tenant id")
        object.__setattr__(self, "permissions", _str_set(self.permissions))
        object.__setattr__(self, "linked_entity_ids", _str_set(self.linked_entity_ids))

    @property
    def is_super_admin(self) -> bool:
        return self.role is Role.SUPER_ADMIN

    def can_manage(self, kind: ResourceKind) -> bool:
        """True if the role and a manage_* permission exempt this principal from ownership on ``kind``."""
        if self.role not in OWNERSHIP_EXEMPT_ROLES:
            return False
        permission = MANAGE_PERMISSIONS.get(kind)
        return permission is not None and permission in self.permissions


@dataclass(frozen=True)
class ResourceDescriptor:
    """Minimal handle to the entity being accessed: its kind, tenant and owners."""

    kind: ResourceKind | str
    tenant_id: str | None
    id: str | None = None
    owner_refs: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        object.__setattr__(self, "kind", coerce_enum(ResourceKind, self.kind))
        if self.id is not None:
            object.__setattr__(self, "id", str(self.id))
        object.__setattr__(self, "owner_refs", _str_set(self.owner_refs))


@dataclass(frozen=True)
class Decision:
    outcome: Outcome
    reason: str

    @classmethod
    def allow(cls, reason: str = "allowed") -> Decision:
        return cls(Outcome.ALLOW, reason)

    @classmethod
    def deny(cls, reason: str) -> Decision:
        return cls(Outcome.DENY, reason)

    @property
    def allowed(self) -> bool:
        return self.outcome is Outcome.ALLOW
