"""
Policy table, YAML loader and the policy evaluator.

Key ideas:
- Rules are data: one PolicyRule per (role, kind, action), loaded from YAML once at startup.
- The table is an immutable snapshot; PolicyStore swaps snapshots atomically on reload.
- decide() is pure and never raises for typed input. Callers branch on the Decision
  and are responsible for auditing.

This module is pure Python and has no FastAPI or SQLAlchemy dependency.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import threading
from typing import Any, Iterable, Iterator, Mapping

from pydantic import BaseModel, Field, ValidationError
import yaml

from .errors import PolicyConfigError
from .types import Action, Decision, Principal, ResourceDescriptor, ResourceKind, Role, coerce_enum

logger = logging.getLogger(__name__)

WILDCARD = "*"

REASON_ALLOWED = "allowed"
REASON_UNKNOWN = "unknown role/kind"
REASON_UNKNOWN_ACTION = "unknown action"
REASON_NO_POLICY = "no matching policy"
REASON_TENANT_MISMATCH = "tenant mismatch"
REASON_OWNERSHIP = "ownership failure"


# ---- Data structures -----------------------------------------------------------------


@dataclass(frozen=True)
class PolicyRule:
    """Single rule: ``role`` may perform ``action`` on ``kind`` under the stated conditions."""

    role: Role
    kind: ResourceKind
    action: Action
    requires_same_tenant: bool = True
    requires_ownership: bool = False

    @property
    def key(self) -> tuple[Role, ResourceKind, Action]:
        return (self.role, self.kind, self.action)


class PolicyTable:
    """
    Immutable, indexed rule set plus the role -> permission mapping.

    Usage:
        table = load_policy_table(Path("config/policy.yaml"))
        decision = table.decide(principal, Action.READ, descriptor)
    """

    def __init__(
        self,
        rules: Iterable[PolicyRule],
        role_permissions: Mapping[Role, frozenset[str]] | None = None,
        source: str | None = None,
    ) -> None:
        indexed: dict[tuple[Role, ResourceKind, Action], PolicyRule] = {}
        for rule in rules:
            if rule.key in indexed:
                raise PolicyConfigError(
                    f"duplicate rule for role={rule.role.value} kind={rule.kind.value} action={rule.action.value}"
                )
            if not rule.requires_same_tenant and rule.role is not Role.SUPER_ADMIN:
                raise PolicyConfigError(
                    f"rule for role={rule.role.value} kind={rule.kind.value} must require the same tenant"
                )
            indexed[rule.key] = rule

        self._rules = indexed
        self._role_permissions = {role: frozenset(perms) for role, perms in (role_permissions or {}).items()}
        self.source = source

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self) -> Iterator[PolicyRule]:
        return iter(self._rules.values())

    def lookup(self, role: Role, kind: ResourceKind, action: Action) -> PolicyRule | None:
        return self._rules.get((role, kind, action))

    def permissions_for(self, role: Role | str) -> frozenset[str]:
        """Permissions granted to ``role`` by the permission map (empty for unknown roles)."""
        role = coerce_enum(Role, role)
        if not isinstance(role, Role):
            return frozenset()
        return self._role_permissions.get(role, frozenset())

    def decide(self, principal: Principal, action: Action | str, resource: ResourceDescriptor) -> Decision:
        return decide(principal, action, resource, self)


# ---- Evaluator -----------------------------------------------------------------------


def owns(principal: Principal, resource: ResourceDescriptor) -> bool:
    return not resource.owner_refs.isdisjoint(principal.linked_entity_ids)


def decide(
    principal: Principal,
    action: Action | str,
    resource: ResourceDescriptor,
    table: PolicyTable,
) -> Decision:
    """
    Decide whether ``principal`` may perform ``action`` on ``resource``.

    Algorithm:
    1. Unknown role or kind -> Deny("unknown role/kind"); unknown action -> Deny("unknown action").
    2. No rule for (role, kind, action) -> Deny("no matching policy").
    3. requires_same_tenant: tenants must match (super_admin exempt) else Deny("tenant mismatch").
    4. requires_ownership: owner_refs must intersect linked_entity_ids (principal/admin holding
       the kind's manage_* permission exempt) else Deny("ownership failure").
    5. Allow.
    """

    role = principal.role
    kind = resource.kind
    if not isinstance(role, Role) or not isinstance(kind, ResourceKind):
        return Decision.deny(REASON_UNKNOWN)

    action = coerce_enum(Action, action)
    if not isinstance(action, Action):
        return Decision.deny(REASON_UNKNOWN_ACTION)

    rule = table.lookup(role, kind, action)
    if rule is None:
        return Decision.deny(REASON_NO_POLICY)

    if rule.requires_same_tenant and not principal.is_super_admin:
        if resource.tenant_id is None or principal.tenant_id != resource.tenant_id:
            return Decision.deny(REASON_TENANT_MISMATCH)

    if rule.requires_ownership and not principal.can_manage(kind):
        if not owns(principal, resource):
            return Decision.deny(REASON_OWNERSHIP)

    return Decision.allow(REASON_ALLOWED)


# ---- YAML loader ---------------------------------------------------------------------


class PermissionEntry(BaseModel):
    roles: list[str] = Field(default_factory=list)


class RuleEntry(BaseModel):
    roles: list[str]
    kinds: list[str]
    actions: list[str]
    requires_same_tenant: bool = True
    requires_ownership: bool = False


class PolicyConfigModel(BaseModel):
    permissions: dict[str, PermissionEntry] = Field(default_factory=dict)
    rules: list[RuleEntry] = Field(default_factory=list)


def _expand(enum_cls: type, names: list[str], what: str) -> list[Any]:
    if WILDCARD in names:
        return list(enum_cls)
    members = []
    for name in names:
        member = coerce_enum(enum_cls, str(name).strip().lower())
        if not isinstance(member, enum_cls):
            raise PolicyConfigError(f"unknown {what} {name!r}")
        members.append(member)
    return members


def build_policy_table(raw: Mapping[str, Any], source: str | None = None) -> PolicyTable:
    """Validate the ``policy`` mapping and expand entries into one rule per triple."""

    try:
        model = PolicyConfigModel.model_validate(raw)
    except ValidationError as exc:
        raise PolicyConfigError(f"invalid policy config: {exc}") from exc

    rules: list[PolicyRule] = []
    for entry in model.rules:
        for role in _expand(Role, entry.roles, "role"):
            for kind in _expand(ResourceKind, entry.kinds, "kind"):
                for action in _expand(Action, entry.actions, "action"):
                    rules.append(
                        PolicyRule(
                            role=role,
                            kind=kind,
                            action=action,
                            requires_same_tenant=entry.requires_same_tenant,
                            requires_ownership=entry.requires_ownership,
                        )
                    )

    role_permissions: dict[Role, set[str]] = {}
    for permission_name, perm in model.permissions.items():
        for role in _expand(Role, perm.roles, "role"):
            role_permissions.setdefault(role, set()).add(permission_name)

    return PolicyTable(
        rules,
        {role: frozenset(perms) for role, perms in role_permissions.items()},
        source=source,
    )


def load_policy_table(path: Path) -> PolicyTable:
    """
    Load and validate the policy YAML from disk.

    Expected shape (simplified):

        policy:
          permissions:
            manage_students:
              roles: [principal, admin]
          rules:
            - roles: [teacher]
              kinds: [student]
              actions: [read]
              requires_ownership: true
            - roles: [super_admin]
              kinds: ["*"]
              actions: ["*"]
    """

    raw_text = path.read_text(encoding="utf-8")
    raw = yaml.safe_load(raw_text) or {}

    if "policy" not in raw:
        raise PolicyConfigError(f"Missing top-level 'policy' key in config: {path}")

    table = build_policy_table(raw["policy"] or {}, source=str(path))
    logger.debug("Policy table loaded rules=%d path=%s", len(table), path)
    return table


# ---- Hot reload ----------------------------------------------------------------------


class PolicyStore:
    """
    Holds the current PolicyTable snapshot.

    Readers call current() once per evaluation and keep that reference, so an
    in-flight decision never observes a half-updated rule set.
    """

    def __init__(self, table: PolicyTable) -> None:
        self._table = table
        self._lock = threading.Lock()

    @classmethod
    def from_yaml(cls, path: Path) -> PolicyStore:
        return cls(load_policy_table(path))

    def current(self) -> PolicyTable:
        return self._table

    def reload(self, path: Path | None = None) -> PolicyTable:
        """
        Build a new snapshot from ``path`` (default: the current source) and publish it.

        On a config error the previous snapshot stays in place and the error propagates.
        """

        with self._lock:
            source = path or (Path(self._table.source) if self._table.source else None)
            if source is None:
                raise PolicyConfigError("no policy source to reload from")
            table = load_policy_table(source)
            self._table = table
        logger.info("Policy table reloaded rules=%d path=%s", len(table), source)
        return table
