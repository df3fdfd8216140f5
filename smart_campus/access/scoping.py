"""
Scoping filter: the collection-read counterpart of decide().

scope_for() derives its predicate from the same (role, kind, Read) rule the
evaluator uses, so for any collection the rows it admits are exactly the rows
decide() would allow one at a time.
"""

from __future__ import annotations

from dataclasses import dataclass

from .policy import PolicyTable
from .types import Action, Principal, ResourceDescriptor, ResourceKind, Role


@dataclass(frozen=True)
class FilterPredicate:
    """
    Query restriction for one resource kind.

    - ``match_nothing``: fail-closed predicate, admits no rows.
    - ``tenant_id``: when set, rows must belong to this tenant.
    - ``owner_refs``: when set, a row's owner refs must intersect this set.
    """

    kind: ResourceKind | None
    match_nothing: bool = False
    tenant_id: str | None = None
    owner_refs: frozenset[str] | None = None

    @classmethod
    def nothing(cls, kind: ResourceKind | None = None) -> FilterPredicate:
        return cls(kind=kind, match_nothing=True)

    @classmethod
    def everything(cls, kind: ResourceKind) -> FilterPredicate:
        return cls(kind=kind)

    @property
    def is_unrestricted(self) -> bool:
        return not self.match_nothing and self.tenant_id is None and self.owner_refs is None

    def matches(self, resource: ResourceDescriptor) -> bool:
        if self.match_nothing or resource.kind != self.kind:
            return False
        if self.tenant_id is not None and resource.tenant_id != self.tenant_id:
            return False
        if self.owner_refs is not None and resource.owner_refs.isdisjoint(self.owner_refs):
            return False
        return True

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable dict (for logs and debugging)."""
        return {
            "kind": self.kind.value if isinstance(self.kind, ResourceKind) else None,
            "match_nothing": self.match_nothing,
            "tenant_id": self.tenant_id,
            "owner_refs": sorted(self.owner_refs) if self.owner_refs is not None else None,
        }


def scope_for(principal: Principal, kind: ResourceKind | str, table: PolicyTable) -> FilterPredicate:
    """
    Return the minimal predicate restricting a ``kind`` collection to what ``principal`` may read.

    - no Read rule (or unknown role/kind): match nothing, never everything
    - super_admin: no tenant clause
    - everyone else: tenant_id == principal.tenant_id
    - rule requires ownership and no manage_* exemption: owner_refs ∩ linked_entity_ids
    """

    if not isinstance(kind, ResourceKind):
        try:
            kind = ResourceKind(kind)
        except ValueError:
            return FilterPredicate.nothing()

    role = principal.role
    if not isinstance(role, Role):
        return FilterPredicate.nothing(kind)

    rule = table.lookup(role, kind, Action.READ)
    if rule is None:
        return FilterPredicate.nothing(kind)

    tenant_id = None
    if rule.requires_same_tenant and not principal.is_super_admin:
        tenant_id = principal.tenant_id

    owner_refs = None
    if rule.requires_ownership and not principal.can_manage(kind):
        owner_refs = principal.linked_entity_ids

    return FilterPredicate(kind=kind, tenant_id=tenant_id, owner_refs=owner_refs)
