from __future__ import annotations

from typing import Any, ClassVar

from sqlalchemy import and_, false, or_
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.sql.elements import ColumnElement

from smart_campus.access import FilterPredicate, ResourceDescriptor, ResourceKind


class Base(DeclarativeBase):
    pass


def owner_ref(prefix: str, value: Any) -> str:
    """Opaque owner reference, e.g. ``student:12`` or ``class:5``."""
    return f"{prefix}:{value}"


def split_owner_ref(ref: str) -> tuple[str, str] | None:
    prefix, sep, value = ref.partition(":")
    if not sep or not prefix or not value:
        return None
    return prefix, value


class TenantScoped:
    """
    Mixin for models that are access-controlled resources.

    Subclasses declare:
    - ``__resource_kind__``: the ResourceKind they represent
    - ``__tenant_column__``: attribute holding the tenant (school code)
    - ``__owner_columns__``: owner-ref prefix -> attribute, e.g. {"student": "id", "class": "class_id"}
    """

    __resource_kind__: ClassVar[ResourceKind]
    __tenant_column__: ClassVar[str] = "school_code"
    __owner_columns__: ClassVar[dict[str, str]] = {}

    def descriptor(self) -> ResourceDescriptor:
        refs = set()
        for prefix, attr in self.__owner_columns__.items():
            value = getattr(self, attr)
            if value is not None:
                refs.add(owner_ref(prefix, value))
        return ResourceDescriptor(
            kind=self.__resource_kind__,
            tenant_id=getattr(self, self.__tenant_column__),
            id=getattr(self, "id", None),
            owner_refs=frozenset(refs),
        )

    @classmethod
    def scope_clause(cls, predicate: FilterPredicate) -> ColumnElement[bool] | None:
        """
        Translate a FilterPredicate into a WHERE clause for this model.

        Returns None for the unrestricted predicate.
        """

        if predicate.match_nothing:
            return false()

        clauses = []
        if predicate.tenant_id is not None:
            clauses.append(getattr(cls, cls.__tenant_column__) == predicate.tenant_id)

        if predicate.owner_refs is not None:
            owner_clauses = []
            for prefix, values in _group_refs(predicate.owner_refs).items():
                attr = cls.__owner_columns__.get(prefix)
                if attr is None:
                    continue
                column = getattr(cls, attr)
                typed = _coerce_values(column, values)
                if typed:
                    owner_clauses.append(column.in_(typed))
            clauses.append(or_(*owner_clauses) if owner_clauses else false())

        if not clauses:
            return None
        if len(clauses) == 1:
            return clauses[0]
        return and_(*clauses)


def _group_refs(refs: frozenset[str]) -> dict[str, list[str]]:
    grouped: dict[str, list[str]] = {}
    for ref in sorted(refs):
        parts = split_owner_ref(ref)
        if parts is None:
            continue
        grouped.setdefault(parts[0], []).append(parts[1])
    return grouped


def _coerce_values(column: Any, values: list[str]) -> list[Any]:
    try:
        python_type = column.type.python_type
    except NotImplementedError:
        return list(values)
    typed = []
    for value in values:
        try:
            typed.append(python_type(value))
        except (TypeError, ValueError):
            # A ref that cannot match this column type can never match a row.
            continue
    return typed
