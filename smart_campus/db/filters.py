from __future__ import annotations

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session, with_loader_criteria

from smart_campus.access import FilterPredicate, ResourceKind, scope_for
from smart_campus.db.base import Base, TenantScoped

logger = logging.getLogger(__name__)

SKIP_SCOPE = "skip_scope"


def scoped_models() -> list[type[TenantScoped]]:
    return [
        mapper.class_
        for mapper in Base.registry.mappers
        if issubclass(mapper.class_, TenantScoped) and getattr(mapper.class_, "__resource_kind__", None) is not None
    ]


def predicate_for(session: Session, kind: ResourceKind) -> FilterPredicate:
    """
    Compute (once per session, i.e. per request) the scoping predicate for ``kind``.

    A principal without a policy snapshot gets match-nothing predicates.
    """

    cache: dict[ResourceKind, FilterPredicate] = session.info.setdefault("scopes", {})
    predicate = cache.get(kind)
    if predicate is None:
        principal = session.info["principal"]
        table = session.info.get("policy_table")
        predicate = FilterPredicate.nothing(kind) if table is None else scope_for(principal, kind, table)
        cache[kind] = predicate
        logger.debug("Scope computed principal=%s kind=%s scope=%s", principal.id, kind.value, predicate.to_dict())
    return predicate


@event.listens_for(Session, "do_orm_execute")
def _apply_scoping_filters(execute_state) -> None:
    """
    Transparent data scoping.

    This keeps route query code unchanged:
        db.scalars(select(Student)).all()
    returns only the rows scope_for() admits for the request principal.
    Descriptor loads opt out with execution_options(skip_scope=True), so that
    the policy evaluator (not the query) decides single-resource access.
    """

    if not execute_state.is_select:
        return
    if execute_state.execution_options.get(SKIP_SCOPE, False):
        return
    if execute_state.is_column_load or execute_state.is_relationship_load:
        # Refreshes and lazy loads inherit the criteria of the query that loaded the parent.
        return

    session = execute_state.session
    if session.info.get("principal") is None:
        return

    options = []
    for model in scoped_models():
        clause = model.scope_clause(predicate_for(session, model.__resource_kind__))
        if clause is None:
            continue
        options.append(with_loader_criteria(model, clause, include_aliases=True))

    if options:
        execute_state.statement = execute_state.statement.options(*options)


def prime_scope(session: Session, predicate: FilterPredicate) -> None:
    """Reuse a predicate already computed for this request instead of deriving it again."""
    if predicate.kind is not None:
        session.info.setdefault("scopes", {})[predicate.kind] = predicate
