from __future__ import annotations

from sqlalchemy.orm import Session

from smart_campus.access import ResourceDescriptor, ResourceKind
from smart_campus.db.base import TenantScoped
from smart_campus.db.filters import SKIP_SCOPE, scoped_models


def model_for(kind: ResourceKind) -> type[TenantScoped] | None:
    for model in scoped_models():
        if model.__resource_kind__ is kind:
            return model
    return None


def load_resource(db: Session, kind: ResourceKind, resource_id: object) -> TenantScoped | None:
    """
    Load one resource *unscoped*, right before a policy decision.

    Never cached: ownership and tenant can change between requests.
    """

    model = model_for(kind)
    if model is None:
        return None
    return db.get(model, resource_id, execution_options={SKIP_SCOPE: True})


def load_descriptor(db: Session, kind: ResourceKind, resource_id: object) -> ResourceDescriptor | None:
    resource = load_resource(db, kind, resource_id)
    return resource.descriptor() if resource is not None else None
