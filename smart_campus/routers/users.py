from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from smart_campus.access import Action, Principal, ResourceKind
from smart_campus.access.types import label
from smart_campus.db.session import get_db
from smart_campus.models.school import School
from smart_campus.schemas.school import PrincipalOut, SchoolOut
from smart_campus.security.dependencies import get_guard, get_principal
from smart_campus.security.descriptors import load_resource
from smart_campus.security.guard import AccessGuard

router = APIRouter(tags=["users"])


@router.get("/me", response_model=PrincipalOut)
def me(principal: Principal = Depends(get_principal)) -> PrincipalOut:
    return PrincipalOut(
        id=principal.id,
        role=label(principal.role),
        tenant_id=principal.tenant_id,
        permissions=sorted(principal.permissions),
        linked_entity_ids=sorted(principal.linked_entity_ids),
    )


@router.get("/schools/{code}", response_model=SchoolOut)
def get_school(
    code: str,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> School:
    # The explicit single-resource path for viewing another school (super_admin).
    school = load_resource(db, ResourceKind.SCHOOL, code)
    if school is None or not guard.authorize(principal, Action.READ, school.descriptor()).allowed:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")
    return school
