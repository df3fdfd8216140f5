from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from smart_campus.access import Action, Principal, ResourceDescriptor, ResourceKind
from smart_campus.db.filters import prime_scope
from smart_campus.db.session import get_db
from smart_campus.models.academics import Fee, Student
from smart_campus.schemas.school import FeeCreate, FeeOut
from smart_campus.security.dependencies import get_guard, get_principal, require_feature
from smart_campus.security.descriptors import load_resource
from smart_campus.security.guard import AccessGuard

router = APIRouter(tags=["fees"], dependencies=[Depends(require_feature(ResourceKind.FEE))])


@router.get("/fees", response_model=list[FeeOut])
def list_fees(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> list[Fee]:
    prime_scope(db, guard.collection_scope(principal, ResourceKind.FEE))
    return list(db.scalars(select(Fee).order_by(Fee.id)).all())


@router.post("/fees", response_model=FeeOut, status_code=status.HTTP_201_CREATED)
def create_fee(
    payload: FeeCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> Fee:
    student: Student | None = load_resource(db, ResourceKind.STUDENT, payload.student_id)
    if student is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")

    # The fee does not exist yet: describe it by the tenant and owners it will have.
    fee = Fee(
        school_code=student.school_code,
        student_id=student.id,
        class_id=student.class_id,
        fee_type=payload.fee_type,
        amount=payload.amount,
        due_date=payload.due_date,
    )
    descriptor = ResourceDescriptor(
        kind=ResourceKind.FEE,
        tenant_id=fee.school_code,
        owner_refs=fee.descriptor().owner_refs,
    )
    guard.require(principal, Action.CREATE, descriptor, details={"student_id": student.id, "amount": payload.amount})

    db.add(fee)
    db.commit()
    return fee
