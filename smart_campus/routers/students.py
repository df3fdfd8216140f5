from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from smart_campus.access import Action, Principal, ResourceDescriptor, ResourceKind, check_plan_limit
from smart_campus.db.filters import SKIP_SCOPE, prime_scope
from smart_campus.db.session import get_db
from smart_campus.models.academics import Student
from smart_campus.schemas.school import StudentCreate, StudentOut, StudentUpdate
from smart_campus.security.dependencies import get_guard, get_principal
from smart_campus.security.descriptors import load_resource
from smart_campus.security.guard import AccessGuard

router = APIRouter(tags=["students"])


def _not_found() -> HTTPException:
    # Denied and missing look the same to the caller.
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resource not found")


@router.get("/students", response_model=list[StudentOut])
def list_students(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> list[Student]:
    prime_scope(db, guard.collection_scope(principal, ResourceKind.STUDENT))
    # Rows are scoped transparently by smart_campus/db/filters.py.
    return list(db.scalars(select(Student).order_by(Student.id)).all())


@router.post("/students", response_model=StudentOut, status_code=status.HTTP_201_CREATED)
def create_student(
    payload: StudentCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> Student:
    school_code = payload.school_code or principal.tenant_id
    if school_code is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="school_code is required")
    school = load_resource(db, ResourceKind.SCHOOL, school_code)
    if school is None:
        raise _not_found()

    student = Student(
        school_code=school_code,
        name=payload.name,
        roll_number=payload.roll_number,
        class_id=payload.class_id,
    )
    enrolled = db.scalar(
        select(func.count())
        .select_from(Student)
        .where(Student.school_code == school_code)
        .execution_options(**{SKIP_SCOPE: True})
    )
    descriptor = ResourceDescriptor(
        kind=ResourceKind.STUDENT,
        tenant_id=school_code,
        owner_refs=student.descriptor().owner_refs,
    )
    guard.require(
        principal,
        Action.CREATE,
        descriptor,
        details={"name": payload.name},
        gate=check_plan_limit(principal, school.tenant_status(), ResourceKind.STUDENT, enrolled or 0),
    )

    db.add(student)
    db.commit()
    return student


@router.get("/students/{id}", response_model=StudentOut)
def get_student(
    id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> Student:
    student = load_resource(db, ResourceKind.STUDENT, id)
    if student is None or not guard.authorize(principal, Action.READ, student.descriptor()).allowed:
        raise _not_found()
    return student


@router.patch("/students/{id}", response_model=StudentOut)
def update_student(
    id: int,
    payload: StudentUpdate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> Student:
    student = load_resource(db, ResourceKind.STUDENT, id)
    if student is None:
        raise _not_found()

    changes = payload.model_dump(exclude_unset=True)
    guard.require(principal, Action.UPDATE, student.descriptor(), details={"fields": sorted(changes)})

    for field, value in changes.items():
        setattr(student, field, value)
    db.commit()
    return student


@router.delete("/students/{id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_student(
    id: int,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> Response:
    student = load_resource(db, ResourceKind.STUDENT, id)
    if student is None:
        raise _not_found()

    guard.require(principal, Action.DELETE, student.descriptor())

    db.delete(student)
    db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
