from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from smart_campus.access import PolicyTable, Principal, Role
from smart_campus.db.base import owner_ref
from smart_campus.models.academics import Student
from smart_campus.models.school import TeacherClass, User, parent_students


def resolve_linked_entity_ids(db: Session, user: User) -> frozenset[str]:
    """
    Owner refs this user is personally tied to.

    This is the one storage lookup in authorization: it runs once while the
    Principal is built and lives only as long as the request.
    """

    linked = {owner_ref("user", user.id)}

    if user.role == Role.PARENT.value:
        child_ids = db.scalars(select(parent_students.c.student_id).where(parent_students.c.parent_id == user.id))
        linked.update(owner_ref("student", child_id) for child_id in child_ids)
    elif user.role == Role.TEACHER.value:
        class_ids = db.scalars(select(TeacherClass.class_id).where(TeacherClass.teacher_id == user.id))
        linked.update(owner_ref("class", class_id) for class_id in class_ids)
    elif user.role == Role.STUDENT.value:
        own_ids = db.scalars(select(Student.id).where(Student.user_id == user.id))
        linked.update(owner_ref("student", student_id) for student_id in own_ids)

    return frozenset(linked)


def build_principal(db: Session, user: User, table: PolicyTable) -> Principal:
    """
    Build the per-request Principal. Permissions are derived from the policy permission map only.

    Raises MalformedPrincipal (e.g. a school role without a school code).
    """

    return Principal(
        id=str(user.id),
        role=user.role,
        tenant_id=user.school_code,
        permissions=table.permissions_for(user.role),
        linked_entity_ids=resolve_linked_entity_ids(db, user),
    )
