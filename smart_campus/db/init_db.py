from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from smart_campus.db.base import Base
from smart_campus.db.session import SessionLocal, engine
from smart_campus.models.academics import Fee, Notice, Student
from smart_campus.models.school import School, TeacherClass, User

DEFAULT_FEATURES = ["routine", "attendance", "exam", "fee", "notice"]


def init_db() -> None:
    """
    Create tables + seed demo data.

    Two schools are seeded so tenant isolation can be tried without extra setup.
    """

    Base.metadata.create_all(bind=engine)

    with SessionLocal() as db:
        if _has_seed_data(db):
            return
        seed(db)


def _has_seed_data(db: Session) -> bool:
    return db.execute(select(School.code).limit(1)).first() is not None


def seed(db: Session) -> None:
    # Schools (tenants)
    sch1 = School(code="SCH1", name="Green Valley High", features=list(DEFAULT_FEATURES))
    sch2 = School(code="SCH2", name="Riverside Academy", features=list(DEFAULT_FEATURES))
    db.add_all([sch1, sch2])
    db.flush()

    # Users
    root = User(username="sara_super", email="sara.super@example.com", role="super_admin", school_code=None)
    prin = User(username="paul_principal", email="paul.principal@sch1.example.com", role="principal", school_code="SCH1")
    teach = User(username="tina_teacher", email="tina.teacher@sch1.example.com", role="teacher", school_code="SCH1")
    acct = User(username="adam_accounts", email="adam.accounts@sch1.example.com", role="accountant", school_code="SCH1")
    parent = User(username="pat_parent", email="pat.parent@example.com", role="parent", school_code="SCH1")
    stud_user = User(username="sam_student", email="sam.student@sch1.example.com", role="student", school_code="SCH1")
    prin2 = User(username="rita_principal", email="rita.principal@sch2.example.com", role="principal", school_code="SCH2")
    db.add_all([root, prin, teach, acct, parent, stud_user, prin2])
    db.flush()

    db.add(TeacherClass(teacher_id=teach.id, class_id=5, school_code="SCH1"))

    # Students
    s1 = Student(school_code="SCH1", name="Sam Student", roll_number="5-01", class_id=5, user_id=stud_user.id)
    s2 = Student(school_code="SCH1", name="Nina Ninth", roll_number="9-01", class_id=9)
    s3 = Student(school_code="SCH2", name="Ravi River", roll_number="5-01", class_id=5)
    s1.parents.append(parent)
    db.add_all([s1, s2, s3])
    db.flush()

    # Fees
    db.add_all(
        [
            Fee(school_code="SCH1", student_id=s1.id, class_id=s1.class_id, amount=1200.00, due_date=date(2026, 1, 10)),
            Fee(school_code="SCH1", student_id=s2.id, class_id=s2.class_id, amount=1500.00, due_date=date(2026, 1, 10)),
            Fee(school_code="SCH2", student_id=s3.id, class_id=s3.class_id, amount=900.00, due_date=date(2026, 2, 1)),
        ]
    )

    # Notices
    db.add_all(
        [
            Notice(school_code="SCH1", title="Sports day", body="Sports day is on Friday.", created_by=prin.id),
            Notice(school_code="SCH2", title="Exam schedule", body="Mid-terms start Monday.", created_by=prin2.id),
        ]
    )

    db.commit()
