from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smart_campus.access import ResourceKind
from smart_campus.db.base import Base, TenantScoped
from smart_campus.models.school import User, parent_students


class Student(TenantScoped, Base):
    __tablename__ = "students"
    __resource_kind__ = ResourceKind.STUDENT
    __owner_columns__ = {"student": "id", "class": "class_id"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    school_code: Mapped[str] = mapped_column(ForeignKey("schools.code"), nullable=False, index=True)

    name: Mapped[str] = mapped_column(String(100), nullable=False)
    roll_number: Mapped[str | None] = mapped_column(String(20), nullable=True)
    class_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    # Login account of the student, when they have one.
    user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True, unique=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    parents: Mapped[list[User]] = relationship(
        secondary=parent_students, back_populates="children", passive_deletes=True
    )
    fees: Mapped[list["Fee"]] = relationship(back_populates="student", passive_deletes=True)


class Fee(TenantScoped, Base):
    __tablename__ = "fees"
    __resource_kind__ = ResourceKind.FEE
    __owner_columns__ = {"student": "student_id", "class": "class_id"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    school_code: Mapped[str] = mapped_column(ForeignKey("schools.code"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"), nullable=False, index=True)

    # Denormalized from the student for single-table scoping.
    class_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)

    fee_type: Mapped[str] = mapped_column(String(50), nullable=False, default="tuition")
    amount: Mapped[float] = mapped_column(Numeric(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    student: Mapped[Student] = relationship(back_populates="fees")


class Notice(TenantScoped, Base):
    __tablename__ = "notices"
    __resource_kind__ = ResourceKind.NOTICE

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    school_code: Mapped[str] = mapped_column(ForeignKey("schools.code"), nullable=False, index=True)

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_by: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
