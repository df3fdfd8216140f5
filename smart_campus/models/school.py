from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Table, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from smart_campus.access import ResourceKind, TenantStatus
from smart_campus.db.base import Base, TenantScoped


class School(TenantScoped, Base):
    """One tenant. The school code is the tenant id everywhere."""

    __tablename__ = "schools"
    __resource_kind__ = ResourceKind.SCHOOL
    __tenant_column__ = "code"

    code: Mapped[str] = mapped_column(String(20), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    subscription_plan: Mapped[str] = mapped_column(String(20), default="trial", nullable=False)
    subscription_status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    features: Mapped[list[str]] = mapped_column(JSON, default=list, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    users: Mapped[list["User"]] = relationship(back_populates="school")

    @property
    def id(self) -> str:
        return self.code

    def tenant_status(self) -> TenantStatus:
        return TenantStatus(
            tenant_id=self.code,
            is_active=self.is_active,
            subscription_status=self.subscription_status,
            plan=self.subscription_plan,
            features=frozenset(self.features or ()),
        )


parent_students = Table(
    "parent_students",
    Base.metadata,
    Column("parent_id", ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
    Column("student_id", ForeignKey("students.id", ondelete="CASCADE"), primary_key=True),
)


class User(TenantScoped, Base):
    __tablename__ = "users"
    __table_args__ = (
        UniqueConstraint("username"),
        UniqueConstraint("email"),
    )
    __resource_kind__ = ResourceKind.USER
    __owner_columns__ = {"user": "id"}

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    username: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), nullable=False, index=True)

    # Null only for super_admin accounts.
    school_code: Mapped[str | None] = mapped_column(ForeignKey("schools.code"), nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    school: Mapped[School | None] = relationship(back_populates="users")
    children: Mapped[list["Student"]] = relationship(secondary=parent_students, back_populates="parents")
    teaching_classes: Mapped[list["TeacherClass"]] = relationship(back_populates="teacher")


class TeacherClass(Base):
    """Assignment of a teacher to a class they teach."""

    __tablename__ = "teacher_classes"

    teacher_id: Mapped[int] = mapped_column(ForeignKey("users.id"), primary_key=True)
    class_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    school_code: Mapped[str] = mapped_column(ForeignKey("schools.code"), nullable=False, index=True)

    teacher: Mapped[User] = relationship(back_populates="teaching_classes")
