from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field


class SchoolOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str
    is_active: bool
    subscription_plan: str
    subscription_status: str
    features: list[str]


class PrincipalOut(BaseModel):
    id: str
    role: str
    tenant_id: str | None
    permissions: list[str]
    linked_entity_ids: list[str]


class StudentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_code: str
    name: str
    roll_number: str | None
    class_id: int | None
    created_at: datetime


class StudentCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    roll_number: str | None = None
    class_id: int | None = None
    # Only super_admin may target another school.
    school_code: str | None = None


class StudentUpdate(BaseModel):
    name: str | None = None
    roll_number: str | None = None
    class_id: int | None = None


class FeeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_code: str
    student_id: int
    fee_type: str
    amount: float
    status: str
    due_date: date | None


class FeeCreate(BaseModel):
    student_id: int
    fee_type: str = "tuition"
    amount: float = Field(gt=0)
    due_date: date | None = None


class NoticeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    school_code: str
    title: str
    body: str
    created_at: datetime


class NoticeCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    body: str = Field(min_length=1)
    # Only super_admin may target another school; everyone else posts to their own.
    school_code: str | None = None
