from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from smart_campus.access import Action, Principal, ResourceDescriptor, ResourceKind
from smart_campus.db.filters import prime_scope
from smart_campus.db.session import get_db
from smart_campus.models.academics import Notice
from smart_campus.schemas.school import NoticeCreate, NoticeOut
from smart_campus.security.dependencies import get_guard, get_principal, require_feature
from smart_campus.security.guard import AccessGuard

router = APIRouter(tags=["notices"], dependencies=[Depends(require_feature(ResourceKind.NOTICE))])


@router.get("/notices", response_model=list[NoticeOut])
def list_notices(
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> list[Notice]:
    prime_scope(db, guard.collection_scope(principal, ResourceKind.NOTICE))
    return list(db.scalars(select(Notice).order_by(Notice.created_at.desc(), Notice.id.desc())).all())


@router.post("/notices", response_model=NoticeOut, status_code=status.HTTP_201_CREATED)
def create_notice(
    payload: NoticeCreate,
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> Notice:
    # A target school other than the caller's own is decided (and denied) like any other cross-tenant write.
    school_code = payload.school_code or principal.tenant_id
    if school_code is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="school_code is required")
    guard.require(
        principal,
        Action.CREATE,
        ResourceDescriptor(kind=ResourceKind.NOTICE, tenant_id=school_code),
        details={"title": payload.title},
    )

    notice = Notice(
        school_code=school_code,
        title=payload.title,
        body=payload.body,
        created_by=int(principal.id),
    )
    db.add(notice)
    db.commit()
    return notice
