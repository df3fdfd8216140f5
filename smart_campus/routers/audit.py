from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from smart_campus.access import Principal, ResourceKind
from smart_campus.db.audit_store import list_audit_entries
from smart_campus.db.filters import prime_scope
from smart_campus.db.session import get_db
from smart_campus.models.audit import AuditLog
from smart_campus.schemas.audit import AuditLogOut
from smart_campus.security.dependencies import get_guard, get_principal
from smart_campus.security.guard import AccessGuard

router = APIRouter(tags=["audit"])


@router.get("/audit-log", response_model=list[AuditLogOut])
def list_audit_log(
    action: str | None = Query(default=None),
    since: datetime | None = Query(default=None),
    until: datetime | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: Session = Depends(get_db),
    principal: Principal = Depends(get_principal),
    guard: AccessGuard = Depends(get_guard),
) -> list[AuditLog]:
    prime_scope(db, guard.collection_scope(principal, ResourceKind.AUDIT_LOG))
    return list_audit_entries(db, action=action, since=since, until=until, limit=limit, offset=offset)
