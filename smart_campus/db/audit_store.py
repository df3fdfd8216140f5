from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from smart_campus.access import AuditEntry
from smart_campus.models.audit import AuditLog


class SqlAuditWriter:
    """
    Audit writer backed by the ``audit_log`` table.

    Uses its own session so the audit commit is independent of the business
    transaction: a failed business commit still leaves its audit row, and a
    failed audit insert never rolls back the business change.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    def __call__(self, entry: AuditEntry) -> None:
        with self._session_factory() as db:
            db.add(AuditLog.from_entry(entry))
            db.commit()


def list_audit_entries(
    db: Session,
    *,
    action: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[AuditLog]:
    """
    Page through audit rows, newest first.

    Tenant scoping is applied by the session's scoping listener, not here.
    """

    stmt = select(AuditLog)
    if action:
        stmt = stmt.where(AuditLog.action == action)
    if since is not None:
        stmt = stmt.where(AuditLog.created_at >= since)
    if until is not None:
        stmt = stmt.where(AuditLog.created_at < until)
    stmt = stmt.order_by(AuditLog.created_at.desc(), AuditLog.sequence.desc()).limit(limit).offset(offset)
    return list(db.scalars(stmt).all())
