from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, event
from sqlalchemy.orm import Mapped, mapped_column

from smart_campus.access import AuditEntry, ResourceKind
from smart_campus.db.base import Base, TenantScoped


class AuditLog(TenantScoped, Base):
    """Persisted AuditEntry. Rows are insert-only; see the mapper events below."""

    __tablename__ = "audit_log"
    __resource_kind__ = ResourceKind.AUDIT_LOG
    __tenant_column__ = "tenant_id"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    sequence: Mapped[int] = mapped_column(Integer, nullable=False, index=True)

    principal_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(20), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    resource_kind: Mapped[str] = mapped_column(String(30), nullable=False)
    resource_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    outcome: Mapped[str] = mapped_column(String(10), nullable=False)
    reason: Mapped[str | None] = mapped_column(String(100), nullable=True)
    tenant_id: Mapped[str | None] = mapped_column(String(20), nullable=True, index=True)
    details: Mapped[dict] = mapped_column(JSON, default=dict, nullable=False)

    # Decision time, not write time.
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)

    @classmethod
    def from_entry(cls, entry: AuditEntry) -> AuditLog:
        return cls(
            sequence=entry.sequence,
            principal_id=entry.principal_id,
            role=entry.role,
            action=entry.action,
            resource_kind=entry.resource_kind,
            resource_id=entry.resource_id,
            outcome=entry.outcome.value,
            reason=entry.reason,
            tenant_id=entry.tenant_id,
            details=dict(entry.details),
            created_at=entry.timestamp.replace(tzinfo=None),
        )


@event.listens_for(AuditLog, "before_update")
def _forbid_update(mapper, connection, target) -> None:
    raise RuntimeError("audit_log rows are append-only")


@event.listens_for(AuditLog, "before_delete")
def _forbid_delete(mapper, connection, target) -> None:
    raise RuntimeError("audit_log rows are append-only")
